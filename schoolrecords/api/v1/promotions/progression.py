"""
Ghana Education Service class progression: KG1 -> KG2 -> Class 1..6 -> JHS 1..3
-> SHS 1..3 -> Graduation.

Class names in the database are free text ("CLASS 1", "Primary 1", "jhs1"), so
every lookup goes through get_progression_index, which tolerates the common
spellings.
"""

import re
from typing import List, Optional, Sequence
from uuid import UUID

from .schemas import ClassProgressionEntry, PromotionSuggestion

CLASS_PROGRESSION_ORDER = (
    "KG1",
    "KG2",
    "Class 1",
    "Class 2",
    "Class 3",
    "Class 4",
    "Class 5",
    "Class 6",
    "JHS 1",
    "JHS 2",
    "JHS 3",
    "SHS 1",
    "SHS 2",
    "SHS 3",
    "Graduation",
)
FINAL_CLASS_INDEX = 13
GRADUATION_INDEX = 14


def normalize_class_name(name: str) -> str:
    return re.sub(r"\s+", " ", (name or "").lower()).strip()


_NORMALIZED_ORDER = [normalize_class_name(n) for n in CLASS_PROGRESSION_ORDER]


def _matches(name: str, contains: Sequence[str] = (), equals: Sequence[str] = ()) -> bool:
    return any(c in name for c in contains) or name in equals


def get_progression_index(class_name: str) -> int:
    """Position in CLASS_PROGRESSION_ORDER, or -1 when the name is not a standard class."""
    name = normalize_class_name(class_name)
    if name in _NORMALIZED_ORDER:
        return _NORMALIZED_ORDER.index(name)

    for n in (1, 2):
        if _matches(name, (f"kg{n}", f"kg {n}"), (f"kindergarten {n}",)):
            return n - 1
    if "jhs" not in name and "shs" not in name:
        for n in range(1, 7):
            if _matches(name, (f"class {n}",), (f"primary {n}", f"p{n}")):
                return n + 1
    for n in (1, 2, 3):
        if _matches(name, (f"jhs {n}", f"jhs{n}"), (f"junior high {n}",)):
            return 7 + n
    for n in (1, 2, 3):
        if _matches(name, (f"shs {n}", f"shs{n}"), (f"senior high {n}",)):
            return 10 + n
    if "graduat" in name:
        return GRADUATION_INDEX
    return -1


def get_next_class(class_name: str) -> Optional[str]:
    """
    Name of the class that follows, or None when the class is not recognised or
    is already the final class (SHS 3). Leaving SHS 3 is graduation, which
    should_graduate reports separately.
    """
    index = get_progression_index(class_name)
    if index == -1 or index >= FINAL_CLASS_INDEX:
        return None
    return CLASS_PROGRESSION_ORDER[index + 1]


def should_graduate(class_name: str) -> bool:
    return get_progression_index(class_name) == FINAL_CLASS_INDEX


def map_classes_to_progression(classes: Sequence[dict]) -> List[ClassProgressionEntry]:
    entries = [
        ClassProgressionEntry(
            id=c["id"],
            name=c["name"],
            department_id=c.get("department_id"),
            normalized_name=normalize_class_name(c["name"]),
            progression_index=get_progression_index(c["name"]),
        )
        for c in classes
    ]
    return sorted(entries, key=lambda e: e.progression_index)


def find_next_class_in_database(
    class_name: str,
    entries: Sequence[ClassProgressionEntry],
    preferred_department_id: Optional[UUID] = None,
) -> Optional[ClassProgressionEntry]:
    """The stored class the given class promotes into; same department first, then any department."""
    next_name = get_next_class(class_name)
    if next_name is None:
        return None
    wanted = normalize_class_name(next_name)

    if preferred_department_id is not None:
        for entry in entries:
            if entry.normalized_name == wanted and entry.department_id == preferred_department_id:
                return entry
    for entry in entries:
        if entry.normalized_name == wanted:
            return entry
    return None


def get_promotion_suggestion(
    class_name: str,
    entries: Sequence[ClassProgressionEntry],
    department_id: Optional[UUID] = None,
) -> PromotionSuggestion:
    if should_graduate(class_name):
        return PromotionSuggestion(
            next_class=None, is_graduation=True, message=f"Students in {class_name} will graduate"
        )

    next_class = find_next_class_in_database(class_name, entries, department_id)
    if next_class is not None:
        return PromotionSuggestion(
            next_class=next_class, is_graduation=False, message=f"Students will be promoted to {next_class.name}"
        )

    expected = get_next_class(class_name)
    if expected:
        return PromotionSuggestion(
            next_class=None,
            is_graduation=False,
            message=f'Warning: Next class "{expected}" not found in the system. Please create it first.',
        )
    return PromotionSuggestion(
        next_class=None,
        is_graduation=False,
        message=f'Class "{class_name}" is not in the standard progression',
    )
