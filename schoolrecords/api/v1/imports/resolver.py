"""
Resolve human-entered references from a sheet (student IDs, subject names,
class and department names) to store primary keys.

The resolver is filled once per import from the store and then answers every
lookup from memory.
"""

import logging
import re
from difflib import SequenceMatcher
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from schoolrecords.db.store import RecordStore

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE)


def looks_like_uuid(value: Optional[str]) -> bool:
    return bool(value) and bool(_UUID_RE.match(value.strip()))


def _key(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _common_substring(a: str, b: str) -> int:
    match = SequenceMatcher(None, a, b, autojunk=False).find_longest_match(0, len(a), 0, len(b))
    return match.size


class EntityResolver:
    """In-memory snapshot of the reference tables an import needs."""

    def __init__(self) -> None:
        self.students: Dict[str, Row] = {}
        self.subjects: List[Row] = []
        self.classes: Dict[UUID, Row] = {}
        self.departments: Dict[UUID, Row] = {}

    async def load(self, store: RecordStore, student_ids: Optional[Iterable[str]] = None) -> "EntityResolver":
        await self.load_students(store, student_ids)
        await self.load_subjects(store)
        await self.load_classes(store)
        await self.load_departments(store)
        return self

    async def load_students(self, store: RecordStore, student_ids: Optional[Iterable[str]] = None) -> None:
        filters = None
        if student_ids is not None:
            wanted = sorted({sid for sid in student_ids if sid})
            if not wanted:
                self.students = {}
                return
            filters = {"student_id": wanted}
        rows = await store.find_many("students", filters)
        self.students = {row["student_id"]: row for row in rows}
        logger.debug("Loaded %d students for matching", len(self.students))

    async def load_subjects(self, store: RecordStore) -> None:
        self.subjects = await store.find_many("subjects", order_by=["name"])

    async def load_classes(self, store: RecordStore) -> None:
        self.classes = {row["id"]: row for row in await store.find_many("classes", order_by=["name"])}

    async def load_departments(self, store: RecordStore) -> None:
        self.departments = {row["id"]: row for row in await store.find_many("departments", order_by=["name"])}

    # ----- students -----
    def resolve_student(self, student_id: str) -> Optional[Row]:
        """Exact match on the external student ID. There is no fuzzy pass."""
        return self.students.get((student_id or "").strip())

    # ----- subjects -----
    def rank_subject_candidates(self, name: str, code: Optional[str] = None) -> List[Row]:
        """
        Subjects that could match a sheet subject, best first.

        Tier 1: exact name (case-insensitive). Tier 2: exact code. Tier 3: either
        name contains the other, ranked by longest common substring, then by name.
        The first non-empty tier wins.
        """
        wanted = _key(name)
        if wanted:
            exact = [s for s in self.subjects if _key(s.get("name")) == wanted]
            if exact:
                return exact
        wanted_code = _key(code)
        if wanted_code:
            by_code = [s for s in self.subjects if _key(s.get("code")) == wanted_code]
            if by_code:
                return by_code
        if not wanted:
            return []

        partial = []
        for subject in self.subjects:
            candidate = _key(subject.get("name"))
            if candidate and (wanted in candidate or candidate in wanted):
                partial.append((-_common_substring(wanted, candidate), candidate, subject))
        partial.sort(key=lambda item: (item[0], item[1]))
        return [item[2] for item in partial]

    def resolve_subject(self, name: str, code: Optional[str] = None) -> Optional[Row]:
        candidates = self.rank_subject_candidates(name, code)
        return candidates[0] if candidates else None

    # ----- classes / departments -----
    def resolve_class(self, ref: Optional[str]) -> Optional[UUID]:
        return self._resolve_named(ref, self.classes)

    def resolve_department(self, ref: Optional[str]) -> Optional[UUID]:
        return self._resolve_named(ref, self.departments)

    def class_row(self, class_id: Optional[UUID]) -> Optional[Row]:
        if class_id is None:
            return None
        return self.classes.get(class_id)

    @staticmethod
    def _resolve_named(ref: Optional[str], rows: Dict[UUID, Row]) -> Optional[UUID]:
        """UUID-shaped references pass through untouched; anything else is matched by name."""
        if not ref or not ref.strip():
            return None
        if looks_like_uuid(ref):
            return UUID(ref.strip())
        wanted = _key(ref)
        for row_id, row in rows.items():
            if _key(row.get("name")) == wanted:
                return row_id
        return None
