"""
Workbook ingestion: open an xlsx upload, pick the sheet that holds data, and map
its header row onto canonical field names.

Header cells are compared lowercased with whitespace collapsed. A header equal
to one of a field's aliases is claimed first; otherwise the field takes the
first unclaimed header containing one of its aliases (aliases tried in order). Results sheets additionally carry one column per subject
component, e.g. "Mathematics - CA1" or "English Language - Exam".
"""

import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from openpyxl import load_workbook

from schoolrecords.core.exceptions import ParseError

logger = logging.getLogger(__name__)

ROSTER = "roster"
RESULTS = "results"

INSTRUCTIONS_SHEET_NAME = "Instructions"
STUDENT_SHEET_NAME = "Student Data"
RESULTS_SHEET_NAME = "Results Data"

ROSTER_ALIASES: Dict[str, Tuple[str, ...]] = {
    "student_id": ("student_id", "student id", "id", "student number"),
    "full_name": ("full_name", "full name", "name", "student name"),
    "email": ("email", "email address", "student email"),
    "date_of_birth": ("date_of_birth", "date of birth", "dob", "birth date"),
    "gender": ("gender", "sex"),
    "class_id": ("class_id", "class id", "class"),
    "department_id": ("department_id", "department id", "department"),
    "guardian_name": ("guardian_name", "guardian name", "parent name", "guardian"),
    "guardian_phone": ("guardian_phone", "guardian phone", "parent phone", "guardian contact"),
    "guardian_email": ("guardian_email", "guardian email", "parent email"),
    "address": ("address", "residential address", "home address"),
    "academic_year": ("academic_year", "academic year", "year"),
}
ROSTER_REQUIRED = ("student_id", "full_name")

RESULTS_ALIASES: Dict[str, Tuple[str, ...]] = {
    "student_id": ("student id", "student_id", "id"),
    "student_name": ("student name", "student_name", "name", "full name", "full_name"),
    "term": ("term",),
    "academic_year": ("academic year", "academic_year", "year"),
    "days_school_opened": ("days school opened", "days_school_opened", "school days"),
    "days_present": ("days present", "days_present", "present"),
    "days_absent": ("days absent", "days_absent", "absent"),
}
RESULTS_REQUIRED = ("student_id",)

SCORE_TYPES = ("ca1", "ca2", "ca3", "ca4", "exam")
_SUBJECT_SUFFIX_RE = re.compile(r"\s*-\s*(ca[1-4]|exam)\s*$", re.IGNORECASE)

# Preferred sheet names per kind, then name fragments that mark a data sheet.
_PREFERRED_SHEETS = {
    ROSTER: ("student data",),
    RESULTS: ("results data", "results"),
}
_DATA_SHEET_HINTS = {
    ROSTER: ("student", "data"),
    RESULTS: ("result", "data"),
}


@dataclass(frozen=True)
class RawRow:
    """Untyped cells of one data row plus its 1-based row number in the sheet."""

    row_number: int
    cells: Tuple[Any, ...]

    def cell(self, index: int) -> Any:
        if index < 0 or index >= len(self.cells):
            return None
        return self.cells[index]


@dataclass(frozen=True)
class SubjectColumn:
    subject_name: str
    subject_code: str
    column_index: int
    score_type: str


@dataclass
class WorkbookTable:
    sheet_name: str
    headers: List[str]
    raw_headers: List[str]
    rows: List[RawRow] = field(default_factory=list)


def normalize_header(value: Any) -> str:
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip().lower()


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def is_blank_row(cells: Sequence[Any]) -> bool:
    return not cells or all(is_blank(c) for c in cells)


def select_sheet(sheet_names: Sequence[str], kind: str) -> str:
    """Choose the data sheet: preferred name, then a data-looking name, then first non-Instructions sheet."""
    if not sheet_names:
        raise ParseError("Excel file has no sheets")
    lowered = [name.strip().lower() for name in sheet_names]

    for preferred in _PREFERRED_SHEETS.get(kind, ()):
        for name, low in zip(sheet_names, lowered):
            if low == preferred:
                return name

    for name, low in zip(sheet_names, lowered):
        if "instruction" in low:
            continue
        if any(hint in low for hint in _DATA_SHEET_HINTS.get(kind, ("data",))):
            return name

    for name, low in zip(sheet_names, lowered):
        if low != INSTRUCTIONS_SHEET_NAME.lower():
            return name
    return sheet_names[0]


def read_workbook(content: bytes, kind: str) -> WorkbookTable:
    """Load xlsx bytes and return the header row plus non-blank data rows of the data sheet."""
    if not content:
        raise ParseError("File is empty")
    try:
        wb = load_workbook(filename=io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise ParseError(f"Invalid Excel file: {e}") from e

    try:
        sheet_name = select_sheet(wb.sheetnames, kind)
        ws = wb[sheet_name]
        matrix = [tuple(r) for r in ws.iter_rows(values_only=True)]
    finally:
        wb.close()

    if len(matrix) < 2:
        raise ParseError("File appears to be empty or has no data rows")

    raw_headers = ["" if h is None else re.sub(r"\s+", " ", str(h)).strip() for h in matrix[0]]
    table = WorkbookTable(
        sheet_name=sheet_name,
        headers=[normalize_header(h) for h in matrix[0]],
        raw_headers=raw_headers,
    )
    for row_number, cells in enumerate(matrix[1:], start=2):
        if is_blank_row(cells):
            continue
        table.rows.append(RawRow(row_number=row_number, cells=cells))
    logger.debug("Read sheet %r: %d headers, %d data rows", sheet_name, len(table.headers), len(table.rows))
    return table


def find_column_index(headers: Sequence[str], aliases: Sequence[str], taken: Optional[set] = None) -> int:
    taken = taken or set()
    for alias in aliases:
        alias = alias.lower()
        for index, header in enumerate(headers):
            if index in taken or not header:
                continue
            if alias in header:
                return index
    return -1


def bare_header(header: str) -> str:
    """Header without required-markers or hints: 'Date of Birth (DD/MM/YYYY)*' -> 'date of birth'."""
    return re.sub(r"\s+", " ", re.sub(r"\([^)]*\)|\*", "", header)).strip()


def map_columns(headers: Sequence[str], aliases: Dict[str, Tuple[str, ...]]) -> Dict[str, int]:
    """
    Build the FieldMap. Headers equal to an alias are claimed first; remaining
    fields then take the first unclaimed header containing one of their aliases.
    """
    field_map: Dict[str, int] = {name: -1 for name in aliases}
    taken: set = set()
    bare = [bare_header(h) for h in headers]
    for name, candidates in aliases.items():
        for index, header in enumerate(bare):
            if header and index not in taken and header in candidates:
                field_map[name] = index
                taken.add(index)
                break
    for name, candidates in aliases.items():
        if field_map[name] != -1:
            continue
        index = find_column_index(headers, candidates, taken)
        field_map[name] = index
        if index != -1:
            taken.add(index)
    return field_map


def missing_required(field_map: Dict[str, int], required: Sequence[str]) -> List[str]:
    return [name for name in required if field_map.get(name, -1) == -1]


def subject_code_for(subject_name: str) -> str:
    """Initials of the subject name's words: 'Integrated Science' -> 'IS'."""
    cleaned = re.sub(r"[^a-zA-Z0-9\s]", "", subject_name)
    return "".join(word[0].upper() for word in cleaned.split() if word)


def find_subject_columns(raw_headers: Sequence[str]) -> List[SubjectColumn]:
    columns: List[SubjectColumn] = []
    for index, header in enumerate(raw_headers):
        if not header:
            continue
        match = _SUBJECT_SUFFIX_RE.search(header)
        if not match:
            continue
        subject_name = header[: match.start()].strip()
        if not subject_name:
            continue
        columns.append(
            SubjectColumn(
                subject_name=subject_name,
                subject_code=subject_code_for(subject_name),
                column_index=index,
                score_type=match.group(1).lower(),
            )
        )
    return columns


def group_subject_columns(columns: Sequence[SubjectColumn]) -> Dict[str, List[SubjectColumn]]:
    """Group component columns by subject (case-insensitive), keeping first-appearance order."""
    groups: Dict[str, List[SubjectColumn]] = {}
    for col in columns:
        groups.setdefault(col.subject_name.lower(), []).append(col)
    return groups


def map_roster_columns(table: WorkbookTable) -> Dict[str, int]:
    field_map = map_columns(table.headers, ROSTER_ALIASES)
    missing = missing_required(field_map, ROSTER_REQUIRED)
    if missing:
        raise ParseError(
            f"Missing required columns: {', '.join(missing)}",
            [f"Missing required columns: {', '.join(missing)}"],
        )
    return field_map


def map_results_columns(table: WorkbookTable) -> Tuple[Dict[str, int], List[SubjectColumn]]:
    subject_columns = find_subject_columns(table.raw_headers)
    subject_indexes = {c.column_index for c in subject_columns}
    # Subject component headers never double as base fields ("Days Present" vs "Present Tense - CA1").
    headers = ["" if i in subject_indexes else h for i, h in enumerate(table.headers)]
    field_map = map_columns(headers, RESULTS_ALIASES)

    errors = []
    missing = missing_required(field_map, RESULTS_REQUIRED)
    if missing:
        errors.append("Missing required column: Student ID")
    if not subject_columns:
        errors.append(
            'No subject score columns found. Expected format: "Subject Name - CA1", "Subject Name - Exam", etc.'
        )
    if errors:
        raise ParseError("; ".join(errors), errors)
    return field_map, subject_columns
