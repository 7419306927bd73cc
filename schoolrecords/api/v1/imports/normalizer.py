"""
Per-row normalization of roster and results sheets.

Each normalize_* function returns (record | None, errors, warnings). Errors mean
the row was dropped (a required value is missing or invalid); warnings are kept
alongside a record that is still imported.
"""

import logging
import math
import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from dateutil import parser as dtparser

from schoolrecords.core.enums import Gender, Term

from .schemas import (
    ResultRecord,
    ResultsParseResult,
    RowError,
    StudentParseResult,
    StudentRecord,
    SubjectScores,
)
from .workbook import (
    RESULTS,
    ROSTER,
    RawRow,
    SubjectColumn,
    group_subject_columns,
    map_results_columns,
    map_roster_columns,
    read_workbook,
)

logger = logging.getLogger(__name__)

DEFAULT_ACADEMIC_YEAR = "2024/2025"

_DAY_FIRST_RE = re.compile(r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})$")
_YEAR_FIRST_RE = re.compile(r"^(\d{4})[/\-](\d{1,2})[/\-](\d{1,2})$")

_TERMS = {
    "first": Term.FIRST, "1": Term.FIRST, "1st": Term.FIRST,
    "second": Term.SECOND, "2": Term.SECOND, "2nd": Term.SECOND,
    "third": Term.THIRD, "3": Term.THIRD, "3rd": Term.THIRD,
}


def cell_text(value: Any) -> str:
    """Trimmed string form of a cell. Whole floats lose their '.0' so numeric IDs stay readable."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def _iso(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def normalize_date(value: Any) -> Optional[str]:
    """
    Return YYYY-MM-DD or None when the value cannot be read as a date.
    NN/NN/YYYY is read day-first (Ghana convention); only when that is not a real
    date is the month-first reading tried.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    text = cell_text(value)
    if not text:
        return None

    m = _DAY_FIRST_RE.match(text)
    if m:
        first, second, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
        if first > 12:
            return _iso(year, second, first)
        return _iso(year, second, first) or _iso(year, first, second)

    m = _YEAR_FIRST_RE.match(text)
    if m:
        return _iso(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    try:
        return dtparser.parse(text, dayfirst=True).date().isoformat()
    except (ValueError, OverflowError):
        return None


def normalize_phone(value: Any) -> str:
    """Ghana numbers to +233XXXXXXXXX; anything unrecognised is returned unchanged."""
    phone = cell_text(value)
    if not phone:
        return ""
    digits = re.sub(r"\D", "", phone)
    if len(digits) == 10 and digits.startswith("0"):
        return "+233" + digits[1:]
    if len(digits) in (12, 13) and digits.startswith("233"):
        return "+" + digits
    return phone


def normalize_gender(value: Any) -> Optional[Gender]:
    text = cell_text(value).lower()
    if text in ("m", "male"):
        return Gender.MALE
    if text in ("f", "female"):
        return Gender.FEMALE
    return None


def parse_term(value: Any) -> Optional[Term]:
    return _TERMS.get(cell_text(value).lower())


def parse_number(value: Any) -> Optional[float]:
    """Loose numeric read for attendance counts: blank or unreadable -> None."""
    text = cell_text(value)
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return None if math.isnan(number) else number


def parse_score(value: Any) -> Tuple[Optional[float], Optional[str]]:
    """
    Return (score, problem). Blank -> (None, None): not assessed.
    Non-numeric or outside [0, 100] -> (None, reason); scores are never clamped here.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None, None
    if isinstance(value, bool):
        return None, f'Invalid score "{value}"'
    if isinstance(value, (int, float)):
        score = float(value)
    else:
        text = str(value).strip()
        try:
            score = float(text)
        except ValueError:
            return None, f'Invalid score "{text}"'
    if math.isnan(score) or math.isinf(score):
        return None, f'Invalid score "{value}"'
    if score < 0 or score > 100:
        return None, f"Score {score:g} is out of range (0-100)"
    return score, None


def _field(row: RawRow, field_map: Dict[str, int], name: str) -> Any:
    return row.cell(field_map.get(name, -1))


def _text(row: RawRow, field_map: Dict[str, int], name: str) -> Optional[str]:
    text = cell_text(_field(row, field_map, name))
    return text or None


def normalize_student_row(
    row: RawRow,
    field_map: Dict[str, int],
    default_academic_year: str = DEFAULT_ACADEMIC_YEAR,
) -> Tuple[Optional[StudentRecord], List[str], List[str]]:
    errors: List[str] = []
    warnings: List[str] = []
    n = row.row_number

    student_id = _text(row, field_map, "student_id")
    if not student_id:
        errors.append(f"Row {n}: Student ID is required")
        return None, errors, warnings
    full_name = _text(row, field_map, "full_name")
    if not full_name:
        errors.append(f"Row {n}: Full name is required")
        return None, errors, warnings

    date_of_birth = None
    raw_dob = _field(row, field_map, "date_of_birth")
    if cell_text(raw_dob):
        date_of_birth = normalize_date(raw_dob)
        if date_of_birth is None:
            warnings.append(f'Row {n}: Could not read date of birth "{cell_text(raw_dob)}"; left blank')

    raw_gender = _text(row, field_map, "gender")
    gender = normalize_gender(raw_gender)
    if raw_gender and gender is None:
        warnings.append(f'Row {n}: Unrecognised gender "{raw_gender}"')

    guardian_phone = None
    raw_phone = _text(row, field_map, "guardian_phone")
    if raw_phone:
        guardian_phone = normalize_phone(raw_phone)
        if not guardian_phone.startswith("+233"):
            warnings.append(f'Row {n}: Guardian phone "{raw_phone}" is not a recognised Ghana number')

    record = StudentRecord(
        row_number=n,
        student_id=student_id,
        full_name=full_name,
        email=_text(row, field_map, "email"),
        date_of_birth=date_of_birth,
        gender=gender,
        class_ref=_text(row, field_map, "class_id"),
        department_ref=_text(row, field_map, "department_id"),
        guardian_name=_text(row, field_map, "guardian_name"),
        guardian_phone=guardian_phone,
        guardian_email=_text(row, field_map, "guardian_email"),
        address=_text(row, field_map, "address"),
        academic_year=_text(row, field_map, "academic_year") or default_academic_year,
    )
    return record, errors, warnings


def _subject_scores(
    row: RawRow,
    subject_columns: Sequence[SubjectColumn],
    warnings: List[str],
) -> List[SubjectScores]:
    subjects = []
    for columns in group_subject_columns(subject_columns).values():
        first = columns[0]
        values: Dict[str, Optional[float]] = {}
        for col in columns:
            score, problem = parse_score(row.cell(col.column_index))
            if problem:
                warnings.append(f"Row {row.row_number}: {problem} for {col.subject_name} {col.score_type.upper()}")
            elif score is not None:
                values[f"{col.score_type}_score"] = score
        subjects.append(SubjectScores(subject_name=first.subject_name, subject_code=first.subject_code, **values))
    return subjects


def normalize_result_row(
    row: RawRow,
    field_map: Dict[str, int],
    subject_columns: Sequence[SubjectColumn],
    default_academic_year: str = DEFAULT_ACADEMIC_YEAR,
) -> Tuple[Optional[ResultRecord], List[str], List[str]]:
    errors: List[str] = []
    warnings: List[str] = []
    n = row.row_number

    student_id = _text(row, field_map, "student_id")
    if not student_id:
        errors.append(f"Row {n}: Student ID is required")
        return None, errors, warnings

    raw_term = _text(row, field_map, "term")
    if not raw_term:
        warnings.append(f"Row {n}: Term not specified, defaulting to 'first'")
        term = Term.FIRST
    else:
        term = parse_term(raw_term)
        if term is None:
            errors.append(f'Row {n}: Invalid term "{raw_term}". Must be "first", "second", or "third"')
            return None, errors, warnings

    subjects = _subject_scores(row, subject_columns, warnings)
    if not any(s.has_scores() for s in subjects):
        warnings.append(f"Row {n}: No subject scores found for student {student_id}")

    record = ResultRecord(
        row_number=n,
        student_id=student_id,
        student_name=_text(row, field_map, "student_name"),
        term=term,
        academic_year=_text(row, field_map, "academic_year") or default_academic_year,
        days_school_opened=parse_number(_field(row, field_map, "days_school_opened")),
        days_present=parse_number(_field(row, field_map, "days_present")),
        days_absent=parse_number(_field(row, field_map, "days_absent")),
        subjects=[s for s in subjects if s.has_scores()],
    )
    return record, errors, warnings


def _over_limit(result, row: RawRow, field_map: Dict[str, int], index: int, max_rows: int) -> bool:
    if index < max_rows:
        return False
    message = f"Row {row.row_number}: Maximum {max_rows} data rows allowed"
    result.errors.append(message)
    result.rejected_rows.append(RowError(row=row.row_number, student_id=_text(row, field_map, "student_id") or "N/A", error=message))
    return True


def parse_student_workbook(
    content: bytes,
    max_rows: int = 500,
    default_academic_year: str = DEFAULT_ACADEMIC_YEAR,
) -> StudentParseResult:
    """Read and normalize a roster workbook. File-level problems raise ParseError."""
    table = read_workbook(content, ROSTER)
    field_map = map_roster_columns(table)
    result = StudentParseResult(success=False, total_rows=len(table.rows))

    for index, row in enumerate(table.rows):
        if _over_limit(result, row, field_map, index, max_rows):
            continue
        record, errors, warnings = normalize_student_row(row, field_map, default_academic_year)
        result.warnings.extend(warnings)
        if record is None:
            result.errors.extend(errors)
            sid = _text(row, field_map, "student_id") or "N/A"
            result.rejected_rows.extend(RowError(row=row.row_number, student_id=sid, error=e) for e in errors)
            continue
        result.data.append(record)

    result.valid_rows = len(result.data)
    result.success = not result.errors and result.valid_rows > 0
    if not result.data and not result.errors:
        result.errors.append("No valid student records found in the file")
    logger.info(
        "Parsed roster sheet %r: %d rows, %d valid, %d errors, %d warnings",
        table.sheet_name, result.total_rows, result.valid_rows, len(result.errors), len(result.warnings),
    )
    return result


def parse_results_workbook(
    content: bytes,
    max_rows: int = 500,
    default_academic_year: str = DEFAULT_ACADEMIC_YEAR,
) -> ResultsParseResult:
    """Read and normalize a results workbook. File-level problems raise ParseError."""
    table = read_workbook(content, RESULTS)
    field_map, subject_columns = map_results_columns(table)
    subjects_found = [cols[0].subject_name for cols in group_subject_columns(subject_columns).values()]
    result = ResultsParseResult(success=False, total_rows=len(table.rows), subjects_found=subjects_found)

    for index, row in enumerate(table.rows):
        if _over_limit(result, row, field_map, index, max_rows):
            continue
        record, errors, warnings = normalize_result_row(row, field_map, subject_columns, default_academic_year)
        result.warnings.extend(warnings)
        if record is None:
            result.errors.extend(errors)
            sid = _text(row, field_map, "student_id") or "N/A"
            result.rejected_rows.extend(RowError(row=row.row_number, student_id=sid, error=e) for e in errors)
            continue
        result.data.append(record)

    result.valid_rows = len(result.data)
    result.success = not result.errors and result.valid_rows > 0
    if not result.data and not result.errors:
        result.errors.append("No valid result records found in the file")
    logger.info(
        "Parsed results sheet %r: %d rows, %d valid, %d subjects, %d errors",
        table.sheet_name, result.total_rows, result.valid_rows, len(subjects_found), len(result.errors),
    )
    return result
