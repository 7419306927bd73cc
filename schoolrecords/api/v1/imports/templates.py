"""Downloadable xlsx templates and the error workbook returned after an import."""

import io
from typing import List, Optional, Sequence

from openpyxl import Workbook
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.datavalidation import DataValidation

from .schemas import ImportReport
from .workbook import INSTRUCTIONS_SHEET_NAME, RESULTS_SHEET_NAME, STUDENT_SHEET_NAME

TEMPLATE_MAX_ROWS = 500

STUDENT_TEMPLATE_COLUMNS = (
    ("Student ID*", 15),
    ("Full Name*", 25),
    ("Gender*", 10),
    ("Date of Birth (DD/MM/YYYY)", 20),
    ("Email", 25),
    ("Class", 15),
    ("Department", 18),
    ("Guardian Name", 25),
    ("Guardian Phone", 18),
    ("Guardian Email", 25),
    ("Address", 40),
    ("Academic Year", 15),
)

STUDENT_INSTRUCTIONS = [
    "STUDENT REGISTRATION TEMPLATE - INSTRUCTIONS",
    "",
    "1. REQUIRED FIELDS (marked with *):",
    "   - Student ID: Must be unique within the school (e.g. STD001)",
    "   - Full Name: Enter complete name including family name",
    '   - Gender: Select either "Male" or "Female"',
    "",
    "2. OPTIONAL FIELDS:",
    "   - Date of Birth: Use DD/MM/YYYY format (e.g. 15/06/2010)",
    "   - Class / Department: Name as it appears in the system",
    "   - Guardian Phone: 0241234567 or +233241234567",
    "   - Academic Year: Defaults to the current academic year when blank",
    "",
    "3. DATA VALIDATION:",
    "   - Student IDs that already exist are reported as duplicates and not imported",
    "   - Rows without Student ID or Full Name are rejected",
    "",
    "Fill in the 'Student Data' sheet, save as .xlsx and upload it.",
]

RESULTS_BASE_COLUMNS = (
    ("Student ID*", 15),
    ("Student Name", 25),
    ("Term*", 10),
    ("Academic Year*", 15),
)
RESULTS_ATTENDANCE_COLUMNS = (
    ("Days School Opened", 18),
    ("Days Present", 15),
    ("Days Absent", 15),
)
SCORE_SUFFIXES = ("CA1", "CA2", "CA3", "CA4", "Exam")

RESULTS_INSTRUCTIONS = [
    "RESULTS ENTRY TEMPLATE - INSTRUCTIONS",
    "",
    "1. REQUIRED FIELDS (marked with *):",
    "   - Student ID: Must match existing student records",
    '   - Term: Select "first", "second", or "third"',
    "   - Academic Year: e.g. 2024/2025",
    "",
    "2. SCORE ENTRY:",
    "   - CA1, CA2, CA3, CA4: Continuous Assessment scores (0-100)",
    "   - Exam: Final examination score (0-100)",
    "   - Leave blank if assessment not taken",
    "   - Total score and grade are calculated automatically",
    "",
    "3. ATTENDANCE:",
    "   - Days School Opened / Days Present / Days Absent",
    "",
    "Fill in the 'Results Data' sheet, save as .xlsx and upload it.",
]


def _save(wb: Workbook) -> bytes:
    bio = io.BytesIO()
    wb.save(bio)
    return bio.getvalue()


def _write_instructions(wb: Workbook, lines: Sequence[str]) -> None:
    ws = wb.active
    ws.title = INSTRUCTIONS_SHEET_NAME
    for line in lines:
        ws.append([line])
    ws.column_dimensions["A"].width = 90


def _write_headers(ws, columns: Sequence[tuple]) -> None:
    ws.append([header for header, _ in columns])
    for index, (_, width) in enumerate(columns, start=1):
        ws.column_dimensions[get_column_letter(index)].width = width


def _list_validation(ws, options: Sequence[str], column: int, message: str) -> None:
    dv = DataValidation(type="list", formula1='"' + ",".join(options) + '"', allow_blank=True)
    dv.error = message
    ws.add_data_validation(dv)
    letter = get_column_letter(column)
    dv.add(f"{letter}2:{letter}{TEMPLATE_MAX_ROWS + 1}")


def build_student_template(class_name: Optional[str] = None, department_name: Optional[str] = None) -> bytes:
    """Roster template: Instructions sheet plus an empty 'Student Data' sheet with a Gender dropdown."""
    wb = Workbook()
    lines = list(STUDENT_INSTRUCTIONS)
    if class_name:
        lines.insert(-1, f"TARGET CLASS: {class_name}")
    if department_name:
        lines.insert(-1, f"TARGET DEPARTMENT: {department_name}")
    _write_instructions(wb, lines)

    ws = wb.create_sheet(STUDENT_SHEET_NAME)
    _write_headers(ws, STUDENT_TEMPLATE_COLUMNS)
    _list_validation(ws, ["Male", "Female"], 3, "Select Male or Female")
    return _save(wb)


def build_results_template(
    subjects: Sequence[dict],
    students: Sequence[dict] = (),
    academic_year: str = "2024/2025",
    class_name: Optional[str] = None,
) -> bytes:
    """
    Results template with one CA1..CA4/Exam column per subject. When students
    are given, one row is pre-filled per student (ID, name, academic year).
    """
    wb = Workbook()
    lines = list(RESULTS_INSTRUCTIONS)
    if class_name:
        lines.insert(-1, f"TARGET CLASS: {class_name}")
    _write_instructions(wb, lines)

    subject_columns = [(f"{s['name']} - {suffix}", 12) for s in subjects for suffix in SCORE_SUFFIXES]
    columns: List[tuple] = list(RESULTS_BASE_COLUMNS) + subject_columns + list(RESULTS_ATTENDANCE_COLUMNS)

    ws = wb.create_sheet(RESULTS_SHEET_NAME)
    _write_headers(ws, columns)
    _list_validation(ws, ["first", "second", "third"], 3, 'Select "first", "second" or "third"')

    if subject_columns:
        first = len(RESULTS_BASE_COLUMNS) + 1
        last = first + len(subject_columns) - 1
        dv = DataValidation(type="decimal", operator="between", formula1="0", formula2="100", allow_blank=True)
        dv.error = "Scores must be between 0 and 100"
        ws.add_data_validation(dv)
        dv.add(f"{get_column_letter(first)}2:{get_column_letter(last)}{TEMPLATE_MAX_ROWS + 1}")

    blanks = [None] * (len(subject_columns) + len(RESULTS_ATTENDANCE_COLUMNS))
    for student in students:
        ws.append([student["student_id"], student["full_name"], None, academic_year] + blanks)
    return _save(wb)


def build_error_workbook(report: ImportReport) -> bytes:
    """One line per reported error: source row, student ID, reason."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Upload errors"
    if not report.errors:
        ws.append(["No failed rows"])
        return _save(wb)
    ws.append(["row", "student_id", "reason"])
    for error in sorted(report.errors, key=lambda e: e.row):
        ws.append([error.row, error.student_id, error.error])
    return _save(wb)
