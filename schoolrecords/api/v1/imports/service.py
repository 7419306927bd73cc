"""
Batch import of normalized roster and results records.

Rows are written one after another, each write committing on its own, so a
failure part-way leaves earlier rows persisted. One bad row never aborts the
batch: it becomes a `failed` (or `duplicate`) outcome in the report. Only a
failure outside any single row (e.g. fetching the reference snapshot) stops the
run; the remaining rows are then reported as `skipped`.
"""

import inspect
import logging
from datetime import date
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union
from uuid import UUID

from fastapi import status

from schoolrecords.core.config import settings
from schoolrecords.core.enums import Gender, ImportPhase
from schoolrecords.core.exceptions import ServiceError, StoreError
from schoolrecords.db.store import RecordStore

from ..grading.schemas import GradeBand
from ..grading.scoring import compute_score
from ..grading.service import load_configuration, load_grade_bands
from .normalizer import parse_results_workbook, parse_student_workbook
from .resolver import EntityResolver
from .schemas import (
    ImportContext,
    ImportProgress,
    ImportReport,
    ResultRecord,
    ResultsParseResult,
    StudentParseResult,
    StudentRecord,
)
from .templates import build_results_template, build_student_template

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ImportProgress], Union[None, Awaitable[None]]]

_PHASE_ORDER = {
    ImportPhase.VALIDATING: 0,
    ImportPhase.CHECKING_DUPLICATES: 1,
    ImportPhase.MATCHING_STUDENTS: 1,
    ImportPhase.MATCHING_SUBJECTS: 2,
    ImportPhase.IMPORTING: 3,
    ImportPhase.COMPLETE: 4,
}


class ProgressReporter:
    """Forwards progress to an optional sync or async callback. Phases only move forward."""

    def __init__(self, callback: Optional[ProgressCallback], total: int, label: str) -> None:
        self.callback = callback
        self.total = total
        self.label = label
        self.phase: Optional[ImportPhase] = None

    async def __call__(self, phase: ImportPhase, current: int, message: str) -> None:
        if self.phase is not None and _PHASE_ORDER[phase] < _PHASE_ORDER[self.phase]:
            raise ValueError(f"Progress cannot move back from {self.phase.value} to {phase.value}")
        if phase != self.phase:
            logger.info("%s import: %s (%d/%d)", self.label, phase.value, current, self.total)
        self.phase = phase
        if self.callback is None:
            return
        outcome = self.callback(ImportProgress(current=current, total=self.total, phase=phase, message=message))
        if inspect.isawaitable(outcome):
            await outcome


def _abort(report: ImportReport, records: Sequence, done: set, error: ServiceError, label: str) -> None:
    logger.exception("%s import aborted: %s", label, error.message)
    report.add_error(0, "N/A", f"Import failed: {error.message}")
    for index, record in enumerate(records):
        if index not in done:
            report.add_skipped(record.row_number, record.student_id, "Not processed: import aborted")


# ----- Roster -----
def _student_row(
    record: StudentRecord,
    context: ImportContext,
    resolver: EntityResolver,
    warnings: List[str],
) -> dict:
    gender = record.gender or context.default_gender_when_missing
    class_id = context.class_id or resolver.resolve_class(record.class_ref)
    department_id = context.department_id or resolver.resolve_department(record.department_ref)
    if class_id is None and record.class_ref:
        warnings.append(f'Row {record.row_number}: Class "{record.class_ref}" not found; left unassigned')
    if department_id is None and record.department_ref:
        warnings.append(f'Row {record.row_number}: Department "{record.department_ref}" not found; left unassigned')
    row = {
        "student_id": record.student_id,
        "full_name": record.full_name,
        "gender": Gender(gender).value if gender else None,
        "academic_year": record.academic_year,
        "has_left": False,
        "class_id": class_id,
        "department_id": department_id,
    }
    if record.date_of_birth:
        row["date_of_birth"] = date.fromisoformat(record.date_of_birth)
    for name in ("email", "guardian_name", "guardian_phone", "guardian_email", "address"):
        value = getattr(record, name)
        if value:
            row[name] = value
    return row


async def _insert_page(
    store: RecordStore,
    page: List[Tuple[StudentRecord, dict]],
    report: ImportReport,
) -> None:
    """Insert a page of students at once; if that fails, retry row by row to find the culprit."""
    if not page:
        return
    try:
        inserted = await store.insert("students", [row for _, row in page])
    except StoreError as e:
        logger.warning("Page insert of %d students failed (%s); retrying one by one", len(page), e.message)
    else:
        for (record, _), created in zip(page, inserted):
            report.add_success(record.row_number, record.student_id, created_id=created["student_id"])
        return

    for record, row in page:
        try:
            created = (await store.insert("students", [row]))[0]
        except StoreError as e:
            logger.warning("Row %d (%s) failed: %s", record.row_number, record.student_id, e.message)
            report.add_failure(record.row_number, record.student_id, e.message)
        else:
            report.add_success(record.row_number, record.student_id, created_id=created["student_id"])


async def import_students(
    store: RecordStore,
    records: Sequence[StudentRecord],
    context: Optional[ImportContext] = None,
    on_progress: Optional[ProgressCallback] = None,
    batch_size: int = 50,
) -> ImportReport:
    context = context or ImportContext()
    total = len(records)
    report = ImportReport(total_processed=total)
    progress = ProgressReporter(on_progress, total, "Roster")
    done: set = set()
    batch_size = max(1, batch_size)

    try:
        await progress(ImportPhase.VALIDATING, 0, "Validating student data...")
        resolver = EntityResolver()
        await resolver.load_classes(store)
        await resolver.load_departments(store)

        await progress(ImportPhase.CHECKING_DUPLICATES, 0, "Checking for existing students...")
        ids = sorted({r.student_id for r in records})
        existing = {row["student_id"] for row in await store.find_many("students", {"student_id": ids})} if ids else set()

        await progress(ImportPhase.IMPORTING, 0, "Importing students...")
        seen: Dict[str, int] = {}
        for start in range(0, total, batch_size):
            page: List[Tuple[StudentRecord, dict]] = []
            for index in range(start, min(start + batch_size, total)):
                record = records[index]
                if record.student_id in existing:
                    report.add_duplicate(
                        record.row_number, record.student_id, f'Student ID "{record.student_id}" already exists'
                    )
                elif record.student_id in seen:
                    report.add_duplicate(
                        record.row_number,
                        record.student_id,
                        f'Student ID "{record.student_id}" repeats row {seen[record.student_id]}',
                    )
                else:
                    seen[record.student_id] = record.row_number
                    page.append((record, _student_row(record, context, resolver, report.warnings)))
            await _insert_page(store, page, report)
            done.update(range(start, min(start + batch_size, total)))
            processed = min(start + batch_size, total)
            await progress(ImportPhase.IMPORTING, processed, f"Imported {processed} of {total} students...")

        await progress(ImportPhase.COMPLETE, total, "Import complete!")
    except ServiceError as e:
        _abort(report, records, done, e, "Roster")

    report.finalize()
    logger.info(
        "Roster import finished: %d created, %d duplicates, %d failed, %d skipped",
        report.success_count, report.duplicate_count, report.failed_count, report.skipped_count,
    )
    return report


# ----- Results -----
def _whole(value: Optional[float]) -> Optional[int]:
    return int(value) if value is not None else None


async def _import_result_row(
    store: RecordStore,
    record: ResultRecord,
    student: dict,
    class_id: UUID,
    context: ImportContext,
    configuration: Optional[dict],
    bands: List[GradeBand],
    resolver: EntityResolver,
    report: ImportReport,
) -> None:
    fields = {
        "class_id": class_id,
        "ca_type_id": context.ca_type_id,
        "days_school_opened": _whole(record.days_school_opened),
        "days_present": _whole(record.days_present),
        "days_absent": _whole(record.days_absent),
    }
    existing = await store.find_one(
        "results",
        {"student_id": student["id"], "term": record.term.value, "academic_year": record.academic_year},
    )
    if existing:
        result = await store.update("results", existing["id"], fields)
    else:
        result = (await store.insert(
            "results",
            [{
                **fields,
                "student_id": student["id"],
                "term": record.term.value,
                "academic_year": record.academic_year,
                "admin_approved": False,
                "teacher_approved": False,
            }],
        ))[0]

    for entry in record.subjects:
        subject = resolver.resolve_subject(entry.subject_name, entry.subject_code)
        if subject is None:
            report.add_error(record.row_number, record.student_id, f'Subject "{entry.subject_name}" not found in the system')
            continue
        score = compute_score(configuration, entry.components(), bands)
        mark = {
            "ca1_score": entry.ca1_score,
            "ca2_score": entry.ca2_score,
            "ca3_score": entry.ca3_score,
            "ca4_score": entry.ca4_score,
            "exam_score": entry.exam_score,
            "total_score": score.total_score,
            "grade": score.grade,
        }
        existing_mark = await store.find_one("subject_marks", {"result_id": result["id"], "subject_id": subject["id"]})
        if existing_mark:
            await store.update("subject_marks", existing_mark["id"], mark)
        else:
            await store.insert("subject_marks", [{**mark, "result_id": result["id"], "subject_id": subject["id"]}])

    report.add_success(record.row_number, record.student_id, created_id=str(result["id"]))


async def import_results(
    store: RecordStore,
    records: Sequence[ResultRecord],
    context: Optional[ImportContext] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> ImportReport:
    context = context or ImportContext()
    total = len(records)
    report = ImportReport(total_processed=total)
    progress = ProgressReporter(on_progress, total, "Results")
    done: set = set()

    try:
        await progress(ImportPhase.VALIDATING, 0, "Validating results data...")

        await progress(ImportPhase.MATCHING_STUDENTS, 0, "Matching students...")
        resolver = EntityResolver()
        await resolver.load_students(store, [r.student_id for r in records])
        await resolver.load_classes(store)

        await progress(ImportPhase.MATCHING_SUBJECTS, 0, "Matching subjects...")
        await resolver.load_subjects(store)
        configuration = await load_configuration(store, context.ca_type_id)

        await progress(ImportPhase.IMPORTING, 0, "Importing results...")
        band_cache: Dict[tuple, List[GradeBand]] = {}
        for index, record in enumerate(records):
            student = resolver.resolve_student(record.student_id)
            class_id = context.class_id or (student or {}).get("class_id")
            if student is None:
                report.add_failure(
                    record.row_number, record.student_id, f'Student with ID "{record.student_id}" not found in the system'
                )
            elif not class_id:
                report.add_failure(record.row_number, record.student_id, "No class ID available for this student")
            else:
                try:
                    class_row = resolver.class_row(class_id)
                    department_id = (class_row or {}).get("department_id") or student.get("department_id")
                    key = (department_id, record.term, record.academic_year)
                    if key not in band_cache:
                        _, band_cache[key] = await load_grade_bands(store, *key)
                    await _import_result_row(
                        store, record, student, class_id, context, configuration, band_cache[key], resolver, report
                    )
                except StoreError as e:
                    logger.warning("Row %d (%s) failed: %s", record.row_number, record.student_id, e.message)
                    report.add_failure(record.row_number, record.student_id, e.message)
            done.add(index)
            await progress(ImportPhase.IMPORTING, index + 1, f"Imported {index + 1} of {total} results...")

        await progress(ImportPhase.COMPLETE, total, "Import complete!")
    except ServiceError as e:
        _abort(report, records, done, e, "Results")

    report.finalize()
    logger.info(
        "Results import finished: %d saved, %d failed, %d skipped, %d errors",
        report.success_count, report.failed_count, report.skipped_count, len(report.errors),
    )
    return report


# ----- File entry points -----
def default_context(
    class_id: Optional[UUID] = None,
    department_id: Optional[UUID] = None,
    ca_type_id: Optional[UUID] = None,
) -> ImportContext:
    return ImportContext(
        class_id=class_id,
        department_id=department_id,
        ca_type_id=ca_type_id,
        default_gender_when_missing=settings.import_default_gender,
    )


def parse_students(content: bytes) -> StudentParseResult:
    return parse_student_workbook(content, settings.import_max_rows, settings.import_default_academic_year)


def parse_results(content: bytes) -> ResultsParseResult:
    return parse_results_workbook(content, settings.import_max_rows, settings.import_default_academic_year)


async def import_parsed_students(
    store: RecordStore,
    parsed: StudentParseResult,
    context: Optional[ImportContext] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> ImportReport:
    """Import the valid rows of a parsed roster. Rows rejected while parsing count as failures."""
    report = await import_students(
        store, parsed.data, context or default_context(), on_progress, batch_size=settings.import_roster_batch_size
    )
    report.warnings.extend(parsed.warnings)
    report.include_rejected(parsed.rejected_rows)
    return report


async def import_parsed_results(
    store: RecordStore,
    parsed: ResultsParseResult,
    context: Optional[ImportContext] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> ImportReport:
    report = await import_results(store, parsed.data, context or default_context(), on_progress)
    report.warnings.extend(parsed.warnings)
    report.include_rejected(parsed.rejected_rows)
    return report


async def import_students_file(
    store: RecordStore,
    content: bytes,
    context: Optional[ImportContext] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> ImportReport:
    return await import_parsed_students(store, parse_students(content), context, on_progress)


async def import_results_file(
    store: RecordStore,
    content: bytes,
    context: Optional[ImportContext] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> ImportReport:
    return await import_parsed_results(store, parse_results(content), context, on_progress)


# ----- Templates -----
async def student_template(store: RecordStore, class_id: Optional[UUID] = None) -> bytes:
    class_name = None
    if class_id is not None:
        row = await store.find_one("classes", {"id": class_id})
        class_name = row["name"] if row else None
    return build_student_template(class_name=class_name)


async def results_template(store: RecordStore, class_id: Optional[UUID] = None) -> bytes:
    """Results template listing every subject; with a class, its current students are pre-filled."""
    subjects = await store.find_many("subjects", order_by=["name"])
    students: list = []
    class_name = None
    if class_id is not None:
        row = await store.find_one("classes", {"id": class_id})
        if not row:
            raise ServiceError("Class not found", status.HTTP_404_NOT_FOUND)
        class_name = row["name"]
        students = await store.find_many("students", {"class_id": class_id, "has_left": False}, order_by=["student_id"])
    return build_results_template(
        subjects, students, academic_year=settings.import_default_academic_year, class_name=class_name
    )
