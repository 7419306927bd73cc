from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from schoolrecords.core.enums import Gender, ImportPhase, ImportStatus, RowStatus, Term


# ----- Normalized rows -----
class StudentRecord(BaseModel):
    """One roster row after normalization. `class_ref`/`department_ref` are still human-entered (name or UUID)."""

    row_number: int = Field(..., description="1-based row in the source sheet (header = 1)")
    student_id: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1)
    email: Optional[str] = None
    date_of_birth: Optional[str] = Field(None, description="YYYY-MM-DD")
    gender: Optional[Gender] = None
    class_ref: Optional[str] = None
    department_ref: Optional[str] = None
    guardian_name: Optional[str] = None
    guardian_phone: Optional[str] = None
    guardian_email: Optional[str] = None
    address: Optional[str] = None
    academic_year: str


class SubjectScores(BaseModel):
    """Raw component scores for one subject. Absent = not assessed, which is not the same as zero."""

    subject_name: str
    subject_code: str
    ca1_score: Optional[float] = None
    ca2_score: Optional[float] = None
    ca3_score: Optional[float] = None
    ca4_score: Optional[float] = None
    exam_score: Optional[float] = None

    def components(self) -> dict:
        return {
            "ca1": self.ca1_score,
            "ca2": self.ca2_score,
            "ca3": self.ca3_score,
            "ca4": self.ca4_score,
            "exam": self.exam_score,
        }

    def has_scores(self) -> bool:
        return any(v is not None for v in self.components().values())


class ResultRecord(BaseModel):
    row_number: int
    student_id: str = Field(..., min_length=1)
    student_name: Optional[str] = None
    term: Term
    academic_year: str
    days_school_opened: Optional[float] = None
    days_present: Optional[float] = None
    days_absent: Optional[float] = None
    subjects: List[SubjectScores] = Field(default_factory=list)


# ----- Parsing stage -----
class RowError(BaseModel):
    """A problem attributed to one source row. row=0 means the whole import."""

    row: int
    student_id: str = Field("N/A", description="External identifier from the sheet, if any")
    error: str


class ParseResult(BaseModel):
    success: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    rejected_rows: List[RowError] = Field(
        default_factory=list,
        description="Rows dropped during normalization because a required value was missing or invalid",
    )
    total_rows: int = Field(0, description="Non-blank data rows")
    valid_rows: int = 0


class StudentParseResult(ParseResult):
    data: List[StudentRecord] = Field(default_factory=list)


class ResultsParseResult(ParseResult):
    data: List[ResultRecord] = Field(default_factory=list)
    subjects_found: List[str] = Field(default_factory=list)


# ----- Import stage -----
class ImportContext(BaseModel):
    """Optional target context chosen by the operator."""

    class_id: Optional[UUID] = None
    department_id: Optional[UUID] = None
    ca_type_id: Optional[UUID] = None
    default_gender_when_missing: Optional[Gender] = Field(
        None,
        description="Gender written for roster rows that leave it blank. None leaves it unset.",
    )


class ImportProgress(BaseModel):
    current: int
    total: int
    phase: ImportPhase
    message: str


class RowOutcome(BaseModel):
    row: int
    student_id: str
    status: RowStatus
    message: Optional[str] = None


class ImportReport(BaseModel):
    """Aggregated outcome of one import. The four counts always add up to total_processed."""

    success: bool = False
    status: ImportStatus = ImportStatus.FAILED
    summary: str = ""
    total_processed: int = 0
    success_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    duplicate_count: int = 0
    errors: List[RowError] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    created_ids: List[str] = Field(default_factory=list)
    outcomes: List[RowOutcome] = Field(default_factory=list)

    def add_success(self, row: int, student_id: str, created_id: Optional[str] = None, message: Optional[str] = None) -> None:
        self.success_count += 1
        if created_id is not None:
            self.created_ids.append(created_id)
        self.outcomes.append(RowOutcome(row=row, student_id=student_id, status=RowStatus.SUCCESS, message=message))

    def add_failure(self, row: int, student_id: str, error: str) -> None:
        self.failed_count += 1
        self.errors.append(RowError(row=row, student_id=student_id, error=error))
        self.outcomes.append(RowOutcome(row=row, student_id=student_id, status=RowStatus.FAILED, message=error))

    def add_duplicate(self, row: int, student_id: str, message: str) -> None:
        self.duplicate_count += 1
        self.outcomes.append(RowOutcome(row=row, student_id=student_id, status=RowStatus.DUPLICATE, message=message))

    def add_skipped(self, row: int, student_id: str, message: str) -> None:
        self.skipped_count += 1
        self.outcomes.append(RowOutcome(row=row, student_id=student_id, status=RowStatus.SKIPPED, message=message))

    def add_error(self, row: int, student_id: str, error: str) -> None:
        """Record a problem that does not change the row's outcome (e.g. one unknown subject)."""
        self.errors.append(RowError(row=row, student_id=student_id, error=error))

    def include_rejected(self, rejected: List[RowError]) -> None:
        """Fold rows dropped at parse time into the report as failures."""
        for item in rejected:
            self.total_processed += 1
            self.add_failure(item.row, item.student_id, item.error)
        self.finalize()

    def finalize(self) -> "ImportReport":
        self.success = self.failed_count == 0 and self.success_count > 0
        if self.success:
            self.status = ImportStatus.COMPLETE
        elif self.success_count > 0:
            self.status = ImportStatus.PARTIAL
        else:
            self.status = ImportStatus.FAILED
        self.summary = f"Imported {self.success_count} of {self.total_processed}"
        if self.duplicate_count:
            self.summary += f"; {self.duplicate_count} already on file"
        if self.errors:
            self.summary += f"; see {len(self.errors)} errors below"
        return self
