from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from schoolrecords.core.enums import PromotionStatus


class ClassProgressionEntry(BaseModel):
    id: UUID
    name: str
    department_id: Optional[UUID] = None
    normalized_name: str
    progression_index: int = Field(..., description="-1 when the class is not in the standard progression")


class PromotionSuggestion(BaseModel):
    next_class: Optional[ClassProgressionEntry] = None
    is_graduation: bool
    message: str


class BulkPromotion(BaseModel):
    """Move students out of one class. to_class_id=None means the students graduate."""

    from_class_id: UUID
    to_class_id: Optional[UUID] = None
    student_ids: List[UUID] = Field(..., description="Internal student ids")
    academic_year: str
    reason: Optional[str] = None
    auto_complete: bool = Field(
        True,
        description="Complete the transfer and move the student now; otherwise leave it pending approval",
    )


class ClassPromotion(BaseModel):
    academic_year: str
    reason: Optional[str] = None
    auto_complete: bool = True


class PromotionResult(BaseModel):
    student_id: str
    student_name: str
    from_class: str
    to_class: Optional[str] = None
    status: PromotionStatus
    message: Optional[str] = None


class BulkPromotionResult(BaseModel):
    promoted_count: int = 0
    graduated_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    results: List[PromotionResult] = Field(default_factory=list)
    preview: bool = False

    def add(self, result: PromotionResult) -> None:
        self.results.append(result)
        if result.status == PromotionStatus.PROMOTED:
            self.promoted_count += 1
        elif result.status == PromotionStatus.GRADUATED:
            self.graduated_count += 1
        elif result.status == PromotionStatus.SKIPPED:
            self.skipped_count += 1
        else:
            self.error_count += 1
