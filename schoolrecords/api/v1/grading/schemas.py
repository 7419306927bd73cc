from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from schoolrecords.core.enums import Term


# ----- CA types -----
class CATypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    configuration: Dict[str, float] = Field(..., description='Component -> weight, e.g. {"ca": 30, "exam": 70}')


class CATypeResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    configuration: Dict[str, float]
    created_at: datetime

    class Config:
        from_attributes = True


# ----- Grade bands -----
class GradeBand(BaseModel):
    from_percentage: float
    to_percentage: float
    grade: str
    remark: Optional[str] = None

    class Config:
        from_attributes = True


class GradeBandsResponse(BaseModel):
    department_id: Optional[UUID] = None
    term: Optional[Term] = None
    academic_year: Optional[str] = None
    source: str = Field(..., description="configured | department | default")
    bands: List[GradeBand]


# ----- Scoring -----
class ScoreRequest(BaseModel):
    ca_type_id: Optional[UUID] = None
    configuration: Optional[Dict[str, float]] = Field(None, description="Used when ca_type_id is not given")
    ca1_score: Optional[float] = None
    ca2_score: Optional[float] = None
    ca3_score: Optional[float] = None
    ca4_score: Optional[float] = None
    exam_score: Optional[float] = None
    department_id: Optional[UUID] = None
    term: Optional[Term] = None
    academic_year: Optional[str] = None


class ScoreResult(BaseModel):
    contributions: Dict[str, float] = Field(default_factory=dict)
    total_score: int
    grade: Optional[str] = None
    remark: Optional[str] = None


class ScoreBreakdown(BaseModel):
    """Report-time view: every component clamped to 0-100 before weighting, total kept to 2 decimals."""

    contributions: Dict[str, float] = Field(default_factory=dict)
    total_score: float
    grade: Optional[str] = None
    remark: Optional[str] = None


class ScoreResponse(BaseModel):
    result: ScoreResult
    breakdown: ScoreBreakdown
