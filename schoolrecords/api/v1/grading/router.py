from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from schoolrecords.core.enums import Term
from schoolrecords.core.exceptions import ServiceError
from schoolrecords.db.session import get_db
from schoolrecords.db.store import SqlAlchemyStore

from .schemas import CATypeCreate, CATypeResponse, GradeBandsResponse, ScoreRequest, ScoreResponse
from . import service

router = APIRouter(prefix="/api/v1/grading", tags=["grading"])


@router.get("/ca-types", response_model=List[CATypeResponse])
async def list_ca_types(db: AsyncSession = Depends(get_db)) -> List[CATypeResponse]:
    try:
        return await service.list_ca_types(SqlAlchemyStore(db))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/ca-types", response_model=CATypeResponse, status_code=status.HTTP_201_CREATED)
async def create_ca_type(payload: CATypeCreate, db: AsyncSession = Depends(get_db)) -> CATypeResponse:
    try:
        return await service.create_ca_type(SqlAlchemyStore(db), payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/ca-types/{ca_type_id}", response_model=CATypeResponse)
async def get_ca_type(ca_type_id: UUID, db: AsyncSession = Depends(get_db)) -> CATypeResponse:
    try:
        return await service.get_ca_type(SqlAlchemyStore(db), ca_type_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/score", response_model=ScoreResponse)
async def compute_score(payload: ScoreRequest, db: AsyncSession = Depends(get_db)) -> ScoreResponse:
    """Score ad-hoc component values under a CA type (or an inline configuration)."""
    try:
        return await service.score(SqlAlchemyStore(db), payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/bands", response_model=GradeBandsResponse)
async def get_grade_bands(
    department_id: Optional[UUID] = Query(None),
    term: Optional[Term] = Query(None),
    academic_year: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> GradeBandsResponse:
    try:
        return await service.get_grade_bands(SqlAlchemyStore(db), department_id, term, academic_year)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
