from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from schoolrecords.core.exceptions import ServiceError
from schoolrecords.db.session import get_db
from schoolrecords.db.store import SqlAlchemyStore

from .schemas import BulkPromotion, BulkPromotionResult, ClassPromotion, PromotionSuggestion
from . import service

router = APIRouter(prefix="/api/v1/promotions", tags=["promotions"])


@router.get("/suggestion", response_model=PromotionSuggestion)
async def get_promotion_suggestion(
    class_id: UUID = Query(..., description="Class the students are leaving"),
    db: AsyncSession = Depends(get_db),
) -> PromotionSuggestion:
    try:
        return await service.get_suggestion(SqlAlchemyStore(db), class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/bulk", response_model=BulkPromotionResult)
async def promote_students_bulk(
    payload: BulkPromotion,
    preview: bool = Query(False, description="Report per-student actions without writing"),
    db: AsyncSession = Depends(get_db),
) -> BulkPromotionResult:
    """
    Promote the listed students from one class to another, or graduate them when
    to_class_id is omitted. Per-student problems are reported, not raised.
    """
    try:
        return await service.promote_students_bulk(SqlAlchemyStore(db), payload, preview=preview)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/class/{class_id}", response_model=BulkPromotionResult)
async def promote_class(
    class_id: UUID,
    payload: ClassPromotion,
    preview: bool = Query(False),
    db: AsyncSession = Depends(get_db),
) -> BulkPromotionResult:
    try:
        return await service.promote_class(SqlAlchemyStore(db), class_id, payload, preview=preview)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
