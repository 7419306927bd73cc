import logging
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import status

from schoolrecords.core.enums import PromotionStatus, TransferStatus
from schoolrecords.core.exceptions import ServiceError, StoreError
from schoolrecords.db.store import RecordStore

from .progression import get_promotion_suggestion, map_classes_to_progression
from .schemas import (
    BulkPromotion,
    BulkPromotionResult,
    ClassPromotion,
    PromotionResult,
    PromotionSuggestion,
)

logger = logging.getLogger(__name__)

GRADUATION = "Graduation"


async def _get_class(store: RecordStore, class_id: UUID, label: str) -> dict:
    row = await store.find_one("classes", {"id": class_id})
    if not row:
        raise ServiceError(f"Could not find the {label} class", status.HTTP_404_NOT_FOUND)
    return row


async def get_suggestion(store: RecordStore, class_id: UUID) -> PromotionSuggestion:
    from_class = await _get_class(store, class_id, "source")
    entries = map_classes_to_progression(await store.find_many("classes", order_by=["name"]))
    return get_promotion_suggestion(from_class["name"], entries, from_class.get("department_id"))


async def promote_students_bulk(
    store: RecordStore,
    payload: BulkPromotion,
    preview: bool = False,
) -> BulkPromotionResult:
    """
    Promote (or graduate, when to_class_id is None) the given students out of
    from_class_id. Each student is handled on its own: a failure is recorded in
    that student's result and the rest carry on. preview=True reports what
    would happen without writing anything.
    """
    from_class = await _get_class(store, payload.from_class_id, "source")
    to_class = await _get_class(store, payload.to_class_id, "destination") if payload.to_class_id else None
    is_graduation = to_class is None
    to_name = GRADUATION if is_graduation else to_class["name"]
    today = date.today()

    result = BulkPromotionResult(preview=preview)
    for student_pk in payload.student_ids:
        student = await store.find_one("students", {"id": student_pk})
        if not student:
            result.add(PromotionResult(
                student_id=str(student_pk),
                student_name="Unknown",
                from_class=from_class["name"],
                to_class=to_name,
                status=PromotionStatus.ERROR,
                message="Student not found",
            ))
            continue

        outcome = PromotionResult(
            student_id=student["student_id"],
            student_name=student["full_name"],
            from_class=from_class["name"],
            to_class=to_name,
            status=PromotionStatus.SKIPPED,
        )
        if student.get("class_id") != payload.from_class_id:
            outcome.message = "Student is not in the source class"
            result.add(outcome)
            continue

        try:
            if is_graduation:
                if not preview:
                    await store.insert("transfers", [{
                        "student_id": student["id"],
                        "from_class_id": payload.from_class_id,
                        "to_class_id": None,
                        "reason": payload.reason or "Graduation - Completed final class",
                        "status": TransferStatus.COMPLETED.value,
                        "academic_year": payload.academic_year,
                        "request_date": today,
                        "completed_date": today,
                        "notes": "Bulk graduation",
                    }])
                    await store.update("students", student["id"], {"has_left": True})
                outcome.status = PromotionStatus.GRADUATED
                outcome.message = "Successfully graduated"
            else:
                if not preview:
                    await store.insert("transfers", [{
                        "student_id": student["id"],
                        "from_class_id": payload.from_class_id,
                        "to_class_id": payload.to_class_id,
                        "reason": payload.reason or "Annual promotion",
                        "status": (TransferStatus.COMPLETED if payload.auto_complete else TransferStatus.PENDING).value,
                        "academic_year": payload.academic_year,
                        "request_date": today,
                        "completed_date": today if payload.auto_complete else None,
                        "notes": "Bulk promotion",
                    }])
                    if payload.auto_complete:
                        await store.update("students", student["id"], {"class_id": payload.to_class_id})
                outcome.status = PromotionStatus.PROMOTED
                outcome.message = "Successfully promoted" if payload.auto_complete else "Promotion pending approval"
        except StoreError as e:
            logger.warning("Promotion of %s failed: %s", student["student_id"], e.message)
            outcome.status = PromotionStatus.ERROR
            outcome.message = e.message
        result.add(outcome)

    logger.info(
        "Bulk promotion from %s to %s: %d promoted, %d graduated, %d skipped, %d errors%s",
        from_class["name"], to_name, result.promoted_count, result.graduated_count,
        result.skipped_count, result.error_count, " (preview)" if preview else "",
    )
    return result


async def promote_class(
    store: RecordStore,
    from_class_id: UUID,
    payload: ClassPromotion,
    preview: bool = False,
) -> BulkPromotionResult:
    """Promote every current student of a class into the next class of the progression (SHS 3 graduates)."""
    suggestion = await get_suggestion(store, from_class_id)
    if not suggestion.is_graduation and suggestion.next_class is None:
        raise ServiceError(suggestion.message, status.HTTP_400_BAD_REQUEST)

    students = await store.find_many(
        "students", {"class_id": from_class_id, "has_left": False}, order_by=["student_id"]
    )
    to_class_id: Optional[UUID] = None if suggestion.is_graduation else suggestion.next_class.id
    return await promote_students_bulk(
        store,
        BulkPromotion(
            from_class_id=from_class_id,
            to_class_id=to_class_id,
            student_ids=[s["id"] for s in students],
            academic_year=payload.academic_year,
            reason=payload.reason,
            auto_complete=payload.auto_complete,
        ),
        preview=preview,
    )
