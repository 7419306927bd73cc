import uuid

import pytest

from schoolrecords.api.v1.promotions import service
from schoolrecords.api.v1.promotions.schemas import BulkPromotion, ClassPromotion
from schoolrecords.core.enums import PromotionStatus
from schoolrecords.core.exceptions import ServiceError, StoreError


async def _add_student(store, student_id: str, class_id) -> uuid.UUID:
    row = (await store.insert(
        "students",
        [{"student_id": student_id, "full_name": f"Student {student_id}", "class_id": class_id, "has_left": False}],
    ))[0]
    return row["id"]


@pytest.mark.asyncio
async def test_bulk_promotion_moves_students(store, school) -> None:
    classes, students = school["classes"], school["students"]
    payload = BulkPromotion(
        from_class_id=classes["JHS 1"],
        to_class_id=classes["JHS 2"],
        student_ids=[students["STD001"], students["STD002"]],
        academic_year="2025/2026",
    )
    result = await service.promote_students_bulk(store, payload)

    assert result.promoted_count == 2
    assert result.error_count == 0
    assert [r.message for r in result.results] == ["Successfully promoted", "Successfully promoted"]
    assert result.results[0].from_class == "JHS 1"
    assert result.results[0].to_class == "JHS 2"

    moved = await store.find_one("students", {"id": students["STD001"]})
    assert moved["class_id"] == classes["JHS 2"]
    transfers = await store.find_many("transfers", {"student_id": students["STD001"]})
    assert len(transfers) == 1
    assert transfers[0]["status"] == "completed"
    assert transfers[0]["completed_date"] is not None
    assert transfers[0]["reason"] == "Annual promotion"


@pytest.mark.asyncio
async def test_pending_promotion_leaves_class_unchanged(store, school) -> None:
    classes, students = school["classes"], school["students"]
    payload = BulkPromotion(
        from_class_id=classes["JHS 1"],
        to_class_id=classes["JHS 2"],
        student_ids=[students["STD003"]],
        academic_year="2025/2026",
        auto_complete=False,
    )
    result = await service.promote_students_bulk(store, payload)

    assert result.results[0].status == PromotionStatus.PROMOTED
    assert result.results[0].message == "Promotion pending approval"
    student = await store.find_one("students", {"id": students["STD003"]})
    assert student["class_id"] == classes["JHS 1"]
    transfer = await store.find_one("transfers", {"student_id": students["STD003"]})
    assert transfer["status"] == "pending"
    assert transfer["completed_date"] is None


@pytest.mark.asyncio
async def test_bulk_graduation(store, school) -> None:
    shs3 = school["classes"]["SHS 3"]
    student_pk = await _add_student(store, "STD300", shs3)
    payload = BulkPromotion(from_class_id=shs3, student_ids=[student_pk], academic_year="2025/2026")
    result = await service.promote_students_bulk(store, payload)

    assert result.graduated_count == 1
    assert result.results[0].to_class == "Graduation"
    assert result.results[0].message == "Successfully graduated"
    student = await store.find_one("students", {"id": student_pk})
    assert student["has_left"] is True
    transfer = await store.find_one("transfers", {"student_id": student_pk})
    assert transfer["to_class_id"] is None
    assert transfer["status"] == "completed"
    assert transfer["reason"] == "Graduation - Completed final class"


class RejectingTransfersStore:
    def __init__(self, inner) -> None:
        self.inner = inner

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def insert(self, table, rows):
        if table == "transfers":
            raise StoreError("Constraint violation on transfers", 409)
        return await self.inner.insert(table, rows)


@pytest.mark.asyncio
async def test_failed_graduation_keeps_student_enrolled(store, school) -> None:
    shs3 = school["classes"]["SHS 3"]
    student_pk = await _add_student(store, "STD301", shs3)
    payload = BulkPromotion(from_class_id=shs3, student_ids=[student_pk], academic_year="2025/2026")
    result = await service.promote_students_bulk(RejectingTransfersStore(store), payload)

    assert result.results[0].status == PromotionStatus.ERROR
    assert result.error_count == 1
    student = await store.find_one("students", {"id": student_pk})
    assert student["has_left"] is False
    assert await store.find_many("transfers") == []


@pytest.mark.asyncio
async def test_per_student_problems_are_reported(store, school) -> None:
    classes, students = school["classes"], school["students"]
    payload = BulkPromotion(
        from_class_id=classes["SHS 1"],
        to_class_id=classes["SHS 2"],
        student_ids=[uuid.uuid4(), students["STD001"]],
        academic_year="2025/2026",
    )
    result = await service.promote_students_bulk(store, payload)

    missing, wrong_class = result.results
    assert missing.status == PromotionStatus.ERROR
    assert missing.student_name == "Unknown"
    assert missing.message == "Student not found"
    assert wrong_class.status == PromotionStatus.SKIPPED
    assert wrong_class.message == "Student is not in the source class"
    assert (result.error_count, result.skipped_count, result.promoted_count) == (1, 1, 0)
    assert await store.find_many("transfers") == []


@pytest.mark.asyncio
async def test_unknown_classes_are_not_found(store, school) -> None:
    payload = BulkPromotion(from_class_id=uuid.uuid4(), student_ids=[], academic_year="2025/2026")
    with pytest.raises(ServiceError) as exc:
        await service.promote_students_bulk(store, payload)
    assert exc.value.status_code == 404
    assert exc.value.message == "Could not find the source class"

    payload = BulkPromotion(
        from_class_id=school["classes"]["JHS 1"],
        to_class_id=uuid.uuid4(),
        student_ids=[],
        academic_year="2025/2026",
    )
    with pytest.raises(ServiceError) as exc:
        await service.promote_students_bulk(store, payload)
    assert exc.value.message == "Could not find the destination class"


@pytest.mark.asyncio
async def test_promote_whole_class(store, school) -> None:
    classes = school["classes"]
    result = await service.promote_class(store, classes["JHS 1"], ClassPromotion(academic_year="2025/2026"))

    assert result.promoted_count == 5
    assert {r.to_class for r in result.results} == {"JHS 2"}
    remaining = await store.find_many("students", {"class_id": classes["JHS 1"]})
    assert remaining == []


@pytest.mark.asyncio
async def test_promote_final_class_graduates(store, school) -> None:
    shs3 = school["classes"]["SHS 3"]
    await _add_student(store, "STD300", shs3)
    await _add_student(store, "STD301", shs3)
    result = await service.promote_class(store, shs3, ClassPromotion(academic_year="2025/2026"))

    assert result.graduated_count == 2
    assert await store.find_many("students", {"class_id": shs3, "has_left": False}) == []


@pytest.mark.asyncio
async def test_promote_class_outside_progression(store, school) -> None:
    form1 = (await store.insert("classes", [{"name": "Form 1"}]))[0]
    with pytest.raises(ServiceError) as exc:
        await service.promote_class(store, form1["id"], ClassPromotion(academic_year="2025/2026"))
    assert exc.value.status_code == 400
    assert exc.value.message == 'Class "Form 1" is not in the standard progression'


@pytest.mark.asyncio
async def test_preview_writes_nothing(store, school) -> None:
    classes = school["classes"]
    result = await service.promote_class(
        store, classes["JHS 1"], ClassPromotion(academic_year="2025/2026"), preview=True
    )

    assert result.preview is True
    assert result.promoted_count == 5
    assert len(await store.find_many("students", {"class_id": classes["JHS 1"]})) == 5
    assert await store.find_many("transfers") == []


@pytest.mark.asyncio
async def test_suggestion(store, school) -> None:
    suggestion = await service.get_suggestion(store, school["classes"]["JHS 3"])
    assert suggestion.next_class.name == "SHS 1"
    assert suggestion.next_class.id == school["classes"]["SHS 1"]
