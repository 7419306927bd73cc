"""Reference resolution: students, subjects, classes and departments."""

import uuid

import pytest

from schoolrecords.api.v1.imports.resolver import EntityResolver, looks_like_uuid


def _resolver() -> EntityResolver:
    resolver = EntityResolver()
    resolver.subjects = [
        {"id": uuid.uuid4(), "name": name, "code": code}
        for name, code in [
            ("English Language", "ENG"),
            ("English Literature", "LIT"),
            ("Integrated Science", "IS"),
            ("Mathematics", "MATH"),
            ("Science", "SCI"),
            ("Social Studies", "SS"),
        ]
    ]
    jhs1 = uuid.uuid4()
    resolver.classes = {jhs1: {"id": jhs1, "name": "JHS 1"}}
    jhs = uuid.uuid4()
    resolver.departments = {jhs: {"id": jhs, "name": "Junior High"}}
    resolver.students = {"STD001": {"id": uuid.uuid4(), "student_id": "STD001"}}
    return resolver


def _name(subject) -> str:
    return subject["name"] if subject else None


def test_exact_name_wins() -> None:
    resolver = _resolver()
    assert _name(resolver.resolve_subject("mathematics")) == "Mathematics"
    assert _name(resolver.resolve_subject("Science")) == "Science"


def test_code_match_before_partial_names() -> None:
    resolver = _resolver()
    assert _name(resolver.resolve_subject("Core Maths", "MATH")) == "Mathematics"
    assert _name(resolver.resolve_subject("Lit", "lit")) == "English Literature"


def test_partial_match_prefers_longest_common_substring() -> None:
    resolver = _resolver()
    ranked = resolver.rank_subject_candidates("Integrated Science Practical", "ISP")
    assert [s["name"] for s in ranked] == ["Integrated Science", "Science"]


def test_partial_match_ties_break_alphabetically() -> None:
    resolver = _resolver()
    ranked = resolver.rank_subject_candidates("English", "E")
    assert [s["name"] for s in ranked] == ["English Language", "English Literature"]
    assert _name(resolver.resolve_subject("English", "E")) == "English Language"


def test_unknown_subject() -> None:
    resolver = _resolver()
    assert resolver.resolve_subject("Physics", "P") is None
    assert resolver.rank_subject_candidates("", None) == []


def test_resolve_student_is_exact() -> None:
    resolver = _resolver()
    assert resolver.resolve_student(" STD001 ")["student_id"] == "STD001"
    assert resolver.resolve_student("std001") is None
    assert resolver.resolve_student("STD00") is None


def test_resolve_class_and_department_by_name_or_uuid() -> None:
    resolver = _resolver()
    (jhs1,) = resolver.classes
    (jhs,) = resolver.departments
    assert resolver.resolve_class(" JHS 1 ") == jhs1
    assert resolver.resolve_department("junior high") == jhs
    assert resolver.resolve_class("JHS 9") is None
    assert resolver.resolve_class(None) is None
    assert resolver.resolve_class("   ") is None

    unknown = uuid.uuid4()
    assert resolver.resolve_class(str(unknown)) == unknown
    assert resolver.class_row(jhs1)["name"] == "JHS 1"
    assert resolver.class_row(None) is None


def test_looks_like_uuid() -> None:
    assert looks_like_uuid(str(uuid.uuid4()))
    assert not looks_like_uuid("JHS 1")
    assert not looks_like_uuid("")
    assert not looks_like_uuid(None)


@pytest.mark.asyncio
async def test_load_from_store(store, school) -> None:
    resolver = await EntityResolver().load(store, ["STD001", "STD999"])
    assert list(resolver.students) == ["STD001"]
    assert [s["name"] for s in resolver.subjects] == [
        "English Language",
        "Integrated Science",
        "Mathematics",
        "Social Studies",
    ]
    assert resolver.resolve_class("SHS 2") == school["classes"]["SHS 2"]
    assert resolver.resolve_department("SHS") == school["departments"]["SHS"]

    await resolver.load_students(store, [])
    assert resolver.students == {}
