import json
import uuid
from io import BytesIO

import pytest
from httpx import AsyncClient
from openpyxl import load_workbook

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _upload(content: bytes, name: str = "upload.xlsx") -> dict:
    return {"file": (name, content, XLSX)}


@pytest.fixture()
def roster(xlsx, roster_header) -> bytes:
    return xlsx([
        roster_header,
        ["STD100", "Ama Mensah", "Female", "15/06/2010", "JHS 1", "0241234567"],
        ["STD101", "Kofi Boateng", "Male", None, None, None],
    ])


@pytest.mark.asyncio
async def test_preview_students(client: AsyncClient, roster: bytes) -> None:
    response = await client.post("/api/v1/imports/students/preview", files=_upload(roster))
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["valid_rows"] == 2
    assert data["data"][0]["date_of_birth"] == "2010-06-15"


@pytest.mark.asyncio
async def test_unreadable_upload_is_rejected(client: AsyncClient) -> None:
    response = await client.post("/api/v1/imports/students/preview", files=_upload(b"plain text"))
    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["message"].startswith("Invalid Excel file")
    assert detail["errors"]


@pytest.mark.asyncio
async def test_missing_columns_are_rejected_before_import(client: AsyncClient, school, xlsx) -> None:
    response = await client.post("/api/v1/imports/students", files=_upload(xlsx([["Gender"], ["Male"]])))
    assert response.status_code == 400
    assert "student_id" in response.json()["detail"]["message"]


@pytest.mark.asyncio
async def test_import_students(client: AsyncClient, school, roster: bytes) -> None:
    response = await client.post(
        "/api/v1/imports/students",
        files=_upload(roster),
        data={"class_id": str(school["classes"]["JHS 2"])},
    )
    assert response.status_code == 200
    report = response.json()
    assert report["status"] == "complete"
    assert report["success_count"] == 2
    assert report["created_ids"] == ["STD100", "STD101"]


@pytest.mark.asyncio
async def test_import_students_streams_progress(client: AsyncClient, school, roster: bytes) -> None:
    response = await client.post("/api/v1/imports/students?stream=true", files=_upload(roster))
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")

    events = [json.loads(line) for line in response.text.splitlines() if line]
    assert events[0]["event"] == "progress"
    assert events[0]["data"]["phase"] == "validating"
    assert events[-2]["data"]["phase"] == "complete"
    assert events[-1]["event"] == "report"
    assert events[-1]["data"]["success_count"] == 2


@pytest.mark.asyncio
async def test_import_results(client: AsyncClient, school, xlsx, results_header) -> None:
    content = xlsx(
        [
            results_header(["Mathematics"]),
            ["STD001", "Student 1", "first", "2024/2025", 80, None, None, None, 60],
            ["STD404", "Nobody", "first", "2024/2025", 70, None, None, None, 50],
        ],
        sheet_name="Results Data",
    )
    preview = await client.post("/api/v1/imports/results/preview", files=_upload(content))
    assert preview.json()["subjects_found"] == ["Mathematics"]

    response = await client.post("/api/v1/imports/results", files=_upload(content))
    assert response.status_code == 200
    report = response.json()
    assert report["status"] == "partial"
    assert report["errors"][0]["student_id"] == "STD404"


@pytest.mark.asyncio
async def test_error_workbook(client: AsyncClient) -> None:
    report = {"errors": [{"row": 4, "student_id": "STD102", "error": "Row 4: Full name is required"}]}
    response = await client.post("/api/v1/imports/errors.xlsx", json=report)
    assert response.status_code == 200
    assert response.headers["content-type"] == XLSX

    ws = load_workbook(BytesIO(response.content)).active
    rows = [tuple(c.value for c in row) for row in ws.iter_rows()]
    assert rows == [("row", "student_id", "reason"), (4, "STD102", "Row 4: Full name is required")]


@pytest.mark.asyncio
async def test_templates(client: AsyncClient, school) -> None:
    response = await client.get("/api/v1/imports/templates/students")
    assert response.status_code == 200
    assert "student_upload_template.xlsx" in response.headers["content-disposition"]
    wb = load_workbook(BytesIO(response.content))
    assert wb.sheetnames == ["Instructions", "Student Data"]
    assert wb["Student Data"]["A1"].value == "Student ID*"

    response = await client.get("/api/v1/imports/templates/results", params={"class_id": str(uuid.uuid4())})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_ca_types(client: AsyncClient) -> None:
    bad = await client.post("/api/v1/grading/ca-types", json={"name": "Broken", "configuration": {"ca": 30, "exam": 60}})
    assert bad.status_code == 400
    assert bad.json()["detail"] == "Weights must add up to 100 (got 90)"

    created = await client.post(
        "/api/v1/grading/ca-types", json={"name": "Standard", "configuration": {"ca": 30, "exam": 70}}
    )
    assert created.status_code == 201
    ca_type_id = created.json()["id"]

    listed = await client.get("/api/v1/grading/ca-types")
    assert [t["name"] for t in listed.json()] == ["Standard"]
    fetched = await client.get(f"/api/v1/grading/ca-types/{ca_type_id}")
    assert fetched.json()["configuration"] == {"ca": 30, "exam": 70}

    missing = await client.get(f"/api/v1/grading/ca-types/{uuid.uuid4()}")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_score_endpoint(client: AsyncClient) -> None:
    response = await client.post(
        "/api/v1/grading/score",
        json={"configuration": {"ca": 30, "exam": 70}, "ca1_score": 80, "exam_score": 60},
    )
    assert response.status_code == 200
    data = response.json()
    assert (data["result"]["total_score"], data["result"]["grade"]) == (66, "B3")
    assert (data["breakdown"]["total_score"], data["breakdown"]["grade"]) == (66.0, "C")


@pytest.mark.asyncio
async def test_default_bands(client: AsyncClient) -> None:
    response = await client.get("/api/v1/grading/bands")
    data = response.json()
    assert data["source"] == "default"
    assert [b["grade"] for b in data["bands"]][:2] == ["A1", "B2"]


@pytest.mark.asyncio
async def test_promotion_endpoints(client: AsyncClient, school) -> None:
    classes = school["classes"]
    response = await client.get("/api/v1/promotions/suggestion", params={"class_id": str(classes["JHS 1"])})
    assert response.status_code == 200
    assert response.json()["next_class"]["name"] == "JHS 2"

    response = await client.post(
        f"/api/v1/promotions/class/{classes['JHS 1']}",
        params={"preview": "true"},
        json={"academic_year": "2025/2026"},
    )
    assert response.status_code == 200
    assert response.json()["promoted_count"] == 5
    assert response.json()["preview"] is True

    response = await client.get("/api/v1/promotions/suggestion", params={"class_id": str(uuid.uuid4())})
    assert response.status_code == 404
