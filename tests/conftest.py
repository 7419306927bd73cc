import io
from typing import AsyncGenerator, Iterable, Optional, Sequence

import pytest
from httpx import ASGITransport, AsyncClient
from openpyxl import Workbook
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from schoolrecords.db.session import Base, get_db, get_sessionmaker
from schoolrecords.db.store import SqlAlchemyStore
from schoolrecords.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def build_xlsx(
    rows: Sequence[Iterable],
    sheet_name: str = "Student Data",
    instructions: bool = True,
) -> bytes:
    """In-memory workbook: optional Instructions sheet first, then the data sheet."""
    wb = Workbook()
    ws = wb.active
    if instructions:
        ws.title = "Instructions"
        ws.append(["Fill in the data sheet"])
        ws = wb.create_sheet(sheet_name)
    else:
        ws.title = sheet_name
    for row in rows:
        ws.append(list(row))
    bio = io.BytesIO()
    wb.save(bio)
    return bio.getvalue()


@pytest.fixture()
def xlsx():
    return build_xlsx


@pytest.fixture()
async def sessionmaker() -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh in-memory database per test. StaticPool keeps every session on the same connection."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture()
async def db_session(sessionmaker: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    async with sessionmaker() as session:
        yield session


@pytest.fixture()
def store(db_session: AsyncSession) -> SqlAlchemyStore:
    return SqlAlchemyStore(db_session)


@pytest.fixture()
async def school(store: SqlAlchemyStore) -> dict:
    """
    Reference data: JHS and SHS departments, classes JHS 1..SHS 3, four subjects
    and five students (STD001..STD005) in JHS 1.
    """
    jhs, shs = await store.insert("departments", [{"name": "JHS"}, {"name": "SHS"}])
    class_rows = await store.insert(
        "classes",
        [
            {"name": "JHS 1", "department_id": jhs["id"]},
            {"name": "JHS 2", "department_id": jhs["id"]},
            {"name": "JHS 3", "department_id": jhs["id"]},
            {"name": "SHS 1", "department_id": shs["id"]},
            {"name": "SHS 2", "department_id": shs["id"]},
            {"name": "SHS 3", "department_id": shs["id"]},
        ],
    )
    classes = {row["name"]: row["id"] for row in class_rows}
    subject_rows = await store.insert(
        "subjects",
        [
            {"name": "Mathematics", "code": "MATH"},
            {"name": "English Language", "code": "ENG"},
            {"name": "Integrated Science", "code": "IS"},
            {"name": "Social Studies", "code": "SS"},
        ],
    )
    subjects = {row["name"]: row["id"] for row in subject_rows}
    student_rows = await store.insert(
        "students",
        [
            {
                "student_id": f"STD00{n}",
                "full_name": f"Student {n}",
                "gender": "female" if n % 2 else "male",
                "class_id": classes["JHS 1"],
                "department_id": jhs["id"],
                "academic_year": "2024/2025",
                "has_left": False,
            }
            for n in range(1, 6)
        ],
    )
    students = {row["student_id"]: row["id"] for row in student_rows}
    return {
        "departments": {"JHS": jhs["id"], "SHS": shs["id"]},
        "classes": classes,
        "subjects": subjects,
        "students": students,
    }


@pytest.fixture()
async def client(sessionmaker: async_sessionmaker) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app, sharing the test database."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with sessionmaker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sessionmaker] = lambda: sessionmaker
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
def roster_header() -> list:
    return ["Student ID*", "Full Name*", "Gender*", "Date of Birth (DD/MM/YYYY)", "Class", "Guardian Phone"]


def _results_header(subjects: Optional[Sequence[str]] = None) -> list:
    subjects = subjects or ["Mathematics", "English Language"]
    headers = ["Student ID*", "Student Name", "Term*", "Academic Year*"]
    for name in subjects:
        headers += [f"{name} - CA1", f"{name} - CA2", f"{name} - CA3", f"{name} - CA4", f"{name} - Exam"]
    return headers + ["Days School Opened", "Days Present", "Days Absent"]


@pytest.fixture()
def results_header():
    return _results_header
