import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from schoolrecords.db.schema_check import ensure_tables


@pytest.mark.asyncio
async def test_ensure_tables_creates_only_missing() -> None:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    created = await ensure_tables(engine)
    assert created.index("departments") < created.index("classes") < created.index("students")
    assert "subject_marks" in created
    assert await ensure_tables(engine) == []
    await engine.dispose()
