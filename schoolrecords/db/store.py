"""
Record store used by the import, grading and promotion services.

The services only ever issue five request shapes against the store:
find_one, find_many, insert, update and delete. Rows travel as plain dicts
keyed by column name. A filter value that is a list/tuple/set means "IN".
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence
from uuid import UUID

from fastapi import status
from sqlalchemy import delete as sa_delete
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from schoolrecords.core.exceptions import StoreError
from schoolrecords.core.models import (
    CAType,
    Department,
    GradingScale,
    Result,
    SchoolClass,
    Student,
    Subject,
    SubjectMark,
    Transfer,
)

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

TABLES = {
    "students": Student,
    "classes": SchoolClass,
    "departments": Department,
    "subjects": Subject,
    "results": Result,
    "subject_marks": SubjectMark,
    "transfers": Transfer,
    "ca_types": CAType,
    "grading_scales": GradingScale,
}


class RecordStore(Protocol):
    async def find_one(self, table: str, filters: Mapping[str, Any]) -> Optional[Row]:
        ...

    async def find_many(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[Sequence[str]] = None,
    ) -> List[Row]:
        ...

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> List[Row]:
        ...

    async def update(self, table: str, id: UUID, patch: Mapping[str, Any]) -> Row:
        ...

    async def delete(self, table: str, filters: Mapping[str, Any]) -> int:
        ...


def _to_dict(obj) -> Row:
    return {c.key: getattr(obj, c.key) for c in obj.__table__.columns}


class SqlAlchemyStore:
    """RecordStore over an AsyncSession. Every mutation commits on its own."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    def _model(self, table: str):
        try:
            return TABLES[table]
        except KeyError:
            raise StoreError(f"Unknown table: {table}", status.HTTP_400_BAD_REQUEST) from None

    def _column(self, model, name: str):
        column = model.__table__.columns.get(name)
        if column is None:
            raise StoreError(f"Unknown column {model.__tablename__}.{name}", status.HTTP_400_BAD_REQUEST)
        return getattr(model, column.key)

    def _where(self, model, filters: Optional[Mapping[str, Any]]) -> list:
        clauses = []
        for name, value in (filters or {}).items():
            column = self._column(model, name)
            if isinstance(value, (list, tuple, set, frozenset)):
                clauses.append(column.in_(list(value)))
            elif value is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(column == value)
        return clauses

    async def find_one(self, table: str, filters: Mapping[str, Any]) -> Optional[Row]:
        model = self._model(table)
        stmt = select(model).where(*self._where(model, filters)).limit(1)
        try:
            result = await self.db.execute(stmt.execution_options(populate_existing=True))
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read {table}: {e}") from e
        obj = result.scalars().first()
        return _to_dict(obj) if obj is not None else None

    async def find_many(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[Sequence[str]] = None,
    ) -> List[Row]:
        model = self._model(table)
        stmt = select(model).where(*self._where(model, filters)).execution_options(populate_existing=True)
        for name in order_by or ():
            stmt = stmt.order_by(self._column(model, name))
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read {table}: {e}") from e
        return [_to_dict(obj) for obj in result.scalars().all()]

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> List[Row]:
        model = self._model(table)
        if not rows:
            return []
        objs = [model(**dict(row)) for row in rows]
        self.db.add_all(objs)
        await self._commit(table, "insert")
        return [_to_dict(obj) for obj in objs]

    async def update(self, table: str, id: UUID, patch: Mapping[str, Any]) -> Row:
        model = self._model(table)
        try:
            obj = await self.db.get(model, id, populate_existing=True)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read {table}: {e}") from e
        if obj is None:
            raise StoreError(f"{table} row {id} not found", status.HTTP_404_NOT_FOUND)
        for name, value in patch.items():
            self._column(model, name)
            setattr(obj, name, value)
        await self._commit(table, "update")
        return _to_dict(obj)

    async def delete(self, table: str, filters: Mapping[str, Any]) -> int:
        model = self._model(table)
        try:
            result = await self.db.execute(sa_delete(model).where(*self._where(model, filters)))
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreError(f"Failed to delete from {table}: {e}") from e
        await self._commit(table, "delete")
        return result.rowcount or 0

    async def _commit(self, table: str, action: str) -> None:
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            err_msg = str(e.orig) if getattr(e, "orig", None) else str(e)
            logger.warning("%s on %s violated a constraint: %s", action, table, err_msg)
            raise StoreError(f"Constraint violation on {table}: {err_msg}", status.HTTP_409_CONFLICT) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreError(f"Failed to {action} {table}: {e}") from e
