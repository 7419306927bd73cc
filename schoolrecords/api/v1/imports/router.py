import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import Response, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from schoolrecords.core.exceptions import ParseError, ServiceError
from schoolrecords.db.session import get_db, get_sessionmaker
from schoolrecords.db.store import SqlAlchemyStore

from .schemas import ImportProgress, ImportReport, ResultsParseResult, StudentParseResult
from .templates import build_error_workbook
from . import service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/imports", tags=["imports"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

ImportRun = Callable[[SqlAlchemyStore, Callable[[ImportProgress], Awaitable[None]]], Awaitable[ImportReport]]


def _xlsx(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


def _parse_error(e: ParseError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail={"message": e.message, "errors": e.errors})


def _stream(sessionmaker: async_sessionmaker, run: ImportRun) -> StreamingResponse:
    """
    Run an import in the background and stream NDJSON: one {"event": "progress"}
    line per progress update, then a final {"event": "report"} (or "error") line.
    """

    async def events():
        queue: asyncio.Queue = asyncio.Queue()

        async def on_progress(progress: ImportProgress) -> None:
            await queue.put({"event": "progress", "data": progress.model_dump(mode="json")})

        async def runner() -> None:
            try:
                async with sessionmaker() as db:
                    report = await run(SqlAlchemyStore(db), on_progress)
                await queue.put({"event": "report", "data": report.model_dump(mode="json")})
            except ServiceError as e:
                logger.warning("Streamed import failed: %s", e.message)
                await queue.put({"event": "error", "data": {"status_code": e.status_code, "detail": e.message}})
            finally:
                await queue.put(None)

        task = asyncio.create_task(runner())
        try:
            while True:
                item = await queue.get()
                if item is None:
                    break
                yield json.dumps(item) + "\n"
        finally:
            await task

    return StreamingResponse(events(), media_type="application/x-ndjson")


# ----- Students -----
@router.post("/students/preview", response_model=StudentParseResult)
async def preview_students(file: UploadFile = File(..., description="Roster .xlsx")) -> StudentParseResult:
    """Parse and validate a roster workbook without writing anything."""
    try:
        return service.parse_students(await file.read())
    except ParseError as e:
        raise _parse_error(e)


@router.post("/students", response_model=ImportReport)
async def import_students(
    file: UploadFile = File(..., description="Roster .xlsx"),
    class_id: Optional[UUID] = Form(None),
    department_id: Optional[UUID] = Form(None),
    stream: bool = Query(False, description="Stream NDJSON progress events before the report"),
    sessionmaker: async_sessionmaker = Depends(get_sessionmaker),
):
    try:
        parsed = service.parse_students(await file.read())
    except ParseError as e:
        raise _parse_error(e)
    context = service.default_context(class_id=class_id, department_id=department_id)

    async def run(store, on_progress=None) -> ImportReport:
        return await service.import_parsed_students(store, parsed, context, on_progress)

    if stream:
        return _stream(sessionmaker, run)
    try:
        async with sessionmaker() as db:
            return await run(SqlAlchemyStore(db))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ----- Results -----
@router.post("/results/preview", response_model=ResultsParseResult)
async def preview_results(file: UploadFile = File(..., description="Results .xlsx")) -> ResultsParseResult:
    try:
        return service.parse_results(await file.read())
    except ParseError as e:
        raise _parse_error(e)


@router.post("/results", response_model=ImportReport)
async def import_results(
    file: UploadFile = File(..., description="Results .xlsx"),
    class_id: Optional[UUID] = Form(None),
    ca_type_id: Optional[UUID] = Form(None),
    stream: bool = Query(False, description="Stream NDJSON progress events before the report"),
    sessionmaker: async_sessionmaker = Depends(get_sessionmaker),
):
    try:
        parsed = service.parse_results(await file.read())
    except ParseError as e:
        raise _parse_error(e)
    context = service.default_context(class_id=class_id, ca_type_id=ca_type_id)

    async def run(store, on_progress=None) -> ImportReport:
        return await service.import_parsed_results(store, parsed, context, on_progress)

    if stream:
        return _stream(sessionmaker, run)
    try:
        async with sessionmaker() as db:
            return await run(SqlAlchemyStore(db))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ----- Workbooks -----
@router.post("/errors.xlsx")
async def download_error_workbook(report: ImportReport) -> Response:
    """Turn an import report back into a spreadsheet of failed rows and reasons."""
    return _xlsx(build_error_workbook(report), "import_errors.xlsx")


@router.get("/templates/students")
async def download_student_template(
    class_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> Response:
    try:
        content = await service.student_template(SqlAlchemyStore(db), class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return _xlsx(content, "student_upload_template.xlsx")


@router.get("/templates/results")
async def download_results_template(
    class_id: Optional[UUID] = Query(None, description="Pre-fill the class's current students"),
    db: AsyncSession = Depends(get_db),
) -> Response:
    try:
        content = await service.results_template(SqlAlchemyStore(db), class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return _xlsx(content, "results_upload_template.xlsx")
