import logging
from typing import List, Optional, Tuple
from uuid import UUID

from fastapi import status

from schoolrecords.core.enums import Term
from schoolrecords.core.exceptions import ServiceError
from schoolrecords.db.store import RecordStore

from .schemas import (
    CATypeCreate,
    CATypeResponse,
    GradeBand,
    GradeBandsResponse,
    ScoreRequest,
    ScoreResponse,
)
from .scoring import WAEC_GRADE_BANDS, compute_breakdown, compute_score, validate_schema

logger = logging.getLogger(__name__)


async def list_ca_types(store: RecordStore) -> List[CATypeResponse]:
    rows = await store.find_many("ca_types", order_by=["name"])
    return [CATypeResponse.model_validate(row) for row in rows]


async def get_ca_type(store: RecordStore, ca_type_id: UUID) -> CATypeResponse:
    row = await store.find_one("ca_types", {"id": ca_type_id})
    if not row:
        raise ServiceError("CA type not found", status.HTTP_404_NOT_FOUND)
    return CATypeResponse.model_validate(row)


async def create_ca_type(store: RecordStore, payload: CATypeCreate) -> CATypeResponse:
    errors = validate_schema(payload.configuration)
    if errors:
        raise ServiceError("; ".join(errors), status.HTTP_400_BAD_REQUEST)
    rows = await store.insert(
        "ca_types",
        [{
            "name": payload.name.strip(),
            "description": payload.description.strip() if payload.description else None,
            "configuration": dict(payload.configuration),
        }],
    )
    logger.info("Created CA type %r: %s", payload.name, payload.configuration)
    return CATypeResponse.model_validate(rows[0])


async def load_configuration(store: RecordStore, ca_type_id: Optional[UUID]) -> Optional[dict]:
    """Weights of a CA type, or None when no id is given or the type does not exist."""
    if ca_type_id is None:
        return None
    row = await store.find_one("ca_types", {"id": ca_type_id})
    if not row:
        logger.warning("CA type %s not found; totals fall back to an unweighted sum", ca_type_id)
        return None
    return row.get("configuration") or None


async def load_grade_bands(
    store: RecordStore,
    department_id: Optional[UUID],
    term: Optional[Term] = None,
    academic_year: Optional[str] = None,
) -> Tuple[str, List[GradeBand]]:
    """
    Bands for a department, most specific first: the (term, year) scale, then the
    department-wide scale (null term and year). Returns (source, bands); an empty
    list means no scale is configured.
    """
    if department_id is None:
        return "default", []
    if term is not None and academic_year:
        rows = await store.find_many(
            "grading_scales",
            {"department_id": department_id, "term": Term(term).value, "academic_year": academic_year},
            order_by=["from_percentage"],
        )
        if rows:
            return "configured", [GradeBand.model_validate(r) for r in rows]
    rows = await store.find_many(
        "grading_scales",
        {"department_id": department_id, "term": None, "academic_year": None},
        order_by=["from_percentage"],
    )
    if rows:
        return "department", [GradeBand.model_validate(r) for r in rows]
    return "default", []


async def get_grade_bands(
    store: RecordStore,
    department_id: Optional[UUID],
    term: Optional[Term] = None,
    academic_year: Optional[str] = None,
) -> GradeBandsResponse:
    source, bands = await load_grade_bands(store, department_id, term, academic_year)
    return GradeBandsResponse(
        department_id=department_id,
        term=term,
        academic_year=academic_year,
        source=source,
        bands=bands or list(WAEC_GRADE_BANDS),
    )


async def score(store: RecordStore, payload: ScoreRequest) -> ScoreResponse:
    configuration = payload.configuration
    if payload.ca_type_id is not None:
        configuration = (await get_ca_type(store, payload.ca_type_id)).configuration
    _, bands = await load_grade_bands(store, payload.department_id, payload.term, payload.academic_year)
    scores = {
        "ca1": payload.ca1_score,
        "ca2": payload.ca2_score,
        "ca3": payload.ca3_score,
        "ca4": payload.ca4_score,
        "exam": payload.exam_score,
    }
    return ScoreResponse(
        result=compute_score(configuration, scores, bands),
        breakdown=compute_breakdown(configuration, scores, bands),
    )
