"""Indexes router: fragmentation, usage and column report."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from analysis import (
    DatabaseNotFoundError,
    IndexAnalysisError,
    IndexNotFoundError,
    InsufficientPrivilegeError,
    InvalidParameterError,
    TableNotFoundError,
)
from ..services.analysis_service import analyze

router = APIRouter(prefix="/api/indexes", tags=["indexes"])

ERROR_STATUS = [
    (InvalidParameterError, 400),
    (InsufficientPrivilegeError, 403),
    (DatabaseNotFoundError, 404),
    (TableNotFoundError, 404),
    (IndexNotFoundError, 404),
]


def _status_for(error: IndexAnalysisError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


@router.get("/analysis")
def index_analysis(
    database: str = Query(..., min_length=1, max_length=128),
    table: Optional[str] = Query(None, max_length=257),
    index: Optional[str] = Query(None, max_length=128),
    detail_level: str = Query("LIMITED"),
):
    """Per-index fragmentation, usage counters and column list for one database."""
    try:
        return analyze(database, table=table, index=index, detail_level=detail_level)
    except IndexAnalysisError as e:
        raise HTTPException(
            status_code=_status_for(e),
            detail={"error": type(e).__name__, "message": str(e)},
        )
