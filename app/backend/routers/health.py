"""Health check router."""

import logging

from fastapi import APIRouter

from ..services.analysis_service import get_client

logger = logging.getLogger("index_analysis_app.health")

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health_check():
    """Basic health check; verifies SQL Server connectivity."""
    try:
        if get_client().ping():
            return {"status": "healthy", "sql_server": "connected"}
    except Exception as e:
        logger.warning(f"Health check failed: {e}")
    return {"status": "degraded", "sql_server": "unreachable"}
