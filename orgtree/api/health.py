"""Health check and metrics endpoints"""

import logging
from fastapi import APIRouter, Depends, Response, status
from datetime import datetime
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from orgtree import __version__
from orgtree.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_check(db: Session = Depends(get_db)):
    """
    Health check endpoint (no authentication required)

    Reports database connectivity alongside the service version
    """
    services = {}
    overall_status = "healthy"

    try:
        db.execute(text("SELECT 1")).scalar_one()
        services["database"] = "connected"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        services["database"] = f"disconnected: {str(e)}"
        overall_status = "degraded"

    return {
        "status": overall_status,
        "version": __version__,
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "services": services
    }


@router.get("/metrics")
def metrics():
    """Prometheus metrics in the text exposition format"""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
