# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Operational endpoints: liveness, store readiness and the Prometheus scrape."""
from fastapi import APIRouter, Depends, HTTPException
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.exc import SQLAlchemyError
from starlette.responses import Response

from gamejam.core.config import settings
from gamejam.core.dependencies import get_team_repo
from gamejam.core.logging import get_logger
from gamejam.repositories import TeamRepository

logger = get_logger(__name__)

router = APIRouter(tags=["System"])


@router.get("/health", summary="Liveness")
def health_check():
    return {"status": "ok", "service": settings.SERVICE_NAME, "version": settings.SERVICE_VERSION}


@router.get("/health/ready", summary="Readiness: the team store answers")
def readiness_check(repo: TeamRepository = Depends(get_team_repo)):
    try:
        repo.verify_connection()
    except SQLAlchemyError as exc:
        # Driver detail stays in the log
        logger.warning("Readiness check failed: %s", exc)
        raise HTTPException(status_code=503, detail="Database unavailable")
    return {"status": "ok", "database": "connected"}


@router.get("/metrics", summary="Prometheus metrics")
def prometheus_metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
