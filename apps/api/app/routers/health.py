import logging
from collections.abc import Callable
from typing import Literal

from fastapi import APIRouter, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.db.session import SessionLocal
from app.observability import log_event
from app.schemas.health import HealthResponse, ReadinessDependency, ReadinessResponse

router = APIRouter(tags=["health"])


@router.get("/health", summary="Liveness check", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    summary="Readiness check",
    response_model=ReadinessResponse,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ReadinessResponse}},
)
def readiness(response: Response) -> ReadinessResponse:
    """Only the order store gates readiness; notifications are best-effort."""
    dependencies = [
        ReadinessDependency(name="database", status=_database_dependency_status(SessionLocal)),
        ReadinessDependency(name="notification_relay", status=_notification_relay_status()),
    ]

    if any(dep.status == "error" for dep in dependencies):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ReadinessResponse(status="degraded", dependencies=dependencies)
    return ReadinessResponse(status="ok", dependencies=dependencies)


def _database_dependency_status(
    session_factory: Callable[[], Session],
) -> Literal["ok", "error"]:
    try:
        with session_factory() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        log_event("readiness_database_check_failed", level=logging.WARNING, exc_info=True)
        return "error"
    return "ok"


def _notification_relay_status() -> Literal["ok", "disabled"]:
    return "ok" if settings.notification_webhook_url.strip() else "disabled"
