import logging

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tianjiapi.containers import Container
from tianjiapi.schemas.health import HealthCheckResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
@inject
async def health_check(
    db: Session = Depends(Provide[Container.repositories.get_db]),
) -> HealthCheckResponse:
    """Health check endpoint."""
    try:
        db.execute(text("SELECT 1"))
        db.rollback()
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        db.rollback()
        return HealthCheckResponse(status="unhealthy", database="error", error=str(e))
    return HealthCheckResponse()
