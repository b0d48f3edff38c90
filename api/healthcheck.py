from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import Settings, get_settings
from database import get_db
from schemas.health import HealthResponse
from utils.logger_factory import new_logger

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health_check(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    """
    Health check endpoint that performs a benign database operation.

    Returns:
        200: Service is healthy and database is accessible
        503: Database is unreachable
    """
    log = new_logger("health_check")

    try:
        db.execute(text("SELECT 1")).fetchone()
    except SQLAlchemyError as e:
        log.error(f"Health check failed - database unreachable: {e}")
        content = {
            "status": "ERROR",
            "message": "Banco de dados indisponível",
            "database": "disconnected",
        }
        if not settings.is_production:
            content["error"] = str(e)
        return JSONResponse(status_code=503, content=content)

    log.info("Health check passed - database is accessible")
    return HealthResponse(
        status="OK",
        timestamp=datetime.now(timezone.utc).isoformat(),
        database="connected",
        email="configured" if settings.email_configured else "not configured",
    )
