import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from taskmanager.core.database import Database, get_database

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

STARTED_AT = time.monotonic()


@router.get("")
def health(database: Database = Depends(get_database)):
    # Check si l'API et la base répondent
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        database.execute("SELECT 1")
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(status_code=503, content={
            "success": False,
            "message": "Server health check failed",
            "timestamp": timestamp,
            "database": "disconnected",
            "error": "Service temporarily unavailable",
        })

    return {
        "success": True,
        "message": "Server is healthy",
        "timestamp": timestamp,
        "database": "connected",
        "uptime": round(time.monotonic() - STARTED_AT, 3),
    }


@router.get("/z")
def healthz():
    # Check si l'API est up
    return {"status": "ok"}
