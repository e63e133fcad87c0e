import logging
import os
import time
from datetime import datetime, timezone

from fastapi import APIRouter
from sqlalchemy.exc import SQLAlchemyError

from registration_api import database

router = APIRouter(tags=["meta"])
logger = logging.getLogger(__name__)

_STARTED = time.monotonic()


@router.get("/health")
async def health() -> dict:
    try:
        db_status = "ok" if await database.ping() else "unavailable"
    except (SQLAlchemyError, OSError):
        logger.warning("Health check could not reach the database", exc_info=True)
        db_status = "unavailable"

    return {
        "status": "ok",
        "uptime": round(time.monotonic() - _STARTED, 3),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "env": os.getenv("APP_ENV", "production"),
        "database": db_status,
    }
