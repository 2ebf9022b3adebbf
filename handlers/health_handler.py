"""
handlers/health_handler.py
---------------------------
Unauthenticated liveness endpoint.
"""

from datetime import datetime, timezone

from fastapi import APIRouter

from config import SERVICE_NAME

router = APIRouter()


@router.get("/health")
def health() -> dict:
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
