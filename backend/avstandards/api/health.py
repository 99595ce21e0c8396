"""Health check endpoint."""

import time
from fastapi import APIRouter

from avstandards.config import get_settings
from avstandards.models.responses import HealthResponse

router = APIRouter()

_start_time = time.time()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Service health. The engine has no external dependencies to probe."""
    return HealthResponse(
        status="healthy",
        uptime_seconds=round(time.time() - _start_time, 2),
        strict_evaluation=get_settings().STRICT_EVALUATION,
    )
