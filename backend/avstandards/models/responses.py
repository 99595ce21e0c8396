"""API response models."""

from typing import Literal

from pydantic import BaseModel


class RuleCheckResponse(BaseModel):
    """Structural and expression-syntax feedback for one rule."""

    valid: bool
    errors: list[str] = []


class HealthResponse(BaseModel):
    """Service health check response."""

    status: Literal["healthy", "unhealthy", "degraded"]
    version: str = "1.0.0"
    uptime_seconds: float
    strict_evaluation: bool
