"""API request models."""

from typing import Any

from pydantic import BaseModel, Field


class ValidateDesignRequest(BaseModel):
    """A design snapshot plus the standards that apply to it."""

    context: dict[str, Any] = Field(
        ...,
        description=(
            "Dimension values (room_type, platform, ecosystem, tier, use_case, client_id), "
            "room attributes, placed equipment [{id, category, ...}] and any other design fields"
        ),
        examples=[{"platform": "teams", "room_type": "conference", "display": {"size": 65}}],
    )
    standards: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Standards in rule-store shape; malformed rules inside are dropped",
    )


class ValidateFieldRequest(ValidateDesignRequest):
    """Incremental check of a single field path."""

    field: str = Field(..., min_length=1, max_length=200, examples=["display.size"])


class CheckRuleRequest(BaseModel):
    """A rule as authored in the rule editor, before it is saved."""

    rule: dict[str, Any]
