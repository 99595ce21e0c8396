"""Validation API — validate designs, single fields, and rules under edit."""

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

import structlog

from avstandards.engine import (
    ExpressionParseError,
    Standard,
    ValidationIssue,
    ValidationResult,
    check_rule,
    format_validation_errors,
    load_standard,
    rule_engine,
)
from avstandards.models.requests import CheckRuleRequest, ValidateDesignRequest, ValidateFieldRequest
from avstandards.models.responses import RuleCheckResponse

logger = structlog.get_logger()

router = APIRouter()


def _load_standards(raw_standards: list[dict]) -> list[Standard]:
    standards = []
    for i, raw in enumerate(raw_standards):
        try:
            standards.append(load_standard(raw))
        except ValidationError as e:
            logger.warning("standard_rejected", index=i, standard_id=raw.get("id"), errors=e.error_count())
            raise HTTPException(
                status_code=422,
                detail={"error": "invalid_standard", "index": i, "errors": format_validation_errors(e)},
            )
    return standards


@router.post("/validate", response_model=ValidationResult)
def validate_design(request: ValidateDesignRequest):
    """Validate a design against the standards that apply to it."""
    standards = _load_standards(request.standards)
    return rule_engine.validate_design(request.context, standards)


@router.post("/validate/field", response_model=list[ValidationIssue])
def validate_field(request: ValidateFieldRequest):
    """Issues on one field path (or fields nested under it)."""
    standards = _load_standards(request.standards)
    try:
        return rule_engine.validate_field(request.context, standards, request.field)
    except ExpressionParseError as e:
        raise HTTPException(status_code=422, detail={"error": "invalid_field", "message": str(e)})


@router.post("/rules/check", response_model=RuleCheckResponse)
def check_rule_endpoint(request: CheckRuleRequest):
    """Structural and expression-syntax feedback for the rule editor."""
    errors = check_rule(request.rule)
    return RuleCheckResponse(valid=not errors, errors=errors)
