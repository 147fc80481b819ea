"""
Rules API - FastAPI router for inspecting and validating rules.

Rules are authored by merchant tooling elsewhere; this router only reads the
configured rule file, validates drafts and reloads the engine.
"""
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import Optional

from ..engine.errors import RuleEvaluationError
from ..engine.models import Rule
from ..rules.compile_rules import parse_rule
from .state import engine

router = APIRouter(prefix="/api/rules", tags=["rules"])


class RuleResponse(BaseModel):
    """Response model for a rule."""
    rule_id: str
    name: str
    kind: str
    scope: str
    priority: int
    combinable: bool
    exclusive: bool
    discount_type: str
    target: str
    coupon_code: Optional[str]
    currency: Optional[str]
    starts_on: Optional[str]
    ends_on: Optional[str]


class ValidationResponse(BaseModel):
    """Response model for validation."""
    valid: bool
    errors: list[str]


def _rule_response(rule: Rule) -> RuleResponse:
    return RuleResponse(
        rule_id=rule.rule_id,
        name=rule.name,
        kind=rule.kind,
        scope=rule.scope,
        priority=rule.priority,
        combinable=rule.combinable,
        exclusive=rule.exclusive,
        discount_type=rule.action.discount_type,
        target=rule.action.target,
        coupon_code=rule.coupon_code,
        currency=rule.currency,
        starts_on=rule.starts_on.isoformat() if rule.starts_on else None,
        ends_on=rule.ends_on.isoformat() if rule.ends_on else None,
    )


@router.get("", response_model=list[RuleResponse])
async def list_rules():
    """List the rules the engine has loaded."""
    return [_rule_response(rule) for rule in engine.rules]


@router.get("/errors")
async def list_errors():
    """Rules rejected when the rule file was loaded."""
    return {"errors": engine.load_errors}


@router.get("/{rule_id}", response_model=RuleResponse)
async def get_rule(rule_id: str):
    """Get a single loaded rule by ID."""
    for rule in engine.rules:
        if rule.rule_id == rule_id:
            return _rule_response(rule)
    raise HTTPException(status_code=404, detail=f"Rule '{rule_id}' not found")


@router.post("/validate", response_model=ValidationResponse)
async def validate_rule(rule_data: dict):
    """Validate a rule draft without saving."""
    try:
        parse_rule(rule_data)
    except RuleEvaluationError as e:
        return ValidationResponse(valid=False, errors=[e.message])
    return ValidationResponse(valid=True, errors=[])


@router.post("/reload")
async def reload_rules():
    """Re-read rule, tax and tier-price files."""
    engine.reload_data()
    return {
        "success": not engine.load_errors,
        "rules_loaded": len(engine.rules),
        "errors": engine.load_errors,
    }
