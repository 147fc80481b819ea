"""
Pricing error taxonomy.

InvalidBasketError is fatal to a pricing call. RuleEvaluationError and
DiscountCapExceededError are non-fatal: the engine records them as
diagnostics on the result and carries on.
"""
from typing import Optional


class PricingError(Exception):
    """Base class for pricing errors."""
    code = "pricing_error"

    def __init__(self, message: str, rule_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.rule_id = rule_id


class InvalidBasketError(PricingError):
    """The basket snapshot cannot be priced (currency mismatch, no lines, bad quantity)."""
    code = "invalid_basket"


class RuleEvaluationError(PricingError):
    """A single rule is malformed; it is skipped."""
    code = "rule_evaluation_error"


class DiscountCapExceededError(PricingError):
    """A discount was clamped to its configured cap."""
    code = "discount_cap_exceeded"

    def __init__(self, message: str, rule_id: Optional[str] = None,
                 requested_minor: int = 0, capped_minor: int = 0):
        super().__init__(message, rule_id)
        self.requested_minor = requested_minor
        self.capped_minor = capped_minor
