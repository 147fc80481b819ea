"""Engine subpackage - basket pricing, discount stacking and tax."""
from .pricing_engine import PricingEngine, price
from .money import Money
from .models import (
    BasketSnapshot, LineItem, Jurisdiction, Rule, Action, TaxRule, TierPrice,
    DiscountApplication, TaxLine, PricingResult, Diagnostic,
)
from .errors import PricingError, InvalidBasketError, RuleEvaluationError, DiscountCapExceededError

__all__ = [
    'PricingEngine', 'price', 'Money',
    'BasketSnapshot', 'LineItem', 'Jurisdiction', 'Rule', 'Action', 'TaxRule', 'TierPrice',
    'DiscountApplication', 'TaxLine', 'PricingResult', 'Diagnostic',
    'PricingError', 'InvalidBasketError', 'RuleEvaluationError', 'DiscountCapExceededError',
]
