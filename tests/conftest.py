import os
import sys
from datetime import date
from decimal import Decimal

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from basket_pricing.config.settings import Settings
from basket_pricing.engine import (
    PricingEngine, BasketSnapshot, LineItem, Jurisdiction, Money, Rule, Action, TaxRule,
)


PRICING_DATE = date(2026, 6, 1)


def usd(amount: str) -> Money:
    return Money.of(amount, "USD")


@pytest.fixture
def line():
    """Factory for basket lines priced in USD."""
    def _line(line_id="L1", product_id="P1", quantity=1, price="10.00", categories=(), **kwargs):
        return LineItem(
            line_id=line_id,
            product_id=product_id,
            quantity=quantity,
            unit_price=usd(price),
            category_ids=frozenset(categories),
            **kwargs,
        )
    return _line


@pytest.fixture
def basket():
    """Factory for USD basket snapshots dated 2026-06-01."""
    def _basket(*lines, shipping=None, **kwargs):
        kwargs.setdefault("pricing_date", PRICING_DATE)
        return BasketSnapshot(
            basket_id=kwargs.pop("basket_id", "B1"),
            currency=kwargs.pop("currency", "USD"),
            lines=tuple(lines),
            shipping=usd(shipping) if shipping is not None else None,
            **kwargs,
        )
    return _basket


@pytest.fixture
def rule():
    """Factory for rules; action fields are passed as action_* keywords."""
    def _rule(rule_id="R1", discount_type="percentage", target="cart", value="10", **kwargs):
        action_fields = {k[len("action_"):]: v for k, v in list(kwargs.items()) if k.startswith("action_")}
        for key in list(kwargs):
            if key.startswith("action_"):
                del kwargs[key]
        action = Action(discount_type=discount_type, target=target, value=Decimal(value), **action_fields)
        return Rule(rule_id=rule_id, name=kwargs.pop("name", rule_id), action=action, **kwargs)
    return _rule


@pytest.fixture
def tax_rule():
    def _tax_rule(rule_id="T1", rate="8", country="US", **kwargs):
        return TaxRule(rule_id=rule_id, name=kwargs.pop("name", rule_id), country=country,
                       rate=Decimal(rate), **kwargs)
    return _tax_rule


@pytest.fixture
def ny():
    return Jurisdiction(country="US", region="NY", postal_code="10001")


@pytest.fixture(scope="module")
def settings():
    return Settings.load()


@pytest.fixture
def engine(settings):
    return PricingEngine(settings)
