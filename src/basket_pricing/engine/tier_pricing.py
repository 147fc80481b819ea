"""
Tier pricing - quantity-break unit prices applied before any discount.

A tier applies when the line quantity reaches its minimum; among applicable
tiers the one with the highest minimum wins, and a customer-group tier beats
a general one at the same minimum. Tiers never raise a line's price.
"""
import logging
from dataclasses import replace
from typing import Optional

from .models import BasketSnapshot, LineItem, TierPrice

logger = logging.getLogger(__name__)


def find_tier(line: LineItem, tier_prices, customer_group_ids: frozenset) -> Optional[TierPrice]:
    """Best applicable tier for a line, or None."""
    applicable = [
        t for t in tier_prices
        if t.product_id == line.product_id
        and (t.variant_id is None or t.variant_id == line.variant_id)
        and (t.customer_group_id is None or t.customer_group_id in customer_group_ids)
        and line.quantity >= t.min_quantity
        and t.unit_price.currency == line.unit_price.currency
    ]
    if not applicable:
        return None
    return max(applicable, key=lambda t: (t.min_quantity, t.customer_group_id is not None, t.variant_id is not None))


def resolve_unit_prices(snapshot: BasketSnapshot, tier_prices) -> tuple[BasketSnapshot, dict]:
    """
    Return a snapshot with tier prices applied and a map of line_id -> tier used.

    The input snapshot is left untouched.
    """
    tier_prices = list(tier_prices or ())
    if not tier_prices:
        return snapshot, {}

    used = {}
    lines = []
    for line in snapshot.lines:
        tier = find_tier(line, tier_prices, snapshot.customer_group_ids)
        if tier is not None and tier.unit_price.minor < line.unit_price.minor:
            logger.debug("Line %s: tier %s+ price %s", line.line_id, tier.min_quantity, tier.unit_price)
            used[line.line_id] = tier
            line = replace(line, unit_price=tier.unit_price)
        lines.append(line)

    if not used:
        return snapshot, {}
    return replace(snapshot, lines=tuple(lines)), used
