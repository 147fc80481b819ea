"""
Tax Composition - Applies jurisdiction tax rules to discounted basket lines.

Tax is computed and rounded per line and per rule (half-up to the currency's
minor unit), then summed, so every line's tax can be shown and re-derived.
"""
import logging
from decimal import Decimal
from typing import Optional

from .models import (
    BasketSnapshot, Jurisdiction, TaxLine, TaxRule,
    RATE_FIXED, TARGET_SHIPPING,
)
from .money import Money, round_half_up

logger = logging.getLogger(__name__)


def order_tax_rules(tax_rules) -> list[TaxRule]:
    """Highest priority first, declared order within equal priority."""
    return sorted(tax_rules, key=lambda r: (-r.priority, r.sequence))


def _tax_amount(rule: TaxRule, base: Money, quantity: int) -> Money:
    if rule.rate_type == RATE_FIXED:
        per_unit = Money.of(rule.fixed_amount or Decimal(0), base.currency)
        return per_unit * quantity
    rate = Decimal(rule.rate)
    if rule.included_in_price:
        raw = Decimal(base.minor) * rate / (Decimal(100) + rate)
    else:
        raw = Decimal(base.minor) * rate / Decimal(100)
    return Money(round_half_up(raw), base.currency)


def _tax_one(target_id: str, rules: list[TaxRule], net: Money, gross: Money,
             quantity: int) -> list[TaxLine]:
    """Apply ordered rules to one taxable target, compounding where flagged."""
    tax_lines = []
    accumulated = Money.zero(net.currency)
    for rule in rules:
        base = net if rule.applies_after_discount else gross
        if rule.compound:
            base = base + accumulated
        if base.minor <= 0:
            continue
        if rule.threshold_minor is not None and base.minor < rule.threshold_minor:
            logger.debug("Tax %s below threshold on %s", rule.rule_id, target_id)
            continue

        amount = _tax_amount(rule, base, quantity)
        tax_lines.append(TaxLine(
            rule_id=rule.rule_id,
            name=rule.name,
            target_id=target_id,
            taxable_amount=base,
            rate=Decimal(0) if rule.rate_type == RATE_FIXED else Decimal(rule.rate),
            amount=amount,
            included=rule.included_in_price,
        ))
        if not rule.included_in_price:
            accumulated = accumulated + amount
    return tax_lines


def compute_tax(snapshot: BasketSnapshot, discounted_lines: dict, jurisdiction: Optional[Jurisdiction],
                tax_rules, shipping_net: Optional[Money] = None) -> list[TaxLine]:
    """
    Compute tax lines for a basket.

    Args:
        snapshot: The basket being priced
        discounted_lines: line_id -> line amount after discounts (the taxable base)
        jurisdiction: Where the basket ships to
        tax_rules: Candidate tax rules; those not matching the jurisdiction are ignored
        shipping_net: Shipping after discounts, taxed by shipping-taxable rules

    Returns:
        Tax lines in line order, rules in application order within a line
    """
    if snapshot.tax_exempt:
        logger.debug("Basket %s: customer is tax exempt", snapshot.basket_id)
        return []

    rules = []
    for rule in order_tax_rules(r for r in tax_rules if r.matches_jurisdiction(jurisdiction)):
        if not rule.usable_in(snapshot.currency):
            logger.warning("Tax %s amounts are in %s, basket %s is in %s; skipped",
                           rule.rule_id, rule.currency, snapshot.basket_id, snapshot.currency)
            continue
        rules.append(rule)
    if not rules:
        return []

    tax_lines = []
    for line in snapshot.lines:
        if line.tax_exempt:
            continue
        line_rules = [r for r in rules if r.applies_to_category(line.tax_category)]
        net = discounted_lines.get(line.line_id, line.extended_price)
        tax_lines.extend(_tax_one(line.line_id, line_rules, net, line.extended_price, line.quantity))

    if shipping_net is not None and shipping_net.minor > 0:
        shipping_rules = [r for r in rules if r.shipping_taxable and r.rate_type != RATE_FIXED]
        tax_lines.extend(_tax_one(TARGET_SHIPPING, shipping_rules, shipping_net,
                                  snapshot.shipping_amount, 1))

    return tax_lines
