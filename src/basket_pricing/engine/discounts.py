"""
Discount Action Applier - Turns a matched rule's action into discount amounts.

Every amount is computed against the snapshot's original prices; clamping
against what earlier discounts already took is the stacking resolver's job.
"""
import logging
from decimal import Decimal
from typing import Optional

from .errors import DiscountCapExceededError, RuleEvaluationError
from .models import (
    Action, BasketSnapshot, DiscountApplication, Diagnostic, Rule, LineItem,
    PERCENTAGE, FIXED, FREE_SHIPPING, BUY_X_GET_Y, GIFT_CARD,
    TARGET_CART, TARGET_ITEM, TARGET_SHIPPING, COUPON,
)
from .money import Money, sum_money
from .rule_matcher import eligible_lines

logger = logging.getLogger(__name__)


def _application(rule: Rule, target_type: str, target_id: str, amount: Money,
                 allocations: tuple = (), reduces_tax_base: bool = True) -> DiscountApplication:
    return DiscountApplication(
        rule_id=rule.rule_id,
        rule_name=rule.name,
        rule_kind=rule.kind,
        discount_type=rule.action.discount_type,
        target_type=target_type,
        target_id=target_id,
        amount=amount,
        priority=rule.priority,
        allocations=allocations,
        coupon_code=rule.coupon_code.upper() if rule.kind == COUPON and rule.coupon_code else None,
        reduces_tax_base=reduces_tax_base,
    )


def allocate_across_lines(amount: Money, lines: list[LineItem], weights: Optional[list[int]] = None) -> tuple:
    """Split a cart-level amount pro-rata over lines; returns ((line_id, Money), ...)."""
    if weights is None:
        weights = [line.extended_price.minor for line in lines]
    parts = amount.allocate(weights)
    return tuple((line.line_id, part) for line, part in zip(lines, parts))


def _fixed_amount(action: Action, currency: str) -> Money:
    return Money.of(Decimal(action.value), currency)


def _apply_cap(action: Action, rule: Rule, requested: Money,
               diagnostics: Optional[list]) -> Money:
    """Clamp a rule's total discount to action.max_discount, recording the clamp."""
    if action.max_discount is None or requested.minor <= action.max_discount:
        return requested
    capped = Money(action.max_discount, requested.currency)
    err = DiscountCapExceededError(
        f"Discount {requested.format()} clamped to cap {capped.format()}",
        rule_id=rule.rule_id,
        requested_minor=requested.minor,
        capped_minor=capped.minor,
    )
    logger.info("Rule %s: %s", rule.rule_id, err.message)
    if diagnostics is not None:
        diagnostics.append(Diagnostic.from_error(err))
    return capped


def _cap_per_line(amounts: list[Money], cap: Money) -> list[Money]:
    """Fill line amounts in order until the cap is used up."""
    remaining = cap
    capped = []
    for amount in amounts:
        take = amount.min(remaining)
        capped.append(take)
        remaining = remaining - take
    return capped


def _cart_discount(action: Action, rule: Rule, snapshot: BasketSnapshot,
                   diagnostics: Optional[list]) -> list[DiscountApplication]:
    lines = eligible_lines(rule, snapshot)
    base = sum_money((line.extended_price for line in lines), snapshot.currency)
    if base.is_zero():
        return []

    if action.discount_type == PERCENTAGE:
        amount = base.percentage(action.value)
    else:
        amount = _fixed_amount(action, snapshot.currency)

    amount = _apply_cap(action, rule, amount.min(base), diagnostics)
    if amount.is_zero():
        return []

    return [_application(
        rule, TARGET_CART, TARGET_CART, amount,
        allocations=allocate_across_lines(amount, lines),
        reduces_tax_base=action.discount_type != GIFT_CARD,
    )]


def _item_discount(action: Action, rule: Rule, snapshot: BasketSnapshot,
                   diagnostics: Optional[list]) -> list[DiscountApplication]:
    lines = eligible_lines(rule, snapshot)
    amounts = []
    for line in lines:
        if action.discount_type == PERCENTAGE:
            amount = line.extended_price.percentage(action.value)
        else:
            amount = _fixed_amount(action, snapshot.currency) * line.quantity
        # Never below zero for the line
        amounts.append(amount.min(line.extended_price))

    total = sum_money(amounts, snapshot.currency)
    capped_total = _apply_cap(action, rule, total, diagnostics)
    if capped_total != total:
        amounts = _cap_per_line(amounts, capped_total)

    return [
        _application(rule, TARGET_ITEM, line.line_id, amount)
        for line, amount in zip(lines, amounts)
        if not amount.is_zero()
    ]


def _shipping_discount(action: Action, rule: Rule, snapshot: BasketSnapshot,
                       diagnostics: Optional[list]) -> list[DiscountApplication]:
    shipping = snapshot.shipping_amount
    if shipping.is_zero():
        return []

    if action.discount_type == FREE_SHIPPING:
        amount = shipping
    elif action.discount_type == PERCENTAGE:
        amount = shipping.percentage(action.value)
    else:
        amount = _fixed_amount(action, snapshot.currency).min(shipping)

    amount = _apply_cap(action, rule, amount, diagnostics)
    if amount.is_zero():
        return []
    return [_application(rule, TARGET_SHIPPING, TARGET_SHIPPING, amount)]


def _buy_x_get_y(action: Action, rule: Rule, snapshot: BasketSnapshot,
                 diagnostics: Optional[list]) -> list[DiscountApplication]:
    """
    Discount the cheapest eligible units.

    For every complete group of buy+get units, get units are discounted. The
    units picked are always the cheapest ones, earliest line first on equal
    price, so the discount given is the smallest the rule allows.
    """
    if action.buy_quantity < 1 or action.get_quantity < 1:
        raise RuleEvaluationError(
            f"buy_x_get_y needs positive buy/get quantities, got {action.buy_quantity}/{action.get_quantity}",
            rule.rule_id,
        )

    lines = eligible_lines(rule, snapshot)
    units = []
    for position, line in enumerate(lines):
        units.extend((line.unit_price.minor, position) for _ in range(line.quantity))

    groups = len(units) // (action.buy_quantity + action.get_quantity)
    free_units = groups * action.get_quantity
    if action.max_free_items is not None:
        free_units = min(free_units, action.max_free_items)
    if free_units <= 0:
        return []

    units.sort()
    free_per_line = {}
    for _, position in units[:free_units]:
        free_per_line[position] = free_per_line.get(position, 0) + 1

    amounts = []
    for position in sorted(free_per_line):
        line = lines[position]
        amount = (line.unit_price * free_per_line[position]).percentage(action.get_discount_percent)
        amounts.append((line, amount.min(line.extended_price)))

    total = sum_money((a for _, a in amounts), snapshot.currency)
    capped_total = _apply_cap(action, rule, total, diagnostics)
    if capped_total != total:
        capped = _cap_per_line([a for _, a in amounts], capped_total)
        amounts = [(line, a) for (line, _), a in zip(amounts, capped)]

    return [
        _application(rule, TARGET_ITEM, line.line_id, amount)
        for line, amount in amounts
        if not amount.is_zero()
    ]


def apply(action: Action, rule: Rule, snapshot: BasketSnapshot,
          diagnostics: Optional[list] = None) -> list[DiscountApplication]:
    """
    Compute the discount applications a matched rule produces.

    Raises RuleEvaluationError for action shapes that cannot be applied.
    Cap clamps are appended to diagnostics when a list is given.
    """
    if action.max_discount is not None and action.max_discount < 0:
        raise RuleEvaluationError(f"Negative max_discount {action.max_discount}", rule.rule_id)
    if not (0 <= action.get_discount_percent <= 100):
        raise RuleEvaluationError(
            f"get_discount_percent {action.get_discount_percent} outside 0-100", rule.rule_id
        )

    if action.discount_type == BUY_X_GET_Y:
        return _buy_x_get_y(action, rule, snapshot, diagnostics)

    if action.discount_type == FREE_SHIPPING or action.target == TARGET_SHIPPING:
        if action.discount_type == GIFT_CARD:
            raise RuleEvaluationError("gift_card cannot target shipping", rule.rule_id)
        return _shipping_discount(action, rule, snapshot, diagnostics)

    if action.discount_type == GIFT_CARD:
        return _cart_discount(action, rule, snapshot, diagnostics)

    if action.discount_type in (PERCENTAGE, FIXED):
        if action.discount_type == PERCENTAGE and not (0 <= action.value <= 100):
            raise RuleEvaluationError(f"Percentage {action.value} outside 0-100", rule.rule_id)
        if action.value < 0:
            raise RuleEvaluationError(f"Negative discount value {action.value}", rule.rule_id)
        if action.target == TARGET_ITEM:
            return _item_discount(action, rule, snapshot, diagnostics)
        if action.target == TARGET_CART:
            return _cart_discount(action, rule, snapshot, diagnostics)

    raise RuleEvaluationError(
        f"Unsupported action {action.discount_type}/{action.target}", rule.rule_id
    )
