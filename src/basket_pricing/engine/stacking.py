"""
Stacking & Priority Resolver - Picks the final set of discounts for a basket.

The walk is greedy: candidates are taken in priority order and each one is
kept or dropped on the spot, never revisited. It is deterministic and easy
to audit from the trace; it does not search for the combination that gives
the customer the largest saving.
"""
import logging
from dataclasses import dataclass, field, replace

from .models import (
    BasketSnapshot, DiscountApplication, Diagnostic, Rule,
    COUPON, TARGET_CART, TARGET_ITEM, TARGET_SHIPPING,
)
from .money import Money

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    """A matched rule with the raw applications its action produced."""
    rule: Rule
    applications: list[DiscountApplication] = field(default_factory=list)


def sort_candidates(candidates: list[Candidate]) -> list[Candidate]:
    """Priority descending, then rule creation order ascending."""
    return sorted(candidates, key=lambda c: (-c.rule.priority, c.rule.sequence, c.rule.rule_id))


class _Remaining:
    """What is still discountable on each line and on shipping."""

    def __init__(self, snapshot: BasketSnapshot):
        self.currency = snapshot.currency
        self.lines = {line.line_id: line.extended_price.minor for line in snapshot.lines}
        self.shipping = snapshot.shipping_amount.minor

    def clamp(self, app: DiscountApplication):
        """Return the application clamped to what is left, or None if nothing is."""
        if app.target_type == TARGET_ITEM:
            left = self.lines.get(app.target_id, 0)
            if left <= 0:
                return None
            amount = min(app.amount.minor, left)
            return replace(app, amount=Money(amount, self.currency))

        if app.target_type == TARGET_SHIPPING:
            if self.shipping <= 0:
                return None
            amount = min(app.amount.minor, self.shipping)
            return replace(app, amount=Money(amount, self.currency))

        # Cart-level: spread over the lines it was allocated to
        line_ids = [line_id for line_id, _ in app.allocations]
        left = sum(self.lines.get(line_id, 0) for line_id in line_ids)
        if left <= 0:
            return None
        amount = Money(min(app.amount.minor, left), self.currency)
        fits = amount == app.amount and all(
            part.minor <= self.lines.get(line_id, 0) for line_id, part in app.allocations
        )
        if fits:
            return app
        weights = [self.lines.get(line_id, 0) for line_id in line_ids]
        parts = amount.allocate(weights)
        return replace(app, amount=amount, allocations=tuple(zip(line_ids, parts)))

    def take(self, app: DiscountApplication):
        if app.target_type == TARGET_ITEM:
            self.lines[app.target_id] -= app.amount.minor
        elif app.target_type == TARGET_SHIPPING:
            self.shipping -= app.amount.minor
        else:
            for line_id, part in app.allocations:
                self.lines[line_id] -= part.minor


def resolve(candidates: list[Candidate], snapshot: BasketSnapshot) -> tuple[list[DiscountApplication], list[Diagnostic]]:
    """
    Resolve candidate discounts into the final, ordered discount set.

    Rules, walking candidates by priority:
    - one coupon per basket; the first coupon reached wins
    - once a non-combinable discount is in, further non-combinable ones are dropped
    - an exclusive discount is only taken when nothing else is in yet, and
      nothing is taken after it
    - item discounts on a line already at zero are dropped, partial ones clamped;
      cart and shipping discounts are clamped to what is left
    - zero or negative amounts are never applied
    """
    remaining = _Remaining(snapshot)
    resolved = []
    diagnostics = []

    coupon_taken = None
    non_combinable_taken = None
    exclusive_taken = None

    def skip(rule: Rule, code: str, message: str):
        logger.info("Rule %s not stacked: %s", rule.rule_id, message)
        diagnostics.append(Diagnostic(rule_id=rule.rule_id, code=code, message=message))

    for candidate in sort_candidates(candidates):
        rule = candidate.rule

        if exclusive_taken is not None:
            skip(rule, "excluded_by_exclusive", f"exclusive rule {exclusive_taken} already applied")
            continue
        if rule.kind == COUPON and coupon_taken is not None:
            skip(rule, "coupon_limit", f"only one coupon per basket ({coupon_taken} applied)")
            continue
        if not rule.combinable and non_combinable_taken is not None:
            skip(rule, "not_combinable", f"non-combinable rule {non_combinable_taken} already applied")
            continue
        if rule.exclusive and resolved:
            skip(rule, "exclusive_conflict", "exclusive rule cannot join discounts already applied")
            continue

        kept = []
        for app in candidate.applications:
            if app.amount.minor <= 0:
                logger.warning("Rule %s: dropped non-positive discount %s", rule.rule_id, app.amount.format())
                continue
            clamped = remaining.clamp(app)
            if clamped is None:
                logger.debug("Rule %s: %s already fully discounted", rule.rule_id, app.target_id)
                continue
            if clamped.amount.is_zero():
                continue
            remaining.take(clamped)
            kept.append(clamped)

        if not kept:
            skip(rule, "nothing_to_discount", "targets already fully discounted")
            continue

        resolved.extend(kept)
        if rule.kind == COUPON:
            coupon_taken = rule.rule_id
        if not rule.combinable:
            non_combinable_taken = rule.rule_id
        if rule.exclusive:
            exclusive_taken = rule.rule_id

    return resolved, diagnostics


def line_discounts(applications: list[DiscountApplication], snapshot: BasketSnapshot,
                   tax_base_only: bool = False) -> dict[str, Money]:
    """Total discount per line id, cart-level discounts included via their allocations."""
    totals = {line.line_id: Money.zero(snapshot.currency) for line in snapshot.lines}
    for app in applications:
        if tax_base_only and not app.reduces_tax_base:
            continue
        if app.target_type == TARGET_ITEM:
            totals[app.target_id] = totals[app.target_id] + app.amount
        elif app.target_type == TARGET_CART:
            for line_id, part in app.allocations:
                totals[line_id] = totals[line_id] + part
    return totals

