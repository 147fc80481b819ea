"""
Rule Matcher - Decides which promotion and coupon rules apply to a basket.

Used by the pricing engine before any discount is computed. A rule matches
when it is live (date window, usage limit, coupon code, customer scope) and
its condition tree evaluates true against the basket snapshot.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from .conditions import (
    AllOf, AnyOf, ProductIn, CategoryIn, CustomerGroupIn, SegmentIn,
    QuantityThreshold, AmountThreshold, DateWindow, UnknownPredicate,
    QUANTITY_OPERATORS,
)
from .errors import RuleEvaluationError
from .models import (
    BasketSnapshot, LineItem, Rule, Diagnostic, COUPON,
    SCOPE_PRODUCT, SCOPE_CATEGORY, SCOPE_CUSTOMER, SCOPE_CUSTOMER_GROUP,
)

logger = logging.getLogger(__name__)


def _compare(operator: str, actual: int, expected: int) -> bool:
    if operator == '>=':
        return actual >= expected
    if operator == '<=':
        return actual <= expected
    raise RuleEvaluationError(f"Unsupported comparison operator '{operator}'")


def evaluate(condition, snapshot: BasketSnapshot) -> bool:
    """
    Evaluate a condition tree against a basket snapshot.

    AllOf stops at the first false child, AnyOf at the first true one.
    An empty tree (None) matches. Unknown predicate types never match and
    are logged; structurally broken nodes raise RuleEvaluationError.
    """
    if condition is None:
        return True

    if isinstance(condition, AllOf):
        for child in condition.children:
            if not evaluate(child, snapshot):
                return False
        return True

    if isinstance(condition, AnyOf):
        for child in condition.children:
            if evaluate(child, snapshot):
                return True
        return False

    if isinstance(condition, ProductIn):
        return any(line.product_id in condition.product_ids for line in snapshot.lines)

    if isinstance(condition, CategoryIn):
        return any(line.category_ids & condition.category_ids for line in snapshot.lines)

    if isinstance(condition, CustomerGroupIn):
        return bool(snapshot.customer_group_ids & condition.group_ids)

    if isinstance(condition, SegmentIn):
        return bool(snapshot.segment_ids & condition.segment_ids)

    if isinstance(condition, QuantityThreshold):
        if condition.operator not in QUANTITY_OPERATORS:
            raise RuleEvaluationError(f"Unsupported quantity operator '{condition.operator}'")
        quantity = sum(
            line.quantity for line in snapshot.lines
            if (not condition.product_ids or line.product_id in condition.product_ids)
            and (not condition.category_ids or line.category_ids & condition.category_ids)
        )
        return _compare(condition.operator, quantity, condition.quantity)

    if isinstance(condition, AmountThreshold):
        return _compare(condition.operator, snapshot.subtotal.minor, condition.amount_minor)

    if isinstance(condition, DateWindow):
        today = snapshot.pricing_date
        if today is None:
            # No pricing date means the window cannot be checked
            return False
        if condition.start and today < condition.start:
            return False
        if condition.end and today > condition.end:
            return False
        return True

    if isinstance(condition, UnknownPredicate):
        logger.warning("Unknown predicate type '%s' does not match", condition.type)
        return False

    raise RuleEvaluationError(f"Malformed condition node: {type(condition).__name__}")


def line_in_scope(rule: Rule, line: LineItem) -> bool:
    """Whether a line is a discount target under the rule's scope and exclusions."""
    if line.product_id in rule.excluded_product_ids:
        return False
    if line.category_ids & rule.excluded_category_ids:
        return False
    if rule.scope == SCOPE_PRODUCT:
        return line.product_id in rule.scope_ids or (line.variant_id or "") in rule.scope_ids
    if rule.scope == SCOPE_CATEGORY:
        return bool(line.category_ids & rule.scope_ids)
    return True


def eligible_lines(rule: Rule, snapshot: BasketSnapshot) -> list[LineItem]:
    """Lines the rule's action may discount, in creation order."""
    return [line for line in snapshot.lines if line_in_scope(rule, line)]


def rule_is_live(rule: Rule, snapshot: BasketSnapshot) -> Optional[str]:
    """
    Check everything about a rule except its condition tree.

    Returns None when the rule is live, otherwise the reason it is not.
    """
    if rule.currency is not None and rule.currency.upper() != snapshot.currency.upper():
        return f"rule amounts are in {rule.currency}, basket is in {snapshot.currency}"

    today = snapshot.pricing_date
    if today is not None:
        if rule.starts_on and today < rule.starts_on:
            return f"not started (starts {rule.starts_on.isoformat()})"
        if rule.ends_on and today > rule.ends_on:
            return f"expired (ended {rule.ends_on.isoformat()})"

    if rule.usage_limit is not None and rule.usage_count >= rule.usage_limit:
        return "usage limit reached"

    if rule.kind == COUPON and not snapshot.has_coupon(rule.coupon_code):
        return "coupon code not applied to basket"

    if rule.scope == SCOPE_CUSTOMER and snapshot.customer_id not in rule.scope_ids:
        return "customer not in scope"

    if rule.scope == SCOPE_CUSTOMER_GROUP and not (snapshot.customer_group_ids & rule.scope_ids):
        return "customer group not in scope"

    return None


@dataclass
class MatchedRule:
    """A rule that matched, with the reason it did."""
    rule: Rule
    match_reason: str


class RuleMatcher:
    """
    Matches candidate rules against a basket snapshot.

    Malformed rules are skipped and reported as diagnostics rather than
    raised, so one broken rule never stops checkout.
    """

    def find_matching_rules(self, rules, snapshot: BasketSnapshot) -> tuple[list[MatchedRule], list[Diagnostic]]:
        """Return matching rules (input order preserved) and diagnostics for skipped ones."""
        matched = []
        diagnostics = []

        for rule in rules:
            reason = rule_is_live(rule, snapshot)
            if reason is not None:
                logger.debug("Rule %s not live: %s", rule.rule_id, reason)
                continue

            if not eligible_lines(rule, snapshot) and rule.scope in (SCOPE_PRODUCT, SCOPE_CATEGORY):
                logger.debug("Rule %s has no lines in scope", rule.rule_id)
                continue

            try:
                if not evaluate(rule.condition, snapshot):
                    logger.debug("Rule %s condition not met", rule.rule_id)
                    continue
            except RuleEvaluationError as e:
                e.rule_id = rule.rule_id
                logger.warning("Skipping rule %s: %s", rule.rule_id, e.message)
                diagnostics.append(Diagnostic.from_error(e))
                continue
            except (TypeError, AttributeError) as e:
                err = RuleEvaluationError(f"Condition could not be evaluated: {e}", rule.rule_id)
                logger.warning("Skipping rule %s: %s", rule.rule_id, err.message)
                diagnostics.append(Diagnostic.from_error(err))
                continue

            matched.append(MatchedRule(
                rule=rule,
                match_reason="default" if rule.condition is None else "conditions met",
            ))

        return matched, diagnostics
