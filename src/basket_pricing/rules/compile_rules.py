"""
Rule Compiler - Validates stored rule JSON and parses it into engine types.

Condition trees are turned into AllOf/AnyOf/predicate objects here, once,
so the engine never interprets loose JSON while pricing. Rules that fail
validation are reported and left out; the rest still load.
"""
import json
import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from ..engine.conditions import (
    AllOf, AnyOf, ProductIn, CategoryIn, CustomerGroupIn, SegmentIn,
    QuantityThreshold, AmountThreshold, DateWindow, UnknownPredicate,
    QUANTITY_OPERATORS,
)
from ..engine.errors import RuleEvaluationError
from ..engine.models import (
    Action, Rule, RULE_KINDS, RULE_SCOPES, DISCOUNT_TYPES, DISCOUNT_TARGETS,
    PROMOTION, SCOPE_GLOBAL, TARGET_CART, TARGET_SHIPPING, FREE_SHIPPING, COUPON,
)
from ..engine.money import Money

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "USD"


def parse_bool(value) -> bool:
    """Parse a boolean from JSON or CSV text."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('true', '1', 'yes', 'on')


def parse_optional_int(value) -> Optional[int]:
    """Parse optional integer."""
    if value is None or str(value).strip() == '':
        return None
    return int(value)


def parse_optional_str(value) -> Optional[str]:
    """Parse optional string (empty = None)."""
    if value is None or str(value).strip() == '':
        return None
    return str(value).strip()


def parse_decimal(value, field_name: str) -> Decimal:
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise RuleEvaluationError(f"{field_name} must be a number, got {value!r}")


def parse_date(value, field_name: str) -> Optional[date]:
    text = parse_optional_str(value)
    if text is None:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise RuleEvaluationError(f"{field_name} must be YYYY-MM-DD format, got {text!r}")


def parse_id_set(value, field_name: str) -> frozenset:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        return frozenset(v.strip() for v in value.split(',') if v.strip())
    if not isinstance(value, (list, tuple)):
        raise RuleEvaluationError(f"{field_name} must be a list of ids")
    return frozenset(str(v) for v in value)


def _minor(value, currency: str, field_name: str) -> int:
    return Money.of(parse_decimal(value, field_name), currency).minor


def _operator(node: dict) -> str:
    operator = node.get('operator', '>=')
    if operator not in QUANTITY_OPERATORS:
        raise RuleEvaluationError(f"operator must be one of {QUANTITY_OPERATORS}, got {operator!r}")
    return operator


def parse_condition(node, currency: str = DEFAULT_CURRENCY):
    """
    Parse a JSON condition node into the condition tree types.

    {"all": [...]} and {"any": [...]} combine children; leaves carry a
    "type" key. Unknown leaf types become UnknownPredicate (they will never
    match). Structurally broken nodes raise RuleEvaluationError.
    """
    if node is None or node == {}:
        return None
    if not isinstance(node, dict):
        raise RuleEvaluationError(f"condition node must be an object, got {type(node).__name__}")

    for key, combinator in (('all', AllOf), ('any', AnyOf)):
        if key in node:
            children = node[key]
            if not isinstance(children, list):
                raise RuleEvaluationError(f"'{key}' must hold a list of conditions")
            return combinator(tuple(
                child for child in (parse_condition(c, currency) for c in children)
                if child is not None
            ))

    node_type = node.get('type')
    if not node_type:
        raise RuleEvaluationError("condition node has neither 'all', 'any' nor 'type'")

    if node_type == 'product_in':
        return ProductIn(parse_id_set(node.get('product_ids'), 'product_ids'))
    if node_type == 'category_in':
        return CategoryIn(parse_id_set(node.get('category_ids'), 'category_ids'))
    if node_type == 'customer_group_in':
        return CustomerGroupIn(parse_id_set(node.get('group_ids'), 'group_ids'))
    if node_type == 'segment_in':
        return SegmentIn(parse_id_set(node.get('segment_ids'), 'segment_ids'))
    if node_type == 'quantity':
        if 'quantity' not in node:
            raise RuleEvaluationError("quantity condition needs 'quantity'")
        return QuantityThreshold(
            operator=_operator(node),
            quantity=int(node['quantity']),
            product_ids=parse_id_set(node.get('product_ids'), 'product_ids'),
            category_ids=parse_id_set(node.get('category_ids'), 'category_ids'),
        )
    if node_type == 'order_amount':
        if 'amount' not in node:
            raise RuleEvaluationError("order_amount condition needs 'amount'")
        return AmountThreshold(
            operator=_operator(node),
            amount_minor=_minor(node['amount'], currency, 'amount'),
        )
    if node_type == 'date_window':
        start = parse_date(node.get('start'), 'start')
        end = parse_date(node.get('end'), 'end')
        if start and end and start > end:
            raise RuleEvaluationError("date_window start is after end")
        return DateWindow(start=start, end=end)

    logger.warning("Unknown condition type '%s' kept as non-matching", node_type)
    return UnknownPredicate(type=str(node_type), raw=dict(node))


def parse_action(data, currency: str = DEFAULT_CURRENCY) -> Action:
    """Parse and validate a JSON action."""
    if not isinstance(data, dict):
        raise RuleEvaluationError("action must be an object")

    discount_type = parse_optional_str(data.get('type'))
    if discount_type not in DISCOUNT_TYPES:
        raise RuleEvaluationError(
            f"invalid action type {discount_type!r}, must be one of: {sorted(DISCOUNT_TYPES)}"
        )

    default_target = TARGET_SHIPPING if discount_type == FREE_SHIPPING else TARGET_CART
    target = parse_optional_str(data.get('target')) or default_target
    if target not in DISCOUNT_TARGETS:
        raise RuleEvaluationError(f"invalid action target {target!r}")

    value = parse_decimal(data.get('value', 0), 'value')
    if value < 0:
        raise RuleEvaluationError("value must not be negative")

    max_discount = None
    if parse_optional_str(data.get('max_discount')) is not None:
        max_discount = _minor(data['max_discount'], currency, 'max_discount')
        if max_discount < 0:
            raise RuleEvaluationError("max_discount must not be negative")

    get_discount_percent = parse_decimal(data.get('get_discount_percent', 100), 'get_discount_percent')
    if not (0 <= get_discount_percent <= 100):
        raise RuleEvaluationError(
            f"get_discount_percent must be between 0 and 100, got {get_discount_percent}"
        )

    return Action(
        discount_type=discount_type,
        target=target,
        value=value,
        max_discount=max_discount,
        buy_quantity=parse_optional_int(data.get('buy_quantity')) or 0,
        get_quantity=parse_optional_int(data.get('get_quantity')) or 0,
        max_free_items=parse_optional_int(data.get('max_free_items')),
        get_discount_percent=get_discount_percent,
    )


def _sequence(data: dict, default: int) -> int:
    explicit = parse_optional_int(data.get('sequence'))
    return default if explicit is None else explicit


def parse_rule(data: dict, sequence: int = 0, currency: str = DEFAULT_CURRENCY) -> Rule:
    """Parse one stored rule. Raises RuleEvaluationError if it is malformed."""
    if not isinstance(data, dict):
        raise RuleEvaluationError("rule must be an object")

    rule_id = parse_optional_str(data.get('rule_id'))
    if not rule_id:
        raise RuleEvaluationError("rule_id is required")

    try:
        currency = (parse_optional_str(data.get('currency')) or currency or DEFAULT_CURRENCY).upper()
        kind = parse_optional_str(data.get('kind')) or PROMOTION
        if kind not in RULE_KINDS:
            raise RuleEvaluationError(f"invalid kind {kind!r}")
        scope = parse_optional_str(data.get('scope')) or SCOPE_GLOBAL
        if scope not in RULE_SCOPES:
            raise RuleEvaluationError(f"invalid scope {scope!r}")

        coupon_code = parse_optional_str(data.get('coupon_code'))
        if kind == COUPON and not coupon_code:
            raise RuleEvaluationError("coupon rules need a coupon_code")

        starts_on = parse_date(data.get('starts_on'), 'starts_on')
        ends_on = parse_date(data.get('ends_on'), 'ends_on')
        if starts_on and ends_on and starts_on > ends_on:
            raise RuleEvaluationError("starts_on must be before ends_on")

        if 'action' not in data:
            raise RuleEvaluationError("action is required")

        return Rule(
            rule_id=rule_id,
            name=parse_optional_str(data.get('name')) or rule_id,
            action=parse_action(data['action'], currency),
            kind=kind,
            scope=scope,
            scope_ids=parse_id_set(data.get('scope_ids'), 'scope_ids'),
            condition=parse_condition(data.get('condition'), currency),
            priority=int(data.get('priority', 0) or 0),
            combinable=parse_bool(data.get('combinable', True)),
            exclusive=parse_bool(data.get('exclusive', False)),
            starts_on=starts_on,
            ends_on=ends_on,
            coupon_code=coupon_code.upper() if coupon_code else None,
            usage_limit=parse_optional_int(data.get('usage_limit')),
            usage_count=parse_optional_int(data.get('usage_count')) or 0,
            excluded_product_ids=parse_id_set(data.get('excluded_product_ids'), 'excluded_product_ids'),
            excluded_category_ids=parse_id_set(data.get('excluded_category_ids'), 'excluded_category_ids'),
            currency=currency,
            sequence=_sequence(data, sequence),
        )
    except RuleEvaluationError as e:
        e.rule_id = rule_id
        raise
    except (TypeError, ValueError, AttributeError) as e:
        raise RuleEvaluationError(str(e), rule_id)


def parse_rules(entries, currency: str = DEFAULT_CURRENCY) -> tuple[list[Rule], list[str]]:
    """Parse a list of stored rules, skipping inactive ones. Returns (rules, errors)."""
    rules = []
    errors = []
    for position, entry in enumerate(entries):
        if isinstance(entry, dict) and not parse_bool(entry.get('active', True)):
            continue
        try:
            rules.append(parse_rule(entry, sequence=position, currency=currency))
        except RuleEvaluationError as e:
            label = e.rule_id or f"#{position}"
            errors.append(f"Rule {label}: {e.message}")
            logger.warning("Rejected rule %s: %s", label, e.message)
    return rules, errors


def load_rules(path: Path) -> tuple[list[Rule], list[str]]:
    """
    Load rules from a JSON file.

    The file holds {"currency": "USD", "rules": [...]} or a bare list.
    Returns (rules, errors); a missing or unreadable file yields no rules
    and one error.
    """
    path = Path(path)
    if not path.exists():
        return [], [f"Rules file not found: {path}"]

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error("Rules file %s is not valid JSON: %s", path, e)
        return [], [f"Rules file {path} is not valid JSON: {e}"]

    if isinstance(data, list):
        return parse_rules(data)
    if not isinstance(data, dict) or not isinstance(data.get('rules', []), list):
        return [], [f"Rules file {path} must hold a list of rules"]
    currency = parse_optional_str(data.get('currency')) or DEFAULT_CURRENCY
    return parse_rules(data.get('rules', []), currency=currency)


def main(argv=None):
    """CLI entry point: validate a rules file."""
    import sys
    from ..config.settings import get_settings, configure_logging

    configure_logging()
    args = sys.argv[1:] if argv is None else argv
    rules_path = Path(args[0]) if args else get_settings().rules_path

    print(f"Validating pricing rules in {rules_path}...")
    rules, errors = load_rules(rules_path)

    if errors:
        print("Validation errors:")
        for err in errors:
            print(f"  ❌ {err}")
        print(f"\n❌ {len(errors)} rules rejected, {len(rules)} valid")
        sys.exit(1)

    print(f"✅ {len(rules)} rules valid")


if __name__ == "__main__":
    main()
