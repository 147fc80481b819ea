"""
Tax Table - Loads tax rules and tier prices from CSV exports.

CSV columns are stripped and blank cells become empty strings, so optional
fields read as "not set" rather than NaN.
"""
import logging
from decimal import Decimal
from pathlib import Path

import pandas as pd

from ..engine.models import TaxRule, TierPrice, TAX_RATE_TYPES, RATE_PERCENTAGE
from ..engine.money import Money
from .compile_rules import parse_bool, parse_id_set, parse_optional_str, parse_decimal

logger = logging.getLogger(__name__)

TAX_COLUMNS = [
    'rule_id', 'name', 'country', 'region', 'postal_prefix', 'rate_type', 'rate',
    'fixed_amount', 'priority', 'compound', 'applies_after_discount',
    'included_in_price', 'shipping_taxable', 'tax_categories', 'threshold',
    'currency', 'active',
]


def _load_csv(path: Path) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        logger.warning("Table not found: %s", path)
        return pd.DataFrame()
    df = pd.read_csv(path, dtype=str).fillna('')
    df.columns = [c.strip() for c in df.columns]
    for col in df.columns:
        df[col] = df[col].astype(str).str.strip()
    return df


def tax_rule_from_row(row: dict, sequence: int) -> TaxRule:
    """Build a TaxRule from one CSV row (all values as strings)."""
    rule_id = parse_optional_str(row.get('rule_id'))
    if not rule_id:
        raise ValueError("rule_id is required")

    rate_type = parse_optional_str(row.get('rate_type')) or RATE_PERCENTAGE
    if rate_type not in TAX_RATE_TYPES:
        raise ValueError(f"invalid rate_type {rate_type!r}")

    currency = parse_optional_str(row.get('currency')) or 'USD'
    threshold = parse_optional_str(row.get('threshold'))
    fixed_amount = parse_optional_str(row.get('fixed_amount'))

    return TaxRule(
        rule_id=rule_id,
        name=parse_optional_str(row.get('name')) or rule_id,
        country=(parse_optional_str(row.get('country')) or '*').upper(),
        region=parse_optional_str(row.get('region')),
        postal_prefix=parse_optional_str(row.get('postal_prefix')),
        rate_type=rate_type,
        rate=parse_decimal(row.get('rate') or '0', 'rate'),
        fixed_amount=parse_decimal(fixed_amount, 'fixed_amount') if fixed_amount else None,
        priority=int(parse_optional_str(row.get('priority')) or 0),
        compound=parse_bool(row.get('compound') or 'false'),
        applies_after_discount=parse_bool(row.get('applies_after_discount') or 'true'),
        included_in_price=parse_bool(row.get('included_in_price') or 'false'),
        shipping_taxable=parse_bool(row.get('shipping_taxable') or 'false'),
        tax_categories=parse_id_set(row.get('tax_categories') or None, 'tax_categories'),
        threshold_minor=Money.of(Decimal(threshold), currency).minor if threshold else None,
        currency=currency.upper(),
        sequence=sequence,
    )


def load_tax_rules(path: Path) -> list[TaxRule]:
    """Load active tax rules in declared (file) order. Bad rows are logged and skipped."""
    df = _load_csv(path)
    rules = []
    for position, row in enumerate(df.to_dict(orient='records')):
        if row.get('active') and not parse_bool(row['active']):
            continue
        try:
            rules.append(tax_rule_from_row(row, position))
        except Exception as e:
            logger.warning("Skipping tax rule row %d in %s: %s", position + 2, path, e)
    return rules


def load_tier_prices(path: Path) -> list[TierPrice]:
    """Load quantity-break prices: product_id, variant_id, customer_group_id, min_quantity, price, currency."""
    df = _load_csv(path)
    tiers = []
    for position, row in enumerate(df.to_dict(orient='records')):
        try:
            tiers.append(TierPrice(
                product_id=row['product_id'],
                min_quantity=int(row['min_quantity']),
                unit_price=Money.of(Decimal(row['price']), row.get('currency') or 'USD'),
                variant_id=parse_optional_str(row.get('variant_id')),
                customer_group_id=parse_optional_str(row.get('customer_group_id')),
            ))
        except Exception as e:
            logger.warning("Skipping tier price row %d in %s: %s", position + 2, path, e)
    return tiers
