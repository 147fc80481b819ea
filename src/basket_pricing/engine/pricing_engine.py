"""
Pricing Engine - Prices a basket snapshot against promotion, coupon and tax rules.

Resolution order:
1. Validate the snapshot and apply quantity-break tier prices
2. Match candidate rules (date window, coupon code, scope, condition tree)
3. Compute each matched rule's discount applications
4. Resolve stacking by priority into the final discount set
5. Compute tax on the discounted lines and shipping
6. Assemble totals, with a trace of every step

The engine does no I/O while pricing: rules and tax rules are passed in, or
loaded once from the configured files by from_settings().
"""
import logging
from dataclasses import replace
from typing import Optional

from ..config.settings import get_settings, Settings
from . import discounts
from .errors import InvalidBasketError, RuleEvaluationError
from .models import (
    BasketSnapshot, Diagnostic, PricedLine, PricingResult,
    TARGET_CART, TARGET_ITEM,
)
from .money import Money, sum_money
from .rule_matcher import RuleMatcher
from .stacking import Candidate, resolve, line_discounts
from .tax import compute_tax
from .tier_pricing import resolve_unit_prices

logger = logging.getLogger(__name__)


class PricingEngine:
    """
    Core pricing engine.

    Holds optional default rule sets so a long-running process can load them
    once; every price() call may still pass its own.
    """

    def __init__(self, settings: Optional[Settings] = None, rules=None, tax_rules=None, tier_prices=None):
        self.settings = settings or get_settings()
        self.rules = list(rules or [])
        self.tax_rules = list(tax_rules or [])
        self.tier_prices = list(tier_prices or [])
        self.load_errors: list[str] = []
        self.rule_matcher = RuleMatcher()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> 'PricingEngine':
        """Build an engine with rules, tax rules and tier prices read from the configured files."""
        engine = cls(settings)
        engine.reload_data()
        return engine

    def reload_data(self):
        """Reload rule, tax and tier-price files from disk."""
        from ..rules.compile_rules import load_rules
        from ..rules.tax_table import load_tax_rules, load_tier_prices

        settings = self.settings
        rules, rule_errors = load_rules(settings.rules_path)
        tax_rules = load_tax_rules(settings.tax_rules_path)
        tier_prices = []
        if settings.tier_prices_path is not None and settings.tier_prices_path.exists():
            tier_prices = load_tier_prices(settings.tier_prices_path)

        # Swap in together so a pricing call never sees a half-loaded set
        self.rules, self.tax_rules, self.tier_prices = rules, tax_rules, tier_prices
        self.load_errors = rule_errors
        logger.info(
            "Loaded %d rules (%d rejected), %d tax rules, %d tier prices",
            len(self.rules), len(rule_errors), len(self.tax_rules), len(self.tier_prices),
        )

    def validate(self, snapshot: BasketSnapshot) -> BasketSnapshot:
        """
        Check a snapshot can be priced and return it with a normalised currency code.

        Raises InvalidBasketError on missing or mixed currencies, an empty
        basket (when lines are required), bad quantities or negative prices.
        """
        currency = (snapshot.currency or "").strip().upper()
        if not currency:
            raise InvalidBasketError(f"Basket {snapshot.basket_id} has no currency")

        if not snapshot.lines and self.settings.require_lines:
            raise InvalidBasketError(f"Basket {snapshot.basket_id} has no lines")

        seen = set()
        for line in snapshot.lines:
            if line.line_id in seen:
                raise InvalidBasketError(f"Duplicate line id {line.line_id}")
            seen.add(line.line_id)
            if line.unit_price.currency.upper() != currency:
                raise InvalidBasketError(
                    f"Line {line.line_id} is priced in {line.unit_price.currency}, basket is {currency}"
                )
            if line.quantity <= 0:
                raise InvalidBasketError(f"Line {line.line_id} has quantity {line.quantity}")
            if line.unit_price.is_negative():
                raise InvalidBasketError(f"Line {line.line_id} has a negative unit price")

        if snapshot.shipping is not None:
            if snapshot.shipping.currency.upper() != currency:
                raise InvalidBasketError(
                    f"Shipping is priced in {snapshot.shipping.currency}, basket is {currency}"
                )
            if snapshot.shipping.is_negative():
                raise InvalidBasketError("Shipping amount is negative")

        if currency != snapshot.currency:
            snapshot = replace(snapshot, currency=currency)
        return snapshot

    def price(self, snapshot: BasketSnapshot, candidate_rules=None, tax_rules=None,
              tier_prices=None) -> PricingResult:
        """
        Price a basket.

        Args:
            snapshot: Immutable basket view
            candidate_rules: Promotion/coupon rules to consider (engine defaults if None)
            tax_rules: Tax rules to consider (engine defaults if None)
            tier_prices: Quantity-break prices (engine defaults if None)

        Returns:
            PricingResult with discounts, tax lines, totals, diagnostics and trace
        """
        candidate_rules = self.rules if candidate_rules is None else list(candidate_rules)
        tax_rules = self.tax_rules if tax_rules is None else list(tax_rules)
        tier_prices = self.tier_prices if tier_prices is None else list(tier_prices)

        snapshot = self.validate(snapshot)
        currency = snapshot.currency

        snapshot, tiers_used = resolve_unit_prices(snapshot, tier_prices)

        result = PricingResult(
            basket_id=snapshot.basket_id,
            currency=currency,
            subtotal=snapshot.subtotal,
            shipping=snapshot.shipping_amount,
            grand_total=Money.zero(currency),
        )
        result.add_trace("Basket", f"{len(snapshot.lines)} lines in {currency}", snapshot.basket_id)
        for line_id, tier in tiers_used.items():
            result.add_trace("Tier Price", f"Line {line_id} at {tier.min_quantity}+ units", tier.unit_price.format())
        result.add_trace("Subtotal", "Sum of extended line prices", result.subtotal.format())

        # 1. Evaluate rules
        matched, diagnostics = self.rule_matcher.find_matching_rules(candidate_rules, snapshot)
        for diagnostic in diagnostics:
            result.add_diagnostic(diagnostic)
        result.add_trace("Rules", f"{len(matched)} of {len(candidate_rules)} rules matched")

        # 2. Apply matched actions
        candidates = []
        for match in matched:
            rule = match.rule
            action_diagnostics = []
            try:
                applications = discounts.apply(rule.action, rule, snapshot, action_diagnostics)
            except RuleEvaluationError as e:
                e.rule_id = e.rule_id or rule.rule_id
                logger.warning("Skipping rule %s: %s", rule.rule_id, e.message)
                result.add_diagnostic(Diagnostic.from_error(e))
                continue
            for diagnostic in action_diagnostics:
                result.add_diagnostic(diagnostic)
            if applications:
                candidates.append(Candidate(rule=rule, applications=applications))

        # 3. Resolve stacking
        applied, stacking_diagnostics = resolve(candidates, snapshot)
        for diagnostic in stacking_diagnostics:
            result.add_diagnostic(diagnostic)
        result.discounts = applied
        for app in applied:
            result.add_trace("Discount", f"{app.rule_name} ({app.rule_id}) on {app.target_id}", app.amount.format())

        # 4. Tax on discounted amounts
        taxable = line_discounts(applied, snapshot, tax_base_only=True)
        discounted_lines = {
            line.line_id: line.extended_price - taxable[line.line_id]
            for line in snapshot.lines
        }
        result.tax_lines = compute_tax(
            snapshot, discounted_lines, snapshot.jurisdiction, tax_rules,
            shipping_net=result.shipping_total,
        )
        if snapshot.tax_exempt:
            result.add_trace("Tax", "Customer is tax exempt", Money.zero(currency).format())
        else:
            result.add_trace("Tax", f"{len(result.tax_lines)} tax lines", result.total_tax.format())
            if not result.included_tax.is_zero():
                result.add_trace("Tax", "Included in prices", result.included_tax.format())

        # 5. Totals
        result.lines = self._priced_lines(snapshot, result)
        result.grand_total = (
            result.subtotal - result.total_discount + result.total_tax + result.shipping
        )
        result.add_trace("Shipping", "After shipping discounts", result.shipping_total.format())
        result.add_trace("Grand Total", "Subtotal - discounts + tax + shipping", result.grand_total.format())

        logger.debug("Priced basket %s: %s", snapshot.basket_id, result.grand_total.format())
        return result

    def _priced_lines(self, snapshot: BasketSnapshot, result: PricingResult) -> list[PricedLine]:
        per_line = line_discounts(result.discounts, snapshot)
        lines = []
        for line in snapshot.lines:
            tax = sum_money(
                (t.amount for t in result.tax_lines if t.target_id == line.line_id and not t.included),
                snapshot.currency,
            )
            applied = []
            for app in result.discounts:
                hit = (
                    (app.target_type == TARGET_ITEM and app.target_id == line.line_id)
                    or (app.target_type == TARGET_CART
                        and any(lid == line.line_id and not part.is_zero() for lid, part in app.allocations))
                )
                if hit and app.rule_id not in applied:
                    applied.append(app.rule_id)
            lines.append(PricedLine(
                line_id=line.line_id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                extended_price=line.extended_price,
                discount=per_line[line.line_id],
                tax=tax,
                rules_applied=applied,
            ))
        return lines


def price(snapshot: BasketSnapshot, candidate_rules, tax_rules, tier_prices=(),
          settings: Optional[Settings] = None) -> PricingResult:
    """Price a basket with explicitly supplied rule sets."""
    engine = PricingEngine(settings)
    return engine.price(snapshot, candidate_rules, tax_rules, tier_prices)
