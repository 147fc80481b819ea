"""
End-to-end pricing tests: invariants, stacking outcomes and error handling.
"""
from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from basket_pricing.engine import (
    PricingEngine, InvalidBasketError, Jurisdiction, LineItem, Money, TierPrice, price,
)
from basket_pricing.engine.conditions import AmountThreshold, QuantityThreshold
from basket_pricing.rules.compile_rules import parse_rule


def _assert_totals(result):
    assert result.grand_total == (
        result.subtotal - result.total_discount + result.total_tax + result.shipping
    )
    for priced in result.lines:
        assert not priced.net_price.is_negative()


def test_ten_percent_off_two_fifty_dollar_items(engine, basket, line, rule):
    snapshot = basket(line(quantity=2, price="50.00"))
    result = engine.price(snapshot, [rule(value="10")], [])

    assert result.total_discount == Money.of("10.00", "USD")
    assert result.discounted_subtotal == Money.of("90.00", "USD")
    assert result.grand_total == Money.of("90.00", "USD")
    _assert_totals(result)


def test_buy_two_get_one_free(engine, basket, line, rule):
    snapshot = basket(line(quantity=3, price="20.00", categories=("socks",)))
    b2g1 = rule("B2G1", discount_type="buy_x_get_y", target="item", value="0",
                scope="category", scope_ids=frozenset({"socks"}),
                action_buy_quantity=2, action_get_quantity=1)
    result = engine.price(snapshot, [b2g1], [])
    assert result.total_discount == Money.of("20.00", "USD")
    assert result.lines[0].rules_applied == ["B2G1"]


def test_tax_exempt_customer_pays_no_tax(engine, basket, line, tax_rule, ny):
    snapshot = basket(line(price="100.00"), jurisdiction=ny, tax_exempt=True)
    result = engine.price(snapshot, [], [tax_rule()])
    assert result.total_tax == Money.zero("USD")
    assert result.to_dict()["total_tax"] == "0.00"


def test_only_higher_priority_non_combinable_applies(engine, basket, line, rule):
    snapshot = basket(line(price="100.00"))
    rules = [
        rule("BIG", value="25", priority=1, combinable=False),
        rule("SMALL", value="5", priority=10, combinable=False),
    ]
    result = engine.price(snapshot, rules, [])
    assert [d.rule_id for d in result.discounts] == ["SMALL"]
    assert {(d.rule_id, d.code) for d in result.diagnostics} == {("BIG", "not_combinable")}


def test_at_most_one_coupon(engine, basket, line, rule):
    snapshot = basket(line(price="100.00"), coupon_codes=("A10", "B20"))
    rules = [
        rule("A", kind="coupon", coupon_code="A10", value="10", priority=1),
        rule("B", kind="coupon", coupon_code="B20", value="20", priority=2),
    ]
    result = engine.price(snapshot, rules, [])
    assert result.coupon_codes == ["B20"]
    assert len([d for d in result.discounts if d.coupon_code]) == 1


def test_full_basket_with_tax_and_shipping(engine, basket, line, rule, tax_rule, ny):
    snapshot = basket(line(quantity=2, price="50.00"), shipping="5.00", jurisdiction=ny)
    rules = [rule(value="10", condition=AmountThreshold(">=", 5000))]
    taxes = [tax_rule("NY", rate="8", region="NY", shipping_taxable=True)]

    result = engine.price(snapshot, rules, taxes)

    assert result.total_tax == Money.of("7.60", "USD")
    assert result.grand_total == Money.of("102.60", "USD")
    assert result.lines[0].tax == Money.of("7.20", "USD")
    _assert_totals(result)


def test_free_shipping_counts_in_total_discount(engine, basket, line, rule):
    snapshot = basket(line(price="20.00"), shipping="6.00")
    free = rule("SHIP", discount_type="free_shipping", target="shipping", value="0")
    result = engine.price(snapshot, [free], [])
    assert result.shipping_discount == Money.of("6.00", "USD")
    assert result.shipping_total.is_zero()
    assert result.discounted_subtotal == Money.of("20.00", "USD")
    assert result.grand_total == Money.of("20.00", "USD")
    _assert_totals(result)


def test_gift_card_keeps_tax_on_full_price(engine, basket, line, rule, tax_rule, ny):
    snapshot = basket(line(price="100.00"), jurisdiction=ny)
    gift = rule("GIFT", discount_type="gift_card", value="30")
    result = engine.price(snapshot, [gift], [tax_rule()])
    assert result.total_tax == Money.of("8.00", "USD")
    assert result.grand_total == Money.of("78.00", "USD")


def test_included_tax_not_added_to_total(engine, basket, line, tax_rule):
    snapshot = basket(line(price="119.00"), jurisdiction=Jurisdiction("DE"))
    vat = tax_rule("VAT", rate="19", country="DE", included_in_price=True)
    result = engine.price(snapshot, [], [vat])
    assert result.total_tax.is_zero()
    assert result.included_tax == Money.of("19.00", "USD")
    assert result.grand_total == Money.of("119.00", "USD")


def test_malformed_rule_is_reported_and_others_apply(engine, basket, line, rule):
    snapshot = basket(line(price="100.00"))
    rules = [
        rule("BROKEN", condition=QuantityThreshold("~", 1)),
        rule("BAD-ACTION", value="150"),
        rule("GOOD", discount_type="fixed", value="5"),
    ]
    result = engine.price(snapshot, rules, [])
    assert [d.rule_id for d in result.discounts] == ["GOOD"]
    codes = {d.rule_id: d.code for d in result.diagnostics}
    assert codes == {"BROKEN": "rule_evaluation_error", "BAD-ACTION": "rule_evaluation_error"}


def test_cap_recorded_as_diagnostic(engine, basket, line, rule):
    snapshot = basket(line(quantity=20, price="100.00"))
    result = engine.price(snapshot, [rule(value="10", action_max_discount=10000)], [])
    assert result.total_discount == Money.of("100.00", "USD")
    assert result.diagnostics[0].code == "discount_cap_exceeded"


def test_expired_and_future_rules_ignored(engine, basket, line, rule):
    snapshot = basket(line(price="100.00"))
    rules = [
        rule("OLD", ends_on=date(2026, 1, 31)),
        rule("SOON", starts_on=date(2026, 7, 1)),
    ]
    result = engine.price(snapshot, rules, [])
    assert result.discounts == []
    assert result.grand_total == Money.of("100.00", "USD")


def test_pricing_is_idempotent(engine, basket, line, rule, tax_rule, ny):
    snapshot = basket(
        line("L1", "P1", quantity=3, price="9.99"),
        line("L2", "P2", quantity=1, price="24.50"),
        shipping="4.99",
        jurisdiction=ny,
    )
    rules = [rule(value="15"), rule("R2", discount_type="fixed", target="item", value="1")]
    first = engine.price(snapshot, rules, [tax_rule(shipping_taxable=True)])
    second = engine.price(snapshot, rules, [tax_rule(shipping_taxable=True)])
    assert first.to_dict() == second.to_dict()
    _assert_totals(first)


def test_module_level_price(settings, basket, line, rule):
    result = price(basket(line(price="40.00")), [rule(value="25")], [], settings=settings)
    assert result.discounted_subtotal == Money.of("30.00", "USD")


def test_tier_prices_applied_before_discounts(engine, basket, line, rule):
    snapshot = basket(line(product_id="SOCK", quantity=12, price="4.00"),
                      customer_group_ids=frozenset({"wholesale"}))
    tiers = [
        TierPrice("SOCK", 12, Money.of("3.50", "USD")),
        TierPrice("SOCK", 12, Money.of("3.00", "USD"), customer_group_id="wholesale"),
        TierPrice("SOCK", 50, Money.of("2.00", "USD")),
    ]
    result = engine.price(snapshot, [rule(value="10")], [], tier_prices=tiers)
    assert result.lines[0].unit_price == Money.of("3.00", "USD")
    assert result.subtotal == Money.of("36.00", "USD")
    assert result.total_discount == Money.of("3.60", "USD")
    assert any(step.step == "Tier Price" for step in result.trace)


@pytest.mark.parametrize("make_snapshot", [
    lambda basket, line: basket(line(), currency=""),
    lambda basket, line: basket(),
    lambda basket, line: basket(line(quantity=0)),
    lambda basket, line: basket(line(price="-1.00")),
    lambda basket, line: basket(line("L1"), line("L1", "P2")),
    lambda basket, line: basket(line(), currency="EUR"),
    lambda basket, line: basket(line(), shipping="-2.00"),
])
def test_invalid_baskets_raise(engine, basket, line, make_snapshot):
    with pytest.raises(InvalidBasketError):
        engine.price(make_snapshot(basket, line), [], [])


def test_empty_basket_allowed_when_lines_not_required(settings, basket):
    engine = PricingEngine(replace(settings, require_lines=False))
    result = engine.price(basket(), [], [])
    assert result.grand_total.is_zero()


def test_currency_code_normalised(engine, basket, line):
    result = engine.price(basket(line(), currency="usd"), [], [])
    assert result.currency == "USD"


def test_engine_defaults_from_bundled_data(settings, basket, line, ny):
    engine = PricingEngine.from_settings(settings)
    assert len(engine.rules) == 4
    assert engine.load_errors == []

    snapshot = basket(line(quantity=2, price="50.00"), shipping="5.00", jurisdiction=ny)
    result = engine.price(snapshot)
    assert [d.rule_id for d in result.discounts] == ["SPRING10"]
    assert result.to_dict()["grand_total"] == "102.60"


def test_output_rows(engine, basket, line, rule, tax_rule, ny):
    snapshot = basket(
        line("L1", "P1", price="60.00"),
        line("L2", "P2", price="40.00"),
        jurisdiction=ny,
        coupon_codes=("TAKE5",),
    )
    rules = [
        rule("ITEM", target="item", value="50", scope="product", scope_ids=frozenset({"P2"}), priority=5),
        rule("TAKE5", kind="coupon", coupon_code="TAKE5", discount_type="fixed", value="5"),
    ]
    result = engine.price(snapshot, rules, [tax_rule()])

    basket_rows = result.to_basket_discount_rows()
    assert [(r["targetType"], r["targetId"], r["value"]) for r in basket_rows] == [
        ("item", "L2", "20.00"),
        ("cart", None, "5.00"),
    ]

    order_rows = result.to_order_discount_rows("O1", {"L1": "OI1", "L2": "OI2"})
    assert order_rows[0]["orderItemId"] == "OI2"
    assert order_rows[1]["orderItemId"] is None
    assert order_rows[1]["code"] == "TAKE5"

    tax_rows = result.to_order_tax_rows("O1", {"L1": "OI1", "L2": "OI2"})
    assert [(r["orderItemId"], r["taxableAmount"]) for r in tax_rows] == [
        ("OI1", "57.00"),
        ("OI2", "18.00"),
    ]
    assert sum(Decimal(r["amount"]) for r in tax_rows) == Decimal("6.00")


def test_negative_cap_rule_skipped_not_charged(engine, basket, line, rule):
    snapshot = basket(line(price="100.00"))
    result = engine.price(snapshot, [rule("NEG", value="10", action_max_discount=-500)], [])
    assert result.discounts == []
    assert result.grand_total == Money.of("100.00", "USD")
    assert {(d.rule_id, d.code) for d in result.diagnostics} == {("NEG", "rule_evaluation_error")}


def test_rules_only_apply_to_baskets_in_their_currency(engine, basket, rule):
    yen_line = LineItem("L1", "P1", 1, Money.of("100", "JPY"))
    snapshot = basket(yen_line, currency="JPY")
    rules = [
        parse_rule({"rule_id": "USD15", "currency": "USD",
                    "action": {"type": "fixed", "value": "15.00"}}),
        parse_rule({"rule_id": "YEN10", "currency": "JPY",
                    "action": {"type": "fixed", "value": "10"}}),
    ]
    result = engine.price(snapshot, rules, [])
    assert [(d.rule_id, d.amount.format()) for d in result.discounts] == [("YEN10", "JPY 10")]


def test_reload_with_corrupt_rules_file(settings, tmp_path):
    corrupt = tmp_path / "rules.json"
    corrupt.write_text("{not json")
    engine = PricingEngine.from_settings(replace(settings, rules_path=corrupt))
    assert engine.rules == []
    assert len(engine.load_errors) == 1
    assert len(engine.tax_rules) == 5


def test_basket_discount_rows_shape(engine, basket, line, rule):
    result = engine.price(basket(line(price="50.00")), [rule(value="10")], [])
    row = result.to_basket_discount_rows()[0]
    assert set(row) == {"basketId", "type", "code", "description", "value",
                        "targetType", "targetId", "priority"}
    assert row["value"] == "5.00"
