"""
API tests against the bundled sample rules and tax table.
"""
import pytest
from fastapi.testclient import TestClient

from basket_pricing.api.main import app


@pytest.fixture(scope="module")
def client():
    return TestClient(app)


def _basket(**overrides):
    body = {
        "basket_id": "B1",
        "currency": "USD",
        "lines": [{"line_id": "L1", "product_id": "P1", "quantity": 2, "unit_price": "50.00"}],
        "shipping": "5.00",
        "jurisdiction": {"country": "US", "region": "NY", "postal_code": "10001"},
        "pricing_date": "2026-06-01",
    }
    body.update(overrides)
    return body


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "online"


def test_price_basket(client):
    response = client.post("/price", json=_basket())
    assert response.status_code == 200
    data = response.json()
    assert data["total_discount"] == "10.00"
    assert data["discounted_subtotal"] == "90.00"
    assert data["total_tax"] == "7.60"
    assert data["grand_total"] == "102.60"
    assert [d["rule_id"] for d in data["discounts"]] == ["SPRING10"]
    assert "Grand Total" in data["trace"]


def test_price_with_coupon_and_vip_shipping(client):
    response = client.post("/price", json=_basket(
        coupon_codes=["welcome15"],
        customer_group_ids=["vip"],
    ))
    data = response.json()
    assert {d["rule_id"] for d in data["discounts"]} == {"WELCOME15", "SPRING10", "VIP-SHIP"}
    assert data["shipping_total"] == "0.00"
    assert data["total_discount"] == "30.00"


def test_price_with_inline_rules(client):
    rules = [
        {"rule_id": "HALF", "action": {"type": "percentage", "value": "50"}},
        {"rule_id": "BROKEN", "action": {"type": "bogus"}},
    ]
    data = client.post("/price", json=_basket(rules=rules, jurisdiction=None)).json()
    assert data["total_discount"] == "50.00"
    assert len(data["rule_errors"]) == 1


def test_invalid_basket_is_400(client):
    response = client.post("/price", json=_basket(lines=[
        {"line_id": "L1", "product_id": "P1", "quantity": 0, "unit_price": "5.00"},
    ]))
    assert response.status_code == 400

    response = client.post("/price", json=_basket(currency=""))
    assert response.status_code == 400


def test_status(client):
    data = client.get("/system/status").json()
    assert data["rules_loaded"] == 4
    assert data["rules_rejected"] == 0
    assert data["tax_rules_loaded"] == 5


def test_list_and_get_rules(client):
    rules = client.get("/api/rules").json()
    assert len(rules) == 4
    assert client.get("/api/rules/WELCOME15").json()["coupon_code"] == "WELCOME15"
    assert client.get("/api/rules/NOPE").status_code == 404


def test_validate_rule(client):
    ok = client.post("/api/rules/validate", json={"rule_id": "X", "action": {"type": "fixed", "value": "5"}})
    assert ok.json() == {"valid": True, "errors": []}

    bad = client.post("/api/rules/validate", json={"rule_id": "X", "action": {"type": "fixed", "value": "-5"}})
    assert bad.json()["valid"] is False


def test_reload(client):
    data = client.post("/api/rules/reload").json()
    assert data["success"] is True
    assert data["rules_loaded"] == 4
