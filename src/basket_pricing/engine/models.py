"""
Data models for the pricing engine.

Inputs (BasketSnapshot, LineItem, Rule, Action, TaxRule, TierPrice) are frozen
dataclasses: a snapshot is built fresh for each pricing pass and never mutated.
Outputs (PricingResult, PricedLine) are assembled step by step by the engine
and carry a trace of how every number was reached.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from .conditions import Condition
from .money import Money, sum_money


# Rule kinds
PROMOTION = "promotion"
COUPON = "coupon"
RULE_KINDS = {PROMOTION, COUPON}

# Rule scopes
SCOPE_GLOBAL = "global"
SCOPE_PRODUCT = "product"
SCOPE_CATEGORY = "category"
SCOPE_CUSTOMER = "customer"
SCOPE_CUSTOMER_GROUP = "customer_group"
RULE_SCOPES = {SCOPE_GLOBAL, SCOPE_PRODUCT, SCOPE_CATEGORY, SCOPE_CUSTOMER, SCOPE_CUSTOMER_GROUP}

# Discount types
PERCENTAGE = "percentage"
FIXED = "fixed"
FREE_SHIPPING = "free_shipping"
BUY_X_GET_Y = "buy_x_get_y"
GIFT_CARD = "gift_card"
DISCOUNT_TYPES = {PERCENTAGE, FIXED, FREE_SHIPPING, BUY_X_GET_Y, GIFT_CARD}

# Discount targets
TARGET_CART = "cart"
TARGET_ITEM = "item"
TARGET_SHIPPING = "shipping"
DISCOUNT_TARGETS = {TARGET_CART, TARGET_ITEM, TARGET_SHIPPING}

# Tax rate types
RATE_PERCENTAGE = "percentage"
RATE_FIXED = "fixed"
TAX_RATE_TYPES = {RATE_PERCENTAGE, RATE_FIXED}


@dataclass
class TraceStep:
    """A single step in the pricing trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass(frozen=True)
class Jurisdiction:
    """Tax-applicable location of the shipping address."""
    country: str
    region: Optional[str] = None
    postal_code: Optional[str] = None

    def label(self) -> str:
        return "/".join(p for p in (self.country, self.region, self.postal_code) if p)


@dataclass(frozen=True)
class LineItem:
    """One product/variant + quantity entry of a basket."""
    line_id: str
    product_id: str
    quantity: int
    unit_price: Money
    variant_id: Optional[str] = None
    category_ids: frozenset = frozenset()
    tax_category: Optional[str] = None
    tax_exempt: bool = False

    @property
    def extended_price(self) -> Money:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class BasketSnapshot:
    """Immutable view of a basket for one pricing pass. Line order is creation order."""
    basket_id: str
    currency: str
    lines: tuple = ()
    customer_id: Optional[str] = None
    customer_group_ids: frozenset = frozenset()
    segment_ids: frozenset = frozenset()
    shipping: Optional[Money] = None
    jurisdiction: Optional[Jurisdiction] = None
    coupon_codes: tuple = ()
    tax_exempt: bool = False
    pricing_date: Optional[date] = None

    @property
    def subtotal(self) -> Money:
        return sum_money((line.extended_price for line in self.lines), self.currency)

    @property
    def shipping_amount(self) -> Money:
        return self.shipping if self.shipping is not None else Money.zero(self.currency)

    def line(self, line_id: str) -> Optional[LineItem]:
        for line in self.lines:
            if line.line_id == line_id:
                return line
        return None

    def has_coupon(self, code: Optional[str]) -> bool:
        if not code:
            return False
        wanted = code.strip().upper()
        return any(c.strip().upper() == wanted for c in self.coupon_codes)


@dataclass(frozen=True)
class Action:
    """What a matched rule does to the basket."""
    discount_type: str
    target: str = TARGET_CART
    value: Decimal = Decimal(0)  # percent for percentage, major units for fixed/gift card
    max_discount: Optional[int] = None  # minor units
    buy_quantity: int = 0
    get_quantity: int = 0
    max_free_items: Optional[int] = None
    get_discount_percent: Decimal = Decimal(100)


@dataclass(frozen=True)
class Rule:
    """A promotion or coupon rule. Read-only to the engine."""
    rule_id: str
    name: str
    action: Action
    kind: str = PROMOTION
    scope: str = SCOPE_GLOBAL
    scope_ids: frozenset = frozenset()
    condition: Optional[Condition] = None
    priority: int = 0
    combinable: bool = True
    exclusive: bool = False
    starts_on: Optional[date] = None
    ends_on: Optional[date] = None
    coupon_code: Optional[str] = None
    usage_limit: Optional[int] = None
    usage_count: int = 0
    excluded_product_ids: frozenset = frozenset()
    excluded_category_ids: frozenset = frozenset()
    currency: Optional[str] = None  # fixed values, caps and amount conditions; None = any basket
    sequence: int = 0  # creation order, used as tie-break


@dataclass(frozen=True)
class TierPrice:
    """Quantity-break unit price for a product, optionally for one customer group."""
    product_id: str
    min_quantity: int
    unit_price: Money
    variant_id: Optional[str] = None
    customer_group_id: Optional[str] = None


@dataclass(frozen=True)
class TaxRule:
    """A tax rate with the jurisdiction it applies to."""
    rule_id: str
    name: str
    country: str = "*"
    region: Optional[str] = None
    postal_prefix: Optional[str] = None
    rate_type: str = RATE_PERCENTAGE
    rate: Decimal = Decimal(0)  # percent
    fixed_amount: Optional[Decimal] = None  # major units per unit sold
    priority: int = 0
    compound: bool = False
    applies_after_discount: bool = True
    included_in_price: bool = False
    shipping_taxable: bool = False
    tax_categories: frozenset = frozenset()  # empty = every category
    threshold_minor: Optional[int] = None
    currency: Optional[str] = None  # of fixed_amount and threshold; None = basket currency
    sequence: int = 0  # declared order

    def matches_jurisdiction(self, jurisdiction: Optional[Jurisdiction]) -> bool:
        if self.country == "*":
            return True
        if jurisdiction is None:
            return False
        if self.country.upper() != jurisdiction.country.upper():
            return False
        if self.region and (jurisdiction.region or "").upper() != self.region.upper():
            return False
        if self.postal_prefix:
            postal = (jurisdiction.postal_code or "").replace(" ", "").upper()
            if not postal.startswith(self.postal_prefix.replace(" ", "").upper()):
                return False
        return True

    def applies_to_category(self, tax_category: Optional[str]) -> bool:
        return not self.tax_categories or tax_category in self.tax_categories

    def usable_in(self, currency: str) -> bool:
        """Fixed levies and thresholds are money amounts, only valid in the rule's own currency."""
        if self.currency is None or self.currency.upper() == currency.upper():
            return True
        return self.rate_type != RATE_FIXED and self.threshold_minor is None


@dataclass(frozen=True)
class DiscountApplication:
    """One discount amount produced by a rule, against the cart, shipping or a line."""
    rule_id: str
    rule_name: str
    rule_kind: str
    discount_type: str
    target_type: str
    target_id: str
    amount: Money
    priority: int = 0
    allocations: tuple = ()  # ((line_id, Money), ...) for cart-level discounts
    coupon_code: Optional[str] = None
    reduces_tax_base: bool = True


@dataclass(frozen=True)
class TaxLine:
    """Tax charged by one rule on one line (or on shipping)."""
    rule_id: str
    name: str
    target_id: str
    taxable_amount: Money
    rate: Decimal
    amount: Money
    included: bool = False


@dataclass(frozen=True)
class Diagnostic:
    """Non-fatal problem met while pricing (skipped rule, clamped cap...)."""
    rule_id: Optional[str]
    code: str
    message: str

    @classmethod
    def from_error(cls, error) -> 'Diagnostic':
        return cls(rule_id=error.rule_id, code=error.code, message=error.message)


@dataclass
class PricedLine:
    """A basket line after discounts and tax."""
    line_id: str
    product_id: str
    quantity: int
    unit_price: Money
    extended_price: Money
    discount: Money
    tax: Money
    rules_applied: list[str] = field(default_factory=list)

    @property
    def net_price(self) -> Money:
        return self.extended_price - self.discount


def _money(value: Money) -> str:
    return f"{value.amount:.{value.exponent}f}"


@dataclass
class PricingResult:
    """Complete result of a pricing pass."""
    basket_id: str
    currency: str
    subtotal: Money
    shipping: Money
    grand_total: Money
    lines: list[PricedLine] = field(default_factory=list)
    discounts: list[DiscountApplication] = field(default_factory=list)
    tax_lines: list[TaxLine] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)

    @property
    def total_discount(self) -> Money:
        return sum_money((d.amount for d in self.discounts), self.currency)

    @property
    def merchandise_discount(self) -> Money:
        return sum_money(
            (d.amount for d in self.discounts if d.target_type != TARGET_SHIPPING),
            self.currency,
        )

    @property
    def shipping_discount(self) -> Money:
        return sum_money(
            (d.amount for d in self.discounts if d.target_type == TARGET_SHIPPING),
            self.currency,
        )

    @property
    def discounted_subtotal(self) -> Money:
        return self.subtotal - self.merchandise_discount

    @property
    def shipping_total(self) -> Money:
        return self.shipping - self.shipping_discount

    @property
    def total_tax(self) -> Money:
        """Tax added on top of prices; tax included in prices is not counted here."""
        return sum_money((t.amount for t in self.tax_lines if not t.included), self.currency)

    @property
    def included_tax(self) -> Money:
        return sum_money((t.amount for t in self.tax_lines if t.included), self.currency)

    @property
    def coupon_codes(self) -> list[str]:
        return sorted({d.coupon_code for d in self.discounts if d.coupon_code})

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the result-level trace."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def add_diagnostic(self, diagnostic: Diagnostic):
        if diagnostic not in self.diagnostics:
            self.diagnostics.append(diagnostic)

    def get_trace_text(self) -> str:
        """Get human-readable result trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"• {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"• {t.step}: {t.description}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        """Plain, JSON-ready view. Identical inputs give identical output."""
        return {
            "basket_id": self.basket_id,
            "currency": self.currency,
            "subtotal": _money(self.subtotal),
            "total_discount": _money(self.total_discount),
            "discounted_subtotal": _money(self.discounted_subtotal),
            "shipping": _money(self.shipping),
            "shipping_total": _money(self.shipping_total),
            "total_tax": _money(self.total_tax),
            "included_tax": _money(self.included_tax),
            "grand_total": _money(self.grand_total),
            "lines": [
                {
                    "line_id": line.line_id,
                    "product_id": line.product_id,
                    "quantity": line.quantity,
                    "unit_price": _money(line.unit_price),
                    "extended_price": _money(line.extended_price),
                    "discount": _money(line.discount),
                    "net_price": _money(line.net_price),
                    "tax": _money(line.tax),
                    "rules_applied": list(line.rules_applied),
                }
                for line in self.lines
            ],
            "discounts": [
                {
                    "rule_id": d.rule_id,
                    "name": d.rule_name,
                    "kind": d.rule_kind,
                    "type": d.discount_type,
                    "target_type": d.target_type,
                    "target_id": d.target_id,
                    "amount": _money(d.amount),
                    "coupon_code": d.coupon_code,
                    "allocations": {line_id: _money(m) for line_id, m in d.allocations},
                }
                for d in self.discounts
            ],
            "tax_lines": [
                {
                    "rule_id": t.rule_id,
                    "name": t.name,
                    "target_id": t.target_id,
                    "taxable_amount": _money(t.taxable_amount),
                    "rate": str(t.rate),
                    "amount": _money(t.amount),
                    "included": t.included,
                }
                for t in self.tax_lines
            ],
            "diagnostics": [
                {"rule_id": d.rule_id, "code": d.code, "message": d.message}
                for d in self.diagnostics
            ],
        }

    def to_basket_discount_rows(self) -> list[dict]:
        """Rows shaped like the basketDiscount table (ids and timestamps are the caller's)."""
        return [
            {
                "basketId": self.basket_id,
                "type": d.discount_type,
                "code": d.coupon_code,
                "description": d.rule_name,
                "value": _money(d.amount),
                "targetType": d.target_type,
                "targetId": None if d.target_type == TARGET_CART else d.target_id,
                "priority": d.priority,
            }
            for d in self.discounts
        ]

    def to_order_discount_rows(self, order_id: str, order_item_ids: Optional[dict] = None) -> list[dict]:
        """Rows shaped like the orderDiscount table; order_item_ids maps line_id -> orderItemId."""
        order_item_ids = order_item_ids or {}
        return [
            {
                "orderId": order_id,
                "orderItemId": order_item_ids.get(d.target_id) if d.target_type == TARGET_ITEM else None,
                "code": d.coupon_code,
                "name": d.rule_name,
                "description": None,
                "type": d.discount_type,
                "value": _money(d.amount),
                "discountAmount": _money(d.amount),
            }
            for d in self.discounts
        ]

    def to_order_tax_rows(self, order_id: str, order_item_ids: Optional[dict] = None) -> list[dict]:
        """Rows shaped like the orderTax table; order_item_ids maps line_id -> orderItemId."""
        order_item_ids = order_item_ids or {}
        return [
            {
                "orderId": order_id,
                "orderItemId": order_item_ids.get(t.target_id),
                "taxRateId": t.rule_id,
                "name": t.name,
                "rate": str(t.rate),
                "taxableAmount": _money(t.taxable_amount),
                "amount": _money(t.amount),
                "isIncludedInPrice": t.included,
                "isShipping": t.target_id == TARGET_SHIPPING,
            }
            for t in self.tax_lines
        ]
