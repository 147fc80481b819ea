"""Request schemas for the pricing API."""
from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from ..engine import BasketSnapshot, LineItem, Jurisdiction, Money


class LineIn(BaseModel):
    line_id: str
    product_id: str
    quantity: int
    unit_price: Decimal
    variant_id: Optional[str] = None
    category_ids: list[str] = Field(default_factory=list)
    tax_category: Optional[str] = None
    tax_exempt: bool = False


class JurisdictionIn(BaseModel):
    country: str
    region: Optional[str] = None
    postal_code: Optional[str] = None


class BasketIn(BaseModel):
    basket_id: str
    currency: str
    lines: list[LineIn]
    customer_id: Optional[str] = None
    customer_group_ids: list[str] = Field(default_factory=list)
    segment_ids: list[str] = Field(default_factory=list)
    shipping: Optional[Decimal] = None
    jurisdiction: Optional[JurisdictionIn] = None
    coupon_codes: list[str] = Field(default_factory=list)
    tax_exempt: bool = False
    pricing_date: Optional[date] = None
    # Inline rules replace the configured rule file for this call
    rules: Optional[list[dict]] = None

    def to_snapshot(self) -> BasketSnapshot:
        currency = self.currency.upper()
        return BasketSnapshot(
            basket_id=self.basket_id,
            currency=currency,
            lines=tuple(
                LineItem(
                    line_id=line.line_id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=Money.of(line.unit_price, currency),
                    variant_id=line.variant_id,
                    category_ids=frozenset(line.category_ids),
                    tax_category=line.tax_category,
                    tax_exempt=line.tax_exempt,
                )
                for line in self.lines
            ),
            customer_id=self.customer_id,
            customer_group_ids=frozenset(self.customer_group_ids),
            segment_ids=frozenset(self.segment_ids),
            shipping=Money.of(self.shipping, currency) if self.shipping is not None else None,
            jurisdiction=Jurisdiction(**self.jurisdiction.model_dump()) if self.jurisdiction else None,
            coupon_codes=tuple(self.coupon_codes),
            tax_exempt=self.tax_exempt,
            pricing_date=self.pricing_date or date.today(),
        )

