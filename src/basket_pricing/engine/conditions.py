"""
Condition tree types for promotion and coupon rules.

A condition is either a combinator (AllOf / AnyOf) over child conditions or a
leaf predicate. Stored JSON is parsed into these types once, at load time
(see rules.compile_rules); the evaluator never looks at raw dicts.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Union


QUANTITY_OPERATORS = ('>=', '<=')


@dataclass(frozen=True)
class AllOf:
    """Matches when every child matches. No children matches everything."""
    children: tuple = ()


@dataclass(frozen=True)
class AnyOf:
    """Matches when at least one child matches."""
    children: tuple = ()


@dataclass(frozen=True)
class ProductIn:
    product_ids: frozenset


@dataclass(frozen=True)
class CategoryIn:
    category_ids: frozenset


@dataclass(frozen=True)
class CustomerGroupIn:
    group_ids: frozenset


@dataclass(frozen=True)
class SegmentIn:
    segment_ids: frozenset


@dataclass(frozen=True)
class QuantityThreshold:
    """Total quantity (optionally of matching products/categories) compared to a value."""
    operator: str
    quantity: int
    product_ids: frozenset = frozenset()
    category_ids: frozenset = frozenset()


@dataclass(frozen=True)
class AmountThreshold:
    """Basket merchandise subtotal, in minor units, compared to a value."""
    operator: str
    amount_minor: int


@dataclass(frozen=True)
class DateWindow:
    """Inclusive window on the pricing date; either end may be open."""
    start: Optional[date] = None
    end: Optional[date] = None


@dataclass(frozen=True)
class UnknownPredicate:
    """A predicate type this engine does not understand. Never matches."""
    type: str
    raw: dict = field(default_factory=dict, compare=False, hash=False)


Predicate = Union[
    ProductIn, CategoryIn, CustomerGroupIn, SegmentIn,
    QuantityThreshold, AmountThreshold, DateWindow, UnknownPredicate,
]
Condition = Union[AllOf, AnyOf, Predicate]
