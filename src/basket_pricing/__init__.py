"""
Basket Pricing Package

A deterministic pricing core for storefront baskets.
Resolves basket totals using Rules → Discounts → Stacking → Tax pipeline.
"""

__version__ = "1.0.0"
