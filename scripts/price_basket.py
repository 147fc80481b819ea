#!/usr/bin/env python
"""
Price a basket JSON file against the configured rules and print the trace.

Usage:
    python scripts/price_basket.py basket.json

The basket file uses the same shape as the API's POST /price body.
"""
import json
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from basket_pricing.api.schemas import BasketIn
from basket_pricing.config.settings import configure_logging
from basket_pricing.engine import PricingEngine, InvalidBasketError


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)

    configure_logging()
    with open(sys.argv[1], 'r', encoding='utf-8') as f:
        basket = BasketIn(**json.load(f))

    engine = PricingEngine.from_settings()
    for err in engine.load_errors:
        print(f"  ❌ {err}")

    try:
        result = engine.price(basket.to_snapshot())
    except InvalidBasketError as e:
        print(f"❌ Basket rejected: {e.message}")
        sys.exit(1)

    print(result.get_trace_text())
    print()
    for diagnostic in result.diagnostics:
        print(f"  ⚠ {diagnostic.rule_id}: {diagnostic.code} - {diagnostic.message}")
    print(json.dumps(result.to_dict(), indent=2))


if __name__ == "__main__":
    main()
