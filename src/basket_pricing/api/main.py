from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from basket_pricing import __version__
from basket_pricing.engine import InvalidBasketError
from basket_pricing.api.schemas import BasketIn
from basket_pricing.rules.compile_rules import parse_rules
from basket_pricing.config.settings import get_settings, configure_logging
from basket_pricing.api.rules_api import router as rules_router
from basket_pricing.api.state import engine

configure_logging()

app = FastAPI(
    title="Basket Pricing API",
    description="Prices basket snapshots against promotion, coupon and tax rules",
    version=__version__,
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include rules management API
app.include_router(rules_router)


@app.get("/")
async def root():
    return {"status": "online", "message": "Basket Pricing API Active"}


@app.post("/price")
async def price_basket(req: BasketIn):
    try:
        snapshot = req.to_snapshot()
    except (ValueError, TypeError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid basket: {e}")

    rules = None
    rule_errors = []
    if req.rules is not None:
        rules, rule_errors = parse_rules(req.rules, currency=snapshot.currency)

    try:
        result = engine.price(snapshot, candidate_rules=rules)
    except InvalidBasketError as e:
        raise HTTPException(status_code=400, detail=e.message)

    body = result.to_dict()
    body["rule_errors"] = rule_errors
    body["trace"] = result.get_trace_text()
    return body


@app.get("/system/status")
async def get_status():
    settings = get_settings()
    return {
        "engine_active": True,
        "version": __version__,
        "rules_loaded": len(engine.rules),
        "rules_rejected": len(engine.load_errors),
        "tax_rules_loaded": len(engine.tax_rules),
        "tier_prices_loaded": len(engine.tier_prices),
        "rules_path": str(settings.rules_path),
    }
