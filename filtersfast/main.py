"""FastAPI application for the FiltersFast checkout pricing layer.

Exposes promo code validation, deal rewards, the gift card ledger, sales tax
calculation and shipment history over HTTP.

The startup sequence:
1. Open the shared httpx client used for the TaxJar oracle
2. Build the per-scope fixed-window rate limiters
3. Publish both on ``app.state`` for the route dependencies
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI

load_dotenv()

from filtersfast import config
from filtersfast.routes import deals, gift_cards, promo_codes, shipments, tax
from filtersfast.services.rate_limit import FixedWindowRateLimiter
from filtersfast.services.tax import TaxJarClient

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: open the tax oracle client, close it on shutdown.

    Anything already placed on ``app.state`` (tests inject a mocked client and
    deterministic limiters) is left alone.
    """
    http_client = None
    if getattr(app.state, "tax_client", None) is None:
        http_client = httpx.AsyncClient(timeout=config.TAXJAR_TIMEOUT_SECONDS)
        app.state.tax_client = TaxJarClient(
            http_client, config.TAXJAR_API_KEY, config.TAXJAR_API_URL
        )
        if not config.TAXJAR_API_KEY:
            logger.warning("TAXJAR_API_KEY is not set; tax calculations will fail over to zero")
        logger.info("Tax oracle client ready (%s)", config.TAXJAR_API_URL)

    if getattr(app.state, "tax_rate_limiter", None) is None:
        app.state.tax_rate_limiter = FixedWindowRateLimiter(
            config.TAX_RATE_LIMIT,
            config.RATE_LIMIT_WINDOW_SECONDS,
            max_keys=config.RATE_LIMIT_MAX_KEYS,
        )
    if getattr(app.state, "admin_rate_limiter", None) is None:
        app.state.admin_rate_limiter = FixedWindowRateLimiter(
            config.ADMIN_RATE_LIMIT,
            config.RATE_LIMIT_WINDOW_SECONDS,
            max_keys=config.RATE_LIMIT_MAX_KEYS,
        )

    yield

    if http_client is not None:
        logger.info("Closing tax oracle client...")
        await http_client.aclose()


app = FastAPI(
    title="FiltersFast Checkout",
    description=(
        "Checkout pricing layer: promo codes, deal rewards, gift card "
        "ledger, sales tax and shipment history."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(promo_codes.router, prefix="/promo-codes", tags=["Promo Codes"])
app.include_router(deals.router, prefix="/deals", tags=["Deals"])
app.include_router(gift_cards.router, prefix="/gift-cards", tags=["Gift Cards"])
app.include_router(tax.router, prefix="/tax", tags=["Sales Tax"])
app.include_router(shipments.router, prefix="/shipments", tags=["Shipments"])


@app.get("/health")
async def health_check() -> dict:
    """Application health check endpoint."""
    return {
        "status": "healthy",
        "tax_oracle_configured": bool(config.TAXJAR_API_KEY),
    }
