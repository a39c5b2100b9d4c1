"""Sales tax calculation.

Checkout posts a raw address and totals; this module sanitizes and
normalizes them into a TaxJar ``/v2/taxes`` request, calls the oracle and
records every attempt in ``sales_tax_logs``. Tax failures must never block
checkout: any error yields zero tax, a failure log row and status 500.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

import httpx
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from filtersfast.errors import TaxOracleError
from filtersfast.models import SalesTaxLog, utcnow

from .sanitize import sanitize_text
from .types import (
    TaxCalculationRequest,
    TaxCalculationResponse,
    TaxLineItem,
    TaxOutcome,
    TaxSummary,
)

logger = logging.getLogger(__name__)

NO_TAX_STATES = frozenset({"DE", "MT", "NH", "OR"})

MAX_STREET_LENGTH = 100
MAX_CITY_LENGTH = 50
MAX_STATE_LENGTH = 50
MAX_ZIP_LENGTH = 20
MAX_ZIP4_LENGTH = 4

RATE_LOOKUP_AMOUNT = 100.0
FAILURE_MESSAGE = "Tax calculation temporarily unavailable"
RATE_LOOKUP_FAILURE_MESSAGE = "Tax rate lookup temporarily unavailable"

STATE_CODES = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "district of columbia": "DC", "florida": "FL", "georgia": "GA", "guam": "GU",
    "hawaii": "HI", "idaho": "ID", "illinois": "IL", "indiana": "IN",
    "iowa": "IA", "kansas": "KS", "kentucky": "KY", "louisiana": "LA",
    "maine": "ME", "maryland": "MD", "massachusetts": "MA", "michigan": "MI",
    "minnesota": "MN", "mississippi": "MS", "missouri": "MO", "montana": "MT",
    "nebraska": "NE", "nevada": "NV", "new hampshire": "NH", "new jersey": "NJ",
    "new mexico": "NM", "new york": "NY", "north carolina": "NC", "north dakota": "ND",
    "ohio": "OH", "oklahoma": "OK", "oregon": "OR", "pennsylvania": "PA",
    "puerto rico": "PR", "rhode island": "RI", "south carolina": "SC", "south dakota": "SD",
    "tennessee": "TN", "texas": "TX", "utah": "UT", "vermont": "VT",
    "virginia": "VA", "washington": "WA", "west virginia": "WV", "wisconsin": "WI",
    "wyoming": "WY",
}  # fmt: skip

_DIGITS = re.compile(r"^\d+$")


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def normalize_state_code(state: str) -> str:
    """Map a full US state name to its two-letter code.

    Two-character input and unknown names are upper-cased and returned as-is.
    """
    if not state or len(state) == 2:
        return (state or "").upper()
    key = state.strip().lower().replace(".", "")
    return STATE_CODES.get(key, state.upper())


def normalize_zip_code(zip5: str, zip4: str | None = None) -> str:
    """Join ``zip5`` and a four-digit ``zip4`` as ``zip5-zip4``."""
    if not zip5:
        return ""
    if zip4 and len(zip4) == 4 and _DIGITS.match(zip4) and "-" not in zip5:
        return f"{zip5}-{zip4}"
    return zip5


def normalize_country(country: str | None) -> str:
    if not country:
        return "US"
    return "US" if country == "USA" else country


def shape_tax_request(
    *,
    address: str,
    city: str,
    state: str,
    zip_code: str,
    subtotal: float,
    shipping: float,
    zip4: str | None = None,
    country: str | None = "US",
    line_items: list[dict[str, Any]] | None = None,
) -> TaxCalculationRequest:
    """Sanitize and normalize raw checkout input into an oracle request."""
    sanitized_zip4 = sanitize_text(zip4, MAX_ZIP4_LENGTH) if zip4 else None
    return TaxCalculationRequest(
        to_country=normalize_country(country),
        to_zip=normalize_zip_code(sanitize_text(zip_code, MAX_ZIP_LENGTH), sanitized_zip4),
        to_state=normalize_state_code(sanitize_text(state, MAX_STATE_LENGTH)),
        to_city=sanitize_text(city, MAX_CITY_LENGTH),
        to_street=sanitize_text(address, MAX_STREET_LENGTH),
        amount=subtotal,
        shipping=shipping,
        line_items=[TaxLineItem.model_validate(item) for item in line_items or []],
    )


def summarize(response: TaxCalculationResponse) -> TaxSummary:
    return TaxSummary(
        rate=response.rate,
        amount=response.amount_to_collect,
        taxable_amount=response.taxable_amount,
        has_nexus=response.has_nexus,
        shipping_taxable=response.shipping_taxable,
    )


# ---------------------------------------------------------------------------
# Oracle client
# ---------------------------------------------------------------------------


class TaxJarClient:
    """Thin async client for TaxJar's ``POST /v2/taxes``.

    The ``httpx.AsyncClient`` is owned by the application lifespan; tests pass
    one built on ``httpx.MockTransport``.
    """

    def __init__(self, http: httpx.AsyncClient, api_key: str, api_url: str) -> None:
        self.http = http
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")

    async def tax_for_order(self, request: TaxCalculationRequest) -> TaxCalculationResponse:
        state = normalize_state_code(request.to_state)
        country = normalize_country(request.to_country)
        if state in NO_TAX_STATES or country != "US":
            return TaxCalculationResponse()

        payload = request.model_copy(update={"to_state": state, "to_country": country})
        try:
            response = await self.http.post(
                f"{self.api_url}/v2/taxes",
                json=payload.model_dump(mode="json", exclude_none=True),
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as exc:
            raise TaxOracleError(f"TaxJar request failed: {exc}") from exc

        if response.status_code >= 400:
            raise TaxOracleError(
                f"TaxJar returned HTTP {response.status_code}", status_code=response.status_code
            )

        try:
            tax = response.json()["tax"]
            return TaxCalculationResponse(
                rate=tax.get("rate") or 0.0,
                amount_to_collect=tax.get("amount_to_collect") or 0.0,
                taxable_amount=tax.get("taxable_amount") or 0.0,
                has_nexus=bool(tax.get("has_nexus")),
                shipping_taxable=bool(tax.get("freight_taxable")),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise TaxOracleError(
                "TaxJar returned an unreadable response", status_code=response.status_code
            ) from exc


# ---------------------------------------------------------------------------
# Calculation with logging
# ---------------------------------------------------------------------------


async def record_tax_log(
    db: AsyncSession,
    *,
    request_json: str,
    response_json: str,
    status_code: int | None,
    success: bool,
    order_id: str | None = None,
    error_message: str | None = None,
) -> SalesTaxLog:
    log = SalesTaxLog(
        order_id=order_id or None,
        sales_tax_request=request_json,
        sales_tax_response=response_json,
        status_code=status_code,
        success=success,
        error_message=error_message,
        created_at=utcnow(),
    )
    db.add(log)
    await db.flush()
    return log


async def calculate_tax(
    db: AsyncSession, client: TaxJarClient, payload: dict[str, Any]
) -> TaxOutcome:
    """Shape ``payload``, ask the oracle and log the attempt.

    ``payload`` carries the checkout fields (address, city, state, zip_code,
    zip4, country, subtotal, shipping, line_items, order_id). On success the
    normalized request and oracle response are logged. On any failure the
    original payload is logged with the error message and zero tax is
    returned with status 500.
    """
    order_id = payload.get("order_id")
    try:
        request = shape_tax_request(
            address=payload["address"],
            city=payload["city"],
            state=payload["state"],
            zip_code=payload["zip_code"],
            zip4=payload.get("zip4"),
            country=payload.get("country"),
            subtotal=payload["subtotal"],
            shipping=payload["shipping"],
            line_items=payload.get("line_items"),
        )
        result = await client.tax_for_order(request)
        await record_tax_log(
            db,
            order_id=order_id,
            request_json=request.model_dump_json(exclude_none=True),
            response_json=result.model_dump_json(),
            status_code=200,
            success=True,
        )
        return TaxOutcome(success=True, status_code=200, tax=summarize(result))
    except Exception as exc:
        logger.exception("Tax calculation failed for order %s", order_id)
        try:
            await record_tax_log(
                db,
                order_id=order_id,
                request_json=json.dumps(payload, default=str),
                response_json=json.dumps({"error": "System error"}),
                status_code=500,
                success=False,
                error_message=str(exc),
            )
        except Exception:
            logger.exception("Failed to log tax calculation error")
            await db.rollback()
        return TaxOutcome(
            success=False, status_code=500, tax=TaxSummary.zero(), error=FAILURE_MESSAGE
        )


async def lookup_rate(client: TaxJarClient, *, zip_code: str, state: str, city: str) -> TaxOutcome:
    """Quick rate lookup for a destination using a nominal $100 order."""
    try:
        request = TaxCalculationRequest(
            to_country="US",
            to_zip=sanitize_text(zip_code, MAX_ZIP_LENGTH),
            to_state=normalize_state_code(sanitize_text(state, MAX_STATE_LENGTH)),
            to_city=sanitize_text(city, MAX_CITY_LENGTH),
            amount=RATE_LOOKUP_AMOUNT,
            shipping=0.0,
        )
        result = await client.tax_for_order(request)
    except Exception:
        logger.exception("Tax rate lookup failed for %s", zip_code)
        return TaxOutcome(
            success=False,
            status_code=500,
            tax=TaxSummary.zero(),
            error=RATE_LOOKUP_FAILURE_MESSAGE,
        )
    return TaxOutcome(success=True, status_code=200, tax=summarize(result))


# ---------------------------------------------------------------------------
# Log queries
# ---------------------------------------------------------------------------


async def list_tax_logs(
    db: AsyncSession, *, order_id: str | None = None, limit: int = 100
) -> list[SalesTaxLog]:
    query = select(SalesTaxLog)
    if order_id:
        query = query.where(SalesTaxLog.order_id == order_id)
    result = await db.execute(
        query.order_by(SalesTaxLog.created_at.desc(), SalesTaxLog.id.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def tax_log_stats(db: AsyncSession) -> dict[str, int]:
    result = await db.execute(
        select(
            func.count(SalesTaxLog.id),
            func.sum(case((SalesTaxLog.success.is_(True), 1), else_=0)),
            func.sum(case((SalesTaxLog.success.is_(False), 1), else_=0)),
        )
    )
    total, successful, failed = result.one()
    return {
        "total_calculations": int(total or 0),
        "successful_calculations": int(successful or 0),
        "failed_calculations": int(failed or 0),
    }
