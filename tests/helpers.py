"""Test doubles and record builders for the checkout tests.

Usage:
    from tests.helpers import StubTaxOracle, make_promo_rule

    oracle = StubTaxOracle()
    oracle.fail_with(503)
    client = oracle.tax_client()
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from filtersfast.services.tax import TaxJarClient
from filtersfast.services.types import PromoCodeRule, Shipment

TAXJAR_TEST_URL = "https://taxjar.test"

DEFAULT_TAX = {
    "rate": 0.08,
    "amount_to_collect": 8.0,
    "taxable_amount": 100.0,
    "has_nexus": True,
    "freight_taxable": False,
}


class StubTaxOracle:
    """Scripted TaxJar ``/v2/taxes`` endpoint served over ``httpx.MockTransport``.

    Every request body is captured in ``requests`` so tests can assert on
    exactly what was sent.
    """

    def __init__(self) -> None:
        self.status_code = 200
        self.tax: dict[str, Any] = dict(DEFAULT_TAX)
        self.error: Exception | None = None
        self.requests: list[dict[str, Any]] = []
        self.headers: list[httpx.Headers] = []

    def fail_with(self, status_code: int) -> None:
        self.status_code = status_code

    def raise_error(self, error: Exception) -> None:
        self.error = error

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        self.headers.append(request.headers)
        if self.error is not None:
            raise self.error
        if self.status_code >= 400:
            return httpx.Response(self.status_code, json={"error": "Unavailable"})
        return httpx.Response(200, json={"tax": self.tax})

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def tax_client(self, http: httpx.AsyncClient | None = None) -> TaxJarClient:
        return TaxJarClient(http or self.http_client(), "test-api-key", TAXJAR_TEST_URL)


class FakeClock:
    """Manually advanced monotonic clock for rate limiter tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_promo_rule(**overrides: Any) -> PromoCodeRule:
    """Build an active, currently valid 10%-off rule with no limits."""
    now = datetime.now(timezone.utc)
    fields: dict[str, Any] = {
        "id": "promo_test",
        "code": "SAVE10",
        "description": "10% off",
        "discount_type": "percentage",
        "discount_value": 10,
        "start_date": now - timedelta(days=1),
        "end_date": now + timedelta(days=30),
        "usage_limit": None,
        "usage_count": 0,
        "per_customer_limit": None,
        "first_time_only": False,
        "active": True,
    }
    fields.update(overrides)
    return PromoCodeRule(**fields)


def promo_code_data(**overrides: Any) -> dict[str, Any]:
    """Field dict accepted by ``promo_store.create_promo_code``."""
    now = datetime.now(timezone.utc)
    data: dict[str, Any] = {
        "code": "save10",
        "description": "10% off",
        "discount_type": "percentage",
        "discount_value": 10,
        "start_date": now - timedelta(days=1),
        "end_date": now + timedelta(days=30),
        "usage_limit": None,
        "per_customer_limit": None,
    }
    data.update(overrides)
    return data


def make_shipment(**overrides: Any) -> Shipment:
    fields: dict[str, Any] = {
        "order_id": "ord_1001",
        "carrier": "ups",
        "service_code": "03",
        "service_name": "UPS Ground",
        "tracking_number": "1Z999AA10123456784",
        "label_url": "https://labels.example.com/1Z999AA10123456784.pdf",
        "label_format": "PDF",
        "rate": 12.45,
        "origin": {
            "address_line1": "5935 Airport Rd",
            "city": "Charlotte",
            "state": "NC",
            "postal_code": "28208",
            "country": "US",
        },
        "destination": {
            "address_line1": "1 Main St",
            "city": "Columbia",
            "state": "SC",
            "postal_code": "29201",
            "country": "US",
        },
        "raw_response": {"ShipmentResults": {"ShipmentIdentificationNumber": "1Z999AA1"}},
        "metadata": {"packages": 1},
    }
    fields.update(overrides)
    return Shipment(**fields)
