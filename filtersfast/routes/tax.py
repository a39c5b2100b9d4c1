"""Sales tax routes.

POST /tax/calculate                 - Tax for a checkout destination (zero tax + 500 on failure)
GET  /tax/rate?zip=&state=&city=    - Quick rate lookup for a destination
GET  /tax/logs?order_id=&limit=     - Recent tax calculation log rows (admin)
GET  /tax/stats                     - Calculation success/failure counts (admin)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from filtersfast.database import get_db
from filtersfast.schemas import (
    SalesTaxLogResponse,
    TaxCalculateRequest,
    TaxCalculateResponse,
    TaxRateResponse,
    TaxStatsResponse,
)
from filtersfast.services import tax as tax_service
from filtersfast.services.rate_limit import rate_limited
from filtersfast.services.tax import TaxJarClient

logger = logging.getLogger(__name__)
router = APIRouter()

calculate_limit = rate_limited("tax_rate_limiter", "tax-calc")
lookup_limit = rate_limited("tax_rate_limiter", "tax-lookup")
admin_limit = rate_limited("admin_rate_limiter", "tax-admin")


def get_tax_client(request: Request) -> TaxJarClient:
    return request.app.state.tax_client


@router.post(
    "/calculate",
    response_model=TaxCalculateResponse,
    dependencies=[Depends(calculate_limit)],
)
async def calculate(
    request: TaxCalculateRequest,
    db: AsyncSession = Depends(get_db),
    client: TaxJarClient = Depends(get_tax_client),
) -> TaxCalculateResponse | JSONResponse:
    """Calculate sales tax. Failures answer 500 with zero tax so checkout can proceed."""
    outcome = await tax_service.calculate_tax(db, client, request.model_dump(mode="json"))
    body = TaxCalculateResponse(success=outcome.success, tax=outcome.tax, error=outcome.error)
    if not outcome.success:
        return JSONResponse(status_code=outcome.status_code, content=body.model_dump())
    return body


@router.get("/rate", response_model=TaxRateResponse, dependencies=[Depends(lookup_limit)])
async def rate(
    zip: str = Query(..., min_length=1),
    state: str = Query(..., min_length=1),
    city: str = Query(..., min_length=1),
    client: TaxJarClient = Depends(get_tax_client),
) -> TaxRateResponse | JSONResponse:
    outcome = await tax_service.lookup_rate(client, zip_code=zip, state=state, city=city)
    body = TaxRateResponse(
        success=outcome.success,
        rate=outcome.tax.rate,
        has_nexus=outcome.tax.has_nexus,
        error=outcome.error,
    )
    if not outcome.success:
        return JSONResponse(status_code=outcome.status_code, content=body.model_dump())
    return body


@router.get(
    "/logs", response_model=list[SalesTaxLogResponse], dependencies=[Depends(admin_limit)]
)
async def logs(
    order_id: str | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> list[SalesTaxLogResponse]:
    rows = await tax_service.list_tax_logs(db, order_id=order_id, limit=limit)
    return [SalesTaxLogResponse.model_validate(row) for row in rows]


@router.get("/stats", response_model=TaxStatsResponse, dependencies=[Depends(admin_limit)])
async def stats(db: AsyncSession = Depends(get_db)) -> TaxStatsResponse:
    return TaxStatsResponse(**await tax_service.tax_log_stats(db))
