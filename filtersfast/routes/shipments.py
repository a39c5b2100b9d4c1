"""Shipment history routes.

POST  /shipments/             - Record a created shipping label
GET   /shipments/             - Filtered shipment history, newest first
GET   /shipments/{id}         - Get a recorded shipment
PATCH /shipments/{id}/status  - Update status and merge label/response/metadata
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from filtersfast.database import get_db
from filtersfast.errors import ShipmentAlreadyRecordedError
from filtersfast.schemas import UpdateShipmentStatusRequest
from filtersfast.services import shipments as shipment_service
from filtersfast.services.rate_limit import rate_limited
from filtersfast.services.types import (
    Shipment,
    ShipmentHistoryFilters,
    ShipmentStatus,
    ShipmentStatusUpdate,
    ShippingCarrier,
)

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(rate_limited("admin_rate_limiter", "shipments"))])


@router.post("/", response_model=Shipment, status_code=201)
async def record_shipment(
    request: Shipment,
    db: AsyncSession = Depends(get_db),
) -> Shipment:
    try:
        return await shipment_service.record_shipment(db, request)
    except ShipmentAlreadyRecordedError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.get("/", response_model=list[Shipment])
async def list_shipments(
    order_id: str | None = None,
    carrier: ShippingCarrier | None = None,
    status: ShipmentStatus | None = None,
    search: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int | None = None,
    offset: int | None = None,
    db: AsyncSession = Depends(get_db),
) -> list[Shipment]:
    """List shipments. Non-positive limits fall back to 50 and negative offsets to 0."""
    filters = ShipmentHistoryFilters(
        order_id=order_id,
        carrier=carrier,
        status=status,
        search=search,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return await shipment_service.list_shipments(db, filters)


@router.get("/{shipment_id}", response_model=Shipment)
async def get_shipment(shipment_id: str, db: AsyncSession = Depends(get_db)) -> Shipment:
    shipment = await shipment_service.get_shipment(db, shipment_id)
    if shipment is None:
        raise HTTPException(status_code=404, detail="Shipment not found")
    return shipment


@router.patch("/{shipment_id}/status", response_model=Shipment)
async def update_status(
    shipment_id: str,
    request: UpdateShipmentStatusRequest,
    db: AsyncSession = Depends(get_db),
) -> Shipment:
    shipment = await shipment_service.update_shipment_status(
        db,
        shipment_id,
        request.status,
        ShipmentStatusUpdate(**request.model_dump(exclude={"status"}, exclude_unset=True)),
    )
    if shipment is None:
        raise HTTPException(status_code=404, detail="Shipment not found")
    logger.info("Shipment %s is now %s", shipment_id, request.status.value)
    return shipment
