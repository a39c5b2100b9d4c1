"""Shipment history.

Carrier integrations create labels elsewhere; this module keeps a
carrier-agnostic record of each one. Addresses, carrier payloads and metadata
are stored as JSON text and parsed back leniently: a corrupt blob reads as
``None`` rather than failing the whole row.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from filtersfast.errors import ShipmentAlreadyRecordedError
from filtersfast.models import ShipmentHistory, utcnow

from .money import quantize_money
from .types import Shipment, ShipmentHistoryFilters, ShipmentStatus, ShipmentStatusUpdate

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50


def safe_parse(source: str | None) -> Any:
    if not source:
        return None
    try:
        return json.loads(source)
    except (TypeError, ValueError):
        return None


def _dump(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, default=str)


def to_shipment(row: ShipmentHistory) -> Shipment:
    origin = safe_parse(row.origin_address)
    destination = safe_parse(row.destination_address)
    metadata = safe_parse(row.metadata_json)
    return Shipment(
        id=row.id,
        order_id=row.order_id,
        carrier=row.carrier,
        service_code=row.service_code,
        service_name=row.service_name,
        tracking_number=row.tracking_number,
        label_url=row.label_url,
        label_format=row.label_format,
        rate=float(row.rate),
        currency=row.currency,
        status=row.status,
        origin=origin if isinstance(origin, dict) else None,
        destination=destination if isinstance(destination, dict) else None,
        carrier_shipment_id=row.carrier_shipment_id,
        raw_response=safe_parse(row.raw_response),
        metadata=metadata if isinstance(metadata, dict) else None,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


async def record_shipment(db: AsyncSession, shipment: Shipment) -> Shipment:
    """Insert one history row, assigning an id and timestamps when absent."""
    shipment_id = shipment.id or str(uuid.uuid4())
    if await db.get(ShipmentHistory, shipment_id) is not None:
        raise ShipmentAlreadyRecordedError(shipment_id)

    now = utcnow()
    row = ShipmentHistory(
        id=shipment_id,
        order_id=shipment.order_id,
        carrier=shipment.carrier.value,
        service_code=shipment.service_code,
        service_name=shipment.service_name,
        tracking_number=shipment.tracking_number,
        label_url=shipment.label_url,
        label_format=shipment.label_format,
        rate=quantize_money(shipment.rate),
        currency=shipment.currency,
        status=shipment.status.value,
        origin_address=_dump(shipment.origin),
        destination_address=_dump(shipment.destination),
        carrier_shipment_id=shipment.carrier_shipment_id,
        raw_response=_dump(shipment.raw_response),
        metadata_json=_dump(shipment.metadata),
        created_at=shipment.created_at or now,
        updated_at=shipment.updated_at or now,
    )
    db.add(row)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise ShipmentAlreadyRecordedError(shipment_id) from exc

    logger.info(
        "Recorded %s shipment %s for order %s", row.carrier, shipment_id, shipment.order_id
    )
    return to_shipment(row)


async def get_shipment(db: AsyncSession, shipment_id: str) -> Shipment | None:
    row = await db.get(ShipmentHistory, shipment_id)
    return to_shipment(row) if row is not None else None


async def update_shipment_status(
    db: AsyncSession,
    shipment_id: str,
    status: ShipmentStatus,
    updates: ShipmentStatusUpdate | None = None,
) -> Shipment | None:
    """Change status and merge the supplied fields; others are left alone.

    A field counts as supplied when it was set on ``updates`` and is not
    None, so an explicit ``{}`` replaces the stored value.

    Returns None without writing when the shipment does not exist.
    """
    row = await db.get(ShipmentHistory, shipment_id)
    if row is None:
        return None

    updates = updates or ShipmentStatusUpdate()
    supplied = {
        name
        for name in updates.model_fields_set
        if getattr(updates, name) is not None
    }
    row.status = status.value
    if "label_url" in supplied:
        row.label_url = updates.label_url
    if "raw_response" in supplied:
        row.raw_response = _dump(updates.raw_response)
    if "metadata" in supplied:
        row.metadata_json = _dump(updates.metadata)
    row.updated_at = utcnow()
    await db.flush()
    return to_shipment(row)


async def list_shipments(
    db: AsyncSession, filters: ShipmentHistoryFilters | None = None
) -> list[Shipment]:
    """Filtered history, newest first."""
    filters = filters or ShipmentHistoryFilters()
    query = select(ShipmentHistory)

    if filters.order_id:
        query = query.where(ShipmentHistory.order_id == filters.order_id)
    if filters.carrier:
        query = query.where(ShipmentHistory.carrier == filters.carrier.value)
    if filters.status:
        query = query.where(ShipmentHistory.status == filters.status.value)
    if filters.date_from:
        query = query.where(ShipmentHistory.created_at >= filters.date_from)
    if filters.date_to:
        query = query.where(ShipmentHistory.created_at <= filters.date_to)
    if filters.search:
        term = f"%{filters.search}%"
        query = query.where(
            or_(
                ShipmentHistory.tracking_number.like(term),
                ShipmentHistory.service_name.like(term),
                ShipmentHistory.order_id.like(term),
                ShipmentHistory.carrier_shipment_id.like(term),
            )
        )

    limit = filters.limit if filters.limit and filters.limit > 0 else DEFAULT_LIMIT
    offset = filters.offset if filters.offset and filters.offset >= 0 else 0

    result = await db.execute(
        query.order_by(ShipmentHistory.created_at.desc()).limit(limit).offset(offset)
    )
    return [to_shipment(row) for row in result.scalars().all()]
