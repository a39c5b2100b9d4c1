"""SQLAlchemy 2.0 domain models for the checkout service.

Money columns are ``Numeric(10, 2)`` and load as ``Decimal``. Nested blobs
(addresses, carrier payloads, reward SKU lists, tax request/response bodies)
are stored as opaque JSON text so the schema does not track their shape.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

JSONList = JSON().with_variant(JSONB, "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _id(prefix: str) -> Any:
    return lambda: f"{prefix}_{uuid.uuid4().hex[:16]}"


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always loads as UTC.

    Backends without native timezone support hand back naive values; those
    are stored in UTC, so the zone is reattached on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all domain models."""

    pass


class Order(Base):
    """Storefront order, consulted for first-time-customer promo checks."""

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_id("ord"))
    customer_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    total: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, server_default=func.now(), nullable=False
    )


class PromoCode(Base):
    """Discount rule with a validity window, usage limits and applicability."""

    __tablename__ = "promo_codes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_id("promo"))
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False)
    discount_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    min_order_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    max_discount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    start_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    usage_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    per_customer_limit: Mapped[int | None] = mapped_column(Integer, nullable=True, default=1)
    applicable_products: Mapped[list[str] | None] = mapped_column(JSONList, nullable=True)
    applicable_categories: Mapped[list[str] | None] = mapped_column(JSONList, nullable=True)
    first_time_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, server_default=func.now(), nullable=False
    )


class PromoCodeUsage(Base):
    """One redemption of a promo code against an order."""

    __tablename__ = "promo_code_usage"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_id("use"))
    promo_code_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("promo_codes.id", ondelete="CASCADE"), nullable=False
    )
    customer_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    order_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    used_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, server_default=func.now(), nullable=False
    )


class Deal(Base):
    """Cart-total price band that grants reward SKUs."""

    __tablename__ = "deals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    description: Mapped[str] = mapped_column(String(100), nullable=False)
    start_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    end_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    valid_from: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    valid_to: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    reward_skus: Mapped[str | None] = mapped_column(Text, nullable=True)
    reward_auto_add: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, server_default=func.now(), nullable=False
    )


class GiftCard(Base):
    """Stored-value card; ``balance`` is the current spendable amount."""

    __tablename__ = "gift_cards"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_id("gift"))
    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    initial_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    balance: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending", index=True)
    order_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    purchaser_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    purchaser_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recipient_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recipient_email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    send_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    issued_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_redeemed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, server_default=func.now(), nullable=False
    )


class GiftCardTransaction(Base):
    """Ledger row for every gift card mutation, with the acting user."""

    __tablename__ = "gift_card_transactions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_id("gctx"))
    gift_card_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("gift_cards.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)
    performed_by_id: Mapped[str] = mapped_column(String(100), nullable=False)
    performed_by_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, server_default=func.now(), nullable=False
    )


class SalesTaxLog(Base):
    """Request/response pair for every tax oracle call, successful or not."""

    __tablename__ = "sales_tax_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    sales_tax_request: Mapped[str] = mapped_column(Text, nullable=False)
    sales_tax_response: Mapped[str] = mapped_column(Text, nullable=False)
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, server_default=func.now(), nullable=False
    )


class ShipmentHistory(Base):
    """Carrier-agnostic record of a created shipping label."""

    __tablename__ = "shipment_history"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    order_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    carrier: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    service_code: Mapped[str] = mapped_column(String(100), nullable=False)
    service_name: Mapped[str] = mapped_column(String(255), nullable=False)
    tracking_number: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    label_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    label_format: Mapped[str | None] = mapped_column(String(10), nullable=True)
    rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    origin_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    destination_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    carrier_shipment_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    raw_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[str | None] = mapped_column("metadata", Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
