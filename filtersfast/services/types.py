"""Shared type definitions for all service modules.

Input types describe what flows into service functions. Result types
describe what each service function returns; routes serialize them directly.

Enumerations are ``str`` enums so they compare equal to the plain strings
stored in the database and sent over the wire.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Promo codes
# ---------------------------------------------------------------------------


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_SHIPPING = "free_shipping"


class PromoErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    NOT_STARTED = "NOT_STARTED"
    EXPIRED = "EXPIRED"
    USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"
    CUSTOMER_LIMIT_REACHED = "CUSTOMER_LIMIT_REACHED"
    FIRST_TIME_ONLY = "FIRST_TIME_ONLY"
    PRODUCTS_NOT_APPLICABLE = "PRODUCTS_NOT_APPLICABLE"
    MIN_ORDER_NOT_MET = "MIN_ORDER_NOT_MET"


class CartItem(BaseModel):
    product_id: str
    category_id: str | None = None
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)


class PromoCodeRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    cart_total: float = Field(..., ge=0)
    cart_items: list[CartItem] = Field(default_factory=list)
    customer_id: str | None = None


class PromoCodeRule(BaseModel):
    """A promo code record as the validator sees it.

    Built from the ``PromoCode`` ORM row with ``model_validate(row)``.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    code: str
    description: str = ""
    discount_type: DiscountType
    discount_value: float
    min_order_amount: float | None = None
    max_discount: float | None = None
    start_date: datetime
    end_date: datetime
    usage_limit: int | None = None
    usage_count: int = 0
    per_customer_limit: int | None = None
    applicable_products: list[str] | None = None
    applicable_categories: list[str] | None = None
    first_time_only: bool = False
    active: bool = True

    @field_validator("start_date", "end_date")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # naive values are UTC, as stored
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def has_allow_list(self) -> bool:
        return bool(self.applicable_products) or bool(self.applicable_categories)

    def applies_to(self, item: CartItem) -> bool:
        if self.applicable_products and item.product_id in self.applicable_products:
            return True
        if (
            item.category_id
            and self.applicable_categories
            and item.category_id in self.applicable_categories
        ):
            return True
        return False


class PromoCodeValidation(BaseModel):
    valid: bool
    promo_code: PromoCodeRule | None = None
    discount_amount: float | None = None
    error: str | None = None
    error_code: PromoErrorCode | None = None


class PromoCodeApplication(BaseModel):
    success: bool = True
    discount_amount: float
    free_shipping: bool
    new_subtotal: float
    new_shipping: float
    new_total: float
    promo_code: PromoCodeRule


# ---------------------------------------------------------------------------
# Deals
# ---------------------------------------------------------------------------


class RewardSku(BaseModel):
    sku: str
    quantity: int = 1
    price_override: float | None = None


# ---------------------------------------------------------------------------
# Gift cards
# ---------------------------------------------------------------------------


class GiftCardStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    PARTIALLY_REDEEMED = "partially_redeemed"
    REDEEMED = "redeemed"
    VOID = "void"


class GiftCardTransactionType(str, Enum):
    ISSUE = "issue"
    REDEEM = "redeem"
    ADJUST = "adjust"
    VOID = "void"
    REACTIVATE = "reactivate"


class Actor(BaseModel):
    """Who performed a ledger mutation. Both fields are mandatory."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Tax
# ---------------------------------------------------------------------------


class TaxLineItem(BaseModel):
    id: str | None = None
    quantity: int = Field(..., ge=1)
    product_tax_code: str | None = None
    unit_price: float = Field(..., ge=0)
    discount: float | None = Field(default=None, ge=0)


class TaxCalculationRequest(BaseModel):
    """Canonical request body sent to the tax oracle."""

    to_country: str
    to_zip: str
    to_state: str
    to_city: str
    to_street: str | None = None
    amount: float
    shipping: float
    line_items: list[TaxLineItem] = Field(default_factory=list)


class TaxCalculationResponse(BaseModel):
    """Fields the tax oracle answers with."""

    rate: float = 0.0
    amount_to_collect: float = 0.0
    taxable_amount: float = 0.0
    has_nexus: bool = False
    shipping_taxable: bool = False


class TaxSummary(BaseModel):
    """Tax figures returned to checkout."""

    rate: float
    amount: float
    taxable_amount: float
    has_nexus: bool
    shipping_taxable: bool

    @classmethod
    def zero(cls) -> TaxSummary:
        return cls(
            rate=0.0,
            amount=0.0,
            taxable_amount=0.0,
            has_nexus=False,
            shipping_taxable=False,
        )


class TaxOutcome(BaseModel):
    success: bool
    status_code: int
    tax: TaxSummary
    error: str | None = None


# ---------------------------------------------------------------------------
# Shipments
# ---------------------------------------------------------------------------


class ShippingCarrier(str, Enum):
    FEDEX = "fedex"
    USPS = "usps"
    UPS = "ups"
    DHL = "dhl"
    CANADA_POST = "canada_post"


class ShipmentStatus(str, Enum):
    LABEL_CREATED = "label_created"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    EXCEPTION = "exception"
    FAILED = "failed"
    RETURNED = "returned"
    CANCELLED = "cancelled"


class ShippingAddress(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str | None = None
    company: str | None = None
    address_line1: str
    address_line2: str | None = None
    city: str
    state: str
    postal_code: str
    country: str
    phone: str | None = None
    is_residential: bool | None = None


class Shipment(BaseModel):
    id: str | None = None
    order_id: str
    carrier: ShippingCarrier
    service_code: str
    service_name: str
    tracking_number: str
    label_url: str | None = None
    label_format: str | None = None
    rate: float = Field(..., ge=0)
    currency: str = "USD"
    status: ShipmentStatus = ShipmentStatus.LABEL_CREATED
    origin: dict[str, Any] | None = None
    destination: dict[str, Any] | None = None
    carrier_shipment_id: str | None = None
    raw_response: Any = None
    metadata: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("origin", "destination", mode="before")
    @classmethod
    def _address_to_dict(cls, value: Any) -> Any:
        if isinstance(value, ShippingAddress):
            return value.model_dump(exclude_none=True)
        return value


class ShipmentStatusUpdate(BaseModel):
    """Fields that may be merged into an existing shipment on a status change."""

    label_url: str | None = None
    raw_response: Any = None
    metadata: dict[str, Any] | None = None


class ShipmentHistoryFilters(BaseModel):
    order_id: str | None = None
    carrier: ShippingCarrier | None = None
    status: ShipmentStatus | None = None
    search: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    limit: int | None = None
    offset: int | None = None
