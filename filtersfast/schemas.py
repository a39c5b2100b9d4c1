"""Pydantic v2 request/response schemas for the checkout API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from filtersfast.services.types import (
    Actor,
    DiscountType,
    PromoCodeRequest,
    RewardSku,
    ShipmentStatus,
    TaxLineItem,
    TaxSummary,
)


# ---------------------------------------------------------------------------
# Promo codes
# ---------------------------------------------------------------------------


class ApplyPromoCodeRequest(PromoCodeRequest):
    """Request body for validating and pricing a promo code against a cart."""

    shipping_cost: float = Field(default=0.0, ge=0)


class RedeemPromoCodeRequest(ApplyPromoCodeRequest):
    """Validate a promo code and record its use against an order."""

    customer_id: str = Field(..., min_length=1)
    order_id: str = Field(..., min_length=1)


class CreatePromoCodeRequest(BaseModel):
    """Request body for creating a promo code."""

    code: str = Field(..., min_length=1, max_length=50)
    description: str = Field(..., min_length=1, max_length=255)
    discount_type: DiscountType
    discount_value: float = Field(..., ge=0)
    min_order_amount: float | None = Field(default=None, ge=0)
    max_discount: float | None = Field(default=None, gt=0)
    start_date: datetime
    end_date: datetime
    usage_limit: int | None = Field(default=None, ge=1, description="None for unlimited")
    per_customer_limit: int | None = Field(default=1, ge=1, description="None for unlimited")
    applicable_products: list[str] | None = None
    applicable_categories: list[str] | None = None
    first_time_only: bool = False
    active: bool = True

    @model_validator(mode="after")
    def _check_rule(self) -> CreatePromoCodeRequest:
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("percentage discounts cannot exceed 100")
        return self


class UpdatePromoCodeRequest(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    description: str | None = Field(default=None, min_length=1, max_length=255)
    discount_value: float | None = Field(default=None, ge=0)
    min_order_amount: float | None = Field(default=None, ge=0)
    max_discount: float | None = Field(default=None, gt=0)
    start_date: datetime | None = None
    end_date: datetime | None = None
    usage_limit: int | None = Field(default=None, ge=1)
    per_customer_limit: int | None = Field(default=None, ge=1)
    active: bool | None = None


class PromoCodeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    code: str
    description: str
    discount_type: DiscountType
    discount_value: float
    min_order_amount: float | None = None
    max_discount: float | None = None
    start_date: datetime
    end_date: datetime
    usage_limit: int | None = None
    usage_count: int
    per_customer_limit: int | None = None
    applicable_products: list[str] | None = None
    applicable_categories: list[str] | None = None
    first_time_only: bool
    active: bool
    created_at: datetime
    updated_at: datetime


class PromoRedemptionResponse(BaseModel):
    usage_id: str
    order_id: str
    promo_code: str
    discount_amount: float
    new_total: float


# ---------------------------------------------------------------------------
# Deals
# ---------------------------------------------------------------------------


class DealRequest(BaseModel):
    """Create/replace body for a deal. ``reward_skus`` is admin free text."""

    description: str = Field(..., min_length=1, max_length=100)
    start_price: float = Field(..., ge=0)
    end_price: float = Field(..., ge=0)
    units: int = Field(default=0, ge=0)
    active: bool = True
    valid_from: datetime | None = None
    valid_to: datetime | None = None
    reward_skus: str | None = Field(
        default=None, description="One SKU[@price][*qty] entry per line or comma"
    )
    reward_auto_add: bool = False

    @model_validator(mode="after")
    def _check_band(self) -> DealRequest:
        if self.end_price < self.start_price:
            raise ValueError("end_price must be greater than or equal to start_price")
        if self.valid_from and self.valid_to and self.valid_to < self.valid_from:
            raise ValueError("valid_to must not precede valid_from")
        return self


class DealResponse(BaseModel):
    id: int
    description: str
    start_price: float
    end_price: float
    units: int
    active: bool
    valid_from: datetime | None = None
    valid_to: datetime | None = None
    reward_skus: list[RewardSku]
    reward_auto_add: bool
    created_at: datetime
    updated_at: datetime


class DeleteDealsRequest(BaseModel):
    ids: list[int] = Field(..., min_length=1)


class ParseRewardSkusRequest(BaseModel):
    text: str = Field(default="", max_length=10000)


class ParseRewardSkusResponse(BaseModel):
    rewards: list[RewardSku]


# ---------------------------------------------------------------------------
# Gift cards
# ---------------------------------------------------------------------------


class ActorRequest(BaseModel):
    """Identity of the admin performing a gift card mutation."""

    actor_id: str = Field(..., min_length=1)
    actor_name: str = Field(..., min_length=1)

    @property
    def actor(self) -> Actor:
        return Actor(id=self.actor_id, name=self.actor_name)


class IssueGiftCardRequest(BaseModel):
    amount: float = Field(..., gt=0, le=10000)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    order_id: str | None = None
    purchaser_name: str | None = Field(default=None, max_length=255)
    purchaser_email: str | None = Field(default=None, max_length=255)
    recipient_name: str | None = Field(default=None, max_length=255)
    recipient_email: str | None = Field(default=None, max_length=255)
    message: str | None = Field(default=None, max_length=1000)
    send_at: datetime | None = None


class RedeemGiftCardRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=32)
    amount: float = Field(..., gt=0)
    order_id: str | None = None
    note: str | None = Field(default=None, max_length=500)


class AdjustGiftCardRequest(ActorRequest):
    amount: float = Field(..., description="Signed delta; negative debits the card")
    note: str = Field(..., min_length=1)


class ReactivateGiftCardRequest(ActorRequest):
    balance: float


class GiftCardResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    code: str
    initial_value: float
    balance: float
    currency: str
    status: str
    order_id: str | None = None
    purchaser_name: str | None = None
    purchaser_email: str | None = None
    recipient_name: str | None = None
    recipient_email: str | None = None
    message: str | None = None
    send_at: datetime | None = None
    issued_at: datetime | None = None
    last_redeemed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class GiftCardTransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    gift_card_id: str
    type: str
    amount: float
    balance_after: float
    order_id: str | None = None
    note: str | None = None
    performed_by_id: str
    performed_by_name: str
    created_at: datetime


class GiftCardListResponse(BaseModel):
    gift_cards: list[GiftCardResponse]
    total: int
    limit: int
    offset: int
    has_more: bool


# ---------------------------------------------------------------------------
# Tax
# ---------------------------------------------------------------------------


class TaxCalculateRequest(BaseModel):
    """Checkout destination and totals to compute sales tax for."""

    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    zip4: str | None = None
    country: str = "US"
    subtotal: float = Field(..., ge=0, le=1_000_000)
    shipping: float = Field(..., ge=0, le=10_000)
    line_items: list[TaxLineItem] = Field(default_factory=list)
    order_id: str | None = None


class TaxCalculateResponse(BaseModel):
    success: bool
    tax: TaxSummary
    error: str | None = None


class TaxRateResponse(BaseModel):
    success: bool
    rate: float
    has_nexus: bool
    error: str | None = None


class SalesTaxLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: str | None = None
    sales_tax_request: str
    sales_tax_response: str
    status_code: int | None = None
    success: bool
    error_message: str | None = None
    created_at: datetime


class TaxStatsResponse(BaseModel):
    total_calculations: int
    successful_calculations: int
    failed_calculations: int


# ---------------------------------------------------------------------------
# Shipments
# ---------------------------------------------------------------------------


class UpdateShipmentStatusRequest(BaseModel):
    status: ShipmentStatus
    label_url: str | None = None
    raw_response: Any = None
    metadata: dict[str, Any] | None = None
