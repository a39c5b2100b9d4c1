"""Promo code business logic.

Pure functions that decide whether a code may be applied to a cart and how
much it takes off. No database access: callers fetch the promo code record,
the customer's usage count and first-time status, and pass them in. Usage
counters are only touched when an order is placed (see
``filtersfast.services.promo_store.record_promo_usage``).
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from .money import round_money, to_decimal
from .types import (
    CartItem,
    DiscountType,
    PromoCodeApplication,
    PromoCodeRequest,
    PromoCodeRule,
    PromoCodeValidation,
    PromoErrorCode,
)


def _failure(code: PromoErrorCode, message: str) -> PromoCodeValidation:
    return PromoCodeValidation(valid=False, error=message, error_code=code)


def validate_promo_code(
    request: PromoCodeRequest,
    promo_code: PromoCodeRule | None,
    *,
    customer_usage_count: int = 0,
    is_first_time_customer: bool = False,
    now: datetime | None = None,
) -> PromoCodeValidation:
    """Run the promo code gates in order and compute the discount.

    Each gate short-circuits with its own error code. The minimum order
    amount is checked last, against the raw cart total, after the discount
    has been computed.
    """
    if promo_code is None:
        return _failure(PromoErrorCode.NOT_FOUND, "Promo code not found")

    if not promo_code.active:
        return _failure(PromoErrorCode.INACTIVE, "This promo code is no longer active")

    now = now or datetime.now(timezone.utc)
    if now < promo_code.start_date:
        return _failure(
            PromoErrorCode.NOT_STARTED,
            f"This promo code is not valid until {promo_code.start_date:%m/%d/%Y}",
        )

    if now > promo_code.end_date:
        return _failure(PromoErrorCode.EXPIRED, "This promo code has expired")

    if promo_code.usage_limit is not None and promo_code.usage_count >= promo_code.usage_limit:
        return _failure(
            PromoErrorCode.USAGE_LIMIT_REACHED,
            "This promo code has reached its usage limit",
        )

    if (
        request.customer_id
        and promo_code.per_customer_limit is not None
        and customer_usage_count >= promo_code.per_customer_limit
    ):
        return _failure(
            PromoErrorCode.CUSTOMER_LIMIT_REACHED,
            "You have already used this promo code the maximum number of times",
        )

    if promo_code.first_time_only:
        if not request.customer_id:
            return _failure(
                PromoErrorCode.FIRST_TIME_ONLY,
                "This promo code is only valid for registered customers",
            )
        if not is_first_time_customer:
            return _failure(
                PromoErrorCode.FIRST_TIME_ONLY,
                "This promo code is only valid for first-time customers",
            )

    if promo_code.has_allow_list and not any(
        promo_code.applies_to(item) for item in request.cart_items
    ):
        return _failure(
            PromoErrorCode.PRODUCTS_NOT_APPLICABLE,
            "This promo code is not applicable to items in your cart",
        )

    discount_amount = calculate_discount(request.cart_total, request.cart_items, promo_code)

    if (
        promo_code.min_order_amount is not None
        and request.cart_total < promo_code.min_order_amount
    ):
        return _failure(
            PromoErrorCode.MIN_ORDER_NOT_MET,
            f"Minimum order of ${promo_code.min_order_amount:.2f} required for this promo code",
        )

    return PromoCodeValidation(
        valid=True,
        promo_code=promo_code,
        discount_amount=discount_amount,
    )


def applicable_total(
    cart_total: float,
    cart_items: list[CartItem],
    promo_code: PromoCodeRule,
) -> Decimal:
    """Portion of the cart the discount is computed against."""
    if not promo_code.has_allow_list:
        return to_decimal(cart_total)
    return sum(
        (
            to_decimal(item.price) * item.quantity
            for item in cart_items
            if promo_code.applies_to(item)
        ),
        start=Decimal("0"),
    )


def calculate_discount(
    cart_total: float,
    cart_items: list[CartItem],
    promo_code: PromoCodeRule,
) -> float:
    """Discount amount in dollars, rounded half-up to cents.

    Free shipping codes discount nothing here; the shipping waiver is
    reported separately by ``apply_promo_code``.
    """
    if promo_code.discount_type == DiscountType.FREE_SHIPPING:
        return 0.0

    subset = applicable_total(cart_total, cart_items, promo_code)
    value = to_decimal(promo_code.discount_value)
    discount = Decimal("0")

    if promo_code.discount_type == DiscountType.PERCENTAGE:
        discount = subset * value / Decimal(100)
        if promo_code.max_discount is not None:
            discount = min(discount, to_decimal(promo_code.max_discount))
    elif promo_code.discount_type == DiscountType.FIXED:
        discount = min(value, subset)

    return round_money(discount)


def apply_promo_code(
    cart_total: float,
    cart_items: list[CartItem],
    promo_code: PromoCodeRule,
    shipping_cost: float = 0.0,
) -> PromoCodeApplication:
    """Recompute the discount and derive the new cart totals.

    Does not validate and does not consume a usage; pair it with
    ``validate_promo_code`` for previews.
    """
    discount_amount = calculate_discount(cart_total, cart_items, promo_code)
    free_shipping = promo_code.discount_type == DiscountType.FREE_SHIPPING

    new_subtotal = to_decimal(cart_total) - to_decimal(discount_amount)
    new_shipping = Decimal("0") if free_shipping else to_decimal(shipping_cost)

    return PromoCodeApplication(
        discount_amount=discount_amount,
        free_shipping=free_shipping,
        new_subtotal=round_money(new_subtotal),
        new_shipping=round_money(new_shipping),
        new_total=round_money(new_subtotal + new_shipping),
        promo_code=promo_code,
    )
