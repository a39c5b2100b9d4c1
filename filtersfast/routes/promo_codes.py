"""Promo code routes.

POST   /promo-codes/validate - Check a code against a cart (always 200, result in body)
POST   /promo-codes/apply    - Validate and price a code against a cart
POST   /promo-codes/redeem   - Validate and record a use against an order
POST   /promo-codes/         - Create a promo code (admin)
GET    /promo-codes/         - List active promo codes (admin)
PATCH  /promo-codes/{id}     - Partially update a promo code (admin)
DELETE /promo-codes/{id}     - Delete a promo code (admin)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from filtersfast.database import get_db
from filtersfast.errors import PromoUsageLimitError
from filtersfast.schemas import (
    ApplyPromoCodeRequest,
    CreatePromoCodeRequest,
    PromoCodeResponse,
    PromoRedemptionResponse,
    RedeemPromoCodeRequest,
    UpdatePromoCodeRequest,
)
from filtersfast.services import promo_store
from filtersfast.services.promotions import apply_promo_code, validate_promo_code
from filtersfast.services.rate_limit import rate_limited
from filtersfast.services.types import (
    PromoCodeApplication,
    PromoCodeRequest,
    PromoCodeValidation,
    PromoErrorCode,
)

logger = logging.getLogger(__name__)
router = APIRouter()

admin_limit = rate_limited("admin_rate_limiter", "promo-admin")


async def _validate(db: AsyncSession, request: PromoCodeRequest) -> PromoCodeValidation:
    rule, usage_count, first_time = await promo_store.load_validation_context(
        db, request.code, request.customer_id
    )
    return validate_promo_code(
        request,
        rule,
        customer_usage_count=usage_count,
        is_first_time_customer=first_time,
    )


def _reject(validation: PromoCodeValidation) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={
            "error": validation.error,
            "error_code": validation.error_code.value if validation.error_code else None,
        },
    )


@router.post("/validate", response_model=PromoCodeValidation)
async def validate_code(
    request: PromoCodeRequest,
    db: AsyncSession = Depends(get_db),
) -> PromoCodeValidation:
    """Validate a promo code. Failures are reported in the body, not the status."""
    return await _validate(db, request)


@router.post("/apply", response_model=PromoCodeApplication)
async def apply_code(
    request: ApplyPromoCodeRequest,
    db: AsyncSession = Depends(get_db),
) -> PromoCodeApplication:
    """Validate a promo code and return the discounted cart totals.

    This is a preview; no usage is recorded.
    """
    validation = await _validate(db, request)
    if not validation.valid:
        raise _reject(validation)
    return apply_promo_code(
        request.cart_total, request.cart_items, validation.promo_code, request.shipping_cost
    )


@router.post("/redeem", response_model=PromoRedemptionResponse, status_code=201)
async def redeem_code(
    request: RedeemPromoCodeRequest,
    db: AsyncSession = Depends(get_db),
) -> PromoRedemptionResponse:
    """Validate a code and record its use in the same transaction.

    The usage limit is checked again by the increment itself, so a code that
    runs out between validation and recording is still rejected.
    """
    validation = await _validate(db, request)
    if not validation.valid:
        raise _reject(validation)

    application = apply_promo_code(
        request.cart_total, request.cart_items, validation.promo_code, request.shipping_cost
    )
    try:
        usage = await promo_store.record_promo_usage(
            db,
            validation.promo_code.id,
            request.customer_id,
            request.order_id,
            application.discount_amount,
        )
    except PromoUsageLimitError:
        raise _reject(
            PromoCodeValidation(
                valid=False,
                error="This promo code has reached its usage limit",
                error_code=PromoErrorCode.USAGE_LIMIT_REACHED,
            )
        )
    return PromoRedemptionResponse(
        usage_id=usage.id,
        order_id=request.order_id,
        promo_code=validation.promo_code.code,
        discount_amount=application.discount_amount,
        new_total=application.new_total,
    )


@router.post(
    "/",
    response_model=PromoCodeResponse,
    status_code=201,
    dependencies=[Depends(admin_limit)],
)
async def create_code(
    request: CreatePromoCodeRequest,
    db: AsyncSession = Depends(get_db),
) -> PromoCodeResponse:
    if await promo_store.get_promo_code(db, request.code) is not None:
        raise HTTPException(status_code=409, detail="Promo code already exists")
    promo = await promo_store.create_promo_code(db, request.model_dump())
    return PromoCodeResponse.model_validate(promo)


@router.get("/", response_model=list[PromoCodeResponse], dependencies=[Depends(admin_limit)])
async def list_codes(db: AsyncSession = Depends(get_db)) -> list[PromoCodeResponse]:
    promos = await promo_store.list_active_promo_codes(db)
    return [PromoCodeResponse.model_validate(promo) for promo in promos]


@router.patch(
    "/{promo_id}", response_model=PromoCodeResponse, dependencies=[Depends(admin_limit)]
)
async def update_code(
    promo_id: str,
    request: UpdatePromoCodeRequest,
    db: AsyncSession = Depends(get_db),
) -> PromoCodeResponse:
    promo = await promo_store.update_promo_code(
        db, promo_id, request.model_dump(exclude_unset=True)
    )
    if promo is None:
        raise HTTPException(status_code=404, detail="Promo code not found")
    return PromoCodeResponse.model_validate(promo)


@router.delete("/{promo_id}", status_code=204, dependencies=[Depends(admin_limit)])
async def delete_code(promo_id: str, db: AsyncSession = Depends(get_db)) -> None:
    if not await promo_store.delete_promo_code(db, promo_id):
        raise HTTPException(status_code=404, detail="Promo code not found")
    logger.info("Deleted promo code %s", promo_id)
