"""Promo code persistence.

Async query helpers over the ``promo_codes``, ``promo_code_usage`` and
``orders`` tables. These are the collaborators the pure validator in
``promotions`` relies on the caller to consult.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from filtersfast.errors import PromoUsageLimitError
from filtersfast.models import Order, PromoCode, PromoCodeUsage, utcnow

from .money import quantize_money
from .types import DiscountType, PromoCodeRule

logger = logging.getLogger(__name__)

COMPLETED_ORDER_STATUS = "completed"

# Fields an admin may change after creation
UPDATABLE_FIELDS = frozenset(
    {
        "description",
        "discount_value",
        "min_order_amount",
        "max_discount",
        "start_date",
        "end_date",
        "usage_limit",
        "per_customer_limit",
        "active",
    }
)


async def get_promo_code(db: AsyncSession, code: str) -> PromoCode | None:
    """Look up a promo code by its code, ignoring case."""
    result = await db.execute(
        select(PromoCode).where(func.lower(PromoCode.code) == code.strip().lower())
    )
    return result.scalar_one_or_none()


async def get_promo_code_by_id(db: AsyncSession, promo_id: str) -> PromoCode | None:
    return await db.get(PromoCode, promo_id)


async def get_customer_usage_count(
    db: AsyncSession, promo_code_id: str, customer_id: str
) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(PromoCodeUsage)
        .where(
            PromoCodeUsage.promo_code_id == promo_code_id,
            PromoCodeUsage.customer_id == customer_id,
        )
    )
    return int(result.scalar_one())


async def is_first_time_customer(db: AsyncSession, customer_id: str) -> bool:
    """True when the customer has no completed orders."""
    result = await db.execute(
        select(func.count())
        .select_from(Order)
        .where(Order.customer_id == customer_id, Order.status == COMPLETED_ORDER_STATUS)
    )
    return int(result.scalar_one()) == 0


async def load_validation_context(
    db: AsyncSession, code: str, customer_id: str | None
) -> tuple[PromoCodeRule | None, int, bool]:
    """Fetch everything ``validate_promo_code`` needs for one request.

    Returns the rule (or None), the customer's usage count and whether the
    customer is a first-time buyer. Customer lookups are skipped when the
    code does not need them.
    """
    row = await get_promo_code(db, code)
    if row is None:
        return None, 0, False

    rule = PromoCodeRule.model_validate(row)
    usage_count = 0
    first_time = False
    if customer_id:
        if rule.per_customer_limit is not None:
            usage_count = await get_customer_usage_count(db, rule.id, customer_id)
        if rule.first_time_only:
            first_time = await is_first_time_customer(db, customer_id)
    return rule, usage_count, first_time


async def record_promo_usage(
    db: AsyncSession,
    promo_code_id: str,
    customer_id: str,
    order_id: str,
    discount_amount: float,
) -> PromoCodeUsage:
    """Record a redemption and bump the global usage counter.

    The increment only matches while the code is under its usage limit, so
    concurrent redemptions cannot push it past the limit. Raises
    ``PromoUsageLimitError`` when no use is left; nothing is written then.
    """
    now = utcnow()
    result = await db.execute(
        update(PromoCode)
        .where(
            PromoCode.id == promo_code_id,
            or_(
                PromoCode.usage_limit.is_(None),
                PromoCode.usage_count < PromoCode.usage_limit,
            ),
        )
        .values(usage_count=PromoCode.usage_count + 1, updated_at=now)
    )
    if result.rowcount == 0:
        logger.warning("Promo %s has no uses left for order %s", promo_code_id, order_id)
        raise PromoUsageLimitError(promo_code_id)

    usage = PromoCodeUsage(
        promo_code_id=promo_code_id,
        customer_id=customer_id,
        order_id=order_id,
        discount_amount=quantize_money(discount_amount),
        used_at=now,
    )
    db.add(usage)
    await db.flush()
    logger.info(
        "Recorded promo usage %s for order %s (promo %s)", usage.id, order_id, promo_code_id
    )
    return usage


async def create_promo_code(db: AsyncSession, data: dict[str, Any]) -> PromoCode:
    """Insert a promo code; the code itself is stored upper-case."""
    now = utcnow()
    promo = PromoCode(
        code=data["code"].strip().upper(),
        description=data["description"],
        discount_type=DiscountType(data["discount_type"]).value,
        discount_value=quantize_money(data["discount_value"]),
        min_order_amount=_money_or_none(data.get("min_order_amount")),
        max_discount=_money_or_none(data.get("max_discount")),
        start_date=data["start_date"],
        end_date=data["end_date"],
        usage_limit=data.get("usage_limit"),
        usage_count=0,
        per_customer_limit=data.get("per_customer_limit", 1),
        applicable_products=data.get("applicable_products") or None,
        applicable_categories=data.get("applicable_categories") or None,
        first_time_only=bool(data.get("first_time_only", False)),
        active=bool(data.get("active", True)),
        created_at=now,
        updated_at=now,
    )
    db.add(promo)
    await db.flush()
    logger.info("Created promo code %s (%s)", promo.code, promo.id)
    return promo


async def list_active_promo_codes(
    db: AsyncSession, now: datetime | None = None
) -> list[PromoCode]:
    now = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(PromoCode)
        .where(PromoCode.active.is_(True), PromoCode.end_date >= now)
        .order_by(PromoCode.created_at.desc())
    )
    return list(result.scalars().all())


async def update_promo_code(
    db: AsyncSession, promo_id: str, updates: dict[str, Any]
) -> PromoCode | None:
    """Apply a partial update. Returns None when the id is unknown."""
    promo = await db.get(PromoCode, promo_id)
    if promo is None:
        return None

    changed = False
    for field, value in updates.items():
        if field not in UPDATABLE_FIELDS:
            continue
        if field in ("discount_value", "min_order_amount", "max_discount"):
            value = _money_or_none(value)
        setattr(promo, field, value)
        changed = True

    if changed:
        promo.updated_at = utcnow()
        await db.flush()
    return promo


async def delete_promo_code(db: AsyncSession, promo_id: str) -> bool:
    result = await db.execute(delete(PromoCode).where(PromoCode.id == promo_id))
    return result.rowcount > 0


def _money_or_none(value: Any) -> Any:
    return None if value is None else quantize_money(value)
