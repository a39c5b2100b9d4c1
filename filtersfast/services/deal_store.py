"""Deal persistence and cart-total matching."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from filtersfast.models import Deal, utcnow

from .deals import MAX_PRICE, deserialize_reward_skus, serialize_reward_skus
from .money import quantize_money
from .sanitize import sanitize_text
from .types import RewardSku

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 100
MAX_UNITS = 999


def _clamp_price(value: float) -> float:
    return max(0.0, min(MAX_PRICE, float(value)))


def _apply_form(deal: Deal, data: dict[str, Any]) -> None:
    deal.description = sanitize_text(data["description"], MAX_DESCRIPTION_LENGTH)
    deal.start_price = quantize_money(_clamp_price(data["start_price"]))
    deal.end_price = quantize_money(_clamp_price(data["end_price"]))
    deal.units = max(0, min(MAX_UNITS, int(data.get("units", 0))))
    deal.active = bool(data.get("active", True))
    deal.valid_from = data.get("valid_from")
    deal.valid_to = data.get("valid_to")
    deal.reward_auto_add = bool(data.get("reward_auto_add", False))

    rewards: list[RewardSku] = data.get("reward_skus") or []
    deal.reward_skus = serialize_reward_skus(rewards) if rewards else None
    deal.updated_at = utcnow()


def reward_skus_for(deal: Deal) -> list[RewardSku]:
    return deserialize_reward_skus(deal.reward_skus)


async def create_deal(db: AsyncSession, data: dict[str, Any]) -> Deal:
    deal = Deal(created_at=utcnow())
    _apply_form(deal, data)
    db.add(deal)
    await db.flush()
    logger.info("Created deal %d (%s)", deal.id, deal.description)
    return deal


async def update_deal(db: AsyncSession, deal_id: int, data: dict[str, Any]) -> Deal | None:
    deal = await db.get(Deal, deal_id)
    if deal is None:
        return None
    _apply_form(deal, data)
    await db.flush()
    return deal


async def get_deal(db: AsyncSession, deal_id: int) -> Deal | None:
    return await db.get(Deal, deal_id)


async def list_deals(db: AsyncSession) -> list[Deal]:
    result = await db.execute(select(Deal).order_by(Deal.created_at.desc(), Deal.id.desc()))
    return list(result.scalars().all())


async def delete_deals(db: AsyncSession, deal_ids: list[int]) -> int:
    if not deal_ids:
        return 0
    result = await db.execute(delete(Deal).where(Deal.id.in_(deal_ids)))
    return result.rowcount


async def get_applicable_deal(
    db: AsyncSession, cart_total: float, now: datetime | None = None
) -> Deal | None:
    """Active, in-window deal whose price band contains the cart total.

    When bands overlap the one with the highest start price wins.
    """
    now = now or datetime.now(timezone.utc)
    total = quantize_money(cart_total)
    result = await db.execute(
        select(Deal)
        .where(
            Deal.active.is_(True),
            Deal.start_price <= total,
            Deal.end_price >= total,
            or_(Deal.valid_from.is_(None), Deal.valid_from <= now),
            or_(Deal.valid_to.is_(None), Deal.valid_to >= now),
        )
        .order_by(Deal.start_price.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()
