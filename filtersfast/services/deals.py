"""Deal reward-SKU parsing.

Admins describe the products a deal grants as free text, one entry per line
or comma::

    SKU[@price][*qty|xqty]

``FILTER-20x25@4.99*2`` grants two ``FILTER-20x25`` at $4.99 each. Parsing is
lenient: bad characters are stripped, out-of-range numbers are clamped and
unusable entries are dropped. The persisted JSON goes through the same
clamping on the way back out, so hand-edited rows cannot bypass the bounds.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any

from .types import RewardSku

logger = logging.getLogger(__name__)

MAX_SKU_LENGTH = 100
MIN_QUANTITY = 1
MAX_QUANTITY = 100
MIN_PRICE = 0.0
MAX_PRICE = 999999.99

_ENTRY_SEPARATOR = re.compile(r"[\r\n,]+")
_QUANTITY_SUFFIX = re.compile(r"[*x]\s*(-?\d+)\s*$", re.IGNORECASE)
_SKU_DISALLOWED = re.compile(r"[^A-Za-z0-9._-]")


def sanitize_sku(value: Any) -> str:
    if value is None:
        return ""
    return _SKU_DISALLOWED.sub("", str(value))[:MAX_SKU_LENGTH]


def clamp_quantity(value: Any) -> int:
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        return MIN_QUANTITY
    if quantity < MIN_QUANTITY:
        return MIN_QUANTITY
    return min(quantity, MAX_QUANTITY)


def clamp_price(value: Any) -> float | None:
    """Parse a price override; anything unparseable or non-finite is None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price):
        return None
    return max(MIN_PRICE, min(MAX_PRICE, price))


def _split_quantity(text: str) -> tuple[str, int | None]:
    match = _QUANTITY_SUFFIX.search(text)
    if match is None:
        return text, None
    return text[: match.start()], int(match.group(1))


def parse_reward_entry(entry: str) -> RewardSku | None:
    """Parse one ``SKU[@price][*qty]`` entry, or None if no SKU survives."""
    entry = entry.strip()
    if not entry:
        return None

    sku_part, _, price_part = entry.partition("@")
    price_override = None
    quantity = None

    if price_part:
        price_part, quantity = _split_quantity(price_part.strip())
        price_override = clamp_price(price_part.strip())
    if quantity is None:
        sku_part, quantity = _split_quantity(sku_part.strip())

    sku = sanitize_sku(sku_part)
    if not sku:
        return None

    return RewardSku(
        sku=sku,
        quantity=clamp_quantity(quantity if quantity is not None else MIN_QUANTITY),
        price_override=price_override,
    )


def parse_reward_skus(text: str | None) -> list[RewardSku]:
    """Parse a free-text reward list into ordered ``RewardSku`` entries.

    Duplicate SKUs are kept; callers decide how to merge them.
    """
    if not text:
        return []
    rewards = []
    for entry in _ENTRY_SEPARATOR.split(text):
        reward = parse_reward_entry(entry)
        if reward is not None:
            rewards.append(reward)
    return rewards


def serialize_reward_skus(rewards: list[RewardSku]) -> str:
    return json.dumps([reward.model_dump() for reward in rewards])


def deserialize_reward_skus(raw: str | None) -> list[RewardSku]:
    """Rebuild reward SKUs from persisted JSON, re-validating every field."""
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Discarding unparseable reward SKU JSON")
        return []
    if not isinstance(data, list):
        return []

    rewards = []
    for item in data:
        if not isinstance(item, dict):
            continue
        sku = sanitize_sku(item.get("sku"))
        if not sku:
            continue
        price = item.get("price_override", item.get("priceOverride"))
        rewards.append(
            RewardSku(
                sku=sku,
                quantity=clamp_quantity(item.get("quantity", MIN_QUANTITY)),
                price_override=clamp_price(price),
            )
        )
    return rewards
