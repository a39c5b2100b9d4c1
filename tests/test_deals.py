"""Tests for reward SKU parsing and deal persistence."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from filtersfast.services import deal_store
from filtersfast.services.deals import (
    deserialize_reward_skus,
    parse_reward_entry,
    parse_reward_skus,
    serialize_reward_skus,
)
from filtersfast.services.types import RewardSku


class TestRewardSkuParsing:
    def test_price_and_quantity(self) -> None:
        reward = parse_reward_entry("ABC123@19.99*3")
        assert reward == RewardSku(sku="ABC123", quantity=3, price_override=19.99)

    def test_illegal_characters_stripped(self) -> None:
        reward = parse_reward_entry("bad!sku")
        assert reward == RewardSku(sku="badsku", quantity=1, price_override=None)

    def test_x_quantity_suffix_without_price(self) -> None:
        reward = parse_reward_entry("FILTER-20x25 x4")
        assert reward.sku == "FILTER-20x25"
        assert reward.quantity == 4

    def test_quantity_clamped(self) -> None:
        assert parse_reward_entry("SKU1*500").quantity == 100
        assert parse_reward_entry("SKU1*0").quantity == 1
        assert parse_reward_entry("SKU1*-3").quantity == 1

    def test_price_clamped_and_unparseable_dropped(self) -> None:
        assert parse_reward_entry("SKU1@5000000").price_override == 999999.99
        assert parse_reward_entry("SKU1@-2").price_override == 0.0
        assert parse_reward_entry("SKU1@free").price_override is None
        assert parse_reward_entry("SKU1@inf").price_override is None

    def test_entries_without_sku_dropped(self) -> None:
        assert parse_reward_entry("!!!@4.99") is None
        assert parse_reward_entry("   ") is None

    def test_sku_length_capped(self) -> None:
        assert len(parse_reward_entry("A" * 150).sku) == 100

    def test_multiple_entries_keep_order_and_duplicates(self) -> None:
        text = "HEPA-1@9.99*2\r\nCARBON-2, HEPA-1\n\n,"
        rewards = parse_reward_skus(text)
        assert [r.sku for r in rewards] == ["HEPA-1", "CARBON-2", "HEPA-1"]
        assert rewards[0].price_override == 9.99
        assert rewards[0].quantity == 2

    def test_empty_text(self) -> None:
        assert parse_reward_skus("") == []
        assert parse_reward_skus(None) == []


class TestRewardSkuStorage:
    def test_serialized_rewards_read_back(self) -> None:
        rewards = parse_reward_skus("ABC123@19.99*3, XYZ")
        assert deserialize_reward_skus(serialize_reward_skus(rewards)) == rewards

    def test_corrupt_json_reads_as_empty(self) -> None:
        assert deserialize_reward_skus("{not json") == []
        assert deserialize_reward_skus(json.dumps({"sku": "A"})) == []

    def test_stored_values_reclamped(self) -> None:
        raw = json.dumps(
            [
                {"sku": "ok<script>", "quantity": 900, "priceOverride": -5},
                {"sku": "", "quantity": 1},
                "not-an-object",
                {"sku": "B2", "quantity": "many", "price_override": "12.5"},
            ]
        )
        rewards = deserialize_reward_skus(raw)
        assert rewards == [
            RewardSku(sku="okscript", quantity=100, price_override=0.0),
            RewardSku(sku="B2", quantity=1, price_override=12.5),
        ]


def _deal_form(**overrides) -> dict:
    data = {
        "description": "Free filter over $100",
        "start_price": 100,
        "end_price": 199.99,
        "units": 1,
        "active": True,
        "valid_from": None,
        "valid_to": None,
        "reward_skus": parse_reward_skus("FREE-FILTER@0*1"),
        "reward_auto_add": True,
    }
    data.update(overrides)
    return data


class TestDealStore:
    @pytest.mark.asyncio
    async def test_create_sanitizes_and_stores_rewards(self, db_session: AsyncSession) -> None:
        deal = await deal_store.create_deal(
            db_session, _deal_form(description="<b>Spend</b> $100 <script>x()</script>")
        )
        assert deal.description == "Spend $100"
        assert deal_store.reward_skus_for(deal) == [
            RewardSku(sku="FREE-FILTER", quantity=1, price_override=0.0)
        ]

    @pytest.mark.asyncio
    async def test_applicable_deal_prefers_highest_band(self, db_session: AsyncSession) -> None:
        await deal_store.create_deal(db_session, _deal_form(start_price=50, end_price=500))
        best = await deal_store.create_deal(db_session, _deal_form(start_price=100, end_price=200))
        await deal_store.create_deal(
            db_session, _deal_form(start_price=120, end_price=300, active=False)
        )

        found = await deal_store.get_applicable_deal(db_session, 150.0)
        assert found.id == best.id
        assert await deal_store.get_applicable_deal(db_session, 10.0) is None

    @pytest.mark.asyncio
    async def test_applicable_deal_respects_validity_window(
        self, db_session: AsyncSession
    ) -> None:
        now = datetime.now(timezone.utc)
        await deal_store.create_deal(
            db_session,
            _deal_form(valid_from=now + timedelta(days=1), valid_to=now + timedelta(days=5)),
        )
        assert await deal_store.get_applicable_deal(db_session, 150.0, now=now) is None
        assert (
            await deal_store.get_applicable_deal(db_session, 150.0, now=now + timedelta(days=2))
            is not None
        )

    @pytest.mark.asyncio
    async def test_update_and_bulk_delete(self, db_session: AsyncSession) -> None:
        first = await deal_store.create_deal(db_session, _deal_form())
        second = await deal_store.create_deal(db_session, _deal_form())

        updated = await deal_store.update_deal(
            db_session, first.id, _deal_form(description="Updated", reward_skus=[])
        )
        assert updated.description == "Updated"
        assert updated.reward_skus is None
        assert await deal_store.update_deal(db_session, 99999, _deal_form()) is None

        assert await deal_store.delete_deals(db_session, [first.id, second.id, 99999]) == 2
        assert await deal_store.list_deals(db_session) == []
