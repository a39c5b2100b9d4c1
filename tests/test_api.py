"""HTTP-level tests for the checkout API.

Each test drives the FastAPI app through ``httpx.AsyncClient`` against the
in-memory test database and the stubbed tax oracle.

Run with: pytest tests/ -v
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from tests.helpers import StubTaxOracle


def _promo_body(**overrides) -> dict:
    now = datetime.now(timezone.utc)
    body = {
        "code": "welcome15",
        "description": "15% off your first filter order",
        "discount_type": "percentage",
        "discount_value": 15,
        "start_date": (now - timedelta(days=1)).isoformat(),
        "end_date": (now + timedelta(days=30)).isoformat(),
        "usage_limit": 2,
        "per_customer_limit": 1,
    }
    body.update(overrides)
    return body


CART = {
    "cart_total": 120.0,
    "cart_items": [{"product_id": "FLT-16x25", "category_id": "air", "price": 60, "quantity": 2}],
}


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestPromoCodeEndpoints:
    @pytest.mark.asyncio
    async def test_create_and_validate(self, client: AsyncClient) -> None:
        """POST /promo-codes/ stores the code upper-cased; validate is case-insensitive."""
        created = await client.post("/promo-codes/", json=_promo_body())
        assert created.status_code == 201
        assert created.json()["code"] == "WELCOME15"

        response = await client.post("/promo-codes/validate", json={"code": "Welcome15", **CART})
        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["discount_amount"] == 18.0

    @pytest.mark.asyncio
    async def test_validate_unknown_code_is_200(self, client: AsyncClient) -> None:
        response = await client.post("/promo-codes/validate", json={"code": "NOPE", **CART})
        assert response.status_code == 200
        assert response.json()["error_code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_duplicate_code_conflicts(self, client: AsyncClient) -> None:
        await client.post("/promo-codes/", json=_promo_body())
        response = await client.post("/promo-codes/", json=_promo_body(code="WELCOME15"))
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_invalid_rule_rejected(self, client: AsyncClient) -> None:
        response = await client.post(
            "/promo-codes/", json=_promo_body(discount_value=150)
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_apply_returns_totals(self, client: AsyncClient) -> None:
        await client.post("/promo-codes/", json=_promo_body())
        response = await client.post(
            "/promo-codes/apply", json={"code": "WELCOME15", "shipping_cost": 7.5, **CART}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["new_subtotal"] == 102.0
        assert data["new_total"] == 109.5

    @pytest.mark.asyncio
    async def test_redeem_until_limit(self, client: AsyncClient) -> None:
        """Two redemptions succeed; the third hits the global usage limit."""
        await client.post("/promo-codes/", json=_promo_body())

        for n in range(2):
            response = await client.post(
                "/promo-codes/redeem",
                json={"code": "WELCOME15", "customer_id": f"c{n}", "order_id": f"o{n}", **CART},
            )
            assert response.status_code == 201
            assert response.json()["discount_amount"] == 18.0

        response = await client.post(
            "/promo-codes/redeem",
            json={"code": "WELCOME15", "customer_id": "c9", "order_id": "o9", **CART},
        )
        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == "USAGE_LIMIT_REACHED"

    @pytest.mark.asyncio
    async def test_update_and_delete(self, client: AsyncClient) -> None:
        promo_id = (await client.post("/promo-codes/", json=_promo_body())).json()["id"]

        response = await client.patch(f"/promo-codes/{promo_id}", json={"active": False})
        assert response.status_code == 200
        assert response.json()["active"] is False

        assert (await client.delete(f"/promo-codes/{promo_id}")).status_code == 204
        assert (await client.delete(f"/promo-codes/{promo_id}")).status_code == 404


class TestDealEndpoints:
    @pytest.mark.asyncio
    async def test_create_and_match(self, client: AsyncClient) -> None:
        created = await client.post(
            "/deals/",
            json={
                "description": "Free sample over $75",
                "start_price": 75,
                "end_price": 150,
                "reward_skus": "SAMPLE-1@0*2\nbad!sku",
            },
        )
        assert created.status_code == 201
        assert created.json()["reward_skus"] == [
            {"sku": "SAMPLE-1", "quantity": 2, "price_override": 0.0},
            {"sku": "badsku", "quantity": 1, "price_override": None},
        ]

        match = await client.get("/deals/applicable", params={"subtotal": 100})
        assert match.status_code == 200
        assert match.json()["description"] == "Free sample over $75"

        miss = await client.get("/deals/applicable", params={"subtotal": 10})
        assert miss.json() is None

    @pytest.mark.asyncio
    async def test_inverted_band_rejected(self, client: AsyncClient) -> None:
        response = await client.post(
            "/deals/", json={"description": "Broken", "start_price": 100, "end_price": 50}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_parse_rewards_preview(self, client: AsyncClient) -> None:
        response = await client.post("/deals/parse-rewards", json={"text": "ABC123@19.99*3"})
        assert response.json()["rewards"] == [
            {"sku": "ABC123", "quantity": 3, "price_override": 19.99}
        ]

    @pytest.mark.asyncio
    async def test_bulk_delete(self, client: AsyncClient) -> None:
        ids = []
        for n in range(2):
            response = await client.post(
                "/deals/",
                json={"description": f"Deal {n}", "start_price": 0, "end_price": 10},
            )
            ids.append(response.json()["id"])

        response = await client.request("DELETE", "/deals/", json={"ids": ids})
        assert response.json() == {"deleted": 2}
        assert (await client.get(f"/deals/{ids[0]}")).status_code == 404


class TestGiftCardEndpoints:
    ACTOR = {"actor_id": "admin_1", "actor_name": "Robin Ops"}

    async def _issue(self, client: AsyncClient, amount: float = 50) -> dict:
        response = await client.post("/gift-cards/", json={"amount": amount})
        assert response.status_code == 201
        return response.json()

    @pytest.mark.asyncio
    async def test_issue_and_redeem(self, client: AsyncClient) -> None:
        card = await self._issue(client)
        response = await client.post(
            "/gift-cards/redeem", json={"code": card["code"].lower(), "amount": 20}
        )
        assert response.status_code == 200
        assert response.json()["balance"] == 30.0

        overdraw = await client.post("/gift-cards/redeem", json={"code": card["code"], "amount": 99})
        assert overdraw.status_code == 400

    @pytest.mark.asyncio
    async def test_adjust_records_actor(self, client: AsyncClient) -> None:
        card = await self._issue(client)
        response = await client.post(
            f"/gift-cards/{card['id']}/adjust",
            json={"amount": -999999, "note": "Chargeback", **self.ACTOR},
        )
        assert response.status_code == 200
        assert response.json()["balance"] == 0.0

        history = (await client.get(f"/gift-cards/{card['id']}/transactions")).json()
        adjustment = next(tx for tx in history if tx["type"] == "adjust")
        assert adjustment["amount"] == -999999.0
        assert adjustment["performed_by_name"] == "Robin Ops"

    @pytest.mark.asyncio
    async def test_adjust_without_actor_rejected(self, client: AsyncClient) -> None:
        card = await self._issue(client)
        response = await client.post(
            f"/gift-cards/{card['id']}/adjust", json={"amount": 5, "note": "x"}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_reactivate_with_zero_balance_rejected(self, client: AsyncClient) -> None:
        card = await self._issue(client)
        await client.post(f"/gift-cards/{card['id']}/void", json=self.ACTOR)

        response = await client.post(
            f"/gift-cards/{card['id']}/reactivate", json={"balance": 0, **self.ACTOR}
        )
        assert response.status_code == 400

        response = await client.post(
            f"/gift-cards/{card['id']}/reactivate", json={"balance": 15, **self.ACTOR}
        )
        assert response.status_code == 200
        assert response.json()["status"] == "active"
        assert response.json()["balance"] == 15.0

    @pytest.mark.asyncio
    async def test_unknown_card(self, client: AsyncClient) -> None:
        response = await client.post("/gift-cards/gift_nope/void", json=self.ACTOR)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_with_status_filter(self, client: AsyncClient) -> None:
        card = await self._issue(client)
        await self._issue(client)
        await client.post(f"/gift-cards/{card['id']}/void", json=self.ACTOR)

        response = await client.get("/gift-cards/", params={"status": "void"})
        data = response.json()
        assert data["total"] == 1
        assert data["gift_cards"][0]["id"] == card["id"]


class TestTaxEndpoints:
    BODY = {
        "address": "1 Main St",
        "city": "Columbia",
        "state": "SC",
        "zip_code": "29201",
        "subtotal": 100,
        "shipping": 0,
    }

    @pytest.mark.asyncio
    async def test_calculate(self, client: AsyncClient) -> None:
        response = await client.post("/tax/calculate", json=self.BODY)
        assert response.status_code == 200
        assert response.json()["tax"]["amount"] == 8.0

    @pytest.mark.asyncio
    async def test_oracle_failure_returns_zero_tax_with_500(
        self, client: AsyncClient, tax_oracle: StubTaxOracle
    ) -> None:
        tax_oracle.fail_with(502)
        response = await client.post("/tax/calculate", json=self.BODY)

        assert response.status_code == 500
        data = response.json()
        assert data["success"] is False
        assert data["tax"] == {
            "rate": 0.0,
            "amount": 0.0,
            "taxable_amount": 0.0,
            "has_nexus": False,
            "shipping_taxable": False,
        }

        logs = (await client.get("/tax/logs")).json()
        assert len(logs) == 1
        assert logs[0]["success"] is False
        assert '"address": "1 Main St"' in logs[0]["sales_tax_request"]

    @pytest.mark.asyncio
    async def test_missing_fields_rejected(self, client: AsyncClient) -> None:
        response = await client.post("/tax/calculate", json={"city": "Columbia"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_rate_lookup(self, client: AsyncClient, tax_oracle: StubTaxOracle) -> None:
        response = await client.get(
            "/tax/rate", params={"zip": "29201", "state": "SC", "city": "Columbia"}
        )
        assert response.json() == {"success": True, "rate": 0.08, "has_nexus": True, "error": None}

        tax_oracle.fail_with(500)
        response = await client.get(
            "/tax/rate", params={"zip": "29201", "state": "SC", "city": "Columbia"}
        )
        assert response.status_code == 500
        assert response.json()["rate"] == 0.0

    @pytest.mark.asyncio
    async def test_rate_limited_per_client(self, client: AsyncClient) -> None:
        headers = {"X-Forwarded-For": "203.0.113.10"}
        for _ in range(50):
            response = await client.get(
                "/tax/rate",
                params={"zip": "97201", "state": "OR", "city": "Portland"},
                headers=headers,
            )
            assert response.status_code == 200

        blocked = await client.get(
            "/tax/rate", params={"zip": "97201", "state": "OR", "city": "Portland"}, headers=headers
        )
        assert blocked.status_code == 429

        other = await client.get(
            "/tax/rate",
            params={"zip": "97201", "state": "OR", "city": "Portland"},
            headers={"X-Forwarded-For": "203.0.113.11"},
        )
        assert other.status_code == 200

    @pytest.mark.asyncio
    async def test_stats(self, client: AsyncClient) -> None:
        await client.post("/tax/calculate", json=self.BODY)
        response = await client.get("/tax/stats")
        assert response.json()["successful_calculations"] == 1


class TestShipmentEndpoints:
    SHIPMENT = {
        "id": "shp_api_1",
        "order_id": "ord_500",
        "carrier": "usps",
        "service_code": "PRIORITY",
        "service_name": "Priority Mail",
        "tracking_number": "9400111899223856921234",
        "rate": 8.95,
        "raw_response": {"postage": 8.95},
        "metadata": {"weight_oz": 22},
    }

    @pytest.mark.asyncio
    async def test_record_get_and_update(self, client: AsyncClient) -> None:
        created = await client.post("/shipments/", json=self.SHIPMENT)
        assert created.status_code == 201

        duplicate = await client.post("/shipments/", json=self.SHIPMENT)
        assert duplicate.status_code == 409

        response = await client.patch(
            "/shipments/shp_api_1/status",
            json={"status": "delivered", "label_url": "https://labels.example.com/x.pdf"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "delivered"
        assert data["raw_response"] == {"postage": 8.95}
        assert data["metadata"] == {"weight_oz": 22}

        fetched = await client.get("/shipments/shp_api_1")
        assert fetched.json()["label_url"] == "https://labels.example.com/x.pdf"

    @pytest.mark.asyncio
    async def test_empty_metadata_clears_stored_metadata(self, client: AsyncClient) -> None:
        await client.post("/shipments/", json=self.SHIPMENT)
        response = await client.patch(
            "/shipments/shp_api_1/status", json={"status": "in_transit", "metadata": {}}
        )
        data = response.json()
        assert data["metadata"] == {}
        assert data["raw_response"] == {"postage": 8.95}

    @pytest.mark.asyncio
    async def test_update_unknown_shipment(self, client: AsyncClient) -> None:
        response = await client.patch("/shipments/missing/status", json={"status": "delivered"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_by_carrier(self, client: AsyncClient) -> None:
        await client.post("/shipments/", json=self.SHIPMENT)
        response = await client.get("/shipments/", params={"carrier": "usps"})
        assert [s["id"] for s in response.json()] == ["shp_api_1"]

        response = await client.get("/shipments/", params={"carrier": "dhl"})
        assert response.json() == []
