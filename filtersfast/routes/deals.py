"""Deal routes.

GET    /deals/                       - List all deals (admin)
POST   /deals/                       - Create a deal (admin)
DELETE /deals/                       - Delete deals by id (admin)
GET    /deals/applicable?subtotal=   - Best matching deal for a cart subtotal
POST   /deals/parse-rewards          - Preview how reward SKU text will be parsed
GET    /deals/{id}                   - Get a deal
PUT    /deals/{id}                   - Replace a deal (admin)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from filtersfast.database import get_db
from filtersfast.models import Deal
from filtersfast.schemas import (
    DealRequest,
    DealResponse,
    DeleteDealsRequest,
    ParseRewardSkusRequest,
    ParseRewardSkusResponse,
)
from filtersfast.services import deal_store
from filtersfast.services.deals import parse_reward_skus
from filtersfast.services.rate_limit import rate_limited

logger = logging.getLogger(__name__)
router = APIRouter()

admin_limit = rate_limited("admin_rate_limiter", "deals-admin")


def _to_response(deal: Deal) -> DealResponse:
    return DealResponse(
        id=deal.id,
        description=deal.description,
        start_price=float(deal.start_price),
        end_price=float(deal.end_price),
        units=deal.units,
        active=deal.active,
        valid_from=deal.valid_from,
        valid_to=deal.valid_to,
        reward_skus=deal_store.reward_skus_for(deal),
        reward_auto_add=deal.reward_auto_add,
        created_at=deal.created_at,
        updated_at=deal.updated_at,
    )


def _form(request: DealRequest) -> dict:
    data = request.model_dump()
    data["reward_skus"] = parse_reward_skus(request.reward_skus)
    return data


@router.get("/", response_model=list[DealResponse], dependencies=[Depends(admin_limit)])
async def list_deals(db: AsyncSession = Depends(get_db)) -> list[DealResponse]:
    return [_to_response(deal) for deal in await deal_store.list_deals(db)]


@router.post(
    "/", response_model=DealResponse, status_code=201, dependencies=[Depends(admin_limit)]
)
async def create_deal(
    request: DealRequest,
    db: AsyncSession = Depends(get_db),
) -> DealResponse:
    """Create a deal; reward SKU text is parsed, clamped and stored as JSON."""
    deal = await deal_store.create_deal(db, _form(request))
    return _to_response(deal)


@router.delete("/", dependencies=[Depends(admin_limit)])
async def delete_deals(
    request: DeleteDealsRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    deleted = await deal_store.delete_deals(db, request.ids)
    logger.info("Deleted %d deal(s)", deleted)
    return {"deleted": deleted}


@router.get("/applicable", response_model=DealResponse | None)
async def applicable_deal(
    subtotal: float = Query(..., ge=0),
    db: AsyncSession = Depends(get_db),
) -> DealResponse | None:
    """Return the deal whose price band covers ``subtotal``, or null."""
    deal = await deal_store.get_applicable_deal(db, subtotal)
    return _to_response(deal) if deal is not None else None


@router.post("/parse-rewards", response_model=ParseRewardSkusResponse)
async def parse_rewards(request: ParseRewardSkusRequest) -> ParseRewardSkusResponse:
    return ParseRewardSkusResponse(rewards=parse_reward_skus(request.text))


@router.get("/{deal_id}", response_model=DealResponse)
async def get_deal(deal_id: int, db: AsyncSession = Depends(get_db)) -> DealResponse:
    deal = await deal_store.get_deal(db, deal_id)
    if deal is None:
        raise HTTPException(status_code=404, detail="Deal not found")
    return _to_response(deal)


@router.put("/{deal_id}", response_model=DealResponse, dependencies=[Depends(admin_limit)])
async def update_deal(
    deal_id: int,
    request: DealRequest,
    db: AsyncSession = Depends(get_db),
) -> DealResponse:
    deal = await deal_store.update_deal(db, deal_id, _form(request))
    if deal is None:
        raise HTTPException(status_code=404, detail="Deal not found")
    return _to_response(deal)
