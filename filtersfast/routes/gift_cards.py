"""Gift card routes.

POST /gift-cards/                    - Issue a gift card
POST /gift-cards/redeem              - Redeem part or all of a card's balance
GET  /gift-cards/                    - Search gift cards (admin)
GET  /gift-cards/code/{code}         - Look up a card by code
GET  /gift-cards/{id}                - Get a gift card
GET  /gift-cards/{id}/transactions   - Ledger history for a card (admin)
POST /gift-cards/{id}/adjust         - Apply a signed balance adjustment (admin)
POST /gift-cards/{id}/void           - Void a card (admin)
POST /gift-cards/{id}/reactivate     - Reactivate a card with a new balance (admin)
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from filtersfast.database import get_db
from filtersfast.errors import GiftCardNotFoundError, GiftCardStateError
from filtersfast.schemas import (
    ActorRequest,
    AdjustGiftCardRequest,
    GiftCardListResponse,
    GiftCardResponse,
    GiftCardTransactionResponse,
    IssueGiftCardRequest,
    ReactivateGiftCardRequest,
    RedeemGiftCardRequest,
)
from filtersfast.services.gift_cards import GiftCardLedger, GiftCardStore
from filtersfast.services.rate_limit import rate_limited
from filtersfast.services.types import GiftCardStatus

logger = logging.getLogger(__name__)
router = APIRouter()

admin_limit = rate_limited("admin_rate_limiter", "gift-cards-admin")


def _ledger(db: AsyncSession) -> GiftCardLedger:
    return GiftCardLedger(GiftCardStore(db))


@router.post("/", response_model=GiftCardResponse, status_code=201)
async def issue_gift_card(
    request: IssueGiftCardRequest,
    db: AsyncSession = Depends(get_db),
) -> GiftCardResponse:
    card = await GiftCardStore(db).issue(**request.model_dump())
    return GiftCardResponse.model_validate(card)


@router.post("/redeem", response_model=GiftCardResponse)
async def redeem_gift_card(
    request: RedeemGiftCardRequest,
    db: AsyncSession = Depends(get_db),
) -> GiftCardResponse:
    try:
        card = await GiftCardStore(db).redeem(
            request.code, request.amount, order_id=request.order_id, note=request.note
        )
    except GiftCardNotFoundError:
        raise HTTPException(status_code=404, detail="Gift card not found")
    except GiftCardStateError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return GiftCardResponse.model_validate(card)


@router.get("/", response_model=GiftCardListResponse, dependencies=[Depends(admin_limit)])
async def list_gift_cards(
    search: str | None = None,
    status: list[GiftCardStatus] | None = Query(default=None),
    email: str | None = None,
    min_balance: float | None = Query(default=None, ge=0),
    max_balance: float | None = Query(default=None, ge=0),
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> GiftCardListResponse:
    page = await GiftCardStore(db).list_cards(
        search=search,
        statuses=[s.value for s in status] if status else None,
        email=email,
        min_balance=min_balance,
        max_balance=max_balance,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return GiftCardListResponse(
        gift_cards=[GiftCardResponse.model_validate(card) for card in page["gift_cards"]],
        total=page["total"],
        limit=page["limit"],
        offset=page["offset"],
        has_more=page["has_more"],
    )


@router.get("/code/{code}", response_model=GiftCardResponse)
async def get_gift_card_by_code(code: str, db: AsyncSession = Depends(get_db)) -> GiftCardResponse:
    card = await GiftCardStore(db).get_by_code(code)
    if card is None:
        raise HTTPException(status_code=404, detail="Gift card not found")
    return GiftCardResponse.model_validate(card)


@router.get("/{gift_card_id}", response_model=GiftCardResponse)
async def get_gift_card(gift_card_id: str, db: AsyncSession = Depends(get_db)) -> GiftCardResponse:
    try:
        card = await GiftCardStore(db).get(gift_card_id)
    except GiftCardNotFoundError:
        raise HTTPException(status_code=404, detail="Gift card not found")
    return GiftCardResponse.model_validate(card)


@router.get(
    "/{gift_card_id}/transactions",
    response_model=list[GiftCardTransactionResponse],
    dependencies=[Depends(admin_limit)],
)
async def list_transactions(
    gift_card_id: str, db: AsyncSession = Depends(get_db)
) -> list[GiftCardTransactionResponse]:
    store = GiftCardStore(db)
    try:
        await store.get(gift_card_id)
    except GiftCardNotFoundError:
        raise HTTPException(status_code=404, detail="Gift card not found")
    return [
        GiftCardTransactionResponse.model_validate(tx)
        for tx in await store.list_transactions(gift_card_id)
    ]


@router.post(
    "/{gift_card_id}/adjust",
    response_model=GiftCardResponse,
    dependencies=[Depends(admin_limit)],
)
async def adjust_gift_card(
    gift_card_id: str,
    request: AdjustGiftCardRequest,
    db: AsyncSession = Depends(get_db),
) -> GiftCardResponse:
    """Apply a signed adjustment. The balance floor is enforced by the store."""
    try:
        card = await _ledger(db).adjust_balance(
            gift_card_id, request.amount, request.note, request.actor
        )
    except GiftCardNotFoundError:
        raise HTTPException(status_code=404, detail="Gift card not found")
    return GiftCardResponse.model_validate(card)


@router.post(
    "/{gift_card_id}/void",
    response_model=GiftCardResponse,
    dependencies=[Depends(admin_limit)],
)
async def void_gift_card(
    gift_card_id: str,
    request: ActorRequest,
    db: AsyncSession = Depends(get_db),
) -> GiftCardResponse:
    try:
        card = await _ledger(db).void(gift_card_id, request.actor)
    except GiftCardNotFoundError:
        raise HTTPException(status_code=404, detail="Gift card not found")
    return GiftCardResponse.model_validate(card)


@router.post(
    "/{gift_card_id}/reactivate",
    response_model=GiftCardResponse,
    dependencies=[Depends(admin_limit)],
)
async def reactivate_gift_card(
    gift_card_id: str,
    request: ReactivateGiftCardRequest,
    db: AsyncSession = Depends(get_db),
) -> GiftCardResponse:
    if request.balance <= 0:
        raise HTTPException(
            status_code=400,
            detail="A positive balance is required to reactivate a gift card.",
        )
    try:
        card = await _ledger(db).reactivate(gift_card_id, request.balance, request.actor)
    except GiftCardNotFoundError:
        raise HTTPException(status_code=404, detail="Gift card not found")
    return GiftCardResponse.model_validate(card)
