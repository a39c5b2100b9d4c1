"""Gift card ledger.

Two layers:

``GiftCardStore``
    SQLAlchemy-backed persistence. Owns the balance rules: it clamps the
    balance at zero, derives status from the balance and writes one
    ``gift_card_transactions`` row per mutation.

``GiftCardLedger``
    The admin-facing operations (adjust, void, reactivate). It submits
    signed deltas to the store unchanged, caps notes and insists on an
    ``Actor`` for every call. It does not clamp balances.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from filtersfast.errors import GiftCardNotFoundError, GiftCardStateError
from filtersfast.models import GiftCard, GiftCardTransaction, utcnow

from .money import quantize_money
from .types import Actor, GiftCardStatus, GiftCardTransactionType

logger = logging.getLogger(__name__)

CODE_CHARSET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 16
MAX_NOTE_LENGTH = 500
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
SYSTEM_ACTOR = Actor(id="system", name="System")

ZERO = Decimal("0.00")


def generate_gift_card_code(length: int = CODE_LENGTH) -> str:
    """Random code in groups of four, e.g. ``K7QM-2ZP9-WXR4-H3NB``."""
    raw = "".join(secrets.choice(CODE_CHARSET) for _ in range(length))
    return "-".join(raw[i : i + 4] for i in range(0, length, 4))


class GiftCardStore:
    """Gift card rows and their transaction history."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, gift_card_id: str) -> GiftCard:
        card = await self.db.get(GiftCard, gift_card_id)
        if card is None:
            raise GiftCardNotFoundError(gift_card_id)
        return card

    async def get_by_code(self, code: str) -> GiftCard | None:
        result = await self.db.execute(
            select(GiftCard).where(func.lower(GiftCard.code) == code.strip().lower())
        )
        return result.scalar_one_or_none()

    async def _record(
        self,
        card: GiftCard,
        type_: GiftCardTransactionType,
        amount: Decimal,
        actor: Actor,
        note: str | None = None,
        order_id: str | None = None,
    ) -> GiftCardTransaction:
        transaction = GiftCardTransaction(
            gift_card_id=card.id,
            type=type_.value,
            amount=amount,
            balance_after=card.balance,
            order_id=order_id,
            note=note,
            performed_by_id=actor.id,
            performed_by_name=actor.name,
            created_at=utcnow(),
        )
        self.db.add(transaction)
        await self.db.flush()
        return transaction

    async def issue(
        self,
        amount: float,
        *,
        currency: str = "USD",
        order_id: str | None = None,
        purchaser_name: str | None = None,
        purchaser_email: str | None = None,
        recipient_name: str | None = None,
        recipient_email: str | None = None,
        message: str | None = None,
        send_at: datetime | None = None,
    ) -> GiftCard:
        now = utcnow()
        code = generate_gift_card_code()
        while await self.get_by_code(code) is not None:
            code = generate_gift_card_code()

        if send_at is not None and send_at.tzinfo is None:
            send_at = send_at.replace(tzinfo=timezone.utc)
        scheduled = send_at is not None and send_at > now
        value = quantize_money(amount)
        card = GiftCard(
            code=code,
            initial_value=value,
            balance=value,
            currency=currency,
            status=(GiftCardStatus.PENDING if scheduled else GiftCardStatus.ACTIVE).value,
            order_id=order_id,
            purchaser_name=purchaser_name,
            purchaser_email=purchaser_email,
            recipient_name=recipient_name,
            recipient_email=recipient_email,
            message=message,
            send_at=send_at,
            issued_at=None if scheduled else now,
            created_at=now,
            updated_at=now,
        )
        self.db.add(card)
        await self.db.flush()

        issuer = Actor(id="system", name=purchaser_name or SYSTEM_ACTOR.name)
        await self._record(card, GiftCardTransactionType.ISSUE, value, issuer, order_id=order_id)
        logger.info("Issued gift card %s for %s %s", card.id, value, currency)
        return card

    async def redeem(
        self,
        code: str,
        amount: float,
        actor: Actor = SYSTEM_ACTOR,
        *,
        order_id: str | None = None,
        note: str | None = None,
    ) -> GiftCard:
        card = await self.get_by_code(code)
        if card is None:
            raise GiftCardNotFoundError(code)
        if card.status == GiftCardStatus.VOID:
            raise GiftCardStateError("Gift card is void")
        if card.status == GiftCardStatus.PENDING:
            raise GiftCardStateError("Gift card is not yet active")
        if card.balance <= ZERO:
            raise GiftCardStateError("Gift card has no remaining balance")

        value = quantize_money(amount)
        if value <= ZERO:
            raise GiftCardStateError("Redemption amount must be positive")
        if value > card.balance:
            raise GiftCardStateError("Redemption amount exceeds available balance")

        now = utcnow()
        card.balance = card.balance - value
        card.status = (
            GiftCardStatus.REDEEMED if card.balance == ZERO else GiftCardStatus.PARTIALLY_REDEEMED
        ).value
        card.last_redeemed_at = now
        card.updated_at = now
        await self._record(
            card, GiftCardTransactionType.REDEEM, value, actor, note=note, order_id=order_id
        )
        return card

    async def apply_adjustment(
        self, gift_card_id: str, amount: Decimal, note: str, actor: Actor
    ) -> GiftCard:
        """Apply a signed delta. The balance never drops below zero."""
        card = await self.get(gift_card_id)
        new_balance = max(ZERO, card.balance + amount)
        card.balance = new_balance
        if card.status != GiftCardStatus.VOID:
            card.status = (
                GiftCardStatus.REDEEMED if new_balance == ZERO else GiftCardStatus.ACTIVE
            ).value
        card.updated_at = utcnow()
        await self._record(card, GiftCardTransactionType.ADJUST, amount, actor, note=note)
        return card

    async def mark_void(self, gift_card_id: str, actor: Actor) -> GiftCard:
        card = await self.get(gift_card_id)
        if card.status == GiftCardStatus.VOID:
            return card

        previous_balance = card.balance
        card.status = GiftCardStatus.VOID.value
        card.balance = ZERO
        card.updated_at = utcnow()
        await self._record(
            card,
            GiftCardTransactionType.VOID,
            previous_balance,
            actor,
            note="Gift card voided",
        )
        return card

    async def mark_active(self, gift_card_id: str, balance: Decimal, actor: Actor) -> GiftCard:
        card = await self.get(gift_card_id)
        card.status = GiftCardStatus.ACTIVE.value
        card.balance = balance
        card.updated_at = utcnow()
        await self._record(
            card,
            GiftCardTransactionType.REACTIVATE,
            balance,
            actor,
            note="Gift card reactivated",
        )
        return card

    async def list_transactions(self, gift_card_id: str) -> list[GiftCardTransaction]:
        result = await self.db.execute(
            select(GiftCardTransaction)
            .where(GiftCardTransaction.gift_card_id == gift_card_id)
            .order_by(GiftCardTransaction.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_cards(
        self,
        *,
        search: str | None = None,
        statuses: list[str] | None = None,
        email: str | None = None,
        min_balance: float | None = None,
        max_balance: float | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> dict[str, Any]:
        conditions = []
        if search:
            like = f"%{search}%"
            conditions.append(
                or_(
                    GiftCard.code.like(like),
                    GiftCard.recipient_email.like(like),
                    GiftCard.purchaser_email.like(like),
                )
            )
        if statuses:
            conditions.append(GiftCard.status.in_(statuses))
        if email:
            conditions.append(
                or_(GiftCard.recipient_email == email, GiftCard.purchaser_email == email)
            )
        if min_balance is not None:
            conditions.append(GiftCard.balance >= quantize_money(min_balance))
        if max_balance is not None:
            conditions.append(GiftCard.balance <= quantize_money(max_balance))
        if date_from is not None:
            conditions.append(GiftCard.created_at >= date_from)
        if date_to is not None:
            conditions.append(GiftCard.created_at <= date_to)

        limit = max(1, min(limit or DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE))
        offset = max(offset or 0, 0)

        total = (
            await self.db.execute(select(func.count()).select_from(GiftCard).where(*conditions))
        ).scalar_one()
        rows = (
            await self.db.execute(
                select(GiftCard)
                .where(*conditions)
                .order_by(GiftCard.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
        ).scalars().all()

        return {
            "gift_cards": list(rows),
            "total": int(total),
            "limit": limit,
            "offset": offset,
            "has_more": offset + len(rows) < total,
        }


class GiftCardLedger:
    """Admin balance operations with mandatory actor attribution."""

    def __init__(self, store: Any) -> None:
        self.store = store

    @staticmethod
    def _require_actor(actor: Actor) -> Actor:
        if not isinstance(actor, Actor):
            raise TypeError("Gift card mutations require an Actor with id and name")
        return actor

    async def adjust_balance(
        self, gift_card_id: str, amount: float, note: str, actor: Actor
    ) -> GiftCard:
        """Submit a signed balance delta.

        The delta is passed through as-is; any balance floor is the store's
        business.
        """
        self._require_actor(actor)
        note = (note or "")[:MAX_NOTE_LENGTH]
        card = await self.store.apply_adjustment(
            gift_card_id, quantize_money(amount), note, actor
        )
        logger.info(
            "Gift card %s adjusted by %s (actor %s)", gift_card_id, amount, actor.id
        )
        return card

    async def void(self, gift_card_id: str, actor: Actor) -> GiftCard:
        """Make the card unusable. Voiding a void card is a no-op."""
        self._require_actor(actor)
        card = await self.store.mark_void(gift_card_id, actor)
        logger.info("Gift card %s voided (actor %s)", gift_card_id, actor.id)
        return card

    async def reactivate(self, gift_card_id: str, balance: float, actor: Actor) -> GiftCard:
        """Reactivate with exactly ``balance``, ignoring the pre-void balance."""
        self._require_actor(actor)
        if balance <= 0:
            raise GiftCardStateError(
                "A positive balance is required to reactivate a gift card."
            )
        card = await self.store.mark_active(gift_card_id, quantize_money(balance), actor)
        logger.info(
            "Gift card %s reactivated with %s (actor %s)", gift_card_id, balance, actor.id
        )
        return card
