"""Exceptions raised by the service layer.

User-facing validation outcomes (promo codes, reward SKU parsing) are returned
as values, never raised. These exceptions cover lookups that miss and state
transitions that a caller asked for incorrectly; routes translate them into
HTTP status codes.
"""

from __future__ import annotations


class FiltersFastError(Exception):
    """Base class for service-layer errors."""


class NotFoundError(FiltersFastError):
    """A record addressed by id does not exist."""


class PromoUsageLimitError(FiltersFastError):
    """The promo code ran out of uses between validation and redemption."""

    def __init__(self, promo_code_id: str) -> None:
        super().__init__(f"Promo code usage limit reached: {promo_code_id}")
        self.promo_code_id = promo_code_id


class GiftCardNotFoundError(NotFoundError):
    def __init__(self, gift_card_id: str) -> None:
        super().__init__(f"Gift card not found: {gift_card_id}")
        self.gift_card_id = gift_card_id


class GiftCardStateError(FiltersFastError):
    """The gift card cannot undergo the requested operation in its current state."""


class ShipmentAlreadyRecordedError(FiltersFastError):
    def __init__(self, shipment_id: str) -> None:
        super().__init__(f"Shipment already recorded: {shipment_id}")
        self.shipment_id = shipment_id


class TaxOracleError(FiltersFastError):
    """The external tax service failed or returned an unusable response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
