from __future__ import annotations
from enum import Enum


class ValidationError(ValueError):
    """Rejected operator input: empty cart, missing session, bad number."""


class StockLimitError(ValidationError):
    """Requested quantity exceeds the stock of the current catalog snapshot."""


class StockConflictError(StockLimitError):
    """The store refused a stock decrement because fewer units were left."""

    def __init__(self, product_id: str, requested: int):
        super().__init__(f"Insufficient stock for product {product_id} (requested {requested})")
        self.product_id = product_id
        self.requested = requested


class PromoFailure(str, Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    LIMIT_REACHED = "limit_reached"


class PromoError(ValidationError):
    reason: PromoFailure

    def __init__(self, code: str, message: str | None = None):
        super().__init__(message or self.default_message(code))
        self.code = code

    def default_message(self, code: str) -> str:
        return f"Promo code {code} cannot be used"


class PromoNotFound(PromoError):
    reason = PromoFailure.NOT_FOUND

    def default_message(self, code: str) -> str:
        return f"Promo code {code} not found or inactive"


class PromoExpired(PromoError):
    reason = PromoFailure.EXPIRED

    def default_message(self, code: str) -> str:
        return f"Promo code {code} has expired"


class PromoLimitReached(PromoError):
    reason = PromoFailure.LIMIT_REACHED

    def default_message(self, code: str) -> str:
        return f"Promo code {code} has reached its usage limit"


class CommitError(RuntimeError):
    """A sale could not be written; the store transaction was rolled back."""


class InsightError(RuntimeError):
    """The AI service failed or returned nothing usable."""
