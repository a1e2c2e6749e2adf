from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class CreditServiceError(Exception):
    """Base exception for all credit-service errors."""


class InvalidOrderError(CreditServiceError):
    """User-correctable order problems (quantity over limit, past start date, bad cycle)."""


class InvalidCycleError(InvalidOrderError):
    """Missing or unknown renewal cycle, or a custom cycle without a valid duration."""


class InvalidTokenCountError(CreditServiceError, ValueError):
    """Consumed token counts must be positive."""


class IllegalStateError(CreditServiceError):
    """A stored invariant is broken (missing user credits, subscription or offer).

    Never retried or repaired automatically.
    """


class OfferMissingError(IllegalStateError, InvalidOrderError):
    """The offer behind an order disappeared before the order was applied to the ledger."""


class EntityNotFoundError(CreditServiceError):
    """A lookup by id returned nothing."""

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} not found (id={entity_id})")
        self.entity = entity
        self.entity_id = entity_id


class AlreadySubscribedError(CreditServiceError):
    """The user already holds a paid order for the requested offer."""

    def __init__(self, message: str, conflicting_order: Any | None = None) -> None:
        super().__init__(message)
        self.conflicting_order = conflicting_order


class PaymentError(CreditServiceError):
    """Failures reported by or around the payment gateway."""


class PaymentErrorCode(StrEnum):
    DUPLICATE_ATTEMPT = "duplicate_attempt"
    INTENT_CREATION_FAILED = "intent_creation_failed"
    NOT_FREE = "not_free"


@dataclass(slots=True)
class PaymentErrorDetails:
    order_id: str | None = None
    error_code: PaymentErrorCode | None = None


class InvalidPaymentError(PaymentError):
    """Payment conflicts, e.g. a second execution attempt on an already-paid order."""

    def __init__(self, message: str, details: PaymentErrorDetails | None = None) -> None:
        super().__init__(message)
        self.details = details or PaymentErrorDetails()

    @property
    def error_code(self) -> PaymentErrorCode | None:
        return self.details.error_code
