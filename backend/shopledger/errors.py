# Overview: Error kinds raised by the inventory and money-movement engine.

"""
Engine Errors

WHY: Every multi-step operation runs inside a single database transaction.
Errors are raised before commit, so a rejected operation never leaves
partial state behind. Route handlers translate these into JSON bodies
with a stable `kind` and never surface storage error text.

DESIGN:
- One base class carrying kind, HTTP status, details and a retryable flag.
- SerializationConflictError is the only kind a caller may blindly retry.
"""

from __future__ import annotations

from typing import Any, Optional


class CoreError(Exception):
    """Base class for business-rule failures surfaced to API callers."""

    kind = "CoreError"
    http_status = 400
    retryable = False

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload = {"error": self.message, "kind": self.kind}
        if self.details:
            payload["details"] = self.details
        if self.retryable:
            payload["retryable"] = True
        return payload


class ValidationError(CoreError):
    """400-level input problem (missing fields, malformed values)."""

    kind = "ValidationError"


class NotFoundError(CoreError):
    """Referenced row does not exist within the caller's organization."""

    kind = "NotFoundError"
    http_status = 404


class StateError(CoreError):
    """Lifecycle violation (e.g. receiving against a DRAFT purchase order)."""

    kind = "StateError"
    http_status = 409


class InvalidQuantityError(ValidationError):
    kind = "InvalidQuantityError"


class InsufficientStockError(CoreError):
    kind = "InsufficientStockError"
    http_status = 409


class OverReceiptError(CoreError):
    kind = "OverReceiptError"
    http_status = 422


class VoidConflictError(CoreError):
    kind = "VoidConflictError"
    http_status = 409


class CreditLimitExceededError(CoreError):
    kind = "CreditLimitExceededError"
    http_status = 422


class InsufficientPaymentError(CoreError):
    kind = "InsufficientPaymentError"
    http_status = 422


class AlreadyOpenError(CoreError):
    kind = "AlreadyOpenError"
    http_status = 409


class NotOpenError(CoreError):
    kind = "NotOpenError"
    http_status = 409


class SerializationConflictError(CoreError):
    """Transient contention on a locked row; safe to retry as a whole."""

    kind = "SerializationConflictError"
    http_status = 409
    retryable = True


class PaymentGatewayError(CoreError):
    kind = "PaymentGatewayError"
    http_status = 502


def require_positive_int(value: Any, field: str = "quantity") -> int:
    """
    Coerce a quantity argument to a strictly positive int.

    Rejects bools, floats with a fractional part, numeric strings that are
    not plain digits, zero and negatives.
    """
    if isinstance(value, bool):
        raise InvalidQuantityError(f"{field} must be a positive integer", {"field": field, "value": value})
    if isinstance(value, int):
        result = value
    elif isinstance(value, float) and value.is_integer():
        result = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        result = int(value.strip())
    else:
        raise InvalidQuantityError(f"{field} must be a positive integer", {"field": field, "value": value})
    if result <= 0:
        raise InvalidQuantityError(f"{field} must be a positive integer", {"field": field, "value": result})
    return result


def require_non_negative_cents(value: Any, field: str) -> int:
    """Money arrives as integer cents; negative amounts are rejected."""
    if value is None:
        raise ValidationError(f"{field} is required", {"field": field})
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            value = int(value.strip())
        else:
            raise ValidationError(f"{field} must be an integer amount in cents", {"field": field})
    if value < 0:
        raise ValidationError(f"{field} cannot be negative", {"field": field})
    return value
