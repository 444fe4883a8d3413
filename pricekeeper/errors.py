"""Error taxonomy for pricing operations.

Every failure raised by the pricing core is a PricingError subclass carrying a
machine-readable code and the HTTP status the web layer responds with.
"""

from __future__ import annotations

from typing import Any


class PricingError(Exception):
    """Base class for structured pricing failures."""

    code = "internal"
    status_code = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class InvalidArgument(PricingError):
    """Malformed or out-of-range input (negative price, past effective time)."""

    code = "invalid_argument"
    status_code = 400


class NotFound(PricingError):
    """Unknown item or scheduled-change id."""

    code = "not_found"
    status_code = 404


class FailedPrecondition(PricingError):
    """Operation not valid in the current state (e.g. re-applying an applied change)."""

    code = "failed_precondition"
    status_code = 409


class Unavailable(PricingError):
    """External reference-price fetch failed or timed out."""

    code = "unavailable"
    status_code = 503


class Internal(PricingError):
    """Storage-layer failure during a multi-step mutation. Safe to retry."""

    code = "internal"
    status_code = 500
