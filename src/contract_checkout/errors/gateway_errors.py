"""Backend / payment gateway errors.

Errors are classified from the HTTP status and the backend's explicit
``code`` field, never from the free-text message.
"""

from __future__ import annotations

import enum

from contract_checkout.errors.checkout_errors import CheckoutError

# Backend error codes that mean the second factor must be (re)entered.
TWO_FACTOR_CODES = frozenset({"2fa-required", "2fa-invalid", "2fa-expired"})


class ErrorKind(enum.StrEnum):
    """Coarse error classification callers branch on."""

    UNAUTHORIZED = "unauthorized"
    VALIDATION = "validation"
    SERVER = "server"
    NETWORK = "network"


def classify_status(status_code: int) -> ErrorKind:
    """Map an HTTP status code to an :class:`ErrorKind`.

    ``0`` stands for "no response" (transport failure).
    """
    if status_code <= 0:
        return ErrorKind.NETWORK
    if status_code in (401, 403):
        return ErrorKind.UNAUTHORIZED
    if 400 <= status_code < 500:
        return ErrorKind.VALIDATION
    return ErrorKind.SERVER


class GatewayError(CheckoutError):
    """Error returned by the transaction backend or raised talking to it.

    Attributes:
        kind: Classification derived from ``status_code``.
        error_code: Backend machine code (``code`` field), if any.
        action_required: Security action demanded by a 403 (e.g. ``kyc``).
        attempts_remaining: Backend-side 2FA attempts left, if reported.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 502,
        error_code: str = "",
        action_required: str = "",
        attempts_remaining: int | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, code=error_code or "gateway-error")
        self.kind = classify_status(status_code)
        self.error_code = error_code
        self.action_required = action_required
        self.attempts_remaining = attempts_remaining

    @property
    def is_two_factor(self) -> bool:
        """Whether the backend rejected or demanded the second factor."""
        return self.error_code in TWO_FACTOR_CODES


class NetworkError(GatewayError):
    """No response from the backend (connection, DNS, timeout)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=0, error_code="network-error")
