"""CheckoutError — base exception class for all checkout errors."""

from __future__ import annotations


class CheckoutError(Exception):
    """Base error for all checkout and signing operations.

    Attributes:
        message: Human-readable error description.
        status_code: Suggested HTTP status code.
        code: Machine-readable error code string.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 500,
        code: str = "checkout-error",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
