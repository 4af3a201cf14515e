"""Checkout flow errors — validation, step-up auth, reconciliation, integrity."""

from __future__ import annotations

from contract_checkout.errors.checkout_errors import CheckoutError


class ValidationError(CheckoutError):
    """A wizard prerequisite is missing.

    ``step`` is the wizard step the user must return to, when known.
    """

    def __init__(self, message: str, *, step: int | None = None, code: str = "validation") -> None:
        super().__init__(message, status_code=400, code=code)
        self.step = step


class AuthChallengeError(CheckoutError):
    """The second factor was missing, wrong or expired."""

    def __init__(self, message: str, *, attempts_remaining: int | None = None) -> None:
        super().__init__(message, status_code=401, code="auth-challenge")
        self.attempts_remaining = attempts_remaining


class ReconciliationTimeout(CheckoutError):
    """The payment did not settle within the polling window.

    Informational: the payment is probably fine but not yet visible.
    """

    def __init__(self, message: str, *, attempts: int = 0) -> None:
        super().__init__(message, status_code=202, code="reconciliation-timeout")
        self.attempts = attempts


class IntegrityError(CheckoutError):
    """The signed PDF could not be assembled. Nothing is uploaded."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=422, code="integrity-error")


class FlowBusyError(CheckoutError):
    """Another step of the same flow is still running."""

    def __init__(self, message: str = "another checkout operation is in progress") -> None:
        super().__init__(message, status_code=409, code="flow-busy")
