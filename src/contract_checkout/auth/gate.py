"""Step-up authentication gate.

Any transaction-initiating call may answer ``is2FARequired``. The gate
holds the single pending challenge until the user submits a valid code
or gives up. No attempt limit is enforced here; the backend throttles.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from contract_checkout.errors.definitions import ErrChallengeOpen, ErrCodeInvalid, ErrNoChallenge
from contract_checkout.errors.flow_errors import AuthChallengeError
from contract_checkout.errors.gateway_errors import ErrorKind, GatewayError

if TYPE_CHECKING:
    from contract_checkout.gateway.client import GatewayClient
    from contract_checkout.gateway.models import InitiateResult, TransactionKind

logger = logging.getLogger(__name__)


@dataclass
class PendingTwoFactorChallenge:
    """The one open 2FA challenge of an orchestrator."""

    transaction_id: int
    kind: TransactionKind
    attempts_remaining: int | None = None
    last_error: str | None = None


class StepUpGate:
    """Holds a pending 2FA challenge and confirms it against the backend."""

    def __init__(self, gateway: GatewayClient, *, code_length: int = 6) -> None:
        self._gateway = gateway
        self._code_pattern = re.compile(rf"\d{{{code_length}}}")
        self._challenge: PendingTwoFactorChallenge | None = None

    @property
    def challenge(self) -> PendingTwoFactorChallenge | None:
        return self._challenge

    @property
    def is_open(self) -> bool:
        return self._challenge is not None

    def open(self, transaction_id: int, kind: TransactionKind) -> PendingTwoFactorChallenge:
        """Suspend a transaction behind a new challenge.

        Raises:
            CheckoutError: If a challenge for another transaction is open.
        """
        if self._challenge is not None and self._challenge.transaction_id != transaction_id:
            raise ErrChallengeOpen
        self._challenge = PendingTwoFactorChallenge(transaction_id=transaction_id, kind=kind)
        logger.info("2FA challenge opened for transaction %s", transaction_id)
        return self._challenge

    async def submit(self, code: str) -> InitiateResult:
        """Confirm the open challenge with *code*.

        On success the challenge is closed and the backend's response is
        returned untouched so the caller can follow a redirect or treat
        it as an immediate success.

        Raises:
            CheckoutError: If no challenge is open.
            ValidationError: If *code* is malformed (no call is made).
            AuthChallengeError: If the backend rejects the code; the
                challenge stays open for another try.
            GatewayError: On network or server failures.
        """
        challenge = self._challenge
        if challenge is None:
            raise ErrNoChallenge
        code = code.strip()
        if not self._code_pattern.fullmatch(code):
            raise ErrCodeInvalid

        try:
            result = await self._gateway.confirm_two_factor(
                challenge.kind, challenge.transaction_id, code
            )
        except GatewayError as exc:
            challenge.last_error = exc.message
            if exc.attempts_remaining is not None:
                challenge.attempts_remaining = exc.attempts_remaining
            if exc.is_two_factor or exc.kind is ErrorKind.VALIDATION:
                raise AuthChallengeError(
                    exc.message, attempts_remaining=challenge.attempts_remaining
                ) from exc
            raise

        # The challenge may have been cancelled while the call was in flight.
        if self._challenge is challenge:
            self._challenge = None
        return result

    def cancel(self) -> int | None:
        """Drop the open challenge, returning its transaction id."""
        challenge, self._challenge = self._challenge, None
        if challenge is None:
            return None
        logger.info("2FA challenge for transaction %s cancelled", challenge.transaction_id)
        return challenge.transaction_id
