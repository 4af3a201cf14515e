"""Payment reconciliation poller.

After the browser comes back from the payment gateway, the backend may
not have settled the payment yet (the gateway webhook can lag the
redirect). The poller checks the transaction status up to
``max_attempts`` times, ``interval_seconds`` apart, one check in flight
at a time. Each delay is scheduled only after the previous check
returned, and the cancellation flag is checked before every step.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from contract_checkout.errors.gateway_errors import ErrorKind, GatewayError
from contract_checkout.gateway.models import TransactionStatus

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from contract_checkout.config.settings import PollerConfig
    from contract_checkout.gateway.client import GatewayClient
    from contract_checkout.gateway.models import StatusResult
    from contract_checkout.metrics.collector import CheckoutMetrics

logger = logging.getLogger(__name__)

# Failures worth another attempt; anything else ends the run.
_TRANSIENT = (ErrorKind.NETWORK, ErrorKind.SERVER)


class PollOutcome(enum.StrEnum):
    """How a reconciliation run ended."""

    APPROVED = "approved"
    REJECTED = "rejected"
    PENDING = "pending"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PollResult:
    """Result of a reconciliation run.

    ``PENDING`` is not an error: the payment is likely fine but not yet
    visible to the backend.
    """

    outcome: PollOutcome
    attempts: int
    last_status: StatusResult | None = None

    @property
    def transaction_status(self) -> TransactionStatus:
        if self.outcome is PollOutcome.APPROVED:
            return TransactionStatus.APPROVED
        if self.outcome is PollOutcome.REJECTED:
            return TransactionStatus.REJECTED
        return TransactionStatus.TIMED_OUT


class PaymentPoller:
    """Bounded, cancellable status polling for one transaction at a time.

    Usage::

        poller = PaymentPoller(gateway, config.poller)
        result = await poller.run(transaction_id)
        ...
        poller.cancel()  # on teardown
    """

    def __init__(
        self,
        gateway: GatewayClient,
        config: PollerConfig,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        metrics: CheckoutMetrics | None = None,
    ) -> None:
        self._gateway = gateway
        self._config = config
        self._sleep = sleep
        self._metrics = metrics
        self._cancelled = False
        self._attempts = 0
        self._task: asyncio.Task[PollResult] | None = None

    @property
    def is_running(self) -> bool:
        """Whether a run is in progress."""
        return self._task is not None and not self._task.done()

    async def run(self, transaction_id: int) -> PollResult:
        """Poll until a terminal status, the attempt ceiling or cancellation.

        Raises:
            RuntimeError: If a run is already in progress.
            GatewayError: On non-transient backend errors (e.g. unauthorized).
        """
        if self.is_running:
            msg = "a reconciliation run is already in progress"
            raise RuntimeError(msg)
        self._cancelled = False
        self._attempts = 0
        self._task = asyncio.create_task(self._loop(transaction_id))
        try:
            return await self._task
        except asyncio.CancelledError:
            if not self._cancelled:
                raise
            return self._finish(PollOutcome.CANCELLED, self._attempts, None)
        finally:
            self._task = None

    def cancel(self) -> None:
        """Stop polling; the pending delay or check is abandoned."""
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _loop(self, transaction_id: int) -> PollResult:
        attempts = 0
        last: StatusResult | None = None
        while not self._cancelled:
            attempts += 1
            self._attempts = attempts
            try:
                last = await self._gateway.check_status(transaction_id)
            except GatewayError as exc:
                if exc.kind not in _TRANSIENT:
                    raise
                logger.warning(
                    "Status check %d for transaction %s failed: %s",
                    attempts,
                    transaction_id,
                    exc.message,
                )
            else:
                status = last.status
                if status is TransactionStatus.APPROVED:
                    return self._finish(PollOutcome.APPROVED, attempts, last)
                if status is TransactionStatus.REJECTED:
                    return self._finish(PollOutcome.REJECTED, attempts, last)

            if attempts >= self._config.max_attempts:
                logger.info(
                    "Transaction %s still unsettled after %d checks", transaction_id, attempts
                )
                return self._finish(PollOutcome.PENDING, attempts, last)
            if self._cancelled:
                break
            await self._sleep(self._config.interval_seconds)

        return self._finish(PollOutcome.CANCELLED, attempts, last)

    def _finish(self, outcome: PollOutcome, attempts: int, last: StatusResult | None) -> PollResult:
        if self._metrics:
            self._metrics.record_poll(outcome.value, attempts)
        return PollResult(outcome, attempts, last)
