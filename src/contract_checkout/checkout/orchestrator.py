"""Checkout/signing orchestrator — the one entry point the host app uses.

Composes the wizard store, gateway client, reconciliation poller,
step-up gate and signature compositor into a single resumable flow::

    start(kind) ──► initiate ──┬─► 2FA challenge ── submit_code() ──┐
                               ├─► redirect to gateway ◄─────────────┤
                               └─► approved ◄────────────────────────┘
    resume(url) ──► reconcile (on gateway return) ──► approved
    advance()/back() ──► REVIEW → DRAW → PLACE → SECURE → CONFIRM ──► signed

Every public coroutine returns a :class:`FlowResult`; failures never
escape to the host view. Only one operation runs at a time: a call made
while another is outstanding returns ``BUSY`` without side effects.
"""

from __future__ import annotations

import asyncio
import enum
import functools
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from contract_checkout.auth.gate import StepUpGate
from contract_checkout.checkout.redirect import parse_return_url, strip_return_params
from contract_checkout.errors.checkout_errors import CheckoutError
from contract_checkout.errors.definitions import (
    ErrNoChallenge,
    ErrNoTransaction,
    ErrPaymentNotApproved,
)
from contract_checkout.errors.flow_errors import (
    AuthChallengeError,
    FlowBusyError,
    ReconciliationTimeout,
    ValidationError,
)
from contract_checkout.errors.gateway_errors import GatewayError
from contract_checkout.gateway.models import Transaction, TransactionStatus
from contract_checkout.notifications.events import PaymentEvent, StepEvent
from contract_checkout.reconciliation.poller import PaymentPoller, PollOutcome
from contract_checkout.signing.compositor import SignatureCompositor, SigningStep
from contract_checkout.store.snapshot import FlowOrigin, WizardSnapshot

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from contract_checkout.auth.gate import PendingTwoFactorChallenge
    from contract_checkout.checkout.redirect import Navigator, ReturnParams
    from contract_checkout.config.settings import AppConfig
    from contract_checkout.gateway.client import GatewayClient
    from contract_checkout.gateway.models import (
        ContractTemplate,
        GeoLocation,
        InitiateResult,
        SignaturePlacement,
        SignedContractReceipt,
        TransactionKind,
    )
    from contract_checkout.metrics.collector import CheckoutMetrics
    from contract_checkout.notifications.events import FlowEvent
    from contract_checkout.notifications.service import NotificationService
    from contract_checkout.store.client import WizardStore

logger = logging.getLogger(__name__)

_PENDING_MESSAGE = (
    "Your payment was received and is being confirmed. "
    "It can take a few minutes to show up; you can check again later."
)
_REJECTED_MESSAGE = "The payment was not completed. You can try paying again."
_STALE_MESSAGE = "Your saved progress expired, so the contract review starts over."


class FlowStatus(enum.StrEnum):
    """What the host view should render after an operation."""

    OK = "ok"
    CHALLENGE = "challenge"
    REDIRECTED = "redirected"
    APPROVED = "approved"
    PENDING = "pending"
    REJECTED = "rejected"
    SIGNED = "signed"
    INVALID = "invalid"
    AUTH_FAILED = "auth_failed"
    ERROR = "error"
    BUSY = "busy"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class FlowResult:
    """Outcome of one orchestrator operation.

    Attributes:
        status: What happened.
        step: The wizard step to render now.
        message: User-facing text (backend message verbatim when known).
        error: The underlying error for failures, plus the informational
            ``ReconciliationTimeout`` (``PENDING``) and ``FlowBusyError`` (``BUSY``).
        receipt: Backend receipt, for ``SIGNED``.
    """

    status: FlowStatus
    step: SigningStep
    message: str = ""
    error: CheckoutError | None = None
    receipt: SignedContractReceipt | None = None

    @property
    def ok(self) -> bool:
        return self.status not in (
            FlowStatus.INVALID,
            FlowStatus.AUTH_FAILED,
            FlowStatus.ERROR,
            FlowStatus.BUSY,
            FlowStatus.REJECTED,
        )


def _exclusive(
    method: Callable[..., Awaitable[FlowResult]],
) -> Callable[..., Awaitable[FlowResult]]:
    """Run *method* alone and turn checkout errors into a FlowResult."""

    @functools.wraps(method)
    async def wrapper(self: CheckoutOrchestrator, *args: Any, **kwargs: Any) -> FlowResult:
        if self._busy:
            logger.debug("%s rejected: another operation is running", method.__name__)
            err = FlowBusyError()
            return FlowResult(FlowStatus.BUSY, self.step, "Please wait, still working.", err)
        if self._closed:
            return FlowResult(FlowStatus.ERROR, self.step, "This checkout view was closed.")
        self._busy = True
        try:
            return await method(self, *args, **kwargs)
        except CheckoutError as exc:
            return await self._failure(exc)
        finally:
            self._busy = False

    return wrapper


class CheckoutOrchestrator:
    """Resumable payment + contract signing flow for one (user, project).

    Usage::

        flow = CheckoutOrchestrator(config, user_id=3, project_id=7,
                                    gateway=gateway, store=store,
                                    navigator=navigator)
        result = await flow.resume(current_url)   # once, on mount
        result = await flow.start(TransactionKind.INVESTMENT)
        ...
        flow.close()                              # on unmount
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        user_id: int,
        project_id: int,
        gateway: GatewayClient,
        store: WizardStore,
        navigator: Navigator,
        notifier: NotificationService | None = None,
        metrics: CheckoutMetrics | None = None,
        locator: Callable[[], Awaitable[GeoLocation | None]] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._user_id = user_id
        self._project_id = project_id
        self._gateway = gateway
        self._store = store
        self._navigator = navigator
        self._notifier = notifier
        self._metrics = metrics if config.metrics.enabled else None

        self._compositor = SignatureCompositor(gateway, config.signing, locator=locator)
        self._gate = StepUpGate(gateway, code_length=config.signing.code_length)
        self._poller = PaymentPoller(gateway, config.poller, sleep=sleep, metrics=self._metrics)

        self._transaction: Transaction | None = None
        self._origin = FlowOrigin.FRESH
        self._busy = False
        self._closed = False
        # Bumped by cancel(); in-flight work from an older epoch is dropped.
        self._epoch = 0

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def step(self) -> SigningStep:
        return self._compositor.step

    @property
    def transaction(self) -> Transaction | None:
        return self._transaction

    @property
    def challenge(self) -> PendingTwoFactorChallenge | None:
        """The open 2FA challenge, if any."""
        return self._gate.challenge

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def origin(self) -> FlowOrigin:
        return self._origin

    @property
    def placement(self) -> SignaturePlacement | None:
        return self._compositor.placement

    @property
    def template(self) -> ContractTemplate | None:
        return self._compositor.template

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @_exclusive
    async def resume(self, current_url: str | None = None) -> FlowResult:
        """Restore saved progress. Call once when the view mounts.

        When *current_url* carries gateway return parameters they are
        stripped from the address bar and the payment is reconciled.
        """
        params = parse_return_url(current_url) if current_url else None
        if params is not None and current_url is not None:
            self._navigator.replace(strip_return_params(current_url))

        snapshot = await self._store.load(self._user_id, self._project_id)
        if snapshot is not None and self._store.is_stale(snapshot):
            logger.info(
                "Discarding stale snapshot for user %s project %s", self._user_id, self._project_id
            )
            await self._store.clear(self._user_id, self._project_id)
            self._reset(FlowOrigin.STALE_TEMPLATE)
            await self._ensure_template()
            await self._save()
            self._emit_step()
            return FlowResult(FlowStatus.OK, self.step, _STALE_MESSAGE)

        if snapshot is None:
            if params is not None:
                logger.warning(
                    "Gateway return %s without saved progress; nothing to reconcile",
                    params.external_reference,
                )
            self._reset(FlowOrigin.FRESH)
            await self._ensure_template()
            self._emit_step()
            return FlowResult(FlowStatus.OK, self.step)

        self._restore(snapshot)
        await self._ensure_template()
        self._check_template_version(snapshot)
        self._emit_step()

        tx = self._transaction
        if tx is not None and tx.status is TransactionStatus.REQUIRES_2FA and tx.id is not None:
            self._gate.open(tx.id, tx.kind)
            return FlowResult(FlowStatus.CHALLENGE, self.step, "Enter your verification code.")
        if params is not None and self._matches(params):
            self._origin = FlowOrigin.GATEWAY_RETURN
            return await self._reconcile()
        if tx is not None and tx.status in (
            TransactionStatus.AWAITING_GATEWAY,
            TransactionStatus.TIMED_OUT,
        ):
            return FlowResult(FlowStatus.PENDING, self.step, _PENDING_MESSAGE)
        return FlowResult(FlowStatus.OK, self.step)

    @_exclusive
    async def start(self, kind: TransactionKind) -> FlowResult:
        """Initiate a subscription or investment payment for the project."""
        self._gate.cancel()
        self._transaction = Transaction(kind=kind, project_id=self._project_id)
        epoch = self._epoch

        result = await self._gateway.initiate(kind, self._project_id)
        if epoch != self._epoch:
            return FlowResult(FlowStatus.CANCELLED, self.step)
        tx = self._transaction
        tx.id = result.transaction_id or result.pending_transaction_id
        tx.amount = result.amount
        tx.currency = result.currency
        return await self._apply_initiation(result)

    @_exclusive
    async def submit_code(self, code: str) -> FlowResult:
        """Answer the open 2FA challenge and resume the suspended payment."""
        if not self._gate.is_open or self._transaction is None:
            raise ErrNoChallenge
        epoch = self._epoch
        try:
            result = await self._gate.submit(code)
        except AuthChallengeError:
            if self._metrics:
                self._metrics.record_two_factor("rejected")
            raise
        if epoch != self._epoch:
            return FlowResult(FlowStatus.CANCELLED, self.step)
        if self._metrics:
            self._metrics.record_two_factor("accepted")
        return await self._apply_initiation(result)

    @_exclusive
    async def cancel_challenge(self) -> FlowResult:
        """Abandon the challenged transaction."""
        transaction_id = self._gate.cancel()
        tx = self._transaction
        if tx is not None and transaction_id is not None:
            tx.advance_to(TransactionStatus.REJECTED)
            self._emit_payment(tx, "Payment cancelled.")
        self._transaction = None
        await self._save()
        return FlowResult(FlowStatus.CANCELLED, self.step)

    @_exclusive
    async def reconcile(self) -> FlowResult:
        """Check again on a payment still awaiting settlement (user-initiated)."""
        return await self._reconcile()

    @_exclusive
    async def advance(self) -> FlowResult:
        """Move the signing wizard forward; at CONFIRM, sign and upload."""
        if self.step is SigningStep.REVIEW:
            await self._ensure_template()
            self._compositor.check(SigningStep.REVIEW)
            self._require_approved()
        if self.step is SigningStep.CONFIRM:
            return await self._sign()

        await self._compositor.advance()
        await self._save()
        self._emit_step()
        return FlowResult(FlowStatus.OK, self.step)

    @_exclusive
    async def back(self) -> FlowResult:
        """Move the signing wizard one step back."""
        self._compositor.back()
        await self._save()
        self._emit_step()
        return FlowResult(FlowStatus.OK, self.step)

    async def cancel(self) -> FlowResult:
        """Abandon the whole flow and forget saved progress.

        Allowed while another operation is running: that operation's
        result is discarded when it completes.
        """
        self._epoch += 1
        self._poller.cancel()
        self._gate.cancel()
        self._transaction = None
        self._compositor.reset()
        self._origin = FlowOrigin.FRESH
        await self._clear()
        self._emit_step()
        return FlowResult(FlowStatus.CANCELLED, self.step)

    def close(self) -> None:
        """Tear down (view unmounted). Saved progress is kept for resume."""
        self._closed = True
        self._poller.cancel()

    # ------------------------------------------------------------------
    # UI callbacks for the step views
    # ------------------------------------------------------------------

    def capture_signature(self, image: bytes | str) -> FlowResult:
        """DRAW: store the drawn PNG (bytes or data URL)."""
        try:
            self._compositor.capture_signature(image)
        except ValidationError as exc:
            return FlowResult(FlowStatus.INVALID, self.step, exc.message, exc)
        return FlowResult(FlowStatus.OK, self.step)

    def place_signature(self, page: int, x: float, y: float, *, scale: float = 1.0) -> FlowResult:
        """PLACE: record the click position on a page rendered at *scale*."""
        try:
            self._compositor.place(page, x, y, scale=scale)
        except ValidationError as exc:
            return FlowResult(FlowStatus.INVALID, self.step, exc.message, exc)
        return FlowResult(FlowStatus.OK, self.step)

    def enter_code(self, code: str) -> None:
        """SECURE: the 2FA code sent with the signing request."""
        self._compositor.enter_code(code)

    # ------------------------------------------------------------------
    # Internal flow steps
    # ------------------------------------------------------------------

    async def _apply_initiation(self, result: InitiateResult) -> FlowResult:
        """Follow a challenge, redirect or immediate success."""
        tx = self._transaction
        if tx is None:
            raise ErrNoTransaction

        if result.is_2fa_required:
            pending = result.pending_transaction_id or result.transaction_id or tx.id
            if pending is None:
                msg = "the backend asked for verification without a transaction id"
                raise GatewayError(msg, status_code=502)
            tx.id = tx.id or pending
            self._advance_transaction(tx, TransactionStatus.REQUIRES_2FA)
            self._gate.open(pending, tx.kind)
            self._record_transaction(tx, "challenge")
            await self._save()
            self._emit_payment(tx, result.message)
            return FlowResult(
                FlowStatus.CHALLENGE, self.step, result.message or "Enter your verification code."
            )

        if result.redirect_url:
            tx.id = tx.id or result.transaction_id
            if tx.id is None:
                msg = "the backend sent a payment link without a transaction id"
                raise GatewayError(msg, status_code=502)
            try:
                tx.mark_redirected(result.external_reference or str(tx.id))
            except ValueError as exc:
                raise CheckoutError(str(exc), status_code=409, code="transaction-state") from exc
            self._record_transaction(tx, "redirect")
            # Progress must be durable before the page goes away.
            await self._save()
            self._emit_payment(tx, result.message)
            self._navigator.redirect(result.redirect_url)
            return FlowResult(FlowStatus.REDIRECTED, self.step)

        self._advance_transaction(tx, TransactionStatus.APPROVED)
        self._record_transaction(tx, "approved")
        await self._save()
        self._emit_payment(tx, result.message)
        await self._ensure_template()
        return FlowResult(FlowStatus.APPROVED, self.step, result.message)

    async def _reconcile(self) -> FlowResult:
        tx = self._transaction
        if tx is None or tx.id is None:
            raise ErrNoTransaction
        epoch = self._epoch

        poll = await self._poller.run(tx.id)
        if epoch != self._epoch or poll.outcome is PollOutcome.CANCELLED:
            return FlowResult(FlowStatus.CANCELLED, self.step)

        if poll.outcome is PollOutcome.APPROVED:
            self._advance_transaction(tx, TransactionStatus.APPROVED)
            await self._save()
            self._emit_payment(tx, "Payment confirmed.")
            return FlowResult(FlowStatus.APPROVED, self.step, "Payment confirmed.")

        if poll.outcome is PollOutcome.REJECTED:
            self._advance_transaction(tx, TransactionStatus.REJECTED)
            self._compositor.reset()
            await self._save()
            self._emit_payment(tx, _REJECTED_MESSAGE)
            return FlowResult(FlowStatus.REJECTED, self.step, _REJECTED_MESSAGE)

        if tx.status is not TransactionStatus.TIMED_OUT:
            self._advance_transaction(tx, TransactionStatus.TIMED_OUT)
        await self._save()
        self._emit_payment(tx, _PENDING_MESSAGE)
        timeout = ReconciliationTimeout(_PENDING_MESSAGE, attempts=poll.attempts)
        return FlowResult(FlowStatus.PENDING, self.step, _PENDING_MESSAGE, timeout)

    async def _sign(self) -> FlowResult:
        self._require_approved()
        tx = self._transaction
        if tx is None:
            raise ErrNoTransaction

        if self._metrics:
            with self._metrics.track_signing():
                receipt = await self._submit(tx)
        else:
            receipt = await self._submit(tx)

        await self._clear()
        self._emit_step()
        return FlowResult(
            FlowStatus.SIGNED, self.step, receipt.message or "Contract signed.", receipt=receipt
        )

    async def _submit(self, tx: Transaction) -> SignedContractReceipt:
        return await self._compositor.submit(
            project_id=self._project_id, signer_id=self._user_id, transaction_id=tx.id
        )

    async def _failure(self, exc: CheckoutError) -> FlowResult:
        """Map an error to what the view renders; persist any step regression."""
        if isinstance(exc, AuthChallengeError):
            if self._gate.is_open:
                return FlowResult(FlowStatus.CHALLENGE, self.step, exc.message, exc)
            await self._save()
            return FlowResult(FlowStatus.AUTH_FAILED, self.step, exc.message, exc)
        if isinstance(exc, ValidationError):
            await self._save()
            return FlowResult(FlowStatus.INVALID, self.step, exc.message, exc)
        logger.warning("Checkout operation failed (%s): %s", exc.code, exc.message)
        return FlowResult(FlowStatus.ERROR, self.step, exc.message, exc)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_approved(self) -> None:
        tx = self._transaction
        if tx is None or tx.status is not TransactionStatus.APPROVED:
            raise ErrPaymentNotApproved

    def _advance_transaction(self, tx: Transaction, status: TransactionStatus) -> None:
        try:
            tx.advance_to(status)
        except ValueError as exc:
            raise CheckoutError(str(exc), status_code=409, code="transaction-state") from exc

    async def _ensure_template(self) -> None:
        """Resolve the project's contract template once per session."""
        if self._compositor.template is not None:
            return
        templates = await self._gateway.list_templates(self._project_id)
        ready = [t for t in templates if t.is_ready]
        chosen = ready[0] if ready else (templates[0] if templates else None)
        self._compositor.set_template(chosen)

    def _check_template_version(self, snapshot: WizardSnapshot) -> None:
        """Restart signing if the template changed since the snapshot."""
        template = self._compositor.template
        if self.step is SigningStep.REVIEW or snapshot.template_id is None:
            return
        if (
            template is None
            or template.id != snapshot.template_id
            or template.version != snapshot.template_version
        ):
            logger.info("Contract template changed since last save; signing restarts")
            self._compositor.reset()
            self._origin = FlowOrigin.STALE_TEMPLATE

    def _matches(self, params: ReturnParams) -> bool:
        tx = self._transaction
        if tx is None or tx.id is None:
            return False
        return params.external_reference in (tx.external_reference, str(tx.id))

    def _reset(self, origin: FlowOrigin) -> None:
        self._transaction = None
        self._gate.cancel()
        self._compositor.reset()
        self._origin = origin

    def _restore(self, snapshot: WizardSnapshot) -> None:
        self._origin = FlowOrigin.RESUMED
        self._transaction = None
        if snapshot.kind is not None and snapshot.transaction_id is not None:
            tx = Transaction(
                kind=snapshot.kind,
                project_id=snapshot.project_id,
                id=snapshot.transaction_id,
                status=snapshot.transaction_status or TransactionStatus.CREATED,
                external_reference=snapshot.external_reference,
                _two_factor_seen=snapshot.transaction_status is TransactionStatus.REQUIRES_2FA,
            )
            self._transaction = tx

        try:
            step = SigningStep(snapshot.step)
        except ValueError:
            step = SigningStep.REVIEW
        approved = (
            self._transaction is not None
            and self._transaction.status is TransactionStatus.APPROVED
        )
        if step is not SigningStep.REVIEW and not approved:
            # Signing steps are only reachable after payment.
            step = SigningStep.REVIEW
        self._compositor.restore(step, snapshot.signature_placement)

    def _snapshot(self) -> WizardSnapshot:
        tx = self._transaction
        template = self._compositor.template
        return WizardSnapshot(
            project_id=self._project_id,
            user_id=self._user_id,
            step=int(self.step),
            kind=tx.kind if tx else None,
            transaction_id=tx.id if tx else None,
            transaction_status=tx.status if tx else None,
            external_reference=tx.external_reference if tx else None,
            signature_placement=self._compositor.placement,
            template_id=template.id if template else None,
            template_version=template.version if template else None,
        )

    async def _save(self) -> None:
        try:
            await self._store.save(self._snapshot())
        except Exception:
            logger.exception("Could not persist checkout progress")

    async def _clear(self) -> None:
        try:
            await self._store.clear(self._user_id, self._project_id)
        except Exception:
            logger.exception("Could not clear checkout progress")

    def _record_transaction(self, tx: Transaction, outcome: str) -> None:
        if self._metrics:
            self._metrics.record_transaction(tx.kind.value, outcome)

    def _emit(self, event: FlowEvent) -> None:
        if self._notifier:
            self._notifier.notify(event)

    def _emit_step(self) -> None:
        self._emit(
            StepEvent(project_id=self._project_id, step=self.step.name, origin=self._origin.value)
        )

    def _emit_payment(self, tx: Transaction, message: str) -> None:
        self._emit(PaymentEvent(transaction_id=tx.id, status=tx.status.value, message=message))
