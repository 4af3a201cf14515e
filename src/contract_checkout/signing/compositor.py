"""Signature compositor — the five-step contract signing wizard.

REVIEW → DRAW → PLACE → SECURE → CONFIRM, one step at a time in either
direction. Leaving a step requires its output:

- REVIEW: a ready contract template (fails closed when there is none)
- DRAW: a captured PNG signature
- PLACE: a page + coordinate placement
- SECURE: a well-formed 2FA code (location is best-effort)

CONFIRM submits: fetch template bytes, stamp, serialize, upload.
"""

from __future__ import annotations

import base64
import binascii
import enum
import logging
import re
from typing import TYPE_CHECKING

from contract_checkout.errors.checkout_errors import CheckoutError
from contract_checkout.errors.definitions import (
    ErrCodeInvalid,
    ErrPlacementMissing,
    ErrSignatureMissing,
    ErrTemplateMissing,
    ErrTemplateNotReady,
)
from contract_checkout.errors.flow_errors import AuthChallengeError, ValidationError
from contract_checkout.errors.gateway_errors import GatewayError
from contract_checkout.gateway.models import SignaturePlacement
from contract_checkout.signing.pdf import embed_signature

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from contract_checkout.config.settings import SigningConfig
    from contract_checkout.gateway.client import GatewayClient
    from contract_checkout.gateway.models import (
        ContractTemplate,
        GeoLocation,
        SignedContractReceipt,
    )

    Locator = Callable[[], Awaitable[GeoLocation | None]]

logger = logging.getLogger(__name__)

_PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
_DATA_URL_PREFIX = "data:image/png;base64,"


class SigningStep(enum.IntEnum):
    """Signing wizard steps, in order."""

    REVIEW = 0
    DRAW = 1
    PLACE = 2
    SECURE = 3
    CONFIRM = 4


def decode_signature(image: bytes | str) -> bytes:
    """Accept raw PNG bytes or a ``data:image/png;base64,`` URL.

    Raises:
        ValidationError: If the image is empty or not a PNG.
    """
    if isinstance(image, str):
        if not image.startswith(_DATA_URL_PREFIX):
            raise ErrSignatureMissing
        try:
            image = base64.b64decode(image[len(_DATA_URL_PREFIX) :], validate=True)
        except binascii.Error as exc:
            raise ErrSignatureMissing from exc
    if not image.startswith(_PNG_MAGIC):
        raise ErrSignatureMissing
    return image


class SignatureCompositor:
    """Holds the signing wizard's state and performs the final submission."""

    def __init__(
        self,
        gateway: GatewayClient,
        config: SigningConfig,
        *,
        locator: Locator | None = None,
    ) -> None:
        self._gateway = gateway
        self._config = config
        self._locator = locator
        self._code_pattern = re.compile(rf"\d{{{config.code_length}}}")
        self._template: ContractTemplate | None = None
        self.reset()

    def reset(self) -> None:
        """Back to REVIEW with nothing captured. The template is kept."""
        self._step = SigningStep.REVIEW
        self._signature: bytes | None = None
        self._placement: SignaturePlacement | None = None
        self._code = ""
        self._location: GeoLocation | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def step(self) -> SigningStep:
        return self._step

    @property
    def template(self) -> ContractTemplate | None:
        return self._template

    @property
    def placement(self) -> SignaturePlacement | None:
        return self._placement

    @property
    def has_signature(self) -> bool:
        return self._signature is not None

    @property
    def location(self) -> GeoLocation | None:
        return self._location

    def set_template(self, template: ContractTemplate | None) -> None:
        self._template = template

    def capture_signature(self, image: bytes | str) -> None:
        """Store the drawn signature (PNG bytes or data URL)."""
        self._signature = decode_signature(image)

    def clear_signature(self) -> None:
        self._signature = None

    def place(self, page: int, x: float, y: float, *, scale: float = 1.0) -> SignaturePlacement:
        """Record a click at (*x*, *y*) on *page* rendered at *scale*."""
        if page < 1:
            msg = f"page numbers start at 1, got {page}"
            raise ValidationError(msg, step=SigningStep.PLACE, code="placement-invalid")
        try:
            self._placement = SignaturePlacement.from_ui(page, x, y, scale=scale)
        except ValueError as exc:
            raise ValidationError(str(exc), step=SigningStep.PLACE, code="placement-invalid") from exc
        return self._placement

    def enter_code(self, code: str) -> None:
        self._code = code.strip()

    def restore(self, step: SigningStep, placement: SignaturePlacement | None) -> None:
        """Jump to a persisted step. Used only when resuming a snapshot."""
        self._step = step
        self._placement = placement

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def check(self, step: SigningStep) -> None:
        """Raise ValidationError if *step*'s output is missing."""
        if step is SigningStep.REVIEW:
            if self._template is None:
                raise ErrTemplateMissing
            if not self._template.is_ready:
                raise ErrTemplateNotReady
        elif step is SigningStep.DRAW:
            if self._signature is None:
                raise ErrSignatureMissing
        elif step is SigningStep.PLACE:
            if self._placement is None:
                raise ErrPlacementMissing
        elif step is SigningStep.SECURE and not self._code_pattern.fullmatch(self._code):
            raise ErrCodeInvalid

    async def advance(self) -> SigningStep:
        """Move one step forward.

        Raises:
            ValidationError: If the current step's output is missing.
            CheckoutError: At CONFIRM; use :meth:`submit` instead.
        """
        if self._step is SigningStep.CONFIRM:
            msg = "the wizard is at its last step; submit the contract instead"
            raise CheckoutError(msg, status_code=409, code="wizard-end")
        self.check(self._step)
        self._step = SigningStep(self._step + 1)
        if self._step is SigningStep.SECURE:
            await self._locate()
        return self._step

    def back(self) -> SigningStep:
        """Move one step backward (no-op at REVIEW)."""
        if self._step is not SigningStep.REVIEW:
            self._step = SigningStep(self._step - 1)
        return self._step

    async def _locate(self) -> None:
        """Best-effort geolocation; never blocks progression."""
        if self._locator is None or self._location is not None:
            return
        try:
            self._location = await self._locator()
        except Exception as exc:  # noqa: BLE001
            logger.info("Geolocation unavailable: %s", exc)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(
        self,
        *,
        project_id: int,
        signer_id: int,
        transaction_id: int | None = None,
    ) -> SignedContractReceipt:
        """Stamp the template and upload it.

        Raises:
            ValidationError: A prerequisite is gone; ``step`` is moved back
                to the step that produces it.
            AuthChallengeError: The backend rejected the 2FA code; the
                wizard is moved back to SECURE.
            IntegrityError: The PDF could not be assembled.
            GatewayError: Download or upload failed.
        """
        if self._step is not SigningStep.CONFIRM:
            msg = "the contract can only be submitted from the confirmation step"
            raise CheckoutError(msg, status_code=409, code="not-confirming")
        for step in (SigningStep.REVIEW, SigningStep.DRAW, SigningStep.PLACE, SigningStep.SECURE):
            try:
                self.check(step)
            except ValidationError:
                self._step = step
                raise

        template, signature, placement = self._template, self._signature, self._placement
        if template is None:
            raise ErrTemplateMissing
        if signature is None:
            raise ErrSignatureMissing
        if placement is None:
            raise ErrPlacementMissing

        template_bytes = await self._gateway.fetch_document(template.file_url)
        signed = embed_signature(
            template_bytes,
            signature,
            placement,
            stamp_width=self._config.stamp_width,
            stamp_height=self._config.stamp_height,
        )
        try:
            receipt = await self._gateway.sign_contract(
                signed,
                file_name=f"firmado_{template.file_name}",
                template_id=template.id,
                project_id=project_id,
                signer_id=signer_id,
                code=self._code,
                location=self._location,
                transaction_id=transaction_id,
            )
        except GatewayError as exc:
            if exc.is_two_factor:
                self._code = ""
                self._step = SigningStep.SECURE
                raise AuthChallengeError(
                    exc.message, attempts_remaining=exc.attempts_remaining
                ) from exc
            raise
        logger.info("Contract template %s signed for project %s", template.id, project_id)
        return receipt
