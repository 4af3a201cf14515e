"""Pre-defined checkout error instances."""

from __future__ import annotations

from contract_checkout.errors.checkout_errors import CheckoutError
from contract_checkout.errors.flow_errors import IntegrityError, ValidationError

# Step indexes mirror contract_checkout.signing.compositor.SigningStep.
_REVIEW, _DRAW, _PLACE, _SECURE = 0, 1, 2, 3

# -- Wizard prerequisites --------------------------------------------------

ErrTemplateMissing = ValidationError(
    "no contract template is available for this project", step=_REVIEW, code="template-missing"
)
ErrTemplateNotReady = ValidationError(
    "the contract template is inactive or failed its integrity check",
    step=_REVIEW,
    code="template-not-ready",
)
ErrSignatureMissing = ValidationError(
    "draw your signature before continuing", step=_DRAW, code="signature-missing"
)
ErrPlacementMissing = ValidationError(
    "choose where the signature goes on the document", step=_PLACE, code="placement-missing"
)
ErrCodeInvalid = ValidationError(
    "the verification code is malformed", step=_SECURE, code="code-invalid"
)

# -- Transaction -----------------------------------------------------------

ErrNoTransaction = CheckoutError(
    "there is no transaction in progress", status_code=409, code="no-transaction"
)
ErrPaymentNotApproved = ValidationError(
    "the payment has not been approved yet", step=_REVIEW, code="payment-not-approved"
)
ErrNoRedirectUrl = CheckoutError(
    "the backend did not return a payment link", status_code=502, code="no-redirect-url"
)
ErrNoChallenge = CheckoutError(
    "there is no verification challenge open", status_code=409, code="no-challenge"
)
ErrChallengeOpen = CheckoutError(
    "a verification challenge is already open", status_code=409, code="challenge-open"
)

# -- Document --------------------------------------------------------------

ErrPageOutOfRange = IntegrityError("the signature page does not exist in the document")
ErrEmptyDocument = IntegrityError("the contract template is empty")
