"""Checkout — the resumable payment and contract signing flow."""

from contract_checkout.checkout.orchestrator import CheckoutOrchestrator, FlowResult, FlowStatus
from contract_checkout.checkout.redirect import (
    Navigator,
    ReturnParams,
    ReturnStatus,
    parse_return_url,
    strip_return_params,
)

__all__ = [
    "CheckoutOrchestrator",
    "FlowResult",
    "FlowStatus",
    "Navigator",
    "ReturnParams",
    "ReturnStatus",
    "parse_return_url",
    "strip_return_params",
]
