"""Reconciliation — confirm redirected payments by bounded polling."""

from contract_checkout.reconciliation.poller import PaymentPoller, PollOutcome, PollResult

__all__ = ["PaymentPoller", "PollOutcome", "PollResult"]
