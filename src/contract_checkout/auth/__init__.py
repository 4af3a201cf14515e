"""Auth — step-up two-factor challenges."""

from contract_checkout.auth.gate import PendingTwoFactorChallenge, StepUpGate

__all__ = ["PendingTwoFactorChallenge", "StepUpGate"]
