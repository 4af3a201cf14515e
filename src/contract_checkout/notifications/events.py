"""Event types pushed to the host UI.

- ``FlowEvent`` — envelope with a type string + JSON-able content
- ``StepEvent`` — the wizard moved to another step
- ``PaymentEvent`` — the transaction changed state
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class FlowEvent:
    """Generic event envelope sent to subscribers."""

    type: str
    content: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        return asdict(self)


@dataclass(frozen=True)
class StepEvent(FlowEvent):
    """Emitted after every successful step transition."""

    type: str = "step"
    project_id: int = 0
    step: str = ""
    origin: str = ""


@dataclass(frozen=True)
class PaymentEvent(FlowEvent):
    """Emitted when a transaction changes state.

    ``status`` is a TransactionStatus value; ``message`` is user-facing.
    """

    type: str = "payment"
    transaction_id: int | None = None
    status: str = ""
    message: str = ""
