"""Payment gateway return handling.

The gateway sends the browser back to ``return_url`` with ``status``
(``approved`` | ``failure`` | ``rejected`` | ``pending``) and
``external_reference`` (the transaction correlation id). The host must
parse them once on load, then replace its location with the stripped
URL so a refresh does not reconcile twice.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Protocol

import httpx

# Query parameters removed from the address bar after a gateway return.
_RETURN_PARAMS = (
    "status",
    "external_reference",
    "collection_id",
    "collection_status",
    "payment_id",
    "payment_type",
    "preference_id",
    "merchant_order_id",
    "processing_mode",
    "site_id",
)


class ReturnStatus(enum.StrEnum):
    """Outcome the gateway claims on return. The backend has the last word."""

    APPROVED = "approved"
    FAILURE = "failure"
    REJECTED = "rejected"
    PENDING = "pending"
    UNKNOWN = "unknown"

    @classmethod
    def from_string(cls, value: str | None) -> ReturnStatus:
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class ReturnParams:
    """Correlation data carried by a gateway return URL."""

    external_reference: str
    status: ReturnStatus = ReturnStatus.UNKNOWN


def parse_return_url(url: str) -> ReturnParams | None:
    """Extract gateway return parameters, or ``None`` for a normal load."""
    params = httpx.URL(url).params
    reference = params.get("external_reference", "").strip()
    if not reference:
        return None
    return ReturnParams(
        external_reference=reference,
        status=ReturnStatus.from_string(params.get("status")),
    )


def strip_return_params(url: str) -> str:
    """Return *url* without the gateway return parameters."""
    parsed = httpx.URL(url)
    for key in _RETURN_PARAMS:
        if key in parsed.params:
            parsed = parsed.copy_remove_param(key)
    return str(parsed)


class Navigator(Protocol):
    """Host-side navigation used by the orchestrator."""

    def redirect(self, url: str) -> None:
        """Leave the app for *url* (full-page navigation)."""
        ...

    def replace(self, url: str) -> None:
        """Rewrite the current location without reloading or adding history."""
        ...
