"""Gateway data models — transactions, status results, contract templates.

Data classes representing backend request/response objects. Decoding is
lenient: the backend has used both English and Spanish field names.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class TransactionKind(enum.StrEnum):
    """What the user is paying for."""

    SUBSCRIPTION = "subscription"
    INVESTMENT = "investment"

    @property
    def endpoint(self) -> str:
        """Backend collection path for this kind."""
        return "/subscriptions" if self is TransactionKind.SUBSCRIPTION else "/investments"


class TransactionStatus(enum.StrEnum):
    """Client-side transaction lifecycle.

    Lifecycle: CREATED → AWAITING_GATEWAY → REQUIRES_2FA
               → APPROVED | REJECTED | TIMED_OUT
    """

    CREATED = "created"
    AWAITING_GATEWAY = "awaiting_gateway"
    REQUIRES_2FA = "requires_2fa"
    APPROVED = "approved"
    REJECTED = "rejected"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        """Approved and rejected never change again."""
        return self in (TransactionStatus.APPROVED, TransactionStatus.REJECTED)

    @classmethod
    def from_backend(cls, value: str | None) -> TransactionStatus:
        """Map a backend / gateway status string.

        Unknown values are treated as still in flight.
        """
        normalized = (value or "").strip().lower()
        if normalized in _APPROVED_STATES:
            return cls.APPROVED
        if normalized in _REJECTED_STATES or normalized.startswith("rechazado"):
            return cls.REJECTED
        try:
            return cls(normalized)
        except ValueError:
            return cls.AWAITING_GATEWAY


_APPROVED_STATES = frozenset({"approved", "pagado", "aprobado", "success"})
_REJECTED_STATES = frozenset(
    {
        "rejected",
        "failure",
        "failed",
        "fallido",
        "reembolsado",
        "refunded",
        "expirado",
        "expired",
        "cancelado",
        "cancelled",
    }
)

# Allowed forward moves. REQUIRES_2FA may be followed by the gateway leg
# when the confirmed code yields a checkout link.
_TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.CREATED: frozenset(
        {
            TransactionStatus.AWAITING_GATEWAY,
            TransactionStatus.REQUIRES_2FA,
            TransactionStatus.APPROVED,
            TransactionStatus.REJECTED,
        }
    ),
    TransactionStatus.AWAITING_GATEWAY: frozenset(
        {
            TransactionStatus.APPROVED,
            TransactionStatus.REJECTED,
            TransactionStatus.TIMED_OUT,
        }
    ),
    TransactionStatus.REQUIRES_2FA: frozenset(
        {
            TransactionStatus.AWAITING_GATEWAY,
            TransactionStatus.APPROVED,
            TransactionStatus.REJECTED,
        }
    ),
    TransactionStatus.TIMED_OUT: frozenset(
        {TransactionStatus.APPROVED, TransactionStatus.REJECTED}
    ),
    TransactionStatus.APPROVED: frozenset(),
    TransactionStatus.REJECTED: frozenset(),
}


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------


@dataclass
class Transaction:
    """A pending financial operation as the client tracks it.

    Attributes:
        id: Backend-assigned id, set once initiation succeeds.
        kind: Subscription or investment.
        project_id: Project being paid for.
        amount: Amount, when the backend reports it.
        currency: ISO currency code, when reported.
        status: Current lifecycle state.
        external_reference: Gateway correlation id; set only on redirect.
        created_at: Unix timestamp of creation.
    """

    kind: TransactionKind
    project_id: int
    id: int | None = None
    amount: float | None = None
    currency: str = ""
    status: TransactionStatus = TransactionStatus.CREATED
    external_reference: str | None = None
    created_at: float = field(default_factory=time.time)
    _two_factor_seen: bool = field(default=False, repr=False)

    def advance_to(self, status: TransactionStatus) -> None:
        """Move to *status*, enforcing the lifecycle.

        Raises:
            ValueError: On a backwards move or a second 2FA challenge.
        """
        if status == self.status:
            return
        if status is TransactionStatus.REQUIRES_2FA and self._two_factor_seen:
            msg = f"transaction {self.id} already went through a 2FA challenge"
            raise ValueError(msg)
        if status not in _TRANSITIONS[self.status]:
            msg = f"illegal transaction transition {self.status} -> {status}"
            raise ValueError(msg)
        if status is TransactionStatus.REQUIRES_2FA:
            self._two_factor_seen = True
        self.status = status

    def mark_redirected(self, external_reference: str) -> None:
        """Record the hand-off to the payment gateway."""
        self.advance_to(TransactionStatus.AWAITING_GATEWAY)
        self.external_reference = external_reference


# ---------------------------------------------------------------------------
# Initiation / 2FA confirmation response
# ---------------------------------------------------------------------------


def _first(data: dict[str, Any], *keys: str) -> Any:
    """Return the first non-empty value among *keys*."""
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _optional_int(value: Any) -> int | None:
    return None if value in (None, "") else int(value)


@dataclass
class InitiateResult:
    """Response of ``initiate`` and ``confirm_two_factor``.

    Exactly one of three outcomes applies: a 2FA challenge, a redirect to
    the gateway, or an immediate success.
    """

    transaction_id: int | None = None
    redirect_url: str | None = None
    is_2fa_required: bool = False
    pending_transaction_id: int | None = None
    external_reference: str | None = None
    amount: float | None = None
    currency: str = ""
    message: str = ""

    @property
    def is_redirect(self) -> bool:
        return not self.is_2fa_required and bool(self.redirect_url)

    @property
    def is_success(self) -> bool:
        return not self.is_2fa_required and not self.redirect_url

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InitiateResult:
        """Create an InitiateResult from a backend JSON response."""
        body = data.get("data") if isinstance(data.get("data"), dict) else data
        preference = body.get("preference") or {}
        redirect = _first(body, "redirectUrl", "redirect_url", "init_point", "url")
        if redirect is None and isinstance(preference, dict):
            redirect = preference.get("init_point")
        tx_id = _first(body, "transactionId", "transaccionId", "inversionId", "id")
        pending = _first(body, "pendingTransactionId", "pending_transaction_id")
        amount = _first(body, "amount", "monto")
        return cls(
            transaction_id=_optional_int(tx_id),
            redirect_url=redirect,
            is_2fa_required=bool(_first(body, "is2FARequired", "is_2fa_required")),
            pending_transaction_id=_optional_int(pending),
            external_reference=_first(body, "externalReference", "external_reference"),
            amount=None if amount is None else float(amount),
            currency=_first(body, "currency", "moneda") or "",
            message=_first(data, "message", "mensaje") or "",
        )


# ---------------------------------------------------------------------------
# Status check
# ---------------------------------------------------------------------------


@dataclass
class StatusResult:
    """Response of ``check_status``.

    Attributes:
        transaction_id: Transaction queried.
        raw_status: Status string as sent by the backend.
        gateway_status: Gateway-side status (``pagoPasarela.estado``), if any.
    """

    transaction_id: int
    raw_status: str = ""
    gateway_status: str = ""

    @property
    def status(self) -> TransactionStatus:
        return TransactionStatus.from_backend(self.raw_status)

    @classmethod
    def from_dict(cls, transaction_id: int, data: dict[str, Any]) -> StatusResult:
        """Create a StatusResult from ``GET /transactions/:id`` JSON."""
        tx = data.get("transaccion") or data.get("transaction") or {}
        gateway = data.get("pagoPasarela") or data.get("gateway") or {}
        raw = _first(tx, "estado", "status") if isinstance(tx, dict) else None
        if raw is None:
            raw = _first(data, "status", "estado")
        return cls(
            transaction_id=transaction_id,
            raw_status=raw or "",
            gateway_status=(_first(gateway, "estado", "status") or "") if isinstance(gateway, dict) else "",
        )


# ---------------------------------------------------------------------------
# Contract templates and signed artifacts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContractTemplate:
    """Read-only contract template owned by the template service."""

    id: int
    project_id: int | None
    file_url: str
    version: int = 1
    file_name: str = "contrato.pdf"
    active: bool = True
    integrity_compromised: bool = False

    @property
    def is_ready(self) -> bool:
        """Usable for signing: active, intact and bound to a project."""
        return self.active and not self.integrity_compromised and self.project_id is not None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContractTemplate:
        project = _first(data, "projectId", "project_id", "id_proyecto")
        return cls(
            id=int(data["id"]),
            project_id=_optional_int(project),
            file_url=_first(data, "fileUrl", "file_url", "url_archivo") or "",
            version=int(_first(data, "version") or 1),
            file_name=_first(data, "fileName", "file_name", "nombre_archivo") or "contrato.pdf",
            active=bool(data.get("active", data.get("activo", True))),
            integrity_compromised=bool(data.get("integrity_compromised", False)),
        )


@dataclass(frozen=True)
class SignaturePlacement:
    """Where the stamp goes, in top-left-origin document units.

    ``page`` is 1-based. ``x``/``y`` are already divided by the render scale.
    """

    page: int
    x: float
    y: float

    @classmethod
    def from_ui(cls, page: int, x: float, y: float, *, scale: float = 1.0) -> SignaturePlacement:
        """Normalize a click on a page rendered at *scale*."""
        if scale <= 0:
            msg = f"render scale must be positive, got {scale}"
            raise ValueError(msg)
        return cls(page=page, x=x / scale, y=y / scale)

    def to_dict(self) -> dict[str, Any]:
        return {"page": self.page, "x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SignaturePlacement:
        return cls(page=int(data["page"]), x=float(data["x"]), y=float(data["y"]))


@dataclass(frozen=True)
class GeoLocation:
    """Best-effort signer location for the audit trail."""

    lat: str
    lng: str


@dataclass(frozen=True)
class SignedContractReceipt:
    """Backend acknowledgement of a signed contract.

    ``file_hash`` is whatever the backend computed; empty when not echoed.
    """

    id: int | None
    file_hash: str = ""
    message: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SignedContractReceipt:
        body = data.get("data") if isinstance(data.get("data"), dict) else data
        contract_id = _first(body, "id", "contractId", "id_contrato")
        return cls(
            id=_optional_int(contract_id),
            file_hash=_first(body, "hash_archivo_firmado", "fileHash", "file_hash") or "",
            message=_first(data, "message", "mensaje") or "",
        )
