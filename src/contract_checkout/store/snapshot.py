"""WizardSnapshot — the persisted unit of checkout progress."""

from __future__ import annotations

import enum
import json
import time
from dataclasses import dataclass, field
from typing import Any

from contract_checkout.gateway.models import SignaturePlacement, TransactionKind, TransactionStatus

# Bump when the serialized shape changes; older payloads are rejected.
SNAPSHOT_VERSION = 2


class FlowOrigin(enum.StrEnum):
    """How the current wizard session came to be."""

    FRESH = "fresh"
    RESUMED = "resumed"
    GATEWAY_RETURN = "gateway_return"
    STALE_TEMPLATE = "stale_template"


@dataclass(frozen=True)
class WizardSnapshot:
    """Serializable wizard progress for one (user, project) pair.

    No binary payloads: the drawn signature is never persisted.
    """

    project_id: int
    user_id: int
    step: int
    kind: TransactionKind | None = None
    transaction_id: int | None = None
    transaction_status: TransactionStatus | None = None
    external_reference: str | None = None
    signature_placement: SignaturePlacement | None = None
    template_id: int | None = None
    template_version: int | None = None
    saved_at: float = field(default_factory=time.time)

    def to_json(self) -> str:
        """Serialize with the embedded version tag."""
        payload: dict[str, Any] = {
            "version": SNAPSHOT_VERSION,
            "projectId": self.project_id,
            "userId": self.user_id,
            "step": self.step,
            "kind": self.kind.value if self.kind else None,
            "transactionId": self.transaction_id,
            "transactionStatus": self.transaction_status.value if self.transaction_status else None,
            "externalReference": self.external_reference,
            "signaturePlacement": (
                self.signature_placement.to_dict() if self.signature_placement else None
            ),
            "templateId": self.template_id,
            "templateVersion": self.template_version,
            "savedAt": self.saved_at,
        }
        return json.dumps(payload, separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: str) -> WizardSnapshot:
        """Parse a stored payload.

        Raises:
            ValueError: On corrupt JSON, a version mismatch or bad fields.
        """
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            msg = "snapshot is not valid JSON"
            raise ValueError(msg) from exc
        if not isinstance(data, dict):
            msg = "snapshot payload must be an object"
            raise ValueError(msg)
        if data.get("version") != SNAPSHOT_VERSION:
            msg = f"unsupported snapshot version {data.get('version')!r}"
            raise ValueError(msg)

        try:
            placement = data.get("signaturePlacement")
            kind = data.get("kind")
            status = data.get("transactionStatus")
            return cls(
                project_id=int(data["projectId"]),
                user_id=int(data["userId"]),
                step=int(data["step"]),
                kind=TransactionKind(kind) if kind else None,
                transaction_id=data.get("transactionId"),
                transaction_status=TransactionStatus(status) if status else None,
                external_reference=data.get("externalReference"),
                signature_placement=SignaturePlacement.from_dict(placement) if placement else None,
                template_id=data.get("templateId"),
                template_version=data.get("templateVersion"),
                saved_at=float(data["savedAt"]),
            )
        except (KeyError, TypeError) as exc:
            msg = f"snapshot is missing or has malformed fields: {exc}"
            raise ValueError(msg) from exc
