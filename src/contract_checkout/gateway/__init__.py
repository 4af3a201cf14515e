"""Gateway — backend transaction and contract API client."""

from contract_checkout.gateway.client import GatewayClient
from contract_checkout.gateway.models import (
    ContractTemplate,
    GeoLocation,
    InitiateResult,
    SignaturePlacement,
    SignedContractReceipt,
    StatusResult,
    Transaction,
    TransactionKind,
    TransactionStatus,
)

__all__ = [
    "ContractTemplate",
    "GatewayClient",
    "GeoLocation",
    "InitiateResult",
    "SignaturePlacement",
    "SignedContractReceipt",
    "StatusResult",
    "Transaction",
    "TransactionKind",
    "TransactionStatus",
]
