"""Store — durable wizard snapshots per (user, project)."""

from contract_checkout.store.client import StoreBackend, WizardStore
from contract_checkout.store.snapshot import SNAPSHOT_VERSION, FlowOrigin, WizardSnapshot

__all__ = ["SNAPSHOT_VERSION", "FlowOrigin", "StoreBackend", "WizardSnapshot", "WizardStore"]
