"""Wizard snapshot store with memory, file and Redis backends."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Protocol

from contract_checkout.config.settings import StoreEngine
from contract_checkout.store.snapshot import WizardSnapshot

if TYPE_CHECKING:
    from collections.abc import Callable

    from contract_checkout.config.settings import StoreConfig

logger = logging.getLogger(__name__)


class WizardStore:
    """Saves and restores one :class:`WizardSnapshot` per (user, project).

    Reads never raise on bad data: missing, corrupt or version-mismatched
    payloads load as ``None``.
    """

    def __init__(
        self,
        config: StoreConfig,
        backend: StoreBackend | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store.

        Args:
            config: Store configuration (engine, prefix, staleness threshold).
            backend: Explicit backend; built from ``config.engine`` when omitted.
            clock: Source of "now" for staleness checks.
        """
        self._config = config
        self._backend = backend
        self._clock = clock
        self._connected = False

    async def connect(self) -> None:
        """Build (if needed) and connect the backend.

        Raises:
            ValueError: If the store engine is not supported.
        """
        if self._backend is None:
            self._backend = self._build_backend()
        await self._backend.connect()
        self._connected = True

    async def close(self) -> None:
        """Close the backend (idempotent)."""
        if self._backend is not None and self._connected:
            await self._backend.close()
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected and self._backend is not None

    def key_for(self, user_id: int, project_id: int) -> str:
        """Deterministic storage key for a (user, project) pair."""
        return f"{self._config.key_prefix}:wizard:{user_id}:{project_id}"

    async def save(self, snapshot: WizardSnapshot) -> None:
        """Overwrite the snapshot for its (user, project) pair."""
        backend = self._ensure_connected()
        await backend.set(self.key_for(snapshot.user_id, snapshot.project_id), snapshot.to_json())

    async def load(self, user_id: int, project_id: int) -> WizardSnapshot | None:
        """Load the snapshot, or ``None`` when missing or unreadable."""
        backend = self._ensure_connected()
        key = self.key_for(user_id, project_id)
        try:
            raw = await backend.get(key)
        except Exception:
            logger.warning("Snapshot read failed for %s", key, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            snapshot = WizardSnapshot.from_json(raw)
        except ValueError as exc:
            logger.warning("Discarding unreadable snapshot %s: %s", key, exc)
            return None
        if snapshot.user_id != user_id or snapshot.project_id != project_id:
            logger.warning("Discarding snapshot %s stored under the wrong key", key)
            return None
        return snapshot

    async def clear(self, user_id: int, project_id: int) -> None:
        """Delete the snapshot for a (user, project) pair."""
        backend = self._ensure_connected()
        await backend.delete(self.key_for(user_id, project_id))

    def is_stale(self, snapshot: WizardSnapshot) -> bool:
        """Whether *snapshot* is too old to resume."""
        return self._clock() - snapshot.saved_at > self._config.stale_after_seconds

    def _build_backend(self) -> StoreBackend:
        from contract_checkout.store.file import FileStore
        from contract_checkout.store.memory import MemoryStore
        from contract_checkout.store.redis import RedisStore

        engine = self._config.engine
        if engine == StoreEngine.MEMORY:
            return MemoryStore()
        if engine == StoreEngine.FILE:
            return FileStore(self._config)
        if engine == StoreEngine.REDIS:
            return RedisStore(self._config)
        msg = f"Unsupported store engine: {engine}"
        raise ValueError(msg)

    def _ensure_connected(self) -> StoreBackend:
        """Return the backend, raising RuntimeError if not connected."""
        if not self._connected or self._backend is None:
            msg = "Wizard store not connected. Call connect() first."
            raise RuntimeError(msg)
        return self._backend


class StoreBackend(Protocol):
    """Protocol for key/value snapshot backends."""

    async def connect(self) -> None: ...
    async def close(self) -> None: ...
    async def get(self, key: str) -> str | None: ...
    async def set(self, key: str, value: str) -> None: ...
    async def delete(self, key: str) -> None: ...
