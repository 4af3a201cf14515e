"""File snapshot backend — one small JSON file per key.

Durable client-side storage for desktop and CLI hosts. Writes go to a
temporary file first and are renamed into place, so a crash never
leaves a half-written snapshot behind.
"""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from contract_checkout.config.settings import StoreConfig

logger = logging.getLogger(__name__)


class FileStore:
    """Directory-backed key/value store."""

    def __init__(self, config: StoreConfig) -> None:
        self._root = Path(config.path)

    async def connect(self) -> None:  # noqa: ASYNC910
        """Create the storage directory."""
        self._root.mkdir(parents=True, exist_ok=True)

    async def close(self) -> None:  # noqa: ASYNC910
        """Nothing to release."""

    async def get(self, key: str) -> str | None:  # noqa: ASYNC910
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Unreadable snapshot file %s: %s", path, exc)
            return None

    async def set(self, key: str, value: str) -> None:  # noqa: ASYNC910
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        os.replace(tmp, path)

    async def delete(self, key: str) -> None:  # noqa: ASYNC910
        self._path(key).unlink(missing_ok=True)

    def _path(self, key: str) -> Path:
        # Keys contain ':' which is not portable in file names.
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]
        return self._root / f"{digest}.json"
