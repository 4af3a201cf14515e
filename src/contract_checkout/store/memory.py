"""In-memory snapshot backend (single process, tests)."""

from __future__ import annotations


class MemoryStore:
    """Dict-backed key/value store. Contents die with the process."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def connect(self) -> None:  # noqa: ASYNC910
        """Connect (no-op for in-memory)."""

    async def close(self) -> None:  # noqa: ASYNC910
        """Nothing to release; contents are kept for reconnects."""

    async def get(self, key: str) -> str | None:  # noqa: ASYNC910
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:  # noqa: ASYNC910
        self._data[key] = value

    async def delete(self, key: str) -> None:  # noqa: ASYNC910
        self._data.pop(key, None)
