from __future__ import annotations

from typing import Any, Protocol


class StoreUnavailable(RuntimeError):
    """The durable store could not be read or written."""


class StateBackend(Protocol):
    """Durable per-user blob storage. Blobs are JSON-shaped dicts."""

    async def load(self, user_id: str) -> dict[str, Any] | None: ...

    async def save(self, user_id: str, blob: dict[str, Any]) -> None: ...

    async def delete(self, user_id: str) -> None: ...
