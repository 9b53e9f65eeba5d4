from __future__ import annotations

import copy
from typing import Any


class InMemoryBackend:
    """Process-local backend for tests and anonymous sessions."""

    def __init__(self, initial: dict[str, dict[str, Any]] | None = None):
        self.blobs: dict[str, dict[str, Any]] = copy.deepcopy(initial or {})

    async def load(self, user_id: str) -> dict[str, Any] | None:
        blob = self.blobs.get(user_id)
        return copy.deepcopy(blob) if blob is not None else None

    async def save(self, user_id: str, blob: dict[str, Any]) -> None:
        self.blobs[user_id] = copy.deepcopy(blob)

    async def delete(self, user_id: str) -> None:
        self.blobs.pop(user_id, None)
