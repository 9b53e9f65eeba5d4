"""
Per-user nudge state with an in-process cache in front of a durable backend.

The cache is authoritative for the life of the process: a failed durable
write is logged and the cached value keeps serving reads.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable

from pydantic import ValidationError

from crnaclub.guidance.config.settings import settings
from crnaclub.guidance.engine.rules.models import NudgeState, StateBlob, utc_now
from crnaclub.guidance.state.backends.base import StateBackend

logger = logging.getLogger(__name__)


def prune_interactions(blob: StateBlob, now: datetime, retention_days: int) -> None:
    """Drop analytics entries older than the retention window (in place)."""
    cutoff = now - timedelta(days=retention_days)
    blob.prompt_interactions = [e for e in blob.prompt_interactions if e.shown_at >= cutoff]
    blob.last_nudge_shown = {k: v for k, v in blob.last_nudge_shown.items() if v >= cutoff}


class StateStore:
    def __init__(
        self,
        backend: StateBackend,
        *,
        retention_days: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._backend = backend
        self._cache: dict[str, StateBlob] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        # users whose cached blob was started without a successful backend read,
        # with the mutations applied to it since
        self._unread: dict[str, list[Callable[[StateBlob], None]]] = {}
        self._retention_days = (
            settings.INTERACTION_RETENTION_DAYS if retention_days is None else retention_days
        )
        self._clock = clock

    def lock(self, user_id: str) -> asyncio.Lock:
        """Serializes backend reads and read-modify-write cycles for one user within this process."""
        if user_id not in self._locks:
            self._locks[user_id] = asyncio.Lock()
        return self._locks[user_id]

    # -----------------------------
    # Reads
    # -----------------------------

    async def load(self, user_id: str) -> StateBlob:
        """Never raises; falls back to an empty blob."""
        cached = self._cache.get(user_id)
        if cached is not None and user_id not in self._unread:
            return cached

        async with self.lock(user_id):
            return await self._load(user_id)

    async def _load(self, user_id: str) -> StateBlob:
        # caller holds the user's lock
        cached = self._cache.get(user_id)
        if cached is not None and user_id not in self._unread:
            return cached

        try:
            raw = await self._backend.load(user_id)
        except Exception:
            # not marked as read, so the next read retries the backend
            logger.exception("State load failed for user %s, using defaults", user_id)
            return cached if cached is not None else StateBlob()

        blob = StateBlob()
        if raw is not None:
            try:
                blob = StateBlob.model_validate(raw)
            except ValidationError as e:
                logger.warning("Discarding malformed state for user %s: %s", user_id, e)

        pending = self._unread.pop(user_id, None)
        if pending is None:
            return self._cache.setdefault(user_id, blob)

        # changes made while the backend was unreadable go on top of the stored blob
        for mutation in pending:
            mutation(blob)
        logger.info("Replaying %d held change(s) for user %s", len(pending), user_id)
        await self.save(user_id, blob)
        return blob

    def snapshot(self, user_id: str) -> StateBlob:
        """Deep copy of the cached blob; later writes do not leak into it."""
        cached = self._cache.get(user_id)
        return cached.model_copy(deep=True) if cached is not None else StateBlob()

    async def get_nudge_state(self, user_id: str, nudge_id: str) -> NudgeState:
        blob = await self.load(user_id)
        state = blob.tracker_nudges.get(nudge_id)
        return state.model_copy() if state is not None else NudgeState()

    # -----------------------------
    # Writes
    # -----------------------------

    async def save(self, user_id: str, blob: StateBlob) -> bool:
        """Cache then persist the full blob. Returns False if the durable write failed."""
        if self._retention_days:
            prune_interactions(blob, self._clock(), self._retention_days)
        self._cache[user_id] = blob
        self._unread.pop(user_id, None)
        try:
            await self._backend.save(user_id, blob.to_json())
        except Exception:
            logger.exception("State save failed for user %s; keeping in-memory copy", user_id)
            return False
        return True

    async def update(
        self, user_id: str, mutation: Callable[[StateBlob], None]
    ) -> tuple[StateBlob, bool]:
        """
        Apply `mutation` to the user's blob in place and write it through.

        If the stored blob could not be read, the change is held in memory and
        replayed onto the stored blob by the next successful read; a default
        blob never overwrites what is stored.
        """
        async with self.lock(user_id):
            blob = await self._load(user_id)
            if user_id not in self._cache:
                self._cache[user_id] = blob
                self._unread[user_id] = []

            mutation(blob)
            if user_id in self._unread:
                self._unread[user_id].append(mutation)
                logger.warning("State for user %s unreadable; holding change in memory", user_id)
                return blob, False

            persisted = await self.save(user_id, blob)
            return blob, persisted

    async def update_nudge_state(
        self,
        user_id: str,
        nudge_id: str,
        mutation: Callable[[NudgeState], NudgeState],
    ) -> NudgeState:
        """Apply a pure mutation to one nudge's state (zero-valued if absent) and persist."""
        result: list[NudgeState] = []

        def _apply(blob: StateBlob) -> None:
            current = blob.tracker_nudges.get(nudge_id) or NudgeState()
            updated = mutation(current.model_copy())
            blob.tracker_nudges[nudge_id] = updated
            result.append(updated)

        await self.update(user_id, _apply)
        return result[0]

    async def reset(self, user_id: str) -> bool:
        async with self.lock(user_id):
            self._cache[user_id] = StateBlob()
            self._unread.pop(user_id, None)
            try:
                await self._backend.delete(user_id)
            except Exception:
                logger.exception("State reset failed for user %s", user_id)
                return False
            return True
