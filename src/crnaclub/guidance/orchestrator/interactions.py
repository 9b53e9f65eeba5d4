"""
Interaction API: the only code path that mutates nudge state.

Every operation updates the in-memory state first and then attempts one
durable write. A failed write is logged by the store and reported back as
`persisted=False`; it is never raised to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from crnaclub.guidance.config.settings import settings
from crnaclub.guidance.engine.feed import is_prompt_dismissed
from crnaclub.guidance.engine.rules.models import (
    DismissedPrompt,
    DismissType,
    InteractionLogEntry,
    NudgeState,
    StateBlob,
    utc_now,
)
from crnaclub.guidance.state.store import StateStore

logger = logging.getLogger(__name__)

SHOWN = "shown"
DISMISSED = "dismissed"
SNOOZED = "snoozed"
PERMANENTLY_DISMISSED = "permanently_dismissed"


@dataclass(frozen=True)
class InteractionResult:
    nudge_id: str
    persisted: bool
    state: NudgeState | None = None


class InteractionService:
    def __init__(
        self,
        store: StateStore,
        *,
        clock: Callable[[], datetime] = utc_now,
        default_snooze_days: int | None = None,
        permanent_after: int | None = None,
    ):
        self.store = store
        self._clock = clock
        self.default_snooze_days = default_snooze_days or settings.DEFAULT_SNOOZE_DAYS
        self.permanent_after = permanent_after or settings.PERMANENT_DISMISS_AFTER

    def for_user(self, user_id: str) -> "UserInteractions":
        return UserInteractions(self, user_id)

    # -----------------------------
    # Helpers
    # -----------------------------

    @staticmethod
    def _log(blob: StateBlob, prompt_id: str, action: str, at: datetime) -> None:
        blob.prompt_interactions.append(
            InteractionLogEntry(prompt_id=prompt_id, shown_at=at, action=action)
        )

    async def _mutate_nudge(
        self,
        user_id: str,
        nudge_id: str,
        action: str,
        change: Callable[[NudgeState, datetime], NudgeState],
    ) -> InteractionResult:
        now = self._clock()
        result: dict[str, NudgeState] = {}

        def _apply(blob: StateBlob) -> None:
            current = blob.tracker_nudges.get(nudge_id) or NudgeState()
            updated = change(current.model_copy(), now)
            blob.tracker_nudges[nudge_id] = updated
            self._log(blob, nudge_id, action, now)
            result["state"] = updated

        _, persisted = await self.store.update(user_id, _apply)
        logger.debug("%s %s for user %s (persisted=%s)", action, nudge_id, user_id, persisted)
        return InteractionResult(nudge_id=nudge_id, persisted=persisted, state=result["state"])

    # -----------------------------
    # Nudge state transitions
    # -----------------------------

    async def mark_shown(self, user_id: str, nudge_id: str) -> InteractionResult:
        """Append-only; repeated calls add log entries and never touch suppression state."""
        now = self._clock()

        def _apply(blob: StateBlob) -> None:
            self._log(blob, nudge_id, SHOWN, now)
            blob.last_nudge_shown[nudge_id] = now

        _, persisted = await self.store.update(user_id, _apply)
        return InteractionResult(nudge_id=nudge_id, persisted=persisted)

    async def dismiss(self, user_id: str, nudge_id: str) -> InteractionResult:
        """Hide for the dismiss window and count it. Never sets the permanent flag."""

        def change(state: NudgeState, now: datetime) -> NudgeState:
            state.dismiss_count += 1
            state.last_dismissed_at = now
            return state

        return await self._mutate_nudge(user_id, nudge_id, DISMISSED, change)

    async def permanently_dismiss(self, user_id: str, nudge_id: str) -> InteractionResult:
        def change(state: NudgeState, now: datetime) -> NudgeState:
            state.permanently_dismissed = True
            return state

        return await self._mutate_nudge(user_id, nudge_id, PERMANENTLY_DISMISSED, change)

    async def snooze(
        self, user_id: str, nudge_id: str, days: int | None = None
    ) -> InteractionResult:
        days = self.default_snooze_days if days is None else days
        if days <= 0:
            raise ValueError("snooze days must be positive")

        def change(state: NudgeState, now: datetime) -> NudgeState:
            state.snoozed_until = now + timedelta(days=days)
            return state

        return await self._mutate_nudge(user_id, nudge_id, SNOOZED, change)

    async def clear_snooze(self, user_id: str, nudge_id: str) -> InteractionResult:
        def _apply(blob: StateBlob) -> None:
            state = blob.tracker_nudges.get(nudge_id)
            if state is not None:
                state.snoozed_until = None

        blob, persisted = await self.store.update(user_id, _apply)
        return InteractionResult(
            nudge_id=nudge_id, persisted=persisted, state=blob.tracker_nudges.get(nudge_id)
        )

    async def reset_nudge(self, user_id: str, nudge_id: str) -> InteractionResult:
        def _apply(blob: StateBlob) -> None:
            blob.tracker_nudges.pop(nudge_id, None)

        _, persisted = await self.store.update(user_id, _apply)
        return InteractionResult(nudge_id=nudge_id, persisted=persisted)

    async def should_offer_permanent_dismiss(self, user_id: str, nudge_id: str) -> bool:
        """Advisory: the UI may offer "don't show again" after enough dismissals."""
        state = await self.store.get_nudge_state(user_id, nudge_id)
        return not state.permanently_dismissed and state.dismiss_count >= self.permanent_after

    # -----------------------------
    # Celebrations
    # -----------------------------

    async def mark_celebrated(self, user_id: str, event_id: str) -> InteractionResult:
        def _apply(blob: StateBlob) -> None:
            if event_id not in blob.celebrated_events:
                blob.celebrated_events.append(event_id)

        _, persisted = await self.store.update(user_id, _apply)
        return InteractionResult(nudge_id=event_id, persisted=persisted)

    async def has_celebrated(self, user_id: str, event_id: str) -> bool:
        blob = await self.store.load(user_id)
        return event_id in blob.celebrated_events

    # -----------------------------
    # Prompt-level dismissals and analytics
    # -----------------------------

    async def dismiss_prompt(
        self,
        user_id: str,
        prompt_id: str,
        dismiss_type: DismissType | str = DismissType.permanent,
        context: str | None = None,
    ) -> InteractionResult:
        now = self._clock()
        record = DismissedPrompt(
            prompt_id=prompt_id,
            context=context,
            dismissed_at=now,
            dismiss_type=DismissType(dismiss_type),
        )

        def _apply(blob: StateBlob) -> None:
            blob.dismissed_prompts.append(record)
            self._log(blob, prompt_id, DISMISSED, now)

        _, persisted = await self.store.update(user_id, _apply)
        return InteractionResult(nudge_id=prompt_id, persisted=persisted)

    async def is_prompt_dismissed(
        self, user_id: str, prompt_id: str, context: str | None = None
    ) -> bool:
        blob = await self.store.load(user_id)
        return is_prompt_dismissed(blob, prompt_id, context, self._clock())

    async def record_interaction(
        self, user_id: str, prompt_id: str, action: str
    ) -> InteractionResult:
        now = self._clock()
        _, persisted = await self.store.update(
            user_id, lambda blob: self._log(blob, prompt_id, action, now)
        )
        return InteractionResult(nudge_id=prompt_id, persisted=persisted)

    async def clear_all(self, user_id: str) -> bool:
        return await self.store.reset(user_id)


class UserInteractions:
    """The Interaction API bound to one user, for single-user callers."""

    def __init__(self, service: InteractionService, user_id: str):
        self._service = service
        self.user_id = user_id

    async def mark_shown(self, nudge_id: str) -> InteractionResult:
        return await self._service.mark_shown(self.user_id, nudge_id)

    async def dismiss(self, nudge_id: str) -> InteractionResult:
        return await self._service.dismiss(self.user_id, nudge_id)

    async def permanently_dismiss(self, nudge_id: str) -> InteractionResult:
        return await self._service.permanently_dismiss(self.user_id, nudge_id)

    async def snooze(self, nudge_id: str, days: int | None = None) -> InteractionResult:
        return await self._service.snooze(self.user_id, nudge_id, days)

    async def reset_nudge(self, nudge_id: str) -> InteractionResult:
        return await self._service.reset_nudge(self.user_id, nudge_id)

    async def mark_celebrated(self, event_id: str) -> InteractionResult:
        return await self._service.mark_celebrated(self.user_id, event_id)
