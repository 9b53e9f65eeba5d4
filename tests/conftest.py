"""Shared test fixtures for the guidance engine.

Every test runs against a fixed clock (NOW) and an in-memory state backend.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from crnaclub.guidance.engine.rules.evaluators.registry import build_registry
from crnaclub.guidance.engine.rules.models import Nudge, UserStateSnapshot
from crnaclub.guidance.orchestrator.guidance_service import GuidanceService
from crnaclub.guidance.orchestrator.interactions import InteractionService
from crnaclub.guidance.seed.loader import load_catalog
from crnaclub.guidance.state.backends.base import StoreUnavailable
from crnaclub.guidance.state.backends.memory import InMemoryBackend
from crnaclub.guidance.state.store import StateStore

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def ago(days: float = 0, **kw) -> datetime:
    return NOW - timedelta(days=days, **kw)


def ahead(days: float = 0, **kw) -> datetime:
    return NOW + timedelta(days=days, **kw)


def make_nudge(
    nudge_id: str,
    urgency: str = "medium",
    surface: str = "dashboard",
    engine_id: str = "test",
    **kw,
) -> Nudge:
    return Nudge(id=nudge_id, urgency=urgency, surface=surface, engine_id=engine_id, **kw)


class FakeEngine:
    """Engine returning a fixed list, or raising when `error` is set."""

    def __init__(self, engine_id: str, nudges=(), error: Exception | None = None):
        self.engine_id = engine_id
        self.nudges = list(nudges)
        self.error = error
        self.calls = 0

    def evaluate(self, snapshot):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.nudges)


class FlakyBackend(InMemoryBackend):
    """In-memory backend whose reads or writes can be switched off."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.fail_load = False
        self.fail_save = False

    async def load(self, user_id):
        if self.fail_load:
            raise StoreUnavailable("load down")
        return await super().load(user_id)

    async def save(self, user_id, blob):
        if self.fail_save:
            raise StoreUnavailable("save down")
        await super().save(user_id, blob)

    async def delete(self, user_id):
        if self.fail_save:
            raise StoreUnavailable("delete down")
        await super().delete(user_id)


# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_snapshot():
    def _make(**kw) -> UserStateSnapshot:
        kw.setdefault("user_id", "u1")
        kw.setdefault("now", NOW)
        return UserStateSnapshot(**kw)

    return _make


@pytest.fixture
def registry():
    """Fresh registry built from the packaged catalog."""
    return build_registry(load_catalog())


@pytest.fixture
def backend() -> FlakyBackend:
    return FlakyBackend()


@pytest.fixture
def store(backend) -> StateStore:
    return StateStore(backend, retention_days=30, clock=lambda: NOW)


@pytest.fixture
def interactions(store) -> InteractionService:
    return InteractionService(
        store, clock=lambda: NOW, default_snooze_days=7, permanent_after=3
    )


@pytest.fixture
def service(store, registry) -> GuidanceService:
    return GuidanceService(store, registry)
