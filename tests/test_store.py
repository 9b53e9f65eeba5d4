"""State store and its durable backends."""

from __future__ import annotations

import asyncio
import logging

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from crnaclub.guidance.db.init_db import create_tables
from crnaclub.guidance.engine.rules.models import InteractionLogEntry, NudgeState, StateBlob
from crnaclub.guidance.orchestrator.interactions import InteractionService
from crnaclub.guidance.state.backends.database import SqlAlchemyBackend
from crnaclub.guidance.state.backends.file import JsonFileBackend
from crnaclub.guidance.state.store import StateStore

from conftest import NOW, FlakyBackend, ago


def _dismiss(blob: StateBlob) -> None:
    state = blob.tracker_nudges.setdefault("a", NudgeState())
    state.dismiss_count += 1
    state.last_dismissed_at = NOW


async def test_unknown_user_gets_empty_state(store):
    blob = await store.load("nobody")
    assert blob == StateBlob()


async def test_state_survives_restart(store, backend):
    _, persisted = await store.update("u1", _dismiss)
    assert persisted

    restarted = StateStore(backend, clock=lambda: NOW)
    state = await restarted.get_nudge_state("u1", "a")
    assert state.dismiss_count == 1
    assert state.last_dismissed_at == NOW


async def test_failed_load_falls_back_and_retries(backend, caplog):
    backend.blobs["u1"] = StateBlob(celebrated_events=["evt"]).to_json()
    backend.fail_load = True
    store = StateStore(backend, clock=lambda: NOW)

    with caplog.at_level(logging.ERROR):
        assert await store.load("u1") == StateBlob()
    assert "State load failed" in caplog.text

    backend.fail_load = False
    assert (await store.load("u1")).celebrated_events == ["evt"]


async def test_failed_save_keeps_memory_copy(store, backend):
    backend.fail_save = True
    _, persisted = await store.update("u1", _dismiss)

    assert persisted is False
    assert "u1" not in backend.blobs
    assert (await store.get_nudge_state("u1", "a")).dismiss_count == 1


async def test_slow_read_does_not_clobber_a_concurrent_write():
    gate = asyncio.Event()
    reading = asyncio.Event()

    class SlowReadBackend(FlakyBackend):
        async def load(self, user_id):
            raw = await super().load(user_id)
            reading.set()
            await gate.wait()
            return raw

    slow = SlowReadBackend()
    store = StateStore(slow, clock=lambda: NOW)
    interactions = InteractionService(store, clock=lambda: NOW)

    reader = asyncio.create_task(store.load("u1"))
    await reading.wait()
    writer = asyncio.create_task(interactions.dismiss("u1", "a"))
    await asyncio.sleep(0)
    gate.set()
    await asyncio.gather(reader, writer)

    assert (await store.get_nudge_state("u1", "a")).dismiss_count == 1
    assert slow.blobs["u1"]["tracker_nudges"]["a"]["dismissCount"] == 1


async def test_failed_read_never_overwrites_stored_state(backend, caplog):
    stored = StateBlob(
        tracker_nudges={"x": NudgeState(permanently_dismissed=True)},
        celebrated_events=["evt"],
    )
    backend.blobs["u1"] = stored.to_json()
    backend.fail_load = True
    store = StateStore(backend, clock=lambda: NOW)
    interactions = InteractionService(store, clock=lambda: NOW)

    with caplog.at_level(logging.WARNING):
        result = await interactions.dismiss("u1", "y")
    assert result.persisted is False
    assert "holding change in memory" in caplog.text
    # stored blob untouched, the change still visible in this process
    assert backend.blobs["u1"] == stored.to_json()
    assert (await store.get_nudge_state("u1", "y")).dismiss_count == 1

    backend.fail_load = False
    blob = await store.load("u1")
    assert blob.tracker_nudges["x"].permanently_dismissed is True
    assert blob.tracker_nudges["y"].dismiss_count == 1
    assert blob.celebrated_events == ["evt"]

    fresh = StateStore(backend, clock=lambda: NOW)
    assert (await fresh.get_nudge_state("u1", "x")).permanently_dismissed is True
    assert (await fresh.get_nudge_state("u1", "y")).dismiss_count == 1


async def test_malformed_blob_is_replaced(backend, caplog):
    backend.blobs["u1"] = {"tracker_nudges": "not a map"}
    store = StateStore(backend)
    with caplog.at_level(logging.WARNING):
        assert await store.load("u1") == StateBlob()
    assert "malformed" in caplog.text


async def test_snapshot_is_isolated(store):
    await store.update("u1", _dismiss)
    snap = store.snapshot("u1")
    await store.update("u1", _dismiss)
    assert snap.tracker_nudges["a"].dismiss_count == 1
    assert (await store.get_nudge_state("u1", "a")).dismiss_count == 2


async def test_concurrent_updates_serialize(store):
    await asyncio.gather(*(store.update("u1", _dismiss) for _ in range(10)))
    assert (await store.get_nudge_state("u1", "a")).dismiss_count == 10


async def test_update_nudge_state(store, backend):
    state = await store.update_nudge_state(
        "u1", "a", lambda s: s.model_copy(update={"permanently_dismissed": True})
    )
    assert state.permanently_dismissed is True
    assert backend.blobs["u1"]["tracker_nudges"]["a"]["permanentlyDismissed"] is True
    assert (await store.get_nudge_state("u1", "b")) == NudgeState()


async def test_old_interactions_pruned_on_save(store):
    def _log(blob: StateBlob) -> None:
        blob.prompt_interactions = [
            InteractionLogEntry(prompt_id="old", shown_at=ago(45), action="shown"),
            InteractionLogEntry(prompt_id="new", shown_at=ago(2), action="shown"),
        ]
        blob.last_nudge_shown = {"old": ago(45), "new": ago(2)}

    blob, _ = await store.update("u1", _log)
    assert [e.prompt_id for e in blob.prompt_interactions] == ["new"]
    assert list(blob.last_nudge_shown) == ["new"]


async def test_reset(store, backend):
    await store.update("u1", _dismiss)
    assert await store.reset("u1") is True
    assert "u1" not in backend.blobs
    assert await store.load("u1") == StateBlob()

    await store.update("u1", _dismiss)
    backend.fail_save = True
    assert await store.reset("u1") is False
    assert await store.load("u1") == StateBlob()


async def test_persisted_layout(store, backend):
    await store.update("u1", _dismiss)
    raw = backend.blobs["u1"]
    assert set(raw) == {
        "tracker_nudges",
        "dismissed_prompts",
        "prompt_interactions",
        "celebrated_events",
        "last_nudge_shown",
    }
    assert raw["tracker_nudges"]["a"]["dismissCount"] == 1
    assert raw["tracker_nudges"]["a"]["permanentlyDismissed"] is False


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class TestJsonFileBackend:
    async def test_roundtrip_and_delete(self, tmp_path):
        backend = JsonFileBackend(tmp_path / "state")
        await backend.save("user/1", {"celebrated_events": ["x"]})
        assert (tmp_path / "state" / "user%2F1.json").exists()
        assert await backend.load("user/1") == {"celebrated_events": ["x"]}

        await backend.delete("user/1")
        assert await backend.load("user/1") is None

    async def test_corrupt_file_falls_back(self, tmp_path):
        (tmp_path / "u1.json").write_text("{not json", encoding="utf-8")
        store = StateStore(JsonFileBackend(tmp_path))
        assert await store.load("u1") == StateBlob()


class TestSqlAlchemyBackend:
    @pytest.fixture
    async def sql_backend(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'guidance.db'}")
        await create_tables(engine)
        yield SqlAlchemyBackend(async_sessionmaker(engine, expire_on_commit=False))
        await engine.dispose()

    async def test_insert_update_delete(self, sql_backend):
        assert await sql_backend.load("u1") is None

        await sql_backend.save("u1", {"celebrated_events": ["a"]})
        await sql_backend.save("u1", {"celebrated_events": ["a", "b"]})
        assert await sql_backend.load("u1") == {"celebrated_events": ["a", "b"]}

        await sql_backend.delete("u1")
        assert await sql_backend.load("u1") is None

    async def test_store_over_sql(self, sql_backend):
        store = StateStore(sql_backend, clock=lambda: NOW)
        _, persisted = await store.update("u1", _dismiss)
        assert persisted

        fresh = StateStore(sql_backend, clock=lambda: NOW)
        assert (await fresh.get_nudge_state("u1", "a")).dismiss_count == 1
