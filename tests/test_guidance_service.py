"""End-to-end: engines, state and feed through GuidanceService."""

from __future__ import annotations

from datetime import timedelta

from crnaclub.guidance.engine.feed import FeedLimits
from crnaclub.guidance.engine.rules.evaluators.registry import EngineRegistry
from crnaclub.guidance.engine.rules.models import NudgeState
from crnaclub.guidance.orchestrator.guidance_service import GuidanceService

from conftest import NOW, FakeEngine, ago, ahead, make_nudge


def _ids(nudges):
    return [n.id for n in nudges]


async def test_clinical_catchup_lifecycle(service, interactions, make_snapshot):
    snap = make_snapshot(last_clinical_log_at=ago(5))

    result = await service.evaluate("u1", snap)
    assert _ids(result.dashboard) == ["clinical_catchup"]
    assert "5 days" in result.dashboard[0].payload["body"]

    await interactions.dismiss("u1", "clinical_catchup")
    assert (await service.evaluate("u1", snap)).dashboard == []

    # still inside the 24h window
    almost = await service.evaluate("u1", snap, now=NOW + timedelta(hours=23, minutes=59))
    assert almost.dashboard == []

    later = await service.evaluate("u1", snap, now=NOW + timedelta(hours=24, minutes=1))
    assert _ids(later.dashboard) == ["clinical_catchup"]

    await interactions.snooze("u1", "clinical_catchup")
    week = await service.evaluate("u1", snap, now=NOW + timedelta(days=6))
    assert week.dashboard == []
    after = await service.evaluate("u1", snap, now=NOW + timedelta(days=7, minutes=1))
    assert _ids(after.dashboard) == ["clinical_catchup"]


async def test_celebration_shown_once(service, interactions, make_snapshot):
    snap = make_snapshot(login_streak=7, previous_streak=6)

    result = await service.evaluate("u1", snap)
    assert _ids(result.celebrations) == ["celebrations:streak_7"]

    await interactions.mark_celebrated("u1", result.celebrations[0].event_id)
    assert (await service.evaluate("u1", snap)).celebrations == []


async def test_full_feed_shape(service, make_snapshot):
    snap = make_snapshot(
        last_clinical_log_at=ago(5),
        last_eq_log_at=ago(8),
        pending_event_logs=1,
        profile={"resume": False},
        target_programs=[
            {"id": "p1", "name": "Duke", "status": "in_progress", "deadline": ahead(5)},
            {"id": "p2", "name": "Emory", "status": "in_progress", "deadline": ahead(25)},
        ],
    )
    result = await service.evaluate("u1", snap)

    assert _ids(result.all)[0] == "deadline_alerts:7:p1"
    assert _ids(result.mobile) == ["deadline_alerts:7:p1"]
    assert result.inline["programs"][0].id == "lor_tracking:incomplete:p1"
    assert _ids(result.inline["trackers"]) == ["eq_reflection", "events_log"]
    assert _ids(result.inline["profile"]) == ["profile_completeness"]
    assert result.guidance.application_stage == "executing"
    assert "deadline_pressure" in result.guidance.risk_signals
    assert result.failed_engines == []


async def test_limits_from_service(store, registry, make_snapshot):
    svc = GuidanceService(store, registry, limits=FeedLimits(dashboard=1, inline_per_page=1))
    snap = make_snapshot(
        last_clinical_log_at=ago(5),
        last_eq_log_at=ago(8),
        pending_event_logs=1,
        target_programs=[{"id": "p2", "deadline": ahead(25)}],
        has_seen_first_target_celebration=True,
    )
    result = await svc.evaluate("u1", snap)
    assert _ids(result.dashboard) == ["deadline_alerts:30:p2"]
    assert _ids(result.inline["trackers"]) == ["eq_reflection"]
    assert result.stats.total == 4


async def test_page_scoping(service, make_snapshot):
    snap = make_snapshot(last_eq_log_at=ago(8), last_clinical_log_at=ago(5))
    assert _ids(await service.nudges_for_page("u1", "trackers", snap)) == ["eq_reflection"]
    assert _ids(await service.nudges_for_page("u1", "dashboard", snap)) == ["clinical_catchup"]
    assert await service.nudges_for_page("u1", "nowhere", snap) == []

    top = await service.most_important("u1", snap)
    assert top.id == "clinical_catchup"
    assert await service.most_important("u1", make_snapshot()) is None


async def test_failing_engine_reported(store, make_snapshot):
    registry = EngineRegistry(
        [
            FakeEngine("broken", error=KeyError("programs")),
            FakeEngine("ok", [make_nudge("fine")]),
        ]
    )
    result = await GuidanceService(store, registry).evaluate("u1", make_snapshot())
    assert _ids(result.all) == ["fine"]
    assert result.failed_engines == ["broken"]


async def test_pass_uses_state_copy(store, make_snapshot):
    cached = await store.load("u1")

    class MutatingEngine(FakeEngine):
        def evaluate(self, snapshot):
            # an interaction landing mid-pass
            cached.tracker_nudges["x"] = NudgeState(permanently_dismissed=True)
            return super().evaluate(snapshot)

    registry = EngineRegistry([MutatingEngine("m", [make_nudge("x")])])
    svc = GuidanceService(store, registry)

    assert _ids((await svc.evaluate("u1", make_snapshot())).all) == ["x"]
    assert (await svc.evaluate("u1", make_snapshot())).all == []


async def test_store_outage_still_evaluates(service, backend, make_snapshot):
    backend.fail_load = True
    result = await service.evaluate("u1", make_snapshot(last_clinical_log_at=ago(5)))
    assert _ids(result.dashboard) == ["clinical_catchup"]
