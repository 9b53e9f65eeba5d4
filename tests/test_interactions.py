from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import NOW


async def test_dismiss_counts_and_stamps(interactions, store):
    first = await interactions.dismiss("u1", "clinical_catchup")
    second = await interactions.dismiss("u1", "clinical_catchup")

    assert first.persisted and second.persisted
    assert second.state.dismiss_count == 2
    assert second.state.last_dismissed_at == NOW
    assert second.state.permanently_dismissed is False

    blob = await store.load("u1")
    assert [e.action for e in blob.prompt_interactions] == ["dismissed", "dismissed"]


async def test_permanent_dismiss(interactions):
    result = await interactions.permanently_dismiss("u1", "eq_reflection")
    assert result.state.permanently_dismissed is True
    assert result.state.dismiss_count == 0


async def test_snooze_defaults_to_seven_days(interactions):
    result = await interactions.snooze("u1", "a")
    assert result.state.snoozed_until == NOW + timedelta(days=7)

    result = await interactions.snooze("u1", "a", days=30)
    assert result.state.snoozed_until == NOW + timedelta(days=30)


async def test_snooze_rejects_non_positive(interactions):
    with pytest.raises(ValueError):
        await interactions.snooze("u1", "a", days=0)


async def test_clear_snooze_and_reset(interactions, store):
    await interactions.snooze("u1", "a")
    await interactions.dismiss("u1", "a")

    cleared = await interactions.clear_snooze("u1", "a")
    assert cleared.state.snoozed_until is None
    assert cleared.state.dismiss_count == 1

    await interactions.reset_nudge("u1", "a")
    assert "a" not in (await store.load("u1")).tracker_nudges


async def test_mark_shown_is_analytics_only(interactions, store):
    await interactions.mark_shown("u1", "a")
    await interactions.mark_shown("u1", "a")

    blob = await store.load("u1")
    assert blob.tracker_nudges == {}
    assert [e.action for e in blob.prompt_interactions] == ["shown", "shown"]
    assert blob.last_nudge_shown == {"a": NOW}


async def test_mark_celebrated_idempotent(interactions, store):
    await interactions.mark_celebrated("u1", "celebrations:streak_7")
    await interactions.mark_celebrated("u1", "celebrations:streak_7")
    assert (await store.load("u1")).celebrated_events == ["celebrations:streak_7"]
    assert await interactions.has_celebrated("u1", "celebrations:streak_7")
    assert not await interactions.has_celebrated("u1", "celebrations:streak_14")


async def test_prompt_dismissal(interactions):
    await interactions.dismiss_prompt("u1", "deadline_alerts.default", "snooze_7d", context="p1")
    assert await interactions.is_prompt_dismissed("u1", "deadline_alerts.default", "p1")
    assert not await interactions.is_prompt_dismissed("u1", "deadline_alerts.default", "p2")


async def test_permanent_offer_threshold(interactions):
    for _ in range(2):
        await interactions.dismiss("u1", "a")
    assert not await interactions.should_offer_permanent_dismiss("u1", "a")

    await interactions.dismiss("u1", "a")
    assert await interactions.should_offer_permanent_dismiss("u1", "a")

    await interactions.permanently_dismiss("u1", "a")
    assert not await interactions.should_offer_permanent_dismiss("u1", "a")


async def test_record_interaction_and_clear_all(interactions, store):
    await interactions.record_interaction("u1", "welcome_back.fallback", "clicked")
    assert (await store.load("u1")).prompt_interactions[0].action == "clicked"

    assert await interactions.clear_all("u1") is True
    assert (await store.load("u1")).prompt_interactions == []


async def test_store_outage_never_raises(interactions, backend, store):
    backend.fail_save = True
    result = await interactions.dismiss("u1", "a")

    assert result.persisted is False
    assert result.state.dismiss_count == 1
    assert (await store.get_nudge_state("u1", "a")).last_dismissed_at == NOW


async def test_user_bound_facade(interactions, store):
    alice = interactions.for_user("alice")
    await alice.dismiss("a")
    await alice.mark_celebrated("evt")

    blob = await store.load("alice")
    assert blob.tracker_nudges["a"].dismiss_count == 1
    assert blob.celebrated_events == ["evt"]
    assert (await store.load("bob")).tracker_nudges == {}
