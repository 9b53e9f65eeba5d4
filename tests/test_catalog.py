"""Rule catalog loading and registry construction."""

from __future__ import annotations

import logging

import pytest

from crnaclub.guidance.engine.rules.evaluators.registry import build_registry
from crnaclub.guidance.engine.rules.models import UserStateSnapshot
from crnaclub.guidance.seed.loader import load_catalog

from conftest import NOW


def test_packaged_catalog_order():
    seeds = load_catalog()
    assert [s.id for s in seeds] == [
        "deadline_alerts",
        "lor_tracking",
        "interview_prep",
        "welcome_back",
        "clinical_catchup",
        "stagnation",
        "profile_completeness",
        "prerequisite_gap",
        "eq_reflection",
        "shadow_reminder",
        "events_log",
        "celebrations",
    ]
    assert build_registry(seeds).engine_ids == [s.id for s in seeds]


def _write(tmp_path, text, name="rules.yaml"):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_missing_path():
    with pytest.raises(ValueError, match="not found"):
        load_catalog("/nonexistent/rules.yaml")


def test_duplicate_ids(tmp_path):
    path = _write(
        tmp_path,
        "- {id: a, kind: staleness}\n- {id: a, kind: pending_count}\n",
    )
    with pytest.raises(ValueError, match="Duplicate"):
        load_catalog(path)


def test_unknown_field_rejected(tmp_path):
    path = _write(tmp_path, "- {id: a, kind: staleness, color: red}\n")
    with pytest.raises(ValueError, match="Invalid rule"):
        load_catalog(path)


def test_bad_surface_rejected(tmp_path):
    path = _write(tmp_path, "- {id: a, kind: staleness, surface: sidebar}\n")
    with pytest.raises(ValueError):
        load_catalog(path)


def test_directory_catalog(tmp_path):
    _write(tmp_path, "- {id: b, kind: pending_count}\n", name="20.yaml")
    _write(tmp_path, "- {id: a, kind: staleness}\n", name="10.yaml")
    assert [s.id for s in load_catalog(tmp_path)] == ["a", "b"]


def test_disabled_and_unknown_kinds_skipped(tmp_path, caplog):
    path = _write(
        tmp_path,
        "- {id: a, kind: staleness, enabled: false}\n"
        "- {id: b, kind: horoscope}\n"
        "- {id: c, kind: pending_count}\n",
    )
    with caplog.at_level(logging.WARNING):
        registry = build_registry(load_catalog(path))
    assert registry.engine_ids == ["c"]
    assert "horoscope" in caplog.text


def test_custom_evaluator_from_path(tmp_path):
    plugin = tmp_path / "plugin.py"
    plugin.write_text(
        "def evaluate(rule, snapshot):\n"
        "    if snapshot.pending_event_logs > 5:\n"
        "        return [{'id': rule.engine_id, 'payload': {'title': 'busy'}}]\n"
        "    return []\n",
        encoding="utf-8",
    )
    path = _write(
        tmp_path,
        f"- id: busy_week\n"
        f"  kind: custom\n"
        f"  urgency: high\n"
        f"  definition: {{evaluator_path: '{plugin}'}}\n",
    )
    engine = build_registry(load_catalog(path)).get("busy_week")

    out = engine.evaluate(UserStateSnapshot(now=NOW, pending_event_logs=9))
    assert len(out) == 1
    assert out[0].engine_id == "busy_week"
    assert out[0].urgency == "high"
    assert engine.evaluate(UserStateSnapshot(now=NOW)) == []
