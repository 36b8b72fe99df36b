from __future__ import annotations

from datetime import datetime, timezone

from fleetledger.domain.conditions import Condition
from fleetledger.services.status.merge import load_previous_conditions, merge_conditions


T0 = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
T1 = datetime(2026, 3, 1, 11, 0, tzinfo=timezone.utc)
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_unchanged_status_keeps_transition_time() -> None:
    previous = [Condition(type="Ready", status="True", reason="Old", last_transition_time=T0)]
    incoming = [Condition(type="Ready", status="True", reason="New", message="changed text")]
    merged = merge_conditions(previous, incoming, NOW)
    assert merged[0].last_transition_time == T0
    # Everything except the transition time comes from the incoming report.
    assert merged[0].reason == "New"
    assert merged[0].message == "changed text"


def test_changed_status_refreshes_transition_time() -> None:
    previous = [Condition(type="Ready", status="True", last_transition_time=T0)]
    merged = merge_conditions(previous, [Condition(type="Ready", status="False")], NOW)
    assert merged[0].last_transition_time == NOW


def test_new_type_gets_now_and_dropped_type_disappears() -> None:
    previous = [
        Condition(type="Ready", status="True", last_transition_time=T0),
        Condition(type="Degraded", status="False", last_transition_time=T1),
    ]
    incoming = [Condition(type="Health", status="True"), Condition(type="Ready", status="True")]
    merged = merge_conditions(previous, incoming, NOW)
    assert [condition.type for condition in merged] == ["Health", "Ready"]
    assert merged[0].last_transition_time == NOW
    assert merged[1].last_transition_time == T0


def test_absent_previous_sets_every_transition_to_now() -> None:
    merged = merge_conditions(None, [Condition(type="Ready", status="True")], NOW)
    assert merged[0].last_transition_time == NOW


def test_previous_without_timestamp_is_refreshed() -> None:
    previous = [Condition(type="Ready", status="True")]
    merged = merge_conditions(previous, [Condition(type="Ready", status="True")], NOW)
    assert merged[0].last_transition_time == NOW


def test_malformed_previous_is_treated_as_absent() -> None:
    assert load_previous_conditions({"not": "a list"}) is None
    assert load_previous_conditions([{"type": "Ready"}]) is None
    assert load_previous_conditions(None) == []
    loaded = load_previous_conditions([{"type": "Ready", "status": "True", "last_transition_time": "2026-03-01T10:00:00Z"}])
    assert loaded is not None and loaded[0].last_transition_time == T0
