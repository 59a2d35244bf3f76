"""Tests for per-version exercise entries."""

from __future__ import annotations

import pytest

from conftest import entries_for, make_active_version, make_blueprint
from programmes.config import get_settings
from programmes.db import session_scope
from programmes.errors import InvalidStateTransition, ValidationError
from programmes.services import exercise_sets, versions


def _layout(rows):
    return [(r.day_number, r.order_in_day, r.custom_exercise_name) for r in rows]


def _draft(s, day_counts=None):
    bp = make_blueprint(s)
    version = versions.create_version(s, bp.id)
    if day_counts:
        exercise_sets.set_version_exercises(s, version.id, entries_for(day_counts))
    return version


def test_set_exercises_orders_each_day_in_input_order(db):
    entries = [
        {"custom_exercise_name": "Squat", "day_number": 2},
        {"custom_exercise_name": "Bench", "day_number": 1},
        {"custom_exercise_name": "Lunge", "day_number": 2},
        {"custom_exercise_name": "Fly", "day_number": 1, "order_in_day": 9},
    ]
    with session_scope() as s:
        version = _draft(s)
        rows = exercise_sets.set_version_exercises(s, version.id, entries)
        assert _layout(rows) == [(1, 1, "Bench"), (1, 2, "Fly"), (2, 1, "Squat"), (2, 2, "Lunge")]


def test_set_exercises_replaces_previous_content(db):
    with session_scope() as s:
        version = _draft(s, {1: 3, 2: 2})
        rows = exercise_sets.set_version_exercises(s, version.id, entries_for({4: 1}, prefix="New"))
        assert _layout(rows) == [(4, 1, "New 4.1")]


def test_seven_training_days_allowed(db):
    entries = [{"custom_exercise_name": f"Day {d}", "day_number": d} for d in range(1, 8)]
    with session_scope() as s:
        version = _draft(s)
        exercise_sets.set_version_exercises(s, version.id, entries)
        assert len(exercise_sets.list_version_exercises(s, version.id)) == 7


def test_day_limit_follows_setting(db, monkeypatch):
    monkeypatch.setenv("MAX_TRAINING_DAYS", "3")
    get_settings.cache_clear()
    with pytest.raises(ValidationError) as exc:
        with session_scope() as s:
            version = _draft(s)
            exercise_sets.set_version_exercises(s, version.id, entries_for({1: 1, 2: 1, 3: 1, 4: 1}))
    assert exc.value.code == "VALIDATION_ERROR"
    get_settings.cache_clear()


def test_eighth_training_day_rejected(db):
    with pytest.raises(ValidationError):
        with session_scope() as s:
            version = _draft(s)
            exercise_sets.set_version_exercises(s, version.id, [{"custom_exercise_name": "X", "day_number": 8}])


def test_add_exercise_on_new_day_beyond_limit(db, monkeypatch):
    monkeypatch.setenv("MAX_TRAINING_DAYS", "2")
    get_settings.cache_clear()
    with pytest.raises(ValidationError):
        with session_scope() as s:
            version = _draft(s, {1: 1, 2: 1})
            exercise_sets.add_exercise(s, version.id, {"custom_exercise_name": "Extra", "day_number": 3})
    get_settings.cache_clear()


def test_malformed_prescription_rejected(db):
    with pytest.raises(ValidationError):
        with session_scope() as s:
            version = _draft(s)
            exercise_sets.set_version_exercises(
                s, version.id, [{"custom_exercise_name": "Row", "day_number": 1, "reps_min": 12, "reps_max": 8}]
            )


def test_add_exercise_appends_to_day(db):
    with session_scope() as s:
        version = _draft(s, {1: 2})
        row = exercise_sets.add_exercise(s, version.id, {"custom_exercise_name": "Finisher", "day_number": 1})
        assert row.order_in_day == 3


def test_delete_exercise_resequences_day(db):
    with session_scope() as s:
        version = _draft(s, {1: 3})
        first = exercise_sets.list_version_exercises(s, version.id)[0]
        exercise_sets.delete_exercise(s, first.id)
        assert _layout(exercise_sets.list_version_exercises(s, version.id)) == [
            (1, 1, "Move 1.2"),
            (1, 2, "Move 1.3"),
        ]


def test_reorder_day(db):
    with session_scope() as s:
        version = _draft(s, {1: 3})
        ids = [r.id for r in exercise_sets.list_version_exercises(s, version.id)]
        exercise_sets.reorder_day(s, version.id, 1, list(reversed(ids)))
        assert _layout(exercise_sets.list_version_exercises(s, version.id)) == [
            (1, 1, "Move 1.3"),
            (1, 2, "Move 1.2"),
            (1, 3, "Move 1.1"),
        ]


def test_reorder_day_requires_every_entry(db):
    with pytest.raises(ValidationError):
        with session_scope() as s:
            version = _draft(s, {1: 3})
            ids = [r.id for r in exercise_sets.list_version_exercises(s, version.id)]
            exercise_sets.reorder_day(s, version.id, 1, ids[:2])


def test_update_exercise_moves_between_days(db):
    with session_scope() as s:
        version = _draft(s, {1: 2, 2: 1})
        first = exercise_sets.list_version_exercises(s, version.id)[0]
        exercise_sets.update_exercise(s, first.id, {"day_number": 2, "sets": 5})
        rows = exercise_sets.list_version_exercises(s, version.id)
        assert _layout(rows) == [(1, 1, "Move 1.2"), (2, 1, "Move 2.1"), (2, 2, "Move 1.1")]
        assert rows[-1].sets == 5


def test_update_exercise_bodyweight_clears_target_weight(db):
    with session_scope() as s:
        version = _draft(s)
        row = exercise_sets.add_exercise(
            s, version.id, {"custom_exercise_name": "Dips", "day_number": 1, "load_directive": "absolute", "target_weight_kg": 20}
        )
        exercise_sets.update_exercise(s, row.id, {"load_directive": "bodyweight"})
        assert row.target_weight_kg is None


def test_archived_version_is_read_only(db):
    with session_scope() as s:
        bp = make_blueprint(s)
        v1 = make_active_version(s, bp.id, {1: 1})
        make_active_version(s, bp.id, {1: 1})
        version_id = v1.id
    with pytest.raises(InvalidStateTransition):
        with session_scope() as s:
            exercise_sets.add_exercise(s, version_id, {"custom_exercise_name": "Late", "day_number": 1})
