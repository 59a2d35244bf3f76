"""Tests for blueprint and version authoring."""

from __future__ import annotations

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from conftest import CLIENT_ID, PRO_ID, entries_for, make_active_version, make_blueprint
from programmes.db import session_scope
from programmes.errors import InvalidStateTransition, NotFound, ValidationError
from programmes.models import RoutineVersion, RoutineVersionExercise
from programmes.services import assignments, exercise_sets, versions


def _active_ids(s, blueprint_id):
    q = select(RoutineVersion.id).where(RoutineVersion.blueprint_id == blueprint_id, RoutineVersion.status == "active")
    return list(s.execute(q).scalars())


def test_version_numbers_increment_per_blueprint(db):
    with session_scope() as s:
        a = make_blueprint(s, "A")
        b = make_blueprint(s, "B")
        numbers_a = [versions.create_version(s, a.id).version_number for _ in range(3)]
        numbers_b = [versions.create_version(s, b.id).version_number for _ in range(2)]
    assert numbers_a == [1, 2, 3]
    assert numbers_b == [1, 2]


def test_create_version_for_unknown_blueprint(db):
    with pytest.raises(NotFound):
        with session_scope() as s:
            versions.create_version(s, 999)


def test_create_version_rejects_archived_status(db):
    with pytest.raises(ValidationError):
        with session_scope() as s:
            bp = make_blueprint(s)
            versions.create_version(s, bp.id, status="archived")


def test_activate_archives_previous_active(db):
    with session_scope() as s:
        bp = make_blueprint(s)
        v1 = make_active_version(s, bp.id, {1: 2})
        v2 = versions.create_version(s, bp.id)
        versions.activate_version(s, v2.id)

        assert _active_ids(s, bp.id) == [v2.id]
        assert s.get(RoutineVersion, v1.id).status == "archived"
        assert v2.published_at is not None
        assert versions.get_active_version(s, bp.id).id == v2.id


def test_activate_is_idempotent(db):
    with session_scope() as s:
        bp = make_blueprint(s)
        v1 = make_active_version(s, bp.id, {1: 1})
        published = v1.published_at
        again = versions.activate_version(s, v1.id)
        assert again.status == "active"
        assert again.published_at == published
        assert _active_ids(s, bp.id) == [v1.id]


def test_activate_archived_version_fails(db):
    with session_scope() as s:
        bp = make_blueprint(s)
        v1 = versions.create_version(s, bp.id)
        versions.archive_version(s, v1.id)
        version_id = v1.id
    with pytest.raises(InvalidStateTransition) as exc:
        with session_scope() as s:
            versions.activate_version(s, version_id)
    assert exc.value.code == "INVALID_STATE_TRANSITION"


def test_database_refuses_two_active_versions(db):
    with session_scope() as s:
        bp = make_blueprint(s)
        v1 = make_active_version(s, bp.id, {1: 1})
        v2 = versions.create_version(s, bp.id)
        v2_id, bp_id = v2.id, bp.id

    with pytest.raises(IntegrityError):
        with session_scope() as s:
            s.execute(update(RoutineVersion).where(RoutineVersion.id == v2_id).values(status="active"))

    with session_scope() as s:
        assert len(_active_ids(s, bp_id)) == 1


def test_submit_and_approve(db):
    with session_scope() as s:
        bp = make_blueprint(s)
        v1 = versions.create_version(s, bp.id)
        versions.submit_for_review(s, v1.id)
        assert v1.status == "pending_review"
        versions.approve_version(s, v1.id, notes="Looks good")
        assert v1.status == "active"
        assert v1.notes == "Looks good"


def test_submit_for_review_requires_draft(db):
    with pytest.raises(InvalidStateTransition):
        with session_scope() as s:
            bp = make_blueprint(s)
            v1 = make_active_version(s, bp.id, {1: 1})
            versions.submit_for_review(s, v1.id)


def test_create_version_as_active_swaps_in_one_call(db):
    with session_scope() as s:
        bp = make_blueprint(s)
        v1 = make_active_version(s, bp.id, {1: 1})
        v2 = versions.create_version(s, bp.id, status="active", parent_version_id=v1.id, copy_entries=True)
        assert v2.status == "active"
        assert _active_ids(s, bp.id) == [v2.id]
        assert len(exercise_sets.list_version_exercises(s, v2.id)) == 1


def test_create_version_copies_parent_entries(db):
    with session_scope() as s:
        bp = make_blueprint(s)
        v1 = make_active_version(s, bp.id, {1: 2, 3: 1})
        v2 = versions.create_version(s, bp.id, parent_version_id=v1.id, copy_entries=True)
        copied = exercise_sets.list_version_exercises(s, v2.id)
        assert [(e.day_number, e.order_in_day, e.custom_exercise_name) for e in copied] == [
            (1, 1, "Move 1.1"),
            (1, 2, "Move 1.2"),
            (3, 1, "Move 3.1"),
        ]
        assert v2.parent_version_id == v1.id


def test_parent_must_share_blueprint(db):
    with pytest.raises(ValidationError):
        with session_scope() as s:
            a = make_blueprint(s, "A")
            b = make_blueprint(s, "B")
            va = versions.create_version(s, a.id)
            versions.create_version(s, b.id, parent_version_id=va.id)


def test_delete_active_version_fails(db):
    with pytest.raises(InvalidStateTransition):
        with session_scope() as s:
            bp = make_blueprint(s)
            v1 = make_active_version(s, bp.id, {1: 1})
            versions.delete_version(s, v1.id)


def test_delete_draft_removes_entries(db):
    with session_scope() as s:
        bp = make_blueprint(s)
        v1 = versions.create_version(s, bp.id)
        exercise_sets.set_version_exercises(s, v1.id, entries_for({1: 2, 2: 2}))
        version_id = v1.id
    with session_scope() as s:
        versions.delete_version(s, version_id)
    with session_scope() as s:
        assert s.get(RoutineVersion, version_id) is None
        left = s.execute(
            select(RoutineVersionExercise).where(RoutineVersionExercise.routine_version_id == version_id)
        ).all()
        assert left == []


def test_delete_assigned_version_fails(db, relationships):
    with session_scope() as s:
        bp = make_blueprint(s)
        v1 = make_active_version(s, bp.id, {1: 1})
        assignments.create_assignment(s, v1.id, CLIENT_ID, PRO_ID, relationships)
        make_active_version(s, bp.id, {1: 2})
        version_id = v1.id
    with pytest.raises(InvalidStateTransition):
        with session_scope() as s:
            versions.delete_version(s, version_id)


def test_list_versions_newest_first(db):
    with session_scope() as s:
        bp = make_blueprint(s)
        for _ in range(3):
            versions.create_version(s, bp.id)
        assert [v.version_number for v in versions.list_versions(s, bp.id)] == [3, 2, 1]


def test_clone_blueprint_copies_active_version(db):
    with session_scope() as s:
        bp = make_blueprint(s, "Upper Lower")
        make_active_version(s, bp.id, {1: 2, 2: 1})
        clone, version = versions.clone_blueprint(s, bp.id, owner_id=PRO_ID + 1)

        assert clone.name == "Upper Lower (Copy)"
        assert clone.owner_id == PRO_ID + 1
        assert clone.source_blueprint_id == bp.id
        assert version.version_number == 1
        assert version.status == "draft"
        assert len(exercise_sets.list_version_exercises(s, version.id)) == 3


def test_archive_blueprint_is_soft(db):
    with session_scope() as s:
        bp = make_blueprint(s)
        versions.archive_blueprint(s, bp.id)
        assert versions.get_blueprint(s, bp.id).is_archived is True


def test_get_full_routine_prefers_active(db):
    with session_scope() as s:
        bp = make_blueprint(s)
        v1 = make_active_version(s, bp.id, {1: 3})
        versions.create_version(s, bp.id)
        routine = versions.get_full_routine(s, bp.id)
        assert routine["version"].id == v1.id
        assert len(routine["exercises"]) == 3
        assert routine["goal"] is None


def test_get_full_routine_without_versions(db):
    with pytest.raises(NotFound):
        with session_scope() as s:
            bp = make_blueprint(s)
            versions.get_full_routine(s, bp.id)


def test_get_version_unknown_id(db):
    with pytest.raises(NotFound):
        with session_scope() as s:
            versions.get_version(s, 12345)


def test_activation_rechecks_status_under_lock(db, monkeypatch):
    locked = versions._lock_blueprint

    def archive_then_lock(s, blueprint_id):
        s.execute(
            update(RoutineVersion)
            .where(RoutineVersion.blueprint_id == blueprint_id, RoutineVersion.status == "draft")
            .values(status="archived")
            .execution_options(synchronize_session=False)
        )
        return locked(s, blueprint_id)

    with pytest.raises(InvalidStateTransition):
        with session_scope() as s:
            bp = make_blueprint(s)
            draft = versions.create_version(s, bp.id)
            monkeypatch.setattr(versions, "_lock_blueprint", archive_then_lock)
            assert draft.status == "draft"
            versions.activate_version(s, draft.id)


def test_update_blueprint_patches_metadata(db):
    with session_scope() as s:
        bp = make_blueprint(s)
        versions.update_blueprint(s, bp.id, {"name": "  Upper/Lower ", "description": "   ", "sessions_per_week": 4})
        assert bp.name == "Upper/Lower"
        assert bp.description is None
        assert bp.sessions_per_week == 4
        assert bp.owner_id == PRO_ID


def test_update_blueprint_rejects_blank_name(db):
    with pytest.raises(ValidationError):
        with session_scope() as s:
            bp = make_blueprint(s)
            versions.update_blueprint(s, bp.id, {"name": "   "})


def test_list_blueprints_filters(db):
    with session_scope() as s:
        mine = make_blueprint(s, "Mine")
        template = versions.create_blueprint(s, {"name": "Starter", "owner_type": "platform", "is_template": True})
        theirs = make_blueprint(s, "Theirs", owner_id=PRO_ID + 1)
        gone = make_blueprint(s, "Old")
        versions.archive_blueprint(s, gone.id)

        assert [b.id for b in versions.list_blueprints(s, owner_id=PRO_ID, is_archived=False)] == [mine.id]
        assert [b.id for b in versions.list_blueprints(s, owner_type="platform")] == [template.id]
        assert {b.id for b in versions.list_blueprints(s)} == {mine.id, template.id, theirs.id, gone.id}

        assert [b.id for b in versions.list_pro_blueprints(s, PRO_ID)] == [template.id, mine.id]
        assert [b.id for b in versions.list_pro_blueprints(s, PRO_ID, include_templates=False)] == [mine.id]
        assert gone.id in {b.id for b in versions.list_pro_blueprints(s, PRO_ID, include_archived=True)}


def test_review_queue_lists_latest_unpublished_version(db):
    with session_scope() as s:
        queued = make_blueprint(s, "Queued")
        make_active_version(s, queued.id, {1: 1})
        versions.create_version(s, queued.id)
        pending = versions.create_version(s, queued.id)
        exercise_sets.set_version_exercises(s, pending.id, entries_for({1: 2, 2: 1}))
        versions.submit_for_review(s, pending.id)

        published = make_blueprint(s, "Published")
        make_active_version(s, published.id, {1: 1})

        queue = versions.get_review_queue(s, PRO_ID)
        assert [item["blueprint"].id for item in queue] == [queued.id]
        assert queue[0]["latest_version"].id == pending.id
        assert queue[0]["latest_version"].status == "pending_review"
        assert len(queue[0]["exercises"]) == 3
        assert versions.get_review_queue(s, PRO_ID + 1) == []
