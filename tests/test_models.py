"""Schema-level guards on the assignment overlay and materialized sessions."""

from __future__ import annotations

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from conftest import CLIENT_ID, PRO_ID, make_active_version, make_blueprint
from programmes.db import session_scope
from programmes.models import PendingUpdate, RoutineAssignment, RoutineAssignmentSession, utcnow
from programmes.services import assignments


def _accepted(relationships):
    with session_scope() as s:
        bp = make_blueprint(s)
        v1 = make_active_version(s, bp.id, {1: 2})
        a = assignments.create_assignment(s, v1.id, CLIENT_ID, PRO_ID, relationships)
        assignments.accept_assignment(s, a.id, CLIENT_ID)
        return a.id, v1.id


def test_overlay_values_round_trip():
    pending = PendingUpdate(version_id=4, created_at=utcnow(), notes=None)
    values = RoutineAssignment.overlay_values(pending)
    assert values["has_pending_update"] is True
    a = RoutineAssignment(**values)
    assert a.pending_update == pending
    assert RoutineAssignment.overlay_values(None)["pending_version_id"] is None


def test_half_written_overlay_is_rejected(db, relationships):
    assignment_id, version_id = _accepted(relationships)
    with pytest.raises(IntegrityError):
        with session_scope() as s:
            s.execute(
                update(RoutineAssignment)
                .where(RoutineAssignment.id == assignment_id)
                .values(pending_version_id=version_id, has_pending_update=True)
            )


def test_overlay_requires_active_status(db, relationships):
    with session_scope() as s:
        bp = make_blueprint(s)
        v1 = make_active_version(s, bp.id, {1: 1})
        a = assignments.create_assignment(s, v1.id, CLIENT_ID, PRO_ID, relationships)
        assignment_id, version_id = a.id, v1.id
    with pytest.raises(IntegrityError):
        with session_scope() as s:
            s.execute(
                update(RoutineAssignment)
                .where(RoutineAssignment.id == assignment_id)
                .values(**RoutineAssignment.overlay_values(PendingUpdate(version_id, utcnow())))
            )


def test_one_current_session_per_day(db, relationships):
    assignment_id, version_id = _accepted(relationships)
    with pytest.raises(IntegrityError):
        with session_scope() as s:
            s.add(
                RoutineAssignmentSession(
                    routine_assignment_id=assignment_id,
                    routine_version_id=version_id,
                    day_number=1,
                    is_current=True,
                    exercises=[],
                )
            )
            s.flush()
