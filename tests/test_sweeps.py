"""Tests for the scheduled sweep job."""

from __future__ import annotations

import datetime as dt

from conftest import CLIENT_ID, PRO_ID, make_active_version, make_blueprint
from programmes.db import session_scope
from programmes.models import RoutineAssignment, utcnow
from programmes.services import assignments, updates
from programmes.services.sweeps import run_sweeps


def _seed(relationships):
    with session_scope() as s:
        bp = make_blueprint(s)
        v1 = make_active_version(s, bp.id, {1: 3})
        kept = assignments.create_assignment(s, v1.id, CLIENT_ID, PRO_ID, relationships)
        assignments.accept_assignment(s, kept.id, CLIENT_ID)
        rejected = assignments.create_assignment(s, v1.id, CLIENT_ID, PRO_ID, relationships)
        assignments.reject_assignment(s, rejected.id, CLIENT_ID)
        v2 = make_active_version(s, bp.id, {1: 4})
        updates.push_update(s, kept.id, v2.id, PRO_ID)
        return kept.id, rejected.id


def test_run_sweeps_expires_and_purges(db, relationships):
    kept_id, rejected_id = _seed(relationships)

    report = run_sweeps(now=utcnow() + dt.timedelta(days=15))

    assert report.expired == 1
    assert report.expired_assignments == [kept_id]
    assert report.rejected_purged == 1
    with session_scope() as s:
        assert s.get(RoutineAssignment, rejected_id) is None
        kept = s.get(RoutineAssignment, kept_id)
        assert kept.status == "active"
        assert kept.pending_update is None


def test_run_sweeps_is_idempotent(db, relationships):
    _seed(relationships)
    later = utcnow() + dt.timedelta(days=15)
    run_sweeps(now=later)
    again = run_sweeps(now=later)
    assert (again.expired, again.skipped, again.rejected_purged) == (0, 0, 0)


def test_run_sweeps_leaves_recent_state(db, relationships):
    kept_id, rejected_id = _seed(relationships)
    report = run_sweeps()
    assert (report.expired, report.rejected_purged) == (0, 0)
    with session_scope() as s:
        assert s.get(RoutineAssignment, rejected_id) is not None
        assert s.get(RoutineAssignment, kept_id).pending_update is not None
