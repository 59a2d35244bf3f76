"""Snapshot a version's sessions onto an assignment.

Materialized rows are never deleted when content moves on; they are flipped
to ``is_current = False`` so workout history keeps pointing at what the
client actually trained.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from programmes.models import RoutineAssignmentSession, utcnow
from programmes.services.collaborators import ExerciseCatalog, ExerciseLookup
from programmes.services.exercise_sets import list_version_exercises
from programmes.services.session_deriver import derive_sessions

logger = logging.getLogger(__name__)


def materialize_sessions(
    s: Session, assignment_id: int, version_id: int, catalog: ExerciseLookup | None = None
) -> list[RoutineAssignmentSession]:
    """Insert one current session per training day of ``version_id``.

    Callers supersede any existing current set first; the partial unique
    index on (assignment, day) rejects a second current row otherwise.
    """
    entries = list_version_exercises(s, version_id)
    if catalog is None:
        catalog = ExerciseCatalog.for_entries(s, entries)
    derived = derive_sessions(version_id, entries, catalog)

    now = utcnow()
    rows = [
        RoutineAssignmentSession(
            routine_assignment_id=assignment_id,
            routine_version_id=version_id,
            day_number=session.day_number,
            session_focus=session.focus,
            materialized_at=now,
            is_current=True,
            exercises=[ex.snapshot() for ex in session.exercises],
        )
        for session in derived
    ]
    s.add_all(rows)
    s.flush()
    logger.info(
        "sessions_materialized",
        extra={"ctx_assignment_id": assignment_id, "ctx_version_id": version_id, "ctx_sessions": len(rows)},
    )
    return rows


def supersede_current_sessions(s: Session, assignment_id: int) -> int:
    result = s.execute(
        update(RoutineAssignmentSession)
        .where(
            RoutineAssignmentSession.routine_assignment_id == assignment_id,
            RoutineAssignmentSession.is_current.is_(True),
        )
        .values(is_current=False)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount or 0


def get_current_sessions(s: Session, assignment_id: int) -> list[RoutineAssignmentSession]:
    q = (
        select(RoutineAssignmentSession)
        .where(
            RoutineAssignmentSession.routine_assignment_id == assignment_id,
            RoutineAssignmentSession.is_current.is_(True),
        )
        .order_by(RoutineAssignmentSession.day_number)
    )
    return list(s.execute(q).scalars().all())


def get_session_history(s: Session, assignment_id: int) -> list[RoutineAssignmentSession]:
    """Every materialized row, current and superseded, oldest first."""
    q = (
        select(RoutineAssignmentSession)
        .where(RoutineAssignmentSession.routine_assignment_id == assignment_id)
        .order_by(RoutineAssignmentSession.materialized_at, RoutineAssignmentSession.day_number)
    )
    return list(s.execute(q).scalars().all())
