"""Append-only assignment event feed.

Events are a convenience for history and notification tooling. A failed
write is logged and dropped; it never fails or rolls back the caller's
transition.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from programmes.config import get_settings
from programmes.models import RoutineAssignment, RoutineAssignmentEvent, utcnow

logger = logging.getLogger(__name__)


def _build_event(assignment_id: int, event_type: str, fields: dict[str, Any]) -> RoutineAssignmentEvent:
    return RoutineAssignmentEvent(assignment_id=assignment_id, event_type=event_type, **fields)


def record_event(s: Session, assignment_id: int, event_type: str, **fields: Any) -> RoutineAssignmentEvent | None:
    """Write one event inside a SAVEPOINT; returns None if the write failed."""
    try:
        with s.begin_nested():
            event = _build_event(assignment_id, event_type, fields)
            s.add(event)
            s.flush()
        return event
    except Exception:
        logger.warning(
            "assignment_event_dropped",
            exc_info=True,
            extra={"ctx_assignment_id": assignment_id, "ctx_event_type": event_type},
        )
        return None


def list_assignment_events(s: Session, assignment_id: int) -> list[RoutineAssignmentEvent]:
    """Newest first."""
    q = (
        select(RoutineAssignmentEvent)
        .where(RoutineAssignmentEvent.assignment_id == assignment_id)
        .order_by(RoutineAssignmentEvent.created_at.desc(), RoutineAssignmentEvent.id.desc())
    )
    return list(s.execute(q).scalars().all())


def list_client_events(s: Session, client_id: int, limit: int | None = None) -> list[RoutineAssignmentEvent]:
    """Timeline across every assignment a client holds, newest first."""
    q = (
        select(RoutineAssignmentEvent)
        .join(RoutineAssignment, RoutineAssignment.id == RoutineAssignmentEvent.assignment_id)
        .where(RoutineAssignment.client_id == client_id)
        .order_by(RoutineAssignmentEvent.created_at.desc(), RoutineAssignmentEvent.id.desc())
    )
    if limit:
        q = q.limit(limit)
    return list(s.execute(q).scalars().all())


def list_expired_update_events(
    s: Session, professional_id: int, now: dt.datetime | None = None
) -> list[tuple[RoutineAssignmentEvent, RoutineAssignment]]:
    """``update_expired`` events attributed to a professional within the lookback window."""
    now = now or utcnow()
    since = now - dt.timedelta(days=get_settings().expired_update_lookback_days)
    q = (
        select(RoutineAssignmentEvent, RoutineAssignment)
        .join(RoutineAssignment, RoutineAssignment.id == RoutineAssignmentEvent.assignment_id)
        .where(
            RoutineAssignmentEvent.performed_by == professional_id,
            RoutineAssignmentEvent.event_type == "update_expired",
            RoutineAssignmentEvent.created_at >= since,
        )
        .order_by(RoutineAssignmentEvent.created_at.desc())
    )
    return [(row[0], row[1]) for row in s.execute(q).all()]
