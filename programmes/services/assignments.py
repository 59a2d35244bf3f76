"""Assignment lifecycle and the client/professional read models.

Primary status machine::

    pending_acceptance -> active | rejected
    active             -> paused | completed | cancelled
    paused             -> active | completed | cancelled

Every transition is a conditional UPDATE on the expected current status, so
two callers racing on the same row cannot both succeed.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from programmes.config import get_settings
from programmes.errors import InvalidStateTransition, NotFound, Unauthorized
from programmes.models import (
    RoutineAssignment,
    RoutineAssignmentEvent,
    RoutineAssignmentSession,
    RoutineBlueprint,
    RoutineVersion,
    utcnow,
)
from programmes.services import updates
from programmes.services.collaborators import ExerciseCatalog, ExerciseLookup, RelationshipVerifier, goal_name
from programmes.services.events import record_event
from programmes.services.exercise_sets import list_version_exercises
from programmes.services.materializer import get_current_sessions, materialize_sessions
from programmes.services.session_deriver import derive_sessions, session_id_for
from programmes.validators import AssignmentDetailsInput, UpdateNotesInput, parse_input

logger = logging.getLogger(__name__)

STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    "active": frozenset({"paused", "completed", "cancelled"}),
    "paused": frozenset({"active", "completed", "cancelled"}),
}
CLOSED_STATUSES = frozenset({"rejected", "completed", "cancelled"})


def get_assignment(s: Session, assignment_id: int) -> RoutineAssignment:
    assignment = s.get(RoutineAssignment, assignment_id)
    if assignment is None:
        raise NotFound(f"Assignment {assignment_id} not found")
    return assignment


def _require_client(assignment: RoutineAssignment, client_id: int) -> None:
    if assignment.client_id != client_id:
        raise Unauthorized("Only the assigned client can respond to this assignment")


def _require_party(assignment: RoutineAssignment, user_id: int) -> None:
    if user_id not in (assignment.client_id, assignment.assigned_by_pro_id):
        raise Unauthorized("Only the client or the assigning professional can change this assignment")


# ── Creation ─────────────────────────────────────────────────────────────


def create_assignment(
    s: Session,
    version_id: int,
    client_id: int,
    assigned_by: int,
    relationships: RelationshipVerifier,
    start_date: dt.date | None = None,
    end_date: dt.date | None = None,
    notes: str | None = None,
) -> RoutineAssignment:
    version = s.get(RoutineVersion, version_id)
    if version is None:
        raise NotFound(f"Version {version_id} not found")
    if not relationships.is_active_relationship(assigned_by, client_id):
        raise Unauthorized("No active coaching relationship between professional and client")
    blueprint = version.blueprint
    if blueprint.owner_type != "platform" and blueprint.owner_id != assigned_by:
        raise Unauthorized("Only the owning professional can assign this programme")
    if version.status != "active":
        raise InvalidStateTransition(f"Only the active version can be assigned (version is {version.status})")

    details = parse_input(AssignmentDetailsInput, {"start_date": start_date, "end_date": end_date, "notes": notes})
    assignment = RoutineAssignment(
        routine_version_id=version_id,
        client_id=client_id,
        assigned_by_pro_id=assigned_by,
        status="pending_acceptance",
        start_date=details.start_date,
        end_date=details.end_date,
        notes=details.notes,
        rejected_at=None,
        **RoutineAssignment.overlay_values(None),
    )
    s.add(assignment)
    s.flush()

    record_event(
        s,
        assignment.id,
        "created",
        performed_by=assigned_by,
        new_status="pending_acceptance",
        to_version_id=version_id,
    )
    logger.info(
        "assignment_created",
        extra={"ctx_assignment_id": assignment.id, "ctx_client_id": client_id, "ctx_version_id": version_id},
    )
    return assignment


def assign_routine_to_client(
    s: Session,
    blueprint_id: int,
    client_id: int,
    assigned_by: int,
    relationships: RelationshipVerifier,
    start_date: dt.date | None = None,
    end_date: dt.date | None = None,
    notes: str | None = None,
) -> RoutineAssignment:
    """Assign whatever version of the blueprint is currently active."""
    if s.get(RoutineBlueprint, blueprint_id) is None:
        raise NotFound(f"Blueprint {blueprint_id} not found")
    version_id = s.execute(
        select(RoutineVersion.id).where(RoutineVersion.blueprint_id == blueprint_id, RoutineVersion.status == "active")
    ).scalar_one_or_none()
    if version_id is None:
        raise InvalidStateTransition("Blueprint has no active version to assign")
    return create_assignment(
        s, version_id, client_id, assigned_by, relationships, start_date=start_date, end_date=end_date, notes=notes
    )


# ── Client responses ─────────────────────────────────────────────────────


def accept_assignment(
    s: Session, assignment_id: int, client_id: int, catalog: ExerciseLookup | None = None
) -> RoutineAssignment:
    assignment = get_assignment(s, assignment_id)
    _require_client(assignment, client_id)

    result = s.execute(
        update(RoutineAssignment)
        .where(RoutineAssignment.id == assignment_id, RoutineAssignment.status == "pending_acceptance")
        .values(status="active", updated_at=utcnow())
    )
    if result.rowcount != 1:
        raise InvalidStateTransition("Assignment is not pending acceptance")
    s.refresh(assignment)

    materialize_sessions(s, assignment_id, assignment.routine_version_id, catalog)
    record_event(
        s,
        assignment_id,
        "accepted",
        performed_by=client_id,
        old_status="pending_acceptance",
        new_status="active",
        to_version_id=assignment.routine_version_id,
    )
    logger.info("assignment_accepted", extra={"ctx_assignment_id": assignment_id, "ctx_client_id": client_id})
    return assignment


def reject_assignment(
    s: Session, assignment_id: int, client_id: int, reason: str | None = None, now: dt.datetime | None = None
) -> RoutineAssignment:
    assignment = get_assignment(s, assignment_id)
    _require_client(assignment, client_id)

    values: dict[str, Any] = {"status": "rejected", "rejected_at": now or utcnow(), "updated_at": utcnow()}
    reason = parse_input(UpdateNotesInput, {"notes": reason}).notes
    if reason:
        values["notes"] = reason
    result = s.execute(
        update(RoutineAssignment)
        .where(RoutineAssignment.id == assignment_id, RoutineAssignment.status == "pending_acceptance")
        .values(**values)
    )
    if result.rowcount != 1:
        raise InvalidStateTransition("Assignment is not pending acceptance")
    s.refresh(assignment)

    record_event(
        s,
        assignment_id,
        "rejected",
        performed_by=client_id,
        old_status="pending_acceptance",
        new_status="rejected",
        event_notes=reason,
    )
    logger.info("assignment_rejected", extra={"ctx_assignment_id": assignment_id, "ctx_client_id": client_id})
    return assignment


# ── Ongoing management ───────────────────────────────────────────────────


def update_assignment_status(
    s: Session, assignment_id: int, new_status: str, performed_by: int
) -> RoutineAssignment:
    assignment = get_assignment(s, assignment_id)
    _require_party(assignment, performed_by)

    old_status = assignment.status
    if new_status not in STATUS_TRANSITIONS.get(old_status, frozenset()):
        raise InvalidStateTransition(f"Cannot move assignment from {old_status} to {new_status}")

    values: dict[str, Any] = {"status": new_status, "updated_at": utcnow()}
    if old_status == "active":
        values.update(RoutineAssignment.overlay_values(None))
    result = s.execute(
        update(RoutineAssignment)
        .where(RoutineAssignment.id == assignment_id, RoutineAssignment.status == old_status)
        .values(**values)
    )
    if result.rowcount != 1:
        raise InvalidStateTransition(f"Assignment is no longer {old_status}")
    s.refresh(assignment)

    record_event(
        s,
        assignment_id,
        "status_changed",
        performed_by=performed_by,
        old_status=old_status,
        new_status=new_status,
    )
    logger.info(
        "assignment_status_changed",
        extra={"ctx_assignment_id": assignment_id, "ctx_old_status": old_status, "ctx_new_status": new_status},
    )
    return assignment


def update_assignment_details(
    s: Session, assignment_id: int, pro_id: int, changes: AssignmentDetailsInput | dict[str, Any]
) -> RoutineAssignment:
    """Change dates and/or notes; only fields present in ``changes`` are touched."""
    assignment = get_assignment(s, assignment_id)
    if assignment.assigned_by_pro_id != pro_id:
        raise Unauthorized("Only the assigning professional can edit assignment details")
    if assignment.status in CLOSED_STATUSES:
        raise InvalidStateTransition(f"Cannot edit a {assignment.status} assignment")

    patch = parse_input(AssignmentDetailsInput, changes).model_dump(exclude_unset=True)
    merged = {"start_date": assignment.start_date, "end_date": assignment.end_date, "notes": assignment.notes}
    merged.update(patch)
    body = parse_input(AssignmentDetailsInput, merged)

    dates_changed = (body.start_date, body.end_date) != (assignment.start_date, assignment.end_date)
    notes_changed = body.notes != assignment.notes
    assignment.start_date = body.start_date
    assignment.end_date = body.end_date
    assignment.notes = body.notes
    s.flush()

    if dates_changed:
        record_event(
            s,
            assignment_id,
            "dates_updated",
            performed_by=pro_id,
            event_notes=f"{body.start_date or '-'} to {body.end_date or '-'}",
        )
    if notes_changed:
        record_event(s, assignment_id, "notes_updated", performed_by=pro_id, event_notes=body.notes)
    return assignment


def cleanup_old_rejected(s: Session, client_id: int, now: dt.datetime | None = None) -> int:
    """Hard-delete a client's rejected assignments past the retention window."""
    now = now or utcnow()
    cutoff = now - dt.timedelta(days=get_settings().rejected_retention_days)
    ids = list(
        s.execute(
            select(RoutineAssignment.id).where(
                RoutineAssignment.client_id == client_id,
                RoutineAssignment.status == "rejected",
                RoutineAssignment.rejected_at < cutoff,
            )
        ).scalars()
    )
    if not ids:
        return 0

    s.execute(delete(RoutineAssignmentEvent).where(RoutineAssignmentEvent.assignment_id.in_(ids)))
    s.execute(delete(RoutineAssignmentSession).where(RoutineAssignmentSession.routine_assignment_id.in_(ids)))
    s.execute(delete(RoutineAssignment).where(RoutineAssignment.id.in_(ids)))
    logger.info("rejected_assignments_purged", extra={"ctx_client_id": client_id, "ctx_count": len(ids)})
    return len(ids)


# ── Read models ──────────────────────────────────────────────────────────


def _pending_update_info(assignment: RoutineAssignment) -> dict[str, Any] | None:
    pending = assignment.pending_update
    if pending is None:
        return None
    return {
        "version_id": pending.version_id,
        "version_label": assignment.pending_version.label if assignment.pending_version else None,
        "offered_at": pending.created_at,
        "notes": pending.notes,
    }


def _summary(s: Session, assignment: RoutineAssignment) -> dict[str, Any]:
    version = assignment.version
    blueprint = version.blueprint
    return {
        "assignment_id": assignment.id,
        "client_id": assignment.client_id,
        "assigned_by_pro_id": assignment.assigned_by_pro_id,
        "status": assignment.status,
        "start_date": assignment.start_date,
        "end_date": assignment.end_date,
        "notes": assignment.notes,
        "blueprint_id": blueprint.id,
        "blueprint_name": blueprint.name,
        "goal": goal_name(s, blueprint.goal_type_id),
        "version_id": version.id,
        "version_label": version.label,
        "pending_update": _pending_update_info(assignment),
        "created_at": assignment.created_at,
    }


def get_assignment_with_sessions(
    s: Session, assignment_id: int, catalog: ExerciseLookup | None = None
) -> dict[str, Any]:
    """Assignment, programme summary and its sessions.

    Materialized current sessions are returned when they exist; assignments
    not yet accepted fall back to sessions derived from the current version.
    """
    assignment = get_assignment(s, assignment_id)
    rows = get_current_sessions(s, assignment_id)
    if rows:
        sessions = [
            {
                "session_id": session_id_for(row.routine_version_id, row.day_number),
                "day_number": row.day_number,
                "focus": row.session_focus,
                "exercises": row.exercises,
                "materialized_at": row.materialized_at,
            }
            for row in rows
        ]
    else:
        entries = list_version_exercises(s, assignment.routine_version_id)
        if catalog is None:
            catalog = ExerciseCatalog.for_entries(s, entries)
        derived = derive_sessions(assignment.routine_version_id, entries, catalog)
        sessions = [
            {
                "session_id": d.session_id,
                "day_number": d.day_number,
                "focus": d.focus,
                "exercises": [ex.snapshot() for ex in d.exercises],
                "materialized_at": None,
            }
            for d in derived
        ]

    blueprint = assignment.version.blueprint
    return {
        "assignment": _summary(s, assignment),
        "programme": {
            "name": blueprint.name,
            "description": blueprint.description,
            "goal": goal_name(s, blueprint.goal_type_id),
            "duration_weeks": blueprint.duration_weeks,
            "sessions_per_week": blueprint.sessions_per_week,
            "version_label": assignment.version.label,
            "total_days": len(sessions),
        },
        "sessions": sessions,
    }


def get_client_assignment_with_sessions(
    s: Session, assignment_id: int, client_id: int, catalog: ExerciseLookup | None = None
) -> dict[str, Any]:
    """Client-facing variant: ownership and active-status checked."""
    assignment = get_assignment(s, assignment_id)
    _require_client(assignment, client_id)
    if assignment.status != "active":
        raise InvalidStateTransition(f"Assignment is not active (status is {assignment.status})")
    return get_assignment_with_sessions(s, assignment_id, catalog)


def get_client_assignments(s: Session, client_id: int, now: dt.datetime | None = None) -> dict[str, list[dict]]:
    """``{"pending": [...], "active": [...]}`` for a client, newest first."""
    if get_settings().sweep_on_read:
        cleanup_old_rejected(s, client_id, now)
        updates.expire_stale_pending_updates(s, now, client_id=client_id)

    q = (
        select(RoutineAssignment)
        .where(RoutineAssignment.client_id == client_id, RoutineAssignment.status.in_(("pending_acceptance", "active")))
        .order_by(RoutineAssignment.created_at.desc(), RoutineAssignment.id.desc())
    )
    out: dict[str, list[dict]] = {"pending": [], "active": []}
    for assignment in s.execute(q).scalars():
        key = "pending" if assignment.status == "pending_acceptance" else "active"
        out[key].append(_summary(s, assignment))
    return out


def list_pro_assignments(s: Session, pro_id: int, status: str | None = None) -> list[dict[str, Any]]:
    q = select(RoutineAssignment).where(RoutineAssignment.assigned_by_pro_id == pro_id)
    if status:
        q = q.where(RoutineAssignment.status == status)
    q = q.order_by(RoutineAssignment.created_at.desc(), RoutineAssignment.id.desc())
    return [_summary(s, a) for a in s.execute(q).scalars()]
