"""Pending-update negotiation on active assignments.

The overlay moves ``none -> pending -> none``. Push, accept, decline and
expire each write it with one conditional UPDATE that names the state the
caller read; a zero row count means somebody else got there first.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from programmes.config import get_settings
from programmes.errors import ConcurrencyConflict, InvalidStateTransition, NotFound, Unauthorized, ValidationError
from programmes.logging_config import ctx
from programmes.models import PendingUpdate, RoutineAssignment, RoutineVersion, utcnow
from programmes.services.collaborators import ExerciseCatalog, ExerciseLookup
from programmes.services.events import list_expired_update_events, record_event
from programmes.services.exercise_sets import list_version_exercises
from programmes.services.materializer import materialize_sessions, supersede_current_sessions
from programmes.services.session_deriver import derive_sessions
from programmes.validators import UpdateNotesInput, parse_input

logger = logging.getLogger(__name__)


@dataclass
class ExpirySweepResult:
    expired: int = 0
    skipped: int = 0
    expired_assignments: list[int] = field(default_factory=list)


def _load(s: Session, assignment_id: int) -> RoutineAssignment:
    assignment = s.get(RoutineAssignment, assignment_id)
    if assignment is None:
        raise NotFound(f"Assignment {assignment_id} not found")
    return assignment


def _require_pending(assignment: RoutineAssignment, client_id: int) -> PendingUpdate:
    if assignment.client_id != client_id:
        raise Unauthorized("Only the assigned client can respond to an update")
    pending = assignment.pending_update
    if pending is None:
        raise InvalidStateTransition("Assignment has no pending update")
    return pending


def push_update(
    s: Session,
    assignment_id: int,
    new_version_id: int,
    pro_id: int,
    notes: str | None = None,
    now: dt.datetime | None = None,
) -> RoutineAssignment:
    """Offer ``new_version_id`` to the client. A newer push replaces an older one."""
    assignment = _load(s, assignment_id)
    if assignment.assigned_by_pro_id != pro_id:
        raise Unauthorized("Only the assigning professional can push updates")
    if assignment.status != "active":
        raise InvalidStateTransition(f"Updates can only be pushed to active assignments (status is {assignment.status})")

    new_version = s.get(RoutineVersion, new_version_id)
    if new_version is None:
        raise NotFound(f"Version {new_version_id} not found")
    current_version_id = assignment.routine_version_id
    if new_version.blueprint_id != assignment.version.blueprint_id:
        raise ValidationError("Update must come from the same programme as the current version")
    if new_version.id == current_version_id:
        raise InvalidStateTransition("Client is already on this version")

    notes = parse_input(UpdateNotesInput, {"notes": notes}).notes
    superseding = assignment.pending_version_id
    overlay = RoutineAssignment.overlay_values(PendingUpdate(new_version.id, now or utcnow(), notes))
    result = s.execute(
        update(RoutineAssignment)
        .where(
            RoutineAssignment.id == assignment_id,
            RoutineAssignment.status == "active",
            RoutineAssignment.routine_version_id == current_version_id,
        )
        .values(updated_at=utcnow(), **overlay)
    )
    if result.rowcount != 1:
        raise ConcurrencyConflict("Assignment changed while the update was being pushed")
    s.refresh(assignment)

    record_event(
        s,
        assignment_id,
        "update_superseded" if superseding is not None else "update_offered",
        performed_by=pro_id,
        from_version_id=current_version_id,
        to_version_id=new_version.id,
        event_notes=notes,
    )
    logger.info(
        "update_pushed",
        extra=ctx(assignment_id=assignment_id, to_version_id=new_version.id, superseded_version_id=superseding),
    )
    return assignment


def accept_update(
    s: Session, assignment_id: int, client_id: int, catalog: ExerciseLookup | None = None
) -> RoutineAssignment:
    """Swap the assignment onto the pending version and rematerialize its sessions."""
    assignment = _load(s, assignment_id)
    pending = _require_pending(assignment, client_id)
    from_version_id = assignment.routine_version_id

    result = s.execute(
        update(RoutineAssignment)
        .where(
            RoutineAssignment.id == assignment_id,
            RoutineAssignment.pending_version_id == pending.version_id,
            RoutineAssignment.routine_version_id == from_version_id,
        )
        .values(routine_version_id=pending.version_id, updated_at=utcnow(), **RoutineAssignment.overlay_values(None))
    )
    if result.rowcount != 1:
        raise ConcurrencyConflict("Pending update changed before it could be accepted")
    s.refresh(assignment)

    supersede_current_sessions(s, assignment_id)
    materialize_sessions(s, assignment_id, pending.version_id, catalog)
    record_event(
        s,
        assignment_id,
        "update_accepted",
        performed_by=client_id,
        from_version_id=from_version_id,
        to_version_id=pending.version_id,
    )
    logger.info(
        "update_accepted",
        extra=ctx(assignment_id=assignment_id, from_version_id=from_version_id, to_version_id=pending.version_id),
    )
    return assignment


def decline_update(s: Session, assignment_id: int, client_id: int) -> RoutineAssignment:
    assignment = _load(s, assignment_id)
    pending = _require_pending(assignment, client_id)

    result = s.execute(
        update(RoutineAssignment)
        .where(
            RoutineAssignment.id == assignment_id,
            RoutineAssignment.pending_version_id == pending.version_id,
            RoutineAssignment.routine_version_id == assignment.routine_version_id,
        )
        .values(updated_at=utcnow(), **RoutineAssignment.overlay_values(None))
    )
    if result.rowcount != 1:
        raise ConcurrencyConflict("Pending update changed before it could be declined")
    s.refresh(assignment)

    record_event(
        s,
        assignment_id,
        "update_declined",
        performed_by=client_id,
        from_version_id=assignment.routine_version_id,
        to_version_id=pending.version_id,
    )
    logger.info("update_declined", extra=ctx(assignment_id=assignment_id, version_id=pending.version_id))
    return assignment


def expire_pending_update(
    s: Session,
    assignment_id: int,
    expected_pending_version_id: int,
    expected_current_version_id: int,
    performed_by: int | None = None,
    expected_created_at: dt.datetime | None = None,
    now: dt.datetime | None = None,
) -> bool:
    """Clear the overlay only if it still matches what the caller read.

    Returns False, without raising, when the row moved on in the meantime.
    ``expected_created_at`` additionally pins the offer itself so a fresh
    re-push of the same version is not expired.
    """
    conditions = [
        RoutineAssignment.id == assignment_id,
        RoutineAssignment.has_pending_update.is_(True),
        RoutineAssignment.pending_version_id == expected_pending_version_id,
        RoutineAssignment.routine_version_id == expected_current_version_id,
    ]
    if expected_created_at is not None:
        conditions.append(RoutineAssignment.pending_created_at == expected_created_at)
    result = s.execute(
        update(RoutineAssignment)
        .where(*conditions)
        .values(updated_at=utcnow(), **RoutineAssignment.overlay_values(None))
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        return False

    fields: dict[str, Any] = {
        "performed_by": performed_by,
        "from_version_id": expected_current_version_id,
        "to_version_id": expected_pending_version_id,
    }
    if now is not None:
        fields["created_at"] = now
    record_event(s, assignment_id, "update_expired", **fields)
    return True


def expire_stale_pending_updates(
    s: Session, now: dt.datetime | None = None, client_id: int | None = None
) -> ExpirySweepResult:
    """Expire every overlay older than the configured window.

    Candidates are read once up front without locks; each row is then
    expired by compare-and-swap inside its own savepoint, so a row that
    changed concurrently (or fails to write) is skipped, not fatal.
    """
    now = now or utcnow()
    cutoff = now - dt.timedelta(days=get_settings().pending_update_expiry_days)
    q = select(
        RoutineAssignment.id,
        RoutineAssignment.pending_version_id,
        RoutineAssignment.routine_version_id,
        RoutineAssignment.pending_created_at,
        RoutineAssignment.assigned_by_pro_id,
    ).where(RoutineAssignment.has_pending_update.is_(True), RoutineAssignment.pending_created_at < cutoff)
    if client_id is not None:
        q = q.where(RoutineAssignment.client_id == client_id)
    candidates = s.execute(q).all()

    result = ExpirySweepResult()
    for assignment_id, pending_id, current_id, created_at, pro_id in candidates:
        try:
            with s.begin_nested():
                expired = expire_pending_update(
                    s,
                    assignment_id,
                    pending_id,
                    current_id,
                    performed_by=pro_id,
                    expected_created_at=created_at,
                    now=now,
                )
        except SQLAlchemyError:
            logger.warning("pending_update_expiry_failed", exc_info=True, extra=ctx(assignment_id=assignment_id))
            result.skipped += 1
            continue
        if expired:
            result.expired += 1
            result.expired_assignments.append(assignment_id)
        else:
            result.skipped += 1

    if candidates:
        logger.info(
            "pending_updates_expired",
            extra=ctx(expired=result.expired, skipped=result.skipped, cutoff=cutoff.isoformat()),
        )
    return result


# ── Read helpers ─────────────────────────────────────────────────────────


def get_pending_update_details(
    s: Session, assignment_id: int, client_id: int, catalog: ExerciseLookup | None = None
) -> dict[str, Any] | None:
    """What the client would be switching to; None when nothing is pending."""
    assignment = _load(s, assignment_id)
    if assignment.client_id != client_id:
        raise Unauthorized("Only the assigned client can view this update")
    pending = assignment.pending_update
    if pending is None:
        return None

    current, offered = assignment.version, assignment.pending_version
    entries = list_version_exercises(s, offered.id)
    if catalog is None:
        catalog = ExerciseCatalog.for_entries(s, entries)
    return {
        "assignment_id": assignment.id,
        "blueprint_name": current.blueprint.name,
        "current_version": {"id": current.id, "label": current.label},
        "pending_version": {
            "id": offered.id,
            "label": offered.label,
            "sessions": derive_sessions(offered.id, entries, catalog),
        },
        "offered_at": pending.created_at,
        "notes": pending.notes,
    }


def get_pro_expired_updates(s: Session, pro_id: int, now: dt.datetime | None = None) -> list[dict[str, Any]]:
    """Recently expired offers a professional pushed, for notification tooling."""
    out = []
    for event, assignment in list_expired_update_events(s, pro_id, now):
        version = s.get(RoutineVersion, event.to_version_id) if event.to_version_id else None
        out.append(
            {
                "assignment_id": assignment.id,
                "client_id": assignment.client_id,
                "version_id": event.to_version_id,
                "version_label": version.label if version else None,
                "expired_at": event.created_at,
            }
        )
    return out
