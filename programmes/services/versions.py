"""Blueprint and version authoring.

Version numbers are allocated as max+1 under a row lock on the owning
blueprint, and activation swaps the active version inside the caller's
transaction so no reader ever sees zero-then-one or two active versions.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from programmes.errors import ConcurrencyConflict, InvalidStateTransition, NotFound, ValidationError
from programmes.models import (
    RoutineAssignment,
    RoutineAssignmentSession,
    RoutineBlueprint,
    RoutineVersion,
    RoutineVersionExercise,
    utcnow,
)
from programmes.services.collaborators import goal_name
from programmes.services.exercise_sets import copy_version_exercises, list_version_exercises
from programmes.validators import BlueprintCreateInput, BlueprintUpdateInput, UpdateNotesInput, parse_input

logger = logging.getLogger(__name__)


# ── Blueprints ───────────────────────────────────────────────────────────


def create_blueprint(s: Session, data: BlueprintCreateInput | dict[str, Any]) -> RoutineBlueprint:
    body = parse_input(BlueprintCreateInput, data)
    blueprint = RoutineBlueprint(**body.model_dump())
    s.add(blueprint)
    s.flush()
    logger.info("blueprint_created", extra={"ctx_blueprint_id": blueprint.id, "ctx_owner_id": blueprint.owner_id})
    return blueprint


def get_blueprint(s: Session, blueprint_id: int) -> RoutineBlueprint:
    blueprint = s.get(RoutineBlueprint, blueprint_id)
    if blueprint is None:
        raise NotFound(f"Blueprint {blueprint_id} not found")
    return blueprint


def _lock_blueprint(s: Session, blueprint_id: int) -> RoutineBlueprint:
    blueprint = s.execute(
        select(RoutineBlueprint).where(RoutineBlueprint.id == blueprint_id).with_for_update()
    ).scalar_one_or_none()
    if blueprint is None:
        raise NotFound(f"Blueprint {blueprint_id} not found")
    return blueprint


def archive_blueprint(s: Session, blueprint_id: int) -> RoutineBlueprint:
    """Blueprints with history are archived, never deleted."""
    blueprint = get_blueprint(s, blueprint_id)
    blueprint.is_archived = True
    s.flush()
    return blueprint


def update_blueprint(
    s: Session, blueprint_id: int, changes: BlueprintUpdateInput | dict[str, Any]
) -> RoutineBlueprint:
    """Patch metadata; only fields present in ``changes`` are touched."""
    blueprint = get_blueprint(s, blueprint_id)
    patch = parse_input(BlueprintUpdateInput, changes).model_dump(exclude_unset=True)
    for key, value in patch.items():
        setattr(blueprint, key, value)
    s.flush()
    logger.info("blueprint_updated", extra={"ctx_blueprint_id": blueprint_id, "ctx_fields": sorted(patch)})
    return blueprint


def list_blueprints(
    s: Session,
    owner_type: str | None = None,
    owner_id: int | None = None,
    is_template: bool | None = None,
    is_archived: bool | None = None,
    goal_type_id: int | None = None,
) -> list[RoutineBlueprint]:
    """Newest first; every filter left as None is ignored."""
    q = select(RoutineBlueprint)
    if owner_type is not None:
        q = q.where(RoutineBlueprint.owner_type == owner_type)
    if owner_id is not None:
        q = q.where(RoutineBlueprint.owner_id == owner_id)
    if is_template is not None:
        q = q.where(RoutineBlueprint.is_template.is_(is_template))
    if is_archived is not None:
        q = q.where(RoutineBlueprint.is_archived.is_(is_archived))
    if goal_type_id is not None:
        q = q.where(RoutineBlueprint.goal_type_id == goal_type_id)
    q = q.order_by(RoutineBlueprint.created_at.desc(), RoutineBlueprint.id.desc())
    return list(s.execute(q).scalars().all())


def list_pro_blueprints(
    s: Session, pro_id: int, include_templates: bool = True, include_archived: bool = False
) -> list[RoutineBlueprint]:
    """A professional's own blueprints, plus platform templates unless excluded."""
    owned = RoutineBlueprint.owner_id == pro_id
    if include_templates:
        owned = or_(
            owned,
            and_(RoutineBlueprint.owner_type == "platform", RoutineBlueprint.is_template.is_(True)),
        )
    q = select(RoutineBlueprint).where(owned)
    if not include_archived:
        q = q.where(RoutineBlueprint.is_archived.is_(False))
    q = q.order_by(RoutineBlueprint.created_at.desc(), RoutineBlueprint.id.desc())
    return list(s.execute(q).scalars().all())


def clone_blueprint(
    s: Session,
    source_id: int,
    owner_type: str | None = None,
    owner_id: int | None = None,
) -> tuple[RoutineBlueprint, RoutineVersion]:
    """Copy a blueprint and its active (or latest) version into a new draft v1."""
    source = get_blueprint(s, source_id)
    source_version = get_active_version(s, source_id) or next(iter(list_versions(s, source_id)), None)

    blueprint = create_blueprint(
        s,
        {
            "name": f"{source.name} (Copy)",
            "description": source.description,
            "owner_type": owner_type or source.owner_type,
            "owner_id": owner_id or source.owner_id,
            "created_for_client_id": source.created_for_client_id,
            "creation_method": "template",
            "goal_type_id": source.goal_type_id,
            "equipment_profile": source.equipment_profile,
            "duration_weeks": source.duration_weeks,
            "sessions_per_week": source.sessions_per_week,
            "is_template": source.is_template,
        },
    )
    blueprint.source_blueprint_id = source.id
    version = create_version(s, blueprint.id, notes=f"Cloned from {source.name}")
    if source_version is not None:
        copy_version_exercises(s, source_version.id, version.id)
    return blueprint, version


# ── Versions ─────────────────────────────────────────────────────────────


def list_versions(s: Session, blueprint_id: int) -> list[RoutineVersion]:
    """Newest version first."""
    q = (
        select(RoutineVersion)
        .where(RoutineVersion.blueprint_id == blueprint_id)
        .order_by(RoutineVersion.version_number.desc())
    )
    return list(s.execute(q).scalars().all())


def get_version(s: Session, version_id: int) -> RoutineVersion:
    version = s.get(RoutineVersion, version_id)
    if version is None:
        raise NotFound(f"Version {version_id} not found")
    return version


def get_active_version(s: Session, blueprint_id: int) -> RoutineVersion | None:
    q = select(RoutineVersion).where(RoutineVersion.blueprint_id == blueprint_id, RoutineVersion.status == "active")
    return s.execute(q).scalar_one_or_none()


def create_version(
    s: Session,
    blueprint_id: int,
    status: str = "draft",
    notes: str | None = None,
    parent_version_id: int | None = None,
    copy_entries: bool = False,
) -> RoutineVersion:
    if status not in ("draft", "pending_review", "active"):
        raise ValidationError(f"A new version cannot start as '{status}'")
    _lock_blueprint(s, blueprint_id)

    if parent_version_id is not None:
        parent = get_version(s, parent_version_id)
        if parent.blueprint_id != blueprint_id:
            raise ValidationError("Parent version belongs to a different blueprint")

    current_max = s.execute(
        select(func.max(RoutineVersion.version_number)).where(RoutineVersion.blueprint_id == blueprint_id)
    ).scalar_one_or_none()
    version = RoutineVersion(
        blueprint_id=blueprint_id,
        version_number=(current_max or 0) + 1,
        status="draft" if status == "active" else status,
        notes=parse_input(UpdateNotesInput, {"notes": notes}).notes,
        parent_version_id=parent_version_id,
    )
    s.add(version)
    try:
        s.flush()
    except IntegrityError as exc:
        raise ConcurrencyConflict(f"Version number {version.version_number} was taken concurrently") from exc

    if copy_entries and parent_version_id is not None:
        copy_version_exercises(s, parent_version_id, version.id)
    if status == "active":
        activate_version(s, version.id)

    logger.info(
        "version_created",
        extra={"ctx_blueprint_id": blueprint_id, "ctx_version_id": version.id, "ctx_version_number": version.version_number},
    )
    return version


def update_version_notes(s: Session, version_id: int, notes: str | None) -> RoutineVersion:
    version = get_version(s, version_id)
    version.notes = parse_input(UpdateNotesInput, {"notes": notes}).notes
    s.flush()
    return version


def submit_for_review(s: Session, version_id: int) -> RoutineVersion:
    version = get_version(s, version_id)
    if version.status != "draft":
        raise InvalidStateTransition(f"Only draft versions can be submitted for review (version is {version.status})")
    version.status = "pending_review"
    s.flush()
    return version


def activate_version(
    s: Session, version_id: int, notes: str | None = None, now: dt.datetime | None = None
) -> RoutineVersion:
    """Make ``version_id`` the single active version of its blueprint."""
    version = get_version(s, version_id)
    if version.status == "archived":
        raise InvalidStateTransition("Cannot activate an archived version")
    if version.status == "active":
        return version

    _lock_blueprint(s, version.blueprint_id)
    s.refresh(version, with_for_update=True)
    if version.status == "archived":
        raise InvalidStateTransition("Cannot activate an archived version")
    if version.status == "active":
        return version
    s.execute(
        update(RoutineVersion)
        .where(
            RoutineVersion.blueprint_id == version.blueprint_id,
            RoutineVersion.status == "active",
            RoutineVersion.id != version.id,
        )
        .values(status="archived")
    )
    version.status = "active"
    version.published_at = now or utcnow()
    if notes is not None:
        version.notes = parse_input(UpdateNotesInput, {"notes": notes}).notes or version.notes
    try:
        s.flush()
    except IntegrityError as exc:
        raise ConcurrencyConflict("Another version of this blueprint was activated concurrently") from exc

    logger.info(
        "version_activated",
        extra={"ctx_blueprint_id": version.blueprint_id, "ctx_version_id": version.id},
    )
    return version


def approve_version(s: Session, version_id: int, notes: str | None = None) -> RoutineVersion:
    """Review-queue approval; promotion goes through activation."""
    return activate_version(s, version_id, notes=notes)


def archive_version(s: Session, version_id: int) -> RoutineVersion:
    version = get_version(s, version_id)
    if version.status == "archived":
        return version
    _lock_blueprint(s, version.blueprint_id)
    version.status = "archived"
    s.flush()
    return version


def delete_version(s: Session, version_id: int) -> None:
    version = get_version(s, version_id)
    if version.status == "active":
        raise InvalidStateTransition("Cannot delete the active version")

    referenced = s.execute(
        select(RoutineAssignment.id)
        .where(or_(RoutineAssignment.routine_version_id == version_id, RoutineAssignment.pending_version_id == version_id))
        .limit(1)
    ).first() or s.execute(
        select(RoutineAssignmentSession.id).where(RoutineAssignmentSession.routine_version_id == version_id).limit(1)
    ).first()
    if referenced:
        raise InvalidStateTransition("Cannot delete a version that has been assigned to a client")

    s.execute(delete(RoutineVersionExercise).where(RoutineVersionExercise.routine_version_id == version_id))
    s.delete(version)
    s.flush()
    logger.info("version_deleted", extra={"ctx_version_id": version_id})


def get_full_routine(s: Session, blueprint_id: int, version_id: int | None = None) -> dict[str, Any]:
    """Blueprint, chosen version (explicit, else active, else newest) and its entries."""
    blueprint = get_blueprint(s, blueprint_id)
    if version_id is not None:
        version = get_version(s, version_id)
        if version.blueprint_id != blueprint_id:
            raise NotFound(f"Version {version_id} does not belong to blueprint {blueprint_id}")
    else:
        version = get_active_version(s, blueprint_id) or next(iter(list_versions(s, blueprint_id)), None)
        if version is None:
            raise NotFound(f"Blueprint {blueprint_id} has no versions")
    return {
        "blueprint": blueprint,
        "version": version,
        "exercises": list_version_exercises(s, version.id),
        "goal": goal_name(s, blueprint.goal_type_id),
    }


def get_review_queue(s: Session, pro_id: int) -> list[dict[str, Any]]:
    """A professional's blueprints whose newest unpublished version awaits review.

    Each item carries the latest ``draft`` or ``pending_review`` version and
    its entries; blueprints with nothing unpublished are left out.
    """
    blueprints = list(
        s.execute(
            select(RoutineBlueprint)
            .where(
                RoutineBlueprint.owner_id == pro_id,
                RoutineBlueprint.owner_type == "professional",
                RoutineBlueprint.is_archived.is_(False),
            )
            .order_by(RoutineBlueprint.updated_at.desc(), RoutineBlueprint.id.desc())
        ).scalars()
    )
    if not blueprints:
        return []

    latest: dict[int, RoutineVersion] = {}
    candidates = s.execute(
        select(RoutineVersion)
        .where(
            RoutineVersion.blueprint_id.in_([b.id for b in blueprints]),
            RoutineVersion.status.in_(("draft", "pending_review")),
        )
        .order_by(RoutineVersion.version_number.desc())
    ).scalars()
    for version in candidates:
        latest.setdefault(version.blueprint_id, version)

    return [
        {
            "blueprint": blueprint,
            "latest_version": latest[blueprint.id],
            "exercises": list_version_exercises(s, latest[blueprint.id].id),
            "goal": goal_name(s, blueprint.goal_type_id),
        }
        for blueprint in blueprints
        if blueprint.id in latest
    ]
