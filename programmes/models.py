from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

OWNER_TYPES = ("platform", "professional", "client_proxy")
CREATION_METHODS = ("manual", "template", "ai_assisted")
VERSION_STATUSES = ("draft", "pending_review", "active", "archived")
ASSIGNMENT_STATUSES = ("pending_acceptance", "active", "paused", "completed", "cancelled", "rejected")
LOAD_DIRECTIVES = ("open", "absolute", "bodyweight", "assisted")
WEIGHT_UNITS = ("kg", "lbs")
EVENT_TYPES = (
    "created",
    "accepted",
    "rejected",
    "status_changed",
    "dates_updated",
    "notes_updated",
    "update_offered",
    "update_superseded",
    "update_accepted",
    "update_declined",
    "update_expired",
)


def utcnow() -> dt.datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def _in_clause(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} in ({quoted})"


class Base(DeclarativeBase):
    pass


class GoalType(Base):
    __tablename__ = "goal_types"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(120), unique=True)
    description: Mapped[str | None] = mapped_column(Text)
    default_rep_range: Mapped[str | None] = mapped_column(String(20))
    default_rest_seconds: Mapped[int | None] = mapped_column(Integer)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class LibraryExercise(Base):
    __tablename__ = "exercise_library"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), index=True)
    category: Mapped[str] = mapped_column(String(40), index=True)
    muscle_groups: Mapped[list[str]] = mapped_column(JSON, default=list)
    equipment_tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    difficulty_level: Mapped[str] = mapped_column(String(20), default="intermediate")
    instructions: Mapped[str | None] = mapped_column(Text)
    is_system: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)


class RoutineBlueprint(Base):
    __tablename__ = "routine_blueprints"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text)
    owner_type: Mapped[str] = mapped_column(String(20))
    owner_id: Mapped[int | None] = mapped_column(Integer, index=True)
    created_for_client_id: Mapped[int | None] = mapped_column(Integer, index=True)
    creation_method: Mapped[str] = mapped_column(String(20), default="manual")
    source_blueprint_id: Mapped[int | None] = mapped_column(ForeignKey("routine_blueprints.id", ondelete="SET NULL"))
    goal_type_id: Mapped[int | None] = mapped_column(ForeignKey("goal_types.id", ondelete="SET NULL"))
    equipment_profile: Mapped[list[str] | None] = mapped_column(JSON)
    duration_weeks: Mapped[int | None] = mapped_column(Integer)
    sessions_per_week: Mapped[int | None] = mapped_column(Integer)
    is_template: Mapped[bool] = mapped_column(Boolean, default=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    versions: Mapped[list["RoutineVersion"]] = relationship(
        back_populates="blueprint", order_by="RoutineVersion.version_number"
    )
    goal_type: Mapped[GoalType | None] = relationship()

    __table_args__ = (
        CheckConstraint(_in_clause("owner_type", OWNER_TYPES), name="ck_routine_blueprints_owner_type"),
        CheckConstraint(_in_clause("creation_method", CREATION_METHODS), name="ck_routine_blueprints_creation_method"),
        CheckConstraint("sessions_per_week is null or sessions_per_week between 1 and 7"),
    )


class RoutineVersion(Base):
    __tablename__ = "routine_versions"
    id: Mapped[int] = mapped_column(primary_key=True)
    blueprint_id: Mapped[int] = mapped_column(ForeignKey("routine_blueprints.id", ondelete="CASCADE"), index=True)
    version_number: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), default="draft", index=True)
    notes: Mapped[str | None] = mapped_column(Text)
    parent_version_id: Mapped[int | None] = mapped_column(ForeignKey("routine_versions.id", ondelete="SET NULL"))
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    published_at: Mapped[dt.datetime | None] = mapped_column(DateTime)

    blueprint: Mapped[RoutineBlueprint] = relationship(back_populates="versions")
    exercises: Mapped[list["RoutineVersionExercise"]] = relationship(
        back_populates="version",
        order_by="[RoutineVersionExercise.day_number, RoutineVersionExercise.order_in_day]",
    )

    __table_args__ = (
        UniqueConstraint("blueprint_id", "version_number", name="uq_routine_versions_number"),
        CheckConstraint(_in_clause("status", VERSION_STATUSES), name="ck_routine_versions_status"),
        Index(
            "uq_routine_versions_one_active",
            "blueprint_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    @property
    def label(self) -> str:
        return f"Version {self.version_number}"


class RoutineVersionExercise(Base):
    __tablename__ = "routine_version_exercises"
    id: Mapped[int] = mapped_column(primary_key=True)
    routine_version_id: Mapped[int] = mapped_column(ForeignKey("routine_versions.id", ondelete="CASCADE"), index=True)
    exercise_id: Mapped[int | None] = mapped_column(ForeignKey("exercise_library.id", ondelete="SET NULL"))
    custom_exercise_name: Mapped[str | None] = mapped_column(String(200))
    day_number: Mapped[int] = mapped_column(Integer)
    order_in_day: Mapped[int] = mapped_column(Integer)
    sets: Mapped[int] = mapped_column(Integer, default=3)
    reps_min: Mapped[int | None] = mapped_column(Integer)
    reps_max: Mapped[int | None] = mapped_column(Integer)
    rest_seconds: Mapped[int | None] = mapped_column(Integer)
    notes: Mapped[str | None] = mapped_column(Text)
    superset_group: Mapped[str | None] = mapped_column(String(10))
    load_directive: Mapped[str] = mapped_column(String(20), default="open")
    target_weight_kg: Mapped[float | None] = mapped_column(Float)
    entered_weight_value: Mapped[float | None] = mapped_column(Float)
    entered_weight_unit: Mapped[str | None] = mapped_column(String(3))
    special_instructions: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)

    version: Mapped[RoutineVersion] = relationship(back_populates="exercises")

    __table_args__ = (
        UniqueConstraint("routine_version_id", "day_number", "order_in_day", name="uq_version_exercise_order"),
        CheckConstraint("day_number between 1 and 7", name="ck_version_exercise_day"),
        CheckConstraint(_in_clause("load_directive", LOAD_DIRECTIVES), name="ck_version_exercise_load_directive"),
        CheckConstraint("target_weight_kg is null or target_weight_kg >= 0", name="ck_version_exercise_weight"),
        CheckConstraint(
            "(entered_weight_value is null and entered_weight_unit is null) "
            "or (entered_weight_value is not null and entered_weight_unit is not null)",
            name="ck_version_exercise_entered_weight",
        ),
    )


@dataclass(frozen=True)
class PendingUpdate:
    """An offered-but-unconfirmed version attached to an active assignment."""

    version_id: int
    created_at: dt.datetime
    notes: str | None = None


class RoutineAssignment(Base):
    __tablename__ = "routine_assignments"
    id: Mapped[int] = mapped_column(primary_key=True)
    routine_version_id: Mapped[int] = mapped_column(ForeignKey("routine_versions.id"), index=True)
    client_id: Mapped[int] = mapped_column(Integer, index=True)
    assigned_by_pro_id: Mapped[int | None] = mapped_column(Integer, index=True)
    status: Mapped[str] = mapped_column(String(24), default="pending_acceptance", index=True)
    start_date: Mapped[dt.date | None] = mapped_column(Date)
    end_date: Mapped[dt.date | None] = mapped_column(Date)
    notes: Mapped[str | None] = mapped_column(Text)
    rejected_at: Mapped[dt.datetime | None] = mapped_column(DateTime)
    pending_version_id: Mapped[int | None] = mapped_column(ForeignKey("routine_versions.id"))
    pending_created_at: Mapped[dt.datetime | None] = mapped_column(DateTime)
    pending_notes: Mapped[str | None] = mapped_column(Text)
    has_pending_update: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    version: Mapped[RoutineVersion] = relationship(foreign_keys=[routine_version_id])
    pending_version: Mapped[RoutineVersion | None] = relationship(foreign_keys=[pending_version_id])

    __table_args__ = (
        CheckConstraint(_in_clause("status", ASSIGNMENT_STATUSES), name="ck_routine_assignments_status"),
        CheckConstraint(
            "(pending_version_id is null and pending_created_at is null "
            "and pending_notes is null and not has_pending_update) "
            "or (pending_version_id is not null and pending_created_at is not null "
            "and has_pending_update and status = 'active')",
            name="ck_routine_assignments_overlay",
        ),
        Index("ix_routine_assignments_client_status", "client_id", "status"),
    )

    @property
    def current_version_id(self) -> int:
        return self.routine_version_id

    @property
    def pending_update(self) -> PendingUpdate | None:
        if self.pending_version_id is None:
            return None
        return PendingUpdate(
            version_id=self.pending_version_id,
            created_at=self.pending_created_at,
            notes=self.pending_notes,
        )

    @staticmethod
    def overlay_values(pending: PendingUpdate | None) -> dict[str, Any]:
        """Column values for the overlay; the only way services write it."""
        if pending is None:
            return {
                "pending_version_id": None,
                "pending_created_at": None,
                "pending_notes": None,
                "has_pending_update": False,
            }
        return {
            "pending_version_id": pending.version_id,
            "pending_created_at": pending.created_at,
            "pending_notes": pending.notes,
            "has_pending_update": True,
        }


class RoutineAssignmentSession(Base):
    __tablename__ = "routine_assignment_sessions"
    id: Mapped[int] = mapped_column(primary_key=True)
    routine_assignment_id: Mapped[int] = mapped_column(
        ForeignKey("routine_assignments.id", ondelete="CASCADE"), index=True
    )
    routine_version_id: Mapped[int] = mapped_column(ForeignKey("routine_versions.id"), index=True)
    day_number: Mapped[int] = mapped_column(Integer)
    session_focus: Mapped[str | None] = mapped_column(String(120))
    materialized_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    is_current: Mapped[bool] = mapped_column(Boolean, default=True)
    exercises: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)

    __table_args__ = (
        Index(
            "uq_assignment_sessions_current_day",
            "routine_assignment_id",
            "day_number",
            unique=True,
            sqlite_where=text("is_current = 1"),
            postgresql_where=text("is_current"),
        ),
    )


class RoutineAssignmentEvent(Base):
    __tablename__ = "routine_assignment_events"
    id: Mapped[int] = mapped_column(primary_key=True)
    assignment_id: Mapped[int] = mapped_column(ForeignKey("routine_assignments.id", ondelete="CASCADE"), index=True)
    event_type: Mapped[str] = mapped_column(String(32), index=True)
    performed_by: Mapped[int | None] = mapped_column(Integer, index=True)
    old_status: Mapped[str | None] = mapped_column(String(24))
    new_status: Mapped[str | None] = mapped_column(String(24))
    from_version_id: Mapped[int | None] = mapped_column(Integer)
    to_version_id: Mapped[int | None] = mapped_column(Integer)
    event_notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, index=True)

    __table_args__ = (
        CheckConstraint(_in_clause("event_type", EVENT_TYPES), name="ck_assignment_events_type"),
    )
