"""programme versioning and assignment schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "goal_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("default_rep_range", sa.String(length=20), nullable=True),
        sa.Column("default_rest_seconds", sa.Integer(), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    )

    op.create_table(
        "exercise_library",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("category", sa.String(length=40), nullable=False),
        sa.Column("muscle_groups", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("equipment_tags", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("difficulty_level", sa.String(length=20), nullable=False, server_default="intermediate"),
        sa.Column("instructions", sa.Text(), nullable=True),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_exercise_library_name", "exercise_library", ["name"])
    op.create_index("ix_exercise_library_category", "exercise_library", ["category"])

    op.create_table(
        "routine_blueprints",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("owner_type", sa.String(length=20), nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=True),
        sa.Column("created_for_client_id", sa.Integer(), nullable=True),
        sa.Column("creation_method", sa.String(length=20), nullable=False, server_default="manual"),
        sa.Column(
            "source_blueprint_id",
            sa.Integer(),
            sa.ForeignKey("routine_blueprints.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("goal_type_id", sa.Integer(), sa.ForeignKey("goal_types.id", ondelete="SET NULL"), nullable=True),
        sa.Column("equipment_profile", sa.JSON(), nullable=True),
        sa.Column("duration_weeks", sa.Integer(), nullable=True),
        sa.Column("sessions_per_week", sa.Integer(), nullable=True),
        sa.Column("is_template", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint(
            "owner_type in ('platform', 'professional', 'client_proxy')", name="ck_routine_blueprints_owner_type"
        ),
        sa.CheckConstraint(
            "creation_method in ('manual', 'template', 'ai_assisted')", name="ck_routine_blueprints_creation_method"
        ),
        sa.CheckConstraint("sessions_per_week is null or sessions_per_week between 1 and 7"),
    )
    op.create_index("ix_routine_blueprints_owner_id", "routine_blueprints", ["owner_id"])
    op.create_index("ix_routine_blueprints_created_for_client_id", "routine_blueprints", ["created_for_client_id"])

    op.create_table(
        "routine_versions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "blueprint_id", sa.Integer(), sa.ForeignKey("routine_blueprints.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "parent_version_id", sa.Integer(), sa.ForeignKey("routine_versions.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("published_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("blueprint_id", "version_number", name="uq_routine_versions_number"),
        sa.CheckConstraint(
            "status in ('draft', 'pending_review', 'active', 'archived')", name="ck_routine_versions_status"
        ),
    )
    op.create_index("ix_routine_versions_blueprint_id", "routine_versions", ["blueprint_id"])
    op.create_index("ix_routine_versions_status", "routine_versions", ["status"])
    op.create_index(
        "uq_routine_versions_one_active",
        "routine_versions",
        ["blueprint_id"],
        unique=True,
        sqlite_where=sa.text("status = 'active'"),
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "routine_version_exercises",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "routine_version_id",
            sa.Integer(),
            sa.ForeignKey("routine_versions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("exercise_id", sa.Integer(), sa.ForeignKey("exercise_library.id", ondelete="SET NULL"), nullable=True),
        sa.Column("custom_exercise_name", sa.String(length=200), nullable=True),
        sa.Column("day_number", sa.Integer(), nullable=False),
        sa.Column("order_in_day", sa.Integer(), nullable=False),
        sa.Column("sets", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("reps_min", sa.Integer(), nullable=True),
        sa.Column("reps_max", sa.Integer(), nullable=True),
        sa.Column("rest_seconds", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("superset_group", sa.String(length=10), nullable=True),
        sa.Column("load_directive", sa.String(length=20), nullable=False, server_default="open"),
        sa.Column("target_weight_kg", sa.Float(), nullable=True),
        sa.Column("entered_weight_value", sa.Float(), nullable=True),
        sa.Column("entered_weight_unit", sa.String(length=3), nullable=True),
        sa.Column("special_instructions", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("routine_version_id", "day_number", "order_in_day", name="uq_version_exercise_order"),
        sa.CheckConstraint("day_number between 1 and 7", name="ck_version_exercise_day"),
        sa.CheckConstraint(
            "load_directive in ('open', 'absolute', 'bodyweight', 'assisted')",
            name="ck_version_exercise_load_directive",
        ),
        sa.CheckConstraint("target_weight_kg is null or target_weight_kg >= 0", name="ck_version_exercise_weight"),
        sa.CheckConstraint(
            "(entered_weight_value is null and entered_weight_unit is null) "
            "or (entered_weight_value is not null and entered_weight_unit is not null)",
            name="ck_version_exercise_entered_weight",
        ),
    )
    op.create_index(
        "ix_routine_version_exercises_routine_version_id", "routine_version_exercises", ["routine_version_id"]
    )

    op.create_table(
        "routine_assignments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("routine_version_id", sa.Integer(), sa.ForeignKey("routine_versions.id"), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("assigned_by_pro_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="pending_acceptance"),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(), nullable=True),
        sa.Column("pending_version_id", sa.Integer(), sa.ForeignKey("routine_versions.id"), nullable=True),
        sa.Column("pending_created_at", sa.DateTime(), nullable=True),
        sa.Column("pending_notes", sa.Text(), nullable=True),
        sa.Column("has_pending_update", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint(
            "status in ('pending_acceptance', 'active', 'paused', 'completed', 'cancelled', 'rejected')",
            name="ck_routine_assignments_status",
        ),
        sa.CheckConstraint(
            "(pending_version_id is null and pending_created_at is null "
            "and pending_notes is null and not has_pending_update) "
            "or (pending_version_id is not null and pending_created_at is not null "
            "and has_pending_update and status = 'active')",
            name="ck_routine_assignments_overlay",
        ),
    )
    op.create_index("ix_routine_assignments_routine_version_id", "routine_assignments", ["routine_version_id"])
    op.create_index("ix_routine_assignments_client_id", "routine_assignments", ["client_id"])
    op.create_index("ix_routine_assignments_assigned_by_pro_id", "routine_assignments", ["assigned_by_pro_id"])
    op.create_index("ix_routine_assignments_status", "routine_assignments", ["status"])
    op.create_index("ix_routine_assignments_client_status", "routine_assignments", ["client_id", "status"])

    op.create_table(
        "routine_assignment_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "routine_assignment_id",
            sa.Integer(),
            sa.ForeignKey("routine_assignments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("routine_version_id", sa.Integer(), sa.ForeignKey("routine_versions.id"), nullable=False),
        sa.Column("day_number", sa.Integer(), nullable=False),
        sa.Column("session_focus", sa.String(length=120), nullable=True),
        sa.Column("materialized_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("is_current", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("exercises", sa.JSON(), nullable=False, server_default="[]"),
    )
    op.create_index(
        "ix_routine_assignment_sessions_routine_assignment_id",
        "routine_assignment_sessions",
        ["routine_assignment_id"],
    )
    op.create_index(
        "ix_routine_assignment_sessions_routine_version_id", "routine_assignment_sessions", ["routine_version_id"]
    )
    op.create_index(
        "uq_assignment_sessions_current_day",
        "routine_assignment_sessions",
        ["routine_assignment_id", "day_number"],
        unique=True,
        sqlite_where=sa.text("is_current = 1"),
        postgresql_where=sa.text("is_current"),
    )

    op.create_table(
        "routine_assignment_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "assignment_id",
            sa.Integer(),
            sa.ForeignKey("routine_assignments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("performed_by", sa.Integer(), nullable=True),
        sa.Column("old_status", sa.String(length=24), nullable=True),
        sa.Column("new_status", sa.String(length=24), nullable=True),
        sa.Column("from_version_id", sa.Integer(), nullable=True),
        sa.Column("to_version_id", sa.Integer(), nullable=True),
        sa.Column("event_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint(
            "event_type in ('created', 'accepted', 'rejected', 'status_changed', 'dates_updated', "
            "'notes_updated', 'update_offered', 'update_superseded', 'update_accepted', "
            "'update_declined', 'update_expired')",
            name="ck_assignment_events_type",
        ),
    )
    op.create_index("ix_routine_assignment_events_assignment_id", "routine_assignment_events", ["assignment_id"])
    op.create_index("ix_routine_assignment_events_event_type", "routine_assignment_events", ["event_type"])
    op.create_index("ix_routine_assignment_events_performed_by", "routine_assignment_events", ["performed_by"])
    op.create_index("ix_routine_assignment_events_created_at", "routine_assignment_events", ["created_at"])


def downgrade() -> None:
    op.drop_table("routine_assignment_events")
    op.drop_table("routine_assignment_sessions")
    op.drop_table("routine_assignments")
    op.drop_table("routine_version_exercises")
    op.drop_table("routine_versions")
    op.drop_table("routine_blueprints")
    op.drop_table("exercise_library")
    op.drop_table("goal_types")
