from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from programmes.config import get_settings
from programmes.models import Base

MIGRATION = Path("alembic/versions/20261019_0001_programme_schema.py")


def test_required_tables_present_in_migration():
    text = MIGRATION.read_text()
    for t in Base.metadata.tables:
        assert f'"{t}"' in text


def test_partial_unique_indexes_declared():
    text = MIGRATION.read_text()
    assert "uq_routine_versions_one_active" in text
    assert "uq_assignment_sessions_current_day" in text
    assert "ck_routine_assignments_overlay" in text


def test_migrations_avoid_postgres_now_function_for_portability():
    migrations_dir = Path("alembic/versions")
    for migration_file in migrations_dir.glob("*.py"):
        text = migration_file.read_text(encoding="utf-8").lower()
        assert "now()" not in text, f"Non-portable now() found in {migration_file.name}"


def test_alembic_upgrade_head_succeeds_on_sqlite(tmp_path, monkeypatch):
    db_path = tmp_path / "migration_smoke.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")
    get_settings.cache_clear()

    cfg = Config("alembic.ini")
    command.upgrade(cfg, "head")
    get_settings.cache_clear()

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert set(Base.metadata.tables) <= tables
