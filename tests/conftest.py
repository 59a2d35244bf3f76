from __future__ import annotations

import pytest

from programmes.config import get_settings
from programmes.db import Base, get_engine, reset_engine, session_scope
from programmes.models import LibraryExercise
from programmes.services import exercise_sets, versions

PRO_ID = 10
CLIENT_ID = 20


class FakeRelationships:
    """Relationship verifier backed by a set of (professional, client) pairs."""

    def __init__(self, pairs=((PRO_ID, CLIENT_ID),)):
        self.pairs = set(pairs)

    def is_active_relationship(self, professional_id, client_id):
        return (professional_id, client_id) in self.pairs


@pytest.fixture
def db(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'programmes.db'}")
    monkeypatch.setenv("APP_ENV", "test")
    get_settings.cache_clear()
    reset_engine()
    Base.metadata.create_all(get_engine())
    yield
    reset_engine()
    get_settings.cache_clear()


@pytest.fixture
def relationships():
    return FakeRelationships()


@pytest.fixture
def library(db):
    """A few library exercises keyed by name."""
    rows = [
        ("Bench Press", ["chest", "triceps", "front_delts"]),
        ("Overhead Press", ["front_delts", "side_delts", "triceps"]),
        ("Pull-ups", ["lats", "biceps"]),
        ("Barbell Row", ["lats", "rhomboids", "biceps"]),
        ("Back Squat", ["quads", "glutes", "hamstrings"]),
        ("Leg Curl", ["hamstrings"]),
    ]
    with session_scope() as s:
        objs = [LibraryExercise(name=n, category="compound", muscle_groups=m, equipment_tags=[]) for n, m in rows]
        s.add_all(objs)
        s.flush()
        return {o.name: o.id for o in objs}


def entries_for(day_counts, prefix="Move"):
    """Custom-named entries; ``{1: 3}`` gives three exercises on day 1."""
    out = []
    for day, count in day_counts.items():
        for i in range(count):
            out.append({"custom_exercise_name": f"{prefix} {day}.{i + 1}", "day_number": day, "sets": 3})
    return out


def make_blueprint(s, name="5-Day Split", owner_id=PRO_ID):
    return versions.create_blueprint(s, {"name": name, "owner_type": "professional", "owner_id": owner_id})


def make_active_version(s, blueprint_id, day_counts, prefix="Move"):
    version = versions.create_version(s, blueprint_id)
    exercise_sets.set_version_exercises(s, version.id, entries_for(day_counts, prefix))
    versions.activate_version(s, version.id)
    return version
