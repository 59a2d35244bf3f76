"""Boundaries to systems this package consumes but does not own.

The relationship verifier is always supplied by the host. The exercise and
goal lookups have default implementations backed by the read-only
``exercise_library`` and ``goal_types`` tables.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from programmes.config import get_settings
from programmes.models import GoalType, LibraryExercise


class RelationshipVerifier(Protocol):
    """Answers whether a professional currently coaches a client."""

    def is_active_relationship(self, professional_id: int, client_id: int) -> bool:
        ...


@dataclass(frozen=True)
class CatalogExercise:
    id: int
    name: str
    muscle_groups: tuple[str, ...] = ()


class ExerciseLookup(Protocol):
    def get_exercise(self, exercise_id: int) -> Optional[CatalogExercise]:
        ...

    def get_exercise_name(self, exercise_id: int) -> Optional[str]:
        ...


@dataclass
class ExerciseCatalog:
    """In-memory, read-only view over library exercises."""

    exercises: dict[int, CatalogExercise] = field(default_factory=dict)

    @classmethod
    def from_rows(cls, rows: Iterable[CatalogExercise]) -> "ExerciseCatalog":
        return cls({row.id: row for row in rows})

    @classmethod
    def for_entries(cls, s: Session, entries: Iterable[Any]) -> "ExerciseCatalog":
        """Load exactly the library rows that ``entries`` reference by ``exercise_id``."""
        ids = sorted({e.exercise_id for e in entries if e.exercise_id is not None})
        chunk = get_settings().exercise_lookup_limit
        rows: list[LibraryExercise] = []
        for start in range(0, len(ids), chunk):
            batch = ids[start : start + chunk]
            rows.extend(s.execute(select(LibraryExercise).where(LibraryExercise.id.in_(batch))).scalars())
        return cls.from_rows(
            CatalogExercise(
                id=row.id,
                name=row.name,
                muscle_groups=tuple(str(mg).lower() for mg in (row.muscle_groups or [])),
            )
            for row in rows
        )

    def __bool__(self) -> bool:
        return bool(self.exercises)

    def get_exercise(self, exercise_id: int) -> Optional[CatalogExercise]:
        return self.exercises.get(exercise_id)

    def get_exercise_name(self, exercise_id: int) -> Optional[str]:
        row = self.exercises.get(exercise_id)
        return row.name if row else None


def goal_name(s: Session, goal_type_id: int | None) -> str | None:
    """Display-only goal lookup; never consulted by the state machines."""
    if goal_type_id is None:
        return None
    goal = s.get(GoalType, goal_type_id)
    return goal.name if goal else None
