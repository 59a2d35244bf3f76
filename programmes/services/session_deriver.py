"""Session deriver: groups a version's exercise entries into day sessions.

Pure functions only. The focus label is a display heuristic behind
``FocusStrategy``.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Protocol

from programmes.services.collaborators import ExerciseLookup

UNKNOWN_EXERCISE = "Unknown Exercise"

PUSH_TAGS = frozenset({"chest", "upper_chest", "lower_chest", "shoulders", "front_delts", "side_delts", "triceps"})
PULL_TAGS = frozenset({"back", "lats", "rhomboids", "biceps", "rear_delts", "traps", "brachialis"})
LEG_TAGS = frozenset({"quads", "quadriceps", "hamstrings", "glutes", "calves", "adductors", "abductors"})

ENTRY_FIELDS = (
    "exercise_id",
    "custom_exercise_name",
    "day_number",
    "order_in_day",
    "sets",
    "reps_min",
    "reps_max",
    "rest_seconds",
    "notes",
    "superset_group",
    "load_directive",
    "target_weight_kg",
    "entered_weight_value",
    "entered_weight_unit",
    "special_instructions",
)


@dataclass(frozen=True)
class DerivedExercise:
    exercise_id: Optional[int]
    exercise_name: str
    day_number: int
    order_in_day: int
    sets: int
    reps_min: Optional[int] = None
    reps_max: Optional[int] = None
    rest_seconds: Optional[int] = None
    notes: Optional[str] = None
    superset_group: Optional[str] = None
    load_directive: str = "open"
    target_weight_kg: Optional[float] = None
    entered_weight_value: Optional[float] = None
    entered_weight_unit: Optional[str] = None
    special_instructions: Optional[str] = None

    def snapshot(self) -> dict[str, Any]:
        """Denormalized copy stored on a materialized session."""
        return {
            "exercise_id": self.exercise_id,
            "exercise_name": self.exercise_name,
            "sets": self.sets,
            "reps_min": self.reps_min,
            "reps_max": self.reps_max,
            "rest_seconds": self.rest_seconds,
            "notes": self.notes,
            "order_in_day": self.order_in_day,
            "superset_group": self.superset_group,
            "load_directive": self.load_directive,
            "target_weight_kg": self.target_weight_kg,
            "entered_weight_value": self.entered_weight_value,
            "entered_weight_unit": self.entered_weight_unit,
            "special_instructions": self.special_instructions,
        }


@dataclass(frozen=True)
class DerivedSession:
    session_id: str
    day_number: int
    focus: str
    exercises: list[DerivedExercise] = field(default_factory=list)


class FocusStrategy(Protocol):
    def label(self, day_number: int, muscle_groups: set[str], has_tag_data: bool) -> str:
        ...


class MuscleGroupFocus:
    """Push / pull / legs ladder over the muscle-group tags touched in a day."""

    def label(self, day_number: int, muscle_groups: set[str], has_tag_data: bool) -> str:
        fallback = f"Day {day_number}"
        if not has_tag_data:
            return fallback

        has_push = bool(muscle_groups & PUSH_TAGS)
        has_pull = bool(muscle_groups & PULL_TAGS)
        has_legs = bool(muscle_groups & LEG_TAGS)

        if has_push and not has_pull and not has_legs:
            return "Push (Chest, Shoulders, Triceps)"
        if has_pull and not has_push and not has_legs:
            return "Pull (Back, Biceps)"
        if has_legs and not has_push and not has_pull:
            return "Legs"
        if has_push and has_pull and has_legs:
            return "Full Body"
        if has_push and has_pull:
            return "Upper Body"
        if has_legs and (has_push or has_pull):
            return "Lower + Upper Mix"
        return fallback


DEFAULT_FOCUS = MuscleGroupFocus()


def session_id_for(version_id: int, day_number: int) -> str:
    return f"{version_id}-d{day_number}"


def _resolve_name(entry: Any, catalog: ExerciseLookup | None) -> str:
    name = getattr(entry, "custom_exercise_name", None) or UNKNOWN_EXERCISE
    exercise_id = getattr(entry, "exercise_id", None)
    if exercise_id is not None and catalog is not None:
        name = catalog.get_exercise_name(exercise_id) or name
    return name


def _to_derived(entry: Any, catalog: ExerciseLookup | None) -> DerivedExercise:
    values = {name: getattr(entry, name, None) for name in ENTRY_FIELDS if name != "custom_exercise_name"}
    values["sets"] = values["sets"] if values["sets"] is not None else 3
    values["load_directive"] = values["load_directive"] or "open"
    return DerivedExercise(exercise_name=_resolve_name(entry, catalog), **values)


def _muscle_groups(exercises: list[DerivedExercise], catalog: ExerciseLookup | None) -> set[str]:
    groups: set[str] = set()
    if catalog is None:
        return groups
    for ex in exercises:
        if ex.exercise_id is None:
            continue
        row = catalog.get_exercise(ex.exercise_id)
        if row is not None:
            groups.update(mg.lower() for mg in row.muscle_groups)
    return groups


def derive_sessions(
    version_id: int,
    entries: Iterable[Any],
    catalog: ExerciseLookup | None = None,
    focus: FocusStrategy | None = None,
) -> list[DerivedSession]:
    """Group entries by day, order each day, and label it.

    Entries may be ORM rows or any object exposing the entry attributes.
    Sessions come back ordered by day number.
    """
    focus = focus or DEFAULT_FOCUS
    by_day: dict[int, list[DerivedExercise]] = defaultdict(list)
    for entry in entries:
        derived = _to_derived(entry, catalog)
        by_day[derived.day_number].append(derived)

    sessions: list[DerivedSession] = []
    for day_number in sorted(by_day):
        exercises = sorted(by_day[day_number], key=lambda ex: ex.order_in_day)
        groups = _muscle_groups(exercises, catalog)
        sessions.append(
            DerivedSession(
                session_id=session_id_for(version_id, day_number),
                day_number=day_number,
                focus=focus.label(day_number, groups, has_tag_data=bool(catalog)),
                exercises=exercises,
            )
        )
    return sessions
