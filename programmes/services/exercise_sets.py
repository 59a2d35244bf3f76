"""Exercise entries owned by a single version.

A version's entries are replaced wholesale by ``set_version_exercises`` or
edited one at a time. Either way ``order_in_day`` stays a dense 1..n
sequence per day, and archived versions are read-only.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Iterable

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from programmes.config import get_settings
from programmes.errors import InvalidStateTransition, NotFound, ValidationError
from programmes.models import RoutineVersion, RoutineVersionExercise
from programmes.services.session_deriver import ENTRY_FIELDS
from programmes.validators import ExerciseEntryInput, ExerciseEntryUpdate, parse_entries, parse_input

logger = logging.getLogger(__name__)


def _editable_version(s: Session, version_id: int) -> RoutineVersion:
    version = s.get(RoutineVersion, version_id)
    if version is None:
        raise NotFound(f"Version {version_id} not found")
    if version.status == "archived":
        raise InvalidStateTransition("Archived versions are read-only")
    return version


def _check_day_count(days: Iterable[int]) -> None:
    limit = get_settings().max_training_days
    distinct = set(days)
    if len(distinct) > limit:
        raise ValidationError(f"A version may span at most {limit} training days (got {len(distinct)})")


def _version_days(s: Session, version_id: int) -> set[int]:
    q = select(RoutineVersionExercise.day_number).where(RoutineVersionExercise.routine_version_id == version_id)
    return set(s.execute(q).scalars().all())


def _day_entries(s: Session, version_id: int, day_number: int) -> list[RoutineVersionExercise]:
    q = (
        select(RoutineVersionExercise)
        .where(
            RoutineVersionExercise.routine_version_id == version_id,
            RoutineVersionExercise.day_number == day_number,
        )
        .order_by(RoutineVersionExercise.order_in_day)
    )
    return list(s.execute(q).scalars().all())


def _resequence(s: Session, rows: list[RoutineVersionExercise]) -> None:
    # Two passes so the (version, day, order) unique constraint never sees a duplicate mid-flush.
    for i, row in enumerate(rows, start=1):
        row.order_in_day = -i
    s.flush()
    for i, row in enumerate(rows, start=1):
        row.order_in_day = i
    s.flush()


def list_version_exercises(s: Session, version_id: int) -> list[RoutineVersionExercise]:
    q = (
        select(RoutineVersionExercise)
        .where(RoutineVersionExercise.routine_version_id == version_id)
        .order_by(RoutineVersionExercise.day_number, RoutineVersionExercise.order_in_day)
    )
    return list(s.execute(q).scalars().all())


def set_version_exercises(
    s: Session, version_id: int, entries: Iterable[ExerciseEntryInput | dict[str, Any]]
) -> list[RoutineVersionExercise]:
    """Replace every entry of a version; order within a day follows input order."""
    _editable_version(s, version_id)
    parsed = parse_entries(entries)
    _check_day_count(e.day_number for e in parsed)

    s.execute(delete(RoutineVersionExercise).where(RoutineVersionExercise.routine_version_id == version_id))

    counters: dict[int, int] = defaultdict(int)
    rows = []
    for entry in parsed:
        counters[entry.day_number] += 1
        values = entry.model_dump()
        values["order_in_day"] = counters[entry.day_number]
        rows.append(RoutineVersionExercise(routine_version_id=version_id, **values))
    s.add_all(rows)
    s.flush()

    logger.info(
        "version_exercises_set",
        extra={"ctx_version_id": version_id, "ctx_entries": len(rows), "ctx_days": len(counters)},
    )
    return list_version_exercises(s, version_id)


def add_exercise(s: Session, version_id: int, entry: ExerciseEntryInput | dict[str, Any]) -> RoutineVersionExercise:
    """Append an entry to the end of its day."""
    _editable_version(s, version_id)
    body = parse_input(ExerciseEntryInput, entry)
    _check_day_count(_version_days(s, version_id) | {body.day_number})

    last = s.execute(
        select(func.max(RoutineVersionExercise.order_in_day)).where(
            RoutineVersionExercise.routine_version_id == version_id,
            RoutineVersionExercise.day_number == body.day_number,
        )
    ).scalar_one_or_none()
    values = body.model_dump()
    values["order_in_day"] = (last or 0) + 1
    row = RoutineVersionExercise(routine_version_id=version_id, **values)
    s.add(row)
    s.flush()
    return row


def _get_entry(s: Session, exercise_entry_id: int) -> RoutineVersionExercise:
    row = s.get(RoutineVersionExercise, exercise_entry_id)
    if row is None:
        raise NotFound(f"Exercise entry {exercise_entry_id} not found")
    return row


def update_exercise(
    s: Session, exercise_entry_id: int, changes: ExerciseEntryUpdate | dict[str, Any]
) -> RoutineVersionExercise:
    row = _get_entry(s, exercise_entry_id)
    version_id = row.routine_version_id
    _editable_version(s, version_id)

    patch = parse_input(ExerciseEntryUpdate, changes).model_dump(exclude_unset=True)
    merged = {name: getattr(row, name) for name in ENTRY_FIELDS}
    merged.update(patch)
    body = parse_input(ExerciseEntryInput, merged)

    old_day = row.day_number
    if body.day_number != old_day:
        _check_day_count((_version_days(s, version_id) - {old_day}) | {body.day_number})

    for name, value in body.model_dump().items():
        if name in ("order_in_day", "day_number"):
            continue
        setattr(row, name, value)
    s.flush()

    if body.day_number != old_day:
        # Park on the new day at the end, then close the gap on the old one.
        target = _day_entries(s, version_id, body.day_number)
        row.order_in_day = 0
        s.flush()
        row.day_number = body.day_number
        s.flush()
        _resequence(s, target + [row])
        _resequence(s, _day_entries(s, version_id, old_day))
    return row


def delete_exercise(s: Session, exercise_entry_id: int) -> None:
    row = _get_entry(s, exercise_entry_id)
    version_id, day_number = row.routine_version_id, row.day_number
    _editable_version(s, version_id)
    s.delete(row)
    s.flush()
    _resequence(s, _day_entries(s, version_id, day_number))


def reorder_day(
    s: Session, version_id: int, day_number: int, ordered_entry_ids: list[int]
) -> list[RoutineVersionExercise]:
    """Apply a new order to one day; ids must be exactly that day's entries."""
    _editable_version(s, version_id)
    rows = {row.id: row for row in _day_entries(s, version_id, day_number)}
    if sorted(ordered_entry_ids) != sorted(rows):
        raise ValidationError(f"Reorder must list every entry of day {day_number} exactly once")
    ordered = [rows[i] for i in ordered_entry_ids]
    _resequence(s, ordered)
    return ordered


def copy_version_exercises(s: Session, source_version_id: int, target_version_id: int) -> int:
    """Copy entries verbatim into an empty target version; returns the count."""
    source = list_version_exercises(s, source_version_id)
    s.add_all(
        RoutineVersionExercise(
            routine_version_id=target_version_id,
            **{name: getattr(row, name) for name in ENTRY_FIELDS},
        )
        for row in source
    )
    s.flush()
    return len(source)
