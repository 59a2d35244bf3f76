"""Database seeder for the read-only lookup tables.

Runs migrations to head, then fills ``goal_types`` and a starter
``exercise_library`` when they are empty. Programme content itself is
never seeded; professionals author it.
"""
from __future__ import annotations

from alembic import command
from alembic.config import Config
from sqlalchemy import select

from programmes.db import session_scope
from programmes.logging_config import get_logger, setup_logging
from programmes.models import GoalType, LibraryExercise

logger = get_logger(__name__)

# name, description, default rep range, default rest seconds
GOAL_TYPES = [
    ("Hypertrophy", "Build muscle size and volume through moderate rep ranges and controlled tempo", "8-12", 90),
    ("Strength", "Maximize force output and 1RM through heavy loads and low reps", "3-6", 180),
    ("Endurance", "Improve muscular stamina through high reps and minimal rest", "15-20", 45),
    ("Power", "Develop explosive strength and speed through dynamic movements", "3-5", 150),
    ("Fat Loss", "Maximize caloric burn through higher volume and circuit-style training", "12-15", 30),
    ("General Fitness", "Balanced approach for overall health and functional fitness", "10-15", 60),
]

# name, category, muscle groups, equipment, difficulty
STARTER_EXERCISES = [
    ("Barbell Bench Press", "compound", ["chest", "triceps", "front_delts"], ["Barbells", "Flat Bench"], "intermediate"),
    ("Incline Dumbbell Press", "compound", ["upper_chest", "triceps", "front_delts"], ["Dumbbells", "Adjustable Bench"], "beginner"),
    ("Dumbbell Flyes", "isolation", ["chest"], ["Dumbbells", "Flat Bench"], "beginner"),
    ("Cable Crossover", "isolation", ["chest"], ["Cable Stack"], "intermediate"),
    ("Push-ups", "compound", ["chest", "triceps", "front_delts"], [], "beginner"),
    ("Barbell Row", "compound", ["lats", "rhomboids", "biceps", "lower_back"], ["Barbells"], "intermediate"),
    ("Pull-ups", "compound", ["lats", "biceps", "rear_delts"], ["Pull-up Bar"], "intermediate"),
    ("Lat Pulldown", "compound", ["lats", "biceps"], ["Lat Pulldown Machine"], "beginner"),
    ("Seated Cable Row", "compound", ["lats", "rhomboids", "biceps"], ["Cable Stack", "Seated Row Machine"], "beginner"),
    ("Face Pulls", "isolation", ["rear_delts", "rhomboids", "rotator_cuff"], ["Cable Stack"], "beginner"),
    ("Overhead Press", "compound", ["front_delts", "side_delts", "triceps"], ["Barbells"], "intermediate"),
    ("Lateral Raises", "isolation", ["side_delts"], ["Dumbbells"], "beginner"),
    ("Shrugs", "isolation", ["traps"], ["Dumbbells", "Barbells"], "beginner"),
    ("Barbell Curl", "isolation", ["biceps"], ["Barbells", "EZ Curl Bar"], "beginner"),
    ("Hammer Curl", "isolation", ["biceps", "brachialis", "forearms"], ["Dumbbells"], "beginner"),
    ("Tricep Pushdown", "isolation", ["triceps"], ["Cable Stack"], "beginner"),
    ("Skull Crushers", "isolation", ["triceps"], ["Barbells", "EZ Curl Bar", "Flat Bench"], "intermediate"),
    ("Barbell Squat", "compound", ["quads", "glutes", "hamstrings", "core"], ["Barbells", "Squat Rack / Power Cage"], "intermediate"),
    ("Leg Press", "compound", ["quads", "glutes", "hamstrings"], ["Leg Press"], "beginner"),
    ("Romanian Deadlift", "compound", ["hamstrings", "glutes", "lower_back"], ["Barbells", "Dumbbells"], "intermediate"),
    ("Walking Lunges", "compound", ["quads", "glutes", "hamstrings"], ["Dumbbells"], "beginner"),
    ("Leg Curl", "isolation", ["hamstrings"], ["Leg Curl Machine"], "beginner"),
    ("Hip Thrust", "compound", ["glutes", "hamstrings"], ["Barbells", "Flat Bench"], "intermediate"),
    ("Calf Raises (Standing)", "isolation", ["calves"], ["Calf Raise Machine", "Dumbbells"], "beginner"),
    ("Plank", "isolation", ["core", "abs"], [], "beginner"),
    ("Hanging Leg Raise", "isolation", ["abs", "hip_flexors"], ["Pull-up Bar"], "intermediate"),
    ("Kettlebell Swing", "compound", ["glutes", "hamstrings", "core", "shoulders"], ["Kettlebells"], "intermediate"),
    ("Burpees", "compound", ["full_body"], [], "intermediate"),
]


def run_migrations() -> None:
    cfg = Config("alembic.ini")
    command.upgrade(cfg, "head")


def seed_goal_types() -> int:
    with session_scope() as s:
        if s.execute(select(GoalType.id)).first():
            return 0
        s.add_all(
            GoalType(
                name=name,
                description=description,
                default_rep_range=rep_range,
                default_rest_seconds=rest,
                display_order=i,
            )
            for i, (name, description, rep_range, rest) in enumerate(GOAL_TYPES, start=1)
        )
        return len(GOAL_TYPES)


def seed_exercise_library() -> int:
    with session_scope() as s:
        if s.execute(select(LibraryExercise.id)).first():
            return 0
        s.add_all(
            LibraryExercise(
                name=name,
                category=category,
                muscle_groups=muscles,
                equipment_tags=equipment,
                difficulty_level=difficulty,
                is_system=True,
            )
            for name, category, muscles, equipment, difficulty in STARTER_EXERCISES
        )
        return len(STARTER_EXERCISES)


def main() -> None:
    setup_logging()
    run_migrations()
    goals = seed_goal_types()
    exercises = seed_exercise_library()
    logger.info("seed_completed", extra={"ctx_goal_types": goals, "ctx_exercises": exercises})


if __name__ == "__main__":
    main()
