import logging
import sys
from typing import NamedTuple, Optional

from db import (
    Database,
    ExerciseRepository,
    SettingsRepository,
    TemplateRepository,
    normalize_name,
)

LOGGER = logging.getLogger(__name__)

# bump when EXERCISE_LIBRARY or EXERCISE_GUIDES change
LIBRARY_VERSION = 5


class LibraryEntry(NamedTuple):
    name: str
    primary_muscle: str
    secondary_muscle: Optional[str]
    aliases: str
    equipment: str
    movement_pattern: str


EXERCISE_LIBRARY = [
    LibraryEntry("Barbell Back Squat", "quads", "glutes", "back squat|bb squat|low bar squat|high bar squat", "barbell", "squat"),
    LibraryEntry("Barbell Front Squat", "quads", "glutes", "front squat|clean grip squat", "barbell", "squat"),
    LibraryEntry("Safety Bar Squat", "quads", "glutes", "ssb squat|yoke bar squat", "specialty bar", "squat"),
    LibraryEntry("Hack Squat Machine", "quads", "glutes", "plate loaded hack|hack press", "machine", "squat"),
    LibraryEntry("Goblet Squat", "quads", "glutes", "kb goblet|db goblet", "dumbbell/kb", "squat"),
    LibraryEntry("Leg Press 45", "quads", "glutes", "45 leg press|angled press", "machine", "press"),
    LibraryEntry("Leg Extension", "quads", None, "knee extension", "machine", "isolation"),
    LibraryEntry("Romanian Deadlift", "hamstrings", "glutes", "rdl|romanian dl", "barbell", "hinge"),
    LibraryEntry("Conventional Deadlift", "hamstrings", "glutes", "deadlift|conv dl", "barbell", "hinge"),
    LibraryEntry("Sumo Deadlift", "hamstrings", "glutes", "sumo", "barbell", "hinge"),
    LibraryEntry("Trap Bar Deadlift", "hamstrings", "glutes", "hex bar dl", "trap bar", "hinge"),
    LibraryEntry("Lying Leg Curl", "hamstrings", None, "prone curl|hamstring curl", "machine", "isolation"),
    LibraryEntry("Seated Leg Curl", "hamstrings", None, "", "machine", "isolation"),
    LibraryEntry("Barbell Hip Thrust", "glutes", "hamstrings", "hip thrust|bb thrust", "barbell", "bridge"),
    LibraryEntry("Bulgarian Split Squat", "glutes", "quads", "bss|rear foot elevated split squat", "db/bb", "unilateral"),
    LibraryEntry("Walking Lunge", "glutes", "quads", "lunges|forward lunge|dumbbell lunge", "db/bb/bw", "unilateral"),
    LibraryEntry("Standing Calf Raise", "calves", None, "calf raise machine|calf raise", "machine", "isolation"),
    LibraryEntry("Seated Calf Raise", "calves", None, "", "machine", "isolation"),
    LibraryEntry("Barbell Bench Press", "chest", "triceps", "bench press|flat bench|bb bench", "barbell", "press"),
    LibraryEntry("Incline Barbell Bench", "chest", "triceps", "incline bench|incline press", "barbell", "press"),
    LibraryEntry("Dumbbell Bench Press", "chest", "triceps", "db bench|dumbbell benchpress", "dumbbell", "press"),
    LibraryEntry("Incline Dumbbell Press", "chest", "triceps", "incline db", "dumbbell", "press"),
    LibraryEntry("Pec Deck", "chest", None, "machine fly", "machine", "fly"),
    LibraryEntry("Cable Fly Mid", "chest", None, "cable crossover|mid fly|cable fly", "cable", "fly"),
    LibraryEntry("Dip", "chest", "triceps", "chest dip|parallel dip|dips", "bodyweight/machine", "press"),
    LibraryEntry("Pull Up", "lats", "biceps", "pullup|pronated pullup", "bodyweight", "pull"),
    LibraryEntry("Chin Up", "lats", "biceps", "chinup|supinated pullup", "bodyweight", "pull"),
    LibraryEntry("Lat Pulldown", "lats", "biceps", "wide pulldown|front pulldown", "machine/cable", "pull"),
    LibraryEntry("Seated Cable Row", "mid back", "biceps", "cable row|low row", "cable", "row"),
    LibraryEntry("Chest Supported Row", "mid back", "biceps", "incline row|seal row machine", "machine", "row"),
    LibraryEntry("Barbell Row", "mid back", "biceps", "bent over row|bb row", "barbell", "row"),
    LibraryEntry("One Arm Dumbbell Row", "mid back", "biceps", "db row|kroc row|dumbbell row", "dumbbell", "row"),
    LibraryEntry("Face Pull", "rear delt", "upper back", "rope face pull", "cable", "pull"),
    LibraryEntry("Back Extension", "lower back", "glutes", "hyperextension", "machine", "hinge"),
    LibraryEntry("Overhead Press", "shoulders front", "triceps", "ohp|military press|standing overhead press", "barbell", "press"),
    LibraryEntry("Dumbbell Shoulder Press", "shoulders front", "triceps", "db press|seated dumbbell press", "dumbbell", "press"),
    LibraryEntry("Dumbbell Lateral Raise", "shoulders side", None, "lat raise|side raise|lateral raise", "dumbbell", "isolation"),
    LibraryEntry("Cable Lateral Raise", "shoulders side", None, "", "cable", "isolation"),
    LibraryEntry("Rear Delt Fly", "shoulders rear", None, "reverse fly", "machine/db", "isolation"),
    LibraryEntry("Barbell Shrug", "traps", None, "", "barbell", "isolation"),
    LibraryEntry("Barbell Curl", "biceps", None, "bb curl|barbell strict curl", "barbell", "isolation"),
    LibraryEntry("Dumbbell Curl", "biceps", None, "alt curl", "dumbbell", "isolation"),
    LibraryEntry("Hammer Curl", "biceps", None, "neutral curl", "dumbbell", "isolation"),
    LibraryEntry("Skullcrusher", "triceps", None, "lying tricep extension|skull crusher", "ez/bb/db", "isolation"),
    LibraryEntry("Tricep Pushdown", "triceps", None, "pressdown|rope pushdown", "cable", "isolation"),
    LibraryEntry("Overhead Tricep Extension", "triceps", None, "french press", "cable/db", "isolation"),
    LibraryEntry("Cable Crunch", "core", None, "kneeling crunch", "cable", "flexion"),
    LibraryEntry("Hanging Leg Raise", "core", None, "hlr", "bodyweight", "flexion"),
    LibraryEntry("Plank", "core", None, "front plank", "bodyweight", "stability"),
    LibraryEntry("Farmer Carry", "conditioning", "full body", "farmers walk", "db/trap", "carry"),
]

# keyed by normalized exercise name: (video_url, instructions, tips)
EXERCISE_GUIDES = {
    "barbell back squat": (
        "https://www.muscleandstrength.com/exercises/squat.html",
        "1. Set the bar across your upper traps, unrack and step back with feet shoulder-width apart.\n"
        "2. Brace your core, push your hips back and bend your knees.\n"
        "3. Lower until your thighs are at least parallel to the floor.\n"
        "4. Drive through your whole foot to stand back up.",
        "Keep your chest up and eyes forward.\n"
        "Push your knees out over your toes.\n"
        "Inhale and brace before descending.",
    ),
    "conventional deadlift": (
        "https://www.muscleandstrength.com/exercises/deadlifts.html",
        "1. Stand with feet hip-width, bar over mid-foot.\n"
        "2. Bend down and grip the bar just outside your legs.\n"
        "3. Brace, chest up, pull the slack out of the bar.\n"
        "4. Drive through your feet, locking out hips and knees together.",
        "The bar travels in a straight vertical line.\n"
        "Keep your lower back neutral.\n"
        "Push the floor away rather than pulling the bar up.",
    ),
    "barbell bench press": (
        "https://www.muscleandstrength.com/exercises/barbell-bench-press.html",
        "1. Lie on the bench with eyes under the bar, feet flat on the floor.\n"
        "2. Grip slightly wider than shoulder-width and unrack.\n"
        "3. Lower the bar to your mid-chest with elbows at about 45 degrees.\n"
        "4. Press up and slightly back to lockout.",
        "Retract and depress your shoulder blades.\n"
        "Keep a slight arch in your lower back.\n"
        "Drive your feet into the floor.",
    ),
    "barbell row": (
        "https://www.muscleandstrength.com/exercises/bent-over-barbell-row.html",
        "1. Hinge forward about 45 degrees with the bar hanging at arm's length.\n"
        "2. Grip slightly wider than shoulder-width.\n"
        "3. Row the bar to your lower chest.\n"
        "4. Lower under control to full extension.",
        "Keep your back flat.\n"
        "Squeeze your shoulder blades together at the top.",
    ),
    "overhead press": (
        "https://www.muscleandstrength.com/exercises/military-press.html",
        "1. Unrack the barbell at collarbone height.\n"
        "2. Brace your core and press the bar straight overhead.\n"
        "3. Lock out with the bar over the back of your head.\n"
        "4. Lower back to collarbone height under control.",
        "Move your head back as the bar passes your face.\n"
        "Squeeze your glutes to avoid arching.",
    ),
}


class SlotSpec(NamedTuple):
    name: str
    exercises: list
    sets: int
    reps_low: int
    reps_high: int
    rest: int = 90


DEMO_TEMPLATES = {
    "Full Body A": [
        SlotSpec("Squat", ["Barbell Back Squat", "Safety Bar Squat", "Hack Squat Machine"], 3, 5, 8, 180),
        SlotSpec("Horizontal Press", ["Barbell Bench Press", "Dumbbell Bench Press"], 3, 6, 10, 150),
        SlotSpec("Row", ["Barbell Row", "Seated Cable Row", "Chest Supported Row"], 3, 8, 12),
        SlotSpec("Arms", ["Barbell Curl", "Hammer Curl"], 2, 10, 15, 60),
    ],
    "Full Body B": [
        SlotSpec("Hinge", ["Conventional Deadlift", "Romanian Deadlift", "Trap Bar Deadlift"], 3, 4, 6, 180),
        SlotSpec("Vertical Press", ["Overhead Press", "Dumbbell Shoulder Press"], 3, 6, 10, 120),
        SlotSpec("Vertical Pull", ["Pull Up", "Lat Pulldown"], 3, 6, 12),
        SlotSpec("Core", ["Hanging Leg Raise", "Cable Crunch"], 2, 10, 15, 60),
    ],
}


def ensure_exercise_library(db: Database, settings: SettingsRepository) -> int:
    """Install or refresh the built-in exercise library.

    The first run inserts every exercise. Later versions only fill in
    missing metadata and guides, so exercises the user deleted are never
    brought back. Returns the number of exercises inserted.
    """
    current = settings.get_int("exercise_library_version", 0)
    if current >= LIBRARY_VERSION:
        return 0
    exercises = ExerciseRepository(db)
    inserted = 0
    with db.transaction():
        for entry in EXERCISE_LIBRARY:
            norm = normalize_name(entry.name)
            if current == 0 and exercises.find_by_name(entry.name) is None:
                exercises.create(*entry)
                inserted += 1
            exercises.execute(
                "UPDATE exercises SET primary_muscle = ?, secondary_muscle = ?, aliases = ?, "
                "equipment = ?, movement_pattern = ? WHERE name_norm = ? AND primary_muscle IS NULL;",
                (
                    entry.primary_muscle,
                    entry.secondary_muscle,
                    entry.aliases,
                    entry.equipment,
                    entry.movement_pattern,
                    norm,
                ),
            )
            guide = EXERCISE_GUIDES.get(norm)
            if guide:
                exercises.execute(
                    "UPDATE exercises SET video_url = ?, instructions = ?, tips = ? "
                    "WHERE name_norm = ? AND video_url IS NULL;",
                    guide + (norm,),
                )
        settings.set_int("exercise_library_version", LIBRARY_VERSION)
    LOGGER.info(
        "exercise library upgraded from v%s to v%s (%s inserted)",
        current,
        LIBRARY_VERSION,
        inserted,
    )
    return inserted


def create_program_template(db: Database, name: str, slots: list[SlotSpec]) -> int:
    """Build a template from slot specs; prescribed reps sit mid-range."""
    templates = TemplateRepository(db)
    exercises = ExerciseRepository(db)
    with db.transaction():
        template_id = templates.create(name)
        for index, spec in enumerate(slots, start=1):
            slot_id = templates.slots.add(template_id, index, spec.name)
            for order, ex_name in enumerate(spec.exercises):
                exercise = exercises.find_by_name(ex_name)
                if exercise is None:
                    raise ValueError(f"exercise not found: {ex_name}")
                templates.options.add(slot_id, exercise.id, None, order)
            mid_reps = round((spec.reps_low + spec.reps_high) / 2)
            for set_index in range(1, spec.sets + 1):
                templates.prescribed.upsert(
                    slot_id, set_index, None, mid_reps, None, None, spec.rest
                )
    return template_id


def seed(db_path: str = "workout.db", yaml_path: str = "settings.yaml") -> None:
    db = Database(db_path)
    try:
        settings = SettingsRepository(db, yaml_path)
        ensure_exercise_library(db, settings)
        templates = TemplateRepository(db)
        if templates.fetch_all():
            print("Database already contains templates")
            return
        for name, slots in DEMO_TEMPLATES.items():
            create_program_template(db, name, slots)
        print("Seed data inserted")
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    seed(*sys.argv[1:3])
