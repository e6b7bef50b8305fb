"""Starter exercise lists seeded when a user picks the "template" setup option."""

DEFAULT_EXERCISES = {
    "Monday": ["Chest Press", "Incline Dumbbell Press", "Lateral Raises", "Bicep Curls"],
    "Wednesday": [
        "Hip Adductor Curls",
        "Hip Inductor Curls",
        "Seated Hamstring Curls",
        "RDLs (Romanian Deadlifts)",
        "Leg Extensions",
        "Squats",
    ],
    "Thursday": [
        "Lat Pullovers",
        "Lat Pulldowns",
        "Rows",
        "Tricep Pushdowns",
        "Dips",
        "Rear Delt Flies",
    ],
    "Saturday": ["Glute Extensions", "Hip Thrusts", "Calf Raises"],
}

# Days pre-selected in the setup flow's day picker.
DEFAULT_SELECTED_DAYS = ["Monday", "Wednesday", "Thursday"]


def exercises_for(day: str) -> list[str]:
    return list(DEFAULT_EXERCISES.get(day, []))
