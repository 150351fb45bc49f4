"""
PUSHIN - Workout Reward Calculator
Converts reps into earned screen time, and desired screen time into reps.

Stateless: pure calculations, no side effects.
"""

from enum import Enum
from typing import Dict


class WorkoutMode(Enum):
    """Difficulty mode chosen by the user."""
    COZY = "cozy"
    NORMAL = "normal"
    TUFF = "tuff"


# 30 seconds per rep (20 reps = 10 minutes)
BASE_SECONDS_PER_REP = 30

# Reps (or seconds held, for plank) per minute of desired screen time
BASE_RATES_PER_MINUTE: Dict[str, float] = {
    "push-ups": 1.0,
    "squats": 1.2,
    "plank": 3.0,
    "jumping-jacks": 2.5,
    "burpees": 0.6,
}

# Per-mode scaling. Rep-based workouts cap at minutes * max_factor,
# plank (time-based) has a fixed max in seconds.
WORKOUT_MODE_PROFILES: Dict[str, Dict[str, Dict[str, float]]] = {
    "push-ups": {
        "cozy": {"multiplier": 0.7, "min": 3, "max_factor": 2.5},
        "normal": {"multiplier": 1.0, "min": 5, "max_factor": 3.5},
        "tuff": {"multiplier": 1.4, "min": 8, "max_factor": 4.0},
    },
    "squats": {
        "cozy": {"multiplier": 0.75, "min": 4, "max_factor": 2.5},
        "normal": {"multiplier": 1.0, "min": 6, "max_factor": 3.5},
        "tuff": {"multiplier": 1.3, "min": 10, "max_factor": 4.0},
    },
    "plank": {
        "cozy": {"multiplier": 0.7, "min": 20, "max": 60},
        "normal": {"multiplier": 1.0, "min": 30, "max": 120},
        "tuff": {"multiplier": 1.5, "min": 45, "max": 180},
    },
    "jumping-jacks": {
        "cozy": {"multiplier": 0.8, "min": 10, "max_factor": 3.0},
        "normal": {"multiplier": 1.0, "min": 15, "max_factor": 4.0},
        "tuff": {"multiplier": 1.2, "min": 25, "max_factor": 4.5},
    },
    "burpees": {
        "cozy": {"multiplier": 0.6, "min": 2, "max_factor": 2.0},
        "normal": {"multiplier": 1.0, "min": 3, "max_factor": 3.0},
        "tuff": {"multiplier": 1.5, "min": 5, "max_factor": 3.5},
    },
}

# Reward multipliers: harder movements earn more per rep
DIFFICULTY_MULTIPLIERS: Dict[str, float] = {
    "push-ups": 1.0,
    "squats": 1.0,
    "sit-ups": 1.0,
    "plank": 1.5,
    "jumping-jacks": 0.8,
    "burpees": 1.5,
}

# Common spellings users type on the command line
_ALIASES = {
    "pushups": "push-ups",
    "pushup": "push-ups",
    "push-up": "push-ups",
    "squat": "squats",
    "situps": "sit-ups",
    "jumpingjacks": "jumping-jacks",
    "jumping_jacks": "jumping-jacks",
    "burpee": "burpees",
}


def normalize_workout_type(workout_type: str) -> str:
    key = workout_type.strip().lower()
    return _ALIASES.get(key, key)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


class WorkoutRewardCalculator:
    """Reward and target calculations for every supported workout."""

    def calculate_earned_time(self, workout_type: str, reps_completed: int) -> int:
        """
        Earned unlock time in seconds: reps x 30s x difficulty multiplier.

        calculate_earned_time('push-ups', 20) -> 600
        """
        if reps_completed <= 0:
            return 0
        multiplier = DIFFICULTY_MULTIPLIERS.get(normalize_workout_type(workout_type), 1.0)
        return round(reps_completed * BASE_SECONDS_PER_REP * multiplier)

    def calculate_workout_target(
        self,
        workout_type: str,
        mode: WorkoutMode,
        desired_minutes: int,
    ) -> int:
        """
        Work needed to earn `desired_minutes` of screen time in a mode.

        Returns reps for rep-based workouts and seconds for plank.
        """
        if desired_minutes <= 0:
            return 0

        workout = normalize_workout_type(workout_type)
        base_rate = BASE_RATES_PER_MINUTE.get(workout, 1.0)
        profile = WORKOUT_MODE_PROFILES.get(workout)
        if profile is None:
            return round(desired_minutes * base_rate)

        settings = profile.get(WorkoutMode(mode).value, profile["normal"])
        target = round(base_rate * desired_minutes * settings["multiplier"])

        if "max" in settings:
            return _clamp(target, int(settings["min"]), int(settings["max"]))
        max_value = round(desired_minutes * settings["max_factor"])
        return _clamp(target, int(settings["min"]), max_value)

    def calculate_required_reps(
        self,
        workout_type: str,
        target_seconds: int,
        mode: WorkoutMode = WorkoutMode.NORMAL,
    ) -> int:
        """Inverse hint for the UI: "do N reps to unlock X minutes"."""
        if target_seconds <= 0:
            return 0
        return self.calculate_workout_target(workout_type, mode, round(target_seconds / 60))

    def get_reward_description(self, workout_type: str, reps: int) -> str:
        seconds = self.calculate_earned_time(workout_type, reps)
        return f"{reps} reps = {round(seconds / 60)} min unlock"

    def get_workout_multipliers(self) -> Dict[str, float]:
        return dict(DIFFICULTY_MULTIPLIERS)
