import math
import os
from datetime import datetime
from typing import Any, Optional, Sequence, TypeVar

from fitlog.db.models import MealEntry, WeightReading, WorkoutEntry

DASHBOARD_MAX_POINTS = int(os.getenv("DASHBOARD_MAX_POINTS", "80"))
RANGE_OPTIONS_DAYS = (7, 30, 90, 365)
DEFAULT_RANGE_DAYS = 30
FLAT_WORKOUT_VOLUME = 100.0

T = TypeVar("T")


def downsample(entries: Sequence[T], max_points: int = DASHBOARD_MAX_POINTS) -> list[T]:
    if max_points <= 0 or len(entries) <= max_points:
        return list(entries)
    stride = math.ceil(len(entries) / max_points)
    return [entry for index, entry in enumerate(entries) if index % stride == 0]


def weight_change(weights: Sequence[WeightReading]) -> Optional[dict[str, Any]]:
    if len(weights) < 2:
        return None
    ordered = sorted(weights, key=lambda row: row.recorded_at)
    first = ordered[0]
    last = ordered[-1]
    delta = last.weight - first.weight
    return {
        "delta": round(delta, 2),
        "percent": round((delta / first.weight) * 100, 2),
        "unit": last.unit,
    }


def _day_key(value: datetime) -> str:
    return value.date().isoformat()


def average_daily_calories(meals: Sequence[MealEntry]) -> Optional[float]:
    # Days whose meals carry no calorie figure do not count toward the average.
    totals: dict[str, float] = {}
    for meal in meals:
        if meal.calories is None:
            continue
        key = _day_key(meal.eaten_at)
        totals[key] = totals.get(key, 0.0) + meal.calories
    if not totals:
        return None
    return sum(totals.values()) / len(totals)


def workouts_per_week(workout_count: int, window_days: int) -> Optional[float]:
    if not workout_count or window_days <= 0:
        return None
    return workout_count / (window_days / 7)


def workout_volume(workout: WorkoutEntry) -> float:
    if workout.sets and workout.reps and workout.load:
        return workout.sets * workout.reps * workout.load
    if workout.duration_minutes:
        return workout.duration_minutes * 10
    if workout.distance:
        return workout.distance * 100
    return FLAT_WORKOUT_VOLUME


def daily_workout_volume(workouts: Sequence[WorkoutEntry]) -> list[dict[str, Any]]:
    by_date: dict[str, float] = {}
    for workout in workouts:
        key = _day_key(workout.performed_at)
        by_date[key] = by_date.get(key, 0.0) + workout_volume(workout)
    return [{"date": day, "volume": volume} for day, volume in sorted(by_date.items())]
