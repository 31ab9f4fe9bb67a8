from typing import Any, Optional, Sequence

from fitlog.core.extraction import ExtractedEntry, to_utc
from fitlog.db.models import Profile
from fitlog.services.store import COLLECTIONS, RecordStore

RECENT_LIMITS = {
    "weights": 5,
    "body_fat": 5,
    "workouts": 10,
    "meals": 10,
}

# Entry type of each collection, for merging entries not yet written.
COLLECTION_ENTRY_TYPES = {
    "weights": "weight",
    "body_fat": "body_fat",
    "workouts": "workout",
    "meals": "meal",
}


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


# Item builders accept stored rows and extracted entries alike; both expose the same attribute names.
def _weight_item(row) -> dict[str, Any]:
    return {"weight": row.weight, "unit": row.unit, "recorded_at": _iso(row.recorded_at)}


def _body_fat_item(row) -> dict[str, Any]:
    return {"percentage": row.percentage, "recorded_at": _iso(row.recorded_at)}


def _workout_item(row) -> dict[str, Any]:
    item = {
        "activity": row.activity,
        "sets": row.sets,
        "reps": row.reps,
        "load": row.load,
        "distance": row.distance,
        "duration_minutes": row.duration_minutes,
        "intensity": row.intensity,
        "performed_at": _iso(row.performed_at),
    }
    return {k: v for k, v in item.items() if v is not None}


def _meal_item(row) -> dict[str, Any]:
    item = {
        "description": row.description,
        "calories": row.calories,
        "protein_g": row.protein_g,
        "carbs_g": row.carbs_g,
        "fats_g": row.fats_g,
        "eaten_at": _iso(row.eaten_at),
    }
    return {k: v for k, v in item.items() if v is not None}


def _profile_summary(profile: Profile) -> dict[str, Any]:
    return {
        "target_weight": profile.target_weight,
        "weight_unit": profile.weight_unit,
        "dietary_preference": profile.dietary_preference,
    }


def _recent(store: RecordStore, user_id: int, collection: str, pending: Sequence[ExtractedEntry]) -> list:
    limit = RECENT_LIMITS[collection]
    ts_name = COLLECTIONS[collection][1]
    staged = [entry for entry in pending if entry.type == COLLECTION_ENTRY_TYPES[collection]]
    merged = staged + store.list_entries(user_id, collection, limit=limit)
    merged.sort(key=lambda item: to_utc(getattr(item, ts_name)), reverse=True)
    return merged[:limit]


def build_plan_context(
    store: RecordStore, user_id: int, pending: Sequence[ExtractedEntry] = ()
) -> dict[str, Any]:
    """Recent history and profile for plan generation.

    ``pending`` holds entries from the current message that are not written
    yet; they are merged in as if they were already stored.
    """
    weights = _recent(store, user_id, "weights", pending)
    body_fat = _recent(store, user_id, "body_fat", pending)
    workouts = _recent(store, user_id, "workouts", pending)
    meals = _recent(store, user_id, "meals", pending)
    profile = store.get_or_create_profile(user_id)

    latest_weight = weights[0] if weights else None
    latest_body_fat = body_fat[0] if body_fat else None
    missing_data = [
        name
        for name, rows in (("weights", weights), ("body_fat", body_fat), ("workouts", workouts), ("meals", meals))
        if not rows
    ]

    return {
        "current_stats": {
            "weight": latest_weight.weight if latest_weight else None,
            "weight_unit": latest_weight.unit if latest_weight else profile.weight_unit,
            "body_fat_percentage": latest_body_fat.percentage if latest_body_fat else None,
        },
        "profile": _profile_summary(profile),
        "recent_weights": [_weight_item(row) for row in weights],
        "recent_body_fat": [_body_fat_item(row) for row in body_fat],
        "recent_workouts": [_workout_item(row) for row in workouts],
        "recent_meals": [_meal_item(row) for row in meals],
        "missing_data": missing_data,
    }
