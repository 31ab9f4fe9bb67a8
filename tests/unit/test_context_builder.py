from datetime import datetime, timezone

from fitlog.core.context_builder import RECENT_LIMITS, build_plan_context
from fitlog.core.extraction import parse_extraction
from fitlog.services.store import RecordStore

NOW = datetime(2026, 6, 1, 8, 0, tzinfo=timezone.utc)


def test_context_for_new_user_lists_missing_data(db_session, create_user) -> None:
    user = create_user()
    context = build_plan_context(RecordStore(db_session), user.id)

    assert context["current_stats"]["weight"] is None
    assert context["current_stats"]["weight_unit"] == "lbs"
    assert context["missing_data"] == ["weights", "body_fat", "workouts", "meals"]


def test_context_uses_latest_values_and_caps_recent_lists(db_session, create_user) -> None:
    user = create_user()
    store = RecordStore(db_session)
    raw = [
        {"type": "weight", "weight": 190 - i, "unit": "kg", "recorded_at": f"2026-05-{10 + i:02d}T07:00:00Z"}
        for i in range(RECENT_LIMITS["weights"] + 2)
    ]
    raw.append({"type": "body_fat", "percentage": 21.5})
    store.add_entries(user.id, parse_extraction({"entries": raw}, NOW).entries)

    context = build_plan_context(store, user.id)
    assert context["current_stats"]["weight"] == 190 - (RECENT_LIMITS["weights"] + 1)
    assert context["current_stats"]["weight_unit"] == "kg"
    assert context["current_stats"]["body_fat_percentage"] == 21.5
    assert len(context["recent_weights"]) == RECENT_LIMITS["weights"]
    assert context["missing_data"] == ["workouts", "meals"]


def test_pending_entries_are_merged_newest_first(db_session, create_user) -> None:
    user = create_user()
    store = RecordStore(db_session)
    store.add_entries(
        user.id,
        parse_extraction({"entries": [{"type": "weight", "weight": 182, "recorded_at": "2026-05-20T07:00:00Z"}]}, NOW).entries,
    )
    pending = parse_extraction(
        {"entries": [{"type": "weight", "weight": 180}, {"type": "meal", "description": "Rice bowl", "calories": 640}]},
        NOW,
    ).entries

    context = build_plan_context(store, user.id, pending=pending)
    assert [item["weight"] for item in context["recent_weights"]] == [180, 182]
    assert context["current_stats"]["weight"] == 180
    assert context["recent_meals"][0]["description"] == "Rice bowl"
    assert context["missing_data"] == ["body_fat", "workouts"]
    assert len(store.list_entries(user.id, "weights")) == 1
