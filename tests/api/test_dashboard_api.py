from datetime import datetime, timedelta, timezone

import pytest


def _at(days_ago: float) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days_ago)).isoformat()


def test_empty_dashboard(client, auth_headers) -> None:
    response = client.get("/api/dashboard", headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["window_days"] == 30
    assert body["latest_weight"] is None
    assert body["weight_change"] is None
    assert body["avg_daily_calories"] is None
    assert body["workouts_per_week"] is None
    assert body["weight_series"] == []
    assert body["latest_plan"] is None


def test_dashboard_aggregates(client, auth_headers) -> None:
    client.post("/api/weights", headers=auth_headers, json={"weight": 180, "recorded_at": _at(20)})
    client.post("/api/weights", headers=auth_headers, json={"weight": 175, "recorded_at": _at(1)})
    client.post("/api/weights", headers=auth_headers, json={"weight": 190, "recorded_at": _at(60)})
    client.post(
        "/api/workouts",
        headers=auth_headers,
        json={"activity": "Squat", "sets": 3, "reps": 10, "load": 25, "performed_at": _at(2)},
    )

    body = client.get("/api/dashboard", headers=auth_headers, params={"days": 30}).json()
    assert body["weight_change"] == {"delta": -5.0, "percent": -2.78, "unit": "lbs"}
    assert body["latest_weight"]["weight"] == 175
    assert [point["weight"] for point in body["weight_series"]] == [180, 175]
    assert [point["volume"] for point in body["workout_volume"]] == [750]
    assert body["workouts_per_week"] == pytest.approx(7 / 30)
    assert body["counts"]["weights"] == 2

    wider = client.get("/api/dashboard", headers=auth_headers, params={"days": 90}).json()
    assert wider["counts"]["weights"] == 3


def test_dashboard_average_calories(client, auth_headers) -> None:
    day_one = datetime.now(timezone.utc).replace(hour=12, minute=0, second=0, microsecond=0) - timedelta(days=3)
    day_two = day_one + timedelta(days=1)
    for eaten_at, calories in [(day_one, 500), (day_one + timedelta(hours=5), 700), (day_two, 800)]:
        client.post(
            "/api/meals",
            headers=auth_headers,
            json={"description": "Meal", "calories": calories, "eaten_at": eaten_at.isoformat()},
        )

    body = client.get("/api/dashboard", headers=auth_headers, params={"days": 7}).json()
    assert body["avg_daily_calories"] == 1000


def test_dashboard_shows_latest_plan(client, auth_headers) -> None:
    plan = {
        "plan_type": "diet",
        "title": "Lean Week",
        "focus": "protein",
        "summary": "Simple meals.",
        "schedule": [{"day": d, "headline": "Meals", "details": "Protein first."} for d in ("Mon", "Tue", "Wed")],
        "key_points": ["Hit 150 g protein."],
        "tips": ["Prep on Sunday."],
    }
    client.post("/api/plans", headers=auth_headers, json=plan)
    body = client.get("/api/dashboard", headers=auth_headers).json()
    assert body["latest_plan"]["title"] == "Lean Week"


def test_dashboard_rejects_unknown_window(client, auth_headers) -> None:
    assert client.get("/api/dashboard", headers=auth_headers, params={"days": 14}).status_code == 422
