import json
from pathlib import Path

from conftest import RENDERED_PLAN_TEXT, FakeScenario

PLAN_FIXTURE = Path(__file__).resolve().parents[1] / "fixtures" / "llm" / "plan_workout.json"


def _plan_body() -> dict:
    return json.loads(PLAN_FIXTURE.read_text(encoding="utf-8"))


def test_save_and_fetch_plan(client, auth_headers) -> None:
    created = client.post("/api/plans", headers=auth_headers, json=_plan_body())
    assert created.status_code == 201
    plan = created.json()["data"]
    assert plan["content"]["schedule"][0]["day"] == "Monday"

    single = client.get("/api/plans", headers=auth_headers, params={"id": plan["id"]})
    assert single.status_code == 200
    assert single.json()["data"]["title"] == "Strength Base Builder"

    listed = client.get("/api/plans", headers=auth_headers).json()["data"]
    assert [row["id"] for row in listed] == [plan["id"]]


def test_plan_with_short_schedule_is_rejected(client, auth_headers) -> None:
    body = _plan_body()
    body["schedule"] = body["schedule"][:2]
    assert client.post("/api/plans", headers=auth_headers, json=body).status_code == 422


def test_other_users_plan_is_not_found(client, auth_headers, signup_and_login) -> None:
    plan_id = client.post("/api/plans", headers=auth_headers, json=_plan_body()).json()["data"]["id"]
    other_headers = {"Authorization": f"Bearer {signup_and_login()}"}
    response = client.get("/api/plans", headers=other_headers, params={"id": plan_id})
    assert response.status_code == 404
    assert response.json()["detail"] == "Plan not found"


def test_generate_plan_endpoint(client, auth_headers, override_llm) -> None:
    fake = override_llm(FakeScenario.PLAN_REQUEST)
    client.post("/api/weights", headers=auth_headers, json={"weight": 180})
    response = client.post(
        "/api/plans/generate",
        headers=auth_headers,
        json={"planType": "workout", "focus": "strength", "durationWeeks": 4},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == RENDERED_PLAN_TEXT
    assert body["degraded"] is False
    assert body["plan"]["focus"] == "strength"
    assert [call["task_type"] for call in fake.calls] == ["reasoning", "summarization"]
    assert '"weight":180' in fake.calls[0]["messages"][1]["content"]


def test_generate_plan_upstream_failure(client, auth_headers, override_llm) -> None:
    override_llm(FakeScenario.PLAN_TIMEOUT)
    response = client.post("/api/plans/generate", headers=auth_headers, json={"planType": "workout"})
    assert response.status_code == 502
    assert client.get("/api/plans", headers=auth_headers).json()["data"] == []
