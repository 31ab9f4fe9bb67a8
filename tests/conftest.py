import json
import os
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any, Callable
from uuid import uuid4

# Keep the import-time engine away from /var/data; fixtures rebind it per session.
os.environ.setdefault("DB_PATH", str(Path(tempfile.gettempdir()) / "fitlog_import.db"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from fitlog.core.errors import LLMRequestError  # noqa: E402
from fitlog.core.security import get_password_hash  # noqa: E402
from fitlog.db.models import User  # noqa: E402
from fitlog.db.session import SessionLocal, configure_database, create_tables  # noqa: E402
from fitlog.services.llm import get_llm_client  # noqa: E402


class FakeScenario(str, Enum):
    TWO_WEIGHTS_ONE_MEAL = "TWO_WEIGHTS_ONE_MEAL"
    CLARIFICATION = "CLARIFICATION"
    CLARIFICATION_NO_MESSAGE = "CLARIFICATION_NO_MESSAGE"
    NOTHING_FOUND = "NOTHING_FOUND"
    INVALID_BODY_FAT = "INVALID_BODY_FAT"
    EXTRACTION_TIMEOUT = "EXTRACTION_TIMEOUT"
    PLAN_REQUEST = "PLAN_REQUEST"
    PLAN_RENDER_FAILS = "PLAN_RENDER_FAILS"
    PLAN_TOO_SHORT = "PLAN_TOO_SHORT"
    PLAN_TIMEOUT = "PLAN_TIMEOUT"


EXTRACTION_FIXTURES = {
    FakeScenario.TWO_WEIGHTS_ONE_MEAL: "extraction_two_weights_one_meal",
    FakeScenario.CLARIFICATION: "extraction_clarification",
    FakeScenario.INVALID_BODY_FAT: "extraction_invalid_body_fat",
    FakeScenario.PLAN_REQUEST: "extraction_plan_request",
    FakeScenario.PLAN_RENDER_FAILS: "extraction_plan_request",
    FakeScenario.PLAN_TOO_SHORT: "extraction_plan_request",
    FakeScenario.PLAN_TIMEOUT: "extraction_plan_request",
}

RENDERED_PLAN_TEXT = "Strength Base Builder: three focused sessions this week. Want to keep it or tweak anything?"


class FakeLLMClient:
    def __init__(self, scenario: FakeScenario, fixture_dir: Path) -> None:
        self.scenario = scenario
        self.fixture_dir = fixture_dir
        self.calls: list[dict[str, Any]] = []

    def _load_json(self, name: str) -> dict:
        raw = (self.fixture_dir / f"{name}.json").read_text(encoding="utf-8")
        return json.loads(raw)

    def _timeout(self, model: str) -> LLMRequestError:
        return LLMRequestError(provider="fake", model=model, message="Fake request timed out while waiting for response.")

    def generate_json(self, messages: list[dict[str, str]], task_type: str = "reasoning", system_instruction: str = "") -> dict:
        self.calls.append({"kind": "json", "task_type": task_type, "messages": messages})
        if task_type == "extraction":
            if self.scenario == FakeScenario.EXTRACTION_TIMEOUT:
                raise self._timeout("fake-utility")
            if self.scenario == FakeScenario.CLARIFICATION_NO_MESSAGE:
                return {"entries": [], "clarification_needed": True, "clarification_message": None}
            if self.scenario == FakeScenario.NOTHING_FOUND:
                return {"entries": [], "plan_request": None, "clarification_needed": False, "acknowledgements": []}
            return self._load_json(EXTRACTION_FIXTURES[self.scenario])

        if self.scenario == FakeScenario.PLAN_TIMEOUT:
            raise self._timeout("fake-reasoning")
        if self.scenario == FakeScenario.PLAN_TOO_SHORT:
            return self._load_json("plan_too_short")
        return self._load_json("plan_workout")

    def generate_text(self, messages: list[dict[str, str]], task_type: str = "summarization", system_instruction: str = "") -> str:
        self.calls.append({"kind": "text", "task_type": task_type, "messages": messages})
        if self.scenario == FakeScenario.PLAN_RENDER_FAILS:
            raise self._timeout("fake-utility")
        return RENDERED_PLAN_TEXT


@pytest.fixture(scope="session")
def fixture_dir() -> Path:
    return Path(__file__).resolve().parent / "fixtures" / "llm"


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    db_path = tmp_path_factory.mktemp("db") / "fitlog_test.db"
    configure_database(str(db_path))
    create_tables()
    return db_path


@pytest.fixture(scope="session")
def app(test_db_path: Path):
    from fitlog.main import app as fastapi_app

    return fastapi_app


@pytest.fixture
def client(app):
    app.dependency_overrides = {}
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides = {}


@pytest.fixture
def db_session(test_db_path: Path):
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def create_user(db_session: Session) -> Callable[..., User]:
    def _create_user(display_name: str = "Sam") -> User:
        user = User(
            email=f"user_{uuid4().hex[:10]}@test.com",
            password_hash=get_password_hash("StrongPass123"),
            display_name=display_name,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture
def signup_and_login(client: TestClient) -> Callable[[], str]:
    def _signup_and_login() -> str:
        email = f"auth_{uuid4().hex[:10]}@test.com"
        password = "StrongPass123"
        signup = client.post("/auth/signup", json={"email": email, "password": password, "display_name": "Sam"})
        assert signup.status_code == 201
        login = client.post("/auth/login", data={"username": email, "password": password})
        assert login.status_code == 200
        return login.json()["access_token"]

    return _signup_and_login


@pytest.fixture
def auth_token(signup_and_login) -> str:
    return signup_and_login()


@pytest.fixture
def auth_headers(auth_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def fake_llm_factory(fixture_dir: Path) -> Callable[[FakeScenario], FakeLLMClient]:
    def _factory(scenario: FakeScenario) -> FakeLLMClient:
        return FakeLLMClient(scenario=scenario, fixture_dir=fixture_dir)

    return _factory


@pytest.fixture
def override_llm(app, fake_llm_factory):
    def _override(scenario: FakeScenario) -> FakeLLMClient:
        fake = fake_llm_factory(scenario)
        app.dependency_overrides[get_llm_client] = lambda: fake
        return fake

    return _override
