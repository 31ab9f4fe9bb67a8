"""Free-text to structured fitness entries.

The extraction step asks the LLM for a JSON document describing every weight,
body-fat, workout and meal entry mentioned in the user's message, plus an
optional plan request. The document is validated against strict pydantic models;
anything that does not validate is an ``ExtractionError``.

Timestamps the model leaves out are filled with the single ``now`` instant the
caller computed for the request, so every entry from one message agrees on it.
"""

import json
import os
from datetime import datetime, timezone
from typing import Annotated, Any, ClassVar, Literal, Optional, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    Field,
    StringConstraints,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from fitlog.core.errors import ExtractionError
from fitlog.services.llm import LLMClient, Message

DEFAULT_EXTRACTION_SYSTEM_PROMPT = (
    "You are an elite fitness tracking assistant. Today's date is {today} and the current time is {now}. "
    "Extract structured metrics from a user's message. Use ISO 8601 timestamps. "
    "Assume missing timestamps mean 'now'. Do not invent impossible values. "
    "Recognize requests for workout or diet plans. "
    "If you cannot find concrete numbers, set clarification_needed true and explain why."
)
EXTRACTION_SYSTEM_PROMPT = os.getenv("EXTRACTION_SYSTEM_PROMPT", DEFAULT_EXTRACTION_SYSTEM_PROMPT)
CHAT_HISTORY_LIMIT = int(os.getenv("CHAT_HISTORY_LIMIT", "10"))

UNIT_ALIASES = {
    "lb": "lbs",
    "lbs": "lbs",
    "pound": "lbs",
    "pounds": "lbs",
    "kg": "kg",
    "kgs": "kg",
    "kilo": "kg",
    "kilos": "kg",
    "kilogram": "kg",
    "kilograms": "kg",
}


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDateTime = Annotated[datetime, AfterValidator(to_utc)]
NonEmptyText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
PositiveFloat = Annotated[float, Field(gt=0, allow_inf_nan=False)]
PositiveInt = Annotated[int, Field(gt=0)]
WeightUnit = Literal["lbs", "kg"]
PlanType = Literal["workout", "diet"]


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: NonEmptyText


class _TimestampedEntry(BaseModel):
    timestamp_field: ClassVar[str] = "recorded_at"

    @model_validator(mode="before")
    @classmethod
    def _default_timestamp(cls, data: Any, info: ValidationInfo) -> Any:
        if not isinstance(data, dict):
            return data
        now = (info.context or {}).get("now")
        if now is not None and data.get(cls.timestamp_field) in (None, ""):
            return {**data, cls.timestamp_field: now}
        return data

    @property
    def occurred_at(self) -> datetime:
        return getattr(self, self.timestamp_field)


class WeightExtract(_TimestampedEntry):
    type: Literal["weight"]
    weight: PositiveFloat
    unit: WeightUnit = "lbs"
    recorded_at: UtcDateTime

    @field_validator("unit", mode="before")
    @classmethod
    def _normalize_unit(cls, value: Any) -> Any:
        if value is None:
            return "lbs"
        if isinstance(value, str):
            return UNIT_ALIASES.get(value.strip().lower(), value)
        return value


class BodyFatExtract(_TimestampedEntry):
    type: Literal["body_fat"]
    percentage: Annotated[float, Field(gt=0, le=100, allow_inf_nan=False)]
    recorded_at: UtcDateTime


class WorkoutExtract(_TimestampedEntry):
    timestamp_field: ClassVar[str] = "performed_at"

    type: Literal["workout"]
    activity: NonEmptyText
    sets: Optional[PositiveInt] = None
    reps: Optional[PositiveInt] = None
    load: Optional[PositiveFloat] = None
    distance: Optional[PositiveFloat] = None
    duration_minutes: Optional[PositiveFloat] = None
    intensity: Optional[str] = Field(default=None, max_length=64)
    performed_at: UtcDateTime


class MealExtract(_TimestampedEntry):
    timestamp_field: ClassVar[str] = "eaten_at"

    type: Literal["meal"]
    description: NonEmptyText
    calories: Optional[PositiveFloat] = None
    protein_g: Optional[PositiveFloat] = None
    carbs_g: Optional[PositiveFloat] = None
    fats_g: Optional[PositiveFloat] = None
    eaten_at: UtcDateTime


ExtractedEntry = Annotated[
    Union[WeightExtract, BodyFatExtract, WorkoutExtract, MealExtract],
    Field(discriminator="type"),
]


class PlanRequest(BaseModel):
    plan_type: PlanType
    focus: Optional[str] = None
    duration_weeks: Optional[PositiveInt] = None


class ExtractionPayload(BaseModel):
    entries: list[ExtractedEntry] = Field(default_factory=list)
    plan_request: Optional[PlanRequest] = None
    clarification_needed: bool = False
    clarification_message: Optional[str] = None
    acknowledgements: list[str] = Field(default_factory=list)

    @field_validator("entries", "acknowledgements", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("clarification_needed", mode="before")
    @classmethod
    def _null_as_false(cls, value: Any) -> Any:
        return False if value is None else value


OUTPUT_SCHEMA: dict[str, Any] = {
    "entries": [
        {"type": "weight", "weight": "number > 0", "unit": "lbs|kg", "recorded_at": "ISO 8601 datetime"},
        {"type": "body_fat", "percentage": "number > 0 and <= 100", "recorded_at": "ISO 8601 datetime"},
        {
            "type": "workout",
            "activity": "string",
            "sets": "integer > 0|null",
            "reps": "integer > 0|null",
            "load": "number > 0|null",
            "distance": "number > 0|null",
            "duration_minutes": "number > 0|null",
            "intensity": "string|null",
            "performed_at": "ISO 8601 datetime",
        },
        {
            "type": "meal",
            "description": "string",
            "calories": "number > 0|null",
            "protein_g": "number > 0|null",
            "carbs_g": "number > 0|null",
            "fats_g": "number > 0|null",
            "eaten_at": "ISO 8601 datetime",
        },
    ],
    "plan_request": {"plan_type": "workout|diet", "focus": "string|null", "duration_weeks": "integer > 0|null"},
    "clarification_needed": "bool",
    "clarification_message": "string|null",
    "acknowledgements": ["short string"],
}


def render_system_prompt(now: datetime, template: Optional[str] = None) -> str:
    now_utc = to_utc(now)
    text = (template or EXTRACTION_SYSTEM_PROMPT)
    text = text.replace("{today}", now_utc.date().isoformat()).replace("{now}", now_utc.isoformat())
    return (
        f"{text}\n\n"
        "Return strict JSON only, matching this output schema (entries is a list of any of the entry shapes; "
        "omit plan_request unless the user asks for a plan):\n"
        f"{json.dumps(OUTPUT_SCHEMA, separators=(',', ':'))}"
    )


def build_extraction_messages(
    message: str,
    history: list[ChatTurn],
    now: datetime,
    history_limit: int = CHAT_HISTORY_LIMIT,
) -> list[Message]:
    recent = history[-history_limit:] if history_limit > 0 else []
    messages: list[Message] = [{"role": "system", "content": render_system_prompt(now)}]
    messages.extend({"role": turn.role, "content": turn.content} for turn in recent)
    messages.append({"role": "user", "content": message})
    return messages


def parse_extraction(raw: Any, now: datetime) -> ExtractionPayload:
    if not isinstance(raw, dict):
        raise ExtractionError("Extraction returned a non-object payload")
    try:
        return ExtractionPayload.model_validate(raw, context={"now": to_utc(now)})
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ExtractionError(
            f"Extraction failed schema validation at {location or 'payload'}: {first.get('msg', 'invalid value')}"
        ) from exc


def extract_entries(
    llm_client: LLMClient,
    message: str,
    history: list[ChatTurn],
    now: datetime,
    history_limit: int = CHAT_HISTORY_LIMIT,
) -> ExtractionPayload:
    messages = build_extraction_messages(message, history, now, history_limit=history_limit)
    raw = llm_client.generate_json(messages, task_type="extraction")
    return parse_extraction(raw, now)
