import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from fitlog.core.errors import LLMRequestError, PlanGenerationError
from fitlog.core.extraction import NonEmptyText, PlanType
from fitlog.services.llm import LLMClient, Message

logger = logging.getLogger("uvicorn.error")

DEFAULT_PLAN_SYSTEM_PROMPT = (
    "You are an AI fitness coach creating concise, motivating plans that are safe for a healthy adult. "
    "Keep intensity descriptors moderate unless the user explicitly trains advanced. Today's date is {today}."
)
PLAN_SYSTEM_PROMPT = os.getenv("PLAN_SYSTEM_PROMPT", DEFAULT_PLAN_SYSTEM_PROMPT)
PLAN_RENDER_PROMPT = (
    "Summarize the provided fitness plan conversationally in under 180 words. "
    "Include a short headline, and invite the user to confirm or ask for changes."
)
MIN_SCHEDULE_DAYS = 3

PLAN_OUTPUT_SCHEMA: dict[str, Any] = {
    "plan_type": "workout|diet",
    "title": "string",
    "focus": "string",
    "summary": "string",
    "schedule": [{"day": "string", "headline": "string", "details": "string"}],
    "key_points": ["string"],
    "tips": ["string"],
}


class ScheduleDay(BaseModel):
    day: NonEmptyText
    headline: NonEmptyText
    details: NonEmptyText


class GeneratedPlan(BaseModel):
    plan_type: PlanType
    title: NonEmptyText
    focus: str
    summary: str
    schedule: list[ScheduleDay] = Field(min_length=MIN_SCHEDULE_DAYS)
    key_points: list[NonEmptyText] = Field(min_length=1)
    tips: list[NonEmptyText] = Field(min_length=1)


@dataclass
class PlanResult:
    plan: GeneratedPlan
    message: str
    degraded: bool = False


def _plan_request_text(
    plan_type: str,
    focus: Optional[str],
    duration_weeks: Optional[int],
    display_name: Optional[str],
    context: Optional[dict[str, Any]],
) -> str:
    text = (
        f"Create a {plan_type} plan"
        + (f" focused on {focus}" if focus else "")
        + f" lasting {duration_weeks or 1} weeks for {display_name or 'the user'}. "
        "Deliver a structured response with schedule entries per day "
        f"(at least {MIN_SCHEDULE_DAYS} days), at least one key point and at least one tip."
    )
    if context:
        text += "\n\nRecent user data (use it to personalize the plan):\n" + json.dumps(
            context, separators=(",", ":"), default=str
        )
    return text


def build_plan_messages(
    plan_type: str,
    focus: Optional[str] = None,
    duration_weeks: Optional[int] = None,
    display_name: Optional[str] = None,
    context: Optional[dict[str, Any]] = None,
    today: Optional[datetime] = None,
) -> list[Message]:
    today_text = (today or datetime.now(timezone.utc)).date().isoformat()
    system = (
        PLAN_SYSTEM_PROMPT.replace("{today}", today_text)
        + "\n\nReturn strict JSON only, matching this output schema:\n"
        + json.dumps(PLAN_OUTPUT_SCHEMA, separators=(",", ":"))
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": _plan_request_text(plan_type, focus, duration_weeks, display_name, context)},
    ]


def parse_plan(raw: Any, plan_type: str) -> GeneratedPlan:
    if not isinstance(raw, dict):
        raise PlanGenerationError("Plan generation returned a non-object payload")
    data = dict(raw)
    data.setdefault("plan_type", plan_type)
    try:
        plan = GeneratedPlan.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise PlanGenerationError(
            f"Generated plan failed validation at {location or 'payload'}: {first.get('msg', 'invalid value')}"
        ) from exc
    if plan.plan_type != plan_type:
        raise PlanGenerationError(f"Generated plan type {plan.plan_type} does not match requested {plan_type}")
    return plan


def fallback_plan_message(plan: GeneratedPlan) -> str:
    lines = [f"**{plan.title}**"]
    if plan.summary:
        lines.append(plan.summary)
    lines.append("")
    lines.extend(f"- {day.day}: {day.headline}" for day in plan.schedule)
    lines.append("")
    lines.append("Want me to keep this plan or adjust anything?")
    return "\n".join(lines)


def render_plan_message(llm_client: LLMClient, plan: GeneratedPlan) -> str:
    messages: list[Message] = [
        {"role": "system", "content": PLAN_RENDER_PROMPT},
        {"role": "user", "content": plan.model_dump_json()},
    ]
    text = llm_client.generate_text(messages, task_type="summarization").strip()
    if not text:
        raise LLMRequestError(provider="unknown", model="unknown", message="Plan summary was empty")
    return text


def generate_plan(
    llm_client: LLMClient,
    plan_type: str,
    focus: Optional[str] = None,
    duration_weeks: Optional[int] = None,
    display_name: Optional[str] = None,
    context: Optional[dict[str, Any]] = None,
) -> PlanResult:
    """Generate a structured plan, then a short conversational rendering of it.

    A failure of the structured call (or a plan that breaks the schedule/key
    point/tip minimums) raises ``PlanGenerationError``. A failure of the
    rendering call keeps the plan and returns a fallback message with
    ``degraded=True``.
    """
    messages = build_plan_messages(plan_type, focus, duration_weeks, display_name, context)
    try:
        raw = llm_client.generate_json(messages, task_type="reasoning")
    except LLMRequestError as exc:
        raise PlanGenerationError(f"Plan generation failed: {exc}") from exc
    plan = parse_plan(raw, plan_type)

    try:
        message = render_plan_message(llm_client, plan)
    except LLMRequestError as exc:
        logger.warning("plan_render_degraded plan_type=%s detail=%s", plan_type, str(exc))
        return PlanResult(plan=plan, message=fallback_plan_message(plan), degraded=True)
    return PlanResult(plan=plan, message=message)
