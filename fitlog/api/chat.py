import logging
import os
from datetime import datetime, timezone
from typing import Optional, Sequence

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from fitlog.api.auth import get_current_user
from fitlog.api.plans import PlanItem, to_plan_item
from fitlog.core.context_builder import build_plan_context
from fitlog.core.errors import RecordStoreError, UpstreamFailure
from fitlog.core.extraction import ChatTurn, ExtractedEntry, NonEmptyText, PlanRequest, extract_entries
from fitlog.core.planner import PlanResult, generate_plan
from fitlog.db.models import User
from fitlog.services.llm import LLMClient, get_llm_client
from fitlog.services.store import RecordStore, WritePolicy, empty_counts, get_record_store

router = APIRouter(prefix="/api", tags=["chat"])
logger = logging.getLogger("uvicorn.error")

CHAT_WRITE_POLICY = WritePolicy(os.getenv("CHAT_WRITE_POLICY", WritePolicy.all_or_nothing.value))
CLARIFICATION_FALLBACK = "I couldn’t confidently log that. Could you share the specific numbers or details?"
EMPTY_REPLY_FALLBACK = "All set! Let me know when you have new stats or need a plan."

# Stored-count key, then the phrase used for it in the reply summary.
COUNT_PHRASES = (
    ("weights", "Logged {count} weight entry"),
    ("bodyFat", "Updated {count} body fat reading"),
    ("workouts", "Captured {count} workout"),
    ("meals", "Recorded {count} meal"),
)


class ChatRequest(BaseModel):
    message: NonEmptyText
    history: list[ChatTurn] = Field(default_factory=list)


class StoredCounts(BaseModel):
    weights: int = 0
    bodyFat: int = 0
    workouts: int = 0
    meals: int = 0


class ChatResponse(BaseModel):
    message: str
    stored: StoredCounts
    clarification: bool = False
    plan: Optional[PlanItem] = None
    degraded: bool = False


def summarize_counts(counts: dict[str, int]) -> str:
    parts = [phrase.format(count=counts[key]) for key, phrase in COUNT_PHRASES if counts.get(key)]
    if not parts:
        return ""
    return ", ".join(parts) + "."


def compose_reply(acknowledgements: list[str], counts: dict[str, int], plan_message: Optional[str] = None) -> str:
    sections = []
    acknowledged = "\n".join(item.strip() for item in acknowledgements if item and item.strip())
    if acknowledged:
        sections.append(acknowledged)
    summary = summarize_counts(counts)
    if summary:
        sections.append(summary)
    if plan_message and plan_message.strip():
        sections.append(plan_message.strip())
    if not sections:
        return EMPTY_REPLY_FALLBACK
    return "\n\n".join(sections)


def _generate_requested_plan(
    llm_client: LLMClient,
    store: RecordStore,
    user: User,
    request: PlanRequest,
    pending: Sequence[ExtractedEntry] = (),
) -> PlanResult:
    try:
        return generate_plan(
            llm_client,
            plan_type=request.plan_type,
            focus=request.focus,
            duration_weeks=request.duration_weeks,
            display_name=user.display_name,
            context=build_plan_context(store, user.id, pending=pending),
        )
    except UpstreamFailure as exc:
        logger.exception("chat_plan_error user_id=%s plan_type=%s detail=%s", user.id, request.plan_type, str(exc))
        raise


@router.post("/chat", response_model=ChatResponse)
def chat(
    payload: ChatRequest,
    user: User = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
    llm_client: LLMClient = Depends(get_llm_client),
) -> ChatResponse:
    now = datetime.now(timezone.utc)
    try:
        extraction = extract_entries(llm_client, payload.message, payload.history, now)
    except UpstreamFailure as exc:
        logger.exception("chat_extraction_error user_id=%s detail=%s", user.id, str(exc))
        raise

    if extraction.clarification_needed:
        logger.info("chat_clarification user_id=%s", user.id)
        return ChatResponse(
            message=(extraction.clarification_message or "").strip() or CLARIFICATION_FALLBACK,
            stored=StoredCounts(**empty_counts()),
            clarification=True,
        )

    entries = extraction.entries
    request = extraction.plan_request
    # All-or-nothing with a plan: nothing is written until the plan exists, then entries and plan commit together.
    single_commit = request is not None and CHAT_WRITE_POLICY == WritePolicy.all_or_nothing

    result = None
    row = None
    try:
        if single_commit:
            result = _generate_requested_plan(llm_client, store, user, request, pending=entries)
            counts, row = store.add_entries_with_plan(user.id, entries, result.plan)
        else:
            counts = store.add_entries(user.id, entries, policy=CHAT_WRITE_POLICY)
            if request is not None:
                result = _generate_requested_plan(llm_client, store, user, request)
                row = store.add_plan(user.id, result.plan)
    except RecordStoreError as exc:
        logger.exception("chat_store_error user_id=%s entries=%s detail=%s", user.id, len(entries), str(exc))
        raise

    logger.info(
        "chat_processed user_id=%s weights=%s body_fat=%s workouts=%s meals=%s plan=%s",
        user.id,
        counts["weights"],
        counts["bodyFat"],
        counts["workouts"],
        counts["meals"],
        row.id if row else None,
    )
    return ChatResponse(
        message=compose_reply(extraction.acknowledgements, counts, result.message if result else None),
        stored=StoredCounts(**counts),
        clarification=False,
        plan=to_plan_item(row) if row else None,
        degraded=result.degraded if result else False,
    )
