import logging
from typing import Any, Optional, Union

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field

from fitlog.api.auth import get_current_user
from fitlog.core.context_builder import build_plan_context
from fitlog.core.errors import UpstreamFailure
from fitlog.core.extraction import PlanType, UtcDateTime
from fitlog.core.planner import GeneratedPlan, generate_plan
from fitlog.db.models import PlanRecord, User
from fitlog.services.llm import LLMClient, get_llm_client
from fitlog.services.store import RecordStore, get_record_store

router = APIRouter(prefix="/api/plans", tags=["plans"])
logger = logging.getLogger("uvicorn.error")


class PlanItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    plan_type: PlanType
    title: str
    focus: Optional[str] = None
    summary: Optional[str] = None
    content: dict[str, Any]
    generated_at: UtcDateTime
    created_at: UtcDateTime
    updated_at: Optional[UtcDateTime] = None


class PlanResponse(BaseModel):
    data: PlanItem


class PlanListResponse(BaseModel):
    data: list[PlanItem]


class PlanGenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan_type: PlanType = Field(alias="planType")
    focus: Optional[str] = Field(default=None, max_length=200)
    duration_weeks: Optional[int] = Field(default=None, alias="durationWeeks", gt=0, le=52)


class PlanGenerateResponse(BaseModel):
    plan: PlanItem
    message: str
    degraded: bool = False


def to_plan_item(row: PlanRecord) -> PlanItem:
    return PlanItem.model_validate(row)


@router.get("", response_model=Union[PlanResponse, PlanListResponse])
def list_plans(
    plan_id: Optional[int] = Query(default=None, alias="id", ge=1),
    limit: int = Query(default=10, ge=1, le=50),
    user: User = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
) -> Union[PlanResponse, PlanListResponse]:
    if plan_id is not None:
        return PlanResponse(data=to_plan_item(store.get_plan(user.id, plan_id)))
    rows = store.list_plans(user.id, limit=limit)
    return PlanListResponse(data=[to_plan_item(row) for row in rows])


@router.post("", response_model=PlanResponse, status_code=status.HTTP_201_CREATED)
def create_plan(
    payload: GeneratedPlan,
    user: User = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
) -> PlanResponse:
    row = store.add_plan(user.id, payload)
    return PlanResponse(data=to_plan_item(row))


@router.post("/generate", response_model=PlanGenerateResponse, status_code=status.HTTP_200_OK)
def generate_plan_from_history(
    payload: PlanGenerateRequest,
    user: User = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
    llm_client: LLMClient = Depends(get_llm_client),
) -> PlanGenerateResponse:
    context = build_plan_context(store, user.id)
    try:
        result = generate_plan(
            llm_client,
            plan_type=payload.plan_type,
            focus=payload.focus,
            duration_weeks=payload.duration_weeks,
            display_name=user.display_name,
            context=context,
        )
        row = store.add_plan(user.id, result.plan)
    except UpstreamFailure as exc:
        logger.exception("plan_generate_error user_id=%s plan_type=%s detail=%s", user.id, payload.plan_type, str(exc))
        raise
    logger.info("plan_generated user_id=%s plan_id=%s degraded=%s", user.id, row.id, result.degraded)
    return PlanGenerateResponse(plan=to_plan_item(row), message=result.message, degraded=result.degraded)
