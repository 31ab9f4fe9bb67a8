from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field

from fitlog.api.auth import get_current_user
from fitlog.core.extraction import (
    BodyFatExtract,
    MealExtract,
    NonEmptyText,
    PositiveFloat,
    PositiveInt,
    UtcDateTime,
    WeightExtract,
    WeightUnit,
    WorkoutExtract,
)
from fitlog.db.models import User
from fitlog.services.store import RecordStore, get_record_store

router = APIRouter(prefix="/api", tags=["entries"])

MAX_LIST_LIMIT = 200


class _RowItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: UtcDateTime
    updated_at: Optional[UtcDateTime] = None


class WeightItem(_RowItem):
    weight: float
    unit: WeightUnit
    recorded_at: UtcDateTime


class BodyFatItem(_RowItem):
    percentage: float
    recorded_at: UtcDateTime


class WorkoutItem(_RowItem):
    activity: str
    sets: Optional[int] = None
    reps: Optional[int] = None
    load: Optional[float] = None
    distance: Optional[float] = None
    duration_minutes: Optional[float] = None
    intensity: Optional[str] = None
    performed_at: UtcDateTime


class MealItem(_RowItem):
    description: str
    calories: Optional[float] = None
    protein_g: Optional[float] = None
    carbs_g: Optional[float] = None
    fats_g: Optional[float] = None
    eaten_at: UtcDateTime


class WeightListResponse(BaseModel):
    data: list[WeightItem]


class BodyFatListResponse(BaseModel):
    data: list[BodyFatItem]


class WorkoutListResponse(BaseModel):
    data: list[WorkoutItem]


class MealListResponse(BaseModel):
    data: list[MealItem]


class WeightCreateResponse(BaseModel):
    data: WeightItem


class BodyFatCreateResponse(BaseModel):
    data: BodyFatItem


class WorkoutCreateResponse(BaseModel):
    data: WorkoutItem


class MealCreateResponse(BaseModel):
    data: MealItem


class WeightCreateRequest(BaseModel):
    weight: PositiveFloat
    unit: WeightUnit = "lbs"
    recorded_at: Optional[datetime] = None


class BodyFatCreateRequest(BaseModel):
    percentage: float = Field(gt=0, le=100, allow_inf_nan=False)
    recorded_at: Optional[datetime] = None


class WorkoutCreateRequest(BaseModel):
    activity: NonEmptyText
    sets: Optional[PositiveInt] = None
    reps: Optional[PositiveInt] = None
    load: Optional[PositiveFloat] = None
    distance: Optional[PositiveFloat] = None
    duration_minutes: Optional[PositiveFloat] = None
    intensity: Optional[str] = Field(default=None, max_length=64)
    performed_at: Optional[datetime] = None


class MealCreateRequest(BaseModel):
    description: NonEmptyText
    calories: Optional[PositiveFloat] = None
    protein_g: Optional[PositiveFloat] = None
    carbs_g: Optional[PositiveFloat] = None
    fats_g: Optional[PositiveFloat] = None
    eaten_at: Optional[datetime] = None


class RangeParams:
    def __init__(
        self,
        start: Optional[datetime] = Query(default=None),
        end: Optional[datetime] = Query(default=None),
        limit: Optional[int] = Query(default=None, ge=1, le=MAX_LIST_LIMIT),
    ) -> None:
        self.start = start
        self.end = end
        self.limit = limit


def _entry_fields(payload: BaseModel, entry_type: str) -> dict[str, Any]:
    return {"type": entry_type, **payload.model_dump(exclude_none=True)}


def _request_context() -> dict[str, Any]:
    return {"now": datetime.now(timezone.utc)}


@router.get("/weights", response_model=WeightListResponse)
def list_weights(
    params: RangeParams = Depends(),
    user: User = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
) -> WeightListResponse:
    rows = store.list_entries(user.id, "weights", start=params.start, end=params.end, limit=params.limit)
    return WeightListResponse(data=[WeightItem.model_validate(row) for row in rows])


@router.post("/weights", response_model=WeightCreateResponse, status_code=status.HTTP_201_CREATED)
def create_weight(
    payload: WeightCreateRequest,
    user: User = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
) -> WeightCreateResponse:
    entry = WeightExtract.model_validate(_entry_fields(payload, "weight"), context=_request_context())
    row = store.add_entry(user.id, entry)
    return WeightCreateResponse(data=WeightItem.model_validate(row))


@router.get("/body-fat", response_model=BodyFatListResponse)
def list_body_fat(
    params: RangeParams = Depends(),
    user: User = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
) -> BodyFatListResponse:
    rows = store.list_entries(user.id, "body_fat", start=params.start, end=params.end, limit=params.limit)
    return BodyFatListResponse(data=[BodyFatItem.model_validate(row) for row in rows])


@router.post("/body-fat", response_model=BodyFatCreateResponse, status_code=status.HTTP_201_CREATED)
def create_body_fat(
    payload: BodyFatCreateRequest,
    user: User = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
) -> BodyFatCreateResponse:
    entry = BodyFatExtract.model_validate(_entry_fields(payload, "body_fat"), context=_request_context())
    row = store.add_entry(user.id, entry)
    return BodyFatCreateResponse(data=BodyFatItem.model_validate(row))


@router.get("/workouts", response_model=WorkoutListResponse)
def list_workouts(
    params: RangeParams = Depends(),
    user: User = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
) -> WorkoutListResponse:
    rows = store.list_entries(user.id, "workouts", start=params.start, end=params.end, limit=params.limit)
    return WorkoutListResponse(data=[WorkoutItem.model_validate(row) for row in rows])


@router.post("/workouts", response_model=WorkoutCreateResponse, status_code=status.HTTP_201_CREATED)
def create_workout(
    payload: WorkoutCreateRequest,
    user: User = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
) -> WorkoutCreateResponse:
    entry = WorkoutExtract.model_validate(_entry_fields(payload, "workout"), context=_request_context())
    row = store.add_entry(user.id, entry)
    return WorkoutCreateResponse(data=WorkoutItem.model_validate(row))


@router.get("/meals", response_model=MealListResponse)
def list_meals(
    params: RangeParams = Depends(),
    user: User = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
) -> MealListResponse:
    rows = store.list_entries(user.id, "meals", start=params.start, end=params.end, limit=params.limit)
    return MealListResponse(data=[MealItem.model_validate(row) for row in rows])


@router.post("/meals", response_model=MealCreateResponse, status_code=status.HTTP_201_CREATED)
def create_meal(
    payload: MealCreateRequest,
    user: User = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
) -> MealCreateResponse:
    entry = MealExtract.model_validate(_entry_fields(payload, "meal"), context=_request_context())
    row = store.add_entry(user.id, entry)
    return MealCreateResponse(data=MealItem.model_validate(row))
