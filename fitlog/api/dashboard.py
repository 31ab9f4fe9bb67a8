from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from fitlog.api.auth import get_current_user
from fitlog.api.entries import WeightItem
from fitlog.api.plans import PlanItem, to_plan_item
from fitlog.core.aggregates import (
    DEFAULT_RANGE_DAYS,
    RANGE_OPTIONS_DAYS,
    average_daily_calories,
    daily_workout_volume,
    downsample,
    weight_change,
    workouts_per_week,
)
from fitlog.core.extraction import UtcDateTime, WeightUnit, to_utc
from fitlog.db.models import User
from fitlog.services.store import RecordStore, get_record_store

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


class WeightChange(BaseModel):
    delta: float
    percent: float
    unit: WeightUnit


class WeightPoint(BaseModel):
    date: UtcDateTime
    weight: float
    unit: WeightUnit


class BodyFatPoint(BaseModel):
    date: UtcDateTime
    percentage: float


class VolumePoint(BaseModel):
    date: str
    volume: float


class DashboardCounts(BaseModel):
    weights: int
    bodyFat: int
    workouts: int
    meals: int


class DashboardSummaryResponse(BaseModel):
    window_days: int
    start: UtcDateTime
    end: UtcDateTime
    latest_weight: Optional[WeightItem] = None
    weight_change: Optional[WeightChange] = None
    avg_daily_calories: Optional[float] = None
    workouts_per_week: Optional[float] = None
    weight_series: list[WeightPoint]
    body_fat_series: list[BodyFatPoint]
    workout_volume: list[VolumePoint]
    latest_plan: Optional[PlanItem] = None
    counts: DashboardCounts


@router.get("", response_model=DashboardSummaryResponse)
def get_dashboard_summary(
    days: int = Query(default=DEFAULT_RANGE_DAYS),
    user: User = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
) -> DashboardSummaryResponse:
    if days not in RANGE_OPTIONS_DAYS:
        raise HTTPException(
            status_code=422,
            detail=f"days must be one of {', '.join(str(d) for d in RANGE_OPTIONS_DAYS)}",
        )
    end = datetime.now(timezone.utc)
    start = end - timedelta(days=days)

    weights = store.list_entries(user.id, "weights", start=start, end=end)
    body_fat = store.list_entries(user.id, "body_fat", start=start, end=end)
    workouts = store.list_entries(user.id, "workouts", start=start, end=end)
    meals = store.list_entries(user.id, "meals", start=start, end=end)
    plans = store.list_plans(user.id, limit=1)

    weights_asc = list(reversed(weights))
    body_fat_asc = list(reversed(body_fat))
    change = weight_change(weights)

    return DashboardSummaryResponse(
        window_days=days,
        start=start,
        end=end,
        latest_weight=WeightItem.model_validate(weights[0]) if weights else None,
        weight_change=WeightChange(**change) if change else None,
        avg_daily_calories=average_daily_calories(meals),
        workouts_per_week=workouts_per_week(len(workouts), days),
        weight_series=downsample(
            [WeightPoint(date=to_utc(row.recorded_at), weight=row.weight, unit=row.unit) for row in weights_asc]
        ),
        body_fat_series=downsample(
            [BodyFatPoint(date=to_utc(row.recorded_at), percentage=row.percentage) for row in body_fat_asc]
        ),
        workout_volume=[VolumePoint(**point) for point in downsample(daily_workout_volume(workouts))],
        latest_plan=to_plan_item(plans[0]) if plans else None,
        counts=DashboardCounts(
            weights=len(weights),
            bodyFat=len(body_fat),
            workouts=len(workouts),
            meals=len(meals),
        ),
    )
