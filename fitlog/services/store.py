"""Per-user persistence boundary for entries, plans and profile settings."""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional, Sequence, Union

from fastapi import Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fitlog.core.errors import NotFoundError, RecordStoreError
from fitlog.core.extraction import (
    BodyFatExtract,
    ExtractedEntry,
    MealExtract,
    WeightExtract,
    WorkoutExtract,
    to_utc,
)
from fitlog.core.planner import GeneratedPlan
from fitlog.db.models import BodyFatReading, MealEntry, PlanRecord, Profile, WeightReading, WorkoutEntry
from fitlog.db.session import get_db

logger = logging.getLogger("uvicorn.error")

EntryRow = Union[WeightReading, BodyFatReading, WorkoutEntry, MealEntry]


class WritePolicy(str, Enum):
    # Every entry from one message commits together or not at all.
    all_or_nothing = "all_or_nothing"
    # Each entry commits on its own; failures are logged and skipped.
    best_effort = "best_effort"


STORED_COUNT_KEYS = {
    "weight": "weights",
    "body_fat": "bodyFat",
    "workout": "workouts",
    "meal": "meals",
}

# (model, timestamp column) per collection name used by the list endpoints.
COLLECTIONS: dict[str, tuple[Any, str]] = {
    "weights": (WeightReading, "recorded_at"),
    "body_fat": (BodyFatReading, "recorded_at"),
    "workouts": (WorkoutEntry, "performed_at"),
    "meals": (MealEntry, "eaten_at"),
}


def _naive_utc(value: datetime) -> datetime:
    return to_utc(value).replace(tzinfo=None)


def _weight_row(user_id: int, entry: WeightExtract) -> WeightReading:
    return WeightReading(
        user_id=user_id,
        weight=entry.weight,
        unit=entry.unit,
        recorded_at=_naive_utc(entry.recorded_at),
    )


def _body_fat_row(user_id: int, entry: BodyFatExtract) -> BodyFatReading:
    return BodyFatReading(
        user_id=user_id,
        percentage=entry.percentage,
        recorded_at=_naive_utc(entry.recorded_at),
    )


def _workout_row(user_id: int, entry: WorkoutExtract) -> WorkoutEntry:
    return WorkoutEntry(
        user_id=user_id,
        activity=entry.activity,
        sets=entry.sets,
        reps=entry.reps,
        load=entry.load,
        distance=entry.distance,
        duration_minutes=entry.duration_minutes,
        intensity=entry.intensity,
        performed_at=_naive_utc(entry.performed_at),
    )


def _meal_row(user_id: int, entry: MealExtract) -> MealEntry:
    return MealEntry(
        user_id=user_id,
        description=entry.description,
        calories=entry.calories,
        protein_g=entry.protein_g,
        carbs_g=entry.carbs_g,
        fats_g=entry.fats_g,
        eaten_at=_naive_utc(entry.eaten_at),
    )


ROW_BUILDERS: dict[str, Callable[[int, Any], EntryRow]] = {
    "weight": _weight_row,
    "body_fat": _body_fat_row,
    "workout": _workout_row,
    "meal": _meal_row,
}


def _plan_row(user_id: int, plan: GeneratedPlan) -> PlanRecord:
    return PlanRecord(
        user_id=user_id,
        plan_type=plan.plan_type,
        title=plan.title,
        focus=plan.focus or None,
        summary=plan.summary or None,
        content=plan.model_dump(mode="json"),
        generated_at=datetime.now(timezone.utc).replace(tzinfo=None),
    )


def empty_counts() -> dict[str, int]:
    return {key: 0 for key in STORED_COUNT_KEYS.values()}


class RecordStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _commit(self, action: str, user_id: int) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("store_write_error action=%s user_id=%s", action, user_id)
            raise RecordStoreError(f"Failed to save {action}") from exc

    def add_entry(self, user_id: int, entry: ExtractedEntry) -> EntryRow:
        row = ROW_BUILDERS[entry.type](user_id, entry)
        self.db.add(row)
        self._commit(entry.type, user_id)
        self.db.refresh(row)
        return row

    def add_entries(
        self,
        user_id: int,
        entries: Sequence[ExtractedEntry],
        policy: WritePolicy = WritePolicy.all_or_nothing,
    ) -> dict[str, int]:
        if not entries:
            return empty_counts()
        if policy == WritePolicy.best_effort:
            counts = empty_counts()
            for entry in entries:
                try:
                    self.add_entry(user_id, entry)
                except RecordStoreError:
                    continue
                counts[STORED_COUNT_KEYS[entry.type]] += 1
            return counts

        counts = self._stage_entries(user_id, entries)
        self._commit("entries", user_id)
        return counts

    def add_entries_with_plan(
        self, user_id: int, entries: Sequence[ExtractedEntry], plan: GeneratedPlan
    ) -> tuple[dict[str, int], PlanRecord]:
        """Write a message's entries and its plan in one transaction."""
        row = _plan_row(user_id, plan)
        self.db.add(row)
        counts = self._stage_entries(user_id, entries)
        self._commit("entries_and_plan", user_id)
        self.db.refresh(row)
        return counts, row

    def _stage_entries(self, user_id: int, entries: Sequence[ExtractedEntry]) -> dict[str, int]:
        counts = empty_counts()
        try:
            for entry in entries:
                self.db.add(ROW_BUILDERS[entry.type](user_id, entry))
                counts[STORED_COUNT_KEYS[entry.type]] += 1
            self.db.flush()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("store_write_error action=entries user_id=%s count=%s", user_id, len(entries))
            raise RecordStoreError("Failed to save extracted entries") from exc
        return counts

    def list_entries(
        self,
        user_id: int,
        collection: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[EntryRow]:
        model, ts_name = COLLECTIONS[collection]
        ts_column = getattr(model, ts_name)
        query = self.db.query(model).filter(model.user_id == user_id)
        if start:
            query = query.filter(ts_column >= _naive_utc(start))
        if end:
            query = query.filter(ts_column <= _naive_utc(end))
        query = query.order_by(ts_column.desc(), model.id.desc())
        if limit:
            query = query.limit(limit)
        return query.all()

    def add_plan(self, user_id: int, plan: GeneratedPlan) -> PlanRecord:
        row = _plan_row(user_id, plan)
        self.db.add(row)
        self._commit("plan", user_id)
        self.db.refresh(row)
        return row

    def get_plan(self, user_id: int, plan_id: int) -> PlanRecord:
        row = self.db.query(PlanRecord).filter(PlanRecord.user_id == user_id, PlanRecord.id == plan_id).first()
        if not row:
            raise NotFoundError("Plan not found")
        return row

    def list_plans(self, user_id: int, limit: int = 10) -> list[PlanRecord]:
        return (
            self.db.query(PlanRecord)
            .filter(PlanRecord.user_id == user_id)
            .order_by(PlanRecord.generated_at.desc(), PlanRecord.id.desc())
            .limit(limit)
            .all()
        )

    def get_or_create_profile(self, user_id: int) -> Profile:
        row = self.db.query(Profile).filter(Profile.user_id == user_id).first()
        if row:
            return row
        row = Profile(user_id=user_id, weight_unit="lbs", theme_preference="system")
        self.db.add(row)
        self._commit("profile", user_id)
        self.db.refresh(row)
        return row

    def update_profile(self, user_id: int, changes: dict[str, Any]) -> Profile:
        row = self.db.query(Profile).filter(Profile.user_id == user_id).first()
        if not row:
            row = Profile(user_id=user_id, weight_unit="lbs", theme_preference="system")
            self.db.add(row)
        for key, value in changes.items():
            setattr(row, key, value)
        self._commit("profile", user_id)
        self.db.refresh(row)
        return row


def get_record_store(db: Session = Depends(get_db)) -> RecordStore:
    return RecordStore(db)
