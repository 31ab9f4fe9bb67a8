from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from fitlog.api.auth import get_current_user
from fitlog.core.extraction import UtcDateTime, WeightUnit
from fitlog.db.models import Profile, User
from fitlog.services.store import RecordStore, get_record_store

router = APIRouter(prefix="/api/profile", tags=["profile"])

ThemePreference = Literal["light", "dark", "system"]


class ProfileItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    target_weight: Optional[float] = None
    weight_unit: WeightUnit
    dietary_preference: Optional[str] = None
    theme_preference: ThemePreference
    created_at: UtcDateTime
    updated_at: Optional[UtcDateTime] = None


class ProfileResponse(BaseModel):
    data: ProfileItem


class ProfileUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    target_weight: Optional[float] = Field(default=None, gt=0, le=1000, allow_inf_nan=False)
    weight_unit: Optional[WeightUnit] = None
    dietary_preference: Optional[str] = Field(default=None, max_length=120)
    theme_preference: Optional[ThemePreference] = None


def _to_item(row: Profile) -> ProfileItem:
    return ProfileItem.model_validate(row)


@router.get("", response_model=ProfileResponse)
def get_profile(
    user: User = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
) -> ProfileResponse:
    return ProfileResponse(data=_to_item(store.get_or_create_profile(user.id)))


@router.put("", response_model=ProfileResponse)
def update_profile(
    payload: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
) -> ProfileResponse:
    # Only fields present in the body change; explicit nulls clear nullable fields.
    changes = payload.model_dump(exclude_unset=True)
    for required in ("weight_unit", "theme_preference"):
        if changes.get(required, "") is None:
            changes.pop(required)
    if isinstance(changes.get("dietary_preference"), str):
        changes["dietary_preference"] = changes["dietary_preference"].strip() or None
    row = store.update_profile(user.id, changes)
    return ProfileResponse(data=_to_item(row))
