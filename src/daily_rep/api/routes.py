"""REST API routes for profiles, daily reps and the scheduled job."""

import functools
import math
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Header, HTTPException
from pydantic import BaseModel, Field

from daily_rep.config import get_settings
from daily_rep.errors import DailyRepError, ErrorKind
from daily_rep.models.profile import SkillLevel, UserProfile
from daily_rep.service import DailyRepService, build_service

logger = structlog.get_logger()
router = APIRouter(prefix="/api")

ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.PROFILE_NOT_FOUND: 404,
    ErrorKind.ASSIGNMENT_NOT_FOUND: 404,
    ErrorKind.WEEKLY_LIMIT_REACHED: 403,
    ErrorKind.NO_FOCUS_AREAS: 422,
    ErrorKind.NO_ELIGIBLE_REPS: 422,
    ErrorKind.INVALID_GENERATION_RESPONSE: 502,
    ErrorKind.GENERATION_FAILED: 502,
    ErrorKind.GENERATION_TIMEOUT: 504,
    ErrorKind.GENERATION_RATE_LIMITED: 429,
    ErrorKind.GENERATION_PAYMENT_REQUIRED: 402,
}


@functools.lru_cache
def get_service() -> DailyRepService:
    """Get the daily rep service singleton."""
    return build_service(get_settings())


def to_http_error(error: DailyRepError) -> HTTPException:
    return HTTPException(status_code=ERROR_STATUS.get(error.kind, 500), detail=error.to_dict())


def require_user(user_id: str | None) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return user_id


class ProfileUpdate(BaseModel):
    full_name: str | None = None
    focus_areas: list[str] | None = None  # ids or titles
    current_level: SkillLevel | None = None
    rep_style: str | None = None
    goals: str | None = None
    job_title: str | None = None
    life_stage: str | None = None
    age: int | None = Field(default=None, ge=0, le=130)
    auto_generate: bool | None = None
    preferred_delivery_hour: int | None = Field(default=None, ge=0, le=23)
    push_enabled: bool | None = None
    push_token: str | None = None
    web_push_subscription: dict[str, Any] | None = None


# Profile fields an edit may reset to null
CLEARABLE_PROFILE_FIELDS = frozenset(
    {"goals", "job_title", "life_stage", "age", "push_token", "web_push_subscription"}
)


class RepRequest(BaseModel):
    replace: bool = False


@router.get("/profile")
async def get_profile(x_user_id: str | None = Header(default=None)) -> dict:
    user_id = require_user(x_user_id)
    profile = get_service().store.profiles.get(user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile.model_dump(mode="json")


@router.put("/profile")
async def put_profile(update: ProfileUpdate, x_user_id: str | None = Header(default=None)) -> dict:
    """Create (onboarding) or edit the caller's profile."""
    user_id = require_user(x_user_id)
    service = get_service()
    store = service.store

    fields = {
        key: value
        for key, value in update.model_dump(exclude_unset=True, exclude={"focus_areas"}).items()
        if value is not None or key in CLEARABLE_PROFILE_FIELDS
    }
    if update.focus_areas is not None:
        fields["focus_area_ids"] = store.focus_areas.normalize(update.focus_areas)

    profile = store.profiles.get(user_id)
    if profile is None:
        trial_days = get_settings().trial_days
        profile = UserProfile(
            user_id=user_id,
            trial_ends_at=datetime.now(timezone.utc) + timedelta(days=trial_days),
            **fields,
        )
        store.profiles.save(profile)
        logger.info("profile_created", user_id=user_id)
    else:
        profile = store.profiles.update(user_id, **fields)
    return profile.model_dump(mode="json")


@router.get("/focus-areas")
async def list_focus_areas() -> list[dict]:
    return [a.model_dump(mode="json") for a in get_service().store.focus_areas.list_all()]


@router.get("/eligibility")
async def get_eligibility(x_user_id: str | None = Header(default=None)) -> dict:
    user_id = require_user(x_user_id)
    service = get_service()
    try:
        eligibility = service.eligibility(user_id)
    except DailyRepError as e:
        raise to_http_error(e)
    data = eligibility.model_dump(mode="json")
    profile = service.store.profiles.get(user_id)
    if profile is not None and profile.trial_ends_at is not None:
        remaining = (profile.trial_ends_at - service.clock()).total_seconds() / 86400
        data["trial_days_left"] = max(0, math.ceil(remaining))
    return data


@router.get("/reps/today")
async def get_todays_rep(x_user_id: str | None = Header(default=None)) -> dict:
    user_id = require_user(x_user_id)
    entry = get_service().get_today(user_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="No rep assigned today")
    return entry.model_dump(mode="json")


@router.post("/reps/today")
async def request_todays_rep(
    request: RepRequest | None = None,
    x_user_id: str | None = Header(default=None),
) -> dict:
    """Generate or select today's rep (``replace`` swaps an existing one)."""
    user_id = require_user(x_user_id)
    replace = request.replace if request else False
    try:
        entry = await get_service().request_rep(user_id, replace=replace)
    except DailyRepError as e:
        logger.info("rep_request_denied", user_id=user_id, kind=e.kind.value)
        raise to_http_error(e)
    return entry.model_dump(mode="json")


@router.get("/reps/history")
async def get_rep_history(limit: int = 30, x_user_id: str | None = Header(default=None)) -> list[dict]:
    user_id = require_user(x_user_id)
    limit = max(1, min(limit, 365))
    return [entry.model_dump(mode="json") for entry in get_service().list_history(user_id, limit)]


@router.post("/assignments/{assignment_id}/complete")
async def complete_assignment(assignment_id: str, x_user_id: str | None = Header(default=None)) -> dict:
    user_id = require_user(x_user_id)
    try:
        assignment = get_service().complete(user_id, assignment_id)
    except DailyRepError as e:
        raise to_http_error(e)
    return assignment.model_dump(mode="json")


@router.post("/assignments/{assignment_id}/skip")
async def skip_assignment(assignment_id: str, x_user_id: str | None = Header(default=None)) -> dict:
    user_id = require_user(x_user_id)
    try:
        assignment = get_service().skip(user_id, assignment_id)
    except DailyRepError as e:
        raise to_http_error(e)
    return assignment.model_dump(mode="json")


@router.post("/jobs/daily-reps")
async def run_daily_job() -> dict:
    """Scheduled trigger entry point (cron calls this hourly or daily)."""
    report = await get_service().run_scheduled()
    data = report.model_dump(mode="json")
    data["assigned_count"] = report.assigned_count
    return data


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}
