"""User profile and focus area models."""

from datetime import date, datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SkillLevel(StrEnum):
    """Ordered skill levels, lowest first."""

    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"
    PRO = "Pro"

    @property
    def rank(self) -> int:
        return list(SkillLevel).index(self)

    def distance(self, other: "SkillLevel") -> int:
        """Number of ordinal steps between two levels."""
        return abs(self.rank - other.rank)

    @classmethod
    def parse(cls, value: str | None) -> "SkillLevel | None":
        """Case-insensitive lookup; "Expert" is accepted for PRO."""
        if not value:
            return None
        key = value.strip().lower()
        if key == "expert":
            return cls.PRO
        for level in cls:
            if level.value.lower() == key:
                return level
        return None


class FocusArea(BaseModel):
    id: str
    title: str
    description: str | None = None
    example_reps: list[str] = Field(default_factory=list)


class UserProfile(BaseModel):
    user_id: str
    full_name: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Personalization
    focus_area_ids: list[str] = Field(default_factory=list)
    current_level: SkillLevel = SkillLevel.BEGINNER
    rep_style: str = "Quick [5-10 min]"
    goals: str | None = None
    job_title: str | None = None
    life_stage: str | None = None
    age: int | None = None

    # Access
    subscribed: bool = False
    trial_ends_at: datetime | None = None
    last_free_rep_date: date | None = None

    # Delivery
    auto_generate: bool = False
    preferred_delivery_hour: int = Field(default=9, ge=0, le=23)
    push_enabled: bool = False
    push_token: str | None = None
    web_push_subscription: dict[str, Any] | None = None

    # Streaks
    current_streak: int = 0
    longest_streak: int = 0
    last_completed_date: date | None = None

    @field_validator("current_level", mode="before")
    @classmethod
    def _coerce_level(cls, value):
        if isinstance(value, str):
            return SkillLevel.parse(value) or SkillLevel.BEGINNER
        return value
