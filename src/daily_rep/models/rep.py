"""Rep and daily assignment models."""

import uuid
from datetime import date, datetime
from enum import StrEnum

from pydantic import AliasChoices, BaseModel, Field, field_validator

from daily_rep.models.profile import SkillLevel, utcnow

AI_GENERATED_FORMAT = "AI Generated"
CATALOG_FORMAT = "Catalog"


def new_id() -> str:
    return str(uuid.uuid4())


class Rep(BaseModel):
    """A challenge definition. Immutable once stored."""

    id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    difficulty_level: SkillLevel | None = None
    estimated_minutes: int = 10
    focus_area_id: str | None = None
    format: str = CATALOG_FORMAT
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("difficulty_level", mode="before")
    @classmethod
    def _coerce_level(cls, value):
        if isinstance(value, str):
            return SkillLevel.parse(value)
        return value


class GeneratedRep(BaseModel):
    """Payload returned by the text generation collaborator.

    Accepts both the snake_case keys the prompt asks for and camelCase keys.
    """

    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    difficulty_level: str | None = Field(
        default=None,
        validation_alias=AliasChoices("difficulty_level", "difficultyLevel"),
    )
    estimated_minutes: int | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "estimated_minutes", "estimatedMinutes", "estimated_time"
        ),
    )
    focus_area: str | None = Field(
        default=None,
        validation_alias=AliasChoices("focus_area", "focusArea"),
    )


class AssignmentStatus(StrEnum):
    """Assignment lifecycle states."""

    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class DailyRepAssignment(BaseModel):
    """Binds one user to one rep on one calendar date."""

    id: str = Field(default_factory=new_id)
    user_id: str
    rep_id: str
    assigned_date: date
    status: AssignmentStatus = AssignmentStatus.PENDING
    completed_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def completed(self) -> bool:
        return self.status == AssignmentStatus.COMPLETED

    @property
    def key(self) -> str:
        return assignment_key(self.user_id, self.assigned_date)


def assignment_key(user_id: str, assigned_date: date) -> str:
    """Unique key for the one-assignment-per-user-per-day constraint."""
    return f"{user_id}:{assigned_date.isoformat()}"


class RepHistory(BaseModel):
    """What a user has already been given, most recent first."""

    used_rep_ids: set[str] = Field(default_factory=set)
    recent: list[Rep] = Field(default_factory=list)


class AssignedRep(BaseModel):
    """An assignment together with the rep it points at."""

    assignment: DailyRepAssignment
    rep: Rep
