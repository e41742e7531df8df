"""Trial, subscription and weekly free-tier access checks."""

from datetime import date
from enum import StrEnum

import structlog
from pydantic import BaseModel

from daily_rep.errors import DailyRepError, ErrorKind
from daily_rep.models.profile import UserProfile
from daily_rep.storage.collection import NotFoundError
from daily_rep.storage.profiles import ProfileStore

logger = structlog.get_logger()

FREE_TIER_INTERVAL_DAYS = 7


class AccessTier(StrEnum):
    SUBSCRIPTION = "subscription"
    TRIAL = "trial"
    FREE_TIER = "free_tier"


class Eligibility(BaseModel):
    allowed: bool
    access: AccessTier | None = None
    reason: ErrorKind | None = None
    retry_after_days: int | None = None


def check_eligibility(profile: UserProfile, today: date) -> Eligibility:
    """Decide whether the user may receive a new rep today.

    A missing ``trial_ends_at`` counts as a trial that has not ended.
    """
    if profile.subscribed:
        return Eligibility(allowed=True, access=AccessTier.SUBSCRIPTION)

    if profile.trial_ends_at is None or today <= profile.trial_ends_at.date():
        return Eligibility(allowed=True, access=AccessTier.TRIAL)

    if profile.last_free_rep_date is not None:
        days_since = (today - profile.last_free_rep_date).days
        if days_since < FREE_TIER_INTERVAL_DAYS:
            return Eligibility(
                allowed=False,
                reason=ErrorKind.WEEKLY_LIMIT_REACHED,
                retry_after_days=FREE_TIER_INTERVAL_DAYS - days_since,
            )

    return Eligibility(allowed=True, access=AccessTier.FREE_TIER)


def _raise_if_denied(eligibility: Eligibility) -> None:
    if eligibility.allowed:
        return
    days = eligibility.retry_after_days
    raise DailyRepError(
        ErrorKind.WEEKLY_LIMIT_REACHED,
        "You've used your free weekly rep. Upgrade to Premium for unlimited "
        f"daily reps, or wait {days} days.",
        retry_after_days=days,
    )


class EligibilityGate:
    """Grants access for a user on a day, consuming the free-tier allowance.

    Args:
        profiles: Profile store used to load and update the user.
    """

    def __init__(self, profiles: ProfileStore):
        self.profiles = profiles

    def load_profile(self, user_id: str) -> UserProfile:
        profile = self.profiles.get(user_id)
        if profile is None:
            raise DailyRepError(
                ErrorKind.PROFILE_NOT_FOUND,
                "Profile not found. Complete onboarding before requesting a rep.",
            )
        return profile

    def authorize(self, user_id: str, today: date) -> tuple[UserProfile, Eligibility]:
        """Check access and record free-tier usage.

        The free-tier allowance is recorded before any rep is generated, so a
        generation failure afterwards still uses up the week's rep.

        Raises:
            DailyRepError: PROFILE_NOT_FOUND or WEEKLY_LIMIT_REACHED.
        """
        profile = self.load_profile(user_id)
        eligibility = check_eligibility(profile, today)
        logger.info(
            "eligibility_checked",
            user_id=user_id,
            allowed=eligibility.allowed,
            access=eligibility.access,
        )

        _raise_if_denied(eligibility)

        if eligibility.access == AccessTier.FREE_TIER:
            profile = self._claim_free_rep(user_id, today)

        return profile, eligibility

    def _claim_free_rep(self, user_id: str, today: date) -> UserProfile:
        # Evaluated again under the profile write lock: one claim per week
        def claim(current: UserProfile) -> dict:
            eligibility = check_eligibility(current, today)
            _raise_if_denied(eligibility)
            if eligibility.access != AccessTier.FREE_TIER:
                return {}
            return {"last_free_rep_date": today}

        try:
            return self.profiles.update_with(user_id, claim)
        except NotFoundError as e:
            raise DailyRepError(ErrorKind.PROFILE_NOT_FOUND, str(e)) from e
