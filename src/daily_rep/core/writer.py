"""Assignment upserts, completion and streak tracking."""

from datetime import date, datetime, timedelta, timezone

import structlog

from daily_rep.errors import DailyRepError, ErrorKind
from daily_rep.models.profile import UserProfile
from daily_rep.models.rep import AssignmentStatus, DailyRepAssignment
from daily_rep.storage.assignments import AssignmentStore
from daily_rep.storage.collection import ConflictError, NotFoundError
from daily_rep.storage.profiles import ProfileStore

logger = structlog.get_logger()


def next_streak(profile: UserProfile, day: date) -> tuple[int, int]:
    """Return (current, longest) streak after completing a rep on ``day``."""
    last = profile.last_completed_date
    if last == day:
        current = max(profile.current_streak, 1)
    elif last == day - timedelta(days=1):
        current = profile.current_streak + 1
    else:
        current = 1
    return current, max(profile.longest_streak, current)


class AssignmentWriter:
    """Owns every write to the (user, date) assignment row.

    Args:
        assignments: Assignment store.
        profiles: Profile store, updated with streaks on completion.
    """

    def __init__(self, assignments: AssignmentStore, profiles: ProfileStore):
        self.assignments = assignments
        self.profiles = profiles

    def upsert_assignment(self, user_id: str, day: date, rep_id: str) -> DailyRepAssignment:
        """Assign ``rep_id`` to the user for ``day``, replacing any existing rep.

        A replaced assignment goes back to pending. If a concurrent writer
        inserts first, the conflict is resolved by updating that row.
        """
        reset = {"rep_id": rep_id, "status": AssignmentStatus.PENDING, "completed_at": None}

        existing = self.assignments.get_for_day(user_id, day)
        if existing is not None:
            assignment = self.assignments.update(existing.id, **reset)
            logger.info("assignment_replaced", user_id=user_id, day=day.isoformat(), rep_id=rep_id)
            return assignment

        try:
            assignment = self.assignments.insert(
                DailyRepAssignment(user_id=user_id, rep_id=rep_id, assigned_date=day)
            )
        except ConflictError:
            logger.info("assignment_conflict_resolved", user_id=user_id, day=day.isoformat())
            return self.assignments.update_for_day(user_id, day, **reset)

        logger.info("assignment_created", user_id=user_id, day=day.isoformat(), rep_id=rep_id)
        return assignment

    def _get(self, assignment_id: str, user_id: str | None) -> DailyRepAssignment:
        assignment = self.assignments.get(assignment_id)
        if assignment is None or (user_id is not None and assignment.user_id != user_id):
            raise DailyRepError(ErrorKind.ASSIGNMENT_NOT_FOUND, f"Assignment not found: {assignment_id}")
        return assignment

    def mark_complete(
        self,
        assignment_id: str,
        now: datetime | None = None,
        user_id: str | None = None,
    ) -> DailyRepAssignment:
        """Mark an assignment completed and extend the user's streak."""
        now = now or datetime.now(timezone.utc)
        assignment = self._get(assignment_id, user_id)
        if assignment.completed:
            return assignment

        assignment = self.assignments.update(
            assignment_id, status=AssignmentStatus.COMPLETED, completed_at=now
        )
        try:
            self._extend_streak(assignment)
        except NotFoundError:
            logger.warning("streak_profile_missing", user_id=assignment.user_id)
        return assignment

    def _extend_streak(self, assignment: DailyRepAssignment) -> None:
        profile = self.profiles.get(assignment.user_id)
        if profile is None:
            return
        last = profile.last_completed_date
        if last is not None and assignment.assigned_date < last:
            # Completing an older rep never moves the streak backwards
            logger.info("streak_unchanged", user_id=assignment.user_id, day=assignment.assigned_date.isoformat())
            return
        current, longest = next_streak(profile, assignment.assigned_date)
        self.profiles.update(
            assignment.user_id,
            current_streak=current,
            longest_streak=longest,
            last_completed_date=assignment.assigned_date,
        )
        logger.info("streak_updated", user_id=assignment.user_id, current=current, longest=longest)

    def skip(self, assignment_id: str, user_id: str | None = None) -> DailyRepAssignment:
        """Close a pending assignment without completing it. Streaks are unaffected."""
        assignment = self._get(assignment_id, user_id)
        if assignment.status != AssignmentStatus.PENDING:
            return assignment
        assignment = self.assignments.update(
            assignment_id, status=AssignmentStatus.SKIPPED, completed_at=None
        )
        logger.info("assignment_skipped", user_id=assignment.user_id, assignment_id=assignment_id)
        return assignment
