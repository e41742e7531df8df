"""Daily rep allocation: eligibility, selection, assignment and notification."""

import asyncio
import random
from collections.abc import Callable
from datetime import date, datetime, timezone
from enum import StrEnum

import structlog
from pydantic import BaseModel, Field

from daily_rep.config import Settings
from daily_rep.core.eligibility import Eligibility, EligibilityGate, check_eligibility
from daily_rep.core.generator import RepGenerator
from daily_rep.core.selector import CatalogStrategy, GenerativeStrategy, SelectionStrategy
from daily_rep.core.writer import AssignmentWriter
from daily_rep.errors import DailyRepError
from daily_rep.models.profile import UserProfile
from daily_rep.models.rep import AssignedRep, DailyRepAssignment, Rep, RepHistory
from daily_rep.notifications.push import (
    DevicePushTransport,
    Notifier,
    PushTransport,
    WebPushTransport,
)
from daily_rep.storage.store import DataStore

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchStatus(StrEnum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"


class BatchResult(BaseModel):
    user_id: str
    status: BatchStatus
    reason: str | None = None
    rep_id: str | None = None


class BatchReport(BaseModel):
    run_at: datetime
    day: date
    processed: int = 0
    results: list[BatchResult] = Field(default_factory=list)

    @property
    def assigned_count(self) -> int:
        return sum(1 for r in self.results if r.status == BatchStatus.SUCCESS)


class DailyRepService:
    """Runs the per-user daily rep flow for interactive and scheduled triggers.

    Args:
        store: Persistent store.
        strategy: Candidate selection strategy.
        notifier: Push dispatcher.
        rng: Random source used for selection.
        clock: Returns the current UTC time.
        history_window: Number of recent reps kept in the selection history.
        batch_concurrency: Max users processed at once by ``run_scheduled``.
        scheduler_mode: "hourly" matches each user's delivery hour, "daily"
            processes every auto-generate user.
    """

    def __init__(
        self,
        store: DataStore,
        strategy: SelectionStrategy,
        notifier: Notifier | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = _utcnow,
        history_window: int = 50,
        batch_concurrency: int = 5,
        scheduler_mode: str = "hourly",
    ):
        self.store = store
        self.strategy = strategy
        self.notifier = notifier or Notifier()
        self.rng = rng or random.Random()
        self.clock = clock
        self.history_window = history_window
        self.batch_concurrency = batch_concurrency
        self.scheduler_mode = scheduler_mode
        self.gate = EligibilityGate(store.profiles)
        self.writer = AssignmentWriter(store.assignments, store.profiles)
        self._notifications: set[asyncio.Task] = set()

    def today(self) -> date:
        return self.clock().date()

    def build_history(self, user_id: str) -> RepHistory:
        """Collect every rep the user was assigned, newest first."""
        assignments = self.store.assignments.list_for_user(user_id)
        used = {a.rep_id for a in assignments}
        recent_ids = [a.rep_id for a in assignments[: self.history_window]]
        reps = self.store.reps.get_many(recent_ids)
        return RepHistory(
            used_rep_ids=used,
            recent=[reps[rid] for rid in recent_ids if rid in reps],
        )

    def _with_rep(self, assignment: DailyRepAssignment) -> AssignedRep | None:
        rep = self.store.reps.get(assignment.rep_id)
        if rep is None:
            logger.warning("assignment_rep_missing", assignment_id=assignment.id, rep_id=assignment.rep_id)
            return None
        return AssignedRep(assignment=assignment, rep=rep)

    def get_today(self, user_id: str) -> AssignedRep | None:
        assignment = self.store.assignments.get_for_day(user_id, self.today())
        return self._with_rep(assignment) if assignment else None

    def list_history(self, user_id: str, limit: int = 30) -> list[AssignedRep]:
        entries = []
        for assignment in self.store.assignments.list_for_user(user_id, limit=limit):
            entry = self._with_rep(assignment)
            if entry is not None:
                entries.append(entry)
        return entries

    def eligibility(self, user_id: str) -> Eligibility:
        """Read-only eligibility check; does not consume the free-tier rep."""
        profile = self.gate.load_profile(user_id)
        return check_eligibility(profile, self.today())

    async def request_rep(self, user_id: str, replace: bool = False) -> AssignedRep:
        """Give the user today's rep.

        An existing assignment for today is returned as-is unless ``replace``
        is set, in which case a new rep is selected and written over it.

        Raises:
            DailyRepError: From the eligibility gate or the selector.
        """
        today = self.today()
        if not replace:
            existing = self.store.assignments.get_for_day(user_id, today)
            if existing is not None:
                entry = self._with_rep(existing)
                if entry is not None:
                    return entry

        profile, _ = self.gate.authorize(user_id, today)
        history = self.build_history(user_id)
        rep = await self.strategy.select(profile, history, self.rng)
        assignment = self.writer.upsert_assignment(user_id, today, rep.id)
        logger.info("rep_assigned", user_id=user_id, rep_id=rep.id, day=today.isoformat(), replace=replace)

        self._dispatch_notification(profile, rep)
        return AssignedRep(assignment=assignment, rep=rep)

    def _dispatch_notification(self, profile: UserProfile, rep: Rep) -> None:
        task = asyncio.create_task(self.notifier.notify_rep_ready(profile, rep.id, rep.title))
        self._notifications.add(task)
        task.add_done_callback(self._notifications.discard)

    async def drain_notifications(self) -> None:
        """Wait for every in-flight push notification to finish."""
        if self._notifications:
            await asyncio.gather(*self._notifications)

    def complete(self, user_id: str, assignment_id: str) -> DailyRepAssignment:
        return self.writer.mark_complete(assignment_id, now=self.clock(), user_id=user_id)

    def skip(self, user_id: str, assignment_id: str) -> DailyRepAssignment:
        return self.writer.skip(assignment_id, user_id=user_id)

    async def run_scheduled(self, now: datetime | None = None) -> BatchReport:
        """Assign today's rep to every auto-generate user due at ``now``."""
        now = now or self.clock()
        day = now.date()
        already = self.store.assignments.user_ids_for_day(day)

        due = [
            p for p in self.store.profiles.list_all()
            if p.auto_generate
            and (self.scheduler_mode == "daily" or p.preferred_delivery_hour == now.hour)
        ]
        logger.info("scheduled_run_started", day=day.isoformat(), hour=now.hour, due=len(due))

        semaphore = asyncio.Semaphore(self.batch_concurrency)

        async def run_one(user_id: str) -> BatchResult:
            if user_id in already:
                return BatchResult(user_id=user_id, status=BatchStatus.SKIPPED, reason="already_has_rep")
            async with semaphore:
                try:
                    entry = await self.request_rep(user_id)
                except DailyRepError as e:
                    logger.warning("scheduled_rep_failed", user_id=user_id, kind=e.kind.value)
                    return BatchResult(user_id=user_id, status=BatchStatus.ERROR, reason=e.kind.value)
                except Exception as e:
                    logger.exception("scheduled_rep_crashed", user_id=user_id, error=str(e))
                    return BatchResult(user_id=user_id, status=BatchStatus.ERROR, reason=type(e).__name__)
            return BatchResult(user_id=user_id, status=BatchStatus.SUCCESS, rep_id=entry.rep.id)

        results = await asyncio.gather(*(run_one(p.user_id) for p in due))
        await self.drain_notifications()
        report = BatchReport(run_at=now, day=day, processed=len(due), results=list(results))
        logger.info("scheduled_run_complete", processed=report.processed, assigned=report.assigned_count)
        return report


def build_transports(settings: Settings) -> list[PushTransport]:
    transports: list[PushTransport] = []
    if settings.device_push_url:
        transports.append(DevicePushTransport(settings.device_push_url, settings.device_push_key))
    if settings.vapid_private_key:
        transports.append(WebPushTransport(settings.vapid_private_key, settings.vapid_subject))
    return transports


def build_service(settings: Settings, store: DataStore | None = None) -> DailyRepService:
    """Wire the service from settings."""
    store = store or DataStore(settings.store_dir)
    strategy: SelectionStrategy
    if settings.selection_strategy == "catalog":
        strategy = CatalogStrategy(store.reps)
    else:
        generator = RepGenerator(
            api_key=settings.openai_api_key,
            model=settings.generation_model,
            base_url=settings.openai_base_url,
            timeout=settings.generation_timeout_seconds,
        )
        strategy = GenerativeStrategy(
            generator,
            store.reps,
            store.focus_areas,
            history_window=settings.history_window,
            temperature=settings.generation_temperature,
        )
    return DailyRepService(
        store,
        strategy,
        notifier=Notifier(build_transports(settings)),
        history_window=settings.history_window,
        batch_concurrency=settings.batch_concurrency,
        scheduler_mode=settings.scheduler_mode,
    )
