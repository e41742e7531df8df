"""Tests for the end-to-end daily rep flow and the scheduled batch."""

import asyncio
import random
from datetime import date, datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from daily_rep.core.generator import RepGenerator
from daily_rep.core.selector import CatalogStrategy, GenerativeStrategy
from daily_rep.errors import DailyRepError, ErrorKind
from daily_rep.models.profile import FocusArea, UserProfile
from daily_rep.models.rep import GeneratedRep, Rep
from daily_rep.notifications.push import Notifier
from daily_rep.service import BatchStatus, DailyRepService
from daily_rep.storage.store import DataStore

NOW = datetime(2024, 1, 5, 9, 15, tzinfo=timezone.utc)
TRIAL_ENDED = datetime(2023, 12, 1, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path):
    store = DataStore(tmp_path)
    store.focus_areas.upsert(FocusArea(id="fitness", title="Fitness"))
    for i in range(4):
        store.reps.insert(Rep(id=f"fit-{i}", title=f"Fitness rep {i}", focus_area_id="fitness",
                              difficulty_level="Beginner"))
    store.profiles.save(UserProfile(
        user_id="user-1",
        focus_area_ids=["fitness"],
        push_enabled=True,
        push_token="device-token",
    ))
    return store


@pytest.fixture
def transport():
    transport = MagicMock()
    transport.name = "fake"
    transport.accepts.return_value = True
    transport.send = AsyncMock()
    return transport


def _service(store, transport=None, strategy=None, **kwargs) -> DailyRepService:
    return DailyRepService(
        store,
        strategy or CatalogStrategy(store.reps),
        notifier=Notifier([transport] if transport else []),
        rng=random.Random(7),
        clock=lambda: NOW,
        **kwargs,
    )


class TestRequestRep:
    async def test_assigns_and_notifies(self, store, transport):
        service = _service(store, transport)

        entry = await service.request_rep("user-1")
        await service.drain_notifications()

        assert entry.assignment.assigned_date == date(2024, 1, 5)
        assert entry.rep.focus_area_id == "fitness"
        transport.send.assert_awaited_once()
        _, message = transport.send.call_args.args
        assert message.body == entry.rep.title
        assert message.data == {"type": "new_rep", "rep_id": entry.rep.id}

    async def test_second_request_returns_existing(self, store, transport):
        service = _service(store, transport)
        first = await service.request_rep("user-1")
        second = await service.request_rep("user-1")
        await service.drain_notifications()

        assert second.assignment.id == first.assignment.id
        assert second.rep.id == first.rep.id
        assert transport.send.await_count == 1

    async def test_replace_picks_unused_rep(self, store):
        service = _service(store)
        first = await service.request_rep("user-1")
        replaced = await service.request_rep("user-1", replace=True)

        assert replaced.rep.id != first.rep.id
        assert replaced.assignment.id == first.assignment.id
        assert len(store.assignments.list_for_user("user-1")) == 1

    async def test_notification_failure_is_swallowed(self, store, transport):
        transport.send.side_effect = RuntimeError("push gateway down")
        service = _service(store, transport)

        entry = await service.request_rep("user-1")
        await service.drain_notifications()

        assert store.assignments.get(entry.assignment.id) is not None

    async def test_slow_notification_does_not_delay_response(self, store, transport):
        release = asyncio.Event()

        async def slow_send(profile, message):
            await release.wait()

        transport.send = AsyncMock(side_effect=slow_send)
        service = _service(store, transport)

        entry = await asyncio.wait_for(service.request_rep("user-1"), timeout=1)

        assert entry.rep.id
        release.set()
        await service.drain_notifications()
        transport.send.assert_awaited_once()

    async def test_missing_profile(self, store):
        with pytest.raises(DailyRepError) as exc_info:
            await _service(store).request_rep("ghost")
        assert exc_info.value.kind == ErrorKind.PROFILE_NOT_FOUND

    async def test_weekly_limit(self, store):
        store.profiles.update("user-1", trial_ends_at=TRIAL_ENDED, last_free_rep_date=date(2024, 1, 1))
        with pytest.raises(DailyRepError) as exc_info:
            await _service(store).request_rep("user-1")
        assert exc_info.value.kind == ErrorKind.WEEKLY_LIMIT_REACHED
        assert exc_info.value.retry_after_days == 3
        assert store.assignments.get_for_day("user-1", date(2024, 1, 5)) is None

    async def test_failed_generation_still_uses_free_rep(self, store):
        store.profiles.update("user-1", trial_ends_at=TRIAL_ENDED)
        strategy = MagicMock()
        strategy.select = AsyncMock(side_effect=DailyRepError(ErrorKind.GENERATION_TIMEOUT))

        with pytest.raises(DailyRepError):
            await _service(store, strategy=strategy).request_rep("user-1")

        assert store.profiles.get("user-1").last_free_rep_date == date(2024, 1, 5)

    async def test_generated_rep_excluded_from_later_selection(self, store):
        generator = MagicMock()
        generator.generate = AsyncMock(return_value=GeneratedRep(
            title="Balance on one leg while brushing teeth", focus_area="Fitness",
            difficulty_level="Beginner",
        ))
        generative = _service(store, strategy=GenerativeStrategy(generator, store.reps, store.focus_areas))
        generated = await generative.request_rep("user-1")

        assert store.reps.get(generated.rep.id).title == generated.rep.title

        history = generative.build_history("user-1")
        assert generated.rep.id in history.used_rep_ids
        catalog = CatalogStrategy(store.reps)
        profile = store.profiles.get("user-1")
        for seed in range(20):
            rep = await catalog.select(profile, history, random.Random(seed))
            assert rep.id != generated.rep.id

    async def test_history_lists_newest_first(self, store):
        service = _service(store)
        await service.request_rep("user-1")
        service.clock = lambda: datetime(2024, 1, 6, 9, tzinfo=timezone.utc)
        await service.request_rep("user-1")

        history = service.list_history("user-1")
        assert [h.assignment.assigned_date for h in history] == [date(2024, 1, 6), date(2024, 1, 5)]
        assert history[0].rep.id != history[1].rep.id


class TestRunScheduled:
    async def test_hourly_selects_due_users(self, store):
        store.profiles.update("user-1", auto_generate=True, preferred_delivery_hour=9)
        store.profiles.save(UserProfile(user_id="user-2", focus_area_ids=["fitness"],
                                        auto_generate=True, preferred_delivery_hour=18))
        store.profiles.save(UserProfile(user_id="user-3", focus_area_ids=["fitness"]))

        report = await _service(store).run_scheduled()

        assert report.processed == 1
        assert report.results[0].user_id == "user-1"
        assert report.results[0].status == BatchStatus.SUCCESS
        assert report.assigned_count == 1

    async def test_daily_mode_and_existing_assignments(self, store):
        store.profiles.update("user-1", auto_generate=True)
        store.profiles.save(UserProfile(user_id="user-2", auto_generate=True))
        service = _service(store, scheduler_mode="daily")
        await service.request_rep("user-1")

        report = await service.run_scheduled()

        by_user = {r.user_id: r for r in report.results}
        assert by_user["user-1"].status == BatchStatus.SKIPPED
        assert by_user["user-2"].status == BatchStatus.ERROR
        assert by_user["user-2"].reason == ErrorKind.NO_FOCUS_AREAS.value

    async def test_unexpected_failure_is_isolated_per_user(self, store):
        store.profiles.update("user-1", auto_generate=True)
        store.profiles.save(UserProfile(user_id="user-2", focus_area_ids=["fitness"], auto_generate=True))
        catalog = CatalogStrategy(store.reps)

        async def select(profile, history, rng):
            if profile.user_id == "user-2":
                raise IndexError("list index out of range")
            return await catalog.select(profile, history, rng)

        strategy = MagicMock()
        strategy.select = AsyncMock(side_effect=select)

        report = await _service(store, strategy=strategy, scheduler_mode="daily").run_scheduled()

        by_user = {r.user_id: r for r in report.results}
        assert by_user["user-1"].status == BatchStatus.SUCCESS
        assert by_user["user-2"].status == BatchStatus.ERROR
        assert by_user["user-2"].reason == "IndexError"

    async def test_empty_generation_choices_reported_per_user(self, store):
        store.profiles.update("user-1", auto_generate=True)
        generator = RepGenerator(api_key="test-key")
        generator.client = MagicMock()
        generator.client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[]))
        strategy = GenerativeStrategy(generator, store.reps, store.focus_areas)

        report = await _service(store, strategy=strategy, scheduler_mode="daily").run_scheduled()

        assert report.results[0].status == BatchStatus.ERROR
        assert report.results[0].reason == ErrorKind.INVALID_GENERATION_RESPONSE.value
