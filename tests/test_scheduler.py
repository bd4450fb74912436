"""Tests for snapcheck.scheduler: cron matching and scheduled runs."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from snapcheck.errors import WorkerUnavailableError
from snapcheck.notify.events import EventType, RunEventEmitter
from snapcheck.persistence.api_keys import ApiKeyStore
from snapcheck.persistence.checklists import ChecklistStore
from snapcheck.persistence.database import close_db, init_db
from snapcheck.persistence.schedules import ScheduleStore
from snapcheck.run.runner import ChecklistRunner
from snapcheck.run.worker_client import WorkerClient
from snapcheck.scheduler import ChecklistScheduler, is_due, is_valid_cron
from snapcheck.schemas.run import ObservedAssertion, ObservedFlow

_T0 = datetime(2026, 3, 1, 12, 0, 30, tzinfo=UTC)

# ── Factories ──────────────────────────────────────────────────────


def _make_runner(db, *responses) -> ChecklistRunner:
    client = WorkerClient()
    client.invoke = AsyncMock(side_effect=list(responses))
    return ChecklistRunner(db, client)


async def _make_scheduled_checklist(db, cron: str = "* * * * *"):
    api_key, _ = await ApiKeyStore(db).create()
    checklist = await ChecklistStore(db).create(api_key.id, "http://worker.test")
    schedule = await ScheduleStore(db).create(checklist.id, cron)
    return api_key, checklist, schedule


# ── Cron helpers ──────────────────────────────────────────────────


class TestCron:
    def test_valid_expressions(self):
        assert is_valid_cron("* * * * *")
        assert is_valid_cron("*/15 9-17 * * mon-fri")

    def test_invalid_expressions(self):
        assert not is_valid_cron("every minute")
        assert not is_valid_cron("61 * * * *")

    def test_is_due_within_window(self):
        assert is_due("* * * * *", _T0, _T0 + timedelta(seconds=40))

    def test_not_due_before_next_fire(self):
        assert not is_due("0 * * * *", _T0, _T0 + timedelta(minutes=30))

    def test_due_exactly_at_fire_time(self):
        assert is_due("0 13 * * *", _T0, datetime(2026, 3, 1, 13, 0, tzinfo=UTC))


# ── ChecklistScheduler ────────────────────────────────────────────


@pytest.mark.asyncio
async def test_first_tick_dispatches_nothing(tmp_path):
    db = await init_db(str(tmp_path / "test.db"))
    await _make_scheduled_checklist(db)
    scheduler = ChecklistScheduler(db, _make_runner(db))

    assert await scheduler.tick(now=_T0) == []
    await close_db(db)


@pytest.mark.asyncio
async def test_due_schedule_runs_and_emits_events(tmp_path):
    db = await init_db(str(tmp_path / "test.db"))
    api_key, checklist, schedule = await _make_scheduled_checklist(db)
    observed = [ObservedFlow(name="F", assertions=[ObservedAssertion(name="a", snapshot="1")])]
    emitter = RunEventEmitter()
    events = []
    emitter.add_listener(events.append)
    scheduler = ChecklistScheduler(db, _make_runner(db, observed), emitter)

    await scheduler.tick(now=_T0)
    due = await scheduler.tick(now=_T0 + timedelta(minutes=1))
    await scheduler.wait_idle()

    assert [s.id for s in due] == [schedule.id]
    assert [e.type for e in events] == [
        EventType.SCHEDULED_CHECKLIST_START,
        EventType.SCHEDULED_CHECKLIST_END,
    ]
    start, end = events
    assert start.data["api_key_id"] == api_key.id
    assert start.data["checklist"] == {"id": checklist.id, "workerOrigin": "http://worker.test"}
    assert end.data["summary"] == {"match": 0, "miss": 0, "new": 1}
    assert end.data["flows"][0]["name"] == "F"

    await close_db(db)


@pytest.mark.asyncio
async def test_worker_failure_reported_in_end_event(tmp_path):
    db = await init_db(str(tmp_path / "test.db"))
    await _make_scheduled_checklist(db)
    emitter = RunEventEmitter()
    events = []
    emitter.add_listener(events.append)
    scheduler = ChecklistScheduler(
        db, _make_runner(db, WorkerUnavailableError("down")), emitter,
    )

    await scheduler.tick(now=_T0)
    await scheduler.tick(now=_T0 + timedelta(minutes=1))
    await scheduler.wait_idle()

    assert events[-1].type == EventType.SCHEDULED_CHECKLIST_END
    assert events[-1].data["error"]["code"] == 5002
    assert "flows" not in events[-1].data

    await close_db(db)


@pytest.mark.asyncio
async def test_invalid_stored_cron_is_skipped(tmp_path):
    db = await init_db(str(tmp_path / "test.db"))
    _, checklist, _ = await _make_scheduled_checklist(db, cron="not a cron")
    good = await ScheduleStore(db).create(checklist.id, "* * * * *")
    scheduler = ChecklistScheduler(db, _make_runner(db, []))

    await scheduler.tick(now=_T0)
    due = await scheduler.tick(now=_T0 + timedelta(minutes=1))
    await scheduler.wait_idle()

    assert [s.id for s in due] == [good.id]
    await close_db(db)


@pytest.mark.asyncio
async def test_start_and_stop(tmp_path):
    db = await init_db(str(tmp_path / "test.db"))
    scheduler = ChecklistScheduler(db, _make_runner(db), interval=3600)

    scheduler.start()
    assert scheduler.running
    await asyncio.sleep(0)
    await scheduler.stop()
    assert not scheduler.running

    await close_db(db)
