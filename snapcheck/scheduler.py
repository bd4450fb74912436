"""Cron scheduler for checklist runs.

Every tick, the scheduler finds the schedules whose cron expression
fired since the previous tick and dispatches each one as its own
asyncio task. Runs are never awaited by the loop itself, so a slow or
broken worker cannot starve other checklists.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

import aiosqlite
from croniter import croniter

from snapcheck.errors import WorkerUnavailableError
from snapcheck.notify.events import EventType, RunEventEmitter
from snapcheck.persistence.checklists import ChecklistStore
from snapcheck.persistence.schedules import ScheduleStore
from snapcheck.run.runner import ChecklistRunner
from snapcheck.schemas.entities import Schedule
from snapcheck.schemas.run import FlowRunSummary

logger = logging.getLogger(__name__)

_DEFAULT_INTERVAL_S = 60.0


def is_valid_cron(expression: str) -> bool:
    """Whether ``expression`` is a cron expression croniter can schedule."""
    return croniter.is_valid(expression)


def is_due(expression: str, since: datetime, now: datetime) -> bool:
    """Whether the cron expression has a fire time in ``(since, now]``."""
    next_fire = croniter(expression, since).get_next(datetime)
    return next_fire <= now


class ChecklistScheduler:
    """Dispatches scheduled checklist runs.

    ``start()`` launches the tick loop in the background; ``tick()`` can
    also be driven directly (tests, one-shot CLI use).
    """

    def __init__(
        self,
        db: aiosqlite.Connection,
        runner: ChecklistRunner,
        emitter: RunEventEmitter | None = None,
        interval: float = _DEFAULT_INTERVAL_S,
    ) -> None:
        self._schedules = ScheduleStore(db)
        self._checklists = ChecklistStore(db)
        self._runner = runner
        self._emitter = emitter
        self._interval = interval
        self._last_tick: datetime | None = None
        self._loop_task: asyncio.Task[None] | None = None
        self._runs: set[asyncio.Task[None]] = set()

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        """Start the background tick loop if not already running."""
        if self.running:
            return
        self._last_tick = datetime.now(UTC)
        self._loop_task = asyncio.get_running_loop().create_task(self._tick_loop())
        logger.info("Scheduler started (interval=%.0fs)", self._interval)

    async def stop(self) -> None:
        """Stop the tick loop and wait for in-flight runs to finish."""
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        await self.wait_idle()
        logger.info("Scheduler stopped")

    async def wait_idle(self) -> None:
        """Wait until every dispatched run has finished."""
        if self._runs:
            await asyncio.gather(*list(self._runs), return_exceptions=True)

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.tick()
            except Exception:
                logger.exception("Scheduler tick failed")

    async def tick(self, now: datetime | None = None) -> list[Schedule]:
        """Dispatch every schedule due since the previous tick.

        Returns:
            The schedules that were dispatched.
        """
        now = now or datetime.now(UTC)
        since = self._last_tick or now
        self._last_tick = now

        due: list[Schedule] = []
        for schedule in await self._schedules.find_all_active():
            try:
                fire = is_due(schedule.cron, since, now)
            except (ValueError, KeyError):
                logger.warning("Schedule %d has an invalid cron %r", schedule.id, schedule.cron)
                continue
            if fire:
                due.append(schedule)
                self._dispatch(schedule)

        if due:
            logger.info("Dispatched %d scheduled run(s)", len(due))
        return due

    def _dispatch(self, schedule: Schedule) -> None:
        task = asyncio.get_running_loop().create_task(self._run_scheduled(schedule))
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)

    async def _run_scheduled(self, schedule: Schedule) -> None:
        checklist = await self._checklists.find_by_id(schedule.checklist_id)
        if checklist is None:
            logger.warning(
                "Schedule %d points to missing checklist %d", schedule.id, schedule.checklist_id,
            )
            return

        context = {
            "api_key_id": checklist.api_key_id,
            "schedule_id": schedule.id,
            "checklist": checklist.to_response(),
        }
        await self._emit(EventType.SCHEDULED_CHECKLIST_START, **context)

        try:
            flows = await self._runner.run(checklist)
        except WorkerUnavailableError as exc:
            await self._emit(EventType.SCHEDULED_CHECKLIST_END, **context, error=exc.to_dict())
            return
        except Exception:
            logger.exception("Scheduled run of checklist %d crashed", checklist.id)
            return

        total = FlowRunSummary.total([f.summary for f in flows])
        await self._emit(
            EventType.SCHEDULED_CHECKLIST_END,
            **context,
            flows=[f.to_response() for f in flows],
            summary=total.model_dump(),
        )

    async def _emit(self, event_type: EventType, **data) -> None:
        if self._emitter is not None:
            await self._emitter.emit(event_type, **data)
