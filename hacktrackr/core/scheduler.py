"""
HackTrackr — Deadline Reminder Scheduler.

A periodic sweep: every tick pulls candidate quizzes and hackathon events
from the store, asks the evaluator which reminders are due, delivers them,
and records the watermark for each successful delivery.

This module is transport-agnostic: it depends on the ObligationStore and
NotificationPort protocols, not on specific implementations.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from hacktrackr.core.evaluator import (
    NotificationDecision,
    NotificationTarget,
    ReminderPolicy,
    decide_deadline,
    decide_quiz,
)

if TYPE_CHECKING:
    from hacktrackr.ports.notification_port import NotificationPort
    from hacktrackr.ports.obligation_port import ObligationStore

logger = logging.getLogger(__name__)

JOB_ID = "deadline_reminders"


@dataclass
class TickReport:
    """What one tick did, for logging and tests."""

    now: datetime
    sent: int = 0
    failed: int = 0
    stale: int = 0
    aborted_batches: int = 0


def build_trigger(
    interval_minutes: int = 15,
    cron: str = "",
    tz: tzinfo | None = None,
) -> BaseTrigger:
    """Return a cron trigger if a crontab string is given, else an interval."""
    tz = tz or timezone.utc
    if cron.strip():
        return CronTrigger.from_crontab(cron.strip(), timezone=tz)
    return IntervalTrigger(minutes=interval_minutes, timezone=tz)


def policy_from_settings() -> ReminderPolicy:
    from hacktrackr.config import settings

    return ReminderPolicy(
        reminder_lead=timedelta(minutes=settings.REMINDER_LEAD_MINUTES),
        reminder_query_window=timedelta(hours=settings.REMINDER_QUERY_WINDOW_HOURS),
        deadline_window_days=settings.DEADLINE_WINDOW_DAYS,
        cooldown=timedelta(hours=settings.NOTIFY_COOLDOWN_HOURS),
    )


class ReminderScheduler:
    """Owns the periodic reminder job and its lifecycle.

    Store and notifier are injected; nothing here is module-global.
    """

    def __init__(
        self,
        store: ObligationStore,
        notifier: NotificationPort,
        policy: ReminderPolicy | None = None,
        trigger: BaseTrigger | None = None,
        tz: tzinfo | None = None,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._policy = policy or ReminderPolicy()
        self._tz = tz or timezone.utc
        self._trigger = trigger or build_trigger(tz=self._tz)
        self._scheduler: AsyncIOScheduler | None = None
        self._tick_lock = asyncio.Lock()
        self._inflight: asyncio.Future | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Register the tick job and start the timer. Needs a running event loop."""
        if self.running:
            logger.info("Reminder scheduler already running, skipping start")
            return

        self._scheduler = AsyncIOScheduler(timezone=self._tz)
        self._scheduler.add_job(
            self._scheduled_tick,
            trigger=self._trigger,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=300,
        )
        self._scheduler.start()
        logger.info("Reminder scheduler started with trigger %s", self._trigger)

    async def stop(self) -> None:
        """Stop the timer, then wait for an in-flight tick to finish.

        The executor cancels its pending futures on shutdown, so the timer is
        paused and the owned tick task awaited before shutdown is called.
        """
        if self._scheduler is None:
            return
        scheduler = self._scheduler
        self._scheduler = None
        if scheduler.running:
            scheduler.pause()
            while self._inflight is not None and not self._inflight.done():
                await asyncio.wait({self._inflight})
            scheduler.shutdown(wait=False)
        async with self._tick_lock:
            pass
        logger.info("Reminder scheduler stopped")

    async def _scheduled_tick(self) -> None:
        # The sweep runs in a task we own; cancelling this wrapper must not
        # interrupt a send before its watermark is written.
        task = asyncio.ensure_future(self.run_tick())
        self._inflight = task
        task.add_done_callback(self._clear_inflight)
        await asyncio.shield(task)

    def _clear_inflight(self, task: asyncio.Future) -> None:
        if self._inflight is task:
            self._inflight = None

    async def run_tick(self, now: datetime | None = None) -> TickReport:
        """Run one sweep. Never raises."""
        async with self._tick_lock:
            if now is None:
                now = datetime.now(timezone.utc)
            report = TickReport(now=now)
            try:
                await self._sweep_quizzes(now, report)
                await self._sweep_events(now, report)
            except Exception as exc:
                logger.exception("Reminder tick crashed: %s", exc)
            logger.info(
                "Reminder tick at %s: sent=%d failed=%d stale=%d aborted_batches=%d",
                now.isoformat(), report.sent, report.failed,
                report.stale, report.aborted_batches,
            )
            return report

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def _sweep_quizzes(self, now: datetime, report: TickReport) -> None:
        try:
            quizzes = self._store.query_reminders(now, self._policy.reminder_query_window)
        except Exception as exc:
            logger.error("Quiz query failed, skipping quiz batch: %s", exc)
            report.aborted_batches += 1
            return

        for quiz in quizzes:
            try:
                decision = decide_quiz(quiz, now, self._policy, self._tz)
                if decision is None:
                    continue
                await self._deliver_and_mark(decision, now, report)
            except Exception as exc:
                logger.error("Reminder for quiz #%s failed: %s", quiz.id, exc)
                report.failed += 1

    async def _sweep_events(self, now: datetime, report: TickReport) -> None:
        try:
            events = self._store.query_events_with_recipients()
        except Exception as exc:
            logger.error("Event query failed, skipping deadline batch: %s", exc)
            report.aborted_batches += 1
            return

        for event in events:
            for deadline in event.deadlines:
                try:
                    decision = decide_deadline(event, deadline, now, self._policy, self._tz)
                    if decision is None:
                        continue
                    await self._deliver_and_mark(decision, now, report)
                except Exception as exc:
                    logger.error(
                        "Reminder for event #%s deadline %s failed: %s",
                        event.id, deadline.id, exc,
                    )
                    report.failed += 1

    async def _deliver_and_mark(
        self,
        decision: NotificationDecision,
        now: datetime,
        report: TickReport,
    ) -> None:
        """Send one reminder; record the watermark only if the transport accepted it."""
        delivered = await self._notifier.deliver(
            decision.recipient, decision.subject, decision.body,
        )
        if not delivered:
            logger.warning(
                "Reminder not delivered (%s #%s); will retry next tick",
                decision.target.value, decision.obligation_id,
            )
            report.failed += 1
            return

        if decision.target is NotificationTarget.DEADLINE:
            marked = self._store.mark_deadline_notified(
                decision.obligation_id, decision.deadline_id, now,
            )
        else:
            marked = self._store.mark_quiz_notified(decision.obligation_id, now)

        report.sent += 1
        if marked:
            logger.info(
                "Reminder sent for %s #%s %s",
                decision.target.value, decision.obligation_id, decision.deadline_id or "",
            )
        else:
            logger.debug(
                "%s #%s %s vanished or moved on before it could be marked",
                decision.target.value, decision.obligation_id, decision.deadline_id or "",
            )
            report.stale += 1
