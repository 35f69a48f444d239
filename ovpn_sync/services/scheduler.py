"""
Timer-driven, single-flight coordinator for reconciliation passes.

A pass is UserReconciler.sync_users followed by DeviceMonitor.refresh. The pass
body is blocking (sacli calls), so it runs in a worker thread while the timer
lives on the event loop. Timer ticks, manual runs and user events share one
in-flight flag: a trigger that arrives mid-pass is reported as skipped, never
queued. stop() only cancels future ticks; a running pass always finishes and is
recorded.
"""
import asyncio
import logging
import time
from collections import deque
from datetime import datetime, timedelta

from ovpn_sync.config import MAX_SYNC_INTERVAL_MINUTES, MIN_SYNC_INTERVAL_MINUTES
from ovpn_sync.events import UserChanged, UserEventKind
from ovpn_sync.exceptions import ConcurrencyError, ValidationError
from ovpn_sync.schemas.sync import (
    PassOutcome,
    PassStatus,
    PassTrigger,
    SchedulerStatistics,
    SchedulerStatus,
    SyncSummary,
)

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 10


def validate_interval(minutes) -> int:
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        raise ValidationError("Invalid interval. Must be an integer number of minutes")
    if not MIN_SYNC_INTERVAL_MINUTES <= minutes <= MAX_SYNC_INTERVAL_MINUTES:
        raise ValidationError(
            f"Interval must be between {MIN_SYNC_INTERVAL_MINUTES} and {MAX_SYNC_INTERVAL_MINUTES} minutes"
        )
    return minutes


class SyncScheduler:

    def __init__(self, reconciler, device_monitor=None, *, interval_minutes: int = 15, history_size: int = DEFAULT_HISTORY_SIZE):
        self.reconciler = reconciler
        self.device_monitor = device_monitor
        self.interval_minutes = validate_interval(interval_minutes)
        self.history: deque[PassOutcome] = deque(maxlen=history_size)
        self.statistics = SchedulerStatistics()
        self.last_pass: PassOutcome | None = None
        self.next_run_at: datetime | None = None
        self._timer_task: asyncio.Task | None = None
        self._pass_task: asyncio.Task | None = None
        self._in_flight = False

    @property
    def is_running(self) -> bool:
        return self._timer_task is not None

    @property
    def is_syncing(self) -> bool:
        return self._in_flight

    # ---------- timer ----------

    def start(self) -> bool:
        """Start the timer. Returns False (and does nothing) if already running. Needs a running loop."""
        if self.is_running:
            logger.warning("Sync scheduler is already running")
            return False
        loop = asyncio.get_running_loop()
        self.next_run_at = datetime.utcnow() + timedelta(minutes=self.interval_minutes)
        self._timer_task = loop.create_task(self._timer_loop())
        logger.info("Sync scheduler started (interval %d min, next run %s)", self.interval_minutes, self.next_run_at)
        return True

    def stop(self) -> bool:
        """Stop future ticks. Returns False if already stopped."""
        if not self.is_running:
            logger.warning("Sync scheduler is not running")
            return False
        self._timer_task.cancel()
        self._timer_task = None
        self.next_run_at = None
        logger.info("Sync scheduler stopped")
        return True

    def update_interval(self, minutes) -> int:
        minutes = validate_interval(minutes)
        was_running = self.is_running
        if was_running:
            self.stop()
        self.interval_minutes = minutes
        logger.info("Sync interval updated to %d minutes", minutes)
        if was_running:
            self.start()
        return minutes

    async def _timer_loop(self):
        while True:
            delay = max(0.0, (self.next_run_at - datetime.utcnow()).total_seconds())
            await asyncio.sleep(delay)
            self.next_run_at = datetime.utcnow() + timedelta(minutes=self.interval_minutes)
            try:
                await self.trigger(PassTrigger.SCHEDULED)
            except Exception as e:
                # Already recorded in history; the next tick proceeds normally
                logger.debug("Scheduled pass failed: %s", e)

    # ---------- passes ----------

    def _begin_pass(self, trigger: PassTrigger, dry_run: bool, delete_orphaned: bool, user_id: str | None) -> asyncio.Task:
        if self._in_flight:
            raise ConcurrencyError("Sync already in progress")
        self._in_flight = True
        self._pass_task = asyncio.get_running_loop().create_task(
            self._execute(trigger, dry_run, delete_orphaned, user_id)
        )
        return self._pass_task

    async def trigger(
        self,
        trigger: PassTrigger,
        *,
        dry_run: bool = False,
        delete_orphaned: bool = False,
        user_id: str | None = None,
    ) -> PassOutcome:
        """
        Run one pass unless one is already in flight. Returns the outcome (with the
        unredacted summary); re-raises the pass exception after recording it.
        """
        try:
            task = self._begin_pass(trigger, dry_run, delete_orphaned, user_id)
        except ConcurrencyError as e:
            self.statistics.skipped_passes += 1
            logger.warning("%s sync skipped: %s", trigger.value.capitalize(), e)
            return PassOutcome(
                status=PassStatus.SKIPPED,
                trigger=trigger,
                started_at=datetime.utcnow(),
                dry_run=dry_run,
                user_id=user_id,
                reason=str(e),
            )
        # shield: cancelling the caller (e.g. stop() during a tick) must not cut the pass short
        outcome, error = await asyncio.shield(task)
        if error is not None:
            raise error
        return outcome

    async def run_now(self, dry_run: bool = False, delete_orphaned: bool = False, user_id: str | None = None) -> PassOutcome:
        logger.info("Manual sync triggered")
        return await self.trigger(PassTrigger.MANUAL, dry_run=dry_run, delete_orphaned=delete_orphaned, user_id=user_id)

    def _run_pass(self, dry_run: bool, delete_orphaned: bool, user_id: str | None) -> SyncSummary:
        summary = self.reconciler.sync_users(dry_run=dry_run, delete_orphaned=delete_orphaned, user_id=user_id)
        if self.device_monitor is not None and not dry_run and user_id is None:
            summary.devices = self.device_monitor.refresh()
        return summary

    async def _execute(self, trigger, dry_run, delete_orphaned, user_id):
        started_at = datetime.utcnow()
        t0 = time.monotonic()
        logger.info(
            "Starting %s user synchronization (pass %d)", trigger.value, self.statistics.total_passes + 1
        )
        loop = asyncio.get_running_loop()
        try:
            summary = await loop.run_in_executor(None, self._run_pass, dry_run, delete_orphaned, user_id)
        except Exception as e:
            outcome = PassOutcome(
                status=PassStatus.FAILED,
                trigger=trigger,
                started_at=started_at,
                duration_ms=int((time.monotonic() - t0) * 1000),
                dry_run=dry_run,
                user_id=user_id,
                error=str(e),
            )
            self._record(outcome)
            logger.error("User synchronization failed after %dms: %s", outcome.duration_ms, e)
            return outcome, e
        finally:
            self._in_flight = False
            self._pass_task = None

        has_errors = bool(summary.errors) or bool(summary.devices and summary.devices.errors)
        outcome = PassOutcome(
            status=PassStatus.PARTIAL if has_errors else PassStatus.SUCCESS,
            trigger=trigger,
            started_at=started_at,
            duration_ms=int((time.monotonic() - t0) * 1000),
            dry_run=dry_run,
            user_id=user_id,
            summary=summary,
        )
        self._record(outcome)
        logger.info("User synchronization %s in %dms: %s", outcome.status.value, outcome.duration_ms, summary.counts())
        return outcome, None

    def _record(self, outcome: PassOutcome) -> None:
        stored = outcome.model_copy(
            update={"summary": outcome.summary.redacted() if outcome.summary else None}
        )
        self.history.appendleft(stored)
        self.last_pass = stored

        stats = self.statistics
        stats.total_passes += 1
        if outcome.status == PassStatus.FAILED:
            stats.failed_passes += 1
            return
        if outcome.status == PassStatus.PARTIAL:
            stats.partial_passes += 1
        else:
            stats.successful_passes += 1
        counts = outcome.summary.counts()
        stats.created += counts["created"]
        stats.updated += counts["updated"]
        stats.deleted += counts["deleted"]
        stats.errors += counts["errors"]

    # ---------- events ----------

    async def handle_user_event(self, event: UserChanged) -> PassOutcome | None:
        """Translate a user-management event into a single-user pass."""
        try:
            return await self.trigger(
                PassTrigger.EVENT,
                user_id=event.user_id,
                delete_orphaned=event.kind == UserEventKind.DELETED,
            )
        except Exception as e:
            logger.warning("Event-triggered sync for user %s failed: %s", event.user_id, e)
            return None

    # ---------- observability ----------

    def reset_stats(self) -> None:
        self.statistics = SchedulerStatistics()
        self.history.clear()
        self.last_pass = None
        logger.info("Scheduler statistics reset")

    def get_status(self) -> SchedulerStatus:
        return SchedulerStatus(
            is_running=self.is_running,
            is_syncing=self.is_syncing,
            interval_minutes=self.interval_minutes,
            next_run_at=self.next_run_at if self.is_running else None,
            last_pass=self.last_pass,
            history=list(self.history),
            statistics=self.statistics.model_copy(),
            success_rate=self.statistics.success_rate,
        )

    async def shutdown(self) -> None:
        """Stop the timer and wait for an in-flight pass to finish."""
        if self.is_running:
            self.stop()
        task = self._pass_task
        if task is not None:
            await asyncio.shield(task)
