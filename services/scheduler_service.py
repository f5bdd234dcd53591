"""
Scheduler Service - Materialises Scheduled Workflows into Admissions.

Each tick covers the window (last tick end, now]. ONCE entries whose
pointer date falls in the window are admitted and deleted. DAILY, WEEKLY
and MONTHLY entries are projected onto the latest matching instant at or
before now (same time of day, same weekday, same day of month clamped to
the month's last day) and admitted when that instant falls in the window.

Only one node runs a tick at a time ("scheduler" lock). A node that
finds the lock taken still advances its window: the holder covers it.

Exports:
    SchedulerService: One tick of the scheduler loop
    project_pointer_date: Latest firing instant of a periodic schedule
"""

import calendar
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from config import OrchestrationConfig
from config.defaults import LockDefaults, OrchestrationDefaults
from core.models import LoopRunResult, ScheduleFrequence, ScheduledWorkflow
from core.utils import utc_now
from infrastructure.interface_repository import IExecutionStore, ILockService
from services.orchestrator_service import OrchestratorService
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.WORKER, "SchedulerService")

_PERIODIC_FREQUENCIES = (ScheduleFrequence.DAILY, ScheduleFrequence.WEEKLY, ScheduleFrequence.MONTHLY)


def _at_time_of(day: datetime, pointer: datetime) -> datetime:
    return day.replace(
        hour=pointer.hour,
        minute=pointer.minute,
        second=pointer.second,
        microsecond=pointer.microsecond,
    )


def _in_month(year: int, month: int, pointer: datetime) -> datetime:
    day = min(pointer.day, calendar.monthrange(year, month)[1])
    return pointer.replace(year=year, month=month, day=day)


def project_pointer_date(
    pointer_date: datetime,
    frequence: ScheduleFrequence,
    now: datetime
) -> Optional[datetime]:
    """
    Latest instant at or before now on which a periodic schedule fires.

    Returns:
        None when the pointer date is in the future

    Example:
        >>> project_pointer_date(datetime(2026, 1, 31, 8, tzinfo=timezone.utc),
        ...                      ScheduleFrequence.MONTHLY, datetime(2026, 2, 28, 9, tzinfo=timezone.utc))
        datetime.datetime(2026, 2, 28, 8, 0, tzinfo=datetime.timezone.utc)
    """
    pointer = pointer_date.astimezone(timezone.utc)
    now = now.astimezone(timezone.utc)
    if pointer > now:
        return None

    if frequence == ScheduleFrequence.DAILY:
        candidate = _at_time_of(now, pointer)
        if candidate > now:
            candidate -= timedelta(days=1)

    elif frequence == ScheduleFrequence.WEEKLY:
        days_back = (now.weekday() - pointer.weekday()) % 7
        candidate = _at_time_of(now - timedelta(days=days_back), pointer)
        if candidate > now:
            candidate -= timedelta(days=7)

    elif frequence == ScheduleFrequence.MONTHLY:
        candidate = _in_month(now.year, now.month, pointer)
        if candidate > now:
            year, month = (now.year - 1, 12) if now.month == 1 else (now.year, now.month - 1)
            candidate = _in_month(year, month, pointer)

    else:
        raise ValueError(f"{frequence.value} is not a periodic frequency")

    return candidate if candidate >= pointer else None


class SchedulerService:
    """
    Admits scheduled workflows that are due.

    Usage:
        scheduler = SchedulerService(store, locks, orchestrator, config.orchestration)
        result = scheduler.run_once()
    """

    def __init__(
        self,
        store: IExecutionStore,
        lock_service: ILockService,
        orchestrator: OrchestratorService,
        config: OrchestrationConfig
    ):
        self.store = store
        self.lock_service = lock_service
        self.orchestrator = orchestrator
        self.config = config
        self.last_tick_end: Optional[datetime] = None

    def run_once(self, now: Optional[datetime] = None) -> LoopRunResult:
        """
        Run one scheduler tick over (last_tick_end, now].

        The first tick after start covers one scheduler period.
        """
        now = now or utc_now()
        lower = self.last_tick_end or now - timedelta(seconds=self.config.periodic_scheduler_check_secs)
        self.last_tick_end = now
        result = LoopRunResult(run_type="scheduler")

        if not self.lock_service.try_lock(LockDefaults.SCHEDULER_LOCK):
            logger.debug("[SCHEDULER] Lock held elsewhere - skipping tick")
            result.skipped = True
            result.complete(success=True)
            return result

        try:
            logger.debug(f"[SCHEDULER] Tick window ({lower.isoformat()}, {now.isoformat()}]")

            for scheduled in self._once_in_window(lower, now):
                result.items_scanned += 1
                self._admit(scheduled, result)
                self.store.delete_scheduled_workflow(scheduled.dataset_id)

            for scheduled in self._all_periodic():
                result.items_scanned += 1
                fire_at = project_pointer_date(scheduled.pointer_date, scheduled.schedule_frequence, now)
                if fire_at is not None and lower < fire_at <= now:
                    self._admit(scheduled, result)

            result.complete(success=not result.errors, error="; ".join(result.errors) or None)
            if result.items_acted or result.errors:
                logger.info(
                    f"[SCHEDULER] Tick complete: admitted={result.items_acted}, "
                    f"failed={len(result.errors)}, scanned={result.items_scanned}"
                )

        except Exception as e:
            logger.error(f"[SCHEDULER] ❌ Tick failed: {e}", exc_info=True)
            result.complete(success=False, error=str(e))

        finally:
            self.lock_service.unlock(LockDefaults.SCHEDULER_LOCK)

        return result

    def _admit(self, scheduled: ScheduledWorkflow, result: LoopRunResult) -> None:
        try:
            execution = self.orchestrator.add_workflow_execution(
                scheduled.dataset_id,
                priority=scheduled.workflow_priority,
                actor=OrchestrationDefaults.SYSTEM_USER,
            )
        except Exception as e:
            logger.warning(
                f"[SCHEDULER] ⚠️ Scheduled {scheduled.schedule_frequence.value} workflow of dataset "
                f"{scheduled.dataset_id} not admitted: {e}"
            )
            result.errors.append(f"{scheduled.dataset_id}: {e}")
            return

        result.items_acted += 1
        result.actions_taken.append({
            "action": "admit_scheduled_workflow",
            "dataset_id": scheduled.dataset_id,
            "frequence": scheduled.schedule_frequence.value,
            "execution_id": execution.id,
        })
        logger.info(
            f"[SCHEDULER] 📤 Admitted {scheduled.schedule_frequence.value} workflow of dataset "
            f"{scheduled.dataset_id} as execution {execution.id}"
        )

    def _once_in_window(self, lower: datetime, upper: datetime) -> List[ScheduledWorkflow]:
        page_size = self.config.scheduled_workflows_per_request
        collected: List[ScheduledWorkflow] = []
        page = 0
        while True:
            batch = self.store.get_scheduled_workflows_in_range(
                ScheduleFrequence.ONCE, lower, upper, page, page_size
            )
            collected.extend(batch)
            if len(batch) < page_size:
                return collected
            page += 1

    def _all_periodic(self) -> List[ScheduledWorkflow]:
        page_size = self.config.scheduled_workflows_per_request
        collected: List[ScheduledWorkflow] = []
        page = 0
        while True:
            batch = self.store.get_all_scheduled_workflows(set(_PERIODIC_FREQUENCIES), page, page_size)
            collected.extend(batch)
            if len(batch) < page_size:
                return collected
            page += 1


__all__ = ["SchedulerService", "project_pointer_date"]
