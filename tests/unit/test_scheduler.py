"""
Scheduler ticks and the projection of periodic schedules onto now.
"""

from datetime import datetime, timedelta, timezone

import pytest

from config.defaults import LockDefaults
from core.models import PluginType, ScheduleFrequence, WorkflowStatus
from services import SchedulerService, project_pointer_date

from tests.factories.model_factories import make_dataset, make_scheduled_workflow, make_workflow
from tests.factories.helpers import held_elsewhere


HARVEST_ONLY = [PluginType.OAIPMH_HARVEST, PluginType.VALIDATION_EXTERNAL]
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)  # a Tuesday


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# ============================================================================
# PROJECTION
# ============================================================================

class TestProjection:

    @pytest.mark.parametrize("frequence,pointer,now,expected", [
        (ScheduleFrequence.DAILY, _utc(2026, 1, 1, 8), _utc(2026, 3, 10, 9), _utc(2026, 3, 10, 8)),
        (ScheduleFrequence.DAILY, _utc(2026, 1, 1, 8), _utc(2026, 3, 10, 7), _utc(2026, 3, 9, 8)),
        (ScheduleFrequence.WEEKLY, _utc(2026, 1, 5, 8), _utc(2026, 3, 10, 12), _utc(2026, 3, 9, 8)),
        (ScheduleFrequence.WEEKLY, _utc(2026, 1, 6, 13), _utc(2026, 3, 10, 12), _utc(2026, 3, 3, 13)),
        (ScheduleFrequence.MONTHLY, _utc(2026, 1, 15, 8), _utc(2026, 3, 20, 0), _utc(2026, 3, 15, 8)),
        (ScheduleFrequence.MONTHLY, _utc(2026, 1, 15, 8), _utc(2026, 3, 10, 0), _utc(2026, 2, 15, 8)),
        (ScheduleFrequence.MONTHLY, _utc(2026, 1, 31, 8), _utc(2026, 2, 28, 9), _utc(2026, 2, 28, 8)),
    ], ids=[
        "daily-today", "daily-yesterday", "weekly-this-week", "weekly-last-week",
        "monthly-this-month", "monthly-last-month", "monthly-clamped-to-month-end",
    ])
    def test_latest_firing(self, frequence, pointer, now, expected):
        assert project_pointer_date(pointer, frequence, now) == expected

    def test_future_pointer_has_not_fired(self):
        assert project_pointer_date(NOW + timedelta(days=1), ScheduleFrequence.DAILY, NOW) is None

    def test_pointer_itself_is_first_firing(self):
        assert project_pointer_date(NOW, ScheduleFrequence.WEEKLY, NOW) == NOW

    def test_once_is_not_periodic(self):
        with pytest.raises(ValueError):
            project_pointer_date(NOW, ScheduleFrequence.ONCE, NOW)


# ============================================================================
# TICKS
# ============================================================================

@pytest.fixture
def scheduler(store, lock_service, orchestrator, app_config):
    scheduler = SchedulerService(store, lock_service, orchestrator, app_config.orchestration)
    scheduler.last_tick_end = NOW - timedelta(minutes=1)
    return scheduler


@pytest.fixture
def schedule(orchestrator, store):
    """Register a dataset with a workflow and store its schedule."""
    def _schedule(frequence, pointer_date, priority=2, with_workflow=True):
        dataset = orchestrator.register_dataset(make_dataset())
        if with_workflow:
            orchestrator.create_workflow(dataset.dataset_id, make_workflow(dataset.dataset_id, HARVEST_ONLY))
        scheduled = make_scheduled_workflow(dataset.dataset_id, frequence, pointer_date, priority=priority)
        store.add_scheduled_workflow(scheduled)
        return scheduled
    return _schedule


class TestOnceSchedules:

    def test_due_schedule_is_admitted_and_removed(self, scheduler, schedule, store, execution_queue):
        scheduled = schedule(ScheduleFrequence.ONCE, NOW - timedelta(seconds=30), priority=4)

        result = scheduler.run_once(now=NOW)

        assert result.success
        assert result.items_acted == 1
        action = result.actions_taken[0]
        assert action["action"] == "admit_scheduled_workflow"
        execution = store.get_execution(action["execution_id"])
        assert execution.status == WorkflowStatus.INQUEUE
        assert execution.started_by == "SYSTEM"
        assert execution.workflow_priority == 4
        assert execution_queue.pull(timeout=0.1).execution_id == execution.id
        assert store.get_scheduled_workflow(scheduled.dataset_id) is None

    @pytest.mark.parametrize("offset", [timedelta(minutes=-5), timedelta(minutes=-1), timedelta(seconds=30)],
                             ids=["before-window", "window-start", "after-now"])
    def test_schedule_outside_window_is_kept(self, scheduler, schedule, store, offset):
        scheduled = schedule(ScheduleFrequence.ONCE, NOW + offset)

        result = scheduler.run_once(now=NOW)

        assert result.items_acted == 0
        assert store.get_scheduled_workflow(scheduled.dataset_id) is not None

    def test_window_end_is_inclusive(self, scheduler, schedule):
        schedule(ScheduleFrequence.ONCE, NOW)
        assert scheduler.run_once(now=NOW).items_acted == 1

    def test_failed_admission_still_removes_schedule(self, scheduler, schedule, store):
        scheduled = schedule(ScheduleFrequence.ONCE, NOW - timedelta(seconds=10), with_workflow=False)

        result = scheduler.run_once(now=NOW)

        assert not result.success
        assert result.items_acted == 0
        assert result.errors and scheduled.dataset_id in result.errors[0]
        assert store.get_scheduled_workflow(scheduled.dataset_id) is None

    def test_all_pages_are_read(self, scheduler, schedule, app_config):
        for seconds in (10, 20, 30):
            schedule(ScheduleFrequence.ONCE, NOW - timedelta(seconds=seconds))

        result = scheduler.run_once(now=NOW)

        assert app_config.orchestration.scheduled_workflows_per_request < 3
        assert result.items_acted == 3


class TestPeriodicSchedules:

    def test_daily_firing_in_window(self, scheduler, schedule, store):
        scheduled = schedule(ScheduleFrequence.DAILY, NOW - timedelta(days=3, seconds=20))

        result = scheduler.run_once(now=NOW)

        assert result.items_acted == 1
        assert store.get_scheduled_workflow(scheduled.dataset_id) is not None

    def test_daily_firing_outside_window(self, scheduler, schedule):
        schedule(ScheduleFrequence.DAILY, NOW - timedelta(days=3, hours=2))
        assert scheduler.run_once(now=NOW).items_acted == 0

    def test_weekly_fires_only_on_its_weekday(self, scheduler, schedule):
        schedule(ScheduleFrequence.WEEKLY, NOW - timedelta(days=6, seconds=20))
        assert scheduler.run_once(now=NOW).items_acted == 0

    def test_active_execution_is_reported(self, scheduler, schedule, orchestrator):
        scheduled = schedule(ScheduleFrequence.DAILY, NOW - timedelta(days=1, seconds=20))
        orchestrator.add_workflow_execution(scheduled.dataset_id)

        result = scheduler.run_once(now=NOW)

        assert result.items_acted == 0
        assert len(result.errors) == 1


class TestWindow:

    def test_first_tick_covers_one_period(self, store, lock_service, orchestrator, app_config, schedule):
        scheduler = SchedulerService(store, lock_service, orchestrator, app_config.orchestration)
        period = timedelta(seconds=app_config.orchestration.periodic_scheduler_check_secs)
        schedule(ScheduleFrequence.ONCE, NOW - period / 2)

        assert scheduler.run_once(now=NOW).items_acted == 1
        assert scheduler.last_tick_end == NOW

    def test_consecutive_ticks_do_not_repeat(self, scheduler, schedule):
        schedule(ScheduleFrequence.DAILY, NOW - timedelta(days=2, seconds=20))

        assert scheduler.run_once(now=NOW).items_acted == 1
        assert scheduler.run_once(now=NOW + timedelta(minutes=1)).items_acted == 0

    def test_lock_held_elsewhere_skips_but_advances(self, scheduler, schedule, store, lock_service):
        scheduled = schedule(ScheduleFrequence.ONCE, NOW - timedelta(seconds=10))

        with held_elsewhere(lock_service, LockDefaults.SCHEDULER_LOCK):
            result = scheduler.run_once(now=NOW)

        assert result.skipped
        assert scheduler.last_tick_end == NOW
        assert store.get_scheduled_workflow(scheduled.dataset_id) is not None
