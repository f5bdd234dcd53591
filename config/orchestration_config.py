"""
Orchestration Configuration.

Worker pool size, external poll interval, periodic loop periods, index
commit window, lock watchdog, depublish registry cap and page sizes.

Exports:
    OrchestrationConfig: Pydantic orchestration configuration model
"""

import os
from pydantic import BaseModel, Field

from .defaults import (
    OrchestrationDefaults,
    LockDefaults,
    DepublishDefaults,
    RequestLimitDefaults,
)


def _env_bool(name: str, default: bool) -> bool:
    return os.environ.get(name, str(default)).lower() == "true"


class OrchestrationConfig(BaseModel):
    """
    Orchestration core settings.
    """

    max_concurrent_threads: int = Field(
        default=OrchestrationDefaults.MAX_CONCURRENT_THREADS,
        ge=1,
        le=256,
        description="Maximum executions supervised concurrently by one WorkerManager"
    )

    monitor_check_interval_secs: float = Field(
        default=OrchestrationDefaults.MONITOR_CHECK_INTERVAL_SECS,
        gt=0,
        description="Interval between external task status polls"
    )

    periodic_failsafe_check_secs: float = Field(
        default=OrchestrationDefaults.PERIODIC_FAILSAFE_CHECK_SECS,
        gt=0,
        description="Period of the failsafe loop"
    )

    periodic_scheduler_check_secs: float = Field(
        default=OrchestrationDefaults.PERIODIC_SCHEDULER_CHECK_SECS,
        gt=0,
        description="Period of the scheduler loop"
    )

    solr_commit_period_mins: int = Field(
        default=OrchestrationDefaults.SOLR_COMMIT_PERIOD_MINS,
        ge=0,
        description="Minutes after an indexing plugin finishes before its records are ready for viewing"
    )

    failsafe_stale_after_mins: int = Field(
        default=OrchestrationDefaults.FAILSAFE_STALE_AFTER_MINS,
        ge=1,
        description="INQUEUE/RUNNING executions not updated for this long are re-enqueued"
    )

    lock_watchdog_timeout_secs: float = Field(
        default=LockDefaults.WATCHDOG_TIMEOUT_SECS,
        gt=0,
        description="Grace period after which a lock of a crashed holder expires"
    )

    depublish_max_records_per_dataset: int = Field(
        default=DepublishDefaults.MAX_RECORDS_PER_DATASET,
        ge=1,
        description="Maximum record ids in the depublish registry per dataset"
    )

    link_checking_after_depublish: bool = Field(
        default=OrchestrationDefaults.LINK_CHECKING_AFTER_DEPUBLISH,
        description="Allow LINK_CHECKING to take a DEPUBLISH plugin as predecessor"
    )

    workflow_executions_per_request: int = Field(
        default=RequestLimitDefaults.WORKFLOW_EXECUTIONS_PER_REQUEST,
        ge=1,
        description="Page size of execution listings"
    )

    depublished_records_per_request: int = Field(
        default=RequestLimitDefaults.DEPUBLISHED_RECORDS_PER_REQUEST,
        ge=1,
        description="Page size of depublish registry listings"
    )

    scheduled_workflows_per_request: int = Field(
        default=RequestLimitDefaults.SCHEDULED_WORKFLOWS_PER_REQUEST,
        ge=1,
        description="Page size used by the scheduler when reading scheduled workflows"
    )

    @classmethod
    def from_environment(cls):
        """Load from environment variables."""
        return cls(
            max_concurrent_threads=int(os.environ.get(
                "MAX_CONCURRENT_THREADS", str(OrchestrationDefaults.MAX_CONCURRENT_THREADS))),
            monitor_check_interval_secs=float(os.environ.get(
                "MONITOR_CHECK_INTERVAL_SECS", str(OrchestrationDefaults.MONITOR_CHECK_INTERVAL_SECS))),
            periodic_failsafe_check_secs=float(os.environ.get(
                "PERIODIC_FAILSAFE_CHECK_SECS", str(OrchestrationDefaults.PERIODIC_FAILSAFE_CHECK_SECS))),
            periodic_scheduler_check_secs=float(os.environ.get(
                "PERIODIC_SCHEDULER_CHECK_SECS", str(OrchestrationDefaults.PERIODIC_SCHEDULER_CHECK_SECS))),
            solr_commit_period_mins=int(os.environ.get(
                "SOLR_COMMIT_PERIOD_MINS", str(OrchestrationDefaults.SOLR_COMMIT_PERIOD_MINS))),
            failsafe_stale_after_mins=int(os.environ.get(
                "FAILSAFE_STALE_AFTER_MINS", str(OrchestrationDefaults.FAILSAFE_STALE_AFTER_MINS))),
            lock_watchdog_timeout_secs=float(os.environ.get(
                "LOCK_WATCHDOG_TIMEOUT_SECS", str(LockDefaults.WATCHDOG_TIMEOUT_SECS))),
            depublish_max_records_per_dataset=int(os.environ.get(
                "DEPUBLISH_MAX_RECORDS_PER_DATASET", str(DepublishDefaults.MAX_RECORDS_PER_DATASET))),
            link_checking_after_depublish=_env_bool(
                "LINK_CHECKING_AFTER_DEPUBLISH", OrchestrationDefaults.LINK_CHECKING_AFTER_DEPUBLISH),
            workflow_executions_per_request=int(os.environ.get(
                "WORKFLOW_EXECUTIONS_PER_REQUEST", str(RequestLimitDefaults.WORKFLOW_EXECUTIONS_PER_REQUEST))),
            depublished_records_per_request=int(os.environ.get(
                "DEPUBLISHED_RECORDS_PER_REQUEST", str(RequestLimitDefaults.DEPUBLISHED_RECORDS_PER_REQUEST))),
            scheduled_workflows_per_request=int(os.environ.get(
                "SCHEDULED_WORKFLOWS_PER_REQUEST", str(RequestLimitDefaults.SCHEDULED_WORKFLOWS_PER_REQUEST))),
        )
