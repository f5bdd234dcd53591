"""
Repository Abstract Base Classes - Single Point of Truth.

Enforces exact method signatures across all storage, lock, queue and
external task implementations. Parameter names, return types and method
signatures are defined here and nowhere else.

IExecutionStore and IDepublishRegistry also implement the rules every
backend must share (plugin selection, registry size cap) on top of a few
abstract primitives, so PostgreSQL and in-memory backends cannot drift.

Exports:
    IExecutionStore: Workflows, executions, scheduled workflows, datasets
    IDepublishRegistry: Per-dataset record ids pending/done depublication
    ILockService: Named, reentrant, expiring mutual exclusion
    IExecutionQueue: Priority queue of execution ids
    IExternalTaskClient: External task service contract
    QueueMessage: One pulled execution id
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Set, Tuple

from core.models import (
    Dataset,
    DepublicationStatus,
    DepublishRecordId,
    DepublishRecordIdSortField,
    DpsTask,
    ExecutionOrderField,
    Page,
    Plugin,
    PluginStatus,
    PluginType,
    ScheduleFrequence,
    ScheduledWorkflow,
    SortDirection,
    TaskProgress,
    Workflow,
    WorkflowExecution,
    WorkflowStatus,
)
from exceptions import BadContentError
from infrastructure.execution_queries import select_successful_plugins


PluginWithExecution = Tuple[Plugin, WorkflowExecution]


# ============================================================================
# EXECUTION STORE
# ============================================================================

class IExecutionStore(ABC):
    """
    Persistent store of datasets, workflows, executions and schedules.

    Writes are idempotent by their unique keys: create_* returns False
    when the key already exists instead of inserting twice.
    """

    # ------------------------------------------------------------------
    # Datasets
    # ------------------------------------------------------------------

    @abstractmethod
    def create_dataset(self, dataset: Dataset) -> bool:
        pass

    @abstractmethod
    def get_dataset(self, dataset_id: str) -> Optional[Dataset]:
        pass

    @abstractmethod
    def update_dataset(self, dataset: Dataset) -> bool:
        pass

    # ------------------------------------------------------------------
    # Workflows (unique by dataset_id)
    # ------------------------------------------------------------------

    @abstractmethod
    def create_workflow(self, workflow: Workflow) -> bool:
        """Store a workflow; False if one exists for the dataset."""
        pass

    @abstractmethod
    def get_workflow(self, dataset_id: str) -> Optional[Workflow]:
        pass

    @abstractmethod
    def update_workflow(self, workflow: Workflow) -> bool:
        """Overwrite the dataset's workflow; False if none exists."""
        pass

    @abstractmethod
    def delete_workflow(self, dataset_id: str) -> bool:
        pass

    # ------------------------------------------------------------------
    # Workflow executions
    # ------------------------------------------------------------------

    @abstractmethod
    def add_execution(self, execution: WorkflowExecution) -> str:
        """
        Persist a new execution and return its id.

        Raises:
            WorkflowExecutionAlreadyExistsError: A non-terminal execution
                already exists for the dataset
        """
        pass

    @abstractmethod
    def update_execution(self, execution: WorkflowExecution) -> None:
        """
        Overwrite an execution; updated_date is set by the store.

        Raises:
            KeyError: No execution with this id
            ContractViolationError: A status of the execution or of one
                of its plugins would move backwards
        """
        pass

    @abstractmethod
    def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        pass

    @abstractmethod
    def get_dataset_executions(self, dataset_id: str) -> List[WorkflowExecution]:
        """All executions of one dataset, unordered."""
        pass

    @abstractmethod
    def exists_and_not_completed(self, dataset_id: str) -> Optional[str]:
        """Id of the dataset's INQUEUE or RUNNING execution, if any."""
        pass

    @abstractmethod
    def get_running_or_in_queue_execution(self, dataset_id: str) -> Optional[WorkflowExecution]:
        pass

    @abstractmethod
    def set_cancelling_state(self, execution_id: str, actor: Optional[str]) -> bool:
        """
        Flag an INQUEUE or RUNNING execution as cancelling.

        Returns:
            False if the execution is missing or already terminal
        """
        pass

    @abstractmethod
    def get_all_workflow_executions(
        self,
        dataset_ids: Optional[Set[str]],
        statuses: Optional[Set[WorkflowStatus]],
        order_field: ExecutionOrderField,
        ascending: bool,
        page: int,
        page_size: int
    ) -> List[WorkflowExecution]:
        pass

    @abstractmethod
    def get_workflow_executions_overview(
        self,
        dataset_ids: Optional[Set[str]],
        plugin_statuses: Optional[Set[PluginStatus]],
        plugin_types: Optional[Set[PluginType]],
        from_date: Optional[datetime],
        to_date: Optional[datetime],
        page: int,
        page_count: int,
        page_size: int
    ) -> List[WorkflowExecution]:
        """
        Executions created in [from_date, to_date) ordered INQUEUE,
        RUNNING, CLEANING, then terminal; createdDate descending within a
        bucket. Returns `page_count` consecutive pages starting at `page`.
        """
        pass

    @abstractmethod
    def find_stale_executions(self, updated_before: datetime) -> List[WorkflowExecution]:
        """INQUEUE or RUNNING executions last updated before the cutoff."""
        pass

    @abstractmethod
    def touch_execution(self, execution_id: str) -> bool:
        """
        Set updated_date of an INQUEUE or RUNNING execution to now.

        Returns:
            False if the execution is missing or already terminal
        """
        pass

    # ------------------------------------------------------------------
    # Plugin queries (shared selection rules)
    # ------------------------------------------------------------------

    def latest_successful_executable_plugin(
        self,
        dataset_id: str,
        kinds: Set[PluginType],
        limit_to_valid: bool
    ) -> Optional[PluginWithExecution]:
        """Newest FINISHED executable plugin of one of `kinds`."""
        found = select_successful_plugins(
            self.get_dataset_executions(dataset_id), kinds,
            executable_only=True, limit_to_valid=limit_to_valid
        )
        return found[0] if found else None

    def first_successful_plugin(
        self,
        dataset_id: str,
        kinds: Set[PluginType]
    ) -> Optional[PluginWithExecution]:
        """Oldest FINISHED plugin of one of `kinds`, reindex kinds included."""
        found = select_successful_plugins(
            self.get_dataset_executions(dataset_id), kinds, executable_only=False
        )
        return found[-1] if found else None

    def latest_successful_plugin(
        self,
        dataset_id: str,
        kinds: Set[PluginType]
    ) -> Optional[PluginWithExecution]:
        """Newest FINISHED plugin of one of `kinds`, reindex kinds included."""
        found = select_successful_plugins(
            self.get_dataset_executions(dataset_id), kinds, executable_only=False
        )
        return found[0] if found else None

    # ------------------------------------------------------------------
    # Scheduled workflows (unique by dataset_id)
    # ------------------------------------------------------------------

    @abstractmethod
    def add_scheduled_workflow(self, scheduled: ScheduledWorkflow) -> bool:
        pass

    @abstractmethod
    def update_scheduled_workflow(self, scheduled: ScheduledWorkflow) -> bool:
        pass

    @abstractmethod
    def get_scheduled_workflow(self, dataset_id: str) -> Optional[ScheduledWorkflow]:
        pass

    @abstractmethod
    def delete_scheduled_workflow(self, dataset_id: str) -> bool:
        pass

    @abstractmethod
    def get_all_scheduled_workflows(
        self,
        frequencies: Optional[Set[ScheduleFrequence]],
        page: int,
        page_size: int
    ) -> List[ScheduledWorkflow]:
        """Scheduled workflows ordered by dataset id."""
        pass

    @abstractmethod
    def get_scheduled_workflows_in_range(
        self,
        frequence: ScheduleFrequence,
        lower_exclusive: datetime,
        upper_inclusive: datetime,
        page: int,
        page_size: int
    ) -> List[ScheduledWorkflow]:
        """Entries of one frequency whose pointer_date is in (lower, upper]."""
        pass


# ============================================================================
# DEPUBLISH REGISTRY
# ============================================================================

class IDepublishRegistry(ABC):
    """
    Per-dataset set of record ids to depublish, capped at max_per_dataset.

    Public operations validate their arguments and the size cap here;
    backends implement the primitives atomically per dataset.
    """

    def __init__(self, max_per_dataset: int, page_size: int):
        self.max_per_dataset = max_per_dataset
        self.page_size = page_size

    def _check_request_size(self, record_ids: Set[str], action: str) -> None:
        if len(record_ids) > self.max_per_dataset:
            raise BadContentError(
                f"Can't {action} these records: this would violate the maximum number "
                f"of records per dataset ({self.max_per_dataset}).",
                requested=len(record_ids)
            )

    def _check_capacity(self, existing_count: int, missing: Set[str]) -> None:
        """Called by backends inside their atomic insert."""
        if existing_count + len(missing) > self.max_per_dataset:
            raise BadContentError(
                f"Can't add these records: this would violate the maximum number "
                f"of records per dataset ({self.max_per_dataset}).",
                existing=existing_count,
                missing=len(missing)
            )

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    @abstractmethod
    def _add_missing(
        self,
        dataset_id: str,
        record_ids: Set[str],
        status: DepublicationStatus,
        date: Optional[datetime]
    ) -> Set[str]:
        """
        Atomically insert the ids not yet registered, after calling
        _check_capacity. Returns the inserted ids.
        """
        pass

    @abstractmethod
    def _delete_pending(self, dataset_id: str, record_ids: Set[str]) -> int:
        pass

    @abstractmethod
    def _update_status(
        self,
        dataset_id: str,
        record_ids: Optional[Set[str]],
        status: DepublicationStatus,
        date: Optional[datetime]
    ) -> int:
        """Update the given ids, or all of the dataset when record_ids is None."""
        pass

    @abstractmethod
    def _find_record_ids(
        self,
        dataset_id: str,
        status: Optional[DepublicationStatus],
        subset: Optional[Set[str]]
    ) -> Set[str]:
        pass

    @abstractmethod
    def _find_page(
        self,
        dataset_id: str,
        sort_field: DepublishRecordIdSortField,
        sort_direction: SortDirection,
        search: Optional[str],
        offset: int,
        limit: int
    ) -> List[DepublishRecordId]:
        pass

    @abstractmethod
    def count(self, dataset_id: str, status: Optional[DepublicationStatus] = None) -> int:
        pass

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def add_pending(self, dataset_id: str, record_ids: Set[str]) -> int:
        """
        Register record ids as PENDING_DEPUBLICATION.

        Returns:
            Number of ids that were not registered before

        Raises:
            BadContentError: The request or the resulting registry would
                exceed max_per_dataset
        """
        record_ids = set(record_ids)
        self._check_request_size(record_ids, "add")
        added = self._add_missing(
            dataset_id, record_ids, DepublicationStatus.PENDING_DEPUBLICATION, None
        )
        return len(added)

    def delete_pending(self, dataset_id: str, record_ids: Set[str]) -> int:
        """Remove ids that are still PENDING_DEPUBLICATION; returns the count removed."""
        record_ids = set(record_ids)
        self._check_request_size(record_ids, "remove")
        if not record_ids:
            return 0
        return self._delete_pending(dataset_id, record_ids)

    def list_paged(
        self,
        dataset_id: str,
        page: int,
        sort_field: DepublishRecordIdSortField = DepublishRecordIdSortField.RECORD_ID,
        sort_direction: SortDirection = SortDirection.ASCENDING,
        search: Optional[str] = None
    ) -> Page[DepublishRecordId]:
        """One page of the dataset's registry; `search` is a case-sensitive substring."""
        results = self._find_page(
            dataset_id, sort_field, sort_direction, search or None,
            offset=max(page, 0) * self.page_size, limit=self.page_size
        )
        return Page[DepublishRecordId].of(results, page, self.page_size)

    def list_all_by_status(
        self,
        dataset_id: str,
        status: Optional[DepublicationStatus] = None,
        subset: Optional[Set[str]] = None
    ) -> Set[str]:
        """All record ids with the status (any when None), optionally within subset."""
        if subset:
            self._check_request_size(set(subset), "query")
        return self._find_record_ids(dataset_id, status, set(subset) if subset else None)

    def count_successfully_depublished(self, dataset_id: str) -> int:
        return self.count(dataset_id, DepublicationStatus.DEPUBLISHED)

    def mark_status(
        self,
        dataset_id: str,
        record_ids: Optional[Set[str]],
        status: DepublicationStatus,
        date: Optional[datetime] = None
    ) -> None:
        """
        Set the status of the given ids, or of every id of the dataset.

        Ids that are not registered yet are inserted with the status.
        PENDING_DEPUBLICATION clears the date; DEPUBLISHED requires one.

        Raises:
            BadContentError: Blank dataset id, missing status, DEPUBLISHED
                without date, or the insert would exceed the cap
        """
        if not dataset_id or not dataset_id.strip() or status is None:
            raise BadContentError("Depublication status cannot be null and dataset id cannot be empty")
        if status == DepublicationStatus.DEPUBLISHED and date is None:
            raise BadContentError(
                f"Depublication date cannot be null if status is {DepublicationStatus.DEPUBLISHED.value}"
            )
        if status == DepublicationStatus.PENDING_DEPUBLICATION:
            date = None

        if not record_ids:
            self._update_status(dataset_id, None, status, date)
            return

        record_ids = set(record_ids)
        self._check_request_size(record_ids, "mark")
        added = self._add_missing(dataset_id, record_ids, status, date)
        remaining = record_ids - added
        if remaining:
            self._update_status(dataset_id, remaining, status, date)


# ============================================================================
# LOCK SERVICE
# ============================================================================

class ILockService(ABC):
    """
    Named mutual exclusion across threads and processes.

    Locks are reentrant per holder and expire after the watchdog timeout
    unless the holder is alive to renew them.
    """

    @abstractmethod
    def lock(self, name: str) -> None:
        """Block until the lock is held."""
        pass

    @abstractmethod
    def try_lock(self, name: str) -> bool:
        """Acquire without waiting; False if another holder has it."""
        pass

    @abstractmethod
    def unlock(self, name: str) -> None:
        pass

    @contextmanager
    def hold(self, name: str):
        """lock/unlock around a block, released on every exit path."""
        self.lock(name)
        try:
            yield
        finally:
            self.unlock(name)

    def close(self) -> None:
        pass


# ============================================================================
# EXECUTION QUEUE
# ============================================================================

@dataclass
class QueueMessage:
    """An execution id pulled from the queue."""
    execution_id: str
    priority: int
    message_id: Optional[str] = None


class IExecutionQueue(ABC):
    """
    Priority queue of execution ids: highest priority first, FIFO within
    a priority. Delivery is at-least-once.
    """

    @abstractmethod
    def push(self, execution_id: str, priority: int) -> None:
        pass

    @abstractmethod
    def pull(self, timeout: float) -> Optional[QueueMessage]:
        """Next message, or None when nothing arrives within timeout seconds."""
        pass

    def close(self) -> None:
        pass


# ============================================================================
# EXTERNAL TASK SERVICE
# ============================================================================

class IExternalTaskClient(ABC):
    """Client of the service that runs plugin bodies."""

    @abstractmethod
    def submit_task(self, task: DpsTask) -> str:
        """Submit a task; returns the external task id."""
        pass

    @abstractmethod
    def get_progress(self, topology: str, task_id: str) -> TaskProgress:
        pass

    @abstractmethod
    def kill_task(self, topology: str, task_id: str, reason: str) -> None:
        pass

    @abstractmethod
    def create_dataset(self, dataset: Dataset) -> str:
        """
        Register the dataset in the downstream content store.

        Idempotent; returns the downstream dataset id.
        """
        pass

    def close(self) -> None:
        pass


__all__ = [
    "PluginWithExecution",
    "IExecutionStore",
    "IDepublishRegistry",
    "ILockService",
    "QueueMessage",
    "IExecutionQueue",
    "IExternalTaskClient",
]
