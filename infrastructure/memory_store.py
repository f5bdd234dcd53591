"""
In-Memory ExecutionStore and DepublishRegistry.

Thread-safe implementations of the repository interfaces backed by
dictionaries. Used for standalone mode (STORAGE_BACKEND=memory) and by
the test suite. Stored models are deep copies, so callers never share
state with the store.

Exports:
    InMemoryExecutionStore: IExecutionStore implementation
    InMemoryDepublishRegistry: IDepublishRegistry implementation
"""

import threading
from datetime import datetime
from typing import Dict, List, Optional, Set

from core.models import (
    Dataset,
    DepublicationStatus,
    DepublishRecordId,
    DepublishRecordIdSortField,
    ExecutionOrderField,
    PluginStatus,
    PluginType,
    ScheduleFrequence,
    ScheduledWorkflow,
    SortDirection,
    Workflow,
    WorkflowExecution,
    WorkflowStatus,
)
from core.utils import utc_now
from exceptions import WorkflowExecutionAlreadyExistsError
from infrastructure.base import BaseRepository
from infrastructure.execution_queries import (
    matches_overview_filter,
    paginate,
    sort_executions,
    sort_overview,
)
from infrastructure.interface_repository import IDepublishRegistry, IExecutionStore


_ACTIVE_STATUSES = (WorkflowStatus.INQUEUE, WorkflowStatus.RUNNING)


class InMemoryExecutionStore(BaseRepository, IExecutionStore):
    """Dictionary-backed execution store guarded by one re-entrant lock."""

    def __init__(self):
        super().__init__()
        self._lock = threading.RLock()
        self._datasets: Dict[str, Dataset] = {}
        self._workflows: Dict[str, Workflow] = {}
        self._executions: Dict[str, WorkflowExecution] = {}
        self._scheduled: Dict[str, ScheduledWorkflow] = {}

    # ------------------------------------------------------------------
    # Datasets
    # ------------------------------------------------------------------

    def create_dataset(self, dataset: Dataset) -> bool:
        with self._lock:
            if dataset.dataset_id in self._datasets:
                return False
            self._datasets[dataset.dataset_id] = dataset.model_copy(deep=True)
            return True

    def get_dataset(self, dataset_id: str) -> Optional[Dataset]:
        with self._lock:
            dataset = self._datasets.get(dataset_id)
            return dataset.model_copy(deep=True) if dataset else None

    def update_dataset(self, dataset: Dataset) -> bool:
        with self._lock:
            if dataset.dataset_id not in self._datasets:
                return False
            self._datasets[dataset.dataset_id] = dataset.model_copy(deep=True)
            return True

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    def create_workflow(self, workflow: Workflow) -> bool:
        with self._lock:
            if workflow.dataset_id in self._workflows:
                return False
            self._workflows[workflow.dataset_id] = workflow.model_copy(deep=True)
            return True

    def get_workflow(self, dataset_id: str) -> Optional[Workflow]:
        with self._lock:
            workflow = self._workflows.get(dataset_id)
            return workflow.model_copy(deep=True) if workflow else None

    def update_workflow(self, workflow: Workflow) -> bool:
        with self._lock:
            if workflow.dataset_id not in self._workflows:
                return False
            self._workflows[workflow.dataset_id] = workflow.model_copy(deep=True)
            return True

    def delete_workflow(self, dataset_id: str) -> bool:
        with self._lock:
            return self._workflows.pop(dataset_id, None) is not None

    # ------------------------------------------------------------------
    # Executions
    # ------------------------------------------------------------------

    def add_execution(self, execution: WorkflowExecution) -> str:
        with self._lock:
            existing = self.exists_and_not_completed(execution.dataset_id)
            if existing:
                raise WorkflowExecutionAlreadyExistsError(
                    f"Execution {existing} is already active for dataset {execution.dataset_id}",
                    dataset_id=execution.dataset_id,
                    execution_id=existing
                )
            stored = execution.model_copy(deep=True)
            if stored.updated_date is None:
                stored.updated_date = stored.created_date
            self._executions[stored.id] = stored
            self.logger.debug(f"📝 Execution stored: {stored.id} dataset={stored.dataset_id}")
            return stored.id

    def update_execution(self, execution: WorkflowExecution) -> None:
        with self._lock:
            with self._error_context("execution update", execution.id):
                current = self._executions.get(execution.id)
                if current is None:
                    raise KeyError(f"Execution {execution.id} does not exist")
                self._validate_execution_update(current, execution)
                self._keep_cancel_request(current, execution)
                execution.updated_date = utc_now()
                self._executions[execution.id] = execution.model_copy(deep=True)

    def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        with self._lock:
            execution = self._executions.get(execution_id)
            return execution.model_copy(deep=True) if execution else None

    def get_dataset_executions(self, dataset_id: str) -> List[WorkflowExecution]:
        with self._lock:
            return [
                e.model_copy(deep=True)
                for e in self._executions.values()
                if e.dataset_id == dataset_id
            ]

    def exists_and_not_completed(self, dataset_id: str) -> Optional[str]:
        active = self.get_running_or_in_queue_execution(dataset_id)
        return active.id if active else None

    def get_running_or_in_queue_execution(self, dataset_id: str) -> Optional[WorkflowExecution]:
        with self._lock:
            for execution in self._executions.values():
                if execution.dataset_id == dataset_id and execution.status in _ACTIVE_STATUSES:
                    return execution.model_copy(deep=True)
            return None

    def set_cancelling_state(self, execution_id: str, actor: Optional[str]) -> bool:
        with self._lock:
            execution = self._executions.get(execution_id)
            if execution is None or execution.status not in _ACTIVE_STATUSES:
                return False
            execution.cancelling = True
            execution.cancelled_by = actor
            execution.updated_date = utc_now()
            return True

    def get_all_workflow_executions(
        self,
        dataset_ids: Optional[Set[str]],
        statuses: Optional[Set[WorkflowStatus]],
        order_field: ExecutionOrderField,
        ascending: bool,
        page: int,
        page_size: int
    ) -> List[WorkflowExecution]:
        with self._lock:
            selected = [
                e.model_copy(deep=True)
                for e in self._executions.values()
                if (not dataset_ids or e.dataset_id in dataset_ids)
                and (not statuses or e.status in statuses)
            ]
        return paginate(sort_executions(selected, order_field, ascending), page, page_size)

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
        with self._lock:
            selected = [
                e.model_copy(deep=True)
                for e in self._executions.values()
                if (not dataset_ids or e.dataset_id in dataset_ids)
                and (from_date is None or e.created_date >= from_date)
                and (to_date is None or e.created_date < to_date)
                and matches_overview_filter(e, plugin_statuses, plugin_types)
            ]
        ordered = sort_overview(selected)
        start = max(page, 0) * page_size
        return ordered[start:start + page_size * max(page_count, 1)]

    def find_stale_executions(self, updated_before: datetime) -> List[WorkflowExecution]:
        with self._lock:
            return [
                e.model_copy(deep=True)
                for e in self._executions.values()
                if e.status in _ACTIVE_STATUSES
                and (e.updated_date or e.created_date) < updated_before
            ]

    def touch_execution(self, execution_id: str) -> bool:
        with self._lock:
            execution = self._executions.get(execution_id)
            if execution is None or execution.status not in _ACTIVE_STATUSES:
                return False
            execution.updated_date = utc_now()
            return True

    # ------------------------------------------------------------------
    # Scheduled workflows
    # ------------------------------------------------------------------

    def add_scheduled_workflow(self, scheduled: ScheduledWorkflow) -> bool:
        with self._lock:
            if scheduled.dataset_id in self._scheduled:
                return False
            self._scheduled[scheduled.dataset_id] = scheduled.model_copy(deep=True)
            return True

    def update_scheduled_workflow(self, scheduled: ScheduledWorkflow) -> bool:
        with self._lock:
            if scheduled.dataset_id not in self._scheduled:
                return False
            self._scheduled[scheduled.dataset_id] = scheduled.model_copy(deep=True)
            return True

    def get_scheduled_workflow(self, dataset_id: str) -> Optional[ScheduledWorkflow]:
        with self._lock:
            scheduled = self._scheduled.get(dataset_id)
            return scheduled.model_copy(deep=True) if scheduled else None

    def delete_scheduled_workflow(self, dataset_id: str) -> bool:
        with self._lock:
            return self._scheduled.pop(dataset_id, None) is not None

    def get_all_scheduled_workflows(
        self,
        frequencies: Optional[Set[ScheduleFrequence]],
        page: int,
        page_size: int
    ) -> List[ScheduledWorkflow]:
        with self._lock:
            selected = sorted(
                (s.model_copy(deep=True) for s in self._scheduled.values()
                 if not frequencies or s.schedule_frequence in frequencies),
                key=lambda s: s.dataset_id
            )
        return paginate(selected, page, page_size)

    def get_scheduled_workflows_in_range(
        self,
        frequence: ScheduleFrequence,
        lower_exclusive: datetime,
        upper_inclusive: datetime,
        page: int,
        page_size: int
    ) -> List[ScheduledWorkflow]:
        with self._lock:
            selected = sorted(
                (s.model_copy(deep=True) for s in self._scheduled.values()
                 if s.schedule_frequence == frequence
                 and lower_exclusive < s.pointer_date <= upper_inclusive),
                key=lambda s: s.dataset_id
            )
        return paginate(selected, page, page_size)


class InMemoryDepublishRegistry(BaseRepository, IDepublishRegistry):
    """Dictionary-backed depublish registry: dataset_id -> record_id -> entry."""

    def __init__(self, max_per_dataset: int, page_size: int):
        BaseRepository.__init__(self)
        IDepublishRegistry.__init__(self, max_per_dataset, page_size)
        self._lock = threading.RLock()
        self._records: Dict[str, Dict[str, DepublishRecordId]] = {}

    def _dataset(self, dataset_id: str) -> Dict[str, DepublishRecordId]:
        return self._records.setdefault(dataset_id, {})

    def _add_missing(
        self,
        dataset_id: str,
        record_ids: Set[str],
        status: DepublicationStatus,
        date: Optional[datetime]
    ) -> Set[str]:
        with self._lock:
            entries = self._dataset(dataset_id)
            missing = record_ids - set(entries)
            self._check_capacity(len(entries), missing)
            for record_id in missing:
                entries[record_id] = DepublishRecordId(
                    dataset_id=dataset_id,
                    record_id=record_id,
                    depublication_status=status,
                    depublication_date=date,
                )
            return missing

    def _delete_pending(self, dataset_id: str, record_ids: Set[str]) -> int:
        with self._lock:
            entries = self._dataset(dataset_id)
            removable = [
                r for r in record_ids
                if r in entries
                and entries[r].depublication_status == DepublicationStatus.PENDING_DEPUBLICATION
            ]
            for record_id in removable:
                del entries[record_id]
            return len(removable)

    def _update_status(
        self,
        dataset_id: str,
        record_ids: Optional[Set[str]],
        status: DepublicationStatus,
        date: Optional[datetime]
    ) -> int:
        with self._lock:
            entries = self._dataset(dataset_id)
            targets = list(entries) if record_ids is None else [r for r in record_ids if r in entries]
            for record_id in targets:
                entries[record_id] = DepublishRecordId(
                    dataset_id=dataset_id,
                    record_id=record_id,
                    depublication_status=status,
                    depublication_date=date,
                )
            return len(targets)

    def _find_record_ids(
        self,
        dataset_id: str,
        status: Optional[DepublicationStatus],
        subset: Optional[Set[str]]
    ) -> Set[str]:
        with self._lock:
            return {
                record_id
                for record_id, entry in self._dataset(dataset_id).items()
                if (status is None or entry.depublication_status == status)
                and (subset is None or record_id in subset)
            }

    def _find_page(
        self,
        dataset_id: str,
        sort_field: DepublishRecordIdSortField,
        sort_direction: SortDirection,
        search: Optional[str],
        offset: int,
        limit: int
    ) -> List[DepublishRecordId]:
        with self._lock:
            entries = [
                e.model_copy()
                for e in self._dataset(dataset_id).values()
                if not search or search in e.record_id
            ]

        def sort_key(entry: DepublishRecordId):
            if sort_field == DepublishRecordIdSortField.RECORD_ID:
                return (True, entry.record_id)
            if sort_field == DepublishRecordIdSortField.DEPUBLICATION_STATE:
                return (True, entry.depublication_status.value)
            # Missing dates sort first ascending, like NULLS FIRST
            return (entry.depublication_date is not None, entry.depublication_date or 0)

        entries.sort(key=sort_key, reverse=sort_direction == SortDirection.DESCENDING)
        return entries[offset:offset + limit]

    def count(self, dataset_id: str, status: Optional[DepublicationStatus] = None) -> int:
        with self._lock:
            return sum(
                1 for e in self._dataset(dataset_id).values()
                if status is None or e.depublication_status == status
            )


__all__ = ["InMemoryExecutionStore", "InMemoryDepublishRegistry"]
