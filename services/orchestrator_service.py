"""
Orchestrator Service - Public Facade of the Orchestration Core.

Entry point for everything a caller does with workflows: storing and
validating workflow definitions, admitting executions onto the queue,
requesting cancellation, querying executions and lineage, scheduling,
and maintaining the depublish registry.

Admission protocol (add_workflow_execution):
    1. Resolve dataset and workflow (argument or stored)
    2. Validate the workflow and resolve the predecessor plugin
    3. Register the dataset in the downstream content store
    4. Build the execution
    5. Under the "submit:{dataset_id}" lock: refuse when the dataset
       already has an INQUEUE/RUNNING execution, else persist it
    6. Push (execution id, priority) onto the queue

Exports:
    OrchestratorService: Facade over validator, store, queue and registry
"""

import threading
from datetime import datetime
from typing import List, Optional, Set

from config import AppConfig, get_config
from config.defaults import LockDefaults, OrchestrationDefaults
from core.logic import WorkflowExecutionFactory, can_display_raw_xml
from core.models import (
    Dataset,
    DatasetExecutionInformation,
    DepublicationStatus,
    DepublishRecordId,
    DepublishRecordIdSortField,
    ExecutionHistory,
    ExecutionHistoryEntry,
    ExecutionOrderField,
    Page,
    PluginAvailability,
    PluginStatus,
    PluginsWithDataAvailability,
    PluginType,
    PluginView,
    PredecessorRef,
    ScheduleFrequence,
    ScheduledWorkflow,
    SortDirection,
    VersionEvolution,
    VersionEvolutionStep,
    Workflow,
    WorkflowExecution,
    WorkflowExecutionView,
    WorkflowStatus,
)
from core.utils import utc_now
from exceptions import (
    BadContentError,
    InvalidLineageError,
    NoDatasetFoundError,
    NoWorkflowExecutionFoundError,
    NoWorkflowFoundError,
    WorkflowAlreadyExistsError,
    WorkflowExecutionAlreadyExistsError,
)
from infrastructure.factory import InfrastructureComponents
from services.data_evolution import DataEvolutionService
from services.dataset_execution_info import DatasetExecutionInfoService
from services.workflow_validator import WorkflowValidator
from util_logger import LoggerFactory, ComponentType

_CANCELLABLE_STATUSES = (WorkflowStatus.INQUEUE, WorkflowStatus.RUNNING)


class OrchestratorService:
    """
    Facade of the orchestration core.

    Usage:
        components = RepositoryFactory.create_components(config)
        orchestrator = OrchestratorService(components, config)
        execution = orchestrator.add_workflow_execution("d1", priority=5)
    """

    def __init__(self, components: InfrastructureComponents, config: Optional[AppConfig] = None):
        self.config = config or get_config()
        self.store = components.store
        self.depublish_registry = components.depublish_registry
        self.lock_service = components.lock_service
        self.queue = components.queue
        self.task_client = components.task_client

        orchestration = self.config.orchestration
        self.data_evolution = DataEvolutionService(self.store)
        self.validator = WorkflowValidator(
            self.store,
            self.depublish_registry,
            self.data_evolution,
            link_checking_after_depublish=orchestration.link_checking_after_depublish,
        )
        self.execution_factory = WorkflowExecutionFactory(self.config.queues.highest_priority)

        self._settings_lock = threading.Lock()
        self._solr_commit_period_mins = orchestration.solr_commit_period_mins
        self.dataset_info = DatasetExecutionInfoService(
            self.store, self.depublish_registry, self.get_solr_commit_period_in_mins
        )

        self.logger = LoggerFactory.create_logger(ComponentType.SERVICE, "OrchestratorService")

    # ========================================================================
    # DATASETS
    # ========================================================================

    def register_dataset(self, dataset: Dataset) -> Dataset:
        """Store a dataset; an already registered dataset is returned unchanged."""
        if self.store.create_dataset(dataset):
            self.logger.info(f"📝 Dataset registered: {dataset.dataset_id}")
        return self.get_dataset(dataset.dataset_id)

    def get_dataset(self, dataset_id: str) -> Dataset:
        dataset = self.store.get_dataset(dataset_id)
        if dataset is None:
            raise NoDatasetFoundError(f"No dataset found with datasetId: {dataset_id}", dataset_id=dataset_id)
        return dataset

    # ========================================================================
    # WORKFLOWS
    # ========================================================================

    def create_workflow(
        self,
        dataset_id: str,
        workflow: Workflow,
        enforced_predecessor_type: Optional[PluginType] = None
    ) -> Workflow:
        """
        Validate and store the workflow of a dataset.

        Raises:
            NoDatasetFoundError: Unknown dataset
            WorkflowAlreadyExistsError: The dataset already has a workflow
            BadContentError, PluginExecutionNotAllowedError: Validation failed
        """
        self.get_dataset(dataset_id)
        workflow.dataset_id = dataset_id
        if self.store.get_workflow(dataset_id) is not None:
            raise WorkflowAlreadyExistsError(
                f"Workflow with datasetId: {dataset_id}, already exists", dataset_id=dataset_id
            )

        self.validator.validate_workflow_plugins(workflow, enforced_predecessor_type)
        if not self.store.create_workflow(workflow):
            raise WorkflowAlreadyExistsError(
                f"Workflow with datasetId: {dataset_id}, already exists", dataset_id=dataset_id
            )
        self.logger.info(f"✅ Workflow created for dataset {dataset_id}: {[p.plugin_type.value for p in workflow.enabled_plugins()]}")
        return workflow

    def update_workflow(
        self,
        dataset_id: str,
        workflow: Workflow,
        enforced_predecessor_type: Optional[PluginType] = None
    ) -> Workflow:
        """
        Overwrite the stored workflow, keeping its id.

        Raises:
            NoWorkflowFoundError: The dataset has no stored workflow
        """
        self.get_dataset(dataset_id)
        existing = self.store.get_workflow(dataset_id)
        if existing is None:
            raise NoWorkflowFoundError(
                f"Workflow with datasetId: {dataset_id}, not found", dataset_id=dataset_id
            )

        workflow.dataset_id = dataset_id
        workflow.id = existing.id
        self.validator.validate_workflow_plugins(workflow, enforced_predecessor_type)
        self.store.update_workflow(workflow)
        self.logger.info(f"✅ Workflow updated for dataset {dataset_id}")
        return workflow

    def delete_workflow(self, dataset_id: str) -> bool:
        deleted = self.store.delete_workflow(dataset_id)
        if deleted:
            self.logger.info(f"🗑️ Workflow deleted for dataset {dataset_id}")
        return deleted

    def get_workflow(self, dataset_id: str) -> Optional[Workflow]:
        return self.store.get_workflow(dataset_id)

    # ========================================================================
    # ADMISSION
    # ========================================================================

    def add_workflow_execution(
        self,
        dataset_id: str,
        workflow: Optional[Workflow] = None,
        enforced_predecessor_type: Optional[PluginType] = None,
        priority: int = 0,
        actor: Optional[str] = None
    ) -> WorkflowExecution:
        """
        Admit an execution of the dataset's workflow.

        Args:
            dataset_id: Dataset to process
            workflow: Workflow to run instead of the stored one
            enforced_predecessor_type: Take the predecessor from the latest valid plugin of this kind
            priority: Queue priority, clamped to [0, highest priority]
            actor: Who started the execution; SYSTEM when omitted

        Returns:
            The persisted execution (status INQUEUE)

        Raises:
            NoDatasetFoundError: Unknown dataset
            NoWorkflowFoundError: No workflow given and none stored
            BadContentError, PluginExecutionNotAllowedError: Validation failed
            WorkflowExecutionAlreadyExistsError: The dataset already has an active execution
            ExternalTaskError: Dataset registration downstream failed
        """
        dataset = self.get_dataset(dataset_id)
        if workflow is None:
            workflow = self.store.get_workflow(dataset_id)
            if workflow is None:
                raise NoWorkflowFoundError(
                    f"No workflow found with datasetId: {dataset_id}, in METIS", dataset_id=dataset_id
                )
        workflow.dataset_id = dataset_id

        predecessor = self.validator.validate_workflow_plugins(workflow, enforced_predecessor_type)

        dataset = self._ensure_downstream_dataset(dataset)

        reference = None
        if predecessor is not None:
            reference = PredecessorRef(execution_id=predecessor[1].id, plugin_id=predecessor[0].id)
        execution = self.execution_factory.create_workflow_execution(workflow, dataset, reference, priority)

        with self.lock_service.hold(f"{LockDefaults.SUBMIT_LOCK_PREFIX}:{dataset_id}"):
            existing = self.store.exists_and_not_completed(dataset_id)
            if existing:
                raise WorkflowExecutionAlreadyExistsError(
                    f"Workflow execution already exists with id {existing} and is not completed",
                    dataset_id=dataset_id, execution_id=existing
                )
            execution.started_by = actor or OrchestrationDefaults.SYSTEM_USER
            execution.created_date = utc_now()
            execution_id = self.store.add_execution(execution)

        self.queue.push(execution_id, execution.workflow_priority)
        self.logger.info(
            f"[ADMISSION] 📤 Execution {execution_id} queued for dataset {dataset_id} "
            f"(priority={execution.workflow_priority}, started_by={execution.started_by})"
        )
        return self.store.get_execution(execution_id)

    def _ensure_downstream_dataset(self, dataset: Dataset) -> Dataset:
        ecloud_dataset_id = self.task_client.create_dataset(dataset)
        if ecloud_dataset_id != dataset.ecloud_dataset_id:
            dataset.ecloud_dataset_id = ecloud_dataset_id
            self.store.update_dataset(dataset)
            self.logger.debug(f"Dataset {dataset.dataset_id} registered downstream as {ecloud_dataset_id}")
        return dataset

    def cancel_workflow_execution(self, execution_id: str, actor: Optional[str] = None) -> None:
        """
        Request cancellation; the supervising worker completes it.

        Raises:
            NoWorkflowExecutionFoundError: Missing, or not INQUEUE/RUNNING
        """
        execution = self.store.get_execution(execution_id)
        if (
            execution is None
            or execution.status not in _CANCELLABLE_STATUSES
            or not self.store.set_cancelling_state(execution_id, actor)
        ):
            raise NoWorkflowExecutionFoundError(
                f"Running workflowExecution with execution id: {execution_id}, does not exist or is not active",
                execution_id=execution_id
            )
        self.logger.info(f"🛑 Cancel requested for execution {execution_id} by {actor or OrchestrationDefaults.SYSTEM_USER}")

    # ========================================================================
    # EXECUTION QUERIES
    # ========================================================================

    def get_workflow_execution_by_execution_id(self, execution_id: str) -> Optional[WorkflowExecution]:
        return self.store.get_execution(execution_id)

    def get_running_or_inqueue_execution(self, dataset_id: str) -> Optional[WorkflowExecution]:
        return self.store.get_running_or_in_queue_execution(dataset_id)

    def get_workflow_execution_view(self, execution_id: str) -> WorkflowExecutionView:
        execution = self.store.get_execution(execution_id)
        if execution is None:
            raise NoWorkflowExecutionFoundError(
                f"No workflow execution found for workflowExecutionId: {execution_id}",
                execution_id=execution_id
            )
        return self.to_view(execution)

    def get_all_workflow_executions(
        self,
        dataset_id: Optional[str] = None,
        statuses: Optional[Set[WorkflowStatus]] = None,
        order_field: ExecutionOrderField = ExecutionOrderField.CREATED_DATE,
        ascending: bool = False,
        page: int = 0
    ) -> Page[WorkflowExecutionView]:
        """Executions of one dataset (or all), filtered by status, one page."""
        if dataset_id is not None:
            self.get_dataset(dataset_id)
        page_size = self.config.orchestration.workflow_executions_per_request
        executions = self.store.get_all_workflow_executions(
            {dataset_id} if dataset_id else None,
            statuses or None,
            order_field,
            ascending,
            page,
            page_size,
        )
        return Page[WorkflowExecutionView].of([self.to_view(e) for e in executions], page, page_size)

    def get_workflow_executions_overview(
        self,
        dataset_ids: Optional[Set[str]] = None,
        plugin_statuses: Optional[Set[PluginStatus]] = None,
        plugin_types: Optional[Set[PluginType]] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        page: int = 0,
        page_count: int = 1
    ) -> Page[WorkflowExecutionView]:
        """
        Overview listing: INQUEUE, RUNNING, CLEANING, then terminal.

        page_count consecutive pages are returned at once; next_page
        points past them when they are all full.
        """
        page_size = self.config.orchestration.workflow_executions_per_request
        page_count = max(page_count, 1)
        executions = self.store.get_workflow_executions_overview(
            dataset_ids or None,
            plugin_statuses or None,
            plugin_types or None,
            from_date,
            to_date,
            page,
            page_count,
            page_size,
        )
        views = [self.to_view(e) for e in executions]
        full = len(views) == page_size * page_count
        return Page[WorkflowExecutionView](
            results=views,
            list_size=len(views),
            next_page=page + page_count if full else -1,
        )

    def to_view(self, execution: WorkflowExecution) -> WorkflowExecutionView:
        try:
            is_incremental = self.data_evolution.is_incremental(execution)
        except InvalidLineageError as e:
            self.logger.warning(f"⚠️ Incremental flag unavailable for execution {execution.id}: {e}")
            is_incremental = False

        return WorkflowExecutionView(
            id=execution.id,
            dataset_id=execution.dataset_id,
            workflow_status=execution.status,
            ecloud_dataset_id=execution.ecloud_dataset_id,
            cancelled_by=execution.cancelled_by,
            started_by=execution.started_by,
            workflow_priority=execution.workflow_priority,
            cancelling=execution.cancelling,
            created_date=execution.created_date,
            started_date=execution.started_date,
            updated_date=execution.updated_date,
            finished_date=execution.finished_date,
            is_incremental=is_incremental,
            plugins=[
                PluginView(plugin=plugin, can_display_raw_xml=can_display_raw_xml(plugin))
                for plugin in execution.plugins
            ],
        )

    def get_dataset_execution_history(self, dataset_id: str) -> ExecutionHistory:
        """Executions with at least one plugin whose XML can be shown, newest first."""
        self.get_dataset(dataset_id)
        executions = [
            e for e in self.store.get_dataset_executions(dataset_id)
            if any(can_display_raw_xml(p) for p in e.plugins)
        ]
        executions.sort(key=lambda e: (e.started_date is not None, e.started_date or e.created_date), reverse=True)
        return ExecutionHistory(executions=[
            ExecutionHistoryEntry(workflow_execution_id=e.id, started_date=e.started_date)
            for e in executions
        ])

    def get_executable_plugins_with_data_availability(self, execution_id: str) -> PluginsWithDataAvailability:
        execution = self.store.get_execution(execution_id)
        if execution is None:
            raise NoWorkflowExecutionFoundError(
                f"No workflow execution found for workflowExecutionId: {execution_id}",
                execution_id=execution_id
            )
        return PluginsWithDataAvailability(plugins=[
            PluginAvailability(plugin_type=plugin.plugin_type, can_display_raw_xml=True)
            for plugin in execution.plugins
            if can_display_raw_xml(plugin)
        ])

    def get_record_evolution_for_version(self, execution_id: str, plugin_type: PluginType) -> VersionEvolution:
        """
        Lineage of the records produced by one plugin of an execution.

        Raises:
            NoWorkflowExecutionFoundError: Unknown execution, or no plugin of that type in it
        """
        execution = self.store.get_execution(execution_id)
        if execution is None:
            raise NoWorkflowExecutionFoundError(
                f"No workflow execution found for workflowExecutionId: {execution_id}",
                execution_id=execution_id
            )
        target = execution.get_plugin_by_type(plugin_type)
        if target is None:
            raise NoWorkflowExecutionFoundError(
                f"No plugin of type {plugin_type.value} found for workflowExecution with id: {execution_id}",
                execution_id=execution_id, plugin_type=plugin_type.value
            )

        steps = self.data_evolution.compile_version_evolution(target, execution)
        return VersionEvolution(evolution_steps=[
            VersionEvolutionStep(
                plugin_type=plugin.plugin_type,
                finished_time=plugin.finished_date,
                execution_id=step_execution.id,
                plugin_id=plugin.id,
            )
            for plugin, step_execution in steps
        ])

    def get_dataset_execution_information(self, dataset_id: str) -> DatasetExecutionInformation:
        self.get_dataset(dataset_id)
        return self.dataset_info.get_dataset_execution_information(dataset_id)

    def is_incremental_harvesting_allowed(self, dataset_id: str) -> bool:
        self.get_dataset(dataset_id)
        return self.validator.is_incremental_harvesting_allowed(dataset_id)

    # ========================================================================
    # RUNTIME SETTINGS
    # ========================================================================

    def get_solr_commit_period_in_mins(self) -> int:
        with self._settings_lock:
            return self._solr_commit_period_mins

    def set_solr_commit_period_in_mins(self, minutes: int) -> None:
        if minutes < 0:
            raise BadContentError("Solr commit period cannot be negative", minutes=minutes)
        with self._settings_lock:
            self._solr_commit_period_mins = minutes
        self.logger.info(f"⚙️ Solr commit period set to {minutes} min")

    # ========================================================================
    # SCHEDULED WORKFLOWS
    # ========================================================================

    def schedule_workflow(self, scheduled: ScheduledWorkflow) -> ScheduledWorkflow:
        """
        Raises:
            NoDatasetFoundError: Unknown dataset
            NoWorkflowFoundError: The dataset has no stored workflow
            BadContentError: Already scheduled, or priority out of range
        """
        self._validate_scheduled_workflow(scheduled)
        if not self.store.add_scheduled_workflow(scheduled):
            raise BadContentError(
                f"ScheduledWorkflow for datasetId: {scheduled.dataset_id} already exists",
                dataset_id=scheduled.dataset_id
            )
        self.logger.info(
            f"[SCHEDULER] 📅 Scheduled {scheduled.schedule_frequence.value} workflow for dataset "
            f"{scheduled.dataset_id} at {scheduled.pointer_date.isoformat()}"
        )
        return scheduled

    def update_scheduled_workflow(self, scheduled: ScheduledWorkflow) -> ScheduledWorkflow:
        self._validate_scheduled_workflow(scheduled, must_exist=True)
        existing = self.store.get_scheduled_workflow(scheduled.dataset_id)
        scheduled.id = existing.id
        self.store.update_scheduled_workflow(scheduled)
        return scheduled

    def get_scheduled_workflow_by_dataset_id(self, dataset_id: str) -> Optional[ScheduledWorkflow]:
        return self.store.get_scheduled_workflow(dataset_id)

    def get_all_scheduled_workflows(
        self,
        frequence: Optional[ScheduleFrequence] = None,
        page: int = 0
    ) -> Page[ScheduledWorkflow]:
        page_size = self.config.orchestration.scheduled_workflows_per_request
        results = self.store.get_all_scheduled_workflows(
            {frequence} if frequence else None, page, page_size
        )
        return Page[ScheduledWorkflow].of(results, page, page_size)

    def delete_scheduled_workflow(self, dataset_id: str) -> bool:
        return self.store.delete_scheduled_workflow(dataset_id)

    def _validate_scheduled_workflow(self, scheduled: ScheduledWorkflow, must_exist: bool = False) -> None:
        self.get_dataset(scheduled.dataset_id)
        if self.store.get_workflow(scheduled.dataset_id) is None:
            raise NoWorkflowFoundError(
                f"No workflow found with datasetId: {scheduled.dataset_id}, in METIS",
                dataset_id=scheduled.dataset_id
            )
        exists = self.store.get_scheduled_workflow(scheduled.dataset_id) is not None
        if must_exist and not exists:
            raise BadContentError(
                f"No scheduled workflow found for datasetId: {scheduled.dataset_id}",
                dataset_id=scheduled.dataset_id
            )
        if not must_exist and exists:
            raise BadContentError(
                f"ScheduledWorkflow for datasetId: {scheduled.dataset_id} already exists",
                dataset_id=scheduled.dataset_id
            )
        highest = self.config.queues.highest_priority
        if not 0 <= scheduled.workflow_priority <= highest:
            raise BadContentError(
                f"Priority value must be between 0 and {highest}",
                priority=scheduled.workflow_priority
            )

    # ========================================================================
    # DEPUBLISH REGISTRY
    # ========================================================================

    def add_records_to_depublish(self, dataset_id: str, record_ids: Set[str]) -> int:
        """Returns the number of record ids that were not registered yet."""
        self.get_dataset(dataset_id)
        added = self.depublish_registry.add_pending(dataset_id, record_ids)
        self.logger.info(f"📝 {added} record ids added for depublication in dataset {dataset_id}")
        return added

    def delete_pending_records(self, dataset_id: str, record_ids: Set[str]) -> int:
        self.get_dataset(dataset_id)
        return self.depublish_registry.delete_pending(dataset_id, record_ids)

    def get_depublish_record_ids(
        self,
        dataset_id: str,
        page: int = 0,
        sort_field: DepublishRecordIdSortField = DepublishRecordIdSortField.RECORD_ID,
        sort_direction: SortDirection = SortDirection.ASCENDING,
        search: Optional[str] = None
    ) -> Page[DepublishRecordId]:
        self.get_dataset(dataset_id)
        return self.depublish_registry.list_paged(dataset_id, page, sort_field, sort_direction, search)

    def get_pending_record_ids(self, dataset_id: str, subset: Optional[Set[str]] = None) -> List[str]:
        return sorted(self.depublish_registry.list_all_by_status(
            dataset_id, DepublicationStatus.PENDING_DEPUBLICATION, subset
        ))


__all__ = ["OrchestratorService"]
