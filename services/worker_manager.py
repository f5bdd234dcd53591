"""
Worker Manager - Queue Consumer and Execution Supervisors.

Pulls execution ids from the queue and supervises each execution on a
bounded thread pool. A supervisor runs the plugins of one execution
strictly in order: it builds and submits the plugin's external task,
polls its progress every monitor interval, and drives the plugin and
execution state machines to a terminal status.

Cancellation is cooperative: the supervisor re-reads the execution on
every poll and, once the cancelling flag is set, kills the external task
and cancels the remaining plugins.

Redelivery is tolerated: a pulled id whose execution is missing,
terminal or already supervised in this process is ignored, and a
RUNNING execution re-enqueued by the failsafe loop resumes at its first
unfinished plugin.

Exports:
    WorkerManager: Bounded pool of execution supervisors fed by the queue
    ExecutionSupervisor: Drives one execution to a terminal status
"""

import concurrent.futures
import threading
from typing import Dict, List, Optional, Set

from config import OrchestrationConfig
from core.logic import can_plugin_transition, can_workflow_transition, is_plugin_terminal
from core.models import (
    DataStatus,
    DepublicationStatus,
    ExternalTaskState,
    Plugin,
    PluginStatus,
    PluginType,
    TaskProgress,
    WorkflowExecution,
    WorkflowStatus,
)
from core.utils import utc_now
from exceptions import ContractViolationError, ExternalTaskError, TaskPreparationError
from infrastructure.dps_client import TOPOLOGY_BY_PLUGIN_TYPE
from infrastructure.interface_repository import (
    IDepublishRegistry,
    IExecutionQueue,
    IExecutionStore,
    IExternalTaskClient,
)
from services.plugin_tasks import PluginTaskBuilder
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.WORKER, "WorkerManager")

_CANCEL_REASON = "Cancelled by user"


# ============================================================================
# EXECUTION SUPERVISOR
# ============================================================================

class ExecutionSupervisor:
    """
    Supervises one workflow execution.

    Every state change is written through the store, whose transition
    checks reject regressions; a poll without state change still writes
    the execution so its updated_date shows the supervisor is alive.
    """

    def __init__(
        self,
        execution_id: str,
        store: IExecutionStore,
        task_client: IExternalTaskClient,
        task_builder: PluginTaskBuilder,
        depublish_registry: IDepublishRegistry,
        monitor_interval_secs: float,
        max_poll_failures: int,
        stop_event: threading.Event
    ):
        self.execution_id = execution_id
        self.store = store
        self.task_client = task_client
        self.task_builder = task_builder
        self.depublish_registry = depublish_registry
        self.monitor_interval_secs = monitor_interval_secs
        self.max_poll_failures = max(max_poll_failures, 1)
        self.stop_event = stop_event
        self.logger = logger

    def run(self) -> Optional[WorkflowStatus]:
        """
        Drive the execution as far as possible.

        Returns:
            The execution status when the supervisor stopped, or None when
            the execution does not exist. A non-terminal result means the
            process is shutting down and the failsafe loop will requeue it.
        """
        execution = self.store.get_execution(self.execution_id)
        if execution is None:
            logger.warning(f"[WORKER] ⚠️ Execution {self.execution_id} not found - ignoring message")
            return None
        if execution.is_terminal:
            logger.info(f"[WORKER] Execution {execution.id} already {execution.status.value} - ignoring message")
            return execution.status

        self.logger = LoggerFactory.create_with_context(
            ComponentType.WORKER, "ExecutionSupervisor",
            dataset_id=execution.dataset_id, execution_id=execution.id
        )

        if execution.cancelling:
            self._cancel_execution(execution, execution.cancelled_by)
            return execution.status

        if execution.status == WorkflowStatus.INQUEUE:
            self._set_execution_status(execution, WorkflowStatus.RUNNING)
            execution.started_date = utc_now()
            self.store.update_execution(execution)
            self.logger.info(f"[WORKER] ▶️ Execution {execution.id} started for dataset {execution.dataset_id}")
        else:
            self.logger.info(f"[WORKER] 🔁 Resuming execution {execution.id} for dataset {execution.dataset_id}")

        for plugin in execution.plugins:
            if plugin.status == PluginStatus.FINISHED:
                continue
            if is_plugin_terminal(plugin.status):
                self._finish_execution(execution, WorkflowStatus.FAILED)
                return execution.status

            current = self.store.get_execution(execution.id)
            if current is not None and current.cancelling:
                self._cancel_execution(execution, current.cancelled_by)
                return execution.status

            outcome = self._run_plugin(execution, plugin)
            if outcome != PluginStatus.FINISHED:
                return execution.status

        self._finish_execution(execution, WorkflowStatus.FINISHED)
        return execution.status

    # ------------------------------------------------------------------
    # Plugins
    # ------------------------------------------------------------------

    def _run_plugin(self, execution: WorkflowExecution, plugin: Plugin) -> Optional[PluginStatus]:
        """Run one plugin; returns its final status, or None on shutdown."""
        topology = TOPOLOGY_BY_PLUGIN_TYPE.get(plugin.plugin_type)

        if plugin.external_task_id is None:
            try:
                task = self.task_builder.build_task(plugin, execution)
                task_id = self.task_client.submit_task(task)
            except (TaskPreparationError, ExternalTaskError) as e:
                self._fail_plugin(execution, plugin, str(e))
                return plugin.status

            topology = task.topology
            plugin.external_task_id = task_id
            self._set_plugin_status(plugin, PluginStatus.RUNNING)
            plugin.started_date = utc_now()
            plugin.updated_date = plugin.started_date
            self.store.update_execution(execution)
            self.logger.info(
                f"[WORKER] 🚀 Plugin {plugin.plugin_type.value} submitted to {topology} as task {task_id}"
            )

        return self._monitor_plugin(execution, plugin, topology)

    def _monitor_plugin(
        self,
        execution: WorkflowExecution,
        plugin: Plugin,
        topology: str
    ) -> Optional[PluginStatus]:
        failures = 0
        while not self.stop_event.wait(self.monitor_interval_secs):
            current = self.store.get_execution(execution.id)
            if current is not None and current.cancelling:
                self._cancel_execution(execution, current.cancelled_by)
                return plugin.status

            try:
                progress = self.task_client.get_progress(topology, plugin.external_task_id)
            except ExternalTaskError as e:
                failures += 1
                self.logger.warning(
                    f"[WORKER] ⚠️ Progress of task {plugin.external_task_id} unavailable "
                    f"({failures}/{self.max_poll_failures}): {e}"
                )
                if failures >= self.max_poll_failures:
                    self._fail_plugin(
                        execution, plugin,
                        f"Lost contact with task {plugin.external_task_id} after {failures} attempts: {e}"
                    )
                    return plugin.status
                continue

            failures = 0
            if self._apply_progress(execution, plugin, progress):
                return plugin.status

        self.logger.info(
            f"[WORKER] 🛑 Shutdown while monitoring {plugin.plugin_type.value} - leaving execution to the failsafe loop"
        )
        return None

    def _apply_progress(self, execution: WorkflowExecution, plugin: Plugin, progress: TaskProgress) -> bool:
        """Map a progress report onto the plugin; True once the plugin is terminal."""
        plugin.progress = progress.to_execution_progress()
        plugin.updated_date = utc_now()

        if progress.state == ExternalTaskState.PROCESSED:
            self._complete_plugin(execution, plugin)
            return True
        if progress.state == ExternalTaskState.DROPPED:
            self._fail_plugin(execution, plugin, progress.info or f"Task {plugin.external_task_id} was dropped")
            return True

        if progress.state == ExternalTaskState.REMOVING_FROM_SOLR_AND_MONGO:
            self._set_plugin_status(plugin, PluginStatus.CLEANING)
        self.store.update_execution(execution)
        self.logger.debug(
            f"[WORKER] {plugin.plugin_type.value} {progress.state.value}: "
            f"processed={progress.processed_records} errors={progress.errors}"
        )
        return False

    def _complete_plugin(self, execution: WorkflowExecution, plugin: Plugin) -> None:
        self._set_plugin_status(plugin, PluginStatus.FINISHED)
        plugin.finished_date = utc_now()

        if plugin.progress.processed_records <= plugin.progress.errors:
            plugin.failure_reason = (
                f"No valid records: processed={plugin.progress.processed_records}, "
                f"errors={plugin.progress.errors}"
            )
            self.logger.warning(f"[WORKER] ❌ {plugin.plugin_type.value} finished without valid data")
            self._cancel_remaining(execution)
            self._finish_execution(execution, WorkflowStatus.FAILED)
            return

        plugin.data_status = DataStatus.VALID
        if plugin.plugin_type == PluginType.DEPUBLISH and not plugin.plugin_metadata.dataset_depublish:
            self._mark_records_depublished(execution, plugin)
        self.store.update_execution(execution)
        self.logger.info(
            f"[WORKER] ✅ Plugin {plugin.plugin_type.value} finished: {plugin.progress.net_records} records"
        )

    def _mark_records_depublished(self, execution: WorkflowExecution, plugin: Plugin) -> None:
        pending = self.depublish_registry.list_all_by_status(
            execution.dataset_id, DepublicationStatus.PENDING_DEPUBLICATION
        )
        if pending:
            self.depublish_registry.mark_status(
                execution.dataset_id, pending, DepublicationStatus.DEPUBLISHED, plugin.finished_date
            )
            self.logger.info(f"[WORKER] {len(pending)} records marked DEPUBLISHED")

    def _fail_plugin(self, execution: WorkflowExecution, plugin: Plugin, reason: str) -> None:
        self._set_plugin_status(plugin, PluginStatus.FAILED)
        plugin.failure_reason = reason
        plugin.finished_date = utc_now()
        self.logger.error(f"[WORKER] ❌ Plugin {plugin.plugin_type.value} failed: {reason}")
        self._cancel_remaining(execution)
        self._finish_execution(execution, WorkflowStatus.FAILED)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _cancel_execution(self, execution: WorkflowExecution, cancelled_by: Optional[str]) -> None:
        for plugin in execution.plugins:
            if is_plugin_terminal(plugin.status) or plugin.external_task_id is None:
                continue
            topology = TOPOLOGY_BY_PLUGIN_TYPE.get(plugin.plugin_type)
            try:
                self.task_client.kill_task(topology, plugin.external_task_id, _CANCEL_REASON)
            except ExternalTaskError as e:
                self.logger.warning(f"[WORKER] ⚠️ Kill of task {plugin.external_task_id} failed: {e}")
            self._set_plugin_status(plugin, PluginStatus.CANCELLED)
            plugin.finished_date = utc_now()

        self._cancel_remaining(execution)
        execution.cancelled_by = cancelled_by
        self._finish_execution(execution, WorkflowStatus.CANCELLED)

    def _cancel_remaining(self, execution: WorkflowExecution) -> None:
        """Cancel plugins that never got past INQUEUE."""
        for plugin in execution.plugins:
            if plugin.status == PluginStatus.INQUEUE:
                plugin.status = PluginStatus.CANCELLED

    def _finish_execution(self, execution: WorkflowExecution, status: WorkflowStatus) -> None:
        self._set_execution_status(execution, status)
        execution.finished_date = utc_now()
        self.store.update_execution(execution)
        emoji = {WorkflowStatus.FINISHED: "✅", WorkflowStatus.FAILED: "❌"}.get(status, "🛑")
        self.logger.info(f"[WORKER] {emoji} Execution {execution.id} {status.value}")

    @staticmethod
    def _set_plugin_status(plugin: Plugin, status: PluginStatus) -> None:
        if not can_plugin_transition(plugin.status, status):
            raise ContractViolationError(
                f"Invalid plugin transition {plugin.status.value} -> {status.value} for plugin {plugin.id}"
            )
        plugin.status = status

    @staticmethod
    def _set_execution_status(execution: WorkflowExecution, status: WorkflowStatus) -> None:
        if not can_workflow_transition(execution.status, status):
            raise ContractViolationError(
                f"Invalid execution transition {execution.status.value} -> {status.value} for {execution.id}"
            )
        execution.status = status


# ============================================================================
# WORKER MANAGER
# ============================================================================

class WorkerManager:
    """
    Consumes the execution queue with at most max_concurrent_threads
    executions supervised at once.

    Usage:
        manager = WorkerManager(store, queue, client, builder, registry, config.orchestration)
        while running:
            manager.poll_once(timeout=5)
        manager.shutdown()
    """

    def __init__(
        self,
        store: IExecutionStore,
        queue: IExecutionQueue,
        task_client: IExternalTaskClient,
        task_builder: PluginTaskBuilder,
        depublish_registry: IDepublishRegistry,
        config: OrchestrationConfig,
        max_poll_failures: int = 3,
        stop_event: Optional[threading.Event] = None
    ):
        self.store = store
        self.queue = queue
        self.task_client = task_client
        self.task_builder = task_builder
        self.depublish_registry = depublish_registry
        self.config = config
        self.max_poll_failures = max_poll_failures
        self.stop_event = stop_event or threading.Event()

        self._slots = threading.BoundedSemaphore(config.max_concurrent_threads)
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=config.max_concurrent_threads,
            thread_name_prefix="execution-supervisor"
        )
        self._active: Dict[str, concurrent.futures.Future] = {}
        self._active_lock = threading.Lock()
        self.executions_completed = 0

        logger.info(f"WorkerManager initialized: max_concurrent_threads={config.max_concurrent_threads}")

    def active_execution_ids(self) -> Set[str]:
        """Executions supervised in this process right now."""
        with self._active_lock:
            return set(self._active)

    def poll_once(self, timeout: float) -> bool:
        """
        Wait for a free slot, pull one message and dispatch it.

        Returns:
            True if an execution was handed to a supervisor
        """
        if not self._slots.acquire(timeout=timeout):
            return False
        try:
            message = self.queue.pull(timeout)
        except Exception:
            self._slots.release()
            raise
        if message is None:
            self._slots.release()
            return False
        return self._dispatch(message.execution_id)

    def _dispatch(self, execution_id: str) -> bool:
        """Hand an execution to the pool; the caller holds one slot."""
        with self._active_lock:
            if execution_id in self._active:
                self._slots.release()
                logger.info(f"[WORKER] Execution {execution_id} already supervised here - ignoring message")
                return False
            future = self._executor.submit(self._supervise, execution_id)
            self._active[execution_id] = future
        return True

    def _supervise(self, execution_id: str) -> Optional[WorkflowStatus]:
        try:
            return self.run_execution(execution_id)
        except Exception as e:
            logger.exception(f"[WORKER] 💥 Supervisor of execution {execution_id} crashed: {e}")
            raise
        finally:
            with self._active_lock:
                self._active.pop(execution_id, None)
                self.executions_completed += 1
            self._slots.release()

    def run_execution(self, execution_id: str) -> Optional[WorkflowStatus]:
        """Supervise one execution in the calling thread."""
        supervisor = ExecutionSupervisor(
            execution_id,
            self.store,
            self.task_client,
            self.task_builder,
            self.depublish_registry,
            monitor_interval_secs=self.config.monitor_check_interval_secs,
            max_poll_failures=self.max_poll_failures,
            stop_event=self.stop_event,
        )
        return supervisor.run()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no supervisor is running; False on timeout."""
        with self._active_lock:
            futures: List[concurrent.futures.Future] = list(self._active.values())
        done, not_done = concurrent.futures.wait(futures, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        """Signal supervisors to stop and release the pool."""
        self.stop_event.set()
        self._executor.shutdown(wait=wait)
        logger.info(f"WorkerManager stopped after {self.executions_completed} supervised executions")

    def get_status(self) -> dict:
        return {
            "max_concurrent_threads": self.config.max_concurrent_threads,
            "active_executions": sorted(self.active_execution_ids()),
            "executions_completed": self.executions_completed,
        }


__all__ = ["WorkerManager", "ExecutionSupervisor"]
