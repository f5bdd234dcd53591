"""
Unit test fixtures — in-memory infrastructure and a scripted task client.
"""

import itertools
import threading
from typing import Dict, List, Union

import pytest

from config import AppConfig, ExternalTaskConfig, OrchestrationConfig, QueueConfig
from core.models import Dataset, DpsTask, ExternalTaskState, TaskProgress
from infrastructure.factory import InfrastructureComponents
from infrastructure.interface_repository import IExternalTaskClient
from infrastructure.locks import InMemoryLockService
from infrastructure.memory_store import InMemoryDepublishRegistry, InMemoryExecutionStore
from infrastructure.queue import InMemoryExecutionQueue
from services import DataEvolutionService, OrchestratorService, PluginTaskBuilder

from tests.factories.helpers import progress
from tests.factories.model_factories import make_dataset


ScriptStep = Union[TaskProgress, Exception]


class FakeTaskClient(IExternalTaskClient):
    """
    External task service double.

    Each submitted task replays the script of its topology; the last
    step repeats once the script is exhausted. The default script
    finishes every task on the first poll with 10 records.
    """

    def __init__(self):
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self.scripts: Dict[str, List[ScriptStep]] = {}
        self.submit_errors: Dict[str, Exception] = {}
        self.submitted: List[DpsTask] = []
        self.killed: List[str] = []
        self.kill_error: Exception = None
        self.registered: List[str] = []
        self._remaining: Dict[str, List[ScriptStep]] = {}

    def script(self, topology: str, *steps: ScriptStep) -> None:
        self.scripts[topology] = list(steps)

    def submit_task(self, task: DpsTask) -> str:
        if task.topology in self.submit_errors:
            raise self.submit_errors[task.topology]
        with self._lock:
            task_id = f"task-{next(self._ids)}"
            self.submitted.append(task)
            self._remaining[task_id] = list(
                self.scripts.get(task.topology, [progress(ExternalTaskState.PROCESSED)])
            )
        return task_id

    def get_progress(self, topology: str, task_id: str) -> TaskProgress:
        with self._lock:
            steps = self._remaining[task_id]
            step = steps.pop(0) if len(steps) > 1 else steps[0]
        if isinstance(step, Exception):
            raise step
        return step

    def kill_task(self, topology: str, task_id: str, reason: str) -> None:
        self.killed.append(task_id)
        if self.kill_error is not None:
            raise self.kill_error

    def create_dataset(self, dataset: Dataset) -> str:
        self.registered.append(dataset.dataset_id)
        return dataset.ecloud_dataset_id or f"ecloud-{dataset.dataset_id}"

    def topologies_submitted(self) -> List[str]:
        return [task.topology for task in self.submitted]


@pytest.fixture
def app_config():
    """Configuration tuned for fast, deterministic tests."""
    return AppConfig(
        storage_backend="memory",
        queues=QueueConfig(highest_priority=10),
        orchestration=OrchestrationConfig(
            max_concurrent_threads=4,
            monitor_check_interval_secs=0.01,
            solr_commit_period_mins=15,
            failsafe_stale_after_mins=10,
            depublish_max_records_per_dataset=5,
            workflow_executions_per_request=3,
            depublished_records_per_request=2,
            scheduled_workflows_per_request=2,
        ),
        external_tasks=ExternalTaskConfig(max_retries=2, retry_base_delay_secs=0),
    )


@pytest.fixture
def store():
    return InMemoryExecutionStore()


@pytest.fixture
def registry(app_config):
    orchestration = app_config.orchestration
    return InMemoryDepublishRegistry(
        orchestration.depublish_max_records_per_dataset,
        orchestration.depublished_records_per_request,
    )


@pytest.fixture
def lock_service():
    return InMemoryLockService(watchdog_timeout_secs=5, poll_interval_secs=0.01)


@pytest.fixture
def execution_queue(app_config):
    return InMemoryExecutionQueue(app_config.queues.highest_priority)


@pytest.fixture
def task_client():
    return FakeTaskClient()


@pytest.fixture
def components(store, registry, lock_service, execution_queue, task_client):
    return InfrastructureComponents(
        store=store,
        depublish_registry=registry,
        lock_service=lock_service,
        queue=execution_queue,
        task_client=task_client,
    )


@pytest.fixture
def orchestrator(components, app_config):
    return OrchestratorService(components, app_config)


@pytest.fixture
def data_evolution(store):
    return DataEvolutionService(store)


@pytest.fixture
def task_builder(registry, data_evolution, app_config):
    return PluginTaskBuilder(registry, data_evolution, app_config.external_tasks)


@pytest.fixture
def dataset(store):
    """A registered dataset."""
    dataset = make_dataset()
    store.create_dataset(dataset)
    return dataset
