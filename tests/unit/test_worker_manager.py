"""
Execution supervision: plugin dispatch, progress mapping, failure,
cancellation, shutdown and resume.

The external task service is the scripted FakeTaskClient; executions
are admitted through the orchestrator so they look exactly like
production admissions.
"""

import threading
import time

import pytest

from core.models import (
    DataStatus,
    DepublicationStatus,
    ExternalTaskState,
    PluginStatus,
    PluginType,
    WorkflowStatus,
)
from exceptions import ExternalTaskError
from services import WorkerManager

from tests.factories.model_factories import (
    ORDERED_PIPELINE,
    base_time,
    make_dataset,
    make_finished_execution,
    make_plugin_metadata,
    make_workflow,
)
from tests.factories.helpers import progress


HARVEST_ONLY = [PluginType.OAIPMH_HARVEST, PluginType.VALIDATION_EXTERNAL]


def wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def _make_manager(components, task_builder, app_config, stop_event=None):
    return WorkerManager(
        components.store,
        components.queue,
        components.task_client,
        task_builder,
        components.depublish_registry,
        app_config.orchestration,
        max_poll_failures=app_config.external_tasks.max_retries,
        stop_event=stop_event,
    )


@pytest.fixture
def manager(components, task_builder, app_config):
    manager = _make_manager(components, task_builder, app_config)
    yield manager
    manager.shutdown(wait=True)


@pytest.fixture
def admit(orchestrator, dataset):
    """Admit a workflow of the given kinds for the registered dataset."""
    def _admit(plugin_types=HARVEST_ONLY, workflow=None):
        workflow = workflow or make_workflow(dataset.dataset_id, plugin_types)
        return orchestrator.add_workflow_execution(dataset.dataset_id, workflow)
    return _admit


# ============================================================================
# HAPPY PATH
# ============================================================================

class TestCompletion:

    def test_plugins_run_in_order(self, manager, admit, store, task_client):
        execution = admit()

        assert manager.run_execution(execution.id) == WorkflowStatus.FINISHED

        stored = store.get_execution(execution.id)
        assert stored.status == WorkflowStatus.FINISHED
        assert stored.started_date is not None and stored.finished_date is not None
        assert task_client.topologies_submitted() == ["oai_harvest", "validation"]
        for plugin in stored.plugins:
            assert plugin.status == PluginStatus.FINISHED
            assert plugin.data_status == DataStatus.VALID
            assert plugin.progress.processed_records == 10
            assert plugin.external_task_id is not None

    def test_second_task_reads_first_output(self, manager, admit, task_client):
        execution = admit()
        manager.run_execution(execution.id)

        first, second = task_client.submitted
        assert second.input_revision["revisionName"] == "OAIPMH_HARVEST"
        assert second.input_revision["taskId"] == "task-1"
        assert first.input_revision is None

    def test_intermediate_states_are_followed(self, manager, admit, store, task_client):
        task_client.script(
            "oai_harvest",
            progress(ExternalTaskState.QUEUED, processed=0),
            progress(ExternalTaskState.CURRENTLY_PROCESSING, processed=4),
            progress(ExternalTaskState.REMOVING_FROM_SOLR_AND_MONGO, processed=8),
            progress(ExternalTaskState.PROCESSED, processed=8),
        )
        execution = admit()

        assert manager.run_execution(execution.id) == WorkflowStatus.FINISHED
        assert store.get_execution(execution.id).plugins[0].progress.processed_records == 8


# ============================================================================
# FAILURES
# ============================================================================

class TestFailures:

    def test_no_valid_records_fails_execution(self, manager, admit, store, task_client):
        task_client.script("oai_harvest", progress(ExternalTaskState.PROCESSED, processed=5, errors=5))
        execution = admit()

        assert manager.run_execution(execution.id) == WorkflowStatus.FAILED

        harvest, validation = store.get_execution(execution.id).plugins
        assert harvest.status == PluginStatus.FINISHED
        assert harvest.data_status is None
        assert harvest.failure_reason
        assert validation.status == PluginStatus.CANCELLED
        assert task_client.topologies_submitted() == ["oai_harvest"]

    def test_dropped_task_fails_plugin(self, manager, admit, store, task_client):
        task_client.script("oai_harvest", progress(ExternalTaskState.DROPPED, info="killed by operator"))
        execution = admit()

        assert manager.run_execution(execution.id) == WorkflowStatus.FAILED

        harvest, validation = store.get_execution(execution.id).plugins
        assert harvest.status == PluginStatus.FAILED
        assert harvest.failure_reason == "killed by operator"
        assert validation.status == PluginStatus.CANCELLED

    def test_submission_failure(self, manager, admit, store, task_client):
        task_client.submit_errors["validation"] = ExternalTaskError("service unavailable")
        execution = admit()

        assert manager.run_execution(execution.id) == WorkflowStatus.FAILED

        harvest, validation = store.get_execution(execution.id).plugins
        assert harvest.status == PluginStatus.FINISHED
        assert validation.status == PluginStatus.FAILED
        assert "service unavailable" in validation.failure_reason

    def test_poll_failure_below_threshold_is_tolerated(self, manager, admit, task_client):
        task_client.script("oai_harvest", ExternalTaskError("blip"), progress(ExternalTaskState.PROCESSED))
        execution = admit()
        assert manager.run_execution(execution.id) == WorkflowStatus.FINISHED

    def test_repeated_poll_failures_fail_plugin(self, manager, admit, store, task_client):
        task_client.script("oai_harvest", ExternalTaskError("gone"))
        execution = admit()

        assert manager.run_execution(execution.id) == WorkflowStatus.FAILED
        assert "Lost contact" in store.get_execution(execution.id).plugins[0].failure_reason

    def test_task_preparation_failure(self, manager, orchestrator, dataset, store, registry, task_client):
        store.add_execution(make_finished_execution(dataset.dataset_id, ORDERED_PIPELINE, base_time()))
        registry.add_pending(dataset.dataset_id, {"r1"})
        workflow = make_workflow(dataset.dataset_id, [])
        workflow.plugins.append(make_plugin_metadata(PluginType.DEPUBLISH, dataset_depublish=False))
        execution = orchestrator.add_workflow_execution(dataset.dataset_id, workflow)
        registry.delete_pending(dataset.dataset_id, {"r1"})

        assert manager.run_execution(execution.id) == WorkflowStatus.FAILED
        assert task_client.submitted == []


class TestRecordDepublication:

    def test_pending_records_are_marked_depublished(self, manager, orchestrator, dataset, store, registry,
                                                    task_client):
        store.add_execution(make_finished_execution(dataset.dataset_id, ORDERED_PIPELINE, base_time()))
        registry.add_pending(dataset.dataset_id, {"r1", "r2"})
        workflow = make_workflow(dataset.dataset_id, [])
        workflow.plugins.append(make_plugin_metadata(PluginType.DEPUBLISH, dataset_depublish=False))
        execution = orchestrator.add_workflow_execution(dataset.dataset_id, workflow)

        assert manager.run_execution(execution.id) == WorkflowStatus.FINISHED

        assert "RECORD_IDS_TO_DEPUBLISH" in task_client.submitted[0].parameters
        assert registry.list_all_by_status(dataset.dataset_id, DepublicationStatus.DEPUBLISHED) == {"r1", "r2"}
        assert registry.count(dataset.dataset_id, DepublicationStatus.PENDING_DEPUBLICATION) == 0


# ============================================================================
# CANCELLATION
# ============================================================================

class TestCancellation:

    def test_cancel_before_pickup(self, manager, admit, orchestrator, store, task_client):
        execution = admit()
        orchestrator.cancel_workflow_execution(execution.id, "carol")

        assert manager.run_execution(execution.id) == WorkflowStatus.CANCELLED

        stored = store.get_execution(execution.id)
        assert stored.cancelled_by == "carol"
        assert all(p.status == PluginStatus.CANCELLED for p in stored.plugins)
        assert task_client.submitted == []

    @pytest.mark.parametrize("kill_error", [None, ExternalTaskError("kill refused")],
                             ids=["kill-accepted", "kill-refused"])
    def test_cancel_while_running(self, manager, admit, orchestrator, store, task_client, kill_error):
        task_client.script("oai_harvest", progress(ExternalTaskState.CURRENTLY_PROCESSING))
        task_client.kill_error = kill_error
        execution = admit()
        result = {}
        thread = threading.Thread(target=lambda: result.setdefault("status", manager.run_execution(execution.id)))
        thread.start()

        assert wait_until(lambda: task_client.submitted)
        orchestrator.cancel_workflow_execution(execution.id, "dave")
        thread.join(timeout=5)

        assert result["status"] == WorkflowStatus.CANCELLED
        harvest, validation = store.get_execution(execution.id).plugins
        assert harvest.status == PluginStatus.CANCELLED
        assert validation.status == PluginStatus.CANCELLED
        assert task_client.killed == [harvest.external_task_id]

    def test_cancel_during_final_poll_stops_next_dispatch(self, manager, admit, orchestrator, store, task_client):
        execution = admit()
        report_progress = task_client.get_progress

        def cancel_then_report(topology, task_id):
            orchestrator.cancel_workflow_execution(execution.id, "erin")
            return report_progress(topology, task_id)

        task_client.get_progress = cancel_then_report

        assert manager.run_execution(execution.id) == WorkflowStatus.CANCELLED

        stored = store.get_execution(execution.id)
        harvest, validation = stored.plugins
        assert task_client.topologies_submitted() == ["oai_harvest"]
        assert harvest.status == PluginStatus.FINISHED
        assert validation.status == PluginStatus.CANCELLED
        assert stored.cancelled_by == "erin"


# ============================================================================
# SHUTDOWN, RESUME AND REDELIVERY
# ============================================================================

class TestResume:

    def test_shutdown_leaves_execution_running_and_resume_finishes_it(
        self, components, task_builder, app_config, admit, store, task_client
    ):
        stopped = threading.Event()
        stopped.set()
        first = _make_manager(components, task_builder, app_config, stop_event=stopped)
        execution = admit()

        assert first.run_execution(execution.id) == WorkflowStatus.RUNNING
        first.shutdown()
        interrupted = store.get_execution(execution.id)
        assert interrupted.plugins[0].status == PluginStatus.RUNNING

        second = _make_manager(components, task_builder, app_config)
        try:
            assert second.run_execution(execution.id) == WorkflowStatus.FINISHED
        finally:
            second.shutdown()

        assert task_client.topologies_submitted() == ["oai_harvest", "validation"]

    def test_missing_execution_is_ignored(self, manager):
        assert manager.run_execution("missing") is None

    def test_terminal_execution_is_not_touched(self, manager, dataset, store, task_client):
        finished = make_finished_execution(dataset.dataset_id, HARVEST_ONLY, base_time())
        store.add_execution(finished)

        assert manager.run_execution(finished.id) == WorkflowStatus.FINISHED
        assert task_client.submitted == []


class TestQueueConsumption:

    def test_poll_dispatches_until_idle(self, manager, orchestrator, store, execution_queue):
        executions = []
        for _ in range(2):
            dataset = orchestrator.register_dataset(make_dataset())
            executions.append(orchestrator.add_workflow_execution(
                dataset.dataset_id, make_workflow(dataset.dataset_id, HARVEST_ONLY)
            ))

        assert manager.poll_once(timeout=0.1)
        assert manager.poll_once(timeout=0.1)
        assert manager.wait_idle(timeout=5)

        assert all(store.get_execution(e.id).status == WorkflowStatus.FINISHED for e in executions)
        assert manager.get_status()["executions_completed"] == 2
        assert manager.active_execution_ids() == set()

    def test_empty_queue(self, manager):
        assert not manager.poll_once(timeout=0.01)

    def test_redelivered_message_of_finished_execution(self, manager, admit, store, execution_queue):
        execution = admit()
        manager.poll_once(timeout=0.1)
        manager.wait_idle(timeout=5)

        execution_queue.push(execution.id, 0)
        assert manager.poll_once(timeout=0.1)
        assert manager.wait_idle(timeout=5)

        assert store.get_execution(execution.id).status == WorkflowStatus.FINISHED

    def test_concurrency_limit_holds_back_extra_executions(
        self, components, task_builder, app_config, orchestrator, task_client
    ):
        task_client.script("oai_harvest", progress(ExternalTaskState.CURRENTLY_PROCESSING))
        config = app_config.model_copy(
            update={"orchestration": app_config.orchestration.model_copy(update={"max_concurrent_threads": 2})}
        )
        manager = _make_manager(components, task_builder, config)
        for _ in range(3):
            dataset = orchestrator.register_dataset(make_dataset())
            orchestrator.add_workflow_execution(dataset.dataset_id, make_workflow(dataset.dataset_id, HARVEST_ONLY))

        try:
            assert manager.poll_once(timeout=0.1)
            assert manager.poll_once(timeout=0.1)
            assert not manager.poll_once(timeout=0.1)
            assert len(manager.active_execution_ids()) == 2

            orchestrator.cancel_workflow_execution(next(iter(manager.active_execution_ids())), "grace")

            assert manager.poll_once(timeout=5)
            assert len(manager.active_execution_ids()) == 2
        finally:
            manager.shutdown(wait=True)
