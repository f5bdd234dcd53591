"""
PostgreSQL store, registry and lock leases without a database.

_execute_query is replaced by a recorder, so these tests pin the SQL
contract (composition, parameters, row mapping, error mapping) rather
than PostgreSQL behaviour.
"""

from datetime import timedelta
from types import SimpleNamespace

import psycopg
import pytest
from psycopg import sql

from config import DatabaseConfig
from core.models import (
    DepublicationStatus,
    DepublishRecordIdSortField,
    ExecutionOrderField,
    PluginType,
    ScheduleFrequence,
    SortDirection,
    WorkflowExecution,
    WorkflowStatus,
)
from exceptions import (
    BadContentError,
    ContractViolationError,
    DatabaseError,
    WorkflowExecutionAlreadyExistsError,
)
from infrastructure.depublish_repository import PostgreSQLDepublishRegistry
from infrastructure.locks import PostgreSQLLockService
from infrastructure.postgresql import PostgreSQLExecutionStore

from tests.factories.model_factories import base_time, make_dataset_id, make_finished_execution


DB_CONFIG = DatabaseConfig(host="db.test", database="metis", user="metis", retry_base_delay_secs=0)


class QueryRecorder:
    """Stands in for _execute_query; replays results in order."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def __call__(self, query, params=None, fetch=None, retry=False):
        self.calls.append(SimpleNamespace(sql=query.as_string(None), params=params, fetch=fetch, retry=retry))
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return {'one': None, 'all': []}.get(fetch, 1)


def _row(execution: WorkflowExecution) -> dict:
    return {
        'document': execution.model_dump(mode="json"),
        'cancelling': execution.cancelling,
        'cancelled_by': execution.cancelled_by,
        'updated_date': execution.updated_date,
    }


@pytest.fixture
def store():
    return PostgreSQLExecutionStore(DB_CONFIG)


@pytest.fixture
def recorder(store, monkeypatch):
    recorder = QueryRecorder()
    monkeypatch.setattr(store, "_execute_query", recorder)
    return recorder


# ============================================================================
# QUERY EXECUTION
# ============================================================================

class TestQueryExecution:

    def test_raw_strings_are_rejected(self, store):
        with pytest.raises(TypeError):
            store._execute_query("SELECT 1")

    def test_unknown_fetch_mode(self, store):
        with pytest.raises(ValueError):
            store._execute_query(sql.SQL("SELECT {}").format(sql.Literal(1)), fetch="many")

    def test_connection_errors_are_retried(self, store, monkeypatch):
        outcomes = [psycopg.OperationalError("gone"), psycopg.OperationalError("gone"), [{'x': 1}]]

        def run_query(query, params, fetch):
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        monkeypatch.setattr(store, "_run_query", run_query)

        result = store._execute_query(sql.SQL("SELECT {}").format(sql.Literal(1)), fetch='all', retry=True)

        assert result == [{'x': 1}]
        assert outcomes == []

    def test_without_retry_the_first_failure_is_final(self, store, monkeypatch):
        calls = []

        def run_query(query, params, fetch):
            calls.append(query)
            raise psycopg.OperationalError("gone")

        monkeypatch.setattr(store, "_run_query", run_query)

        with pytest.raises(DatabaseError):
            store._execute_query(sql.SQL("SELECT {}").format(sql.Literal(1)))
        assert len(calls) == 1

    def test_identifiers_are_quoted(self, store):
        rendered = store._table("workflow_executions").as_string(None)
        assert rendered == '"orchestration"."workflow_executions"'


# ============================================================================
# EXECUTIONS
# ============================================================================

class TestExecutions:

    def test_add_execution_writes_columns_and_document(self, store, recorder):
        execution = WorkflowExecution(dataset_id=make_dataset_id(), workflow_priority=3)

        assert store.add_execution(execution) == execution.id

        call = recorder.calls[0]
        assert "INSERT INTO" in call.sql
        assert call.params[:4] == (execution.id, execution.dataset_id, "INQUEUE", 3)
        assert call.params[8] == execution.created_date
        assert execution.updated_date == execution.created_date

    def test_second_active_execution_is_refused(self, store, monkeypatch):
        monkeypatch.setattr(
            store, "_execute_query", QueryRecorder(psycopg.errors.UniqueViolation("duplicate key"))
        )
        with pytest.raises(WorkflowExecutionAlreadyExistsError):
            store.add_execution(WorkflowExecution(dataset_id=make_dataset_id()))

    def test_columns_override_document(self, store, monkeypatch):
        execution = WorkflowExecution(dataset_id=make_dataset_id(), status=WorkflowStatus.RUNNING)
        row = _row(execution)
        row.update(cancelling=True, cancelled_by="erin", updated_date=base_time())
        monkeypatch.setattr(store, "_execute_query", QueryRecorder([row]))

        loaded = store.get_execution(execution.id)

        assert loaded.cancelling
        assert loaded.cancelled_by == "erin"
        assert loaded.updated_date == base_time()

    def test_update_of_missing_execution(self, store, recorder):
        with pytest.raises(KeyError):
            store.update_execution(WorkflowExecution(dataset_id=make_dataset_id()))

    def test_update_rejects_status_regression(self, store, monkeypatch):
        finished = make_finished_execution(make_dataset_id(), [PluginType.OAIPMH_HARVEST], base_time())
        recorder = QueryRecorder([_row(finished)])
        monkeypatch.setattr(store, "_execute_query", recorder)
        regressed = finished.model_copy(deep=True)
        regressed.status = WorkflowStatus.RUNNING

        with pytest.raises(ContractViolationError):
            store.update_execution(regressed)
        assert len(recorder.calls) == 1

    def test_update_never_clears_a_cancel_request(self, store, monkeypatch):
        running = WorkflowExecution(dataset_id=make_dataset_id(), status=WorkflowStatus.RUNNING)
        recorder = QueryRecorder([_row(running)])
        monkeypatch.setattr(store, "_execute_query", recorder)

        store.update_execution(running)

        update = recorder.calls[1]
        assert "cancelling = cancelling OR %s" in update.sql
        assert "COALESCE(cancelled_by, %s)" in update.sql

    @pytest.mark.parametrize("rowcount,expected", [(1, True), (0, False)], ids=["active", "missing-or-terminal"])
    def test_set_cancelling_state(self, store, monkeypatch, rowcount, expected):
        recorder = QueryRecorder(rowcount)
        monkeypatch.setattr(store, "_execute_query", recorder)

        assert store.set_cancelling_state("exec-1", "frank") is expected
        assert recorder.calls[0].params[0] == "frank"
        assert recorder.calls[0].params[-1] == ["INQUEUE", "RUNNING"]

    @pytest.mark.parametrize("rowcount,expected", [(1, True), (0, False)], ids=["active", "missing-or-terminal"])
    def test_touch_execution_only_refreshes_active_rows(self, store, monkeypatch, rowcount, expected):
        recorder = QueryRecorder(rowcount)
        monkeypatch.setattr(store, "_execute_query", recorder)

        assert store.touch_execution("exec-1") is expected
        call = recorder.calls[0]
        assert "SET updated_date = %s" in call.sql
        assert call.params[1:] == ("exec-1", ["INQUEUE", "RUNNING"])


# ============================================================================
# LISTINGS
# ============================================================================

class TestListings:

    def test_paged_listing_query(self, store, recorder):
        store.get_all_workflow_executions(
            {"d1"}, {WorkflowStatus.FINISHED}, ExecutionOrderField.CREATED_DATE,
            ascending=False, page=2, page_size=3
        )

        call = recorder.calls[0]
        assert 'ORDER BY "created_date" DESC NULLS LAST LIMIT %s OFFSET %s' in call.sql
        assert call.params == (["d1"], ["FINISHED"], 3, 6)

    def test_overview_orders_and_pages_in_python(self, store, monkeypatch):
        dataset_id = make_dataset_id()
        finished = make_finished_execution(dataset_id, [PluginType.OAIPMH_HARVEST], base_time())
        queued = WorkflowExecution(dataset_id=dataset_id, created_date=base_time() - timedelta(days=1))
        running = WorkflowExecution(dataset_id=dataset_id, status=WorkflowStatus.RUNNING)
        monkeypatch.setattr(store, "_execute_query", QueryRecorder([_row(finished), _row(running), _row(queued)]))

        page = store.get_workflow_executions_overview(
            None, None, None, None, None, page=0, page_count=1, page_size=2
        )

        assert [e.id for e in page] == [queued.id, running.id]

    def test_scheduled_range_is_lower_exclusive(self, store, recorder):
        lower, upper = base_time(), base_time() + timedelta(minutes=5)

        store.get_scheduled_workflows_in_range(ScheduleFrequence.ONCE, lower, upper, page=1, page_size=10)

        call = recorder.calls[0]
        assert "pointer_date > %s AND pointer_date <= %s" in call.sql
        assert call.params == ("ONCE", lower, upper, 10, 10)


# ============================================================================
# DEPUBLISH REGISTRY
# ============================================================================

class TestDepublishRegistry:

    @pytest.fixture
    def registry(self):
        return PostgreSQLDepublishRegistry(DB_CONFIG, max_per_dataset=5, page_size=2)

    def test_count_by_status(self, registry, monkeypatch):
        recorder = QueryRecorder({'total': 4})
        monkeypatch.setattr(registry, "_execute_query", recorder)

        assert registry.count("d1", DepublicationStatus.DEPUBLISHED) == 4
        assert recorder.calls[0].params == ("d1", "DEPUBLISHED")

    def test_page_rows_are_mapped(self, registry, monkeypatch):
        recorder = QueryRecorder([{
            'dataset_id': "d1", 'record_id': "r1",
            'depublication_status': "PENDING_DEPUBLICATION", 'depublication_date': None,
        }])
        monkeypatch.setattr(registry, "_execute_query", recorder)

        page = registry.list_paged(
            "d1", 1, DepublishRecordIdSortField.DEPUBLICATION_DATE, SortDirection.DESCENDING, search="r"
        )

        assert page.results[0].depublication_status == DepublicationStatus.PENDING_DEPUBLICATION
        call = recorder.calls[0]
        assert 'ORDER BY "depublication_date" DESC NULLS LAST' in call.sql
        assert call.params == ("d1", "r", 2, 2)

    def test_whole_dataset_status_update(self, registry, monkeypatch):
        recorder = QueryRecorder(3)
        monkeypatch.setattr(registry, "_execute_query", recorder)

        registry.mark_status("d1", None, DepublicationStatus.DEPUBLISHED, base_time())

        assert recorder.calls[0].params == ("DEPUBLISHED", base_time(), "d1")

    def test_oversized_request_never_reaches_the_database(self, registry, monkeypatch):
        recorder = QueryRecorder()
        monkeypatch.setattr(registry, "_execute_query", recorder)

        with pytest.raises(BadContentError):
            registry.add_pending("d1", {f"r{i}" for i in range(6)})
        assert recorder.calls == []


# ============================================================================
# LOCK LEASES
# ============================================================================

class TestLockLeases:

    def test_renewal_matches_each_name_with_its_own_holder(self, monkeypatch):
        locks = PostgreSQLLockService(DB_CONFIG, watchdog_timeout_secs=30)
        recorder = QueryRecorder()
        monkeypatch.setattr(locks, "_execute_query", recorder)

        locks._renew_leases({"scheduler": "node-a:1", "submit:d1": "node-a:2"})

        call = recorder.calls[0]
        assert "UNNEST(%s::text[], %s::text[]) AS h(name, holder)" in call.sql
        assert "l.name = h.name AND l.holder = h.holder" in call.sql
        timeout, names, holders = call.params
        assert timeout == 30
        assert dict(zip(names, holders)) == {"scheduler": "node-a:1", "submit:d1": "node-a:2"}
