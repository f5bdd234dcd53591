"""
PostgreSQL Repository Implementation.

PostgreSQL-specific repository base with connection management, plus
the PostgreSQL ExecutionStore.

Connection handling:
    - One connection per operation (thread-safe without a pool)
    - Password or Azure Managed Identity (token as password) authentication
    - All SQL composed with psycopg.sql; raw strings are rejected
    - Reads retried with bounded exponential backoff on connection errors
    - Writes idempotent by unique keys (ON CONFLICT)

Tables (schema APP_SCHEMA):
    datasets, workflows, workflow_executions, scheduled_workflows,
    depublish_record_ids, orchestrator_locks

Exports:
    PostgreSQLRepository: Base class with connection and query execution
    PostgreSQLExecutionStore: IExecutionStore implementation
"""

import json
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

from config import DatabaseConfig
from config.defaults import DatabaseDefaults
from core.models import (
    Dataset,
    ExecutionOrderField,
    PluginStatus,
    PluginType,
    ScheduleFrequence,
    ScheduledWorkflow,
    Workflow,
    WorkflowExecution,
    WorkflowStatus,
)
from core.utils import utc_now
from exceptions import DatabaseError, WorkflowExecutionAlreadyExistsError
from infrastructure.base import BaseRepository
from infrastructure.execution_queries import matches_overview_filter, sort_overview
from infrastructure.interface_repository import IExecutionStore


_ACTIVE_STATUS_VALUES = [WorkflowStatus.INQUEUE.value, WorkflowStatus.RUNNING.value]


# ============================================================================
# POSTGRESQL BASE REPOSITORY
# ============================================================================

class PostgreSQLRepository(BaseRepository):
    """
    PostgreSQL-specific repository base class with connection management.

    Every operation opens its own connection, runs, commits and closes;
    multi-statement work uses _transaction().
    """

    def __init__(self, config: DatabaseConfig, connection_string: Optional[str] = None):
        """
        Args:
            config: Database configuration (host, schema, auth, retries)
            connection_string: Explicit connection string overriding config
        """
        super().__init__()
        self.config = config
        self.schema_name = config.app_schema
        self._explicit_conn_string = connection_string

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    def _get_connection_string(self) -> str:
        if self._explicit_conn_string:
            return self._explicit_conn_string
        if self.config.use_managed_identity:
            return self._build_managed_identity_connection_string()
        return self.config.connection_string

    def _build_managed_identity_connection_string(self) -> str:
        """
        Build a connection string with an Azure AD token as password.

        Tokens are short-lived (~1 hour); a fresh one is requested per
        connection and cached by the credential.
        """
        from azure.identity import DefaultAzureCredential
        from azure.core.exceptions import ClientAuthenticationError

        try:
            self.logger.debug("🔑 Acquiring Azure Managed Identity token...")
            credential = DefaultAzureCredential()
            token = credential.get_token(DatabaseDefaults.MANAGED_IDENTITY_SCOPE).token
        except ClientAuthenticationError as e:
            self.logger.error(f"❌ Failed to acquire managed identity token: {e}")
            if self.config.password:
                self.logger.warning("⚠️ Falling back to password authentication")
                return self.config.connection_string
            raise DatabaseError(
                "Managed identity token acquisition failed and no password available"
            ) from e

        self.logger.debug(
            f"🔗 Managed identity connection: host={self.config.host} "
            f"dbname={self.config.database} user={self.config.user} "
            f"password=***TOKEN({len(token)} chars)***"
        )
        return (
            f"host={self.config.host} port={self.config.port} dbname={self.config.database} "
            f"user={self.config.user} password={token} sslmode=require "
            f"connect_timeout={self.config.connection_timeout_seconds}"
        )

    @contextmanager
    def _get_connection(self):
        """
        Yield a connection with dict rows; rolled back on error, always closed.
        """
        conn = None
        try:
            conn = psycopg.connect(self._get_connection_string(), row_factory=dict_row)
            yield conn
        except psycopg.Error as e:
            self.logger.error(f"❌ PostgreSQL error: {type(e).__name__}: {e}")
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                conn.close()

    @contextmanager
    def _transaction(self):
        """
        Multi-statement transaction: committed when the block completes,
        discarded when it raises.
        """
        with self._get_connection() as conn:
            yield conn
            conn.commit()

    # ------------------------------------------------------------------
    # Query execution
    # ------------------------------------------------------------------

    def _table(self, table_name: str) -> sql.Composed:
        return sql.SQL("{}.{}").format(sql.Identifier(self.schema_name), sql.Identifier(table_name))

    def _execute_query(
        self,
        query: sql.Composed,
        params: Optional[Tuple] = None,
        fetch: Optional[str] = None,
        retry: bool = False
    ) -> Optional[Any]:
        """
        Execute one statement with guaranteed commit.

        Args:
            query: SQL built with psycopg.sql composition
            params: Values for %s placeholders
            fetch: None | 'one' | 'all'
            retry: Retry connection errors with exponential backoff
                (reads, and writes that are idempotent by key)

        Returns:
            Fetched row(s) when fetch is set, else the affected row count

        Raises:
            TypeError: query is not sql.Composed
            psycopg.errors.UniqueViolation: passed through for callers
                that map it to a domain error
            DatabaseError: any other database failure
        """
        if not isinstance(query, sql.Composed):
            raise TypeError(f"❌ SECURITY: Query must be sql.Composed, got {type(query)}")
        if fetch and fetch not in ('one', 'all'):
            raise ValueError(f"❌ INVALID FETCH MODE: {fetch}")

        attempts = max(self.config.retry_attempts, 1) if retry else 1
        for attempt in range(attempts):
            try:
                return self._run_query(query, params, fetch)
            except psycopg.OperationalError as e:
                if attempt == attempts - 1:
                    raise DatabaseError(
                        f"Database connection failed after {attempts} attempt(s): {e}"
                    ) from e
                delay = min(
                    self.config.retry_base_delay_secs * (2 ** attempt),
                    DatabaseDefaults.RETRY_MAX_DELAY_SECS
                )
                self.logger.warning(
                    f"⚠️ Connection error (attempt {attempt + 1}/{attempts}), retrying in {delay:.2f}s: {e}"
                )
                time.sleep(delay)

    def _run_query(self, query: sql.Composed, params: Optional[Tuple], fetch: Optional[str]):
        with self._get_connection() as conn:
            with conn.cursor() as cursor:
                try:
                    cursor.execute(query, params)
                except (psycopg.OperationalError, psycopg.errors.UniqueViolation):
                    raise
                except psycopg.Error as e:
                    self.logger.error(f"❌ QUERY EXECUTION FAILED: {e}")
                    self.logger.error(f"   SQL State: {getattr(e, 'sqlstate', 'unknown')}")
                    raise DatabaseError(f"Query execution failed: {e}") from e

                result = None
                if fetch == 'one':
                    result = cursor.fetchone()
                elif fetch == 'all':
                    result = cursor.fetchall()

                conn.commit()

                if fetch:
                    return result
                return cursor.rowcount


# ============================================================================
# EXECUTION STORE
# ============================================================================

_SCHEMA_DDL = [
    """CREATE TABLE IF NOT EXISTS {schema}.datasets (
        dataset_id TEXT PRIMARY KEY,
        document JSONB NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS {schema}.workflows (
        id TEXT PRIMARY KEY,
        dataset_id TEXT NOT NULL UNIQUE,
        document JSONB NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS {schema}.workflow_executions (
        id TEXT PRIMARY KEY,
        dataset_id TEXT NOT NULL,
        status TEXT NOT NULL,
        workflow_priority INTEGER NOT NULL DEFAULT 0,
        cancelling BOOLEAN NOT NULL DEFAULT FALSE,
        cancelled_by TEXT,
        created_date TIMESTAMPTZ NOT NULL,
        started_date TIMESTAMPTZ,
        updated_date TIMESTAMPTZ,
        finished_date TIMESTAMPTZ,
        document JSONB NOT NULL
    )""",
    """CREATE INDEX IF NOT EXISTS idx_workflow_executions_dataset
        ON {schema}.workflow_executions (dataset_id)""",
    """CREATE INDEX IF NOT EXISTS idx_workflow_executions_status_updated
        ON {schema}.workflow_executions (status, updated_date)""",
    """CREATE UNIQUE INDEX IF NOT EXISTS uq_workflow_executions_active_dataset
        ON {schema}.workflow_executions (dataset_id)
        WHERE status IN ('INQUEUE', 'RUNNING')""",
    """CREATE TABLE IF NOT EXISTS {schema}.scheduled_workflows (
        id TEXT PRIMARY KEY,
        dataset_id TEXT NOT NULL UNIQUE,
        pointer_date TIMESTAMPTZ NOT NULL,
        schedule_frequence TEXT NOT NULL,
        workflow_priority INTEGER NOT NULL DEFAULT 0
    )""",
    """CREATE TABLE IF NOT EXISTS {schema}.depublish_record_ids (
        dataset_id TEXT NOT NULL,
        record_id TEXT NOT NULL,
        depublication_status TEXT NOT NULL,
        depublication_date TIMESTAMPTZ,
        PRIMARY KEY (dataset_id, record_id)
    )""",
    """CREATE TABLE IF NOT EXISTS {schema}.orchestrator_locks (
        name TEXT PRIMARY KEY,
        holder TEXT NOT NULL,
        hold_count INTEGER NOT NULL,
        expires_at TIMESTAMPTZ NOT NULL
    )""",
]


class PostgreSQLExecutionStore(PostgreSQLRepository, IExecutionStore):
    """
    Execution store on PostgreSQL.

    Executions are stored as a JSONB document plus indexed columns. The
    columns cancelling, cancelled_by and updated_date are authoritative
    over the document, since set_cancelling_state writes only columns.
    """

    def ensure_schema(self) -> None:
        """Create schema, tables and indexes if they do not exist."""
        with self._error_context("schema creation", self.schema_name):
            self._execute_query(
                sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(self.schema_name))
            )
            for statement in _SCHEMA_DDL:
                self._execute_query(sql.SQL(statement).format(schema=sql.Identifier(self.schema_name)))
        self.logger.info(f"✅ Schema {self.schema_name} ready")

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _document(row: Dict[str, Any]) -> Dict[str, Any]:
        document = row['document']
        return document if isinstance(document, dict) else json.loads(document)

    def _row_to_execution(self, row: Dict[str, Any]) -> WorkflowExecution:
        document = self._document(row)
        document['cancelling'] = row['cancelling']
        document['cancelled_by'] = row['cancelled_by']
        document['updated_date'] = row['updated_date']
        return WorkflowExecution.model_validate(document)

    @staticmethod
    def _row_to_scheduled(row: Dict[str, Any]) -> ScheduledWorkflow:
        return ScheduledWorkflow(
            id=row['id'],
            dataset_id=row['dataset_id'],
            pointer_date=row['pointer_date'],
            schedule_frequence=ScheduleFrequence(row['schedule_frequence']),
            workflow_priority=row['workflow_priority'],
        )

    def _select_executions(self, where: sql.Composable, params: Tuple,
                           suffix: sql.Composable = sql.SQL("")) -> List[WorkflowExecution]:
        query = sql.SQL(
            "SELECT document, cancelling, cancelled_by, updated_date FROM {} WHERE {} {}"
        ).format(self._table("workflow_executions"), where, suffix)
        rows = self._execute_query(query, params, fetch='all', retry=True)
        return [self._row_to_execution(row) for row in rows or []]

    # ------------------------------------------------------------------
    # Datasets
    # ------------------------------------------------------------------

    def create_dataset(self, dataset: Dataset) -> bool:
        with self._error_context("dataset creation", dataset.dataset_id):
            query = sql.SQL(
                "INSERT INTO {} (dataset_id, document) VALUES (%s, %s) ON CONFLICT (dataset_id) DO NOTHING"
            ).format(self._table("datasets"))
            created = self._execute_query(
                query, (dataset.dataset_id, json.dumps(dataset.model_dump(mode="json"))), retry=True
            ) > 0
            self.logger.debug(f"📋 Dataset {dataset.dataset_id} {'created' if created else 'already exists'}")
            return created

    def get_dataset(self, dataset_id: str) -> Optional[Dataset]:
        query = sql.SQL("SELECT document FROM {} WHERE dataset_id = %s").format(self._table("datasets"))
        row = self._execute_query(query, (dataset_id,), fetch='one', retry=True)
        return Dataset.model_validate(self._document(row)) if row else None

    def update_dataset(self, dataset: Dataset) -> bool:
        with self._error_context("dataset update", dataset.dataset_id):
            query = sql.SQL("UPDATE {} SET document = %s WHERE dataset_id = %s").format(self._table("datasets"))
            return self._execute_query(
                query, (json.dumps(dataset.model_dump(mode="json")), dataset.dataset_id), retry=True
            ) > 0

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    def create_workflow(self, workflow: Workflow) -> bool:
        with self._error_context("workflow creation", workflow.dataset_id):
            query = sql.SQL(
                "INSERT INTO {} (id, dataset_id, document) VALUES (%s, %s, %s) ON CONFLICT DO NOTHING"
            ).format(self._table("workflows"))
            return self._execute_query(
                query,
                (workflow.id, workflow.dataset_id, json.dumps(workflow.model_dump(mode="json"))),
                retry=True
            ) > 0

    def get_workflow(self, dataset_id: str) -> Optional[Workflow]:
        query = sql.SQL("SELECT document FROM {} WHERE dataset_id = %s").format(self._table("workflows"))
        row = self._execute_query(query, (dataset_id,), fetch='one', retry=True)
        return Workflow.model_validate(self._document(row)) if row else None

    def update_workflow(self, workflow: Workflow) -> bool:
        with self._error_context("workflow update", workflow.dataset_id):
            query = sql.SQL("UPDATE {} SET document = %s WHERE dataset_id = %s").format(self._table("workflows"))
            return self._execute_query(
                query, (json.dumps(workflow.model_dump(mode="json")), workflow.dataset_id), retry=True
            ) > 0

    def delete_workflow(self, dataset_id: str) -> bool:
        query = sql.SQL("DELETE FROM {} WHERE dataset_id = %s").format(self._table("workflows"))
        return self._execute_query(query, (dataset_id,), retry=True) > 0

    # ------------------------------------------------------------------
    # Executions
    # ------------------------------------------------------------------

    def add_execution(self, execution: WorkflowExecution) -> str:
        with self._error_context("execution creation", execution.id):
            if execution.updated_date is None:
                execution.updated_date = execution.created_date
            query = sql.SQL("""
                INSERT INTO {} (
                    id, dataset_id, status, workflow_priority, cancelling, cancelled_by,
                    created_date, started_date, updated_date, finished_date, document
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (id) DO NOTHING
            """).format(self._table("workflow_executions"))
            params = (
                execution.id,
                execution.dataset_id,
                execution.status.value,
                execution.workflow_priority,
                execution.cancelling,
                execution.cancelled_by,
                execution.created_date,
                execution.started_date,
                execution.updated_date,
                execution.finished_date,
                json.dumps(execution.model_dump(mode="json")),
            )
            try:
                self._execute_query(query, params, retry=True)
            except psycopg.errors.UniqueViolation as e:
                raise WorkflowExecutionAlreadyExistsError(
                    f"An active execution already exists for dataset {execution.dataset_id}",
                    dataset_id=execution.dataset_id
                ) from e
            self.logger.debug(f"📝 Execution stored: {execution.id} dataset={execution.dataset_id}")
            return execution.id

    def update_execution(self, execution: WorkflowExecution) -> None:
        with self._error_context("execution update", execution.id):
            current = self.get_execution(execution.id)
            if current is None:
                raise KeyError(f"Execution {execution.id} does not exist")
            self._validate_execution_update(current, execution)
            self._keep_cancel_request(current, execution)
            execution.updated_date = utc_now()

            # cancelling is OR-ed so a concurrent cancel request is never lost
            query = sql.SQL("""
                UPDATE {} SET
                    status = %s,
                    cancelling = cancelling OR %s,
                    cancelled_by = COALESCE(cancelled_by, %s),
                    started_date = %s,
                    updated_date = %s,
                    finished_date = %s,
                    document = %s
                WHERE id = %s
            """).format(self._table("workflow_executions"))
            params = (
                execution.status.value,
                execution.cancelling,
                execution.cancelled_by,
                execution.started_date,
                execution.updated_date,
                execution.finished_date,
                json.dumps(execution.model_dump(mode="json")),
                execution.id,
            )
            self._execute_query(query, params, retry=True)

    def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        found = self._select_executions(sql.SQL("id = %s"), (execution_id,))
        return found[0] if found else None

    def get_dataset_executions(self, dataset_id: str) -> List[WorkflowExecution]:
        return self._select_executions(sql.SQL("dataset_id = %s"), (dataset_id,))

    def exists_and_not_completed(self, dataset_id: str) -> Optional[str]:
        query = sql.SQL("SELECT id FROM {} WHERE dataset_id = %s AND status = ANY(%s) LIMIT 1").format(
            self._table("workflow_executions")
        )
        row = self._execute_query(query, (dataset_id, _ACTIVE_STATUS_VALUES), fetch='one', retry=True)
        return row['id'] if row else None

    def get_running_or_in_queue_execution(self, dataset_id: str) -> Optional[WorkflowExecution]:
        found = self._select_executions(
            sql.SQL("dataset_id = %s AND status = ANY(%s)"),
            (dataset_id, _ACTIVE_STATUS_VALUES),
            sql.SQL("LIMIT 1")
        )
        return found[0] if found else None

    def set_cancelling_state(self, execution_id: str, actor: Optional[str]) -> bool:
        query = sql.SQL("""
            UPDATE {} SET cancelling = TRUE, cancelled_by = %s, updated_date = %s
            WHERE id = %s AND status = ANY(%s)
        """).format(self._table("workflow_executions"))
        return self._execute_query(
            query, (actor, utc_now(), execution_id, _ACTIVE_STATUS_VALUES), retry=True
        ) > 0

    def get_all_workflow_executions(
        self,
        dataset_ids: Optional[Set[str]],
        statuses: Optional[Set[WorkflowStatus]],
        order_field: ExecutionOrderField,
        ascending: bool,
        page: int,
        page_size: int
    ) -> List[WorkflowExecution]:
        conditions = [sql.SQL("TRUE")]
        params: List[Any] = []
        if dataset_ids:
            conditions.append(sql.SQL("dataset_id = ANY(%s)"))
            params.append(sorted(dataset_ids))
        if statuses:
            conditions.append(sql.SQL("status = ANY(%s)"))
            params.append(sorted(s.value for s in statuses))

        # Missing dates sort as the oldest value in both directions
        direction = sql.SQL("ASC NULLS FIRST") if ascending else sql.SQL("DESC NULLS LAST")
        suffix = sql.SQL("ORDER BY {} {} LIMIT %s OFFSET %s").format(
            sql.Identifier(order_field.value), direction
        )
        params.extend([page_size, max(page, 0) * page_size])
        return self._select_executions(sql.SQL(" AND ").join(conditions), tuple(params), suffix)

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
        conditions = [sql.SQL("TRUE")]
        params: List[Any] = []
        if dataset_ids:
            conditions.append(sql.SQL("dataset_id = ANY(%s)"))
            params.append(sorted(dataset_ids))
        if from_date is not None:
            conditions.append(sql.SQL("created_date >= %s"))
            params.append(from_date)
        if to_date is not None:
            conditions.append(sql.SQL("created_date < %s"))
            params.append(to_date)

        candidates = self._select_executions(sql.SQL(" AND ").join(conditions), tuple(params))
        ordered = sort_overview(
            e for e in candidates if matches_overview_filter(e, plugin_statuses, plugin_types)
        )
        start = max(page, 0) * page_size
        return ordered[start:start + page_size * max(page_count, 1)]

    def find_stale_executions(self, updated_before: datetime) -> List[WorkflowExecution]:
        return self._select_executions(
            sql.SQL("status = ANY(%s) AND updated_date < %s"),
            (_ACTIVE_STATUS_VALUES, updated_before)
        )

    def touch_execution(self, execution_id: str) -> bool:
        query = sql.SQL("""
            UPDATE {} SET updated_date = %s
            WHERE id = %s AND status = ANY(%s)
        """).format(self._table("workflow_executions"))
        return self._execute_query(
            query, (utc_now(), execution_id, _ACTIVE_STATUS_VALUES), retry=True
        ) > 0

    # ------------------------------------------------------------------
    # Scheduled workflows
    # ------------------------------------------------------------------

    def add_scheduled_workflow(self, scheduled: ScheduledWorkflow) -> bool:
        with self._error_context("scheduled workflow creation", scheduled.dataset_id):
            query = sql.SQL("""
                INSERT INTO {} (id, dataset_id, pointer_date, schedule_frequence, workflow_priority)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT DO NOTHING
            """).format(self._table("scheduled_workflows"))
            return self._execute_query(query, (
                scheduled.id, scheduled.dataset_id, scheduled.pointer_date,
                scheduled.schedule_frequence.value, scheduled.workflow_priority
            ), retry=True) > 0

    def update_scheduled_workflow(self, scheduled: ScheduledWorkflow) -> bool:
        with self._error_context("scheduled workflow update", scheduled.dataset_id):
            query = sql.SQL("""
                UPDATE {} SET pointer_date = %s, schedule_frequence = %s, workflow_priority = %s
                WHERE dataset_id = %s
            """).format(self._table("scheduled_workflows"))
            return self._execute_query(query, (
                scheduled.pointer_date, scheduled.schedule_frequence.value,
                scheduled.workflow_priority, scheduled.dataset_id
            ), retry=True) > 0

    def get_scheduled_workflow(self, dataset_id: str) -> Optional[ScheduledWorkflow]:
        query = sql.SQL("SELECT * FROM {} WHERE dataset_id = %s").format(self._table("scheduled_workflows"))
        row = self._execute_query(query, (dataset_id,), fetch='one', retry=True)
        return self._row_to_scheduled(row) if row else None

    def delete_scheduled_workflow(self, dataset_id: str) -> bool:
        query = sql.SQL("DELETE FROM {} WHERE dataset_id = %s").format(self._table("scheduled_workflows"))
        return self._execute_query(query, (dataset_id,), retry=True) > 0

    def get_all_scheduled_workflows(
        self,
        frequencies: Optional[Set[ScheduleFrequence]],
        page: int,
        page_size: int
    ) -> List[ScheduledWorkflow]:
        where = sql.SQL("TRUE")
        params: List[Any] = []
        if frequencies:
            where = sql.SQL("schedule_frequence = ANY(%s)")
            params.append(sorted(f.value for f in frequencies))
        query = sql.SQL("SELECT * FROM {} WHERE {} ORDER BY dataset_id LIMIT %s OFFSET %s").format(
            self._table("scheduled_workflows"), where
        )
        params.extend([page_size, max(page, 0) * page_size])
        rows = self._execute_query(query, tuple(params), fetch='all', retry=True)
        return [self._row_to_scheduled(row) for row in rows or []]

    def get_scheduled_workflows_in_range(
        self,
        frequence: ScheduleFrequence,
        lower_exclusive: datetime,
        upper_inclusive: datetime,
        page: int,
        page_size: int
    ) -> List[ScheduledWorkflow]:
        query = sql.SQL("""
            SELECT * FROM {}
            WHERE schedule_frequence = %s AND pointer_date > %s AND pointer_date <= %s
            ORDER BY dataset_id LIMIT %s OFFSET %s
        """).format(self._table("scheduled_workflows"))
        rows = self._execute_query(query, (
            frequence.value, lower_exclusive, upper_inclusive, page_size, max(page, 0) * page_size
        ), fetch='all', retry=True)
        return [self._row_to_scheduled(row) for row in rows or []]


__all__ = ["PostgreSQLRepository", "PostgreSQLExecutionStore"]
