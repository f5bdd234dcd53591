"""
PostgreSQL Depublish Registry.

Table depublish_record_ids, unique on (dataset_id, record_id). Inserts
for one dataset run in a single transaction holding a transaction-level
advisory lock on the dataset, so concurrent adds cannot overshoot the
per-dataset cap.

Exports:
    PostgreSQLDepublishRegistry: IDepublishRegistry implementation
"""

from datetime import datetime
from typing import Any, List, Optional, Set

from psycopg import sql

from config import DatabaseConfig
from core.models import (
    DepublicationStatus,
    DepublishRecordId,
    DepublishRecordIdSortField,
    SortDirection,
)
from infrastructure.interface_repository import IDepublishRegistry
from infrastructure.postgresql import PostgreSQLRepository


class PostgreSQLDepublishRegistry(PostgreSQLRepository, IDepublishRegistry):
    """Depublish registry on PostgreSQL."""

    def __init__(
        self,
        config: DatabaseConfig,
        max_per_dataset: int,
        page_size: int,
        connection_string: Optional[str] = None
    ):
        PostgreSQLRepository.__init__(self, config, connection_string)
        IDepublishRegistry.__init__(self, max_per_dataset, page_size)

    def _add_missing(
        self,
        dataset_id: str,
        record_ids: Set[str],
        status: DepublicationStatus,
        date: Optional[datetime]
    ) -> Set[str]:
        table = self._table("depublish_record_ids")
        with self._error_context("depublish record insert", dataset_id):
            with self._transaction() as conn:
                with conn.cursor() as cursor:
                    cursor.execute(
                        sql.SQL("SELECT pg_advisory_xact_lock(hashtext(%s))"),
                        (f"depublish:{dataset_id}",)
                    )
                    cursor.execute(
                        sql.SQL("SELECT record_id FROM {} WHERE dataset_id = %s").format(table),
                        (dataset_id,)
                    )
                    existing = {row['record_id'] for row in cursor.fetchall()}
                    missing = record_ids - existing
                    self._check_capacity(len(existing), missing)
                    if missing:
                        cursor.executemany(
                            sql.SQL("""
                                INSERT INTO {} (dataset_id, record_id, depublication_status, depublication_date)
                                VALUES (%s, %s, %s, %s)
                                ON CONFLICT (dataset_id, record_id) DO NOTHING
                            """).format(table),
                            [(dataset_id, r, status.value, date) for r in sorted(missing)]
                        )
            if missing:
                self.logger.info(f"📝 Registered {len(missing)} record id(s) for dataset {dataset_id}")
            return missing

    def _delete_pending(self, dataset_id: str, record_ids: Set[str]) -> int:
        query = sql.SQL("""
            DELETE FROM {} WHERE dataset_id = %s AND record_id = ANY(%s) AND depublication_status = %s
        """).format(self._table("depublish_record_ids"))
        return self._execute_query(query, (
            dataset_id, sorted(record_ids), DepublicationStatus.PENDING_DEPUBLICATION.value
        ), retry=True)

    def _update_status(
        self,
        dataset_id: str,
        record_ids: Optional[Set[str]],
        status: DepublicationStatus,
        date: Optional[datetime]
    ) -> int:
        params: List[Any] = [status.value, date, dataset_id]
        where = sql.SQL("dataset_id = %s")
        if record_ids is not None:
            where = sql.SQL("dataset_id = %s AND record_id = ANY(%s)")
            params.append(sorted(record_ids))
        query = sql.SQL(
            "UPDATE {} SET depublication_status = %s, depublication_date = %s WHERE {}"
        ).format(self._table("depublish_record_ids"), where)
        return self._execute_query(query, tuple(params), retry=True)

    def _find_record_ids(
        self,
        dataset_id: str,
        status: Optional[DepublicationStatus],
        subset: Optional[Set[str]]
    ) -> Set[str]:
        conditions = [sql.SQL("dataset_id = %s")]
        params: List[Any] = [dataset_id]
        if status is not None:
            conditions.append(sql.SQL("depublication_status = %s"))
            params.append(status.value)
        if subset is not None:
            conditions.append(sql.SQL("record_id = ANY(%s)"))
            params.append(sorted(subset))
        query = sql.SQL("SELECT record_id FROM {} WHERE {}").format(
            self._table("depublish_record_ids"), sql.SQL(" AND ").join(conditions)
        )
        rows = self._execute_query(query, tuple(params), fetch='all', retry=True)
        return {row['record_id'] for row in rows or []}

    def _find_page(
        self,
        dataset_id: str,
        sort_field: DepublishRecordIdSortField,
        sort_direction: SortDirection,
        search: Optional[str],
        offset: int,
        limit: int
    ) -> List[DepublishRecordId]:
        conditions = [sql.SQL("dataset_id = %s")]
        params: List[Any] = [dataset_id]
        if search:
            # strpos is a case-sensitive substring test without LIKE escaping
            conditions.append(sql.SQL("strpos(record_id, %s) > 0"))
            params.append(search)
        direction = (
            sql.SQL("ASC NULLS FIRST") if sort_direction == SortDirection.ASCENDING
            else sql.SQL("DESC NULLS LAST")
        )
        query = sql.SQL("""
            SELECT dataset_id, record_id, depublication_status, depublication_date
            FROM {} WHERE {} ORDER BY {} {} LIMIT %s OFFSET %s
        """).format(
            self._table("depublish_record_ids"),
            sql.SQL(" AND ").join(conditions),
            sql.Identifier(sort_field.value),
            direction
        )
        params.extend([limit, offset])
        rows = self._execute_query(query, tuple(params), fetch='all', retry=True)
        return [
            DepublishRecordId(
                dataset_id=row['dataset_id'],
                record_id=row['record_id'],
                depublication_status=DepublicationStatus(row['depublication_status']),
                depublication_date=row['depublication_date'],
            )
            for row in rows or []
        ]

    def count(self, dataset_id: str, status: Optional[DepublicationStatus] = None) -> int:
        where = sql.SQL("dataset_id = %s")
        params: List[Any] = [dataset_id]
        if status is not None:
            where = sql.SQL("dataset_id = %s AND depublication_status = %s")
            params.append(status.value)
        query = sql.SQL("SELECT COUNT(*) AS total FROM {} WHERE {}").format(
            self._table("depublish_record_ids"), where
        )
        row = self._execute_query(query, tuple(params), fetch='one', retry=True)
        return int(row['total']) if row else 0


__all__ = ["PostgreSQLDepublishRegistry"]
