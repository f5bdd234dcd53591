"""
Named Lock Services.

Reentrant named locks with a watchdog lease: while the holder is alive
its lease is renewed, and a crashed holder's lease expires after the
watchdog timeout so another holder can take over. A holder is one thread
of one service instance.

Exports:
    InMemoryLockService: Single-process implementation
    PostgreSQLLockService: Cross-process implementation on a lease table
"""

import os
import socket
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional

from psycopg import sql

from config import DatabaseConfig
from config.defaults import LockDefaults
from core.utils import generate_id
from infrastructure.interface_repository import ILockService
from infrastructure.postgresql import PostgreSQLRepository
from util_logger import LoggerFactory, ComponentType


# ============================================================================
# IN-MEMORY
# ============================================================================

@dataclass
class _Lease:
    holder: threading.Thread
    count: int
    expires_at: float


class InMemoryLockService(ILockService):
    """
    Locks shared by the threads of one process.

    A lease whose holder thread is alive is renewed whenever it is
    inspected; a dead holder's lease lapses watchdog_timeout_secs after
    the last renewal.
    """

    def __init__(
        self,
        watchdog_timeout_secs: float = LockDefaults.WATCHDOG_TIMEOUT_SECS,
        poll_interval_secs: float = LockDefaults.ACQUIRE_POLL_INTERVAL_SECS
    ):
        self.logger = LoggerFactory.create_logger(ComponentType.REPOSITORY, "InMemoryLockService")
        self.watchdog_timeout_secs = watchdog_timeout_secs
        self.poll_interval_secs = poll_interval_secs
        self._condition = threading.Condition()
        self._leases: Dict[str, _Lease] = {}

    def _try_acquire(self, name: str) -> bool:
        now = time.monotonic()
        me = threading.current_thread()
        lease = self._leases.get(name)

        if lease is not None and lease.holder.is_alive():
            lease.expires_at = now + self.watchdog_timeout_secs

        if lease is None or lease.expires_at <= now:
            if lease is not None:
                self.logger.warning(f"⏰ Lease on '{name}' expired (holder {lease.holder.name}); taking over")
            self._leases[name] = _Lease(holder=me, count=1, expires_at=now + self.watchdog_timeout_secs)
            return True
        if lease.holder is me:
            lease.count += 1
            return True
        return False

    def lock(self, name: str) -> None:
        with self._condition:
            while not self._try_acquire(name):
                self._condition.wait(self.poll_interval_secs)

    def try_lock(self, name: str) -> bool:
        with self._condition:
            return self._try_acquire(name)

    def unlock(self, name: str) -> None:
        with self._condition:
            lease = self._leases.get(name)
            if lease is None or lease.holder is not threading.current_thread():
                self.logger.warning(f"⚠️ Unlock of '{name}' by a thread that does not hold it")
                return
            lease.count -= 1
            if lease.count <= 0:
                del self._leases[name]
                self._condition.notify_all()

    def is_locked(self, name: str) -> bool:
        with self._condition:
            lease = self._leases.get(name)
            return lease is not None and (lease.holder.is_alive() or lease.expires_at > time.monotonic())


# ============================================================================
# POSTGRESQL
# ============================================================================

class PostgreSQLLockService(PostgreSQLRepository, ILockService):
    """
    Locks shared across processes through the orchestrator_locks table.

    Row (name, holder, hold_count, expires_at). Acquisition inserts the
    row or takes it over when it expired or already belongs to the caller.
    A watchdog thread renews this instance's leases every third of the
    timeout while any are held.
    """

    def __init__(
        self,
        config: DatabaseConfig,
        watchdog_timeout_secs: float = LockDefaults.WATCHDOG_TIMEOUT_SECS,
        poll_interval_secs: float = LockDefaults.ACQUIRE_POLL_INTERVAL_SECS,
        connection_string: Optional[str] = None
    ):
        super().__init__(config, connection_string)
        self.watchdog_timeout_secs = watchdog_timeout_secs
        self.poll_interval_secs = poll_interval_secs
        self.instance_id = f"{socket.gethostname()}:{os.getpid()}:{generate_id()[:8]}"

        self._held: Dict[str, str] = {}
        self._held_lock = threading.Lock()
        self._watchdog: Optional[threading.Thread] = None
        self._watchdog_stop = threading.Event()

    def _holder(self) -> str:
        return f"{self.instance_id}:{threading.get_ident()}"

    def _try_acquire(self, name: str, holder: str) -> bool:
        query = sql.SQL("""
            INSERT INTO {} AS l (name, holder, hold_count, expires_at)
            VALUES (%s, %s, 1, now() + make_interval(secs => %s))
            ON CONFLICT (name) DO UPDATE SET
                hold_count = CASE
                    WHEN l.holder = EXCLUDED.holder AND l.expires_at >= now() THEN l.hold_count + 1
                    ELSE 1
                END,
                holder = EXCLUDED.holder,
                expires_at = EXCLUDED.expires_at
            WHERE l.expires_at < now() OR l.holder = EXCLUDED.holder
            RETURNING hold_count
        """).format(self._table("orchestrator_locks"))
        row = self._execute_query(query, (name, holder, self.watchdog_timeout_secs), fetch='one')
        if row is None:
            return False
        with self._held_lock:
            self._held[name] = holder
        self._ensure_watchdog()
        return True

    def lock(self, name: str) -> None:
        holder = self._holder()
        while not self._try_acquire(name, holder):
            time.sleep(self.poll_interval_secs)

    def try_lock(self, name: str) -> bool:
        return self._try_acquire(name, self._holder())

    def unlock(self, name: str) -> None:
        holder = self._holder()
        table = self._table("orchestrator_locks")
        row = self._execute_query(
            sql.SQL("""
                UPDATE {} SET hold_count = hold_count - 1
                WHERE name = %s AND holder = %s
                RETURNING hold_count
            """).format(table),
            (name, holder), fetch='one', retry=True
        )
        if row is None:
            self.logger.warning(f"⚠️ Unlock of '{name}' by {holder}, which does not hold it")
            return
        if row['hold_count'] <= 0:
            self._execute_query(
                sql.SQL("DELETE FROM {} WHERE name = %s AND holder = %s AND hold_count <= 0").format(table),
                (name, holder), retry=True
            )
            with self._held_lock:
                self._held.pop(name, None)

    # ------------------------------------------------------------------
    # Watchdog
    # ------------------------------------------------------------------

    def _ensure_watchdog(self) -> None:
        with self._held_lock:
            if self._watchdog is not None and self._watchdog.is_alive():
                return
            self._watchdog_stop.clear()
            self._watchdog = threading.Thread(
                target=self._watchdog_loop, name="LockWatchdog", daemon=True
            )
            self._watchdog.start()

    def _watchdog_loop(self) -> None:
        interval = max(self.watchdog_timeout_secs / 3.0, 0.1)
        while not self._watchdog_stop.wait(interval):
            with self._held_lock:
                held = dict(self._held)
            if not held:
                continue
            try:
                self._renew_leases(held)
            except Exception as e:
                # Leases lapse on their own if renewal keeps failing
                self.logger.warning(f"⚠️ Lease renewal failed for {sorted(held)}: {e}")

    def _renew_leases(self, held: Dict[str, str]) -> None:
        """Extend the lease of each held (name, holder) pair."""
        names = list(held)
        self._execute_query(
            sql.SQL("""
                UPDATE {} AS l SET expires_at = now() + make_interval(secs => %s)
                FROM UNNEST(%s::text[], %s::text[]) AS h(name, holder)
                WHERE l.name = h.name AND l.holder = h.holder
            """).format(self._table("orchestrator_locks")),
            (self.watchdog_timeout_secs, names, [held[name] for name in names])
        )

    def close(self) -> None:
        self._watchdog_stop.set()
        if self._watchdog is not None:
            self._watchdog.join(timeout=5)


__all__ = ["InMemoryLockService", "PostgreSQLLockService"]
