"""
Failsafe Service - Rescue of Stranded Executions.

An execution stays INQUEUE or RUNNING forever if its queue message is
lost or its supervisor dies with the process. Each tick finds such
executions by their stale updated_date and puts them back on the queue
at their original priority; the worker that picks them up resumes them.
A re-enqueued execution has its updated_date refreshed, so it is not
pushed again before it goes stale a second time.

Only one node runs a tick at a time: the tick is skipped when another
node holds the "failsafe" lock.

Exports:
    FailsafeService: One tick of the failsafe loop
"""

from datetime import timedelta
from typing import Callable, Optional, Set

from config import OrchestrationConfig
from config.defaults import LockDefaults
from core.models import LoopRunResult
from core.utils import utc_now
from infrastructure.interface_repository import IExecutionQueue, IExecutionStore, ILockService
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.WORKER, "FailsafeService")


class FailsafeService:
    """
    Re-enqueues stale INQUEUE/RUNNING executions.

    Usage:
        failsafe = FailsafeService(store, queue, locks, config.orchestration,
                                   active_execution_ids=manager.active_execution_ids)
        result = failsafe.run_once()
    """

    def __init__(
        self,
        store: IExecutionStore,
        queue: IExecutionQueue,
        lock_service: ILockService,
        config: OrchestrationConfig,
        active_execution_ids: Optional[Callable[[], Set[str]]] = None
    ):
        self.store = store
        self.queue = queue
        self.lock_service = lock_service
        self.config = config
        self._active_execution_ids = active_execution_ids or set

    def run_once(self) -> LoopRunResult:
        """
        Run one failsafe tick.

        Returns:
            LoopRunResult; skipped=True when another node holds the lock
        """
        result = LoopRunResult(run_type="failsafe")

        if not self.lock_service.try_lock(LockDefaults.FAILSAFE_LOCK):
            logger.debug("[FAILSAFE] Lock held elsewhere - skipping tick")
            result.skipped = True
            result.complete(success=True)
            return result

        try:
            cutoff = utc_now() - timedelta(minutes=self.config.failsafe_stale_after_mins)
            stale = self.store.find_stale_executions(cutoff)
            result.items_scanned = len(stale)
            active = self._active_execution_ids()

            for execution in stale:
                if execution.id in active:
                    logger.debug(f"[FAILSAFE] Execution {execution.id} is supervised here - not stale")
                    continue
                if execution.is_terminal:
                    continue

                self.queue.push(execution.id, execution.workflow_priority)
                self.store.touch_execution(execution.id)
                result.items_acted += 1
                result.actions_taken.append({
                    "action": "requeue_execution",
                    "execution_id": execution.id,
                    "dataset_id": execution.dataset_id,
                    "status": execution.status.value,
                    "priority": execution.workflow_priority,
                    "updated_date": execution.updated_date.isoformat() if execution.updated_date else None,
                })
                logger.warning(
                    f"[FAILSAFE] 🔁 Re-enqueued stale execution {execution.id} "
                    f"(dataset={execution.dataset_id}, status={execution.status.value}, "
                    f"priority={execution.workflow_priority})"
                )

            if result.items_acted:
                logger.info(f"[FAILSAFE] Tick complete: re-enqueued {result.items_acted}/{result.items_scanned}")
            result.complete(success=True)

        except Exception as e:
            logger.error(f"[FAILSAFE] ❌ Tick failed: {e}", exc_info=True)
            result.errors.append(str(e))
            result.complete(success=False, error=str(e))

        finally:
            self.lock_service.unlock(LockDefaults.FAILSAFE_LOCK)

        return result


__all__ = ["FailsafeService"]
