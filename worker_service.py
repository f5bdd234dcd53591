#!/usr/bin/env python3
"""
Worker Service - Health API + Background Orchestration Workers.

This module runs:
    1. FastAPI HTTP server (liveness, readiness and health)
    2. Background threads:
        - Queue consumer: WorkerManager pulling executions off the queue
        - Failsafe loop: re-enqueues stranded executions
        - Scheduler loop: admits scheduled workflows that are due

All background threads share the lifecycle's shutdown event. SIGTERM or
SIGINT sets it: the consumer stops pulling, supervisors stop polling
(their executions are picked up again by the failsafe loop of a live
node) and the loops exit between ticks.

HTTP Endpoints:
    /livez   - Liveness probe (is the process running?)
    /readyz  - Readiness probe (503 while shutting down or a worker thread died)
    /health  - Worker status, active executions, memory stats

Usage:
    python worker_service.py
    uvicorn worker_service:app --host 0.0.0.0 --port 8080
"""

import threading
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from config import AppConfig, debug_config, get_config
from core.models import LoopRunResult
from infrastructure.factory import InfrastructureComponents, RepositoryFactory
from services import (
    FailsafeService,
    OrchestratorService,
    PluginTaskBuilder,
    SchedulerService,
    WorkerManager,
)
from util_logger import LoggerFactory, ComponentType, get_memory_stats

logger = LoggerFactory.create_logger(ComponentType.TRIGGER, "WorkerService")

ERROR_BACKOFF_SECS = 5.0


# ============================================================================
# WORKER LIFECYCLE (Graceful Shutdown)
# ============================================================================

class WorkerLifecycle:
    """
    Manages worker process lifecycle with graceful shutdown support.

    Provides:
    - Shared shutdown event for all components
    - SIGTERM/SIGINT signal handling

    Usage:
        lifecycle = WorkerLifecycle()
        lifecycle.register_signal_handlers()
        consumer = QueueConsumerWorker(manager, shutdown_event=lifecycle.shutdown_event)
    """

    def __init__(self):
        self._shutdown_event = threading.Event()
        self._shutdown_initiated = False
        self._shutdown_initiated_at: Optional[datetime] = None
        self._signal_received: Optional[str] = None

    @property
    def shutdown_event(self) -> threading.Event:
        """Shared shutdown event for all components."""
        return self._shutdown_event

    @property
    def is_shutting_down(self) -> bool:
        return self._shutdown_initiated

    def register_signal_handlers(self) -> None:
        """
        Register SIGTERM and SIGINT handlers for graceful shutdown.

        SIGTERM: Sent by Docker/Kubernetes when stopping container
        SIGINT: Sent when pressing Ctrl+C (useful for local dev)
        """
        import signal

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.warning(f"🛑 Received {signal_name} - initiating graceful shutdown")
            self.initiate_shutdown(signal_name)

        signal.signal(signal.SIGTERM, shutdown_handler)
        signal.signal(signal.SIGINT, shutdown_handler)
        logger.info("📡 Signal handlers registered (SIGTERM, SIGINT)")

    def initiate_shutdown(self, reason: str = "manual") -> None:
        if self._shutdown_initiated:
            logger.warning(f"🛑 Shutdown already initiated, ignoring duplicate request: {reason}")
            return

        self._shutdown_initiated = True
        self._shutdown_initiated_at = datetime.now(timezone.utc)
        self._signal_received = reason

        logger.warning(f"🛑 GRACEFUL SHUTDOWN INITIATED: {reason}")
        self._shutdown_event.set()
        logger.info("  → Shutdown event SET - workers stop between ticks, supervisors stop polling")

    def get_status(self) -> Dict[str, Any]:
        """Get lifecycle status for health endpoint."""
        status = {
            "shutdown_initiated": self._shutdown_initiated,
            "shutdown_event_set": self._shutdown_event.is_set(),
        }
        if self._shutdown_initiated:
            status["shutdown_initiated_at"] = self._shutdown_initiated_at.isoformat()
            status["shutdown_reason"] = self._signal_received
            elapsed = (datetime.now(timezone.utc) - self._shutdown_initiated_at).total_seconds()
            status["shutdown_elapsed_seconds"] = round(elapsed, 1)
        return status


# ============================================================================
# BACKGROUND WORKERS
# ============================================================================

class QueueConsumerWorker:
    """Background thread feeding the WorkerManager from the queue."""

    name = "queue_consumer"

    def __init__(self, manager: WorkerManager, poll_timeout_secs: float, shutdown_event: threading.Event):
        self.manager = manager
        self.poll_timeout_secs = poll_timeout_secs
        self._stop_event = shutdown_event
        self._thread: Optional[threading.Thread] = None
        self._started_at: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._dispatched = 0

    def _run_loop(self):
        logger.info(f"[Queue Consumer] Starting (poll timeout {self.poll_timeout_secs}s)")
        self._started_at = datetime.now(timezone.utc)

        while not self._stop_event.is_set():
            try:
                if self.manager.poll_once(self.poll_timeout_secs):
                    self._dispatched += 1
                self._last_error = None
            except Exception as e:
                self._last_error = f"{type(e).__name__}: {e}"
                logger.exception("[Queue Consumer] Unexpected error")
                self._stop_event.wait(ERROR_BACKOFF_SECS)

        logger.info("[Queue Consumer] 🛑 Exited polling loop - waiting for supervisors")
        self.manager.shutdown(wait=True)
        logger.info(f"[Queue Consumer] STOPPED after {self._dispatched} dispatched executions")

    def start(self):
        if self.is_alive:
            logger.warning("[Queue Consumer] Already running")
            return
        self._thread = threading.Thread(target=self._run_loop, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 10):
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def get_status(self) -> dict:
        status = {
            "running": self.is_alive,
            "dispatched": self._dispatched,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "last_error": self._last_error,
        }
        status.update(self.manager.get_status())
        return status


class PeriodicLoopWorker:
    """
    Background thread running one loop tick per period.

    The first tick runs one period after start; the loop exits between
    ticks once the shutdown event is set.
    """

    def __init__(
        self,
        name: str,
        tick: Callable[[], LoopRunResult],
        interval_secs: float,
        shutdown_event: threading.Event
    ):
        self.name = name
        self._tick = tick
        self._interval = interval_secs
        self._stop_event = shutdown_event
        self._thread: Optional[threading.Thread] = None
        self._tick_count = 0
        self._last_result: Optional[LoopRunResult] = None

    def _run_loop(self):
        logger.info(f"[{self.name}] Starting (interval: {self._interval}s)")

        while not self._stop_event.wait(timeout=self._interval):
            try:
                self._last_result = self._tick()
                self._tick_count += 1
            except Exception as e:
                logger.error(f"[{self.name}] Tick error: {e}", exc_info=True)

        logger.info(f"[{self.name}] Stopped after {self._tick_count} ticks")

    def start(self):
        if self.is_alive:
            return
        self._thread = threading.Thread(target=self._run_loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info(f"[{self.name}] Background thread started")

    def stop(self, timeout: float = 5):
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def get_status(self) -> dict:
        return {
            "running": self.is_alive,
            "interval_seconds": self._interval,
            "tick_count": self._tick_count,
            "last_result": self._last_result.to_dict() if self._last_result else None,
        }


class FailsafeWorker(PeriodicLoopWorker):
    def __init__(self, failsafe: FailsafeService, interval_secs: float, shutdown_event: threading.Event):
        super().__init__("Failsafe", failsafe.run_once, interval_secs, shutdown_event)
        self.failsafe = failsafe


class SchedulerWorker(PeriodicLoopWorker):
    def __init__(self, scheduler: SchedulerService, interval_secs: float, shutdown_event: threading.Event):
        super().__init__("Scheduler", scheduler.run_once, interval_secs, shutdown_event)
        self.scheduler = scheduler


# ============================================================================
# RUNTIME WIRING
# ============================================================================

@dataclass
class WorkerRuntime:
    """Everything one worker process runs."""

    config: AppConfig
    components: InfrastructureComponents
    orchestrator: OrchestratorService
    manager: WorkerManager
    workers: List[Any] = field(default_factory=list)

    def start(self) -> None:
        for worker in self.workers:
            worker.start()

    def stop(self) -> None:
        for worker in self.workers:
            worker.stop()
        self.components.close()

    @property
    def workers_alive(self) -> bool:
        return all(worker.is_alive for worker in self.workers)


def build_runtime(
    shutdown_event: threading.Event,
    config: Optional[AppConfig] = None,
    components: Optional[InfrastructureComponents] = None
) -> WorkerRuntime:
    """Wire infrastructure, services and background workers from configuration."""
    config = config or get_config()
    components = components or RepositoryFactory.create_components(config)
    orchestration = config.orchestration

    orchestrator = OrchestratorService(components, config)
    task_builder = PluginTaskBuilder(
        components.depublish_registry, orchestrator.data_evolution, config.external_tasks
    )
    manager = WorkerManager(
        components.store,
        components.queue,
        components.task_client,
        task_builder,
        components.depublish_registry,
        orchestration,
        max_poll_failures=config.external_tasks.max_retries,
        stop_event=shutdown_event,
    )
    failsafe = FailsafeService(
        components.store,
        components.queue,
        components.lock_service,
        orchestration,
        active_execution_ids=manager.active_execution_ids,
    )
    scheduler = SchedulerService(components.store, components.lock_service, orchestrator, orchestration)

    workers = [
        QueueConsumerWorker(manager, float(config.queues.max_wait_secs), shutdown_event),
        FailsafeWorker(failsafe, orchestration.periodic_failsafe_check_secs, shutdown_event),
        SchedulerWorker(scheduler, orchestration.periodic_scheduler_check_secs, shutdown_event),
    ]
    return WorkerRuntime(config, components, orchestrator, manager, workers)


# ============================================================================
# FASTAPI APP
# ============================================================================

def create_app(
    lifecycle: Optional[WorkerLifecycle] = None,
    runtime_factory: Callable[[threading.Event], WorkerRuntime] = build_runtime,
    install_signal_handlers: bool = True
) -> FastAPI:
    """
    Build the health app; the runtime is created and started in the lifespan.
    """
    lifecycle = lifecycle or WorkerLifecycle()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("WORKER SERVICE - STARTING")
        if install_signal_handlers:
            lifecycle.register_signal_handlers()

        runtime = runtime_factory(lifecycle.shutdown_event)
        app.state.runtime = runtime
        runtime.start()

        yield

        logger.info("WORKER SERVICE - SHUTTING DOWN")
        if not lifecycle.is_shutting_down:
            lifecycle.initiate_shutdown("lifespan_exit")
        runtime.stop()
        logger.info("WORKER SERVICE - SHUTDOWN COMPLETE")

    app = FastAPI(
        title="Workflow Orchestration Worker",
        description="Health and status of the orchestration worker",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.lifecycle = lifecycle
    app.state.runtime = None

    @app.get("/livez")
    def liveness_probe():
        """Returns 200 while the process is running."""
        return {"status": "ok"}

    @app.get("/readyz")
    def readiness_probe():
        runtime: Optional[WorkerRuntime] = app.state.runtime
        shutting_down = lifecycle.is_shutting_down
        workers_alive = runtime is not None and runtime.workers_alive

        if shutting_down or not workers_alive:
            return JSONResponse(
                status_code=503,
                content={
                    "status": "not_ready",
                    "shutting_down": shutting_down,
                    "workers_alive": workers_alive,
                },
            )
        return {"status": "ready", "shutting_down": False, "workers_alive": True}

    @app.get("/health")
    def health_check():
        """
        Detailed health: lifecycle, background workers, active executions
        and, when psutil is installed, process memory.
        """
        runtime: Optional[WorkerRuntime] = app.state.runtime
        health: Dict[str, Any] = {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "lifecycle": lifecycle.get_status(),
            "workers": {},
            "active_executions": [],
            "memory": get_memory_stats(),
        }
        if runtime is None:
            health["status"] = "starting"
            return health

        health["workers"] = {worker.name: worker.get_status() for worker in runtime.workers}
        health["active_executions"] = sorted(runtime.manager.active_execution_ids())
        if runtime.config.debug_mode:
            health["config"] = debug_config()
        if lifecycle.is_shutting_down:
            health["status"] = "shutting_down"
        elif not runtime.workers_alive:
            health["status"] = "degraded"
        return health

    return app


app = create_app()


def main() -> None:
    """Run the worker process: background workers plus the health app."""
    config = get_config()
    logger.info(f"🚀 Worker service on port {config.worker_health_port} (backend={config.storage_backend})")
    uvicorn.run(app, host="0.0.0.0", port=config.worker_health_port, log_config=None)


if __name__ == "__main__":
    main()
