"""
Repository Factory - Central Creation Point.

Builds the infrastructure components of the orchestration core from
AppConfig. STORAGE_BACKEND selects PostgreSQL or in-memory
implementations of the execution store, depublish registry and lock
service; the queue is Service Bus when a connection string or namespace
is configured, otherwise in-memory.

Exports:
    InfrastructureComponents: Bundle of built components
    RepositoryFactory: Static factory methods per component
"""

from dataclasses import dataclass
from typing import Optional

from config import AppConfig, get_config
from infrastructure.dps_client import DpsClient
from infrastructure.interface_repository import (
    IDepublishRegistry,
    IExecutionQueue,
    IExecutionStore,
    IExternalTaskClient,
    ILockService,
)
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.FACTORY, "RepositoryFactory")


@dataclass
class InfrastructureComponents:
    """Components shared by the Orchestrator and the worker loops."""

    store: IExecutionStore
    depublish_registry: IDepublishRegistry
    lock_service: ILockService
    queue: IExecutionQueue
    task_client: IExternalTaskClient

    def close(self) -> None:
        """Release connections and background threads of all components."""
        for name in ("queue", "task_client", "lock_service"):
            component = getattr(self, name)
            try:
                component.close()
            except Exception as e:
                logger.warning(f"⚠️ Failed to close {name}: {e}")


class RepositoryFactory:
    """
    Factory for creating infrastructure instances.

    Usage:
        components = RepositoryFactory.create_components()
        orchestrator = OrchestratorService(components, config)
    """

    @staticmethod
    def create_execution_store(config: AppConfig) -> IExecutionStore:
        if config.uses_postgresql:
            from infrastructure.postgresql import PostgreSQLExecutionStore
            logger.info("🏭 Creating PostgreSQL execution store")
            store = PostgreSQLExecutionStore(config.database)
            store.ensure_schema()
            return store

        from infrastructure.memory_store import InMemoryExecutionStore
        logger.info("🏭 Creating in-memory execution store")
        return InMemoryExecutionStore()

    @staticmethod
    def create_depublish_registry(config: AppConfig) -> IDepublishRegistry:
        max_per_dataset = config.orchestration.depublish_max_records_per_dataset
        page_size = config.orchestration.depublished_records_per_request

        if config.uses_postgresql:
            from infrastructure.depublish_repository import PostgreSQLDepublishRegistry
            logger.info("🏭 Creating PostgreSQL depublish registry")
            return PostgreSQLDepublishRegistry(config.database, max_per_dataset, page_size)

        from infrastructure.memory_store import InMemoryDepublishRegistry
        logger.info("🏭 Creating in-memory depublish registry")
        return InMemoryDepublishRegistry(max_per_dataset, page_size)

    @staticmethod
    def create_lock_service(config: AppConfig) -> ILockService:
        timeout = config.orchestration.lock_watchdog_timeout_secs

        if config.uses_postgresql:
            from infrastructure.locks import PostgreSQLLockService
            logger.info("🏭 Creating PostgreSQL lock service")
            return PostgreSQLLockService(config.database, watchdog_timeout_secs=timeout)

        from infrastructure.locks import InMemoryLockService
        logger.info("🏭 Creating in-memory lock service")
        return InMemoryLockService(watchdog_timeout_secs=timeout)

    @staticmethod
    def create_execution_queue(config: AppConfig) -> IExecutionQueue:
        if config.queues.uses_service_bus:
            from infrastructure.service_bus import ServiceBusExecutionQueue
            logger.info("🏭 Creating Service Bus execution queue")
            return ServiceBusExecutionQueue(config.queues)

        from infrastructure.queue import InMemoryExecutionQueue
        logger.info("🏭 Creating in-memory execution queue")
        return InMemoryExecutionQueue(config.queues.highest_priority)

    @staticmethod
    def create_task_client(config: AppConfig) -> IExternalTaskClient:
        logger.info(f"🏭 Creating external task client for {config.external_tasks.base_url}")
        return DpsClient(config.external_tasks)

    @staticmethod
    def create_components(config: Optional[AppConfig] = None) -> InfrastructureComponents:
        """
        Build every component from configuration.

        Args:
            config: Application config; the get_config() singleton when omitted

        Raises:
            ConfigurationError: Backend selected without the settings it needs
        """
        config = config or get_config()
        config.validate_runtime()

        components = InfrastructureComponents(
            store=RepositoryFactory.create_execution_store(config),
            depublish_registry=RepositoryFactory.create_depublish_registry(config),
            lock_service=RepositoryFactory.create_lock_service(config),
            queue=RepositoryFactory.create_execution_queue(config),
            task_client=RepositoryFactory.create_task_client(config),
        )
        logger.info(f"✅ Infrastructure created (backend={config.storage_backend})")
        return components


__all__ = ["InfrastructureComponents", "RepositoryFactory"]
