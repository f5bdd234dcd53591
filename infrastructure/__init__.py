"""
Infrastructure Package - Lazy Loading Implementation.

Provides the repository, lock, queue and external client implementations
with lazy loading, so that importing the package does not import
psycopg, azure-servicebus or httpx, read environment variables or open
connections. A class is imported the first time it is accessed, which is
typically when RepositoryFactory.create_components() runs.

Exports:
    RepositoryFactory, InfrastructureComponents
    Interfaces: IExecutionStore, IDepublishRegistry, ILockService,
        IExecutionQueue, IExternalTaskClient, QueueMessage
    Implementations: InMemoryExecutionStore, InMemoryDepublishRegistry,
        PostgreSQLExecutionStore, PostgreSQLDepublishRegistry,
        InMemoryLockService, PostgreSQLLockService,
        InMemoryExecutionQueue, ServiceBusExecutionQueue, DpsClient
"""

from typing import TYPE_CHECKING

# For type checking only - doesn't actually import at runtime
if TYPE_CHECKING:
    from .factory import RepositoryFactory, InfrastructureComponents
    from .interface_repository import (
        IExecutionStore,
        IDepublishRegistry,
        ILockService,
        IExecutionQueue,
        IExternalTaskClient,
        QueueMessage,
    )


# name -> submodule that defines it
_LAZY_IMPORTS = {
    # Factory - most common import
    "RepositoryFactory": "factory",
    "InfrastructureComponents": "factory",

    # Interfaces
    "IExecutionStore": "interface_repository",
    "IDepublishRegistry": "interface_repository",
    "ILockService": "interface_repository",
    "IExecutionQueue": "interface_repository",
    "IExternalTaskClient": "interface_repository",
    "QueueMessage": "interface_repository",

    # Base classes
    "BaseRepository": "base",
    "PostgreSQLRepository": "postgresql",

    # Stores
    "InMemoryExecutionStore": "memory_store",
    "InMemoryDepublishRegistry": "memory_store",
    "PostgreSQLExecutionStore": "postgresql",
    "PostgreSQLDepublishRegistry": "depublish_repository",

    # Locks and queues
    "InMemoryLockService": "locks",
    "PostgreSQLLockService": "locks",
    "InMemoryExecutionQueue": "queue",
    "ServiceBusExecutionQueue": "service_bus",

    # External task service
    "DpsClient": "dps_client",
}


def __getattr__(name: str):
    """
    Lazy import mechanism - only imports when actually accessed.
    This prevents module-level code execution until needed.
    """
    module_name = _LAZY_IMPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")

    import importlib
    module = importlib.import_module(f".{module_name}", __name__)
    return getattr(module, name)


__all__ = list(_LAZY_IMPORTS)
