"""
Execution Queue Configuration.

Provides configuration for:
    - Priority ceiling (number of priority classes is ceiling + 1)
    - Service Bus connection settings (connection string or namespace)
    - Per-priority queue naming
    - Send retry policy

Exports:
    QueueConfig: Pydantic queue configuration model
"""

import os
from typing import List, Optional
from pydantic import BaseModel, Field

from .defaults import QueueDefaults


class QueueConfig(BaseModel):
    """
    Execution queue configuration.

    When neither connection_string nor namespace is set the process uses
    the in-memory queue, which is only shared between threads of one process.
    """

    highest_priority: int = Field(
        default=QueueDefaults.HIGHEST_PRIORITY,
        ge=1,
        le=255,
        description="Admissible priority ceiling; priorities are clamped to [0, highest_priority]"
    )

    connection_string: Optional[str] = Field(
        default=None,
        repr=False,
        description="Service Bus connection string"
    )

    namespace: Optional[str] = Field(
        default=None,
        description="Service Bus fully qualified namespace for managed identity auth"
    )

    queue_prefix: str = Field(
        default=QueueDefaults.QUEUE_PREFIX,
        description="Prefix of the per-priority Service Bus queues"
    )

    retry_count: int = Field(
        default=QueueDefaults.RETRY_COUNT,
        ge=0,
        le=10,
        description="Number of retry attempts for Service Bus send operations"
    )

    max_wait_secs: int = Field(
        default=QueueDefaults.MAX_WAIT_SECS,
        ge=1,
        le=60,
        description="Receive wait per priority class when polling"
    )

    @property
    def uses_service_bus(self) -> bool:
        return bool(self.connection_string or self.namespace)

    def queue_name(self, priority: int) -> str:
        """Name of the Service Bus queue for one priority class."""
        return f"{self.queue_prefix}-p{priority}"

    def queue_names(self) -> List[str]:
        """All priority queues, highest priority first."""
        return [self.queue_name(p) for p in range(self.highest_priority, -1, -1)]

    def debug_dict(self) -> dict:
        return {
            "highest_priority": self.highest_priority,
            "connection_string": "***MASKED***" if self.connection_string else None,
            "namespace": self.namespace,
            "queue_prefix": self.queue_prefix,
            "retry_count": self.retry_count,
        }

    @classmethod
    def from_environment(cls):
        """Load from environment variables."""
        return cls(
            highest_priority=int(os.environ.get("QUEUE_HIGHEST_PRIORITY", str(QueueDefaults.HIGHEST_PRIORITY))),
            connection_string=os.environ.get("ServiceBusConnection"),
            namespace=os.environ.get("SERVICE_BUS_NAMESPACE"),
            queue_prefix=os.environ.get("SERVICE_BUS_QUEUE_PREFIX", QueueDefaults.QUEUE_PREFIX),
            retry_count=int(os.environ.get("SERVICE_BUS_RETRY_COUNT", str(QueueDefaults.RETRY_COUNT))),
            max_wait_secs=int(os.environ.get("SERVICE_BUS_MAX_WAIT_SECS", str(QueueDefaults.MAX_WAIT_SECS))),
        )
