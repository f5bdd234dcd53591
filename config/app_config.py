"""
Main Application Configuration.

Composes the domain configurations into a single AppConfig and validates
cross-domain requirements (e.g. the postgresql backend needs a host).

Exports:
    AppConfig: Composed configuration model
"""

import os
from pydantic import BaseModel, Field, field_validator

from exceptions import ConfigurationError
from .defaults import AppDefaults
from .database_config import DatabaseConfig
from .queue_config import QueueConfig
from .orchestration_config import OrchestrationConfig
from .external_task_config import ExternalTaskConfig


class AppConfig(BaseModel):
    """
    Application configuration - composition of domain configs.

    Each domain config manages its own validation and defaults.
    """

    # ========================================================================
    # Core Application Settings
    # ========================================================================

    environment: str = Field(
        default=AppDefaults.ENVIRONMENT,
        description="Environment name (dev, qa, prod)",
        examples=["dev", "qa", "prod"]
    )

    debug_mode: bool = Field(
        default=AppDefaults.DEBUG_MODE,
        description="Enable verbose diagnostics (memory stats in health output)"
    )

    storage_backend: str = Field(
        default=AppDefaults.STORAGE_BACKEND,
        description="ExecutionStore/registry/lock backend: 'postgresql' or 'memory'"
    )

    worker_health_port: int = Field(
        default=AppDefaults.WORKER_HEALTH_PORT,
        ge=1,
        le=65535,
        description="Port of the worker health/readiness HTTP app"
    )

    # ========================================================================
    # Domain Configurations
    # ========================================================================

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    queues: QueueConfig = Field(default_factory=QueueConfig)
    orchestration: OrchestrationConfig = Field(default_factory=OrchestrationConfig)
    external_tasks: ExternalTaskConfig = Field(default_factory=ExternalTaskConfig)

    @field_validator("storage_backend")
    @classmethod
    def _validate_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in AppDefaults.VALID_STORAGE_BACKENDS:
            raise ValueError(
                f"storage_backend must be one of {AppDefaults.VALID_STORAGE_BACKENDS}, got '{value}'"
            )
        return value

    @property
    def uses_postgresql(self) -> bool:
        return self.storage_backend == AppDefaults.STORAGE_BACKEND_POSTGRESQL

    def validate_runtime(self) -> None:
        """
        Check cross-domain requirements before components are built.

        Raises:
            ConfigurationError: postgresql backend selected without host/database
        """
        if self.uses_postgresql and not self.database.is_configured:
            raise ConfigurationError(
                "STORAGE_BACKEND=postgresql requires POSTGRES_HOST and POSTGRES_DB"
            )

    @classmethod
    def from_environment(cls):
        """Load all configs from environment."""
        return cls(
            environment=os.environ.get("ENVIRONMENT", AppDefaults.ENVIRONMENT),
            debug_mode=os.environ.get("DEBUG_MODE", str(AppDefaults.DEBUG_MODE)).lower() == "true",
            storage_backend=os.environ.get("STORAGE_BACKEND", AppDefaults.STORAGE_BACKEND),
            worker_health_port=int(os.environ.get("WORKER_HEALTH_PORT", str(AppDefaults.WORKER_HEALTH_PORT))),
            database=DatabaseConfig.from_environment(),
            queues=QueueConfig.from_environment(),
            orchestration=OrchestrationConfig.from_environment(),
            external_tasks=ExternalTaskConfig.from_environment(),
        )
