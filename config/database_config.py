"""
PostgreSQL Database Configuration.

Provides configuration for:
    - Connection settings (host, port, database, credentials)
    - Managed identity authentication (token used as password)
    - Schema holding the orchestration tables
    - Read retry policy for transient connectivity errors

Exports:
    DatabaseConfig: Pydantic database configuration model
"""

import os
from typing import Optional
from pydantic import BaseModel, Field

from .defaults import DatabaseDefaults


class DatabaseConfig(BaseModel):
    """
    PostgreSQL configuration with managed identity support.

    Supports both password-based and Azure Managed Identity authentication.
    """

    host: Optional[str] = Field(
        default=None,
        description="PostgreSQL server hostname (required for the postgresql backend)"
    )

    port: int = Field(
        default=DatabaseDefaults.PORT,
        description="PostgreSQL server port number"
    )

    database: Optional[str] = Field(
        default=None,
        description="PostgreSQL database name"
    )

    user: Optional[str] = Field(
        default=None,
        description="PostgreSQL username (password auth), or identity name when managed identity is used"
    )

    password: Optional[str] = Field(
        default=None,
        repr=False,
        description="PostgreSQL password (password auth only)"
    )

    app_schema: str = Field(
        default=DatabaseDefaults.APP_SCHEMA,
        description="Schema holding workflows, executions, schedules, registry and lock tables"
    )

    use_managed_identity: bool = Field(
        default=False,
        description="Acquire an Azure AD token with DefaultAzureCredential and use it as password"
    )

    connection_timeout_seconds: int = Field(
        default=DatabaseDefaults.CONNECTION_TIMEOUT_SECONDS,
        ge=1,
        le=300,
        description="Connect timeout in seconds"
    )

    retry_attempts: int = Field(
        default=DatabaseDefaults.RETRY_ATTEMPTS,
        ge=1,
        le=10,
        description="Attempts for read operations that lose their connection"
    )

    retry_base_delay_secs: float = Field(
        default=DatabaseDefaults.RETRY_BASE_DELAY_SECS,
        ge=0.0,
        description="Base delay of the exponential read retry backoff"
    )

    @property
    def is_configured(self) -> bool:
        """Host and database are both set."""
        return bool(self.host and self.database)

    @property
    def connection_string(self) -> str:
        """
        Build PostgreSQL connection string for password authentication.

        Managed identity connection strings are built by the repository,
        which injects a fresh token as password.
        """
        if not self.user:
            raise ValueError("POSTGRES_USER is required for password authentication")
        password_part = f" password={self.password}" if self.password else ""
        return (
            f"host={self.host} port={self.port} dbname={self.database} "
            f"user={self.user}{password_part} connect_timeout={self.connection_timeout_seconds}"
        )

    def debug_dict(self) -> dict:
        """Debug output with masked password."""
        return {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.user,
            "password": "***MASKED***" if self.password else None,
            "app_schema": self.app_schema,
            "managed_identity": self.use_managed_identity,
            "retry_attempts": self.retry_attempts,
        }

    @classmethod
    def from_environment(cls):
        """Load from environment variables."""
        return cls(
            host=os.environ.get("POSTGRES_HOST"),
            port=int(os.environ.get("POSTGRES_PORT", str(DatabaseDefaults.PORT))),
            database=os.environ.get("POSTGRES_DB"),
            user=os.environ.get("POSTGRES_USER") or os.environ.get("MANAGED_IDENTITY_NAME"),
            password=os.environ.get("POSTGRES_PASSWORD"),
            app_schema=os.environ.get("APP_SCHEMA", DatabaseDefaults.APP_SCHEMA),
            use_managed_identity=os.environ.get("USE_MANAGED_IDENTITY", "false").lower() == "true",
            connection_timeout_seconds=int(os.environ.get(
                "DB_CONNECTION_TIMEOUT", str(DatabaseDefaults.CONNECTION_TIMEOUT_SECONDS))),
            retry_attempts=int(os.environ.get("DB_RETRY_ATTEMPTS", str(DatabaseDefaults.RETRY_ATTEMPTS))),
            retry_base_delay_secs=float(os.environ.get(
                "DB_RETRY_BASE_DELAY_SECS", str(DatabaseDefaults.RETRY_BASE_DELAY_SECS))),
        )
