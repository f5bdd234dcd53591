"""
External Task Service Configuration.

Settings of the HTTP client that dispatches plugin tasks to the external
task service (DPS) and registers datasets in the downstream content store.

Exports:
    ExternalTaskConfig: Pydantic external task service configuration model
"""

import os
from typing import Optional
from pydantic import BaseModel, Field

from .defaults import ExternalTaskDefaults


class ExternalTaskConfig(BaseModel):
    """
    External task service client configuration.
    """

    base_url: str = Field(
        default=ExternalTaskDefaults.BASE_URL,
        description="Base URL of the external task service"
    )

    token_scope: Optional[str] = Field(
        default=None,
        description="Azure AD scope; when set, calls carry a bearer token from DefaultAzureCredential"
    )

    response_timeout_secs: float = Field(
        default=ExternalTaskDefaults.RESPONSE_TIMEOUT_SECS,
        gt=0,
        description="Read timeout of a single call"
    )

    request_timeout_secs: float = Field(
        default=ExternalTaskDefaults.REQUEST_TIMEOUT_SECS,
        gt=0,
        description="Overall timeout of a single call"
    )

    max_retries: int = Field(
        default=ExternalTaskDefaults.MAX_RETRIES,
        ge=0,
        le=10,
        description="Retries of a failed call; also the consecutive poll failures tolerated per plugin"
    )

    retry_base_delay_secs: float = Field(
        default=ExternalTaskDefaults.RETRY_BASE_DELAY_SECS,
        ge=0.0,
        description="Base delay of the exponential retry backoff"
    )

    ecloud_provider: str = Field(
        default=ExternalTaskDefaults.ECLOUD_PROVIDER,
        description="Provider id used when registering datasets downstream"
    )

    use_alternative_indexing_environment: bool = Field(
        default=False,
        description="Default USE_ALT_INDEXING_ENV for indexing and depublish tasks"
    )

    @classmethod
    def from_environment(cls):
        """Load from environment variables."""
        return cls(
            base_url=os.environ.get("DPS_BASE_URL", ExternalTaskDefaults.BASE_URL),
            token_scope=os.environ.get("DPS_TOKEN_SCOPE") or None,
            response_timeout_secs=float(os.environ.get(
                "DPS_RESPONSE_TIMEOUT_SECS", str(ExternalTaskDefaults.RESPONSE_TIMEOUT_SECS))),
            request_timeout_secs=float(os.environ.get(
                "DPS_REQUEST_TIMEOUT_SECS", str(ExternalTaskDefaults.REQUEST_TIMEOUT_SECS))),
            max_retries=int(os.environ.get("DPS_MAX_RETRIES", str(ExternalTaskDefaults.MAX_RETRIES))),
            retry_base_delay_secs=float(os.environ.get(
                "DPS_RETRY_BASE_DELAY_SECS", str(ExternalTaskDefaults.RETRY_BASE_DELAY_SECS))),
            ecloud_provider=os.environ.get("ECLOUD_PROVIDER", ExternalTaskDefaults.ECLOUD_PROVIDER),
            use_alternative_indexing_environment=os.environ.get(
                "USE_ALT_INDEXING_ENV", "false").lower() == "true",
        )
