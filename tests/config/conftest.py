"""
Config test fixtures — clean environment via monkeypatch.
"""

import pytest


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all env vars that config modules might read, for isolation."""
    env_vars_to_clear = [
        "ENVIRONMENT", "DEBUG_MODE", "STORAGE_BACKEND", "WORKER_HEALTH_PORT",
        "POSTGRES_HOST", "POSTGRES_PORT", "POSTGRES_DB", "POSTGRES_USER", "POSTGRES_PASSWORD",
        "MANAGED_IDENTITY_NAME", "USE_MANAGED_IDENTITY", "APP_SCHEMA",
        "ServiceBusConnection", "SERVICE_BUS_NAMESPACE", "SERVICE_BUS_QUEUE_PREFIX",
        "QUEUE_HIGHEST_PRIORITY", "MAX_CONCURRENT_THREADS", "SOLR_COMMIT_PERIOD_MINS",
        "LINK_CHECKING_AFTER_DEPUBLISH", "DPS_BASE_URL", "DPS_MAX_RETRIES", "DPS_TOKEN_SCOPE",
        "USE_ALT_INDEXING_ENV",
    ]
    for var in env_vars_to_clear:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch
