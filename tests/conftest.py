"""
Root conftest.py — sys.path, env vars, shared fixtures.

Sets up the test environment so all production code can be imported
without a database, Service Bus or the external task service.
"""

import os
import sys

import pytest

# Add project root to sys.path so 'core', 'services', 'config', etc. are importable
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


@pytest.fixture(autouse=True, scope="session")
def set_minimal_env_vars():
    """
    Select in-memory backends so nothing reaches for PostgreSQL or Azure.
    """
    defaults = {
        "STORAGE_BACKEND": "memory",
        "ENVIRONMENT": "dev",
        "DPS_BASE_URL": "http://dps.test/services",
    }
    for key, value in defaults.items():
        os.environ.setdefault(key, value)


@pytest.fixture(autouse=True)
def fresh_config():
    """Each test reads configuration from its own environment."""
    from config import reset_config
    reset_config()
    yield
    reset_config()
