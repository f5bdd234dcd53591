"""
Configuration Package - Domain-Specific Configuration Modules

This package provides application configuration using a composition-based approach.

Structure:
    config/
    ├── __init__.py                # This file - exports and singleton
    ├── app_config.py              # Main config (composes domain configs)
    ├── defaults.py                # Default values
    ├── database_config.py         # PostgreSQL
    ├── queue_config.py            # Execution queue / Service Bus
    ├── orchestration_config.py    # Worker pool, loops, registry cap, page sizes
    └── external_task_config.py    # External task service client

Usage:
    from config import get_config
    config = get_config()
    threads = config.orchestration.max_concurrent_threads

    from config import debug_config
    info = debug_config()  # Passwords masked
"""

from typing import Optional

from .database_config import DatabaseConfig
from .queue_config import QueueConfig
from .orchestration_config import OrchestrationConfig
from .external_task_config import ExternalTaskConfig
from .app_config import AppConfig


# ============================================================================
# SINGLETON PATTERN
# ============================================================================

_config_instance: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Get global configuration singleton.

    Returns:
        AppConfig instance loaded from environment
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = AppConfig.from_environment()
    return _config_instance


def reset_config() -> None:
    """Drop the singleton so the next get_config() re-reads the environment."""
    global _config_instance
    _config_instance = None


def debug_config() -> dict:
    """
    Get sanitized configuration for debugging (masks sensitive values).

    Returns:
        Dictionary with configuration values, secrets masked
    """
    try:
        config = get_config()
        return {
            'environment': config.environment,
            'debug_mode': config.debug_mode,
            'storage_backend': config.storage_backend,
            'database': config.database.debug_dict(),
            'queues': config.queues.debug_dict(),
            'orchestration': config.orchestration.model_dump(),
            'external_tasks': config.external_tasks.model_dump(),
        }
    except Exception as e:
        return {'error': f'Configuration validation failed: {e}'}


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    'AppConfig',
    'get_config',
    'reset_config',
    'debug_config',
    'DatabaseConfig',
    'QueueConfig',
    'OrchestrationConfig',
    'ExternalTaskConfig',
]
