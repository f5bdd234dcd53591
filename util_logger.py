"""
Unified Logger System.

JSON-only structured logging for the orchestration core. Every component
gets a named logger from LoggerFactory; records are written to stdout as
one JSON object per line with correlation fields in customDimensions.

Design Principles:
    - Strong typing with dataclasses (stdlib only)
    - Enum safety for categories
    - Component-specific loggers
    - Clean factory pattern

Exports:
    ComponentType: Enum for component types
    LogLevel: Enum for log levels
    LogContext: Logging context dataclass
    ContextLoggerAdapter: Binds a LogContext to a shared component logger
    ComponentConfig: Per-component logger settings
    JSONFormatter: Formatter producing JSON log lines
    LoggerFactory: Factory for creating loggers
    get_memory_stats: Process memory/CPU statistics helper

Dependencies:
    psutil (process resource statistics for the health endpoint)
"""

from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from dataclasses import dataclass
import logging
import sys
import os
import json

import psutil


# ============================================================================
# RESOURCE STATISTICS
# ============================================================================

def get_memory_stats() -> Optional[Dict[str, float]]:
    """
    Get current process memory and CPU statistics.

    Returns:
        dict with resource stats or None if collection fails
        {
            'process_rss_mb': float,      # Resident Set Size (actual RAM used)
            'process_cpu_percent': float, # Process CPU usage %
            'system_available_mb': float, # Available system memory
            'system_percent': float       # System memory usage %
        }
    """
    try:
        process = psutil.Process(os.getpid())
        mem_info = process.memory_info()
        system_mem = psutil.virtual_memory()
        return {
            'process_rss_mb': round(mem_info.rss / (1024**2), 1),
            'process_cpu_percent': round(process.cpu_percent(interval=None), 1),
            'system_available_mb': round(system_mem.available / (1024**2), 1),
            'system_percent': round(system_mem.percent, 1)
        }
    except Exception as e:
        logging.getLogger("util_logger.memory_stats").warning(f"⚠️ memory stats collection failed: {e}")
        return None


# ============================================================================
# COMPONENT TYPES - Aligned with the layered architecture
# ============================================================================

class ComponentType(Enum):
    """
    Component types aligned with architecture layers.

    Each layer has specific logging needs and levels.
    """
    SERVICE = "service"        # Orchestrator and domain services
    REPOSITORY = "repository"  # ExecutionStore / registry access
    FACTORY = "factory"        # Object creation layer
    VALIDATOR = "validator"    # Workflow validation
    ADAPTER = "adapter"        # External task service, queue, locks
    TRIGGER = "trigger"        # Process entry points and health app
    WORKER = "worker"          # Execution supervisors and loops


# ============================================================================
# LOG LEVELS - Standard Python levels with enum safety
# ============================================================================

class LogLevel(Enum):
    """
    Standard Python log levels as enum for type safety.
    """
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    def to_python_level(self) -> int:
        """Convert to Python logging level constant."""
        return getattr(logging, self.value)

    @classmethod
    def from_string(cls, level: str) -> 'LogLevel':
        """Create from string, case-insensitive."""
        return cls[level.upper()]


# ============================================================================
# LOG CONTEXT - Correlation and tracking
# ============================================================================

@dataclass
class LogContext:
    """
    Context for log correlation across operations.

    A supervisor logs every line of an execution with the dataset and
    execution ids so a single execution can be followed end to end.
    """
    dataset_id: Optional[str] = None
    execution_id: Optional[str] = None

    plugin_id: Optional[str] = None
    plugin_type: Optional[str] = None

    correlation_id: Optional[str] = None
    user_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            k: v for k, v in {
                'dataset_id': self.dataset_id,
                'execution_id': self.execution_id,
                'plugin_id': self.plugin_id,
                'plugin_type': self.plugin_type,
                'correlation_id': self.correlation_id,
                'user_id': self.user_id
            }.items() if v is not None
        }


class ContextLoggerAdapter(logging.LoggerAdapter):
    """
    Adds LogContext fields to the custom dimensions of every record.

    Dimensions passed by the caller in extra["custom_dimensions"] win
    over the bound context.
    """

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        custom_dims = dict(self.extra)
        custom_dims.update(extra.get("custom_dimensions", {}))
        extra["custom_dimensions"] = custom_dims
        kwargs["extra"] = extra
        return msg, kwargs


# ============================================================================
# COMPONENT CONFIGURATION - Per-component settings
# ============================================================================

@dataclass
class ComponentConfig:
    """
    Configuration for component-specific logging.
    """
    component_type: ComponentType
    log_level: LogLevel = LogLevel.INFO
    enable_debug_context: bool = False


# ============================================================================
# JSON FORMATTER - Structured logging
# ============================================================================

class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.
    Outputs one object per line so log shippers can parse without rules.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Python LogRecord to format

        Returns:
            JSON string with structured log data
        """
        log_obj = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name,
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if hasattr(record, 'custom_dimensions'):
            log_obj['customDimensions'] = record.custom_dimensions

        if record.exc_info:
            log_obj['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': self.formatException(record.exc_info)
            }

        return json.dumps(log_obj, default=str)


# ============================================================================
# LOGGER FACTORY - Creates component-specific loggers
# ============================================================================

class LoggerFactory:
    """
    Factory for creating component-specific loggers.

    Example:
        logger = LoggerFactory.create_logger(
            ComponentType.SERVICE,
            "OrchestratorService"
        )
        logger.info("Admitting execution")
    """

    _default_level = LogLevel.DEBUG if os.getenv('DEBUG_LOGGING', '').lower() == 'true' else LogLevel.INFO

    DEFAULT_CONFIGS = {
        ComponentType.SERVICE: ComponentConfig(
            component_type=ComponentType.SERVICE,
            log_level=_default_level
        ),
        ComponentType.REPOSITORY: ComponentConfig(
            component_type=ComponentType.REPOSITORY,
            log_level=LogLevel.DEBUG,  # Always debug for repositories to track SQL
            enable_debug_context=True
        ),
        ComponentType.FACTORY: ComponentConfig(
            component_type=ComponentType.FACTORY,
            log_level=_default_level
        ),
        ComponentType.VALIDATOR: ComponentConfig(
            component_type=ComponentType.VALIDATOR,
            log_level=_default_level
        ),
        ComponentType.ADAPTER: ComponentConfig(
            component_type=ComponentType.ADAPTER,
            log_level=_default_level
        ),
        ComponentType.TRIGGER: ComponentConfig(
            component_type=ComponentType.TRIGGER,
            log_level=_default_level
        ),
        ComponentType.WORKER: ComponentConfig(
            component_type=ComponentType.WORKER,
            log_level=_default_level,
            enable_debug_context=True if _default_level == LogLevel.DEBUG else False
        )
    }

    @classmethod
    def create_logger(
        cls,
        component_type: ComponentType,
        name: str,
        context: Optional[LogContext] = None,
        config: Optional[ComponentConfig] = None
    ) -> logging.Logger:
        """
        Create a logger for a specific component.

        Args:
            component_type: Type of component
            name: Component name (e.g., "OrchestratorService")
            context: Optional log context for correlation
            config: Optional custom configuration

        Returns:
            Configured Python logger
        """
        if config is None:
            config = cls.DEFAULT_CONFIGS.get(
                component_type,
                ComponentConfig(component_type=component_type)
            )

        logger_name = f"{component_type.value}.{name}"
        logger = logging.getLogger(logger_name)

        if isinstance(config.log_level, str):
            log_level = LogLevel.from_string(config.log_level).to_python_level()
        else:
            log_level = config.log_level.to_python_level()
        logger.setLevel(log_level)

        # One JSON handler per logger even when create_logger is called repeatedly
        has_json_handler = any(
            isinstance(h.formatter, JSONFormatter) for h in logger.handlers
        )
        if not has_json_handler:
            handler = logging.StreamHandler(sys.stdout)
            handler.setLevel(log_level)
            handler.setFormatter(JSONFormatter())
            logger.addHandler(handler)

        logger.propagate = True

        if not hasattr(logger, '_context_wrapped'):
            original_log = logger._log

            def log_with_context(level, msg, args, exc_info=None, extra=None, stack_info=False, stacklevel=1):
                """Wrapper to inject context as custom dimensions."""
                if extra is None:
                    extra = {}

                if context:
                    custom_dims = context.to_dict()
                    custom_dims['component_type'] = component_type.value
                    custom_dims['component_name'] = name
                else:
                    custom_dims = {
                        'component_type': component_type.value,
                        'component_name': name
                    }

                if 'custom_dimensions' in extra:
                    custom_dims.update(extra['custom_dimensions'])

                extra['custom_dimensions'] = custom_dims

                # +1 so module/line point at the caller, not this wrapper
                original_log(level, msg, args, exc_info=exc_info, extra=extra,
                             stack_info=stack_info, stacklevel=stacklevel + 1)

            logger._log = log_with_context
            logger._context_wrapped = True

        return logger

    @classmethod
    def create_with_context(
        cls,
        component_type: ComponentType,
        name: str,
        dataset_id: Optional[str] = None,
        execution_id: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> ContextLoggerAdapter:
        """
        Create logger bound to one dataset/execution.

        All callers share the component logger; the ids travel with each
        record as custom dimensions, so supervising many executions does
        not register one logger per execution.

        Args:
            component_type: Type of component
            name: Component name
            dataset_id: Optional dataset ID
            execution_id: Optional workflow execution ID
            user_id: Optional acting user

        Returns:
            Adapter over the component logger carrying the context
        """
        context = LogContext(
            dataset_id=dataset_id,
            execution_id=execution_id,
            user_id=user_id
        )
        return ContextLoggerAdapter(
            cls.create_logger(component_type=component_type, name=name),
            context.to_dict()
        )
