"""
Base Repository - Pure Abstract Class.

Abstract base repository class that all storage-specific repositories
inherit from. Contains NO storage implementation details, only common
validation logic, error handling patterns, and logging infrastructure.

Architecture:
    BaseRepository (this file - pure abstract)
        |
    Storage-specific bases (PostgreSQLRepository, in-memory stores)
        |
    Domain repositories (ExecutionStore, DepublishRegistry, LockService)

Exports:
    BaseRepository: Abstract base class for repositories
"""

from abc import ABC
from contextlib import contextmanager
from typing import Optional

from pydantic import ValidationError

from core.logic.transitions import can_plugin_transition, can_workflow_transition
from core.models import WorkflowExecution
from exceptions import BusinessLogicError, ContractViolationError
from util_logger import LoggerFactory, ComponentType


class BaseRepository(ABC):
    """
    Pure abstract base repository with common validation logic.

    Responsibilities:
        - Logging setup (one REPOSITORY logger per concrete class)
        - Error context for storage operations
        - Monotonic status transition checks for executions and plugins

    NOT Responsible For:
        - Connection management (storage-specific subclasses)
        - Query execution (storage-specific subclasses)

    Thread Safety:
        Stateless apart from the logger; subclasses guard their own state.
    """

    def __init__(self):
        self.logger = LoggerFactory.create_logger(
            ComponentType.REPOSITORY,
            self.__class__.__name__
        )
        self.logger.debug(f"🏛️ {self.__class__.__name__} base initialized")

    @contextmanager
    def _error_context(self, operation: str, entity_id: Optional[str] = None):
        """
        Log failures of a storage operation with context, then re-raise.

        Usage:
            with self._error_context("execution update", execution.id):
                self._write(execution)
        """
        try:
            yield
        except ValidationError as e:
            self.logger.error(f"❌ Schema validation failed during {operation}: {e}")
            raise
        except (BusinessLogicError, ContractViolationError):
            raise
        except Exception as e:
            error_msg = f"❌ {operation} failed"
            if entity_id:
                error_msg += f" for {entity_id}"
            self.logger.error(f"{error_msg}: {e}")
            raise

    def _validate_execution_update(
        self,
        current: WorkflowExecution,
        updated: WorkflowExecution
    ) -> None:
        """
        Reject status regressions of an execution or any of its plugins.

        Raises:
            ContractViolationError: A status would move backwards, or the
                plugin list no longer matches the stored one
        """
        if not can_workflow_transition(current.status, updated.status):
            raise ContractViolationError(
                f"Invalid execution status transition for {current.id}: "
                f"{current.status.value} → {updated.status.value}"
            )

        current_ids = [p.id for p in current.plugins]
        updated_ids = [p.id for p in updated.plugins]
        if current_ids != updated_ids:
            raise ContractViolationError(
                f"Plugin list of execution {current.id} cannot change after creation"
            )

        for old, new in zip(current.plugins, updated.plugins):
            if not can_plugin_transition(old.status, new.status):
                raise ContractViolationError(
                    f"Invalid plugin status transition for {old.id} ({old.plugin_type.value}): "
                    f"{old.status.value} → {new.status.value}"
                )

    @staticmethod
    def _keep_cancel_request(current: WorkflowExecution, updated: WorkflowExecution) -> None:
        """A stored cancel request survives writes from a stale copy."""
        if current.cancelling and not updated.cancelling:
            updated.cancelling = True
            updated.cancelled_by = updated.cancelled_by or current.cancelled_by


__all__ = ["BaseRepository"]
