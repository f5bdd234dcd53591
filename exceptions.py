"""
Custom Exception Hierarchy

Distinguishes between:
1. Contract Violations (programming bugs that need fixing)
2. Business Logic Failures (expected runtime issues)

Orchestration failures carry an ErrorCode so callers can map them to a
response without inspecting exception types.

Exports:
    ContractViolationError, BusinessLogicError, ConfigurationError,
    DatabaseError, ServiceBusError, OrchestrationError and one subclass
    per orchestration error kind, InvalidLineageError
"""

from typing import Any, Dict

from core.errors import ErrorCode, create_error_response


class ContractViolationError(TypeError):
    """
    Raised when component contracts are violated (programming bugs).

    These should NEVER be caught and handled - they indicate bugs
    that need to be fixed in the code.

    Examples:
        - Repository receives a string instead of a PluginStatus enum
        - Code requests a status regression (FINISHED -> RUNNING)
        - Predecessor references form a cycle
    """
    pass


class BusinessLogicError(Exception):
    """
    Base class for expected runtime business logic failures.

    These are normal failures that occur during system operation
    and should be handled gracefully without crashing.
    """
    pass


class ConfigurationError(Exception):
    """
    Configuration is missing or invalid.

    Examples:
        - STORAGE_BACKEND=postgresql without POSTGRES_HOST
        - Service Bus queue selected without connection string or namespace
    """
    pass


class DatabaseError(BusinessLogicError):
    """
    Database operation failures.

    Examples:
        - Connection lost and retries exhausted
        - Constraint violation
        - Query timeout
    """
    pass


class ServiceBusError(BusinessLogicError):
    """
    Service Bus communication failures.

    Examples:
        - Service Bus unavailable
        - Queue not found
        - Authentication failure
    """
    pass


# ============================================================================
# ORCHESTRATION ERRORS - one class per named error kind
# ============================================================================

class OrchestrationError(BusinessLogicError):
    """
    Base for errors surfaced by the orchestrator to its callers.

    Subclasses fix the error_code; the message is free text.
    """

    error_code: ErrorCode = ErrorCode.UNEXPECTED_ERROR

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_response(self) -> Dict[str, Any]:
        """Build the standard error response dict for this error."""
        return create_error_response(self.error_code, self.message, **self.details)


class NoDatasetFoundError(OrchestrationError):
    """Dataset id is not registered."""
    error_code = ErrorCode.NO_DATASET_FOUND


class NoWorkflowFoundError(OrchestrationError):
    """No workflow stored for the dataset and none supplied."""
    error_code = ErrorCode.NO_WORKFLOW_FOUND


class WorkflowAlreadyExistsError(OrchestrationError):
    """A workflow is already stored for the dataset."""
    error_code = ErrorCode.WORKFLOW_ALREADY_EXISTS


class NoWorkflowExecutionFoundError(OrchestrationError):
    """
    Execution is missing or not in a state that allows the operation.

    Examples:
        - Cancel of a FINISHED execution
        - Record evolution for a plugin type the execution does not contain
    """
    error_code = ErrorCode.NO_WORKFLOW_EXECUTION_FOUND


class WorkflowExecutionAlreadyExistsError(OrchestrationError):
    """A non-terminal execution already exists for the dataset."""
    error_code = ErrorCode.WORKFLOW_EXECUTION_ALREADY_EXISTS


class PluginExecutionNotAllowedError(OrchestrationError):
    """
    No valid predecessor for the first plugin of a workflow.

    Examples:
        - TRANSFORMATION requested on a dataset that was never harvested
        - Enforced predecessor whose latest run produced only errors
    """
    error_code = ErrorCode.PLUGIN_EXECUTION_NOT_ALLOWED


class BadContentError(OrchestrationError):
    """
    Malformed input.

    Examples:
        - Workflow without enabled plugins
        - Plugins out of topological order
        - Depublish registry would exceed its per-dataset maximum
    """
    error_code = ErrorCode.BAD_CONTENT


class ExternalTaskError(OrchestrationError):
    """
    Unrecoverable failure talking to an external service after retries.

    The originating exception is chained as __cause__ for logging.
    """
    error_code = ErrorCode.EXTERNAL_TASK_ERROR


class InvalidLineageError(BusinessLogicError):
    """
    Plugin ancestry is inconsistent with the topology.

    Examples:
        - Root ancestor of an indexing plugin is not a harvest
        - Predecessor reference points at a missing execution
    """
    pass


class TaskPreparationError(BusinessLogicError):
    """
    A plugin's external task cannot be built; the plugin fails with this message.

    Examples:
        - Record depublish without pending record ids in the registry
        - Non-executable plugin type in an execution
    """
    pass
