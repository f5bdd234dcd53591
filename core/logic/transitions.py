"""
State Transition Logic for Plugins and Workflow Executions.

Contains business rules for valid state transitions. Statuses only move
forward within one execution; terminal statuses are never left.

Exports:
    can_plugin_transition: Check if plugin state transition is valid
    can_workflow_transition: Check if execution state transition is valid
    get_plugin_terminal_states: Get terminal states for plugins
    get_plugin_active_states: Get active states for plugins
    get_workflow_terminal_states: Get terminal states for executions
    get_workflow_active_states: Get active states for executions
    is_plugin_terminal: Check if plugin is in terminal state
    is_workflow_terminal: Check if execution is in terminal state

Dependencies:
    core.models.enums: PluginStatus, WorkflowStatus
"""

from typing import List

from ..models.enums import PluginStatus, WorkflowStatus


def can_plugin_transition(current: PluginStatus, target: PluginStatus) -> bool:
    """
    Check if a plugin can transition from current to target status.

    Args:
        current: Current plugin status
        target: Target plugin status

    Returns:
        True if transition is valid, False otherwise
    """
    # Same status is always allowed (progress updates)
    if current == target:
        return True

    transitions = {
        PluginStatus.INQUEUE: [
            PluginStatus.RUNNING,
            PluginStatus.FAILED,
            PluginStatus.CANCELLED
        ],
        PluginStatus.RUNNING: [
            PluginStatus.CLEANING,
            PluginStatus.IDENTIFIER_MIGRATION,
            PluginStatus.FINISHED,
            PluginStatus.FAILED,
            PluginStatus.CANCELLED
        ],
        PluginStatus.IDENTIFIER_MIGRATION: [
            PluginStatus.CLEANING,
            PluginStatus.FINISHED,
            PluginStatus.FAILED,
            PluginStatus.CANCELLED
        ],
        PluginStatus.CLEANING: [
            PluginStatus.FINISHED,
            PluginStatus.FAILED,
            PluginStatus.CANCELLED
        ],
        PluginStatus.FINISHED: [],  # Terminal state
        PluginStatus.FAILED: [],  # Terminal state
        PluginStatus.CANCELLED: []  # Terminal state
    }

    return target in transitions.get(current, [])


def can_workflow_transition(current: WorkflowStatus, target: WorkflowStatus) -> bool:
    """
    Check if an execution can transition from current to target status.

    Args:
        current: Current execution status
        target: Target execution status

    Returns:
        True if transition is valid, False otherwise
    """
    if current == target:
        return True

    transitions = {
        # INQUEUE -> CANCELLED: cancel observed on pickup
        WorkflowStatus.INQUEUE: [
            WorkflowStatus.RUNNING,
            WorkflowStatus.FAILED,
            WorkflowStatus.CANCELLED
        ],
        WorkflowStatus.RUNNING: [
            WorkflowStatus.FINISHED,
            WorkflowStatus.FAILED,
            WorkflowStatus.CANCELLED
        ],
        WorkflowStatus.FINISHED: [],  # Terminal state
        WorkflowStatus.FAILED: [],  # Terminal state
        WorkflowStatus.CANCELLED: []  # Terminal state
    }

    return target in transitions.get(current, [])


def get_plugin_terminal_states() -> List[PluginStatus]:
    """
    Get list of terminal states for plugins.

    Returns:
        List of terminal plugin statuses
    """
    return [
        PluginStatus.FINISHED,
        PluginStatus.FAILED,
        PluginStatus.CANCELLED
    ]


def get_plugin_active_states() -> List[PluginStatus]:
    """
    Get list of active (non-terminal) states for plugins.

    Returns:
        List of active plugin statuses
    """
    return [
        PluginStatus.INQUEUE,
        PluginStatus.RUNNING,
        PluginStatus.CLEANING,
        PluginStatus.IDENTIFIER_MIGRATION
    ]


def get_workflow_terminal_states() -> List[WorkflowStatus]:
    """
    Get list of terminal states for workflow executions.

    Returns:
        List of terminal execution statuses
    """
    return [
        WorkflowStatus.FINISHED,
        WorkflowStatus.FAILED,
        WorkflowStatus.CANCELLED
    ]


def get_workflow_active_states() -> List[WorkflowStatus]:
    """
    Get list of active (non-terminal) states for workflow executions.

    Returns:
        List of active execution statuses
    """
    return [
        WorkflowStatus.INQUEUE,
        WorkflowStatus.RUNNING
    ]


def is_plugin_terminal(status: PluginStatus) -> bool:
    """Check if plugin status is terminal."""
    return status in get_plugin_terminal_states()


def is_workflow_terminal(status: WorkflowStatus) -> bool:
    """Check if execution status is terminal."""
    return status in get_workflow_terminal_states()
