"""
Core Business Logic Package.

Contains business logic that operates on pure data models.
Separated from models to maintain clean architecture.

Exports:
    State transitions: can_plugin_transition, can_workflow_transition, is_*_terminal
    Topology: plugin groups, get_predecessor_types, is_data_valid, can_display_raw_xml
    Factory: WorkflowExecutionFactory
"""

from .transitions import (
    can_plugin_transition,
    can_workflow_transition,
    get_plugin_terminal_states,
    get_plugin_active_states,
    get_workflow_terminal_states,
    get_workflow_active_states,
    is_plugin_terminal,
    is_workflow_terminal
)

from .topology import (
    HARVEST_PLUGIN_GROUP,
    PREVIEW_PLUGIN_GROUP,
    PUBLISH_PLUGIN_GROUP,
    EXECUTABLE_PREVIEW_PLUGIN_GROUP,
    EXECUTABLE_PUBLISH_PLUGIN_GROUP,
    EXECUTABLE_DEPUBLISH_PLUGIN_GROUP,
    NO_XML_PREVIEW_PLUGIN_GROUP,
    EXECUTABLE_PLUGIN_TYPES,
    ROOT_PLUGIN_GROUP,
    ALL_EXCEPT_LINK_GROUP,
    get_predecessor_types,
    is_harvest,
    is_root_type,
    is_data_valid,
    can_display_raw_xml
)

from .execution_factory import WorkflowExecutionFactory

__all__ = [
    # State transitions
    'can_plugin_transition',
    'can_workflow_transition',
    'get_plugin_terminal_states',
    'get_plugin_active_states',
    'get_workflow_terminal_states',
    'get_workflow_active_states',
    'is_plugin_terminal',
    'is_workflow_terminal',

    # Topology
    'HARVEST_PLUGIN_GROUP',
    'PREVIEW_PLUGIN_GROUP',
    'PUBLISH_PLUGIN_GROUP',
    'EXECUTABLE_PREVIEW_PLUGIN_GROUP',
    'EXECUTABLE_PUBLISH_PLUGIN_GROUP',
    'EXECUTABLE_DEPUBLISH_PLUGIN_GROUP',
    'NO_XML_PREVIEW_PLUGIN_GROUP',
    'EXECUTABLE_PLUGIN_TYPES',
    'ROOT_PLUGIN_GROUP',
    'ALL_EXCEPT_LINK_GROUP',
    'get_predecessor_types',
    'is_harvest',
    'is_root_type',
    'is_data_valid',
    'can_display_raw_xml',

    # Factory
    'WorkflowExecutionFactory',
]
