"""
Core Data Models Package.

Contains pure data structures without business logic.
All business logic is in the core.logic package.

Exports:
    Enums: PluginType, PluginStatus, DataStatus, WorkflowStatus,
        ScheduleFrequence, DepublicationStatus, PublicationStatus,
        SortDirection, DepublishRecordIdSortField, ExecutionOrderField
    Plugins: PluginMetadata, Plugin, ExecutionProgress, PredecessorRef
    Records: Workflow, Dataset, WorkflowExecution, ScheduledWorkflow, DepublishRecordId
    External task service: DpsTask, TaskProgress, ExternalTaskState
    Views: Page, WorkflowExecutionView, DatasetExecutionInformation, ...
    Results: LoopRunResult
"""

from .enums import (
    PluginType,
    PluginStatus,
    DataStatus,
    WorkflowStatus,
    ScheduleFrequence,
    DepublicationStatus,
    PublicationStatus,
    SortDirection,
    DepublishRecordIdSortField,
    ExecutionOrderField,
)

from .plugin import (
    NON_EXECUTABLE_PLUGIN_TYPES,
    PluginMetadata,
    ExecutionProgress,
    PredecessorRef,
    Plugin,
)

from .workflow import Workflow, Dataset

from .execution import WorkflowExecution, TERMINAL_WORKFLOW_STATUSES

from .schedule import ScheduledWorkflow, DepublishRecordId

from .external_task import ExternalTaskState, DpsTask, TaskProgress

from .views import (
    Page,
    PluginView,
    WorkflowExecutionView,
    ExecutionHistoryEntry,
    ExecutionHistory,
    PluginAvailability,
    PluginsWithDataAvailability,
    VersionEvolutionStep,
    VersionEvolution,
    DatasetExecutionInformation,
)

from .results import LoopRunResult


__all__ = [
    'PluginType',
    'PluginStatus',
    'DataStatus',
    'WorkflowStatus',
    'ScheduleFrequence',
    'DepublicationStatus',
    'PublicationStatus',
    'SortDirection',
    'DepublishRecordIdSortField',
    'ExecutionOrderField',
    'NON_EXECUTABLE_PLUGIN_TYPES',
    'PluginMetadata',
    'ExecutionProgress',
    'PredecessorRef',
    'Plugin',
    'Workflow',
    'Dataset',
    'WorkflowExecution',
    'TERMINAL_WORKFLOW_STATUSES',
    'ScheduledWorkflow',
    'DepublishRecordId',
    'ExternalTaskState',
    'DpsTask',
    'TaskProgress',
    'Page',
    'PluginView',
    'WorkflowExecutionView',
    'ExecutionHistoryEntry',
    'ExecutionHistory',
    'PluginAvailability',
    'PluginsWithDataAvailability',
    'VersionEvolutionStep',
    'VersionEvolution',
    'DatasetExecutionInformation',
    'LoopRunResult',
]
