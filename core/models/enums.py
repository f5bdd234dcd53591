"""
Pure Enumeration Types for the Orchestration Core.

Defines plugin kinds and the valid states of plugins, executions,
scheduled workflows and depublished records. Values equal the member
names because they are persisted as their string names.
No business logic - pure type definitions only.

Exports:
    PluginType: Closed enumeration of plugin kinds
    PluginStatus: Plugin (execution instance) state
    DataStatus: Validity of a finished plugin's output
    WorkflowStatus: Workflow execution state
    ScheduleFrequence: Scheduled workflow frequency
    DepublicationStatus: Depublish registry record state
    PublicationStatus: Derived dataset publication state
    SortDirection: Sort direction for paged listings
    DepublishRecordIdSortField: Sort fields of the depublish registry
    ExecutionOrderField: Sort fields of execution listings
"""

from enum import Enum


class PluginType(Enum):
    """
    Plugin kinds.

    REINDEX_TO_PREVIEW and REINDEX_TO_PUBLISH are not executable; they
    only appear in execution history written by earlier tooling.
    """

    HTTP_HARVEST = "HTTP_HARVEST"
    OAIPMH_HARVEST = "OAIPMH_HARVEST"
    VALIDATION_EXTERNAL = "VALIDATION_EXTERNAL"
    TRANSFORMATION = "TRANSFORMATION"
    VALIDATION_INTERNAL = "VALIDATION_INTERNAL"
    NORMALIZATION = "NORMALIZATION"
    ENRICHMENT = "ENRICHMENT"
    MEDIA_PROCESS = "MEDIA_PROCESS"
    PREVIEW = "PREVIEW"
    PUBLISH = "PUBLISH"
    LINK_CHECKING = "LINK_CHECKING"
    DEPUBLISH = "DEPUBLISH"
    REINDEX_TO_PREVIEW = "REINDEX_TO_PREVIEW"
    REINDEX_TO_PUBLISH = "REINDEX_TO_PUBLISH"


class PluginStatus(Enum):
    """
    Valid status values for a plugin within one execution.

    State transitions:
    - INQUEUE -> RUNNING -> FINISHED (normal flow)
    - INQUEUE -> RUNNING -> CLEANING -> FINISHED (external post-processing)
    - INQUEUE -> RUNNING -> FAILED / CANCELLED
    - INQUEUE -> CANCELLED (cancelled before dispatch)
    - INQUEUE -> FAILED (task preparation failed)
    - RUNNING -> IDENTIFIER_MIGRATION -> FINISHED (legacy id migration)
    """

    INQUEUE = "INQUEUE"
    RUNNING = "RUNNING"
    CLEANING = "CLEANING"
    FINISHED = "FINISHED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    IDENTIFIER_MIGRATION = "IDENTIFIER_MIGRATION"


class DataStatus(Enum):
    """
    Validity of a finished plugin's output.

    VALID output may later become DEPRECATED (superseded) or DELETED.
    """

    VALID = "VALID"
    DEPRECATED = "DEPRECATED"
    DELETED = "DELETED"


class WorkflowStatus(Enum):
    """
    Valid status values for workflow executions.

    State transitions:
    - INQUEUE -> RUNNING -> FINISHED
    - INQUEUE -> RUNNING -> FAILED / CANCELLED
    - INQUEUE -> CANCELLED (cancel requested before pickup)
    """

    INQUEUE = "INQUEUE"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class ScheduleFrequence(Enum):
    """How often a scheduled workflow is admitted."""

    ONCE = "ONCE"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class DepublicationStatus(Enum):
    """
    Depublish registry record state.

    The depublication date is set iff the status is DEPUBLISHED.
    """

    PENDING_DEPUBLICATION = "PENDING_DEPUBLICATION"
    DEPUBLISHED = "DEPUBLISHED"


class PublicationStatus(Enum):
    """Derived publication state of a dataset."""

    PUBLISHED = "PUBLISHED"
    DEPUBLISHED = "DEPUBLISHED"


class SortDirection(Enum):
    ASCENDING = "ASCENDING"
    DESCENDING = "DESCENDING"


class DepublishRecordIdSortField(Enum):
    """Sort fields of depublish registry listings, mapped to column names."""

    RECORD_ID = "record_id"
    DEPUBLICATION_STATE = "depublication_status"
    DEPUBLICATION_DATE = "depublication_date"


class ExecutionOrderField(Enum):
    """Sort fields of execution listings, mapped to attribute names."""

    CREATED_DATE = "created_date"
    STARTED_DATE = "started_date"
    UPDATED_DATE = "updated_date"
    FINISHED_DATE = "finished_date"
