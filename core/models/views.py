"""
Read Models for the Orchestrator Query Surface.

Exports:
    Page: Paged result wrapper
    PluginView: Plugin with raw-XML display flag
    WorkflowExecutionView: Execution view with incremental flag
    ExecutionHistoryEntry, ExecutionHistory: Executions with displayable XML
    PluginAvailability, PluginsWithDataAvailability: Per-plugin data availability
    VersionEvolutionStep, VersionEvolution: Record lineage up to a plugin
    DatasetExecutionInformation: Dataset execution summary
"""

from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from core.models.enums import PluginType, PublicationStatus, WorkflowStatus
from core.models.plugin import Plugin


T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """
    One page of a listing.

    next_page is page + 1 when the page is full, else -1.
    """

    results: List[T] = Field(default_factory=list)
    list_size: int = 0
    next_page: int = -1

    @classmethod
    def of(cls, results: List[T], page: int, page_size: int) -> "Page[T]":
        return cls(
            results=results,
            list_size=len(results),
            next_page=page + 1 if page_size > 0 and len(results) == page_size else -1,
        )


class PluginView(BaseModel):
    plugin: Plugin
    can_display_raw_xml: bool


class WorkflowExecutionView(BaseModel):
    id: str
    dataset_id: str
    workflow_status: WorkflowStatus
    ecloud_dataset_id: Optional[str] = None
    cancelled_by: Optional[str] = None
    started_by: Optional[str] = None
    workflow_priority: int
    cancelling: bool
    created_date: datetime
    started_date: Optional[datetime] = None
    updated_date: Optional[datetime] = None
    finished_date: Optional[datetime] = None
    is_incremental: bool
    plugins: List[PluginView] = Field(default_factory=list)


class ExecutionHistoryEntry(BaseModel):
    workflow_execution_id: str
    started_date: Optional[datetime] = None


class ExecutionHistory(BaseModel):
    executions: List[ExecutionHistoryEntry] = Field(default_factory=list)


class PluginAvailability(BaseModel):
    plugin_type: PluginType
    can_display_raw_xml: bool


class PluginsWithDataAvailability(BaseModel):
    plugins: List[PluginAvailability] = Field(default_factory=list)


class VersionEvolutionStep(BaseModel):
    plugin_type: PluginType
    finished_time: Optional[datetime] = None
    execution_id: str
    plugin_id: str


class VersionEvolution(BaseModel):
    evolution_steps: List[VersionEvolutionStep] = Field(default_factory=list)


class DatasetExecutionInformation(BaseModel):
    """
    Derived summary of what is harvested, previewed, published and
    depublished for a dataset. Recomputed on every request.
    """

    last_harvested_date: Optional[datetime] = None
    last_harvested_records: int = 0

    first_published_date: Optional[datetime] = None

    last_preview_date: Optional[datetime] = None
    last_preview_records: int = 0
    total_preview_records: int = -1
    last_preview_records_ready_for_viewing: bool = False

    last_published_date: Optional[datetime] = None
    last_published_records: int = 0
    total_published_records: int = -1
    last_published_records_ready_for_viewing: bool = False

    last_depublished_date: Optional[datetime] = None
    last_depublished_records: int = 0

    publication_status: Optional[PublicationStatus] = None


__all__ = [
    "Page",
    "PluginView",
    "WorkflowExecutionView",
    "ExecutionHistoryEntry",
    "ExecutionHistory",
    "PluginAvailability",
    "PluginsWithDataAvailability",
    "VersionEvolutionStep",
    "VersionEvolution",
    "DatasetExecutionInformation",
]
