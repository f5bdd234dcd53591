"""
Plugin Models.

A plugin appears twice: as configuration inside a Workflow
(PluginMetadata) and as a runtime instance inside a WorkflowExecution
(Plugin). Kind-specific options are declared per kind; setting an option
that does not belong to the plugin's kind is rejected.

Exports:
    PluginMetadata: Per-kind plugin configuration
    ExecutionProgress: Progress counters reported by the external task service
    PredecessorRef: Reference to a plugin in another (or the same) execution
    Plugin: Plugin instance within a workflow execution
    NON_EXECUTABLE_PLUGIN_TYPES: Plugin kinds that cannot be dispatched
"""

from datetime import datetime
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

from core.models.enums import DataStatus, PluginStatus, PluginType
from core.utils import generate_id


NON_EXECUTABLE_PLUGIN_TYPES: FrozenSet[PluginType] = frozenset({
    PluginType.REINDEX_TO_PREVIEW,
    PluginType.REINDEX_TO_PUBLISH,
})

_HARVEST = frozenset({PluginType.HTTP_HARVEST, PluginType.OAIPMH_HARVEST})
_INDEXING = frozenset({PluginType.PREVIEW, PluginType.PUBLISH})

# option name -> plugin kinds that recognise it
_KIND_OPTIONS: Dict[str, FrozenSet[PluginType]] = {
    "incremental_harvest": _HARVEST,
    "url": _HARVEST,
    "metadata_format": frozenset({PluginType.OAIPMH_HARVEST}),
    "set_spec": frozenset({PluginType.OAIPMH_HARVEST}),
    "xslt_url": frozenset({PluginType.TRANSFORMATION}),
    "schema_name": frozenset({PluginType.VALIDATION_EXTERNAL, PluginType.VALIDATION_INTERNAL}),
    "use_alternative_indexing_environment": _INDEXING | {PluginType.DEPUBLISH},
    "preserve_timestamps": _INDEXING,
    "perform_sampling": frozenset({PluginType.LINK_CHECKING}),
    "sample_size": frozenset({PluginType.LINK_CHECKING}),
    "dataset_depublish": frozenset({PluginType.DEPUBLISH}),
}


class PluginMetadata(BaseModel):
    """
    Configuration of one workflow stage.

    Options left at their defaults are ignored by the per-kind check, so
    a harvest config simply never sets xslt_url.
    """

    model_config = ConfigDict(extra="forbid")

    plugin_type: PluginType = Field(..., description="Plugin kind")
    enabled: bool = Field(default=True, description="Disabled plugins are skipped at admission")

    # Harvest
    incremental_harvest: bool = Field(default=False, description="Harvest only changes since last harvest")
    url: Optional[str] = Field(default=None, description="Harvest endpoint or file URL")
    metadata_format: Optional[str] = Field(default=None, description="OAI-PMH metadataPrefix")
    set_spec: Optional[str] = Field(default=None, description="OAI-PMH set")

    # Transformation / validation
    xslt_url: Optional[str] = Field(default=None, description="Custom XSLT location")
    schema_name: Optional[str] = Field(default=None, description="Validation schema name")

    # Indexing / depublish
    use_alternative_indexing_environment: bool = Field(default=False)
    preserve_timestamps: bool = Field(default=False)
    dataset_depublish: bool = Field(
        default=True,
        description="True: depublish the whole dataset; False: depublish registry record ids"
    )

    # Link checking
    perform_sampling: bool = Field(default=False)
    sample_size: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _check_kind_options(self):
        defaults = {name: field.default for name, field in type(self).model_fields.items()}
        for option, kinds in _KIND_OPTIONS.items():
            value = getattr(self, option)
            if value != defaults[option] and self.plugin_type not in kinds:
                raise ValueError(
                    f"Option '{option}' is not recognised for plugin type {self.plugin_type.value}"
                )
        return self

    @property
    def executable(self) -> bool:
        return self.plugin_type not in NON_EXECUTABLE_PLUGIN_TYPES


class ExecutionProgress(BaseModel):
    """
    Progress counters of a plugin's external task.

    total_database_records stays -1 until the external service reports it.
    """

    processed_records: int = Field(default=0, ge=0)
    errors: int = Field(default=0, ge=0)
    deleted_records: int = Field(default=0, ge=0)
    total_database_records: int = Field(default=-1, ge=-1)

    @property
    def net_records(self) -> int:
        """Records processed without error."""
        return self.processed_records - self.errors


class PredecessorRef(BaseModel):
    """Pointer to a plugin by (execution id, plugin id)."""

    model_config = ConfigDict(frozen=True)

    execution_id: str
    plugin_id: str


class Plugin(BaseModel):
    """
    Plugin instance within a workflow execution.

    Status moves forward only (see core.logic.transitions); data_status
    is set to VALID when the plugin finishes with net records and may
    later become DEPRECATED or DELETED.
    """

    model_config = ConfigDict(validate_assignment=True)

    @field_serializer('started_date', 'updated_date', 'finished_date')
    @classmethod
    def serialize_datetime(cls, v: Optional[datetime]) -> Optional[str]:
        return v.isoformat() if v else None

    id: str = Field(default_factory=generate_id, description="Plugin instance id")
    plugin_type: PluginType
    plugin_metadata: PluginMetadata
    status: PluginStatus = Field(default=PluginStatus.INQUEUE)
    data_status: Optional[DataStatus] = Field(default=None)

    started_date: Optional[datetime] = None
    updated_date: Optional[datetime] = None
    finished_date: Optional[datetime] = None

    external_task_id: Optional[str] = Field(default=None, description="Task id at the external task service")
    progress: ExecutionProgress = Field(default_factory=ExecutionProgress)
    predecessor: Optional[PredecessorRef] = Field(
        default=None,
        description="Plugin whose output is this plugin's input"
    )
    failure_reason: Optional[str] = None

    @property
    def executable(self) -> bool:
        return self.plugin_type not in NON_EXECUTABLE_PLUGIN_TYPES


__all__ = [
    "NON_EXECUTABLE_PLUGIN_TYPES",
    "PluginMetadata",
    "ExecutionProgress",
    "PredecessorRef",
    "Plugin",
]
