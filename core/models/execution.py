"""
Workflow Execution Model.

One run of a Workflow. Owns its Plugin instances; the plugins are
persisted inside the execution document.

Exports:
    WorkflowExecution: Execution record with ordered plugin instances
    TERMINAL_WORKFLOW_STATUSES: Statuses an execution never leaves
"""

from datetime import datetime
from typing import FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from core.models.enums import PluginType, WorkflowStatus
from core.models.plugin import Plugin
from core.utils import generate_id, utc_now


TERMINAL_WORKFLOW_STATUSES: FrozenSet[WorkflowStatus] = frozenset({
    WorkflowStatus.FINISHED,
    WorkflowStatus.FAILED,
    WorkflowStatus.CANCELLED,
})


class WorkflowExecution(BaseModel):
    """
    Database representation of a workflow execution.

    At most one non-terminal execution exists per dataset; cancelling is
    a request flag observed by the supervising worker.
    """

    model_config = ConfigDict(validate_assignment=True)

    @field_serializer('created_date', 'started_date', 'updated_date', 'finished_date')
    @classmethod
    def serialize_datetime(cls, v: Optional[datetime]) -> Optional[str]:
        return v.isoformat() if v else None

    id: str = Field(default_factory=generate_id)
    dataset_id: str = Field(..., min_length=1)
    ecloud_dataset_id: Optional[str] = None
    workflow_priority: int = Field(default=0, ge=0)
    status: WorkflowStatus = Field(default=WorkflowStatus.INQUEUE)
    cancelling: bool = False
    started_by: Optional[str] = None
    cancelled_by: Optional[str] = None

    created_date: datetime = Field(default_factory=utc_now)
    started_date: Optional[datetime] = None
    updated_date: Optional[datetime] = None
    finished_date: Optional[datetime] = None

    plugins: List[Plugin] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_WORKFLOW_STATUSES

    def get_plugin(self, plugin_id: str) -> Optional[Plugin]:
        for plugin in self.plugins:
            if plugin.id == plugin_id:
                return plugin
        return None

    def get_plugin_by_type(self, plugin_type: PluginType) -> Optional[Plugin]:
        for plugin in self.plugins:
            if plugin.plugin_type == plugin_type:
                return plugin
        return None


__all__ = ["WorkflowExecution", "TERMINAL_WORKFLOW_STATUSES"]
