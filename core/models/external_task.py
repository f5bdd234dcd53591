"""
External Task Service Models.

Contract with the external task service that runs plugin bodies.

Exports:
    ExternalTaskState: Task states reported by the service
    DpsTask: Task submission payload
    TaskProgress: Progress report of a submitted task
"""

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.models.plugin import ExecutionProgress


class ExternalTaskState(str, Enum):
    """States reported by the external task service."""

    PENDING = "PENDING"
    SENT = "SENT"
    QUEUED = "QUEUED"
    CURRENTLY_PROCESSING = "CURRENTLY_PROCESSING"
    REMOVING_FROM_SOLR_AND_MONGO = "REMOVING_FROM_SOLR_AND_MONGO"
    PROCESSED = "PROCESSED"
    DROPPED = "DROPPED"

    @property
    def is_terminal(self) -> bool:
        return self in (ExternalTaskState.PROCESSED, ExternalTaskState.DROPPED)


class DpsTask(BaseModel):
    """
    Task submitted for one plugin.

    parameters maps parameter names (METIS_DATASET_ID, ...) to strings.
    """

    model_config = ConfigDict(populate_by_name=True)

    topology: str
    dataset_id: str = Field(..., serialization_alias="datasetId")
    parameters: Dict[str, str] = Field(default_factory=dict)
    input_revision: Optional[Dict[str, str]] = Field(default=None, serialization_alias="inputRevision")
    output_revision: Optional[Dict[str, str]] = Field(default=None, serialization_alias="outputRevision")


class TaskProgress(BaseModel):
    """
    Progress report of a task, as returned by the external task service.
    """

    model_config = ConfigDict(populate_by_name=True)

    state: ExternalTaskState = Field(..., alias="status")
    processed_records: int = Field(default=0, ge=0, alias="processedRecordsCount")
    errors: int = Field(default=0, ge=0)
    deleted_records: int = Field(default=0, ge=0, alias="deletedRecordsCount")
    total_database_records: int = Field(default=-1, ge=-1, alias="totalDatabaseRecords")
    info: Optional[str] = None

    def to_execution_progress(self) -> ExecutionProgress:
        return ExecutionProgress(
            processed_records=self.processed_records,
            errors=self.errors,
            deleted_records=self.deleted_records,
            total_database_records=self.total_database_records,
        )


__all__ = ["ExternalTaskState", "DpsTask", "TaskProgress"]
