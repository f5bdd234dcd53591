"""
Scheduled Workflow and Depublish Registry Models.

Exports:
    ScheduledWorkflow: Recurring or one-shot admission of a dataset's workflow
    DepublishRecordId: Depublish registry entry
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_serializer, model_validator

from core.models.enums import DepublicationStatus, ScheduleFrequence
from core.utils import generate_id


class ScheduledWorkflow(BaseModel):
    """
    Schedule of one dataset's workflow.

    pointer_date anchors the schedule: ONCE fires at that instant, the
    periodic frequencies fire at the same time of day / weekday / day of
    month.
    """

    @field_serializer('pointer_date')
    @classmethod
    def serialize_datetime(cls, v: datetime) -> str:
        return v.isoformat()

    id: str = Field(default_factory=generate_id)
    dataset_id: str = Field(..., min_length=1)
    pointer_date: datetime
    schedule_frequence: ScheduleFrequence
    workflow_priority: int = Field(default=0, ge=0)


class DepublishRecordId(BaseModel):
    """
    Record id registered for depublication.

    (dataset_id, record_id) is unique; the date is set iff the record
    has been DEPUBLISHED.
    """

    @field_serializer('depublication_date')
    @classmethod
    def serialize_datetime(cls, v: Optional[datetime]) -> Optional[str]:
        return v.isoformat() if v else None

    dataset_id: str = Field(..., min_length=1)
    record_id: str = Field(..., min_length=1)
    depublication_status: DepublicationStatus = DepublicationStatus.PENDING_DEPUBLICATION
    depublication_date: Optional[datetime] = None

    @model_validator(mode="after")
    def _date_matches_status(self):
        depublished = self.depublication_status == DepublicationStatus.DEPUBLISHED
        if depublished != (self.depublication_date is not None):
            raise ValueError("depublication_date must be set iff status is DEPUBLISHED")
        return self


__all__ = ["ScheduledWorkflow", "DepublishRecordId"]
