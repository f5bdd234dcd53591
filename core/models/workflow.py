"""
Workflow and Dataset Models.

Exports:
    Workflow: Ordered plugin configuration of a dataset
    Dataset: Registered dataset identity
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_serializer

from core.models.plugin import PluginMetadata
from core.utils import generate_id, utc_now


class Workflow(BaseModel):
    """
    Declarative multi-stage workflow of one dataset.

    Structural validity (non-empty, ordering) is checked by the
    WorkflowValidator, not by the model, so that malformed workflows
    surface as BAD_CONTENT.
    """

    id: str = Field(default_factory=generate_id)
    dataset_id: str = Field(..., min_length=1)
    plugins: List[PluginMetadata] = Field(default_factory=list)

    def enabled_plugins(self) -> List[PluginMetadata]:
        return [p for p in self.plugins if p.enabled]


class Dataset(BaseModel):
    """
    Dataset known to the platform.

    ecloud_dataset_id is filled once the dataset has been registered in
    the downstream content store.
    """

    @field_serializer('created_date')
    @classmethod
    def serialize_datetime(cls, v: Optional[datetime]) -> Optional[str]:
        return v.isoformat() if v else None

    dataset_id: str = Field(..., min_length=1)
    dataset_name: Optional[str] = None
    provider: Optional[str] = None
    ecloud_dataset_id: Optional[str] = None
    created_date: datetime = Field(default_factory=utc_now)


__all__ = ["Workflow", "Dataset"]
