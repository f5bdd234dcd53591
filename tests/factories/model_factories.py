"""
Randomized model factories — anti-overfitting design.

Every factory call generates randomized non-identity fields (dataset
suffixes, record counts) so tests cannot rely on specific default
values. History builders produce FINISHED executions whose plugins are
chained through predecessor references, the way a worker leaves them.
"""

import random
import string
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from core.models import (
    DataStatus,
    Dataset,
    ExecutionProgress,
    Plugin,
    PluginMetadata,
    PluginStatus,
    PluginType,
    PredecessorRef,
    ScheduleFrequence,
    ScheduledWorkflow,
    Workflow,
    WorkflowExecution,
    WorkflowStatus,
)
from core.utils import to_millis


ORDERED_PIPELINE = [
    PluginType.OAIPMH_HARVEST,
    PluginType.VALIDATION_EXTERNAL,
    PluginType.TRANSFORMATION,
    PluginType.VALIDATION_INTERNAL,
    PluginType.NORMALIZATION,
    PluginType.ENRICHMENT,
    PluginType.MEDIA_PROCESS,
    PluginType.PREVIEW,
    PluginType.PUBLISH,
]


def _random_suffix(length: int = 6) -> str:
    """Generate random alphanumeric suffix."""
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


def base_time() -> datetime:
    """A fixed-precision instant a few days in the past."""
    return to_millis(datetime.now(timezone.utc) - timedelta(days=random.randint(2, 20)))


def make_dataset_id() -> str:
    return f"ds-{_random_suffix()}"


def make_dataset(dataset_id: str = None, **overrides) -> Dataset:
    base = {
        "dataset_id": dataset_id or make_dataset_id(),
        "dataset_name": f"Dataset {_random_suffix()}",
        "provider": f"provider-{_random_suffix(4)}",
    }
    base.update(overrides)
    return Dataset(**base)


def make_plugin_metadata(plugin_type: PluginType, **overrides) -> PluginMetadata:
    """
    Metadata with the options a real workflow would carry for the kind.
    """
    base = {"plugin_type": plugin_type}
    if plugin_type == PluginType.OAIPMH_HARVEST:
        base.update(url=f"https://oai.example.org/{_random_suffix()}", metadata_format="edm")
    elif plugin_type == PluginType.HTTP_HARVEST:
        base.update(url=f"https://files.example.org/{_random_suffix()}.zip")
    base.update(overrides)
    return PluginMetadata(**base)


def make_workflow(dataset_id: str, plugin_types: Iterable[PluginType], **overrides) -> Workflow:
    return Workflow(
        dataset_id=dataset_id,
        plugins=[make_plugin_metadata(t) for t in plugin_types],
        **overrides
    )


def make_progress(processed: int = None, errors: int = 0, **overrides) -> ExecutionProgress:
    return ExecutionProgress(
        processed_records=random.randint(5, 500) if processed is None else processed,
        errors=errors,
        **overrides
    )


def make_finished_execution(
    dataset_id: str,
    plugin_types: Iterable[PluginType],
    start: datetime,
    predecessor: Optional[Plugin] = None,
    predecessor_execution: Optional[WorkflowExecution] = None,
    processed: int = None,
    errors: int = 0,
    metadata: Optional[List[PluginMetadata]] = None,
    status: WorkflowStatus = WorkflowStatus.FINISHED,
    data_status: Optional[DataStatus] = None,
) -> WorkflowExecution:
    """
    A terminal execution whose plugins ran one minute apart.

    Plugins are FINISHED with VALID data when processed > errors
    (data_status overrides that). The first plugin references
    `predecessor` in `predecessor_execution`.
    """
    plugin_types = list(plugin_types)
    metadata = metadata or [make_plugin_metadata(t) for t in plugin_types]
    processed = random.randint(5, 500) if processed is None else processed

    execution = WorkflowExecution(
        dataset_id=dataset_id,
        status=status,
        created_date=to_millis(start),
        started_date=to_millis(start),
        updated_date=to_millis(start + timedelta(minutes=len(plugin_types) + 1)),
        finished_date=to_millis(start + timedelta(minutes=len(plugin_types) + 1)),
        started_by="tester",
    )

    plugins = []
    previous = None
    for index, (plugin_type, plugin_metadata) in enumerate(zip(plugin_types, metadata)):
        if previous is not None:
            reference = PredecessorRef(execution_id=execution.id, plugin_id=previous.id)
        elif predecessor is not None:
            reference = PredecessorRef(execution_id=predecessor_execution.id, plugin_id=predecessor.id)
        else:
            reference = None
        valid = processed > errors
        plugin = Plugin(
            plugin_type=plugin_type,
            plugin_metadata=plugin_metadata,
            status=PluginStatus.FINISHED,
            data_status=data_status or (DataStatus.VALID if valid else None),
            started_date=to_millis(start + timedelta(minutes=index)),
            finished_date=to_millis(start + timedelta(minutes=index, seconds=50)),
            external_task_id=f"task-{_random_suffix()}",
            progress=make_progress(processed, errors),
            predecessor=reference,
        )
        plugins.append(plugin)
        previous = plugin

    execution.plugins = plugins
    return execution


def make_scheduled_workflow(
    dataset_id: str,
    frequence: ScheduleFrequence,
    pointer_date: datetime,
    priority: int = None
) -> ScheduledWorkflow:
    return ScheduledWorkflow(
        dataset_id=dataset_id,
        pointer_date=pointer_date,
        schedule_frequence=frequence,
        workflow_priority=random.randint(0, 10) if priority is None else priority,
    )
