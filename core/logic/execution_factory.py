"""
Workflow Execution Factory.

Materialises a WorkflowExecution from a Workflow and its resolved
predecessor. Pure: no I/O, no logging, no clock reads unless `now` is
omitted.

Exports:
    WorkflowExecutionFactory: Builds INQUEUE executions
"""

from datetime import datetime
from typing import Optional

from ..models.enums import PluginStatus, WorkflowStatus
from ..models.execution import WorkflowExecution
from ..models.plugin import Plugin, PredecessorRef
from ..models.workflow import Dataset, Workflow
from ..utils import to_millis, utc_now


class WorkflowExecutionFactory:
    """
    Builds executions with priorities clamped to [0, highest_priority].

    Usage:
        factory = WorkflowExecutionFactory(highest_priority=10)
        execution = factory.create_workflow_execution(workflow, dataset, predecessor_ref, 5)
    """

    def __init__(self, highest_priority: int = 10):
        self.highest_priority = highest_priority

    def clamp_priority(self, priority: int) -> int:
        return max(0, min(int(priority), self.highest_priority))

    def create_workflow_execution(
        self,
        workflow: Workflow,
        dataset: Dataset,
        predecessor: Optional[PredecessorRef],
        priority: int,
        now: Optional[datetime] = None
    ) -> WorkflowExecution:
        """
        Build a new execution.

        Args:
            workflow: Workflow whose enabled plugins become plugin instances
            dataset: Dataset being processed (supplies the downstream id)
            predecessor: Reference to the plugin whose output feeds plugin 0
            priority: Requested priority (clamped)
            now: Creation time; defaults to the current UTC time

        Returns:
            WorkflowExecution with status INQUEUE and zeroed plugin progress
        """
        created = to_millis(now) if now else utc_now()
        execution = WorkflowExecution(
            dataset_id=dataset.dataset_id,
            ecloud_dataset_id=dataset.ecloud_dataset_id,
            workflow_priority=self.clamp_priority(priority),
            status=WorkflowStatus.INQUEUE,
            cancelling=False,
            created_date=created,
        )

        plugins = []
        previous: Optional[Plugin] = None
        for metadata in workflow.enabled_plugins():
            if previous is None:
                reference = predecessor
            else:
                reference = PredecessorRef(execution_id=execution.id, plugin_id=previous.id)
            plugin = Plugin(
                plugin_type=metadata.plugin_type,
                plugin_metadata=metadata.model_copy(deep=True),
                status=PluginStatus.INQUEUE,
                predecessor=reference,
            )
            plugins.append(plugin)
            previous = plugin

        execution.plugins = plugins
        return execution
