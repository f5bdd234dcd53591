"""
Data Evolution Service.

Walks plugin ancestry across executions. Plugins reference their
predecessor by (execution id, plugin id); following those references
leads back to a root ancestor, which is a harvest or a depublish.

Exports:
    DataEvolutionService: Root ancestor, version evolution, incrementality
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Set, Tuple

from core.logic import HARVEST_PLUGIN_GROUP, is_root_type
from core.models import Plugin, PluginType, WorkflowExecution
from exceptions import ContractViolationError, InvalidLineageError
from infrastructure.interface_repository import IExecutionStore, PluginWithExecution
from util_logger import LoggerFactory, ComponentType

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class DataEvolutionService:
    """
    Lineage queries over the ExecutionStore.

    Executions are loaded on demand and cached per walk; a reference into
    the execution being inspected resolves against the given object, so
    executions not yet persisted can be inspected too.
    """

    def __init__(self, store: IExecutionStore):
        self.store = store
        self.logger = LoggerFactory.create_logger(ComponentType.SERVICE, "DataEvolutionService")

    def get_predecessor(
        self,
        plugin: Plugin,
        execution: WorkflowExecution,
        cache: Optional[Dict[str, Optional[WorkflowExecution]]] = None
    ) -> Optional[PluginWithExecution]:
        """
        Resolve the plugin's predecessor reference.

        Returns:
            (plugin, execution), or None when the plugin has no
            predecessor or the referenced plugin no longer exists
        """
        reference = plugin.predecessor
        if reference is None:
            return None

        if reference.execution_id == execution.id:
            predecessor_execution = execution
        else:
            if cache is None:
                cache = {}
            if reference.execution_id not in cache:
                cache[reference.execution_id] = self.store.get_execution(reference.execution_id)
            predecessor_execution = cache[reference.execution_id]

        if predecessor_execution is None:
            self.logger.warning(
                f"⚠️ Predecessor execution {reference.execution_id} of plugin {plugin.id} not found"
            )
            return None
        predecessor = predecessor_execution.get_plugin(reference.plugin_id)
        if predecessor is None:
            self.logger.warning(
                f"⚠️ Predecessor plugin {reference.plugin_id} not found in execution {reference.execution_id}"
            )
            return None
        return predecessor, predecessor_execution

    def _walk(self, plugin: Plugin, execution: WorkflowExecution) -> List[PluginWithExecution]:
        """
        Ancestors of a plugin, nearest first, ending at the root ancestor.

        Raises:
            ContractViolationError: The predecessor references form a cycle
        """
        cache: Dict[str, Optional[WorkflowExecution]] = {}
        visited: Set[Tuple[str, str]] = {(execution.id, plugin.id)}
        ancestors: List[PluginWithExecution] = []

        current: PluginWithExecution = (plugin, execution)
        while not is_root_type(current[0].plugin_type):
            predecessor = self.get_predecessor(current[0], current[1], cache)
            if predecessor is None:
                break
            key = (predecessor[1].id, predecessor[0].id)
            if key in visited:
                raise ContractViolationError(
                    f"Cycle in plugin lineage at execution {key[0]}, plugin {key[1]}"
                )
            visited.add(key)
            ancestors.append(predecessor)
            current = predecessor
        return ancestors

    def get_root_ancestor(self, plugin: Plugin, execution: WorkflowExecution) -> PluginWithExecution:
        """
        Earliest plugin reachable by following predecessor references.

        A plugin without predecessor (or a harvest or depublish) is its
        own root ancestor.
        """
        ancestors = self._walk(plugin, execution)
        return ancestors[-1] if ancestors else (plugin, execution)

    def compile_version_evolution(
        self,
        target_plugin: Plugin,
        execution: WorkflowExecution
    ) -> List[PluginWithExecution]:
        """
        Executable ancestors of a plugin in chronological order.

        The target itself is excluded; the walk stops at the first
        non-executable ancestor.
        """
        steps: List[PluginWithExecution] = []
        for ancestor in self._walk(target_plugin, execution):
            if not ancestor[0].executable:
                break
            steps.append(ancestor)
        steps.sort(key=lambda pair: pair[0].finished_date or _EPOCH)
        return steps

    def is_incremental(self, execution: WorkflowExecution) -> bool:
        """
        Whether an execution works on an incremental harvest.

        Raises:
            InvalidLineageError: The root ancestor is neither a harvest nor a depublish
        """
        if not execution.plugins or not execution.plugins[0].executable:
            return False

        root, root_execution = self.get_root_ancestor(execution.plugins[0], execution)
        if root.plugin_type == PluginType.DEPUBLISH:
            return False
        if root.plugin_type not in HARVEST_PLUGIN_GROUP:
            raise InvalidLineageError(
                f"workflowExecutionId: {execution.id}, pluginId: {root.id} - "
                f"found plugin root that is not a harvesting plugin ({root.plugin_type.value}) "
                f"in execution {root_execution.id}"
            )
        return root.plugin_metadata.incremental_harvest


__all__ = ["DataEvolutionService"]
