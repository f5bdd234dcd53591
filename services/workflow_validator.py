"""
Workflow Validator.

Validates the shape of a workflow, applies the per-kind semantic checks
and resolves the predecessor plugin whose output feeds the workflow's
first enabled plugin.

Exports:
    WorkflowValidator: Validation and predecessor resolution
"""

from typing import List, Optional
from urllib.parse import urlparse

from core.logic import HARVEST_PLUGIN_GROUP, get_predecessor_types, is_root_type
from core.models import (
    NON_EXECUTABLE_PLUGIN_TYPES,
    DataStatus,
    DepublicationStatus,
    PluginMetadata,
    PluginType,
    Workflow,
)
from exceptions import BadContentError, PluginExecutionNotAllowedError
from infrastructure.interface_repository import (
    IDepublishRegistry,
    IExecutionStore,
    PluginWithExecution,
)
from services.data_evolution import DataEvolutionService
from services.dataset_execution_info import is_dataset_depublished
from util_logger import LoggerFactory, ComponentType

_HARVEST_URL_SCHEMES = ("http", "https", "ftp")
_NOT_ALLOWED = "Plugin execution not allowed"


class WorkflowValidator:
    """
    Validates workflows before admission or storage.

    Usage:
        validator = WorkflowValidator(store, registry, evolution)
        predecessor = validator.validate_workflow_plugins(workflow, None)
    """

    def __init__(
        self,
        store: IExecutionStore,
        depublish_registry: IDepublishRegistry,
        data_evolution: DataEvolutionService,
        link_checking_after_depublish: bool = True
    ):
        self.store = store
        self.depublish_registry = depublish_registry
        self.data_evolution = data_evolution
        self.link_checking_after_depublish = link_checking_after_depublish
        self.logger = LoggerFactory.create_logger(ComponentType.VALIDATOR, "WorkflowValidator")

    def validate_workflow_plugins(
        self,
        workflow: Workflow,
        enforced_predecessor_type: Optional[PluginType] = None
    ) -> Optional[PluginWithExecution]:
        """
        Validate a workflow and resolve its predecessor.

        Args:
            workflow: Workflow to validate; harvest parameters are trimmed in place
            enforced_predecessor_type: Use the latest valid plugin of this kind as source

        Returns:
            (predecessor plugin, its execution), or None for roots

        Raises:
            BadContentError: Empty workflow, bad ordering, duplicates, bad plugin parameters
            PluginExecutionNotAllowedError: No valid predecessor exists
        """
        enabled = workflow.enabled_plugins()
        if not enabled:
            raise BadContentError("Workflow should not be empty.", dataset_id=workflow.dataset_id)

        self._validate_depublish_plugin(workflow.dataset_id, enabled)
        self._validate_and_trim_harvest_parameters(workflow.dataset_id, enabled)
        self._validate_order(enabled)

        return self.compute_predecessor_plugin(
            enabled[0].plugin_type, enforced_predecessor_type, workflow.dataset_id
        )

    def is_incremental_harvesting_allowed(self, dataset_id: str) -> bool:
        """A previous harvest of the dataset produced valid output."""
        return self.store.latest_successful_executable_plugin(
            dataset_id, HARVEST_PLUGIN_GROUP, limit_to_valid=True
        ) is not None

    # ------------------------------------------------------------------
    # Structural checks
    # ------------------------------------------------------------------

    def _validate_order(self, enabled: List[PluginMetadata]) -> None:
        kinds = [p.plugin_type for p in enabled]

        non_executable = [k.value for k in kinds if k in NON_EXECUTABLE_PLUGIN_TYPES]
        if non_executable:
            raise BadContentError(f"Workflow contains non-executable plugins: {non_executable}")

        if len(set(kinds)) != len(kinds):
            raise BadContentError("Workflow should not contain duplicates.")

        # LINK_CHECKING may only come first when it is the only plugin
        if len(kinds) > 1 and kinds[0] == PluginType.LINK_CHECKING:
            raise PluginExecutionNotAllowedError(_NOT_ALLOWED, plugin_type=kinds[0].value)

        for previous, current in zip(kinds, kinds[1:]):
            if is_root_type(current):
                continue
            candidates = get_predecessor_types(current, self.link_checking_after_depublish)
            if previous not in candidates:
                raise BadContentError(
                    f"Plugin {current.value} cannot follow {previous.value} in a workflow",
                    plugin_type=current.value
                )

    # ------------------------------------------------------------------
    # Semantic checks per kind
    # ------------------------------------------------------------------

    def _validate_depublish_plugin(self, dataset_id: str, enabled: List[PluginMetadata]) -> None:
        depublish = next((p for p in enabled if p.plugin_type == PluginType.DEPUBLISH), None)
        if depublish is None:
            return
        if len(enabled) > 1:
            raise BadContentError("If DEPUBLISH plugin enabled, no other enabled plugins are allowed.")

        if not depublish.dataset_depublish:
            pending = self.depublish_registry.list_all_by_status(
                dataset_id, DepublicationStatus.PENDING_DEPUBLICATION
            )
            if not pending:
                raise BadContentError(
                    "Record depublication requested but there are no pending depublication record ids in the db",
                    dataset_id=dataset_id
                )
            if is_dataset_depublished(self.store, dataset_id):
                raise PluginExecutionNotAllowedError(
                    "Record depublication is not allowed on a depublished dataset",
                    dataset_id=dataset_id
                )

    def _validate_and_trim_harvest_parameters(self, dataset_id: str, enabled: List[PluginMetadata]) -> None:
        for plugin in enabled:
            if plugin.plugin_type not in HARVEST_PLUGIN_GROUP:
                continue

            if plugin.url is not None:
                url = plugin.url.strip()
                parsed = urlparse(url)
                if parsed.scheme not in _HARVEST_URL_SCHEMES or not parsed.netloc:
                    raise BadContentError(f"Harvesting parameters are invalid: bad url '{plugin.url}'")
                plugin.url = url
            if plugin.metadata_format is not None:
                plugin.metadata_format = plugin.metadata_format.strip()
            if plugin.set_spec is not None:
                plugin.set_spec = plugin.set_spec.strip() or None

            if plugin.incremental_harvest and not self.is_incremental_harvesting_allowed(dataset_id):
                raise BadContentError(
                    "Can't perform incremental harvesting for this dataset.",
                    dataset_id=dataset_id
                )

    # ------------------------------------------------------------------
    # Predecessor resolution
    # ------------------------------------------------------------------

    def compute_predecessor_plugin(
        self,
        plugin_type: PluginType,
        enforced_predecessor_type: Optional[PluginType],
        dataset_id: str
    ) -> Optional[PluginWithExecution]:
        """
        Latest valid plugin whose output the given kind can consume.

        Raises:
            PluginExecutionNotAllowedError: No such plugin, or it does not
                descend from the latest valid harvest
        """
        if plugin_type == PluginType.DEPUBLISH:
            # Depublish has no predecessor but needs something published
            publish = self.store.latest_successful_executable_plugin(
                dataset_id, {PluginType.PUBLISH}, limit_to_valid=False
            )
            if publish is None or publish[0].data_status == DataStatus.DELETED:
                raise PluginExecutionNotAllowedError(
                    f"{_NOT_ALLOWED}: dataset {dataset_id} has no successful publication",
                    dataset_id=dataset_id, plugin_type=plugin_type.value
                )
            return None

        default_types = get_predecessor_types(plugin_type, self.link_checking_after_depublish)
        if not default_types:
            return None

        candidates = {enforced_predecessor_type} if enforced_predecessor_type else set(default_types)
        predecessor = self.store.latest_successful_executable_plugin(
            dataset_id, candidates, limit_to_valid=True
        )
        if predecessor is None:
            raise PluginExecutionNotAllowedError(
                f"{_NOT_ALLOWED}: no valid {sorted(c.value for c in candidates)} plugin for dataset {dataset_id}",
                dataset_id=dataset_id, plugin_type=plugin_type.value
            )

        # A harvest-rooted predecessor must descend from the latest valid harvest
        root, root_execution = self.data_evolution.get_root_ancestor(*predecessor)
        if root.plugin_type in HARVEST_PLUGIN_GROUP:
            latest_harvest = self.store.latest_successful_executable_plugin(
                dataset_id, HARVEST_PLUGIN_GROUP, limit_to_valid=True
            )
            if latest_harvest is None or (latest_harvest[0].id, latest_harvest[1].id) != (root.id, root_execution.id):
                raise PluginExecutionNotAllowedError(
                    f"{_NOT_ALLOWED}: latest {predecessor[0].plugin_type.value} of dataset {dataset_id} "
                    f"does not descend from the latest harvest",
                    dataset_id=dataset_id, plugin_type=plugin_type.value
                )

        self.logger.debug(
            f"Predecessor of {plugin_type.value} for dataset {dataset_id}: "
            f"{predecessor[0].plugin_type.value} {predecessor[0].id} in execution {predecessor[1].id}"
        )
        return predecessor


__all__ = ["WorkflowValidator"]
