"""
Plugin Task Preparation.

Builds the DpsTask submitted to the external task service for one
plugin: the topology, the parameter map (METIS_DATASET_ID plus the
kind-specific keys) and the input/output revisions.

Exports:
    PluginTaskBuilder: Builds DpsTask instances
"""

from typing import Dict, Optional

from config import ExternalTaskConfig
from core.logic import HARVEST_PLUGIN_GROUP
from core.models import (
    DepublicationStatus,
    DpsTask,
    Plugin,
    PluginType,
    WorkflowExecution,
)
from exceptions import TaskPreparationError
from infrastructure.dps_client import TOPOLOGY_BY_PLUGIN_TYPE
from infrastructure.interface_repository import IDepublishRegistry
from services.data_evolution import DataEvolutionService


def _flag(value: bool) -> str:
    return "true" if value else "false"


class PluginTaskBuilder:
    """
    Prepares external tasks for plugins.

    Usage:
        builder = PluginTaskBuilder(registry, evolution, config.external_tasks)
        task = builder.build_task(plugin, execution)
    """

    def __init__(
        self,
        depublish_registry: IDepublishRegistry,
        data_evolution: DataEvolutionService,
        config: ExternalTaskConfig
    ):
        self.depublish_registry = depublish_registry
        self.data_evolution = data_evolution
        self.config = config

    def build_task(self, plugin: Plugin, execution: WorkflowExecution) -> DpsTask:
        """
        Raises:
            TaskPreparationError: Non-executable plugin, or a record
                depublish without pending record ids
        """
        topology = TOPOLOGY_BY_PLUGIN_TYPE.get(plugin.plugin_type)
        if topology is None:
            raise TaskPreparationError(f"Plugin type {plugin.plugin_type.value} cannot be executed")

        parameters = {"METIS_DATASET_ID": execution.dataset_id}
        parameters.update(self._plugin_parameters(plugin, execution))

        return DpsTask(
            topology=topology,
            dataset_id=execution.ecloud_dataset_id or execution.dataset_id,
            parameters=parameters,
            input_revision=self._input_revision(plugin, execution),
            output_revision={
                "revisionName": plugin.plugin_type.value,
                "revisionTimestamp": (execution.started_date or execution.created_date).isoformat(),
            },
        )

    def _plugin_parameters(self, plugin: Plugin, execution: WorkflowExecution) -> Dict[str, str]:
        metadata = plugin.plugin_metadata
        kind = plugin.plugin_type
        parameters: Dict[str, str] = {}

        if kind in HARVEST_PLUGIN_GROUP:
            if metadata.url:
                parameters["HARVEST_URL"] = metadata.url
            if metadata.metadata_format:
                parameters["METADATA_FORMAT"] = metadata.metadata_format
            if metadata.set_spec:
                parameters["SET_SPEC"] = metadata.set_spec
            parameters["INCREMENTAL_HARVEST"] = _flag(metadata.incremental_harvest)

        elif kind == PluginType.TRANSFORMATION:
            if metadata.xslt_url:
                parameters["XSLT_URL"] = metadata.xslt_url

        elif kind in (PluginType.VALIDATION_EXTERNAL, PluginType.VALIDATION_INTERNAL):
            if metadata.schema_name:
                parameters["SCHEMA_NAME"] = metadata.schema_name

        elif kind in (PluginType.PREVIEW, PluginType.PUBLISH):
            parameters["METIS_TARGET_INDEXING_DATABASE"] = kind.value
            parameters["USE_ALT_INDEXING_ENV"] = _flag(self._use_alternative_environment(plugin))
            parameters["PRESERVE_TIMESTAMPS"] = _flag(metadata.preserve_timestamps)
            parameters["METIS_RECORD_DATE"] = (execution.started_date or execution.created_date).isoformat()

        elif kind == PluginType.LINK_CHECKING:
            if metadata.perform_sampling and metadata.sample_size:
                parameters["SAMPLE_SIZE"] = str(metadata.sample_size)

        elif kind == PluginType.DEPUBLISH:
            parameters["USE_ALT_INDEXING_ENV"] = _flag(self._use_alternative_environment(plugin))
            if not metadata.dataset_depublish:
                parameters["RECORD_IDS_TO_DEPUBLISH"] = self._record_ids_to_depublish(execution.dataset_id)

        return parameters

    def _use_alternative_environment(self, plugin: Plugin) -> bool:
        return (
            plugin.plugin_metadata.use_alternative_indexing_environment
            or self.config.use_alternative_indexing_environment
        )

    def _record_ids_to_depublish(self, dataset_id: str) -> str:
        pending = self.depublish_registry.list_all_by_status(
            dataset_id, DepublicationStatus.PENDING_DEPUBLICATION
        )
        if not pending:
            raise TaskPreparationError(
                "Requested record depublication but there are no records ids for depublication in the db"
            )
        return ",".join(f"/{dataset_id}/{record_id}" for record_id in sorted(pending))

    def _input_revision(self, plugin: Plugin, execution: WorkflowExecution) -> Optional[Dict[str, str]]:
        found = self.data_evolution.get_predecessor(plugin, execution)
        if found is None:
            return None
        predecessor, _ = found
        revision = {"revisionName": predecessor.plugin_type.value}
        if predecessor.finished_date is not None:
            revision["revisionTimestamp"] = predecessor.finished_date.isoformat()
        if predecessor.external_task_id:
            revision["taskId"] = predecessor.external_task_id
        return revision


__all__ = ["PluginTaskBuilder"]
