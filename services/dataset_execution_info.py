"""
Dataset Execution Information.

Derives what is currently harvested, previewed, published and depublished
for a dataset from the execution history, the running execution and the
depublish registry. Nothing is stored; the summary is recomputed per
request against the wall clock.

Exports:
    DatasetExecutionInfoService: Builds DatasetExecutionInformation
    is_dataset_depublished: Whether the latest publication was undone by a dataset depublish
"""

from datetime import datetime
from typing import Callable, FrozenSet, Optional, Tuple

from core.logic import (
    EXECUTABLE_DEPUBLISH_PLUGIN_GROUP,
    EXECUTABLE_PREVIEW_PLUGIN_GROUP,
    EXECUTABLE_PUBLISH_PLUGIN_GROUP,
    HARVEST_PLUGIN_GROUP,
    PREVIEW_PLUGIN_GROUP,
    PUBLISH_PLUGIN_GROUP,
)
from core.models import (
    DataStatus,
    DatasetExecutionInformation,
    Plugin,
    PluginStatus,
    PluginType,
    PublicationStatus,
    WorkflowExecution,
)
from core.utils import utc_now
from infrastructure.interface_repository import IDepublishRegistry, IExecutionStore
from util_logger import LoggerFactory, ComponentType


def _plugin(found) -> Optional[Plugin]:
    return found[0] if found else None


def _depublished_after_publish(publish: Optional[Plugin], depublish: Optional[Plugin]) -> bool:
    """
    Latest executable depublish finished after the latest executable
    publish and depublished the whole dataset.

    A record depublish cannot follow a dataset depublish (rejected at
    admission), so looking at the latest depublish is sufficient.
    """
    if publish is None or depublish is None:
        return False
    if publish.finished_date is None or depublish.finished_date is None:
        return False
    return (
        publish.finished_date < depublish.finished_date
        and depublish.plugin_type == PluginType.DEPUBLISH
        and depublish.plugin_metadata.dataset_depublish
    )


def is_dataset_depublished(store: IExecutionStore, dataset_id: str) -> bool:
    """Publication status of the dataset is DEPUBLISHED."""
    publish = _plugin(store.latest_successful_executable_plugin(
        dataset_id, EXECUTABLE_PUBLISH_PLUGIN_GROUP, limit_to_valid=False))
    depublish = _plugin(store.latest_successful_executable_plugin(
        dataset_id, EXECUTABLE_DEPUBLISH_PLUGIN_GROUP, limit_to_valid=False))
    return _depublished_after_publish(publish, depublish)


class DatasetExecutionInfoService:
    """
    Computes DatasetExecutionInformation.

    solr_commit_period_mins is read through a callable so the
    Orchestrator can change it at runtime.
    """

    def __init__(
        self,
        store: IExecutionStore,
        depublish_registry: IDepublishRegistry,
        solr_commit_period_mins: Callable[[], int]
    ):
        self.store = store
        self.depublish_registry = depublish_registry
        self._solr_commit_period_mins = solr_commit_period_mins
        self.logger = LoggerFactory.create_logger(ComponentType.SERVICE, "DatasetExecutionInfoService")

    def get_dataset_execution_information(
        self,
        dataset_id: str,
        now: Optional[datetime] = None
    ) -> DatasetExecutionInformation:
        now = now or utc_now()
        store = self.store

        # Relevant parts of the execution history
        last_harvest = _plugin(store.latest_successful_executable_plugin(
            dataset_id, HARVEST_PLUGIN_GROUP, limit_to_valid=False))
        first_publish = _plugin(store.first_successful_plugin(dataset_id, PUBLISH_PLUGIN_GROUP))
        last_executable_preview = _plugin(store.latest_successful_executable_plugin(
            dataset_id, EXECUTABLE_PREVIEW_PLUGIN_GROUP, limit_to_valid=False))
        last_executable_publish = _plugin(store.latest_successful_executable_plugin(
            dataset_id, EXECUTABLE_PUBLISH_PLUGIN_GROUP, limit_to_valid=False))
        last_preview = _plugin(store.latest_successful_plugin(dataset_id, PREVIEW_PLUGIN_GROUP))
        last_publish = _plugin(store.latest_successful_plugin(dataset_id, PUBLISH_PLUGIN_GROUP))
        last_executable_depublish = _plugin(store.latest_successful_executable_plugin(
            dataset_id, EXECUTABLE_DEPUBLISH_PLUGIN_GROUP, limit_to_valid=False))

        # Relevant current execution
        active = store.get_running_or_in_queue_execution(dataset_id)
        preview_busy = self._is_cleaning_or_running(active, PREVIEW_PLUGIN_GROUP)
        publish_busy = self._is_cleaning_or_running(active, PUBLISH_PLUGIN_GROUP)

        info = DatasetExecutionInformation()
        if last_harvest is not None:
            info.last_harvested_date = last_harvest.finished_date
            info.last_harvested_records = last_harvest.progress.net_records

        self._set_preview_information(info, last_executable_preview, last_preview, preview_busy, now)
        self._set_publish_information(
            info, dataset_id, first_publish, last_executable_publish, last_publish,
            last_executable_depublish, publish_busy, now
        )
        return info

    # ------------------------------------------------------------------
    # Preview / publish
    # ------------------------------------------------------------------

    @staticmethod
    def _record_counts(plugin: Optional[Plugin]) -> Tuple[int, int, bool]:
        """(net records, total database records, has deleted records)"""
        if plugin is None:
            return 0, -1, False
        progress = plugin.progress
        return progress.net_records, progress.total_database_records, progress.deleted_records > 0

    def _set_preview_information(
        self,
        info: DatasetExecutionInformation,
        last_executable_preview: Optional[Plugin],
        last_preview: Optional[Plugin],
        preview_busy: bool,
        now: datetime
    ) -> None:
        records, total, has_deleted = self._record_counts(last_executable_preview)
        info.last_preview_records = records
        info.total_preview_records = total

        if last_preview is None:
            return
        info.last_preview_date = last_preview.finished_date
        if total > 0:
            records_available = True
        elif total == 0:
            records_available = False
        else:
            records_available = records > 0 or has_deleted
        info.last_preview_records_ready_for_viewing = (
            records_available and not preview_busy and self._is_ready_for_viewing(last_preview, now)
        )

    def _set_publish_information(
        self,
        info: DatasetExecutionInformation,
        dataset_id: str,
        first_publish: Optional[Plugin],
        last_executable_publish: Optional[Plugin],
        last_publish: Optional[Plugin],
        last_executable_depublish: Optional[Plugin],
        publish_busy: bool,
        now: datetime
    ) -> None:
        info.first_published_date = first_publish.finished_date if first_publish else None

        currently_depublished = _depublished_after_publish(last_executable_publish, last_executable_depublish)

        records, total, has_deleted = self._record_counts(last_executable_publish)
        info.last_published_records = records
        info.total_published_records = total

        if currently_depublished:
            depublished_count = records
        else:
            depublished_count = self.depublish_registry.count_successfully_depublished(dataset_id)

        if last_publish is not None:
            info.last_published_date = last_publish.finished_date
            if total > 0:
                records_available = True
            elif total == 0:
                records_available = False
            else:
                records_available = not currently_depublished and (
                    records > depublished_count or has_deleted
                )
            info.last_published_records_ready_for_viewing = (
                records_available and not publish_busy and self._is_ready_for_viewing(last_publish, now)
            )

        info.last_depublished_records = depublished_count
        if last_executable_depublish is not None:
            info.last_depublished_date = last_executable_depublish.finished_date

        if currently_depublished:
            info.publication_status = PublicationStatus.DEPUBLISHED
        elif last_executable_publish is not None:
            info.publication_status = PublicationStatus.PUBLISHED
        else:
            info.publication_status = None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _is_ready_for_viewing(self, plugin: Plugin, now: datetime) -> bool:
        """Data valid and the index commit window has passed (whole minutes)."""
        data_valid = not plugin.executable or plugin.data_status == DataStatus.VALID
        if plugin.finished_date is None:
            return False
        elapsed_minutes = int((now - plugin.finished_date).total_seconds() // 60)
        return data_valid and elapsed_minutes > self._solr_commit_period_mins()

    @staticmethod
    def _is_cleaning_or_running(
        execution: Optional[WorkflowExecution],
        plugin_types: FrozenSet[PluginType]
    ) -> bool:
        if execution is None:
            return False
        return any(
            plugin.plugin_type in plugin_types
            and plugin.status in (PluginStatus.CLEANING, PluginStatus.RUNNING)
            for plugin in execution.plugins
        )


__all__ = ["DatasetExecutionInfoService", "is_dataset_depublished"]
