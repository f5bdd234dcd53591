"""
Dataset execution summary derived from history and the depublish registry.
"""

from datetime import timedelta

import pytest

from core.models import DepublicationStatus, PluginStatus, PluginType, PublicationStatus, WorkflowStatus
from core.utils import utc_now
from services import DatasetExecutionInfoService

from tests.factories.model_factories import (
    ORDERED_PIPELINE,
    base_time,
    make_dataset_id,
    make_finished_execution,
    make_plugin_metadata,
)


SOLR_COMMIT_PERIOD_MINS = 15


@pytest.fixture
def info_service(store, registry):
    return DatasetExecutionInfoService(store, registry, lambda: SOLR_COMMIT_PERIOD_MINS)


@pytest.fixture
def published(store):
    execution = make_finished_execution(make_dataset_id(), ORDERED_PIPELINE, base_time(), processed=40, errors=4)
    store.add_execution(execution)
    return execution


def _publish_of(execution):
    return execution.get_plugin_by_type(PluginType.PUBLISH)


class TestEmptyHistory:

    def test_defaults(self, info_service):
        info = info_service.get_dataset_execution_information(make_dataset_id())
        assert info.last_harvested_date is None
        assert info.total_preview_records == -1
        assert not info.last_published_records_ready_for_viewing
        assert info.publication_status is None


class TestPublishedDataset:

    def test_summary(self, info_service, published):
        info = info_service.get_dataset_execution_information(published.dataset_id)

        harvest = published.get_plugin_by_type(PluginType.OAIPMH_HARVEST)
        assert info.last_harvested_date == harvest.finished_date
        assert info.last_harvested_records == 36
        assert info.last_preview_records == 36
        assert info.last_published_records == 36
        assert info.first_published_date == _publish_of(published).finished_date
        assert info.last_preview_records_ready_for_viewing
        assert info.last_published_records_ready_for_viewing
        assert info.publication_status == PublicationStatus.PUBLISHED

    @pytest.mark.parametrize("minutes,ready", [(10, False), (15, False), (16, True)],
                             ids=["inside-window", "window-boundary", "after-window"])
    def test_ready_for_viewing_after_commit_window(self, info_service, published, minutes, ready):
        now = _publish_of(published).finished_date + timedelta(minutes=minutes)
        info = info_service.get_dataset_execution_information(published.dataset_id, now=now)
        assert info.last_published_records_ready_for_viewing == ready

    def test_total_database_records_of_zero_is_not_viewable(self, info_service, store):
        execution = make_finished_execution(make_dataset_id(), ORDERED_PIPELINE, base_time())
        _publish_of(execution).progress.total_database_records = 0
        store.add_execution(execution)

        info = info_service.get_dataset_execution_information(execution.dataset_id)

        assert info.total_published_records == 0
        assert not info.last_published_records_ready_for_viewing

    def test_running_publish_is_not_viewable(self, info_service, store, published):
        active = make_finished_execution(
            published.dataset_id, [PluginType.PUBLISH], utc_now(), status=WorkflowStatus.RUNNING
        )
        active.plugins[0].status = PluginStatus.RUNNING
        active.plugins[0].data_status = None
        active.finished_date = None
        store.add_execution(active)

        info = info_service.get_dataset_execution_information(published.dataset_id)

        assert not info.last_published_records_ready_for_viewing
        assert info.last_preview_records_ready_for_viewing


class TestDepublication:

    def test_dataset_depublish_after_publish(self, info_service, store, published):
        depublish = make_finished_execution(
            published.dataset_id, [PluginType.DEPUBLISH], published.finished_date + timedelta(hours=1)
        )
        store.add_execution(depublish)

        info = info_service.get_dataset_execution_information(published.dataset_id)

        assert info.publication_status == PublicationStatus.DEPUBLISHED
        assert info.last_depublished_records == 36
        assert info.last_depublished_date == depublish.plugins[0].finished_date
        assert not info.last_published_records_ready_for_viewing

    def test_republish_after_depublish(self, info_service, store, published):
        store.add_execution(make_finished_execution(
            published.dataset_id, [PluginType.DEPUBLISH], published.finished_date + timedelta(hours=1)
        ))
        store.add_execution(make_finished_execution(
            published.dataset_id, ORDERED_PIPELINE, published.finished_date + timedelta(hours=2)
        ))

        info = info_service.get_dataset_execution_information(published.dataset_id)

        assert info.publication_status == PublicationStatus.PUBLISHED

    def test_record_depublish_counts_registry(self, info_service, store, registry, published):
        registry.add_pending(published.dataset_id, {"r1", "r2", "r3"})
        registry.mark_status(published.dataset_id, {"r1", "r2"}, DepublicationStatus.DEPUBLISHED, utc_now())
        store.add_execution(make_finished_execution(
            published.dataset_id, [PluginType.DEPUBLISH], published.finished_date + timedelta(hours=1),
            metadata=[make_plugin_metadata(PluginType.DEPUBLISH, dataset_depublish=False)]
        ))

        info = info_service.get_dataset_execution_information(published.dataset_id)

        assert info.publication_status == PublicationStatus.PUBLISHED
        assert info.last_depublished_records == 2
