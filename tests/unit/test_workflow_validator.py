"""
Workflow validation and predecessor resolution against execution history.
"""

from datetime import timedelta

import pytest

from core.models import DataStatus, PluginType
from exceptions import BadContentError, PluginExecutionNotAllowedError
from services import WorkflowValidator

from tests.factories.model_factories import (
    ORDERED_PIPELINE,
    base_time,
    make_dataset_id,
    make_finished_execution,
    make_plugin_metadata,
    make_workflow,
)


@pytest.fixture
def validator(store, registry, data_evolution):
    return WorkflowValidator(store, registry, data_evolution)


def _history(store, dataset_id, plugin_types, start, predecessor=None, **kwargs):
    """Store a finished execution, optionally continuing another one's last plugin."""
    if predecessor is not None:
        kwargs.update(predecessor=predecessor.plugins[-1], predecessor_execution=predecessor)
    execution = make_finished_execution(dataset_id, plugin_types, start, **kwargs)
    store.add_execution(execution)
    return execution


class TestWorkflowShape:

    def test_empty_workflow(self, validator):
        with pytest.raises(BadContentError):
            validator.validate_workflow_plugins(make_workflow(make_dataset_id(), []))

    def test_workflow_with_only_disabled_plugins(self, validator):
        workflow = make_workflow(make_dataset_id(), [])
        workflow.plugins.append(make_plugin_metadata(PluginType.OAIPMH_HARVEST, enabled=False))
        with pytest.raises(BadContentError):
            validator.validate_workflow_plugins(workflow)

    def test_duplicates(self, validator):
        workflow = make_workflow(make_dataset_id(), [
            PluginType.OAIPMH_HARVEST, PluginType.VALIDATION_EXTERNAL, PluginType.VALIDATION_EXTERNAL
        ])
        with pytest.raises(BadContentError):
            validator.validate_workflow_plugins(workflow)

    @pytest.mark.parametrize("plugin_types", [
        [PluginType.OAIPMH_HARVEST, PluginType.TRANSFORMATION],
        [PluginType.OAIPMH_HARVEST, PluginType.VALIDATION_EXTERNAL, PluginType.NORMALIZATION],
        [PluginType.OAIPMH_HARVEST, PluginType.LINK_CHECKING, PluginType.VALIDATION_EXTERNAL],
    ], ids=["skips-validation", "skips-two", "after-link-checking"])
    def test_out_of_order(self, validator, plugin_types):
        with pytest.raises(BadContentError):
            validator.validate_workflow_plugins(make_workflow(make_dataset_id(), plugin_types))

    def test_link_checking_first_of_several(self, validator):
        workflow = make_workflow(make_dataset_id(), [PluginType.LINK_CHECKING, PluginType.OAIPMH_HARVEST])
        with pytest.raises(PluginExecutionNotAllowedError):
            validator.validate_workflow_plugins(workflow)

    def test_full_pipeline_from_harvest_has_no_predecessor(self, validator):
        workflow = make_workflow(make_dataset_id(), ORDERED_PIPELINE + [PluginType.LINK_CHECKING])
        assert validator.validate_workflow_plugins(workflow) is None

    def test_disabled_plugins_are_ignored_for_order(self, validator):
        workflow = make_workflow(make_dataset_id(), [PluginType.OAIPMH_HARVEST, PluginType.VALIDATION_EXTERNAL])
        workflow.plugins.insert(1, make_plugin_metadata(PluginType.PUBLISH, enabled=False))
        assert validator.validate_workflow_plugins(workflow) is None


class TestHarvestParameters:

    @pytest.mark.parametrize("url", ["not a url", "file:///etc/passwd", "https://"],
                             ids=["no-scheme", "file-scheme", "no-host"])
    def test_bad_url(self, validator, url):
        workflow = make_workflow(make_dataset_id(), [])
        workflow.plugins.append(make_plugin_metadata(PluginType.HTTP_HARVEST, url=url))
        with pytest.raises(BadContentError):
            validator.validate_workflow_plugins(workflow)

    def test_parameters_are_trimmed(self, validator):
        workflow = make_workflow(make_dataset_id(), [])
        workflow.plugins.append(make_plugin_metadata(
            PluginType.OAIPMH_HARVEST, url="  https://oai.example.org/x ", metadata_format=" edm ", set_spec="  "
        ))

        validator.validate_workflow_plugins(workflow)

        harvest = workflow.plugins[0]
        assert harvest.url == "https://oai.example.org/x"
        assert harvest.metadata_format == "edm"
        assert harvest.set_spec is None

    def test_incremental_harvest_needs_previous_valid_harvest(self, validator, store):
        dataset_id = make_dataset_id()
        workflow = make_workflow(dataset_id, [])
        workflow.plugins.append(make_plugin_metadata(PluginType.OAIPMH_HARVEST, incremental_harvest=True))

        with pytest.raises(BadContentError):
            validator.validate_workflow_plugins(workflow)

        _history(store, dataset_id, [PluginType.OAIPMH_HARVEST], base_time())
        assert validator.is_incremental_harvesting_allowed(dataset_id)
        assert validator.validate_workflow_plugins(workflow) is None


class TestDepublish:

    def _published(self, store, dataset_id, **kwargs):
        return _history(store, dataset_id, ORDERED_PIPELINE, base_time(), **kwargs)

    def test_depublish_must_be_alone(self, validator, store):
        dataset_id = make_dataset_id()
        self._published(store, dataset_id)
        workflow = make_workflow(dataset_id, [PluginType.DEPUBLISH, PluginType.LINK_CHECKING])
        with pytest.raises(BadContentError):
            validator.validate_workflow_plugins(workflow)

    def test_dataset_depublish_needs_publication(self, validator):
        workflow = make_workflow(make_dataset_id(), [PluginType.DEPUBLISH])
        with pytest.raises(PluginExecutionNotAllowedError):
            validator.validate_workflow_plugins(workflow)

    def test_dataset_depublish_of_published_dataset(self, validator, store):
        dataset_id = make_dataset_id()
        self._published(store, dataset_id)
        assert validator.validate_workflow_plugins(make_workflow(dataset_id, [PluginType.DEPUBLISH])) is None

    def test_deleted_publication_cannot_be_depublished(self, validator, store):
        dataset_id = make_dataset_id()
        self._published(store, dataset_id, data_status=DataStatus.DELETED)
        with pytest.raises(PluginExecutionNotAllowedError):
            validator.validate_workflow_plugins(make_workflow(dataset_id, [PluginType.DEPUBLISH]))

    def test_record_depublish_needs_pending_records(self, validator, store, registry):
        dataset_id = make_dataset_id()
        self._published(store, dataset_id)
        workflow = make_workflow(dataset_id, [])
        workflow.plugins.append(make_plugin_metadata(PluginType.DEPUBLISH, dataset_depublish=False))

        with pytest.raises(BadContentError):
            validator.validate_workflow_plugins(workflow)

        registry.add_pending(dataset_id, {"r1"})
        assert validator.validate_workflow_plugins(workflow) is None

    def test_record_depublish_on_depublished_dataset(self, validator, store, registry):
        dataset_id = make_dataset_id()
        published = self._published(store, dataset_id)
        _history(store, dataset_id, [PluginType.DEPUBLISH], published.finished_date + timedelta(hours=1))
        registry.add_pending(dataset_id, {"r1"})
        workflow = make_workflow(dataset_id, [])
        workflow.plugins.append(make_plugin_metadata(PluginType.DEPUBLISH, dataset_depublish=False))

        with pytest.raises(PluginExecutionNotAllowedError):
            validator.validate_workflow_plugins(workflow)


class TestPredecessorResolution:

    def test_latest_valid_predecessor_is_chosen(self, validator, store):
        dataset_id = make_dataset_id()
        start = base_time()
        _history(store, dataset_id, [PluginType.OAIPMH_HARVEST, PluginType.VALIDATION_EXTERNAL], start)
        latest = _history(store, dataset_id, [PluginType.OAIPMH_HARVEST, PluginType.VALIDATION_EXTERNAL],
                          start + timedelta(hours=1))

        plugin, execution = validator.validate_workflow_plugins(
            make_workflow(dataset_id, [PluginType.TRANSFORMATION, PluginType.VALIDATION_INTERNAL])
        )

        assert execution.id == latest.id
        assert plugin.id == latest.plugins[1].id

    def test_missing_predecessor(self, validator, store):
        dataset_id = make_dataset_id()
        _history(store, dataset_id, [PluginType.OAIPMH_HARVEST], base_time())
        with pytest.raises(PluginExecutionNotAllowedError):
            validator.validate_workflow_plugins(make_workflow(dataset_id, [PluginType.TRANSFORMATION]))

    def test_predecessor_with_only_errors_is_not_valid(self, validator, store):
        dataset_id = make_dataset_id()
        _history(store, dataset_id, [PluginType.OAIPMH_HARVEST, PluginType.VALIDATION_EXTERNAL], base_time(),
                 processed=4, errors=4)
        with pytest.raises(PluginExecutionNotAllowedError):
            validator.validate_workflow_plugins(make_workflow(dataset_id, [PluginType.TRANSFORMATION]))

    def test_predecessor_must_descend_from_latest_harvest(self, validator, store):
        dataset_id = make_dataset_id()
        start = base_time()
        _history(store, dataset_id, [PluginType.OAIPMH_HARVEST, PluginType.VALIDATION_EXTERNAL], start)
        _history(store, dataset_id, [PluginType.OAIPMH_HARVEST], start + timedelta(hours=1))

        with pytest.raises(PluginExecutionNotAllowedError):
            validator.validate_workflow_plugins(make_workflow(dataset_id, [PluginType.TRANSFORMATION]))

    def test_chain_across_executions(self, validator, store):
        dataset_id = make_dataset_id()
        start = base_time()
        harvest = _history(store, dataset_id, [PluginType.OAIPMH_HARVEST, PluginType.VALIDATION_EXTERNAL], start)
        middle = _history(store, dataset_id, [PluginType.TRANSFORMATION, PluginType.VALIDATION_INTERNAL],
                          start + timedelta(hours=1), predecessor=harvest)

        plugin, execution = validator.validate_workflow_plugins(
            make_workflow(dataset_id, [PluginType.NORMALIZATION])
        )

        assert (plugin.id, execution.id) == (middle.plugins[-1].id, middle.id)

    def test_enforced_predecessor_type(self, validator, store):
        dataset_id = make_dataset_id()
        history = _history(store, dataset_id, ORDERED_PIPELINE[:5], base_time())

        plugin, _ = validator.validate_workflow_plugins(
            make_workflow(dataset_id, [PluginType.ENRICHMENT]),
            enforced_predecessor_type=PluginType.VALIDATION_INTERNAL
        )

        assert plugin.id == history.plugins[3].id

    def test_link_checking_after_depublish(self, store, registry, data_evolution):
        dataset_id = make_dataset_id()
        published = _history(store, dataset_id, ORDERED_PIPELINE, base_time())
        depublish = _history(store, dataset_id, [PluginType.DEPUBLISH], published.finished_date + timedelta(hours=1))
        workflow = make_workflow(dataset_id, [PluginType.LINK_CHECKING])

        allowing = WorkflowValidator(store, registry, data_evolution, link_checking_after_depublish=True)
        refusing = WorkflowValidator(store, registry, data_evolution, link_checking_after_depublish=False)

        assert allowing.validate_workflow_plugins(workflow)[0].id == depublish.plugins[0].id
        assert refusing.validate_workflow_plugins(workflow)[0].id == published.plugins[-1].id
