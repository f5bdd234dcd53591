"""
External task service client against httpx.MockTransport.
"""

import json
import time
from types import SimpleNamespace

import httpx
import pytest

from config import ExternalTaskConfig
from core.models import Dataset, DpsTask, ExternalTaskState
from exceptions import ExternalTaskError
from infrastructure.dps_client import DpsClient


class Recorder:
    """Transport handler returning scripted responses and recording requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def _client(handler, **config) -> DpsClient:
    settings = {"base_url": "http://dps.test/api", "max_retries": 2, "retry_base_delay_secs": 0}
    settings.update(config)
    return DpsClient(ExternalTaskConfig(**settings), transport=httpx.MockTransport(handler))


class TestTasks:

    def test_submit_posts_task_body(self):
        recorder = Recorder(httpx.Response(200, json={"taskId": 42}))
        client = _client(recorder)
        task = DpsTask(topology="enrichment", dataset_id="e1", parameters={"METIS_DATASET_ID": "d1"},
                       output_revision={"revisionName": "ENRICHMENT"})

        assert client.submit_task(task) == "42"

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/topologies/enrichment/tasks"
        assert json.loads(request.content) == {
            "datasetId": "e1",
            "parameters": {"METIS_DATASET_ID": "d1"},
            "outputRevision": {"revisionName": "ENRICHMENT"},
        }

    def test_submit_without_task_id(self):
        client = _client(Recorder(httpx.Response(200, json={})))
        with pytest.raises(ExternalTaskError):
            client.submit_task(DpsTask(topology="enrichment", dataset_id="e1"))

    def test_progress_is_parsed(self):
        recorder = Recorder(httpx.Response(200, json={
            "status": "PROCESSED", "processedRecordsCount": 7, "errors": 1,
        }))
        progress = _client(recorder).get_progress("indexer", "t-1")

        assert recorder.requests[0].url.path == "/api/topologies/indexer/tasks/t-1/progress"
        assert progress.state == ExternalTaskState.PROCESSED
        assert (progress.processed_records, progress.errors) == (7, 1)

    def test_unreadable_progress(self):
        client = _client(Recorder(httpx.Response(200, json={"status": "SOMETHING_ELSE"})))
        with pytest.raises(ExternalTaskError):
            client.get_progress("indexer", "t-1")

    def test_kill_sends_reason(self):
        recorder = Recorder(httpx.Response(200))
        _client(recorder).kill_task("indexer", "t-1", "Cancelled by user")

        request = recorder.requests[0]
        assert request.url.path == "/api/topologies/indexer/tasks/t-1/kill"
        assert json.loads(request.content) == {"info": "Cancelled by user"}


class TestRetries:

    def test_server_errors_are_retried(self):
        recorder = Recorder(httpx.Response(503), httpx.Response(502), httpx.Response(200, json={"taskId": "x"}))
        assert _client(recorder).submit_task(DpsTask(topology="enrichment", dataset_id="e1")) == "x"
        assert len(recorder.requests) == 3

    def test_transport_errors_are_retried(self):
        recorder = Recorder(httpx.ConnectError("refused"), httpx.Response(200))
        _client(recorder).kill_task("indexer", "t-1", "stop")
        assert len(recorder.requests) == 2

    def test_retries_are_bounded(self):
        recorder = Recorder(httpx.Response(500))
        with pytest.raises(ExternalTaskError):
            _client(recorder, max_retries=1).kill_task("indexer", "t-1", "stop")
        assert len(recorder.requests) == 2

    @pytest.mark.parametrize("status", [400, 404, 409], ids=["bad-request", "not-found", "conflict"])
    def test_client_errors_fail_immediately(self, status):
        recorder = Recorder(httpx.Response(status, text="nope"))
        with pytest.raises(ExternalTaskError) as error:
            _client(recorder).kill_task("indexer", "t-1", "stop")
        assert len(recorder.requests) == 1
        assert error.value.details["status_code"] == status


class TestDatasets:

    def test_create_dataset(self):
        recorder = Recorder(httpx.Response(201))
        client = _client(recorder, ecloud_provider="metis")

        ecloud_id = client.create_dataset(Dataset(dataset_id="d1", ecloud_dataset_id="e-9"))

        body = json.loads(recorder.requests[0].content)
        assert ecloud_id == "e-9"
        assert body["providerId"] == "metis"
        assert body["datasetId"] == "e-9"

    def test_existing_dataset_is_accepted(self):
        client = _client(Recorder(httpx.Response(409)))
        assert client.create_dataset(Dataset(dataset_id="d1", ecloud_dataset_id="e-9")) == "e-9"

    def test_generated_id_for_new_dataset(self):
        client = _client(Recorder(httpx.Response(201)))
        assert client.create_dataset(Dataset(dataset_id="d1"))


class TestAuthentication:

    def test_bearer_token_is_cached(self):
        calls = []

        class Credential:
            def get_token(self, scope):
                calls.append(scope)
                return SimpleNamespace(token="secret", expires_on=time.time() + 3600)

        recorder = Recorder(httpx.Response(200))
        client = DpsClient(
            ExternalTaskConfig(base_url="http://dps.test", token_scope="api://dps/.default", retry_base_delay_secs=0),
            transport=httpx.MockTransport(recorder),
            credential=Credential(),
        )

        client.kill_task("indexer", "t-1", "stop")
        client.kill_task("indexer", "t-2", "stop")

        assert calls == ["api://dps/.default"]
        assert all(r.headers["Authorization"] == "Bearer secret" for r in recorder.requests)

    def test_token_failure(self):
        class Credential:
            def get_token(self, scope):
                raise RuntimeError("no identity")

        client = DpsClient(
            ExternalTaskConfig(base_url="http://dps.test", token_scope="api://dps/.default"),
            transport=httpx.MockTransport(Recorder(httpx.Response(200))),
            credential=Credential(),
        )
        with pytest.raises(ExternalTaskError):
            client.kill_task("indexer", "t-1", "stop")
