"""
External Task Service Client.

HTTP client of the external task service (DPS) that runs plugin bodies,
and of its dataset registry in the downstream content store.
Authentication uses DefaultAzureCredential for bearer tokens when
DPS_TOKEN_SCOPE is configured; otherwise calls are unauthenticated.

Endpoints:
    POST {base}/topologies/{topology}/tasks            -> {"taskId": ...}
    GET  {base}/topologies/{topology}/tasks/{id}/progress
    POST {base}/topologies/{topology}/tasks/{id}/kill
    POST {base}/datasets                               (409 = already exists)

Exports:
    DpsClient: IExternalTaskClient implementation on httpx
    TOPOLOGY_BY_PLUGIN_TYPE: Topology name per executable plugin kind
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx
from azure.identity import DefaultAzureCredential

from config import ExternalTaskConfig
from core.models import Dataset, DpsTask, PluginType, TaskProgress
from core.utils import generate_id
from exceptions import ExternalTaskError
from infrastructure.interface_repository import IExternalTaskClient
from util_logger import LoggerFactory, ComponentType


TOPOLOGY_BY_PLUGIN_TYPE: Dict[PluginType, str] = {
    PluginType.HTTP_HARVEST: "http_harvest",
    PluginType.OAIPMH_HARVEST: "oai_harvest",
    PluginType.VALIDATION_EXTERNAL: "validation",
    PluginType.VALIDATION_INTERNAL: "validation",
    PluginType.TRANSFORMATION: "xslt_transform",
    PluginType.NORMALIZATION: "normalization",
    PluginType.ENRICHMENT: "enrichment",
    PluginType.MEDIA_PROCESS: "media_process",
    PluginType.PREVIEW: "indexer",
    PluginType.PUBLISH: "indexer",
    PluginType.LINK_CHECKING: "link_checker",
    PluginType.DEPUBLISH: "depublication",
}

# Tokens are refreshed this long before they expire
_TOKEN_REFRESH_BUFFER = timedelta(minutes=5)


class DpsClient(IExternalTaskClient):
    """
    Client for the external task service.

    Handles:
    - Azure AD token acquisition via DefaultAzureCredential (when configured)
    - Bounded timeouts per call (response timeout for reads, request
      timeout overall)
    - Retries with exponential backoff on transport errors and 5xx
      responses; 4xx responses fail immediately
    """

    def __init__(
        self,
        config: ExternalTaskConfig,
        transport: Optional[httpx.BaseTransport] = None,
        credential: Optional[Any] = None
    ):
        """
        Args:
            config: External task service configuration
            transport: httpx transport override (tests use httpx.MockTransport)
            credential: Token credential override; DefaultAzureCredential when omitted
        """
        self.logger = LoggerFactory.create_logger(ComponentType.ADAPTER, "DpsClient")
        self.config = config
        self._base_url = config.base_url.rstrip('/')
        self._credential = credential
        self._token = None
        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=httpx.Timeout(config.request_timeout_secs, read=config.response_timeout_secs),
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _get_auth_headers(self) -> Dict[str, str]:
        if not self.config.token_scope:
            return {}

        if self._token is not None:
            expires_on = datetime.fromtimestamp(self._token.expires_on, tz=timezone.utc)
            if expires_on > datetime.now(timezone.utc) + _TOKEN_REFRESH_BUFFER:
                return {"Authorization": f"Bearer {self._token.token}"}

        if self._credential is None:
            self._credential = DefaultAzureCredential()
        try:
            self._token = self._credential.get_token(self.config.token_scope)
        except Exception as e:
            raise ExternalTaskError(f"Failed to acquire token for {self.config.token_scope}: {e}") from e
        self.logger.debug("🔐 Acquired external task service token")
        return {"Authorization": f"Bearer {self._token.token}"}

    def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        accept_statuses: tuple = ()
    ) -> httpx.Response:
        """
        Issue a call with retries.

        Args:
            method: HTTP method
            path: Path below the base URL
            json: JSON body
            accept_statuses: Non-2xx statuses returned to the caller instead of raising

        Raises:
            ExternalTaskError: 4xx response, or retries exhausted
        """
        attempts = self.config.max_retries + 1
        last_error = None

        for attempt in range(attempts):
            try:
                response = self._client.request(method, path, json=json, headers=self._get_auth_headers())
                if response.is_success or response.status_code in accept_statuses:
                    return response
                if response.status_code < 500:
                    raise ExternalTaskError(
                        f"{method} {path} rejected with HTTP {response.status_code}: {response.text[:200]}",
                        status_code=response.status_code
                    )
                last_error = f"HTTP {response.status_code}"

            except httpx.TimeoutException as e:
                last_error = f"Timeout: {e}"
            except httpx.RequestError as e:
                last_error = f"Request error: {e}"

            self.logger.warning(f"⚠️ {method} {path} failed (attempt {attempt + 1}/{attempts}): {last_error}")
            if attempt < attempts - 1:
                time.sleep(self.config.retry_base_delay_secs * (2 ** attempt))

        raise ExternalTaskError(
            f"{method} {path} failed after {attempts} attempts: {last_error}",
            attempts=attempts
        )

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def submit_task(self, task: DpsTask) -> str:
        body = task.model_dump(by_alias=True, exclude={"topology"}, exclude_none=True)
        response = self._request("POST", f"/topologies/{task.topology}/tasks", json=body)
        try:
            task_id = str(response.json()["taskId"])
        except (ValueError, KeyError) as e:
            raise ExternalTaskError(f"Task submission to {task.topology} returned no taskId") from e
        self.logger.info(f"📤 Submitted task {task_id} to topology {task.topology}")
        return task_id

    def get_progress(self, topology: str, task_id: str) -> TaskProgress:
        response = self._request("GET", f"/topologies/{topology}/tasks/{task_id}/progress")
        try:
            return TaskProgress.model_validate(response.json())
        except ValueError as e:
            raise ExternalTaskError(f"Unreadable progress of task {task_id} on {topology}: {e}") from e

    def kill_task(self, topology: str, task_id: str, reason: str) -> None:
        self._request("POST", f"/topologies/{topology}/tasks/{task_id}/kill", json={"info": reason})
        self.logger.info(f"🛑 Kill requested for task {task_id} on {topology}: {reason}")

    # ------------------------------------------------------------------
    # Downstream datasets
    # ------------------------------------------------------------------

    def create_dataset(self, dataset: Dataset) -> str:
        ecloud_dataset_id = dataset.ecloud_dataset_id or generate_id()
        response = self._request(
            "POST",
            "/datasets",
            json={
                "providerId": self.config.ecloud_provider,
                "datasetId": ecloud_dataset_id,
                "description": f"Metis dataset {dataset.dataset_id}",
            },
            accept_statuses=(409,)
        )
        if response.status_code == 409:
            self.logger.debug(f"Dataset {ecloud_dataset_id} already registered downstream")
        else:
            self.logger.info(f"📁 Registered dataset {dataset.dataset_id} downstream as {ecloud_dataset_id}")
        return ecloud_dataset_id

    def close(self) -> None:
        self._client.close()


__all__ = ["DpsClient", "TOPOLOGY_BY_PLUGIN_TYPE"]
