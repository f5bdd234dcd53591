"""
Service Bus Execution Queue.

Execution queue on Azure Service Bus with one queue per priority class
("{prefix}-p0" ... "{prefix}-p{highest}"). Message body is the execution
id; application_properties["priority"] carries the priority. Consumers
poll the classes highest first, so delivery is strictly by priority and
FIFO within a class.

Authentication:
    - ServiceBusConnection set: connection string (local development)
    - Otherwise: SERVICE_BUS_NAMESPACE with DefaultAzureCredential

Exports:
    ServiceBusExecutionQueue: IExecutionQueue implementation
"""

import threading
import time
from typing import Dict, Optional

from azure.identity import DefaultAzureCredential
from azure.servicebus import ServiceBusClient, ServiceBusMessage, ServiceBusSender

from config import QueueConfig
from config.defaults import QueueDefaults
from exceptions import ConfigurationError, ServiceBusError
from infrastructure.interface_repository import IExecutionQueue, QueueMessage
from infrastructure.queue import clamp_priority
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.REPOSITORY, "ServiceBusExecutionQueue")


class ServiceBusExecutionQueue(IExecutionQueue):
    """
    Priority execution queue on Service Bus.

    Senders are cached per queue; receivers are created per pull and
    closed by their context manager.
    """

    def __init__(self, config: QueueConfig, client: Optional[ServiceBusClient] = None):
        """
        Args:
            config: Queue configuration (priorities, auth, retries)
            client: Pre-built client; built from config when omitted
        """
        self.config = config
        self.max_retries = max(config.retry_count, 1)
        self.retry_delay = QueueDefaults.RETRY_DELAY_SECS
        self._senders: Dict[str, ServiceBusSender] = {}
        self._senders_lock = threading.Lock()
        self.client = client or self._create_client()
        logger.info(
            f"✅ ServiceBusExecutionQueue initialized "
            f"(prefix={config.queue_prefix}, priorities=0..{config.highest_priority})"
        )

    def _create_client(self) -> ServiceBusClient:
        if self.config.connection_string:
            logger.info("🔑 Using connection string authentication")
            return ServiceBusClient.from_connection_string(self.config.connection_string)

        if not self.config.namespace:
            raise ConfigurationError(
                "Service Bus queue requires ServiceBusConnection or SERVICE_BUS_NAMESPACE"
            )
        logger.info(f"🔐 Using DefaultAzureCredential for namespace {self.config.namespace}")
        return ServiceBusClient(
            fully_qualified_namespace=self.config.namespace,
            credential=DefaultAzureCredential()
        )

    def _get_sender(self, queue_name: str) -> ServiceBusSender:
        with self._senders_lock:
            if queue_name not in self._senders:
                logger.debug(f"🚌 Creating new sender for queue: {queue_name}")
                self._senders[queue_name] = self.client.get_queue_sender(queue_name)
            return self._senders[queue_name]

    def push(self, execution_id: str, priority: int) -> None:
        priority = clamp_priority(priority, self.config.highest_priority)
        queue_name = self.config.queue_name(priority)
        message = ServiceBusMessage(
            body=execution_id,
            content_type="text/plain",
            application_properties={"priority": priority}
        )

        for attempt in range(self.max_retries):
            try:
                self._get_sender(queue_name).send_messages(message)
                logger.info(f"📤 Execution {execution_id} sent to {queue_name}")
                return
            except Exception as e:
                logger.warning(
                    f"⚠️ Send attempt {attempt + 1}/{self.max_retries} to {queue_name} failed: "
                    f"{type(e).__name__}: {e}"
                )
                if attempt == self.max_retries - 1:
                    raise ServiceBusError(
                        f"Failed to send execution {execution_id} to {queue_name} "
                        f"after {self.max_retries} attempts: {e}"
                    ) from e
                time.sleep(self.retry_delay * (2 ** attempt))

    def pull(self, timeout: float) -> Optional[QueueMessage]:
        queue_names = self.config.queue_names()
        wait = min(max(timeout / len(queue_names), 0.1), float(self.config.max_wait_secs))

        for priority, queue_name in zip(range(self.config.highest_priority, -1, -1), queue_names):
            try:
                with self.client.get_queue_receiver(queue_name) as receiver:
                    messages = receiver.receive_messages(max_message_count=1, max_wait_time=wait)
                    for msg in messages:
                        execution_id = str(msg).strip()
                        receiver.complete_message(msg)
                        logger.debug(f"📥 Received execution {execution_id} from {queue_name}")
                        return QueueMessage(
                            execution_id=execution_id,
                            priority=priority,
                            message_id=msg.message_id
                        )
            except Exception as e:
                raise ServiceBusError(f"Failed to receive from {queue_name}: {e}") from e
        return None

    def close(self) -> None:
        with self._senders_lock:
            for queue_name, sender in self._senders.items():
                try:
                    sender.close()
                except Exception as e:
                    logger.warning(f"⚠️ Failed to close sender for {queue_name}: {e}")
            self._senders.clear()
        self.client.close()


__all__ = ["ServiceBusExecutionQueue"]
