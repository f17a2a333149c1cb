# ============================================================================
# EVENT PUBLISHER
# ============================================================================
# STATUS: Core - Lifecycle event delivery to Service Bus
# PURPOSE: At-least-once publication of typed lifecycle events
# CREATED: 09 OCT 2026
# ============================================================================
"""
Event Publisher

Publishes lifecycle events to an Azure Service Bus topic. Each event is one
message whose body is the JSON envelope and whose subject is the event's
detail-type, so subscriptions can filter by event name.

Delivery contract: publish() returns only once every event was accepted by
the broker. Transient broker failures are retried with exponential backoff;
permanent failures, or transient ones that outlast the retries, raise
EventEmissionError. The caller then fails its operation and is re-invoked
by its own redelivery, which gives at-least-once delivery end to end.
"""

import asyncio
import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from azure.servicebus import ServiceBusMessage
from azure.servicebus.aio import ServiceBusClient, ServiceBusSender
from azure.servicebus.exceptions import (
    MessageSizeExceededError,
    MessagingEntityNotFoundError,
    OperationTimeoutError,
    ServiceBusAuthenticationError,
    ServiceBusAuthorizationError,
    ServiceBusCommunicationError,
    ServiceBusConnectionError,
    ServiceBusError,
    ServiceBusQuotaExceededError,
    ServiceBusServerBusyError,
)

from __version__ import EVENT_SOURCE
from core.errors import EventEmissionError
from core.models.events import LifecycleEvent
from messaging.client import create_client
from messaging.config import MessagingConfig

logger = logging.getLogger(__name__)

PERMANENT_ERRORS = (
    ServiceBusAuthenticationError,
    ServiceBusAuthorizationError,
    MessageSizeExceededError,
    MessagingEntityNotFoundError,
    ServiceBusQuotaExceededError,
)

TRANSIENT_ERRORS = (
    OperationTimeoutError,
    ServiceBusServerBusyError,
    ServiceBusConnectionError,
    ServiceBusCommunicationError,
)


class EventPublisher(ABC):
    """Event-emission capability used by the lifecycle services."""

    @abstractmethod
    async def publish(self, events: Sequence[LifecycleEvent]) -> None:
        """
        Deliver ``events``.

        Raises:
            EventEmissionError: events could not be delivered
        """


class ServiceBusEventPublisher(EventPublisher):
    """Publisher for lifecycle events on a Service Bus topic."""

    def __init__(self, config: MessagingConfig, source: str = EVENT_SOURCE):
        """
        Initialize event publisher.

        Args:
            config: Messaging configuration
            source: Envelope ``source`` stamped on every event
        """
        self.config = config
        self.source = source
        self._client: Optional[ServiceBusClient] = None
        self._sender: Optional[ServiceBusSender] = None
        self._credential = None

    async def connect(self) -> None:
        """Establish connection to Service Bus."""
        if self._client is not None:
            return

        self._client, self._credential = create_client(self.config)
        self._sender = self._client.get_topic_sender(topic_name=self.config.events_topic)
        logger.info(f"Connected to Service Bus topic: {self.config.events_topic}")

    async def close(self) -> None:
        """Close connection to Service Bus."""
        if self._sender:
            await self._sender.close()
            self._sender = None

        if self._client:
            await self._client.close()
            self._client = None

        if self._credential:
            await self._credential.close()
            self._credential = None

        logger.info("Service Bus connection closed")

    def _to_message(self, event: LifecycleEvent, now: datetime) -> ServiceBusMessage:
        envelope = event.to_envelope(self.source, now)
        return ServiceBusMessage(
            body=json.dumps(envelope),
            message_id=str(uuid.uuid4()),
            content_type="application/json",
            subject=event.detail_type.value,
            application_properties={
                "detail_type": event.detail_type.value,
                "source": self.source,
            },
        )

    async def publish(self, events: Sequence[LifecycleEvent]) -> None:
        """
        Send ``events`` as one batch.

        Raises:
            EventEmissionError: permanent failure or retries exhausted
        """
        if not events:
            return

        if self._sender is None:
            await self.connect()

        now = datetime.now(timezone.utc)
        messages: List[ServiceBusMessage] = [self._to_message(e, now) for e in events]
        names = ", ".join(e.detail_type.value for e in events)

        for attempt in range(self.config.max_retries):
            try:
                await self._sender.send_messages(
                    messages, timeout=self.config.send_timeout_seconds
                )
                logger.info(f"Published {len(messages)} event(s): {names}")
                return

            except PERMANENT_ERRORS as e:
                # Permanent: won't resolve with retry
                logger.error(f"Permanent failure publishing {names}: {type(e).__name__}: {e}")
                raise EventEmissionError(f"Failed to publish {names}: {e}") from e

            except (*TRANSIENT_ERRORS, ServiceBusError) as e:
                logger.warning(
                    f"Transient error publishing {names} on attempt "
                    f"{attempt + 1}/{self.config.max_retries}: {type(e).__name__}"
                )
                if attempt == self.config.max_retries - 1:
                    raise EventEmissionError(
                        f"Failed to publish {names} after {self.config.max_retries} attempts: {e}"
                    ) from e
                await asyncio.sleep(self.config.retry_delay_seconds * (2 ** attempt))

    async def __aenter__(self) -> "ServiceBusEventPublisher":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


__all__ = ["EventPublisher", "ServiceBusEventPublisher"]
