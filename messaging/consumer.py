# ============================================================================
# LIFECYCLE EVENT CONSUMER
# ============================================================================
# STATUS: Core - Service Bus subscription consumer
# PURPOSE: Feed lifecycle events to the account lifecycle handler, in order
# CREATED: 09 OCT 2026
# ============================================================================
"""
Lifecycle Event Consumer

Drains the lifecycle subscription of the events topic and hands each event
to the AccountLifecycleHandler.

- One outstanding message at a time, so events about the same account are
  handled in the order they were delivered.
- Success completes the message. A handler failure abandons it so Service
  Bus redelivers it (at-least-once); the subscription's max delivery count
  eventually dead-letters a message that keeps failing.
- Unparseable bodies and unknown event types are dead-lettered at once.
"""

import asyncio
import json
import logging
from typing import Optional, Protocol

from azure.servicebus import ServiceBusReceivedMessage
from azure.servicebus.aio import ServiceBusClient, ServiceBusReceiver
from pydantic import ValidationError

from core.logging import log_context
from core.models.events import LifecycleEvent, parse_event
from messaging.client import create_client
from messaging.config import MessagingConfig

logger = logging.getLogger(__name__)


class LifecycleEventHandler(Protocol):
    async def handle(self, event: LifecycleEvent) -> None: ...


class LifecycleEventConsumer:
    """Consumes lifecycle events from a Service Bus subscription."""

    def __init__(
        self,
        config: MessagingConfig,
        handler: LifecycleEventHandler,
        receiver: Optional[ServiceBusReceiver] = None,
    ):
        """
        Initialize consumer.

        Args:
            config: Messaging configuration
            handler: Receives each parsed event
            receiver: Pre-built receiver (tests); created on start otherwise
        """
        self.config = config
        self.handler = handler
        self._client: Optional[ServiceBusClient] = None
        self._receiver: Optional[ServiceBusReceiver] = receiver
        self._credential = None

        self._running = False
        self._shutdown_event = asyncio.Event()

        self._stats = {
            "received": 0,
            "completed": 0,
            "abandoned": 0,
            "dead_lettered": 0,
        }

    @property
    def stats(self) -> dict:
        return {**self._stats, "running": self._running}

    async def start(self) -> None:
        """Connect to the subscription."""
        if self._running:
            logger.warning("Consumer already running")
            return

        if self._receiver is None:
            self._client, self._credential = create_client(self.config)
            self._receiver = self._client.get_subscription_receiver(
                topic_name=self.config.events_topic,
                subscription_name=self.config.lifecycle_subscription,
            )

        self._running = True
        self._shutdown_event.clear()
        logger.info(
            f"Consumer started on {self.config.events_topic}/{self.config.lifecycle_subscription}"
        )

    async def stop(self) -> None:
        """Stop receiving and close connections."""
        if not self._running:
            return

        logger.info("Stopping consumer...")
        self._running = False
        self._shutdown_event.set()

        if self._receiver:
            await self._receiver.close()
            self._receiver = None

        if self._client:
            await self._client.close()
            self._client = None

        if self._credential:
            await self._credential.close()
            self._credential = None

        logger.info(f"Consumer stopped. Stats: {self._stats}")

    async def run(self) -> None:
        """Receive and handle messages until stop() is called."""
        await self.start()

        try:
            while self._running:
                try:
                    await self.receive_once()
                except Exception as e:
                    logger.exception(f"Error in receive loop: {e}")
                    await asyncio.sleep(1)  # Brief pause before retry
        finally:
            await self.stop()

    async def receive_once(self) -> int:
        """
        Receive at most one message and process it to settlement.

        Returns:
            Number of messages received (0 or 1)
        """
        if not self._receiver:
            return 0

        messages = await self._receiver.receive_messages(
            max_message_count=1,
            max_wait_time=self.config.receive_wait_seconds,
        )
        for message in messages:
            self._stats["received"] += 1
            await self._process_message(message)
        return len(messages)

    async def _process_message(self, message: ServiceBusReceivedMessage) -> None:
        try:
            envelope = json.loads(str(message))
            event = parse_event(envelope)
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            logger.error(f"Undeliverable lifecycle message {message.message_id}: {e}")
            await self._receiver.dead_letter_message(
                message,
                reason="invalid_event",
                error_description=str(e)[:1024],
            )
            self._stats["dead_lettered"] += 1
            return

        with log_context(correlation_id=message.message_id, operation=event.detail_type.value):
            try:
                await self.handler.handle(event)
            except Exception as e:
                logger.exception(
                    f"Handler failed for {event.detail_type.value} "
                    f"(delivery {message.delivery_count}): {e}"
                )
                await self._receiver.abandon_message(message)
                self._stats["abandoned"] += 1
                return

        await self._receiver.complete_message(message)
        self._stats["completed"] += 1


__all__ = ["LifecycleEventConsumer", "LifecycleEventHandler"]
