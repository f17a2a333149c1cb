# ============================================================================
# MESSAGING MODULE
# ============================================================================
# STATUS: Core - Azure Service Bus integration
# PURPOSE: Publish lifecycle events, consume them back for automation
# CREATED: 09 OCT 2026
# ============================================================================
"""
Messaging Module

Provides Azure Service Bus integration for lifecycle events.

Usage:
    from messaging import MessagingConfig, ServiceBusEventPublisher

    async with ServiceBusEventPublisher(MessagingConfig.from_env()) as publisher:
        await publisher.publish([event])
"""

from .config import MessagingConfig
from .publisher import EventPublisher, ServiceBusEventPublisher
from .consumer import LifecycleEventConsumer, LifecycleEventHandler

__all__ = [
    "MessagingConfig",
    "EventPublisher",
    "ServiceBusEventPublisher",
    "LifecycleEventConsumer",
    "LifecycleEventHandler",
]
