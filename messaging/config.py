# ============================================================================
# MESSAGING CONFIGURATION
# ============================================================================
# STATUS: Core - Service Bus configuration
# PURPOSE: Centralize event bus configuration
# CREATED: 09 OCT 2026
# ============================================================================
"""
Messaging Configuration

Configuration for the Azure Service Bus topic that carries lifecycle events
and the subscription the lifecycle consumer reads from. Supports both
connection string and managed identity authentication.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class MessagingConfig:
    """
    Configuration for Azure Service Bus messaging.

    Loaded from environment variables.
    """
    # Connection - either connection_string OR fully_qualified_namespace
    connection_string: Optional[str] = None
    fully_qualified_namespace: Optional[str] = None

    # Managed identity settings
    use_managed_identity: bool = False
    managed_identity_client_id: Optional[str] = None

    # Topic every lifecycle event is published to
    events_topic: str = ""
    # Subscription the lifecycle consumer drains
    lifecycle_subscription: str = ""

    # Timeouts
    send_timeout_seconds: float = 30.0
    receive_wait_seconds: float = 5.0

    # Retry configuration for publishing
    max_retries: int = 3
    retry_delay_seconds: float = 1.0

    @classmethod
    def from_env(cls) -> "MessagingConfig":
        """
        Load configuration from environment variables.

        For connection string auth:
            SANDBOX_SERVICEBUS_CONNECTION_STRING: Service Bus connection string

        For managed identity auth:
            USE_MANAGED_IDENTITY: Set to "true" to use managed identity
            SANDBOX_SERVICEBUS_FQDN: Fully qualified namespace
            AZURE_CLIENT_ID: Optional client ID for user-assigned managed identity

        Common:
            SANDBOX_EVENTS_TOPIC: Lifecycle event topic (REQUIRED)
            SANDBOX_LIFECYCLE_SUBSCRIPTION: Consumer subscription
        """
        events_topic = os.environ.get("SANDBOX_EVENTS_TOPIC")
        if not events_topic:
            raise ValueError("SANDBOX_EVENTS_TOPIC environment variable is required")

        common = dict(
            events_topic=events_topic,
            lifecycle_subscription=os.environ.get("SANDBOX_LIFECYCLE_SUBSCRIPTION", "lifecycle"),
            send_timeout_seconds=float(os.environ.get("SERVICE_BUS_SEND_TIMEOUT_SECONDS", 30)),
            max_retries=int(os.environ.get("SERVICE_BUS_RETRY_COUNT", 3)),
            retry_delay_seconds=float(os.environ.get("SERVICE_BUS_RETRY_DELAY", 1.0)),
        )

        use_mi = os.environ.get("USE_MANAGED_IDENTITY", "").lower() == "true"

        if use_mi:
            fqdn = os.environ.get("SANDBOX_SERVICEBUS_FQDN")
            if not fqdn:
                raise ValueError(
                    "SANDBOX_SERVICEBUS_FQDN required when USE_MANAGED_IDENTITY=true"
                )
            return cls(
                use_managed_identity=True,
                fully_qualified_namespace=fqdn,
                managed_identity_client_id=os.environ.get("AZURE_CLIENT_ID"),
                **common,
            )

        connection_string = os.environ.get("SANDBOX_SERVICEBUS_CONNECTION_STRING")
        if not connection_string:
            raise ValueError(
                "SANDBOX_SERVICEBUS_CONNECTION_STRING required (or set USE_MANAGED_IDENTITY=true)"
            )
        return cls(connection_string=connection_string, **common)
