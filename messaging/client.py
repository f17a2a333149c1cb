# ============================================================================
# SERVICE BUS CLIENT FACTORY
# ============================================================================
# STATUS: Core - Shared Service Bus client construction
# PURPOSE: One place deciding managed identity vs connection string
# CREATED: 09 OCT 2026
# ============================================================================
"""Builds async Service Bus clients from MessagingConfig."""

import logging
from typing import Any, Optional, Tuple

from azure.identity.aio import ManagedIdentityCredential
from azure.servicebus.aio import ServiceBusClient

from messaging.config import MessagingConfig

logger = logging.getLogger(__name__)


def create_client(config: MessagingConfig) -> Tuple[ServiceBusClient, Optional[Any]]:
    """
    Create a ServiceBusClient.

    Returns:
        (client, credential). The credential is None for connection string
        auth and must be closed by the caller otherwise.
    """
    if config.use_managed_identity:
        if config.managed_identity_client_id:
            credential = ManagedIdentityCredential(client_id=config.managed_identity_client_id)
        else:
            credential = ManagedIdentityCredential()
        client = ServiceBusClient(
            fully_qualified_namespace=config.fully_qualified_namespace,
            credential=credential,
        )
        logger.info(
            f"Connecting to Service Bus via managed identity: {config.fully_qualified_namespace}"
        )
        return client, credential

    logger.info("Connecting to Service Bus via connection string")
    return ServiceBusClient.from_connection_string(config.connection_string), None
