# ============================================================================
# EVENT SERVICE
# ============================================================================
# STATUS: Core - Lifecycle event emission
# PURPOSE: Build and publish the events announcing lifecycle transitions
# CREATED: 10 OCT 2026
# ============================================================================
"""
Event Service

Provides methods to emit events at key lifecycle points.

Emission is at-least-once: a failure raises EventEmissionError to the
calling operation, which rolls back its own steps so that redelivery of
the triggering request starts from the original state. Nothing here
swallows a publish failure.
"""

import logging
from typing import Optional

from core.contracts import AccountStatus, OrgGroup
from core.logging import log_checkpoint
from core.models.events import (
    AccountDriftDetectedEvent,
    AccountOrphanDetectedEvent,
    AccountQuarantinedEvent,
    CleanAccountRequestEvent,
    LeaseTerminatedEvent,
    LeaseTerminatedReason,
    LifecycleEvent,
)
from core.models.lease import ExpiredLease
from messaging.publisher import EventPublisher

logger = logging.getLogger(__name__)


class EventService:
    """Service for emitting lifecycle events."""

    def __init__(self, publisher: EventPublisher):
        """
        Initialize event service.

        Args:
            publisher: Delivers events to the event bus
        """
        self.publisher = publisher

    # =========================================================================
    # CORE EMIT METHOD
    # =========================================================================

    async def emit(self, *events: LifecycleEvent) -> None:
        """
        Publish ``events`` together.

        Raises:
            EventEmissionError: delivery failed
        """
        if not events:
            return
        await self.publisher.publish(list(events))
        for event in events:
            log_checkpoint(
                f"event_{event.detail_type.value}",
                event.model_dump(mode="json"),
                logger,
            )

    # =========================================================================
    # EVENT BUILDERS
    # =========================================================================

    @staticmethod
    def lease_terminated(lease: ExpiredLease) -> LeaseTerminatedEvent:
        return LeaseTerminatedEvent(
            lease_id=lease.key,
            account_id=lease.aws_account_id,
            reason=LeaseTerminatedReason.for_lease(lease),
        )

    @staticmethod
    def clean_account_request(account_id: str, reason: str) -> CleanAccountRequestEvent:
        return CleanAccountRequestEvent(account_id=account_id, reason=reason)

    @staticmethod
    def account_quarantined(account_id: str, reason: str) -> AccountQuarantinedEvent:
        return AccountQuarantinedEvent(account_id=account_id, reason=reason)

    @staticmethod
    def drift_detected(
        account_id: str,
        expected_group: Optional[OrgGroup],
        actual_group: Optional[OrgGroup],
    ) -> AccountDriftDetectedEvent:
        return AccountDriftDetectedEvent(
            account_id=account_id,
            expected_group=expected_group,
            actual_group=actual_group,
        )

    @staticmethod
    def orphan_detected(account_id: str, status: AccountStatus) -> AccountOrphanDetectedEvent:
        return AccountOrphanDetectedEvent(account_id=account_id, status=status)


__all__ = ["EventService"]
