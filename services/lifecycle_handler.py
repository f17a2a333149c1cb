# ============================================================================
# ACCOUNT LIFECYCLE HANDLER
# ============================================================================
# STATUS: Core - Event-driven lifecycle automation
# PURPOSE: Map consumed lifecycle events onto engine operations
# CREATED: 13 OCT 2026
# ============================================================================
"""
Account Lifecycle Handler

Consumes events and drives the engine:

    LeaseBudgetExceeded           -> terminate lease (BudgetExceeded)
    LeaseExpired                  -> terminate lease (Expired)
    LeaseFreezingThresholdAlert   -> freeze lease
    AccountCleanupSucceeded       -> CleanUp -> Available
    AccountCleanupFailed          -> quarantine from CleanUp
    AccountDriftDetected          -> quarantine from the actual group, or
                                     mark Ejected if it is in Exit or no group

Every other event type is informational here and is acknowledged without
action.

Delivery is at-least-once, so a lease that is already past the state the
event asks for (terminated, frozen, gone) is a duplicate and is skipped.
Other failures propagate so the consumer abandons the message.
"""

import logging
from typing import Awaitable, Callable, Dict, Type

from core.contracts import LeaseStatus, OrgGroup
from core.logging import log_context
from core.models.events import (
    AccountCleanupFailedEvent,
    AccountCleanupSucceededEvent,
    AccountDriftDetectedEvent,
    LeaseBudgetExceededEvent,
    LeaseExpiredEvent,
    LeaseFreezingThresholdAlertEvent,
    LifecycleEvent,
)
from core.models.lease import LeaseKey, MonitoredLease
from repositories.lease_repo import LeaseRepository
from services.lease_service import LeaseLifecycleEngine

logger = logging.getLogger(__name__)


class AccountLifecycleHandler:
    """Routes lifecycle events to engine operations."""

    def __init__(self, engine: LeaseLifecycleEngine, lease_repo: LeaseRepository):
        self.engine = engine
        self.lease_repo = lease_repo
        self._routes: Dict[Type[LifecycleEvent], Callable[[LifecycleEvent], Awaitable[None]]] = {
            LeaseBudgetExceededEvent: self._on_budget_exceeded,
            LeaseExpiredEvent: self._on_expired,
            LeaseFreezingThresholdAlertEvent: self._on_freezing_threshold,
            AccountCleanupSucceededEvent: self._on_cleanup_succeeded,
            AccountCleanupFailedEvent: self._on_cleanup_failed,
            AccountDriftDetectedEvent: self._on_drift_detected,
        }

    async def handle(self, event: LifecycleEvent) -> None:
        route = self._routes.get(type(event))
        if route is None:
            logger.debug(f"No lifecycle action for {event.detail_type.value}")
            return
        logger.info(f"Handling {event.detail_type.value}")
        await route(event)

    # =========================================================================
    # LEASE EVENTS
    # =========================================================================

    async def _on_budget_exceeded(self, event: LeaseBudgetExceededEvent) -> None:
        lease = await self._monitored_lease(event.lease_id)
        if lease is not None:
            await self.engine.terminate_lease(lease, LeaseStatus.BUDGET_EXCEEDED)

    async def _on_expired(self, event: LeaseExpiredEvent) -> None:
        lease = await self._monitored_lease(event.lease_id)
        if lease is not None:
            await self.engine.terminate_lease(lease, LeaseStatus.EXPIRED)

    async def _on_freezing_threshold(self, event: LeaseFreezingThresholdAlertEvent) -> None:
        lease = await self._monitored_lease(event.lease_id)
        if lease is None:
            return
        if lease.status != LeaseStatus.ACTIVE:
            logger.info(f"Lease {lease.key} is already {lease.status}, not freezing")
            return
        await self.engine.freeze_lease(lease, event.reason)

    async def _monitored_lease(self, key: LeaseKey):
        with log_context(lease_id=str(key)):
            lease = await self.lease_repo.get_by_key(key)
            if lease is None:
                logger.warning(f"Lease {key} not found, ignoring event")
                return None
            if not isinstance(lease, MonitoredLease):
                logger.info(f"Lease {key} is {lease.status}, event already handled")
                return None
            return lease

    # =========================================================================
    # ACCOUNT EVENTS
    # =========================================================================

    async def _on_cleanup_succeeded(self, event: AccountCleanupSucceededEvent) -> None:
        await self.engine.complete_cleanup(event.account_id)

    async def _on_cleanup_failed(self, event: AccountCleanupFailedEvent) -> None:
        await self.engine.quarantine_account(
            event.account_id, OrgGroup.CLEANUP, reason="Account cleanup failed"
        )

    async def _on_drift_detected(self, event: AccountDriftDetectedEvent) -> None:
        if event.actual_group in (None, OrgGroup.EXIT):
            await self.engine.mark_account_ejected(event.account_id)
            return
        expected = event.expected_group.value if event.expected_group else "untracked"
        await self.engine.quarantine_account(
            event.account_id,
            event.actual_group,
            reason=f"Drift detected: expected {expected}, found in {event.actual_group.value}",
        )


__all__ = ["AccountLifecycleHandler"]
