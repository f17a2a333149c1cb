# ============================================================================
# LIFECYCLE EVENT MODELS
# ============================================================================
# STATUS: Core model - Typed lifecycle notifications
# PURPOSE: Payloads published to the event bus and consumed back
# CREATED: 06 OCT 2026
# ============================================================================
"""
Lifecycle Event Models

Every lifecycle transition is announced as a typed event. Events travel in
a small envelope:

    {
        "detail-type": "LeaseTerminated",
        "source": "sandbox-lease-orchestrator",
        "time": "2026-10-06T12:00:00+00:00",
        "detail": {...}
    }

Downstream collaborators (notifications, metrics, cleanup workflow) and the
lifecycle handler itself consume these. Delivery is at-least-once, so
consumers must tolerate duplicates.
"""

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Type

from pydantic import BaseModel, Field

from core.contracts import FrozenReason, LeaseStatus, OrgGroup, AccountStatus
from core.models.lease import ExpiredLease, LeaseKey
from core.models.lease_template import BudgetThreshold, DurationThreshold
from core.models.sandbox_account import CleanupExecutionContext


class EventDetailType(str, Enum):
    """Event names, used as the envelope's detail-type and message subject."""

    # Lease requests
    LEASE_REQUESTED = "LeaseRequested"
    LEASE_APPROVED = "LeaseApproved"
    LEASE_DENIED = "LeaseDenied"

    # Monitoring alerts
    LEASE_BUDGET_THRESHOLD_ALERT = "LeaseBudgetThresholdAlert"
    LEASE_DURATION_THRESHOLD_ALERT = "LeaseDurationThresholdAlert"
    LEASE_FREEZING_THRESHOLD_ALERT = "LeaseFreezingThresholdAlert"
    LEASE_BUDGET_EXCEEDED = "LeaseBudgetExceeded"
    LEASE_EXPIRED = "LeaseExpired"

    # Lease transitions
    LEASE_FROZEN = "LeaseFrozen"
    LEASE_UNFROZEN = "LeaseUnfrozen"
    LEASE_TERMINATED = "LeaseTerminated"

    # Account lifecycle
    CLEAN_ACCOUNT_REQUEST = "CleanAccountRequest"
    ACCOUNT_CLEANUP_SUCCEEDED = "AccountCleanupSucceeded"
    ACCOUNT_CLEANUP_FAILED = "AccountCleanupFailed"
    ACCOUNT_QUARANTINED = "AccountQuarantined"

    # Reconciliation
    ACCOUNT_DRIFT_DETECTED = "AccountDriftDetected"
    ACCOUNT_ORPHAN_DETECTED = "AccountOrphanDetected"


class LifecycleEvent(BaseModel):
    """Base class. Subclasses set ``detail_type``."""

    detail_type: ClassVar[EventDetailType]

    model_config = {"frozen": True}

    def to_envelope(self, source: str, time: datetime) -> Dict[str, Any]:
        return {
            "detail-type": self.detail_type.value,
            "source": source,
            "time": time.isoformat(),
            "detail": self.model_dump(mode="json"),
        }


# ============================================================================
# REASONS
# ============================================================================

class FreezeReason(BaseModel):
    """Why a lease is (or should be) frozen."""

    model_config = {"frozen": True}

    type: FrozenReason
    comment: Optional[str] = None
    triggered_budget_threshold: Optional[float] = None
    budget: Optional[float] = None
    total_spend: Optional[float] = None
    triggered_duration_threshold: Optional[float] = None
    lease_duration_in_hours: Optional[float] = None


class LeaseTerminatedReason(BaseModel):
    """Terminal status plus the figures that explain it."""

    model_config = {"frozen": True}

    type: LeaseStatus
    lease_duration_in_hours: Optional[float] = None
    budget: Optional[float] = None
    total_spend: Optional[float] = None
    comment: Optional[str] = None

    @classmethod
    def for_lease(cls, lease: ExpiredLease) -> "LeaseTerminatedReason":
        status = LeaseStatus(lease.status)
        if status == LeaseStatus.EXPIRED:
            return cls(type=status, lease_duration_in_hours=lease.lease_duration_in_hours)
        if status == LeaseStatus.BUDGET_EXCEEDED:
            return cls(type=status, budget=lease.max_spend, total_spend=lease.total_cost_accrued)
        comments = {
            LeaseStatus.MANUALLY_TERMINATED: "Terminated by admin",
            LeaseStatus.ACCOUNT_QUARANTINED: "Account was quarantined",
            LeaseStatus.EJECTED: "Account was ejected from the pool",
        }
        return cls(type=status, comment=comments[status])


# ============================================================================
# LEASE EVENTS
# ============================================================================

class LeaseRequestedEvent(LifecycleEvent):
    detail_type: ClassVar[EventDetailType] = EventDetailType.LEASE_REQUESTED

    lease_id: LeaseKey
    user_email: str
    requires_manual_approval: bool
    comments: Optional[str] = None


class LeaseApprovedEvent(LifecycleEvent):
    detail_type: ClassVar[EventDetailType] = EventDetailType.LEASE_APPROVED

    lease_id: LeaseKey
    user_email: str
    account_id: str
    approved_by: str


class LeaseDeniedEvent(LifecycleEvent):
    detail_type: ClassVar[EventDetailType] = EventDetailType.LEASE_DENIED

    lease_id: LeaseKey
    user_email: str
    denied_by: str


class LeaseFrozenEvent(LifecycleEvent):
    detail_type: ClassVar[EventDetailType] = EventDetailType.LEASE_FROZEN

    lease_id: LeaseKey
    account_id: str
    reason: FreezeReason


class LeaseUnfrozenEvent(LifecycleEvent):
    detail_type: ClassVar[EventDetailType] = EventDetailType.LEASE_UNFROZEN

    lease_id: LeaseKey
    account_id: str


class LeaseTerminatedEvent(LifecycleEvent):
    detail_type: ClassVar[EventDetailType] = EventDetailType.LEASE_TERMINATED

    lease_id: LeaseKey
    account_id: str
    reason: LeaseTerminatedReason


# ============================================================================
# MONITORING EVENTS
# ============================================================================

class LeaseBudgetThresholdAlertEvent(LifecycleEvent):
    detail_type: ClassVar[EventDetailType] = EventDetailType.LEASE_BUDGET_THRESHOLD_ALERT

    lease_id: LeaseKey
    account_id: str
    budget: Optional[float] = None
    total_spend: float
    budget_threshold: BudgetThreshold


class LeaseDurationThresholdAlertEvent(LifecycleEvent):
    detail_type: ClassVar[EventDetailType] = EventDetailType.LEASE_DURATION_THRESHOLD_ALERT

    lease_id: LeaseKey
    account_id: str
    lease_duration_in_hours: Optional[float] = None
    duration_threshold: DurationThreshold


class LeaseFreezingThresholdAlertEvent(LifecycleEvent):
    detail_type: ClassVar[EventDetailType] = EventDetailType.LEASE_FREEZING_THRESHOLD_ALERT

    lease_id: LeaseKey
    account_id: str
    reason: FreezeReason


class LeaseBudgetExceededEvent(LifecycleEvent):
    detail_type: ClassVar[EventDetailType] = EventDetailType.LEASE_BUDGET_EXCEEDED

    lease_id: LeaseKey
    account_id: str
    budget: Optional[float] = None
    total_spend: float


class LeaseExpiredEvent(LifecycleEvent):
    detail_type: ClassVar[EventDetailType] = EventDetailType.LEASE_EXPIRED

    lease_id: LeaseKey
    account_id: str
    lease_expiration_date: datetime


# ============================================================================
# ACCOUNT EVENTS
# ============================================================================

class CleanAccountRequestEvent(LifecycleEvent):
    detail_type: ClassVar[EventDetailType] = EventDetailType.CLEAN_ACCOUNT_REQUEST

    account_id: str
    reason: str


class AccountCleanupSucceededEvent(LifecycleEvent):
    detail_type: ClassVar[EventDetailType] = EventDetailType.ACCOUNT_CLEANUP_SUCCEEDED

    account_id: str
    cleanup_execution_context: Optional[CleanupExecutionContext] = None


class AccountCleanupFailedEvent(LifecycleEvent):
    detail_type: ClassVar[EventDetailType] = EventDetailType.ACCOUNT_CLEANUP_FAILED

    account_id: str
    cleanup_execution_context: Optional[CleanupExecutionContext] = None


class AccountQuarantinedEvent(LifecycleEvent):
    detail_type: ClassVar[EventDetailType] = EventDetailType.ACCOUNT_QUARANTINED

    account_id: str
    reason: str


class AccountDriftDetectedEvent(LifecycleEvent):
    detail_type: ClassVar[EventDetailType] = EventDetailType.ACCOUNT_DRIFT_DETECTED

    account_id: str
    expected_group: Optional[OrgGroup] = Field(
        default=None,
        description="Group implied by the stored status; None for untracked accounts",
    )
    actual_group: Optional[OrgGroup] = Field(
        default=None,
        description="Group reported by the directory; None if in no known group",
    )


class AccountOrphanDetectedEvent(LifecycleEvent):
    detail_type: ClassVar[EventDetailType] = EventDetailType.ACCOUNT_ORPHAN_DETECTED

    account_id: str
    status: AccountStatus


# ============================================================================
# REGISTRY
# ============================================================================

EVENT_TYPES: Dict[EventDetailType, Type[LifecycleEvent]] = {
    cls.detail_type: cls
    for cls in (
        LeaseRequestedEvent,
        LeaseApprovedEvent,
        LeaseDeniedEvent,
        LeaseFrozenEvent,
        LeaseUnfrozenEvent,
        LeaseTerminatedEvent,
        LeaseBudgetThresholdAlertEvent,
        LeaseDurationThresholdAlertEvent,
        LeaseFreezingThresholdAlertEvent,
        LeaseBudgetExceededEvent,
        LeaseExpiredEvent,
        CleanAccountRequestEvent,
        AccountCleanupSucceededEvent,
        AccountCleanupFailedEvent,
        AccountQuarantinedEvent,
        AccountDriftDetectedEvent,
        AccountOrphanDetectedEvent,
    )
}


def parse_event(envelope: Dict[str, Any]) -> LifecycleEvent:
    """
    Rebuild a typed event from its envelope.

    Raises:
        ValueError: unknown detail-type
        pydantic.ValidationError: malformed detail
    """
    detail_type = EventDetailType(envelope["detail-type"])
    return EVENT_TYPES[detail_type].model_validate(envelope.get("detail") or {})


__all__ = [
    "EventDetailType",
    "LifecycleEvent",
    "FreezeReason",
    "LeaseTerminatedReason",
    "LeaseRequestedEvent",
    "LeaseApprovedEvent",
    "LeaseDeniedEvent",
    "LeaseFrozenEvent",
    "LeaseUnfrozenEvent",
    "LeaseTerminatedEvent",
    "LeaseBudgetThresholdAlertEvent",
    "LeaseDurationThresholdAlertEvent",
    "LeaseFreezingThresholdAlertEvent",
    "LeaseBudgetExceededEvent",
    "LeaseExpiredEvent",
    "CleanAccountRequestEvent",
    "AccountCleanupSucceededEvent",
    "AccountCleanupFailedEvent",
    "AccountQuarantinedEvent",
    "AccountDriftDetectedEvent",
    "AccountOrphanDetectedEvent",
    "EVENT_TYPES",
    "parse_event",
]
