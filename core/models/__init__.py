# ============================================================================
# MODELS MODULE
# ============================================================================
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# CREATED: 06 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

All Pydantic models for the lease orchestrator. Records are frozen; every
change produces a new instance that is written back through a repository.
"""

from core.models.metadata import ItemMetadata, stamp_metadata
from core.models.lease_template import BudgetThreshold, DurationThreshold, LeaseTemplate
from core.models.lease import (
    AUTO_APPROVED,
    LeaseKey,
    PendingLease,
    ApprovalDeniedLease,
    MonitoredLease,
    ExpiredLease,
    Lease,
    parse_lease,
    ttl_from,
)
from core.models.sandbox_account import CleanupExecutionContext, SandboxAccount
from core.models.user import SandboxUser
from core.models.events import EventDetailType, LifecycleEvent, parse_event

__all__ = [
    # Metadata
    "ItemMetadata",
    "stamp_metadata",
    # Templates
    "BudgetThreshold",
    "DurationThreshold",
    "LeaseTemplate",
    # Leases
    "AUTO_APPROVED",
    "LeaseKey",
    "PendingLease",
    "ApprovalDeniedLease",
    "MonitoredLease",
    "ExpiredLease",
    "Lease",
    "parse_lease",
    "ttl_from",
    # Accounts
    "CleanupExecutionContext",
    "SandboxAccount",
    # Users
    "SandboxUser",
    # Events
    "EventDetailType",
    "LifecycleEvent",
    "parse_event",
]
