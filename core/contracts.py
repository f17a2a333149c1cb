# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# STATUS: Foundation - Core enums for leases, accounts and directory groups
# PURPOSE: Status vocabulary shared by records, directory and events
# CREATED: 06 OCT 2026
# ============================================================================
"""
Base contracts for the sandbox lease orchestrator.

These enums cross every boundary:
- SQL (PostgreSQL record store)
- Directory (organizational group placement)
- Queue (Azure Service Bus lifecycle events)
"""

from enum import Enum
from typing import Optional


# ============================================================================
# LEASE STATUS
# ============================================================================

class LeaseStatus(str, Enum):
    """
    Lease lifecycle states.

    State transitions:
        PENDING_APPROVAL -> APPROVAL_DENIED
                         -> ACTIVE <-> FROZEN
        ACTIVE | FROZEN  -> EXPIRED | BUDGET_EXCEEDED | MANUALLY_TERMINATED
                            | ACCOUNT_QUARANTINED | EJECTED
    """
    PENDING_APPROVAL = "PendingApproval"
    APPROVAL_DENIED = "ApprovalDenied"
    ACTIVE = "Active"
    FROZEN = "Frozen"
    EXPIRED = "Expired"
    BUDGET_EXCEEDED = "BudgetExceeded"
    MANUALLY_TERMINATED = "ManuallyTerminated"
    ACCOUNT_QUARANTINED = "AccountQuarantined"
    EJECTED = "Ejected"

    def is_pending(self) -> bool:
        return self == LeaseStatus.PENDING_APPROVAL

    def is_monitored(self) -> bool:
        """Active and Frozen leases hold an account and are cost-monitored."""
        return self in MONITORED_LEASE_STATUSES

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (no further transitions)."""
        return self == LeaseStatus.APPROVAL_DENIED or self in EXPIRED_LEASE_STATUSES


MONITORED_LEASE_STATUSES = frozenset({LeaseStatus.ACTIVE, LeaseStatus.FROZEN})

EXPIRED_LEASE_STATUSES = frozenset({
    LeaseStatus.EXPIRED,
    LeaseStatus.BUDGET_EXCEEDED,
    LeaseStatus.MANUALLY_TERMINATED,
    LeaseStatus.ACCOUNT_QUARANTINED,
    LeaseStatus.EJECTED,
})


# ============================================================================
# DIRECTORY GROUPS
# ============================================================================

class OrgGroup(str, Enum):
    """
    Organizational groups an account can be placed in.

    Entry and Exit are transient onboarding/offboarding placements.
    """
    AVAILABLE = "Available"
    ACTIVE = "Active"
    CLEANUP = "CleanUp"
    QUARANTINE = "Quarantine"
    FROZEN = "Frozen"
    ENTRY = "Entry"
    EXIT = "Exit"

    def is_transient(self) -> bool:
        """Accounts in transient groups are expected to have no record."""
        return self in (OrgGroup.ENTRY, OrgGroup.EXIT)


# ============================================================================
# ACCOUNT STATUS
# ============================================================================

class AccountStatus(str, Enum):
    """
    Stored account status. Mirrors the account's directory group.

    EJECTED is terminal and corresponds to the Exit group.
    """
    AVAILABLE = "Available"
    ACTIVE = "Active"
    CLEANUP = "CleanUp"
    QUARANTINE = "Quarantine"
    FROZEN = "Frozen"
    EJECTED = "Ejected"

    @property
    def group(self) -> OrgGroup:
        """Directory group this status must be placed in."""
        if self == AccountStatus.EJECTED:
            return OrgGroup.EXIT
        return OrgGroup(self.value)

    @classmethod
    def for_group(cls, group: OrgGroup) -> "AccountStatus":
        """Status recorded for an account placed in ``group``."""
        if group == OrgGroup.EXIT:
            return cls.EJECTED
        if group == OrgGroup.ENTRY:
            raise ValueError("Entry is an onboarding placement with no stored status")
        return cls(group.value)

    def matches_group(self, group: Optional[OrgGroup]) -> bool:
        """
        Check stored status against a directory placement.

        An ejected account may already have left the organization, so an
        absent placement also counts as in sync.
        """
        if self == AccountStatus.EJECTED:
            return group in (None, OrgGroup.EXIT)
        return group == self.group


# ============================================================================
# THRESHOLD ACTIONS
# ============================================================================

class ThresholdAction(str, Enum):
    """Action taken when a lease crosses a budget or duration threshold."""
    ALERT = "ALERT"
    FREEZE_ACCOUNT = "FREEZE_ACCOUNT"


class FrozenReason(str, Enum):
    """Why a lease was frozen."""
    EXPIRED = "Expired"
    BUDGET_EXCEEDED = "BudgetExceeded"
    MANUALLY_FROZEN = "ManuallyFrozen"


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "LeaseStatus",
    "MONITORED_LEASE_STATUSES",
    "EXPIRED_LEASE_STATUSES",
    "OrgGroup",
    "AccountStatus",
    "ThresholdAction",
    "FrozenReason",
]
