# ============================================================================
# CORE MODULE
# ============================================================================
# STATUS: Core module initialization
# PURPOSE: Export core contracts, errors and models
# CREATED: 06 OCT 2026
# ============================================================================

from core.contracts import AccountStatus, LeaseStatus, OrgGroup
from core.errors import ErrorKind, SandboxError
from core.models import (
    LeaseTemplate,
    PendingLease,
    MonitoredLease,
    ExpiredLease,
    SandboxAccount,
)

__all__ = [
    # Enums
    "AccountStatus",
    "LeaseStatus",
    "OrgGroup",
    # Errors
    "ErrorKind",
    "SandboxError",
    # Models
    "LeaseTemplate",
    "PendingLease",
    "MonitoredLease",
    "ExpiredLease",
    "SandboxAccount",
]
