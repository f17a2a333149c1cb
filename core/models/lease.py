# ============================================================================
# LEASE MODEL
# ============================================================================
# STATUS: Core model - Lease lifecycle as a closed set of phase variants
# PURPOSE: One variant per phase, each carrying only the fields valid there
# CREATED: 06 OCT 2026
# ============================================================================
"""
Lease Model

A lease grants one pooled account to one user for a bounded time/budget.
It is modelled as a tagged union discriminated on ``status``:

    PendingLease          PendingApproval
    ApprovalDeniedLease   ApprovalDenied                (terminal, has ttl)
    MonitoredLease        Active | Frozen               (has aws_account_id)
    ExpiredLease          Expired | BudgetExceeded |    (terminal, has
                          ManuallyTerminated |           aws_account_id,
                          AccountQuarantined | Ejected   end_date and ttl)

Transition methods take one variant and return another, so a lease can
never carry an account id before approval or a ttl before it is terminal.
Policy fields (template uuid/name, duration, max spend, thresholds) are
copied from the template at request time and never change afterwards.

Key: (user_email, uuid)
"""

from datetime import datetime, timedelta
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from core.contracts import LeaseStatus, EXPIRED_LEASE_STATUSES
from core.errors import LeaseNotInRequiredStateError
from core.models.lease_template import BudgetThreshold, DurationThreshold, LeaseTemplate
from core.models.metadata import ItemMetadata

# approved_by sentinel for leases approved without a manager
AUTO_APPROVED = "AUTO_APPROVED"


class LeaseKey(BaseModel):
    """Composite identity of a lease."""

    model_config = {"frozen": True}

    user_email: str
    uuid: str

    def __str__(self) -> str:
        return f"{self.user_email}/{self.uuid}"


class _LeaseBase(BaseModel):
    """Fields shared by every lease phase."""

    __sql_table__: ClassVar[str] = "leases"
    __sql_primary_key__: ClassVar[List[str]] = ["user_email", "uuid"]

    model_config = {"frozen": True}

    user_email: str = Field(max_length=320, description="Lease owner")
    uuid: str = Field(max_length=64, description="Lease identifier, unique per owner")

    # Snapshot of the originating template
    original_lease_template_uuid: str
    original_lease_template_name: str
    lease_duration_in_hours: Optional[float] = None
    max_spend: Optional[float] = None
    budget_thresholds: List[BudgetThreshold] = Field(default_factory=list)
    duration_thresholds: List[DurationThreshold] = Field(default_factory=list)

    comments: Optional[str] = Field(default=None, max_length=1000)
    meta: Optional[ItemMetadata] = Field(
        default=None,
        description="Stamped by the record store; None before first create",
    )

    @property
    def key(self) -> LeaseKey:
        return LeaseKey(user_email=self.user_email, uuid=self.uuid)

    @property
    def lease_status(self) -> LeaseStatus:
        return LeaseStatus(self.status)

    def _carry(self) -> Dict[str, Any]:
        """Shared fields to copy into the next phase."""
        return {name: getattr(self, name) for name in _LeaseBase.model_fields}

    def _require(self, *allowed: LeaseStatus) -> None:
        if self.status not in allowed:
            raise LeaseNotInRequiredStateError(
                f"Lease {self.key} is {self.status}, expected one of "
                f"{', '.join(s.value for s in allowed)}"
            )


# ============================================================================
# PENDING
# ============================================================================

class PendingLease(_LeaseBase):
    """Requested, waiting for approval. No account assigned."""

    status: Literal["PendingApproval"] = LeaseStatus.PENDING_APPROVAL.value

    @classmethod
    def request(
        cls,
        user_email: str,
        uuid: str,
        template: LeaseTemplate,
        comments: Optional[str] = None,
    ) -> "PendingLease":
        """Snapshot ``template`` into a new pending lease."""
        return cls(
            user_email=user_email,
            uuid=uuid,
            original_lease_template_uuid=template.uuid,
            original_lease_template_name=template.name,
            lease_duration_in_hours=template.lease_duration_in_hours,
            max_spend=template.max_spend,
            budget_thresholds=list(template.budget_thresholds),
            duration_thresholds=list(template.duration_thresholds),
            comments=comments,
        )

    def approve(self, aws_account_id: str, approved_by: str, now: datetime) -> "MonitoredLease":
        """Transition: PendingApproval -> Active on ``aws_account_id``."""
        expiration_date = None
        if self.lease_duration_in_hours is not None:
            expiration_date = now + timedelta(hours=self.lease_duration_in_hours)
        return MonitoredLease(
            **self._carry(),
            status=LeaseStatus.ACTIVE.value,
            aws_account_id=aws_account_id,
            approved_by=approved_by,
            start_date=now,
            expiration_date=expiration_date,
            last_checked_date=now,
            total_cost_accrued=0.0,
        )

    def deny(self, denied_by: str, ttl: int) -> "ApprovalDeniedLease":
        """Transition: PendingApproval -> ApprovalDenied."""
        return ApprovalDeniedLease(
            **self._carry(),
            status=LeaseStatus.APPROVAL_DENIED.value,
            approved_by=denied_by,
            ttl=ttl,
        )


# ============================================================================
# APPROVAL DENIED
# ============================================================================

class ApprovalDeniedLease(_LeaseBase):
    """Terminal. ``approved_by`` records who denied the request."""

    status: Literal["ApprovalDenied"] = LeaseStatus.APPROVAL_DENIED.value
    approved_by: str
    ttl: int = Field(description="Epoch seconds after which the record may be deleted")


# ============================================================================
# MONITORED (ACTIVE / FROZEN)
# ============================================================================

class MonitoredLease(_LeaseBase):
    """Holds an account. Cost and duration are monitored."""

    status: Literal["Active", "Frozen"]
    aws_account_id: str = Field(pattern=r"^\d{12}$")
    approved_by: str
    start_date: datetime
    expiration_date: Optional[datetime] = None
    last_checked_date: datetime
    total_cost_accrued: float = Field(default=0.0, ge=0)

    def freeze(self) -> "MonitoredLease":
        """Transition: Active -> Frozen."""
        self._require(LeaseStatus.ACTIVE)
        return self.model_copy(update={"status": LeaseStatus.FROZEN.value})

    def unfreeze(self) -> "MonitoredLease":
        """Transition: Frozen -> Active."""
        self._require(LeaseStatus.FROZEN)
        return self.model_copy(update={"status": LeaseStatus.ACTIVE.value})

    def with_usage(self, total_cost_accrued: float, checked_at: datetime) -> "MonitoredLease":
        """Record the latest cost observation."""
        return self.model_copy(update={
            "total_cost_accrued": total_cost_accrued,
            "last_checked_date": checked_at,
        })

    def terminate(self, status: LeaseStatus, end_date: datetime, ttl: int) -> "ExpiredLease":
        """Transition: Active | Frozen -> terminal ``status``."""
        if status not in EXPIRED_LEASE_STATUSES:
            raise ValueError(f"{status} is not a terminal lease status")
        return ExpiredLease(
            **self._carry(),
            status=status.value,
            aws_account_id=self.aws_account_id,
            approved_by=self.approved_by,
            start_date=self.start_date,
            expiration_date=self.expiration_date,
            last_checked_date=self.last_checked_date,
            total_cost_accrued=self.total_cost_accrued,
            end_date=end_date,
            ttl=ttl,
        )


# ============================================================================
# EXPIRED (TERMINAL)
# ============================================================================

class ExpiredLease(_LeaseBase):
    """Terminal. Keeps the monitoring history for reporting."""

    status: Literal[
        "Expired",
        "BudgetExceeded",
        "ManuallyTerminated",
        "AccountQuarantined",
        "Ejected",
    ]
    aws_account_id: str = Field(pattern=r"^\d{12}$")
    approved_by: str
    start_date: datetime
    expiration_date: Optional[datetime] = None
    last_checked_date: datetime
    total_cost_accrued: float = Field(default=0.0, ge=0)
    end_date: datetime
    ttl: int = Field(description="Epoch seconds after which the record may be deleted")


# ============================================================================
# UNION
# ============================================================================

Lease = Annotated[
    Union[PendingLease, ApprovalDeniedLease, MonitoredLease, ExpiredLease],
    Field(discriminator="status"),
]

_lease_adapter: TypeAdapter = TypeAdapter(Lease)


def parse_lease(data: Dict[str, Any]) -> "Lease":
    """Validate a stored/serialized lease into its phase variant."""
    return _lease_adapter.validate_python(data)


def ttl_from(now: datetime, retention_seconds: int) -> int:
    """Epoch seconds ``retention_seconds`` after ``now``, floored."""
    return int(now.timestamp()) + retention_seconds


__all__ = [
    "AUTO_APPROVED",
    "LeaseKey",
    "PendingLease",
    "ApprovalDeniedLease",
    "MonitoredLease",
    "ExpiredLease",
    "Lease",
    "parse_lease",
    "ttl_from",
]
