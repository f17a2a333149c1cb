# ============================================================================
# LEASE TEMPLATE MODEL
# ============================================================================
# STATUS: Core model - Lease policy a user requests against
# PURPOSE: Budget/duration caps and thresholds copied into each lease
# CREATED: 06 OCT 2026
# ============================================================================
"""
Lease Template Model

A template is the policy a lease is requested against. Its policy fields
are snapshotted into the lease at request time, so later edits to the
template never change an existing lease.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from core.contracts import ThresholdAction


class BudgetThreshold(BaseModel):
    """Fires once accrued cost reaches ``dollars_spent``."""

    model_config = {"frozen": True}

    dollars_spent: float = Field(ge=0)
    action: ThresholdAction = ThresholdAction.ALERT


class DurationThreshold(BaseModel):
    """Fires once the lease has ``hours_remaining`` or fewer hours left."""

    model_config = {"frozen": True}

    hours_remaining: float = Field(ge=0)
    action: ThresholdAction = ThresholdAction.ALERT


class LeaseTemplate(BaseModel):
    """
    Lease policy.

    ``max_spend`` and ``lease_duration_in_hours`` are optional caps; a
    template without a duration produces leases without an expiration date.
    """

    model_config = {"frozen": True}

    uuid: str = Field(description="Template identifier")
    name: str = Field(max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    requires_approval: bool = Field(
        default=True,
        description="False lets requests be auto-approved",
    )
    created_by: Optional[str] = None
    max_spend: Optional[float] = Field(default=None, gt=0)
    budget_thresholds: List[BudgetThreshold] = Field(default_factory=list)
    lease_duration_in_hours: Optional[float] = Field(default=None, gt=0)
    duration_thresholds: List[DurationThreshold] = Field(default_factory=list)

    @field_validator("budget_thresholds")
    @classmethod
    def _sort_budget(cls, value: List[BudgetThreshold]) -> List[BudgetThreshold]:
        return sorted(value, key=lambda t: t.dollars_spent)

    @field_validator("duration_thresholds")
    @classmethod
    def _sort_duration(cls, value: List[DurationThreshold]) -> List[DurationThreshold]:
        return sorted(value, key=lambda t: t.hours_remaining, reverse=True)


__all__ = ["BudgetThreshold", "DurationThreshold", "LeaseTemplate"]
