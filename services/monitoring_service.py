# ============================================================================
# LEASE MONITORING SERVICE
# ============================================================================
# STATUS: Core - Periodic budget and duration checks
# PURPOSE: Turn spend and elapsed time into threshold and limit events
# CREATED: 13 OCT 2026
# ============================================================================
"""
Lease Monitoring Service

Each run looks at every Active and Frozen lease:

- Spend reaching max_spend emits LeaseBudgetExceeded; a passed expiration
  date emits LeaseExpired. Either one replaces threshold alerts for that
  lease.
- Otherwise thresholds crossed since the previous check are evaluated.
  If any of them asks to freeze the account (and the lease is Active) a
  single LeaseFreezingThresholdAlert is emitted. Else the highest crossed
  budget threshold and the nearest crossed duration threshold each emit
  one alert.
- The lease is then written with the new spend and check time, CAS
  against the image read at the start. A conflict is recorded and left
  for the next run.

Events are emitted before the lease write so a failed write repeats the
alert next run instead of losing it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from core.config import ConfigProvider
from core.contracts import FrozenReason, LeaseStatus, MONITORED_LEASE_STATUSES, ThresholdAction
from core.errors import ConcurrentDataModificationException
from core.logging import log_context
from core.models.events import (
    FreezeReason,
    LeaseBudgetExceededEvent,
    LeaseBudgetThresholdAlertEvent,
    LeaseDurationThresholdAlertEvent,
    LeaseExpiredEvent,
    LeaseFreezingThresholdAlertEvent,
    LifecycleEvent,
)
from core.models.lease import MonitoredLease
from core.models.lease_template import BudgetThreshold, DurationThreshold
from infrastructure.cost import CostReporter
from repositories.lease_repo import LeaseRepository
from repositories.pagination import stream_pages
from repositories.record_store import utc_now
from services.event_service import EventService

logger = logging.getLogger(__name__)


@dataclass
class MonitoringReport:
    """Outcome of one monitoring run."""
    checked: int = 0
    events: Dict[str, int] = field(default_factory=dict)
    conflicts: List[str] = field(default_factory=list)

    def count(self, events: List[LifecycleEvent]) -> None:
        for event in events:
            name = event.detail_type.value
            self.events[name] = self.events.get(name, 0) + 1


def _hours_between(start: datetime, end: datetime) -> float:
    return (end - start) / timedelta(hours=1)


def crossed_budget_thresholds(
    thresholds: List[BudgetThreshold], previous_spend: float, spend: float
) -> List[BudgetThreshold]:
    """Budget thresholds reached by ``spend`` but not by ``previous_spend``."""
    return [t for t in thresholds if previous_spend < t.dollars_spent <= spend]


def crossed_duration_thresholds(
    thresholds: List[DurationThreshold],
    expiration_date: Optional[datetime],
    last_checked: datetime,
    now: datetime,
) -> List[DurationThreshold]:
    """Duration thresholds whose remaining-hours mark fell between the last check and now."""
    if expiration_date is None:
        return []
    remaining_before = _hours_between(last_checked, expiration_date)
    remaining_now = _hours_between(now, expiration_date)
    return [t for t in thresholds if remaining_now <= t.hours_remaining < remaining_before]


class LeaseMonitoringService:
    """Evaluates monitored leases against their budget and duration."""

    def __init__(
        self,
        lease_repo: LeaseRepository,
        cost_reporter: CostReporter,
        events: EventService,
        config_provider: ConfigProvider,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.lease_repo = lease_repo
        self.cost_reporter = cost_reporter
        self.events = events
        self.config_provider = config_provider
        self.clock = clock or utc_now

    async def run(self) -> MonitoringReport:
        """Check every monitored lease once."""
        config = self.config_provider.load().reconciliation
        now = self.clock()
        report = MonitoringReport()

        leases: List[MonitoredLease] = []
        async for lease in stream_pages(
            lambda token: self.lease_repo.find_by_status(
                MONITORED_LEASE_STATUSES, page_identifier=token, page_size=config.page_size
            )
        ):
            leases.append(lease)

        if not leases:
            logger.info("No monitored leases")
            return report

        costs = await self.cost_reporter.get_costs_since(
            {lease.aws_account_id: lease.start_date for lease in leases}, now
        )

        for lease in leases:
            with log_context(lease_id=str(lease.key), account_id=lease.aws_account_id):
                spend = costs.get_cost(lease.aws_account_id)
                events = self.evaluate(lease, spend, now)
                if events:
                    await self.events.emit(*events)
                    report.count(events)

                try:
                    await self.lease_repo.update(lease.with_usage(spend, now), expected=lease)
                except ConcurrentDataModificationException as e:
                    logger.warning(f"Lease changed while being checked, skipping usage write: {e}")
                    report.conflicts.append(str(lease.key))
                report.checked += 1

        logger.info(
            f"Monitoring run checked {report.checked} leases, events {report.events}, "
            f"{len(report.conflicts)} conflicts"
        )
        return report

    def evaluate(self, lease: MonitoredLease, spend: float, now: datetime) -> List[LifecycleEvent]:
        """Events due for ``lease`` given current ``spend``."""
        lease_id = lease.key
        account_id = lease.aws_account_id

        if lease.max_spend is not None and spend >= lease.max_spend:
            return [LeaseBudgetExceededEvent(
                lease_id=lease_id,
                account_id=account_id,
                budget=lease.max_spend,
                total_spend=spend,
            )]

        if lease.expiration_date is not None and now > lease.expiration_date:
            return [LeaseExpiredEvent(
                lease_id=lease_id,
                account_id=account_id,
                lease_expiration_date=lease.expiration_date,
            )]

        budget_crossed = crossed_budget_thresholds(
            lease.budget_thresholds, lease.total_cost_accrued, spend
        )
        duration_crossed = crossed_duration_thresholds(
            lease.duration_thresholds, lease.expiration_date, lease.last_checked_date, now
        )

        if lease.status == LeaseStatus.ACTIVE:
            freeze_budget = [t for t in budget_crossed if t.action == ThresholdAction.FREEZE_ACCOUNT]
            freeze_duration = [
                t for t in duration_crossed if t.action == ThresholdAction.FREEZE_ACCOUNT
            ]
            if freeze_budget:
                threshold = max(freeze_budget, key=lambda t: t.dollars_spent)
                return [LeaseFreezingThresholdAlertEvent(
                    lease_id=lease_id,
                    account_id=account_id,
                    reason=FreezeReason(
                        type=FrozenReason.BUDGET_EXCEEDED,
                        triggered_budget_threshold=threshold.dollars_spent,
                        budget=lease.max_spend,
                        total_spend=spend,
                    ),
                )]
            if freeze_duration:
                threshold = min(freeze_duration, key=lambda t: t.hours_remaining)
                return [LeaseFreezingThresholdAlertEvent(
                    lease_id=lease_id,
                    account_id=account_id,
                    reason=FreezeReason(
                        type=FrozenReason.EXPIRED,
                        triggered_duration_threshold=threshold.hours_remaining,
                        lease_duration_in_hours=lease.lease_duration_in_hours,
                    ),
                )]

        events: List[LifecycleEvent] = []
        if budget_crossed:
            events.append(LeaseBudgetThresholdAlertEvent(
                lease_id=lease_id,
                account_id=account_id,
                budget=lease.max_spend,
                total_spend=spend,
                budget_threshold=max(budget_crossed, key=lambda t: t.dollars_spent),
            ))
        if duration_crossed:
            events.append(LeaseDurationThresholdAlertEvent(
                lease_id=lease_id,
                account_id=account_id,
                lease_duration_in_hours=lease.lease_duration_in_hours,
                duration_threshold=min(duration_crossed, key=lambda t: t.hours_remaining),
            ))
        return events


__all__ = [
    "LeaseMonitoringService",
    "MonitoringReport",
    "crossed_budget_thresholds",
    "crossed_duration_thresholds",
]
