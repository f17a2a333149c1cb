# ============================================================================
# LEASE MONITORING TESTS
# ============================================================================
# STATUS: Tests - Budget and duration evaluation
# PURPOSE: Verify threshold crossing, event priority and usage writes
# CREATED: 16 OCT 2026
# ============================================================================
"""
Lease Monitoring Tests

Run with:
    pytest tests/test_monitoring_service.py -v
"""

import asyncio
from datetime import timedelta

from core.contracts import FrozenReason, LeaseStatus, ThresholdAction
from core.models.lease import PendingLease
from core.models.lease_template import BudgetThreshold, DurationThreshold
from infrastructure.cost import AccountsCostReport, CostReporter
from services.monitoring_service import (
    LeaseMonitoringService,
    crossed_budget_thresholds,
    crossed_duration_thresholds,
)

from fakes import ACCOUNT_A, ACCOUNT_B, NOW, USER, make_harness, make_template


class FixedCosts(CostReporter):
    def __init__(self, costs):
        self.costs = costs
        self.requests = []

    async def get_costs_since(self, start_dates, end):
        self.requests.append((dict(start_dates), end))
        return AccountsCostReport(costs=dict(self.costs))


def _lease(h, account_id=ACCOUNT_A, uuid="lease-1", **template_overrides):
    template = make_template(**template_overrides)
    lease = PendingLease.request(USER.email, uuid, template).approve(account_id, "m", NOW)
    return h.leases.seed(lease)


def _service(h, costs):
    return LeaseMonitoringService(
        h.leases, FixedCosts(costs), h.events, h.config_provider, clock=h.clock
    )


# ============================================================================
# THRESHOLD MATH
# ============================================================================

class TestThresholdCrossing:

    def test_budget_crossed_between_checks(self):
        thresholds = [BudgetThreshold(dollars_spent=v) for v in (10, 20, 30)]
        crossed = crossed_budget_thresholds(thresholds, previous_spend=10, spend=25)
        assert [t.dollars_spent for t in crossed] == [20]

    def test_budget_not_crossed_twice(self):
        thresholds = [BudgetThreshold(dollars_spent=10)]
        assert crossed_budget_thresholds(thresholds, 12, 15) == []

    def test_duration_crossed_between_checks(self):
        expiration = NOW + timedelta(hours=24)
        thresholds = [DurationThreshold(hours_remaining=v) for v in (12, 6, 1)]

        crossed = crossed_duration_thresholds(
            thresholds, expiration, last_checked=NOW, now=NOW + timedelta(hours=19)
        )

        assert sorted(t.hours_remaining for t in crossed) == [6, 12]

    def test_duration_without_expiration(self):
        assert crossed_duration_thresholds(
            [DurationThreshold(hours_remaining=1)], None, NOW, NOW + timedelta(days=9)
        ) == []


# ============================================================================
# EVALUATION
# ============================================================================

class TestEvaluate:
    """Event selection for one lease."""

    def test_budget_exceeded_wins(self):
        h = make_harness()
        lease = _lease(h, budget_thresholds=[BudgetThreshold(dollars_spent=10)])
        h.clock.now = NOW + timedelta(hours=200)

        events = _service(h, {}).evaluate(lease, 60.0, h.clock())

        assert [e.detail_type.value for e in events] == ["LeaseBudgetExceeded"]
        assert events[0].total_spend == 60.0

    def test_spend_equal_to_max_spend_is_exceeded(self):
        h = make_harness()
        lease = _lease(h)

        events = _service(h, {}).evaluate(lease, lease.max_spend, NOW + timedelta(hours=1))

        assert [e.detail_type.value for e in events] == ["LeaseBudgetExceeded"]

    def test_expired(self):
        h = make_harness()
        lease = _lease(h)
        now = NOW + timedelta(hours=101)

        events = _service(h, {}).evaluate(lease, 1.0, now)

        assert [e.detail_type.value for e in events] == ["LeaseExpired"]
        assert events[0].lease_expiration_date == lease.expiration_date

    def test_freeze_threshold_on_active_lease(self):
        h = make_harness()
        lease = _lease(h, budget_thresholds=[
            BudgetThreshold(dollars_spent=10),
            BudgetThreshold(dollars_spent=40, action=ThresholdAction.FREEZE_ACCOUNT),
        ])

        events = _service(h, {}).evaluate(lease, 45.0, NOW + timedelta(hours=1))

        assert [e.detail_type.value for e in events] == ["LeaseFreezingThresholdAlert"]
        assert events[0].reason.type == FrozenReason.BUDGET_EXCEEDED
        assert events[0].reason.triggered_budget_threshold == 40

    def test_duration_freeze_threshold(self):
        h = make_harness()
        lease = _lease(h, duration_thresholds=[
            DurationThreshold(hours_remaining=10, action=ThresholdAction.FREEZE_ACCOUNT),
        ])

        events = _service(h, {}).evaluate(lease, 0.0, NOW + timedelta(hours=95))

        assert events[0].reason.type == FrozenReason.EXPIRED
        assert events[0].reason.triggered_duration_threshold == 10

    def test_frozen_lease_gets_plain_alerts(self):
        h = make_harness()
        lease = h.leases.seed(_lease(h, budget_thresholds=[
            BudgetThreshold(dollars_spent=40, action=ThresholdAction.FREEZE_ACCOUNT),
        ]).freeze())

        events = _service(h, {}).evaluate(lease, 45.0, NOW + timedelta(hours=1))

        assert [e.detail_type.value for e in events] == ["LeaseBudgetThresholdAlert"]

    def test_alerts_pick_most_severe(self):
        h = make_harness()
        lease = _lease(
            h,
            budget_thresholds=[BudgetThreshold(dollars_spent=v) for v in (10, 20)],
            duration_thresholds=[DurationThreshold(hours_remaining=v) for v in (50, 20)],
        )

        events = _service(h, {}).evaluate(lease, 25.0, NOW + timedelta(hours=90))

        budget, duration = events
        assert budget.budget_threshold.dollars_spent == 20
        assert duration.duration_threshold.hours_remaining == 20

    def test_nothing_crossed(self):
        h = make_harness()
        lease = _lease(h, budget_thresholds=[BudgetThreshold(dollars_spent=10)])

        assert _service(h, {}).evaluate(lease, 5.0, NOW + timedelta(hours=1)) == []


# ============================================================================
# RUN
# ============================================================================

class TestMonitoringRun:

    def test_run_writes_usage_and_emits(self):
        h = make_harness()
        lease = _lease(h, budget_thresholds=[BudgetThreshold(dollars_spent=10)])
        h.clock.now = NOW + timedelta(hours=1)
        service = _service(h, {ACCOUNT_A: 12.0})

        report = asyncio.run(service.run())

        assert report.checked == 1
        assert report.events == {"LeaseBudgetThresholdAlert": 1}
        stored = asyncio.run(h.leases.get_by_key(lease.key))
        assert stored.total_cost_accrued == 12.0
        assert stored.last_checked_date == NOW + timedelta(hours=1)
        assert service.cost_reporter.requests == [({ACCOUNT_A: NOW}, NOW + timedelta(hours=1))]

    def test_alert_not_repeated_on_next_run(self):
        h = make_harness()
        _lease(h, budget_thresholds=[BudgetThreshold(dollars_spent=10)])
        service = _service(h, {ACCOUNT_A: 12.0})

        asyncio.run(service.run())
        asyncio.run(service.run())

        assert h.publisher.names() == ["LeaseBudgetThresholdAlert"]

    def test_only_monitored_leases(self):
        h = make_harness()
        _lease(h)
        h.add_pending_lease(uuid="pending")
        ended = _lease(h, account_id=ACCOUNT_B, uuid="ended")
        h.leases.seed(ended.terminate(LeaseStatus.EXPIRED, NOW, 0))

        report = asyncio.run(_service(h, {}).run())

        assert report.checked == 1

    def test_usage_conflict_recorded(self):
        h = make_harness()
        lease = _lease(h)
        original_update = h.leases.update

        async def racing_update(record, expected=None):
            await original_update(await h.leases.get_by_key(lease.key))
            return await original_update(record, expected=expected)

        h.leases.update = racing_update

        report = asyncio.run(_service(h, {ACCOUNT_A: 1.0}).run())

        assert report.conflicts == [str(lease.key)]
        assert report.checked == 1

    def test_no_leases_skips_cost_lookup(self):
        h = make_harness()
        service = _service(h, {})

        report = asyncio.run(service.run())

        assert report.checked == 0
        assert service.cost_reporter.requests == []
