# ============================================================================
# DOMAIN MODEL TESTS
# ============================================================================
# STATUS: Tests - Leases, accounts, templates, events, metadata
# PURPOSE: Verify phase variants, status mapping and event envelopes
# CREATED: 15 OCT 2026
# ============================================================================
"""
Domain Model Tests

Covers:
1. Lease phase variants and transition methods
2. Discriminated-union parsing of stored leases
3. Account status <-> directory group mapping
4. Template threshold ordering
5. Event envelopes and parse_event
6. Metadata stamping

Run with:
    pytest tests/test_models.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from core.contracts import AccountStatus, LeaseStatus, OrgGroup, ThresholdAction
from core.errors import LeaseNotInRequiredStateError
from core.models import (
    ApprovalDeniedLease,
    BudgetThreshold,
    DurationThreshold,
    ExpiredLease,
    LeaseTemplate,
    MonitoredLease,
    PendingLease,
    SandboxAccount,
    parse_event,
    parse_lease,
    stamp_metadata,
    ttl_from,
)
from core.models.events import (
    AccountDriftDetectedEvent,
    LeaseTerminatedReason,
)
from core.models.metadata import VERSION_TICK

NOW = datetime(2024, 12, 20, 8, 45, tzinfo=timezone.utc)


@pytest.fixture
def template():
    return LeaseTemplate(
        uuid="tmpl-1",
        name="Standard",
        max_spend=50.0,
        lease_duration_in_hours=24,
        budget_thresholds=[
            BudgetThreshold(dollars_spent=40, action=ThresholdAction.FREEZE_ACCOUNT),
            BudgetThreshold(dollars_spent=10),
        ],
        duration_thresholds=[
            DurationThreshold(hours_remaining=1),
            DurationThreshold(hours_remaining=12),
        ],
    )


@pytest.fixture
def active(template):
    return PendingLease.request("alice@example.com", "l-1", template).approve(
        "111111111111", "manager@example.com", NOW
    )


# ============================================================================
# LEASE PHASES
# ============================================================================

class TestLeasePhases:
    """Transitions between lease variants."""

    def test_request_snapshots_template(self, template):
        lease = PendingLease.request("alice@example.com", "l-1", template, comments="hi")

        assert lease.status == LeaseStatus.PENDING_APPROVAL
        assert lease.max_spend == 50.0
        assert [t.dollars_spent for t in lease.budget_thresholds] == [10, 40]
        assert not hasattr(lease, "aws_account_id")

    def test_approve(self, active):
        assert isinstance(active, MonitoredLease)
        assert active.expiration_date == NOW + timedelta(hours=24)
        assert active.last_checked_date == NOW
        assert active.total_cost_accrued == 0.0

    def test_approve_without_duration(self, template):
        lease = PendingLease.request(
            "alice@example.com", "l-1", template.model_copy(update={"lease_duration_in_hours": None})
        )
        assert lease.approve("111111111111", "m", NOW).expiration_date is None

    def test_deny(self, template):
        lease = PendingLease.request("alice@example.com", "l-1", template)
        denied = lease.deny("manager@example.com", ttl=123)

        assert isinstance(denied, ApprovalDeniedLease)
        assert denied.status == LeaseStatus.APPROVAL_DENIED
        assert denied.ttl == 123

    def test_freeze_unfreeze(self, active):
        frozen = active.freeze()
        assert frozen.status == LeaseStatus.FROZEN
        assert frozen.unfreeze().status == LeaseStatus.ACTIVE

    def test_freeze_frozen_rejected(self, active):
        with pytest.raises(LeaseNotInRequiredStateError):
            active.freeze().freeze()

    def test_unfreeze_active_rejected(self, active):
        with pytest.raises(LeaseNotInRequiredStateError):
            active.unfreeze()

    def test_terminate(self, active):
        ended = active.with_usage(12.5, NOW).terminate(
            LeaseStatus.EXPIRED, NOW, ttl_from(NOW, 3600)
        )

        assert isinstance(ended, ExpiredLease)
        assert ended.end_date == NOW
        assert ended.ttl == int(NOW.timestamp()) + 3600
        assert ended.total_cost_accrued == 12.5
        assert ended.aws_account_id == active.aws_account_id

    def test_terminate_requires_terminal_status(self, active):
        with pytest.raises(ValueError):
            active.terminate(LeaseStatus.FROZEN, NOW, 0)

    def test_leases_are_immutable(self, active):
        with pytest.raises(ValidationError):
            active.status = LeaseStatus.FROZEN

    def test_status_predicates(self):
        assert LeaseStatus.PENDING_APPROVAL.is_pending()
        assert LeaseStatus.FROZEN.is_monitored()
        assert LeaseStatus.EJECTED.is_terminal()
        assert LeaseStatus.APPROVAL_DENIED.is_terminal()
        assert not LeaseStatus.ACTIVE.is_terminal()


class TestParseLease:
    """Stored JSON back to the right variant."""

    def test_round_trip_each_phase(self, template, active):
        pending = PendingLease.request("alice@example.com", "l-1", template)
        ended = active.terminate(LeaseStatus.MANUALLY_TERMINATED, NOW, 0)

        for lease, cls in ((pending, PendingLease), (active, MonitoredLease), (ended, ExpiredLease)):
            parsed = parse_lease(lease.model_dump(mode="json"))
            assert isinstance(parsed, cls)
            assert parsed == lease

    def test_monitored_without_account_rejected(self, template):
        data = PendingLease.request("alice@example.com", "l-1", template).model_dump(mode="json")
        data["status"] = "Active"

        with pytest.raises(ValidationError):
            parse_lease(data)

    def test_unknown_status_rejected(self, template):
        data = PendingLease.request("alice@example.com", "l-1", template).model_dump(mode="json")
        data["status"] = "Paused"

        with pytest.raises(ValidationError):
            parse_lease(data)


# ============================================================================
# ACCOUNTS
# ============================================================================

class TestAccountStatus:
    """Stored status mirrors directory group."""

    def test_groups(self):
        assert AccountStatus.AVAILABLE.group == OrgGroup.AVAILABLE
        assert AccountStatus.EJECTED.group == OrgGroup.EXIT

    def test_for_group(self):
        assert AccountStatus.for_group(OrgGroup.QUARANTINE) == AccountStatus.QUARANTINE
        assert AccountStatus.for_group(OrgGroup.EXIT) == AccountStatus.EJECTED
        with pytest.raises(ValueError):
            AccountStatus.for_group(OrgGroup.ENTRY)

    def test_matches_group(self):
        assert AccountStatus.ACTIVE.matches_group(OrgGroup.ACTIVE)
        assert not AccountStatus.ACTIVE.matches_group(OrgGroup.FROZEN)
        assert not AccountStatus.ACTIVE.matches_group(None)
        assert AccountStatus.EJECTED.matches_group(None)
        assert AccountStatus.EJECTED.matches_group(OrgGroup.EXIT)

    def test_transient_groups(self):
        assert OrgGroup.ENTRY.is_transient()
        assert OrgGroup.EXIT.is_transient()
        assert not OrgGroup.CLEANUP.is_transient()

    def test_account_id_must_be_twelve_digits(self):
        with pytest.raises(ValidationError):
            SandboxAccount(aws_account_id="1234", status=AccountStatus.AVAILABLE)


class TestTemplate:
    def test_thresholds_sorted(self, template):
        assert [t.dollars_spent for t in template.budget_thresholds] == [10, 40]
        assert [t.hours_remaining for t in template.duration_thresholds] == [12, 1]

    def test_max_spend_positive(self):
        with pytest.raises(ValidationError):
            LeaseTemplate(uuid="t", name="bad", max_spend=0)


# ============================================================================
# EVENTS
# ============================================================================

class TestEvents:
    """Envelope format and parsing."""

    def test_envelope(self):
        event = AccountDriftDetectedEvent(
            account_id="111111111111",
            expected_group=OrgGroup.ACTIVE,
            actual_group=OrgGroup.QUARANTINE,
        )
        envelope = event.to_envelope("orchestrator", NOW)

        assert envelope["detail-type"] == "AccountDriftDetected"
        assert envelope["source"] == "orchestrator"
        assert envelope["detail"]["actual_group"] == "Quarantine"
        assert parse_event(envelope) == event

    def test_unknown_detail_type(self):
        with pytest.raises(ValueError):
            parse_event({"detail-type": "SomethingElse", "detail": {}})

    def test_malformed_detail(self):
        with pytest.raises(ValidationError):
            parse_event({"detail-type": "AccountQuarantined", "detail": {"account_id": "1"}})

    def test_terminated_reason(self, active):
        expired = active.terminate(LeaseStatus.EXPIRED, NOW, 0)
        quarantined = active.terminate(LeaseStatus.ACCOUNT_QUARANTINED, NOW, 0)

        assert LeaseTerminatedReason.for_lease(expired).lease_duration_in_hours == 24
        assert LeaseTerminatedReason.for_lease(quarantined).comment == "Account was quarantined"


# ============================================================================
# METADATA
# ============================================================================

class TestMetadata:
    def test_first_stamp(self):
        meta = stamp_metadata(None, NOW)
        assert meta.created_time == meta.last_edit_time == NOW

    def test_stamp_strictly_increases(self):
        first = stamp_metadata(None, NOW)
        second = stamp_metadata(first, NOW)

        assert second.last_edit_time == NOW + VERSION_TICK
        assert second.created_time == NOW

    def test_stamp_follows_clock(self):
        first = stamp_metadata(None, NOW)
        later = NOW + timedelta(minutes=5)
        assert stamp_metadata(first, later).last_edit_time == later
