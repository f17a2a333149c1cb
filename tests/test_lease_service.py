# ============================================================================
# LEASE LIFECYCLE ENGINE TESTS
# ============================================================================
# STATUS: Tests - Lease and account lifecycle operations
# PURPOSE: Verify transitions, preconditions, events and compensating rollback
# CREATED: 15 OCT 2026
# ============================================================================
"""
Lease Lifecycle Engine Tests

Covers:
1. request_lease: template policy, open lease cap, auto-approval
2. approve/deny: account assignment, expiration, rollback on emission failure
3. freeze/unfreeze: preconditions checked before any directory call
4. terminate: ttl, cleanup request, Frozen -> CleanUp through Active
5. Rollback that meets a concurrent change fails loudly
6. Account operations: quarantine, register, retry/complete cleanup, eject

Run with:
    pytest tests/test_lease_service.py -v
"""

import asyncio
from datetime import datetime, timezone

import pytest

from core.contracts import AccountStatus, FrozenReason, LeaseStatus, OrgGroup
from core.errors import (
    AccountInCleanUpError,
    AccountNotInActiveError,
    AccountNotInCleanUpError,
    AccountNotInFrozenError,
    AccountNotInQuarantineError,
    ConcurrentDataModificationException,
    CouldNotFindAccountError,
    CouldNotRetrieveUserError,
    EventEmissionError,
    ItemAlreadyExists,
    LeaseNotInRequiredStateError,
    MaxNumberOfLeasesExceededError,
    NoAccountsAvailableError,
    RollbackFailedError,
    TemplatePolicyViolationError,
)
from core.models.events import FreezeReason
from core.models.lease import (
    AUTO_APPROVED,
    ApprovalDeniedLease,
    ExpiredLease,
    MonitoredLease,
    PendingLease,
)
from infrastructure.access import AccessError, OperatorRole

from fakes import ACCOUNT_A, ACCOUNT_B, NOW, USER, make_defaults, make_harness, make_template

RETENTION_SECONDS = 30 * 24 * 60 * 60
MANUAL_FREEZE = FreezeReason(type=FrozenReason.MANUALLY_FROZEN, comment="investigating spend")


# ============================================================================
# REQUEST
# ============================================================================

class TestRequestLease:
    """request_lease() policy checks and auto-approval."""

    def test_manual_template_stays_pending(self):
        h = make_harness()

        lease = asyncio.run(h.engine.request_lease(USER.email, make_template(), lease_uuid="l-1"))

        assert isinstance(lease, PendingLease)
        assert lease.meta is not None
        assert h.publisher.names() == ["LeaseRequested"]
        assert h.publisher.published[0].requires_manual_approval is True

    def test_policy_snapshot_copied_from_template(self):
        h = make_harness()
        template = make_template(max_spend=25.0, lease_duration_in_hours=8)

        lease = asyncio.run(h.engine.request_lease(USER.email, template, comments="demo"))

        assert lease.max_spend == 25.0
        assert lease.lease_duration_in_hours == 8
        assert lease.original_lease_template_uuid == template.uuid
        assert lease.comments == "demo"

    def test_auto_approval_assigns_account(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.AVAILABLE)

        lease = asyncio.run(h.engine.request_lease(
            USER.email, make_template(requires_approval=False), lease_uuid="l-1"
        ))

        assert isinstance(lease, MonitoredLease)
        assert lease.approved_by == AUTO_APPROVED
        assert lease.aws_account_id == ACCOUNT_A
        assert h.publisher.names() == ["LeaseApproved"]

    def test_auto_approval_failure_removes_pending_lease(self):
        h = make_harness()

        with pytest.raises(NoAccountsAvailableError):
            asyncio.run(h.engine.request_lease(
                USER.email, make_template(requires_approval=False), lease_uuid="l-1"
            ))

        assert h.leases.items == {}
        assert h.publisher.published == []

    def test_open_lease_cap(self):
        h = make_harness()
        for n in range(3):
            h.add_pending_lease(uuid=f"open-{n}")

        with pytest.raises(MaxNumberOfLeasesExceededError):
            asyncio.run(h.engine.request_lease(USER.email, make_template(), lease_uuid="l-4"))

        assert len(h.leases.items) == 3

    def test_closed_leases_do_not_count(self):
        h = make_harness()
        for n in range(3):
            pending = h.add_pending_lease(uuid=f"old-{n}")
            h.leases.seed(pending.deny("manager@example.com", ttl=0))

        lease = asyncio.run(h.engine.request_lease(USER.email, make_template(), lease_uuid="l-4"))
        assert lease.uuid == "l-4"

    def test_template_without_budget_rejected(self):
        h = make_harness()

        with pytest.raises(TemplatePolicyViolationError):
            asyncio.run(h.engine.request_lease(USER.email, make_template(max_spend=None)))

        assert h.leases.items == {}

    def test_template_over_ceiling_rejected(self):
        h = make_harness(defaults=make_defaults(max_budget_ceiling=20.0))

        with pytest.raises(TemplatePolicyViolationError):
            asyncio.run(h.engine.request_lease(USER.email, make_template(max_spend=50.0)))

    def test_duration_required_when_configured(self):
        h = make_harness(defaults=make_defaults(require_max_duration=True))

        with pytest.raises(TemplatePolicyViolationError):
            asyncio.run(h.engine.request_lease(
                USER.email, make_template(lease_duration_in_hours=None)
            ))


# ============================================================================
# APPROVE / DENY
# ============================================================================

class TestApproveLease:
    """approve_lease() assignment and rollback."""

    def test_approve_activates_lease_and_account(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.AVAILABLE)
        pending = h.add_pending_lease()

        lease = asyncio.run(h.engine.approve_lease(pending, "manager@example.com"))

        assert lease.status == LeaseStatus.ACTIVE
        assert lease.aws_account_id == ACCOUNT_A
        assert lease.start_date == NOW
        assert lease.expiration_date == datetime(2024, 12, 24, 12, 45, tzinfo=timezone.utc)
        assert lease.total_cost_accrued == 0.0

        account = asyncio.run(h.accounts.get(ACCOUNT_A))
        assert account.status == AccountStatus.ACTIVE
        assert h.directory.placements[ACCOUNT_A] == OrgGroup.ACTIVE
        assert (ACCOUNT_A, USER.user_id) in h.access.grants
        assert h.publisher.names() == ["LeaseApproved"]

    def test_emission_failure_restores_everything(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.AVAILABLE)
        pending = h.add_pending_lease()
        h.publisher.fail_with = EventEmissionError("bus unavailable")

        with pytest.raises(EventEmissionError):
            asyncio.run(h.engine.approve_lease(pending, "manager@example.com"))

        stored = asyncio.run(h.leases.get_by_key(pending.key))
        assert isinstance(stored, PendingLease)
        account = asyncio.run(h.accounts.get(ACCOUNT_A))
        assert account.status == AccountStatus.AVAILABLE
        assert h.directory.placements[ACCOUNT_A] == OrgGroup.AVAILABLE
        assert h.access.grants == set()

    def test_no_available_account(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.ACTIVE)
        pending = h.add_pending_lease()

        with pytest.raises(NoAccountsAvailableError):
            asyncio.run(h.engine.approve_lease(pending, "manager@example.com"))
        assert h.directory.move_attempts == 0

    def test_unknown_user(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.AVAILABLE)
        stranger = h.leases.seed(
            PendingLease.request("bob@example.com", "l-bob", make_template())
        )

        with pytest.raises(CouldNotRetrieveUserError):
            asyncio.run(h.engine.approve_lease(stranger, "manager@example.com"))
        assert h.directory.move_attempts == 0

    def test_only_pending_leases(self):
        h = make_harness()
        active = h.add_active_lease()

        with pytest.raises(LeaseNotInRequiredStateError):
            asyncio.run(h.engine.approve_lease(active, "manager@example.com"))

    def test_racing_approve_and_deny(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.AVAILABLE)
        pending = h.add_pending_lease()

        async def race():
            return await asyncio.gather(
                h.engine.approve_lease(pending, "manager@example.com"),
                h.engine.deny_lease(pending, "other@example.com"),
                return_exceptions=True,
            )

        results = asyncio.run(race())

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], ConcurrentDataModificationException)


class TestDenyLease:
    """deny_lease() writes a terminal lease with a ttl."""

    def test_deny(self):
        h = make_harness()
        pending = h.add_pending_lease()

        lease = asyncio.run(h.engine.deny_lease(pending, "manager@example.com"))

        assert isinstance(lease, ApprovalDeniedLease)
        assert lease.approved_by == "manager@example.com"
        assert lease.ttl == int(NOW.timestamp()) + RETENTION_SECONDS
        assert h.publisher.names() == ["LeaseDenied"]

    def test_emission_failure_restores_pending(self):
        h = make_harness()
        pending = h.add_pending_lease()
        h.publisher.fail_with = EventEmissionError("bus unavailable")

        with pytest.raises(EventEmissionError):
            asyncio.run(h.engine.deny_lease(pending, "manager@example.com"))

        assert isinstance(asyncio.run(h.leases.get_by_key(pending.key)), PendingLease)


# ============================================================================
# FREEZE / UNFREEZE
# ============================================================================

class TestFreezeLease:
    """freeze_lease() and unfreeze_lease()."""

    def test_freeze_active_lease(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.ACTIVE)
        h.access.grants.add((ACCOUNT_A, USER.user_id))
        lease = h.add_active_lease()

        frozen = asyncio.run(h.engine.freeze_lease(lease, MANUAL_FREEZE))

        assert frozen.status == LeaseStatus.FROZEN
        assert h.directory.placements[ACCOUNT_A] == OrgGroup.FROZEN
        assert asyncio.run(h.accounts.get(ACCOUNT_A)).status == AccountStatus.FROZEN
        assert h.access.grants == set()
        assert h.publisher.names() == ["LeaseFrozen"]
        assert h.publisher.published[0].reason == MANUAL_FREEZE

    def test_freeze_non_active_lease_touches_nothing(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.FROZEN)
        lease = h.leases.seed(h.add_active_lease().freeze())

        with pytest.raises(AccountNotInActiveError):
            asyncio.run(h.engine.freeze_lease(lease, MANUAL_FREEZE))

        assert h.directory.move_attempts == 0
        assert h.access.calls == []
        assert h.publisher.published == []

    def test_freeze_requires_active_account(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.CLEANUP)
        lease = h.add_active_lease()

        with pytest.raises(AccountNotInActiveError):
            asyncio.run(h.engine.freeze_lease(lease, MANUAL_FREEZE))
        assert h.directory.move_attempts == 0

    def test_freeze_pending_lease(self):
        h = make_harness()
        pending = h.add_pending_lease()

        with pytest.raises(AccountNotInActiveError):
            asyncio.run(h.engine.freeze_lease(pending, MANUAL_FREEZE))

    def test_unfreeze(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.FROZEN)
        lease = h.leases.seed(h.add_active_lease().freeze())

        active = asyncio.run(h.engine.unfreeze_lease(lease))

        assert active.status == LeaseStatus.ACTIVE
        assert h.directory.placements[ACCOUNT_A] == OrgGroup.ACTIVE
        assert (ACCOUNT_A, USER.user_id) in h.access.grants
        assert h.publisher.names() == ["LeaseUnfrozen"]

    def test_unfreeze_requires_frozen_account(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.ACTIVE)
        lease = h.leases.seed(h.add_active_lease().freeze())

        with pytest.raises(AccountNotInFrozenError):
            asyncio.run(h.engine.unfreeze_lease(lease))

    def test_unfreeze_requires_frozen_lease(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.FROZEN)
        lease = h.add_active_lease()

        with pytest.raises(LeaseNotInRequiredStateError):
            asyncio.run(h.engine.unfreeze_lease(lease))


# ============================================================================
# TERMINATE
# ============================================================================

class TestTerminateLease:
    """terminate_lease() end state, events and rollback."""

    def test_manual_termination(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.ACTIVE)
        h.access.grants.add((ACCOUNT_A, USER.user_id))
        lease = h.add_active_lease()

        ended = asyncio.run(h.engine.terminate_lease(lease, LeaseStatus.MANUALLY_TERMINATED))

        assert isinstance(ended, ExpiredLease)
        assert ended.status == LeaseStatus.MANUALLY_TERMINATED
        assert ended.end_date == NOW
        assert ended.ttl == int(NOW.timestamp()) + RETENTION_SECONDS
        assert h.publisher.names() == ["CleanAccountRequest", "LeaseTerminated"]
        assert h.directory.placements[ACCOUNT_A] == OrgGroup.CLEANUP
        assert asyncio.run(h.accounts.get(ACCOUNT_A)).status == AccountStatus.CLEANUP
        assert h.access.grants == set()

    def test_terminated_event_reason(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.ACTIVE)
        lease = h.add_active_lease()

        asyncio.run(h.engine.terminate_lease(lease, LeaseStatus.BUDGET_EXCEEDED))

        terminated = h.publisher.published[-1]
        assert terminated.reason.type == LeaseStatus.BUDGET_EXCEEDED
        assert terminated.reason.budget == lease.max_spend
        assert h.publisher.published[0].reason == "BudgetExceeded"

    def test_frozen_lease_goes_through_active(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.FROZEN)
        lease = h.leases.seed(h.add_active_lease().freeze())

        asyncio.run(h.engine.terminate_lease(lease, LeaseStatus.EXPIRED))

        assert h.directory.moves == [
            (ACCOUNT_A, OrgGroup.FROZEN, OrgGroup.ACTIVE),
            (ACCOUNT_A, OrgGroup.ACTIVE, OrgGroup.CLEANUP),
        ]
        assert asyncio.run(h.accounts.get(ACCOUNT_A)).status == AccountStatus.CLEANUP

    def test_stale_lease_rolls_both_hops_back(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.FROZEN)
        stale = h.leases.seed(h.add_active_lease().freeze())
        asyncio.run(h.leases.update(stale.with_usage(3.0, NOW)))

        with pytest.raises(ConcurrentDataModificationException):
            asyncio.run(h.engine.terminate_lease(stale, LeaseStatus.EXPIRED))

        assert h.directory.placements[ACCOUNT_A] == OrgGroup.FROZEN
        assert asyncio.run(h.accounts.get(ACCOUNT_A)).status == AccountStatus.FROZEN
        assert h.access.grants == set()
        assert h.publisher.published == []

    def test_failed_termination_of_frozen_lease_keeps_access_revoked(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.ACTIVE)
        h.access.grants.add((ACCOUNT_A, USER.user_id))
        frozen = asyncio.run(h.engine.freeze_lease(h.add_active_lease(), MANUAL_FREEZE))
        assert h.access.grants == set()

        h.publisher.fail_with = EventEmissionError("bus unavailable")
        with pytest.raises(EventEmissionError):
            asyncio.run(h.engine.terminate_lease(frozen, LeaseStatus.EXPIRED))

        assert h.directory.placements[ACCOUNT_A] == OrgGroup.FROZEN
        assert asyncio.run(h.leases.get_by_key(frozen.key)).status == LeaseStatus.FROZEN
        assert (ACCOUNT_A, USER.user_id) not in h.access.grants

    def test_failed_termination_of_active_lease_restores_access(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.ACTIVE)
        h.access.grants.add((ACCOUNT_A, USER.user_id))
        lease = h.add_active_lease()

        h.publisher.fail_with = EventEmissionError("bus unavailable")
        with pytest.raises(EventEmissionError):
            asyncio.run(h.engine.terminate_lease(lease, LeaseStatus.MANUALLY_TERMINATED))

        assert h.directory.placements[ACCOUNT_A] == OrgGroup.ACTIVE
        assert (ACCOUNT_A, USER.user_id) in h.access.grants

    def test_rollback_against_concurrent_lease_change_fails(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.FROZEN)
        lease = h.leases.seed(h.add_active_lease().freeze())

        async def concurrent_write():
            current = await h.leases.get_by_key(lease.key)
            await h.leases.update(current)

        h.publisher.fail_with = EventEmissionError("bus unavailable")
        h.publisher.before_fail = concurrent_write

        with pytest.raises(RollbackFailedError) as exc_info:
            asyncio.run(h.engine.terminate_lease(lease, LeaseStatus.MANUALLY_TERMINATED))

        error = exc_info.value
        assert error.requires_manual_intervention is True
        assert isinstance(error.rollback_cause, ConcurrentDataModificationException)
        assert isinstance(error.original_cause, EventEmissionError)
        # Older steps are left in place for the operator
        assert h.directory.placements[ACCOUNT_A] == OrgGroup.CLEANUP

    def test_non_terminal_status_rejected(self):
        h = make_harness()
        lease = h.add_active_lease()

        with pytest.raises(ValueError):
            asyncio.run(h.engine.terminate_lease(lease, LeaseStatus.FROZEN))

    def test_pending_lease_rejected(self):
        h = make_harness()
        pending = h.add_pending_lease()

        with pytest.raises(LeaseNotInRequiredStateError):
            asyncio.run(h.engine.terminate_lease(pending, LeaseStatus.MANUALLY_TERMINATED))

    def test_unknown_owner_revokes_all_access(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.ACTIVE)
        h.access.users.clear()
        lease = h.add_active_lease()

        asyncio.run(h.engine.terminate_lease(lease, LeaseStatus.MANUALLY_TERMINATED))

        assert ("revoke_all", ACCOUNT_A) in h.access.calls


# ============================================================================
# ACCOUNT OPERATIONS
# ============================================================================

class TestQuarantineAccount:
    """quarantine_account() terminates leases without a cleanup request."""

    def test_quarantine_terminates_leases(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.ACTIVE)
        lease = h.add_active_lease()

        account = asyncio.run(
            h.engine.quarantine_account(ACCOUNT_A, OrgGroup.ACTIVE, "cleanup failed")
        )

        assert account.status == AccountStatus.QUARANTINE
        assert h.directory.placements[ACCOUNT_A] == OrgGroup.QUARANTINE
        stored = asyncio.run(h.leases.get_by_key(lease.key))
        assert stored.status == LeaseStatus.ACCOUNT_QUARANTINED
        assert h.publisher.names() == ["LeaseTerminated", "AccountQuarantined"]
        assert "CleanAccountRequest" not in h.publisher.names()

    def test_quarantine_untracked_account_creates_record(self):
        h = make_harness()
        h.directory.placements[ACCOUNT_B] = OrgGroup.AVAILABLE

        account = asyncio.run(
            h.engine.quarantine_account(ACCOUNT_B, OrgGroup.AVAILABLE, "untracked")
        )

        assert account.status == AccountStatus.QUARANTINE
        stored = asyncio.run(h.accounts.get(ACCOUNT_B))
        assert stored is not None
        assert stored.drift_at_last_scan is True
        assert h.directory.placements[ACCOUNT_B] == OrgGroup.QUARANTINE


class TestAccountPool:
    """register / retry cleanup / complete cleanup / eject."""

    def test_register_moves_entry_to_cleanup(self):
        h = make_harness()
        h.directory.placements[ACCOUNT_A] = OrgGroup.ENTRY

        account = asyncio.run(h.engine.register_account(ACCOUNT_A))

        assert account.status == AccountStatus.CLEANUP
        assert account.email == f"pool+{ACCOUNT_A}@example.com"
        assert h.directory.placements[ACCOUNT_A] == OrgGroup.CLEANUP
        assert h.publisher.names() == ["CleanAccountRequest"]

    def test_register_grants_operator_groups(self):
        h = make_harness()
        h.directory.placements[ACCOUNT_A] = OrgGroup.ENTRY

        asyncio.run(h.engine.register_account(ACCOUNT_A))

        assert h.access.group_grants == {
            (ACCOUNT_A, OperatorRole.MANAGER),
            (ACCOUNT_A, OperatorRole.ADMIN),
        }

    def test_failed_cleanup_request_undoes_registration(self):
        h = make_harness()
        h.directory.placements[ACCOUNT_A] = OrgGroup.ENTRY
        h.publisher.fail_with = EventEmissionError("bus down")

        with pytest.raises(EventEmissionError):
            asyncio.run(h.engine.register_account(ACCOUNT_A))

        assert h.access.group_grants == set()
        assert h.directory.placements[ACCOUNT_A] == OrgGroup.ENTRY
        assert asyncio.run(h.accounts.get(ACCOUNT_A)) is None

    def test_failed_group_grant_undoes_registration(self):
        h = make_harness()
        h.directory.placements[ACCOUNT_A] = OrgGroup.ENTRY
        h.access.fail_group_grant = OperatorRole.ADMIN

        with pytest.raises(AccessError):
            asyncio.run(h.engine.register_account(ACCOUNT_A))

        assert h.access.group_grants == set()
        assert ("revoke_manager", ACCOUNT_A) in h.access.calls
        assert h.directory.placements[ACCOUNT_A] == OrgGroup.ENTRY
        assert asyncio.run(h.accounts.get(ACCOUNT_A)) is None
        assert h.publisher.published == []

    def test_register_twice(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.AVAILABLE)

        with pytest.raises(ItemAlreadyExists):
            asyncio.run(h.engine.register_account(ACCOUNT_A))

    def test_register_requires_entry_group(self):
        h = make_harness()
        h.directory.placements[ACCOUNT_A] = OrgGroup.AVAILABLE

        with pytest.raises(CouldNotFindAccountError):
            asyncio.run(h.engine.register_account(ACCOUNT_A))

    def test_retry_cleanup_from_quarantine(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.QUARANTINE)

        account = asyncio.run(h.engine.retry_cleanup(ACCOUNT_A))

        assert account.status == AccountStatus.CLEANUP
        assert h.directory.placements[ACCOUNT_A] == OrgGroup.CLEANUP
        assert h.publisher.names() == ["CleanAccountRequest"]

    def test_retry_cleanup_already_in_cleanup(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.CLEANUP)

        asyncio.run(h.engine.retry_cleanup(ACCOUNT_A))

        assert h.directory.move_attempts == 0
        assert h.publisher.names() == ["CleanAccountRequest"]

    def test_retry_cleanup_wrong_state(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.AVAILABLE)

        with pytest.raises(AccountNotInQuarantineError):
            asyncio.run(h.engine.retry_cleanup(ACCOUNT_A))

    def test_complete_cleanup(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.CLEANUP)

        account = asyncio.run(h.engine.complete_cleanup(ACCOUNT_A))

        assert account.status == AccountStatus.AVAILABLE
        assert h.directory.placements[ACCOUNT_A] == OrgGroup.AVAILABLE

    def test_complete_cleanup_duplicate(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.AVAILABLE)

        account = asyncio.run(h.engine.complete_cleanup(ACCOUNT_A))

        assert account.status == AccountStatus.AVAILABLE
        assert h.directory.move_attempts == 0

    def test_complete_cleanup_wrong_state(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.ACTIVE)

        with pytest.raises(AccountNotInCleanUpError):
            asyncio.run(h.engine.complete_cleanup(ACCOUNT_A))

    def test_eject(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.ACTIVE)
        lease = h.add_active_lease()

        account = asyncio.run(h.engine.eject_account(ACCOUNT_A))

        assert account.status == AccountStatus.EJECTED
        assert h.directory.placements[ACCOUNT_A] == OrgGroup.EXIT
        assert asyncio.run(h.leases.get_by_key(lease.key)).status == LeaseStatus.EJECTED
        assert ("revoke_all", ACCOUNT_A) in h.access.calls

    def test_eject_revokes_operator_groups(self):
        h = make_harness()
        h.directory.placements[ACCOUNT_A] = OrgGroup.ENTRY
        asyncio.run(h.engine.register_account(ACCOUNT_A))
        asyncio.run(h.engine.complete_cleanup(ACCOUNT_A))

        asyncio.run(h.engine.eject_account(ACCOUNT_A))

        assert h.access.group_grants == set()
        assert h.access.calls[-2:] == [("revoke_manager", ACCOUNT_A), ("revoke_admin", ACCOUNT_A)]

    def test_eject_during_cleanup(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.CLEANUP)

        with pytest.raises(AccountInCleanUpError):
            asyncio.run(h.engine.eject_account(ACCOUNT_A))

    def test_mark_ejected(self):
        h = make_harness()
        h.add_account(ACCOUNT_A, AccountStatus.ACTIVE)
        lease = h.add_active_lease()
        del h.directory.placements[ACCOUNT_A]

        account = asyncio.run(h.engine.mark_account_ejected(ACCOUNT_A))

        assert account.status == AccountStatus.EJECTED
        assert asyncio.run(h.leases.get_by_key(lease.key)).status == LeaseStatus.EJECTED
        assert h.directory.move_attempts == 0

    def test_mark_ejected_without_record(self):
        h = make_harness()
        assert asyncio.run(h.engine.mark_account_ejected(ACCOUNT_A)) is None
