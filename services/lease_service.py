# ============================================================================
# LEASE LIFECYCLE SERVICE
# ============================================================================
# STATUS: Core - Lease and account lifecycle operations
# PURPOSE: request/approve/deny/freeze/unfreeze/terminate/quarantine/eject
# CREATED: 11 OCT 2026
# ============================================================================
"""
Lease Lifecycle Service

Facade over the lease and account state machines.

Each operation checks its preconditions before touching anything, then
runs its side effects as steps of one compensating Transaction:

    revoke/grant access -> directory move(s) -> CAS lease write -> emit events

If any later step (event emission included) fails, the completed steps are
undone newest first, so a redelivered request starts from the original
state. The lease step is undone by a CAS write against the image it
produced: if someone changed the lease in between, the rollback fails with
RollbackFailedError rather than clobbering that change.

Version conflicts are never retried here. The loser of a race gets
ConcurrentDataModificationException and the caller decides.
"""

import uuid
from datetime import datetime
from typing import Callable, List, Optional

from core.config import ConfigProvider
from core.config.defaults import LeaseDefaults
from core.contracts import (
    AccountStatus,
    EXPIRED_LEASE_STATUSES,
    LeaseStatus,
    MONITORED_LEASE_STATUSES,
    OrgGroup,
)
from core.errors import (
    AccountInCleanUpError,
    AccountNotInActiveError,
    AccountNotInCleanUpError,
    AccountNotInFrozenError,
    AccountNotInQuarantineError,
    CouldNotFindAccountError,
    CouldNotRetrieveUserError,
    ItemAlreadyExists,
    LeaseNotInRequiredStateError,
    MaxNumberOfLeasesExceededError,
    NoAccountsAvailableError,
    RollbackFailedError,
    TemplatePolicyViolationError,
)
from core.logging import ComponentType, get_logger, log_checkpoint, log_context
from core.models.events import (
    FreezeReason,
    LeaseApprovedEvent,
    LeaseDeniedEvent,
    LeaseFrozenEvent,
    LeaseRequestedEvent,
    LeaseUnfrozenEvent,
)
from core.models.lease import (
    AUTO_APPROVED,
    ApprovalDeniedLease,
    ExpiredLease,
    Lease,
    MonitoredLease,
    PendingLease,
    ttl_from,
)
from core.models.lease_template import LeaseTemplate
from core.models.sandbox_account import SandboxAccount
from core.models.user import SandboxUser
from core.transactions import Transaction
from infrastructure.access import AccessManager, OperatorRole
from repositories.account_repo import AccountRepository
from repositories.lease_repo import LeaseRepository
from repositories.pagination import stream_pages
from repositories.record_store import Clock, utc_now
from services.event_service import EventService
from services.placement_service import AccountPlacementManager

logger = get_logger(__name__, ComponentType.ENGINE)

OPEN_LEASE_STATUSES = [
    LeaseStatus.PENDING_APPROVAL,
    LeaseStatus.ACTIVE,
    LeaseStatus.FROZEN,
]


class LeaseLifecycleEngine:
    """Lease and account lifecycle operations."""

    def __init__(
        self,
        lease_repo: LeaseRepository,
        account_repo: AccountRepository,
        placement: AccountPlacementManager,
        access: AccessManager,
        events: EventService,
        config_provider: ConfigProvider,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize lifecycle engine.

        Args:
            lease_repo: Lease record store
            account_repo: Account record store
            placement: Directory moves and account status persistence
            access: User access grants on accounts
            events: Lifecycle event emission
            config_provider: Tunables, loaded fresh per operation
            clock: Source of "now" (UTC)
        """
        self.lease_repo = lease_repo
        self.account_repo = account_repo
        self.placement = placement
        self.access = access
        self.events = events
        self.config_provider = config_provider
        self.clock: Callable[[], datetime] = clock or utc_now

    # =========================================================================
    # LEASE REQUESTS
    # =========================================================================

    async def request_lease(
        self,
        user_email: str,
        template: LeaseTemplate,
        comments: Optional[str] = None,
        lease_uuid: Optional[str] = None,
    ) -> Lease:
        """
        Create a pending lease from ``template``.

        Templates that do not require approval are approved on the spot
        with the AUTO_APPROVED sentinel.

        Returns:
            The PendingLease, or the MonitoredLease when auto-approved

        Raises:
            TemplatePolicyViolationError: template exceeds the global policy
            MaxNumberOfLeasesExceededError: user holds too many open leases
        """
        policy = self.config_provider.load().lease
        lease = PendingLease.request(user_email, lease_uuid or str(uuid.uuid4()), template, comments)

        with log_context(user_email=user_email, lease_id=str(lease.key), operation="request_lease"):
            self._check_template_policy(template, policy)

            open_leases = 0
            async for _ in stream_pages(
                lambda token: self.lease_repo.find_by_user_email(
                    user_email, status=OPEN_LEASE_STATUSES, page_identifier=token
                )
            ):
                open_leases += 1
            if open_leases >= policy.max_leases_per_user:
                raise MaxNumberOfLeasesExceededError(
                    f"{user_email} already holds {open_leases} open leases "
                    f"(max {policy.max_leases_per_user})"
                )

            pending = (await self.lease_repo.create(lease)).new_item
            logger.info(f"Lease requested from template {template.name}")

            try:
                if not template.requires_approval:
                    return await self.approve_lease(pending, AUTO_APPROVED)

                await self.events.emit(LeaseRequestedEvent(
                    lease_id=pending.key,
                    user_email=user_email,
                    requires_manual_approval=True,
                    comments=comments,
                ))
            except RollbackFailedError:
                raise
            except Exception as e:
                logger.warning(f"Lease request failed, removing pending lease: {e}")
                await self.lease_repo.delete_by_key(pending.key)
                raise

            return pending

    def _check_template_policy(self, template: LeaseTemplate, policy: LeaseDefaults) -> None:
        if template.max_spend is None and policy.require_max_budget:
            raise TemplatePolicyViolationError(f"Template {template.name} has no max spend")
        if (
            template.max_spend is not None
            and policy.max_budget_ceiling is not None
            and template.max_spend > policy.max_budget_ceiling
        ):
            raise TemplatePolicyViolationError(
                f"Template {template.name} max spend {template.max_spend} exceeds "
                f"{policy.max_budget_ceiling}"
            )
        if template.lease_duration_in_hours is None and policy.require_max_duration:
            raise TemplatePolicyViolationError(f"Template {template.name} has no duration cap")
        if (
            template.lease_duration_in_hours is not None
            and policy.max_duration_hours_ceiling is not None
            and template.lease_duration_in_hours > policy.max_duration_hours_ceiling
        ):
            raise TemplatePolicyViolationError(
                f"Template {template.name} duration {template.lease_duration_in_hours}h "
                f"exceeds {policy.max_duration_hours_ceiling}h"
            )

    async def approve_lease(self, lease: Lease, approved_by: str) -> MonitoredLease:
        """
        Assign an Available account and activate the lease.

        The account is moved Available -> Active, the owner is granted
        access, then the lease is written Active. Any failure after the
        move puts the account back in Available.

        Raises:
            LeaseNotInRequiredStateError: lease is not pending
            CouldNotRetrieveUserError: owner unknown to the identity store
            NoAccountsAvailableError: pool is empty
        """
        with log_context(lease_id=str(lease.key), user_email=lease.user_email, operation="approve_lease"):
            if not isinstance(lease, PendingLease):
                raise LeaseNotInRequiredStateError(
                    f"Lease {lease.key} is {lease.status}, expected PendingApproval"
                )

            user = await self._get_user(lease.user_email)

            # First page, first match; no ranking beyond the store's order
            page = await self.account_repo.find_by_status(AccountStatus.AVAILABLE)
            if not page.items:
                raise NoAccountsAvailableError("No accounts available to lease")
            account = page.items[0]
            account_id = account.aws_account_id

            now = self.clock()
            approved = lease.approve(account_id, approved_by, now)

            with log_context(account_id=account_id):
                txn = await self.placement.transactional_move_account(
                    account, OrgGroup.AVAILABLE, OrgGroup.ACTIVE
                )
                async with txn.rollback_on_error():
                    await txn.then(
                        *self._grant_step(account_id, user),
                        description=f"grant {lease.user_email} on {account_id}",
                    )
                    written = await txn.then(
                        *self._lease_step(lease, approved),
                        description=f"approve lease {lease.key}",
                    )
                    await self.events.emit(LeaseApprovedEvent(
                        lease_id=written.key,
                        user_email=written.user_email,
                        account_id=account_id,
                        approved_by=approved_by,
                    ))
                txn.complete()

                logger.info(f"Lease approved by {approved_by}")
                log_checkpoint(
                    "lease_approved",
                    {"account_id": account_id, "approved_by": approved_by},
                )
                return written

    async def deny_lease(self, lease: Lease, denied_by: str) -> ApprovalDeniedLease:
        """
        Deny a pending lease. No account is involved.

        Raises:
            LeaseNotInRequiredStateError: lease is not pending
        """
        with log_context(lease_id=str(lease.key), user_email=lease.user_email, operation="deny_lease"):
            if not isinstance(lease, PendingLease):
                raise LeaseNotInRequiredStateError(
                    f"Lease {lease.key} is {lease.status}, expected PendingApproval"
                )

            policy = self.config_provider.load().lease
            denied = lease.deny(denied_by, ttl_from(self.clock(), policy.retention_seconds))

            txn = await Transaction.begin(
                *self._lease_step(lease, denied),
                description=f"deny lease {lease.key}",
            )
            async with txn.rollback_on_error():
                await self.events.emit(LeaseDeniedEvent(
                    lease_id=lease.key,
                    user_email=lease.user_email,
                    denied_by=denied_by,
                ))
            written = txn.complete()

            logger.info(f"Lease denied by {denied_by}")
            return written

    # =========================================================================
    # FREEZE / UNFREEZE
    # =========================================================================

    async def freeze_lease(self, lease: Lease, reason: FreezeReason) -> MonitoredLease:
        """
        Freeze an Active lease: revoke access, move Active -> Frozen.

        Raises:
            AccountNotInActiveError: lease or its account is not Active
            CouldNotFindAccountError: account record missing
            CouldNotRetrieveUserError: owner unknown to the identity store
        """
        with log_context(lease_id=str(lease.key), user_email=lease.user_email, operation="freeze_lease"):
            if not isinstance(lease, MonitoredLease) or lease.status != LeaseStatus.ACTIVE:
                raise AccountNotInActiveError(
                    f"Lease {lease.key} is {lease.status}, only Active leases can be frozen"
                )

            account = await self._get_account(lease.aws_account_id)
            if account.status != AccountStatus.ACTIVE:
                raise AccountNotInActiveError(
                    f"Account {account.aws_account_id} is {account.status.value}, expected Active"
                )
            user = await self._get_user(lease.user_email)

            with log_context(account_id=account.aws_account_id):
                txn = await Transaction.begin(
                    *self._revoke_step(account.aws_account_id, user),
                    description=f"revoke {lease.user_email} on {account.aws_account_id}",
                )
                async with txn.rollback_on_error():
                    await self.placement.transactional_move_account(
                        account, OrgGroup.ACTIVE, OrgGroup.FROZEN, txn=txn
                    )
                    frozen = await txn.then(
                        *self._lease_step(lease, lease.freeze()),
                        description=f"freeze lease {lease.key}",
                    )
                    await self.events.emit(LeaseFrozenEvent(
                        lease_id=frozen.key,
                        account_id=frozen.aws_account_id,
                        reason=reason,
                    ))
                txn.complete()

                logger.info(f"Lease frozen ({reason.type.value})")
                log_checkpoint("lease_frozen", {"reason": reason.type.value})
                return frozen

    async def unfreeze_lease(self, lease: Lease) -> MonitoredLease:
        """
        Unfreeze a Frozen lease: move Frozen -> Active, restore access.

        Raises:
            LeaseNotInRequiredStateError: lease is not Frozen
            AccountNotInFrozenError: account is not Frozen
            CouldNotFindAccountError: account record missing
            CouldNotRetrieveUserError: owner unknown to the identity store
        """
        with log_context(lease_id=str(lease.key), user_email=lease.user_email, operation="unfreeze_lease"):
            if not isinstance(lease, MonitoredLease) or lease.status != LeaseStatus.FROZEN:
                raise LeaseNotInRequiredStateError(
                    f"Lease {lease.key} is {lease.status}, expected Frozen"
                )

            account = await self._get_account(lease.aws_account_id)
            if account.status != AccountStatus.FROZEN:
                raise AccountNotInFrozenError(
                    f"Account {account.aws_account_id} is {account.status.value}, expected Frozen"
                )
            user = await self._get_user(lease.user_email)

            with log_context(account_id=account.aws_account_id):
                txn = await self.placement.transactional_move_account(
                    account, OrgGroup.FROZEN, OrgGroup.ACTIVE
                )
                async with txn.rollback_on_error():
                    await txn.then(
                        *self._grant_step(account.aws_account_id, user),
                        description=f"grant {lease.user_email} on {account.aws_account_id}",
                    )
                    active = await txn.then(
                        *self._lease_step(lease, lease.unfreeze()),
                        description=f"unfreeze lease {lease.key}",
                    )
                    await self.events.emit(LeaseUnfrozenEvent(
                        lease_id=active.key,
                        account_id=active.aws_account_id,
                    ))
                txn.complete()

                logger.info("Lease unfrozen")
                return active

    # =========================================================================
    # TERMINATE
    # =========================================================================

    async def terminate_lease(
        self,
        lease: Lease,
        status: LeaseStatus,
        request_cleanup: bool = True,
    ) -> ExpiredLease:
        """
        End a monitored lease with terminal ``status``.

        Revokes the owner's access and writes the terminal lease with
        ``end_date = now`` and ``ttl = now + retention``. With
        ``request_cleanup`` the account is also moved to CleanUp (Frozen
        goes through Active) and a cleanup request is emitted. Quarantine
        and eject pass False and place the account themselves.

        Raises:
            LeaseNotInRequiredStateError: lease is not Active or Frozen
            CouldNotFindAccountError: account record missing
        """
        if status not in EXPIRED_LEASE_STATUSES:
            raise ValueError(f"{status} is not a terminal lease status")

        with log_context(lease_id=str(lease.key), user_email=lease.user_email, operation="terminate_lease"):
            if not isinstance(lease, MonitoredLease):
                raise LeaseNotInRequiredStateError(
                    f"Lease {lease.key} is {lease.status}, expected Active or Frozen"
                )
            account_id = lease.aws_account_id

            account = None
            if request_cleanup:
                account = await self._get_account(account_id)
                if account.status not in (AccountStatus.ACTIVE, AccountStatus.FROZEN):
                    raise AccountNotInActiveError(
                        f"Account {account_id} is {account.status.value}, expected Active or Frozen"
                    )

            policy = self.config_provider.load().lease
            now = self.clock()
            terminated = lease.terminate(status, now, ttl_from(now, policy.retention_seconds))
            user = await self.access.get_user_from_email(lease.user_email)

            with log_context(account_id=account_id):
                txn = await Transaction.begin(
                    *self._revoke_step(account_id, user, restore=lease.status == LeaseStatus.ACTIVE),
                    description=f"revoke {lease.user_email} on {account_id}",
                )
                async with txn.rollback_on_error():
                    if account is not None:
                        await self.placement.transactional_move_account(
                            account, account.status.group, OrgGroup.CLEANUP, txn=txn
                        )
                    written = await txn.then(
                        *self._lease_step(lease, terminated),
                        description=f"terminate lease {lease.key}",
                    )

                    events = [self.events.lease_terminated(written)]
                    if request_cleanup:
                        events.insert(0, self.events.clean_account_request(account_id, status.value))
                    await self.events.emit(*events)
                txn.complete()

                logger.info(f"Lease terminated: {status.value}")
                log_checkpoint(
                    "lease_terminated",
                    {"status": status.value, "cleanup_requested": request_cleanup},
                )
                return written

    # =========================================================================
    # ACCOUNT OPERATIONS
    # =========================================================================

    async def quarantine_account(
        self, account_id: str, current_group: OrgGroup, reason: str
    ) -> SandboxAccount:
        """
        Take an account out of circulation.

        Monitored leases on it are terminated as AccountQuarantined (no
        cleanup request). The account always ends in Quarantine; an
        account with no record gets one.
        """
        with log_context(account_id=account_id, operation="quarantine_account"):
            account = await self.account_repo.get(account_id)

            for lease in await self._monitored_leases(account_id):
                await self.terminate_lease(
                    lease, LeaseStatus.ACCOUNT_QUARANTINED, request_cleanup=False
                )

            if account is None:
                logger.warning(f"Quarantining untracked account from {current_group.value}")
                account = SandboxAccount(
                    aws_account_id=account_id,
                    status=AccountStatus.QUARANTINE,
                    drift_at_last_scan=True,
                )

            quarantined = (
                await self.placement.move_account(account, current_group, OrgGroup.QUARANTINE)
            ).new_item
            await self.events.emit(self.events.account_quarantined(account_id, reason))

            logger.warning(f"Account quarantined: {reason}")
            log_checkpoint("account_quarantined", {"reason": reason})
            return quarantined

    async def register_account(self, account_id: str) -> SandboxAccount:
        """
        Bring an account sitting in Entry into the pool via CleanUp.

        The move, the operator group grants and the cleanup request are one
        transaction: if any step fails the account goes back to Entry with
        no group access.

        Raises:
            ItemAlreadyExists: account already registered
            CouldNotFindAccountError: directory does not have it in Entry
        """
        with log_context(account_id=account_id, operation="register_account"):
            if await self.account_repo.get(account_id) is not None:
                raise ItemAlreadyExists(f"Account {account_id} is already registered", key=account_id)

            located = await self.placement.locate(account_id)
            if located is None or located.group != OrgGroup.ENTRY:
                raise CouldNotFindAccountError(f"Account {account_id} is not in the Entry group")

            account = SandboxAccount(
                aws_account_id=account_id,
                email=located.email,
                name=located.name,
                status=AccountStatus.CLEANUP,
            )
            txn = await self.placement.transactional_move_account(
                account, OrgGroup.ENTRY, OrgGroup.CLEANUP
            )
            registered = txn.result.new_item
            async with txn.rollback_on_error():
                for role in OperatorRole:
                    await txn.then(
                        *self._group_grant_step(account_id, role),
                        description=f"grant {role.value} group on {account_id}",
                    )
                await self.events.emit(
                    self.events.clean_account_request(account_id, "Account registered")
                )
            txn.complete()

            logger.info("Account registered")
            log_checkpoint("account_registered", None)
            return registered

    async def retry_cleanup(self, account_id: str) -> SandboxAccount:
        """
        Request another cleanup run for a Quarantine or CleanUp account.

        Raises:
            CouldNotFindAccountError: account record missing
            AccountNotInQuarantineError: account is in neither group
        """
        with log_context(account_id=account_id, operation="retry_cleanup"):
            account = await self._get_account(account_id)
            if account.status not in (AccountStatus.QUARANTINE, AccountStatus.CLEANUP):
                raise AccountNotInQuarantineError(
                    f"Account {account_id} is {account.status.value}, expected Quarantine or CleanUp"
                )

            if account.status == AccountStatus.QUARANTINE:
                account = (
                    await self.placement.move_account(account, OrgGroup.QUARANTINE, OrgGroup.CLEANUP)
                ).new_item
            await self.events.emit(
                self.events.clean_account_request(account_id, "Cleanup retried")
            )

            logger.info("Cleanup retried")
            return account

    async def complete_cleanup(self, account_id: str) -> SandboxAccount:
        """
        Return a cleaned account to Available.

        Redelivery is tolerated: an account already Available is returned
        unchanged.

        Raises:
            CouldNotFindAccountError: account record missing
            AccountNotInCleanUpError: account is neither CleanUp nor Available
        """
        with log_context(account_id=account_id, operation="complete_cleanup"):
            account = await self._get_account(account_id)
            if account.status == AccountStatus.AVAILABLE:
                logger.info("Account already Available, ignoring duplicate cleanup result")
                return account
            if account.status != AccountStatus.CLEANUP:
                raise AccountNotInCleanUpError(
                    f"Account {account_id} is {account.status.value}, expected CleanUp"
                )

            available = (
                await self.placement.move_account(
                    account.with_cleanup_context(None), OrgGroup.CLEANUP, OrgGroup.AVAILABLE
                )
            ).new_item
            logger.info("Account returned to the pool")
            return available

    async def eject_account(self, account_id: str) -> SandboxAccount:
        """
        Remove an account from the pool through the Exit group.

        Raises:
            CouldNotFindAccountError: account record missing
            AccountInCleanUpError: account is being cleaned
        """
        with log_context(account_id=account_id, operation="eject_account"):
            account = await self._get_account(account_id)
            if account.status == AccountStatus.CLEANUP:
                raise AccountInCleanUpError(f"Account {account_id} is being cleaned up")

            for lease in await self._monitored_leases(account_id):
                await self.terminate_lease(lease, LeaseStatus.EJECTED, request_cleanup=False)

            await self.access.revoke_all_user_access(account_id)
            ejected = (
                await self.placement.move_account(account, account.status.group, OrgGroup.EXIT)
            ).new_item
            for role in OperatorRole:
                await self.access.revoke_group_access(account_id, role)

            logger.info("Account ejected")
            log_checkpoint("account_ejected", None)
            return ejected

    async def mark_account_ejected(self, account_id: str) -> Optional[SandboxAccount]:
        """
        Record that an account left the organization on its own.

        Monitored leases are terminated as Ejected. Returns None when
        there is no record to update.
        """
        with log_context(account_id=account_id, operation="mark_account_ejected"):
            account = await self.account_repo.get(account_id)
            if account is None:
                logger.warning("No record for account missing from the directory")
                return None

            for lease in await self._monitored_leases(account_id):
                await self.terminate_lease(lease, LeaseStatus.EJECTED, request_cleanup=False)

            ejected = (await self.placement.record_status(account, AccountStatus.EJECTED)).new_item
            logger.warning("Account missing from every group, marked Ejected")
            return ejected

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _get_account(self, account_id: str) -> SandboxAccount:
        account = await self.account_repo.get(account_id)
        if account is None:
            raise CouldNotFindAccountError(f"Account {account_id} not found")
        return account

    async def _get_user(self, email: str) -> SandboxUser:
        user = await self.access.get_user_from_email(email)
        if user is None:
            raise CouldNotRetrieveUserError(f"Could not retrieve user {email}")
        return user

    async def _monitored_leases(self, account_id: str) -> List[MonitoredLease]:
        leases: List[MonitoredLease] = []
        async for lease in stream_pages(
            lambda token: self.lease_repo.find_by_account_and_status(
                account_id, MONITORED_LEASE_STATUSES, page_identifier=token
            )
        ):
            leases.append(lease)
        return leases

    def _lease_step(self, current: Lease, new: Lease):
        """CAS write of ``new`` over ``current``; undone by a CAS write back."""
        async def forward() -> Lease:
            return (await self.lease_repo.update(new, expected=current)).new_item

        async def rollback(written: Lease) -> None:
            await self.lease_repo.update(current, expected=written)

        return forward, rollback

    def _grant_step(self, account_id: str, user: SandboxUser):
        async def forward() -> None:
            await self.access.grant_user_access(account_id, user)

        async def rollback(_) -> None:
            await self.access.revoke_user_access(account_id, user)

        return forward, rollback

    def _group_grant_step(self, account_id: str, role: OperatorRole):
        async def forward() -> None:
            await self.access.grant_group_access(account_id, role)

        async def rollback(_) -> None:
            await self.access.revoke_group_access(account_id, role)

        return forward, rollback

    def _revoke_step(self, account_id: str, user: Optional[SandboxUser], restore: bool = True):
        """
        Revoke the owner's access. The rollback grants it back only when
        ``restore`` is set; a Frozen lease's owner had no grant to restore.
        """
        async def no_restore(_) -> None:
            return None

        if user is None:
            # Owner no longer resolvable: strip every assignment, nothing to restore
            async def revoke_all() -> None:
                logger.warning(f"Lease owner unknown, revoking all access on {account_id}")
                await self.access.revoke_all_user_access(account_id)

            return revoke_all, no_restore

        async def forward() -> None:
            await self.access.revoke_user_access(account_id, user)

        async def rollback(_) -> None:
            await self.access.grant_user_access(account_id, user)

        return forward, rollback if restore else no_restore


__all__ = ["LeaseLifecycleEngine", "OPEN_LEASE_STATUSES"]
