# ============================================================================
# ACCOUNT PLACEMENT SERVICE
# ============================================================================
# STATUS: Core - Directory group moves with retry and record persistence
# PURPOSE: Keep directory placement and stored account status moving together
# CREATED: 10 OCT 2026
# ============================================================================
"""
Account Placement Service

move_account() performs the directory move, then persists the status that
matches the target group on the account record.

Directory retry policy:
- Only DirectoryRetryableError (concurrent modification, throttling,
  timeout on the move) is retried.
- Exponential backoff with full jitter: before retry n the manager sleeps
  uniform(0, min(max_delay, base_delay * 2**n)).
- After max_attempts the error surfaces as DirectoryRetriesExhaustedError.
- Every other directory error propagates on the first attempt.

transactional_move_account() wraps the move in a compensating Transaction.
Frozen -> CleanUp is two hops through Active, each reversible on its own.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from core.config import ConfigProvider
from core.contracts import AccountStatus, OrgGroup
from core.errors import (
    ConcurrentDataModificationException,
    DirectoryRetriesExhaustedError,
    DirectoryRetryableError,
)
from core.models.sandbox_account import SandboxAccount
from core.transactions import Transaction
from infrastructure.directory import AccountDirectory, DirectoryAccount
from repositories.account_repo import AccountRepository
from repositories.pagination import PutResult

logger = logging.getLogger(__name__)

# Moves the directory cannot make in one step
_INTERMEDIATE_HOPS: Dict[Tuple[OrgGroup, OrgGroup], List[OrgGroup]] = {
    (OrgGroup.FROZEN, OrgGroup.CLEANUP): [OrgGroup.ACTIVE],
}


class AccountPlacementManager:
    """Moves accounts between organizational groups."""

    def __init__(
        self,
        account_repo: AccountRepository,
        directory: AccountDirectory,
        config_provider: ConfigProvider,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[float, float], float] = random.uniform,
    ):
        """
        Initialize placement manager.

        Args:
            account_repo: Account record store
            directory: Account directory (source of truth for placement)
            config_provider: Supplies the retry policy per move
            sleep: Backoff sleep (injected by tests)
            rng: Jitter source, called as rng(0, cap)
        """
        self.account_repo = account_repo
        self.directory = directory
        self.config_provider = config_provider
        self._sleep = sleep
        self._rng = rng

    # =========================================================================
    # MOVES
    # =========================================================================

    async def move_account(
        self,
        account: SandboxAccount,
        from_group: OrgGroup,
        to_group: OrgGroup,
    ) -> PutResult[SandboxAccount]:
        """
        Move ``account`` in the directory and persist its new status.

        A record that was never stored (no meta) is created; otherwise it
        is updated, requiring only that it still exists. When the account
        is already in ``to_group`` only the record is written.

        Raises:
            DirectoryRetriesExhaustedError: retryable failures outlasted the policy
            DirectoryError: non-retryable directory failure
            UnknownItem: the stored record disappeared
        """
        if from_group != to_group:
            await self._move_with_retry(account.aws_account_id, from_group, to_group)

        updated = account.with_status(AccountStatus.for_group(to_group))
        if account.meta is None:
            result = await self.account_repo.create(updated)
        else:
            result = await self.account_repo.update(updated)

        logger.info(
            f"Account {account.aws_account_id} placed: {from_group.value} -> {to_group.value}"
        )
        return result

    async def record_status(
        self, account: SandboxAccount, status: AccountStatus
    ) -> PutResult[SandboxAccount]:
        """Persist ``status`` without touching the directory."""
        return await self.account_repo.update(account.with_status(status))

    async def locate(self, account_id: str) -> Optional[DirectoryAccount]:
        """Directory view of ``account_id``, or None if the directory does not know it."""
        return await self.directory.describe_account(account_id)

    async def _move_with_retry(
        self, account_id: str, from_group: OrgGroup, to_group: OrgGroup
    ) -> None:
        policy = self.config_provider.load().placement

        for attempt in range(policy.max_attempts):
            try:
                await self.directory.move_account(account_id, from_group, to_group)
                return
            except DirectoryRetryableError as e:
                if attempt == policy.max_attempts - 1:
                    logger.error(
                        f"Moving {account_id} {from_group.value} -> {to_group.value} "
                        f"failed after {policy.max_attempts} attempts: {e}"
                    )
                    raise DirectoryRetriesExhaustedError(
                        f"Directory move of {account_id} failed after "
                        f"{policy.max_attempts} attempts: {e}",
                        attempts=policy.max_attempts,
                        code=e.code,
                    ) from e

                cap = min(policy.max_delay_seconds, policy.base_delay_seconds * (2 ** attempt))
                delay = self._rng(0, cap)
                logger.warning(
                    f"Retryable directory error moving {account_id} "
                    f"(attempt {attempt + 1}/{policy.max_attempts}, {e.code}); "
                    f"retrying in {delay:.2f}s"
                )
                await self._sleep(delay)

    # =========================================================================
    # TRANSACTIONAL MOVES
    # =========================================================================

    async def transactional_move_account(
        self,
        account: SandboxAccount,
        from_group: OrgGroup,
        to_group: OrgGroup,
        txn: Optional[Transaction] = None,
    ) -> Transaction:
        """
        Move ``account`` as compensable transaction steps.

        Args:
            account: Current account image
            from_group: Current group
            to_group: Target group
            txn: Transaction to append the steps to; a new one is begun if None

        Returns:
            The transaction. Its result is the PutResult of the final hop.
        """
        hops = [from_group, *_INTERMEDIATE_HOPS.get((from_group, to_group), []), to_group]
        current = account

        for source, target in zip(hops, hops[1:]):
            forward = self._forward_hop(current, source, target)
            rollback = self._rollback_hop(source, target)
            description = f"move {account.aws_account_id} {source.value}->{target.value}"

            if txn is None:
                txn = await Transaction.begin(forward, rollback, description=description)
            else:
                await txn.then(forward, rollback, description=description)
            current = txn.result.new_item

        return txn

    def _forward_hop(self, account: SandboxAccount, source: OrgGroup, target: OrgGroup):
        async def forward() -> PutResult[SandboxAccount]:
            return await self.move_account(account, source, target)
        return forward

    def _rollback_hop(self, source: OrgGroup, target: OrgGroup):
        async def rollback(result: PutResult[SandboxAccount]) -> None:
            moved = result.new_item
            current = await self.account_repo.get(moved.aws_account_id)
            # Later hops already rolled back leave the status, not the version, as it was
            if current is None or current.status != moved.status:
                raise ConcurrentDataModificationException(
                    f"Account {moved.aws_account_id} is no longer {moved.status.value} "
                    f"since it was moved to {target.value}; refusing to move it back",
                    key=moved.aws_account_id,
                )
            if source.is_transient():
                # Entry and Exit carry no stored status
                await self._move_with_retry(moved.aws_account_id, target, source)
                await self.account_repo.delete(moved.aws_account_id)
                return
            await self.move_account(current, target, source)
        return rollback


__all__ = ["AccountPlacementManager"]
