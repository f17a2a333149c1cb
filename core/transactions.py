# ============================================================================
# COMPENSATING TRANSACTION
# ============================================================================
# STATUS: Core - Forward actions paired with best-effort rollbacks
# PURPOSE: Make a directory move plus record write appear atomic
# CREATED: 07 OCT 2026
# ============================================================================
"""
Compensating Transaction

There is no distributed transaction spanning the account directory, the
identity store and the record store. A Transaction instead records each
forward step as it is executed together with the action that undoes it.

- Transaction.begin() executes the first step eagerly.
- then() executes a further step. If it fails, the steps already taken are
  rolled back (newest first) and the step's error is re-raised.
- complete() closes the transaction. The forward effects are already in
  place, so it only marks the transaction as finished.
- rollback_transaction() runs every compensation newest first. A failing
  compensation raises RollbackFailedError, which carries both the rollback
  failure and the original cause and flags the state for an operator.

Rollback is best-effort: each compensation re-reads current state and
refuses (fails) rather than overwriting a change made by someone else.

Usage:
    txn = await Transaction.begin(move, undo_move, description="move")
    async with txn.rollback_on_error():
        await txn.then(write_lease, undo_write_lease, description="lease")
        await publish_events()
    return txn.complete()
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional

from core.errors import RollbackFailedError, TransactionStateError
from core.logging import get_logger

logger = get_logger(__name__)

ForwardAction = Callable[[], Awaitable[Any]]
RollbackAction = Callable[[Any], Awaitable[Any]]


@dataclass
class _Step:
    description: str
    result: Any
    rollback: RollbackAction


class Transaction:
    """Ordered forward steps with their compensations."""

    def __init__(self, description: str = ""):
        self.description = description
        self._steps: List[_Step] = []
        self._open = True

    @classmethod
    async def begin(
        cls,
        action: ForwardAction,
        rollback: RollbackAction,
        description: str = "",
    ) -> "Transaction":
        """Execute ``action`` and return a transaction holding its result."""
        txn = cls(description)
        result = await action()
        txn._steps.append(_Step(description, result, rollback))
        return txn

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def result(self) -> Any:
        """Result of the most recent forward step."""
        if not self._steps:
            return None
        return self._steps[-1].result

    @property
    def results(self) -> List[Any]:
        return [step.result for step in self._steps]

    async def then(
        self,
        action: ForwardAction,
        rollback: RollbackAction,
        description: str = "",
    ) -> Any:
        """
        Execute another forward step.

        On failure the earlier steps are rolled back before the step's
        error propagates (or RollbackFailedError if that rollback fails).
        """
        self._ensure_open()
        try:
            result = await action()
        except Exception as e:
            logger.warning(
                f"Transaction '{self.description}' step '{description}' failed: {e}; rolling back"
            )
            await self.rollback_transaction(cause=e)
            raise
        self._steps.append(_Step(description, result, rollback))
        return result

    def complete(self) -> Any:
        """Close the transaction and return the last step's result."""
        self._ensure_open()
        self._open = False
        return self.result

    async def rollback_transaction(self, cause: Optional[BaseException] = None) -> None:
        """
        Undo every step, newest first.

        Raises:
            RollbackFailedError: a compensation failed. Steps older than the
                failing one are left in place.
        """
        self._ensure_open()
        self._open = False
        for step in reversed(self._steps):
            try:
                await step.rollback(step.result)
            except Exception as e:
                logger.critical(
                    f"Rollback of '{step.description}' in transaction "
                    f"'{self.description}' failed: {e}. Manual intervention required"
                )
                raise RollbackFailedError(
                    f"Rollback of '{step.description}' failed",
                    rollback_cause=e,
                    original_cause=cause,
                ) from e
            logger.info(f"Rolled back '{step.description}'")

    @asynccontextmanager
    async def rollback_on_error(self):
        """Roll the transaction back if the block raises, then re-raise."""
        try:
            yield self
        except Exception as e:
            if self._open:
                await self.rollback_transaction(cause=e)
            raise

    def _ensure_open(self) -> None:
        if not self._open:
            raise TransactionStateError(
                f"Transaction '{self.description}' is already closed"
            )


__all__ = ["Transaction", "ForwardAction", "RollbackAction"]
