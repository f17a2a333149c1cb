# ============================================================================
# ERROR TAXONOMY
# ============================================================================
# STATUS: Core - Named error conditions for lifecycle operations
# PURPOSE: Distinguish conflict, precondition, transient and rollback failures
# CREATED: 06 OCT 2026
# ============================================================================
"""
Error Taxonomy

Every error raised by the orchestrator derives from SandboxError and
carries an ErrorKind so callers (API layer, event consumer) can map it to
a response without isinstance chains:

- CONFLICT:     record store version/existence conflicts. Never retried.
- PRECONDITION: lease/account not in the required state, not found.
- TRANSIENT:    directory throttling / concurrent modification / timeout.
- ROLLBACK:     a compensating rollback failed. Needs an operator.
- FATAL:        anything else that aborts the operation.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Category of a SandboxError."""
    CONFLICT = "conflict"
    PRECONDITION = "precondition"
    TRANSIENT = "transient"
    ROLLBACK = "rollback"
    FATAL = "fatal"


class SandboxError(Exception):
    """Base exception for the orchestrator."""

    kind: ErrorKind = ErrorKind.FATAL


# ============================================================================
# CONFLICT ERRORS (record store)
# ============================================================================

class RecordStoreConflict(SandboxError):
    """Write rejected by the record store's existence/version checks."""

    kind = ErrorKind.CONFLICT

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message)


class ItemAlreadyExists(RecordStoreConflict):
    """create() found a record with the same key."""


class UnknownItem(RecordStoreConflict):
    """update() without ``expected`` found no record to replace."""


class ConcurrentDataModificationException(RecordStoreConflict):
    """update() with ``expected`` lost a compare-and-swap on lastEditTime."""


# ============================================================================
# PRECONDITION ERRORS
# ============================================================================

class PreconditionError(SandboxError):
    """Lifecycle operation invoked on a record in the wrong state."""

    kind = ErrorKind.PRECONDITION


class LeaseNotInRequiredStateError(PreconditionError):
    """Lease is not in the phase the operation requires."""


class AccountNotInActiveError(PreconditionError):
    """Lease or account is not Active."""


class AccountNotInFrozenError(PreconditionError):
    """Account is not Frozen."""


class AccountNotInQuarantineError(PreconditionError):
    """Account is neither in Quarantine nor CleanUp."""


class AccountInCleanUpError(PreconditionError):
    """Account is being cleaned and cannot be ejected."""


class AccountNotInCleanUpError(PreconditionError):
    """Cleanup result arrived for an account that is not in CleanUp."""


class CouldNotFindAccountError(PreconditionError):
    """Account record or directory entry does not exist."""


class NoAccountsAvailableError(CouldNotFindAccountError):
    """No account in the Available group to assign to a lease."""


class CouldNotRetrieveUserError(PreconditionError):
    """Lease owner could not be resolved by the identity collaborator."""


class MaxNumberOfLeasesExceededError(PreconditionError):
    """User already holds the maximum number of open leases."""


class TemplatePolicyViolationError(PreconditionError):
    """Lease template grants more budget or duration than the global policy allows."""


# ============================================================================
# DIRECTORY ERRORS
# ============================================================================

class DirectoryError(SandboxError):
    """Non-retryable failure reported by the account directory."""

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code
        super().__init__(message)


class DirectoryRetryableError(DirectoryError):
    """Throttling, concurrent modification or timeout. Safe to retry."""

    kind = ErrorKind.TRANSIENT


class DirectoryRetriesExhaustedError(DirectoryError):
    """Retryable directory failure persisted past the retry budget."""

    def __init__(self, message: str, attempts: int, code: Optional[str] = None):
        self.attempts = attempts
        super().__init__(message, code=code)


# ============================================================================
# INFRASTRUCTURE ERRORS
# ============================================================================

class RepositoryError(SandboxError):
    """Unexpected record store failure (connection, SQL, decoding)."""

    def __init__(self, message: str, operation: str = None, entity_id: str = None):
        self.operation = operation
        self.entity_id = entity_id
        super().__init__(message)


class EventEmissionError(SandboxError):
    """Lifecycle events could not be delivered to the event bus."""


# ============================================================================
# TRANSACTION ERRORS
# ============================================================================

class TransactionStateError(SandboxError):
    """Transaction used after it was completed or rolled back."""


class RollbackFailedError(SandboxError):
    """
    A compensating rollback failed.

    The system is left in an inconsistent state that requires manual
    intervention. Carries both the rollback failure and the error that
    triggered the rollback.
    """

    kind = ErrorKind.ROLLBACK
    requires_manual_intervention = True

    def __init__(
        self,
        message: str,
        rollback_cause: BaseException,
        original_cause: Optional[BaseException] = None,
    ):
        self.rollback_cause = rollback_cause
        self.original_cause = original_cause
        detail = f"{message}: rollback failed with {type(rollback_cause).__name__}: {rollback_cause}"
        if original_cause is not None:
            detail += f" (triggered by {type(original_cause).__name__}: {original_cause})"
        super().__init__(detail)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ErrorKind",
    "SandboxError",
    "RecordStoreConflict",
    "ItemAlreadyExists",
    "UnknownItem",
    "ConcurrentDataModificationException",
    "PreconditionError",
    "LeaseNotInRequiredStateError",
    "AccountNotInActiveError",
    "AccountNotInFrozenError",
    "AccountNotInQuarantineError",
    "AccountInCleanUpError",
    "AccountNotInCleanUpError",
    "CouldNotFindAccountError",
    "NoAccountsAvailableError",
    "CouldNotRetrieveUserError",
    "MaxNumberOfLeasesExceededError",
    "TemplatePolicyViolationError",
    "DirectoryError",
    "DirectoryRetryableError",
    "DirectoryRetriesExhaustedError",
    "RepositoryError",
    "EventEmissionError",
    "TransactionStateError",
    "RollbackFailedError",
]
