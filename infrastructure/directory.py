# ============================================================================
# ACCOUNT DIRECTORY INTERFACE
# ============================================================================
# STATUS: Infrastructure - Contract for the account-grouping directory
# PURPOSE: Source of truth for which group each account is placed in
# CREATED: 08 OCT 2026
# ============================================================================
"""
Account Directory Interface

The directory is the authoritative placement of every pooled account into
one of the organizational groups (OrgGroup). Implementations must raise:

- DirectoryRetryableError for throttling, concurrent modification and
  (on moves) timeouts. The placement manager retries these.
- DirectoryError for anything else. Never retried.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from core.contracts import OrgGroup


@dataclass(frozen=True)
class DirectoryAccount:
    """An account as the directory reports it."""
    account_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    group: Optional[OrgGroup] = None


class AccountDirectory(ABC):
    """Group placement operations."""

    @abstractmethod
    async def move_account(
        self, account_id: str, from_group: OrgGroup, to_group: OrgGroup
    ) -> None:
        """Move ``account_id`` from ``from_group`` to ``to_group``."""

    @abstractmethod
    async def list_accounts_in_group(self, group: OrgGroup) -> List[DirectoryAccount]:
        """Every account currently placed in ``group``."""

    @abstractmethod
    async def describe_account(self, account_id: str) -> Optional[DirectoryAccount]:
        """Account details including its current group, or None if unknown."""


__all__ = ["DirectoryAccount", "AccountDirectory"]
