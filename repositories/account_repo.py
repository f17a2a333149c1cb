# ============================================================================
# ACCOUNT REPOSITORY
# ============================================================================
# STATUS: Core - Sandbox account persistence
# PURPOSE: Database access for the sandbox_accounts table
# CREATED: 07 OCT 2026
# ============================================================================
"""
Account Repository

CAS-protected persistence for sandbox accounts, keyed by aws_account_id.
"""

from typing import Any, Dict, Optional

from core.contracts import AccountStatus
from core.models.sandbox_account import SandboxAccount
from repositories.database import TABLE_ACCOUNTS
from repositories.pagination import Page
from repositories.record_store import RecordRepository


class AccountRepository(RecordRepository[SandboxAccount]):
    """Repository for SandboxAccount records."""

    table = TABLE_ACCOUNTS
    key_columns = ("aws_account_id",)
    record_name = "account"

    def _index_values(self, record: SandboxAccount) -> Dict[str, Any]:
        return {"status": record.status.value}

    def _parse(self, data: Dict[str, Any]) -> SandboxAccount:
        return SandboxAccount.model_validate(data)

    async def find_by_status(
        self,
        status: AccountStatus,
        page_identifier: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> Page[SandboxAccount]:
        """Accounts whose stored status is ``status``."""
        return await self._find({"status": status}, page_identifier, page_size)

    async def find_all(
        self,
        page_identifier: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> Page[SandboxAccount]:
        return await self._find(None, page_identifier, page_size)
