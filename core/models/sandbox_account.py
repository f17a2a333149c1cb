# ============================================================================
# SANDBOX ACCOUNT MODEL
# ============================================================================
# STATUS: Core model - Pooled cloud account
# PURPOSE: Stored status mirrors the account's directory group
# CREATED: 06 OCT 2026
# ============================================================================
"""
Sandbox Account Model

``status`` must always equal the account's actual group in the directory.
Any mismatch is drift, which the reconciliation loop detects.
``drift_at_last_scan`` remembers a mismatch seen by the previous scan so
an alert is only raised when two consecutive scans disagree.

Key: aws_account_id
"""

from datetime import datetime
from typing import ClassVar, List, Optional

from pydantic import BaseModel, Field

from core.contracts import AccountStatus
from core.models.metadata import ItemMetadata


class CleanupExecutionContext(BaseModel):
    """Opaque handle on the cleanup workflow run for this account."""

    model_config = {"frozen": True}

    execution_arn: str = Field(max_length=2048)
    start_time: datetime


class SandboxAccount(BaseModel):
    """
    A pooled account.

    Table: sandbox_accounts
    """

    __sql_table__: ClassVar[str] = "sandbox_accounts"
    __sql_primary_key__: ClassVar[List[str]] = ["aws_account_id"]

    model_config = {"frozen": True}

    aws_account_id: str = Field(pattern=r"^\d{12}$")
    email: Optional[str] = Field(default=None, max_length=320)
    name: Optional[str] = Field(default=None, max_length=128)
    status: AccountStatus
    cleanup_execution_context: Optional[CleanupExecutionContext] = None
    drift_at_last_scan: Optional[bool] = None
    meta: Optional[ItemMetadata] = None

    def with_status(self, status: AccountStatus) -> "SandboxAccount":
        return self.model_copy(update={"status": status})

    def with_drift_flag(self, drifted: bool) -> "SandboxAccount":
        return self.model_copy(update={"drift_at_last_scan": drifted})

    def with_cleanup_context(
        self, context: Optional[CleanupExecutionContext]
    ) -> "SandboxAccount":
        return self.model_copy(update={"cleanup_execution_context": context})


__all__ = ["CleanupExecutionContext", "SandboxAccount"]
