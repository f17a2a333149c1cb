# ============================================================================
# AWS ORGANIZATIONS DIRECTORY
# ============================================================================
# STATUS: Infrastructure - AccountDirectory backed by AWS Organizations
# PURPOSE: Move/list/describe accounts across the sandbox OUs
# CREATED: 08 OCT 2026
# ============================================================================
"""
AWS Organizations Directory

Each OrgGroup is an organizational unit directly under the sandbox root OU,
named after the group ("Available", "Active", ...). OU ids are resolved
once per instance on first use.

boto3 calls are synchronous and run via asyncio.to_thread. botocore's own
retries are disabled (max_attempts=1) so the placement manager's bounded
backoff is the only retry layer. Connect/read timeouts bound every call.

Error mapping:
    ConcurrentModificationException, TooManyRequestsException -> retryable
    connect/read timeouts on move_account                      -> retryable
    everything else                                            -> DirectoryError
"""

import asyncio
import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    ReadTimeoutError,
)

from core.config.defaults import PlacementDefaults
from core.contracts import OrgGroup
from core.errors import DirectoryError, DirectoryRetryableError
from infrastructure.directory import AccountDirectory, DirectoryAccount

logger = logging.getLogger(__name__)

RETRYABLE_ERROR_CODES = frozenset({
    "ConcurrentModificationException",
    "TooManyRequestsException",
})


@dataclass(frozen=True)
class DirectoryConfig:
    """AWS Organizations settings."""
    sandbox_root_ou_id: str
    region: Optional[str] = None
    profile: Optional[str] = None

    @classmethod
    def from_env(cls) -> "DirectoryConfig":
        """Load configuration from environment variables."""
        root = os.environ.get("SANDBOX_ROOT_OU_ID", "")
        if not root:
            raise ValueError("SANDBOX_ROOT_OU_ID environment variable not set")
        return cls(
            sandbox_root_ou_id=root,
            region=os.environ.get("AWS_REGION"),
            profile=os.environ.get("AWS_PROFILE"),
        )


class OrganizationsDirectory(AccountDirectory):
    """AccountDirectory over the AWS Organizations API."""

    def __init__(
        self,
        config: DirectoryConfig,
        placement: Optional[PlacementDefaults] = None,
        client: Any = None,
    ):
        self.config = config
        placement = placement or PlacementDefaults()
        if client is None:
            session = boto3.Session(region_name=config.region, profile_name=config.profile)
            client = session.client(
                "organizations",
                config=Config(
                    connect_timeout=placement.connect_timeout_seconds,
                    read_timeout=placement.read_timeout_seconds,
                    retries={"max_attempts": 1, "mode": "standard"},
                ),
            )
        self._client = client
        self._group_ids: Optional[Dict[OrgGroup, str]] = None
        self._lock = threading.Lock()

    # ----------------------------------------------------------------
    # AccountDirectory
    # ----------------------------------------------------------------

    async def move_account(
        self, account_id: str, from_group: OrgGroup, to_group: OrgGroup
    ) -> None:
        await asyncio.to_thread(self._move_account_sync, account_id, from_group, to_group)

    async def list_accounts_in_group(self, group: OrgGroup) -> List[DirectoryAccount]:
        return await asyncio.to_thread(self._list_accounts_sync, group)

    async def describe_account(self, account_id: str) -> Optional[DirectoryAccount]:
        return await asyncio.to_thread(self._describe_account_sync, account_id)

    # ----------------------------------------------------------------
    # Sync implementations
    # ----------------------------------------------------------------

    def _move_account_sync(self, account_id: str, from_group: OrgGroup, to_group: OrgGroup) -> None:
        group_ids = self._resolve_group_ids()
        try:
            self._client.move_account(
                AccountId=account_id,
                SourceParentId=group_ids[from_group],
                DestinationParentId=group_ids[to_group],
            )
        except (ClientError, BotoCoreError) as exc:
            raise self._map_error(exc, f"move {account_id} {from_group.value}->{to_group.value}", retry_timeouts=True)
        logger.info(f"Moved account {account_id} from {from_group.value} to {to_group.value}")

    def _list_accounts_sync(self, group: OrgGroup) -> List[DirectoryAccount]:
        group_ids = self._resolve_group_ids()
        accounts: List[DirectoryAccount] = []
        try:
            paginator = self._client.get_paginator("list_accounts_for_parent")
            for page in paginator.paginate(ParentId=group_ids[group]):
                for entry in page.get("Accounts", []) or []:
                    accounts.append(
                        DirectoryAccount(
                            account_id=str(entry["Id"]),
                            email=entry.get("Email"),
                            name=entry.get("Name"),
                            group=group,
                        )
                    )
        except (ClientError, BotoCoreError) as exc:
            raise self._map_error(exc, f"list accounts in {group.value}")
        return accounts

    def _describe_account_sync(self, account_id: str) -> Optional[DirectoryAccount]:
        group_ids = self._resolve_group_ids()
        groups_by_id = {ou_id: group for group, ou_id in group_ids.items()}
        try:
            account = self._client.describe_account(AccountId=account_id)["Account"]
            parents = self._client.list_parents(ChildId=account_id).get("Parents", [])
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "AccountNotFoundException":
                return None
            raise self._map_error(exc, f"describe {account_id}")
        except BotoCoreError as exc:
            raise self._map_error(exc, f"describe {account_id}")

        group = None
        for parent in parents:
            group = groups_by_id.get(parent.get("Id"))
            if group is not None:
                break
        return DirectoryAccount(
            account_id=account_id,
            email=account.get("Email"),
            name=account.get("Name"),
            group=group,
        )

    def _resolve_group_ids(self) -> Dict[OrgGroup, str]:
        """Map every OrgGroup to its OU id under the sandbox root."""
        if self._group_ids is not None:
            return self._group_ids
        with self._lock:
            if self._group_ids is not None:
                return self._group_ids
            by_name: Dict[str, str] = {}
            try:
                paginator = self._client.get_paginator("list_organizational_units_for_parent")
                for page in paginator.paginate(ParentId=self.config.sandbox_root_ou_id):
                    for ou in page.get("OrganizationalUnits", []) or []:
                        by_name[ou["Name"]] = ou["Id"]
            except (ClientError, BotoCoreError) as exc:
                raise self._map_error(exc, "resolve sandbox OUs")

            missing = [g.value for g in OrgGroup if g.value not in by_name]
            if missing:
                raise DirectoryError(
                    f"Sandbox root {self.config.sandbox_root_ou_id} is missing OUs: {', '.join(missing)}"
                )
            self._group_ids = {group: by_name[group.value] for group in OrgGroup}
            logger.info(f"Resolved {len(self._group_ids)} sandbox OUs")
            return self._group_ids

    def _map_error(self, exc: Exception, action: str, retry_timeouts: bool = False) -> DirectoryError:
        if isinstance(exc, ClientError):
            error = exc.response.get("Error", {})
            code = error.get("Code", "Unknown")
            message = error.get("Message", str(exc))
            if code in RETRYABLE_ERROR_CODES:
                logger.warning(f"Retryable directory error during {action}: {code}")
                return DirectoryRetryableError(f"{action}: {message}", code=code)
            logger.error(f"Directory error during {action}: {code}: {message}")
            return DirectoryError(f"{action}: {message}", code=code)

        if isinstance(exc, (ConnectTimeoutError, ReadTimeoutError)):
            if retry_timeouts:
                logger.warning(f"Directory timeout during {action}")
                return DirectoryRetryableError(f"{action}: timed out", code="Timeout")
            return DirectoryError(f"{action}: timed out", code="Timeout")

        logger.error(f"Directory client failure during {action}: {exc}")
        return DirectoryError(f"{action}: {exc}", code=type(exc).__name__)


__all__ = ["DirectoryConfig", "OrganizationsDirectory", "RETRYABLE_ERROR_CODES"]
