# ============================================================================
# IDENTITY & ACCESS
# ============================================================================
# STATUS: Infrastructure - User resolution and account access grants
# PURPOSE: Grant/revoke a lease owner's access to a pooled account
# CREATED: 08 OCT 2026
# ============================================================================
"""
Identity & Access

AccessManager is what the lifecycle engine needs from the identity store:
resolve a lease owner by email, grant them access to an account, and
revoke every user grant on an account. Operator groups (Manager, Admin)
are granted access to every account while it is in the pool.

IdentityCenterAccessManager implements it with IAM Identity Center:
users live in an identity store, and access is an account assignment of
the sandbox user permission set. Operator groups get an assignment of
their role's permission set. Grants and revokes are idempotent:
an existing assignment is success, a missing one is a no-op.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from core.errors import SandboxError
from core.models.user import SandboxUser

logger = logging.getLogger(__name__)


class OperatorRole(str, Enum):
    """Operator groups with access to every pooled account."""
    MANAGER = "Manager"
    ADMIN = "Admin"


class AccessError(SandboxError):
    """Identity store or access assignment call failed."""

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code
        super().__init__(message)


class AccessManager(ABC):
    """Identity/access collaborator keyed by account id."""

    @abstractmethod
    async def get_user_from_email(self, email: str) -> Optional[SandboxUser]:
        """Resolve a user, or None if the identity store does not know them."""

    @abstractmethod
    async def grant_user_access(self, account_id: str, user: SandboxUser) -> None:
        """Give ``user`` access to ``account_id``."""

    @abstractmethod
    async def revoke_user_access(self, account_id: str, user: SandboxUser) -> None:
        """Remove ``user``'s access to ``account_id``."""

    @abstractmethod
    async def revoke_all_user_access(self, account_id: str) -> None:
        """Remove every user grant on ``account_id``."""

    @abstractmethod
    async def grant_group_access(self, account_id: str, role: OperatorRole) -> None:
        """Give the ``role`` operator group access to ``account_id``."""

    @abstractmethod
    async def revoke_group_access(self, account_id: str, role: OperatorRole) -> None:
        """Remove the ``role`` operator group's access to ``account_id``."""


# ============================================================================
# IAM IDENTITY CENTER
# ============================================================================

@dataclass(frozen=True)
class IdentityConfig:
    """IAM Identity Center settings."""
    identity_store_id: str
    sso_instance_arn: str
    user_permission_set_arn: str
    manager_group_id: Optional[str] = None
    manager_permission_set_arn: Optional[str] = None
    admin_group_id: Optional[str] = None
    admin_permission_set_arn: Optional[str] = None
    region: Optional[str] = None

    @classmethod
    def from_env(cls) -> "IdentityConfig":
        """Load configuration from environment variables."""
        missing = [
            name for name in ("IDENTITY_STORE_ID", "SSO_INSTANCE_ARN", "USER_PERMISSION_SET_ARN")
            if not os.environ.get(name)
        ]
        if missing:
            raise ValueError(f"Missing environment variables: {', '.join(missing)}")
        return cls(
            identity_store_id=os.environ["IDENTITY_STORE_ID"],
            sso_instance_arn=os.environ["SSO_INSTANCE_ARN"],
            user_permission_set_arn=os.environ["USER_PERMISSION_SET_ARN"],
            manager_group_id=os.environ.get("MANAGER_GROUP_ID"),
            manager_permission_set_arn=os.environ.get("MANAGER_PERMISSION_SET_ARN"),
            admin_group_id=os.environ.get("ADMIN_GROUP_ID"),
            admin_permission_set_arn=os.environ.get("ADMIN_PERMISSION_SET_ARN"),
            region=os.environ.get("AWS_REGION"),
        )

    def group_assignment(self, role: OperatorRole) -> Tuple[str, str]:
        """
        Group id and permission set ARN for ``role``.

        Raises:
            AccessError: the role's group is not configured
        """
        if role == OperatorRole.MANAGER:
            group_id, permission_set_arn = self.manager_group_id, self.manager_permission_set_arn
        else:
            group_id, permission_set_arn = self.admin_group_id, self.admin_permission_set_arn
        if not group_id or not permission_set_arn:
            raise AccessError(
                f"No group configured for the {role.value} role", code="GroupNotConfigured"
            )
        return group_id, permission_set_arn


class IdentityCenterAccessManager(AccessManager):
    """AccessManager over the identitystore and sso-admin APIs."""

    def __init__(
        self,
        config: IdentityConfig,
        identity_store_client: Any = None,
        sso_admin_client: Any = None,
    ):
        self.config = config
        if identity_store_client is None or sso_admin_client is None:
            session = boto3.Session(region_name=config.region)
            client_config = Config(connect_timeout=5, read_timeout=30, retries={"max_attempts": 3})
            identity_store_client = identity_store_client or session.client(
                "identitystore", config=client_config
            )
            sso_admin_client = sso_admin_client or session.client(
                "sso-admin", config=client_config
            )
        self._identity_store = identity_store_client
        self._sso_admin = sso_admin_client

    async def get_user_from_email(self, email: str) -> Optional[SandboxUser]:
        return await asyncio.to_thread(self._get_user_sync, email)

    async def grant_user_access(self, account_id: str, user: SandboxUser) -> None:
        await asyncio.to_thread(self._assign_sync, "create", account_id, user.user_id)
        logger.info(f"Granted {user.email} access to {account_id}")

    async def revoke_user_access(self, account_id: str, user: SandboxUser) -> None:
        await asyncio.to_thread(self._assign_sync, "delete", account_id, user.user_id)
        logger.info(f"Revoked {user.email} access to {account_id}")

    async def revoke_all_user_access(self, account_id: str) -> None:
        revoked = await asyncio.to_thread(self._revoke_all_sync, account_id)
        logger.info(f"Revoked {revoked} user assignment(s) on {account_id}")

    async def grant_group_access(self, account_id: str, role: OperatorRole) -> None:
        group_id, permission_set_arn = self.config.group_assignment(role)
        await asyncio.to_thread(
            self._assign_sync, "create", account_id, group_id, "GROUP", permission_set_arn
        )
        logger.info(f"Granted {role.value} group access to {account_id}")

    async def revoke_group_access(self, account_id: str, role: OperatorRole) -> None:
        group_id, permission_set_arn = self.config.group_assignment(role)
        await asyncio.to_thread(
            self._assign_sync, "delete", account_id, group_id, "GROUP", permission_set_arn
        )
        logger.info(f"Revoked {role.value} group access to {account_id}")

    # ----------------------------------------------------------------
    # Sync implementations
    # ----------------------------------------------------------------

    def _get_user_sync(self, email: str) -> Optional[SandboxUser]:
        try:
            user_id = self._identity_store.get_user_id(
                IdentityStoreId=self.config.identity_store_id,
                AlternateIdentifier={
                    "UniqueAttribute": {"AttributePath": "emails.value", "AttributeValue": email}
                },
            )["UserId"]
            user = self._identity_store.describe_user(
                IdentityStoreId=self.config.identity_store_id, UserId=user_id
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "ResourceNotFoundException":
                return None
            raise self._map_error(exc, f"resolve user {email}")
        except BotoCoreError as exc:
            raise self._map_error(exc, f"resolve user {email}")

        return SandboxUser(
            email=email,
            user_id=user_id,
            display_name=user.get("DisplayName"),
            user_name=user.get("UserName"),
        )

    def _assign_sync(
        self,
        action: str,
        account_id: str,
        principal_id: str,
        principal_type: str = "USER",
        permission_set_arn: Optional[str] = None,
    ) -> None:
        params = {
            "InstanceArn": self.config.sso_instance_arn,
            "PermissionSetArn": permission_set_arn or self.config.user_permission_set_arn,
            "PrincipalId": principal_id,
            "PrincipalType": principal_type,
            "TargetId": account_id,
            "TargetType": "AWS_ACCOUNT",
        }
        try:
            if action == "create":
                self._sso_admin.create_account_assignment(**params)
            else:
                self._sso_admin.delete_account_assignment(**params)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if action == "create" and code == "ConflictException":
                return
            if action == "delete" and code == "ResourceNotFoundException":
                return
            raise self._map_error(exc, f"{action} assignment on {account_id}")
        except BotoCoreError as exc:
            raise self._map_error(exc, f"{action} assignment on {account_id}")

    def _revoke_all_sync(self, account_id: str) -> int:
        revoked = 0
        try:
            paginator = self._sso_admin.get_paginator("list_account_assignments")
            pages = paginator.paginate(
                InstanceArn=self.config.sso_instance_arn,
                AccountId=account_id,
                PermissionSetArn=self.config.user_permission_set_arn,
            )
            principals = [
                assignment["PrincipalId"]
                for page in pages
                for assignment in page.get("AccountAssignments", []) or []
                if assignment.get("PrincipalType") == "USER"
            ]
        except (ClientError, BotoCoreError) as exc:
            raise self._map_error(exc, f"list assignments on {account_id}")

        for principal_id in principals:
            self._assign_sync("delete", account_id, principal_id)
            revoked += 1
        return revoked

    def _map_error(self, exc: Exception, action: str) -> AccessError:
        if isinstance(exc, ClientError):
            error = exc.response.get("Error", {})
            code = error.get("Code", "Unknown")
            message = error.get("Message", str(exc))
        else:
            code = type(exc).__name__
            message = str(exc)
        logger.error(f"Identity Center error during {action}: {code}: {message}")
        return AccessError(f"{action}: {message}", code=code)


__all__ = [
    "OperatorRole",
    "AccessError",
    "AccessManager",
    "IdentityConfig",
    "IdentityCenterAccessManager",
]
