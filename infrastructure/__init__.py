# ============================================================================
# INFRASTRUCTURE MODULE
# ============================================================================
# STATUS: Infrastructure - External collaborators
# PURPOSE: Directory, identity and cost interfaces with their AWS adapters
# CREATED: 08 OCT 2026
# ============================================================================
"""
Infrastructure module for the Sandbox Lease Orchestrator.

Provides:
- AccountDirectory / OrganizationsDirectory: group placement of accounts
- AccessManager / IdentityCenterAccessManager: user access on accounts
- CostReporter: spend lookups used by lease monitoring
- BaseRepository: error handling shared by the record store

Usage:
    from infrastructure import OrganizationsDirectory, DirectoryConfig

    directory = OrganizationsDirectory(DirectoryConfig.from_env())
    accounts = await directory.list_accounts_in_group(OrgGroup.AVAILABLE)
"""

from infrastructure.base_repository import BaseRepository
from infrastructure.directory import AccountDirectory, DirectoryAccount
from infrastructure.organizations import DirectoryConfig, OrganizationsDirectory
from infrastructure.access import (
    AccessError,
    AccessManager,
    IdentityCenterAccessManager,
    IdentityConfig,
    OperatorRole,
)
from infrastructure.cost import AccountsCostReport, CostReporter

__all__ = [
    "BaseRepository",
    "AccountDirectory",
    "DirectoryAccount",
    "DirectoryConfig",
    "OrganizationsDirectory",
    "AccessError",
    "AccessManager",
    "IdentityCenterAccessManager",
    "IdentityConfig",
    "OperatorRole",
    "AccountsCostReport",
    "CostReporter",
]
