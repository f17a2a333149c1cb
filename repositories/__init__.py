# ============================================================================
# REPOSITORIES MODULE
# ============================================================================
# STATUS: Data access layer
# PURPOSE: Record store for leases and sandbox accounts
# CREATED: 07 OCT 2026
# ============================================================================
"""
Repositories Module

Async PostgreSQL repositories with optimistic concurrency on lastEditTime.
"""

from repositories.database import DatabaseConfig, DatabasePool, open_pool
from repositories.pagination import Page, PutResult, stream_pages
from repositories.record_store import RecordRepository
from repositories.lease_repo import LeaseRepository
from repositories.account_repo import AccountRepository
from repositories.schema import deploy_schema, schema_statements

__all__ = [
    "DatabaseConfig",
    "DatabasePool",
    "open_pool",
    "Page",
    "PutResult",
    "stream_pages",
    "RecordRepository",
    "LeaseRepository",
    "AccountRepository",
    "deploy_schema",
    "schema_statements",
]
