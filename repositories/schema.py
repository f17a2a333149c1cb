# ============================================================================
# RECORD STORE SCHEMA
# ============================================================================
# STATUS: Core - DDL for the lease and account tables
# PURPOSE: Idempotent schema deployment
# CREATED: 07 OCT 2026
# ============================================================================
"""
Record Store Schema

Each table keeps its key and query columns as real columns and the full
record as JSONB. All statements are idempotent (IF NOT EXISTS).
"""

import logging
from typing import List

from psycopg import sql
from psycopg_pool import AsyncConnectionPool

from repositories.database import SCHEMA, TABLE_ACCOUNTS, TABLE_LEASES

logger = logging.getLogger(__name__)


def _index(name: str, table: sql.Identifier, *columns: str) -> sql.Composed:
    return sql.SQL("CREATE INDEX IF NOT EXISTS {} ON {} ({})").format(
        sql.Identifier(name),
        table,
        sql.SQL(", ").join(sql.Identifier(c) for c in columns),
    )


def schema_statements() -> List[sql.Composable]:
    """Ordered DDL statements for the orchestrator schema."""
    return [
        sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(SCHEMA)),
        sql.SQL("""
        CREATE TABLE IF NOT EXISTS {} (
            user_email      VARCHAR(320) NOT NULL,
            uuid            VARCHAR(64)  NOT NULL,
            status          VARCHAR(32)  NOT NULL,
            aws_account_id  VARCHAR(12),
            template_uuid   VARCHAR(64)  NOT NULL,
            last_edit_time  TIMESTAMPTZ  NOT NULL,
            data            JSONB        NOT NULL,
            PRIMARY KEY (user_email, uuid)
        )
        """).format(TABLE_LEASES),
        _index("idx_leases_status", TABLE_LEASES, "status"),
        _index("idx_leases_account_status", TABLE_LEASES, "aws_account_id", "status"),
        _index("idx_leases_template", TABLE_LEASES, "template_uuid"),
        sql.SQL("""
        CREATE TABLE IF NOT EXISTS {} (
            aws_account_id  VARCHAR(12)  PRIMARY KEY,
            status          VARCHAR(32)  NOT NULL,
            last_edit_time  TIMESTAMPTZ  NOT NULL,
            data            JSONB        NOT NULL
        )
        """).format(TABLE_ACCOUNTS),
        _index("idx_sandbox_accounts_status", TABLE_ACCOUNTS, "status"),
    ]


async def deploy_schema(pool: AsyncConnectionPool) -> int:
    """
    Apply every DDL statement in one transaction.

    Returns:
        Number of statements executed
    """
    statements = schema_statements()
    async with pool.connection() as conn:
        async with conn.transaction():
            for statement in statements:
                await conn.execute(statement)
    logger.info(f"Deployed schema '{SCHEMA}' ({len(statements)} statements)")
    return len(statements)


__all__ = ["schema_statements", "deploy_schema"]
