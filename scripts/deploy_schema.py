#!/usr/bin/env python
# ============================================================================
# SCHEMA DEPLOYMENT SCRIPT
# ============================================================================
# PURPOSE: Deploy the lease/account schema to PostgreSQL
# USAGE:
#   python scripts/deploy_schema.py --dry-run    # Preview SQL
#   python scripts/deploy_schema.py              # Execute deployment
# ============================================================================

import argparse
import asyncio
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.logging import configure_logging
from repositories import DatabaseConfig, DatabasePool, deploy_schema, schema_statements


async def _deploy(config: DatabaseConfig) -> int:
    async with DatabasePool(config) as pool:
        return await deploy_schema(pool)


def main():
    parser = argparse.ArgumentParser(
        description="Deploy the sandbox lease schema to PostgreSQL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  DATABASE_URL          Full PostgreSQL connection string
  POSTGRES_HOST         Database host (default: localhost)
  POSTGRES_DB           Database name (default: postgres)
  POSTGRES_USER         Database user (default: postgres)
  POSTGRES_PASSWORD     Database password
  SANDBOX_DB_SCHEMA     Target schema (default: sandbox)
        """
    )
    parser.add_argument("--dry-run", action="store_true", help="Print DDL without executing")
    parser.add_argument(
        "--connection",
        type=str,
        help="PostgreSQL connection string (overrides environment)",
    )
    args = parser.parse_args()

    if args.dry_run:
        for statement in schema_statements():
            print(statement.as_string(None).strip() + ";\n")
        return 0

    configure_logging("INFO")
    config = DatabaseConfig.from_env()
    if args.connection:
        config = DatabaseConfig(connection_string=args.connection)

    count = asyncio.run(_deploy(config))
    print(f"Executed {count} statements")
    return 0


if __name__ == "__main__":
    sys.exit(main())
