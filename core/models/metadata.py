# ============================================================================
# RECORD METADATA
# ============================================================================
# STATUS: Core model - Version stamp shared by every stored record
# PURPOSE: lastEditTime is the optimistic-concurrency version
# CREATED: 06 OCT 2026
# ============================================================================
"""
Record Metadata

Every persisted record carries an ItemMetadata block stamped by the record
store on create/update. ``last_edit_time`` strictly increases across
writes to the same record and is the value compared by update(expected=...).
"""

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, Field

CURRENT_SCHEMA_VERSION = 1

# Smallest step that survives a round trip through TIMESTAMPTZ
VERSION_TICK = timedelta(microseconds=1)


class ItemMetadata(BaseModel):
    """Creation time, version stamp and schema version of a stored record."""

    model_config = {"frozen": True}

    created_time: datetime = Field(description="When the record was first created")
    last_edit_time: datetime = Field(description="Version stamp, bumped on every write")
    schema_version: int = Field(default=CURRENT_SCHEMA_VERSION, ge=1)


def stamp_metadata(previous: Optional[ItemMetadata], now: datetime) -> ItemMetadata:
    """
    Build the metadata for the next write of a record.

    The new ``last_edit_time`` is ``now`` unless the clock has not moved
    past the previous stamp, in which case it is bumped by one tick.
    """
    if previous is None:
        return ItemMetadata(created_time=now, last_edit_time=now)
    last_edit_time = max(now, previous.last_edit_time + VERSION_TICK)
    return ItemMetadata(
        created_time=previous.created_time,
        last_edit_time=last_edit_time,
        schema_version=CURRENT_SCHEMA_VERSION,
    )


__all__ = ["ItemMetadata", "stamp_metadata", "CURRENT_SCHEMA_VERSION", "VERSION_TICK"]
