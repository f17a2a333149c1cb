# ============================================================================
# RECORD STORE
# ============================================================================
# STATUS: Core - Optimistic-concurrency record persistence
# PURPOSE: create/update/get/delete/find with compare-and-swap on lastEditTime
# CREATED: 07 OCT 2026
# ============================================================================
"""
Record Store

Generic PostgreSQL persistence for frozen pydantic records. Each table has
its key columns, a few indexed columns used by queries, ``last_edit_time``
and the full record as JSONB ``data``.

Write contract:
- create(record): fails with ItemAlreadyExists if the key exists.
- update(record, expected=None): with ``expected``, fails with
  ConcurrentDataModificationException unless the stored lastEditTime equals
  ``expected.meta.last_edit_time``. Without it, only requires the record to
  exist (UnknownItem otherwise).
- Both stamp fresh metadata and return PutResult(old_item, new_item).

Writes run as: validate -> stamp version -> execute. update() takes a row
lock (SELECT ... FOR UPDATE) for the check-and-write so two concurrent
updates carrying the same stale ``expected`` cannot both succeed.

Reads (get/find*) and delete are never version-checked.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import AsyncConnectionPool
from pydantic import BaseModel

from core.errors import (
    ConcurrentDataModificationException,
    ItemAlreadyExists,
    UnknownItem,
)
from core.models.metadata import stamp_metadata
from infrastructure.base_repository import BaseRepository
from repositories.pagination import (
    Page,
    PutResult,
    clamp_page_size,
    decode_page_identifier,
    encode_page_identifier,
)

R = TypeVar("R", bound=BaseModel)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RecordRepository(BaseRepository, Generic[R]):
    """
    CAS-protected repository over one table.

    Subclasses define ``table``, ``key_columns``, ``_index_values`` and
    ``_parse``.
    """

    table: sql.Identifier
    key_columns: Tuple[str, ...]
    record_name: str = "record"

    def __init__(self, pool: AsyncConnectionPool, clock: Optional[Clock] = None):
        super().__init__()
        self.pool = pool
        self.clock = clock or utc_now

    # ----------------------------------------------------------------
    # Subclass hooks
    # ----------------------------------------------------------------

    def _key_values(self, record: R) -> Tuple[str, ...]:
        return tuple(getattr(record, column) for column in self.key_columns)

    def _index_values(self, record: R) -> Dict[str, Any]:
        """Extra indexed columns stored next to ``data``."""
        return {}

    def _parse(self, data: Dict[str, Any]) -> R:
        raise NotImplementedError

    # ----------------------------------------------------------------
    # Writes
    # ----------------------------------------------------------------

    async def create(self, record: R) -> PutResult[R]:
        """
        Insert a new record.

        Raises:
            ItemAlreadyExists: a record with the same key exists
        """
        key = self._key_values(record)
        entity_id = "/".join(key)
        new_item = record.model_copy(update={"meta": stamp_metadata(None, self.clock())})
        columns = self._columns(new_item)

        with self._error_context(f"{self.record_name} create", entity_id):
            async with self.pool.connection() as conn:
                result = await conn.execute(
                    sql.SQL(
                        "INSERT INTO {} ({}) VALUES ({}) ON CONFLICT DO NOTHING"
                    ).format(
                        self.table,
                        sql.SQL(", ").join(sql.Identifier(c) for c in columns),
                        sql.SQL(", ").join(sql.Placeholder(c) for c in columns),
                    ),
                    columns,
                )
                if result.rowcount == 0:
                    raise ItemAlreadyExists(
                        f"{self.record_name} {entity_id} already exists", key=entity_id
                    )

        self._log_operation(True, f"Created {self.record_name}", entity_id)
        return PutResult(new_item=new_item, old_item=None)

    async def update(self, record: R, expected: Optional[R] = None) -> PutResult[R]:
        """
        Replace an existing record.

        Args:
            record: New image (its own meta is ignored and restamped)
            expected: Image the caller last read. When given, the write only
                succeeds if the stored version still matches it.

        Raises:
            UnknownItem: no record with this key (and no ``expected``)
            ConcurrentDataModificationException: version mismatch, or the
                record vanished since ``expected`` was read
        """
        key = self._key_values(record)
        entity_id = "/".join(key)

        with self._error_context(f"{self.record_name} update", entity_id):
            async with self.pool.connection() as conn:
                async with conn.transaction():
                    conn.row_factory = dict_row
                    result = await conn.execute(
                        sql.SQL("SELECT data FROM {} WHERE {} FOR UPDATE").format(
                            self.table, self._key_clause()
                        ),
                        self._key_params(key),
                    )
                    row = await result.fetchone()

                    if row is None:
                        if expected is not None:
                            raise ConcurrentDataModificationException(
                                f"{self.record_name} {entity_id} was deleted concurrently",
                                key=entity_id,
                            )
                        raise UnknownItem(
                            f"{self.record_name} {entity_id} does not exist", key=entity_id
                        )

                    old_item = self._parse(row["data"])
                    self._check_version(old_item, expected, entity_id)

                    new_item = record.model_copy(
                        update={"meta": stamp_metadata(old_item.meta, self.clock())}
                    )
                    columns = self._columns(new_item)
                    assignments = [c for c in columns if c not in self.key_columns]
                    await conn.execute(
                        sql.SQL("UPDATE {} SET {} WHERE {}").format(
                            self.table,
                            sql.SQL(", ").join(
                                sql.SQL("{} = {}").format(sql.Identifier(c), sql.Placeholder(c))
                                for c in assignments
                            ),
                            self._key_clause(named=True),
                        ),
                        columns,
                    )

        self._log_operation(True, f"Updated {self.record_name}", entity_id)
        return PutResult(new_item=new_item, old_item=old_item)

    def _check_version(self, stored: R, expected: Optional[R], entity_id: str) -> None:
        if expected is None:
            return
        expected_meta = getattr(expected, "meta", None)
        stored_meta = getattr(stored, "meta", None)
        if (
            expected_meta is None
            or stored_meta is None
            or stored_meta.last_edit_time != expected_meta.last_edit_time
        ):
            self.logger.warning(
                f"Version conflict on {self.record_name} {entity_id}: "
                f"expected {expected_meta.last_edit_time if expected_meta else None}, "
                f"stored {stored_meta.last_edit_time if stored_meta else None}"
            )
            raise ConcurrentDataModificationException(
                f"{self.record_name} {entity_id} was modified concurrently", key=entity_id
            )

    async def delete(self, *key: str) -> Optional[R]:
        """Delete by key. Returns the deleted image, or None if absent."""
        entity_id = "/".join(key)
        with self._error_context(f"{self.record_name} delete", entity_id):
            async with self.pool.connection() as conn:
                conn.row_factory = dict_row
                result = await conn.execute(
                    sql.SQL("DELETE FROM {} WHERE {} RETURNING data").format(
                        self.table, self._key_clause()
                    ),
                    self._key_params(key),
                )
                row = await result.fetchone()

        if row is None:
            return None
        self._log_operation(True, f"Deleted {self.record_name}", entity_id)
        return self._parse(row["data"])

    # ----------------------------------------------------------------
    # Reads
    # ----------------------------------------------------------------

    async def get(self, *key: str) -> Optional[R]:
        """Fetch by key. None if not found."""
        entity_id = "/".join(key)
        with self._error_context(f"{self.record_name} get", entity_id):
            async with self.pool.connection() as conn:
                conn.row_factory = dict_row
                result = await conn.execute(
                    sql.SQL("SELECT data FROM {} WHERE {}").format(
                        self.table, self._key_clause()
                    ),
                    self._key_params(key),
                )
                row = await result.fetchone()

        if row is None:
            return None
        return self._parse(row["data"])

    async def _find(
        self,
        filters: Optional[Dict[str, Any]] = None,
        page_identifier: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> Page[R]:
        """
        Keyset-paginated query.

        Args:
            filters: column -> value, or column -> list of values (IN)
            page_identifier: token from a previous page
            page_size: max items per page
        """
        limit = clamp_page_size(page_size)
        conditions: List[sql.Composable] = []
        params: List[Any] = []

        for column, value in (filters or {}).items():
            if isinstance(value, (list, tuple, set, frozenset)):
                conditions.append(
                    sql.SQL("{} = ANY(%s)").format(sql.Identifier(column))
                )
                params.append([getattr(v, "value", v) for v in value])
            else:
                conditions.append(sql.SQL("{} = %s").format(sql.Identifier(column)))
                params.append(getattr(value, "value", value))

        if page_identifier:
            after = decode_page_identifier(page_identifier, len(self.key_columns))
            conditions.append(
                sql.SQL("({}) > ({})").format(
                    sql.SQL(", ").join(sql.Identifier(c) for c in self.key_columns),
                    sql.SQL(", ").join(sql.Placeholder() for _ in self.key_columns),
                )
            )
            params.extend(after)

        where = sql.SQL(" AND ").join(conditions) if conditions else sql.SQL("TRUE")
        order = sql.SQL(", ").join(sql.Identifier(c) for c in self.key_columns)

        with self._error_context(f"{self.record_name} query"):
            async with self.pool.connection() as conn:
                conn.row_factory = dict_row
                result = await conn.execute(
                    sql.SQL("SELECT data FROM {} WHERE {} ORDER BY {} LIMIT %s").format(
                        self.table, where, order
                    ),
                    [*params, limit + 1],
                )
                rows = await result.fetchall()

        items = [self._parse(row["data"]) for row in rows[:limit]]
        next_page_identifier = None
        if len(rows) > limit:
            next_page_identifier = encode_page_identifier(self._key_values(items[-1]))
        return Page(items=items, next_page_identifier=next_page_identifier)

    # ----------------------------------------------------------------
    # SQL helpers
    # ----------------------------------------------------------------

    def _columns(self, record: R) -> Dict[str, Any]:
        columns: Dict[str, Any] = dict(zip(self.key_columns, self._key_values(record)))
        columns.update(self._index_values(record))
        columns["last_edit_time"] = record.meta.last_edit_time
        columns["data"] = Json(record.model_dump(mode="json"))
        return columns

    def _key_clause(self, named: bool = False) -> sql.Composable:
        return sql.SQL(" AND ").join(
            sql.SQL("{} = {}").format(
                sql.Identifier(c), sql.Placeholder(c) if named else sql.Placeholder()
            )
            for c in self.key_columns
        )

    def _key_params(self, key: Sequence[str]) -> List[str]:
        if len(key) != len(self.key_columns):
            raise ValueError(
                f"{self.record_name} key needs {len(self.key_columns)} parts, got {len(key)}"
            )
        return list(key)


__all__ = ["RecordRepository", "utc_now", "Clock"]
