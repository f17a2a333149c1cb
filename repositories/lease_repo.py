# ============================================================================
# LEASE REPOSITORY
# ============================================================================
# STATUS: Core - Lease persistence
# PURPOSE: Database access for the leases table
# CREATED: 07 OCT 2026
# ============================================================================
"""
Lease Repository

CAS-protected persistence for leases, keyed by (user_email, uuid).
Indexed columns: status, aws_account_id, template_uuid.
"""

from typing import Any, Dict, Iterable, Optional, Union

from core.contracts import LeaseStatus
from core.models.lease import Lease, LeaseKey, parse_lease
from repositories.database import TABLE_LEASES
from repositories.pagination import Page
from repositories.record_store import RecordRepository

StatusFilter = Union[LeaseStatus, Iterable[LeaseStatus]]


def _status_filter(status: StatusFilter):
    if isinstance(status, LeaseStatus):
        return status
    return list(status)


class LeaseRepository(RecordRepository[Lease]):
    """Repository for Lease records."""

    table = TABLE_LEASES
    key_columns = ("user_email", "uuid")
    record_name = "lease"

    def _index_values(self, record: Lease) -> Dict[str, Any]:
        return {
            "status": record.status,
            "aws_account_id": getattr(record, "aws_account_id", None),
            "template_uuid": record.original_lease_template_uuid,
        }

    def _parse(self, data: Dict[str, Any]) -> Lease:
        return parse_lease(data)

    async def get_by_key(self, key: LeaseKey) -> Optional[Lease]:
        return await self.get(key.user_email, key.uuid)

    async def delete_by_key(self, key: LeaseKey) -> Optional[Lease]:
        return await self.delete(key.user_email, key.uuid)

    # ----------------------------------------------------------------
    # Queries
    # ----------------------------------------------------------------

    async def find_by_status(
        self,
        status: StatusFilter,
        page_identifier: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> Page[Lease]:
        """Leases in ``status`` (one status or several)."""
        return await self._find({"status": _status_filter(status)}, page_identifier, page_size)

    async def find_by_user_email(
        self,
        user_email: str,
        status: Optional[StatusFilter] = None,
        page_identifier: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> Page[Lease]:
        """Leases owned by ``user_email``, optionally narrowed by status."""
        filters: Dict[str, Any] = {"user_email": user_email}
        if status is not None:
            filters["status"] = _status_filter(status)
        return await self._find(filters, page_identifier, page_size)

    async def find_by_account_and_status(
        self,
        aws_account_id: str,
        status: StatusFilter,
        page_identifier: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> Page[Lease]:
        """Leases on ``aws_account_id`` in ``status``."""
        return await self._find(
            {"aws_account_id": aws_account_id, "status": _status_filter(status)},
            page_identifier,
            page_size,
        )

    async def find_by_template(
        self,
        template_uuid: str,
        page_identifier: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> Page[Lease]:
        """Leases requested against template ``template_uuid``."""
        return await self._find({"template_uuid": template_uuid}, page_identifier, page_size)

    async def find_all(
        self,
        page_identifier: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> Page[Lease]:
        return await self._find(None, page_identifier, page_size)
