# ============================================================================
# DRIFT RECONCILIATION SERVICE
# ============================================================================
# STATUS: Core - Directory vs record store consistency scan
# PURPOSE: Detect accounts whose stored status disagrees with their group
# CREATED: 12 OCT 2026
# ============================================================================
"""
Drift Reconciliation Service

One scan:

1. List every account in every organizational group (the directory is the
   source of truth for placement).
2. Stream every stored account record and compare its status with the
   directory's group for it:
   - match: clear ``drift_at_last_scan`` if it was set (flap recovered).
   - mismatch, flag already set: emit AccountDriftDetected.
   - mismatch, flag not set: set it and wait for the next scan. The
     directory is eventually consistent and a lifecycle operation may be
     mid-flight, so one mismatch is not enough to alert.
3. Accounts the directory reports but the store does not know are
   untracked and alert at once, except in Entry and Exit where that is
   expected.
4. Active/Frozen accounts with no Active/Frozen lease, untouched for longer
   than the grace period, are reported as orphans.

The scan is read-mostly and safe to run alongside lifecycle operations.
Flag writes are CAS against the image just read; losing that race is
recorded in the report and left for the next scan.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from core.config import ConfigProvider
from core.contracts import AccountStatus, MONITORED_LEASE_STATUSES, OrgGroup
from core.errors import ConcurrentDataModificationException
from core.logging import ComponentType, get_logger, log_checkpoint, log_context
from core.models.sandbox_account import SandboxAccount
from infrastructure.directory import AccountDirectory
from repositories.account_repo import AccountRepository
from repositories.lease_repo import LeaseRepository
from repositories.pagination import stream_pages
from repositories.record_store import utc_now
from services.event_service import EventService

logger = get_logger(__name__, ComponentType.RECONCILIATION)

_ORPHAN_CANDIDATE_STATUSES = (AccountStatus.ACTIVE, AccountStatus.FROZEN)


@dataclass
class DriftScanReport:
    """Outcome of one reconciliation scan."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    scanned: int = 0
    in_sync: int = 0
    newly_drifted: List[str] = field(default_factory=list)
    alerts: List[str] = field(default_factory=list)
    recovered: List[str] = field(default_factory=list)
    untracked: List[str] = field(default_factory=list)
    orphaned: List[str] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)

    def summary(self) -> Dict[str, int]:
        return {
            "scanned": self.scanned,
            "in_sync": self.in_sync,
            "newly_drifted": len(self.newly_drifted),
            "alerts": len(self.alerts),
            "recovered": len(self.recovered),
            "untracked": len(self.untracked),
            "orphaned": len(self.orphaned),
            "conflicts": len(self.conflicts),
        }


class DriftReconciliationService:
    """Compares directory placement with stored account status."""

    def __init__(
        self,
        account_repo: AccountRepository,
        lease_repo: LeaseRepository,
        directory: AccountDirectory,
        events: EventService,
        config_provider: ConfigProvider,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.account_repo = account_repo
        self.lease_repo = lease_repo
        self.directory = directory
        self.events = events
        self.config_provider = config_provider
        self.clock = clock or utc_now

    async def run_scan(self) -> DriftScanReport:
        """
        Run one scan.

        Raises:
            DirectoryError: placement could not be listed
            EventEmissionError: an alert could not be delivered
        """
        config = self.config_provider.load().reconciliation
        report = DriftScanReport(started_at=self.clock())

        with log_context(operation="drift_scan"):
            placements = await self._load_placements()
            tracked = set()
            orphan_candidates: List[SandboxAccount] = []

            async for account in stream_pages(
                lambda token: self.account_repo.find_all(token, config.page_size)
            ):
                tracked.add(account.aws_account_id)
                report.scanned += 1
                await self._reconcile(account, placements.get(account.aws_account_id), report)
                if account.status in _ORPHAN_CANDIDATE_STATUSES:
                    orphan_candidates.append(account)

            for account_id, group in placements.items():
                if account_id in tracked or group.is_transient():
                    continue
                logger.warning(f"Untracked account {account_id} in {group.value}")
                await self.events.emit(self.events.drift_detected(account_id, None, group))
                report.untracked.append(account_id)

            grace = timedelta(minutes=config.orphan_grace_minutes)
            for account in orphan_candidates:
                await self._check_orphan(account, grace, report)

        report.finished_at = self.clock()
        logger.info(f"Drift scan complete: {report.summary()}")
        log_checkpoint("drift_scan_complete", report.summary())
        return report

    async def _load_placements(self) -> Dict[str, OrgGroup]:
        placements: Dict[str, OrgGroup] = {}
        for group in OrgGroup:
            for entry in await self.directory.list_accounts_in_group(group):
                placements[entry.account_id] = group
        return placements

    async def _reconcile(
        self,
        account: SandboxAccount,
        actual: Optional[OrgGroup],
        report: DriftScanReport,
    ) -> None:
        account_id = account.aws_account_id

        with log_context(account_id=account_id):
            if account.status.matches_group(actual):
                report.in_sync += 1
                if account.drift_at_last_scan:
                    if await self._write_flag(account, False, report):
                        logger.info("Drift cleared, placement matches again")
                        report.recovered.append(account_id)
                return

            actual_name = actual.value if actual else "no group"
            if account.drift_at_last_scan:
                logger.warning(
                    f"Drift confirmed: stored {account.status.value}, directory {actual_name}"
                )
                await self.events.emit(
                    self.events.drift_detected(account_id, account.status.group, actual)
                )
                log_checkpoint(
                    "drift_alert",
                    {"expected": account.status.group.value, "actual": actual_name},
                )
                report.alerts.append(account_id)
                return

            if await self._write_flag(account, True, report):
                logger.info(
                    f"Possible drift: stored {account.status.value}, directory {actual_name}; "
                    f"alerting if it persists"
                )
                report.newly_drifted.append(account_id)

    async def _write_flag(
        self, account: SandboxAccount, drifted: bool, report: DriftScanReport
    ) -> bool:
        try:
            await self.account_repo.update(account.with_drift_flag(drifted), expected=account)
        except ConcurrentDataModificationException as e:
            logger.warning(f"Account changed during scan, leaving drift flag for next scan: {e}")
            report.conflicts.append(account.aws_account_id)
            return False
        return True

    async def _check_orphan(
        self, account: SandboxAccount, grace: timedelta, report: DriftScanReport
    ) -> None:
        if account.meta is not None and self.clock() - account.meta.last_edit_time < grace:
            return

        page = await self.lease_repo.find_by_account_and_status(
            account.aws_account_id, MONITORED_LEASE_STATUSES, page_size=1
        )
        if page.items:
            return

        with log_context(account_id=account.aws_account_id):
            logger.warning(f"Account is {account.status.value} but no lease holds it")
            await self.events.emit(
                self.events.orphan_detected(account.aws_account_id, account.status)
            )
        report.orphaned.append(account.aws_account_id)


__all__ = ["DriftReconciliationService", "DriftScanReport"]
