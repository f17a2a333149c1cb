# ============================================================================
# RECONCILIATION SCHEDULER
# ============================================================================
# STATUS: Core - Periodic background loops
# PURPOSE: Drive drift scans and lease monitoring on their intervals
# CREATED: 14 OCT 2026
# ============================================================================
"""
Reconciliation Scheduler

Runs as background tasks in the FastAPI application:

- drift loop: DriftReconciliationService.run_scan() every
  drift_interval_seconds
- monitoring loop: LeaseMonitoringService.run() every
  monitoring_interval_seconds (only when a monitoring service is wired)

Intervals are read from the config provider before each sleep, so a
changed setting applies from the next cycle. A failed cycle is logged and
counted; the loop keeps going. Scans are idempotent, so running them on
several instances at once is safe.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from core.config import ConfigProvider
from services.drift_service import DriftReconciliationService
from services.monitoring_service import LeaseMonitoringService

logger = logging.getLogger(__name__)


class ReconciliationScheduler:
    """Periodic drift scans and lease monitoring."""

    def __init__(
        self,
        drift_service: DriftReconciliationService,
        config_provider: ConfigProvider,
        monitoring_service: Optional[LeaseMonitoringService] = None,
    ):
        """
        Initialize scheduler.

        Args:
            drift_service: Runs one drift scan per cycle
            config_provider: Supplies the intervals
            monitoring_service: Optional lease monitoring, skipped if None
        """
        self.drift_service = drift_service
        self.monitoring_service = monitoring_service
        self.config_provider = config_provider

        # State
        self._running = False
        self._stop_event = asyncio.Event()

        # Background tasks
        self._drift_task: Optional[asyncio.Task] = None
        self._monitoring_task: Optional[asyncio.Task] = None

        # Metrics
        self._started_at: Optional[datetime] = None
        self._drift_scans = 0
        self._monitoring_runs = 0
        self._errors = 0
        self._last_drift_scan_at: Optional[datetime] = None
        self._last_monitoring_run_at: Optional[datetime] = None
        self._last_drift_summary: Optional[Dict[str, int]] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start background loops."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        self._started_at = datetime.now(timezone.utc)
        self._stop_event.clear()

        self._drift_task = asyncio.create_task(self._drift_loop(), name="drift-scan")
        if self.monitoring_service is not None:
            self._monitoring_task = asyncio.create_task(
                self._monitoring_loop(), name="lease-monitoring"
            )

        logger.info(
            f"Scheduler started (monitoring={'on' if self.monitoring_service else 'off'})"
        )

    async def stop(self) -> None:
        """Stop background loops and wait for them to finish."""
        logger.info("Stopping scheduler")
        self._running = False
        self._stop_event.set()

        for task in (self._drift_task, self._monitoring_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._drift_task = None
        self._monitoring_task = None
        logger.info(f"Scheduler stopped. Stats: {self.stats}")

    # =========================================================================
    # LOOPS
    # =========================================================================

    async def run_drift_scan(self) -> None:
        """Run one drift scan now."""
        report = await self.drift_service.run_scan()
        self._drift_scans += 1
        self._last_drift_scan_at = datetime.now(timezone.utc)
        self._last_drift_summary = report.summary()

    async def run_monitoring(self) -> None:
        """Run one monitoring pass now."""
        if self.monitoring_service is None:
            return
        await self.monitoring_service.run()
        self._monitoring_runs += 1
        self._last_monitoring_run_at = datetime.now(timezone.utc)

    async def _drift_loop(self) -> None:
        await self._loop(
            "drift scan",
            self.run_drift_scan,
            lambda: self.config_provider.load().reconciliation.drift_interval_seconds,
        )

    async def _monitoring_loop(self) -> None:
        await self._loop(
            "lease monitoring",
            self.run_monitoring,
            lambda: self.config_provider.load().reconciliation.monitoring_interval_seconds,
        )

    async def _loop(
        self,
        name: str,
        cycle: Callable[[], Awaitable[None]],
        interval: Callable[[], float],
    ) -> None:
        while self._running and not self._stop_event.is_set():
            try:
                await cycle()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._errors += 1
                logger.exception(f"Error in {name}: {e}")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval())
            except asyncio.TimeoutError:
                pass
            except asyncio.CancelledError:
                break

    # =========================================================================
    # STATS
    # =========================================================================

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "drift_scans": self._drift_scans,
            "monitoring_runs": self._monitoring_runs,
            "errors": self._errors,
            "last_drift_scan_at": (
                self._last_drift_scan_at.isoformat() if self._last_drift_scan_at else None
            ),
            "last_monitoring_run_at": (
                self._last_monitoring_run_at.isoformat() if self._last_monitoring_run_at else None
            ),
            "last_drift_summary": self._last_drift_summary,
        }


__all__ = ["ReconciliationScheduler"]
