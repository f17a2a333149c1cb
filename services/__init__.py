# ============================================================================
# SERVICES MODULE
# ============================================================================
# STATUS: Core - Business logic layer
# PURPOSE: Lease lifecycle, placement, reconciliation and monitoring
# CREATED: 10 OCT 2026
# ============================================================================
"""
Services Module

Business logic for lease and account lifecycles.
Services coordinate between repositories, the directory, identity and
messaging. Every collaborator is passed in at construction.

Usage:
    from services import AccountPlacementManager, LeaseLifecycleEngine

    placement = AccountPlacementManager(account_repo, directory, config_provider)
    engine = LeaseLifecycleEngine(lease_repo, account_repo, placement, access,
                                  events, config_provider)
    lease = await engine.approve_lease(lease, approved_by="manager@example.com")
"""

from .event_service import EventService
from .placement_service import AccountPlacementManager
from .lease_service import LeaseLifecycleEngine
from .drift_service import DriftReconciliationService, DriftScanReport
from .monitoring_service import LeaseMonitoringService, MonitoringReport
from .lifecycle_handler import AccountLifecycleHandler

__all__ = [
    "EventService",
    "AccountPlacementManager",
    "LeaseLifecycleEngine",
    "DriftReconciliationService",
    "DriftScanReport",
    "LeaseMonitoringService",
    "MonitoringReport",
    "AccountLifecycleHandler",
]
