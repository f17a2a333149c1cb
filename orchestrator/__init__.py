# ============================================================================
# ORCHESTRATOR MODULE
# ============================================================================
# STATUS: Core - Background scheduling
# PURPOSE: Periodic drift scans and lease monitoring
# CREATED: 14 OCT 2026
# ============================================================================
"""
Orchestrator Module

Background loops that keep the pool consistent.

Usage:
    from orchestrator import ReconciliationScheduler

    scheduler = ReconciliationScheduler(drift_service, config_provider)
    await scheduler.start()
"""

from .scheduler import ReconciliationScheduler

__all__ = ["ReconciliationScheduler"]
