# ============================================================================
# VERSION - SANDBOX LEASE ORCHESTRATOR
# ============================================================================
"""
Version information for the Sandbox Lease Orchestrator.

This is the single source of truth for the application version.
Updated manually for each release.
"""
# Version format: major.minor.patch.build
__version__ = "0.3.0.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Build metadata
BUILD_DATE = "2026-10-19"

# Event source stamped on every published lifecycle event
EVENT_SOURCE = "sandbox-lease-orchestrator"
CODENAME = "Sandbox Lease Orchestrator"
