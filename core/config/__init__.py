# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 06 OCT 2026
# ============================================================================
"""
Configuration Module

Provides lease policy, placement and reconciliation defaults.
"""

from core.config.defaults import (
    LeaseDefaults,
    PlacementDefaults,
    ReconciliationDefaults,
    Defaults,
    ConfigProvider,
)

__all__ = [
    "LeaseDefaults",
    "PlacementDefaults",
    "ReconciliationDefaults",
    "Defaults",
    "ConfigProvider",
]
