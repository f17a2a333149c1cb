# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# STATUS: Core - Default configuration values
# PURPOSE: Lease policy, placement retry and reconciliation tunables
# CREATED: 06 OCT 2026
# ============================================================================
"""
Configuration Defaults

Tunables for lease policy, directory placement retries and the periodic
reconciliation loops. Every value can be overridden via environment
variables.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Read fresh per operation via ConfigProvider.load() (no module cache)
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes")


def _env_optional_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    return float(value) if value else None


@dataclass(frozen=True)
class LeaseDefaults:
    """
    Global lease policy.

    Retention controls when terminal leases become eligible for deletion
    (their ttl). Ceilings bound what a lease template may grant.
    """
    lease_retention_days: int = 30
    max_leases_per_user: int = 3
    require_max_budget: bool = True
    max_budget_ceiling: Optional[float] = None
    require_max_duration: bool = False
    max_duration_hours_ceiling: Optional[float] = None

    @property
    def retention_seconds(self) -> int:
        return self.lease_retention_days * 24 * 60 * 60

    @classmethod
    def from_env(cls) -> "LeaseDefaults":
        """Create from environment variables."""
        return cls(
            lease_retention_days=int(os.getenv("LEASE_RETENTION_DAYS", 30)),
            max_leases_per_user=int(os.getenv("MAX_LEASES_PER_USER", 3)),
            require_max_budget=_env_bool("REQUIRE_MAX_BUDGET", True),
            max_budget_ceiling=_env_optional_float("MAX_BUDGET_CEILING"),
            require_max_duration=_env_bool("REQUIRE_MAX_DURATION", False),
            max_duration_hours_ceiling=_env_optional_float("MAX_DURATION_HOURS_CEILING"),
        )


@dataclass(frozen=True)
class PlacementDefaults:
    """
    Retry policy for directory group moves.

    Full jitter: each retry sleeps uniform(0, min(max_delay, base * 2**n)).
    """
    max_attempts: int = 5
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 20.0

    # Bounds on every directory call
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> "PlacementDefaults":
        """Create from environment variables."""
        return cls(
            max_attempts=int(os.getenv("PLACEMENT_MAX_ATTEMPTS", 5)),
            base_delay_seconds=float(os.getenv("PLACEMENT_BASE_DELAY_SECONDS", 1.0)),
            max_delay_seconds=float(os.getenv("PLACEMENT_MAX_DELAY_SECONDS", 20.0)),
            connect_timeout_seconds=float(os.getenv("DIRECTORY_CONNECT_TIMEOUT_SECONDS", 5.0)),
            read_timeout_seconds=float(os.getenv("DIRECTORY_READ_TIMEOUT_SECONDS", 30.0)),
        )


@dataclass(frozen=True)
class ReconciliationDefaults:
    """
    Schedules for drift scans and lease monitoring.

    orphan_grace_minutes keeps an in-flight approval (account moved, lease
    not yet written) from being reported as an orphan.
    """
    drift_interval_seconds: int = 6 * 60 * 60
    monitoring_interval_seconds: int = 60 * 60
    orphan_grace_minutes: int = 15
    page_size: int = 100

    @classmethod
    def from_env(cls) -> "ReconciliationDefaults":
        """Create from environment variables."""
        return cls(
            drift_interval_seconds=int(os.getenv("DRIFT_INTERVAL_SECONDS", 6 * 60 * 60)),
            monitoring_interval_seconds=int(os.getenv("MONITORING_INTERVAL_SECONDS", 60 * 60)),
            orphan_grace_minutes=int(os.getenv("ORPHAN_GRACE_MINUTES", 15)),
            page_size=int(os.getenv("RECONCILIATION_PAGE_SIZE", 100)),
        )


# ============================================================================
# DEFAULTS CONTAINER
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    lease: LeaseDefaults = field(default_factory=LeaseDefaults)
    placement: PlacementDefaults = field(default_factory=PlacementDefaults)
    reconciliation: ReconciliationDefaults = field(default_factory=ReconciliationDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            lease=LeaseDefaults.from_env(),
            placement=PlacementDefaults.from_env(),
            reconciliation=ReconciliationDefaults.from_env(),
        )


class ConfigProvider:
    """
    Supplies tunables to services.

    load() builds a fresh Defaults every call so changes to the environment
    (or the injected loader) take effect on the next operation.
    """

    def __init__(self, loader=None):
        self._loader = loader or Defaults.from_env

    def load(self) -> Defaults:
        return self._loader()

    @classmethod
    def fixed(cls, defaults: Defaults) -> "ConfigProvider":
        """Provider that always returns ``defaults`` (tests, CLI tools)."""
        return cls(loader=lambda: defaults)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "LeaseDefaults",
    "PlacementDefaults",
    "ReconciliationDefaults",
    "Defaults",
    "ConfigProvider",
]
