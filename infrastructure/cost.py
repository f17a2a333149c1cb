# ============================================================================
# COST REPORTING INTERFACE
# ============================================================================
# STATUS: Infrastructure - Contract for account spend lookups
# PURPOSE: What lease monitoring needs to know about spend
# CREATED: 08 OCT 2026
# ============================================================================
"""
Cost Reporting Interface

Lease monitoring asks for the spend of each monitored account since its
lease started. How cost is retrieved is left to the implementation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict


@dataclass
class AccountsCostReport:
    """Spend per account id, in dollars."""
    costs: Dict[str, float] = field(default_factory=dict)

    def get_cost(self, account_id: str) -> float:
        return self.costs.get(account_id, 0.0)

    @property
    def total(self) -> float:
        return sum(self.costs.values())


class CostReporter(ABC):
    """Spend lookups for pooled accounts."""

    @abstractmethod
    async def get_costs_since(
        self, start_dates: Dict[str, datetime], end: datetime
    ) -> AccountsCostReport:
        """
        Spend per account.

        Args:
            start_dates: account id -> start of the window for that account
            end: end of every window
        """


__all__ = ["AccountsCostReport", "CostReporter"]
