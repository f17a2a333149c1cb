# ============================================================================
# BASE REPOSITORY - ERROR HANDLING PATTERNS
# ============================================================================
# STATUS: Infrastructure - Base repository patterns
# PURPOSE: Common error handling and logging for all repositories
# CREATED: 07 OCT 2026
# ============================================================================
"""
Base Repository Patterns

Abstract base class providing common infrastructure for repositories:
- Consistent error handling with a context manager
- Standardized operation logging

Named orchestrator errors (conflicts, preconditions) pass through
untouched. Anything else raised by the driver is logged and wrapped in
RepositoryError with the operation and entity id attached.
"""

import logging
from abc import ABC
from contextlib import contextmanager
from typing import Any, Dict, Optional

from core.errors import RecordStoreConflict, RepositoryError, SandboxError


class BaseRepository(ABC):
    """
    Abstract base repository with common patterns.

    Subclasses implement storage-specific operations.
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def _error_context(self, operation: str, entity_id: Optional[str] = None):
        """
        Context manager for consistent error handling.

        Args:
            operation: Human-readable description of the operation
            entity_id: Optional entity ID for context

        Example:
            with self._error_context("lease update", str(lease.key)):
                await self._execute_update(lease)
        """
        try:
            yield
        except RecordStoreConflict as e:
            # Normal under contention, not an error
            self.logger.info(f"{operation} rejected: {type(e).__name__}: {e}")
            raise
        except SandboxError:
            raise
        except Exception as e:
            error_msg = f"{operation} failed"
            if entity_id:
                error_msg += f" for {entity_id}"
            error_msg += f": {e}"
            self.logger.error(error_msg)
            raise RepositoryError(error_msg, operation=operation, entity_id=entity_id) from e

    def _log_operation(
        self,
        success: bool,
        operation: str,
        entity_id: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log operation result with consistent formatting.

        Format:
            Success: "operation: entity_id | details"
            Failure: "operation failed: entity_id | details"
        """
        if success:
            msg = f"{operation}: {entity_id}"
        else:
            msg = f"{operation} failed: {entity_id}"

        if details:
            msg += f" | {details}"

        if success:
            self.logger.info(msg)
        else:
            self.logger.warning(msg)


__all__ = ["BaseRepository", "RepositoryError"]
