# ============================================================================
# STRUCTURED LOGGING
# ============================================================================
# STATUS: Core - Structured logging with lease/account context
# PURPOSE: Every log line carries the lease and account it concerns
# CREATED: 06 OCT 2026
# ============================================================================
"""
Structured Logging

Lifecycle operations touch a lease, an account and a user at once, and
several of them run concurrently on one event loop. The active identifiers
are kept in a ContextVar, so each asyncio task sees only its own, and are
stamped on every record by a logging.Filter installed on the root handler.
Plain ``logging.getLogger(__name__)`` loggers get the context too.

Output is either one JSON object per line (LOG_FORMAT=json) or a compact
human-readable line for local runs.

Usage:
    from core.logging import ComponentType, get_logger, log_context

    logger = get_logger(__name__, ComponentType.ENGINE)

    with log_context(lease_id=str(lease.key), operation="approve_lease"):
        logger.info("Approving lease")
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Union


class ComponentType(str, Enum):
    """Which part of the orchestrator emitted a record."""
    ENGINE = "engine"
    PLACEMENT = "placement"
    RECONCILIATION = "reconciliation"
    MONITORING = "monitoring"
    REPOSITORY = "repository"
    MESSAGING = "messaging"
    INFRASTRUCTURE = "infrastructure"
    API = "api"


@dataclass(frozen=True)
class LogContext:
    """Identifiers attached to every record logged inside a log_context block."""
    lease_id: Optional[str] = None
    account_id: Optional[str] = None
    user_email: Optional[str] = None
    correlation_id: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def merged(self, **values: Any) -> "LogContext":
        """Child context: given fields override, ``extra`` is combined."""
        extra = {**self.extra, **(values.pop("extra", None) or {})}
        unknown = set(values) - {f.name for f in fields(self)}
        if unknown:
            # Unknown keys land in extra rather than failing the caller
            extra.update({k: values.pop(k) for k in unknown})
        return replace(self, extra=extra, **values)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "extra" and getattr(self, f.name) is not None
        }
        result.update(self.extra)
        return result


_EMPTY = LogContext()
_current: ContextVar[LogContext] = ContextVar("sandbox_log_context", default=_EMPTY)


def get_current_context() -> LogContext:
    return _current.get()


@contextmanager
def log_context(**values: Any) -> Iterator[LogContext]:
    """
    Add identifiers for the duration of a block.

    Nested blocks inherit from the enclosing one, so an inner
    ``log_context(account_id=...)`` keeps the outer lease_id.

    Example:
        with log_context(lease_id=str(lease.key), account_id=account_id):
            logger.info("Terminating lease")
    """
    context = get_current_context().merged(**values)
    token = _current.set(context)
    try:
        yield context
    finally:
        _current.reset(token)


class ContextFilter(logging.Filter):
    """Copies the current LogContext onto each record as ``record.context``."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = get_current_context().to_dict()
        component = getattr(record, "component", None)
        if component and "component" not in context:
            context["component"] = component
        record.context = context
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = getattr(record, "context", None)
        if context:
            entry["context"] = context
        data = getattr(record, "data", None)
        if data:
            entry["data"] = data
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        entry["source"] = f"{record.module}:{record.funcName}:{record.lineno}"
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """``time LEVEL logger [lease=.. account=..]: message`` for local runs."""

    _SHOWN = (("operation", "op"), ("lease_id", "lease"), ("account_id", "account"))

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        context = getattr(record, "context", None) or {}
        tags = " ".join(f"{label}={context[key]}" for key, label in self._SHOWN if key in context)
        line = (
            f"{timestamp:%Y-%m-%d %H:%M:%S} {record.levelname:<8} {record.name}"
            f"{f' [{tags}]' if tags else ''}: {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextLogger(logging.LoggerAdapter):
    """Adapter that tags records with the logger's component."""

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("component", self.extra.get("component"))
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str, component: Optional[ComponentType] = None) -> ContextLogger:
    """
    Logger for ``name`` whose records carry ``component``.

    Args:
        name: Usually ``__name__``
        component: Part of the orchestrator the module belongs to
    """
    return ContextLogger(
        logging.getLogger(name),
        {"component": component.value if component else None},
    )


def configure_logging(level: Union[str, int] = "INFO", json_output: bool = False) -> None:
    """
    Install a single stdout handler on the root logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR (or a logging constant)
        json_output: JSON lines; also enabled by LOG_FORMAT=json
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())
    if json_output or os.getenv("LOG_FORMAT", "").lower() == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    # SDK request logging is noisy at INFO
    for noisy in ("botocore", "boto3", "urllib3", "azure"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ============================================================================
# LIFECYCLE CHECKPOINTS
# ============================================================================

def log_checkpoint(
    name: str,
    data: Optional[Dict[str, Any]] = None,
    logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
) -> None:
    """
    Record that a lease or account reached a lifecycle milestone.

    Checkpoints ("lease_approved", "account_quarantined", ...) share one
    message prefix so the full history of a lease or account can be pulled
    from the logs by its id.

    Args:
        name: Milestone name
        data: Details stored under ``data`` in JSON output
        logger: Logger to write to (defaults to ``sandbox.checkpoint``)
    """
    target = logger or logging.getLogger("sandbox.checkpoint")
    target.info(f"CHECKPOINT {name}", extra={"data": {"checkpoint": name, **(data or {})}})


__all__ = [
    "ComponentType",
    "LogContext",
    "ContextFilter",
    "StructuredFormatter",
    "HumanFormatter",
    "ContextLogger",
    "get_logger",
    "configure_logging",
    "log_context",
    "get_current_context",
    "log_checkpoint",
]
