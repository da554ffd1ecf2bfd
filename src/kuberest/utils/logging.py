# ABOUTME: Structured logging with correlation IDs and credential masking for kuberest
# ABOUTME: Implements the structlog pipeline and the audit trail for write operations

"""
Structured logging with correlation IDs, secret masking and audit trails.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

This module provides the observability plumbing shared by every other part
of the client:

1. STRUCTURED LOGGING: Every log line is a key/value event rendered either
   as colored console output (development) or JSON (production).

2. CORRELATION IDs: One ID links every log entry produced by a single
   logical operation. An `ensure` call issues up to three HTTP requests
   (exists, get, apply); all of them carry the same correlation ID.

3. SECRET MASKING: The request executor logs outgoing headers at debug
   level. Those headers contain the service-account bearer token, so a
   processor masks credentials before anything is rendered.

4. AUDIT LOGGING: Write operations (create, apply, delete, ensure) are
   recorded as JSON lines, either to a file or to the log stream.

=============================================================================
CONTEXT VARIABLES (contextvars)
=============================================================================

Operations are coroutines and many of them may be in flight concurrently.
A ContextVar gives each asyncio task its own correlation ID without
passing it through every function signature.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from functools import wraps
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, MutableMapping
    from pathlib import Path

T = TypeVar("T")


# =============================================================================
# CORRELATION ID MANAGEMENT
# =============================================================================

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """
    Get current correlation ID or generate a new one.

    Code running outside an explicit operation context (startup, ad-hoc
    calls from a REPL) still gets an ID, so logs are always correlatable.

    Returns:
        8-character correlation ID string.
    """
    cid = correlation_id.get()
    if not cid:
        cid = str(uuid.uuid4())[:8]
        correlation_id.set(cid)
    return cid


def set_correlation_id(cid: str) -> None:
    """
    Set correlation ID for the current context.

    An empty string makes the next `get_correlation_id` call generate a
    fresh ID.
    """
    correlation_id.set(cid)


# True while a decorated operation is running in the current context.
_operation_active: ContextVar[bool] = ContextVar("operation_active", default=False)


def with_correlation_id(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """
    Run a coroutine function under its own correlation ID.

    The outermost decorated call gets a fresh ID and restores the previous
    one when it finishes. Decorated calls nested inside it (exists, get and
    apply issued by ensure) keep the outer ID, so one logical operation is
    one ID in the logs and the audit trail.
    """

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        if _operation_active.get():
            return await func(*args, **kwargs)
        cid_token = correlation_id.set(str(uuid.uuid4())[:8])
        active_token = _operation_active.set(True)
        try:
            return await func(*args, **kwargs)
        finally:
            _operation_active.reset(active_token)
            correlation_id.reset(cid_token)

    return wrapper


def add_correlation_id(
    logger: structlog.types.WrappedLogger,  # noqa: ARG001 - Required by structlog Processor API
    method_name: str,  # noqa: ARG001 - Required by structlog Processor API
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Structlog processor adding the correlation ID to every event."""
    event_dict["correlation_id"] = get_correlation_id()
    return event_dict


# =============================================================================
# SECRET MASKING
# =============================================================================

MASK = "***MASKED***"

# Patterns for credentials embedded in free-form strings.
# Each tuple is (pattern, replacement).
SECRET_PATTERNS = [
    (re.compile(r"(bearer\s+)[^\s\"']+", re.I), rf"\1{MASK}"),
    (re.compile(r"(token[\"']?\s*[:=]\s*[\"']?)[^\"'\s,}]+", re.I), rf"\1{MASK}"),
    (re.compile(r"(password[\"']?\s*[:=]\s*[\"']?)[^\"'\s,}]+", re.I), rf"\1{MASK}"),
]

# Mapping keys whose values are never rendered.
SENSITIVE_KEYS = frozenset(
    [
        "authorization",
        "token",
        "password",
        "secret",
        "api_key",
        "apikey",
        "credentials",
    ]
)


def mask_value(data: Any) -> Any:
    """
    Recursively mask credentials in a value.

    Strings have the SECRET_PATTERNS applied, mappings have the values of
    SENSITIVE_KEYS replaced, lists are traversed. Anything else is returned
    unchanged.

    Note that this is only applied to LOG OUTPUT. Resource documents
    returned to callers are never masked: `ensure` re-submits what it reads,
    and a masked Secret would be written back to the cluster.
    """
    if isinstance(data, str):
        masked = data
        for pattern, replacement in SECRET_PATTERNS:
            masked = pattern.sub(replacement, masked)
        return masked

    if isinstance(data, dict):
        return {
            k: MASK if isinstance(k, str) and k.lower() in SENSITIVE_KEYS else mask_value(v)
            for k, v in data.items()
        }

    if isinstance(data, list):
        return [mask_value(item) for item in data]

    return data


def mask_secrets(
    logger: structlog.types.WrappedLogger,  # noqa: ARG001 - Required by structlog Processor API
    method_name: str,  # noqa: ARG001 - Required by structlog Processor API
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Structlog processor masking credentials in every event field."""
    for key in list(event_dict):
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = MASK
        else:
            event_dict[key] = mask_value(event_dict[key])
    return event_dict


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
) -> None:
    """
    Configure structured logging.

    Call once at startup; calling again reconfigures (useful for changing
    levels).

    PROCESSOR PIPELINE:
    -------------------
    1. merge_contextvars: Adds any context bound via bind_contextvars()
    2. add_log_level: Adds "level" field
    3. TimeStamper: Adds ISO-format timestamp
    4. add_correlation_id: Adds our correlation ID
    5. mask_secrets: Masks bearer tokens and sensitive keys
    6. Renderer: JSON or colored console text

    Args:
        level: Logging level name ("DEBUG", "INFO", ...).
        json_output: Render JSON lines instead of console text.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_correlation_id,
        mask_secrets,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# =============================================================================
# AUDIT LOGGER
# =============================================================================


class AuditLogger:
    """
    Audit logger for write operations against the cluster.

    Every entry records:
    - timestamp: When it happened (UTC ISO 8601)
    - correlation_id: Operation identifier
    - action: What operation ("create", "apply", "delete", "ensure")
    - target: What resource ("pods/default/nginx")
    - result: Outcome ("success", "created", "updated", "error")
    - details: Additional context (status codes, error messages)

    With a log path, entries are appended to that file as JSON lines.
    Without one, they are emitted as "audit" events on the structlog stream.
    """

    def __init__(self, log_path: Path | None = None) -> None:
        self._log_path = log_path
        self._logger = structlog.get_logger("audit")

    def log(
        self,
        action: str,
        target: str,
        result: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Log an auditable action."""
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "correlation_id": get_correlation_id(),
            "action": action,
            "target": target,
            "result": result,
        }
        if details:
            entry["details"] = details

        if self._log_path:
            with self._log_path.open("a") as f:
                f.write(json.dumps(entry) + "\n")
        else:
            self._logger.info(
                "audit",
                action=action,
                target=target,
                result=result,
                details=details,
            )

    def log_write(
        self,
        action: str,
        target: str,
        result: str = "success",
        details: dict[str, Any] | None = None,
    ) -> None:
        """Log a completed write operation."""
        self.log(action, target, result, details)

    def log_error(
        self,
        action: str,
        target: str,
        error: str,
    ) -> None:
        """Log a failed write operation."""
        self.log(action, target, "error", {"error": error})
