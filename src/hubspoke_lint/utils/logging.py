# ABOUTME: Structured logging with correlation IDs for hubspoke-lint
# ABOUTME: Implements the audit trail of checks and probes

"""
Structured logging with correlation IDs and audit trails.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

1. STRUCTURED LOGGING: structlog key/value events, rendered for humans on a
   terminal or as JSON for log aggregators.

2. CORRELATION IDs: every event of one check run carries the same short ID,
   so the parse, rule, probe and report lines of a run can be grepped
   together even when several runs share a CI log.

3. AUDIT LOGGING: one JSON record per check and per probe. Useful when the
   linter gates deployments and someone asks why a pipeline was stopped.

Logs go to STDERR. STDOUT is reserved for the report so that

    hubspoke-lint check app.yaml --format json | jq .

keeps working with logging enabled.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from pathlib import Path

# =============================================================================
# CORRELATION ID MANAGEMENT
# =============================================================================

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """
    Get current correlation ID or generate new one.

    Returns:
        8-character correlation ID string, e.g. 'a3f8c2d1'.
    """
    cid = correlation_id.get()
    if not cid:
        cid = str(uuid.uuid4())[:8]
        correlation_id.set(cid)
    return cid


def set_correlation_id(cid: str) -> None:
    """Set correlation ID for current context ("" regenerates on next access)."""
    correlation_id.set(cid)


def add_correlation_id(
    logger: structlog.types.WrappedLogger,  # noqa: ARG001 - Required by structlog Processor API
    method_name: str,  # noqa: ARG001 - Required by structlog Processor API
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """structlog processor adding the correlation ID to every event."""
    event_dict["correlation_id"] = get_correlation_id()
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

    Processor pipeline:
    1. merge_contextvars: Adds any context variables
    2. add_log_level: Adds "level" field
    3. TimeStamper: Adds ISO-format timestamp
    4. add_correlation_id: Adds the run's correlation ID
    5. Renderer: JSON or console

    Args:
        level: "DEBUG", "INFO", "WARNING", "ERROR" or "CRITICAL"
        json_output: JSON lines (CI/log aggregators) instead of console text
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_correlation_id,
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
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# =============================================================================
# AUDIT LOGGING
# =============================================================================


class AuditLogger:
    """
    Audit logger for checks and probes.

    Every record carries:
    - timestamp: UTC ISO 8601
    - correlation_id: Run identifier
    - action: "check" or "probe"
    - target: What was checked (manifest path, spoke cluster)
    - result: "pass", "fail", "partial", "error", or a probe verdict
    - details: Counts, verdicts, error text

    EXAMPLE:
    --------
    {"timestamp": "2026-01-15T10:30:00+00:00", "correlation_id": "abc12345",
     "action": "check", "target": "apps/web.yaml", "result": "fail",
     "details": {"errors": 1, "warnings": 0, "partial": false}}
    """

    def __init__(self, log_path: Path | None = None) -> None:
        """
        Args:
            log_path: File to append JSON lines to, or None to log through
                structlog.
        """
        self._log_path = log_path
        self._logger = structlog.get_logger("audit")

    def log(
        self,
        action: str,
        target: str,
        result: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Record one auditable action."""
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

    def log_check(self, target: str, result: str, details: dict[str, Any] | None = None) -> None:
        """Record the outcome of a topology check."""
        self.log("check", target, result, details)

    def log_probe(self, spoke: str, verdict: str, details: dict[str, Any] | None = None) -> None:
        """Record the verdict of a connectivity probe."""
        self.log("probe", spoke, verdict, details)

    def log_error(self, action: str, target: str, error: str) -> None:
        """Record a failed action (malformed input, controller failure)."""
        self.log(action, target, "error", {"error": error})
