"""Unified event schema and module-level emit helpers.

All timestamps use UTC ISO-8601 with ``Z`` suffix.  The ``emit()``
family of functions is safe to call from any context -- failures are
swallowed and printed to stderr.
"""

from __future__ import annotations

import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    # Evaluation lifecycle
    eval_started = "eval_started"
    eval_completed = "eval_completed"
    eval_failed = "eval_failed"
    eval_incomplete = "eval_incomplete"

    # Per-cell diagnostics
    cell_failed = "cell_failed"
    cycle_detected = "cycle_detected"

    # Timings
    eval_timing = "eval_timing"


# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

CELL_EVAL_ERROR = "cell_eval_error"
CELL_PARSE_ERROR = "cell_parse_error"
CIRCULAR_REFERENCE = "circular_reference"
DEADLINE_EXCEEDED = "deadline_exceeded"
ENGINE_FAILURE = "engine_failure"


# ---------------------------------------------------------------------------
# Context truncation
# ---------------------------------------------------------------------------

_MAX_VALUE_LEN = 256


def truncate_context(context: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *context* with long strings truncated.

    Cell text can be arbitrarily long; string values longer than 256 chars
    are cut and marked.
    """
    out: dict[str, Any] = {}
    for k, v in context.items():
        out[k] = _truncate_value(v)
    return out


def _truncate_value(v: Any) -> Any:
    if isinstance(v, dict):
        return truncate_context(v)
    if isinstance(v, list):
        return [_truncate_value(item) for item in v]
    if isinstance(v, str) and len(v) > _MAX_VALUE_LEN:
        return v[:_MAX_VALUE_LEN] + "...[truncated]"
    return v


# ---------------------------------------------------------------------------
# Attribution invariants
# ---------------------------------------------------------------------------

_RUN_EVENT_REQUIRED = {"run_id"}

_EVENT_REQUIRED_KEYS: dict[str, set[str]] = {
    EventType.eval_started.value: _RUN_EVENT_REQUIRED,
    EventType.eval_completed.value: _RUN_EVENT_REQUIRED,
    EventType.eval_failed.value: set(),  # run_id may not be known yet
    EventType.eval_incomplete.value: _RUN_EVENT_REQUIRED,
    EventType.cell_failed.value: {"run_id", "address"},
    EventType.cycle_detected.value: {"run_id", "cycle"},
    EventType.eval_timing.value: set(),
}


def _validate_attribution(event: GridcalcEvent) -> GridcalcEvent:
    """Check required context keys; downgrade to warning if missing."""
    required = _EVENT_REQUIRED_KEYS.get(
        event.event_type.value if isinstance(event.event_type, EventType) else event.event_type,
        set(),
    )
    if not required:
        return event
    missing = required - set(event.context.keys())
    if missing:
        ctx = dict(event.context)
        ctx["_missing_attribution"] = sorted(missing)
        return GridcalcEvent(
            schema_version=event.schema_version,
            ts=event.ts,
            level=EventLevel.warning,
            event_type=event.event_type,
            context=ctx,
            message=event.message,
            error_code=event.error_code,
        )
    return event


# ---------------------------------------------------------------------------
# Helper constructors for consistent attribution
# ---------------------------------------------------------------------------


def make_run_event(
    event_type: EventType,
    level: EventLevel,
    message: str,
    *,
    run_id: str | None = None,
    source: str | None = None,
    error_code: str | None = None,
    extra: dict[str, Any] | None = None,
) -> GridcalcEvent:
    """Build an event with guaranteed run attribution context."""
    ctx: dict[str, Any] = {}
    if run_id is not None:
        ctx["run_id"] = run_id
    if source is not None:
        ctx["source"] = source
    if extra:
        ctx.update(extra)
    return GridcalcEvent(
        level=level,
        event_type=event_type,
        message=message,
        context=ctx,
        error_code=error_code,
    )


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    """Return current UTC timestamp in ISO-8601 with Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class GridcalcEvent(BaseModel):
    """A single structured log event."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


# ---------------------------------------------------------------------------
# Module-level sink reference
# ---------------------------------------------------------------------------

# Lazily initialised when ``set_project_dir`` is called.
_sink: Any = None  # EventSink | None
_project_dir: Any = None


def set_project_dir(project_dir: Any) -> None:
    """Configure the module-level event sink for a project directory.

    This should be called early in a CLI command.  If it is never called,
    ``emit()`` silently discards events.

    Reads ``logging_enabled``, ``logging_fsync`` and ``logging_tail_bytes``
    from the project config (``gridcalc.yaml``) to configure the sink.
    """
    global _sink, _project_dir
    from pathlib import Path

    from gridcalc.logging.sink import EventSink

    _project_dir = project_dir

    enabled = True
    fsync = False
    tail_bytes = None
    try:
        from gridcalc.project import load_project_config

        cfg = load_project_config(Path(project_dir))
        enabled = bool(cfg.get("logging_enabled", True))
        fsync = bool(cfg.get("logging_fsync", False))
        tb = cfg.get("logging_tail_bytes")
        if tb is not None:
            tail_bytes = int(tb)
    except (OSError, ValueError) as exc:
        _stderr_warning(f"could not read logging config: {exc}")

    _sink = EventSink(Path(project_dir), fsync=fsync, tail_bytes=tail_bytes) if enabled else None


def clear_project_dir() -> None:
    """Detach the module-level sink; subsequent events are discarded."""
    global _sink, _project_dir
    _sink = None
    _project_dir = None


def _get_sink() -> Any:
    """Return the module-level sink, or None."""
    return _sink


# ---------------------------------------------------------------------------
# Rate-limited stderr warnings
# ---------------------------------------------------------------------------

_last_stderr_ts: float = 0.0
_STDERR_INTERVAL_SECS = 60.0


def _stderr_warning(msg: str) -> None:
    """Print a warning to stderr, rate-limited to one per 60 seconds."""
    global _last_stderr_ts
    now = time.monotonic()
    if _last_stderr_ts and now - _last_stderr_ts < _STDERR_INTERVAL_SECS:
        return
    _last_stderr_ts = now
    try:
        print(f"[gridcalc] {msg}", file=sys.stderr)
    except Exception:
        pass


# ---------------------------------------------------------------------------
# Safe emit helpers
# ---------------------------------------------------------------------------


def emit(event: GridcalcEvent, *, run_id: str | None = None) -> None:
    """Write an event to the global log and optionally to a per-run log.

    **Never raises.**  On failure, prints a rate-limited warning to stderr.

    Applies truncation and attribution validation before writing.
    """
    try:
        sink = _get_sink()
        if sink is None:
            return
        event = GridcalcEvent(
            schema_version=event.schema_version,
            ts=event.ts,
            level=event.level,
            event_type=event.event_type,
            context=truncate_context(event.context),
            message=event.message,
            error_code=event.error_code,
        )
        event = _validate_attribution(event)
        sink.write(event, run_id=run_id)
    except Exception:
        _stderr_warning(f"logging failed: {traceback.format_exc()}")


def emit_info(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    run_id: str | None = None,
) -> None:
    """Convenience: emit an info-level event."""
    emit(
        GridcalcEvent(
            level=EventLevel.info,
            event_type=event_type,
            message=message,
            context=context or {},
        ),
        run_id=run_id,
    )


def emit_warning(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
    run_id: str | None = None,
) -> None:
    """Convenience: emit a warning-level event."""
    emit(
        GridcalcEvent(
            level=EventLevel.warning,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        ),
        run_id=run_id,
    )


def emit_error(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
    run_id: str | None = None,
) -> None:
    """Convenience: emit an error-level event."""
    emit(
        GridcalcEvent(
            level=EventLevel.error,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        ),
        run_id=run_id,
    )
