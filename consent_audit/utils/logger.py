"""
Structured console logger for audit runs.
Prints colourised, timestamped lines to stderr and keeps an
ANSI-stripped copy of every line so the run log can be returned
to the admin UI alongside the results.

Per-run state (timers, log buffer, log file handle) lives in
``contextvars.ContextVar`` so that two audits streamed at the same
time do not mix their output.
"""

from __future__ import annotations

import contextvars
import io
import os
import pathlib
import re
import sys
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TypeVar

_ANSI_RE = re.compile(r"\033\[[0-9;]*m")


# ============================================================================
# Per-run state (isolated via contextvars)
# ============================================================================

_T = TypeVar("_T")

# "<context>:<label>" -> (monotonic start, wall-clock start)
_Timers = dict[str, tuple[float, str]]

_timers_var: contextvars.ContextVar[_Timers] = contextvars.ContextVar("consent_audit_timers")
_run_log_var: contextvars.ContextVar[list[str]] = contextvars.ContextVar("consent_audit_run_log")
_log_file_var: contextvars.ContextVar[io.TextIOWrapper | None] = contextvars.ContextVar("consent_audit_log_file", default=None)


def _per_run(var: contextvars.ContextVar[_T], factory: Callable[[], _T]) -> _T:
    """Value of *var* in the current context, created on first use."""
    value = var.get(None)
    if value is None:
        value = factory()
        var.set(value)
    return value


def _get_timers() -> _Timers:
    return _per_run(_timers_var, dict)


def _get_run_log() -> list[str]:
    return _per_run(_run_log_var, list)


def get_run_log() -> list[str]:
    """Return a copy of the lines logged during the current run."""
    return list(_get_run_log())


def reset_run_log() -> None:
    """Forget the lines and timers of the previous run."""
    _get_run_log().clear()
    _get_timers().clear()


# ============================================================================
# File Logging
# ============================================================================

_write_to_file = os.environ.get("WRITE_TO_FILE", "").lower() == "true"


def open_run_log_file(site_host: str) -> None:
    """Start a log file for an audit of *site_host* (only with WRITE_TO_FILE=true)."""
    if not _write_to_file:
        return

    close_run_log_file()

    logs_dir = pathlib.Path.cwd() / ".logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    safe_host = "".join(c if c.isalnum() or c in ".-" else "_" for c in site_host.removeprefix("www."))[:50]
    now = datetime.now(UTC)
    path = logs_dir / f"audit_{safe_host}_{now.strftime('%Y-%m-%d_%H-%M-%S')}.log"

    try:
        stream = open(path, "a", encoding="utf-8")  # noqa: SIM115
    except OSError as exc:
        print(f"\033[31m✗ [Logger] Could not open audit log: {exc}\033[0m", file=sys.stderr)
        return

    _log_file_var.set(stream)
    stream.write(f"\n{'=' * 80}\n  Consent Audit - {site_host}\n  Started: {now.isoformat()}\n{'=' * 80}\n")


def close_run_log_file() -> None:
    """Flush and close the current run's log file, if any."""
    stream = _log_file_var.get(None)
    if stream is None:
        return
    try:
        stream.flush()
        stream.close()
    except OSError:
        print("\033[33m⚠ [Logger] Failed to close audit log\033[0m", file=sys.stderr)
    _log_file_var.set(None)


def _emit(line: str) -> None:
    """Send *line* to stderr, the log file and the run log."""
    print(line, file=sys.stderr)
    clean = _ANSI_RE.sub("", line)
    stream = _log_file_var.get(None)
    if stream is not None:
        stream.write(clean + "\n")
        stream.flush()
    _get_run_log().append(clean)
# ============================================================================
# ANSI Colours
# ============================================================================

_RESET = "\033[0m"

_colours = {
    "bright": "\033[1m",
    "dim": "\033[2m",
    "cyan": "\033[36m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "red": "\033[31m",
    "magenta": "\033[35m",
    "blue": "\033[34m",
    "gray": "\033[90m",
}

# level -> (colour, symbol)
_level_style = {
    "info": ("cyan", "ℹ"),
    "success": ("green", "✓"),
    "warn": ("yellow", "⚠"),
    "error": ("red", "✗"),
    "debug": ("gray", "•"),
    "timing": ("magenta", "⏱"),
}

_MAX_STRING_VALUE = 300


def _paint(text: object, *styles: str) -> str:
    return "".join(_colours[style] for style in styles) + f"{text}{_RESET}"


def _timestamp() -> str:
    """Current UTC wall-clock time as ``HH:MM:SS.mmm``."""
    now = datetime.now(UTC)
    return f"{now:%H:%M:%S}.{now.microsecond // 1000:03d}"


def format_duration(ms: float) -> str:
    """Human-readable duration: ``850ms``, ``2.50s`` or ``3m 4.2s``."""
    if ms < 1000:
        return f"{int(ms)}ms"
    if ms < 60_000:
        return f"{ms / 1000:.2f}s"
    minutes, rest = divmod(ms, 60_000)
    return f"{int(minutes)}m {rest / 1000:.1f}s"


def _format_value(value: object) -> str:
    """Short coloured rendering of a structured-data value."""
    if value is None:
        return _paint("None", "dim")
    if isinstance(value, bool):
        return _paint(value, "green" if value else "red")
    if isinstance(value, (int, float)):
        return _paint(value, "yellow")
    if isinstance(value, str):
        if len(value) > _MAX_STRING_VALUE:
            value = value[: _MAX_STRING_VALUE - 3] + "..."
        return _paint(f'"{value}"', "green")
    if isinstance(value, (list, tuple, set)):
        return _paint(f"[{len(value)} items]", "cyan")
    if isinstance(value, dict):
        return _paint(f"{{{len(value)} keys}}", "cyan")
    return str(value)


# ============================================================================
# Logger Class
# ============================================================================


class Logger:
    """Logger bound to one context name (shown as ``[Context]`` on every line).

    ``data`` dicts are rendered as ``key=value`` pairs after the message.
    Timers are keyed by context and label, so two modules can use the
    same label without clashing.
    """

    def __init__(self, context: str) -> None:
        self._context = context

    def _log(self, level: str, message: str, data: dict[str, object] | None = None) -> None:
        colour, symbol = _level_style.get(level, _level_style["info"])
        parts = [
            _paint(f"[{_timestamp()}]", "gray"),
            _paint(symbol, colour),
            _paint(f"[{self._context}]", "bright"),
            message,
        ]
        parts.extend(f"{_paint(f'{key}=', 'dim')}{_format_value(value)}" for key, value in (data or {}).items())
        _emit(" ".join(parts))

    def info(self, message: str, data: dict[str, object] | None = None) -> None:
        self._log("info", message, data)

    def success(self, message: str, data: dict[str, object] | None = None) -> None:
        self._log("success", message, data)

    def warn(self, message: str, data: dict[str, object] | None = None) -> None:
        self._log("warn", message, data)

    def error(self, message: str, data: dict[str, object] | None = None) -> None:
        self._log("error", message, data)

    def debug(self, message: str, data: dict[str, object] | None = None) -> None:
        self._log("debug", message, data)

    def _timer_key(self, label: str) -> str:
        return f"{self._context}:{label}"

    def start_timer(self, label: str) -> None:
        _get_timers()[self._timer_key(label)] = (time.monotonic(), _timestamp())
        self._log("timing", f"Starting: {label}")

    def end_timer(self, label: str, message: str | None = None) -> float:
        """Stop timer *label*, log how long it ran and return the milliseconds.

        An unknown label logs a warning and returns ``0.0``.
        """
        started = _get_timers().pop(self._timer_key(label), None)
        if started is None:
            self.warn(f"No timer named {label!r}")
            return 0.0

        started_at, started_ts = started
        elapsed_ms = (time.monotonic() - started_at) * 1000
        summary = message or f"Completed: {label}"
        self._log(
            "timing",
            f"{summary} {_paint('took', 'dim')} {_paint(format_duration(elapsed_ms), 'magenta')} "
            f"{_paint(f'(started {started_ts})', 'dim')}",
        )
        return elapsed_ms

    def section(self, title: str) -> None:
        """Emit a banner line pair around *title*."""
        rule = _paint("─" * 60, "blue")
        for line in ("", rule, _paint(f"  {title}", "blue", "bright"), rule, ""):
            _emit(line)


def create_logger(context: str) -> Logger:
    return Logger(context)
