"""
agentloop Logging — colorized dev output, JSON for production.

Features:
- Color formatter for dev mode (auto-detects TTY)
- JSON structured formatter (AGENTLOOP_LOG_FORMAT=json)
- Suppresses noisy third-party loggers (httpx, httpcore, openai)
- Configurable via AGENTLOOP_LOG_LEVEL, AGENTLOOP_LOG_COLOR, AGENTLOOP_LOG_FORMAT
- PhaseTimer for per-state latency inside one loop run

Structured log extra fields (pass via logger.info(..., extra={...})):
    session_id, state, iteration, persona, tool, duration_ms, decision
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from datetime import datetime, timezone


# --- Color codes ---
COLORS = {
    "DEBUG": "\033[36m",  # Cyan
    "INFO": "\033[32m",  # Green
    "WARNING": "\033[33m",  # Yellow
    "ERROR": "\033[31m",  # Red
    "CRITICAL": "\033[1;31m",  # Bold red
    "RESET": "\033[0m",
    "DIM": "\033[2m",
}


class ColorFormatter(logging.Formatter):
    """Colorized log formatter for terminal output."""

    def __init__(self, use_color: bool = True):
        super().__init__(
            fmt="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
            datefmt="%H:%M:%S",
        )
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_color:
            return super().format(record)

        level_color = COLORS.get(record.levelname, "")
        reset = COLORS["RESET"]

        orig_levelname = record.levelname
        orig_name = record.name

        record.levelname = f"{level_color}{record.levelname}{reset}"
        record.name = f"{COLORS['DIM']}{record.name}{reset}"
        try:
            return super().format(record)
        finally:
            record.levelname = orig_levelname
            record.name = orig_name


# Structured log fields forwarded from logger.info(..., extra={...})
_STRUCTURED_FIELDS = (
    "session_id",
    "state",
    "iteration",
    "persona",
    "tool",
    "duration_ms",
    "decision",
)


class StructuredFormatter(logging.Formatter):
    """JSON log formatter for log aggregation.

    Each log line is a single JSON object. Extra fields passed via
    logger.info("msg", extra={"session_id": "...", "iteration": 2})
    are included at the top level.

    Enable with: AGENTLOOP_LOG_FORMAT=json
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        for key in _STRUCTURED_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)

        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class PhaseTimer:
    """Accumulates wall time per loop state across one run.

    Usage:
        timer = PhaseTimer()
        with timer.phase("PLANNING"):
            ...
        timer.summary()  # -> "PLANNING: 1.2s (x2) | EXECUTING: 3.4s (x2) | Total: 4.7s"
    """

    def __init__(self):
        self._start = time.monotonic()
        self._totals: dict[str, float] = {}
        self._counts: dict[str, int] = {}

    def phase(self, name: str) -> "_Phase":
        return _Phase(self, name)

    def record(self, name: str, seconds: float) -> None:
        self._totals[name] = self._totals.get(name, 0.0) + seconds
        self._counts[name] = self._counts.get(name, 0) + 1

    def elapsed(self, name: str) -> float | None:
        """Total time recorded for a phase, or None if it never ran."""
        return self._totals.get(name)

    def total(self) -> float:
        return time.monotonic() - self._start

    def summary(self) -> str:
        parts = [
            f"{name}: {secs:.1f}s (x{self._counts[name]})"
            for name, secs in self._totals.items()
        ]
        parts.append(f"Total: {self.total():.1f}s")
        return " | ".join(parts)


class _Phase:
    def __init__(self, timer: PhaseTimer, name: str):
        self._timer = timer
        self._name = name
        self._t0 = 0.0

    def __enter__(self) -> "_Phase":
        self._t0 = time.monotonic()
        return self

    def __exit__(self, *exc) -> None:
        self._timer.record(self._name, time.monotonic() - self._t0)


def _should_use_color() -> bool:
    """Auto-detect color support."""
    env_val = os.getenv("AGENTLOOP_LOG_COLOR", "auto").lower()
    if env_val == "true":
        return True
    if env_val == "false":
        return False
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def setup_logging() -> None:
    """Configure logging for the whole process.

    Env vars:
        AGENTLOOP_LOG_LEVEL  — DEBUG / INFO / WARNING / ERROR (default: INFO)
        AGENTLOOP_LOG_COLOR  — true / false / auto (default: auto)
        AGENTLOOP_LOG_FORMAT — text / json (default: text)
    """
    level_name = os.getenv("AGENTLOOP_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    log_format = os.getenv("AGENTLOOP_LOG_FORMAT", "text").lower()

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    if log_format == "json":
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = ColorFormatter(use_color=_should_use_color())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    for noisy_logger in [
        "httpx",
        "httpcore",
        "httpcore.http11",
        "httpcore.connection",
        "openai",
        "openai._base_client",
        "aiosqlite",
    ]:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    logger = logging.getLogger("agentloop")
    logger.debug("Logging configured (level=%s, format=%s)", level_name, log_format)
