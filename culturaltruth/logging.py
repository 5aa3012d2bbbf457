"""
Structured Logging — JSON Output for Production

Configures Python logging to emit structured JSON logs.
Each log entry includes timestamp, level, module, and
any additional context fields.

Usage:
    from culturaltruth.logging import get_logger
    logger = get_logger("engine")
    logger.info("Analysis complete", extra={"overall_score": 72.5, "risk_tier": "medium"})
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone


LOG_LEVEL = os.getenv("CULTURALTRUTH_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("CULTURALTRUTH_LOG_FORMAT", "json")  # "json" or "text"

_EXTRA_FIELDS = (
    "session_id", "user_id", "overall_score", "risk_tier", "findings_count",
    "entities_count", "external_calls", "cache_hits", "mode",
    "detection_level", "endpoint", "path", "method", "status_code",
    "duration_ms", "error", "error_type", "candidate", "breaker_state",
    "batch_size", "rounds",
)


class JSONFormatter(logging.Formatter):
    """Formats log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val

        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable format for development."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging():
    """Configure the culturaltruth logger. Call once at app startup."""
    root = logging.getLogger("culturaltruth")
    root.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    root.handlers.clear()

    # stderr: stdout may carry tool protocol traffic
    handler = logging.StreamHandler(sys.stderr)
    if LOG_FORMAT == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root.addHandler(handler)

    # Suppress noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    """Get a named logger under the culturaltruth namespace."""
    return logging.getLogger(f"culturaltruth.{name}")
