"""Logging configuration using loguru.

Provides:
- Human-readable colorized logging for interactive use
- JSON lines for log collection
Both go to stderr so console output on stdout stays clean.
"""

import json
import sys
from datetime import UTC, datetime

from loguru import logger


def _json_formatter(record: dict) -> str:
    """Format log record as a single JSON line."""
    log_entry = {
        "timestamp": datetime.now(UTC).isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
    }

    if record.get("extra"):
        for key, value in record["extra"].items():
            if key not in log_entry:
                log_entry[key] = value

    if record["exception"]:
        log_entry["exception"] = {
            "type": record["exception"].type.__name__ if record["exception"].type else None,
            "value": str(record["exception"].value) if record["exception"].value else None,
        }

    # loguru treats the returned string as a template; escape the braces
    line = json.dumps(log_entry, default=str).replace("{", "{{").replace("}", "}}")
    return line + "\n"


def _dev_formatter(_record: dict) -> str:
    """Format log record for interactive use (human-readable)."""
    return (
        "<green>{time:HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "<level>{message}</level>\n"
        "{exception}"
    )


def setup_logging(json_logs: bool = False, log_level: str = "WARNING") -> None:
    """Configure loguru for the application.

    Args:
        json_logs: If True, output JSON lines
        log_level: Minimum log level to output
    """
    logger.remove()

    if json_logs:
        logger.add(
            sys.stderr,
            format=_json_formatter,
            level=log_level,
            serialize=False,
        )
    else:
        logger.add(
            sys.stderr,
            format=_dev_formatter,
            level=log_level,
            colorize=True,
        )
