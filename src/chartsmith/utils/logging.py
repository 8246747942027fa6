"""Logging setup for chartsmith.

Three output modes:
- Human mode: [LEVEL] message (colored if TTY)
- Verbose mode: [LEVEL][HH:MM:SS] logger: message
- JSON mode: {"level":"...","ts":"...","logger":"...","msg":"...", ...}

Library modules only call logging.getLogger(__name__); handlers are attached
by setup_logging(), normally from the CLI.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TextIO

ROOT_LOGGER = "chartsmith"


class LogMode(Enum):
    """Logging output mode."""

    HUMAN = "human"
    VERBOSE = "verbose"
    JSON = "json"


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    RED = "\033[31m"
    GRAY = "\033[90m"


LEVEL_COLORS = {
    logging.DEBUG: Colors.GRAY,
    logging.INFO: Colors.GREEN,
    logging.WARNING: Colors.YELLOW,
    logging.ERROR: Colors.RED,
    logging.CRITICAL: Colors.RED,
}


def _is_tty(stream: TextIO | None = None) -> bool:
    """Check if the stream is a TTY (supports colors)."""
    if stream is None:
        stream = sys.stderr
    return hasattr(stream, "isatty") and stream.isatty()


def _extra_suffix(record: logging.LogRecord) -> str:
    extra = getattr(record, "extra_data", None)
    if not extra:
        return ""
    return " " + " ".join(f"{key}={value}" for key, value in extra.items())


class HumanFormatter(logging.Formatter):
    """Format: [LEVEL] message key=value ..."""

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage() + _extra_suffix(record)
        if self.use_colors:
            color = LEVEL_COLORS.get(record.levelno, Colors.RESET)
            return f"{color}[{record.levelname}]{Colors.RESET} {message}"
        return f"[{record.levelname}] {message}"


class VerboseFormatter(logging.Formatter):
    """Format: [LEVEL][HH:MM:SS] logger.name: message key=value ..."""

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        message = f"{record.name}: {record.getMessage()}{_extra_suffix(record)}"
        if self.use_colors:
            color = LEVEL_COLORS.get(record.levelno, Colors.RESET)
            return f"{color}[{record.levelname}]{Colors.RESET}[{timestamp}] {message}"
        return f"[{record.levelname}][{timestamp}] {message}"


class JSONFormatter(logging.Formatter):
    """JSON lines output for CI and log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "level": record.levelname,
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        extra = getattr(record, "extra_data", None)
        if extra:
            log_entry.update(extra)
        return json.dumps(log_entry, default=str)


def log_event(logger: logging.Logger, level: int, msg: str, **fields: Any) -> None:
    """Log a message with structured key/value fields on any logger.

    Human and verbose modes append the fields as key=value pairs; JSON mode
    merges them into the emitted object.
    """
    if fields:
        logger.log(level, msg, extra={"extra_data": fields})
    else:
        logger.log(level, msg)


class ChartsmithLogger(logging.Logger):
    """Logger with key/value structured events."""

    def structured(self, level: int, msg: str, **kwargs: Any) -> None:
        """Log a message with additional structured fields."""
        log_event(self, level, msg, **kwargs)


logging.setLoggerClass(ChartsmithLogger)


def get_logger(name: str = ROOT_LOGGER) -> ChartsmithLogger:
    """Get a chartsmith logger instance."""
    return logging.getLogger(name)  # type: ignore[return-value]


def setup_logging(
    mode: LogMode = LogMode.HUMAN,
    level: int = logging.INFO,
    stream: TextIO | None = None,
) -> None:
    """Attach a single handler to the chartsmith root logger.

    Args:
        mode: Output mode (human, verbose, json)
        level: Minimum log level
        stream: Output stream (default: stderr, so rendered markup on stdout stays clean)
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    target = stream or sys.stderr
    use_colors = _is_tty(target)

    if mode == LogMode.JSON:
        formatter: logging.Formatter = JSONFormatter()
    elif mode == LogMode.VERBOSE:
        formatter = VerboseFormatter(use_colors=use_colors)
    else:
        formatter = HumanFormatter(use_colors=use_colors)

    handler = logging.StreamHandler(target)
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def configure_from_cli(
    verbose: bool = False,
    quiet: bool = False,
    ci: bool = False,
) -> None:
    """Configure logging based on CLI flags.

    Args:
        verbose: Debug level with timestamps
        quiet: Warnings and errors only
        ci: JSON lines output
    """
    if ci:
        mode = LogMode.JSON
    elif verbose:
        mode = LogMode.VERBOSE
    else:
        mode = LogMode.HUMAN

    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    setup_logging(mode=mode, level=level)
