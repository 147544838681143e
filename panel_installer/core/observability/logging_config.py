"""
Logging configuration — console and install-log handlers for the CLI.

Called once at startup by main.py. Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.

Levels are resolved in precedence order:
    CLI flag  >  PANEL_LOG_LEVEL env var  >  INFO (default)

INFO is the default: step progress and streamed command output are
logged at INFO. The install log (PANEL_LOG_FILE, level
PANEL_LOG_FILE_LEVEL) always uses the full format.

Every handler carries the shared SecretMask, so a password registered
with ``mask_secret()`` is replaced before any record is written, even
if a command echoes it back.
"""

from __future__ import annotations

import logging
import sys

DEFAULT_LEVEL = "INFO"

MASK = "********"

# ── Formats ─────────────────────────────────────────────────────

_CONSOLE_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s %(message)s", "%H:%M:%S"),
    logging.WARNING: ("%(message)s", None),
}

_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

_NOISY_LOGGERS = ("urllib3", "asyncio")


class SecretMask(logging.Filter):
    """Replaces registered secret values in formatted log messages."""

    def __init__(self) -> None:
        super().__init__()
        self._secrets: set[str] = set()

    def add(self, secret: str) -> None:
        if secret:
            self._secrets.add(secret)

    def clear(self) -> None:
        self._secrets.clear()

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        masked = message
        for secret in self._secrets:
            masked = masked.replace(secret, MASK)
        if masked != message:
            record.msg, record.args = masked, None
        return True


_secret_mask = SecretMask()


def mask_secret(secret: str) -> None:
    """Never let *secret* reach a configured log handler."""
    _secret_mask.add(secret)


def setup_logging(
    level: str = DEFAULT_LEVEL,
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure Python logging for the entire process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional install log. An unwritable path is reported on
            stderr and skipped.
        log_file_level: Level for the install log, defaults to ``level``.
        quiet_third_party: Keep third-party loggers at WARNING unless
            running at DEBUG.
    """
    console_level = _parse_level(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_console_handler(console_level))
    effective_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handler = _file_handler(log_file, file_level)
        if handler is not None:
            root.addHandler(handler)
            effective_level = min(effective_level, file_level)

    root.setLevel(effective_level)

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def _console_handler(level: int) -> logging.Handler:
    if level <= logging.DEBUG:
        fmt, datefmt = _CONSOLE_FORMATS[logging.DEBUG]
    elif level <= logging.INFO:
        fmt, datefmt = _CONSOLE_FORMATS[logging.INFO]
    else:
        fmt, datefmt = _CONSOLE_FORMATS[logging.WARNING]

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    handler.addFilter(_secret_mask)
    return handler


def _file_handler(path: str, level: int) -> logging.Handler | None:
    try:
        handler = logging.FileHandler(path, encoding="utf-8")
    except OSError as e:
        print(f"Cannot write log file {path}: {e}", file=sys.stderr)
        return None
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
    handler.addFilter(_secret_mask)
    return handler


def _parse_level(level: str | None) -> int:
    """Level name to its numeric constant; unknown names fall back to INFO."""
    if not level:
        return logging.INFO
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.INFO
    return numeric
