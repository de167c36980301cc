from __future__ import annotations

import json
import logging
import os
import re
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Mapping, MutableMapping, Optional


@dataclass(frozen=True)
class LoggingOptions:
    level: str = "INFO"
    format: str = "text"  # text | json
    file: Optional[str] = None
    include_timestamps: bool = True
    shorten_accounts: bool = False

    @classmethod
    def from_config(cls, config: Any) -> "LoggingOptions":
        """Build options from a goalkeeper.ledger.config.LoggingConfig."""
        return cls(
            level=config.level,
            format=config.format,
            file=config.file,
            include_timestamps=bool(config.include_timestamps),
            shorten_accounts=bool(config.shorten_accounts),
        )


_RE_HEX_ACCOUNT = re.compile(r"\b0x(?P<head>[0-9a-fA-F]{4})[0-9a-fA-F]{32}(?P<tail>[0-9a-fA-F]{4})\b")


class JSONFormatter(logging.Formatter):
    def __init__(self, include_timestamps: bool = True):
        super().__init__()
        self._include_timestamps = include_timestamps

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self._include_timestamps:
            payload["timestamp"] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        context = getattr(record, "context", None)
        if context is not None:
            payload["context"] = context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _shorten_str(value: str) -> str:
    return _RE_HEX_ACCOUNT.sub(lambda m: f"0x{m.group('head')}…{m.group('tail')}", value)


def _shorten_any(value: Any, *, depth: int, max_depth: int) -> Any:
    """Shorten 20-byte hex account ids in nested structures.

    Preconditions:
        - max_depth >= 0

    Postconditions:
        - Returns a structure of the same shape with every 0x-prefixed
          40-hex-digit string abbreviated to its first and last four digits

    Invariants:
        - Does not recurse beyond max_depth; deeper values pass through
    """
    if depth > max_depth:
        return value

    if isinstance(value, str):
        return _shorten_str(value)

    if isinstance(value, Mapping):
        return {k: _shorten_any(v, depth=depth + 1, max_depth=max_depth) for k, v in value.items()}

    if isinstance(value, (list, tuple)):
        return [_shorten_any(v, depth=depth + 1, max_depth=max_depth) for v in value]

    return value


class AccountShortenFilter(logging.Filter):
    def __init__(self, *, max_depth: int = 4):
        super().__init__()
        self._max_depth = max_depth

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = _shorten_str(record.msg)

        context = getattr(record, "context", None)
        if isinstance(context, MutableMapping):
            record.context = _shorten_any(context, depth=0, max_depth=self._max_depth)

        return True


def _normalize_level(level: str) -> str:
    return level.strip().upper()


def _normalize_format(fmt: str) -> str:
    lowered = fmt.strip().lower()
    if lowered in {"text", "json"}:
        return lowered
    raise ValueError(f"Invalid log format: {fmt}")


def load_logging_options_from_env() -> LoggingOptions:
    """Load logging options from environment.

    Env vars:
        - GOALKEEPER_LOG_LEVEL
        - GOALKEEPER_LOG_FORMAT
        - GOALKEEPER_LOG_FILE
        - GOALKEEPER_LOG_SHORTEN_ACCOUNTS ("1" enables)
    """
    level = os.getenv("GOALKEEPER_LOG_LEVEL", "INFO")
    fmt = os.getenv("GOALKEEPER_LOG_FORMAT", "text")
    file = os.getenv("GOALKEEPER_LOG_FILE")
    shorten = os.getenv("GOALKEEPER_LOG_SHORTEN_ACCOUNTS", "0") in {"1", "true", "TRUE"}
    return LoggingOptions(level=level, format=fmt, file=file, shorten_accounts=shorten)


def _build_formatter(options: LoggingOptions, *, with_time: bool) -> logging.Formatter:
    if _normalize_format(options.format) == "json":
        return JSONFormatter(include_timestamps=options.include_timestamps)
    if with_time and options.include_timestamps:
        return logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    return logging.Formatter("%(levelname)s %(name)s: %(message)s")


def configure_logging(options: LoggingOptions) -> None:
    """Configure logging for GoalKeeper.

    Preconditions:
        - options.level is a valid logging level name
        - options.format in {"text", "json"}

    Postconditions:
        - Logger hierarchy under "goalkeeper" is configured
        - Logs emit to stderr (and optional rotating file)
        - Account shortening filter attached when options.shorten_accounts
    """
    logger = logging.getLogger("goalkeeper")
    logger.setLevel(getattr(logging, _normalize_level(options.level), logging.INFO))

    logger.handlers.clear()
    logger.propagate = False

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_build_formatter(options, with_time=False))
    if options.shorten_accounts:
        handler.addFilter(AccountShortenFilter())
    logger.addHandler(handler)

    if options.file:
        file_handler = RotatingFileHandler(
            options.file,
            maxBytes=10 * 1024 * 1024,
            backupCount=3,
        )
        file_handler.setFormatter(_build_formatter(options, with_time=True))
        if options.shorten_accounts:
            file_handler.addFilter(AccountShortenFilter())
        logger.addHandler(file_handler)
