"""Credential-safe logging utilities for melodex.

Keeps catalog credentials and bearer tokens out of log output:
- Sensitive field redaction for dict payloads
- Message sanitization (emails, bearer tokens, ``secret=...`` pairs)
- Rich console handler setup for the CLI
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

# Fields that should be redacted in logs
REDACT_FIELDS = frozenset(
    {
        "password",
        "secret",
        "token",
        "api_key",
        "apikey",
        "authorization",
        "credential",
        "access_token",
        "refresh_token",
        "client_secret",
    }
)

# Regex patterns for sensitive data
PATTERNS = {
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b"),
    "bearer": re.compile(r"\b(Bearer|Basic)\s+[A-Za-z0-9._~+/=-]+", re.I),
    "secret_pair": re.compile(r"\b(client_secret|access_token|refresh_token)=([^&\s]+)", re.I),
}

NOISY_LOGGERS = ("httpx", "httpcore")


def redact_value(value: str, visible_chars: int = 4) -> str:
    """Redact a sensitive value, showing only first few characters.

    Returns:
        Redacted string (e.g., "sk-a***")
    """
    if len(value) <= visible_chars:
        return "***"
    return f"{value[:visible_chars]}***"


def redact_dict(
    data: dict[str, Any],
    redact_fields: frozenset[str] | None = None,
) -> dict[str, Any]:
    """Recursively redact sensitive fields in a dictionary.

    Args:
        data: Dictionary to redact
        redact_fields: Set of field names to redact (case-insensitive)

    Returns:
        New dictionary with sensitive fields redacted
    """
    if redact_fields is None:
        redact_fields = REDACT_FIELDS

    result: dict[str, Any] = {}
    for key, value in data.items():
        key_lower = key.lower()
        should_redact = key_lower in redact_fields or any(
            field in key_lower for field in redact_fields
        )

        if should_redact and isinstance(value, str):
            result[key] = redact_value(value)
        elif isinstance(value, dict):
            result[key] = redact_dict(value, redact_fields)
        elif isinstance(value, list):
            result[key] = [
                redact_dict(item, redact_fields) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value

    return result


def sanitize_message(message: str) -> str:
    """Remove credentials and emails from a log message.

    MBIDs and catalog ids are kept; they are needed for debugging.
    """
    result = PATTERNS["email"].sub("[EMAIL]", message)
    result = PATTERNS["bearer"].sub(lambda m: f"{m.group(1)} [REDACTED]", result)
    result = PATTERNS["secret_pair"].sub(lambda m: f"{m.group(1)}=[REDACTED]", result)
    return result


class SafeLogFormatter(logging.Formatter):
    """Log formatter that sanitizes messages and redacts mapping args."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        sanitize_messages: bool = True,
    ):
        super().__init__(fmt, datefmt)
        self.sanitize_messages = sanitize_messages

    def format(self, record: logging.LogRecord) -> str:
        # Copy so other handlers see the original record
        record = logging.makeLogRecord(record.__dict__)

        if self.sanitize_messages:
            record.msg = sanitize_message(str(record.msg))

        if record.args:
            record.args = self._sanitize_args(record.args)

        return super().format(record)

    def _sanitize_args(
        self, args: tuple[Any, ...] | Mapping[str, Any]
    ) -> tuple[Any, ...] | dict[str, Any]:
        if isinstance(args, Mapping):
            # Keep the mapping so %(key)s messages still format
            redacted = redact_dict(dict(args))
            return {key: self._sanitize_value(value) for key, value in redacted.items()}
        return tuple(self._sanitize_value(arg) for arg in args)

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, dict):
            return redact_dict(value)
        if isinstance(value, str) and self.sanitize_messages:
            return sanitize_message(value)
        return value


def configure_rich_logging(
    level: int = logging.WARNING,
    format_string: str = "%(message)s",
    show_time: bool = True,
    show_path: bool = False,
) -> Console:
    """Install a credential-safe Rich handler on the root logger.

    Log records go to stderr so that JSON written to stdout stays parseable.
    Handlers installed by earlier calls are replaced.

    Returns:
        Console for regular (stdout) output
    """
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=show_time,
        show_path=show_path,
        rich_tracebacks=False,
        markup=False,
    )
    handler.setFormatter(SafeLogFormatter(fmt=format_string))

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        if isinstance(existing, RichHandler):
            root_logger.removeHandler(existing)
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    return Console()


def quiet_http_loggers(level: int = logging.WARNING) -> None:
    """Raise the threshold of chatty HTTP transport loggers."""
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level)
