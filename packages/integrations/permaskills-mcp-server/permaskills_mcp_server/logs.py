"""Logging setup for the server entry point."""

from __future__ import annotations

import logging
import sys

from permaskills_core import redact_secrets


class RedactingFilter(logging.Filter):
    """Replace secret-looking substrings in every record's message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(level: str = "INFO") -> None:
    """Log to stderr (stdout carries the stdio transport) through :class:`RedactingFilter`."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RedactingFilter) for f in handler.filters):
            handler.addFilter(RedactingFilter())
