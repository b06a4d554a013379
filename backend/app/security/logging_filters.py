"""Logging filter that keeps provider tokens out of log output."""

from __future__ import annotations

import logging
import re

_TOKEN_PATTERN = re.compile(
    r"(Bearer\s+[\w\.-]+|(?:access|refresh|id)_token\"?\s*[:=]\s*\"?[\w\.-]+\"?)",
    re.IGNORECASE,
)
_REDACTED = "**REDACTED**"


def scrub(value: str) -> str:
    return _TOKEN_PATTERN.sub(_REDACTED, value)


class SensitiveFilter(logging.Filter):
    """Redact bearer and provider tokens from messages and string arguments."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = scrub(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(scrub(arg) if isinstance(arg, str) else arg for arg in record.args)
        return True


__all__ = ["SensitiveFilter", "scrub"]
