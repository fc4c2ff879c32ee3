"""Logging setup with redaction of caller data and credentials."""

import logging
import re

from utils.text import PHONE_PATTERN

REDACTION_PATTERNS = [
    (re.compile(r"\bsk-[A-Za-z0-9_-]{10,}\b"), "[REDACTED_API_KEY]"),
    (re.compile(r"\btvly-[A-Za-z0-9_-]{10,}\b"), "[REDACTED_API_KEY]"),
    (re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._-]+"), "Bearer [REDACTED_TOKEN]"),
    (re.compile(r"(?i)\b(api[_-]?key|token|secret|password)(\s*[=:]\s*)\S+"), r"\1\2[REDACTED]"),
    (re.compile(r"\b[\w.+-]+@[\w-]+\.[\w.-]+\b"), "[REDACTED_EMAIL]"),
]


def _mask_phone(match: re.Match) -> str:
    digits = re.sub(r"\D", "", match.group(0))
    if len(digits) < 10:
        return match.group(0)
    digits = digits[-10:]
    return f"{digits[:3]}-***-{digits[-4:]}"


def redact(text: str) -> str:
    """Mask phone numbers and strip credentials from text."""
    if not text:
        return text
    for pattern, replacement in REDACTION_PATTERNS:
        text = pattern.sub(replacement, text)
    return PHONE_PATTERN.sub(_mask_phone, text)


class SensitiveDataFilter(logging.Filter):
    """Logging filter that redacts every record before it is emitted."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        record.msg = redact(message)
        record.args = None
        return True


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging for the CLI and web app."""
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s: %(message)s"
    ))
    handler.addFilter(SensitiveDataFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
