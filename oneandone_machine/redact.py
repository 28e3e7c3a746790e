"""Secret redaction for log output.

Two kinds of secret reach the logs: the 1&1 access token (from
ONEANDONE_ACCESS_TOKEN or a stored machine record) and the initial root
password the provider returns for a new server. The token is picked up from
the environment; anything else is added with :func:`register_secret` as soon
as it is known.
"""

import logging
import os
import re

# Env vars whose values should be redacted from all output
_SECRET_ENV_VARS = [
    "ONEANDONE_ACCESS_TOKEN",
]

_MIN_SECRET_LENGTH = 8  # skip short values to avoid false positives

# Values registered at runtime (tokens from stored machines, root passwords)
_registered: set[str] = set()


def _collect_secret_values() -> set[str]:
    values = {v for v in _registered if len(v) >= _MIN_SECRET_LENGTH}
    for var in _SECRET_ENV_VARS:
        val = os.environ.get(var, "")
        if len(val) >= _MIN_SECRET_LENGTH:
            values.add(val)
    return values


def _build_patterns(values: set[str]) -> list[re.Pattern]:
    # Sort by length descending so longer values match first
    return [re.compile(re.escape(v)) for v in sorted(values, key=len, reverse=True)]


# Lazy-initialized module cache
_patterns: list[re.Pattern] | None = None


def _get_patterns() -> list[re.Pattern]:
    global _patterns
    if _patterns is None:
        _patterns = _build_patterns(_collect_secret_values())
    return _patterns


def register_secret(value: str) -> None:
    """Redact *value* from all future log output."""
    global _patterns
    if value and value not in _registered:
        _registered.add(value)
        _patterns = None


def redact_secrets(text: str) -> str:
    """Replace known secret values with '***'."""
    for pattern in _get_patterns():
        text = pattern.sub("***", text)
    return text


class SecretRedactingFilter(logging.Filter):
    """Masks the access token and registered root passwords in log records.

    Installed on the CLI handler so records from httpx, paramiko and the
    driver are covered alike. Both pre-formatted messages and %-style
    args are rewritten.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        patterns = _get_patterns()
        if patterns:
            record.msg = redact_secrets(str(record.msg))
            if record.args:
                if isinstance(record.args, dict):
                    record.args = {k: redact_secrets(v) if isinstance(v, str) else v for k, v in record.args.items()}
                elif isinstance(record.args, tuple):
                    record.args = tuple(redact_secrets(a) if isinstance(a, str) else a for a in record.args)
        return True
