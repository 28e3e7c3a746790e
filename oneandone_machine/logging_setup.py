"""CLI logging setup: plain %(message)s format, secrets redacted."""

import logging
import sys

from oneandone_machine.redact import SecretRedactingFilter


def setup_cli_logging(debug=False):
    """Configure the root logger for CLI commands.

    Regular output is the bare message; with *debug* every record is
    prefixed with its level and logger name.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    if debug:
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    else:
        handler.setFormatter(logging.Formatter("%(message)s"))
    # Filter on the handler so records from child loggers are redacted too
    handler.addFilter(SecretRedactingFilter())
    root.addHandler(handler)

    # paramiko and httpx are chatty at DEBUG
    for noisy in ("paramiko", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
