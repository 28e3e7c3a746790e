"""Tests for oneandone_machine.redact: secret redaction in text and log records."""

import logging

import pytest

import oneandone_machine.redact as redact_module
from oneandone_machine.redact import SecretRedactingFilter, redact_secrets, register_secret


@pytest.fixture(autouse=True)
def _reset_cache(monkeypatch):
    """Isolate the module-level secret registry and pattern cache per test."""
    monkeypatch.setattr(redact_module, "_registered", set())
    monkeypatch.setattr(redact_module, "_patterns", None)
    for var in redact_module._SECRET_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


# ── redact_secrets ──────────────────────────────────────────────


def test_redact_secrets_replaces_env_token(monkeypatch):
    monkeypatch.setenv("ONEANDONE_ACCESS_TOKEN", "1and1SuperSecretToken123")

    text = "Using token 1and1SuperSecretToken123 for api"
    assert redact_secrets(text) == "Using token *** for api"


def test_redact_secrets_short_values_ignored(monkeypatch):
    monkeypatch.setenv("ONEANDONE_ACCESS_TOKEN", "short")

    text = "Token is short and should not be redacted"
    assert redact_secrets(text) == text


def test_redact_secrets_no_secrets():
    text = "Nothing secret here"
    assert redact_secrets(text) == text


def test_registered_secret_is_redacted():
    assert redact_secrets("root password Xr7pQ2mL9s") == "root password Xr7pQ2mL9s"

    register_secret("Xr7pQ2mL9s")

    assert redact_secrets("root password Xr7pQ2mL9s") == "root password ***"


def test_redact_secrets_multiple_values(monkeypatch):
    monkeypatch.setenv("ONEANDONE_ACCESS_TOKEN", "tok_AAAA_long_enough")
    register_secret("pw_BBBB_long_enough")

    result = redact_secrets("T=tok_AAAA_long_enough P=pw_BBBB_long_enough done")
    assert result == "T=*** P=*** done"


# ── SecretRedactingFilter ───────────────────────────────────────


def test_secret_redacting_filter():
    register_secret("FilterTestToken99")

    filt = SecretRedactingFilter()
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg="Using token FilterTestToken99",
        args=None,
        exc_info=None,
    )
    filt.filter(record)
    assert record.msg == "Using token ***"


def test_secret_redacting_filter_with_args():
    register_secret("ArgsTestToken88")

    filt = SecretRedactingFilter()
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg="Token: %s",
        args=("ArgsTestToken88",),
        exc_info=None,
    )
    filt.filter(record)
    assert record.args == ("***",)
