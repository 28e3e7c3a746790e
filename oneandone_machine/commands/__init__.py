"""Shared helpers for CLI command handlers."""

import asyncio
import contextlib
import logging
import sys

from oneandone_machine.errors import MachineError
from oneandone_machine.provisioning.api import CloudServerAPI
from oneandone_machine.provisioning.driver import Driver
from oneandone_machine.provisioning.probes import RetryPolicy
from oneandone_machine.redact import register_secret
from oneandone_machine.store import MachineStore

logger = logging.getLogger(__name__)


def run_handler(coro):
    """Run a handler coroutine; machine errors become exit code 1."""
    try:
        asyncio.run(coro)
    except MachineError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)


def make_policy(args):
    """RetryPolicy from the optional --timeout flag (unbounded by default)."""
    return RetryPolicy(timeout=getattr(args, "timeout", None))


def load_record(args):
    store = MachineStore(args.storage_path)
    record = store.load(args.name)
    register_secret(record.access_token)
    return store, record


@contextlib.asynccontextmanager
async def open_driver(args):
    """Yield a Driver for the stored machine named by ``args.name``."""
    store, record = load_record(args)
    async with CloudServerAPI(record.access_token, record.endpoint) as api:
        yield Driver(record, api, store=store, policy=make_policy(args))


def add_name_argument(parser):
    parser.add_argument("name", help="Machine name")


def add_timeout_argument(parser):
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Give up polling the provider after this many seconds (default: wait forever)",
    )
