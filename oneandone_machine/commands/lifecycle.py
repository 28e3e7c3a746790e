"""Lifecycle commands: start, stop, restart, kill, rm, status, ip, url, ls."""

import logging

from oneandone_machine.commands import (
    add_name_argument,
    add_timeout_argument,
    load_record,
    open_driver,
    run_handler,
)
from oneandone_machine.errors import MachineError
from oneandone_machine.provisioning.driver import DOCKER_PORT
from oneandone_machine.provisioning.types import MachineState
from oneandone_machine.store import MachineStore

logger = logging.getLogger(__name__)


# ── Power state ────────────────────────────────────────────────────


async def _power(args, action):
    async with open_driver(args) as driver:
        await getattr(driver, action)()


def handle_start(args):
    run_handler(_power(args, "start"))


def handle_stop(args):
    run_handler(_power(args, "stop"))


def handle_restart(args):
    run_handler(_power(args, "restart"))


def handle_kill(args):
    run_handler(_power(args, "kill"))


# ── Removal ────────────────────────────────────────────────────────


def handle_rm(args):
    """CLI handler for 'rm'."""
    run_handler(_handle_rm(args))


async def _handle_rm(args):
    async with open_driver(args) as driver:
        await driver.remove()
        record = driver.record
        if record.vm_id or record.firewall_id:
            raise MachineError(
                f"Could not remove all resources of '{record.name}' "
                f"(server: '{record.vm_id}', firewall policy: '{record.firewall_id}')"
            )
        driver.store.remove(record.name)
    logger.info(f"Removed machine '{args.name}'.")


# ── Inspection ─────────────────────────────────────────────────────


def handle_status(args):
    """CLI handler for 'status'. Prints None and exits 1 if the state cannot be read."""
    run_handler(_handle_status(args))


async def _handle_status(args):
    async with open_driver(args) as driver:
        try:
            state = await driver.get_state()
        except MachineError:
            logger.info(str(MachineState.NONE))
            raise
    logger.info(str(state))


async def _stored_address(args):
    _, record = load_record(args)
    if not record.ip_address:
        raise MachineError(f"Machine '{record.name}' has no IP address")
    return record.ip_address


async def _handle_ip(args):
    logger.info(await _stored_address(args))


async def _handle_url(args):
    logger.info(f"tcp://{await _stored_address(args)}:{DOCKER_PORT}")


def handle_ip(args):
    run_handler(_handle_ip(args))


def handle_url(args):
    run_handler(_handle_url(args))


def handle_ls(args):
    """CLI handler for 'ls'."""
    store = MachineStore(args.storage_path)
    names = store.list()
    if not names:
        logger.info("No machines.")
        return
    logger.info(f"{'NAME':<24} {'IP':<16} SERVER ID")
    for name in names:
        record = store.load(name)
        logger.info(f"{record.name:<24} {record.ip_address or '-':<16} {record.vm_id or '-'}")


# ── Registration ───────────────────────────────────────────────────


def register_lifecycle_commands(subparsers):
    """Register power, removal and inspection subcommands."""
    for name, help_text, func in (
        ("start", "Power on a machine", handle_start),
        ("stop", "Gracefully shut down a machine", handle_stop),
        ("restart", "Gracefully reboot a machine", handle_restart),
        ("kill", "Force a machine off", handle_kill),
        ("status", "Show the state of a machine", handle_status),
        ("ip", "Print the IP address of a machine", handle_ip),
        ("url", "Print the Docker URL of a machine", handle_url),
    ):
        parser = subparsers.add_parser(name, help=help_text)
        add_name_argument(parser)
        parser.set_defaults(func=func)

    rm_parser = subparsers.add_parser("rm", help="Delete a machine's server and firewall policy")
    add_name_argument(rm_parser)
    add_timeout_argument(rm_parser)
    rm_parser.set_defaults(func=handle_rm)

    ls_parser = subparsers.add_parser("ls", help="List machines")
    ls_parser.set_defaults(func=handle_ls)
