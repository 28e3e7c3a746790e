"""Create command: provision a new machine."""

import logging

from oneandone_machine.commands import add_name_argument, add_timeout_argument, make_policy, run_handler
from oneandone_machine.config import (
    MAX_CORES,
    MAX_RAM,
    MAX_SSD,
    MIN_CORES,
    MIN_RAM,
    MIN_SSD,
    STEP_SSD,
    build_record,
)
from oneandone_machine.errors import MachineError
from oneandone_machine.provisioning.api import CloudServerAPI
from oneandone_machine.provisioning.driver import Driver
from oneandone_machine.provisioning.probes import IDLE_PROBES, make_idle_probe
from oneandone_machine.redact import register_secret
from oneandone_machine.store import MachineStore

logger = logging.getLogger(__name__)


def handle_create(args):
    """CLI handler for 'create'."""
    run_handler(_handle_create(args))


async def _handle_create(args):
    store = MachineStore(args.storage_path)
    if store.exists(args.name):
        raise MachineError(f"Machine '{args.name}' already exists")

    flags = {
        "access_token": args.access_token,
        "endpoint": args.endpoint,
        "cores": args.cores,
        "ram": args.ram,
        "ssd": args.ssd,
    }
    record = store.new_record(build_record(args.name, flags, config_path=args.config))
    register_secret(record.access_token)
    idle_probe = make_idle_probe(args.package_manager_probe)

    async with CloudServerAPI(record.access_token, record.endpoint) as api:
        driver = Driver(record, api, store=store, policy=make_policy(args), idle_probe=idle_probe)
        await driver.pre_create_check()
        store.save(record)
        try:
            await driver.create()
        except MachineError:
            if not record.vm_id and not record.firewall_id:
                store.remove(record.name)
            else:
                logger.warning(f"Some resources could not be removed; run 'rm {record.name}' to retry.")
            raise

    logger.info(f"Machine '{record.name}' is ready: {driver.get_url()}")


def register_create_command(subparsers):
    """Register the 'create' subcommand."""
    parser = subparsers.add_parser("create", help="Create a 1&1 CloudServer machine")
    add_name_argument(parser)
    parser.add_argument(
        "--oneandone-access-token",
        dest="access_token",
        default=None,
        help="1&1 access token (fallback: ONEANDONE_ACCESS_TOKEN env var)",
    )
    parser.add_argument(
        "--oneandone-endpoint",
        dest="endpoint",
        default=None,
        help="1&1 Cloud Server REST API endpoint (fallback: ONEANDONE_ENDPOINT env var)",
    )
    parser.add_argument(
        "--oneandone-cores",
        dest="cores",
        default=None,
        help=f"Number of cores ({MIN_CORES}-{MAX_CORES}, fallback: ONEANDONE_CORES env var)",
    )
    parser.add_argument(
        "--oneandone-ram",
        dest="ram",
        default=None,
        help=f"RAM in GB ({MIN_RAM}-{MAX_RAM}, fallback: ONEANDONE_RAM env var)",
    )
    parser.add_argument(
        "--oneandone-ssd",
        dest="ssd",
        default=None,
        help=f"SSD size in GB ({MIN_SSD}-{MAX_SSD}, steps of {STEP_SSD}, fallback: ONEANDONE_SSD env var)",
    )
    parser.add_argument("--config", default=None, help="YAML file with default option values")
    parser.add_argument(
        "--package-manager-probe",
        choices=sorted(IDLE_PROBES),
        default="cache-age",
        help="How to detect that first-boot package installs are done (default: cache-age)",
    )
    add_timeout_argument(parser)
    parser.set_defaults(func=handle_create)
