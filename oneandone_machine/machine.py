#!/usr/bin/env python3
"""1&1 CloudServer machine driver: CLI entrypoint."""

import argparse

from oneandone_machine.commands.create import register_create_command
from oneandone_machine.commands.lifecycle import register_lifecycle_commands
from oneandone_machine.commands.ssh import register_ssh_command
from oneandone_machine.logging_setup import setup_cli_logging
from oneandone_machine.store import default_store_path


def build_parser():
    parser = argparse.ArgumentParser(description="Provision 1&1 CloudServers as Docker hosts")
    parser.add_argument("-D", "--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "-s",
        "--storage-path",
        default=None,
        help=f"Directory for machine state (default: {default_store_path()}, env: ONEANDONE_MACHINE_STORAGE_PATH)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_create_command(subparsers)
    register_lifecycle_commands(subparsers)
    register_ssh_command(subparsers)
    return parser


def main():
    args = build_parser().parse_args()
    setup_cli_logging(debug=args.debug)
    args.func(args)


if __name__ == "__main__":
    main()
