"""SSH command: log into a machine with its generated key."""

import logging
import shlex
import subprocess
import sys

from oneandone_machine.commands import add_name_argument, load_record, run_handler
from oneandone_machine.errors import MachineError
from oneandone_machine.provisioning.driver import SSH_USERNAME
from oneandone_machine.provisioning.ssh import DEFAULT_SSH_PORT, ssh_base_args

logger = logging.getLogger(__name__)


def ssh_command(record, command=None):
    """Build the ssh(1) argument list for a stored machine."""
    if not record.ip_address:
        raise MachineError(f"Machine '{record.name}' has no IP address")
    args = ssh_base_args(f"{SSH_USERNAME}@{record.ip_address}", record.ssh_key_path, DEFAULT_SSH_PORT)
    if command:
        args += command
    return args


def handle_ssh(args):
    """CLI handler for 'ssh'."""
    run_handler(_handle_ssh(args))


async def _handle_ssh(args):
    _, record = load_record(args)
    cmd = ssh_command(record, args.command)
    if args.dry_run:
        logger.info(f"[dry-run] {shlex.join(cmd)}")
        return
    try:
        rc = subprocess.run(cmd).returncode
    except FileNotFoundError:
        raise MachineError("'ssh' not found. Is it installed and on PATH?") from None
    sys.exit(rc)


def register_ssh_command(subparsers):
    """Register the 'ssh' subcommand."""
    parser = subparsers.add_parser("ssh", help="Log into or run a command on a machine with SSH")
    add_name_argument(parser)
    parser.add_argument("command", nargs="*", help="Command to run instead of an interactive shell")
    parser.add_argument("--dry-run", action="store_true", help="Print the ssh command without executing")
    parser.set_defaults(func=handle_ssh)
