"""Install a freshly generated SSH public key on a new server.

A new server only accepts the root password the provider hands out at
creation time. Bootstrap waits until sshd answers and first-boot package
installs are done, then appends our public key to root's authorized_keys so
everything after this point can log in with the key.
"""

import logging
import shlex

import paramiko

from oneandone_machine.errors import SSHBootstrapError, SSHCommandError
from oneandone_machine.provisioning.keys import ensure_key_pair
from oneandone_machine.provisioning.probes import wait_for_package_manager_idle, wait_for_tcp_port
from oneandone_machine.provisioning.ssh import DEFAULT_SSH_PORT, SSHSession

logger = logging.getLogger(__name__)


def authorized_keys_command(public_key):
    """Shell command that appends *public_key* to ~/.ssh/authorized_keys."""
    return (
        "mkdir -p ~/.ssh && chmod 700 ~/.ssh"
        f" && echo {shlex.quote(public_key)} >> ~/.ssh/authorized_keys"
        " && chmod 600 ~/.ssh/authorized_keys"
    )


async def install_public_key(
    ip,
    password,
    key_path,
    username="root",
    port=DEFAULT_SSH_PORT,
    policy=None,
    idle_probe=None,
    session_factory=SSHSession,
):
    """Generate a key pair at *key_path* (if needed) and authorize it on the server.

    Args:
        password: initial root password returned by the provider.
        policy: RetryPolicy for the port and package-manager probes.
        idle_probe: IdleProbe deciding when the package manager is idle.
        session_factory: callable building an SSH session; defaults to SSHSession.

    Raises:
        SSHBootstrapError: key generation, connection or the install command failed.
    """
    try:
        public_key = ensure_key_pair(key_path)
    except OSError as e:
        raise SSHBootstrapError(f"Cannot create SSH key pair at {key_path}: {e}") from e

    logger.info("Waiting for SSH to get ready ...")
    await wait_for_tcp_port(ip, port, policy)

    try:
        async with session_factory(ip, username, password=password, port=port) as session:
            logger.info("Waiting for package manager to get ready ...")
            await wait_for_package_manager_idle(session, idle_probe, policy)

            logger.info("Installing SSH key ...")
            await session.run(authorized_keys_command(public_key))
    except SSHCommandError as e:
        raise SSHBootstrapError(f"Cannot install SSH public key on {ip}: {e}") from e
    except (paramiko.SSHException, OSError) as e:
        raise SSHBootstrapError(f"Cannot open SSH session to {username}@{ip}:{port}: {e}") from e
