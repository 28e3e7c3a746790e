"""SSH transport: paramiko sessions for bootstrap, ssh(1) arguments for users."""

import asyncio
import logging
import os

import paramiko

from oneandone_machine.errors import SSHCommandError

logger = logging.getLogger(__name__)

DEFAULT_SSH_PORT = 22
DEFAULT_COMMAND_TIMEOUT = 600


def ssh_base_args(server, ssh_key, ssh_port):
    """Build base SSH arguments."""
    args = [
        "ssh",
        "-o", "StrictHostKeyChecking=no",
        "-o", "UserKnownHostsFile=/dev/null",
        "-o", "BatchMode=yes",
        "-o", "LogLevel=quiet",
        "-o", "ServerAliveInterval=60",
        "-o", "ServerAliveCountMax=5",
    ]
    if ssh_key:
        args += ["-i", os.path.expanduser(ssh_key)]
    if ssh_port and ssh_port != DEFAULT_SSH_PORT:
        args += ["-p", str(ssh_port)]
    args.append(server)
    return args


class SSHSession:
    """One SSH connection to a host, authenticated by password or key file.

    paramiko is blocking, so every call runs in a worker thread::

        async with SSHSession(ip, "root", password=pw) as session:
            out = await session.run("uname -a")
    """

    def __init__(self, host, username, password=None, key_path=None, port=DEFAULT_SSH_PORT, connect_timeout=10):
        self.host = host
        self.username = username
        self.password = password
        self.key_path = key_path
        self.port = port
        self.connect_timeout = connect_timeout
        self._client = None

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    def _connect(self):
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        client.connect(
            hostname=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            key_filename=os.path.expanduser(self.key_path) if self.key_path else None,
            look_for_keys=False,
            allow_agent=False,
            timeout=self.connect_timeout,
        )
        return client

    async def open(self):
        logger.debug(f"Opening SSH session to {self.username}@{self.host}:{self.port}")
        self._client = await asyncio.to_thread(self._connect)

    async def close(self):
        if self._client is not None:
            await asyncio.to_thread(self._client.close)
            self._client = None

    def _exec(self, command, timeout):
        _, stdout, stderr = self._client.exec_command(command, timeout=timeout)
        exit_status = stdout.channel.recv_exit_status()
        out = stdout.read().decode(errors="replace")
        err = stderr.read().decode(errors="replace")
        if exit_status != 0:
            raise SSHCommandError(command, exit_status, err)
        return out

    async def run(self, command, timeout=DEFAULT_COMMAND_TIMEOUT):
        """Run *command* and return its stdout.

        Raises:
            SSHCommandError: the command exited non-zero.
            paramiko.SSHException, OSError: the connection failed.
        """
        if self._client is None:
            raise RuntimeError("SSH session is not open")
        logger.debug(f"ssh {self.host}: {command}")
        return await asyncio.to_thread(self._exec, command, timeout)
