"""Tests for the SSH layer: paramiko sessions and ssh(1) arguments."""

from unittest.mock import MagicMock, patch

import pytest

from oneandone_machine.commands.ssh import ssh_command
from oneandone_machine.errors import MachineError, SSHCommandError
from oneandone_machine.provisioning.ssh import SSHSession, ssh_base_args
from oneandone_machine.provisioning.types import MachineRecord


def _fake_client(exit_status=0, stdout=b"", stderr=b""):
    client = MagicMock()
    out, err = MagicMock(), MagicMock()
    out.channel.recv_exit_status.return_value = exit_status
    out.read.return_value = stdout
    err.read.return_value = stderr
    client.exec_command.return_value = (MagicMock(), out, err)
    return client


# ── SSHSession ─────────────────────────────────────────────────────


async def test_session_connects_with_password_only():
    client = _fake_client(stdout=b"Linux\n")
    with patch("paramiko.SSHClient", return_value=client):
        async with SSHSession("10.0.0.5", "root", password="pw") as session:
            assert await session.run("uname") == "Linux\n"

    kwargs = client.connect.call_args.kwargs
    assert kwargs["hostname"] == "10.0.0.5"
    assert kwargs["username"] == "root"
    assert kwargs["password"] == "pw"
    assert kwargs["key_filename"] is None
    assert kwargs["look_for_keys"] is False
    assert kwargs["allow_agent"] is False
    client.close.assert_called_once()


async def test_session_run_nonzero_exit():
    client = _fake_client(exit_status=2, stderr=b"boom\n")
    with patch("paramiko.SSHClient", return_value=client):
        async with SSHSession("10.0.0.5", "root", password="pw") as session:
            with pytest.raises(SSHCommandError) as exc_info:
                await session.run("false")

    assert exc_info.value.exit_status == 2
    assert exc_info.value.stderr == "boom\n"
    assert "exited with status 2: boom" in str(exc_info.value)


async def test_session_run_requires_open():
    with pytest.raises(RuntimeError):
        await SSHSession("10.0.0.5", "root").run("true")


# ── ssh(1) arguments ───────────────────────────────────────────────


def test_ssh_base_args():
    args = ssh_base_args("root@10.0.0.5", "/keys/id_rsa", 22)
    assert args[0] == "ssh"
    assert "StrictHostKeyChecking=no" in args
    assert args[args.index("-i") + 1] == "/keys/id_rsa"
    assert "-p" not in args
    assert args[-1] == "root@10.0.0.5"


def test_ssh_base_args_custom_port():
    args = ssh_base_args("root@10.0.0.5", None, 2222)
    assert "-i" not in args
    assert args[args.index("-p") + 1] == "2222"


def test_ssh_command_appends_remote_command():
    record = MachineRecord(name="web", ip_address="10.0.0.5", ssh_key_path="/store/web/id_rsa")
    args = ssh_command(record, ["docker", "ps"])
    assert args[-3:] == ["root@10.0.0.5", "docker", "ps"]


def test_ssh_command_without_address():
    with pytest.raises(MachineError, match="no IP address"):
        ssh_command(MachineRecord(name="web"))
