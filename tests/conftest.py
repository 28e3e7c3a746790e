"""Shared pytest fixtures: in-memory provider, fake SSH sessions, CLI runner."""

import os
import subprocess
import sys

import pytest

from oneandone_machine.errors import ResourceNotFoundError
from oneandone_machine.provisioning.api import Appliance, FirewallPolicy, Server
from oneandone_machine.provisioning.probes import RetryPolicy
from oneandone_machine.provisioning.types import MachineRecord

PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))


@pytest.fixture(scope="session")
def project_root():
    """Absolute path to the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def run_cli(project_root):
    """Return a callable that invokes the CLI as a subprocess with a clean environment."""

    def _run(*args):
        env = {k: v for k, v in os.environ.items() if not k.startswith("ONEANDONE_")}
        result = subprocess.run(
            [sys.executable, "-m", "oneandone_machine.machine", *args],
            capture_output=True,
            text=True,
            cwd=project_root,
            env=env,
        )
        return result.returncode, result.stdout, result.stderr

    return _run


# ── Fake provider ───────────────────────────────────────────────────


class FakeAPI:
    """In-memory stand-in for CloudServerAPI.

    ``server_states`` / ``firewall_states`` are consumed one per GET; the
    last entry repeats. ``fail_on`` maps a method name to the exception it
    raises. Every call is appended to ``calls`` as ``(method, *args)``.
    """

    def __init__(self, server_states=("POWERED_ON",), firewall_states=("ACTIVE",), ips=("10.0.0.5",), fail_on=None):
        self.server_states = list(server_states)
        self.firewall_states = list(firewall_states)
        self.ips = list(ips)
        self.fail_on = dict(fail_on or {})
        self.calls = []
        self.deleted = set()
        self.existing_servers = []
        self.existing_firewalls = []

    def _record(self, method, *args):
        self.calls.append((method, *args))
        exc = self.fail_on.get(method)
        if exc is not None:
            raise exc

    def count(self, method):
        return sum(1 for call in self.calls if call[0] == method)

    def methods(self):
        return [call[0] for call in self.calls]

    @staticmethod
    def _next(states):
        return states.pop(0) if len(states) > 1 else states[0]

    async def find_newest_appliance(self, *image_filter):
        self._record("find_newest_appliance", *image_filter)
        return Appliance(id="appliance-1", name="ubuntu1604-64min", os_version="Ubuntu16.04")

    async def list_servers(self):
        self._record("list_servers")
        return list(self.existing_servers)

    async def list_firewall_policies(self):
        self._record("list_firewall_policies")
        return list(self.existing_firewalls)

    async def create_firewall_policy(self, name, description, rules):
        self._record("create_firewall_policy", name, description, rules)
        return FirewallPolicy(id="fw-1", name=name, state="CONFIGURING", api=self)

    async def get_firewall_policy(self, policy_id):
        self._record("get_firewall_policy", policy_id)
        if policy_id in self.deleted:
            raise ResourceNotFoundError(f"firewall policy {policy_id} not found")
        return FirewallPolicy(id=policy_id, state=self._next(self.firewall_states), api=self)

    async def delete_firewall_policy(self, policy_id):
        self._record("delete_firewall_policy", policy_id)
        self.deleted.add(policy_id)
        return FirewallPolicy(id=policy_id, state="REMOVING", api=self)

    async def create_server(self, **kwargs):
        self._record("create_server", kwargs)
        return Server(id="vm-1", name=kwargs["name"], state="DEPLOYING", password="initial-root-pw", api=self)

    async def get_server(self, server_id):
        self._record("get_server", server_id)
        if server_id in self.deleted:
            raise ResourceNotFoundError(f"server {server_id} not found")
        return Server(id=server_id, state=self._next(self.server_states), ips=list(self.ips), api=self)

    async def delete_server(self, server_id):
        self._record("delete_server", server_id)
        self.deleted.add(server_id)
        return Server(id=server_id, state="REMOVING", api=self)

    async def server_action(self, server_id, action, method="SOFTWARE"):
        self._record("server_action", server_id, action, method)
        return Server(id=server_id, api=self)


class FakeSession:
    """SSH session double answering the commands bootstrap runs.

    ``outputs`` maps a command prefix to its stdout; ``fail_on`` maps a
    command prefix to the exception ``run`` raises.
    """

    def __init__(self, host, username, password=None, key_path=None, port=22, outputs=None, fail_on=None):
        self.host = host
        self.username = username
        self.password = password
        self.port = port
        self.outputs = outputs or {"stat -c %Y": "1000\n", "date +%s": "2000\n", "ps -C": "0\n"}
        self.fail_on = fail_on or {}
        self.commands = []
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True

    async def run(self, command):
        self.commands.append(command)
        for prefix, exc in self.fail_on.items():
            if command.startswith(prefix):
                raise exc
        for prefix, output in self.outputs.items():
            if command.startswith(prefix):
                return output
        return ""


@pytest.fixture
def fake_api():
    return FakeAPI()


@pytest.fixture
def sessions():
    """List that collects every FakeSession the session factory builds."""
    return []


@pytest.fixture
def session_factory(sessions):
    """Factory building FakeSessions; pass ``fail_on``/``outputs`` via attributes."""

    def _factory(host, username, password=None, key_path=None, port=22):
        session = FakeSession(
            host,
            username,
            password=password,
            port=port,
            outputs=_factory.outputs,
            fail_on=_factory.fail_on,
        )
        sessions.append(session)
        return session

    _factory.outputs = None
    _factory.fail_on = None
    return _factory


@pytest.fixture
def fast_policy():
    """RetryPolicy that never sleeps."""
    return RetryPolicy(interval=0)


@pytest.fixture
def no_port_wait(monkeypatch):
    """Skip the TCP port probe in bootstrap."""
    waited = []

    async def _wait(ip, port, policy=None):
        waited.append((ip, port))

    monkeypatch.setattr("oneandone_machine.provisioning.bootstrap.wait_for_tcp_port", _wait)
    return waited


@pytest.fixture
def record(tmp_path):
    return MachineRecord(
        name="test",
        endpoint="https://api.test/v1",
        access_token="test-token-123456",
        cores=2,
        ram=4,
        ssd=40,
        store_path=str(tmp_path),
        ssh_key_path=str(tmp_path / "id_rsa"),
    )


@pytest.fixture
def make_api():
    """Return the FakeAPI class for tests that need a scripted provider."""
    return FakeAPI
