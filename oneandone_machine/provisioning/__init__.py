"""1&1 Cloud Server provisioning: API client, readiness probes, SSH bootstrap.

The Driver lives in ``oneandone_machine.provisioning.driver``.
"""

from oneandone_machine.provisioning.api import (
    DEFAULT_ENDPOINT,
    CloudServerAPI,
    FirewallPolicy,
    Server,
)
from oneandone_machine.provisioning.bootstrap import install_public_key
from oneandone_machine.provisioning.keys import ensure_key_pair
from oneandone_machine.provisioning.probes import (
    AptCacheAgeProbe,
    PackageProcessProbe,
    RetryPolicy,
    wait_for_package_manager_idle,
    wait_for_state,
    wait_for_tcp_port,
)
from oneandone_machine.provisioning.ssh import SSHSession, ssh_base_args
from oneandone_machine.provisioning.state import reconcile
from oneandone_machine.provisioning.types import MachineRecord, MachineState

__all__ = [
    "DEFAULT_ENDPOINT",
    "CloudServerAPI",
    "FirewallPolicy",
    "Server",
    "MachineRecord",
    "MachineState",
    "RetryPolicy",
    "AptCacheAgeProbe",
    "PackageProcessProbe",
    "wait_for_state",
    "wait_for_tcp_port",
    "wait_for_package_manager_idle",
    "SSHSession",
    "ssh_base_args",
    "ensure_key_pair",
    "install_public_key",
    "reconcile",
]
