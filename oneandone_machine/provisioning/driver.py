"""Machine driver: provision, operate and remove one 1&1 Cloud Server.

``Driver.create`` runs the whole provisioning sequence:

1. resolve the newest Ubuntu base appliance
2. create a permissive firewall policy (id recorded immediately)
3. create and power on the server (id recorded immediately)
4. wait for the firewall to be ACTIVE and the server POWERED_ON
5. read the server's first IP address
6. install a fresh SSH key using the initial root password

Any failure after step 2, task cancellation included, deletes whatever was
created before the original error is re-raised. Deletion waits use their own
RetryPolicy so an exhausted or cancelled create policy cannot stop cleanup.
A KeyboardInterrupt outside the event loop skips cleanup; the stored ids let
a later `rm` finish the job.
"""

import asyncio
import logging

from oneandone_machine.config import validate_record
from oneandone_machine.errors import (
    MachineError,
    NameConflictError,
    NoAddressAssignedError,
    ResourceNotFoundError,
    ValidationError,
)
from oneandone_machine.provisioning.bootstrap import install_public_key
from oneandone_machine.provisioning.probes import RetryPolicy
from oneandone_machine.provisioning.ssh import DEFAULT_SSH_PORT, SSHSession
from oneandone_machine.provisioning.state import reconcile
from oneandone_machine.redact import register_secret

logger = logging.getLogger(__name__)

# os family, os, image type, architecture
BASE_IMAGE = ("Linux", "Ubuntu", "Minimal", 64)
FIREWALL_RULES = [
    {"protocol": "TCP", "port_from": 1, "port_to": 65535, "source": "0.0.0.0"},
]
FIREWALL_ACTIVE = "ACTIVE"
SERVER_POWERED_ON = "POWERED_ON"
SSH_USERNAME = "root"
DOCKER_PORT = 2376


class Driver:
    """Operations on one machine.

    Args:
        record: the MachineRecord, mutated in place as resources are created.
        api: a CloudServerAPI (or compatible) instance shared by all calls.
        store: optional MachineStore; the record is saved after every change.
        policy: RetryPolicy for all polling (default: every 5s, forever).
        idle_probe: IdleProbe used before installing the SSH key.
        session_factory: builds SSH sessions for bootstrap.
    """

    def __init__(self, record, api, store=None, policy=None, idle_probe=None, session_factory=SSHSession):
        self.record = record
        self.api = api
        self.store = store
        self.policy = policy or RetryPolicy()
        self.idle_probe = idle_probe
        self.session_factory = session_factory

    @property
    def name(self):
        return self.record.name

    @property
    def ssh_username(self):
        return SSH_USERNAME

    @property
    def ssh_port(self):
        return DEFAULT_SSH_PORT

    @property
    def ssh_key_path(self):
        return self.record.ssh_key_path

    def get_ip(self):
        return self.record.ip_address

    def get_url(self):
        return f"tcp://{self.record.ip_address}:{DOCKER_PORT}"

    def _save(self):
        if self.store is not None:
            self.store.save(self.record)

    # ── Create ────────────────────────────────────────────────────

    async def pre_create_check(self):
        """Fail if a server or firewall policy already uses this machine's name."""
        remote_name = self.record.remote_name
        for server in await self.api.list_servers():
            if server.name == remote_name:
                raise NameConflictError(f"A server named '{remote_name}' already exists")
        for firewall in await self.api.list_firewall_policies():
            if firewall.name == remote_name:
                raise NameConflictError(f"A firewall policy named '{remote_name}' already exists")

    async def create(self):
        """Provision the server and install the SSH key.

        Raises:
            ValidationError: bad configuration (nothing was created).
            MachineError: any later failure, after cleanup ran.
        """
        record = self.record
        validate_record(record)
        if not record.ssh_key_path:
            raise ValidationError(f"Machine '{record.name}' has no SSH key path")

        logger.info(f"Creating a new 1&1 CloudServer '{record.name}' ...")
        appliance = await self.api.find_newest_appliance(*BASE_IMAGE)
        logger.debug(f"Auto-selected appliance '{appliance.name}' as base image")

        firewall = await self.api.create_firewall_policy(
            name=record.remote_name,
            description=f"Firewall policy for docker machine {record.name}",
            rules=FIREWALL_RULES,
        )
        logger.debug(f"Created firewall policy with id '{firewall.id}'")
        record.firewall_id = firewall.id
        self._save()

        try:
            server = await self.api.create_server(
                name=record.remote_name,
                description=f"{record.name} created by docker machine",
                appliance_id=appliance.id,
                firewall_policy_id=firewall.id,
                cores=record.cores,
                ram=record.ram,
                ssd=record.ssd,
                power_on=True,
            )
            logger.debug(f"Created server with id '{server.id}'")
            register_secret(server.password)
            record.vm_id = server.id
            self._save()

            await firewall.wait_for_state(FIREWALL_ACTIVE, self.policy)
            await server.wait_for_state(SERVER_POWERED_ON, self.policy)

            current = await self.api.get_server(server.id)
            if not current.ips:
                raise NoAddressAssignedError(f"Server '{server.id}' has no IP address")
            record.ip_address = current.ips[0]
            self._save()

            await install_public_key(
                record.ip_address,
                server.password,
                record.ssh_key_path,
                username=self.ssh_username,
                port=self.ssh_port,
                policy=self.policy,
                idle_probe=self.idle_probe,
                session_factory=self.session_factory,
            )
        except (Exception, asyncio.CancelledError) as e:
            logger.error(f"Creating '{record.name}' failed: {e or type(e).__name__}")
            logger.info("Cleaning up ...")
            await self._delete_resources()
            raise

        logger.info(f"Successfully created a new 1&1 CloudServer with IP '{record.ip_address}'")
        return record

    # ── Deletion ──────────────────────────────────────────────────

    def _cleanup_policy(self):
        """Policy for deletion waits: same pacing and deadline, but never cancelled or capped by attempts."""
        return RetryPolicy(interval=self.policy.interval, timeout=self.policy.timeout)

    async def _delete_resource(self, resource_id, fetch):
        """Delete one resource and wait until it is gone.

        Returns:
            True if the resource is confirmed gone, False if deletion failed.
        """
        try:
            handle = await fetch(resource_id)
        except ResourceNotFoundError:
            logger.debug(f"Resource '{resource_id}' is already gone")
            return True
        except MachineError as e:
            logger.warning(f"Finding resource '{resource_id}' failed: {e}")
            return False

        try:
            await handle.delete()
            logger.debug(f"Waiting for {handle.kind} '{resource_id}' to be deleted ...")
            await handle.wait_until_deleted(self._cleanup_policy())
        except MachineError as e:
            logger.warning(f"Deleting {handle.kind} '{resource_id}' failed: {e}")
            return False
        return True

    async def _delete_resources(self):
        """Best-effort delete of the server, then its firewall policy.

        The server goes first because the policy cannot be removed while a
        server still uses it. Failures are logged; identifiers are cleared
        only for resources confirmed gone.
        """
        record = self.record
        if record.vm_id and await self._delete_resource(record.vm_id, self.api.get_server):
            record.vm_id = ""
            record.ip_address = ""
        if record.firewall_id and await self._delete_resource(record.firewall_id, self.api.get_firewall_policy):
            record.firewall_id = ""
        self._save()

    async def remove(self):
        """Delete the server and firewall policy; a no-op if neither exists."""
        logger.info(f"Removing the 1&1 CloudServer named '{self.name}' ...")
        await self._delete_resources()

    # ── Lifecycle ─────────────────────────────────────────────────

    async def _get_server(self):
        if not self.record.vm_id:
            raise ResourceNotFoundError(f"Machine '{self.name}' has no server")
        return await self.api.get_server(self.record.vm_id)

    async def start(self):
        logger.info(f"Starting the 1&1 CloudServer named '{self.name}' ...")
        server = await self._get_server()
        await server.start()

    async def stop(self):
        logger.info(f"Stopping the 1&1 CloudServer named '{self.name}' ...")
        server = await self._get_server()
        await server.shutdown(force=False)

    async def restart(self):
        logger.info(f"Restarting the 1&1 CloudServer named '{self.name}' ...")
        server = await self._get_server()
        await server.reboot(force=False)

    async def kill(self):
        logger.info(f"Killing the 1&1 CloudServer named '{self.name}' ...")
        server = await self._get_server()
        await server.shutdown(force=True)

    async def get_state(self):
        """Return the MachineState of the server; fetch errors propagate."""
        server = await self._get_server()
        return reconcile(server.state)
