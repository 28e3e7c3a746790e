"""1&1 Cloud Server REST API client: servers, firewall policies, appliances."""

import logging
import re
from dataclasses import dataclass, field

import httpx

from oneandone_machine.errors import ImageResolutionError, RemoteAPIError, ResourceNotFoundError
from oneandone_machine.provisioning import probes

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://cloudpanel-api.1and1.com/v1"
DEFAULT_TIMEOUT = 60


# ── Resource handles ──────────────────────────────────────────────


@dataclass
class Resource:
    """Handle to a remote resource returned by a create/get call."""

    kind = "resource"

    id: str
    name: str = ""
    state: str = ""
    api: "CloudServerAPI" = field(default=None, repr=False, compare=False)

    async def refresh(self):
        """Fetch a fresh copy of this resource."""
        raise NotImplementedError

    async def delete(self):
        """Request deletion; returns the handle reported by the provider."""
        raise NotImplementedError

    async def wait_for_state(self, target_status, policy=None):
        return await probes.wait_for_state(self, target_status, policy)

    async def wait_until_deleted(self, policy=None):
        """Poll until fetching this resource reports it as not found."""

        async def _gone():
            try:
                await self.refresh()
            except ResourceNotFoundError:
                return True
            return False

        await probes.poll(_gone, f"{self.kind} '{self.id}' to be deleted", policy)


@dataclass
class FirewallPolicy(Resource):
    kind = "firewall policy"

    async def refresh(self):
        return await self.api.get_firewall_policy(self.id)

    async def delete(self):
        return await self.api.delete_firewall_policy(self.id)

    @classmethod
    def from_json(cls, data, api=None):
        return cls(id=data.get("id", ""), name=data.get("name", ""), state=data.get("state", ""), api=api)


@dataclass
class Server(Resource):
    kind = "server"

    ips: list[str] = field(default_factory=list)
    password: str = ""

    async def refresh(self):
        return await self.api.get_server(self.id)

    async def delete(self):
        return await self.api.delete_server(self.id)

    async def start(self):
        return await self.api.server_action(self.id, "POWER_ON")

    async def shutdown(self, force=False):
        return await self.api.server_action(self.id, "POWER_OFF", "HARDWARE" if force else "SOFTWARE")

    async def reboot(self, force=False):
        return await self.api.server_action(self.id, "REBOOT", "HARDWARE" if force else "SOFTWARE")

    @classmethod
    def from_json(cls, data, api=None):
        status = data.get("status") or {}
        ips = [entry["ip"] for entry in data.get("ips") or [] if entry.get("ip")]
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            state=status.get("state", ""),
            ips=ips,
            password=data.get("first_password") or "",
            api=api,
        )


@dataclass
class Appliance:
    """A server appliance (base system image)."""

    id: str
    name: str
    os_version: str = ""

    @classmethod
    def from_json(cls, data):
        return cls(id=data.get("id", ""), name=data.get("name", ""), os_version=data.get("os_version") or "")


def _version_key(appliance):
    """Sort key: numeric parts of the OS version, then the name."""
    return [int(n) for n in re.findall(r"\d+", appliance.os_version)], appliance.name


def _error_message(resp):
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:300]
    if isinstance(body, dict):
        return body.get("message") or str(body)[:300]
    return str(body)[:300]


# ── Client ────────────────────────────────────────────────────────


class CloudServerAPI:
    """Authenticated client for one 1&1 account.

    Create it once and pass it to everything that talks to the provider.
    Use as an async context manager (or call :meth:`aclose`) to release the
    underlying connection pool.
    """

    def __init__(self, access_token, endpoint=DEFAULT_ENDPOINT, timeout=DEFAULT_TIMEOUT, transport=None):
        self.endpoint = endpoint.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.endpoint,
            headers={"X-TOKEN": access_token, "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def _request(self, method, path, data=None):
        """Make an API request and return the decoded JSON body.

        Raises:
            ResourceNotFoundError: the provider answered 404.
            RemoteAPIError: any other transport or HTTP failure.
        """
        logger.debug(f"{method} {self.endpoint}{path}")
        try:
            resp = await self._client.request(method, path, json=data)
        except httpx.HTTPError as e:
            raise RemoteAPIError(f"{method} {path} failed: {e}") from e

        if resp.status_code == 404:
            raise ResourceNotFoundError(f"{method} {path}: not found")
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RemoteAPIError(
                f"{method} {path} returned {resp.status_code}: {_error_message(resp)}",
                status_code=resp.status_code,
            ) from e

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteAPIError(f"{method} {path} returned invalid JSON") from e

    # ── Appliances ────────────────────────────────────────────────

    async def list_server_appliances(self):
        return await self._request("GET", "/server_appliances")

    async def find_newest_appliance(self, os_family, os, os_image_type, architecture, automatic_installation=True):
        """Return the newest appliance matching the given OS filter.

        Raises:
            ImageResolutionError: nothing matches.
        """
        matches = [
            Appliance.from_json(a)
            for a in await self.list_server_appliances()
            if a.get("os_family") == os_family
            and a.get("os") == os
            and a.get("os_image_type") == os_image_type
            and a.get("os_architecture") == architecture
            and bool(a.get("automatic_installation", True)) == automatic_installation
        ]
        if not matches:
            raise ImageResolutionError(f"No server appliance found for {os_family}/{os}/{os_image_type}/{architecture}-bit")
        return max(matches, key=_version_key)

    # ── Firewall policies ─────────────────────────────────────────

    async def list_firewall_policies(self):
        return [FirewallPolicy.from_json(p, self) for p in await self._request("GET", "/firewall_policies")]

    async def get_firewall_policy(self, policy_id):
        return FirewallPolicy.from_json(await self._request("GET", f"/firewall_policies/{policy_id}"), self)

    async def create_firewall_policy(self, name, description, rules):
        """Create a firewall policy.

        Args:
            rules: list of dicts with ``protocol``, ``port_from``, ``port_to``
                and ``source`` keys.
        """
        data = {"name": name, "description": description, "rules": rules}
        return FirewallPolicy.from_json(await self._request("POST", "/firewall_policies", data), self)

    async def delete_firewall_policy(self, policy_id):
        return FirewallPolicy.from_json(await self._request("DELETE", f"/firewall_policies/{policy_id}"), self)

    # ── Servers ───────────────────────────────────────────────────

    async def list_servers(self):
        return [Server.from_json(s, self) for s in await self._request("GET", "/servers")]

    async def get_server(self, server_id):
        return Server.from_json(await self._request("GET", f"/servers/{server_id}"), self)

    async def create_server(self, name, description, appliance_id, firewall_policy_id, cores, ram, ssd, power_on=True):
        """Create a server with a single main disk of *ssd* GB."""
        data = {
            "name": name,
            "description": description,
            "appliance_id": appliance_id,
            "firewall_policy_id": firewall_policy_id,
            "hardware": {
                "vcore": cores,
                "cores_per_processor": 1,
                "ram": ram,
                "hdds": [{"size": ssd, "is_main": True}],
            },
            "power_on": power_on,
        }
        return Server.from_json(await self._request("POST", "/servers", data), self)

    async def delete_server(self, server_id):
        return Server.from_json(await self._request("DELETE", f"/servers/{server_id}"), self)

    async def server_action(self, server_id, action, method="SOFTWARE"):
        """Request a power state change (POWER_ON, POWER_OFF or REBOOT)."""
        data = {"action": action, "method": method}
        return Server.from_json(await self._request("PUT", f"/servers/{server_id}/status/action", data), self)
