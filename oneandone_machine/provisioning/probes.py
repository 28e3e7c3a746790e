"""Readiness probes: poll a remote condition until it holds.

Every probe re-checks its condition on a fixed interval. How long it keeps
trying is decided by the :class:`RetryPolicy` passed in; the default policy
polls every 5 seconds forever.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from oneandone_machine.errors import ProbeCancelledError, ReadinessTimeoutError, SSHCommandError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_CONNECT_TIMEOUT = 5.0


@dataclass
class RetryPolicy:
    """How a probe retries.

    Args:
        interval: seconds between attempts (no backoff).
        max_attempts: give up after this many checks (None = unbounded).
        timeout: give up after this many seconds (None = unbounded).
        cancel: event that aborts the poll as soon as it is set.
    """

    interval: float = DEFAULT_POLL_INTERVAL
    max_attempts: int | None = None
    timeout: float | None = None
    cancel: asyncio.Event | None = None

    def check_cancelled(self, description):
        if self.cancel is not None and self.cancel.is_set():
            raise ProbeCancelledError(f"Cancelled while waiting for {description}")

    async def sleep(self, description):
        """Sleep one interval, waking early if the cancel event is set."""
        if self.cancel is None:
            await asyncio.sleep(self.interval)
            return
        try:
            await asyncio.wait_for(self.cancel.wait(), timeout=self.interval)
        except TimeoutError:
            return
        raise ProbeCancelledError(f"Cancelled while waiting for {description}")


async def poll(check, description, policy=None):
    """Await ``check()`` until it returns a truthy value, then return that value.

    Raises:
        ReadinessTimeoutError: the policy's attempt or time budget ran out.
        ProbeCancelledError: the policy's cancel event was set.
    """
    policy = policy or RetryPolicy()
    loop = asyncio.get_running_loop()
    started = loop.time()
    attempt = 0
    while True:
        policy.check_cancelled(description)
        attempt += 1
        result = await check()
        if result:
            return result

        if policy.max_attempts is not None and attempt >= policy.max_attempts:
            raise ReadinessTimeoutError(f"Gave up waiting for {description} after {attempt} attempt(s)")
        elapsed = loop.time() - started
        if policy.timeout is not None and elapsed >= policy.timeout:
            raise ReadinessTimeoutError(f"Timeout after {elapsed:.0f}s waiting for {description}")

        logger.debug(f"Still waiting for {description}, retry in {policy.interval:g}s ...")
        await policy.sleep(description)


# ── Remote status ─────────────────────────────────────────────────


async def wait_for_state(handle, target_status, policy=None):
    """Re-fetch *handle* until its ``state`` equals *target_status*.

    The handle must provide an async ``refresh()`` returning a fresh copy.
    Error states are not treated specially; the poll simply continues.

    Returns:
        The refreshed handle that reported *target_status*.
    """
    description = f"{handle.kind} '{handle.id}' to reach {target_status}"

    async def _reached():
        current = await handle.refresh()
        logger.debug(f"{handle.kind} '{handle.id}' is {current.state}")
        return current if current.state == target_status else None

    return await poll(_reached, description, policy)


# ── TCP ───────────────────────────────────────────────────────────


async def wait_for_tcp_port(ip, port, policy=None, connect_timeout=DEFAULT_CONNECT_TIMEOUT):
    """Wait until a TCP connection to ``ip:port`` succeeds."""
    logger.debug(f"Waiting for port {port} to open on {ip}")

    async def _is_open():
        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(ip, port), timeout=connect_timeout)
        except (OSError, TimeoutError):
            logger.debug(f"Port {port} on {ip} still not open")
            return False
        writer.close()
        return True

    await poll(_is_open, f"port {port} on {ip}", policy)


# ── Package manager ───────────────────────────────────────────────


class IdleProbe(ABC):
    """Decides whether the remote package manager is done with first-boot work."""

    name = ""

    @abstractmethod
    async def is_idle(self, session):
        """Return True if the package manager on *session*'s host is idle."""


async def _read_int(session, command):
    output = await session.run(command)
    return int(output.strip())


class AptCacheAgeProbe(IdleProbe):
    """Idle once the apt cache directory has not changed for *threshold* seconds.

    Both timestamps are read from the remote clock.
    """

    name = "cache-age"

    def __init__(self, threshold=30, cache_dir="/var/cache/apt/"):
        self.threshold = threshold
        self.cache_dir = cache_dir

    async def is_idle(self, session):
        try:
            last_change = await _read_int(session, f"stat -c %Y {self.cache_dir}")
            now = await _read_int(session, "date +%s")
        except (SSHCommandError, ValueError) as e:
            logger.warning(f"Failed to read apt cache age: {e}")
            return False
        age = now - last_change
        logger.debug(f"apt cache last changed {age}s ago (threshold {self.threshold}s)")
        return age > self.threshold


class PackageProcessProbe(IdleProbe):
    """Idle once no process with the given name is running."""

    name = "process"

    def __init__(self, process="aptitude"):
        self.process = process

    async def is_idle(self, session):
        try:
            output = await session.run(f"ps -C {self.process} >/dev/null && echo 1 || echo 0")
        except SSHCommandError as e:
            logger.warning(f"Failed to check for {self.process} processes: {e}")
            return False
        return output.strip() == "0"


IDLE_PROBES = {
    AptCacheAgeProbe.name: AptCacheAgeProbe,
    PackageProcessProbe.name: PackageProcessProbe,
}


def make_idle_probe(name):
    """Build an idle probe by its CLI name."""
    try:
        return IDLE_PROBES[name]()
    except KeyError:
        raise ValueError(f"Unknown package manager probe '{name}' (choose from {', '.join(IDLE_PROBES)})") from None


async def wait_for_package_manager_idle(session, probe=None, policy=None):
    """Wait until *probe* reports the package manager on *session*'s host as idle."""
    probe = probe or AptCacheAgeProbe()

    async def _idle():
        return await probe.is_idle(session)

    await poll(_idle, f"package manager to become idle ({probe.name})", policy)
