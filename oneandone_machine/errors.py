"""Exception hierarchy for machine provisioning.

Every failure the driver surfaces inherits from :class:`MachineError` so the
CLI can turn it into a one-line message and a non-zero exit code.
"""


class MachineError(Exception):
    """Root exception for all machine errors."""


# ── Configuration ─────────────────────────────────────────────────


class ValidationError(MachineError):
    """Bad sizing or configuration, raised before any remote call."""


class NameConflictError(MachineError):
    """A server or firewall policy with the machine's name already exists."""


# ── Remote API ────────────────────────────────────────────────────


class RemoteAPIError(MachineError):
    """A call to the provider API failed."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class ResourceNotFoundError(MachineError):
    """The remote resource does not exist or the machine has no identifier for it."""


class ImageResolutionError(MachineError):
    """No server appliance matches the base image filter."""


class NoAddressAssignedError(MachineError):
    """The provider returned a server without any IP address."""


# ── SSH ───────────────────────────────────────────────────────────


class SSHCommandError(MachineError):
    """A remote command exited non-zero."""

    def __init__(self, command, exit_status, stderr=""):
        super().__init__(f"Command '{command}' exited with status {exit_status}: {stderr.strip()}")
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr


class SSHBootstrapError(MachineError):
    """Installing the public key on the new server failed."""


# ── Polling ───────────────────────────────────────────────────────


class ReadinessTimeoutError(MachineError):
    """A readiness probe ran out of attempts or time."""


class ProbeCancelledError(MachineError):
    """A readiness probe was cancelled through its retry policy."""
