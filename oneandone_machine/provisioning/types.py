"""Shared data types for the 1&1 machine driver."""

import enum
from dataclasses import asdict, dataclass, fields

NAME_PREFIX = "[Docker Machine] "


class MachineState(enum.Enum):
    """Provider-independent machine state."""

    NONE = "None"
    STARTING = "Starting"
    RUNNING = "Running"
    STOPPED = "Stopped"
    STOPPING = "Stopping"
    ERROR = "Error"

    def __str__(self):
        return self.value


@dataclass
class MachineRecord:
    """Durable description of one managed server.

    ``vm_id`` and ``firewall_id`` are filled in as soon as the provider returns
    them so that cleanup can find partially created resources.
    """

    name: str
    endpoint: str = ""
    access_token: str = ""
    cores: int = 0
    ram: int = 0
    ssd: int = 0
    vm_id: str = ""
    firewall_id: str = ""
    ip_address: str = ""
    store_path: str = ""
    ssh_key_path: str = ""

    @property
    def remote_name(self) -> str:
        """Name used for the server and firewall policy on the provider side."""
        return f"{NAME_PREFIX}{self.name}"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "MachineRecord":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})
