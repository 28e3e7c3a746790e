"""Map 1&1 server states to provider-independent machine states."""

from oneandone_machine.provisioning.types import MachineState

# REBOOTING, REMOVING and CONFIGURING are known provider states with no
# mapping; like any unknown string they reconcile to NONE.
_STATE_MAP = {
    "POWERING_ON": MachineState.STARTING,
    "POWERED_ON": MachineState.RUNNING,
    "POWERED_OFF": MachineState.STOPPED,
    "POWERING_OFF": MachineState.STOPPING,
    "DEPLOYING": MachineState.ERROR,
}


def reconcile(remote_status):
    """Return the MachineState for a provider status string."""
    return _STATE_MAP.get(remote_status, MachineState.NONE)
