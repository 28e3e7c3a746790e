"""Machine configuration: bind flags, env vars and a YAML file, then validate.

Precedence for every option is CLI flag > environment variable > config
file > default. Sizing must fit the provider's limits; all checks run before
anything talks to the API.
"""

import os

import yaml

from oneandone_machine.errors import ValidationError
from oneandone_machine.provisioning.api import DEFAULT_ENDPOINT
from oneandone_machine.provisioning.types import MachineRecord

MIN_CORES = 1
MAX_CORES = 16
MIN_RAM = 1
MAX_RAM = 128
MIN_SSD = 20
MAX_SSD = 500
STEP_SSD = 20

# option -> environment variable
ENV_VARS = {
    "access_token": "ONEANDONE_ACCESS_TOKEN",
    "endpoint": "ONEANDONE_ENDPOINT",
    "cores": "ONEANDONE_CORES",
    "ram": "ONEANDONE_RAM",
    "ssd": "ONEANDONE_SSD",
}


def load_config_file(path):
    """Load option defaults from a YAML mapping."""
    try:
        with open(os.path.expanduser(path)) as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ValidationError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ValidationError(f"Invalid YAML in config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    unknown = set(data) - set(ENV_VARS)
    if unknown:
        raise ValidationError(f"Unknown option(s) in {path}: {', '.join(sorted(unknown))}")
    return data


def _to_int(option, value):
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"--oneandone-{option} must be an integer, got '{value}'") from None


def validate_sizing(cores, ram, ssd):
    """Apply minimum defaults to unset (0) values and check provider limits.

    Returns:
        (cores, ram, ssd) tuple with defaults applied.

    Raises:
        ValidationError: a value is outside its range or off the SSD step.
    """
    cores = cores or MIN_CORES
    ram = ram or MIN_RAM
    ssd = ssd or MIN_SSD

    if not MIN_CORES <= cores <= MAX_CORES:
        raise ValidationError(f"--oneandone-cores must be an integer ({MIN_CORES}-{MAX_CORES}), got {cores}")
    if not MIN_RAM <= ram <= MAX_RAM:
        raise ValidationError(f"--oneandone-ram must be an integer ({MIN_RAM}-{MAX_RAM}), got {ram}")
    if not MIN_SSD <= ssd <= MAX_SSD or ssd % STEP_SSD != 0:
        raise ValidationError(
            f"--oneandone-ssd must be an integer ({MIN_SSD}-{MAX_SSD}, steps of {STEP_SSD}), got {ssd}"
        )
    return cores, ram, ssd


def validate_record(record):
    """Validate a MachineRecord in place, filling in sizing defaults."""
    if not record.access_token:
        raise ValidationError("oneandone driver requires the --oneandone-access-token option")
    if not record.endpoint:
        raise ValidationError("oneandone driver requires the --oneandone-endpoint option")
    record.cores, record.ram, record.ssd = validate_sizing(record.cores, record.ram, record.ssd)
    return record


def resolve_options(flags, env=None, config_path=None):
    """Merge flag values with env vars and the optional config file.

    Args:
        flags: dict of option -> value from the CLI (None when not given).
        env: environment mapping (defaults to os.environ).
        config_path: optional YAML file with option defaults.
    """
    env = os.environ if env is None else env
    file_values = load_config_file(config_path) if config_path else {}

    resolved = {}
    for option, env_var in ENV_VARS.items():
        value = flags.get(option)
        if value is None or value == "":
            value = env.get(env_var)
        if value is None or value == "":
            value = file_values.get(option)
        resolved[option] = value
    return resolved


def build_record(name, flags, env=None, config_path=None):
    """Build and validate a MachineRecord for a machine that does not exist yet."""
    options = resolve_options(flags, env, config_path)
    record = MachineRecord(
        name=name,
        endpoint=options["endpoint"] or DEFAULT_ENDPOINT,
        access_token=options["access_token"] or "",
        cores=_to_int("cores", options["cores"]),
        ram=_to_int("ram", options["ram"]),
        ssd=_to_int("ssd", options["ssd"]),
    )
    return validate_record(record)
