"""On-disk machine store: one directory per machine with config.json and keys."""

import json
import logging
import os
import shutil
from pathlib import Path

from oneandone_machine.errors import MachineError
from oneandone_machine.provisioning.types import MachineRecord

logger = logging.getLogger(__name__)

DEFAULT_STORE_PATH = "~/.oneandone-machine"
STORE_PATH_ENV = "ONEANDONE_MACHINE_STORAGE_PATH"
KEY_FILE_NAME = "id_rsa"


def default_store_path():
    return os.path.expanduser(os.environ.get(STORE_PATH_ENV) or DEFAULT_STORE_PATH)


class MachineStore:
    """Persist MachineRecords under ``<root>/machines/<name>/``."""

    def __init__(self, root=None):
        self.root = Path(root or default_store_path()).expanduser()

    def machine_dir(self, name) -> Path:
        return self.root / "machines" / name

    def _config_path(self, name) -> Path:
        return self.machine_dir(name) / "config.json"

    def key_path(self, name) -> str:
        return str(self.machine_dir(name) / KEY_FILE_NAME)

    def exists(self, name) -> bool:
        return self._config_path(name).exists()

    def new_record(self, record):
        """Attach store paths to a freshly configured record."""
        record.store_path = str(self.machine_dir(record.name))
        record.ssh_key_path = self.key_path(record.name)
        return record

    def save(self, record):
        path = self._config_path(record.name)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(record.to_dict(), indent=2) + "\n")
        os.chmod(tmp_path, 0o600)
        tmp_path.replace(path)

    def load(self, name):
        path = self._config_path(name)
        if not path.exists():
            raise MachineError(f"Machine '{name}' does not exist in {self.root}")
        return MachineRecord.from_dict(json.loads(path.read_text()))

    def list(self):
        machines_dir = self.root / "machines"
        if not machines_dir.is_dir():
            return []
        return sorted(p.name for p in machines_dir.iterdir() if (p / "config.json").exists())

    def remove(self, name):
        machine_dir = self.machine_dir(name)
        if machine_dir.exists():
            shutil.rmtree(machine_dir)
            logger.debug(f"Removed {machine_dir}")
