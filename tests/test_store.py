"""Tests for the on-disk machine store."""

import json
import os
import stat

import pytest

from oneandone_machine.errors import MachineError
from oneandone_machine.provisioning.types import MachineRecord
from oneandone_machine.store import MachineStore, default_store_path


@pytest.fixture
def store(tmp_path):
    return MachineStore(tmp_path)


def test_new_record_points_into_machine_dir(store, tmp_path):
    record = store.new_record(MachineRecord(name="web"))
    assert record.store_path == str(tmp_path / "machines" / "web")
    assert record.ssh_key_path == str(tmp_path / "machines" / "web" / "id_rsa")


def test_save_and_load(store, tmp_path):
    record = store.new_record(MachineRecord(name="web", access_token="tok", cores=2, ram=4, ssd=40, vm_id="vm-1"))
    store.save(record)

    path = tmp_path / "machines" / "web" / "config.json"
    assert json.loads(path.read_text())["vm_id"] == "vm-1"
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
    assert store.load("web") == record
    assert store.exists("web")


def test_load_ignores_unknown_fields(store, tmp_path):
    path = tmp_path / "machines" / "web" / "config.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({"name": "web", "vm_id": "vm-1", "legacy": True}))
    assert store.load("web").vm_id == "vm-1"


def test_load_missing_machine(store):
    with pytest.raises(MachineError, match="does not exist"):
        store.load("ghost")


def test_list_and_remove(store):
    assert store.list() == []
    for name in ("web", "db"):
        store.save(store.new_record(MachineRecord(name=name)))

    assert store.list() == ["db", "web"]

    store.remove("web")
    assert store.list() == ["db"]
    assert not store.machine_dir("web").exists()
    store.remove("web")


def test_default_store_path_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("ONEANDONE_MACHINE_STORAGE_PATH", str(tmp_path))
    assert default_store_path() == str(tmp_path)
    assert MachineStore().root == tmp_path
