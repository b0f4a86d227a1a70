"""
Tests for checksummed ledger snapshot storage.
"""

import json
import os

import pytest

from vestlock.core.ledger_persistence import LedgerStorage
from vestlock.core.vesting_exceptions import CorruptedDataError, StorageError


@pytest.fixture
def storage(tmp_path):
    return LedgerStorage(str(tmp_path / "data"), max_backups=2)


def _tamper(path):
    with open(path) as f:
        package = json.load(f)
    package["state"]["records"]["0xabc"]["total_claimed"] = "999"
    with open(path, "w") as f:
        json.dump(package, f)


STATE = {"records": {"0xabc": {"total_locked": "100", "total_claimed": "20"}}, "events": []}


def test_save_and_load(storage):
    checksum = storage.save(STATE)

    assert storage.exists()
    assert len(checksum) == 64
    assert storage.load() == STATE


def test_envelope_contains_metadata(storage):
    checksum = storage.save(STATE)
    with open(storage.state_file) as f:
        package = json.load(f)

    assert package["metadata"]["checksum"] == checksum
    assert package["metadata"]["version"] == "1.0"
    assert package["state"] == STATE


def test_no_temp_file_left_behind(storage):
    storage.save(STATE)
    assert not os.path.exists(storage.state_file + ".tmp")


def test_load_without_snapshot_raises(storage):
    with pytest.raises(StorageError):
        storage.load()


def test_tampered_snapshot_recovers_from_backup(storage):
    storage.save(STATE)
    second = {"records": {"0xabc": {"total_locked": "100", "total_claimed": "40"}}, "events": []}
    storage.save(second)

    _tamper(storage.state_file)

    assert storage.load() == STATE


def test_tampered_snapshot_without_backup_raises(storage):
    storage.save(STATE)
    _tamper(storage.state_file)

    with pytest.raises(CorruptedDataError, match="Checksum mismatch"):
        storage.load()


def test_invalid_json_is_corruption(storage):
    storage.save(STATE)
    with open(storage.state_file, "w") as f:
        f.write("{not json")

    with pytest.raises(CorruptedDataError):
        storage.load()


def test_backup_retention(storage):
    for claimed in range(5):
        storage.save({"records": {"0xabc": {"total_locked": "100", "total_claimed": str(claimed)}}})

    backups = storage.list_backups()
    assert len(backups) <= 2
    assert backups == sorted(backups, key=lambda item: item["filename"], reverse=True)


def test_backups_disabled(tmp_path):
    storage = LedgerStorage(str(tmp_path), backup_enabled=False)
    storage.save(STATE)
    storage.save(STATE)
    assert storage.list_backups() == []


def test_unserializable_state_raises_storage_error(storage):
    with pytest.raises(StorageError):
        storage.save({"bad": object()})
    assert not storage.exists()
