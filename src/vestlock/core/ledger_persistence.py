"""
vestlock - Ledger Snapshot Storage

Provides reliable persistence of token and ledger state with:
- Atomic writes (temp file + rename)
- Checksum verification
- Automated backups with retention
- Recovery from the newest valid backup when the primary file is corrupted
"""

import json
import hashlib
import os
import shutil
import time
import logging
from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Optional

from .vesting_exceptions import CorruptedDataError, StorageError

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "1.0"


class LedgerStorage:
    """
    Snapshot storage for the vesting ledger.

    The file on disk is an envelope ``{"metadata": {...}, "state": {...}}``
    where metadata carries a SHA-256 checksum of the canonical state JSON.
    """

    def __init__(
        self,
        data_dir: str,
        state_file: str = "vesting_state.json",
        backup_enabled: bool = True,
        max_backups: int = 10,
    ):
        """
        Initialize ledger storage

        Args:
            data_dir: Directory holding the snapshot and its backups
            state_file: Snapshot filename inside data_dir
            backup_enabled: Whether to back up the previous snapshot on save
            max_backups: Backups to keep
        """
        self.data_dir = data_dir
        self.state_file = os.path.join(data_dir, state_file)
        self.backup_dir = os.path.join(data_dir, "backups")
        self.backup_enabled = backup_enabled
        self.max_backups = max_backups

        os.makedirs(self.data_dir, exist_ok=True)
        os.makedirs(self.backup_dir, exist_ok=True)

        self.lock = Lock()

    @staticmethod
    def _canonical(state: Dict[str, Any]) -> str:
        return json.dumps(state, indent=2, sort_keys=True)

    def _calculate_checksum(self, data: str) -> str:
        return hashlib.sha256(data.encode("utf-8")).hexdigest()

    def exists(self) -> bool:
        return os.path.exists(self.state_file)

    def save(self, state: Dict[str, Any]) -> str:
        """
        Save a snapshot with an atomic write.

        Args:
            state: JSON-serializable ledger state

        Returns:
            Checksum of the saved state

        Raises:
            StorageError: If the snapshot cannot be written
        """
        with self.lock:
            try:
                state_json = self._canonical(state)
                checksum = self._calculate_checksum(state_json)
                package = {
                    "metadata": {
                        "timestamp": time.time(),
                        "checksum": checksum,
                        "version": SNAPSHOT_VERSION,
                    },
                    "state": state,
                }

                if self.backup_enabled and os.path.exists(self.state_file):
                    self._create_backup()

                temp_file = self.state_file + ".tmp"
                with open(temp_file, "w") as f:
                    f.write(json.dumps(package, indent=2, sort_keys=True))
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(temp_file, self.state_file)
            except (OSError, TypeError, ValueError) as e:
                logger.error(
                    "Failed to save ledger snapshot",
                    extra={
                        "event": "storage.save_failed",
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
                raise StorageError(f"Failed to save ledger snapshot: {e}") from e

        logger.debug(
            "Ledger snapshot saved",
            extra={"event": "storage.saved", "checksum": checksum[:8]},
        )
        return checksum

    def load(self) -> Dict[str, Any]:
        """
        Load the snapshot, verifying its checksum.

        Falls back to the newest valid backup when the primary file is
        corrupted.

        Raises:
            StorageError: If no snapshot exists
            CorruptedDataError: If neither the snapshot nor any backup is valid
        """
        with self.lock:
            if not os.path.exists(self.state_file):
                raise StorageError(f"No ledger snapshot at {self.state_file}")
            try:
                return self._read_verified(self.state_file)
            except CorruptedDataError as exc:
                logger.warning(
                    "Ledger snapshot corrupted, attempting recovery",
                    extra={"event": "storage.corrupted", "error": str(exc)},
                )
                recovered = self._recover_from_backup()
                if recovered is None:
                    raise
                return recovered

    def _read_verified(self, path: str) -> Dict[str, Any]:
        try:
            with open(path, "r") as f:
                package = json.load(f)
        except json.JSONDecodeError as e:
            raise CorruptedDataError(f"Snapshot {os.path.basename(path)} is not valid JSON: {e}") from e
        except OSError as e:
            raise StorageError(f"Failed to read snapshot: {e}") from e

        if not isinstance(package, dict) or "state" not in package:
            raise CorruptedDataError(f"Snapshot {os.path.basename(path)} has no state section")

        state = package["state"]
        expected = package.get("metadata", {}).get("checksum")
        if expected and self._calculate_checksum(self._canonical(state)) != expected:
            raise CorruptedDataError(f"Checksum mismatch in {os.path.basename(path)}")
        return state

    def _create_backup(self) -> None:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        backup_path = os.path.join(self.backup_dir, f"vesting_state_{stamp}.json")
        shutil.copy2(self.state_file, backup_path)
        self._cleanup_old_backups()

    def _cleanup_old_backups(self) -> None:
        backups = self.list_backups()
        for stale in backups[self.max_backups:]:
            try:
                os.remove(stale["path"])
            except OSError as e:
                logger.warning(
                    "Failed to remove old backup",
                    extra={"event": "storage.backup_cleanup_failed", "path": stale["path"], "error": str(e)},
                )

    def _recover_from_backup(self) -> Optional[Dict[str, Any]]:
        for backup in self.list_backups():
            try:
                state = self._read_verified(backup["path"])
            except (CorruptedDataError, StorageError):
                continue
            logger.warning(
                "Recovered ledger snapshot from backup",
                extra={"event": "storage.recovered", "backup": backup["filename"]},
            )
            return state
        return None

    def list_backups(self) -> List[Dict[str, Any]]:
        """List backups, newest first."""
        backups = []
        for filename in os.listdir(self.backup_dir):
            if not filename.startswith("vesting_state_") or not filename.endswith(".json"):
                continue
            path = os.path.join(self.backup_dir, filename)
            backups.append({"filename": filename, "path": path, "size": os.path.getsize(path)})
        backups.sort(key=lambda item: item["filename"], reverse=True)
        return backups
