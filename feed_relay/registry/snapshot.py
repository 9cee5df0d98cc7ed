"""Persistence of registry snapshots."""

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import structlog

from feed_relay.exceptions import PersistenceError

logger = structlog.get_logger(__name__)

Snapshot = Dict[str, Dict[str, Dict[str, Any]]]


class SnapshotStore(Protocol):
    """Load/save contract for registry snapshots."""

    def load(self) -> Optional[Snapshot]:
        """Return the stored snapshot, or None if nothing was stored yet."""

    def save(self, snapshot: Snapshot) -> None:
        """Replace the stored snapshot."""


class JsonSnapshotStore:
    """Snapshot store backed by a single JSON file.

    Writes go to a temporary sibling file that is renamed over the snapshot,
    so readers only ever see a complete document.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def load(self) -> Optional[Snapshot]:
        """Read the snapshot file.

        Returns:
            Parsed snapshot, or None if the file does not exist

        Raises:
            PersistenceError: If the file cannot be read or is not a JSON object
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            self._quarantine()
            raise PersistenceError(
                f"Corrupt snapshot: {e}", details={"path": str(self.path)}
            ) from e
        except OSError as e:
            raise PersistenceError(
                f"Unreadable snapshot: {e}", details={"path": str(self.path)}
            ) from e

        if not isinstance(data, dict):
            self._quarantine()
            raise PersistenceError(
                "Snapshot root is not an object", details={"path": str(self.path)}
            )
        return data

    def save(self, snapshot: Snapshot) -> None:
        """Atomically write the snapshot file.

        Raises:
            PersistenceError: If the file cannot be written
        """
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(
                f"Failed to write snapshot: {e}", details={"path": str(self.path)}
            ) from e
        logger.debug("snapshot_saved", path=str(self.path))

    def _quarantine(self) -> None:
        """Copy an unparseable snapshot aside before it gets overwritten."""
        target = self.path.with_name(self.path.name + ".corrupt")
        try:
            shutil.copy2(self.path, target)
            logger.warning("snapshot_quarantined", path=str(self.path), copy=str(target))
        except OSError as e:
            logger.error("snapshot_quarantine_failed", path=str(self.path), error=str(e))
