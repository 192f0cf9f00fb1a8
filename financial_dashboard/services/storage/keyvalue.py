"""
JSON key-value file.

A flat {key: value} JSON object on disk, used for the local snapshot and
for user preferences. Reads never raise: a missing or corrupt file reads
as {}. Writes go to a .tmp sibling first and are moved into place with
os.replace(), so a crash mid-write leaves the previous file intact.
"""

import json
import os
import threading
from pathlib import Path
from typing import Any, Optional

import structlog

from financial_dashboard.services.storage.interface import StorageError


logger = structlog.get_logger(__name__)


class KeyValueFile:
    """Small persistent key-value map backed by one JSON file."""

    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def read_all(self) -> dict[str, Any]:
        """Returns {} on missing or corrupt file - never raises."""
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(
                "keyvalue_file_unreadable",
                path=str(self._path),
                error=str(e),
            )
            return {}
        if not isinstance(data, dict):
            logger.warning("keyvalue_file_not_an_object", path=str(self._path))
            return {}
        return data

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        return self.read_all().get(key, default)

    def contains(self, key: str) -> bool:
        return key in self.read_all()

    def put(self, key: str, value: Any) -> None:
        """
        Set one key, keeping the others.

        Raises:
            StorageError: If the file cannot be written
        """
        with self._lock:
            data = self.read_all()
            data[key] = value
            self._write(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self.read_all()
            if key in data:
                del data[key]
                self._write(data)

    def _write(self, data: dict[str, Any]) -> None:
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, self._path)
        except (OSError, TypeError, ValueError) as e:
            try:
                tmp.unlink(missing_ok=True)
            except OSError:
                pass
            raise StorageError(f"Failed to write {self._path}: {e}") from e
