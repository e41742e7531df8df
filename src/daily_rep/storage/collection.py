"""JSON collection persistence (fcntl.flock + atomic write)."""

import fcntl
import json
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path


class StorageError(Exception):
    """Base exception for store operations."""


class NotFoundError(StorageError):
    """Raised when a requested record does not exist."""


class ConflictError(StorageError):
    """Raised when a uniqueness constraint would be violated."""


class JsonCollection:
    """A keyed set of JSON records stored in a single file.

    Reads take a shared lock, writes take an exclusive lock on a sidecar
    lock file and replace the data file atomically, so a read-check-write
    inside ``transaction()`` is safe across processes.

    Args:
        path: Location of the collection file.
    """

    def __init__(self, path: Path):
        self.path = path
        self.lock_path = path.with_name(path.name + ".lock")
        path.parent.mkdir(parents=True, exist_ok=True)

    def _load(self) -> dict[str, dict]:
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        return data.get("items", {})

    def _dump(self, items: dict[str, dict]) -> None:
        with tempfile.NamedTemporaryFile(
            "w", dir=self.path.parent, delete=False, suffix=".json", encoding="utf-8"
        ) as tmp:
            json.dump({"items": items}, tmp, indent=2, default=str)
        os.replace(tmp.name, self.path)

    def read(self) -> dict[str, dict]:
        """Return a snapshot of all records keyed by id."""
        with open(self.lock_path, "a") as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_SH)
            try:
                return self._load()
            finally:
                fcntl.flock(lock_file, fcntl.LOCK_UN)

    @contextmanager
    def transaction(self) -> Iterator[dict[str, dict]]:
        """Yield the records for mutation; persist them if the block succeeds."""
        with open(self.lock_path, "a") as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_EX)
            try:
                items = self._load()
                yield items
                self._dump(items)
            finally:
                fcntl.flock(lock_file, fcntl.LOCK_UN)

    def get(self, key: str) -> dict | None:
        return self.read().get(key)

    def __len__(self) -> int:
        return len(self.read())
