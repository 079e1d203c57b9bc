"""Snapshot persistence: versioned JSON envelopes in a key-value byte store.

Every snapshot is a single JSON object::

    {"schema_version": 1, "kind": "memory", ...payload}

Legacy snapshots carry no version field. They are treated as version 0 and
upgraded by the migrations registered per kind before the
payload reaches the caller. Anything that cannot be parsed, has the wrong
kind, or comes from a newer schema raises ``SnapshotError``.

The in-memory structures stay authoritative for the session: ``SnapshotPersistence``
logs byte store failures instead of propagating them.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

Migration = Callable[[Any], dict]

_MIGRATIONS: dict[str, dict[int, Migration]] = {}


class SnapshotError(ValueError):
    """Raised when persisted data is structurally invalid."""


@runtime_checkable
class ByteStore(Protocol):
    """Abstract key-value byte store used as the persistence medium."""

    def get(self, key: str) -> bytes | None: ...

    def put(self, key: str, data: bytes) -> None: ...

    def delete(self, key: str) -> None: ...


@runtime_checkable
class Snapshotable(Protocol):
    """Anything that can round-trip through a snapshot blob."""

    def export(self) -> str: ...

    def import_data(self, blob: str | bytes) -> None: ...


class MemoryByteStore:
    """Dict-backed byte store (process lifetime only)."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    def put(self, key: str, data: bytes) -> None:
        self._data[key] = bytes(data)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class FileByteStore:
    """One file per key under ``root``. Writes go through a temp file + rename."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def _slugify(self, key: str) -> str:
        slug = re.sub(r'[<>:"/\\|?*\n\r\t]', "", key)
        slug = slug.strip().replace(" ", "-")
        return slug or "unnamed"

    def path_for(self, key: str) -> Path:
        return self.root / f"{self._slugify(key)}.json"

    def get(self, key: str) -> bytes | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def put(self, key: str, data: bytes) -> None:
        path = self.path_for(key)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)


# ── Envelope encoding ─────────────────────────────────────


def register_migration(kind: str, from_version: int) -> Callable[[Migration], Migration]:
    """Register a function upgrading a ``kind`` snapshot from ``from_version`` to the next."""

    def decorator(fn: Migration) -> Migration:
        _MIGRATIONS.setdefault(kind, {})[from_version] = fn
        return fn

    return decorator


def snake_case_keys(record: Any) -> Any:
    """Rename the top-level camelCase keys of a record dict (``keyEvents`` → ``key_events``)."""
    if not isinstance(record, dict):
        return record
    return {re.sub(r"(?<!^)(?=[A-Z])", "_", str(k)).lower(): v for k, v in record.items()}


def encode_snapshot(kind: str, payload: dict[str, Any]) -> str:
    """Wrap ``payload`` in a versioned envelope and serialize it."""
    envelope: dict[str, Any] = {"schema_version": SCHEMA_VERSION, "kind": kind}
    envelope.update(payload)
    return json.dumps(envelope, ensure_ascii=False, indent=2)


def decode_snapshot(blob: str | bytes, kind: str) -> dict[str, Any]:
    """Parse a snapshot of ``kind`` and return its payload at the current schema version."""
    if isinstance(blob, (bytes, bytearray)):
        try:
            blob = bytes(blob).decode("utf-8")
        except UnicodeDecodeError as e:
            raise SnapshotError(f"{kind} snapshot is not valid UTF-8: {e}") from e
    if not isinstance(blob, str):
        raise SnapshotError(f"{kind} snapshot must be text, got {type(blob).__name__}")

    try:
        data = json.loads(blob)
    except json.JSONDecodeError as e:
        raise SnapshotError(f"{kind} snapshot is not valid JSON: {e}") from e

    if isinstance(data, dict) and "schema_version" in data:
        version = data["schema_version"]
        if not isinstance(version, int) or isinstance(version, bool) or version < 0:
            raise SnapshotError(f"{kind} snapshot has invalid schema_version: {version!r}")
        if data.get("kind") != kind:
            raise SnapshotError(f"expected a {kind!r} snapshot, got kind={data.get('kind')!r}")
    else:
        version = 0

    if version > SCHEMA_VERSION:
        raise SnapshotError(
            f"{kind} snapshot schema_version {version} is newer than supported ({SCHEMA_VERSION})"
        )

    while version < SCHEMA_VERSION:
        migrate = _MIGRATIONS.get(kind, {}).get(version)
        if migrate is None:
            raise SnapshotError(f"no migration for {kind} snapshot schema_version {version}")
        data = migrate(data)
        version += 1
        logger.debug("Migrated %s snapshot to schema_version %d", kind, version)

    if not isinstance(data, dict):
        raise SnapshotError(f"{kind} snapshot must be a JSON object")
    return {k: v for k, v in data.items() if k not in ("schema_version", "kind")}


# ── Byte store boundary ───────────────────────────────────


class SnapshotPersistence:
    """Save/restore one snapshotable object under a fixed key."""

    def __init__(self, store: ByteStore, key: str) -> None:
        self.store = store
        self.key = key

    def save(self, source: Snapshotable) -> bool:
        """Write ``source.export()``. Failures are logged; returns False on failure."""
        try:
            blob = source.export()
            self.store.put(self.key, blob.encode("utf-8"))
        except Exception as e:
            logger.warning("Failed to save snapshot %s: %s", self.key, e)
            return False
        return True

    def load(self) -> str | None:
        """Return the stored blob, or None when absent or unreadable."""
        try:
            data = self.store.get(self.key)
        except Exception as e:
            logger.warning("Failed to read snapshot %s: %s", self.key, e)
            return None
        if data is None:
            return None
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.warning("Snapshot %s is not valid UTF-8: %s", self.key, e)
            return None

    def restore(self, target: Snapshotable) -> bool:
        """Import the stored snapshot into ``target``. Malformed data leaves it untouched."""
        blob = self.load()
        if blob is None:
            return False
        try:
            target.import_data(blob)
        except SnapshotError as e:
            logger.warning("Ignoring malformed snapshot %s: %s", self.key, e)
            return False
        logger.info("Restored snapshot %s", self.key)
        return True

    def discard(self) -> None:
        """Remove the stored snapshot, logging failures."""
        try:
            self.store.delete(self.key)
        except Exception as e:
            logger.warning("Failed to delete snapshot %s: %s", self.key, e)
