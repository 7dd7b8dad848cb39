"""
Vault Storage — Durable key-value partitions for the vault.

Two partitions are used:
- ``credentials``: zero-or-one credential descriptor, keyed by ``id``.
- ``keys``: encrypted key records, keyed by an auto-assigned integer ``id``.

Every mutating call returns only after the change is committed. For
``FileStorage`` that means the new document was fsync'ed and atomically
renamed over the previous one.

Security Note:
    Records handed to storage are already encrypted. Still, never log
    record contents; only partitions, ids and counts.
"""
import os
import copy
import fcntl
import base64
import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from contextlib import contextmanager
from typing import Any, Callable

import orjson

from .exceptions import StorageError

logger = logging.getLogger("wallet.vault")

CREDENTIALS = "credentials"
KEYS = "keys"

PARTITIONS = (CREDENTIALS, KEYS)
_AUTO_INCREMENT = frozenset({KEYS})

_BYTES_WRAPPER_KEY = "__vault_bytes_b64__"
_FORMAT_VERSION = 1


class VaultStorage(ABC):
    """Abstract async store with named partitions.

    Records are plain dicts whose primary key lives in the ``id`` field.
    """

    @abstractmethod
    async def put(self, partition: str, record: dict[str, Any]) -> Any:
        """Insert or replace a record and return its primary key.

        In auto-increment partitions a record with ``id`` None gets the
        next integer id assigned.
        """

    @abstractmethod
    async def get(self, partition: str, key: Any) -> dict[str, Any] | None:
        """Return a copy of the record stored under ``key``, or None."""

    @abstractmethod
    async def get_all(self, partition: str) -> list[dict[str, Any]]:
        """Return every record in the partition, in insertion order."""

    @abstractmethod
    async def delete(self, partition: str, key: Any) -> None:
        """Remove a record. Deleting a missing key is a no-op."""


def _check_partition(partition: str) -> None:
    if partition not in PARTITIONS:
        raise StorageError(f"Unknown storage partition: {partition}")


class _PartitionState:
    """In-memory image of all partitions plus auto-increment counters."""

    def __init__(self):
        self.partitions: dict[str, dict[Any, dict]] = {p: {} for p in PARTITIONS}
        self.sequence: dict[str, int] = {p: 0 for p in _AUTO_INCREMENT}

    def put(self, partition: str, record: dict[str, Any]) -> Any:
        record = copy.deepcopy(record)
        key = record.get("id")
        if key is None:
            if partition not in _AUTO_INCREMENT:
                raise StorageError(
                    f"Record for partition '{partition}' has no id"
                )
            self.sequence[partition] += 1
            key = self.sequence[partition]
            record["id"] = key
        elif partition in _AUTO_INCREMENT and isinstance(key, int):
            # keep the counter ahead of explicitly supplied ids
            self.sequence[partition] = max(self.sequence[partition], key)
        self.partitions[partition][key] = record
        return key

    def get(self, partition: str, key: Any) -> dict[str, Any] | None:
        record = self.partitions[partition].get(key)
        return copy.deepcopy(record) if record is not None else None

    def get_all(self, partition: str) -> list[dict[str, Any]]:
        records = self.partitions[partition]
        if partition in _AUTO_INCREMENT:
            keys = sorted(records)
        else:
            keys = list(records)
        return [copy.deepcopy(records[k]) for k in keys]

    def delete(self, partition: str, key: Any) -> bool:
        return self.partitions[partition].pop(key, None) is not None


class MemoryStorage(VaultStorage):
    """Process-local storage. Nothing survives the process."""

    def __init__(self):
        self._state = _PartitionState()

    async def put(self, partition: str, record: dict[str, Any]) -> Any:
        _check_partition(partition)
        key = self._state.put(partition, record)
        logger.debug("Storage put: partition=%s id=%s", partition, key)
        return key

    async def get(self, partition: str, key: Any) -> dict[str, Any] | None:
        _check_partition(partition)
        return self._state.get(partition, key)

    async def get_all(self, partition: str) -> list[dict[str, Any]]:
        _check_partition(partition)
        return self._state.get_all(partition)

    async def delete(self, partition: str, key: Any) -> None:
        _check_partition(partition)
        if self._state.delete(partition, key):
            logger.debug("Storage delete: partition=%s id=%s", partition, key)


# ---------------------------------------------------------------------------
# Document serialization
# ---------------------------------------------------------------------------

def _wrap_bytes(value: Any) -> Any:
    """Recursively replace bytes with a base64 wrapper for JSON output."""
    if isinstance(value, (bytes, bytearray)):
        return {_BYTES_WRAPPER_KEY: base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, dict):
        return {k: _wrap_bytes(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_wrap_bytes(v) for v in value]
    return value


def _unwrap_bytes(value: Any) -> Any:
    """Inverse of ``_wrap_bytes``."""
    if isinstance(value, dict):
        if _BYTES_WRAPPER_KEY in value and len(value) == 1:
            return base64.b64decode(value[_BYTES_WRAPPER_KEY])
        return {k: _unwrap_bytes(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_unwrap_bytes(v) for v in value]
    return value


def serialize_state(state: _PartitionState) -> bytes:
    """Serialize all partitions into a single orjson document."""
    document = {
        "version": _FORMAT_VERSION,
        "sequence": state.sequence,
        "partitions": {
            name: [_wrap_bytes(r) for r in state.get_all(name)]
            for name in PARTITIONS
        },
    }
    return orjson.dumps(document, option=orjson.OPT_INDENT_2)


def deserialize_state(data: bytes) -> _PartitionState:
    """Parse a document produced by ``serialize_state``.

    Raises:
        StorageError: If the document is not a valid vault file.
    """
    try:
        document = orjson.loads(data)
    except orjson.JSONDecodeError as err:
        raise StorageError("Vault file is not valid JSON") from err
    if not isinstance(document, dict) or document.get("version") != _FORMAT_VERSION:
        raise StorageError("Unsupported vault file format")
    state = _PartitionState()
    try:
        for name, counter in document.get("sequence", {}).items():
            if name in state.sequence:
                state.sequence[name] = int(counter)
        for name, records in document.get("partitions", {}).items():
            if name not in PARTITIONS:
                raise StorageError(f"Unknown storage partition in vault file: {name}")
            for record in records:
                state.put(name, _unwrap_bytes(record))
    except (AttributeError, TypeError, ValueError) as err:
        raise StorageError("Vault file is corrupted") from err
    return state


class FileStorage(VaultStorage):
    """Storage persisted to a single JSON file.

    No state is cached between calls: every operation reads the file under
    an exclusive ``flock`` on a sidecar ``.lock`` file, so several instances
    (or processes) sharing one path always see each other's commits. A
    mutation rewrites the whole document and is committed only after the new
    file has been fsync'ed and renamed into place.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def lock_path(self) -> Path:
        return self._path.with_name(self._path.name + ".lock")

    @contextmanager
    def _file_lock(self):
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o600)
        except OSError as err:
            raise StorageError(f"Unable to lock vault file: {err.strerror}") from err
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)

    def _read(self) -> _PartitionState:
        try:
            data = self._path.read_bytes()
        except FileNotFoundError:
            return _PartitionState()
        except OSError as err:
            raise StorageError(f"Unable to read vault file: {err.strerror}") from err
        return deserialize_state(data)

    def _write(self, state: _PartitionState) -> None:
        payload = serialize_state(state)
        tmp = self._path.with_name(self._path.name + ".tmp")
        try:
            fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "wb") as fp:
                fp.write(payload)
                fp.flush()
                os.fsync(fp.fileno())
            os.replace(tmp, self._path)
        except OSError as err:
            tmp.unlink(missing_ok=True)
            raise StorageError(f"Unable to write vault file: {err.strerror}") from err

    def _snapshot(self) -> _PartitionState:
        with self._file_lock():
            return self._read()

    def _mutate(self, change: Callable[[_PartitionState], Any]) -> tuple[Any, bool]:
        """Apply ``change`` to the current document and commit it.

        ``change`` returns ``(result, dirty)``; the file is rewritten only
        when ``dirty`` is true. Read, change and write all happen under the
        file lock.
        """
        with self._file_lock():
            state = self._read()
            result, dirty = change(state)
            if dirty:
                self._write(state)
            return result, dirty

    async def put(self, partition: str, record: dict[str, Any]) -> Any:
        _check_partition(partition)
        async with self._lock:
            key, _ = await asyncio.to_thread(
                self._mutate, lambda state: (state.put(partition, record), True)
            )
        logger.debug("Storage put: partition=%s id=%s", partition, key)
        return key

    async def get(self, partition: str, key: Any) -> dict[str, Any] | None:
        _check_partition(partition)
        async with self._lock:
            state = await asyncio.to_thread(self._snapshot)
        return state.get(partition, key)

    async def get_all(self, partition: str) -> list[dict[str, Any]]:
        _check_partition(partition)
        async with self._lock:
            state = await asyncio.to_thread(self._snapshot)
        return state.get_all(partition)

    async def delete(self, partition: str, key: Any) -> None:
        _check_partition(partition)
        async with self._lock:
            _, removed = await asyncio.to_thread(
                self._mutate,
                lambda state: (None, state.delete(partition, key)),
            )
        if removed:
            logger.debug("Storage delete: partition=%s id=%s", partition, key)


def open_storage(config) -> VaultStorage:
    """Build the storage backend selected by a ``VaultConfig``."""
    if config.storage_backend == "memory":
        return MemoryStorage()
    return FileStorage(config.storage_path)
