"""
Token stores: where the ecobee access/refresh pair lives between requests.

`TokenStore` is a capability set (read access token, read refresh token, read
remaining validity, update). Two implementations:

- `MemoryStore`: volatile, in-process
- `PersistentStore`: durable, one JSON record in one file

Both keep their state on the instance behind a reader/writer lock: readers
never observe a half-applied update. `PersistentStore` re-reads its file on
every read so updates written by another process are picked up; cross-process
writers are *not* coordinated (last writer wins).
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path
from typing import Iterator, Optional, Protocol, Union, runtime_checkable

from .errors import ConfigurationError, StorageError, StoreNotInitializedError
from .token import Clock, TokenRecord, TokenRefreshResponse, utc_now

logger = logging.getLogger(__name__)


@runtime_checkable
class TokenStore(Protocol):
    """Storage for ecobee access and refresh tokens."""

    def access_token(self) -> str:
        """Current access token ("" if none). Never touches the network."""
        ...

    def refresh_token(self) -> str:
        """Current refresh token ("" if none). Never touches the network."""
        ...

    def valid_for(self) -> timedelta:
        """How much longer the access token is valid; <= 0 means expired."""
        ...

    def update(self, response: TokenRefreshResponse) -> None:
        """Replace the stored credentials with the contents of a token response."""
        ...


class _ReadWriteLock:
    """
    Many readers or one writer. Waiting writers block new readers so a steady
    stream of reads cannot starve an update. Not reentrant.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class MemoryStore:
    """`TokenStore` with no persistence."""

    def __init__(self, response: Optional[TokenRefreshResponse] = None, *, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._lock = _ReadWriteLock()
        self._record = TokenRecord.empty()
        if response is not None:
            self.update(response)

    def record(self) -> TokenRecord:
        """Consistent snapshot of all three fields."""
        with self._lock.read_locked():
            return self._record

    def access_token(self) -> str:
        return self.record().access_token

    def refresh_token(self) -> str:
        return self.record().refresh_token

    def valid_for(self) -> timedelta:
        return self.record().valid_for(self._clock())

    def update(self, response: TokenRefreshResponse) -> None:
        with self._lock.write_locked():
            self._record = TokenRecord.from_response(response, now=self._clock(), previous=self._record)


class PersistentStore:
    """
    `TokenStore` backed by a single JSON file:

        {"accessToken": "...", "refreshToken": "...", "validUntil": "<RFC3339>"}

    Every update writes a temporary sibling file (mode 0o600) and atomically
    replaces the target, so the file always holds exactly one complete record.
    """

    def __init__(self, path: Union[str, os.PathLike], *, clock: Clock = utc_now) -> None:
        if not str(path or "").strip():
            raise ConfigurationError("token store path is required")
        self._path = Path(path).expanduser()
        self._clock = clock
        self._lock = _ReadWriteLock()
        self._record = TokenRecord.empty()

    @classmethod
    def open(cls, path: Union[str, os.PathLike], *, clock: Clock = utc_now) -> "PersistentStore":
        """
        Open an existing store file.

        Raises StoreNotInitializedError if the file does not exist yet (run the
        PIN workflow first) and StorageError if it is unreadable or corrupt.
        """
        store = cls(path, clock=clock)
        store.record()
        return store

    @classmethod
    def create(
        cls,
        path: Union[str, os.PathLike],
        response: TokenRefreshResponse,
        *,
        clock: Clock = utc_now,
    ) -> "PersistentStore":
        """Initialize (or overwrite) a store file from a token response."""
        store = cls(path, clock=clock)
        store.update(response)
        return store

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        """True if the backing file is present. Does not validate its content."""
        return self._path.is_file()

    def _read_file(self) -> TokenRecord:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise StoreNotInitializedError(f"token store {self._path} does not exist") from e
        except OSError as e:
            raise StorageError(f"failed to read token store {self._path}: {e}") from e
        try:
            return TokenRecord.from_json_dict(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise StorageError(f"token store {self._path} is corrupt: {e}") from e

    def _write_file(self, record: TokenRecord) -> None:
        payload = json.dumps(record.to_json_dict(), ensure_ascii=False)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=str(self._path.parent),
                prefix=f".{self._path.name}.",
                suffix=".tmp",
            )
        except OSError as e:
            raise StorageError(f"failed to prepare token store {self._path}: {e}") from e

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            tmp_path.chmod(0o600)
            os.replace(tmp_path, self._path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StorageError(f"failed to write token store {self._path}: {e}") from e

    def record(self) -> TokenRecord:
        """Re-read the backing file and return a consistent snapshot."""
        with self._lock.read_locked():
            return self._read_file()

    def _previous_record(self) -> TokenRecord:
        # Prefer what is on disk so a refresh token written by another process is carried over.
        try:
            return self._read_file()
        except StorageError:
            return self._record

    def access_token(self) -> str:
        return self.record().access_token

    def refresh_token(self) -> str:
        return self.record().refresh_token

    def valid_for(self) -> timedelta:
        return self.record().valid_for(self._clock())

    def update(self, response: TokenRefreshResponse) -> None:
        with self._lock.write_locked():
            record = TokenRecord.from_response(response, now=self._clock(), previous=self._previous_record())
            # Disk first: a failed write leaves the in-memory record untouched.
            self._write_file(record)
            self._record = record
        logger.debug("token store %s updated (valid_until=%s)", self._path, record.valid_until.isoformat())


__all__ = ["MemoryStore", "PersistentStore", "TokenStore"]
