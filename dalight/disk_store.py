"""A header store that persists headers on disk in an SQLite database."""

from __future__ import annotations

import logging
import shutil
import sqlite3
import tempfile
import threading
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

import platformdirs

from .store import (
    BackingStoreError,
    HashExistsError,
    Header,
    HeightExistsError,
    NonContinuousAppendError,
    NotFoundError,
    OpenFailedError,
    StoredDataError,
)

log = logging.getLogger(__name__)

_DB_FILE_NAME = "headers.sqlite3"
_HEAD_HEIGHT_KEY = b"KEY.HEAD_HEIGHT"

_SCHEMA = (
    "CREATE TABLE IF NOT EXISTS meta (key BLOB PRIMARY KEY, value BLOB NOT NULL)",
    "CREATE TABLE IF NOT EXISTS headers (hash BLOB PRIMARY KEY, header BLOB NOT NULL)",
    "CREATE TABLE IF NOT EXISTS height_to_hash "
    "(height BLOB PRIMARY KEY, hash BLOB NOT NULL)",
)

Encoder = Callable[[Header], bytes]
Decoder = Callable[[bytes], Header]


def _height_to_key(height: int) -> bytes:
    # Big-endian keys keep numeric order under lexicographic sorting.
    return height.to_bytes(8, "big")


class DiskStore:
    """A contiguous chain of headers kept in a database directory."""

    def __init__(
        self,
        path: Union[str, Path],
        encode: Encoder,
        decode: Decoder,
    ) -> None:
        self._encode = encode
        self._decode = decode
        self._lock = threading.Lock()
        self._temp_dir: Optional[Path] = None
        self.path = Path(path)
        try:
            self.path.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                self.path / _DB_FILE_NAME, check_same_thread=False
            )
            with self._conn:
                for statement in _SCHEMA:
                    self._conn.execute(statement)
        except (OSError, sqlite3.Error) as exc:
            raise OpenFailedError(str(exc)) from exc

    def _fetch(self, table: str, column: str, key_column: str, key: bytes):
        query = f"SELECT {column} FROM {table} WHERE {key_column} = ?"
        try:
            row = self._conn.execute(query, (key,)).fetchone()
        except sqlite3.DatabaseError as exc:
            raise BackingStoreError(str(exc)) from exc
        if row is None:
            raise NotFoundError()
        return bytes(row[0])

    def _read_head_height(self) -> int:
        raw = self._fetch("meta", "value", "key", _HEAD_HEIGHT_KEY)
        if len(raw) != 8:
            raise NotFoundError()
        return int.from_bytes(raw, "big")

    def _read_hash_at(self, height: int) -> bytes:
        return self._fetch("height_to_hash", "hash", "height", _height_to_key(height))

    def _read_header(self, hash_bytes: bytes) -> Header:
        serialized = self._fetch("headers", "header", "hash", hash_bytes)
        try:
            return self._decode(serialized)
        except Exception as exc:
            raise StoredDataError(f"failed to decode header: {exc}") from exc

    def head_height(self) -> int:
        """Height of the newest header; raises NotFoundError if empty."""
        with self._lock:
            return self._read_head_height()

    def get_head(self) -> Header:
        with self._lock:
            height = self._read_head_height()
            return self._read_header(self._read_hash_at(height))

    def get_by_hash(self, hash) -> Header:
        with self._lock:
            return self._read_header(bytes(hash))

    def get_by_height(self, height: int) -> Header:
        with self._lock:
            return self._read_header(self._read_hash_at(height))

    def contains_hash(self, hash) -> bool:
        try:
            with self._lock:
                self._fetch("headers", "1", "hash", bytes(hash))
        except (NotFoundError, BackingStoreError):
            return False
        return True

    def contains_height(self, height: int) -> bool:
        try:
            with self._lock:
                self._read_hash_at(height)
        except (NotFoundError, BackingStoreError, OverflowError):
            return False
        return True

    def append_single_unchecked(self, header: Header) -> None:
        """Append a header directly after the current head, without verifying it."""
        hash_bytes = bytes(header.hash)
        height = header.height
        with self._lock:
            try:
                head_height = self._read_head_height()
            except NotFoundError:
                head_height = 0

            if head_height > 0 and height <= head_height:
                raise HeightExistsError(height)
            if head_height + 1 != height:
                raise NonContinuousAppendError(head_height, height)

            serialized = self._encode(header)
            height_key = _height_to_key(height)
            try:
                with self._conn:
                    try:
                        self._conn.execute(
                            "INSERT INTO height_to_hash (height, hash) VALUES (?, ?)",
                            (height_key, hash_bytes),
                        )
                    except sqlite3.IntegrityError:
                        raise HeightExistsError(height) from None
                    self._conn.execute(
                        "INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)",
                        (_HEAD_HEIGHT_KEY, height_key),
                    )
                    try:
                        self._conn.execute(
                            "INSERT INTO headers (hash, header) VALUES (?, ?)",
                            (hash_bytes, serialized),
                        )
                    except sqlite3.IntegrityError:
                        raise HashExistsError(header.hash) from None
            except sqlite3.DatabaseError as exc:
                raise BackingStoreError(str(exc)) from exc

        log.debug("Inserting header %s with height %d", hash_bytes.hex(), height)

    def append_unchecked(self, headers: Iterable[Header]) -> None:
        """Append headers one after another, stopping at the first failure."""
        for header in headers:
            self.append_single_unchecked(header)

    def flush(self) -> None:
        """Make sure everything written so far is committed to disk."""
        with self._lock:
            try:
                self._conn.commit()
            except sqlite3.DatabaseError as exc:
                raise BackingStoreError(str(exc)) from exc

    def close(self) -> None:
        """Close the database; a temporary store also removes its directory."""
        with self._lock:
            self._conn.close()
            if self._temp_dir is not None:
                shutil.rmtree(self._temp_dir, ignore_errors=True)
                self._temp_dir = None

    def __enter__(self) -> "DiskStore":
        return self

    def __exit__(self, *args) -> None:
        self.close()


def open_default(network_id: str, encode: Encoder, decode: Decoder) -> DiskStore:
    """Open the store for a network in the user's cache directory."""
    try:
        cache_dir = platformdirs.user_cache_path(appname="celestia", appauthor="eiger")
    except Exception as exc:
        raise OpenFailedError(
            "Unable to get system cache path to open header store"
        ) from exc
    return DiskStore(cache_dir / network_id, encode, decode)


def open_temporary(encode: Encoder, decode: Decoder) -> DiskStore:
    """Open a fresh store in a temporary directory removed on close."""
    try:
        temp_dir = Path(tempfile.mkdtemp(prefix="celestia"))
    except OSError as exc:
        raise OpenFailedError(str(exc)) from exc
    store = DiskStore(temp_dir, encode, decode)
    store._temp_dir = temp_dir
    return store