"""Header store errors and an in-memory header store."""

from __future__ import annotations

import logging
import threading
from typing import Hashable, Iterable, Protocol

log = logging.getLogger(__name__)


class Header(Protocol):
    """What a store needs from a header: its height and its hash."""

    @property
    def height(self) -> int: ...

    @property
    def hash(self) -> Hashable: ...


class StoreError(Exception):
    """Base class for header store errors."""


class NotFoundError(StoreError):
    def __init__(self) -> None:
        super().__init__("Header not found in store")


class HeightExistsError(StoreError):
    def __init__(self, height: int) -> None:
        super().__init__(f"Header height {height} already exists in store")
        self.height = height


class HashExistsError(StoreError):
    def __init__(self, hash: Hashable) -> None:
        super().__init__(f"Hash {hash!r} already exists in store")
        self.hash = hash


class NonContinuousAppendError(StoreError):
    def __init__(self, head_height: int, height: int) -> None:
        super().__init__(
            f"Failed to append header at height {height}, current head {head_height}"
        )
        self.head_height = head_height
        self.height = height


class LostHeightError(StoreError):
    def __init__(self, height: int) -> None:
        super().__init__(f"Store lost header at height {height}")
        self.height = height


class LostHashError(StoreError):
    def __init__(self, hash: Hashable) -> None:
        super().__init__(f"Store lost header with hash {hash!r}")
        self.hash = hash


class OpenFailedError(StoreError):
    """The backing store could not be opened."""


class StoredDataError(StoreError):
    """The stored data is corrupted or cannot be decoded."""


class BackingStoreError(StoreError):
    """The backing store reported an error."""


class InMemoryStore:
    """A contiguous chain of headers kept in memory, indexed by hash and height."""

    def __init__(self) -> None:
        self._headers: dict = {}
        self._height_to_hash: dict[int, Hashable] = {}
        self._head_height = 0
        self._lock = threading.Lock()

    def head_height(self) -> int:
        """Height of the newest header; raises NotFoundError if empty."""
        if self._head_height == 0:
            raise NotFoundError()
        return self._head_height

    def get_head(self):
        return self.get_by_height(self.head_height())

    def get_by_hash(self, hash: Hashable):
        try:
            return self._headers[hash]
        except KeyError:
            raise NotFoundError() from None

    def get_by_height(self, height: int):
        if not self.contains_height(height):
            raise NotFoundError()
        try:
            hash = self._height_to_hash[height]
        except KeyError:
            raise LostHeightError(height) from None
        try:
            return self._headers[hash]
        except KeyError:
            raise LostHashError(hash) from None

    def contains_hash(self, hash: Hashable) -> bool:
        return hash in self._headers

    def contains_height(self, height: int) -> bool:
        return self._head_height != 0 and height <= self._head_height

    def append_single_unchecked(self, header: Header) -> None:
        """Append a header directly after the current head, without verifying it."""
        hash = header.hash
        height = header.height
        with self._lock:
            head_height = self._head_height
            if head_height > 0 and height <= head_height:
                raise HeightExistsError(height)
            if head_height + 1 != height:
                raise NonContinuousAppendError(head_height, height)
            if hash in self._headers:
                raise HashExistsError(hash)
            if height in self._height_to_hash:
                raise HeightExistsError(height)
            log.debug("Inserting header %r with height %d", hash, height)
            self._headers[hash] = header
            self._height_to_hash[height] = hash
            self._head_height = height

    def append_unchecked(self, headers: Iterable[Header]) -> None:
        """Append headers one after another, stopping at the first failure."""
        for header in headers:
            self.append_single_unchecked(header)

    def copy(self) -> "InMemoryStore":
        """Return an independent store holding the same headers."""
        other = InMemoryStore()
        with self._lock:
            other._headers = dict(self._headers)
            other._height_to_hash = dict(self._height_to_hash)
            other._head_height = self._head_height
        return other