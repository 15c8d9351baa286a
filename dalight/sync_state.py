"""Syncer errors, status records, batch planning and initialisation."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, Iterator, Optional

from .store import NotFoundError, StoreError

log = logging.getLogger(__name__)

MAX_HEADERS_IN_BATCH = 512

INITIAL_INTERVAL = 0.5
MULTIPLIER = 1.5
RANDOMIZATION_FACTOR = 0.5
MAX_INTERVAL = 60.0


class SyncerError(Exception):
    """Base class for syncer errors."""


class WorkerDiedError(SyncerError):
    def __init__(self) -> None:
        super().__init__("Worker died")


class ChannelClosedError(SyncerError):
    def __init__(self) -> None:
        super().__init__("Channel closed unexpectedly")


@dataclass(frozen=True)
class SyncingInfo:
    """Height of the local store head and of the network head as we see it."""

    local_head: int
    subjective_head: int


@dataclass(frozen=True)
class BatchRange:
    """An inclusive range of header heights to fetch in one request."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 1 or self.end < self.start:
            raise ValueError(f"invalid batch range [{self.start}, {self.end}]")

    @property
    def amount(self) -> int:
        return self.end - self.start + 1

    def __str__(self) -> str:
        return f"[{self.start}, {self.end}]"


def plan_batch(local_head: int, subjective_head: int) -> Optional[BatchRange]:
    """Pick the next range to fetch after ``local_head``, or ``None`` if synced."""
    amount = min(max(subjective_head - local_head, 0), MAX_HEADERS_IN_BATCH)
    if amount == 0:
        return None
    start = local_head + 1
    return BatchRange(start=start, end=start + amount - 1)


def _store_is_empty(store: Any) -> bool:
    try:
        store.head_height()
    except NotFoundError:
        return True
    except StoreError:
        return True
    return False


async def try_init(p2p: Any, store: Any, genesis_hash: Optional[Any]) -> int:
    """Make sure the store has a genesis header and start header subscription.

    Waits for a trusted peer, stores the genesis header if the store is empty,
    fetches the network head, hands it to the header subscription and returns
    its height.
    """
    await p2p.wait_connected_trusted()

    if _store_is_empty(store):
        if genesis_hash is not None:
            genesis = await p2p.get_header(genesis_hash)
        else:
            log.warning("Genesis hash is not set, requesting height 1.")
            genesis = await p2p.get_header_by_height(1)
        store.append_single_unchecked(genesis)

    network_head = await p2p.get_head_header()
    network_head_height = network_head.height

    await p2p.init_header_sub(network_head)

    return network_head_height


def init_backoff_delays() -> Iterator[float]:
    """Yield randomised, exponentially growing retry delays in seconds, forever."""
    interval = INITIAL_INTERVAL
    while True:
        delta = RANDOMIZATION_FACTOR * interval
        low = interval - delta
        high = interval + delta
        yield low + random.random() * (high - low)
        interval = min(interval * MULTIPLIER, MAX_INTERVAL)