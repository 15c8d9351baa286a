"""Keeps the local header store in step with the network head."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from .store import StoreError
from .sync_state import (
    BatchRange,
    ChannelClosedError,
    SyncingInfo,
    WorkerDiedError,
    init_backoff_delays,
    plan_batch,
    try_init,
)

log = logging.getLogger(__name__)

REPORT_INTERVAL = 60.0
COMMAND_QUEUE_SIZE = 16


@dataclass
class _GetInfo:
    respond_to: asyncio.Future


@dataclass
class _Ongoing:
    batch: BatchRange
    task: asyncio.Task


def _cancel_all(tasks: Iterable[Optional[asyncio.Task]]) -> None:
    for task in tasks:
        if task is not None and not task.done():
            task.cancel()


class Syncer:
    """Fetches headers from peers in batches until the store reaches the network head.

    ``p2p`` must provide ``wait_connected_trusted``, ``get_header``,
    ``get_header_by_height``, ``get_head_header``, ``init_header_sub`` and
    ``get_verified_headers_range`` coroutines, plus ``header_sub_watcher``,
    ``peer_tracker_info_watcher`` and ``peer_tracker_info``. A watcher has
    ``borrow()`` for the current value and a ``changed()`` coroutine that
    returns once a value newer than the last one seen arrives.
    """

    def __init__(self, p2p: Any, store: Any, genesis_hash: Optional[Any] = None) -> None:
        self._p2p = p2p
        self._store = store
        self._genesis_hash = genesis_hash
        self._header_sub_watcher = p2p.header_sub_watcher()
        self._commands: asyncio.Queue = asyncio.Queue(maxsize=COMMAND_QUEUE_SIZE)
        self._subjective_head_height: Optional[int] = None
        self._ongoing: Optional[_Ongoing] = None
        self._task: Optional[asyncio.Task] = None

    def start(self) -> "Syncer":
        """Start the worker on the running event loop."""
        if self._task is not None:
            raise RuntimeError("Syncer already started")
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self

    def stop(self) -> None:
        """Signal the worker to stop."""
        if self._task is not None:
            self._task.cancel()

    async def info(self) -> SyncingInfo:
        """Ask the worker for the current local and subjective heads."""
        task = self._task
        if task is None or task.done():
            raise WorkerDiedError()
        fut = asyncio.get_running_loop().create_future()
        await self._commands.put(_GetInfo(respond_to=fut))
        await asyncio.wait({fut, task}, return_when=asyncio.FIRST_COMPLETED)
        if not fut.done():
            fut.cancel()
            raise ChannelClosedError()
        return fut.result()

    # Worker side

    async def _run(self) -> None:
        try:
            while True:
                await self._connecting_event_loop()
                await self._connected_event_loop()
        finally:
            while not self._commands.empty():
                cmd = self._commands.get_nowait()
                if not cmd.respond_to.done():
                    cmd.respond_to.set_exception(ChannelClosedError())
            log.debug("Syncer stopped")

    async def _connecting_event_loop(self) -> None:
        """Wait for a trusted peer and the network head while serving commands."""
        log.debug("Entering connecting_event_loop")
        init_task = asyncio.create_task(self._try_init_until_success())
        cmd_task: Optional[asyncio.Task] = None
        report_task: Optional[asyncio.Task] = None
        self._report()
        try:
            while True:
                if cmd_task is None:
                    cmd_task = asyncio.create_task(self._commands.get())
                if report_task is None:
                    report_task = asyncio.create_task(asyncio.sleep(REPORT_INTERVAL))
                done, _ = await asyncio.wait(
                    {init_task, cmd_task, report_task},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if cmd_task in done:
                    self._on_cmd(cmd_task.result())
                    cmd_task = None
                if report_task in done:
                    self._report()
                    report_task = None
                if init_task in done:
                    height = init_task.result()
                    log.info("Setting initial subjective head to %d", height)
                    self._subjective_head_height = height
                    return
        finally:
            _cancel_all((init_task, cmd_task, report_task))

    async def _connected_event_loop(self) -> None:
        """Run the syncing process, handle new heads and serve commands."""
        log.debug("Entering connected_event_loop")
        peers = self._p2p.peer_tracker_info_watcher()
        if peers.borrow().num_connected_peers == 0:
            log.warning("All peers disconnected")
            return

        self._fetch_next_batch()
        self._report()

        waiters: dict = {}
        try:
            while True:
                if "peers" not in waiters:
                    waiters["peers"] = asyncio.create_task(peers.changed())
                if "report" not in waiters:
                    waiters["report"] = asyncio.create_task(asyncio.sleep(REPORT_INTERVAL))
                if "header_sub" not in waiters:
                    waiters["header_sub"] = asyncio.create_task(
                        self._header_sub_watcher.changed()
                    )
                if "cmd" not in waiters:
                    waiters["cmd"] = asyncio.create_task(self._commands.get())

                pending = set(waiters.values())
                batch_task = self._ongoing.task if self._ongoing is not None else None
                if batch_task is not None:
                    pending.add(batch_task)

                done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                finished = {name for name, task in waiters.items() if task in done}

                if "cmd" in finished:
                    self._on_cmd(waiters.pop("cmd").result())
                if "report" in finished:
                    waiters.pop("report")
                    self._report()
                if batch_task is not None and batch_task in done:
                    self._on_fetch_next_batch_result()
                    self._fetch_next_batch()
                if "header_sub" in finished:
                    waiters.pop("header_sub")
                    self._on_header_sub_message()
                    self._fetch_next_batch()
                if "peers" in finished:
                    waiters.pop("peers")
                    if peers.borrow().num_connected_peers == 0:
                        log.warning("All peers disconnected")
                        break
        finally:
            _cancel_all(waiters.values())
            if self._ongoing is not None:
                log.warning("Cancelling fetching of %s", self._ongoing.batch)
                self._ongoing.task.cancel()
                self._ongoing = None

    def _syncing_info(self) -> SyncingInfo:
        try:
            local_head = self._store.head_height()
        except StoreError:
            local_head = 0
        return SyncingInfo(
            local_head=local_head,
            subjective_head=self._subjective_head_height or 0,
        )

    def _report(self) -> None:
        info = self._syncing_info()
        batch = str(self._ongoing.batch) if self._ongoing is not None else "None"
        log.info(
            "syncing: %d/%d, ongoing batch: %s",
            info.local_head,
            info.subjective_head,
            batch,
        )

    async def _try_init_until_success(self) -> int:
        delays = init_backoff_delays()
        while True:
            try:
                return await try_init(self._p2p, self._store, self._genesis_hash)
            except Exception as exc:
                delay = next(delays)
                log.warning(
                    "Initialization of subjective head failed: %s. "
                    "Trying again in %.3fs.",
                    exc,
                    delay,
                )
                await asyncio.sleep(delay)

    def _on_cmd(self, cmd: _GetInfo) -> None:
        if not cmd.respond_to.done():
            cmd.respond_to.set_result(self._syncing_info())

    def _on_header_sub_message(self) -> None:
        # Without a subjective head there is nothing sensible to do yet.
        if self._subjective_head_height is None:
            return
        new_head = self._header_sub_watcher.borrow()
        if new_head is None:
            return
        new_head_height = new_head.height

        # Do not interfere with a batch that is being fetched.
        if self._ongoing is None:
            try:
                store_head_height = self._store.head_height()
            except StoreError:
                store_head_height = None
            if store_head_height is not None and store_head_height + 1 == new_head_height:
                # The header was already verified by the header subscription.
                try:
                    self._store.append_single_unchecked(new_head)
                except StoreError:
                    pass
                else:
                    log.info("Added header %d from HeaderSub", new_head_height)

        self._subjective_head_height = new_head_height

    def _fetch_next_batch(self) -> None:
        # Batches are fetched one at a time by design.
        if self._ongoing is not None:
            return
        if self._subjective_head_height is None:
            return
        try:
            local_head = self._store.get_head()
        except StoreError:
            return
        batch = plan_batch(local_head.height, self._subjective_head_height)
        if batch is None:
            return
        if self._p2p.peer_tracker_info().num_connected_peers == 0:
            # Recovered once the connecting loop sees a trusted peer again.
            return
        log.info("Fetching batch %d until %d", batch.start, batch.end)
        task = asyncio.create_task(
            self._p2p.get_verified_headers_range(local_head, batch.amount)
        )
        self._ongoing = _Ongoing(batch=batch, task=task)

    def _on_fetch_next_batch_result(self) -> None:
        ongoing = self._ongoing
        if ongoing is None:
            log.warning("No batch was scheduled, however result was received. Discarding it.")
            return
        self._ongoing = None
        batch = ongoing.batch
        try:
            headers = ongoing.task.result()
        except (Exception, asyncio.CancelledError) as exc:
            log.warning("Failed to receive batch %d until %d: %s", batch.start, batch.end, exc)
            return
        # Headers are already verified by the range request.
        try:
            self._store.append_unchecked(headers)
        except StoreError as exc:
            log.warning("Failed to store batch %d until %d: %s", batch.start, batch.end, exc)