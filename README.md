# dalight

Building blocks for a light node on a data availability network, written in
plain asyncio Python.

## What is inside

- `dalight.store`: `InMemoryStore`, an append-only chain of headers indexed
  by hash and by height. A header is any object with a `height` (an int) and a
  `hash` attribute. Errors derive from `StoreError`. They include
  `NotFoundError`, `HeightExistsError`, `HashExistsError`,
  `NonContinuousAppendError`, `LostHeightError` and `LostHashError`, plus
  `OpenFailedError`, `StoredDataError` and `BackingStoreError`, which the disk
  store uses.
- `dalight.disk_store`: `DiskStore`, which behaves the same way but keeps the
  headers in an SQLite database in a directory. You supply an `encode`
  function (header to bytes) and a `decode` function (bytes to header). A
  header's `hash` must convert to `bytes`. Open a store in one of three ways:
  `DiskStore(path, encode, decode)`, `open_default(network_id, encode, decode)`
  for the user cache directory, or `open_temporary(encode, decode)` for a
  directory that is removed on `close()`. It works as a context manager and
  has `flush()`.
- `dalight.sync_state`: `SyncingInfo`, `BatchRange` and
  `plan_batch(local_head, subjective_head)`, which plans ranges of at most 512
  headers. It also has `try_init(p2p, store, genesis_hash)` and
  `init_backoff_delays()`, an endless generator of randomised, growing retry
  delays capped around 60 seconds. The errors are `SyncerError`,
  `WorkerDiedError` and `ChannelClosedError`.
- `dalight.syncer`: `Syncer(p2p, store, genesis_hash=None)`. Once started with
  `start()` on a running event loop, it waits for a trusted peer and stores the
  genesis header if the store is empty. It fetches the network head and starts
  the header subscription, then downloads the missing headers one batch at a
  time. A new head that directly follows the store head is appended at once.
  If all peers disconnect, it goes back to waiting for a trusted peer.
  `await info()` returns a `SyncingInfo`. After `stop()` it raises
  `WorkerDiedError`.
- `dalight.serializers`: JSON helpers for optional protobuf values.
  `serialize_option_any` and `deserialize_option_any` handle `Any`, with the
  value in base64. `serialize_option_timestamp`,
  `deserialize_option_timestamp`, `format_timestamp` and `parse_timestamp`
  handle `Timestamp` as RFC 3339. `field_encoding(field_path)` and
  `has_json_support(type_path)` report which message fields and types have a
  JSON form.
- `dalight.utils`: `protocol_id`, `celestia_protocol_id`, `gossipsub_topic`,
  `multiaddr_peer_id` (the `/p2p/` or `/ipfs/` part of a textual multiaddr)
  and `async validate_headers(headers)`, which calls `validate()` on each
  header and yields to the event loop every four headers.
- `dalight.rpc`: `RpcClient(transport)`, with async methods for the node's
  `blob.*`, `header.*`, `p2p.*`, `share.*` and `state.*` API, and
  `SubmitOptions`. When `to_json()` encodes it, a missing fee becomes `-1`.
  Failures are raised as `RpcError`. `header_subscribe()` is an async
  generator.

## Install

```
pip install dalight
```

For the test suite:

```
pip install "dalight[test]"
pytest
```

## Examples

```python
from dataclasses import dataclass

from dalight.store import InMemoryStore, NonContinuousAppendError, NotFoundError


@dataclass(frozen=True)
class Header:
    height: int
    hash: bytes


store = InMemoryStore()
try:
    store.head_height()
except NotFoundError:
    print("store is empty")

store.append_unchecked([Header(1, b"\x01" * 32), Header(2, b"\x02" * 32)])
assert store.head_height() == 2

try:
    store.append_single_unchecked(Header(4, b"\x04" * 32))
except NonContinuousAppendError as exc:
    print(exc.head_height, exc.height)  # 2 4
```

```python
from dalight.sync_state import plan_batch
from dalight.serializers import Any, serialize_option_any
from dalight.utils import celestia_protocol_id

print(plan_batch(30, 1058))          # [31, 542]
print(serialize_option_any(Any("abc", b"\x01\x02\x03")))
# {'type_url': 'abc', 'value': 'AQID'}
print(celestia_protocol_id("mocha", "/header-ex/v0.0.3"))
# /celestia/mocha/header-ex/v0.0.3
```

## What it does not do

- There is no networking. The `Syncer` runs against a `p2p` object that you
  provide. It needs the coroutines `wait_connected_trusted`, `get_header`,
  `get_header_by_height`, `get_head_header`, `init_header_sub` and
  `get_verified_headers_range`. It also needs the methods
  `header_sub_watcher()`, `peer_tracker_info_watcher()` and
  `peer_tracker_info()`.
- `RpcClient` opens no connections. You provide a transport with an async
  `request(method, params)` and a `subscribe(method, params, unsubscribe)`
  that returns an async iterator.
- There is no header type and no cryptographic verification. Headers,
  namespaces, commitments and proofs are your own objects, and RPC results are
  returned as the transport decoded them.
- There is no command-line program.