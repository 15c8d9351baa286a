"""A JSON-RPC client for a data availability node's API.

The client does not open connections itself. It sends requests through a
transport object that provides:

* ``async request(method, params)`` returning the decoded JSON result, and
* ``subscribe(method, params, unsubscribe)`` returning an async iterator of
  decoded JSON items.

Parameters are converted to JSON values before they are sent. Byte strings
become standard base64 text. Objects with a ``to_json()`` method are
replaced by what that method returns. Lists, tuples and dicts are converted
element by element. Results come back as the transport decoded them.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional, Protocol, Sequence


class RpcError(Exception):
    """A request failed in the transport or was rejected by the node."""


class Transport(Protocol):
    async def request(self, method: str, params: list) -> Any: ...

    def subscribe(
        self, method: str, params: list, unsubscribe: str
    ) -> AsyncIterator[Any]: ...


def _to_json(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    to_json = getattr(value, "to_json", None)
    if callable(to_json):
        return to_json()
    if isinstance(value, dict):
        return {key: _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(item) for item in value]
    return value


def _optional_uint(data: dict, key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{key} must be a non-negative integer, got {value!r}")
    return value


@dataclass(frozen=True)
class SubmitOptions:
    """Fee and gas limit for a blob submission; ``None`` lets the node choose."""

    fee: Optional[int] = None
    gas_limit: Optional[int] = None

    def to_json(self) -> dict:
        """Encode as the node expects: a missing fee is sent as ``-1``."""
        return {
            "Fee": -1 if self.fee is None else self.fee,
            "GasLimit": self.gas_limit,
        }

    @classmethod
    def from_json(cls, data: dict) -> "SubmitOptions":
        """Decode from the JSON object form produced by ``to_json``."""
        if not isinstance(data, dict):
            raise ValueError("expected an object for SubmitOptions")
        fee = data.get("Fee")
        if fee == -1 and not isinstance(fee, bool):
            fee = None
            data = {**data, "Fee": None}
        return cls(fee=_optional_uint(data, "Fee"), gas_limit=_optional_uint(data, "GasLimit"))


class RpcClient:
    """Typed access to the node's blob, header, p2p, share and state methods."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def _call(self, method: str, *params: Any) -> Any:
        try:
            return await self._transport.request(method, _to_json(list(params)))
        except RpcError:
            raise
        except Exception as exc:
            raise RpcError(f"{method} failed: {exc}") from exc

    async def _call_ignoring_result(self, method: str, *params: Any) -> None:
        # The node may answer these methods with malformed results, so only
        # failures of the request itself are reported.
        await self._call(method, *params)

    # Blob

    async def blob_get(self, height: int, namespace: Any, commitment: Any) -> Any:
        """Retrieve the blob by commitment under the given namespace and height."""
        return await self._call("blob.Get", height, namespace, commitment)

    async def blob_get_all(self, height: int, namespaces: Sequence[Any]) -> Any:
        """Return all blobs under the given namespaces and height."""
        return await self._call("blob.GetAll", height, list(namespaces))

    async def blob_get_proof(self, height: int, namespace: Any, commitment: Any) -> Any:
        """Retrieve proofs in the given namespace at the given height by commitment."""
        return await self._call("blob.GetProof", height, namespace, commitment)

    async def blob_included(
        self, height: int, namespace: Any, proof: Any, commitment: Any
    ) -> bool:
        """Check whether a commitment is included at a height under a namespace."""
        return await self._call("blob.Included", height, namespace, proof, commitment)

    async def blob_submit(
        self, blobs: Sequence[Any], opts: Optional[SubmitOptions] = None
    ) -> int:
        """Submit blobs atomically and return the height they were included at."""
        return await self._call("blob.Submit", list(blobs), opts or SubmitOptions())

    # Header

    async def header_get_by_hash(self, hash: Any) -> Any:
        return await self._call("header.GetByHash", hash)

    async def header_get_by_height(self, height: int) -> Any:
        return await self._call("header.GetByHeight", height)

    async def header_get_verified_range_by_height(self, start: Any, to: int) -> Any:
        """Return headers after ``start`` up to, not including, height ``to``."""
        return await self._call("header.GetVerifiedRangeByHeight", start, to)

    async def header_local_head(self) -> Any:
        return await self._call("header.LocalHead")

    async def header_network_head(self) -> Any:
        return await self._call("header.NetworkHead")

    async def header_subscribe(self) -> AsyncIterator[Any]:
        """Yield recent headers from the network as they arrive."""
        try:
            items = self._transport.subscribe(
                "header.Subscribe", [], "header.Unsubscribe"
            )
            async for item in items:
                yield item
        except RpcError:
            raise
        except Exception as exc:
            raise RpcError(f"header.Subscribe failed: {exc}") from exc

    async def header_sync_state(self) -> Any:
        return await self._call("header.SyncState")

    async def header_sync_wait(self) -> None:
        await self._call("header.SyncWait")

    async def header_wait_for_height(self, height: int) -> Any:
        return await self._call("header.WaitForHeight", height)

    # P2P

    async def p2p_bandwidth_for_peer(self, peer_id: Any) -> Any:
        return await self._call("p2p.BandwidthForPeer", peer_id)

    async def p2p_bandwidth_for_protocol(self, protocol_id: str) -> Any:
        return await self._call("p2p.BandwidthForProtocol", protocol_id)

    async def p2p_bandwidth_stats(self) -> Any:
        return await self._call("p2p.BandwidthStats")

    async def p2p_block_peer(self, peer_id: Any) -> None:
        await self._call_ignoring_result("p2p.BlockPeer", peer_id)

    async def p2p_close_peer(self, peer_id: Any) -> None:
        await self._call_ignoring_result("p2p.ClosePeer", peer_id)

    async def p2p_connect(self, address: Any) -> None:
        await self._call_ignoring_result("p2p.Connect", address)

    async def p2p_connectedness(self, peer_id: Any) -> Any:
        return await self._call("p2p.Connectedness", peer_id)

    async def p2p_info(self) -> Any:
        return await self._call("p2p.Info")

    async def p2p_is_protected(self, peer_id: Any, tag: str) -> bool:
        return await self._call("p2p.IsProtected", peer_id, tag)

    async def p2p_list_blocked_peers(self) -> Any:
        return await self._call("p2p.ListBlockedPeers")

    async def p2p_nat_status(self) -> Any:
        return await self._call("p2p.NATStatus")

    async def p2p_peer_info(self, peer_id: Any) -> Any:
        return await self._call("p2p.PeerInfo", peer_id)

    async def p2p_peers(self) -> Any:
        return await self._call("p2p.Peers")

    async def p2p_protect(self, peer_id: Any, tag: str) -> None:
        await self._call_ignoring_result("p2p.Protect", peer_id, tag)

    async def p2p_pub_sub_peers(self, topic: str) -> Optional[list]:
        """Peers joined on a topic; ``None`` when the node reports none."""
        return await self._call("p2p.PubSubPeers", topic)

    async def p2p_resource_state(self) -> Any:
        return await self._call("p2p.ResourceState")

    async def p2p_unblock_peer(self, peer_id: Any) -> None:
        await self._call_ignoring_result("p2p.UnblockPeer", peer_id)

    async def p2p_unprotect(self, peer_id: Any, tag: str) -> bool:
        return await self._call("p2p.Unprotect", peer_id, tag)

    # Share

    async def share_get_eds(self, root: Any) -> Any:
        return await self._call("share.GetEDS", root)

    async def share_get_share(self, root: Any, row: int, col: int) -> Any:
        return await self._call("share.GetShare", root, row, col)

    async def share_get_shares_by_namespace(self, root: Any, namespace: Any) -> Any:
        return await self._call("share.GetSharesByNamespace", root, namespace)

    async def share_shares_available(self, root: Any) -> None:
        await self._call("share.SharesAvailable", root)

    # State

    async def state_account_address(self) -> Any:
        return await self._call("state.AccountAddress")

    async def state_balance(self) -> Any:
        return await self._call("state.Balance")

    async def state_balance_for_address(self, addr: Any) -> Any:
        return await self._call("state.BalanceForAddress", addr)

    async def state_begin_redelegate(
        self, src: Any, dest: Any, amount: Any, fee: Any, gas_limit: int
    ) -> Any:
        return await self._call("state.BeginRedelegate", src, dest, amount, fee, gas_limit)

    async def state_cancel_unbonding_delegation(
        self, addr: Any, amount: Any, height: Any, fee: Any, gas_limit: int
    ) -> Any:
        return await self._call(
            "state.CancelUnbondingDelegation", addr, amount, height, fee, gas_limit
        )

    async def state_delegate(self, addr: Any, amount: Any, fee: Any, gas_limit: int) -> Any:
        return await self._call("state.Delegate", addr, amount, fee, gas_limit)

    async def state_is_stopped(self) -> bool:
        return await self._call("state.IsStopped")

    async def state_query_delegation(self, addr: Any) -> Any:
        return await self._call("state.QueryDelegation", addr)

    async def state_query_redelegations(self, src: Any, dest: Any) -> Any:
        return await self._call("state.QueryRedelegations", src, dest)

    async def state_query_unbonding(self, addr: Any) -> Any:
        return await self._call("state.QueryUnbonding", addr)

    async def state_submit_pay_for_blob(
        self, fee: Any, gas_limit: int, blobs: Sequence[Any]
    ) -> Any:
        return await self._call("state.SubmitPayForBlob", fee, gas_limit, list(blobs))

    async def state_submit_tx(self, tx: Any) -> Any:
        return await self._call("state.SubmitTx", tx)

    async def state_transfer(self, to: Any, amount: Any, fee: Any, gas_limit: int) -> Any:
        return await self._call("state.Transfer", to, amount, fee, gas_limit)

    async def state_undelegate(self, addr: Any, amount: Any, fee: Any, gas_limit: int) -> Any:
        return await self._call("Undelegate", addr, amount, fee, gas_limit)