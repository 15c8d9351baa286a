"""Helpers for protocol identifiers, multiaddresses and header validation."""

from __future__ import annotations

import asyncio
from typing import Iterable, Optional, Protocol, Sequence

VALIDATIONS_PER_YIELD = 4

# Multiaddr protocols that carry no value component.
_NO_VALUE_PROTOCOLS = frozenset(
    {
        "quic",
        "quic-v1",
        "webtransport",
        "ws",
        "wss",
        "tls",
        "noise",
        "http",
        "https",
        "p2p-circuit",
        "webrtc",
        "webrtc-direct",
        "udt",
        "utp",
        "p2p-webrtc-direct",
        "p2p-websocket-star",
        "p2p-stardust",
        "plaintextv2",
    }
)
_PATH_PROTOCOLS = frozenset({"unix"})
_PEER_PROTOCOLS = frozenset({"p2p", "ipfs"})


class _Validatable(Protocol):
    def validate(self) -> None: ...


def protocol_id(network: str, protocol: str) -> str:
    """Build a stream protocol id ``/<network>/<protocol>``."""
    return f"/{network.strip('/')}/{protocol.strip('/')}"


def celestia_protocol_id(network: str, protocol: str) -> str:
    """Build a stream protocol id under the ``/celestia/<network>`` prefix."""
    return protocol_id(f"/celestia/{network.strip('/')}", protocol)


def gossipsub_topic(network: str, topic: str) -> str:
    """Build a gossipsub topic name ``/<network>/<topic>``."""
    return f"/{network.strip('/')}/{topic.strip('/')}"


def multiaddr_peer_id(addr: str) -> Optional[str]:
    """Return the peer id carried by a textual multiaddress, if any."""
    if not addr.startswith("/"):
        raise ValueError(f"multiaddress must start with '/': {addr!r}")
    parts = iter(addr[1:].split("/") if addr != "/" else [])
    for name in parts:
        if not name:
            raise ValueError(f"empty protocol in multiaddress: {addr!r}")
        if name in _NO_VALUE_PROTOCOLS:
            continue
        if name in _PATH_PROTOCOLS:
            return None
        value = next(parts, None)
        if not value:
            raise ValueError(f"protocol {name!r} is missing its value in {addr!r}")
        if name in _PEER_PROTOCOLS:
            return value
    return None


async def validate_headers(headers: Iterable[_Validatable]) -> None:
    """Validate every header, yielding to the event loop between chunks."""
    items: Sequence[_Validatable] = list(headers)
    for start in range(0, len(items), VALIDATIONS_PER_YIELD):
        for header in items[start : start + VALIDATIONS_PER_YIELD]:
            header.validate()
        # Validation is computation heavy, so let other tasks run.
        await asyncio.sleep(0)