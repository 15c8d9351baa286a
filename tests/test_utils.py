import asyncio

import pytest

from dalight.utils import (
    celestia_protocol_id,
    gossipsub_topic,
    multiaddr_peer_id,
    protocol_id,
    validate_headers,
)


class _Header:
    def __init__(self, idx, events, fail=False):
        self.idx = idx
        self.events = events
        self.fail = fail

    def validate(self):
        self.events.append(self.idx)
        if self.fail:
            raise ValueError(f"invalid header {self.idx}")


def test_protocol_id_trims_slashes():
    assert protocol_id("/mocha/", "/header-ex/v0.0.3") == protocol_id("mocha", "header-ex/v0.0.3")
    assert protocol_id("mocha", "header-ex/v0.0.3") == "/mocha/header-ex/v0.0.3"


def test_celestia_protocol_id():
    result = celestia_protocol_id("/private/", "header-ex/v0.0.3")
    assert result.startswith("/celestia/")
    assert result == "/celestia/private/header-ex/v0.0.3"


def test_gossipsub_topic_matches_protocol_form():
    assert gossipsub_topic("/private", "header-sub/v0.0.1/") == protocol_id(
        "private", "header-sub/v0.0.1"
    )


def test_multiaddr_peer_id():
    assert multiaddr_peer_id("/ip4/127.0.0.1/tcp/2121/p2p/12D3KooWabc") == "12D3KooWabc"
    assert multiaddr_peer_id("/ip4/1.2.3.4/udp/1/quic-v1/p2p/PeerX") == "PeerX"
    assert multiaddr_peer_id("/ip4/127.0.0.1/tcp/2121") is None


def test_multiaddr_malformed():
    with pytest.raises(ValueError):
        multiaddr_peer_id("ip4/127.0.0.1")
    with pytest.raises(ValueError):
        multiaddr_peer_id("/ip4/127.0.0.1/tcp")


@pytest.mark.asyncio
async def test_validate_headers_yields_in_chunks():
    events = []
    headers = [_Header(i, events) for i in range(6)]

    async def other():
        events.append("other")

    task = asyncio.create_task(other())
    result = await validate_headers(headers)
    await task
    assert result is None
    assert events == [0, 1, 2, 3, "other", 4, 5]


@pytest.mark.asyncio
async def test_validate_headers_stops_at_first_error():
    events = []
    headers = [_Header(0, events), _Header(1, events, fail=True), _Header(2, events)]
    with pytest.raises(ValueError):
        await validate_headers(headers)
    assert events == [0, 1]