"""JSON encodings for optional protobuf ``Any`` and ``Timestamp`` values.

The module also records which message types get JSON support and which
fields need a special JSON encoding.
"""

from __future__ import annotations

import base64
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NANOS_PER_SECOND = 1_000_000_000

_SERIALIZED_TYPES = frozenset(
    {
        ".celestia.da.DataAvailabilityHeader",
        ".celestia.blob.v1.MsgPayForBlobs",
        ".cosmos.base.abci.v1beta1.ABCIMessageLog",
        ".cosmos.base.abci.v1beta1.Attribute",
        ".cosmos.base.abci.v1beta1.StringEvent",
        ".cosmos.base.abci.v1beta1.TxResponse",
        ".cosmos.base.v1beta1.Coin",
        ".cosmos.base.query.v1beta1.PageResponse",
        ".cosmos.staking.v1beta1.QueryDelegationResponse",
        ".cosmos.staking.v1beta1.DelegationResponse",
        ".cosmos.staking.v1beta1.Delegation",
        ".cosmos.staking.v1beta1.QueryRedelegationsResponse",
        ".cosmos.staking.v1beta1.RedelegationResponse",
        ".cosmos.staking.v1beta1.Redelegation",
        ".cosmos.staking.v1beta1.RedelegationEntryResponse",
        ".cosmos.staking.v1beta1.RedelegationEntry",
        ".cosmos.staking.v1beta1.QueryUnbondingDelegationResponse",
        ".cosmos.staking.v1beta1.UnbondingDelegation",
        ".cosmos.staking.v1beta1.UnbondingDelegationEntry",
        ".header.pb.ExtendedHeader",
        ".share.eds.byzantine.pb.BadEncoding",
        ".share.eds.byzantine.pb.Share",
        ".proof.pb.Proof",
        ".share.p2p.shrex.nd.NamespaceRowResponse",
    }
)

_FIELD_ENCODINGS = {
    ".celestia.da.DataAvailabilityHeader.row_roots": "vec_base64string",
    ".celestia.da.DataAvailabilityHeader.column_roots": "vec_base64string",
    ".cosmos.base.abci.v1beta1.TxResponse.tx": "option_any",
    ".cosmos.base.query.v1beta1.PageResponse.next_key": "base64string",
    ".cosmos.staking.v1beta1.RedelegationEntry.completion_time": "option_timestamp",
    ".cosmos.staking.v1beta1.UnbondingDelegationEntry.completion_time": "option_timestamp",
    ".share.eds.byzantine.pb.BadEncoding.axis": "from_str",
    ".proof.pb.Proof.nodes": "vec_base64string",
    ".proof.pb.Proof.leaf_hash": "base64string",
    ".share.p2p.shrex.nd.NamespaceRowResponse.shares": "vec_base64string",
}

_RFC3339 = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt ](\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d{1,9}))?([Zz]|[+-]\d{2}:\d{2})$"
)


@dataclass(frozen=True)
class Any:
    """A protobuf ``Any``: a type URL and the encoded message bytes."""

    type_url: str
    value: bytes = b""


@dataclass(frozen=True)
class Timestamp:
    """A protobuf ``Timestamp``: seconds since the epoch plus nanoseconds."""

    seconds: int
    nanos: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.nanos < _NANOS_PER_SECOND:
            raise ValueError(f"nanos out of range: {self.nanos}")


def _normalize_path(path: str) -> str:
    return path if path.startswith(".") else "." + path


def serialize_option_any(value: Optional[Any]) -> Optional[dict]:
    """Encode an optional ``Any`` as a JSON object, or ``None``."""
    if value is None:
        return None
    return {
        "type_url": value.type_url,
        "value": base64.b64encode(bytes(value.value)).decode("ascii"),
    }


def deserialize_option_any(data: Optional[dict]) -> Optional[Any]:
    """Decode an optional ``Any`` from its JSON object form."""
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValueError("expected an object for Any")
    try:
        type_url = data["type_url"]
        encoded = data["value"]
    except KeyError as exc:
        raise ValueError(f"missing field {exc.args[0]!r}") from None
    if not isinstance(type_url, str) or not isinstance(encoded, str):
        raise ValueError("Any fields must be strings")
    return Any(type_url=type_url, value=base64.b64decode(encoded, validate=True))


def format_timestamp(timestamp: Timestamp) -> str:
    """Format a timestamp as RFC 3339 in UTC, trimming trailing zero nanos."""
    dt = _EPOCH + timedelta(seconds=timestamp.seconds)
    text = (
        f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"
        f"T{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}"
    )
    if timestamp.nanos:
        text += "." + f"{timestamp.nanos:09d}".rstrip("0")
    return text + "Z"


def parse_timestamp(text: str) -> Timestamp:
    """Parse an RFC 3339 date-time into a timestamp."""
    match = _RFC3339.match(text)
    if match is None:
        raise ValueError(f"invalid RFC 3339 timestamp: {text!r}")
    year, month, day, hour, minute, second, fraction, offset = match.groups()
    if offset in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = -1 if offset[0] == "-" else 1
        hours, minutes = int(offset[1:3]), int(offset[4:6])
        tz = timezone(sign * timedelta(hours=hours, minutes=minutes))
    dt = datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second), tzinfo=tz
    )
    delta = dt - _EPOCH
    seconds = delta.days * 86_400 + delta.seconds
    nanos = int(fraction.ljust(9, "0")) if fraction else 0
    return Timestamp(seconds=seconds, nanos=nanos)


def serialize_option_timestamp(value: Optional[Timestamp]) -> Optional[str]:
    """Encode an optional timestamp as an RFC 3339 string, or ``None``."""
    return None if value is None else format_timestamp(value)


def deserialize_option_timestamp(data: Optional[str]) -> Optional[Timestamp]:
    """Decode an optional timestamp from its RFC 3339 string form."""
    if data is None:
        return None
    if not isinstance(data, str):
        raise ValueError("expected a string for Timestamp")
    return parse_timestamp(data)


def field_encoding(field_path: str) -> Optional[str]:
    """Return the special JSON encoding for a message field, if it has one."""
    return _FIELD_ENCODINGS.get(_normalize_path(field_path))


def has_json_support(type_path: str) -> bool:
    """Tell whether a message type has a JSON representation."""
    return _normalize_path(type_path) in _SERIALIZED_TYPES