import json

import pytest

from dalight.serializers import (
    Any,
    Timestamp,
    deserialize_option_any,
    deserialize_option_timestamp,
    field_encoding,
    format_timestamp,
    has_json_support,
    parse_timestamp,
    serialize_option_any,
    serialize_option_timestamp,
)


def _dumps(obj):
    return json.dumps(obj, separators=(",", ":"))


def test_serialize():
    msg = {"tx": serialize_option_any(Any(type_url="abc", value=bytes([1, 2, 3])))}
    assert _dumps(msg) == '{"tx":{"type_url":"abc","value":"AQID"}}'


def test_serialize_none():
    msg = {"tx": serialize_option_any(None)}
    assert _dumps(msg) == '{"tx":null}'


def test_deserialize():
    msg = json.loads('{"tx":{"type_url":"abc","value":"AQID"}}')
    tx = deserialize_option_any(msg.get("tx"))
    assert tx.type_url == "abc"
    assert tx.value == bytes([1, 2, 3])


def test_deserialize_none():
    assert deserialize_option_any(json.loads('{"tx":null}').get("tx")) is None
    assert deserialize_option_any(json.loads("{}").get("tx")) is None


def test_deserialize_missing_field():
    with pytest.raises(ValueError):
        deserialize_option_any({"type_url": "abc"})


def test_deserialize_bad_base64():
    with pytest.raises(ValueError):
        deserialize_option_any({"type_url": "abc", "value": "@@@"})


def test_timestamp_epoch():
    assert format_timestamp(Timestamp(0, 0)) == "1970-01-01T00:00:00Z"
    assert parse_timestamp("1970-01-01T00:00:00Z") == Timestamp(0, 0)


@pytest.mark.parametrize(
    "ts",
    [
        Timestamp(0, 0),
        Timestamp(1_686_300_000, 123_456_789),
        Timestamp(1_686_300_000, 500_000_000),
        Timestamp(-86_400, 1),
    ],
)
def test_timestamp_round_trip(ts):
    assert parse_timestamp(format_timestamp(ts)) == ts
    assert deserialize_option_timestamp(serialize_option_timestamp(ts)) == ts


def test_timestamp_offset():
    assert parse_timestamp("1970-01-01T01:00:00+01:00") == Timestamp(0, 0)


def test_option_timestamp_none():
    assert serialize_option_timestamp(None) is None
    assert deserialize_option_timestamp(None) is None


def test_timestamp_invalid():
    with pytest.raises(ValueError):
        parse_timestamp("yesterday")
    with pytest.raises(ValueError):
        Timestamp(0, 1_000_000_000)


def test_field_encoding():
    assert field_encoding(".proof.pb.Proof.nodes") == "vec_base64string"
    assert field_encoding(".cosmos.base.abci.v1beta1.TxResponse.tx") == "option_any"
    assert (
        field_encoding(".cosmos.staking.v1beta1.RedelegationEntry.completion_time")
        == "option_timestamp"
    )
    assert field_encoding(".share.eds.byzantine.pb.BadEncoding.axis") == "from_str"
    assert field_encoding(".proof.pb.Proof.unknown") is None


def test_has_json_support():
    assert has_json_support(".cosmos.base.v1beta1.Coin")
    assert has_json_support("header.pb.ExtendedHeader")
    assert not has_json_support(".cosmos.tx.v1beta1.Tx")