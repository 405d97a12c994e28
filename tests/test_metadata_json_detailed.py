from __future__ import annotations

import pytest

from stakeapi.metadata.json_codec import (
    TxMetadataJsonError,
    TxMetadataJsonSchema,
    metadata_from_json,
    metadata_from_json_text,
    metadata_to_json,
    metadata_to_json_text,
)
from stakeapi.metadata.model import TxMetaBytes, TxMetadata, TxMetaList, TxMetaMap, TxMetaNumber, TxMetaText

DETAILED = TxMetadataJsonSchema.DETAILED_SCHEMA


def test_empty_map_example() -> None:
    md = TxMetadata({0: TxMetaMap([])})
    assert metadata_to_json(DETAILED, md) == {"0": {"map": []}}
    assert metadata_from_json(DETAILED, {"0": {"map": []}}) == md


def test_every_kind_round_trips() -> None:
    md = TxMetadata(
        {
            1: TxMetaMap(
                [
                    (TxMetaList([TxMetaNumber(1)]), TxMetaText("list key")),
                    (TxMetaMap([]), TxMetaBytes(b"")),
                    (TxMetaNumber(1), TxMetaNumber(2)),
                    (TxMetaNumber(1), TxMetaNumber(3)),
                ]
            ),
            2: TxMetaBytes(bytes(range(16))),
            2**64 - 1: TxMetaText("ünïcode"),
        }
    )
    doc = metadata_to_json(DETAILED, md)
    assert doc["2"] == {"bytes": "000102030405060708090a0b0c0d0e0f"}
    assert doc["1"]["map"][2] == {"k": {"int": 1}, "v": {"int": 2}}
    assert metadata_from_json(DETAILED, doc) == md


def test_schema_valid_json_round_trips() -> None:
    doc = {
        "674": {
            "map": [
                {"k": {"string": "msg"}, "v": {"list": [{"string": "hello"}, {"int": -1}]}},
                {"k": {"bytes": "00ff"}, "v": {"map": []}},
            ]
        }
    }
    assert metadata_to_json(DETAILED, metadata_from_json(DETAILED, doc)) == doc


def test_hex_of_either_case_is_accepted_and_folded() -> None:
    md = metadata_from_json(DETAILED, {"1": {"bytes": "CAFEbabe"}})
    assert md[1] == TxMetaBytes(bytes.fromhex("cafebabe"))
    assert metadata_to_json(DETAILED, md) == {"1": {"bytes": "cafebabe"}}


def test_text_round_trip() -> None:
    md = TxMetadata({3: TxMetaList([TxMetaText("a"), TxMetaNumber(0)])})
    text = metadata_to_json_text(DETAILED, md)
    assert metadata_from_json_text(DETAILED, text) == md


@pytest.mark.parametrize(
    "value,code",
    [
        ("plain", "not_object"),
        ({}, "bad_object"),
        ({"int": 1, "string": "x"}, "bad_object"),
        ({"float": 1}, "bad_object"),
        ({"int": "1"}, "type_mismatch"),
        ({"bytes": "abc"}, "type_mismatch"),
        ({"bytes": "zz"}, "type_mismatch"),
        ({"string": 5}, "type_mismatch"),
        ({"list": {}}, "type_mismatch"),
        ({"map": [{"k": {"int": 1}}]}, "bad_map_pair"),
        ({"map": [{"k": {"int": 1}, "v": {"int": 1}, "x": 0}]}, "bad_map_pair"),
        ({"int": 1.5}, "number_not_integer"),
        ({"list": [None]}, "not_object"),
    ],
)
def test_schema_errors(value: object, code: str) -> None:
    with pytest.raises(TxMetadataJsonError) as ei:
        metadata_from_json(DETAILED, {"9": value})
    assert ei.value.code == "schema_error"
    assert ei.value.label == 9
    assert ei.value.detail.code == code


def test_range_error_in_detailed_schema() -> None:
    with pytest.raises(TxMetadataJsonError) as ei:
        metadata_from_json(DETAILED, {"1": {"bytes": "00" * 65}})
    assert ei.value.code == "range_error"
    assert ei.value.detail.code == "bytes_too_long"
    assert "Value out of range within the metadata item 1" in ei.value.reason


def test_type_mismatch_message_names_the_field() -> None:
    with pytest.raises(TxMetadataJsonError) as ei:
        metadata_from_json(DETAILED, {"1": {"string": 5}})
    assert 'The value in the field "string" does not have the type required by the schema.' in ei.value.detail.reason
