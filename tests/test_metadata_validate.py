from __future__ import annotations

import pytest

from stakeapi.metadata.model import (
    TX_METADATA_NUMBER_MAX,
    TxMetaBytes,
    TxMetadata,
    TxMetaList,
    TxMetaMap,
    TxMetaNumber,
    TxMetaText,
)
from stakeapi.metadata.validate import (
    TxMetadataValidationError,
    bytes_too_long,
    ensure_valid_tx_metadata,
    number_out_of_range,
    text_too_long,
    validate_tx_metadata,
)


def test_in_range_boundaries_pass() -> None:
    md = TxMetadata(
        {
            0: TxMetaNumber(TX_METADATA_NUMBER_MAX),
            1: TxMetaNumber(-TX_METADATA_NUMBER_MAX),
            2: TxMetaBytes(b"\x00" * 64),
            3: TxMetaText("a" * 64),
        }
    )
    assert validate_tx_metadata(md) == []
    assert ensure_valid_tx_metadata(md) is md


def test_text_limit_counts_utf8_bytes_not_characters() -> None:
    # 22 characters, 66 bytes.
    md = TxMetadata({5: TxMetaText("€" * 22)})
    assert validate_tx_metadata(md) == [(5, text_too_long(66))]


def test_collects_every_violation_at_every_depth() -> None:
    nested = TxMetaMap(
        [
            (TxMetaBytes(b"k" * 65), TxMetaList([TxMetaNumber(2**64), TxMetaText("ok")])),
            (TxMetaText("fine"), TxMetaNumber(-(2**64))),
        ]
    )
    md = TxMetadata({1: nested, 2: TxMetaText("x" * 70)})
    assert validate_tx_metadata(md) == [
        (1, bytes_too_long(65)),
        (1, number_out_of_range(2**64)),
        (1, number_out_of_range(-(2**64))),
        (2, text_too_long(70)),
    ]


def test_ensure_valid_raises_with_all_errors() -> None:
    md = TxMetadata({1: TxMetaNumber(2**64), 2: TxMetaBytes(b"b" * 100)})
    with pytest.raises(TxMetadataValidationError) as ei:
        ensure_valid_tx_metadata(md)
    assert ei.value.code == "metadata_out_of_range"
    assert [(label, code) for label, code, _ in ei.value.details] == [
        (1, "number_out_of_range"),
        (2, "bytes_too_long"),
    ]


def test_range_error_messages() -> None:
    assert "outside the range -(2^64-1) .. 2^64-1" in number_out_of_range(2**64).message
    assert "at most 64 UTF8 bytes, but it consists of 65 bytes" in text_too_long(65).message
    assert "at most 64 bytes, but it consists of 80 bytes" in bytes_too_long(80).message
