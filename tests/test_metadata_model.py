from __future__ import annotations

import pytest

from stakeapi.errors import StakeApiError
from stakeapi.metadata.model import (
    TxMetaBytes,
    TxMetadata,
    TxMetaList,
    TxMetaMap,
    TxMetaNumber,
    TxMetaText,
    make_transaction_metadata,
    merge_transaction_metadata,
)


def test_cross_kind_ordering_follows_map_list_number_bytes_text() -> None:
    values = [
        TxMetaText(""),
        TxMetaBytes(b""),
        TxMetaNumber(10**30),
        TxMetaList([]),
        TxMetaMap([]),
    ]
    assert sorted(values) == [
        TxMetaMap([]),
        TxMetaList([]),
        TxMetaNumber(10**30),
        TxMetaBytes(b""),
        TxMetaText(""),
    ]


def test_same_kind_ordering_uses_payload() -> None:
    assert TxMetaNumber(-1) < TxMetaNumber(0)
    assert TxMetaBytes(b"\x00") < TxMetaBytes(b"\x01")
    assert TxMetaText("a") < TxMetaText("b")
    assert TxMetaList([TxMetaNumber(1)]) < TxMetaList([TxMetaNumber(1), TxMetaNumber(0)])


def test_values_are_hashable_and_equal_by_content() -> None:
    a = TxMetaMap([(TxMetaText("k"), TxMetaList([TxMetaNumber(1)]))])
    b = TxMetaMap(((TxMetaText("k"), TxMetaList((TxMetaNumber(1),))),))
    assert a == b
    assert hash(a) == hash(b)


def test_number_rejects_bool() -> None:
    with pytest.raises(StakeApiError) as ei:
        TxMetaNumber(True)
    assert ei.value.code == "invalid_metadata_value"


def test_metadata_keeps_labels_sorted_and_unique() -> None:
    md = make_transaction_metadata({7: TxMetaText("b"), 1: TxMetaText("a")})
    assert list(md) == [1, 7]
    assert len(md) == 2
    assert md[7] == TxMetaText("b")


@pytest.mark.parametrize("label", [-1, 2**64, "1", True])
def test_metadata_rejects_bad_labels(label: object) -> None:
    with pytest.raises(StakeApiError) as ei:
        TxMetadata({label: TxMetaNumber(0)})  # type: ignore[dict-item]
    assert ei.value.code == "invalid_metadata_label"


def test_union_is_left_biased() -> None:
    left = TxMetadata({1: TxMetaText("left"), 2: TxMetaNumber(2)})
    right = TxMetadata({1: TxMetaText("right"), 3: TxMetaNumber(3)})
    merged = left | right
    assert merged == TxMetadata({1: TxMetaText("left"), 2: TxMetaNumber(2), 3: TxMetaNumber(3)})


def test_merge_combines_clashing_labels() -> None:
    left = TxMetadata({1: TxMetaList([TxMetaNumber(1)])})
    right = TxMetadata({1: TxMetaList([TxMetaNumber(2)]), 4: TxMetaText("x")})

    def concat(a: TxMetaList, b: TxMetaList) -> TxMetaList:
        return TxMetaList(a.items + b.items)

    merged = merge_transaction_metadata(concat, left, right)  # type: ignore[arg-type]
    assert merged[1] == TxMetaList([TxMetaNumber(1), TxMetaNumber(2)])
    assert merged[4] == TxMetaText("x")


@pytest.mark.parametrize(
    "cls,arg",
    [
        (TxMetaList, [5]),
        (TxMetaMap, [(TxMetaNumber(1), "x")]),
        (TxMetaMap, [(b"k", TxMetaNumber(1))]),
    ],
)
def test_containers_reject_non_metadata_children(cls: type, arg: list) -> None:
    with pytest.raises(StakeApiError) as ei:
        cls(arg)
    assert ei.value.code == "invalid_metadata_value"


def test_text_rejects_lone_surrogates() -> None:
    with pytest.raises(StakeApiError) as ei:
        TxMetaText("a\udc80")
    assert ei.value.code == "invalid_metadata_value"
    assert ei.value.details == {"position": 1}
