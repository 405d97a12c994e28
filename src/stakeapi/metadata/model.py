# src/stakeapi/metadata/model.py
from __future__ import annotations

from dataclasses import dataclass
from functools import total_ordering
from typing import Any, Callable, ClassVar, Dict, Iterable, Iterator, Mapping, Optional, Tuple, Union

from stakeapi.errors import StakeApiError

TX_METADATA_TEXT_MAX_BYTES = 64
TX_METADATA_BYTES_MAX_LENGTH = 64
TX_METADATA_NUMBER_MAX = 2**64 - 1
TX_METADATA_LABEL_MAX = 2**64 - 1


@total_ordering
class TxMetadataValue:
    """Base of the five metadata value kinds.

    Values of different kinds order by kind: Map < List < Number < Bytes < Text,
    the same order the ledger uses, so sorting never disagrees with it.
    """

    RANK: ClassVar[int]

    def order_key(self) -> Tuple[Any, ...]:
        raise NotImplementedError

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, TxMetadataValue):
            return NotImplemented
        return self.order_key() < other.order_key()


def _check_child(v: Any, what: str) -> None:
    if not isinstance(v, TxMetadataValue):
        raise StakeApiError("invalid_metadata_value", f"{what}: expected a TxMetadataValue", {"type": type(v).__name__})


@dataclass(frozen=True, eq=True)
class TxMetaMap(TxMetadataValue):
    pairs: Tuple[Tuple[TxMetadataValue, TxMetadataValue], ...]

    RANK = 0

    def __post_init__(self) -> None:
        pairs = tuple((k, v) for k, v in self.pairs)
        for k, v in pairs:
            _check_child(k, "TxMetaMap key")
            _check_child(v, "TxMetaMap value")
        object.__setattr__(self, "pairs", pairs)

    def order_key(self) -> Tuple[Any, ...]:
        return (self.RANK, tuple((k.order_key(), v.order_key()) for k, v in self.pairs))


@dataclass(frozen=True, eq=True)
class TxMetaList(TxMetadataValue):
    items: Tuple[TxMetadataValue, ...]

    RANK = 1

    def __post_init__(self) -> None:
        items = tuple(self.items)
        for v in items:
            _check_child(v, "TxMetaList item")
        object.__setattr__(self, "items", items)

    def order_key(self) -> Tuple[Any, ...]:
        return (self.RANK, tuple(v.order_key() for v in self.items))


@dataclass(frozen=True, eq=True)
class TxMetaNumber(TxMetadataValue):
    value: int

    RANK = 2

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise StakeApiError("invalid_metadata_value", "TxMetaNumber holds an integer", {"type": type(self.value).__name__})

    def order_key(self) -> Tuple[Any, ...]:
        return (self.RANK, self.value)


@dataclass(frozen=True, eq=True)
class TxMetaBytes(TxMetadataValue):
    value: bytes

    RANK = 3

    def __post_init__(self) -> None:
        if not isinstance(self.value, bytes):
            raise StakeApiError("invalid_metadata_value", "TxMetaBytes holds bytes", {"type": type(self.value).__name__})

    def order_key(self) -> Tuple[Any, ...]:
        return (self.RANK, self.value)


@dataclass(frozen=True, eq=True)
class TxMetaText(TxMetadataValue):
    value: str

    RANK = 4

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise StakeApiError("invalid_metadata_value", "TxMetaText holds a string", {"type": type(self.value).__name__})
        try:
            self.value.encode("utf-8")
        except UnicodeEncodeError as e:
            raise StakeApiError("invalid_metadata_value", "TxMetaText must be encodable as UTF-8", {"position": e.start}) from e

    def order_key(self) -> Tuple[Any, ...]:
        return (self.RANK, self.value)


def _check_label(label: Any) -> int:
    if isinstance(label, bool) or not isinstance(label, int) or not 0 <= label <= TX_METADATA_LABEL_MAX:
        raise StakeApiError("invalid_metadata_label", "metadata labels are unsigned 64-bit integers", {"label": label})
    return label


class TxMetadata(Mapping[int, TxMetadataValue]):
    """Immutable map from unsigned 64-bit labels to metadata values, kept in label order."""

    __slots__ = ("_data",)

    def __init__(self, entries: Union[Mapping[int, TxMetadataValue], Iterable[Tuple[int, TxMetadataValue]], None] = None) -> None:
        items = entries.items() if isinstance(entries, Mapping) else (entries or ())
        data: Dict[int, TxMetadataValue] = {}
        for label, value in items:
            if not isinstance(value, TxMetadataValue):
                raise StakeApiError("invalid_metadata_value", f"label {label}: expected a TxMetadataValue", {"type": type(value).__name__})
            data[_check_label(label)] = value
        self._data = dict(sorted(data.items()))

    def __getitem__(self, label: int) -> TxMetadataValue:
        return self._data[label]

    def __iter__(self) -> Iterator[int]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"TxMetadata({self._data!r})"

    def __or__(self, other: "TxMetadata") -> "TxMetadata":
        """Union; on clashing labels the left-hand side wins."""
        if not isinstance(other, TxMetadata):
            return NotImplemented
        merged = dict(other._data)
        merged.update(self._data)
        return TxMetadata(merged)

    def to_dict(self) -> Dict[int, TxMetadataValue]:
        return dict(self._data)


def make_transaction_metadata(entries: Mapping[int, TxMetadataValue]) -> TxMetadata:
    return TxMetadata(entries)


def merge_transaction_metadata(
    merge: Callable[[TxMetadataValue, TxMetadataValue], TxMetadataValue],
    left: TxMetadata,
    right: TxMetadata,
) -> TxMetadata:
    """Union of two metadata maps, combining values under a shared label with `merge(left, right)`."""
    out: Dict[int, TxMetadataValue] = left.to_dict()
    for label, value in right.items():
        prev: Optional[TxMetadataValue] = out.get(label)
        out[label] = value if prev is None else merge(prev, value)
    return TxMetadata(out)
