# src/stakeapi/metadata/chunks.py
from __future__ import annotations

from typing import Callable, List, Tuple, TypeVar

from stakeapi.metadata.model import (
    TX_METADATA_BYTES_MAX_LENGTH,
    TX_METADATA_TEXT_MAX_BYTES,
    TxMetaBytes,
    TxMetaList,
    TxMetaText,
)

S = TypeVar("S")
C = TypeVar("C")


def chunks(
    max_length: int,
    hoist: Callable[[S], C],
    measure: Callable[[S], int],
    split_at: Callable[[int, S], Tuple[S, S]],
    s: S,
) -> List[C]:
    """Cut `s` into chunks of at most `max_length`, filled from left to right.

    Only the last chunk may be shorter than `max_length`; an empty input gives
    no chunks at all.
    """
    if isinstance(max_length, bool) or not isinstance(max_length, int) or max_length <= 0:
        raise ValueError(f"max_length must be a positive integer; got: {max_length!r}")

    out: List[C] = []
    rest = s
    while measure(rest) > max_length:
        head, rest = split_at(max_length, rest)
        if measure(head) == 0:
            raise ValueError(f"cannot split into chunks of at most {max_length}: first element is longer")
        out.append(hoist(head))
    if measure(rest) > 0:
        out.append(hoist(rest))
    return out


def _bytes_split_at(n: int, data: bytes) -> Tuple[bytes, bytes]:
    return data[:n], data[n:]


def _utf8_split_at(n: int, encoded: bytes) -> Tuple[bytes, bytes]:
    # Back off to the start of the code point straddling the limit.
    cut = n
    while cut > 0 and (encoded[cut] & 0xC0) == 0x80:
        cut -= 1
    return encoded[:cut], encoded[cut:]


def chunk_bytes(data: bytes, max_length: int = TX_METADATA_BYTES_MAX_LENGTH) -> List[bytes]:
    return chunks(max_length, bytes, len, _bytes_split_at, bytes(data))


def chunk_text(text: str, max_bytes: int = TX_METADATA_TEXT_MAX_BYTES) -> List[str]:
    """Split `text` so each piece is at most `max_bytes` UTF-8 bytes and whole code points."""
    return chunks(max_bytes, lambda b: b.decode("utf-8"), len, _utf8_split_at, text.encode("utf-8"))


def meta_text_chunks(text: str) -> TxMetaList:
    return TxMetaList([TxMetaText(t) for t in chunk_text(text)])


def meta_bytes_chunks(data: bytes) -> TxMetaList:
    return TxMetaList([TxMetaBytes(b) for b in chunk_bytes(data)])
