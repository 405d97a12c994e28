# src/stakeapi/codec/cbor.py
from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, TypeVar

import cbor2

from stakeapi.logging_util import log_event

T = TypeVar("T")

log = logging.getLogger("stakeapi.codec")

MIN_PROTOCOL_MAJOR = 2
MAX_PROTOCOL_MAJOR = 10

# Protocol major version from which sets carry the explicit tag 258.
SET_TAG_PROTOCOL_MAJOR = 9
SET_TAG = 258

WORD64_MAX = 2**64 - 1


class WireDecodeError(RuntimeError):
    def __init__(self, code: str, msg: str, *, label: Optional[str] = None) -> None:
        super().__init__(msg)
        self.code = code
        self.label = label


class WireEncodeError(RuntimeError):
    def __init__(self, code: str, msg: str) -> None:
        super().__init__(msg)
        self.code = code


@dataclass(frozen=True, order=True)
class ProtocolVersion:
    """Ledger protocol version supplied by the caller; never written into the bytes."""

    major: int
    minor: int = 0

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


SHELLEY_PROTOCOL_VERSION = ProtocolVersion(2, 0)
CONWAY_PROTOCOL_VERSION = ProtocolVersion(9, 0)


def _is_supported(pv: Any) -> bool:
    return (
        isinstance(pv, ProtocolVersion)
        and isinstance(pv.major, int)
        and MIN_PROTOCOL_MAJOR <= pv.major <= MAX_PROTOCOL_MAJOR
        and isinstance(pv.minor, int)
        and pv.minor >= 0
    )


def tags_sets(pv: ProtocolVersion) -> bool:
    return pv.major >= SET_TAG_PROTOCOL_MAJOR


def serialize(obj: Any, *, protocol_version: ProtocolVersion, default: Optional[Callable[..., Any]] = None) -> bytes:
    if not _is_supported(protocol_version):
        raise WireEncodeError("unsupported_protocol_version", f"unsupported protocol version: {protocol_version!r}")
    try:
        return cbor2.dumps(obj, default=default)
    except (cbor2.CBOREncodeError, TypeError, ValueError) as e:
        raise WireEncodeError("encode_failed", f"cbor encode failed: {e}") from e


def decode_full(
    data: bytes,
    *,
    protocol_version: ProtocolVersion,
    label: str,
    decoder: Callable[[Any, ProtocolVersion], T],
) -> T:
    """Decode exactly one CBOR item from `data` and hand it to `decoder`.

    Any failure is reported as WireDecodeError carrying `label` as context.
    """
    if not _is_supported(protocol_version):
        raise WireDecodeError(
            "unsupported_protocol_version",
            f"{label}: unsupported protocol version: {protocol_version!r}",
            label=label,
        )
    if not isinstance(data, (bytes, bytearray)):
        raise WireDecodeError("invalid_input", f"{label}: expected bytes, got {type(data).__name__}", label=label)

    fp = io.BytesIO(bytes(data))
    try:
        raw = cbor2.CBORDecoder(fp).decode()
    except cbor2.CBORDecodeError as e:
        log_event(log, "cbor_decode_failed", level=logging.DEBUG, label=label, code="invalid_cbor")
        raise WireDecodeError("invalid_cbor", f"{label}: invalid cbor: {e}", label=label) from e

    if fp.tell() != len(data):
        raise WireDecodeError(
            "trailing_bytes",
            f"{label}: {len(data) - fp.tell()} leftover bytes after the encoded value",
            label=label,
        )

    try:
        return decoder(raw, protocol_version)
    except WireDecodeError as e:
        log_event(log, "cbor_decode_failed", level=logging.DEBUG, label=label, code=e.code)
        if e.label is not None:
            raise
        raise WireDecodeError(e.code, f"{label}: {e}", label=label) from e


# ---------------------------------------------------------------------------
# Primitive coercions shared by the wire modules
# ---------------------------------------------------------------------------


def expect_list(v: Any, what: str, *, size: Optional[int] = None) -> List[Any]:
    if not isinstance(v, (list, tuple)):
        raise WireDecodeError("invalid_array", f"{what}: expected array, got {type(v).__name__}")
    if size is not None and len(v) != size:
        raise WireDecodeError("invalid_array_length", f"{what}: expected {size} elements, got {len(v)}")
    return list(v)


def expect_uint(v: Any, what: str, *, maximum: int = WORD64_MAX) -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise WireDecodeError("invalid_uint", f"{what}: expected unsigned integer, got {type(v).__name__}")
    if v < 0 or v > maximum:
        raise WireDecodeError("invalid_uint", f"{what}: {v} outside 0..{maximum}")
    return v


def expect_int(v: Any, what: str) -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise WireDecodeError("invalid_int", f"{what}: expected integer, got {type(v).__name__}")
    return v


def expect_bytes(v: Any, what: str, *, size: Optional[int] = None) -> bytes:
    if not isinstance(v, bytes):
        raise WireDecodeError("invalid_bytes", f"{what}: expected byte string, got {type(v).__name__}")
    if size is not None and len(v) != size:
        raise WireDecodeError("invalid_bytes_length", f"{what}: expected {size} bytes, got {len(v)}")
    return v


def expect_text(v: Any, what: str) -> str:
    if not isinstance(v, str):
        raise WireDecodeError("invalid_text", f"{what}: expected text string, got {type(v).__name__}")
    return v


def encode_set(items: Iterable[Any], pv: ProtocolVersion) -> Any:
    ordered = sorted(items)
    if tags_sets(pv):
        return cbor2.CBORTag(SET_TAG, ordered)
    return ordered


def decode_set(v: Any, pv: ProtocolVersion, what: str) -> List[Any]:
    # cbor2 decodes tag 258 into a set on its own; unknown handling leaves a CBORTag.
    if isinstance(v, cbor2.CBORTag) and v.tag == SET_TAG:
        v = v.value
        tagged = True
    else:
        tagged = isinstance(v, (set, frozenset))
    if tagged and not tags_sets(pv):
        raise WireDecodeError("unexpected_set_tag", f"{what}: set tag not allowed before protocol {SET_TAG_PROTOCOL_MAJOR}")
    if isinstance(v, (set, frozenset)):
        return list(v)
    return expect_list(v, what)
