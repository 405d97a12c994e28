# src/stakeapi/metadata/wire.py
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from stakeapi.codec.cbor import (
    ProtocolVersion,
    WireDecodeError,
    decode_full,
    expect_uint,
    serialize,
)
from stakeapi.metadata.model import (
    TX_METADATA_LABEL_MAX,
    TxMetaBytes,
    TxMetadata,
    TxMetadataValue,
    TxMetaList,
    TxMetaMap,
    TxMetaNumber,
    TxMetaText,
)

CBOR_LABEL = "TxMetadata"


@dataclass(frozen=True)
class MetadatumMap:
    """Ledger-side metadatum map.

    Keys may be any metadatum (including lists and maps) and may repeat, so the
    pairs are kept as a sequence rather than a dict.
    """

    pairs: Tuple[Tuple[Any, Any], ...]


def to_ledger_metadatum(value: TxMetadataValue) -> Any:
    if isinstance(value, TxMetaNumber):
        return value.value
    if isinstance(value, TxMetaBytes):
        return value.value
    if isinstance(value, TxMetaText):
        return value.value
    if isinstance(value, TxMetaList):
        return [to_ledger_metadatum(v) for v in value.items]
    if isinstance(value, TxMetaMap):
        return MetadatumMap(tuple((to_ledger_metadatum(k), to_ledger_metadatum(v)) for k, v in value.pairs))
    raise TypeError(f"not a TxMetadataValue: {type(value).__name__}")


def from_ledger_metadatum(v: Any) -> TxMetadataValue:
    if isinstance(v, bool):
        raise WireDecodeError("invalid_metadatum", "metadatum: booleans are not metadata")
    if isinstance(v, int):
        return TxMetaNumber(v)
    if isinstance(v, bytes):
        return TxMetaBytes(v)
    if isinstance(v, str):
        return TxMetaText(v)
    if isinstance(v, (list, tuple)):
        return TxMetaList([from_ledger_metadatum(x) for x in v])
    if isinstance(v, MetadatumMap):
        return TxMetaMap([(from_ledger_metadatum(k), from_ledger_metadatum(x)) for k, x in v.pairs])
    if isinstance(v, Mapping):
        return TxMetaMap([(from_ledger_metadatum(k), from_ledger_metadatum(x)) for k, x in v.items()])
    raise WireDecodeError("invalid_metadatum", f"metadatum: unsupported value of type {type(v).__name__}")


def to_ledger_metadata(metadata: TxMetadata) -> Dict[int, Any]:
    return {label: to_ledger_metadatum(value) for label, value in metadata.items()}


def from_ledger_metadata(raw: Any) -> TxMetadata:
    if isinstance(raw, MetadatumMap):
        items: List[Tuple[Any, Any]] = list(raw.pairs)
    elif isinstance(raw, Mapping):
        items = list(raw.items())
    else:
        raise WireDecodeError("invalid_metadata", f"metadata: expected map, got {type(raw).__name__}")
    entries: Dict[int, TxMetadataValue] = {}
    for label, value in items:
        entries[expect_uint(label, "metadata label", maximum=TX_METADATA_LABEL_MAX)] = from_ledger_metadatum(value)
    return TxMetadata(entries)


def _encode_metadatum_map(encoder: Any, value: Any) -> None:
    if not isinstance(value, MetadatumMap):
        raise TypeError(f"cannot serialize type {type(value).__name__}")
    encoder.encode_length(5, len(value.pairs))
    for k, v in value.pairs:
        encoder.encode(k)
        encoder.encode(v)


def serialise_tx_metadata(metadata: TxMetadata, *, protocol_version: ProtocolVersion) -> bytes:
    return serialize(to_ledger_metadata(metadata), protocol_version=protocol_version, default=_encode_metadatum_map)


def deserialise_tx_metadata(data: bytes, *, protocol_version: ProtocolVersion) -> TxMetadata:
    """Decode TxMetadata; failures are WireDecodeError labelled "TxMetadata".

    Range limits are not applied here; run validate_tx_metadata on the result.
    """
    return decode_full(
        data,
        protocol_version=protocol_version,
        label=CBOR_LABEL,
        decoder=lambda raw, _pv: from_ledger_metadata(raw),
    )
