from __future__ import annotations

"""JSON mappings for transaction metadata.

Tx metadata is similar to JSON but not the same: it has no floating point,
null or boolean values, it limits string lengths, it distinguishes byte
strings from text strings, and any value may be a map key. Two mappings are
offered, chosen explicitly by TxMetadataJsonSchema:

NO_SCHEMA
    Almost any JSON converts, using the most compact metadata form:
    JSON strings with a "0x" prefix and lowercase hex become byte strings,
    integers become numbers, object keys that parse as integers or "0x" hex
    become number / byte-string keys. Metadata -> JSON is total but not
    invertible for structured map keys, which are rendered as JSON text.

DETAILED_SCHEMA
    Every value is a single-field object tagged "int", "bytes", "string",
    "list" or "map"; maps are arrays of {"k": ..., "v": ...} so any key type
    survives. Both directions round-trip.

In both mappings the top level is a JSON object keyed by unsigned decimal
labels without redundant leading zeros.
"""

import json
import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from stakeapi.errors import StakeApiError
from stakeapi.logging_util import log_event
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
from stakeapi.metadata.validate import TxMetadataRangeError, validate_tx_metadata_value

log = logging.getLogger("stakeapi.metadata")

BYTES_PREFIX = "0x"

_UNSIGNED = re.compile(r"0|[1-9][0-9]*")
_SIGNED = re.compile(r"[+-]?(?:0|[1-9][0-9]*)")
_HEX_LOWER = re.compile(r"(?:[0-9a-f]{2})*")
_HEX_ANY_CASE = re.compile(r"(?:[0-9a-fA-F]{2})*")

_DETAILED_TAGS = ("int", "bytes", "string", "list", "map")


class TxMetadataJsonSchema(Enum):
    NO_SCHEMA = "no_schema"
    DETAILED_SCHEMA = "detailed_schema"


# ----------------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------------


def _render(v: Any) -> str:
    return json.dumps(v, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


class TxMetadataJsonSchemaError(StakeApiError):
    """A JSON value that does not fit the chosen mapping."""

    @classmethod
    def null_not_allowed(cls) -> "TxMetadataJsonSchemaError":
        return cls("null_not_allowed", "JSON null values are not supported.")

    @classmethod
    def bool_not_allowed(cls) -> "TxMetadataJsonSchemaError":
        return cls("bool_not_allowed", "JSON bool values are not supported.")

    @classmethod
    def number_not_integer(cls, v: Any) -> "TxMetadataJsonSchemaError":
        return cls("number_not_integer", f"JSON numbers must be integers. Unexpected value: {v}", v)

    @classmethod
    def text_not_utf8(cls, v: str) -> "TxMetadataJsonSchemaError":
        return cls("text_not_utf8", f"JSON string is not valid Unicode text. Unexpected value: {v!r}", v)

    @classmethod
    def not_object(cls, v: Any) -> "TxMetadataJsonSchemaError":
        return cls("not_object", f"JSON object expected. Unexpected value: {_render(v)}", v)

    @classmethod
    def bad_object(cls, fields: List[Tuple[str, Any]]) -> "TxMetadataJsonSchemaError":
        return cls(
            "bad_object",
            "JSON object does not match the schema.\nExpected a single field named "
            '"int", "bytes", "string", "list" or "map".\n'
            f"Unexpected object field(s): {_render(dict(fields))}",
            fields,
        )

    @classmethod
    def bad_map_pair(cls, v: Any) -> "TxMetadataJsonSchemaError":
        return cls(
            "bad_map_pair",
            'Expected a list of key/value pair { "k": ..., "v": ... } objects.'
            f"\nUnexpected value: {_render(v)}",
            v,
        )

    @classmethod
    def type_mismatch(cls, key: str, v: Any) -> "TxMetadataJsonSchemaError":
        return cls(
            "type_mismatch",
            f'The value in the field "{key}" does not have the type required by the schema.'
            f"\nUnexpected value: {_render(v)}",
            {"field": key, "value": v},
        )


class TxMetadataJsonError(StakeApiError):
    """Failure converting a whole JSON document to TxMetadata.

    For schema and range errors `label` is the top-level label, `value` the
    offending JSON fragment and `detail` the underlying error.
    """

    @property
    def label(self) -> Optional[int]:
        return self.details.get("label") if isinstance(self.details, dict) else None

    @property
    def value(self) -> Any:
        return self.details.get("value") if isinstance(self.details, dict) else None

    @property
    def detail(self) -> Any:
        return self.details.get("detail") if isinstance(self.details, dict) else None

    @classmethod
    def toplevel_not_map(cls) -> "TxMetadataJsonError":
        return cls(
            "toplevel_not_map",
            "The JSON metadata top level must be a map (JSON object) from word to value.",
        )

    @classmethod
    def toplevel_bad_key(cls, key: str) -> "TxMetadataJsonError":
        return cls(
            "toplevel_bad_key",
            "The JSON metadata top level must be a map (JSON object) with unsigned integer keys.\n"
            f"Invalid key: {key!r}",
            {"key": key},
        )

    @classmethod
    def schema_error(cls, label: int, value: Any, detail: TxMetadataJsonSchemaError) -> "TxMetadataJsonError":
        return cls(
            "schema_error",
            f"JSON schema error within the metadata item {label}: {_render(value)}\n{detail.reason}",
            {"label": label, "value": value, "detail": detail},
        )

    @classmethod
    def range_error(cls, label: int, value: Any, detail: TxMetadataRangeError) -> "TxMetadataJsonError":
        return cls(
            "range_error",
            f"Value out of range within the metadata item {label}: {_render(value)}\n{detail.message}",
            {"label": label, "value": value, "detail": detail},
        )


# ----------------------------------------------------------------------------
# Shared parsing utils
# ----------------------------------------------------------------------------


def parse_unsigned(s: str) -> Optional[int]:
    """Decimal digits with no redundant leading zero, else None."""
    if not isinstance(s, str) or _UNSIGNED.fullmatch(s) is None:
        return None
    return int(s)


def parse_signed(s: str) -> Optional[int]:
    if not isinstance(s, str) or _SIGNED.fullmatch(s) is None:
        return None
    return int(s)


def parse_bytes(s: str) -> Optional[bytes]:
    """'0x' followed by lowercase hex, else None."""
    if not isinstance(s, str) or not s.startswith(BYTES_PREFIX):
        return None
    rest = s[len(BYTES_PREFIX) :]
    if _HEX_LOWER.fullmatch(rest) is None:
        return None
    return bytes.fromhex(rest)


def _is_json_number(v: Any) -> bool:
    return isinstance(v, (int, float, Decimal)) and not isinstance(v, bool)


def _json_integer(v: Any) -> int:
    if isinstance(v, int):
        return v
    if isinstance(v, float) and v.is_integer():
        return int(v)
    if isinstance(v, Decimal) and v.is_finite() and v == v.to_integral_value():
        return int(v)
    raise TxMetadataJsonSchemaError.number_not_integer(v)


def _bytes_to_prefixed_hex(b: bytes) -> str:
    return BYTES_PREFIX + b.hex()


# ----------------------------------------------------------------------------
# "No schema" mapping
# ----------------------------------------------------------------------------


def metadata_value_to_json_no_schema(value: TxMetadataValue) -> Any:
    if isinstance(value, TxMetaNumber):
        return value.value
    if isinstance(value, TxMetaBytes):
        return _bytes_to_prefixed_hex(value.value)
    if isinstance(value, TxMetaText):
        return value.value
    if isinstance(value, TxMetaList):
        return [metadata_value_to_json_no_schema(v) for v in value.items]
    if isinstance(value, TxMetaMap):
        return {_no_schema_key_to_json(k): metadata_value_to_json_no_schema(v) for k, v in value.pairs}
    raise TypeError(f"not a TxMetadataValue: {type(value).__name__}")


def _no_schema_key_to_json(key: TxMetadataValue) -> str:
    # JSON keys are strings; structured keys are rendered as JSON text.
    if isinstance(key, TxMetaNumber):
        return str(key.value)
    if isinstance(key, TxMetaBytes):
        return _bytes_to_prefixed_hex(key.value)
    if isinstance(key, TxMetaText):
        return key.value
    return json.dumps(metadata_value_to_json_no_schema(key), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _json_text(s: str) -> TxMetaText:
    try:
        s.encode("utf-8")
    except UnicodeEncodeError as e:
        raise TxMetadataJsonSchemaError.text_not_utf8(s) from e
    return TxMetaText(s)


def _no_schema_key_from_json(key: str) -> TxMetadataValue:
    n = parse_signed(key)
    if n is not None:
        return TxMetaNumber(n)
    b = parse_bytes(key)
    if b is not None:
        return TxMetaBytes(b)
    return _json_text(key)


def metadata_value_from_json_no_schema(v: Any) -> TxMetadataValue:
    if v is None:
        raise TxMetadataJsonSchemaError.null_not_allowed()
    if isinstance(v, bool):
        raise TxMetadataJsonSchemaError.bool_not_allowed()
    if _is_json_number(v):
        return TxMetaNumber(_json_integer(v))
    if isinstance(v, str):
        b = parse_bytes(v)
        return TxMetaBytes(b) if b is not None else _json_text(v)
    if isinstance(v, list):
        return TxMetaList([metadata_value_from_json_no_schema(x) for x in v])
    if isinstance(v, dict):
        return TxMetaMap(
            [(_no_schema_key_from_json(k), metadata_value_from_json_no_schema(x)) for k, x in sorted(v.items())]
        )
    raise TxMetadataJsonSchemaError("unsupported_json", f"unsupported JSON value of type {type(v).__name__}")


# ----------------------------------------------------------------------------
# "Detailed schema" mapping
# ----------------------------------------------------------------------------


def metadata_value_to_json_detailed_schema(value: TxMetadataValue) -> Any:
    if isinstance(value, TxMetaNumber):
        return {"int": value.value}
    if isinstance(value, TxMetaBytes):
        return {"bytes": value.value.hex()}
    if isinstance(value, TxMetaText):
        return {"string": value.value}
    if isinstance(value, TxMetaList):
        return {"list": [metadata_value_to_json_detailed_schema(v) for v in value.items]}
    if isinstance(value, TxMetaMap):
        return {
            "map": [
                {"k": metadata_value_to_json_detailed_schema(k), "v": metadata_value_to_json_detailed_schema(v)}
                for k, v in value.pairs
            ]
        }
    raise TypeError(f"not a TxMetadataValue: {type(value).__name__}")


def _detailed_pair_from_json(v: Any) -> Tuple[TxMetadataValue, TxMetadataValue]:
    if isinstance(v, dict) and len(v) == 2 and "k" in v and "v" in v:
        return metadata_value_from_json_detailed_schema(v["k"]), metadata_value_from_json_detailed_schema(v["v"])
    raise TxMetadataJsonSchemaError.bad_map_pair(v)


def metadata_value_from_json_detailed_schema(v: Any) -> TxMetadataValue:
    if not isinstance(v, dict):
        raise TxMetadataJsonSchemaError.not_object(v)

    if len(v) == 1:
        ((key, inner),) = v.items()
        if key == "int" and _is_json_number(inner):
            return TxMetaNumber(_json_integer(inner))
        if key == "bytes" and isinstance(inner, str) and _HEX_ANY_CASE.fullmatch(inner):
            return TxMetaBytes(bytes.fromhex(inner))
        if key == "string" and isinstance(inner, str):
            return _json_text(inner)
        if key == "list" and isinstance(inner, list):
            return TxMetaList([metadata_value_from_json_detailed_schema(x) for x in inner])
        if key == "map" and isinstance(inner, list):
            return TxMetaMap([_detailed_pair_from_json(x) for x in inner])
        if key in _DETAILED_TAGS:
            raise TxMetadataJsonSchemaError.type_mismatch(key, inner)

    raise TxMetadataJsonSchemaError.bad_object(list(v.items()))


# ----------------------------------------------------------------------------
# Top level
# ----------------------------------------------------------------------------


@dataclass(frozen=True)
class _JsonMapping:
    value_to_json: Callable[[TxMetadataValue], Any]
    value_from_json: Callable[[Any], TxMetadataValue]


_MAPPINGS: Dict[TxMetadataJsonSchema, _JsonMapping] = {
    TxMetadataJsonSchema.NO_SCHEMA: _JsonMapping(
        value_to_json=metadata_value_to_json_no_schema,
        value_from_json=metadata_value_from_json_no_schema,
    ),
    TxMetadataJsonSchema.DETAILED_SCHEMA: _JsonMapping(
        value_to_json=metadata_value_to_json_detailed_schema,
        value_from_json=metadata_value_from_json_detailed_schema,
    ),
}


def _mapping(schema: TxMetadataJsonSchema) -> _JsonMapping:
    try:
        return _MAPPINGS[schema]
    except (KeyError, TypeError) as e:
        raise StakeApiError("invalid_schema", f"unknown metadata JSON schema: {schema!r}") from e


def _top_level_label(key: Any) -> int:
    n = parse_unsigned(key) if isinstance(key, str) else None
    if n is None or n > TX_METADATA_LABEL_MAX:
        raise TxMetadataJsonError.toplevel_bad_key(str(key))
    return n


def metadata_to_json(schema: TxMetadataJsonSchema, metadata: TxMetadata) -> Dict[str, Any]:
    """Convert metadata to a JSON object. Total for every TxMetadata."""
    conv = _mapping(schema).value_to_json
    return {str(label): conv(value) for label, value in metadata.items()}


def metadata_from_json(schema: TxMetadataJsonSchema, value: Any) -> TxMetadata:
    """Convert a parsed JSON object to metadata; raises TxMetadataJsonError."""
    conv = _mapping(schema).value_from_json
    if not isinstance(value, dict):
        raise TxMetadataJsonError.toplevel_not_map()

    entries: Dict[int, TxMetadataValue] = {}
    for key, item in value.items():
        label = _top_level_label(key)
        try:
            mv = conv(item)
        except TxMetadataJsonSchemaError as e:
            log_event(log, "metadata_json_rejected", level=logging.DEBUG, label=label, code=e.code)
            raise TxMetadataJsonError.schema_error(label, item, e) from e
        range_errors = validate_tx_metadata_value(mv)
        if range_errors:
            log_event(log, "metadata_json_rejected", level=logging.DEBUG, label=label, code=range_errors[0].code)
            raise TxMetadataJsonError.range_error(label, item, range_errors[0])
        entries[label] = mv
    return TxMetadata(entries)


def metadata_from_json_text(schema: TxMetadataJsonSchema, text: str | bytes) -> TxMetadata:
    """Parse JSON text (non-integral numbers kept exact) and convert it."""
    try:
        value = json.loads(text, parse_float=Decimal)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise TxMetadataJsonError("invalid_json", f"invalid json: {e}") from e
    return metadata_from_json(schema, value)


def metadata_to_json_text(schema: TxMetadataJsonSchema, metadata: TxMetadata, *, indent: Optional[int] = None) -> str:
    return json.dumps(metadata_to_json(schema, metadata), ensure_ascii=False, indent=indent)
