# src/stakeapi/metadata/validate.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

from stakeapi.errors import StakeApiError
from stakeapi.metadata.model import (
    TX_METADATA_BYTES_MAX_LENGTH,
    TX_METADATA_NUMBER_MAX,
    TX_METADATA_TEXT_MAX_BYTES,
    TxMetaBytes,
    TxMetadata,
    TxMetadataValue,
    TxMetaList,
    TxMetaMap,
    TxMetaNumber,
    TxMetaText,
)


@dataclass(frozen=True)
class TxMetadataRangeError:
    """An out-of-range metadata value.

    code is one of "number_out_of_range" (value holds the number),
    "text_too_long" or "bytes_too_long" (value holds the actual byte length).
    """

    code: str
    value: int

    @property
    def message(self) -> str:
        if self.code == "number_out_of_range":
            return f"Numeric metadata value {self.value} is outside the range -(2^64-1) .. 2^64-1."
        if self.code == "text_too_long":
            return (
                f"Text string metadata value must consist of at most {TX_METADATA_TEXT_MAX_BYTES} UTF8 bytes, "
                f"but it consists of {self.value} bytes."
            )
        return (
            f"Byte string metadata value must consist of at most {TX_METADATA_BYTES_MAX_LENGTH} bytes, "
            f"but it consists of {self.value} bytes."
        )


def number_out_of_range(n: int) -> TxMetadataRangeError:
    return TxMetadataRangeError("number_out_of_range", n)


def text_too_long(length: int) -> TxMetadataRangeError:
    return TxMetadataRangeError("text_too_long", length)


def bytes_too_long(length: int) -> TxMetadataRangeError:
    return TxMetadataRangeError("bytes_too_long", length)


class TxMetadataValidationError(StakeApiError):
    """Raised by ensure_valid_tx_metadata; details holds every (label, error) pair."""


def validate_tx_metadata_value(value: TxMetadataValue) -> List[TxMetadataRangeError]:
    """Every range error inside `value`, depth first, left to right."""
    errors: List[TxMetadataRangeError] = []
    stack: List[TxMetadataValue] = [value]
    while stack:
        v = stack.pop()
        if isinstance(v, TxMetaNumber):
            if v.value > TX_METADATA_NUMBER_MAX or v.value < -TX_METADATA_NUMBER_MAX:
                errors.append(number_out_of_range(v.value))
        elif isinstance(v, TxMetaBytes):
            if len(v.value) > TX_METADATA_BYTES_MAX_LENGTH:
                errors.append(bytes_too_long(len(v.value)))
        elif isinstance(v, TxMetaText):
            n = len(v.value.encode("utf-8"))
            if n > TX_METADATA_TEXT_MAX_BYTES:
                errors.append(text_too_long(n))
        elif isinstance(v, TxMetaList):
            stack.extend(reversed(v.items))
        elif isinstance(v, TxMetaMap):
            for k, mv in reversed(v.pairs):
                stack.append(mv)
                stack.append(k)
    return errors


def validate_tx_metadata(metadata: TxMetadata) -> List[Tuple[int, TxMetadataRangeError]]:
    """Collect every range error in `metadata`; empty when all values are in range."""
    return [(label, err) for label, value in metadata.items() for err in validate_tx_metadata_value(value)]


def ensure_valid_tx_metadata(metadata: TxMetadata) -> TxMetadata:
    errors = validate_tx_metadata(metadata)
    if errors:
        raise TxMetadataValidationError(
            "metadata_out_of_range",
            f"{len(errors)} metadata value(s) out of range",
            [(label, err.code, err.message) for label, err in errors],
        )
    return metadata
