from __future__ import annotations

"""Off-chain stake pool metadata document.

A pool registration certificate only carries the URL and the blake2b-256 hash
of this JSON document. validate_and_hash_stake_pool_metadata checks the raw
bytes a pool operator publishes and returns the hash that belongs in
StakePoolMetadataReference.
"""

from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from stakeapi.crypto.keys import HASH_256_SIZE, StakePoolMetadataHash, blake2b_digest
from stakeapi.errors import StakeApiError

STAKE_POOL_METADATA_MAX_BYTES = 512


class StakePoolMetadataValidationError(StakeApiError):
    pass


class StakePoolMetadata(BaseModel):
    """Strict model: reject unknown keys."""

    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)

    name: str = Field(..., max_length=50)
    description: str = Field(..., max_length=255)
    ticker: str = Field(..., min_length=3, max_length=5)
    homepage: str = Field(..., max_length=424)


def hash_stake_pool_metadata(data: bytes) -> StakePoolMetadataHash:
    return StakePoolMetadataHash(blake2b_digest(bytes(data), HASH_256_SIZE))


def validate_and_hash_stake_pool_metadata(data: bytes) -> Tuple[StakePoolMetadata, StakePoolMetadataHash]:
    """Validate the published bytes and hash them exactly as given."""
    if not isinstance(data, (bytes, bytearray)):
        raise StakePoolMetadataValidationError("invalid_input", "pool metadata must be bytes")
    if len(data) > STAKE_POOL_METADATA_MAX_BYTES:
        raise StakePoolMetadataValidationError(
            "metadata_too_long",
            f"Stake pool metadata must consist of at most {STAKE_POOL_METADATA_MAX_BYTES} bytes, "
            f"but it consists of {len(data)} bytes.",
            {"length": len(data)},
        )
    try:
        doc = StakePoolMetadata.model_validate_json(bytes(data))
    except ValidationError as ve:
        raise StakePoolMetadataValidationError(
            "invalid_metadata",
            "stake pool metadata does not match the schema",
            {"errors": ve.errors(include_url=False)},
        ) from ve
    return doc, hash_stake_pool_metadata(data)
