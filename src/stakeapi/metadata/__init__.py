# src/stakeapi/metadata/__init__.py
"""
Transaction metadata

  - model: TxMetadataValue / TxMetadata value types, ordering, merging
  - validate: exhaustive range validation (numbers, text and byte lengths)
  - chunks: split long text / bytes into in-range chunks
  - json_codec: "no schema" and "detailed schema" JSON mappings
  - wire: ledger metadatum conversion and CBOR serialisation
"""

from __future__ import annotations

__all__ = [
    "model",
    "validate",
    "chunks",
    "json_codec",
    "wire",
]
