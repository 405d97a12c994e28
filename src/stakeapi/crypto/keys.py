from __future__ import annotations

"""Typed keys and key hashes.

Every key role gets its own verification-key and hash class so that a pool id
can never be passed where a stake key hash is expected. Key hashes are
blake2b-224 digests of the raw verification key; VRF key hashes and pool
metadata hashes are blake2b-256.

Signing keys wrap `cryptography` Ed25519 private keys. The evolving (KES) hot
key is only ever handled through its verification key here.
"""

import hashlib
import os
from dataclasses import dataclass
from typing import Callable, ClassVar, Dict, Tuple, Type, TypeVar

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from stakeapi.crypto.sig import private_key_from_seed, raw_public_key, sign_ed25519
from stakeapi.errors import StakeApiError

KEY_HASH_SIZE = 28
HASH_256_SIZE = 32
CHAIN_CODE_SIZE = 32
WORD64_MAX = 2**64 - 1

H = TypeVar("H", bound="KeyRoleHash")
V = TypeVar("V", bound="VerificationKey")


def blake2b_digest(data: bytes, size: int) -> bytes:
    return hashlib.blake2b(data, digest_size=size).digest()


# ---------------------------------------------------------------------------
# Hashes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, order=True)
class KeyRoleHash:
    payload: bytes

    SIZE: ClassVar[int] = KEY_HASH_SIZE

    def __post_init__(self) -> None:
        if not isinstance(self.payload, bytes):
            raise StakeApiError("invalid_hash", f"{type(self).__name__} payload must be bytes")
        if len(self.payload) != self.SIZE:
            raise StakeApiError(
                "invalid_hash",
                f"{type(self).__name__} must be {self.SIZE} bytes",
                {"length": len(self.payload)},
            )

    @classmethod
    def from_hex(cls: Type[H], s: str) -> H:
        try:
            raw = bytes.fromhex(s)
        except ValueError as e:
            raise StakeApiError("invalid_hash", f"{cls.__name__} must be hex", {"value": s}) from e
        return cls(raw)

    def hex(self) -> str:
        return self.payload.hex()


class StakePoolKeyHash(KeyRoleHash):
    pass


# A stake pool is identified by the hash of its cold verification key.
PoolId = StakePoolKeyHash


class StakeKeyHash(KeyRoleHash):
    pass


class GenesisKeyHash(KeyRoleHash):
    pass


class GenesisDelegateKeyHash(KeyRoleHash):
    pass


class ScriptHash(KeyRoleHash):
    pass


class VrfKeyHash(KeyRoleHash):
    SIZE = HASH_256_SIZE


class StakePoolMetadataHash(KeyRoleHash):
    SIZE = HASH_256_SIZE


# ---------------------------------------------------------------------------
# Verification keys
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VerificationKey:
    payload: bytes

    SIZE: ClassVar[int] = 32
    HASH: ClassVar[Type[KeyRoleHash]] = KeyRoleHash

    def __post_init__(self) -> None:
        if not isinstance(self.payload, bytes) or len(self.payload) != self.SIZE:
            n = len(self.payload) if isinstance(self.payload, bytes) else None
            raise StakeApiError(
                "invalid_verification_key",
                f"{type(self).__name__} must be {self.SIZE} bytes",
                {"length": n},
            )

    @classmethod
    def from_hex(cls: Type[V], s: str) -> V:
        try:
            raw = bytes.fromhex(s)
        except ValueError as e:
            raise StakeApiError("invalid_verification_key", f"{cls.__name__} must be hex") from e
        return cls(raw)

    def _hashed_payload(self) -> bytes:
        return self.payload

    def hash(self) -> KeyRoleHash:
        return self.HASH(blake2b_digest(self._hashed_payload(), self.HASH.SIZE))

    def hex(self) -> str:
        return self.payload.hex()


class StakePoolVerificationKey(VerificationKey):
    HASH = StakePoolKeyHash


class StakeVerificationKey(VerificationKey):
    HASH = StakeKeyHash


class GenesisVerificationKey(VerificationKey):
    HASH = GenesisKeyHash


class GenesisDelegateVerificationKey(VerificationKey):
    HASH = GenesisDelegateKeyHash


class GenesisDelegateExtendedVerificationKey(VerificationKey):
    """Ed25519 public key followed by a 32-byte chain code."""

    SIZE = 32 + CHAIN_CODE_SIZE
    HASH = GenesisDelegateKeyHash

    def _hashed_payload(self) -> bytes:
        # The chain code is not part of the key identity.
        return self.payload[:32]


class VrfVerificationKey(VerificationKey):
    HASH = VrfKeyHash


class KesVerificationKey(VerificationKey):
    """Verification key of the evolving hot key; opaque bytes here."""

    HASH = KeyRoleHash

    def hash(self) -> KeyRoleHash:
        raise StakeApiError("unsupported", "KES verification keys are not hashed by this library")


_CASTS: Dict[Tuple[type, type], Callable[[bytes], bytes]] = {
    (GenesisDelegateExtendedVerificationKey, GenesisDelegateVerificationKey): lambda p: p[:32],
    (GenesisDelegateVerificationKey, StakePoolVerificationKey): lambda p: p,
}


def cast_verification_key(vkey: VerificationKey, target: Type[V]) -> V:
    """Reinterpret a verification key in another role's key space.

    Only the casts the ledger allows are supported; the key bytes are kept
    (minus the chain code when dropping an extended key).
    """
    conv = _CASTS.get((type(vkey), target))
    if conv is None:
        raise StakeApiError(
            "invalid_key_cast",
            f"cannot cast {type(vkey).__name__} to {target.__name__}",
        )
    return target(conv(vkey.payload))


# ---------------------------------------------------------------------------
# Signing keys
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False, repr=False)
class StakePoolSigningKey:
    """Cold signing key of a stake pool."""

    private_key: Ed25519PrivateKey

    @classmethod
    def from_seed(cls, seed: bytes) -> "StakePoolSigningKey":
        return cls(private_key_from_seed(seed))

    @classmethod
    def generate(cls) -> "StakePoolSigningKey":
        return cls(Ed25519PrivateKey.generate())

    def verification_key(self) -> StakePoolVerificationKey:
        return StakePoolVerificationKey(raw_public_key(self.private_key))

    def sign(self, message: bytes) -> bytes:
        return sign_ed25519(message=message, private_key=self.private_key)

    def __repr__(self) -> str:
        return f"StakePoolSigningKey(vkey={self.verification_key().hex()})"


@dataclass(frozen=True, eq=False, repr=False)
class GenesisDelegateExtendedSigningKey:
    """Extended signing key of a genesis delegate: Ed25519 key plus chain code."""

    private_key: Ed25519PrivateKey
    chain_code: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.chain_code, bytes) or len(self.chain_code) != CHAIN_CODE_SIZE:
            raise StakeApiError("invalid_signing_key", f"chain code must be {CHAIN_CODE_SIZE} bytes")

    @classmethod
    def from_seed(cls, seed: bytes, chain_code: bytes) -> "GenesisDelegateExtendedSigningKey":
        return cls(private_key_from_seed(seed), chain_code)

    @classmethod
    def generate(cls) -> "GenesisDelegateExtendedSigningKey":
        return cls(Ed25519PrivateKey.generate(), os.urandom(CHAIN_CODE_SIZE))

    def verification_key(self) -> GenesisDelegateExtendedVerificationKey:
        return GenesisDelegateExtendedVerificationKey(raw_public_key(self.private_key) + self.chain_code)

    def sign(self, message: bytes) -> bytes:
        return sign_ed25519(message=message, private_key=self.private_key)

    def __repr__(self) -> str:
        return f"GenesisDelegateExtendedSigningKey(vkey={self.verification_key().hex()})"


# ---------------------------------------------------------------------------
# KES periods
# ---------------------------------------------------------------------------


@dataclass(frozen=True, order=True)
class KESPeriod:
    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int) or not 0 <= self.value <= WORD64_MAX:
            raise StakeApiError("invalid_kes_period", "KES period must be an unsigned 64-bit integer", {"value": self.value})

    def __int__(self) -> int:
        return self.value
