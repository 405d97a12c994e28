# src/stakeapi/crypto/sig.py
from __future__ import annotations

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

ED25519_SEED_SIZE = 32
ED25519_PUBKEY_SIZE = 32
ED25519_SIGNATURE_SIZE = 64


def private_key_from_seed(seed: bytes) -> Ed25519PrivateKey:
    """Build an Ed25519 private key from a 32-byte seed (or 64-byte seed||pubkey form)."""
    if len(seed) == 64:
        # seed || public key, as written by several tools; the seed alone determines the key.
        seed = seed[:ED25519_SEED_SIZE]
    if len(seed) != ED25519_SEED_SIZE:
        raise ValueError("ed25519 private key must be a 32-byte seed (or 64-byte seed||pubkey)")
    return Ed25519PrivateKey.from_private_bytes(seed)


def raw_public_key(private_key: Ed25519PrivateKey) -> bytes:
    return private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)


def sign_ed25519(*, message: bytes, private_key: Ed25519PrivateKey) -> bytes:
    return private_key.sign(message)


def verify_ed25519_signature(*, message: bytes, sig: bytes, pubkey: bytes) -> bool:
    try:
        key = Ed25519PublicKey.from_public_bytes(pubkey)
        key.verify(sig, message)
        return True
    except (InvalidSignature, ValueError):
        return False
