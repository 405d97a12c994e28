from __future__ import annotations

import hashlib

import pytest

from stakeapi.codec.cbor import WireDecodeError
from stakeapi.crypto.keys import (
    GenesisDelegateExtendedSigningKey,
    GenesisDelegateExtendedVerificationKey,
    GenesisDelegateKeyHash,
    GenesisDelegateVerificationKey,
    KESPeriod,
    KesVerificationKey,
    ScriptHash,
    StakeKeyHash,
    StakePoolKeyHash,
    StakePoolSigningKey,
    StakePoolVerificationKey,
    StakeVerificationKey,
    VrfKeyHash,
    cast_verification_key,
)
from stakeapi.crypto.sig import private_key_from_seed, raw_public_key, verify_ed25519_signature
from stakeapi.errors import StakeApiError
from stakeapi.ledger.address import StakeAddress, StakeCredentialByKey, StakeCredentialByScript
from stakeapi.testing.sigtools import deterministic_cold_key, deterministic_genesis_delegate_key


def test_key_hash_is_blake2b_224_of_the_key() -> None:
    vkey = deterministic_cold_key(label="pool").verification_key()
    h = vkey.hash()
    assert isinstance(h, StakePoolKeyHash)
    assert h.payload == hashlib.blake2b(vkey.payload, digest_size=28).digest()
    assert StakePoolKeyHash.from_hex(h.hex()) == h


@pytest.mark.parametrize("raw", [b"\x00" * 27, b"\x00" * 32])
def test_hash_size_is_checked(raw: bytes) -> None:
    with pytest.raises(StakeApiError) as ei:
        StakePoolKeyHash(raw)
    assert ei.value.code == "invalid_hash"


def test_hash_from_bad_hex() -> None:
    with pytest.raises(StakeApiError):
        VrfKeyHash.from_hex("zz")


def test_extended_key_cast_drops_chain_code() -> None:
    sk = deterministic_genesis_delegate_key(label="gd")
    ext = sk.verification_key()
    assert isinstance(ext, GenesisDelegateExtendedVerificationKey)
    assert len(ext.payload) == 64

    plain = cast_verification_key(ext, GenesisDelegateVerificationKey)
    assert plain.payload == ext.payload[:32]
    assert isinstance(plain.hash(), GenesisDelegateKeyHash)
    assert plain.hash() == ext.hash()

    pool = cast_verification_key(plain, StakePoolVerificationKey)
    assert pool.payload == plain.payload


def test_disallowed_cast() -> None:
    vkey = StakeVerificationKey(b"\x01" * 32)
    with pytest.raises(StakeApiError) as ei:
        cast_verification_key(vkey, StakePoolVerificationKey)
    assert ei.value.code == "invalid_key_cast"


def test_signing_keys_sign_verifiably_and_hide_secrets() -> None:
    for sk in (StakePoolSigningKey.generate(), GenesisDelegateExtendedSigningKey.generate()):
        sig = sk.sign(b"msg")
        assert verify_ed25519_signature(message=b"msg", sig=sig, pubkey=sk.verification_key().payload[:32])
        assert not verify_ed25519_signature(message=b"other", sig=sig, pubkey=sk.verification_key().payload[:32])
        assert "vkey=" in repr(sk)


def test_seed_forms() -> None:
    seed = b"\x07" * 32
    a = private_key_from_seed(seed)
    b = private_key_from_seed(seed + raw_public_key(a))
    assert raw_public_key(a) == raw_public_key(b)
    with pytest.raises(ValueError):
        private_key_from_seed(b"\x00" * 31)


def test_kes_vkey_is_not_hashed() -> None:
    with pytest.raises(StakeApiError):
        KesVerificationKey(b"\x00" * 32).hash()


@pytest.mark.parametrize("v", [-1, 2**64, True])
def test_kes_period_range(v: object) -> None:
    with pytest.raises(StakeApiError):
        KESPeriod(v)  # type: ignore[arg-type]


def test_reward_account_bytes() -> None:
    key = StakeAddress(1, StakeCredentialByKey(StakeKeyHash(b"\x01" * 28)))
    script = StakeAddress(0, StakeCredentialByScript(ScriptHash(b"\x02" * 28)))
    assert key.to_bytes()[0] == 0xE1
    assert script.to_bytes()[0] == 0xF0
    assert StakeAddress.from_bytes(key.to_bytes()) == key
    assert StakeAddress.from_bytes(script.to_bytes()) == script


def test_reward_account_bad_header() -> None:
    with pytest.raises(WireDecodeError):
        StakeAddress.from_bytes(bytes([0x00]) + b"\x01" * 28)
    with pytest.raises(StakeApiError):
        StakeAddress(16, StakeCredentialByKey(StakeKeyHash(b"\x01" * 28)))
