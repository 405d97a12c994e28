# src/stakeapi/ledger/address.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Tuple, Union

from stakeapi.codec.cbor import WireDecodeError, expect_bytes, expect_list, expect_uint
from stakeapi.crypto.keys import KEY_HASH_SIZE, ScriptHash, StakeKeyHash
from stakeapi.errors import StakeApiError

# Shelley reward-account header: high nibble 0b1110 (key) / 0b1111 (script), low nibble network id.
_REWARD_KEY_HEADER = 0xE0
_REWARD_SCRIPT_HEADER = 0xF0
REWARD_ACCOUNT_SIZE = 1 + KEY_HASH_SIZE


@dataclass(frozen=True, order=True)
class StakeCredentialByKey:
    key_hash: StakeKeyHash

    KIND = 0


@dataclass(frozen=True, order=True)
class StakeCredentialByScript:
    script_hash: ScriptHash

    KIND = 1


StakeCredential = Union[StakeCredentialByKey, StakeCredentialByScript]


def credential_hash_bytes(cred: StakeCredential) -> bytes:
    if isinstance(cred, StakeCredentialByKey):
        return cred.key_hash.payload
    return cred.script_hash.payload


def stake_credential_to_primitive(cred: StakeCredential) -> Tuple[int, bytes]:
    # A tuple so it can also serve as a CBOR map key.
    return (cred.KIND, credential_hash_bytes(cred))


def stake_credential_from_primitive(v: Any) -> StakeCredential:
    kind, raw = expect_list(v, "stake_credential", size=2)
    kind = expect_uint(kind, "stake_credential.kind")
    raw = expect_bytes(raw, "stake_credential.hash", size=KEY_HASH_SIZE)
    if kind == StakeCredentialByKey.KIND:
        return StakeCredentialByKey(StakeKeyHash(raw))
    if kind == StakeCredentialByScript.KIND:
        return StakeCredentialByScript(ScriptHash(raw))
    raise WireDecodeError("invalid_credential_kind", f"stake_credential: unknown kind {kind}")


@dataclass(frozen=True)
class StakeAddress:
    """A reward account: network id plus the stake credential it pays to."""

    network_id: int
    credential: StakeCredential

    def __post_init__(self) -> None:
        if isinstance(self.network_id, bool) or not isinstance(self.network_id, int) or not 0 <= self.network_id <= 15:
            raise StakeApiError("invalid_network_id", "network id must be 0..15", {"network_id": self.network_id})

    def to_bytes(self) -> bytes:
        if isinstance(self.credential, StakeCredentialByKey):
            header = _REWARD_KEY_HEADER
        else:
            header = _REWARD_SCRIPT_HEADER
        return bytes([header | self.network_id]) + credential_hash_bytes(self.credential)

    @classmethod
    def from_bytes(cls, raw: bytes) -> "StakeAddress":
        raw = expect_bytes(raw, "reward_account", size=REWARD_ACCOUNT_SIZE)
        header, body = raw[0], raw[1:]
        kind = header & 0xF0
        if kind == _REWARD_KEY_HEADER:
            cred: StakeCredential = StakeCredentialByKey(StakeKeyHash(body))
        elif kind == _REWARD_SCRIPT_HEADER:
            cred = StakeCredentialByScript(ScriptHash(body))
        else:
            raise WireDecodeError("invalid_reward_account", f"reward_account: bad header byte 0x{header:02x}")
        return cls(network_id=header & 0x0F, credential=cred)
