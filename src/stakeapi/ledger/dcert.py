from __future__ import annotations

"""Ledger representation of delegation certificates.

This is the shape the ledger itself validates and serialises: key hashes are
raw bytes, relay names are validated DnsName values, the margin is a
UnitInterval and MIR targets are either a credential map or a transfer to the
opposite pot. `dcert_to_primitive` / `dcert_from_primitive` map these to and
from the CBOR data model (cbor2 objects) following the Shelley CDDL:

    certificate = [0, stake_credential]                  ; stake registration
                / [1, stake_credential]                  ; stake deregistration
                / [2, stake_credential, pool_keyhash]    ; stake delegation
                / [3, pool_params...]                    ; pool registration
                / [4, pool_keyhash, epoch]               ; pool retirement
                / [5, genesishash, delegatehash, vrf]    ; genesis key delegation
                / [6, [pot, {credential => delta} / coin]] ; MIR
"""

import ipaddress
from dataclasses import dataclass
from enum import IntEnum
from fractions import Fraction
from typing import Any, Dict, List, Optional, Tuple, Union

import cbor2

from stakeapi.codec.cbor import (
    ProtocolVersion,
    WireDecodeError,
    WireEncodeError,
    decode_set,
    encode_set,
    expect_bytes,
    expect_int,
    expect_list,
    expect_text,
    expect_uint,
)
from stakeapi.crypto.keys import HASH_256_SIZE, KEY_HASH_SIZE
from stakeapi.ledger.address import (
    StakeAddress,
    StakeCredential,
    stake_credential_from_primitive,
    stake_credential_to_primitive,
)
from stakeapi.ledger.validators import (
    PORT_MAX,
    DnsName,
    UnitInterval,
    Url,
    bound_rational,
    text_to_dns,
    text_to_url,
)

_RATIONAL_TAG = 30


class MIRPot(IntEnum):
    RESERVES = 0
    TREASURY = 1


@dataclass(frozen=True)
class RegKey:
    credential: StakeCredential


@dataclass(frozen=True)
class DeRegKey:
    credential: StakeCredential


@dataclass(frozen=True)
class Delegate:
    credential: StakeCredential
    pool: bytes


@dataclass(frozen=True)
class SingleHostAddr:
    port: Optional[int]
    ipv4: Optional[ipaddress.IPv4Address]
    ipv6: Optional[ipaddress.IPv6Address]


@dataclass(frozen=True)
class SingleHostName:
    port: Optional[int]
    dns: DnsName


@dataclass(frozen=True)
class MultiHostName:
    dns: DnsName


LedgerRelay = Union[SingleHostAddr, SingleHostName, MultiHostName]


@dataclass(frozen=True)
class PoolMetadata:
    url: Url
    # Not size-checked by the ledger; callers converting to typed hashes must check.
    hash: bytes


@dataclass(frozen=True)
class PoolParams:
    operator: bytes
    vrf: bytes
    pledge: int
    cost: int
    margin: UnitInterval
    reward_account: StakeAddress
    owners: frozenset
    relays: Tuple[LedgerRelay, ...]
    metadata: Optional[PoolMetadata]


@dataclass(frozen=True)
class RegPool:
    params: PoolParams


@dataclass(frozen=True)
class RetirePool:
    pool: bytes
    epoch: int


@dataclass(frozen=True)
class GenesisDeleg:
    genesis: bytes
    delegate: bytes
    vrf: bytes


@dataclass(frozen=True)
class StakeAddressesMIR:
    amounts: Dict[StakeCredential, int]


@dataclass(frozen=True)
class SendToOppositePotMIR:
    coin: int


@dataclass(frozen=True)
class MIRCert:
    pot: MIRPot
    target: Union[StakeAddressesMIR, SendToOppositePotMIR]


DCert = Union[RegKey, DeRegKey, Delegate, RegPool, RetirePool, GenesisDeleg, MIRCert]


# ---------------------------------------------------------------------------
# Relays
# ---------------------------------------------------------------------------


def ipv6_to_bytes(ip: ipaddress.IPv6Address) -> bytes:
    # The ledger writes IPv6 as four little-endian 32-bit words.
    packed = ip.packed
    return b"".join(packed[i : i + 4][::-1] for i in range(0, 16, 4))


def ipv6_from_bytes(raw: bytes) -> ipaddress.IPv6Address:
    return ipaddress.IPv6Address(b"".join(raw[i : i + 4][::-1] for i in range(0, 16, 4)))


def _relay_to_primitive(relay: LedgerRelay) -> List[Any]:
    if isinstance(relay, SingleHostAddr):
        return [
            0,
            relay.port,
            relay.ipv4.packed if relay.ipv4 is not None else None,
            ipv6_to_bytes(relay.ipv6) if relay.ipv6 is not None else None,
        ]
    if isinstance(relay, SingleHostName):
        return [1, relay.port, relay.dns.text]
    if isinstance(relay, MultiHostName):
        return [2, relay.dns.text]
    raise WireEncodeError("invalid_relay", f"unknown relay type: {type(relay).__name__}")


def _opt(v: Any, fn: Any, what: str) -> Any:
    if v is None:
        return None
    return fn(v, what)


def _decode_port(v: Any, what: str) -> int:
    return expect_uint(v, what, maximum=PORT_MAX)


def _decode_dns(v: Any, what: str) -> DnsName:
    dns = text_to_dns(expect_text(v, what))
    if dns is None:
        raise WireDecodeError("invalid_dns_name", f"{what}: invalid dns name {v!r}")
    return dns


def _relay_from_primitive(v: Any) -> LedgerRelay:
    arr = expect_list(v, "relay")
    if not arr:
        raise WireDecodeError("invalid_relay", "relay: empty array")
    tag = expect_uint(arr[0], "relay.tag")
    if tag == 0:
        _, port, v4, v6 = expect_list(arr, "single_host_addr", size=4)
        return SingleHostAddr(
            port=_opt(port, _decode_port, "single_host_addr.port"),
            ipv4=None if v4 is None else ipaddress.IPv4Address(expect_bytes(v4, "single_host_addr.ipv4", size=4)),
            ipv6=None if v6 is None else ipv6_from_bytes(expect_bytes(v6, "single_host_addr.ipv6", size=16)),
        )
    if tag == 1:
        _, port, dns = expect_list(arr, "single_host_name", size=3)
        return SingleHostName(port=_opt(port, _decode_port, "single_host_name.port"), dns=_decode_dns(dns, "single_host_name.dns"))
    if tag == 2:
        _, dns = expect_list(arr, "multi_host_name", size=2)
        return MultiHostName(dns=_decode_dns(dns, "multi_host_name.dns"))
    raise WireDecodeError("invalid_relay", f"relay: unknown tag {tag}")


# ---------------------------------------------------------------------------
# Pool parameters
# ---------------------------------------------------------------------------


def _pool_params_to_primitive(pp: PoolParams, pv: ProtocolVersion) -> List[Any]:
    md = None if pp.metadata is None else [pp.metadata.url.text, pp.metadata.hash]
    return [
        pp.operator,
        pp.vrf,
        pp.pledge,
        pp.cost,
        pp.margin.value,
        pp.reward_account.to_bytes(),
        encode_set(pp.owners, pv),
        [_relay_to_primitive(r) for r in pp.relays],
        md,
    ]


def _decode_margin(v: Any) -> UnitInterval:
    if isinstance(v, cbor2.CBORTag) and v.tag == _RATIONAL_TAG:
        num, den = expect_list(v.value, "margin", size=2)
        num = expect_uint(num, "margin.numerator")
        den = expect_uint(den, "margin.denominator")
        if den == 0:
            raise WireDecodeError("invalid_margin", "margin: zero denominator")
        v = Fraction(num, den)
    if not isinstance(v, Fraction):
        raise WireDecodeError("invalid_margin", f"margin: expected rational, got {type(v).__name__}")
    ui = bound_rational(v)
    if ui is None:
        raise WireDecodeError("invalid_margin", f"margin: {v} outside [0, 1]")
    return ui


def _decode_pool_metadata(v: Any) -> Optional[PoolMetadata]:
    if v is None:
        return None
    url, h = expect_list(v, "pool_metadata", size=2)
    u = text_to_url(expect_text(url, "pool_metadata.url"))
    if u is None:
        raise WireDecodeError("invalid_url", f"pool_metadata.url: invalid url {url!r}")
    return PoolMetadata(url=u, hash=expect_bytes(h, "pool_metadata.hash"))


def _pool_params_from_primitive(fields: List[Any], pv: ProtocolVersion) -> PoolParams:
    operator, vrf, pledge, cost, margin, reward, owners, relays, md = fields
    return PoolParams(
        operator=expect_bytes(operator, "pool_params.operator", size=KEY_HASH_SIZE),
        vrf=expect_bytes(vrf, "pool_params.vrf", size=HASH_256_SIZE),
        pledge=expect_uint(pledge, "pool_params.pledge"),
        cost=expect_uint(cost, "pool_params.cost"),
        margin=_decode_margin(margin),
        reward_account=StakeAddress.from_bytes(expect_bytes(reward, "pool_params.reward_account")),
        owners=frozenset(
            expect_bytes(o, "pool_params.owner", size=KEY_HASH_SIZE) for o in decode_set(owners, pv, "pool_params.owners")
        ),
        relays=tuple(_relay_from_primitive(r) for r in expect_list(relays, "pool_params.relays")),
        metadata=_decode_pool_metadata(md),
    )


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


def _mir_to_primitive(cert: MIRCert) -> List[Any]:
    if isinstance(cert.target, StakeAddressesMIR):
        body: Any = {stake_credential_to_primitive(c): delta for c, delta in cert.target.amounts.items()}
    else:
        body = cert.target.coin
    return [int(cert.pot), body]


def _mir_from_primitive(v: Any) -> MIRCert:
    pot_raw, body = expect_list(v, "move_instantaneous_reward", size=2)
    pot_i = expect_uint(pot_raw, "move_instantaneous_reward.pot")
    if pot_i not in (MIRPot.RESERVES, MIRPot.TREASURY):
        raise WireDecodeError("invalid_mir_pot", f"move_instantaneous_reward: unknown pot {pot_i}")
    pot = MIRPot(pot_i)
    if isinstance(body, dict):
        amounts: Dict[StakeCredential, int] = {}
        for k, delta in body.items():
            amounts[stake_credential_from_primitive(k)] = expect_int(delta, "move_instantaneous_reward.delta")
        return MIRCert(pot, StakeAddressesMIR(amounts))
    return MIRCert(pot, SendToOppositePotMIR(expect_uint(body, "move_instantaneous_reward.coin")))


def dcert_to_primitive(cert: DCert, pv: ProtocolVersion) -> List[Any]:
    if isinstance(cert, RegKey):
        return [0, stake_credential_to_primitive(cert.credential)]
    if isinstance(cert, DeRegKey):
        return [1, stake_credential_to_primitive(cert.credential)]
    if isinstance(cert, Delegate):
        return [2, stake_credential_to_primitive(cert.credential), cert.pool]
    if isinstance(cert, RegPool):
        return [3, *_pool_params_to_primitive(cert.params, pv)]
    if isinstance(cert, RetirePool):
        return [4, cert.pool, cert.epoch]
    if isinstance(cert, GenesisDeleg):
        return [5, cert.genesis, cert.delegate, cert.vrf]
    if isinstance(cert, MIRCert):
        return [6, _mir_to_primitive(cert)]
    raise WireEncodeError("invalid_certificate", f"unknown certificate type: {type(cert).__name__}")


_DCERT_SIZES = {0: 2, 1: 2, 2: 3, 3: 10, 4: 3, 5: 4, 6: 2}


def dcert_from_primitive(v: Any, pv: ProtocolVersion) -> DCert:
    arr = expect_list(v, "certificate")
    if not arr:
        raise WireDecodeError("invalid_certificate", "certificate: empty array")
    tag = expect_uint(arr[0], "certificate.tag")
    size = _DCERT_SIZES.get(tag)
    if size is None:
        raise WireDecodeError("unknown_certificate", f"certificate: unknown tag {tag}")
    expect_list(arr, f"certificate[{tag}]", size=size)

    if tag == 0:
        return RegKey(stake_credential_from_primitive(arr[1]))
    if tag == 1:
        return DeRegKey(stake_credential_from_primitive(arr[1]))
    if tag == 2:
        return Delegate(
            stake_credential_from_primitive(arr[1]),
            expect_bytes(arr[2], "stake_delegation.pool", size=KEY_HASH_SIZE),
        )
    if tag == 3:
        return RegPool(_pool_params_from_primitive(arr[1:], pv))
    if tag == 4:
        return RetirePool(
            expect_bytes(arr[1], "pool_retirement.pool", size=KEY_HASH_SIZE),
            expect_uint(arr[2], "pool_retirement.epoch"),
        )
    if tag == 5:
        return GenesisDeleg(
            expect_bytes(arr[1], "genesis_key_delegation.genesis", size=KEY_HASH_SIZE),
            expect_bytes(arr[2], "genesis_key_delegation.delegate", size=KEY_HASH_SIZE),
            expect_bytes(arr[3], "genesis_key_delegation.vrf", size=HASH_256_SIZE),
        )
    return _mir_from_primitive(arr[1])
