from __future__ import annotations

"""Certificates embedded in transactions.

The domain model here is what callers build: typed key hashes, a Fraction
margin, relay DNS names as bytes and a MIR target that names the destination
pot explicitly. `to_ledger_certificate` / `from_ledger_certificate` convert to
and from the ledger form in `stakeapi.ledger.dcert`; every invalid input is
reported as a CertificateError.

Round-trip property: from_ledger(to_ledger(c)) == c, except that several
TransferToCredentials entries sharing a credential are summed into one.
"""

import ipaddress
import logging
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Dict, Iterable, Optional, Tuple, Type, Union

from stakeapi.codec.cbor import ProtocolVersion, WireDecodeError, decode_full, serialize
from stakeapi.crypto.keys import (
    GenesisDelegateKeyHash,
    GenesisKeyHash,
    KeyRoleHash,
    PoolId,
    StakeKeyHash,
    StakePoolKeyHash,
    StakePoolMetadataHash,
    VrfKeyHash,
)
from stakeapi.errors import CertificateError, StakeApiError
from stakeapi.ledger import dcert as L
from stakeapi.ledger.address import StakeAddress, StakeCredential
from stakeapi.ledger.dcert import MIRPot
from stakeapi.ledger.validators import bound_rational, is_coin, is_port, text_to_dns, text_to_url
from stakeapi.logging_util import log_event

log = logging.getLogger("stakeapi.certificate")

TEXT_ENVELOPE_TYPE = "CertificateShelley"

Lovelace = int
EpochNo = int


# ----------------------------------------------------------------------------
# Stake pool parameters
# ----------------------------------------------------------------------------


@dataclass(frozen=True)
class StakePoolRelayIp:
    """One or both of IPv4 and IPv6."""

    ipv4: Optional[ipaddress.IPv4Address]
    ipv6: Optional[ipaddress.IPv6Address]
    port: Optional[int]


@dataclass(frozen=True)
class StakePoolRelayDnsARecord:
    """A DNS name pointing to an A or AAAA record."""

    dns_name: bytes
    port: Optional[int]


@dataclass(frozen=True)
class StakePoolRelayDnsSrvRecord:
    """A DNS name pointing to an SRV record."""

    dns_name: bytes


StakePoolRelay = Union[StakePoolRelayIp, StakePoolRelayDnsARecord, StakePoolRelayDnsSrvRecord]


@dataclass(frozen=True)
class StakePoolMetadataReference:
    url: str
    hash: StakePoolMetadataHash


@dataclass(frozen=True)
class StakePoolParameters:
    pool_id: PoolId
    vrf_key_hash: VrfKeyHash
    cost: Lovelace
    margin: Fraction
    reward_account: StakeAddress
    pledge: Lovelace
    owners: frozenset
    relays: Tuple[StakePoolRelay, ...]
    metadata: Optional[StakePoolMetadataReference]

    def __post_init__(self) -> None:
        # Accept any iterable for the collections but store immutable ones.
        object.__setattr__(self, "owners", frozenset(self.owners))
        object.__setattr__(self, "relays", tuple(self.relays))


# ----------------------------------------------------------------------------
# Instantaneous transfers (MIR)
# ----------------------------------------------------------------------------


@dataclass(frozen=True)
class TransferToCredentials:
    """Pay signed amounts to stake credentials; entries sharing a credential add up."""

    entries: Tuple[Tuple[StakeCredential, int], ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "entries", tuple((c, a) for c, a in self.entries))


@dataclass(frozen=True)
class TransferToReserves:
    amount: Lovelace


@dataclass(frozen=True)
class TransferToTreasury:
    amount: Lovelace


TransferTarget = Union[TransferToCredentials, TransferToReserves, TransferToTreasury]


# ----------------------------------------------------------------------------
# Certificates
# ----------------------------------------------------------------------------


@dataclass(frozen=True)
class StakeAddressRegistrationCertificate:
    stake_credential: StakeCredential


@dataclass(frozen=True)
class StakeAddressDeregistrationCertificate:
    stake_credential: StakeCredential


@dataclass(frozen=True)
class StakeAddressPoolDelegationCertificate:
    stake_credential: StakeCredential
    pool_id: PoolId


@dataclass(frozen=True)
class StakePoolRegistrationCertificate:
    parameters: StakePoolParameters


@dataclass(frozen=True)
class StakePoolRetirementCertificate:
    pool_id: PoolId
    epoch: EpochNo


@dataclass(frozen=True)
class GenesisKeyDelegationCertificate:
    genesis_key_hash: GenesisKeyHash
    delegate_key_hash: GenesisDelegateKeyHash
    vrf_key_hash: VrfKeyHash


@dataclass(frozen=True)
class MIRCertificate:
    """Moves lovelace out of `pot`, either to stake credentials or to the other pot."""

    pot: MIRPot
    target: TransferTarget

    def __post_init__(self) -> None:
        if not isinstance(self.pot, MIRPot):
            raise CertificateError("invalid_mir_pot", f"unknown MIR pot: {self.pot!r}")
        if isinstance(self.target, TransferToReserves) and self.pot is not MIRPot.TREASURY:
            raise CertificateError(
                "invalid_mir_pot",
                "a transfer to the reserves must be drawn from the treasury",
                {"pot": self.pot.name},
            )
        if isinstance(self.target, TransferToTreasury) and self.pot is not MIRPot.RESERVES:
            raise CertificateError(
                "invalid_mir_pot",
                "a transfer to the treasury must be drawn from the reserves",
                {"pot": self.pot.name},
            )


Certificate = Union[
    StakeAddressRegistrationCertificate,
    StakeAddressDeregistrationCertificate,
    StakeAddressPoolDelegationCertificate,
    StakePoolRegistrationCertificate,
    StakePoolRetirementCertificate,
    GenesisKeyDelegationCertificate,
    MIRCertificate,
]

_DESCRIPTIONS: Dict[type, str] = {
    StakeAddressRegistrationCertificate: "Stake address registration",
    StakeAddressDeregistrationCertificate: "Stake address de-registration",
    StakeAddressPoolDelegationCertificate: "Stake address stake pool delegation",
    StakePoolRegistrationCertificate: "Pool registration",
    StakePoolRetirementCertificate: "Pool retirement",
    GenesisKeyDelegationCertificate: "Genesis key delegation",
    MIRCertificate: "MIR",
}


def text_envelope_description(cert: Certificate) -> str:
    """Default description written next to the certificate in a text envelope."""
    return _DESCRIPTIONS[type(cert)]


# ----------------------------------------------------------------------------
# Constructor functions
# ----------------------------------------------------------------------------


def make_stake_address_registration_certificate(cred: StakeCredential) -> Certificate:
    return StakeAddressRegistrationCertificate(cred)


def make_stake_address_deregistration_certificate(cred: StakeCredential) -> Certificate:
    return StakeAddressDeregistrationCertificate(cred)


def make_stake_address_pool_delegation_certificate(cred: StakeCredential, pool_id: PoolId) -> Certificate:
    return StakeAddressPoolDelegationCertificate(cred, pool_id)


def make_stake_pool_registration_certificate(params: StakePoolParameters) -> Certificate:
    return StakePoolRegistrationCertificate(params)


def make_stake_pool_retirement_certificate(pool_id: PoolId, epoch: EpochNo) -> Certificate:
    return StakePoolRetirementCertificate(pool_id, epoch)


def make_genesis_key_delegation_certificate(
    genesis_key_hash: GenesisKeyHash,
    delegate_key_hash: GenesisDelegateKeyHash,
    vrf_key_hash: VrfKeyHash,
) -> Certificate:
    return GenesisKeyDelegationCertificate(genesis_key_hash, delegate_key_hash, vrf_key_hash)


def make_mir_certificate(pot: MIRPot, target: TransferTarget) -> Certificate:
    return MIRCertificate(pot, target)


def transfer_between_pots(from_pot: MIRPot, amount: Lovelace) -> Certificate:
    """MIR certificate moving `amount` from `from_pot` to the other pot."""
    if from_pot is MIRPot.RESERVES:
        return MIRCertificate(MIRPot.RESERVES, TransferToTreasury(amount))
    if from_pot is MIRPot.TREASURY:
        return MIRCertificate(MIRPot.TREASURY, TransferToReserves(amount))
    raise CertificateError("invalid_mir_pot", f"unknown MIR pot: {from_pot!r}")


# ----------------------------------------------------------------------------
# Conversion helpers
# ----------------------------------------------------------------------------


def _coin(v: Any, field: str) -> int:
    if not is_coin(v):
        raise CertificateError("invalid_coin", f"{field} must be a lovelace amount in 0..2^64-1", {"value": v})
    return v


def _port(v: Optional[int], field: str) -> Optional[int]:
    if v is not None and not is_port(v):
        raise CertificateError("invalid_port", f"{field} must be 0..65535", {"value": v})
    return v


def _typed_hash(cls: Type[KeyRoleHash], raw: bytes, field: str, *, code: str = "invalid_hash") -> Any:
    try:
        return cls(raw)
    except StakeApiError as e:
        raise CertificateError(code, f"{field}: {e.reason}", e.details) from e


def _require_hash(h: Any, cls: Type[KeyRoleHash], field: str) -> bytes:
    if not isinstance(h, cls):
        raise CertificateError("invalid_hash", f"{field} must be a {cls.__name__}", {"type": type(h).__name__})
    return h.payload


def _to_dns_name(raw: bytes, field: str) -> L.DnsName:
    # Byte-for-byte: each byte becomes the code point of the same value.
    text = raw.decode("latin-1") if isinstance(raw, bytes) else None
    dns = text_to_dns(text) if text is not None else None
    if dns is None:
        raise CertificateError("invalid_dns_name", f"{field} must be ASCII of at most 64 bytes", {"value": raw})
    return dns


def _log_rejection(err: CertificateError) -> None:
    log_event(log, "certificate_rejected", level=logging.DEBUG, code=err.code, reason=err.reason)


# ----------------------------------------------------------------------------
# Pool parameters
# ----------------------------------------------------------------------------


def _relay_to_ledger(relay: StakePoolRelay, i: int) -> L.LedgerRelay:
    where = f"relays[{i}]"
    if isinstance(relay, StakePoolRelayIp):
        return L.SingleHostAddr(port=_port(relay.port, f"{where}.port"), ipv4=relay.ipv4, ipv6=relay.ipv6)
    if isinstance(relay, StakePoolRelayDnsARecord):
        return L.SingleHostName(port=_port(relay.port, f"{where}.port"), dns=_to_dns_name(relay.dns_name, f"{where}.dns_name"))
    if isinstance(relay, StakePoolRelayDnsSrvRecord):
        return L.MultiHostName(dns=_to_dns_name(relay.dns_name, f"{where}.dns_name"))
    raise CertificateError("invalid_relay", f"{where}: unknown relay type {type(relay).__name__}")


def _relay_from_ledger(relay: L.LedgerRelay) -> StakePoolRelay:
    if isinstance(relay, L.SingleHostAddr):
        return StakePoolRelayIp(ipv4=relay.ipv4, ipv6=relay.ipv6, port=relay.port)
    if isinstance(relay, L.SingleHostName):
        return StakePoolRelayDnsARecord(dns_name=relay.dns.text.encode("utf-8"), port=relay.port)
    return StakePoolRelayDnsSrvRecord(dns_name=relay.dns.text.encode("utf-8"))


def to_ledger_pool_params(params: StakePoolParameters) -> L.PoolParams:
    margin = bound_rational(params.margin)
    if margin is None:
        raise CertificateError("invalid_margin", "pool margin must be a rational within [0, 1]", {"margin": str(params.margin)})

    metadata: Optional[L.PoolMetadata] = None
    if params.metadata is not None:
        url = text_to_url(params.metadata.url)
        if url is None:
            raise CertificateError("invalid_url", "pool metadata url must be text of at most 64 bytes", {"url": params.metadata.url})
        if not isinstance(params.metadata.hash, StakePoolMetadataHash):
            raise CertificateError("invalid_metadata_hash", "pool metadata hash must be a StakePoolMetadataHash")
        metadata = L.PoolMetadata(url=url, hash=params.metadata.hash.payload)

    if not isinstance(params.reward_account, StakeAddress):
        raise CertificateError("invalid_reward_account", "reward account must be a StakeAddress")

    return L.PoolParams(
        operator=_require_hash(params.pool_id, StakePoolKeyHash, "pool_id"),
        vrf=_require_hash(params.vrf_key_hash, VrfKeyHash, "vrf_key_hash"),
        pledge=_coin(params.pledge, "pledge"),
        cost=_coin(params.cost, "cost"),
        margin=margin,
        reward_account=params.reward_account,
        owners=frozenset(_require_hash(o, StakeKeyHash, "owners") for o in params.owners),
        relays=tuple(_relay_to_ledger(r, i) for i, r in enumerate(params.relays)),
        metadata=metadata,
    )


def from_ledger_pool_params(pp: L.PoolParams) -> StakePoolParameters:
    metadata: Optional[StakePoolMetadataReference] = None
    if pp.metadata is not None:
        metadata = StakePoolMetadataReference(
            url=pp.metadata.url.text,
            hash=_typed_hash(StakePoolMetadataHash, pp.metadata.hash, "pool metadata hash", code="invalid_metadata_hash"),
        )
    return StakePoolParameters(
        pool_id=_typed_hash(StakePoolKeyHash, pp.operator, "operator"),
        vrf_key_hash=_typed_hash(VrfKeyHash, pp.vrf, "vrf"),
        cost=pp.cost,
        margin=pp.margin.value,
        reward_account=pp.reward_account,
        pledge=pp.pledge,
        owners=frozenset(_typed_hash(StakeKeyHash, o, "owner") for o in pp.owners),
        relays=tuple(_relay_from_ledger(r) for r in pp.relays),
        metadata=metadata,
    )


# ----------------------------------------------------------------------------
# Certificates
# ----------------------------------------------------------------------------


def _sum_by_credential(entries: Iterable[Tuple[StakeCredential, int]]) -> Dict[StakeCredential, int]:
    out: Dict[StakeCredential, int] = {}
    for cred, amount in entries:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise CertificateError("invalid_coin", "MIR amounts must be integers", {"value": amount})
        out[cred] = out.get(cred, 0) + amount
    return out


def _mir_to_ledger(cert: MIRCertificate) -> L.MIRCert:
    target = cert.target
    if isinstance(target, TransferToCredentials):
        return L.MIRCert(cert.pot, L.StakeAddressesMIR(_sum_by_credential(target.entries)))
    if isinstance(target, (TransferToReserves, TransferToTreasury)):
        return L.MIRCert(cert.pot, L.SendToOppositePotMIR(_coin(target.amount, "MIR amount")))
    raise CertificateError("invalid_mir_target", f"unknown MIR target: {type(target).__name__}")


def _mir_from_ledger(cert: L.MIRCert) -> MIRCertificate:
    if isinstance(cert.target, L.StakeAddressesMIR):
        return MIRCertificate(cert.pot, TransferToCredentials(tuple(cert.target.amounts.items())))
    if cert.pot is MIRPot.RESERVES:
        return MIRCertificate(MIRPot.RESERVES, TransferToTreasury(cert.target.coin))
    return MIRCertificate(MIRPot.TREASURY, TransferToReserves(cert.target.coin))


def to_ledger_certificate(cert: Certificate) -> L.DCert:
    try:
        if isinstance(cert, StakeAddressRegistrationCertificate):
            return L.RegKey(cert.stake_credential)
        if isinstance(cert, StakeAddressDeregistrationCertificate):
            return L.DeRegKey(cert.stake_credential)
        if isinstance(cert, StakeAddressPoolDelegationCertificate):
            return L.Delegate(cert.stake_credential, _require_hash(cert.pool_id, StakePoolKeyHash, "pool_id"))
        if isinstance(cert, StakePoolRegistrationCertificate):
            return L.RegPool(to_ledger_pool_params(cert.parameters))
        if isinstance(cert, StakePoolRetirementCertificate):
            if not is_coin(cert.epoch):
                raise CertificateError("invalid_epoch", "epoch must be an unsigned 64-bit integer", {"epoch": cert.epoch})
            return L.RetirePool(_require_hash(cert.pool_id, StakePoolKeyHash, "pool_id"), cert.epoch)
        if isinstance(cert, GenesisKeyDelegationCertificate):
            return L.GenesisDeleg(
                _require_hash(cert.genesis_key_hash, GenesisKeyHash, "genesis_key_hash"),
                _require_hash(cert.delegate_key_hash, GenesisDelegateKeyHash, "delegate_key_hash"),
                _require_hash(cert.vrf_key_hash, VrfKeyHash, "vrf_key_hash"),
            )
        if isinstance(cert, MIRCertificate):
            return _mir_to_ledger(cert)
    except CertificateError as e:
        _log_rejection(e)
        raise
    err = CertificateError("invalid_certificate", f"unknown certificate type: {type(cert).__name__}")
    _log_rejection(err)
    raise err


def from_ledger_certificate(dcert: L.DCert) -> Certificate:
    try:
        if isinstance(dcert, L.RegKey):
            return StakeAddressRegistrationCertificate(dcert.credential)
        if isinstance(dcert, L.DeRegKey):
            return StakeAddressDeregistrationCertificate(dcert.credential)
        if isinstance(dcert, L.Delegate):
            return StakeAddressPoolDelegationCertificate(dcert.credential, _typed_hash(StakePoolKeyHash, dcert.pool, "pool"))
        if isinstance(dcert, L.RegPool):
            return StakePoolRegistrationCertificate(from_ledger_pool_params(dcert.params))
        if isinstance(dcert, L.RetirePool):
            return StakePoolRetirementCertificate(_typed_hash(StakePoolKeyHash, dcert.pool, "pool"), dcert.epoch)
        if isinstance(dcert, L.GenesisDeleg):
            return GenesisKeyDelegationCertificate(
                _typed_hash(GenesisKeyHash, dcert.genesis, "genesis"),
                _typed_hash(GenesisDelegateKeyHash, dcert.delegate, "delegate"),
                _typed_hash(VrfKeyHash, dcert.vrf, "vrf"),
            )
        if isinstance(dcert, L.MIRCert):
            return _mir_from_ledger(dcert)
    except CertificateError as e:
        _log_rejection(e)
        raise
    err = CertificateError("invalid_certificate", f"unknown ledger certificate type: {type(dcert).__name__}")
    _log_rejection(err)
    raise err


# ----------------------------------------------------------------------------
# CBOR
# ----------------------------------------------------------------------------


def serialise_certificate(cert: Certificate, *, protocol_version: ProtocolVersion) -> bytes:
    return serialize(L.dcert_to_primitive(to_ledger_certificate(cert), protocol_version), protocol_version=protocol_version)


def _decode_certificate(raw: Any, pv: ProtocolVersion) -> Certificate:
    dcert = L.dcert_from_primitive(raw, pv)
    try:
        return from_ledger_certificate(dcert)
    except CertificateError as e:
        raise WireDecodeError(e.code, e.reason) from e


def deserialise_certificate(data: bytes, *, protocol_version: ProtocolVersion) -> Certificate:
    return decode_full(data, protocol_version=protocol_version, label="Certificate", decoder=_decode_certificate)
