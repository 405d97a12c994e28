from __future__ import annotations

"""Operational certificate issuance.

An operational certificate binds a pool's evolving hot (KES) key to its cold
key for a starting KES period and an issue number. The issue counter is the
only mutable state in this area and it is *not* held here: callers pass the
current OperationalCertificateIssueCounter in, get the incremented one back
and persist it themselves, after issuance succeeded.

Issuance is a read-modify-write over that counter. Hosts that may issue
concurrently for the same cold key must serialise those calls; IssueCounterLocks
provides an in-process lock per cold key for that purpose.
"""

import logging
import struct
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Tuple, Union

from stakeapi.codec.cbor import (
    ProtocolVersion,
    decode_full,
    expect_bytes,
    expect_list,
    expect_uint,
    serialize,
)
from stakeapi.crypto.keys import (
    WORD64_MAX,
    GenesisDelegateExtendedSigningKey,
    GenesisDelegateVerificationKey,
    KESPeriod,
    KesVerificationKey,
    StakePoolSigningKey,
    StakePoolVerificationKey,
    cast_verification_key,
)
from stakeapi.crypto.sig import ED25519_SIGNATURE_SIZE, verify_ed25519_signature
from stakeapi.errors import StakeApiError
from stakeapi.logging_util import log_event

log = logging.getLogger("stakeapi.opcert")

TEXT_ENVELOPE_TYPE = "NodeOperationalCertificate"
ISSUE_COUNTER_TEXT_ENVELOPE_TYPE = "NodeOperationalCertificateIssueCounter"

OPCERT_CBOR_LABEL = "OperationalCertificate"
ISSUE_COUNTER_CBOR_LABEL = "OperationalCertificateIssueCounter"

ColdSigningKey = Union[StakePoolSigningKey, GenesisDelegateExtendedSigningKey]


@dataclass(frozen=True)
class OCert:
    hot_vkey: KesVerificationKey
    counter: int
    kes_period: KESPeriod
    signature: bytes


@dataclass(frozen=True)
class OperationalCertificate:
    ocert: OCert
    cold_vkey: StakePoolVerificationKey


@dataclass(frozen=True)
class OperationalCertificateIssueCounter:
    count: int
    cold_vkey: StakePoolVerificationKey

    def __post_init__(self) -> None:
        if isinstance(self.count, bool) or not isinstance(self.count, int) or not 0 <= self.count <= WORD64_MAX:
            raise StakeApiError("invalid_counter", "issue counter must be an unsigned 64-bit integer", {"count": self.count})
        if not isinstance(self.cold_vkey, StakePoolVerificationKey):
            raise StakeApiError("invalid_counter", "issue counter is bound to a stake pool verification key")


class OperationalCertKeyMismatch(StakeApiError):
    """The signing key does not belong to the cold key the counter is bound to."""

    def __init__(self, expected: StakePoolVerificationKey, supplied: StakePoolVerificationKey) -> None:
        super().__init__(
            "opcert_key_mismatch",
            "Key mismatch: the signing key does not match the one that goes with the counter",
            {"expected_key_hash": expected.hash().hex(), "supplied_key_hash": supplied.hash().hex()},
        )
        self.expected = expected
        self.supplied = supplied


def ocert_signable(hot_vkey: KesVerificationKey, counter: int, kes_period: KESPeriod) -> bytes:
    """Bytes signed by the cold key: hot key || uint64be(counter) || uint64be(period)."""
    return hot_vkey.payload + struct.pack(">QQ", counter, int(kes_period))


def cold_verification_key(signing_key: ColdSigningKey) -> StakePoolVerificationKey:
    if isinstance(signing_key, StakePoolSigningKey):
        return signing_key.verification_key()
    if isinstance(signing_key, GenesisDelegateExtendedSigningKey):
        # Only used to compare identities with the counter's key.
        delegate = cast_verification_key(signing_key.verification_key(), GenesisDelegateVerificationKey)
        return cast_verification_key(delegate, StakePoolVerificationKey)
    raise StakeApiError("invalid_signing_key", f"unsupported cold signing key: {type(signing_key).__name__}")


def issue_operational_certificate(
    kes_vkey: KesVerificationKey,
    signing_key: ColdSigningKey,
    kes_period: KESPeriod,
    counter: OperationalCertificateIssueCounter,
) -> Tuple[OperationalCertificate, OperationalCertificateIssueCounter]:
    """Issue a certificate with the counter's current number.

    Returns the certificate and the next counter. Raises
    OperationalCertKeyMismatch when `signing_key` does not match the counter's
    cold key; the passed-in counter is never modified either way.
    """
    supplied = cold_verification_key(signing_key)
    if supplied != counter.cold_vkey:
        log_event(
            log,
            "opcert_key_mismatch",
            level=logging.WARNING,
            expected_key_hash=counter.cold_vkey.hash().hex(),
            supplied_key_hash=supplied.hash().hex(),
        )
        raise OperationalCertKeyMismatch(counter.cold_vkey, supplied)

    if counter.count >= WORD64_MAX:
        raise StakeApiError("counter_overflow", "issue counter is exhausted", {"count": counter.count})

    signature = signing_key.sign(ocert_signable(kes_vkey, counter.count, kes_period))
    cert = OperationalCertificate(
        OCert(hot_vkey=kes_vkey, counter=counter.count, kes_period=kes_period, signature=signature),
        counter.cold_vkey,
    )
    next_counter = OperationalCertificateIssueCounter(counter.count + 1, counter.cold_vkey)

    log_event(
        log,
        "opcert_issued",
        cold_key_hash=counter.cold_vkey.hash().hex(),
        counter=counter.count,
        kes_period=int(kes_period),
    )
    return cert, next_counter


def get_hot_key(cert: OperationalCertificate) -> KesVerificationKey:
    return cert.ocert.hot_vkey


def get_kes_period(cert: OperationalCertificate) -> int:
    return int(cert.ocert.kes_period)


def get_opcert_count(cert: OperationalCertificate) -> int:
    return cert.ocert.counter


def verify_operational_certificate(cert: OperationalCertificate) -> bool:
    """Check the cold key signature over the certificate body."""
    ocert = cert.ocert
    return verify_ed25519_signature(
        message=ocert_signable(ocert.hot_vkey, ocert.counter, ocert.kes_period),
        sig=ocert.signature,
        pubkey=cert.cold_vkey.payload,
    )


# ----------------------------------------------------------------------------
# CBOR
# ----------------------------------------------------------------------------


def operational_certificate_to_primitive(cert: OperationalCertificate) -> Any:
    o = cert.ocert
    return [[o.hot_vkey.payload, o.counter, int(o.kes_period), o.signature], cert.cold_vkey.payload]


def operational_certificate_from_primitive(v: Any, _pv: ProtocolVersion) -> OperationalCertificate:
    body, cold = expect_list(v, "operational certificate", size=2)
    hot, n, period, sig = expect_list(body, "ocert", size=4)
    return OperationalCertificate(
        OCert(
            hot_vkey=KesVerificationKey(expect_bytes(hot, "ocert hot key", size=KesVerificationKey.SIZE)),
            counter=expect_uint(n, "ocert counter"),
            kes_period=KESPeriod(expect_uint(period, "ocert kes period")),
            signature=expect_bytes(sig, "ocert signature", size=ED25519_SIGNATURE_SIZE),
        ),
        StakePoolVerificationKey(expect_bytes(cold, "ocert cold key", size=StakePoolVerificationKey.SIZE)),
    )


def serialise_operational_certificate(cert: OperationalCertificate, *, protocol_version: ProtocolVersion) -> bytes:
    return serialize(operational_certificate_to_primitive(cert), protocol_version=protocol_version)


def deserialise_operational_certificate(data: bytes, *, protocol_version: ProtocolVersion) -> OperationalCertificate:
    return decode_full(
        data,
        protocol_version=protocol_version,
        label=OPCERT_CBOR_LABEL,
        decoder=operational_certificate_from_primitive,
    )


def _issue_counter_from_primitive(v: Any, _pv: ProtocolVersion) -> OperationalCertificateIssueCounter:
    n, cold = expect_list(v, "issue counter", size=2)
    return OperationalCertificateIssueCounter(
        expect_uint(n, "issue counter count"),
        StakePoolVerificationKey(expect_bytes(cold, "issue counter cold key", size=StakePoolVerificationKey.SIZE)),
    )


def serialise_issue_counter(counter: OperationalCertificateIssueCounter, *, protocol_version: ProtocolVersion) -> bytes:
    return serialize([counter.count, counter.cold_vkey.payload], protocol_version=protocol_version)


def deserialise_issue_counter(data: bytes, *, protocol_version: ProtocolVersion) -> OperationalCertificateIssueCounter:
    return decode_full(
        data,
        protocol_version=protocol_version,
        label=ISSUE_COUNTER_CBOR_LABEL,
        decoder=_issue_counter_from_primitive,
    )


# ----------------------------------------------------------------------------
# Per-cold-key locking
# ----------------------------------------------------------------------------


class IssueCounterLocks:
    """One in-process lock per cold key.

    Locks are created on first use and never evicted, so the table holds one
    entry per distinct cold key seen by this process. An operator runs a
    handful of pools, which keeps it small; create a fresh instance if a
    long-running process cycles through many keys.

    Usage:
        with locks.hold(counter.cold_vkey):
            counter = store.load(...)
            cert, counter = issue_operational_certificate(...)
            store.save(counter)
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[bytes, threading.Lock] = {}

    def lock_for(self, cold_vkey: StakePoolVerificationKey) -> threading.Lock:
        key = cold_vkey.hash().payload
        with self._guard:
            lk = self._locks.get(key)
            if lk is None:
                lk = threading.Lock()
                self._locks[key] = lk
            return lk

    @contextmanager
    def hold(self, cold_vkey: StakePoolVerificationKey) -> Iterator[None]:
        lk = self.lock_for(cold_vkey)
        with lk:
            yield
