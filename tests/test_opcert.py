from __future__ import annotations

import logging
import threading

import pytest

from stakeapi.codec.cbor import SHELLEY_PROTOCOL_VERSION, WireDecodeError
from stakeapi.crypto.keys import KESPeriod, StakePoolVerificationKey
from stakeapi.errors import StakeApiError
from stakeapi.opcert import (
    ISSUE_COUNTER_TEXT_ENVELOPE_TYPE,
    TEXT_ENVELOPE_TYPE,
    IssueCounterLocks,
    OperationalCertificateIssueCounter,
    OperationalCertKeyMismatch,
    cold_verification_key,
    deserialise_issue_counter,
    deserialise_operational_certificate,
    get_hot_key,
    get_kes_period,
    get_opcert_count,
    issue_operational_certificate,
    ocert_signable,
    serialise_issue_counter,
    serialise_operational_certificate,
    verify_operational_certificate,
)
from stakeapi.testing.sigtools import deterministic_cold_key, deterministic_genesis_delegate_key, deterministic_kes_vkey


def test_issue_increments_counter_and_binds_inputs() -> None:
    cold = deterministic_cold_key(label="pool-a")
    hot = deterministic_kes_vkey(label="hot-1")
    counter = OperationalCertificateIssueCounter(5, cold.verification_key())

    cert, next_counter = issue_operational_certificate(hot, cold, KESPeriod(210), counter)

    assert next_counter == OperationalCertificateIssueCounter(6, cold.verification_key())
    assert counter.count == 5
    assert get_hot_key(cert) == hot
    assert get_kes_period(cert) == 210
    assert get_opcert_count(cert) == 5
    assert cert.cold_vkey == counter.cold_vkey
    assert verify_operational_certificate(cert)


def test_key_mismatch_leaves_counter_untouched() -> None:
    owner = deterministic_cold_key(label="pool-a")
    intruder = deterministic_cold_key(label="pool-b")
    counter = OperationalCertificateIssueCounter(5, owner.verification_key())

    with pytest.raises(OperationalCertKeyMismatch) as ei:
        issue_operational_certificate(deterministic_kes_vkey(label="hot"), intruder, KESPeriod(0), counter)

    assert ei.value.code == "opcert_key_mismatch"
    assert ei.value.expected == owner.verification_key()
    assert ei.value.supplied == intruder.verification_key()
    assert counter == OperationalCertificateIssueCounter(5, owner.verification_key())


def test_genesis_delegate_key_is_compared_in_pool_key_space() -> None:
    delegate = deterministic_genesis_delegate_key(label="gd-1")
    cold_vkey = cold_verification_key(delegate)
    assert isinstance(cold_vkey, StakePoolVerificationKey)
    assert cold_vkey.payload == delegate.verification_key().payload[:32]

    counter = OperationalCertificateIssueCounter(0, cold_vkey)
    cert, next_counter = issue_operational_certificate(deterministic_kes_vkey(label="hot"), delegate, KESPeriod(1), counter)
    assert next_counter.count == 1
    assert verify_operational_certificate(cert)


def test_signable_layout() -> None:
    hot = deterministic_kes_vkey(label="hot")
    raw = ocert_signable(hot, 1, KESPeriod(2))
    assert raw == hot.payload + (1).to_bytes(8, "big") + (2).to_bytes(8, "big")


def test_tampered_certificate_fails_verification() -> None:
    cold = deterministic_cold_key(label="pool-a")
    counter = OperationalCertificateIssueCounter(0, cold.verification_key())
    cert, _ = issue_operational_certificate(deterministic_kes_vkey(label="hot"), cold, KESPeriod(3), counter)
    forged = type(cert)(type(cert.ocert)(cert.ocert.hot_vkey, 1, cert.ocert.kes_period, cert.ocert.signature), cert.cold_vkey)
    assert not verify_operational_certificate(forged)


def test_counter_overflow() -> None:
    cold = deterministic_cold_key(label="pool-a")
    counter = OperationalCertificateIssueCounter(2**64 - 1, cold.verification_key())
    with pytest.raises(StakeApiError) as ei:
        issue_operational_certificate(deterministic_kes_vkey(label="hot"), cold, KESPeriod(0), counter)
    assert ei.value.code == "counter_overflow"


def test_cbor_round_trip_and_layout() -> None:
    pv = SHELLEY_PROTOCOL_VERSION
    cold = deterministic_cold_key(label="pool-a")
    counter = OperationalCertificateIssueCounter(9, cold.verification_key())
    cert, next_counter = issue_operational_certificate(deterministic_kes_vkey(label="hot"), cold, KESPeriod(4), counter)

    data = serialise_operational_certificate(cert, protocol_version=pv)
    assert deserialise_operational_certificate(data, protocol_version=pv) == cert

    raw_counter = serialise_issue_counter(next_counter, protocol_version=pv)
    assert raw_counter[:2] == bytes.fromhex("820a")
    assert deserialise_issue_counter(raw_counter, protocol_version=pv) == next_counter


def test_cbor_decode_error_is_labelled() -> None:
    with pytest.raises(WireDecodeError) as ei:
        deserialise_operational_certificate(b"\x80", protocol_version=SHELLEY_PROTOCOL_VERSION)
    assert ei.value.label == "OperationalCertificate"


def test_issue_logs_key_hash_only(caplog: pytest.LogCaptureFixture) -> None:
    cold = deterministic_cold_key(label="pool-a")
    counter = OperationalCertificateIssueCounter(0, cold.verification_key())
    with caplog.at_level(logging.INFO, logger="stakeapi.opcert"):
        issue_operational_certificate(deterministic_kes_vkey(label="hot"), cold, KESPeriod(0), counter)
    text = caplog.text
    assert "opcert_issued" in text
    assert cold.verification_key().hash().hex() in text
    assert cold.verification_key().hex() not in text


def test_issue_counter_locks_serialise_per_key() -> None:
    cold = deterministic_cold_key(label="pool-a")
    hot = deterministic_kes_vkey(label="hot")
    locks = IssueCounterLocks()
    store = {"counter": OperationalCertificateIssueCounter(0, cold.verification_key())}
    issued = []

    def worker() -> None:
        for _ in range(20):
            with locks.hold(cold.verification_key()):
                cert, store["counter"] = issue_operational_certificate(hot, cold, KESPeriod(0), store["counter"])
                issued.append(get_opcert_count(cert))

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store["counter"].count == 80
    assert sorted(issued) == list(range(80))
    assert locks.lock_for(cold.verification_key()) is locks.lock_for(cold.verification_key())
    other = deterministic_cold_key(label="pool-b").verification_key()
    assert locks.lock_for(other) is not locks.lock_for(cold.verification_key())


def test_text_envelope_types() -> None:
    assert TEXT_ENVELOPE_TYPE == "NodeOperationalCertificate"
    assert ISSUE_COUNTER_TEXT_ENVELOPE_TYPE == "NodeOperationalCertificateIssueCounter"
