import hashlib

import pytest

from crm.backup import integrity
from crm.backup.codec import Snapshot, decode, encode
from crm.backup.errors import DecryptionError, IntegrityError, MissingKeyError

KEY = "k"


def test_concrete_scenario_roundtrip():
    snap = Snapshot(
        version="1.0.0",
        timestamp="2025-01-15T09:30:00.000Z",
        tables={
            "accounts": [{"id": "ACCT-1", "name": "Acme"}],
            "contacts": [{"id": "CONT-1", "accountId": "ACCT-1", "firstName": "Jo"}],
        },
    )
    artifact = integrity.seal(encode(snap), KEY)
    assert decode(integrity.open_artifact(artifact, KEY)) == snap


def test_artifact_layout():
    plain = b"hello backup"
    artifact = integrity.seal(plain, KEY)
    header, frame = artifact[:64], artifact[65:]
    assert artifact[64:65] == b"\n"
    assert header.decode("ascii") == hashlib.sha256(frame).hexdigest()
    # iv + tag + ciphertext (GCM ciphertext is the same length as the plaintext)
    assert len(frame) == 16 + 16 + len(plain)
    assert integrity.checksum_of(artifact) == header.decode("ascii")


def test_fresh_iv_per_seal():
    first = integrity.seal(b"same bytes", KEY)
    second = integrity.seal(b"same bytes", KEY)
    assert first[65:81] != second[65:81]
    assert first != second


def test_any_flipped_byte_is_an_integrity_error():
    artifact = integrity.seal(b"payload that matters", KEY)
    for i in range(len(artifact)):
        tampered = bytearray(artifact)
        tampered[i] ^= 0x01
        with pytest.raises(IntegrityError):
            integrity.open_artifact(bytes(tampered), KEY)


def test_tamper_is_detected_even_with_wrong_key():
    artifact = bytearray(integrity.seal(b"payload", KEY))
    artifact[-1] ^= 0xFF
    with pytest.raises(IntegrityError, match="backup may be corrupted"):
        integrity.open_artifact(bytes(artifact), "another key")


def test_truncated_artifact_is_an_integrity_error():
    artifact = integrity.seal(b"payload", KEY)
    with pytest.raises(IntegrityError):
        integrity.open_artifact(artifact[:40], KEY)
    with pytest.raises(IntegrityError):
        integrity.open_artifact(artifact[:-3], KEY)


def test_wrong_key_is_a_decryption_error():
    artifact = integrity.seal(b"payload", "k1")
    with pytest.raises(DecryptionError):
        integrity.open_artifact(artifact, "k2")


def test_rechecksummed_tampering_fails_authentication():
    artifact = integrity.seal(b"payload", KEY)
    frame = bytearray(artifact[65:])
    frame[-1] ^= 0x01
    forged = hashlib.sha256(bytes(frame)).hexdigest().encode("ascii") + b"\n" + bytes(frame)
    with pytest.raises(DecryptionError):
        integrity.open_artifact(forged, KEY)


@pytest.mark.parametrize("missing", [None, ""])
def test_missing_key_fails_fast(missing):
    with pytest.raises(MissingKeyError):
        integrity.seal(b"payload", missing)
    artifact = integrity.seal(b"payload", KEY)
    with pytest.raises(MissingKeyError):
        integrity.open_artifact(artifact, missing)


def test_bytes_and_str_keys_are_equivalent():
    artifact = integrity.seal(b"payload", "secret")
    assert integrity.open_artifact(artifact, b"secret") == b"payload"
