import gzip
import json

import pytest

from crm.backup.codec import Snapshot, decode, encode
from crm.backup.errors import MalformedArtifact


def _snapshot() -> Snapshot:
    return Snapshot(
        version="1.0.0",
        timestamp="2025-01-15T09:30:00.000Z",
        tables={
            "accounts": [{"id": "ACCT-1", "name": "Acme"}],
            "contacts": [{"id": "CONT-1", "account_id": "ACCT-1", "first_name": "Jo"}],
        },
    )


def test_encode_decode_roundtrip():
    snap = _snapshot()
    assert decode(encode(snap)) == snap


def test_encode_is_deterministic_and_compressed():
    snap = Snapshot(
        version="1.0.0",
        timestamp="2025-01-15T09:30:00.000Z",
        tables={"audit_logs": [{"id": f"AUD-{i}", "action": "update", "resource": "Account"} for i in range(500)]},
    )
    first = encode(snap)
    assert first == encode(snap)
    raw = json.dumps(snap.to_dict()).encode("utf-8")
    assert len(first) * 5 < len(raw)


def test_missing_table_reads_as_empty():
    snap = decode(encode(_snapshot()))
    assert snap.rows("opportunities") == []


def test_legacy_data_key_is_accepted():
    payload = {"version": "1.0.0", "timestamp": "t", "data": {"accounts": [{"id": "ACCT-1", "name": "Acme"}]}}
    snap = decode(gzip.compress(json.dumps(payload).encode("utf-8")))
    assert snap.rows("accounts") == [{"id": "ACCT-1", "name": "Acme"}]


def test_not_gzip_is_malformed():
    with pytest.raises(MalformedArtifact):
        decode(b"definitely not gzip")


def test_truncated_gzip_is_malformed():
    blob = encode(_snapshot())
    with pytest.raises(MalformedArtifact):
        decode(blob[: len(blob) // 2])


def test_invalid_json_is_malformed():
    with pytest.raises(MalformedArtifact):
        decode(gzip.compress(b"{not json"))


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"timestamp": "t", "tables": {}},
        {"version": "1.0.0", "tables": {}},
        {"version": "1.0.0", "timestamp": "t"},
        {"version": "1.0.0", "timestamp": "t", "tables": []},
        {"version": "1.0.0", "timestamp": "t", "tables": {"accounts": {"id": "ACCT-1"}}},
        {"version": "1.0.0", "timestamp": "t", "tables": {"accounts": ["ACCT-1"]}},
    ],
)
def test_structurally_invalid_payload_is_malformed(payload):
    with pytest.raises(MalformedArtifact):
        decode(gzip.compress(json.dumps(payload).encode("utf-8")))


def test_camel_case_table_names_are_mapped():
    payload = {
        "version": "1.0.0",
        "timestamp": "t",
        "data": {"userRoles": [{"userId": "USR-1", "roleId": "ROLE-1"}], "idPatterns": [], "accounts": []},
    }
    snap = decode(gzip.compress(json.dumps(payload).encode("utf-8")))
    assert set(snap.tables) == {"user_roles", "id_patterns", "accounts"}
    assert snap.rows("user_roles") == [{"userId": "USR-1", "roleId": "ROLE-1"}]
