from datetime import datetime, timedelta, timezone

from services.audit import audit_trail, data_hash

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_entries_are_positioned_relative_to_now() -> None:
    entries = audit_trail(NOW)

    assert [entry.id for entry in entries] == ["6", "1", "2", "3", "4", "5"]
    assert entries[0].timestamp == NOW - timedelta(minutes=2)
    assert entries[-1].timestamp == NOW - timedelta(minutes=125)
    assert [entry.status for entry in entries].count("pending") == 1


def test_data_hash_is_stable_hex() -> None:
    digest = data_hash("1", "Turbidity violation")

    assert digest == data_hash("1", "Turbidity violation")
    assert digest.startswith("0x")
    assert len(digest) == 42
    int(digest[2:], 16)


def test_serialized_with_camel_case_keys() -> None:
    payload = audit_trail(NOW)[0].model_dump(by_alias=True)

    assert {"dataHash", "blockNumber"} <= set(payload)
