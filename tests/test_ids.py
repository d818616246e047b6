import pytest

from nusctl.core.ids import DEFAULT_IDS, SERVICE_UUID, normalize_uuid


def test_short_uuids_expand_onto_base_uuid() -> None:
    assert normalize_uuid("180F") == "0000180f-0000-1000-8000-00805f9b34fb"
    assert normalize_uuid("0000180f") == "0000180f-0000-1000-8000-00805f9b34fb"


def test_full_uuid_is_lowercased() -> None:
    assert normalize_uuid(" 6E400001-B5A3-F393-E0A9-E50E24DCCA9E ") == SERVICE_UUID


def test_invalid_uuid_rejected() -> None:
    with pytest.raises(ValueError):
        normalize_uuid("not-a-uuid")


def test_protocol_ids_match_case_insensitively() -> None:
    assert DEFAULT_IDS.matches_service("6E400001-B5A3-F393-E0A9-E50E24DCCA9E")
    assert DEFAULT_IDS.matches_command("6e400002-b5a3-f393-e0a9-e50e24dcca9e")
    assert DEFAULT_IDS.matches_status("6e400003-b5a3-f393-e0a9-e50e24dcca9e")
    assert not DEFAULT_IDS.matches_status("6e400002-b5a3-f393-e0a9-e50e24dcca9e")
    assert not DEFAULT_IDS.matches_service("garbage")
