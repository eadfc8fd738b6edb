from __future__ import annotations

from fleetmotion._redact import redact_for_log


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "select": "id,name",
        "apikey": "anon-key",
        "Authorization": "Bearer abc",
        "nested": {"password": "pw", "vehicle_id": "V1"},
        "rows": [{"token": "t"}],
    }

    redacted = redact_for_log(payload)
    assert redacted["select"] == "id,name"
    assert redacted["apikey"] == "<redacted>"
    assert redacted["Authorization"] == "<redacted>"
    assert redacted["nested"]["password"] == "<redacted>"
    assert redacted["nested"]["vehicle_id"] == "V1"
    assert redacted["rows"][0]["token"] == "<redacted>"


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]
