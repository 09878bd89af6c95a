from __future__ import annotations

from datetime import datetime

from pywsf._redact import redact_for_log, redact_url


def test_redact_url_hides_access_code() -> None:
    url = "https://www.wsdot.wa.gov/ferries/api/vessels/rest/vesselbasics?apiaccesscode=SECRET&callback=jsonp_1_abc"
    redacted = redact_url(url)
    assert "SECRET" not in redacted
    assert "apiaccesscode=<redacted>" in redacted
    assert "callback=jsonp_1_abc" in redacted


def test_redact_url_without_query_is_unchanged() -> None:
    assert redact_url("https://example.test/path") == "https://example.test/path"


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "vesselName": "Chimacum",
        "apiAccessCode": "SECRET",
        "nested": {"Authorization": "Bearer x"},
    }

    redacted = redact_for_log(payload)
    assert redacted["vesselName"] == "Chimacum"
    assert redacted["apiAccessCode"] == "<redacted>"
    assert redacted["nested"]["Authorization"] == "<redacted>"


def test_redact_for_log_truncates_long_strings_and_lists() -> None:
    redacted = redact_for_log({"value": "x" * 600, "items": list(range(25))}, max_string=10, max_items=3)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]
    assert redacted["items"] == [0, 1, 2, "<22 more>"]


def test_redact_for_log_renders_dates() -> None:
    assert redact_for_log({"updated": datetime(2024, 1, 2, 3, 4)}) == {"updated": "2024-01-02T03:04:00"}
