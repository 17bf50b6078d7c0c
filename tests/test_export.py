"""Tests for filtered and sanitized exports."""
from har_analyzer.export import REDACTED, build_export, describe_export
from har_analyzer.models import EntryFilter
from har_analyzer.parser import build_index
from har_analyzer.query import filter_entries
from conftest import har_document, har_entry


def _capture():
    return har_document([
        har_entry("https://a.com/login?token=abc&page=1",
                  request_headers=[{"name": "Authorization", "value": "Bearer xyz"},
                                   {"name": "Accept", "value": "*/*"}],
                  response_headers=[{"name": "Set-Cookie", "value": "sid=1"}],
                  request_cookies=[{"name": "session_id", "value": "s3cr3t"}],
                  query=[{"name": "token", "value": "abc"}, {"name": "page", "value": "1"}],
                  body='{"user": 1}', post_data='{"password": "x"}'),
        har_entry("https://b.com/other", status=500),
    ])


def test_export_selects_entries_and_keeps_log_metadata():
    har_data = _capture()
    entries = filter_entries(build_index(har_data), EntryFilter(domain="b.com"))

    exported = build_export(har_data, entries)

    assert exported["log"]["version"] == "1.2"
    assert exported["log"]["creator"] == {"name": "test", "version": "1"}
    assert [e["request"]["url"] for e in exported["log"]["entries"]] == ["https://b.com/other"]


def test_sanitize_redacts_sensitive_values_only():
    har_data = _capture()

    exported = build_export(har_data, build_index(har_data)[:1], sanitize=True)
    entry = exported["log"]["entries"][0]
    headers = {h["name"]: h["value"] for h in entry["request"]["headers"]}
    query = {q["name"]: q["value"] for q in entry["request"]["queryString"]}

    assert headers == {"Authorization": REDACTED, "Accept": "*/*"}
    assert entry["response"]["headers"][0]["value"] == REDACTED
    assert entry["request"]["cookies"][0]["value"] == REDACTED
    assert query == {"token": REDACTED, "page": "1"}
    assert "abc" not in entry["request"]["url"]
    assert "page=1" in entry["request"]["url"]


def test_strip_bodies():
    har_data = _capture()

    exported = build_export(har_data, build_index(har_data), strip_bodies=True)

    for entry in exported["log"]["entries"]:
        assert "text" not in entry["response"]["content"]
        assert "text" not in entry["request"].get("postData", {})


def test_export_leaves_source_untouched():
    har_data = _capture()

    build_export(har_data, build_index(har_data), sanitize=True, strip_bodies=True)

    assert har_data["log"]["entries"][0]["request"]["headers"][0]["value"] == "Bearer xyz"
    assert har_data["log"]["entries"][0]["response"]["content"]["text"] == '{"user": 1}'


def test_describe_export():
    assert describe_export(2, 5, False, False) == "Would export 2 of 5 entries."
    assert describe_export(2, 5, True, True) == "Would export 2 of 5 entries (sanitized, bodies stripped)."
