"""Shared HAR fixtures for the test suite."""
import json

import pytest

from har_analyzer.adapter import HarAnalyzerAdapter
from har_analyzer.config import HarAnalyzerConfig
from har_analyzer.session import SessionManager


def har_entry(url="https://a.com/x", method="GET", status=200, body="", mime_type="application/json",
              request_headers=None, response_headers=None, post_data=None, query=None,
              encoding=None, time_ms=12.5, request_cookies=None):
    """Build one raw HAR entry dict."""
    content = {"size": len(body), "mimeType": mime_type, "text": body}
    if encoding:
        content["encoding"] = encoding
    request = {
        "method": method,
        "url": url,
        "httpVersion": "HTTP/1.1",
        "headers": request_headers or [],
        "queryString": query or [],
        "cookies": request_cookies or [],
        "headersSize": -1,
        "bodySize": len(post_data) if post_data else 0,
    }
    if post_data is not None:
        request["postData"] = {"mimeType": "application/json", "text": post_data}
    return {
        "startedDateTime": "2024-05-01T10:00:00.000Z",
        "time": time_ms,
        "request": request,
        "response": {
            "status": status,
            "statusText": "",
            "httpVersion": "HTTP/1.1",
            "headers": response_headers or [],
            "cookies": [],
            "content": content,
            "redirectURL": "",
            "headersSize": -1,
            "bodySize": len(body),
        },
        "cache": {},
        "timings": {"send": 1, "wait": 10, "receive": 1.5},
    }


def har_document(entries):
    return {"log": {"version": "1.2", "creator": {"name": "test", "version": "1"}, "entries": entries}}


@pytest.fixture
def make_entry():
    return har_entry


@pytest.fixture
def write_har(tmp_path):
    """Write a HAR file with the given entries and return its path."""
    def _write(entries, name="capture.har"):
        path = tmp_path / name
        path.write_text(json.dumps(har_document(entries)), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def sessions(tmp_path):
    return SessionManager(tmp_path / "sessions", ttl_hours=24)


@pytest.fixture
def config(tmp_path):
    return HarAnalyzerConfig(sessions_dir=tmp_path / "sessions", preview_threshold=1000, preview_length=200)


@pytest.fixture
def adapter(sessions, config):
    return HarAnalyzerAdapter(sessions, config)


@pytest.fixture
def sample_entries():
    """Three entries across two domains with a mix of statuses."""
    return [
        har_entry("https://a.com/ok", status=200, body='{"ok": true}'),
        har_entry("https://b.com/missing", method="POST", status=404, body="not here",
                  mime_type="text/plain", post_data='{"q": 1}'),
        har_entry("https://a.com/gone?id=7", status=404, body="gone"),
    ]
