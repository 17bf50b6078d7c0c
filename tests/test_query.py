"""Tests for entry filtering."""
import pytest

from har_analyzer.errors import InvalidArgumentError
from har_analyzer.models import EntryFilter
from har_analyzer.parser import build_index
from har_analyzer.query import (
    filter_entries,
    group_by_domain,
    matches_domain,
    matches_method,
    matches_status,
    parse_entry_index,
)
from conftest import har_document, har_entry


@pytest.fixture
def index():
    return build_index(har_document([
        har_entry("https://a.com/1", status=200),
        har_entry("https://b.com/2", status=404),
        har_entry("https://a.com/3", status=500),
        har_entry("https://api.a.com/4", method="POST", status=404),
        har_entry("https://cdn.c.com/Static/5", status=304),
    ]))


@pytest.mark.parametrize("hostname,pattern,expected", [
    ("a.com", "a.com", True),
    ("api.a.com", "a.com", False),
    ("A.COM", "a.com", True),
    ("mya.com", "a.com", False),
    ("api.a.com", "*.a.com", True),
    ("a.com", "*.a.com", False),
    ("cdn1.c.com", "cdn?.c.com", True),
])
def test_matches_domain(hostname, pattern, expected):
    assert matches_domain(hostname, pattern) is expected


@pytest.mark.parametrize("status,expression,expected", [
    (400, "4xx", True),
    (499, "4xx", True),
    (399, "4xx", False),
    (500, "4xx", False),
    (404, "404", True),
    (405, "404", False),
    (304, "200,304", True),
    (201, "200,304", False),
    (301, "!3xx", False),
    (200, "!3xx", True),
    (404, "4xx,!404", False),
    (403, "4xx,!404", True),
])
def test_matches_status(status, expression, expected):
    assert matches_status(status, expression) is expected


def test_invalid_status_term():
    with pytest.raises(InvalidArgumentError) as exc:
        matches_status(200, "abc")
    assert "abc" in str(exc.value)


def test_matches_method():
    assert matches_method("POST", "post")
    assert matches_method("PUT", "GET, put")
    assert not matches_method("GET", "POST")


def test_filters_are_conjunctive():
    index = build_index(har_document([
        har_entry("https://a.com/x", status=200),
        har_entry("https://b.com/y", status=404),
        har_entry("https://a.com/z", status=404),
    ]))
    result = filter_entries(index, EntryFilter(domain="a.com", status="4xx"))
    assert [e.index for e in result] == [2]


def test_plain_domain_is_exact_and_glob_reaches_subdomains(index):
    assert [e.index for e in filter_entries(index, EntryFilter(domain="a.com"))] == [0, 2]
    assert [e.index for e in filter_entries(index, EntryFilter(domain="*.a.com"))] == [3]
    assert [e.index for e in filter_entries(index, EntryFilter(domain="*a.com"))] == [0, 2, 3]


def test_no_criteria_returns_everything(index):
    assert [e.index for e in filter_entries(index)] == [0, 1, 2, 3, 4]
    assert [e.index for e in filter_entries(index, EntryFilter())] == [0, 1, 2, 3, 4]


def test_url_substring_is_case_sensitive(index):
    assert [e.index for e in filter_entries(index, EntryFilter(url="Static"))] == [4]
    assert filter_entries(index, EntryFilter(url="static")) == []


def test_limit_applies_last(index):
    result = filter_entries(index, EntryFilter(status="4xx,5xx", limit=2))
    assert [e.index for e in result] == [1, 2]


def test_group_by_domain(index):
    groups = group_by_domain(index)
    assert list(groups) == ["a.com", "b.com", "api.a.com", "cdn.c.com"]
    assert [e.index for e in groups["a.com"]] == [0, 2]


@pytest.mark.parametrize("value,expected", [("e14", 14), ("14", 14), ("E3", 3), (7, 7)])
def test_parse_entry_index(value, expected):
    assert parse_entry_index(value) == expected


@pytest.mark.parametrize("value", ["x14", "e", "-1", True])
def test_parse_entry_index_rejects(value):
    with pytest.raises(InvalidArgumentError):
        parse_entry_index(value)
