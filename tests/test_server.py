"""Tests for the JSON-RPC tool server."""
import io
import json

import pytest

from har_analyzer.server import INTERNAL_ERROR, INVALID_PARAMS, METHOD_NOT_FOUND, PARSE_ERROR, HarToolServer


@pytest.fixture
def server(adapter):
    return HarToolServer(adapter)


def test_initialize(server):
    response = server.handle_request({"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}})
    assert response["id"] == 1
    assert response["result"]["serverInfo"]["name"] == "har-analyzer"
    assert "tools" in response["result"]["capabilities"]


def test_tools_list(server):
    response = server.handle_request({"jsonrpc": "2.0", "id": 2, "method": "tools/list"})
    names = [tool["name"] for tool in response["result"]["tools"]]
    assert "har_load" in names
    assert "har_expand" in names


def test_tools_call_round_trip(server, write_har, sample_entries):
    load = server.handle_request({
        "jsonrpc": "2.0", "id": 3, "method": "tools/call",
        "params": {"name": "har_load", "arguments": {"file": str(write_har(sample_entries))}},
    })
    assert load["result"]["isError"] is False
    assert "Entries: 3" in load["result"]["content"][0]["text"]

    listed = server.handle_request({
        "jsonrpc": "2.0", "id": 4, "method": "tools/call",
        "params": {"name": "har_list", "arguments": {"status": "4xx"}},
    })
    assert listed["result"]["content"] == [
        {"type": "text", "text": "[e1] POST /missing 404\n[e2] GET /gone?id=7 404"},
    ]


def test_tool_failure_is_a_result_not_a_protocol_error(server):
    response = server.handle_request({
        "jsonrpc": "2.0", "id": 5, "method": "tools/call",
        "params": {"name": "har_overview", "arguments": {}},
    })
    assert "error" not in response
    assert response["result"]["isError"] is True


def test_unknown_method(server):
    response = server.handle_request({"jsonrpc": "2.0", "id": 6, "method": "resources/list"})
    assert response["error"]["code"] == METHOD_NOT_FOUND


def test_notifications_get_no_response(server):
    assert server.handle_request({"jsonrpc": "2.0", "method": "notifications/initialized"}) is None


def test_parse_error(server):
    assert server.handle_line("{oops")["error"]["code"] == PARSE_ERROR


def test_serve_writes_one_line_per_request(server):
    stdin = io.StringIO("\n".join([
        json.dumps({"jsonrpc": "2.0", "id": 1, "method": "ping"}),
        "",
        json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}),
        json.dumps({"jsonrpc": "2.0", "id": 2, "method": "tools/list"}),
    ]) + "\n")
    stdout = io.StringIO()

    server.serve(stdin, stdout)

    responses = [json.loads(line) for line in stdout.getvalue().splitlines()]
    assert [r["id"] for r in responses] == [1, 2]
    assert responses[0]["result"] == {}


@pytest.mark.parametrize("params", [[1], "har_list", 7])
def test_tools_call_with_non_object_params(server, params):
    response = server.handle_request({"jsonrpc": "2.0", "id": 9, "method": "tools/call", "params": params})
    assert response["id"] == 9
    assert response["error"]["code"] == INVALID_PARAMS


def test_bad_request_does_not_stop_serving(server):
    stdin = io.StringIO("\n".join([
        json.dumps({"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": [1]}),
        json.dumps({"jsonrpc": "2.0", "id": 2, "method": "ping"}),
    ]) + "\n")
    stdout = io.StringIO()

    server.serve(stdin, stdout)

    responses = [json.loads(line) for line in stdout.getvalue().splitlines()]
    assert responses[0]["error"]["code"] == INVALID_PARAMS
    assert responses[1] == {"jsonrpc": "2.0", "id": 2, "result": {}}


def test_unexpected_failure_becomes_internal_error(server, monkeypatch):
    def explode():
        raise RuntimeError("boom")
    monkeypatch.setattr(server.adapter, "tool_definitions", explode)

    response = server.handle_line(json.dumps({"jsonrpc": "2.0", "id": 3, "method": "tools/list"}))
    assert response["id"] == 3
    assert response["error"]["code"] == INTERNAL_ERROR
    assert "boom" in response["error"]["message"]

    ping = server.handle_line(json.dumps({"jsonrpc": "2.0", "id": 4, "method": "ping"}))
    assert ping["result"] == {}
