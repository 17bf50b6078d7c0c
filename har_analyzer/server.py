"""
Agent-facing tool server: newline-delimited JSON-RPC 2.0 over stdio.

Handles initialize, tools/list, and tools/call one request at a time.
stdout carries protocol messages only; logging goes to stderr.
"""

import json
import logging
import sys
from typing import Any, Dict, Optional, TextIO

from . import __version__
from .adapter import HarAnalyzerAdapter

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "har-analyzer"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class HarToolServer:
    """Serves an adapter's operations as tools"""

    def __init__(self, adapter: HarAnalyzerAdapter):
        self.adapter = adapter
        self.capabilities = {
            "tools": {
                "listChanged": False
            }
        }

    def _error(self, request_id, code: int, message: str) -> Dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "error": {"code": code, "message": message},
        }

    def _result(self, request_id, result: Dict[str, Any]) -> Dict[str, Any]:
        return {"jsonrpc": "2.0", "id": request_id, "result": result}

    def handle_request(self, request: Any) -> Optional[Dict[str, Any]]:
        """
        Handle one decoded JSON-RPC message.

        Returns:
            Response dict, or None for notifications
        """
        if not isinstance(request, dict) or not isinstance(request.get("method"), str):
            return self._error(None, INVALID_REQUEST, "Invalid request")

        method = request["method"]
        request_id = request.get("id")
        is_notification = "id" not in request

        if method == "initialize":
            result = {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": self.capabilities,
                "serverInfo": {"name": SERVER_NAME, "version": __version__},
            }
        elif method == "tools/list":
            result = {"tools": self.adapter.tool_definitions()}
        elif method == "tools/call":
            params = request.get("params") or {}
            if not isinstance(params, dict):
                return self._error(request_id, INVALID_PARAMS, "tools/call params must be an object")
            name = params.get("name")
            arguments = params.get("arguments") or {}
            if not isinstance(name, str) or not isinstance(arguments, dict):
                return self._error(request_id, INVALID_PARAMS, "tools/call needs a name and an arguments object")

            tool_result = self.adapter.call_tool(name, arguments)
            result = {
                "content": [{"type": "text", "text": tool_result.text}],
                "isError": tool_result.is_error,
            }
        elif method == "ping":
            result = {}
        elif is_notification:
            logger.debug(f"Ignoring notification {method}")
            return None
        else:
            return self._error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")

        if is_notification:
            return None
        return self._result(request_id, result)

    def handle_line(self, line: str) -> Optional[Dict[str, Any]]:
        """Decode one input line and handle it."""
        try:
            request = json.loads(line)
        except json.JSONDecodeError as e:
            return self._error(None, PARSE_ERROR, f"Parse error: {e.msg}")

        try:
            return self.handle_request(request)
        except Exception as e:
            # One bad request must not end the serve loop
            logger.exception("Unhandled error while handling a request")
            request_id = request.get("id") if isinstance(request, dict) else None
            return self._error(request_id, INTERNAL_ERROR, f"Internal error: {e}")

    def serve(self, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None) -> None:
        """Read requests until EOF, writing one response line per request."""
        stdin = stdin or sys.stdin
        stdout = stdout or sys.stdout
        logger.info(f"{SERVER_NAME} {__version__} serving on stdio")
        for line in stdin:
            line = line.strip()
            if not line:
                continue
            response = self.handle_line(line)
            if response is not None:
                stdout.write(json.dumps(response, ensure_ascii=False) + "\n")
                stdout.flush()
        logger.info("stdin closed, shutting down")
