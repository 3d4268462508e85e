"""Local HTTP transport for the host bridge operations."""

from __future__ import annotations

import json
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from aimpick.constants import BRIDGE_OPERATIONS
from aimpick.web_bridge import HostBridge


_PREFIX = "/bridge/"


class _BridgeHandler(BaseHTTPRequestHandler):
    server_version = "AimPickBridge/1.0"

    def _send_json(self, status_code: int, payload: dict[str, Any]) -> None:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        self.send_response(status_code)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-store")
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.end_headers()
        self.wfile.write(body)

    def do_OPTIONS(self) -> None:  # noqa: N802
        self._send_json(200, {"ok": True})

    def do_GET(self) -> None:  # noqa: N802
        if self.path == "/health":
            self._send_json(200, {"ok": True, "operations": list(BRIDGE_OPERATIONS)})
            return
        if self.path == _PREFIX + "getConfig":
            self._reply("getConfig", None)
            return
        self._send_json(404, {"error": "not_found"})

    def do_POST(self) -> None:  # noqa: N802
        if self.path == "/shutdown":
            self.server.should_shutdown = True
            self._send_json(200, {"ok": True})
            return
        if not self.path.startswith(_PREFIX):
            self._send_json(404, {"error": "not_found"})
            return
        operation = self.path[len(_PREFIX) :]
        if operation not in BRIDGE_OPERATIONS:
            self._send_json(404, {"error": "unknown_operation", "operation": operation})
            return
        try:
            length = int(self.headers.get("Content-Length", "0") or "0")
        except ValueError:
            self._send_json(400, {"error": "invalid_content_length"})
            return
        raw = self.rfile.read(length) if length > 0 else b""
        text = raw.decode("utf-8", errors="replace")
        payload: Any = text
        if text.strip():
            try:
                payload = json.loads(text)
            except json.JSONDecodeError:
                payload = text
        self._reply(operation, payload)

    def _reply(self, operation: str, payload: Any) -> None:
        result = self.server.bridge.dispatch(operation, payload)
        ok = not result.startswith(("ERR:", '{"error"'))
        self._send_json(200, {"ok": ok, "operation": operation, "result": result})

    def log_message(self, _format: str, *_args: Any) -> None:
        return


class BridgeServer(ThreadingHTTPServer):
    def __init__(self, server_address: tuple[str, int], bridge: HostBridge):
        super().__init__(server_address, _BridgeHandler)
        self.bridge = bridge
        self.should_shutdown = False


def serve_bridge(bridge: HostBridge, *, host: str = "127.0.0.1", port: int = 0) -> None:
    server = BridgeServer((host, port), bridge)
    bound_host, bound_port = server.server_address[:2]
    print(f"Bridge listening on http://{bound_host}:{bound_port}{_PREFIX}<operation>")
    try:
        while not server.should_shutdown:
            server.handle_request()
    except KeyboardInterrupt:
        print("Bridge stopped.")
    finally:
        server.server_close()
