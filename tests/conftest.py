from __future__ import annotations

import json
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest


class _CrudHandler(BaseHTTPRequestHandler):
    """Minimal stand-in for the CRUD API under test."""

    def log_message(self, format, *args) -> None:  # noqa: A002
        pass

    def _respond(self, default_status: int = 200, body: object | None = None) -> None:
        server = self.server
        with server.lock:
            server.requests.append((self.command, self.path))
        if server.delay_s:
            time.sleep(server.delay_s)
        length = int(self.headers.get("Content-Length") or 0)
        if length:
            self.rfile.read(length)
        status = server.status or default_status
        payload = json.dumps(body if body is not None else {}).encode("utf-8")
        self.send_response(status)
        if status < 200 or status in (204, 304):
            self.end_headers()
            return
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def do_GET(self) -> None:
        if self.path == "/health":
            with self.server.lock:
                self.server.requests.append((self.command, self.path))
            status = self.server.health_status
            self.send_response(status)
            self.send_header("Content-Length", "0")
            self.end_headers()
            return
        self._respond(body=[])

    def do_POST(self) -> None:
        self._respond(default_status=201, body={"id": "new"})

    def do_PUT(self) -> None:
        self._respond()

    def do_DELETE(self) -> None:
        self._respond()


class CrudServer(ThreadingHTTPServer):
    daemon_threads = True
    request_queue_size = 128

    def __init__(self) -> None:
        super().__init__(("127.0.0.1", 0), _CrudHandler)
        self.lock = threading.Lock()
        self.requests: list[tuple[str, str]] = []
        self.status: int | None = None
        self.health_status = 200
        self.delay_s = 0.0

    @property
    def url(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"

    def request_count(self, exclude_health: bool = True) -> int:
        with self.lock:
            return sum(
                1 for _, path in self.requests if not (exclude_health and path == "/health")
            )


def _start_server() -> CrudServer:
    server = CrudServer()
    thread = threading.Thread(target=server.serve_forever, name="crud-server", daemon=True)
    thread.start()
    return server


@pytest.fixture
def crud_server():
    server = _start_server()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def second_crud_server():
    server = _start_server()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def unreachable_url() -> str:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}"


class FixedMemoryProbe:
    def __init__(self, value: float = 42.0) -> None:
        self.value = value
        self.calls = 0

    def memory_mb(self) -> float:
        self.calls += 1
        return self.value


@pytest.fixture
def memory_probe() -> FixedMemoryProbe:
    return FixedMemoryProbe()
