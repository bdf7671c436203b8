"""Pytest configuration and fixtures for meilirecord tests.

This file provides:
- RecordingTransport: httpx.MockTransport that records requests and replays canned responses
- PortReservation: Race-free port allocation for test servers
- MockServer: Subprocess management for the mock Meilisearch server
- Fixtures: Shared test infrastructure (connections, commands, servers)
"""

from __future__ import annotations

import socket
import subprocess
import sys
import time
import uuid
from pathlib import Path
from typing import Any, Generator

import httpx
import pytest

from meilirecord.connection import Connection
from meilirecord.indexes_command import IndexesCommand
from meilirecord.models import ConnectionConfig

# Project root for subprocess working directory
PROJECT_ROOT = Path(__file__).parent.parent
MOCK_SERVER_MODULE = "tests.integration.mock_server"
MOCK_API_KEY = "test-master-key"


def make_json_response(status_code: int = 200, body: Any = None, **kwargs: Any) -> httpx.Response:
    """Create a JSON response as Meilisearch would send it."""
    return httpx.Response(status_code, json=body if body is not None else {}, **kwargs)


class RecordingTransport(httpx.MockTransport):
    """Records every request and answers with queued responses.

    When the queue is empty, answers 200 with an empty JSON object.

    Usage:
        transport = RecordingTransport([make_json_response(200, {"uid": "movies"})])
        connection = Connection(transport=transport)
        connection.get(["indexes", "movies"])
        assert transport.requests[0].method == "GET"
    """

    def __init__(self, responses: list[httpx.Response | Exception] | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self._responses = list(responses or [])
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        if not self._responses:
            return make_json_response()
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def connection(transport: RecordingTransport) -> Generator[Connection, None, None]:
    """Connection to localhost:7700 backed by the recording transport."""
    config = ConnectionConfig(hostname="localhost", port=7700, use_ssl=False)
    with Connection(config, transport=transport) as conn:
        yield conn


@pytest.fixture
def movies(connection: Connection) -> IndexesCommand:
    return connection.create_command("movies")


# =============================================================================
# Mock Server
# =============================================================================


class PortReservation:
    """Holds a reserved port with socket kept open to prevent races.

    find_free_port() has a race window: another process can grab the port
    between when we find it and when our server binds. This class keeps the
    socket open until just before the server starts.
    """

    def __init__(self) -> None:
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._socket.bind(("127.0.0.1", 0))  # Port 0 = OS assigns ephemeral port
        self._port = self._socket.getsockname()[1]
        self._released = False

    @property
    def port(self) -> int:
        return self._port

    def release(self) -> int:
        """Release the socket and return the port for server use.

        Safe to call multiple times - subsequent calls are no-ops.
        """
        if not self._released:
            self._socket.close()
            self._released = True
        return self._port

    def __enter__(self) -> PortReservation:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()


def wait_for_server_ready(host: str, port: int, timeout: float = 10.0) -> bool:
    """Block until server accepts TCP connections, or timeout expires."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=1.0):
                return True
        except OSError:
            time.sleep(0.1)
    return False


class MockServer:
    """Runs tests/integration/mock_server.py as a subprocess.

    The server keeps indexes in memory and processes every task immediately,
    so writes are visible to the next read.
    """

    def __init__(self, port: int | PortReservation, api_key: str | None = None) -> None:
        if isinstance(port, PortReservation):
            self._reservation = port
            self.port = port.port
        else:
            self._reservation = None
            self.port = port
        self.api_key = api_key
        self.host = "127.0.0.1"
        self._process: subprocess.Popen | None = None

    def config(self, **overrides: Any) -> ConnectionConfig:
        """ConnectionConfig pointing at this server."""
        values: dict[str, Any] = {"hostname": self.host, "port": self.port, "api_key": self.api_key}
        values.update(overrides)
        return ConnectionConfig(**values)

    def start(self) -> None:
        """Start the mock server subprocess.

        Raises:
            RuntimeError: If server fails to start within 10 seconds.
        """
        if self._reservation:
            self._reservation.release()

        command = [
            sys.executable, "-m", MOCK_SERVER_MODULE,
            "--host", self.host,
            "--port", str(self.port),
        ]
        if self.api_key:
            command += ["--api-key", self.api_key]

        self._process = subprocess.Popen(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=PROJECT_ROOT,
        )

        if not wait_for_server_ready(self.host, self.port):
            stderr = ""
            if self._process and self._process.stderr:
                stderr = self._process.stderr.read().decode(errors="replace")
            self.stop()
            raise RuntimeError(
                f"MockServer failed to start on port {self.port}. stderr: {stderr or '(empty)'}"
            )

    def stop(self) -> None:
        """Stop the mock server subprocess with graceful shutdown.

        Uses SIGTERM first, then SIGKILL after 5s if process doesn't exit.
        """
        if self._process:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                self._process.wait(timeout=5)
            self._process = None

    def __enter__(self) -> MockServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


@pytest.fixture(scope="session")
def mock_meilisearch() -> Generator[MockServer, None, None]:
    """Mock Meilisearch server requiring MOCK_API_KEY. Session-scoped."""
    with MockServer(PortReservation(), api_key=MOCK_API_KEY) as server:
        yield server


@pytest.fixture
def live_connection(mock_meilisearch: MockServer) -> Generator[Connection, None, None]:
    with Connection(mock_meilisearch.config(connection_timeout=5, data_timeout=5)) as conn:
        yield conn


@pytest.fixture
def index_uid() -> str:
    """Unique index name so tests sharing the session server stay isolated."""
    return f"movies_{uuid.uuid4().hex[:8]}"


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Tag tests with unit/integration markers based on their directory."""
    for item in items:
        test_path = Path(item.fspath)
        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
