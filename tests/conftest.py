"""Pytest configuration and fixtures for rest-gateway tests.

This file provides:
- make_gateway / RecordingHandler: GatewayClient over httpx.MockTransport
- PortReservation: Race-free port allocation for test servers
- MockServer: Subprocess management for the mock downstream API
- Fixtures: Shared test infrastructure
"""

from __future__ import annotations

import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, Callable, Generator

import httpx
import pytest
from pydantic import BaseModel

from rest_gateway.gateway import GatewayClient

# Project root for fixture paths
PROJECT_ROOT = Path(__file__).parent.parent
MOCK_SERVER_MODULE = "tests.integration.mock_server"
TEST_BASE_URL = "http://downstream.test"


class UserDTO(BaseModel):
    """Response shape used across gateway tests."""

    id: int
    name: str


class RecordingHandler:
    """httpx.MockTransport handler that records requests and replies with a canned response.

    A fresh httpx.Response is built for every request from status_code and
    response_kwargs (passed straight to httpx.Response), or by calling respond.

    Usage:
        handler = RecordingHandler(200, json={"id": 7, "name": "A"})
        gateway = make_gateway(handler)
        gateway.get_request("/users/7", response_type=UserDTO)
        assert handler.last.url.path == "/users/7"
    """

    def __init__(
        self,
        status_code: int = 200,
        respond: Callable[[httpx.Request], httpx.Response] | None = None,
        **response_kwargs: Any,
    ) -> None:
        self._status_code = status_code
        self._respond = respond
        self._response_kwargs = response_kwargs
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        # Read the body so tests can inspect request.content afterwards
        request.read()
        self.requests.append(request)
        if self._respond is not None:
            return self._respond(request)
        return httpx.Response(self._status_code, **self._response_kwargs)

    @property
    def last(self) -> httpx.Request:
        assert self.requests, "no request was sent"
        return self.requests[-1]


def make_gateway(
    handler: Callable[[httpx.Request], httpx.Response],
    base_url: str = TEST_BASE_URL,
) -> GatewayClient:
    """Create a GatewayClient whose transport is an httpx.MockTransport."""
    client = httpx.Client(base_url=base_url, transport=httpx.MockTransport(handler))
    return GatewayClient(client)


class PortReservation:
    """Holds a reserved port with socket kept open to prevent races.

    WHY this exists: a free port found by binding port 0 can be grabbed by
    another process before the server binds it. Keeping the socket open until
    just before the server starts eliminates the race.
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
        except (ConnectionRefusedError, socket.timeout, OSError):
            time.sleep(0.1)
    return False


class MockServer:
    """Manages the mock downstream API subprocess for integration tests."""

    def __init__(self, reservation: PortReservation) -> None:
        self._reservation = reservation
        self.port = reservation.port
        self.host = "127.0.0.1"
        self.base_url = f"http://{self.host}:{self.port}"
        self._process: subprocess.Popen | None = None

    def start(self) -> None:
        """Start the mock server subprocess.

        Raises:
            RuntimeError: If server fails to start within 10 seconds.
        """
        self._reservation.release()

        self._process = subprocess.Popen(
            [
                sys.executable, "-m", MOCK_SERVER_MODULE,
                "--host", self.host,
                "--port", str(self.port),
            ],
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
                f"MockServer failed to start on port {self.port}. "
                f"stderr: {stderr or '(empty)'}"
            )

    def stop(self) -> None:
        """Stop the subprocess: SIGTERM, then SIGKILL after 5s.

        Safe to call multiple times or if server was never started.
        """
        if self._process:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                try:
                    self._process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    pass  # Unkillable process, nothing more we can do
            self._process = None

    def __enter__(self) -> MockServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def mock_server() -> Generator[MockServer, None, None]:
    """Start the mock downstream API once per test session."""
    with MockServer(PortReservation()) as server:
        yield server


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Tag tests as integration or unit based on their directory.

    Enables running subsets via:
        pytest -m integration
        pytest -m unit
    """
    for item in items:
        test_path = Path(item.fspath)
        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
