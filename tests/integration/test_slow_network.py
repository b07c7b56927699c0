"""Integration tests: a server that trickles bytes cannot outlast the budget.

httpx read timeouts restart on every byte, so a peer sending one byte every
50 ms never trips them. The consumer must still give up when its
wall-clock budget runs out and leave the replica untouched.
"""

from __future__ import annotations

import json
import socketserver
import threading
import time

import pytest

from manifestsync.client.fetch_client import FetchClient
from manifestsync.client.orchestrator import SyncOrchestrator
from manifestsync.client.read_surface import HttpManifestClient
from manifestsync.client.replica import LocalReplica
from manifestsync.errors import ExitCode, TransientError
from manifestsync.models.replica import SyncStatus

BODY = json.dumps(
    {"content_hash": "ab" * 32, "sequence_number": 1, "size_bytes": 2}
).encode()
HEADERS = (
    b"HTTP/1.1 200 OK\r\n"
    b"Content-Type: application/json\r\n"
    b"Content-Length: " + str(len(BODY)).encode() + b"\r\n"
    b"\r\n"
)


class TrickleHandler(socketserver.StreamRequestHandler):
    """Answers every request one byte at a time."""

    def handle(self) -> None:
        while self.rfile.readline() not in (b"\r\n", b"\n", b""):
            pass
        server: TrickleServer = self.server  # type: ignore[assignment]
        head = b"" if server.trickle_headers else HEADERS
        tail = HEADERS + BODY if server.trickle_headers else BODY
        try:
            self.wfile.write(head)
            self.wfile.flush()
            for byte in tail:
                if server.stopping.wait(server.interval):
                    return
                self.wfile.write(bytes([byte]))
                self.wfile.flush()
        except OSError:
            return


class TrickleServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, *, trickle_headers: bool, interval: float = 0.05) -> None:
        super().__init__(("127.0.0.1", 0), TrickleHandler)
        self.trickle_headers = trickle_headers
        self.interval = interval
        self.stopping = threading.Event()

    @property
    def url(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"


@pytest.fixture(params=[False, True], ids=["trickled-body", "trickled-headers"])
def trickle_server(request):
    server = TrickleServer(trickle_headers=request.param)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.stopping.set()
    server.shutdown()
    server.server_close()
    thread.join(5.0)


class TestTricklingServer:
    def test_budget_bounds_a_trickling_request(self, trickle_server, tmp_dir):
        replica = LocalReplica(tmp_dir / "consumer" / "AGENTS.md")
        with HttpManifestClient(trickle_server.url, timeout=1.0) as http:
            orch = SyncOrchestrator(
                FetchClient(http),
                max_attempts=3,
                budget_seconds=1.0,
                request_timeout=1.0,
                backoff_base=0.05,
            )
            started = time.monotonic()
            report = orch.run(replica)
            elapsed = time.monotonic() - started

        assert report.result.status is SyncStatus.FAILED
        assert report.result.error_kind == "timeout"
        assert report.exit_code == ExitCode.TIMEOUT
        assert elapsed < 2.5
        assert not replica.path.exists()
        assert replica.load_state() is None

    def test_single_request_deadline(self, trickle_server):
        with HttpManifestClient(trickle_server.url) as http:
            started = time.monotonic()
            with pytest.raises(TransientError):
                http.resolve_latest(timeout=0.5)
            elapsed = time.monotonic() - started

        assert elapsed < 1.5
