"""End-to-end tests: publisher, HTTP service and consumers working together.

Consumers reach the FastAPI app through real ``HttpManifestClient``
instances; the network is either the in-process ``TestClient`` or a
``httpx.MockTransport`` that fails on purpose.
"""

from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from manifestsync.client.fetch_client import FetchClient
from manifestsync.client.orchestrator import SyncOrchestrator
from manifestsync.client.read_surface import HttpManifestClient
from manifestsync.client.replica import LocalReplica
from manifestsync.core.hasher import sha256_hex
from manifestsync.errors import ExitCode
from manifestsync.models.replica import SyncStatus
from manifestsync.server.app import create_app

URL = "http://testserver"

V1 = b"# AGENTS\n\nRun the linter before committing.\n"
V2 = b"# AGENTS\n\nRun the linter and the tests before committing.\n"


class FlakyNetwork:
    """Fails the first *failures* requests, then forwards to the app."""

    def __init__(self, upstream: TestClient, failures: int) -> None:
        self.upstream = upstream
        self.failures = failures
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.calls <= self.failures:
            raise httpx.ReadError("connection reset by peer", request=request)
        answer = self.upstream.request(
            request.method,
            str(request.url),
            content=request.content,
            headers=dict(request.headers),
        )
        return httpx.Response(
            answer.status_code, headers=answer.headers, content=answer.content
        )


@pytest.fixture
def app_client(endpoint, settings) -> TestClient:
    return TestClient(create_app(endpoint, settings))


@pytest.fixture
def consumers(tmp_dir):
    return [
        LocalReplica(tmp_dir / f"repo-{name}" / "AGENTS.md", source_url=URL)
        for name in ("a", "b")
    ]


def _orchestrator(http: HttpManifestClient, clock) -> SyncOrchestrator:
    return SyncOrchestrator(FetchClient(http), sleep=clock.sleep, clock=clock)


class TestPublishAndSync:
    """Publish v1, sync two repos, publish v2, sync again."""

    def test_two_consumers_follow_two_revisions(self, app_client, consumers, clock):
        http = HttpManifestClient(URL, client=app_client)
        assert http.publish(V1, "alice").sequence_number == 1

        for replica in consumers:
            report = _orchestrator(http, clock).run(replica)
            assert report.result.status is SyncStatus.UPDATED
            assert replica.path.read_bytes() == V1

        for replica in consumers:
            report = _orchestrator(http, clock).run(replica)
            assert report.result.status is SyncStatus.UNCHANGED

        receipt = http.publish(V2, "bob")
        assert receipt.sequence_number == 2
        assert receipt.content_hash == sha256_hex(V2)

        for replica in consumers:
            report = _orchestrator(http, clock).run(replica)
            assert report.result.status is SyncStatus.UPDATED
            assert report.result.sequence_number == 2
            assert replica.path.read_bytes() == V2
            assert replica.load_state().content_hash == sha256_hex(V2)

        history = http.history()
        assert [r.sequence_number for r in history] == [2, 1]
        assert [r.author for r in history] == ["bob", "alice"]

    def test_fresh_consumer_only_sees_latest(self, app_client, consumers, clock):
        http = HttpManifestClient(URL, client=app_client)
        http.publish(V1, "alice")
        http.publish(V2, "bob")

        report = _orchestrator(http, clock).run(consumers[0])
        assert report.result.sequence_number == 2
        assert consumers[0].path.read_bytes() == V2

    def test_hand_edit_is_restored(self, app_client, consumers, clock):
        http = HttpManifestClient(URL, client=app_client)
        http.publish(V1, "alice")
        replica = consumers[0]
        _orchestrator(http, clock).run(replica)

        replica.path.write_bytes(b"# my local tweaks\n")
        report = _orchestrator(http, clock).run(replica)
        assert report.result.status is SyncStatus.UPDATED
        assert replica.path.read_bytes() == V1


class TestUnreliableNetwork:
    def test_recovers_after_transient_failures(
        self, app_client, endpoint, consumers, clock
    ):
        endpoint.publish(V1, "alice")
        network = FlakyNetwork(app_client, failures=2)
        http = HttpManifestClient(
            URL, client=httpx.Client(transport=httpx.MockTransport(network))
        )

        report = _orchestrator(http, clock).run(consumers[0])
        assert report.ok
        assert report.attempts == 3
        assert len(clock.sleeps) == 2
        assert consumers[0].path.read_bytes() == V1

    def test_network_down_times_out_and_keeps_file(
        self, app_client, endpoint, consumers, clock
    ):
        endpoint.publish(V1, "alice")
        replica = consumers[0]
        good = HttpManifestClient(URL, client=app_client)
        _orchestrator(good, clock).run(replica)
        endpoint.publish(V2, "bob")

        network = FlakyNetwork(app_client, failures=1000)
        http = HttpManifestClient(
            URL, client=httpx.Client(transport=httpx.MockTransport(network))
        )
        report = _orchestrator(http, clock).run(replica)

        assert report.ok is False
        assert report.attempts == 5
        assert report.result.error_kind == "timeout"
        assert report.exit_code == ExitCode.TIMEOUT
        assert "ReadError" in report.result.detail
        assert replica.path.read_bytes() == V1
        assert replica.load_state().sequence_number == 1
        assert not replica.lock_path.exists()
