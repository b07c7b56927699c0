"""Adversarial tests: corrupted or hostile downloads never reach the replica.

A read surface that serves bytes not matching the advertised hash must
produce a non-retryable integrity failure after exactly one attempt, with
the previous local file and sidecar untouched and no temp files left.
"""

from __future__ import annotations

from manifestsync.client.fetch_client import FetchClient
from manifestsync.client.orchestrator import SyncOrchestrator
from manifestsync.client.read_surface import LocalReadSurface
from manifestsync.client.replica import LocalReplica
from manifestsync.core.publisher import PublishEndpoint
from manifestsync.errors import ExitCode


class SwappingSurface(LocalReadSurface):
    """Advertises the latest revision but serves the first one's bytes."""

    def fetch_content(self, content_hash, *, timeout=None, max_bytes=None):
        first = self._endpoint.revision(1)
        return self._endpoint.get_content(first.content_hash)


class TestCorruptDownload:
    def test_swapped_body_rejected(
        self, endpoint: PublishEndpoint, replica: LocalReplica, clock
    ):
        endpoint.publish(b"v1", "alice")
        FetchClient(LocalReadSurface(endpoint)).sync(replica)
        before_file = replica.path.read_bytes()
        before_sidecar = replica.sidecar_path.read_bytes()

        endpoint.publish(b"v2", "bob")
        orch = SyncOrchestrator(
            FetchClient(SwappingSurface(endpoint)),
            sleep=clock.sleep,
            clock=clock,
        )
        report = orch.run(replica)

        assert report.exit_code == ExitCode.INTEGRITY
        assert report.attempts == 1
        assert report.result.retryable is False
        assert clock.sleeps == []
        assert replica.path.read_bytes() == before_file
        assert replica.sidecar_path.read_bytes() == before_sidecar
        leftovers = [p.name for p in replica.path.parent.iterdir() if p.suffix == ".tmp"]
        assert leftovers == []

    def test_tampered_store_object_never_served(
        self, endpoint: PublishEndpoint, replica: LocalReplica, clock
    ):
        rev = endpoint.publish(b"v1", "alice")
        digest = rev.content_hash
        obj = endpoint.store.base_path / digest[:2] / digest[2:4] / f"{digest}.dat"
        obj.write_bytes(b"tampered at rest")

        result = FetchClient(LocalReadSurface(endpoint)).sync(replica)
        assert result.ok is False
        assert result.exit_code == ExitCode.INTEGRITY
        assert not replica.path.exists()
