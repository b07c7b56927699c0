"""Shared test fixtures for manifestsync."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from manifestsync.client.fetch_client import FetchClient
from manifestsync.client.read_surface import LocalReadSurface
from manifestsync.client.replica import LocalReplica
from manifestsync.config import SyncSettings
from manifestsync.core.content_store import ContentAddressedStore
from manifestsync.core.latest_pointer import LatestPointer
from manifestsync.core.publisher import PublishEndpoint
from manifestsync.core.revision_log import RevisionLog


class FakeClock:
    """Deterministic monotonic clock; ``sleep`` advances it."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test data."""
    return tmp_path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_dir: Path) -> SyncSettings:
    """Settings pointing every path into the temp directory."""
    return SyncSettings(
        database_path=tmp_dir / "service" / "revisions.db",
        store_path=tmp_dir / "service" / "objects",
        manifest_path=tmp_dir / "consumer" / "AGENTS.md",
        latest_cache_ttl_seconds=0.0,
    )


@pytest.fixture
def store(tmp_dir: Path) -> ContentAddressedStore:
    """Provide a fresh ContentAddressedStore in a temp directory."""
    return ContentAddressedStore(tmp_dir / "service" / "objects")


@pytest.fixture
def revision_log(tmp_dir: Path) -> RevisionLog:
    """Provide a fresh RevisionLog backed by a temp SQLite database."""
    return RevisionLog(tmp_dir / "service" / "revisions.db")


@pytest.fixture
def pointer(tmp_dir: Path) -> LatestPointer:
    return LatestPointer(tmp_dir / "service" / "revisions.db")


@pytest.fixture
def make_endpoint(
    tmp_dir: Path, clock: FakeClock
) -> Callable[..., PublishEndpoint]:
    """Factory fixture: endpoints sharing the same on-disk service state.

    Two endpoints built by this factory behave like two service processes
    in front of one database: each has its own latest cache.
    """

    def _factory(**overrides) -> PublishEndpoint:
        base = tmp_dir / "service"
        kwargs = {"cache_ttl_seconds": 0.0, "clock": clock}
        kwargs.update(overrides)
        return PublishEndpoint(
            ContentAddressedStore(base / "objects"),
            RevisionLog(base / "revisions.db"),
            LatestPointer(base / "revisions.db"),
            **kwargs,
        )

    return _factory


@pytest.fixture
def endpoint(make_endpoint: Callable[..., PublishEndpoint]) -> PublishEndpoint:
    """A PublishEndpoint with caching disabled."""
    return make_endpoint()


@pytest.fixture
def replica(tmp_dir: Path) -> LocalReplica:
    """A consumer replica that has never been synced."""
    return LocalReplica(tmp_dir / "consumer" / "AGENTS.md", source_url="local")


@pytest.fixture
def fetch_client(endpoint: PublishEndpoint) -> FetchClient:
    """A FetchClient reading the endpoint in-process."""
    return FetchClient(LocalReadSurface(endpoint))
