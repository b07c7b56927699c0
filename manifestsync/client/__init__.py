"""Consumer side: read surfaces, local replica, fetch client, orchestrator."""

from manifestsync.client.fetch_client import FetchClient
from manifestsync.client.lock import ReplicaLock
from manifestsync.client.orchestrator import SyncOrchestrator
from manifestsync.client.read_surface import (
    HttpManifestClient,
    LocalReadSurface,
    ReadSurface,
)
from manifestsync.client.replica import LocalReplica

__all__ = [
    "FetchClient",
    "HttpManifestClient",
    "LocalReadSurface",
    "LocalReplica",
    "ReadSurface",
    "ReplicaLock",
    "SyncOrchestrator",
]
