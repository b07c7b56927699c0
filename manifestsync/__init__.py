"""manifestsync: one canonical manifest, many uncoordinated consumers.

- Content-addressed, immutable manifest bodies (SHA-256)
- Append-only, hash-chained revision log with linearizable appends
- Forward-only latest pointer with a bounded-staleness, monotonic read path
- Consumer sync with integrity check and atomic replace
- Retry with jittered backoff under a wall-clock budget, one sync per replica
"""

__version__ = "0.1.0"
__description__ = "Canonical manifest distribution and synchronization service"

from manifestsync.client.fetch_client import FetchClient
from manifestsync.client.orchestrator import SyncOrchestrator
from manifestsync.client.replica import LocalReplica
from manifestsync.core.publisher import PublishEndpoint
from manifestsync.cli.app import app as cli

__all__ = [
    "FetchClient",
    "LocalReplica",
    "PublishEndpoint",
    "SyncOrchestrator",
    "cli",
    "__version__",
]
