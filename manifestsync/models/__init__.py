"""manifestsync data models: all Pydantic v2, all frozen (immutable)."""

from manifestsync.models.replica import (
    ReplicaState,
    SyncReport,
    SyncResult,
    SyncStatus,
)
from manifestsync.models.revision import (
    LatestPointerView,
    ManifestRevision,
    PublishReceipt,
    RevisionSummary,
)

__all__ = [
    # revisions
    "ManifestRevision",
    "LatestPointerView",
    "PublishReceipt",
    "RevisionSummary",
    # replica
    "ReplicaState",
    "SyncStatus",
    "SyncResult",
    "SyncReport",
]
