"""Consumer-side models: the replica sidecar and sync outcomes."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from manifestsync.errors import ExitCode, ManifestSyncError


class ReplicaState(BaseModel):
    """Contents of the sidecar file recorded next to the local manifest."""

    model_config = ConfigDict(frozen=True)

    content_hash: str = ""
    sequence_number: int = 0
    source_url: str = ""
    synced_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class SyncStatus(str, Enum):
    """The three possible outcomes of a single sync attempt."""

    UNCHANGED = "unchanged"
    UPDATED = "updated"
    FAILED = "failed"


class SyncResult(BaseModel):
    """Outcome of ``FetchClient.sync``.

    ``updated`` carries the new content; ``failed`` carries the error kind,
    a human-readable detail and whether the orchestrator may retry.
    """

    model_config = ConfigDict(frozen=True)

    status: SyncStatus
    content_hash: str = ""
    sequence_number: int = 0
    content: bytes | None = None
    error_kind: str = ""
    detail: str = ""
    retryable: bool = False
    exit_code: int = ExitCode.OK

    @classmethod
    def unchanged(cls, content_hash: str, sequence_number: int) -> SyncResult:
        return cls(
            status=SyncStatus.UNCHANGED,
            content_hash=content_hash,
            sequence_number=sequence_number,
        )

    @classmethod
    def updated(
        cls, content: bytes, content_hash: str, sequence_number: int
    ) -> SyncResult:
        return cls(
            status=SyncStatus.UPDATED,
            content=content,
            content_hash=content_hash,
            sequence_number=sequence_number,
        )

    @classmethod
    def failed(cls, error: ManifestSyncError) -> SyncResult:
        return cls(
            status=SyncStatus.FAILED,
            error_kind=error.kind,
            detail=str(error),
            retryable=error.retryable,
            exit_code=error.exit_code,
        )

    @property
    def ok(self) -> bool:
        return self.status is not SyncStatus.FAILED


class SyncReport(BaseModel):
    """What the orchestrator hands back to the hook integration."""

    model_config = ConfigDict(frozen=True)

    result: SyncResult
    attempts: int
    elapsed_seconds: float
    replica_path: str

    @property
    def exit_code(self) -> int:
        return self.result.exit_code

    @property
    def ok(self) -> bool:
        return self.result.ok

    def diagnostic(self) -> str:
        """One-line, greppable summary of the run."""
        parts = [
            "manifestsync:",
            f"status={self.result.status.value}",
        ]
        if self.result.error_kind:
            parts.append(f"kind={self.result.error_kind}")
        if self.result.sequence_number:
            parts.append(f"seq={self.result.sequence_number}")
        if self.result.content_hash:
            parts.append(f"hash={self.result.content_hash[:12]}")
        parts.append(f"attempts={self.attempts}")
        parts.append(f"elapsed={self.elapsed_seconds:.2f}s")
        parts.append(f"path={self.replica_path}")
        if self.result.detail:
            detail = " ".join(self.result.detail.split())
            parts.append(f"detail={detail!r}")
        return " ".join(parts)
