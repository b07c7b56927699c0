"""Manifest revision models (immutable, content-addressed)."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class ManifestRevision(BaseModel):
    """One published version of the manifest.

    ``content_hash`` is the SHA-256 hex digest of ``content``; two revisions
    with the same hash carry byte-identical content. ``content`` is empty
    when the revision was read from the log without its body.
    """

    model_config = ConfigDict(frozen=True)

    sequence_number: int = Field(ge=1)
    content_hash: str
    author: str
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    size_bytes: int = 0
    content: bytes = b""
    previous_revision_hash: str = ""  # seal of the revision before this one
    revision_hash: str = ""  # computed on append, seals this revision

    def pointer(self) -> LatestPointerView:
        """Return the lightweight view served by ``GET /manifest/latest``."""
        return LatestPointerView(
            content_hash=self.content_hash,
            sequence_number=self.sequence_number,
            author=self.author,
            created_at=self.created_at,
            size_bytes=self.size_bytes,
        )


class LatestPointerView(BaseModel):
    """What consumers learn about the canonical revision before downloading."""

    model_config = ConfigDict(frozen=True)

    content_hash: str
    sequence_number: int
    author: str = ""
    created_at: datetime | None = None
    size_bytes: int = 0


class PublishReceipt(BaseModel):
    """Response body of a successful ``POST /manifest``."""

    model_config = ConfigDict(frozen=True)

    content_hash: str
    sequence_number: int


class RevisionSummary(BaseModel):
    """A history row as listed by ``GET /manifest/history``."""

    model_config = ConfigDict(frozen=True)

    sequence_number: int
    content_hash: str
    author: str
    created_at: datetime
    size_bytes: int
    revision_hash: str
