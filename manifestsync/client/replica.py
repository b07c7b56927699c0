"""The consumer's local copy of the manifest and its sidecar.

Layout, for a manifest at ``repo/AGENTS.md``::

    repo/AGENTS.md                        the manifest itself
    repo/.AGENTS.md.manifestsync.json     last synced hash + sequence number
    repo/.AGENTS.md.manifestsync.lock     present while a sync is running

Both the manifest and the sidecar are only ever written through
``atomic_write_bytes``.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from manifestsync.client.lock import ReplicaLock
from manifestsync.core.atomic_file import atomic_write_bytes
from manifestsync.core.hasher import sha256_hex
from manifestsync.models.replica import ReplicaState

logger = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".manifestsync.json"
LOCK_SUFFIX = ".manifestsync.lock"


class LocalReplica:
    """A manifest file on a consumer's filesystem."""

    def __init__(self, path: Path, *, source_url: str = "") -> None:
        self.path = Path(path)
        self.source_url = source_url

    @property
    def sidecar_path(self) -> Path:
        return self.path.parent / f".{self.path.name}{SIDECAR_SUFFIX}"

    @property
    def lock_path(self) -> Path:
        return self.path.parent / f".{self.path.name}{LOCK_SUFFIX}"

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def load_state(self) -> ReplicaState | None:
        """Return the sidecar contents, or None if absent or unreadable."""
        try:
            raw = self.sidecar_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return ReplicaState.model_validate_json(raw)
        except ValidationError:
            logger.warning(
                "ignoring unreadable sidecar %s; the manifest will be re-fetched",
                self.sidecar_path,
            )
            return None

    @property
    def cached_content_hash(self) -> str:
        state = self.load_state()
        return state.content_hash if state else ""

    def read_content(self) -> bytes | None:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None

    def matches(self, content_hash: str) -> bool:
        """True if the file on disk hashes to *content_hash*."""
        content = self.read_content()
        return content is not None and sha256_hex(content) == content_hash

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def replace(self, content: bytes, content_hash: str, sequence_number: int) -> None:
        """Atomically install *content* and record it in the sidecar.

        Raises ``CorruptDownloadError`` (file untouched) if *content* does
        not hash to *content_hash*.
        """
        atomic_write_bytes(self.path, content, expected_hash=content_hash)
        self.record(content_hash, sequence_number)
        logger.info(
            "replaced %s with seq=%d hash=%s", self.path, sequence_number, content_hash
        )

    def record(self, content_hash: str, sequence_number: int) -> ReplicaState:
        state = ReplicaState(
            content_hash=content_hash,
            sequence_number=sequence_number,
            source_url=self.source_url,
        )
        atomic_write_bytes(
            self.sidecar_path,
            state.model_dump_json(indent=2).encode("utf-8"),
        )
        return state

    def lock(self, *, timeout: float = 5.0, stale_after: float = 120.0) -> ReplicaLock:
        return ReplicaLock(self.lock_path, timeout=timeout, stale_after=stale_after)

    def __repr__(self) -> str:
        return f"LocalReplica(path={str(self.path)!r})"
