"""Fetch client: one consumer's resolve / compare / download / replace step.

``sync`` never raises for expected failures: every ``ManifestSyncError``
becomes a ``failed`` SyncResult carrying its kind and retryability, so the
orchestrator decides what to retry. A hash mismatch is always reported,
never swallowed, and never reaches the local file.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from manifestsync.client.read_surface import ReadSurface
from manifestsync.client.replica import LocalReplica
from manifestsync.core.hasher import is_valid_digest
from manifestsync.errors import ManifestSyncError, RemoteError, TransientError
from manifestsync.models.replica import ReplicaState, SyncResult
from manifestsync.models.revision import LatestPointerView

logger = logging.getLogger(__name__)


class FetchClient:
    """Keeps local replicas in step with a read surface.

    The client remembers, per replica path, the highest sequence number it
    has observed (seeded from the sidecar) and refuses answers older than
    that, so reads are monotonic for this consumer.
    """

    def __init__(self, surface: ReadSurface) -> None:
        self.surface = surface
        self._observed: dict[Path, int] = {}

    def observed_sequence(self, replica: LocalReplica) -> int:
        return self._observed.get(replica.path.resolve(), 0)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def sync(self, replica: LocalReplica, *, timeout: float | None = None) -> SyncResult:
        """Bring *replica* up to date with the latest published revision."""
        try:
            return self._sync(replica, timeout)
        except ManifestSyncError as exc:
            log = logger.warning if exc.retryable else logger.error
            log("sync %s failed (%s): %s", replica.path, exc.kind, exc)
            return SyncResult.failed(exc)
        except OSError as exc:
            logger.error("sync %s: local I/O error: %s", replica.path, exc)
            return SyncResult.failed(ManifestSyncError(f"local I/O error: {exc}"))

    def check(
        self, replica: LocalReplica, *, timeout: float | None = None
    ) -> tuple[bool, LatestPointerView]:
        """Return ``(is_current, latest)`` without touching the replica."""
        state = replica.load_state()
        latest = self._resolve(replica, state, timeout)
        current = (
            state is not None
            and state.content_hash == latest.content_hash
            and replica.matches(latest.content_hash)
        )
        return current, latest

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _sync(self, replica: LocalReplica, timeout: float | None) -> SyncResult:
        # timeout covers the resolve and the download together
        deadline = None if timeout is None else time.monotonic() + timeout
        state = replica.load_state()
        latest = self._resolve(replica, state, timeout)

        if (
            state is not None
            and state.content_hash == latest.content_hash
            and replica.matches(latest.content_hash)
        ):
            if state.sequence_number != latest.sequence_number:
                # Same bytes republished under a newer number
                replica.record(latest.content_hash, latest.sequence_number)
            logger.debug("sync %s: unchanged at seq=%d", replica.path, latest.sequence_number)
            return SyncResult.unchanged(latest.content_hash, latest.sequence_number)

        if state is not None and state.content_hash == latest.content_hash:
            logger.warning(
                "local copy of %s diverged from its recorded hash; restoring canonical copy",
                replica.path,
            )

        remaining = None
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TransientError(
                    f"no time left to download {latest.content_hash[:12]} "
                    f"from {self.surface.location}"
                )
        content = self.surface.fetch_content(
            latest.content_hash,
            timeout=remaining,
            max_bytes=latest.size_bytes or None,
        )
        replica.replace(content, latest.content_hash, latest.sequence_number)
        return SyncResult.updated(content, latest.content_hash, latest.sequence_number)

    def _resolve(
        self,
        replica: LocalReplica,
        state: ReplicaState | None,
        timeout: float | None,
    ) -> LatestPointerView:
        key = replica.path.resolve()
        observed = max(
            self._observed.get(key, 0),
            state.sequence_number if state else 0,
        )

        latest = self.surface.resolve_latest(observed, timeout=timeout)
        if not is_valid_digest(latest.content_hash):
            raise RemoteError(
                f"{self.surface.location} returned a malformed content hash "
                f"{latest.content_hash!r}"
            )
        if latest.sequence_number < observed:
            raise TransientError(
                f"{self.surface.location} answered seq={latest.sequence_number}, "
                f"older than already observed seq={observed}"
            )

        self._observed[key] = latest.sequence_number
        return latest
