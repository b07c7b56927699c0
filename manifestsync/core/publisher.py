"""Publish endpoint: the only writer of revisions and of the latest pointer.

``publish`` validates the body, stores it by content hash, appends it to
the revision log (retrying lost append races) and advances the latest
pointer. ``resolve_latest`` is the hot read path used by every consumer;
it is served from an in-process cache that is at most
``cache_ttl_seconds`` behind the pointer, and it never hands a consumer a
revision older than the one that consumer says it already saw.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from manifestsync.config import SyncSettings
from manifestsync.core.content_store import ContentAddressedStore
from manifestsync.core.latest_pointer import LatestPointer
from manifestsync.core.revision_log import RevisionLog
from manifestsync.errors import (
    ConflictError,
    InvalidInputError,
    ManifestTooLargeError,
    NotFoundError,
    TransientError,
)
from manifestsync.models.revision import ManifestRevision

logger = logging.getLogger(__name__)

MAX_AUTHOR_LENGTH = 128


class PublishEndpoint:
    """Validates, records and serves manifest revisions.

    Parameters
    ----------
    store:
        Content-addressed object store holding manifest bodies.
    log:
        Append-only revision log.
    pointer:
        The forward-only latest pointer.
    max_manifest_bytes:
        Upper bound on a manifest body.
    max_attempts:
        Append attempts per publish before a ``ConflictError`` surfaces.
    cache_ttl_seconds:
        Staleness window of ``resolve_latest``.
    clock:
        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        store: ContentAddressedStore,
        log: RevisionLog,
        pointer: LatestPointer,
        *,
        max_manifest_bytes: int = 1024 * 1024,
        max_attempts: int = 3,
        cache_ttl_seconds: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.log = log
        self.pointer = pointer
        self._max_bytes = max_manifest_bytes
        self._max_attempts = max(1, max_attempts)
        self._ttl = cache_ttl_seconds
        self._clock = clock

        self._lock = threading.Lock()
        self._cached: ManifestRevision | None = None
        self._cached_at = 0.0

    @classmethod
    def from_settings(cls, settings: SyncSettings) -> PublishEndpoint:
        """Wire a PublishEndpoint from configuration."""
        return cls(
            ContentAddressedStore(settings.store_path),
            RevisionLog(
                settings.database_path,
                busy_timeout=settings.sqlite_busy_timeout_seconds,
            ),
            LatestPointer(
                settings.database_path,
                busy_timeout=settings.sqlite_busy_timeout_seconds,
            ),
            max_manifest_bytes=settings.max_manifest_bytes,
            max_attempts=settings.publish_max_attempts,
            cache_ttl_seconds=settings.latest_cache_ttl_seconds,
        )

    @property
    def cache_ttl_seconds(self) -> float:
        return self._ttl

    @property
    def max_manifest_bytes(self) -> int:
        return self._max_bytes

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def publish(self, content: bytes, author: str) -> ManifestRevision:
        """Publish *content* as the new canonical manifest."""
        author = self._validate(content, author)
        content_hash = self.store.put(content)

        attempt = 1
        while True:
            try:
                revision = self.log.append(
                    content_hash, author, size_bytes=len(content)
                )
                break
            except ConflictError:
                logger.warning(
                    "publish: append conflict, attempt %d/%d",
                    attempt,
                    self._max_attempts,
                )
                if attempt >= self._max_attempts:
                    raise
                attempt += 1

        self.pointer.advance(revision.sequence_number)
        revision = revision.model_copy(update={"content": content})
        self._remember(revision)

        logger.info(
            "publish: seq=%d hash=%s by %s",
            revision.sequence_number,
            revision.content_hash,
            revision.author,
        )
        return revision

    def _validate(self, content: bytes, author: str) -> str:
        if not content:
            raise InvalidInputError("manifest body is empty")
        if len(content) > self._max_bytes:
            raise ManifestTooLargeError(
                f"manifest is {len(content)} bytes, "
                f"limit is {self._max_bytes}"
            )
        author = (author or "").strip()
        if not author:
            raise InvalidInputError("author identifier is required")
        if len(author) > MAX_AUTHOR_LENGTH or not author.isprintable():
            raise InvalidInputError(
                f"author must be at most {MAX_AUTHOR_LENGTH} printable characters"
            )
        return author

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def resolve_latest(self, min_sequence: int = 0) -> ManifestRevision:
        """Return the canonical revision, content included.

        *min_sequence* is the highest sequence number the caller has
        already observed. A cached answer older than that is bypassed; if
        the pointer itself is behind, ``TransientError`` tells the caller
        to come back later.
        """
        if min_sequence < 0:
            raise InvalidInputError("min_sequence must be >= 0")

        with self._lock:
            cached, cached_at = self._cached, self._cached_at
        if (
            cached is not None
            and self._clock() - cached_at < self._ttl
            and cached.sequence_number >= min_sequence
        ):
            return cached

        latest = self._refresh(cached)
        if latest.sequence_number < min_sequence:
            raise TransientError(
                f"latest revision {latest.sequence_number} is behind the "
                f"observed revision {min_sequence}"
            )
        return latest

    def _refresh(self, cached: ManifestRevision | None) -> ManifestRevision:
        seq = self.pointer.current()
        if seq == 0:
            raise NotFoundError("no manifest has been published yet")

        if cached is not None and cached.sequence_number == seq:
            revision = cached
        else:
            meta = self.log.read(seq)
            revision = meta.model_copy(
                update={"content": self.store.get(meta.content_hash)}
            )
        return self._remember(revision)

    def _remember(self, revision: ManifestRevision) -> ManifestRevision:
        """Cache *revision* unless a newer one is already cached."""
        with self._lock:
            if (
                self._cached is None
                or revision.sequence_number >= self._cached.sequence_number
            ):
                self._cached = revision
                self._cached_at = self._clock()
            return self._cached

    def get_content(self, content_hash: str) -> bytes:
        return self.store.get(content_hash)

    def revision(self, sequence_number: int) -> ManifestRevision:
        """Return a historical revision with its content."""
        meta = self.log.read(sequence_number)
        return meta.model_copy(
            update={"content": self.store.get(meta.content_hash)}
        )

    def history(self, limit: int = 20, offset: int = 0) -> list[ManifestRevision]:
        return self.log.history(limit=limit, offset=offset)

    def head(self) -> int:
        return self.log.head()
