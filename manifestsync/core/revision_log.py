"""Append-only, hash-chained revision log backed by SQLite.

Design:
- Append-only: only ``append()`` writes; no update, no delete.
- Linearizable: the sequence number is the primary key. ``append`` reads
  the tail and inserts ``tail + 1``; a concurrent writer that claimed the
  same number first makes the INSERT fail, which surfaces as
  ``ConflictError`` (compare-and-swap on the tail). Callers retry with a
  fresh number.
- Hash-chained: each row seals the previous row's ``revision_hash``.
- WAL journal mode for concurrent readers.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from manifestsync.core.hasher import compute_revision_hash
from manifestsync.errors import ConflictError, LogIntegrityError, NotFoundError
from manifestsync.models.revision import ManifestRevision

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_LOG = """
CREATE TABLE IF NOT EXISTS revision_log (
    sequence_number        INTEGER PRIMARY KEY,
    content_hash           TEXT NOT NULL,
    author                 TEXT NOT NULL,
    created_at             TEXT NOT NULL,
    size_bytes             INTEGER NOT NULL DEFAULT 0,
    previous_revision_hash TEXT NOT NULL DEFAULT '',
    revision_hash          TEXT NOT NULL UNIQUE
);
"""

_CREATE_IDX_HASH = """
CREATE INDEX IF NOT EXISTS idx_content_hash ON revision_log(content_hash);
"""

_COLUMNS = (
    "sequence_number, content_hash, author, created_at, size_bytes, "
    "previous_revision_hash, revision_hash"
)


class RevisionLog:
    """Append-only ordered history of manifest revisions.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file. Created if it does not exist.
    busy_timeout:
        Seconds a writer waits for SQLite's write lock before giving up.
    """

    def __init__(self, db_path: Path, *, busy_timeout: float = 30.0) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._busy_timeout = busy_timeout
        self._init_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(
            str(self._db_path),
            timeout=self._busy_timeout,
            check_same_thread=False,
        )
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            yield conn
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(_CREATE_LOG)
            conn.execute(_CREATE_IDX_HASH)
            conn.commit()

    # ------------------------------------------------------------------
    # Core: append-only write
    # ------------------------------------------------------------------

    def append(
        self,
        content_hash: str,
        author: str,
        timestamp: datetime | None = None,
        *,
        size_bytes: int = 0,
    ) -> ManifestRevision:
        """Claim the next sequence number for *content_hash*.

        Returns the sealed revision (without content). Raises
        ``ConflictError`` if a concurrent append claimed the number first.
        """
        head, previous_hash = self._tail()
        created_at = timestamp or datetime.now(timezone.utc)
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        revision = ManifestRevision(
            sequence_number=head + 1,
            content_hash=content_hash,
            author=author,
            created_at=created_at,
            size_bytes=size_bytes,
            previous_revision_hash=previous_hash,
        )
        sealed = revision.model_copy(
            update={"revision_hash": _seal(revision)}
        )

        try:
            self._insert(sealed)
        except sqlite3.IntegrityError as exc:
            raise ConflictError(
                f"sequence number {sealed.sequence_number} was claimed "
                f"by a concurrent append"
            ) from exc

        logger.info(
            "append: seq=%d hash=%s author=%s",
            sealed.sequence_number,
            sealed.content_hash,
            sealed.author,
        )
        return sealed

    def _insert(self, revision: ManifestRevision) -> None:
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO revision_log ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    revision.sequence_number,
                    revision.content_hash,
                    revision.author,
                    revision.created_at.isoformat(),
                    revision.size_bytes,
                    revision.previous_revision_hash,
                    revision.revision_hash,
                ),
            )
            conn.commit()

    def _tail(self) -> tuple[int, str]:
        """Return ``(head sequence number, head revision hash)`` in one read."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT sequence_number, revision_hash FROM revision_log "
                "ORDER BY sequence_number DESC LIMIT 1"
            ).fetchone()
        return (row[0], row[1]) if row else (0, "")

    # ------------------------------------------------------------------
    # Query methods (read-only)
    # ------------------------------------------------------------------

    def head(self) -> int:
        """Highest committed sequence number, 0 when the log is empty."""
        return self._tail()[0]

    def floor(self) -> int:
        """Lowest retained sequence number, 0 when the log is empty."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT MIN(sequence_number) FROM revision_log"
            ).fetchone()
        return row[0] if row and row[0] is not None else 0

    def read(self, sequence_number: int) -> ManifestRevision:
        """Return the revision with *sequence_number* (metadata only)."""
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM revision_log WHERE sequence_number = ?",
                (sequence_number,),
            ).fetchone()
        if row is None:
            raise NotFoundError(
                f"No revision with sequence number {sequence_number} "
                f"(retained range {self.floor()}..{self.head()})"
            )
        return self._row_to_revision(row)

    def history(self, limit: int = 20, offset: int = 0) -> list[ManifestRevision]:
        """Return revisions newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM revision_log "
                "ORDER BY sequence_number DESC LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
        return [self._row_to_revision(row) for row in rows]

    def _all(self) -> list[ManifestRevision]:
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM revision_log ORDER BY sequence_number ASC"
            ).fetchall()
        return [self._row_to_revision(row) for row in rows]

    # ------------------------------------------------------------------
    # Chain verification
    # ------------------------------------------------------------------

    def verify_chain(self) -> bool:
        """Verify sequence contiguity and hash chain integrity.

        Returns True if the log is valid, raises LogIntegrityError otherwise.
        """
        expected_seq = None
        prev_hash = ""
        for revision in self._all():
            if expected_seq is not None and revision.sequence_number != expected_seq:
                raise LogIntegrityError(
                    f"Gap in revision log: expected seq={expected_seq}, "
                    f"got {revision.sequence_number}"
                )

            if revision.previous_revision_hash != prev_hash:
                raise LogIntegrityError(
                    f"Chain broken at seq={revision.sequence_number}: "
                    f"expected previous_hash={prev_hash!r}, "
                    f"got {revision.previous_revision_hash!r}"
                )

            expected_hash = _seal(revision)
            if revision.revision_hash != expected_hash:
                raise LogIntegrityError(
                    f"Tampered revision seq={revision.sequence_number}: "
                    f"expected hash={expected_hash!r}, "
                    f"got {revision.revision_hash!r}"
                )

            prev_hash = revision.revision_hash
            expected_seq = revision.sequence_number + 1

        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_revision(row: tuple) -> ManifestRevision:
        (
            sequence_number,
            content_hash,
            author,
            created_at,
            size_bytes,
            previous_revision_hash,
            revision_hash,
        ) = row
        return ManifestRevision(
            sequence_number=sequence_number,
            content_hash=content_hash,
            author=author,
            created_at=datetime.fromisoformat(created_at),
            size_bytes=size_bytes,
            previous_revision_hash=previous_revision_hash,
            revision_hash=revision_hash,
        )


def _seal(revision: ManifestRevision) -> str:
    return compute_revision_hash(
        revision.model_dump(mode="json", exclude={"content", "revision_hash"})
    )
