"""The single mutable reference to the canonical revision.

Stored as one SQLite row. ``advance`` is a conditional upsert, so the
pointer only ever moves forward and concurrent publishers cannot roll it
back: whichever revision has the higher sequence number wins.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_POINTER = """
CREATE TABLE IF NOT EXISTS latest_pointer (
    id              INTEGER PRIMARY KEY CHECK (id = 1),
    sequence_number INTEGER NOT NULL,
    updated_at      TEXT NOT NULL
);
"""

_ADVANCE = """
INSERT INTO latest_pointer (id, sequence_number, updated_at)
VALUES (1, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    sequence_number = excluded.sequence_number,
    updated_at = excluded.updated_at
WHERE excluded.sequence_number > latest_pointer.sequence_number
"""


class LatestPointer:
    """Forward-only pointer to the current canonical sequence number."""

    def __init__(self, db_path: Path, *, busy_timeout: float = 30.0) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._busy_timeout = busy_timeout
        with self._connect() as conn:
            conn.execute(_CREATE_POINTER)
            conn.commit()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(
            str(self._db_path),
            timeout=self._busy_timeout,
            check_same_thread=False,
        )
        try:
            yield conn
        finally:
            conn.close()

    def current(self) -> int:
        """Return the canonical sequence number, 0 if nothing is published."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT sequence_number FROM latest_pointer WHERE id = 1"
            ).fetchone()
        return row[0] if row else 0

    def advance(self, sequence_number: int) -> bool:
        """Move the pointer to *sequence_number* if it is newer.

        Returns True when the pointer moved.
        """
        with self._connect() as conn:
            cursor = conn.execute(
                _ADVANCE,
                (sequence_number, datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()
            moved = cursor.rowcount > 0
        if moved:
            logger.info("latest pointer advanced to seq=%d", sequence_number)
        else:
            logger.debug(
                "latest pointer not advanced to seq=%d (already newer)",
                sequence_number,
            )
        return moved
