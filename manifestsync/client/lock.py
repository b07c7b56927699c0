"""Consumer-scoped exclusion lock (single-flight per local replica).

Two hook invocations in the same checkout must not run the atomic replace
at the same time. The lock is a file created with ``O_CREAT | O_EXCL``;
its existence means "a sync is in flight". A lock file older than
``stale_after`` seconds is assumed to belong to a crashed process and is
broken by renaming it aside, so only the file judged stale is removed.
"""

from __future__ import annotations

import json
import logging
import os
import time
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from manifestsync.errors import ReplicaLockedError

logger = logging.getLogger(__name__)


class ReplicaLock:
    """File lock guarding one local replica.

    Parameters
    ----------
    path:
        Lock file location.
    timeout:
        Seconds to wait for a held lock before raising ``ReplicaLockedError``.
    stale_after:
        Age in seconds after which an existing lock file is broken.
    poll_interval:
        Seconds between acquisition attempts.
    """

    def __init__(
        self,
        path: Path,
        *,
        timeout: float = 5.0,
        stale_after: float = 120.0,
        poll_interval: float = 0.05,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.path = Path(path)
        self._timeout = timeout
        self._stale_after = stale_after
        self._poll = poll_interval
        self._clock = clock
        self._sleep = sleep
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        deadline = self._clock() + self._timeout
        self.path.parent.mkdir(parents=True, exist_ok=True)
        while True:
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                if self._break_if_stale():
                    continue
                if self._clock() >= deadline:
                    raise ReplicaLockedError(
                        f"another sync holds {self.path} "
                        f"(waited {self._timeout:.1f}s)"
                    ) from None
                self._sleep(self._poll)
                continue

            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(
                    {
                        "pid": os.getpid(),
                        "acquired_at": datetime.now(timezone.utc).isoformat(),
                    },
                    fh,
                )
            self._held = True
            logger.debug("acquired replica lock %s", self.path)
            return

    def release(self) -> None:
        if not self._held:
            return
        self.path.unlink(missing_ok=True)
        self._held = False
        logger.debug("released replica lock %s", self.path)

    def _break_if_stale(self) -> bool:
        """Break the lock file if it is stale; return True to retry at once.

        The stale file is renamed to a private tombstone before it is
        removed, so two breakers cannot both win. If the file that got
        renamed is not the one judged stale (a newer holder replaced it in
        between), it is linked back into place and left alone.
        """
        try:
            seen = self.path.stat()
        except FileNotFoundError:
            # Released between our open() and stat(); just retry.
            return True
        age = time.time() - seen.st_mtime
        if age < self._stale_after:
            return False

        tombstone = self.path.with_name(
            f"{self.path.name}.{os.getpid()}.{uuid.uuid4().hex[:8]}.stale"
        )
        try:
            os.rename(self.path, tombstone)
        except FileNotFoundError:
            # Another breaker or the holder got there first.
            return True

        taken = tombstone.stat()
        if (taken.st_ino, taken.st_mtime_ns) != (seen.st_ino, seen.st_mtime_ns):
            try:
                os.link(tombstone, self.path)
            except FileExistsError:
                logger.warning(
                    "replica lock %s was replaced while being broken; "
                    "a newer holder lost its lock file",
                    self.path,
                )
            tombstone.unlink()
            return False

        tombstone.unlink()
        logger.warning(
            "breaking stale replica lock %s (age %.0fs)", self.path, age
        )
        return True

    def __enter__(self) -> ReplicaLock:
        self.acquire()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.release()
