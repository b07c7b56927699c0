"""Content-addressed, immutable manifest object store.

Storage layout: {base_path}/{sha256[0:2]}/{sha256[2:4]}/{sha256}.dat
No delete method: objects are immutable once stored.
"""

from __future__ import annotations

import logging
from pathlib import Path

from manifestsync.core.atomic_file import atomic_write_bytes
from manifestsync.core.hasher import is_valid_digest, normalize_digest, sha256_hex
from manifestsync.errors import NotFoundError, StoreIntegrityError

logger = logging.getLogger(__name__)


class ContentAddressedStore:
    """SHA-256 keyed, immutable byte store.

    Every object is stored under its SHA-256 digest. Storing the same
    content twice is a no-op (idempotent). There is no update or delete.

    Parameters
    ----------
    base_path:
        Root directory for object storage.
    """

    def __init__(self, base_path: Path) -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base

    def _object_path(self, digest: str) -> Path:
        return self._base / digest[:2] / digest[2:4] / f"{digest}.dat"

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def put(self, data: bytes) -> str:
        """Store *data* and return its content hash.

        If the content already exists, verifies integrity and returns the
        hash without writing again.
        """
        digest = sha256_hex(data)
        path = self._object_path(digest)

        if path.exists():
            if not self.verify(digest):
                raise StoreIntegrityError(
                    f"Existing object at {digest} failed integrity check"
                )
            logger.debug("put: %s already stored.", digest)
            return digest

        atomic_write_bytes(path, data, expected_hash=digest)
        logger.info("put: stored %s (%d bytes).", digest, len(data))
        return digest

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get(self, content_hash: str) -> bytes:
        """Return the bytes stored under *content_hash*.

        Accepts either "sha256:<hex>" or the bare hex digest.
        """
        digest = normalize_digest(content_hash)
        if not is_valid_digest(digest):
            raise NotFoundError(f"Object not found: {content_hash!r}")
        path = self._object_path(digest)
        if not path.exists():
            raise NotFoundError(f"Object not found: {digest}")
        return path.read_bytes()

    def exists(self, content_hash: str) -> bool:
        digest = normalize_digest(content_hash)
        return is_valid_digest(digest) and self._object_path(digest).exists()

    def verify(self, content_hash: str) -> bool:
        """Re-hash stored data and compare against the content hash."""
        digest = normalize_digest(content_hash)
        if not is_valid_digest(digest):
            return False
        path = self._object_path(digest)
        if not path.exists():
            return False
        return sha256_hex(path.read_bytes()) == digest

    def object_count(self) -> int:
        """Number of objects on disk."""
        return sum(1 for _ in self._base.glob("*/*/*.dat"))
