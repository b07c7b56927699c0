"""Write-to-temp-then-rename helper.

Every observer of the target path sees either the previous file or the
complete new one, never a partial write. The temp file lives in the same
directory as the target so ``os.replace`` stays on one filesystem.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from manifestsync.core.hasher import sha256_hex
from manifestsync.errors import CorruptDownloadError

logger = logging.getLogger(__name__)


def atomic_write_bytes(
    path: Path,
    data: bytes,
    *,
    expected_hash: str | None = None,
) -> None:
    """Atomically replace *path* with *data*.

    When *expected_hash* is given, the temp file is re-read and hashed
    before the rename; a mismatch removes the temp file, leaves *path*
    untouched and raises ``CorruptDownloadError``.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())

        if expected_hash is not None:
            actual = sha256_hex(tmp_path.read_bytes())
            if actual != expected_hash:
                raise CorruptDownloadError(
                    f"content hash mismatch for {path.name}: "
                    f"expected {expected_hash}, got {actual}"
                )

        os.replace(tmp_path, path)
    except BaseException:
        # Covers KeyboardInterrupt and budget cancellation as well
        tmp_path.unlink(missing_ok=True)
        raise

    _fsync_directory(path.parent)
    logger.debug("atomic_write_bytes: replaced %s (%d bytes).", path, len(data))


def _fsync_directory(directory: Path) -> None:
    """Persist the rename itself. Not supported on every platform."""
    try:
        dir_fd = os.open(directory, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        logger.debug("fsync not supported for directory %s.", directory)
    finally:
        os.close(dir_fd)
