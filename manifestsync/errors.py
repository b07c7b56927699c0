"""Error taxonomy shared by the service, the fetch client and the CLI.

Every error carries a stable ``kind`` (used in diagnostics and HTTP error
bodies), whether it is ``retryable`` by the sync orchestrator, and the
process ``exit_code`` the CLI reports for it.
"""

from __future__ import annotations


class ExitCode:
    """Process exit codes reported by the ``manifestsync`` CLI."""

    OK = 0
    ERROR = 1
    NETWORK = 10
    INTEGRITY = 11
    TIMEOUT = 12
    NOT_FOUND = 13
    INVALID_INPUT = 14
    LOCKED = 15
    CONFLICT = 16
    STALE = 20


class ManifestSyncError(RuntimeError):
    """Base class for every manifestsync failure."""

    kind: str = "error"
    retryable: bool = False
    exit_code: int = ExitCode.ERROR
    http_status: int = 500


class InvalidInputError(ManifestSyncError):
    """Raised when publish-time content or parameters are rejected."""

    kind = "invalid_input"
    exit_code = ExitCode.INVALID_INPUT
    http_status = 400


class ManifestTooLargeError(InvalidInputError):
    """Raised when a manifest exceeds the configured size bound."""

    http_status = 413


class ConflictError(ManifestSyncError):
    """Raised when a concurrent append already claimed a sequence number."""

    kind = "conflict"
    exit_code = ExitCode.CONFLICT
    http_status = 409


class NotFoundError(ManifestSyncError):
    """Raised for unknown content hashes or sequence numbers."""

    kind = "not_found"
    exit_code = ExitCode.NOT_FOUND
    http_status = 404


class CorruptDownloadError(ManifestSyncError):
    """Raised when downloaded bytes do not hash to the expected digest.

    Never retried: it may indicate transport corruption or tampering.
    """

    kind = "corrupt_download"
    exit_code = ExitCode.INTEGRITY
    http_status = 502


class TransientError(ManifestSyncError):
    """Network failure, timeout or overloaded service. Safe to retry."""

    kind = "transient"
    retryable = True
    exit_code = ExitCode.NETWORK
    http_status = 503


class RemoteError(ManifestSyncError):
    """The service answered with a non-retryable protocol error."""

    kind = "remote"
    exit_code = ExitCode.NETWORK
    http_status = 502


class SyncTimeoutError(ManifestSyncError):
    """The retry budget (attempts or wall-clock time) was exhausted."""

    kind = "timeout"
    exit_code = ExitCode.TIMEOUT
    http_status = 504


class StoreIntegrityError(ManifestSyncError):
    """A stored object's bytes no longer match its address."""

    kind = "store_integrity"
    exit_code = ExitCode.INTEGRITY


class LogIntegrityError(ManifestSyncError):
    """The revision log's hash chain is broken."""

    kind = "log_integrity"
    exit_code = ExitCode.INTEGRITY


class ReplicaLockedError(ManifestSyncError):
    """Another sync holds the consumer's replica lock."""

    kind = "locked"
    exit_code = ExitCode.LOCKED
    http_status = 423


class ProductionConfigError(ManifestSyncError):
    """Production configuration constraints are violated.

    Must not be caught and ignored; the process should exit.
    """

    kind = "config"
