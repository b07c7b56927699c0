"""Sync orchestrator: operational policy around ``FetchClient.sync``.

The orchestrator is the only layer that retries transient failures:

- one sync per replica at a time (lock file);
- up to ``max_attempts`` attempts, full-jitter exponential backoff;
- a wall-clock budget that caps both the waiting and each request timeout;
- permanent failures (integrity mismatch, not found, rejected input) are
  returned immediately.

Whatever happens, the previous local replica stays intact: the only write
path is the fetch client's atomic replace.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable

from manifestsync.client.fetch_client import FetchClient
from manifestsync.client.replica import LocalReplica
from manifestsync.config import SyncSettings
from manifestsync.errors import ReplicaLockedError, SyncTimeoutError
from manifestsync.models.replica import SyncReport, SyncResult

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Runs a fetch client against a replica under a retry budget.

    Parameters
    ----------
    client:
        The fetch client to drive.
    max_attempts:
        Upper bound on sync attempts.
    budget_seconds:
        Wall-clock budget for the whole run, lock wait excluded.
    request_timeout:
        Per-request timeout; lowered to the remaining budget near the end.
    backoff_base, backoff_max:
        Backoff before attempt *n+1* is drawn uniformly from
        ``[0, min(backoff_max, backoff_base * 2**(n-1))]``.
    lock_timeout, lock_stale_after:
        Replica lock wait and stale-lock age, in seconds.
    sleep, clock, rng:
        Injectable for deterministic tests.
    """

    def __init__(
        self,
        client: FetchClient,
        *,
        max_attempts: int = 5,
        budget_seconds: float = 10.0,
        request_timeout: float = 5.0,
        backoff_base: float = 0.25,
        backoff_max: float = 4.0,
        lock_timeout: float = 5.0,
        lock_stale_after: float = 120.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self.client = client
        self.max_attempts = max(1, max_attempts)
        self.budget_seconds = budget_seconds
        self.request_timeout = request_timeout
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.lock_timeout = lock_timeout
        self.lock_stale_after = lock_stale_after
        self._sleep = sleep
        self._clock = clock
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(cls, client: FetchClient, settings: SyncSettings) -> SyncOrchestrator:
        return cls(
            client,
            max_attempts=settings.max_attempts,
            budget_seconds=settings.budget_seconds,
            request_timeout=settings.request_timeout_seconds,
            backoff_base=settings.backoff_base_seconds,
            backoff_max=settings.backoff_max_seconds,
            lock_timeout=settings.lock_timeout_seconds,
            lock_stale_after=settings.lock_stale_seconds,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, replica: LocalReplica) -> SyncReport:
        """Sync *replica* and report the outcome; never raises for sync errors."""
        started = self._clock()
        attempts = 0
        try:
            with replica.lock(
                timeout=self.lock_timeout, stale_after=self.lock_stale_after
            ):
                result, attempts = self._attempt_loop(replica)
        except ReplicaLockedError as exc:
            result = SyncResult.failed(exc)

        report = SyncReport(
            result=result,
            attempts=attempts,
            elapsed_seconds=max(0.0, self._clock() - started),
            replica_path=str(replica.path),
        )
        if report.ok:
            logger.info(report.diagnostic())
        else:
            logger.error(report.diagnostic())
        return report

    def backoff_delay(self, attempt: int) -> float:
        """Full-jitter delay to wait after failed attempt number *attempt*."""
        cap = min(self.backoff_max, self.backoff_base * (2 ** (attempt - 1)))
        return self._rng.uniform(0.0, cap)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _attempt_loop(self, replica: LocalReplica) -> tuple[SyncResult, int]:
        deadline = self._clock() + self.budget_seconds
        attempt = 0
        last: SyncResult | None = None

        while attempt < self.max_attempts:
            remaining = deadline - self._clock()
            if remaining <= 0:
                break
            attempt += 1

            result = self.client.sync(
                replica, timeout=min(self.request_timeout, remaining)
            )
            if result.ok or not result.retryable:
                return result, attempt

            last = result
            logger.warning(
                "attempt %d/%d for %s failed (%s): %s",
                attempt,
                self.max_attempts,
                replica.path,
                result.error_kind,
                result.detail,
            )
            if attempt >= self.max_attempts:
                break

            delay = self.backoff_delay(attempt)
            if self._clock() + delay >= deadline:
                break
            self._sleep(delay)

        reason = last.detail if last is not None else "no attempt fit in the budget"
        timeout = SyncTimeoutError(
            f"gave up after {attempt} attempt(s) within "
            f"{self.budget_seconds:.1f}s budget; last error: {reason}"
        )
        return SyncResult.failed(timeout), attempt
