"""Read surfaces: how a FetchClient reaches the publish endpoint.

The FetchClient depends only on the ``ReadSurface`` protocol:

1. ``HttpManifestClient``: httpx over the HTTP API. Used by the CLI.
2. ``LocalReadSurface``: in-process, wraps a ``PublishEndpoint`` directly.
   Used by tests and single-host tooling.

``timeout`` is a deadline for the whole request, not a per-read limit: a
server that trickles bytes is abandoned once it runs out. Transport
failures, deadlines, 429 and 5xx answers become ``TransientError``; 404
becomes ``NotFoundError``; anything else the service refuses becomes a
permanent ``RemoteError``.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Protocol, runtime_checkable

import httpx
from pydantic import ValidationError

from manifestsync.core.publisher import PublishEndpoint
from manifestsync.errors import (
    ConflictError,
    CorruptDownloadError,
    InvalidInputError,
    NotFoundError,
    RemoteError,
    TransientError,
)
from manifestsync.models.revision import (
    LatestPointerView,
    PublishReceipt,
    RevisionSummary,
)

logger = logging.getLogger(__name__)

# Upper bound on any single response body the client will buffer.
MAX_RESPONSE_BYTES = 16 * 1024 * 1024


@runtime_checkable
class ReadSurface(Protocol):
    """The read API a consumer needs: resolve latest, fetch bytes."""

    location: str

    def resolve_latest(
        self, min_sequence: int = 0, *, timeout: float | None = None
    ) -> LatestPointerView: ...

    def fetch_content(
        self,
        content_hash: str,
        *,
        timeout: float | None = None,
        max_bytes: int | None = None,
    ) -> bytes: ...


def _check_size(content_hash: str, size: int, max_bytes: int | None) -> None:
    if max_bytes is not None and size > max_bytes:
        raise CorruptDownloadError(
            f"body of {content_hash} exceeds the advertised {max_bytes} bytes"
        )


class LocalReadSurface:
    """In-process read surface over a ``PublishEndpoint``."""

    def __init__(self, endpoint: PublishEndpoint, location: str = "local") -> None:
        self._endpoint = endpoint
        self.location = location

    def resolve_latest(
        self, min_sequence: int = 0, *, timeout: float | None = None
    ) -> LatestPointerView:
        return self._endpoint.resolve_latest(min_sequence).pointer()

    def fetch_content(
        self,
        content_hash: str,
        *,
        timeout: float | None = None,
        max_bytes: int | None = None,
    ) -> bytes:
        content = self._endpoint.get_content(content_hash)
        _check_size(content_hash, len(content), max_bytes)
        return content


class _Exchange:
    """One request/response, run on a daemon thread under a deadline.

    The body is streamed and checked chunk by chunk against the deadline
    and the byte limits.
    """

    def __init__(
        self,
        client: httpx.Client,
        request: httpx.Request,
        *,
        deadline: float,
        max_bytes: int,
        advertised: int | None = None,
    ) -> None:
        self._client = client
        self._request = request
        self._deadline = deadline
        self._max_bytes = max_bytes
        self._advertised = advertised
        self._abandoned = threading.Event()
        self.status_code = 0
        self.body = b""
        self.error: Exception | None = None

    def abandon(self) -> None:
        self._abandoned.set()

    def run(self) -> None:
        try:
            response = self._client.send(self._request, stream=True)
            try:
                self.status_code = response.status_code
                self.body = self._read(response)
            finally:
                response.close()
        except Exception as exc:  # re-raised on the calling thread
            self.error = exc

    def _read(self, response: httpx.Response) -> bytes:
        chunks: list[bytes] = []
        total = 0
        for chunk in response.iter_bytes():
            if self._abandoned.is_set() or time.monotonic() > self._deadline:
                raise TransientError(
                    f"{self._request.method} {self._request.url} ran past its deadline"
                )
            total += len(chunk)
            if self._advertised is not None and total > self._advertised:
                raise CorruptDownloadError(
                    f"{self._request.method} {self._request.url} sent more than "
                    f"the advertised {self._advertised} bytes"
                )
            if total > self._max_bytes:
                raise RemoteError(
                    f"{self._request.method} {self._request.url} sent more than "
                    f"{self._max_bytes} bytes"
                )
            chunks.append(chunk)
        return b"".join(chunks)


class HttpManifestClient:
    """httpx client for the manifest service's read and write surfaces.

    Parameters
    ----------
    base_url:
        Root URL of the service, e.g. ``https://manifest.example.org``.
    timeout:
        Default whole-request deadline in seconds.
    client:
        Optional pre-built ``httpx.Client`` (tests pass a mock transport or
        an ASGI test client). Not closed by ``close()`` when supplied.
    max_response_bytes:
        Largest response body buffered before the request is refused.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 5.0,
        client: httpx.Client | None = None,
        max_response_bytes: int = MAX_RESPONSE_BYTES,
    ) -> None:
        self.location = base_url.rstrip("/")
        self._timeout = timeout
        self._max_bytes = max_response_bytes
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=timeout,
            headers={"User-Agent": "manifestsync"},
        )

    # ------------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------------

    def resolve_latest(
        self, min_sequence: int = 0, *, timeout: float | None = None
    ) -> LatestPointerView:
        params = {"min_sequence": min_sequence} if min_sequence else None
        body = self._request(
            "GET", "/manifest/latest", params=params, timeout=timeout
        )
        return self._parse(LatestPointerView, body)

    def fetch_content(
        self,
        content_hash: str,
        *,
        timeout: float | None = None,
        max_bytes: int | None = None,
    ) -> bytes:
        return self._request(
            "GET",
            f"/manifest/{content_hash}",
            timeout=timeout,
            advertised=max_bytes,
        )

    # ------------------------------------------------------------------
    # Write surface and extras
    # ------------------------------------------------------------------

    def publish(
        self, content: bytes, author: str, *, timeout: float | None = None
    ) -> PublishReceipt:
        body = self._request(
            "POST",
            "/manifest",
            params={"author": author},
            content=content,
            headers={"Content-Type": "application/octet-stream"},
            timeout=timeout,
        )
        return self._parse(PublishReceipt, body)

    def history(
        self, limit: int = 20, offset: int = 0, *, timeout: float | None = None
    ) -> list[RevisionSummary]:
        body = self._request(
            "GET",
            "/manifest/history",
            params={"limit": limit, "offset": offset},
            timeout=timeout,
        )
        try:
            return [RevisionSummary.model_validate(row) for row in json.loads(body)]
        except (ValueError, TypeError, ValidationError) as exc:
            raise RemoteError(f"malformed history from {self.location}: {exc}") from exc

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpManifestClient:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"HttpManifestClient(location={self.location!r})"

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        timeout: float | None = None,
        advertised: int | None = None,
        **kwargs: Any,
    ) -> bytes:
        """Run one request under a whole-request deadline; return the body.

        *advertised* is the size the server promised for this body; a longer
        body is a ``CorruptDownloadError``. The client-wide
        ``max_response_bytes`` cap applies to every response.
        """
        url = f"{self.location}{path}"
        budget = timeout if timeout is not None else self._timeout
        if budget <= 0:
            raise TransientError(f"no time left for {method} {url}")

        request = self._client.build_request(method, url, timeout=budget, **kwargs)
        exchange = _Exchange(
            self._client,
            request,
            deadline=time.monotonic() + budget,
            max_bytes=self._max_bytes,
            advertised=advertised,
        )
        worker = threading.Thread(
            target=exchange.run, name="manifestsync-http", daemon=True
        )
        worker.start()
        worker.join(budget)
        if worker.is_alive():
            # Left to die on its next read; the response is never used.
            exchange.abandon()
            raise TransientError(
                f"{method} {url} did not complete within {budget:.2f}s"
            )

        try:
            if exchange.error is not None:
                raise exchange.error
        except httpx.TimeoutException as exc:
            raise TransientError(f"timed out on {method} {url}: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransientError(
                f"network error on {method} {url}: {type(exc).__name__}: {exc}"
            ) from exc

        status = exchange.status_code
        if status < 400:
            logger.debug("%s %s -> %d", method, url, status)
            return exchange.body

        detail = _error_detail(exchange.body)
        message = f"{method} {url} -> HTTP {status}: {detail}"
        if status == 404:
            raise NotFoundError(message)
        if status == 409:
            raise ConflictError(message)
        if status in (400, 413, 422):
            raise InvalidInputError(message)
        if status == 429 or status >= 500:
            raise TransientError(message)
        raise RemoteError(message)

    def _parse(self, model: type, body: bytes) -> Any:
        try:
            return model.model_validate_json(body)
        except ValidationError as exc:
            raise RemoteError(
                f"malformed response from {self.location}: {exc}"
            ) from exc


def _error_detail(body: bytes) -> str:
    try:
        parsed = json.loads(body)
    except ValueError:
        return body.decode("utf-8", errors="replace")[:200]
    if isinstance(parsed, dict):
        return str(parsed.get("detail") or parsed.get("error") or parsed)
    return str(parsed)[:200]
