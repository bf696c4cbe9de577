"""HTTP transport performing a single POST attempt."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

import httpx

from dx_api.http.models import REQUEST_ID_HEADER, UNKNOWN_CONTENT_LENGTH, RawResponse

DEFAULT_CONNECT_TIMEOUT_SECONDS = 20.0
DEFAULT_SOCKET_TIMEOUT_SECONDS = 600.0


class Transport(Protocol):
    """Protocol implemented by request transports.

    Implementations must be safe to share between threads and raise
    ``httpx.HTTPError`` subclasses for send/receive failures.
    """

    def post(self, url: str, *, headers: Mapping[str, str], content: bytes) -> RawResponse:
        """Send one POST and return the fully received response."""

    def close(self) -> None:
        """Release pooled connections."""


class HttpxTransport:
    """``httpx.Client`` wrapper with per-attempt connect and socket timeouts."""

    def __init__(
        self,
        *,
        connect_timeout_seconds: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        socket_timeout_seconds: float = DEFAULT_SOCKET_TIMEOUT_SECONDS,
        user_agent: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"User-Agent": user_agent} if user_agent else None
        # Retries belong to the executor; the connection pool itself never retries.
        self._client = httpx.Client(
            timeout=httpx.Timeout(socket_timeout_seconds, connect=connect_timeout_seconds),
            headers=headers,
            transport=transport or httpx.HTTPTransport(retries=0),
        )

    def post(self, url: str, *, headers: Mapping[str, str], content: bytes) -> RawResponse:
        response = self._client.post(url, headers=dict(headers), content=content)
        return RawResponse(
            status_code=response.status_code,
            headers=response.headers,
            body=response.content,
            content_length_declared=_declared_content_length(response),
            request_id=response.headers.get(REQUEST_ID_HEADER, ""),
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpxTransport:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _declared_content_length(response: httpx.Response) -> int:
    raw = response.headers.get("Content-Length")
    if raw is None:
        return UNKNOWN_CONTENT_LENGTH
    try:
        declared = int(raw)
    except ValueError:
        return UNKNOWN_CONTENT_LENGTH
    if declared < 0:
        return UNKNOWN_CONTENT_LENGTH
    # Content-Length counts encoded bytes; compare against the decoded body only
    # when no content coding was applied.
    if response.headers.get("Content-Encoding", "identity").lower() != "identity":
        return UNKNOWN_CONTENT_LENGTH
    return declared
