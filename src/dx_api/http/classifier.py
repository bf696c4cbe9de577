"""Deterministic classification of one HTTP attempt into a retry-policy outcome."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from dx_api.http.errors import DxMalformedResponseError
from dx_api.http.models import (
    ClientError,
    Outcome,
    RawResponse,
    ServerError,
    ServiceUnavailable,
    Success,
    TransportError,
)

HTTP_OK = 200
HTTP_SERVER_ERROR_MIN = 500
HTTP_SERVICE_UNAVAILABLE = 503
DEFAULT_RETRY_AFTER_SECONDS = 60


def classify(  # noqa: PLR0913
    status_code: int,
    headers: Mapping[str, str],
    raw_body: bytes,
    content_length_declared: int,
    content_length_actual: int,
    parse_response: bool,
) -> Outcome:
    """Map a completed HTTP response to an outcome.

    A declared content length of ``-1`` means the server did not send one
    (streamed response). Raises ``DxMalformedResponseError`` when a 200 body of
    confirmed length cannot be parsed; that case is never retried.
    """

    if status_code == HTTP_OK:
        return _classify_ok(
            raw_body,
            content_length_declared=content_length_declared,
            content_length_actual=content_length_actual,
            parse_response=parse_response,
        )
    if status_code < HTTP_SERVER_ERROR_MIN:
        error_type, message = parse_error_body(raw_body)
        return ClientError(status_code=status_code, error_type=error_type, message=message)
    if status_code == HTTP_SERVICE_UNAVAILABLE:
        return ServiceUnavailable(
            retry_after_seconds=parse_retry_after(_header(headers, "Retry-After")),
        )
    return ServerError(status_code=status_code)


def classify_response(response: RawResponse, *, parse_response: bool) -> Outcome:
    return classify(
        response.status_code,
        response.headers,
        response.body,
        response.content_length_declared,
        response.content_length_actual,
        parse_response,
    )


def classify_exception(exc: BaseException) -> TransportError:
    """Transport failures happen before any status code is known."""

    return TransportError(cause=exc)


def parse_error_body(raw_body: bytes) -> tuple[str | None, str]:
    """Extract ``error.type`` and ``error.message``, falling back to the raw text."""

    text = raw_body.decode("utf-8", errors="replace")
    try:
        payload = json.loads(text)
    except ValueError:
        return None, text
    if not isinstance(payload, dict):
        return None, text
    error_field = payload.get("error")
    if not isinstance(error_field, dict):
        return None, text

    error_type = error_field.get("type")
    message = error_field.get("message")
    return (
        None if error_type is None else str(error_type),
        text if message is None else str(message),
    )


def parse_retry_after(value: str | None) -> int:
    if not value:
        return DEFAULT_RETRY_AFTER_SECONDS
    try:
        seconds = int(value.strip())
    except ValueError:
        return DEFAULT_RETRY_AFTER_SECONDS
    if seconds < 0:
        return DEFAULT_RETRY_AFTER_SECONDS
    return seconds


def _classify_ok(
    raw_body: bytes,
    *,
    content_length_declared: int,
    content_length_actual: int,
    parse_response: bool,
) -> Outcome:
    if content_length_declared >= 0 and content_length_actual != content_length_declared:
        return TransportError(
            cause=(
                f"content length mismatch: received {content_length_actual} bytes "
                f"but Content-Length was {content_length_declared}"
            ),
        )
    if not parse_response:
        return Success(payload=raw_body.decode("utf-8", errors="replace"))

    try:
        payload: Any = json.loads(raw_body.decode("utf-8"))
    except ValueError as exc:
        if content_length_declared < 0:
            return TransportError(cause="unparseable streamed response")
        raise DxMalformedResponseError(
            "Response is of the correct length but is unparseable",
            status_code=HTTP_OK,
        ) from exc
    return Success(payload=payload)


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None
