"""Shared test fixtures."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest

from dx_api.http.executor import ExecutorConfig, RequestExecutor
from dx_api.http.models import RawResponse, SecurityContext

API_SERVER_URL = "https://api.example.test"
SECURITY_CONTEXT = SecurityContext(auth_token_type="Bearer", auth_token="token-123")


def make_response(
    status_code: int,
    body: bytes | str | Any = b"",
    *,
    headers: Mapping[str, str] | None = None,
    declared_length: int | None = None,
    request_id: str = "",
) -> RawResponse:
    """Build a raw response; ``declared_length`` defaults to the body length."""

    if isinstance(body, str):
        raw = body.encode("utf-8")
    elif isinstance(body, bytes):
        raw = body
    else:
        raw = json.dumps(body).encode("utf-8")
    return RawResponse(
        status_code=status_code,
        headers=httpx.Headers(headers or {}),
        body=raw,
        content_length_declared=len(raw) if declared_length is None else declared_length,
        request_id=request_id,
    )


@dataclass(slots=True)
class SentRequest:
    url: str
    headers: dict[str, str]
    content: bytes


@dataclass(slots=True)
class ScriptedTransport:
    """Replays responses (or raises exceptions) in order."""

    script: list[RawResponse | BaseException]
    sent: list[SentRequest] = field(default_factory=list)
    closed: bool = False

    def post(self, url: str, *, headers: Mapping[str, str], content: bytes) -> RawResponse:
        self.sent.append(SentRequest(url=url, headers=dict(headers), content=content))
        if not self.script:
            raise AssertionError("transport called more times than scripted")
        step = self.script.pop(0)
        if isinstance(step, BaseException):
            raise step
        return step

    def close(self) -> None:
        self.closed = True


@dataclass(slots=True)
class RecordingSleeper:
    waits: list[float] = field(default_factory=list)

    def wait(self, seconds: float) -> None:
        self.waits.append(seconds)


@pytest.fixture()
def sleeper() -> RecordingSleeper:
    return RecordingSleeper()


@pytest.fixture()
def make_executor(sleeper: RecordingSleeper):
    """Factory for an executor wired to a scripted transport and recording sleeper."""

    def _make(
        script: list[RawResponse | BaseException],
        *,
        disable_retry: bool = False,
        max_attempts: int = 10,
        security_context: SecurityContext | None = SECURITY_CONTEXT,
    ) -> tuple[RequestExecutor, ScriptedTransport]:
        transport = ScriptedTransport(script=list(script))
        executor = RequestExecutor(
            ExecutorConfig(
                api_server_url=API_SERVER_URL,
                security_context=security_context,
                disable_retry=disable_retry,
                max_attempts=max_attempts,
            ),
            transport,
            sleeper=sleeper,
        )
        return executor, transport

    return _make
