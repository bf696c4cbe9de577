"""Authenticated JSON-over-HTTP request executor with platform retry policy.

Every call is a POST to ``<apiserver>/<resource>``. The executor classifies
each attempt and decides between returning, waiting and retrying, or failing:

- 4xx responses are never retried.
- 5xx responses other than 503 are retried regardless of the retry strategy,
  since the platform guarantees no side effect happened. They consume the
  bounded budget.
- 503 responses wait for ``Retry-After`` seconds and are retried without
  consuming the bounded budget.
- Transport failures are retried only for ``SAFE_TO_RETRY`` requests while the
  bounded budget lasts.

Bounded retries wait 1, 2, 4, ... seconds. Nothing is shared between calls, so
one executor can serve many threads concurrently.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from dx_api.http.classifier import classify_exception, classify_response
from dx_api.http.errors import (
    DxConfigurationError,
    DxInternalError,
    DxMalformedResponseError,
    DxServiceUnavailableError,
    DxTransportError,
    client_error_for,
)
from dx_api.http.models import (
    ApiRequest,
    ClientError,
    Outcome,
    RawResponse,
    RetryStrategy,
    SecurityContext,
    ServerError,
    ServiceUnavailable,
    Success,
    TransportError,
)
from dx_api.http.transport import Transport

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 10
INITIAL_BACKOFF_SECONDS = 1
RETRIES_EXHAUSTED_MESSAGE = "Maximum number of retries reached, or unsafe to retry"


class Sleeper(Protocol):
    """Waits between attempts."""

    def wait(self, seconds: float) -> None:
        """Block (or yield) for ``seconds``."""


class BlockingSleeper:
    def wait(self, seconds: float) -> None:
        time.sleep(seconds)


@dataclass(slots=True, frozen=True)
class ExecutorConfig:
    """Per-client request settings."""

    api_server_url: str
    security_context: SecurityContext | None
    disable_retry: bool = False
    max_attempts: int = DEFAULT_MAX_ATTEMPTS


@dataclass(slots=True)
class RetryState:
    """Bounded retry bookkeeping for one ``execute()`` call."""

    attempt: int = 0
    backoff_seconds: int = INITIAL_BACKOFF_SECONDS

    def advance(self) -> None:
        self.attempt += 1
        self.backoff_seconds *= 2


@dataclass(slots=True)
class _Attempt:
    outcome: Outcome
    status_code: int | None = None
    request_id: str = ""


class RequestExecutor:
    """Issues API requests and owns the retry loop."""

    def __init__(
        self,
        config: ExecutorConfig,
        transport: Transport,
        *,
        sleeper: Sleeper | None = None,
    ) -> None:
        if config.max_attempts < 0:
            raise DxConfigurationError("max_attempts must be >= 0.")
        self.config = config
        self.transport = transport
        self.sleeper = sleeper or BlockingSleeper()

    def call(
        self,
        resource_path: str,
        body: Any = None,
        *,
        retry_strategy: RetryStrategy = RetryStrategy.SAFE_TO_RETRY,
        parse_response: bool = True,
    ) -> Any:
        """Issue one API call and return parsed JSON (or text when ``parse_response`` is off)."""

        return self.execute(
            ApiRequest(
                resource_path=resource_path,
                body={} if body is None else body,
                parse_response=parse_response,
                retry_strategy=retry_strategy,
            ),
        )

    def execute(self, request: ApiRequest) -> Any:  # noqa: C901
        url = self._url_for(request.resource_path)
        headers = self._build_headers()
        content = json.dumps(request.body).encode("utf-8")
        state = RetryState()

        while True:
            attempt = self._attempt(url, headers, content, parse_response=request.parse_response)
            outcome = attempt.outcome

            if isinstance(outcome, Success):
                return outcome.payload

            if isinstance(outcome, ClientError):
                logger.info(
                    "POST %s: %s: %s. Code: %d Request ID: %s",
                    request.resource_path,
                    outcome.error_type,
                    outcome.message,
                    outcome.status_code,
                    attempt.request_id,
                )
                raise client_error_for(
                    error_type=outcome.error_type,
                    message=outcome.message,
                    status_code=outcome.status_code,
                    request_id=attempt.request_id,
                )

            if isinstance(outcome, ServiceUnavailable):
                self._wait_server_directed(request, outcome, attempt.request_id)
                continue

            if isinstance(outcome, ServerError):
                self._check_server_error_retryable(request, outcome, state, attempt.request_id)
                reason = f"{outcome.status_code} Internal Server Error"
            elif isinstance(outcome, TransportError):
                self._check_transport_error_retryable(request, outcome, state, attempt)
                reason = outcome.reason
            else:  # pragma: no cover
                raise TypeError(f"Unexpected outcome {outcome!r}")

            self._wait_bounded(request, state, reason, attempt.request_id)

    def _attempt(
        self,
        url: str,
        headers: dict[str, str],
        content: bytes,
        *,
        parse_response: bool,
    ) -> _Attempt:
        try:
            response: RawResponse = self.transport.post(url, headers=headers, content=content)
        except httpx.HTTPError as exc:
            return _Attempt(outcome=classify_exception(exc))
        try:
            outcome = classify_response(response, parse_response=parse_response)
        except DxMalformedResponseError as exc:
            exc.request_id = response.request_id
            raise
        return _Attempt(
            outcome=outcome,
            status_code=response.status_code,
            request_id=response.request_id,
        )

    def _check_server_error_retryable(
        self,
        request: ApiRequest,
        outcome: ServerError,
        state: RetryState,
        request_id: str,
    ) -> None:
        if self.config.disable_retry:
            logger.warning(
                "POST %s: %d Internal Server Error, try %d/%d Request ID: %s",
                request.resource_path,
                outcome.status_code,
                state.attempt + 1,
                self.config.max_attempts,
                request_id,
            )
            raise DxInternalError(
                "Internal Server Error",
                status_code=outcome.status_code,
                request_id=request_id,
            )
        if state.attempt >= self.config.max_attempts:
            logger.warning(
                "POST %s: %d Internal Server Error, giving up after %d retries Request ID: %s",
                request.resource_path,
                outcome.status_code,
                state.attempt,
                request_id,
            )
            raise DxInternalError(
                RETRIES_EXHAUSTED_MESSAGE,
                status_code=outcome.status_code,
                request_id=request_id,
            )

    def _check_transport_error_retryable(
        self,
        request: ApiRequest,
        outcome: TransportError,
        state: RetryState,
        attempt: _Attempt,
    ) -> None:
        if self.config.disable_retry:
            message = f"POST {request.resource_path}: {outcome.reason} (retries disabled)"
        elif request.retry_strategy is RetryStrategy.UNSAFE_TO_RETRY:
            message = f"POST {request.resource_path}: {outcome.reason} (unsafe to retry)"
        elif state.attempt >= self.config.max_attempts:
            message = f"{RETRIES_EXHAUSTED_MESSAGE}: POST {request.resource_path}: {outcome.reason}"
        else:
            return

        logger.warning("%s Request ID: %s", message, attempt.request_id)
        error = DxTransportError(
            message,
            status_code=attempt.status_code,
            request_id=attempt.request_id,
        )
        if isinstance(outcome.cause, BaseException):
            raise error from outcome.cause
        raise error

    def _wait_server_directed(
        self,
        request: ApiRequest,
        outcome: ServiceUnavailable,
        request_id: str,
    ) -> None:
        if self.config.disable_retry:
            logger.warning(
                "POST %s: 503 Service Unavailable, suggested wait %d seconds. Request ID: %s",
                request.resource_path,
                outcome.retry_after_seconds,
                request_id,
            )
            raise DxServiceUnavailableError(
                "503 Service Unavailable",
                retry_after_seconds=outcome.retry_after_seconds,
                request_id=request_id,
            )
        logger.warning(
            "POST %s: 503 Service Unavailable, waiting for %d seconds Request ID: %s",
            request.resource_path,
            outcome.retry_after_seconds,
            request_id,
        )
        self.sleeper.wait(outcome.retry_after_seconds)

    def _wait_bounded(
        self,
        request: ApiRequest,
        state: RetryState,
        reason: str,
        request_id: str,
    ) -> None:
        logger.warning(
            "POST %s: %s. Waiting %d seconds before retry %d of %d Request ID: %s",
            request.resource_path,
            reason,
            state.backoff_seconds,
            state.attempt + 1,
            self.config.max_attempts,
            request_id,
        )
        self.sleeper.wait(state.backoff_seconds)
        state.advance()

    def _build_headers(self) -> dict[str, str]:
        security_context = self.config.security_context
        if security_context is None:
            raise DxConfigurationError("No security context was set")
        return {
            "Content-Type": "application/json",
            "Connection": "close",
            "Authorization": security_context.authorization_header,
        }

    def _url_for(self, resource_path: str) -> str:
        return f"{self.config.api_server_url.rstrip('/')}/{resource_path.lstrip('/')}"
