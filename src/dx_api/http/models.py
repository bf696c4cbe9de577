"""Request, response and outcome types shared by the classifier and executor."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

REQUEST_ID_HEADER = "X-Request-ID"
UNKNOWN_CONTENT_LENGTH = -1


class RetryStrategy(str, Enum):
    """Caller's declaration of whether an unknown-outcome failure may be repeated."""

    SAFE_TO_RETRY = "safe_to_retry"
    UNSAFE_TO_RETRY = "unsafe_to_retry"


@dataclass(slots=True, frozen=True)
class SecurityContext:
    """Authentication token attached to every request."""

    auth_token_type: str
    auth_token: str = field(repr=False)

    @property
    def authorization_header(self) -> str:
        return f"{self.auth_token_type} {self.auth_token}"


@dataclass(slots=True, frozen=True)
class ApiRequest:
    """One API call as issued by a caller."""

    resource_path: str
    body: Any = field(default_factory=dict)
    parse_response: bool = True
    retry_strategy: RetryStrategy = RetryStrategy.SAFE_TO_RETRY


@dataclass(slots=True, frozen=True)
class RawResponse:
    """Status, headers and fully received body of one HTTP attempt."""

    status_code: int
    headers: Mapping[str, str]
    body: bytes
    content_length_declared: int = UNKNOWN_CONTENT_LENGTH
    request_id: str = ""

    @property
    def content_length_actual(self) -> int:
        return len(self.body)


@dataclass(slots=True, frozen=True)
class Success:
    payload: Any


@dataclass(slots=True, frozen=True)
class ClientError:
    status_code: int
    error_type: str | None
    message: str


@dataclass(slots=True, frozen=True)
class ServerError:
    status_code: int


@dataclass(slots=True, frozen=True)
class ServiceUnavailable:
    retry_after_seconds: int


@dataclass(slots=True, frozen=True)
class TransportError:
    """Send/receive failure or a truncated body; the server may have acted on it."""

    cause: BaseException | str

    @property
    def reason(self) -> str:
        if isinstance(self.cause, BaseException):
            return f"{self.cause.__class__.__name__}: {self.cause}"
        return self.cause


Outcome = Success | ClientError | ServerError | ServiceUnavailable | TransportError
