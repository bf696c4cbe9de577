"""Exception taxonomy for platform API calls."""

from __future__ import annotations


class DxApiError(RuntimeError):
    """Base error for platform API operations."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        request_id: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.request_id = request_id


class DxConfigurationError(DxApiError):
    """Raised when the client is missing settings it needs to issue requests."""


class DxClientError(DxApiError):
    """The server rejected the request (4xx). Never retried."""

    def __init__(
        self,
        message: str,
        *,
        error_type: str | None = None,
        status_code: int | None = None,
        request_id: str = "",
    ) -> None:
        super().__init__(message, status_code=status_code, request_id=request_id)
        self.error_type = error_type

    def __str__(self) -> str:
        prefix = f"{self.error_type}: " if self.error_type else ""
        return f"{prefix}{self.message} (code {self.status_code})"


class InvalidAuthentication(DxClientError):
    pass


class InvalidInput(DxClientError):
    pass


class InvalidState(DxClientError):
    pass


class InvalidType(DxClientError):
    pass


class PermissionDenied(DxClientError):
    pass


class ResourceNotFound(DxClientError):
    pass


class SpendingLimitExceeded(DxClientError):
    pass


_CLIENT_ERRORS_BY_TYPE: dict[str, type[DxClientError]] = {
    "InvalidAuthentication": InvalidAuthentication,
    "InvalidInput": InvalidInput,
    "InvalidState": InvalidState,
    "InvalidType": InvalidType,
    "PermissionDenied": PermissionDenied,
    "ResourceNotFound": ResourceNotFound,
    "SpendingLimitExceeded": SpendingLimitExceeded,
}


def client_error_for(
    *,
    error_type: str | None,
    message: str,
    status_code: int,
    request_id: str = "",
) -> DxClientError:
    """Build the most specific client error for a platform error type."""

    error_cls = _CLIENT_ERRORS_BY_TYPE.get(error_type or "", DxClientError)
    return error_cls(
        message,
        error_type=error_type,
        status_code=status_code,
        request_id=request_id,
    )


class DxInternalError(DxApiError):
    """5xx response that could not be recovered by retrying."""


class DxServiceUnavailableError(DxApiError):
    """503 response surfaced to the caller because retries are disabled."""

    def __init__(
        self,
        message: str,
        *,
        retry_after_seconds: int,
        status_code: int | None = 503,
        request_id: str = "",
    ) -> None:
        super().__init__(message, status_code=status_code, request_id=request_id)
        self.retry_after_seconds = retry_after_seconds


class DxTransportError(DxApiError):
    """Raised when transport failures cannot be retried or retries are exhausted."""


class DxMalformedResponseError(DxApiError):
    """200 response whose complete body is not valid JSON."""
