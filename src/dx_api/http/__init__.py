from .classifier import classify, classify_exception, classify_response
from .errors import (
    DxApiError,
    DxClientError,
    DxConfigurationError,
    DxInternalError,
    DxMalformedResponseError,
    DxServiceUnavailableError,
    DxTransportError,
)
from .executor import BlockingSleeper, ExecutorConfig, RequestExecutor, Sleeper
from .models import ApiRequest, RetryStrategy, SecurityContext
from .transport import HttpxTransport, Transport

__all__ = [
    "ApiRequest",
    "BlockingSleeper",
    "DxApiError",
    "DxClientError",
    "DxConfigurationError",
    "DxInternalError",
    "DxMalformedResponseError",
    "DxServiceUnavailableError",
    "DxTransportError",
    "ExecutorConfig",
    "HttpxTransport",
    "RequestExecutor",
    "RetryStrategy",
    "SecurityContext",
    "Sleeper",
    "Transport",
    "classify",
    "classify_exception",
    "classify_response",
]
