"""Runtime configuration for the platform API client."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field

from dx_api.http.errors import DxConfigurationError
from dx_api.http.executor import DEFAULT_MAX_ATTEMPTS, ExecutorConfig
from dx_api.http.models import SecurityContext

_DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(slots=True)
class ApiServerSettings:
    """Where API requests are sent."""

    protocol: str = "https"
    host: str = "api.dnanexus.com"
    port: int = 443

    @property
    def url(self) -> str:
        if _DEFAULT_PORTS.get(self.protocol) == self.port:
            return f"{self.protocol}://{self.host}"
        return f"{self.protocol}://{self.host}:{self.port}"


@dataclass(slots=True)
class RetrySettings:
    """Retry and timeout knobs for the request executor."""

    disable_retry: bool = False
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    connect_timeout_seconds: float = 20.0
    socket_timeout_seconds: float = 600.0


@dataclass(slots=True)
class Settings:
    """Client settings grouped by concern."""

    api_server: ApiServerSettings = field(default_factory=ApiServerSettings)
    security_context: SecurityContext | None = None
    retry: RetrySettings = field(default_factory=RetrySettings)
    debug: bool = False

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from ``DX_*`` environment variables."""

        return cls(
            api_server=ApiServerSettings(
                protocol=os.getenv("DX_APISERVER_PROTOCOL", "https").strip().lower(),
                host=os.getenv("DX_APISERVER_HOST", "api.dnanexus.com").strip(),
                port=_env_int("DX_APISERVER_PORT", 443),
            ),
            security_context=parse_security_context(os.getenv("DX_SECURITY_CONTEXT")),
            retry=RetrySettings(
                disable_retry=_env_bool("DX_DISABLE_RETRY", default=False),
                max_attempts=_env_int("DX_MAX_RETRIES", DEFAULT_MAX_ATTEMPTS),
                connect_timeout_seconds=_env_float("DX_CONNECTION_TIMEOUT", 20.0),
                socket_timeout_seconds=_env_float("DX_SOCKET_TIMEOUT", 600.0),
            ),
            debug=debug_enabled(),
        )

    def validate(self) -> None:
        """Raise configuration error if settings cannot produce a working client."""

        if self.api_server.protocol not in _DEFAULT_PORTS:
            raise DxConfigurationError(
                f"DX_APISERVER_PROTOCOL must be http or https, got {self.api_server.protocol!r}.",
            )
        if not self.api_server.host:
            raise DxConfigurationError("DX_APISERVER_HOST must not be empty.")
        if not 0 < self.api_server.port < 65536:
            raise DxConfigurationError("DX_APISERVER_PORT must be between 1 and 65535.")
        if self.retry.max_attempts < 0:
            raise DxConfigurationError("DX_MAX_RETRIES must be >= 0.")
        if self.retry.connect_timeout_seconds <= 0 or self.retry.socket_timeout_seconds <= 0:
            raise DxConfigurationError("DX_CONNECTION_TIMEOUT and DX_SOCKET_TIMEOUT must be > 0.")

    def executor_config(self) -> ExecutorConfig:
        return ExecutorConfig(
            api_server_url=self.api_server.url,
            security_context=self.security_context,
            disable_retry=self.retry.disable_retry,
            max_attempts=self.retry.max_attempts,
        )


def parse_security_context(raw: str | None) -> SecurityContext | None:
    """Parse ``{"auth_token_type": ..., "auth_token": ...}``; ``None`` when unset."""

    if raw is None or not raw.strip():
        return None
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise DxConfigurationError("DX_SECURITY_CONTEXT is not valid JSON.") from exc
    if not isinstance(payload, dict):
        raise DxConfigurationError("DX_SECURITY_CONTEXT must be a JSON object.")

    token_type = payload.get("auth_token_type")
    token = payload.get("auth_token")
    if not isinstance(token_type, str) or not token_type:
        raise DxConfigurationError("DX_SECURITY_CONTEXT is missing auth_token_type.")
    if not isinstance(token, str) or not token:
        raise DxConfigurationError("DX_SECURITY_CONTEXT is missing auth_token.")
    return SecurityContext(auth_token_type=token_type, auth_token=token)


def debug_enabled() -> bool:
    """`_DX_DEBUG` is a boolean or a debug level; any level above 0 enables debug."""

    return _env_bool("_DX_DEBUG", default=False)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized.isdigit():
        return int(normalized) > 0
    if normalized in {"true", "yes", "on"}:
        return True
    if normalized in {"false", "no", "off", ""}:
        return False
    raise DxConfigurationError(f"Invalid boolean value for {name}: {value!r}")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise DxConfigurationError(f"Invalid integer value for {name}: {value!r}") from exc


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise DxConfigurationError(f"Invalid number for {name}: {value!r}") from exc
