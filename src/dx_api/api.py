"""Route-level facade over the request executor."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from dx_api import __version__
from dx_api.config import Settings
from dx_api.http.errors import DxApiError
from dx_api.http.executor import RequestExecutor
from dx_api.http.models import RetryStrategy
from dx_api.http.transport import HttpxTransport

logger = logging.getLogger(__name__)

USER_AGENT = f"dx-api-client/{__version__}"

# Methods with externally visible side effects that the platform does not
# guarantee to be idempotent.
_UNSAFE_METHODS = frozenset({"run", "new"})


def default_retry_strategy(method: str) -> RetryStrategy:
    """Pick the retry strategy for a route method such as ``describe`` or ``run``."""

    if method in _UNSAFE_METHODS:
        return RetryStrategy.UNSAFE_TO_RETRY
    return RetryStrategy.SAFE_TO_RETRY


class DxApi:
    """Thin wrapper issuing platform routes through one executor."""

    def __init__(self, executor: RequestExecutor) -> None:
        self.executor = executor

    @classmethod
    def from_settings(cls, settings: Settings) -> DxApi:
        settings.validate()
        transport = HttpxTransport(
            connect_timeout_seconds=settings.retry.connect_timeout_seconds,
            socket_timeout_seconds=settings.retry.socket_timeout_seconds,
            user_agent=USER_AGENT,
        )
        return cls(RequestExecutor(settings.executor_config(), transport))

    def close(self) -> None:
        self.executor.transport.close()

    def __enter__(self) -> DxApi:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def call(
        self,
        route: str,
        fields: Mapping[str, Any] | None = None,
        *,
        retry_strategy: RetryStrategy | None = None,
    ) -> Any:
        """Call a route such as ``/system/whoami``."""

        if retry_strategy is None:
            retry_strategy = default_retry_strategy(route.rstrip("/").rsplit("/", 1)[-1])
        return self.executor.call(route, dict(fields or {}), retry_strategy=retry_strategy)

    def call_object(
        self,
        object_id: str,
        method: str,
        fields: Mapping[str, Any] | None = None,
        *,
        retry_strategy: RetryStrategy | None = None,
    ) -> Any:
        """Call ``/<object_id>/<method>``."""

        return self.call(
            f"/{object_id}/{method}",
            fields,
            retry_strategy=retry_strategy or default_retry_strategy(method),
        )

    def whoami(self) -> str:
        response = self.call("/system/whoami")
        user_id = response.get("id") if isinstance(response, dict) else None
        if not isinstance(user_id, str):
            raise DxApiError(f"unexpected whoami result {response!r}")
        return user_id

    def describe(self, object_id: str, fields: Mapping[str, Any] | None = None) -> Any:
        return self.call_object(object_id, "describe", fields)

    def find_data_objects(self, query: Mapping[str, Any]) -> Any:
        return self.call("/system/findDataObjects", query)

    def find_projects(self, query: Mapping[str, Any]) -> Any:
        return self.call("/system/findProjects", query)

    def add_tags(self, object_id: str, tags: list[str], project: str | None = None) -> None:
        self.call_object(object_id, "addTags", _with_project({"tags": tags}, project))

    def remove_tags(self, object_id: str, tags: list[str], project: str | None = None) -> None:
        self.call_object(object_id, "removeTags", _with_project({"tags": tags}, project))

    def set_properties(
        self,
        object_id: str,
        properties: Mapping[str, str | None],
        project: str | None = None,
    ) -> None:
        self.call_object(
            object_id,
            "setProperties",
            _with_project({"properties": dict(properties)}, project),
        )

    def run(self, executable_id: str, fields: Mapping[str, Any]) -> Any:
        """Launch an app, applet or workflow. Never retried after an unknown outcome."""

        logger.debug("Launching %s", executable_id)
        return self.call_object(executable_id, "run", fields)

    def job_new(self, fields: Mapping[str, Any]) -> str:
        response = self.call("/job/new", fields)
        job_id = response.get("id") if isinstance(response, dict) else None
        if not isinstance(job_id, str):
            raise DxApiError(f"Bad format returned from jobNew {response!r}")
        return job_id


def _with_project(fields: dict[str, Any], project: str | None) -> dict[str, Any]:
    if project is not None:
        fields["project"] = project
    return fields
