"""Controllers for API CLI commands."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from dx_api.api import DxApi
from dx_api.config import Settings
from dx_api.http.errors import DxConfigurationError
from dx_api.http.models import RetryStrategy


@dataclass(slots=True)
class ApiCallCommand:
    """CLI inputs for a raw route call."""

    route: str
    input_json: str
    unsafe: bool
    raw: bool


class ApiCliController:
    """Coordinates API command execution."""

    def __init__(self, api_factory: Callable[[Settings], DxApi] = DxApi.from_settings) -> None:
        self._api_factory = api_factory

    def call(self, command: ApiCallCommand) -> list[str]:
        fields = _parse_input(command.input_json)
        strategy = RetryStrategy.UNSAFE_TO_RETRY if command.unsafe else RetryStrategy.SAFE_TO_RETRY
        with self._api_factory(Settings.from_env()) as api:
            if command.raw:
                text = api.executor.call(
                    command.route,
                    fields,
                    retry_strategy=strategy,
                    parse_response=False,
                )
                return [text]
            result = api.call(command.route, fields, retry_strategy=strategy)
        return json.dumps(result, indent=2, sort_keys=True).splitlines()

    def whoami(self) -> list[str]:
        with self._api_factory(Settings.from_env()) as api:
            return [api.whoami()]


def _parse_input(raw: str) -> dict[str, Any]:
    try:
        fields = json.loads(raw)
    except ValueError as exc:
        raise DxConfigurationError(f"Input is not valid JSON: {exc}") from exc
    if not isinstance(fields, dict):
        raise DxConfigurationError("Input must be a JSON object.")
    return fields
