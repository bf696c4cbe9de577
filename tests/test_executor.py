from __future__ import annotations

import json
import threading

import allure
import httpx
import pytest
from conftest import API_SERVER_URL, make_response

from dx_api.http.errors import (
    DxClientError,
    DxConfigurationError,
    DxInternalError,
    DxMalformedResponseError,
    DxServiceUnavailableError,
    DxTransportError,
    InvalidInput,
    PermissionDenied,
)
from dx_api.http.executor import RetryState
from dx_api.http.models import ApiRequest, RetryStrategy

pytestmark = [
    allure.epic("Request Execution"),
    allure.feature("Retry Policy"),
]

OK = make_response(200, {"echo": "ok"})
UNSAFE = RetryStrategy.UNSAFE_TO_RETRY


def test_success_returns_parsed_payload_after_one_attempt(make_executor, sleeper) -> None:
    executor, transport = make_executor([OK])

    result = executor.call("/system/echo", {"ping": 1})

    assert result == {"echo": "ok"}
    assert len(transport.sent) == 1
    assert sleeper.waits == []


def test_request_carries_auth_and_json_headers(make_executor) -> None:
    executor, transport = make_executor([OK])

    executor.call("system/echo", {"ping": 1})

    sent = transport.sent[0]
    assert sent.url == f"{API_SERVER_URL}/system/echo"
    assert sent.headers == {
        "Content-Type": "application/json",
        "Connection": "close",
        "Authorization": "Bearer token-123",
    }
    assert json.loads(sent.content) == {"ping": 1}


def test_raw_text_returned_when_parsing_disabled(make_executor) -> None:
    executor, _ = make_executor([make_response(200, "plain text")])

    result = executor.execute(ApiRequest(resource_path="/file-1/download", parse_response=False))

    assert result == "plain text"


@pytest.mark.parametrize("strategy", list(RetryStrategy))
@pytest.mark.parametrize("status_code", [400, 401, 403, 404, 422, 499])
def test_client_errors_are_never_retried(
    make_executor,
    sleeper,
    strategy: RetryStrategy,
    status_code: int,
) -> None:
    executor, transport = make_executor([make_response(status_code, "nope"), OK])

    with pytest.raises(DxClientError) as excinfo:
        executor.call("/record-1/describe", retry_strategy=strategy)

    assert excinfo.value.status_code == status_code
    assert len(transport.sent) == 1
    assert sleeper.waits == []


def test_client_error_maps_error_type_to_subclass(make_executor) -> None:
    body = {"error": {"type": "InvalidInput", "message": "bad field"}}
    executor, transport = make_executor([make_response(400, body, request_id="req-9")])

    with pytest.raises(InvalidInput) as excinfo:
        executor.call("/record-1/describe")

    error = excinfo.value
    assert error.status_code == 400
    assert (error.error_type, error.message) == ("InvalidInput", "bad field")
    assert error.request_id == "req-9"
    assert len(transport.sent) == 1


def test_permission_denied_is_not_retried_even_when_safe(make_executor, sleeper) -> None:
    body = {"error": {"type": "PermissionDenied", "message": "VIEW required"}}
    executor, transport = make_executor([make_response(401, body), OK])

    with pytest.raises(PermissionDenied, match="VIEW required"):
        executor.call("/project-1/describe", retry_strategy=RetryStrategy.SAFE_TO_RETRY)

    assert len(transport.sent) == 1
    assert sleeper.waits == []


def test_unknown_error_type_uses_base_client_error(make_executor) -> None:
    body = {"error": {"type": "SomethingNew", "message": "?"}}
    executor, _ = make_executor([make_response(409, body)])

    with pytest.raises(DxClientError) as excinfo:
        executor.call("/record-1/close")

    assert type(excinfo.value) is DxClientError
    assert excinfo.value.error_type == "SomethingNew"


def test_server_errors_retry_with_doubling_backoff(make_executor, sleeper) -> None:
    executor, transport = make_executor([make_response(500)] * 5 + [OK])

    result = executor.call("/system/findDataObjects", retry_strategy=UNSAFE)

    assert result == {"echo": "ok"}
    assert len(transport.sent) == 6
    assert sleeper.waits == [1, 2, 4, 8, 16]


def test_server_errors_up_to_budget_then_success(make_executor, sleeper) -> None:
    executor, transport = make_executor([make_response(502)] * 10 + [OK])

    assert executor.call("/system/whoami") == {"echo": "ok"}
    assert len(transport.sent) == 11
    assert sleeper.waits == [2**n for n in range(10)]


def test_server_errors_exhaust_bounded_budget(make_executor, sleeper) -> None:
    executor, transport = make_executor([make_response(500, request_id="req-x")] * 11)

    with pytest.raises(DxInternalError, match="Maximum number of retries reached") as excinfo:
        executor.call("/system/whoami")

    assert excinfo.value.status_code == 500
    assert excinfo.value.request_id == "req-x"
    assert len(transport.sent) == 11
    assert len(sleeper.waits) == 10


def test_server_error_with_retries_disabled_is_fatal(make_executor, sleeper) -> None:
    executor, transport = make_executor([make_response(500), OK], disable_retry=True)

    with pytest.raises(DxInternalError, match="Internal Server Error") as excinfo:
        executor.call("/system/whoami")

    assert excinfo.value.status_code == 500
    assert len(transport.sent) == 1
    assert sleeper.waits == []


def test_service_unavailable_waits_as_directed(make_executor, sleeper) -> None:
    throttled = make_response(503, headers={"Retry-After": "2"})
    executor, transport = make_executor([throttled, throttled, OK])

    assert executor.call("/system/whoami") == {"echo": "ok"}
    assert len(transport.sent) == 3
    assert sleeper.waits == [2, 2]


def test_service_unavailable_never_consumes_bounded_budget(make_executor, sleeper) -> None:
    throttled = make_response(503, headers={"Retry-After": "3"})
    script = [throttled] * 25 + [make_response(500), OK]
    executor, transport = make_executor(script, max_attempts=1)

    assert executor.call("/system/whoami") == {"echo": "ok"}
    assert len(transport.sent) == 27
    # The first bounded retry still starts at one second.
    assert sleeper.waits == [3] * 25 + [1]


def test_service_unavailable_interleaved_does_not_reset_backoff(make_executor, sleeper) -> None:
    throttled = make_response(503, headers={"Retry-After": "5"})
    script = [make_response(500), throttled, make_response(500), OK]
    executor, _ = make_executor(script)

    executor.call("/system/whoami")

    assert sleeper.waits == [1, 5, 2]


def test_service_unavailable_default_wait(make_executor, sleeper) -> None:
    executor, _ = make_executor([make_response(503), OK])

    executor.call("/system/whoami")

    assert sleeper.waits == [60]


def test_service_unavailable_with_retries_disabled_surfaces_wait(make_executor, sleeper) -> None:
    executor, transport = make_executor(
        [make_response(503, headers={"Retry-After": "30"}, request_id="req-3")],
        disable_retry=True,
    )

    with pytest.raises(DxServiceUnavailableError) as excinfo:
        executor.call("/system/whoami")

    assert excinfo.value.retry_after_seconds == 30
    assert excinfo.value.status_code == 503
    assert excinfo.value.request_id == "req-3"
    assert len(transport.sent) == 1
    assert sleeper.waits == []


def test_unsafe_transport_error_fails_fast(make_executor, sleeper) -> None:
    reset = httpx.ReadError("connection reset by peer")
    executor, transport = make_executor([reset, OK])

    with pytest.raises(DxTransportError, match="unsafe to retry") as excinfo:
        executor.call("/applet-1/run", retry_strategy=UNSAFE)

    assert excinfo.value.__cause__ is reset
    assert excinfo.value.status_code is None
    assert len(transport.sent) == 1
    assert sleeper.waits == []


def test_safe_transport_error_is_retried(make_executor, sleeper) -> None:
    script = [httpx.ConnectError("refused"), httpx.ReadTimeout("slow"), OK]
    executor, transport = make_executor(script)

    assert executor.call("/file-1/describe") == {"echo": "ok"}
    assert len(transport.sent) == 3
    assert sleeper.waits == [1, 2]


def test_safe_transport_errors_exhaust_budget(make_executor, sleeper) -> None:
    executor, transport = make_executor([httpx.ConnectError("refused")] * 11 + [OK])

    with pytest.raises(DxTransportError, match="Maximum number of retries reached"):
        executor.call("/file-1/describe")

    assert len(transport.sent) == 11
    assert sleeper.waits == [2**n for n in range(10)]


def test_transport_error_with_retries_disabled_is_fatal(make_executor, sleeper) -> None:
    executor, transport = make_executor([httpx.ConnectError("refused"), OK], disable_retry=True)

    with pytest.raises(DxTransportError, match="retries disabled"):
        executor.call("/file-1/describe")

    assert len(transport.sent) == 1
    assert sleeper.waits == []


def test_truncated_body_is_retried_when_safe(make_executor, sleeper) -> None:
    truncated = make_response(200, b'{"echo":', declared_length=13)
    executor, transport = make_executor([truncated, OK])

    assert executor.call("/file-1/describe") == {"echo": "ok"}
    assert len(transport.sent) == 2
    assert sleeper.waits == [1]


def test_truncated_body_is_fatal_when_unsafe(make_executor) -> None:
    truncated = make_response(200, b'{"id":', declared_length=20)
    executor, transport = make_executor([truncated, OK])

    with pytest.raises(DxTransportError) as excinfo:
        executor.call("/job/new", retry_strategy=UNSAFE)

    assert excinfo.value.status_code == 200
    assert len(transport.sent) == 1


def test_unparseable_streamed_body_is_retried(make_executor) -> None:
    streamed = make_response(200, b"{", declared_length=-1)
    executor, transport = make_executor([streamed, OK])

    assert executor.call("/file-1/describe") == {"echo": "ok"}
    assert len(transport.sent) == 2


def test_malformed_body_of_confirmed_length_is_never_retried(make_executor, sleeper) -> None:
    executor, transport = make_executor([make_response(200, b"<html/>"), OK])

    with pytest.raises(DxMalformedResponseError):
        executor.call("/file-1/describe")

    assert len(transport.sent) == 1
    assert sleeper.waits == []


def test_missing_security_context_is_configuration_error(make_executor) -> None:
    executor, transport = make_executor([OK], security_context=None)

    with pytest.raises(DxConfigurationError, match="No security context"):
        executor.call("/system/whoami")

    assert transport.sent == []


def test_negative_budget_is_rejected(make_executor) -> None:
    with pytest.raises(DxConfigurationError):
        make_executor([], max_attempts=-1)


def test_retry_state_advances_attempt_and_doubles_backoff() -> None:
    state = RetryState()

    state.advance()
    state.advance()

    assert (state.attempt, state.backoff_seconds) == (2, 4)


def test_concurrent_calls_keep_independent_retry_state(make_executor, sleeper) -> None:
    class _PerWorkerTransport:
        def __init__(self) -> None:
            self._lock = threading.Lock()
            self._calls: dict[str, int] = {}

        def post(self, url, *, headers, content):
            worker = json.loads(content)["worker"]
            with self._lock:
                self._calls[worker] = self._calls.get(worker, 0) + 1
                count = self._calls[worker]
            if count <= 2:
                return make_response(500)
            return make_response(200, {"worker": worker})

    executor, _ = make_executor([])
    executor.transport = _PerWorkerTransport()
    results: dict[str, object] = {}

    def _run(worker: str) -> None:
        results[worker] = executor.call("/system/echo", {"worker": worker})

    threads = [threading.Thread(target=_run, args=(f"w{i}",)) for i in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results == {f"w{i}": {"worker": f"w{i}"} for i in range(4)}
    assert sorted(sleeper.waits) == [1, 1, 1, 1, 2, 2, 2, 2]
