"""Tests for the loopback callback listener, using real sockets on 127.0.0.1."""

from __future__ import annotations

import socket
import threading
import time
from http.client import HTTPConnection

import pytest

from clipauth.auth.callback import (
    CallbackListener,
    CallbackProviderError,
    CallbackServerStartFailed,
    CallbackSuccess,
    CallbackTimedOut,
    ListenerState,
)

STATE = "0123456789abcdef0123456789abcdef"


def _get(port: int, path: str) -> tuple[int, str]:
    conn = HTTPConnection("127.0.0.1", port, timeout=5)
    try:
        conn.request("GET", path)
        response = conn.getresponse()
        return response.status, response.read().decode("utf-8")
    finally:
        conn.close()


@pytest.fixture
def listener():
    listener = CallbackListener(host="127.0.0.1", port=0, timeout=5)
    yield listener
    listener.close()


def _start(listener: CallbackListener, timeout: float | None = None) -> int:
    assert listener.start(STATE, timeout) is None
    return listener.port


class TestSuccess:
    def test_valid_code_and_state_resolves(self, listener: CallbackListener) -> None:
        port = _start(listener)
        status, body = _get(port, f"/callback?code=C1&state={STATE}")

        assert status == 200
        assert "Authorization successful" in body
        assert listener.wait() == CallbackSuccess(code="C1")
        assert listener.state is ListenerState.RESOLVED

    def test_duplicate_delivery_resolves_once(self, listener: CallbackListener) -> None:
        port = _start(listener)
        first = _get(port, f"/callback?code=C1&state={STATE}")
        second = _get(port, f"/callback?code=C2&state={STATE}")

        assert first[0] == 200 and "Authorization successful" in first[1]
        assert second[0] == 200 and "already completed" in second[1]
        assert listener.wait() == CallbackSuccess(code="C1")

    def test_concurrent_requests_produce_one_success(self, listener: CallbackListener) -> None:
        port = _start(listener)
        results: list[str] = []
        lock = threading.Lock()

        def hit(i: int) -> None:
            _, body = _get(port, f"/callback?code=C{i}&state={STATE}")
            with lock:
                results.append(body)

        threads = [threading.Thread(target=hit, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        outcome = listener.wait()
        assert isinstance(outcome, CallbackSuccess)
        assert sum("Authorization successful" in body for body in results) == 1
        assert sum("already completed" in body for body in results) == 7

    def test_noise_before_valid_redirect_is_ignored(self, listener: CallbackListener) -> None:
        port = _start(listener)
        assert _get(port, "/favicon.ico")[0] == 400
        assert _get(port, "/callback?state=" + STATE)[0] == 400
        assert _get(port, "/callback?code=C1&state=wrong")[0] == 400
        assert listener.state is ListenerState.LISTENING

        assert _get(port, f"/callback?code=C1&state={STATE}")[0] == 200
        assert listener.wait() == CallbackSuccess(code="C1")

    def test_await_callback_runs_full_cycle(self) -> None:
        listener = CallbackListener(host="127.0.0.1", port=0, timeout=5)
        result: dict[str, object] = {}

        def run() -> None:
            result["outcome"] = listener.await_callback(STATE)

        thread = threading.Thread(target=run)
        thread.start()
        deadline = time.monotonic() + 5
        while listener.state is not ListenerState.LISTENING:
            assert time.monotonic() < deadline
            time.sleep(0.01)

        _get(listener.port, f"/callback?code=C9&state={STATE}")
        thread.join(timeout=5)
        assert result["outcome"] == CallbackSuccess(code="C9")


class TestFailures:
    def test_provider_error_resolves_with_description(self, listener: CallbackListener) -> None:
        port = _start(listener)
        status, body = _get(
            port,
            f"/callback?error=access_denied&error_description=User+cancelled&state={STATE}",
        )

        assert status == 400
        assert "User cancelled" in body
        assert listener.wait() == CallbackProviderError(
            error="access_denied", description="User cancelled"
        )

    def test_provider_error_never_becomes_success(self, listener: CallbackListener) -> None:
        port = _start(listener)
        _get(port, "/callback?error=server_error")
        _get(port, f"/callback?code=C1&state={STATE}")

        outcome = listener.wait()
        assert isinstance(outcome, CallbackProviderError)
        assert outcome.description is None

    def test_error_page_escapes_html(self, listener: CallbackListener) -> None:
        port = _start(listener)
        _, body = _get(port, "/callback?error=bad&error_description=%3Cscript%3E")
        assert "<script>" not in body
        assert "&lt;script&gt;" in body

    def test_times_out_without_valid_request(self, listener: CallbackListener) -> None:
        port = _start(listener, timeout=0.3)
        _get(port, "/callback?code=C1&state=mismatch")

        started = time.monotonic()
        assert listener.wait() == CallbackTimedOut()
        assert time.monotonic() - started < 3
        assert listener.state is ListenerState.TIMED_OUT

    def test_times_out_and_stops_without_wait(self, listener: CallbackListener) -> None:
        port = _start(listener, timeout=0.2)

        deadline = time.monotonic() + 5
        while listener.state is ListenerState.LISTENING and time.monotonic() < deadline:
            time.sleep(0.02)
        assert listener.state is ListenerState.TIMED_OUT

        closed = False
        while not closed and time.monotonic() < deadline:
            try:
                _get(port, "/callback")
            except OSError:
                closed = True
            else:
                time.sleep(0.02)
        assert closed

    def test_bind_failure(self) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen(1)
            port = blocker.getsockname()[1]

            listener = CallbackListener(host="127.0.0.1", port=port, timeout=1)
            outcome = listener.await_callback(STATE)

        assert isinstance(outcome, CallbackServerStartFailed)
        assert outcome.reason
        assert listener.state is ListenerState.START_FAILED


class TestLifecycle:
    def test_port_is_closed_once_wait_returns(self, listener: CallbackListener) -> None:
        port = _start(listener)
        _get(port, f"/callback?code=C1&state={STATE}")
        listener.wait()

        with pytest.raises(OSError):
            _get(port, "/callback")

    def test_single_use(self, listener: CallbackListener) -> None:
        _start(listener)
        with pytest.raises(RuntimeError):
            listener.start(STATE)

    def test_wait_requires_start(self) -> None:
        with pytest.raises(RuntimeError):
            CallbackListener(host="127.0.0.1", port=0).wait()

    def test_close_while_listening(self) -> None:
        listener = CallbackListener(host="127.0.0.1", port=0, timeout=5)
        port = _start(listener)
        listener.close()

        assert listener.state is ListenerState.CLOSED
        with pytest.raises(OSError):
            _get(port, "/callback")
        with pytest.raises(RuntimeError):
            listener.wait()

    def test_close_is_idempotent(self) -> None:
        listener = CallbackListener(host="127.0.0.1", port=0)
        listener.close()
        listener.close()
        assert listener.state is ListenerState.CLOSED

    def test_success_repr_redacts_code(self) -> None:
        assert "secret-code" not in repr(CallbackSuccess(code="secret-code"))
