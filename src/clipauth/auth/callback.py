"""Loopback HTTP listener that captures the OAuth2 redirect.

:class:`CallbackListener` binds the fixed redirect address, waits for the
identity provider to send the browser back with ``code`` and ``state``, and
produces exactly one :data:`CallbackOutcome`:

* :class:`CallbackSuccess` -- the state matched and a code was present.
* :class:`CallbackProviderError` -- the provider redirected with ``error``.
* :class:`CallbackTimedOut` -- nothing valid arrived before the deadline.
* :class:`CallbackServerStartFailed` -- the port could not be bound.

Browsers are noisy: they fetch ``/favicon.ico``, pre-connect, and sometimes
replay the redirect. Requests without a matching state and without an
``error`` get an "invalid request" page and are otherwise ignored, and any
request arriving after resolution gets an "already completed" page. The
first resolving request wins through :class:`_OutcomeSlot`; its test and
assignment run under one lock, so concurrent handler threads can never
deliver two outcomes.

Shutdown is synchronous: :meth:`CallbackListener.wait` only returns once the
listening socket is closed and in-flight handler threads have finished
writing their pages.

Example::

    listener = CallbackListener(port=8080, timeout=120)
    outcome = listener.await_callback(pkce.state)
    if isinstance(outcome, CallbackSuccess):
        ...
"""

from __future__ import annotations

import enum
import html
import logging
import secrets
import socketserver
import threading
import time
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional, Union
from urllib.parse import parse_qs, urlparse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120.0


# --- Outcomes ---


@dataclass(frozen=True)
class CallbackSuccess:
    code: str

    def __repr__(self) -> str:
        return "CallbackSuccess(code=<redacted>)"


@dataclass(frozen=True)
class CallbackProviderError:
    error: str
    description: Optional[str] = None


@dataclass(frozen=True)
class CallbackTimedOut:
    pass


@dataclass(frozen=True)
class CallbackServerStartFailed:
    reason: str


CallbackOutcome = Union[
    CallbackSuccess,
    CallbackProviderError,
    CallbackTimedOut,
    CallbackServerStartFailed,
]


class ListenerState(str, enum.Enum):
    """Lifecycle of a single :class:`CallbackListener`."""

    IDLE = "idle"
    LISTENING = "listening"
    RESOLVED = "resolved"
    TIMED_OUT = "timed_out"
    START_FAILED = "start_failed"
    CLOSED = "closed"


class _OutcomeSlot:
    """Single-assignment cell shared by the handler threads and the waiter."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._value: Optional[CallbackOutcome] = None

    def offer(self, outcome: CallbackOutcome) -> bool:
        """Store *outcome* unless one is already stored. Returns whether it won."""
        with self._lock:
            if self._value is not None:
                return False
            self._value = outcome
        self._event.set()
        return True

    @property
    def is_set(self) -> bool:
        with self._lock:
            return self._value is not None

    @property
    def value(self) -> Optional[CallbackOutcome]:
        with self._lock:
            return self._value

    def wait(self, timeout: float) -> bool:
        return self._event.wait(timeout)

    def wake(self) -> None:
        """Release waiters without storing an outcome."""
        self._event.set()


# --- HTML pages ---


_PAGE_TEMPLATE = (
    "<!DOCTYPE html><html><head><meta charset=\"utf-8\"><title>{title}</title></head>"
    "<body><h1>{title}</h1><p>{message}</p></body></html>"
)


def _render_page(title: str, message: str) -> bytes:
    return _PAGE_TEMPLATE.format(
        title=html.escape(title), message=html.escape(message)
    ).encode("utf-8")


# --- HTTP plumbing ---


class _CallbackServer(ThreadingHTTPServer):
    # Non-daemon handler threads are joined by server_close(), which is what
    # makes shutdown synchronous with the last page being written.
    daemon_threads = False

    def __init__(self, address: tuple[str, int], listener: CallbackListener) -> None:
        self.listener = listener
        super().__init__(address, _CallbackHandler)

    def server_bind(self) -> None:
        # HTTPServer.server_bind() resolves the FQDN of the host, which can
        # stall on misconfigured resolvers; loopback needs none of that.
        socketserver.TCPServer.server_bind(self)
        host, port = self.server_address[:2]
        self.server_name = str(host)
        self.server_port = port

    def handle_error(self, request: Any, client_address: Any) -> None:
        logger.debug("Error while handling callback request from %s", client_address, exc_info=True)


class _CallbackHandler(BaseHTTPRequestHandler):
    # Idle pre-connects must not hold server_close() hostage.
    timeout = 5
    server: _CallbackServer

    def do_GET(self) -> None:
        self.server.listener._handle_request(self)

    def send_page(self, status: int, title: str, message: str) -> None:
        body = _render_page(title, message)
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-store")
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("callback %s - " + format, self.address_string(), *args)


# --- Listener ---


class CallbackListener:
    """Single-use loopback endpoint that resolves one authorization redirect.

    The listener moves through :class:`ListenerState` once:
    ``IDLE -> LISTENING -> RESOLVED | TIMED_OUT``, or
    ``IDLE -> START_FAILED`` when the port cannot be bound. Calling
    :meth:`close` while still listening ends in ``CLOSED`` without an
    outcome.

    Args:
        host: Interface to bind. Must match the redirect URI host.
        port: Fixed port to bind. ``0`` picks an ephemeral port (tests).
        timeout: Default seconds to wait, counted from the moment the
            port is bound.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 8080,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._host = host
        self._port = port
        self._timeout = timeout
        self._expected_state: Optional[str] = None
        self._deadline = 0.0
        self._slot = _OutcomeSlot()
        self._server: Optional[_CallbackServer] = None
        self._thread: Optional[threading.Thread] = None
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._shutdown_lock = threading.Lock()
        self._started = False
        self._closed = False

    def __enter__(self) -> CallbackListener:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def port(self) -> int:
        """The bound port once listening, otherwise the configured one."""
        if self._server is not None:
            return self._server.server_address[1]
        return self._port

    @property
    def state(self) -> ListenerState:
        outcome = self._slot.value
        if isinstance(outcome, CallbackServerStartFailed):
            return ListenerState.START_FAILED
        if isinstance(outcome, CallbackTimedOut):
            return ListenerState.TIMED_OUT
        if outcome is not None:
            return ListenerState.RESOLVED
        if self._closed:
            return ListenerState.CLOSED
        if self._started:
            return ListenerState.LISTENING
        return ListenerState.IDLE

    def await_callback(
        self, expected_state: str, timeout: Optional[float] = None
    ) -> CallbackOutcome:
        """Bind, wait for one valid redirect, shut down, and return the outcome.

        Args:
            expected_state: The anti-CSRF state sent in the authorization URL.
            timeout: Seconds to wait; defaults to the constructor value.

        Returns:
            Exactly one :data:`CallbackOutcome`.

        Raises:
            RuntimeError: If this listener has already been used.
        """
        failed = self.start(expected_state, timeout)
        if failed is not None:
            return failed
        return self.wait()

    def start(
        self, expected_state: str, timeout: Optional[float] = None
    ) -> Optional[CallbackServerStartFailed]:
        """Bind the port and start serving in a background thread.

        The timeout clock starts here, not in :meth:`wait`, so time spent
        launching the browser counts against it. At the deadline the
        listener records :class:`CallbackTimedOut` and shuts down whether or
        not anyone is waiting.

        Returns:
            ``None`` once listening, or the :class:`CallbackServerStartFailed`
            outcome when binding failed (no timer is started then).

        Raises:
            RuntimeError: If this listener has already been started.
        """
        with self._lock:
            if self._started:
                raise RuntimeError("CallbackListener is single-use; create a new one")
            self._started = True

            self._expected_state = expected_state
            try:
                server = _CallbackServer((self._host, self._port), self)
            except OSError as exc:
                reason = exc.strerror or str(exc)
                logger.error(
                    "Cannot listen on %s:%s for the OAuth callback: %s",
                    self._host, self._port, reason,
                )
                outcome = CallbackServerStartFailed(reason=reason)
                self._slot.offer(outcome)
                return outcome

            self._server = server
            self._deadline = time.monotonic() + (
                timeout if timeout is not None else self._timeout
            )
            self._thread = threading.Thread(
                target=server.serve_forever,
                kwargs={"poll_interval": 0.05},
                name="clipauth-callback",
                daemon=True,
            )
            self._thread.start()
            self._timer = threading.Timer(
                max(0.0, self._deadline - time.monotonic()), self._expire
            )
            self._timer.daemon = True
            self._timer.start()

        logger.info("Waiting for OAuth callback on %s:%s", self._host, self.port)
        return None

    def wait(self) -> CallbackOutcome:
        """Block until an outcome is recorded or the deadline passes.

        Returns:
            The recorded :data:`CallbackOutcome`.

        Raises:
            RuntimeError: If :meth:`start` was never called, or the listener
                was closed before any outcome was recorded.
        """
        if not self._started:
            raise RuntimeError("start() must be called before wait()")

        remaining = max(0.0, self._deadline - time.monotonic())
        if not self._slot.is_set and not self._closed:
            if not self._slot.wait(remaining) and self._slot.offer(CallbackTimedOut()):
                logger.warning("No OAuth callback received within the timeout")

        self._shutdown()
        outcome = self._slot.value
        if outcome is None:
            raise RuntimeError("CallbackListener was closed before an outcome was recorded")
        return outcome

    def close(self) -> None:
        """Stop listening. Safe to call repeatedly and from any state."""
        self._closed = True
        self._slot.wake()
        self._shutdown()

    def _expire(self) -> None:
        if self._slot.offer(CallbackTimedOut()):
            logger.warning("No OAuth callback received within the timeout")
            self._shutdown()

    def _shutdown(self) -> None:
        # Held for the whole teardown so a second caller returns only once the
        # socket is closed.
        with self._shutdown_lock:
            with self._lock:
                server, self._server = self._server, None
                thread, self._thread = self._thread, None
                timer, self._timer = self._timer, None
            if timer is not None:
                timer.cancel()
            if server is None:
                return
            server.shutdown()
            server.server_close()
            if thread is not None:
                thread.join()
            logger.debug("OAuth callback listener stopped")

    # -- request protocol ---------------------------------------------------

    def _handle_request(self, handler: _CallbackHandler) -> None:
        if self._slot.is_set:
            logger.debug("Ignoring callback request after completion: %s", urlparse(handler.path).path)
            self._send_completed(handler)
            return

        params = parse_qs(urlparse(handler.path).query)
        code = params.get("code", [None])[0]
        state = params.get("state", [None])[0]
        error = params.get("error", [None])[0]
        error_description = params.get("error_description", [None])[0]

        if code and state is not None and self._state_matches(state):
            if not self._slot.offer(CallbackSuccess(code=code)):
                self._send_completed(handler)
                return
            logger.info("Authorization code received")
            handler.send_page(
                200,
                "Authorization successful",
                "You can close this window and return to the application.",
            )
        elif error:
            outcome = CallbackProviderError(error=error, description=error_description)
            if not self._slot.offer(outcome):
                self._send_completed(handler)
                return
            logger.error("OAuth authorization failed: %s", error_description or error)
            handler.send_page(
                400,
                "Authorization failed",
                f"Error: {error_description or error}",
            )
        else:
            logger.warning("Ignoring invalid callback request: %s", urlparse(handler.path).path)
            handler.send_page(
                400,
                "Invalid request",
                "Please return to the application to check the sign-in status.",
            )

    def _state_matches(self, state: str) -> bool:
        expected = self._expected_state or ""
        return secrets.compare_digest(state.encode("utf-8"), expected.encode("utf-8"))

    @staticmethod
    def _send_completed(handler: _CallbackHandler) -> None:
        handler.send_page(
            200,
            "Authorization already completed",
            "You can close this window.",
        )
