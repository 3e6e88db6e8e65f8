"""Token lifecycle manager -- owner of the signed-in session.

The :class:`TokenLifecycleManager` is the central coordinator of the
authentication subsystem. It drives the interactive login (PKCE, loopback
listener, browser, code exchange), hands out valid access tokens to the
resource-API client, and decides what each refresh failure means:

* ``invalid_grant`` from the provider clears the session and surfaces as
  :class:`~clipauth.exceptions.SessionExpired`; only a new login recovers.
* Any other refresh failure is logged and the stale access token is
  returned. The downstream call will most likely get a 401, which is routed
  back through :meth:`~TokenLifecycleManager.handle_unauthorized_response`.

One manager is constructed per process and passed to whatever needs a
bearer token; there is no module-level session state.

See Also:
    :class:`~clipauth.auth.bearer.BearerAuth` -- plugs the manager into an
    ``httpx.Client``.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from clipauth.auth import callback
from clipauth.auth.browser import BrowserOpener, open_in_browser
from clipauth.auth.callback import CallbackListener
from clipauth.auth.exchange import (
    Clock,
    TokenExchangeClient,
    build_authorization_url,
    utcnow,
)
from clipauth.auth.pkce import generate_pkce
from clipauth.auth.store import JsonFileStore, TokenStore
from clipauth.config import load_settings
from clipauth.exceptions import (
    BrowserOpenFailed,
    CallbackTimedOut,
    ListenerBindFailed,
    LoginFailed,
    NotAuthenticated,
    ProviderDeniedAuthorization,
    RefreshRejected,
    RefreshUnavailable,
    SessionExpired,
)
from clipauth.models import AuthSettings, TokenSet

logger = logging.getLogger(__name__)

ListenerFactory = Callable[[AuthSettings], CallbackListener]


def default_listener_factory(settings: AuthSettings) -> CallbackListener:
    """Create a listener on the registered redirect address."""
    return CallbackListener(
        host=settings.redirect_host,
        port=settings.redirect_port,
        timeout=settings.callback_timeout,
    )


class TokenLifecycleManager:
    """Interactive login plus validate/refresh/invalidate of the stored token set.

    Args:
        settings: Provider, client and loopback settings.
        store: Persistence for the token set.
        exchange_client: Token endpoint client. Defaults to one built from
            *settings*; it is closed by :meth:`close` either way.
        listener_factory: Builds a fresh :class:`CallbackListener` for each
            login attempt.
        clock: Returns the current UTC time. Injected for tests.

    Example::

        settings = load_settings()
        with TokenLifecycleManager(settings, TokenStore(JsonFileStore())) as manager:
            if not manager.is_logged_in():
                manager.login()
            token = manager.get_valid_access_token()
    """

    def __init__(
        self,
        settings: AuthSettings,
        store: TokenStore,
        exchange_client: Optional[TokenExchangeClient] = None,
        listener_factory: Optional[ListenerFactory] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._clock = clock or utcnow
        self._exchange = exchange_client or TokenExchangeClient.from_settings(
            settings, clock=self._clock
        )
        self._listener_factory = listener_factory or default_listener_factory
        self._login_lock = threading.Lock()
        self._refresh_lock = threading.Lock()

    def __enter__(self) -> TokenLifecycleManager:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Release the token endpoint client."""
        self._exchange.close()

    @property
    def settings(self) -> AuthSettings:
        return self._settings

    @property
    def token_set(self) -> Optional[TokenSet]:
        """The stored token set, or ``None`` when signed out."""
        return self._store.load()

    def is_logged_in(self) -> bool:
        return self._store.load() is not None

    # ------------------------------------------------------------------ #
    # Interactive login
    # ------------------------------------------------------------------ #

    def login(
        self,
        client_id: Optional[str] = None,
        browser_opener: Optional[BrowserOpener] = None,
    ) -> None:
        """Run the Authorization Code + PKCE flow and persist the result.

        The listener is bound before the browser is asked to open, so the
        provider's redirect can never arrive at a closed port.

        Args:
            client_id: Overrides ``settings.client_id`` for this attempt. The
                value is stored with the tokens and used for later refreshes.
            browser_opener: Callable that opens a URL and reports success.
                Defaults to :func:`~clipauth.auth.browser.open_in_browser`.

        Raises:
            LoginFailed: Another login is already running on this manager.
            ListenerBindFailed: The redirect port could not be bound.
            BrowserOpenFailed: The opener reported failure.
            CallbackTimedOut: No valid redirect arrived in time.
            ProviderDeniedAuthorization: The provider redirected with ``error``.
            ExchangeFailed: The token endpoint refused the code.
        """
        if not self._login_lock.acquire(blocking=False):
            raise LoginFailed("A login is already in progress")
        try:
            self._login(client_id or self._settings.client_id, browser_opener or open_in_browser)
        finally:
            self._login_lock.release()

    def _login(self, client_id: str, browser_opener: BrowserOpener) -> None:
        pkce = generate_pkce()
        logger.debug("Starting login attempt %r", pkce)

        with self._listener_factory(self._settings) as listener:
            failed = listener.start(pkce.state)
            if failed is not None:
                raise ListenerBindFailed(
                    f"Cannot listen on {self._settings.redirect_host}:"
                    f"{self._settings.redirect_port}: {failed.reason}"
                )

            url = build_authorization_url(self._settings, client_id, pkce)
            if not browser_opener(url):
                raise BrowserOpenFailed(
                    "Could not open a browser for sign-in. "
                    f"Open this URL manually and try again: {url}"
                )

            outcome = listener.wait()

        if isinstance(outcome, callback.CallbackTimedOut):
            raise CallbackTimedOut("Timed out waiting for the browser sign-in to complete")
        if isinstance(outcome, callback.CallbackProviderError):
            raise ProviderDeniedAuthorization(outcome.error, outcome.description)
        if isinstance(outcome, callback.CallbackServerStartFailed):
            raise ListenerBindFailed(outcome.reason)

        tokens = self._exchange.exchange_code(outcome.code, pkce.code_verifier, client_id)
        self._store.save(tokens.model_copy(update={"client_id": client_id}))
        logger.info("Signed in; access token valid until %s", tokens.expires_at.isoformat())

    # ------------------------------------------------------------------ #
    # Steady state
    # ------------------------------------------------------------------ #

    def get_valid_access_token(self) -> str:
        """Return an access token, refreshing it first when it has expired.

        Returns:
            The current (or freshly refreshed) access token. After a
            transient refresh failure this is the previous, possibly
            expired, token.

        Raises:
            NotAuthenticated: Nothing is stored.
            SessionExpired: The token expired and cannot be refreshed, either
                because no refresh token exists or the provider rejected it.
                The stored token set has been cleared.
        """
        with self._refresh_lock:
            tokens = self._store.load()
            if tokens is None:
                raise NotAuthenticated("Not signed in. Run 'clipauth auth login' first.")
            if not tokens.is_expired(self._clock()):
                return tokens.access_token

            if not tokens.refresh_token:
                logger.info("Access token expired and no refresh token is stored")
                self._store.clear()
                raise SessionExpired("Session expired. Please sign in again.")

            client_id = tokens.client_id or self._settings.client_id
            try:
                refreshed = self._exchange.refresh(tokens.refresh_token, client_id)
            except RefreshRejected as exc:
                logger.warning("Refresh token rejected, clearing session: %s", exc)
                self._store.clear()
                raise SessionExpired("Session expired. Please sign in again.") from exc
            except RefreshUnavailable as exc:
                logger.warning("Token refresh failed, using the current access token: %s", exc)
                return tokens.access_token

            update = {"client_id": client_id}
            if refreshed.refresh_token is None:
                update["refresh_token"] = tokens.refresh_token
            refreshed = refreshed.model_copy(update=update)
            self._store.save(refreshed)
            return refreshed.access_token

    def handle_unauthorized_response(self) -> None:
        """Invalidate the session after the resource API answered 401."""
        logger.warning("Resource API rejected the access token; clearing session")
        self._store.clear()

    def logout(self) -> None:
        """Forget the stored token set. Safe to call when signed out."""
        self._store.clear()
        logger.info("Signed out")


def create_default_manager(settings: Optional[AuthSettings] = None) -> TokenLifecycleManager:
    """Create a manager over the on-disk state file.

    Args:
        settings: Effective settings. Defaults to
            :func:`~clipauth.config.load_settings`.

    Raises:
        ConfigError: If the settings cannot be loaded.
    """
    if settings is None:
        settings = load_settings()
    return TokenLifecycleManager(settings, TokenStore(JsonFileStore()))
