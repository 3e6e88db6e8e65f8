"""Token endpoint protocol: authorization-code exchange and refresh.

:class:`TokenExchangeClient` performs the two form-encoded POSTs of a
public (secret-less) OAuth2 client and turns the JSON answer into a
:class:`~clipauth.models.TokenSet`. It never retries; callers own retry
policy.

Failures are classified as follows:

* Code exchange failures raise :class:`~clipauth.exceptions.ExchangeFailed`
  carrying the provider's ``error_description`` when there is one.
* Refresh failures split in two. ``error=invalid_grant`` raises
  :class:`~clipauth.exceptions.RefreshRejected` (the refresh token is dead);
  everything else (network errors, timeouts, 5xx, malformed bodies) raises
  :class:`~clipauth.exceptions.RefreshUnavailable`, which says nothing about
  the credential itself.

Also exports :func:`build_authorization_url`, which assembles the browser
URL for the authorization endpoint.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional
from urllib.parse import quote, urlencode

import httpx

from clipauth.auth.pkce import PkceParameters
from clipauth.exceptions import (
    ExchangeFailed,
    RefreshRejected,
    RefreshUnavailable,
)
from clipauth.models import AuthSettings, TokenSet

logger = logging.getLogger(__name__)

EXPIRY_SKEW = timedelta(minutes=5)
"""Subtracted from every reported lifetime so validity checks never race the server."""

DEFAULT_EXPIRES_IN = 3600.0
MAX_EXPIRES_IN = 365 * 24 * 3600.0

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_authorization_url(
    settings: AuthSettings, client_id: str, pkce: PkceParameters
) -> str:
    """Build the authorization endpoint URL for one login attempt.

    Args:
        settings: Provider and redirect settings.
        client_id: The public client identifier.
        pkce: Parameters of this attempt; only the challenge and state are
            sent, the verifier stays local.

    Returns:
        The absolute URL to open in the user's browser.
    """
    params = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": settings.redirect_uri,
        "scope": settings.scope,
        "code_challenge": pkce.code_challenge,
        "code_challenge_method": "S256",
        "state": pkce.state,
    }
    return f"{settings.authorize_url}?{urlencode(params, quote_via=quote)}"


def _json_body(response: httpx.Response) -> Optional[dict[str, Any]]:
    try:
        payload = response.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


def _provider_message(payload: Optional[dict[str, Any]], response: httpx.Response) -> str:
    if payload:
        message = payload.get("error_description") or payload.get("error")
        if message:
            return str(message)
    text = response.text.strip()
    return text[:200] if text else f"HTTP {response.status_code}"


def _expires_in(payload: dict[str, Any]) -> float:
    value = payload.get("expires_in")
    if value is None:
        return DEFAULT_EXPIRES_IN
    try:
        seconds = float(value)
    except (TypeError, ValueError, OverflowError):
        logger.warning("Ignoring non-numeric expires_in %r", value)
        return DEFAULT_EXPIRES_IN
    if not math.isfinite(seconds) or not 0 <= seconds <= MAX_EXPIRES_IN:
        logger.warning("Ignoring out-of-range expires_in %r", value)
        return DEFAULT_EXPIRES_IN
    return seconds


class TokenExchangeClient:
    """Client for the provider's token endpoint.

    Owns an :class:`httpx.Client` that is created lazily and released by
    :meth:`close` (or by leaving the ``with`` block).

    Args:
        token_url: Absolute URL of the token endpoint.
        redirect_uri: The redirect URI used in the authorization request;
            the provider requires it again during the code exchange.
        timeout: Seconds before a request is abandoned.
        clock: Returns the current UTC time; used to compute expiries.
        transport: Optional httpx transport (e.g. ``httpx.MockTransport``).

    Example::

        with TokenExchangeClient.from_settings(settings) as client:
            tokens = client.exchange_code(code, pkce.code_verifier, client_id)
    """

    def __init__(
        self,
        token_url: str,
        redirect_uri: str,
        timeout: float = 30.0,
        clock: Optional[Clock] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._token_url = token_url
        self._redirect_uri = redirect_uri
        self._timeout = timeout
        self._clock = clock or utcnow
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    @classmethod
    def from_settings(
        cls,
        settings: AuthSettings,
        clock: Optional[Clock] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> TokenExchangeClient:
        return cls(
            token_url=settings.token_url,
            redirect_uri=settings.redirect_uri,
            timeout=settings.http_timeout,
            clock=clock,
            transport=transport,
        )

    def __enter__(self) -> TokenExchangeClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------ #
    # Grants
    # ------------------------------------------------------------------ #

    def exchange_code(self, code: str, code_verifier: str, client_id: str) -> TokenSet:
        """Exchange an authorization code for a token set.

        Args:
            code: The authorization code from the redirect.
            code_verifier: The PKCE verifier proving possession.
            client_id: The public client identifier.

        Returns:
            The new :class:`~clipauth.models.TokenSet`.

        Raises:
            ExchangeFailed: On network errors, non-2xx responses, or a
                response without ``access_token``.
        """
        data = {
            "client_id": client_id,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._redirect_uri,
            "code_verifier": code_verifier,
        }
        try:
            response = self._post(data)
        except httpx.HTTPError as exc:
            raise ExchangeFailed(str(exc) or type(exc).__name__) from exc

        payload = _json_body(response)
        if response.is_error:
            message = _provider_message(payload, response)
            logger.error(
                "Token exchange failed with status %s: %s", response.status_code, message
            )
            raise ExchangeFailed(message)
        if payload is None or not payload.get("access_token"):
            raise ExchangeFailed("Token response missing 'access_token' field")

        logger.info("Authorization code exchanged for tokens")
        return self._token_set(payload)

    def refresh(self, refresh_token: str, client_id: str) -> TokenSet:
        """Obtain a new token set from a refresh token.

        The provider may omit a new refresh token; the returned set then has
        ``refresh_token=None`` and the caller keeps the previous one.

        Raises:
            RefreshRejected: The provider answered ``invalid_grant``.
            RefreshUnavailable: Any other failure.
        """
        data = {
            "client_id": client_id,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        try:
            response = self._post(data)
        except httpx.HTTPError as exc:
            raise RefreshUnavailable(f"Token refresh failed: {exc}") from exc

        payload = _json_body(response)
        if payload is not None and payload.get("error") == "invalid_grant":
            raise RefreshRejected(
                f"Refresh token rejected: {_provider_message(payload, response)}"
            )
        if response.is_error:
            raise RefreshUnavailable(
                f"Token refresh failed with status {response.status_code}: "
                f"{_provider_message(payload, response)}"
            )
        if payload is None or not payload.get("access_token"):
            raise RefreshUnavailable("Token refresh response missing 'access_token' field")

        logger.info(
            "Access token refreshed (new refresh token: %s)",
            "yes" if payload.get("refresh_token") else "no",
        )
        return self._token_set(payload)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=self._timeout,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
        return self._client

    def _post(self, data: dict[str, str]) -> httpx.Response:
        logger.debug("POST %s grant_type=%s", self._token_url, data["grant_type"])
        return self._http().post(self._token_url, data=data)

    def _token_set(self, payload: dict[str, Any]) -> TokenSet:
        expires_at = self._clock() + timedelta(seconds=_expires_in(payload)) - EXPIRY_SKEW
        return TokenSet(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or None,
            expires_at=expires_at,
        )
