"""Canonical Pydantic models shared across all clipauth modules.

This is the single source of truth for persisted data shapes. The models
fall into two groups:

**Configuration** -- serialised as JSON in the user's config directory:
    :class:`AuthSettings`.

**Session state** -- persisted through the key/value store:
    :class:`TokenSet` and :class:`RecentTarget`.

Short-lived values that are never persisted (PKCE parameters, callback
outcomes) are plain dataclasses living next to the code that produces them.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_CLIENT_ID = "8f2111cf-9921-4237-8e45-567dc93a4597"
"""Public client id registered for the application; no secret is attached."""

DEFAULT_AUTHORITY = "https://login.microsoftonline.com/common"
DEFAULT_SCOPE = "Notes.ReadWrite offline_access"


# --- Configuration ---


class AuthSettings(BaseModel):
    """Identity-provider and loopback settings.

    Loaded by :func:`~clipauth.config.load_settings` from ``config.json`` with
    environment overrides layered on top. The redirect address must match
    the one registered for the client at the provider, which is why the
    port is fixed rather than picked at random.

    Attributes:
        client_id: OAuth2 client identifier. An empty value falls back to
            :data:`DEFAULT_CLIENT_ID`.
        authority: Base URL of the provider's OAuth2 v2.0 endpoints.
        scope: Space-separated scopes requested at login.
        redirect_host: Loopback host name used in the redirect URI.
        redirect_port: Fixed loopback port the callback listener binds.
        callback_path: Path component of the redirect URI.
        callback_timeout: Seconds to wait for the browser redirect.
        http_timeout: Seconds before a token endpoint request is abandoned.
    """

    client_id: str = Field(default=DEFAULT_CLIENT_ID, description="OAuth2 client id")
    authority: str = Field(default=DEFAULT_AUTHORITY, description="Provider authority URL")
    scope: str = Field(default=DEFAULT_SCOPE, description="Requested scopes")
    redirect_host: str = Field(default="localhost", description="Loopback redirect host")
    redirect_port: int = Field(default=8080, ge=1, le=65535, description="Loopback redirect port")
    callback_path: str = Field(default="/callback", description="Redirect URI path")
    callback_timeout: float = Field(default=120.0, gt=0, description="Callback wait in seconds")
    http_timeout: float = Field(default=30.0, gt=0, description="Token request timeout in seconds")

    @field_validator("client_id", mode="before")
    @classmethod
    def _default_empty_client_id(cls, value: Optional[str]) -> str:
        return value or DEFAULT_CLIENT_ID

    @field_validator("authority")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.redirect_host}:{self.redirect_port}{self.callback_path}"

    @property
    def authorize_url(self) -> str:
        return f"{self.authority}/oauth2/v2.0/authorize"

    @property
    def token_url(self) -> str:
        return f"{self.authority}/oauth2/v2.0/token"


# --- Session state ---


class TokenSet(BaseModel):
    """The current access/refresh token pair and its effective expiry.

    ``expires_at`` already has the safety skew subtracted, so a token that
    is not expired by this clock still has at least the skew left on the
    server side.

    Attributes:
        access_token: Opaque bearer credential.
        refresh_token: Opaque long-lived credential. ``None`` means the
            session cannot be renewed without a new login.
        expires_at: Absolute UTC time after which the access token must be
            refreshed before use.
        client_id: The client the tokens were issued to. Refresh requests
            must be sent under the same client id.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: datetime
    client_id: Optional[str] = None

    @field_validator("expires_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def is_expired(self, now: datetime) -> bool:
        """Return ``True`` once *now* has reached :attr:`expires_at`."""
        return now >= self.expires_at


class RecentTarget(BaseModel):
    """Last destination the application sent content to.

    Owned by the surrounding application; it only shares the storage
    substrate with the token set.
    """

    notebook_id: str
    notebook_name: str
    section_id: str
    section_name: str
