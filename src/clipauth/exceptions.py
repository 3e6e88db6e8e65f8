"""Exception hierarchy for clipauth.

All exceptions inherit from :class:`ClipauthError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`clipauth.exit_codes`.
The top-level error handler in :func:`clipauth.app.main` catches
``ClipauthError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    ClipauthError (exit 1)
    +-- ConfigError                         (exit 1)
    +-- AuthError                           (exit 3)
    |   +-- LoginFailed
    |   |   +-- BrowserOpenFailed
    |   |   +-- ListenerBindFailed
    |   |   +-- CallbackTimedOut
    |   |   +-- ProviderDeniedAuthorization
    |   |   +-- ExchangeFailed
    |   +-- RefreshRejected
    |   +-- NotAuthenticated
    |   +-- SessionExpired
    +-- RefreshUnavailable                  (exit 6)

Every step of an interactive login raises a :class:`LoginFailed` subclass,
so callers may catch the whole family or a single cause.
:class:`RefreshRejected` and :class:`RefreshUnavailable` sit on
different branches: the first proves the refresh token is dead, the second
says nothing about the credential at all.
"""

from __future__ import annotations

from typing import Optional

from clipauth.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
)


class ClipauthError(Exception):
    """Base exception for all clipauth errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`clipauth.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(ClipauthError):
    """Raised for configuration problems (invalid JSON, bad values, empty client id)."""

    exit_code = EXIT_GENERIC_FAILURE


class AuthError(ClipauthError):
    """Raised when signing in fails or no usable session exists."""

    exit_code = EXIT_AUTH_FAILURE


# --- Interactive login ---


class LoginFailed(AuthError):
    """An interactive login attempt was aborted.

    Raised directly for failures that have no more specific cause (for
    example a second login started while one is already in flight), and
    used as the base class for every login sub-step failure.

    Attributes:
        reason: Human-readable description of the first failing step.
    """

    @property
    def reason(self) -> str:
        return str(self)


class BrowserOpenFailed(LoginFailed):
    """The browser opener reported that no browser could be launched."""


class ListenerBindFailed(LoginFailed):
    """The loopback callback listener could not bind its port."""


class CallbackTimedOut(LoginFailed):
    """No valid redirect reached the callback listener before the deadline."""


class ProviderDeniedAuthorization(LoginFailed):
    """The identity provider redirected back with an ``error`` parameter.

    Args:
        error: The OAuth2 ``error`` code (e.g. ``access_denied``).
        description: The optional ``error_description`` text.
    """

    def __init__(self, error: str, description: Optional[str] = None):
        self.error = error
        self.description = description
        detail = description or error
        super().__init__(f"Authorization was denied by the provider: {detail}")


class ExchangeFailed(LoginFailed):
    """The token endpoint refused to exchange the authorization code.

    Args:
        provider_message: The provider's ``error_description`` (or the best
            available substitute) explaining the refusal.
    """

    def __init__(self, provider_message: str):
        self.provider_message = provider_message
        super().__init__(f"Token exchange failed: {provider_message}")


# --- Token refresh ---


class RefreshRejected(AuthError):
    """The provider answered ``invalid_grant``: the refresh token is dead."""


class RefreshUnavailable(ClipauthError):
    """A refresh attempt failed for a reason other than ``invalid_grant``.

    Network errors, timeouts, 5xx responses and malformed bodies all land
    here. None of them proves the stored credential is unusable.
    """

    exit_code = EXIT_CONNECTION_ERROR


# --- Steady-state token retrieval ---


class NotAuthenticated(AuthError):
    """No token set is stored; the caller is expected to run a login."""


class SessionExpired(AuthError):
    """The stored session can no longer be refreshed and has been cleared."""
