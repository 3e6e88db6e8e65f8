"""Auth commands -- sign in, sign out and inspect the session.

Provides the ``clipauth auth`` sub-command group:

* ``login`` -- run the browser-based Authorization Code + PKCE flow.
* ``logout`` -- forget the stored token set.
* ``status`` -- show whether a session exists and when it expires.
* ``token`` -- print a valid access token to stdout, refreshing if needed.
* ``clear`` -- drop the token set and the recently used target.

Library errors are reported on stderr and turned into the matching exit
code (see :mod:`clipauth.exit_codes`).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import NoReturn, Optional

import typer

from clipauth.auth import (
    JsonFileStore,
    RecentTargetStore,
    TokenStore,
    create_default_manager,
)
from clipauth.exceptions import (
    BrowserOpenFailed,
    ClipauthError,
    NotAuthenticated,
    SessionExpired,
)
from clipauth.output import error, info, print_data, print_record, success, suggest

auth_app = typer.Typer(no_args_is_help=True)


def _fail(exc: ClipauthError) -> NoReturn:
    error(str(exc))
    if isinstance(exc, (NotAuthenticated, SessionExpired)):
        suggest("Sign in with: clipauth auth login")
    elif isinstance(exc, BrowserOpenFailed):
        suggest("Retry with --no-browser and open the printed URL yourself.")
    raise typer.Exit(code=exc.exit_code)


def _print_url(url: str) -> bool:
    info("Open this URL in a browser to sign in:")
    print_data(url)
    return True


@auth_app.command("login")
def auth_login(
    client_id: Optional[str] = typer.Option(
        None, "--client-id", help="Client id to use instead of the configured one."
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the sign-in URL instead of opening a browser."
    ),
) -> None:
    """Sign in through the browser.

    Binds the loopback redirect listener, opens the provider's sign-in page
    and waits for the redirect. The resulting tokens are stored in the
    state file.

    Example::

        clipauth auth login
        clipauth auth login --no-browser
    """
    try:
        with create_default_manager() as manager:
            info("Waiting for sign-in to complete in the browser...")
            manager.login(
                client_id=client_id,
                browser_opener=_print_url if no_browser else None,
            )
            tokens = manager.token_set
    except ClipauthError as exc:
        _fail(exc)

    success("Signed in.")
    if tokens is not None:
        info(f"Access token valid until {tokens.expires_at.isoformat()}")


@auth_app.command("logout")
def auth_logout() -> None:
    """Sign out by forgetting the stored tokens. Safe to repeat."""
    try:
        with create_default_manager() as manager:
            manager.logout()
    except ClipauthError as exc:
        _fail(exc)
    success("Signed out.")


@auth_app.command("status")
def auth_status() -> None:
    """Show the stored session without contacting the provider.

    Example::

        clipauth auth status
        clipauth --json auth status
    """
    try:
        with create_default_manager() as manager:
            tokens = manager.token_set
    except ClipauthError as exc:
        _fail(exc)

    if tokens is None:
        print_record({"signed_in": False}, title="Session")
        suggest("Sign in with: clipauth auth login")
        return

    print_record(
        {
            "signed_in": True,
            "expires_at": tokens.expires_at.isoformat(),
            "expired": tokens.is_expired(datetime.now(timezone.utc)),
            "refreshable": tokens.refresh_token is not None,
        },
        title="Session",
    )


@auth_app.command("token")
def auth_token() -> None:
    """Print a valid access token to stdout, refreshing it if it has expired.

    Example::

        curl -H "Authorization: Bearer $(clipauth auth token)" ...
    """
    try:
        with create_default_manager() as manager:
            token = manager.get_valid_access_token()
    except ClipauthError as exc:
        _fail(exc)
    print_data(token)


@auth_app.command("clear")
def auth_clear(ctx: typer.Context) -> None:
    """Clear the stored tokens and the recently used target.

    Asks for confirmation unless ``--force`` is active.
    """
    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Clear stored tokens and the recent target?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    kv = JsonFileStore()
    TokenStore(kv).clear()
    RecentTargetStore(kv).clear()
    success("Stored tokens and recent target cleared.")
