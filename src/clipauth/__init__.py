"""clipauth -- OAuth2 Authorization Code + PKCE login for desktop clients.

This package signs a desktop client in against an OAuth2 identity provider
without a client secret and keeps a refreshable token for the lifetime of
the client. The browser redirect is captured by a short-lived loopback HTTP
listener, the authorization code is exchanged for a token set, and the token
set is persisted to a small key/value store and refreshed before it expires.

Typical workflow::

    clipauth auth login      # open the browser and sign in
    clipauth auth token      # print a valid access token
    clipauth auth logout     # forget the stored tokens

Modules:
    app: Typer application and CLI entry point.
    auth: PKCE, callback listener, token exchange, storage, lifecycle.
    models: Pydantic models shared across the package.
    config: XDG-aware settings with atomic writes.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
