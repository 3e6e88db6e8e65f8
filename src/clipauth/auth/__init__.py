"""OAuth2 Authorization Code + PKCE sign-in for a desktop client.

The main entry points are:

- :class:`TokenLifecycleManager` -- runs the interactive login and hands out
  valid access tokens, refreshing them when they expire.
- :func:`create_default_manager` -- factory that returns a manager over the
  on-disk state file and the effective settings.
- :class:`BearerAuth` -- ``httpx.Auth`` adapter for resource-API clients.
- :class:`TokenStore` / :class:`RecentTargetStore` -- persistence over any
  :class:`KeyValueStore` (:class:`JsonFileStore`, :class:`MemoryStore`).

Typical usage::

    from clipauth.auth import BearerAuth, create_default_manager

    manager = create_default_manager()
    manager.login()
    client = httpx.Client(auth=BearerAuth(manager))
"""

from clipauth.auth.bearer import BearerAuth
from clipauth.auth.browser import BrowserOpener, open_in_browser
from clipauth.auth.callback import CallbackListener, ListenerState
from clipauth.auth.exchange import TokenExchangeClient, build_authorization_url
from clipauth.auth.manager import TokenLifecycleManager, create_default_manager
from clipauth.auth.pkce import PkceParameters, generate_pkce
from clipauth.auth.store import (
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
    RecentTargetStore,
    TokenStore,
)

__all__ = [
    "BearerAuth",
    "BrowserOpener",
    "CallbackListener",
    "JsonFileStore",
    "KeyValueStore",
    "ListenerState",
    "MemoryStore",
    "PkceParameters",
    "RecentTargetStore",
    "TokenExchangeClient",
    "TokenLifecycleManager",
    "TokenStore",
    "build_authorization_url",
    "create_default_manager",
    "generate_pkce",
    "open_in_browser",
]
