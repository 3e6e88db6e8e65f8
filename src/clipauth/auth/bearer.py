"""``httpx`` authentication adapter backed by a :class:`TokenLifecycleManager`.

Attach it to the client that talks to the resource API::

    client = httpx.Client(base_url=API_URL, auth=BearerAuth(manager))

Every request is sent with ``Authorization: Bearer <token>`` from
:meth:`~clipauth.auth.manager.TokenLifecycleManager.get_valid_access_token`.
A ``401`` response clears the session; the response itself is returned to
the caller unchanged and nothing is retried.
"""

from __future__ import annotations

import logging
from typing import Generator

import httpx

from clipauth.auth.manager import TokenLifecycleManager

logger = logging.getLogger(__name__)


class BearerAuth(httpx.Auth):
    """Injects the managed access token and reacts to 401 responses.

    Token retrieval may block on a refresh request, so this adapter is meant
    for synchronous clients.
    """

    def __init__(self, manager: TokenLifecycleManager) -> None:
        self._manager = manager

    def auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        token = self._manager.get_valid_access_token()
        request.headers["Authorization"] = f"Bearer {token}"
        response = yield request
        if response.status_code == 401:
            logger.debug("401 from %s %s", request.method, request.url)
            self._manager.handle_unauthorized_response()
