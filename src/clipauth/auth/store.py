"""Persistence of the token set (and the recent target) over a key/value substrate.

The host environment supplies a :class:`KeyValueStore`: anything with
``get``, ``set`` and ``clear`` over string keys. Two implementations ship
with the package:

* :class:`JsonFileStore` -- one JSON document under the data directory
  (typically ``~/.local/share/clipauth/state.json``), rewritten atomically
  with ``0o600`` permissions on every mutation so secrets are never
  world-readable, even momentarily.
* :class:`MemoryStore` -- a plain dict, for embedding and tests.

:class:`TokenStore` maps a :class:`~clipauth.models.TokenSet` onto four
keys and :class:`RecentTargetStore` maps a
:class:`~clipauth.models.RecentTarget` onto four more. Readers tolerate any
subset of keys being absent or malformed by reporting "nothing stored".

See Also:
    :class:`~clipauth.auth.manager.TokenLifecycleManager` -- the only
    writer of the token keys.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol

from clipauth.config import atomic_write, get_state_path
from clipauth.models import RecentTarget, TokenSet

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "accessToken"
REFRESH_TOKEN_KEY = "refreshToken"
TOKEN_EXPIRY_KEY = "tokenExpiry"
CLIENT_ID_KEY = "clientId"

TOKEN_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, TOKEN_EXPIRY_KEY, CLIENT_ID_KEY)

RECENT_TARGET_KEYS = {
    "notebook_id": "recentNotebookId",
    "notebook_name": "recentNotebookName",
    "section_id": "recentSectionId",
    "section_name": "recentSectionName",
}


class KeyValueStore(Protocol):
    """Durable key/value substrate supplied by the host environment.

    Single-key writes are assumed atomic; nothing more is required.
    """

    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def clear(self, key: str) -> None: ...


class MemoryStore:
    """In-process :class:`KeyValueStore` backed by a dict."""

    def __init__(self, initial: Optional[dict[str, Any]] = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Any:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def clear(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._data)


class JsonFileStore:
    """:class:`KeyValueStore` persisted as a single JSON object on disk.

    Every :meth:`set` and :meth:`clear` rewrites the whole document through
    :func:`~clipauth.config.atomic_write`, so a crash never leaves a
    half-written file behind. A missing or unreadable file reads as empty.

    Args:
        path: Location of the JSON document. Defaults to
            :func:`~clipauth.config.get_state_path`.

    Example::

        store = JsonFileStore()
        store.set("accessToken", "tok123")
        assert store.get("accessToken") == "tok123"
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path or get_state_path()
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        """The filesystem path of the backing document."""
        return self._path

    def get(self, key: str) -> Any:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def clear(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)

    def _read(self) -> dict[str, Any]:
        if not self._path.is_file():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            logger.warning("Ignoring unreadable state file %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        atomic_write(self._path, json.dumps(data, indent=2) + "\n", mode=0o600)


class TokenStore:
    """Load, save and clear the current :class:`~clipauth.models.TokenSet`.

    The expiry is stored as epoch milliseconds under ``tokenExpiry``; the
    client the tokens were issued to is kept under ``clientId``.
    """

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    def load(self) -> Optional[TokenSet]:
        """Return the stored token set, or ``None`` if any required key is unusable."""
        access_token = self._kv.get(ACCESS_TOKEN_KEY)
        expiry_ms = self._kv.get(TOKEN_EXPIRY_KEY)
        if not isinstance(access_token, str) or not access_token:
            return None
        if isinstance(expiry_ms, bool) or not isinstance(expiry_ms, (int, float)):
            return None

        try:
            expires_at = datetime.fromtimestamp(expiry_ms / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
        return TokenSet(
            access_token=access_token,
            refresh_token=self._optional_str(REFRESH_TOKEN_KEY),
            expires_at=expires_at,
            client_id=self._optional_str(CLIENT_ID_KEY),
        )

    def save(self, tokens: TokenSet) -> None:
        """Write the token keys; absent optional values are cleared."""
        self._kv.set(ACCESS_TOKEN_KEY, tokens.access_token)
        self._set_or_clear(REFRESH_TOKEN_KEY, tokens.refresh_token)
        self._kv.set(TOKEN_EXPIRY_KEY, round(tokens.expires_at.timestamp() * 1000))
        self._set_or_clear(CLIENT_ID_KEY, tokens.client_id)

    def clear(self) -> None:
        """Remove all token keys. A no-op when nothing is stored."""
        for key in TOKEN_KEYS:
            self._kv.clear(key)

    def _optional_str(self, key: str) -> Optional[str]:
        value = self._kv.get(key)
        return value if isinstance(value, str) and value else None

    def _set_or_clear(self, key: str, value: Optional[str]) -> None:
        if value:
            self._kv.set(key, value)
        else:
            self._kv.clear(key)


class RecentTargetStore:
    """Persist the application's last-used destination next to the tokens."""

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    def load(self) -> Optional[RecentTarget]:
        """Return the recent target only when all four keys hold non-empty strings."""
        values = {field: self._kv.get(key) for field, key in RECENT_TARGET_KEYS.items()}
        if not all(isinstance(v, str) and v for v in values.values()):
            return None
        return RecentTarget(**values)

    def save(self, target: RecentTarget) -> None:
        for field, key in RECENT_TARGET_KEYS.items():
            self._kv.set(key, getattr(target, field))

    def clear(self) -> None:
        for key in RECENT_TARGET_KEYS.values():
            self._kv.clear(key)
