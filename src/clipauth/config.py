"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for clipauth:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.clipauth/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Settings** -- a single :class:`~clipauth.models.AuthSettings` JSON file
  holding the client id, provider authority, scope and loopback settings.
* **Precedence resolution** -- :func:`load_settings` layers
  ``CLIPAUTH_*`` environment variables over the settings file over the
  built-in defaults.
* **Session state path** -- :func:`get_state_path` locates the key/value
  document used by :class:`~clipauth.auth.store.JsonFileStore`.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from clipauth.exceptions import ConfigError
from clipauth.models import AuthSettings

_APP_NAME = "clipauth"
_CONFIG_FILENAME = "config.json"
_STATE_FILENAME = "state.json"

ENV_OVERRIDES: dict[str, str] = {
    "CLIPAUTH_CLIENT_ID": "client_id",
    "CLIPAUTH_AUTHORITY": "authority",
    "CLIPAUTH_SCOPE": "scope",
    "CLIPAUTH_REDIRECT_PORT": "redirect_port",
    "CLIPAUTH_CALLBACK_TIMEOUT": "callback_timeout",
}
"""Environment variable -> :class:`~clipauth.models.AuthSettings` field."""


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/clipauth/`` (default ``~/.config/clipauth/``).
    On macOS/Windows: ``~/.clipauth/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_CONFIG_HOME", (".config",))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (session state, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/clipauth/`` (default ``~/.local/share/clipauth/``).
    On macOS/Windows: ``~/.clipauth/data/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_DATA_HOME", (".local", "share"))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_state_path() -> Path:
    """Path of the key/value document holding tokens and the recent target."""
    return get_data_dir() / _STATE_FILENAME


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    On success the temp file is renamed over *path*; on any failure the temp
    file is cleaned up.

    Args:
        path: Destination file.
        data: Full text content to write.
        mode: Optional permission bits applied to the temp file before any
            content is written (e.g. ``0o600`` for secrets).
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in finally
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Settings ---


def _settings_path() -> Path:
    """Path to the settings file."""
    return get_config_dir() / _CONFIG_FILENAME


def _read_settings_file() -> dict[str, Any]:
    path = _settings_path()
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid settings at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid settings at {path}: expected a JSON object")
    return data


def load_file_settings() -> AuthSettings:
    """Load settings from disk only, ignoring environment overrides.

    Returns:
        The deserialised :class:`~clipauth.models.AuthSettings`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    try:
        return AuthSettings.model_validate(_read_settings_file())
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings at {_settings_path()}: {exc}") from exc


def load_settings() -> AuthSettings:
    """Resolve the effective settings.

    Precedence (high to low):
        1. Environment variables (see :data:`ENV_OVERRIDES`)
        2. Settings file (``~/.config/clipauth/config.json``)
        3. Defaults

    Returns:
        The effective :class:`~clipauth.models.AuthSettings`.

    Raises:
        ConfigError: If the settings file is invalid or an environment
            override cannot be coerced to its field type.
    """
    data = _read_settings_file()
    for env_var, field_name in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            data[field_name] = value
    try:
        return AuthSettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings: {exc}") from exc


def save_settings(settings: AuthSettings) -> None:
    """Persist the settings atomically to disk.

    Args:
        settings: The settings to save.
    """
    data = settings.model_dump(mode="json")
    atomic_write(_settings_path(), json.dumps(data, indent=2) + "\n")
