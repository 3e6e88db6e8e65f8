"""Shared test fixtures for clipauth.

Provides isolated config/data directories, output state management, a
fixed clock, in-memory stores and a CLI runner. These fixtures are
discovered by pytest and available to all test modules.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

import pytest

from clipauth.auth.store import MemoryStore, TokenStore
from clipauth.config import ENV_OVERRIDES
from clipauth.models import AuthSettings
from clipauth.output import OutputFormat, OutputManager, reset_output, set_output

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches sys.stdout/sys.stderr at creation time; once
    CliRunner restores the real streams those references are stale. The
    CLI also installs a log handler on the ``clipauth`` logger; it is
    removed so later tests see records through ``caplog`` again.
    """
    yield
    reset_output()
    logger = logging.getLogger("clipauth")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and state to a temporary directory.

    Forces the XDG code path, points XDG_CONFIG_HOME and XDG_DATA_HOME at
    subdirectories of tmp_path, and clears every CLIPAUTH_* override.

    Returns:
        The tmp_path root directory.
    """
    monkeypatch.setattr("clipauth.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in ENV_OVERRIDES:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Auth fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> AuthSettings:
    """Settings pointing at a fake authority on a loopback redirect address."""
    return AuthSettings(
        client_id="test-client",
        authority="https://login.example.com/common",
        redirect_host="127.0.0.1",
        redirect_port=8080,
        callback_timeout=5.0,
    )


@pytest.fixture
def kv() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def token_store(kv: MemoryStore) -> TokenStore:
    return TokenStore(kv)


@pytest.fixture
def clock():
    """A mutable clock: call ``clock()`` for the time, set ``clock.now`` to move it."""

    class _Clock:
        now = NOW

        def __call__(self) -> datetime:
            return self.now

    return _Clock()


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    """Install a JSON-format OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.JSON)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
