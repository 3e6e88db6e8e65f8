"""Tests for the ``clipauth config`` command group."""

from __future__ import annotations

import json
from pathlib import Path

from clipauth.app import app
from clipauth.config import load_file_settings
from clipauth.models import AuthSettings


def test_show_effective_settings(cli_runner, isolated_config: Path, monkeypatch) -> None:
    monkeypatch.setenv("CLIPAUTH_REDIRECT_PORT", "9000")

    result = cli_runner.invoke(app, ["--quiet", "--json", "config", "show"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["redirect_port"] == 9000
    assert data["redirect_uri"] == "http://localhost:9000/callback"


def test_set_coerces_and_saves(cli_runner, isolated_config: Path) -> None:
    result = cli_runner.invoke(app, ["config", "set", "redirect_port", "8400"])

    assert result.exit_code == 0, result.output
    assert "Set redirect_port = 8400" in result.output
    assert load_file_settings().redirect_port == 8400


def test_set_empty_client_id_restores_default(cli_runner, isolated_config: Path) -> None:
    cli_runner.invoke(app, ["config", "set", "client_id", "custom"])
    result = cli_runner.invoke(app, ["config", "set", "client_id", ""])

    assert result.exit_code == 0, result.output
    assert load_file_settings().client_id == AuthSettings().client_id


def test_set_unknown_key(cli_runner, isolated_config: Path) -> None:
    result = cli_runner.invoke(app, ["config", "set", "nope", "1"])

    assert result.exit_code == 2
    assert "Unknown setting: nope" in result.output


def test_set_invalid_value(cli_runner, isolated_config: Path) -> None:
    result = cli_runner.invoke(app, ["config", "set", "redirect_port", "70000"])

    assert result.exit_code == 2
    assert load_file_settings().redirect_port == 8080


def test_reset_with_force(cli_runner, isolated_config: Path) -> None:
    cli_runner.invoke(app, ["config", "set", "scope", "Notes.Read"])

    result = cli_runner.invoke(app, ["--force", "config", "reset"])

    assert result.exit_code == 0, result.output
    assert load_file_settings() == AuthSettings()
