"""Tests for the ``clipauth target`` command group."""

from __future__ import annotations

import json
from pathlib import Path

from clipauth.app import app
from clipauth.auth.store import JsonFileStore, RecentTargetStore


def test_set_then_show(cli_runner, isolated_config: Path) -> None:
    result = cli_runner.invoke(app, ["target", "set", "nb-1", "Work", "sec-1", "Clippings"])
    assert result.exit_code == 0, result.output
    assert "Work / Clippings" in result.output

    shown = cli_runner.invoke(app, ["--quiet", "--json", "target", "show"])
    assert json.loads(shown.output) == {
        "notebook_id": "nb-1",
        "notebook_name": "Work",
        "section_id": "sec-1",
        "section_name": "Clippings",
    }


def test_show_when_empty(cli_runner, isolated_config: Path) -> None:
    result = cli_runner.invoke(app, ["target", "show"])
    assert result.exit_code == 0
    assert "No recent target stored." in result.output


def test_set_rejects_blank_value(cli_runner, isolated_config: Path) -> None:
    result = cli_runner.invoke(app, ["target", "set", "nb-1", " ", "sec-1", "Clippings"])
    assert result.exit_code == 2
    assert RecentTargetStore(JsonFileStore()).load() is None


def test_clear(cli_runner, isolated_config: Path) -> None:
    cli_runner.invoke(app, ["target", "set", "nb-1", "Work", "sec-1", "Clippings"])

    result = cli_runner.invoke(app, ["target", "clear"])

    assert result.exit_code == 0
    assert RecentTargetStore(JsonFileStore()).load() is None
