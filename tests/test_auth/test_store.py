"""Tests for the key/value stores and the token/recent-target mappings."""

from __future__ import annotations

import json
import os
import stat
from datetime import datetime, timezone
from pathlib import Path

import pytest

from clipauth.auth.store import JsonFileStore, MemoryStore, RecentTargetStore, TokenStore
from clipauth.models import RecentTarget, TokenSet

EXPIRES = datetime(2026, 3, 1, 12, 55, tzinfo=timezone.utc)


@pytest.fixture()
def file_store(tmp_path: Path) -> JsonFileStore:
    return JsonFileStore(tmp_path / "state.json")


class TestJsonFileStore:
    def test_missing_file_reads_empty(self, file_store: JsonFileStore) -> None:
        assert file_store.get("accessToken") is None

    def test_set_get_clear(self, file_store: JsonFileStore) -> None:
        file_store.set("accessToken", "tok")
        assert file_store.get("accessToken") == "tok"
        file_store.clear("accessToken")
        assert file_store.get("accessToken") is None

    def test_persists_across_instances(self, file_store: JsonFileStore) -> None:
        file_store.set("tokenExpiry", 1234)
        assert JsonFileStore(file_store.path).get("tokenExpiry") == 1234

    def test_file_permissions(self, file_store: JsonFileStore) -> None:
        file_store.set("accessToken", "secret")
        mode = stat.S_IMODE(os.stat(file_store.path).st_mode)
        assert mode == 0o600

    def test_no_temp_files_left(self, file_store: JsonFileStore) -> None:
        file_store.set("a", 1)
        file_store.set("b", 2)
        assert [p.name for p in file_store.path.parent.iterdir()] == ["state.json"]

    def test_corrupt_file_reads_empty(self, file_store: JsonFileStore) -> None:
        file_store.path.write_text("{not json")
        assert file_store.get("accessToken") is None
        file_store.set("accessToken", "tok")
        assert json.loads(file_store.path.read_text()) == {"accessToken": "tok"}

    def test_non_object_reads_empty(self, file_store: JsonFileStore) -> None:
        file_store.path.write_text("[1, 2]")
        assert file_store.get("accessToken") is None

    def test_clear_missing_key_does_not_create_file(self, file_store: JsonFileStore) -> None:
        file_store.clear("accessToken")
        assert not file_store.path.exists()

    def test_default_path_under_data_dir(self, isolated_config: Path) -> None:
        store = JsonFileStore()
        assert store.path == isolated_config / "data" / "clipauth" / "state.json"


class TestTokenStore:
    def test_save_uses_epoch_millis(self) -> None:
        kv = MemoryStore()
        TokenStore(kv).save(TokenSet(access_token="A1", refresh_token="R1", expires_at=EXPIRES))

        assert kv.snapshot() == {
            "accessToken": "A1",
            "refreshToken": "R1",
            "tokenExpiry": int(EXPIRES.timestamp() * 1000),
        }

    def test_load_round_trips(self) -> None:
        store = TokenStore(MemoryStore())
        tokens = TokenSet(access_token="A1", refresh_token="R1", expires_at=EXPIRES)
        store.save(tokens)
        assert store.load() == tokens

    def test_client_id_round_trips_and_clears(self) -> None:
        kv = MemoryStore()
        store = TokenStore(kv)
        tokens = TokenSet(access_token="A1", expires_at=EXPIRES, client_id="other-client")

        store.save(tokens)
        assert kv.get("clientId") == "other-client"
        assert store.load() == tokens

        store.clear()
        assert kv.snapshot() == {}

    def test_save_without_refresh_token_removes_old_one(self) -> None:
        kv = MemoryStore({"refreshToken": "old"})
        TokenStore(kv).save(TokenSet(access_token="A1", expires_at=EXPIRES))
        assert "refreshToken" not in kv.snapshot()

    def test_empty_store_loads_none(self) -> None:
        assert TokenStore(MemoryStore()).load() is None

    @pytest.mark.parametrize(
        "data",
        [
            {"tokenExpiry": 1},
            {"accessToken": "A1"},
            {"accessToken": "", "tokenExpiry": 1},
            {"accessToken": "A1", "tokenExpiry": "soon"},
            {"accessToken": "A1", "tokenExpiry": True},
            {"accessToken": None, "refreshToken": None, "tokenExpiry": 0},
        ],
    )
    def test_partial_or_malformed_loads_none(self, data: dict) -> None:
        assert TokenStore(MemoryStore(data)).load() is None

    def test_blank_refresh_token_loads_as_none(self) -> None:
        kv = MemoryStore({"accessToken": "A1", "refreshToken": "", "tokenExpiry": 0})
        tokens = TokenStore(kv).load()
        assert tokens is not None
        assert tokens.refresh_token is None

    def test_clear_is_idempotent(self) -> None:
        kv = MemoryStore()
        store = TokenStore(kv)
        store.save(TokenSet(access_token="A1", refresh_token="R1", expires_at=EXPIRES))
        store.clear()
        store.clear()
        assert kv.snapshot() == {}
        assert store.load() is None

    def test_clear_leaves_other_keys(self) -> None:
        kv = MemoryStore({"recentNotebookId": "nb"})
        TokenStore(kv).clear()
        assert kv.snapshot() == {"recentNotebookId": "nb"}

    def test_works_over_json_file(self, file_store: JsonFileStore) -> None:
        tokens = TokenSet(access_token="A1", refresh_token="R1", expires_at=EXPIRES)
        TokenStore(file_store).save(tokens)
        assert TokenStore(JsonFileStore(file_store.path)).load() == tokens


class TestRecentTargetStore:
    TARGET = RecentTarget(
        notebook_id="nb-1",
        notebook_name="Work",
        section_id="sec-1",
        section_name="Clippings",
    )

    def test_round_trip(self) -> None:
        kv = MemoryStore()
        RecentTargetStore(kv).save(self.TARGET)
        assert kv.snapshot() == {
            "recentNotebookId": "nb-1",
            "recentNotebookName": "Work",
            "recentSectionId": "sec-1",
            "recentSectionName": "Clippings",
        }
        assert RecentTargetStore(kv).load() == self.TARGET

    def test_requires_all_four_keys(self) -> None:
        kv = MemoryStore()
        store = RecentTargetStore(kv)
        store.save(self.TARGET)
        kv.clear("recentSectionName")
        assert store.load() is None

    def test_clear(self) -> None:
        kv = MemoryStore({"accessToken": "A1"})
        store = RecentTargetStore(kv)
        store.save(self.TARGET)
        store.clear()
        assert store.load() is None
        assert kv.snapshot() == {"accessToken": "A1"}
