"""Tests for access token and client version lookup."""

import json
import os
import sqlite3
import pytest
from unittest.mock import patch

from cursor_tab.credentials import (
    ACCESS_TOKEN_KEY,
    get_access_token,
    get_client_version,
    read_state_value,
)
from cursor_tab.errors import CredentialsError


@pytest.fixture
def state_db(tmp_path):
    """Create a state.vscdb with an ItemTable like Cursor's."""
    path = tmp_path / "state.vscdb"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE ItemTable (key TEXT UNIQUE ON CONFLICT REPLACE, value BLOB)")
    conn.execute("INSERT INTO ItemTable VALUES (?, ?)", (ACCESS_TOKEN_KEY, "db-token\n"))
    conn.execute("INSERT INTO ItemTable VALUES (?, ?)", ("telemetry.macMachineId", "abc"))
    conn.commit()
    conn.close()
    return path


class TestReadStateValue:

    def test_reads_value(self, state_db):
        assert read_state_value(state_db, ACCESS_TOKEN_KEY) == "db-token"

    def test_missing_key(self, state_db):
        assert read_state_value(state_db, "nope") is None

    def test_missing_db(self, tmp_path):
        with pytest.raises(CredentialsError, match="not found"):
            read_state_value(tmp_path / "missing.vscdb", ACCESS_TOKEN_KEY)

    def test_not_a_database(self, tmp_path):
        path = tmp_path / "garbage.vscdb"
        path.write_text("this is not sqlite")

        with pytest.raises(CredentialsError):
            read_state_value(path, ACCESS_TOKEN_KEY)


class TestGetAccessToken:

    def test_env_takes_precedence(self, state_db):
        env = {"CURSOR_ACCESS_TOKEN": "env-token", "CURSOR_STATE_DB": str(state_db)}
        with patch.dict(os.environ, env, clear=True):
            assert get_access_token() == "env-token"

    def test_reads_from_state_db(self, state_db):
        with patch.dict(os.environ, {"CURSOR_STATE_DB": str(state_db)}, clear=True):
            assert get_access_token() == "db-token"

    def test_logged_out(self, tmp_path):
        path = tmp_path / "state.vscdb"
        conn = sqlite3.connect(path)
        conn.execute("CREATE TABLE ItemTable (key TEXT, value BLOB)")
        conn.commit()
        conn.close()

        with patch.dict(os.environ, {"CURSOR_STATE_DB": str(path)}, clear=True):
            with pytest.raises(CredentialsError, match="No access token"):
                get_access_token()


class TestGetClientVersion:

    def test_env_override(self):
        with patch.dict(os.environ, {"CURSOR_CLIENT_VERSION": "1.2.3"}, clear=True):
            assert get_client_version() == "1.2.3"

    def test_reads_package_json(self, tmp_path):
        package_json = tmp_path / "package.json"
        package_json.write_text(json.dumps({"name": "cursor", "version": "0.48.7"}))

        with patch.dict(os.environ, {}, clear=True):
            assert get_client_version(package_json) == "0.48.7"

    def test_missing_package_json_falls_back(self, tmp_path):
        with patch.dict(os.environ, {}, clear=True):
            assert get_client_version(tmp_path / "missing.json") == "0.45.0"

    def test_package_json_without_version(self, tmp_path):
        package_json = tmp_path / "package.json"
        package_json.write_text("{}")

        with patch.dict(os.environ, {}, clear=True):
            assert get_client_version(package_json) == "0.45.0"
