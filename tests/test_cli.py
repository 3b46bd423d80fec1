"""Tests for the command line entry point."""

import json
import logging
import pytest

from zaffa.__main__ import JSONFormatter, main
from zaffa.cache import LocalCache
from zaffa.records import Playlist


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    """Point the cache at a temporary database."""
    path = tmp_path / "cache.db"
    monkeypatch.setenv("ZAFFA_CACHE_DB_PATH", str(path))
    return path


def run_cli(monkeypatch, *argv):
    monkeypatch.setattr("sys.argv", ["zaffa", *argv])
    return main()


class TestJSONFormatter:
    """Tests for structured log output."""

    def test_format(self):
        record = logging.LogRecord(
            "zaffa.sync.engine", logging.INFO, __file__, 1, "Sync completed", None, None
        )

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["component"] == "zaffa.sync.engine"
        assert data["message"] == "Sync completed"


class TestCommands:
    """Tests for commands that need no network."""

    def test_no_command_prints_help(self, monkeypatch, db_path):
        assert run_cli(monkeypatch) == 1

    def test_logout(self, monkeypatch, db_path, capsys):
        cache = LocalCache(db_path)
        cache.set_identity("alice")
        cache.save_playlists("alice", [Playlist(id="1")])
        cache.close()

        assert run_cli(monkeypatch, "logout") == 0

        cache = LocalCache(db_path)
        assert cache.current_user is None
        assert cache.keys("cachedPlaylists_") == []
        cache.close()
        assert "Logged out" in capsys.readouterr().out

    def test_archive_json(self, monkeypatch, db_path, capsys):
        cache = LocalCache(db_path)
        cache.save_archive([Playlist(id="7", date="2024-01-01", location="Dubai")])
        cache.close()

        assert run_cli(monkeypatch, "archive", "--json") == 0

        data = json.loads(capsys.readouterr().out)
        assert data[0]["id"] == "7"

    def test_list_requires_login(self, monkeypatch, db_path, capsys):
        assert run_cli(monkeypatch, "list") == 1
        assert "Not logged in" in capsys.readouterr().err

    def test_list_cached(self, monkeypatch, db_path, capsys):
        cache = LocalCache(db_path)
        cache.set_identity("alice")
        cache.save_playlists("alice", [Playlist(id="1", date="2099-01-01", location="Ajman")])
        cache.close()

        assert run_cli(monkeypatch, "list") == 0

        out = capsys.readouterr().out
        assert "[1] 2099-01-01 - Ajman" in out
