"""Tests for the per-login session context."""

import pytest
from datetime import date
from unittest.mock import MagicMock

from zaffa.cache import LocalCache
from zaffa.records import Playlist
from zaffa.session import Session


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def cache():
    """Create an in-memory LocalCache."""
    cache = LocalCache(":memory:")
    cache.connect()
    yield cache
    cache.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session(cache, clock):
    """Create a user session with a fixed today."""
    return Session(
        cache,
        "alice",
        grace_period=5.0,
        clock=clock,
        today=lambda: date(2025, 6, 1),
    )


class TestSessionRestore:
    """Tests for restoring a session from the cache."""

    def test_from_cache_without_user(self, cache):
        assert Session.from_cache(cache) is None

    def test_from_cache_with_admin(self, cache):
        cache.set_identity("boss", is_admin=True)

        session = Session.from_cache(cache)

        assert session.username == "boss"
        assert session.is_admin is True
        assert session.cache_scope == "admin"


class TestNotifications:
    """Tests for the data synced listeners."""

    def test_update_notifies_and_persists(self, session, cache):
        listener = MagicMock()
        session.subscribe(listener)

        session.update_local_playlists([
            Playlist(id="b", date="2025-07-01"),
            Playlist(id="a", date="2025-06-10"),
        ])

        listener.assert_called_once_with(session)
        assert [p.id for p in session.playlists] == ["a", "b"]
        assert [p.id for p in cache.load_playlists("alice")] == ["a", "b"]

    def test_unsubscribe(self, session):
        listener = MagicMock()
        unsubscribe = session.subscribe(listener)

        unsubscribe()
        session.notify_synced()

        listener.assert_not_called()

    def test_failing_listener_does_not_stop_others(self, session):
        broken = MagicMock(side_effect=RuntimeError("boom"))
        healthy = MagicMock()
        session.subscribe(broken)
        session.subscribe(healthy)

        session.notify_synced()

        healthy.assert_called_once()


class TestGraceWindow:
    """Tests for the optimistic edit grace window."""

    def test_recent_within_window(self, session, clock):
        playlist = Playlist(id="1", date="2025-07-01")
        session.update_local_playlists([playlist], touched=playlist)

        clock.advance(4.9)

        assert session.recent_optimistic_id() == "1"

    def test_expires_after_window(self, session, clock):
        playlist = Playlist(id="1", date="2025-07-01")
        session.update_local_playlists([playlist], touched=playlist)

        clock.advance(5.0)

        assert session.recent_optimistic_id() is None


class TestPendingAdds:
    """Tests for optimistic add bookkeeping."""

    def test_confirm_maps_temp_id(self, session):
        playlist = Playlist(id="tmp", date="2025-07-01")
        session.track_add(playlist)
        session.update_local_playlists([playlist], touched=playlist)

        session.confirm_add("tmp", "srv")

        assert session.resolve_id("tmp") == "srv"
        assert session.find("srv") is not None
        assert session.find("tmp") is None
        assert session.recent_optimistic_id() == "srv"
        assert [p.id for p in session.pending_playlists()] == ["srv"]

    def test_confirm_persists_and_notifies_server_id(self, session, cache):
        playlist = Playlist(id="tmp", date="2025-07-01")
        session.track_add(playlist)
        session.update_local_playlists([playlist], touched=playlist)
        listener = MagicMock()
        session.subscribe(listener)

        session.confirm_add("tmp", "srv")

        listener.assert_called_once_with(session)
        assert [p.id for p in cache.load_playlists("alice")] == ["srv"]

    def test_confirm_without_server_id_keeps_list(self, session, cache):
        playlist = Playlist(id="tmp", date="2025-07-01")
        session.track_add(playlist)
        session.update_local_playlists([playlist])
        listener = MagicMock()
        session.subscribe(listener)

        session.confirm_add("tmp")

        listener.assert_not_called()
        assert [p.id for p in cache.load_playlists("alice")] == ["tmp"]

    def test_settle_when_fetched(self, session):
        playlist = Playlist(id="tmp", date="2025-07-01")
        session.track_add(playlist)
        session.update_local_playlists([playlist])

        session.settle_pending({"tmp"})

        assert session.pending_playlists() == []

    def test_unconfirmed_add_survives(self, session, clock):
        """Test an add still in flight is kept however long it takes."""
        playlist = Playlist(id="tmp", date="2025-07-01")
        session.track_add(playlist)
        session.update_local_playlists([playlist])

        clock.advance(60)
        session.settle_pending(set())

        assert [p.id for p in session.pending_playlists()] == ["tmp"]

    def test_confirmed_add_expires(self, session, clock):
        playlist = Playlist(id="tmp", date="2025-07-01")
        session.track_add(playlist)
        session.update_local_playlists([playlist])
        session.confirm_add("tmp")

        clock.advance(5)
        session.settle_pending(set())

        assert session.pending_playlists() == []

    def test_pending_reflects_local_edits(self, session):
        playlist = Playlist(id="tmp", date="2025-07-01", location="old")
        session.track_add(playlist)
        session.update_local_playlists([playlist.copy(location="new")])

        assert session.pending_playlists()[0].location == "new"


class TestMutationVersions:
    """Tests for versioned rollback bookkeeping."""

    def test_superseded_by_newer_success(self, session):
        first = session.begin_mutation()
        second = session.begin_mutation()

        session.commit_mutation(second)

        assert session.superseded(first) is True
        assert session.superseded(second) is False

    def test_not_superseded_by_older_success(self, session):
        first = session.begin_mutation()
        second = session.begin_mutation()

        session.commit_mutation(first)

        assert session.superseded(second) is False


class TestSheetData:
    """Tests for the last-fetch helpers."""

    def test_find_in_sheet_falls_back_to_current(self, session):
        session.sheet_data = [Playlist(id="1", location="sheet")]
        session.playlists = [Playlist(id="2", location="local")]

        assert session.find_in_sheet("1").location == "sheet"
        assert session.find_in_sheet("2").location == "local"
        assert session.find_in_sheet("3") is None

    def test_replace_and_remove(self, session):
        session.sheet_data = [Playlist(id="1"), Playlist(id="2")]

        session.replace_in_sheet(Playlist(id="1", location="new"))
        session.remove_from_sheet("2")

        assert session.sheet_data == [Playlist(id="1", location="new")]

    def test_snapshot_is_deep(self, session):
        session.playlists = [Playlist(id="1", songs=["a"])]

        snapshot = session.snapshot()
        session.playlists[0].songs.append("b")

        assert snapshot[0].songs == ["a"]
