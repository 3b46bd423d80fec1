"""Per-login application session.

Holds everything the booking views share: the current list, the last full
fetch, the sync pause flag, optimistic-update bookkeeping and the
"data synced" listeners.
"""

import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable

from .cache.local_cache import LocalCache, cache_scope
from .records import Playlist, app_today, sort_by_date

logger = logging.getLogger(__name__)

SyncListener = Callable[["Session"], None]


@dataclass
class OptimisticMark:
    """The most recent optimistically applied record."""

    playlist_id: str
    at: float


@dataclass
class PendingAdd:
    """An optimistic add the server has not shown back yet."""

    playlist: Playlist
    started_at: float
    confirmed_at: float | None = None


class Session:
    """Explicit context for one logged-in identity."""

    def __init__(
        self,
        cache: LocalCache,
        username: str,
        is_admin: bool = False,
        grace_period: float = 5.0,
        timezone_offset_hours: int = 4,
        clock: Callable[[], float] = time.monotonic,
        today: Callable[[], date] | None = None,
    ):
        """Initialize the session.

        Args:
            cache: Durable cache backing this session.
            username: Logged-in identity.
            is_admin: Whether the identity has the admin role.
            grace_period: Seconds during which a local optimistic edit wins
                over the server copy of the same record.
            timezone_offset_hours: Fixed UTC offset used for "today".
            clock: Monotonic clock (injectable for tests).
            today: Override for the current date (injectable for tests).
        """
        self.cache = cache
        self.username = username
        self.is_admin = is_admin
        self.grace_period = grace_period
        self.timezone_offset_hours = timezone_offset_hours
        self._clock = clock
        self._today = today

        self.playlists: list[Playlist] = []
        self.sheet_data: list[Playlist] = []
        self.sync_paused = False
        self.last_sync_started: float | None = None
        self.prefetched: list[dict[str, Any]] | None = None

        self._last_optimistic: OptimisticMark | None = None
        self._pending_adds: dict[str, PendingAdd] = {}
        self._id_map: dict[str, str] = {}
        self._mutation_seq = 0
        self._latest_committed = 0
        self._listeners: list[SyncListener] = []

    @classmethod
    def from_cache(cls, cache: LocalCache, **kwargs: Any) -> "Session | None":
        """Restore the session of whoever is logged in, if anyone."""
        username = cache.current_user
        if not username:
            return None
        return cls(cache, username, is_admin=cache.is_admin, **kwargs)

    @property
    def cache_scope(self) -> str:
        return cache_scope(self.username, self.is_admin)

    def now(self) -> float:
        return self._clock()

    def today(self) -> date:
        if self._today is not None:
            return self._today()
        return app_today(self.timezone_offset_hours)

    # ==================== Notifications ====================

    def subscribe(self, listener: SyncListener) -> Callable[[], None]:
        """Register a "data synced" listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify_synced(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Sync listener failed: {e}", exc_info=True)

    # ==================== Current List ====================

    def find(self, playlist_id: str) -> Playlist | None:
        for playlist in self.playlists:
            if playlist.id == playlist_id:
                return playlist
        return None

    def find_in_sheet(self, playlist_id: str) -> Playlist | None:
        """Look a record up in the last fetch, then in the current list."""
        for playlist in self.sheet_data:
            if playlist.id == playlist_id:
                return playlist
        return self.find(playlist_id)

    def replace_in_sheet(self, playlist: Playlist) -> None:
        self.sheet_data = [
            playlist if p.id == playlist.id else p for p in self.sheet_data
        ]

    def remove_from_sheet(self, playlist_id: str) -> None:
        self.sheet_data = [p for p in self.sheet_data if p.id != playlist_id]

    def snapshot(self) -> list[Playlist]:
        """Deep copy of the current list, for rollback."""
        return [p.copy() for p in self.playlists]

    def persist(self) -> None:
        self.cache.save_playlists(self.cache_scope, self.playlists)

    def update_local_playlists(
        self,
        playlists: list[Playlist],
        touched: Playlist | None = None,
    ) -> None:
        """Replace the current list, persist it and notify listeners.

        Args:
            playlists: New current list (sorted here).
            touched: Record changed optimistically; starts its grace window.
        """
        self.playlists = sort_by_date(playlists)
        if touched is not None:
            self._last_optimistic = OptimisticMark(touched.id, self.now())
        self.persist()
        self.notify_synced()

    def recent_optimistic_id(self) -> str | None:
        """Id of the record still inside its grace window, if any."""
        mark = self._last_optimistic
        if mark and self.now() - mark.at < self.grace_period:
            return mark.playlist_id
        self._last_optimistic = None
        return None

    # ==================== Optimistic Adds ====================

    def resolve_id(self, playlist_id: str) -> str:
        """Map a temporary id to the server id once one is known."""
        return self._id_map.get(playlist_id, playlist_id)

    def track_add(self, playlist: Playlist) -> None:
        self._pending_adds[playlist.id] = PendingAdd(playlist.copy(), self.now())

    def confirm_add(self, temp_id: str, server_id: str | None = None) -> None:
        """Mark an add as accepted, switching to the server id if it differs."""
        pending = self._pending_adds.pop(temp_id, None)
        remapped = bool(server_id) and server_id != temp_id
        if remapped:
            self._id_map[temp_id] = server_id
            if self._last_optimistic and self._last_optimistic.playlist_id == temp_id:
                self._last_optimistic.playlist_id = server_id
            logger.debug(f"Mapped temporary id {temp_id} to {server_id}")
        if pending is not None:
            new_id = server_id or temp_id
            pending.playlist = pending.playlist.copy(id=new_id)
            pending.confirmed_at = self.now()
            self._pending_adds[new_id] = pending
        if remapped:
            self.update_local_playlists(
                [p.copy(id=server_id) if p.id == temp_id else p for p in self.playlists]
            )

    def discard_add(self, temp_id: str) -> None:
        self._pending_adds.pop(temp_id, None)

    def settle_pending(self, fetched_ids: set[str]) -> None:
        """Forget adds the server now shows, or whose grace window ran out."""
        now = self.now()
        for playlist_id, pending in list(self._pending_adds.items()):
            seen = playlist_id in fetched_ids
            expired = (
                pending.confirmed_at is not None
                and now - pending.confirmed_at >= self.grace_period
            )
            if seen or expired:
                del self._pending_adds[playlist_id]

    def pending_playlists(self) -> list[Playlist]:
        """Pending adds as currently shown in the local list."""
        shown = [self.find(playlist_id) for playlist_id in self._pending_adds]
        return [p for p in shown if p is not None]

    # ==================== Mutation Versions ====================

    def begin_mutation(self) -> int:
        self._mutation_seq += 1
        return self._mutation_seq

    def commit_mutation(self, version: int) -> None:
        self._latest_committed = max(self._latest_committed, version)

    def superseded(self, version: int) -> bool:
        """True if a newer mutation than ``version`` has succeeded."""
        return self._latest_committed > version
