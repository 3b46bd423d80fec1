"""First-booking celebration: a timed welcome message with a contact link."""

import logging
import time
from typing import Callable
from urllib.parse import quote

from .cache.local_cache import (
    FIRST_CREATED_KEY,
    FIRST_CREATION_TIME_KEY,
    FIRST_LINK_KEY,
    FIRST_SHOWN_KEY,
    LocalCache,
)
from .config import WelcomeConfig
from .records import Playlist
from .session import Session

logger = logging.getLogger(__name__)

WHATSAPP_SEND_URL = "https://api.whatsapp.com/send"


class CelebrationTracker:
    """Tracks the welcome message shown after a user's first booking."""

    def __init__(
        self,
        cache: LocalCache,
        config: WelcomeConfig,
        clock: Callable[[], float] = time.time,
    ):
        self._cache = cache
        self._config = config
        self._clock = clock
        self.visible_link: str | None = None

    def attach(self, session: Session) -> Callable[[], None]:
        return session.subscribe(self.refresh)

    def build_link(self, playlist: Playlist) -> str:
        """WhatsApp link pre-filled with the event details."""
        message = (
            self._config.message_template
            .replace("{date}", playlist.date)
            .replace("{location}", playlist.location)
            .replace("{brideZaffa}", playlist.bride_zaffa)
            .replace("{groomZaffa}", playlist.groom_zaffa)
        )
        text = quote(message, safe="")
        if self._config.whatsapp_number:
            return f"{WHATSAPP_SEND_URL}?phone={self._config.whatsapp_number}&text={text}"
        return f"{WHATSAPP_SEND_URL}?text={text}"

    def on_first_booking(self, playlist: Playlist) -> None:
        """Record the creation of a user's first booking."""
        if not self._config.enabled:
            return
        self._cache.set(FIRST_CREATION_TIME_KEY, int(self._clock() * 1000))
        self._cache.delete(FIRST_SHOWN_KEY)
        self._cache.set(FIRST_LINK_KEY, self.build_link(playlist))

    def on_first_booking_confirmed(self) -> None:
        if not self._config.enabled:
            return
        self._cache.set(FIRST_CREATED_KEY, True)

    def on_booking_edited(self, session: Session, playlist: Playlist) -> None:
        """Keep the link in step while the user edits their only booking."""
        if not self._config.enabled or not self._config.update_link_on_edit:
            return
        if session.is_admin:
            return
        if self._cache.get(FIRST_CREATION_TIME_KEY) is None:
            return
        if self._cache.get(FIRST_SHOWN_KEY) is True:
            return
        if len(session.playlists) != 1 or session.playlists[0].id != playlist.id:
            return

        self._cache.set(FIRST_LINK_KEY, self.build_link(playlist))
        self.refresh(session)

    def on_booking_deleted(self, session: Session, playlist_id: str) -> None:
        """Forget the celebration when the user deletes their last booking."""
        if not self._config.remove_on_last_delete or session.is_admin:
            return
        if len(session.playlists) == 1 and session.playlists[0].id == playlist_id:
            self.clear()

    def clear(self) -> None:
        self._cache.clear_celebration()
        self.visible_link = None

    def refresh(self, session: Session) -> str | None:
        """Decide whether the welcome message is visible right now.

        Returns:
            The contact link while the message should be shown, else None.
        """
        self.visible_link = None

        if not self._config.enabled:
            return None
        if session.is_admin and not self._config.show_for_admin:
            return None

        creation_time = self._cache.get(FIRST_CREATION_TIME_KEY)
        link = self._cache.get(FIRST_LINK_KEY)
        if (
            creation_time is None
            or not link
            or self._cache.get(FIRST_SHOWN_KEY) is True
            or self._cache.get(FIRST_CREATED_KEY) is not True
            or not session.playlists
        ):
            return None

        elapsed_ms = self._clock() * 1000 - int(creation_time)
        if elapsed_ms < self._config.duration_minutes * 60 * 1000:
            self.visible_link = link
            return link

        # Shown long enough, never show it again
        self._cache.set(FIRST_SHOWN_KEY, True)
        logger.debug("Welcome message expired")
        return None
