"""Presentation of the booking list.

Tracks what was last rendered so each update touches only the cards that
changed, and collects user-facing alerts.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable

from .records import Playlist
from .session import Session

logger = logging.getLogger(__name__)


@dataclass
class RenderDiff:
    """Cards to add, update in place or remove, and the final order."""

    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    order: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated or self.removed)


class Presenter:
    """Keeps a rendered snapshot of the current list."""

    def __init__(self, max_alerts: int = 50):
        self._rendered: dict[str, dict[str, Any]] = {}
        self._order: list[str] = []
        self._alerts: deque[str] = deque(maxlen=max_alerts)
        self.last_diff = RenderDiff()

    def attach(self, session: Session) -> Callable[[], None]:
        """Re-render whenever the session reports synced data."""
        return session.subscribe(self.on_synced)

    def on_synced(self, session: Session) -> None:
        self.render(session.playlists)

    def render(self, playlists: list[Playlist]) -> RenderDiff:
        """Diff ``playlists`` against the previous render and adopt them."""
        new_cards = {p.id: p.to_dict() for p in playlists}
        diff = RenderDiff(order=[p.id for p in playlists])

        for playlist_id in self._order:
            if playlist_id not in new_cards:
                diff.removed.append(playlist_id)

        for playlist_id, card in new_cards.items():
            previous = self._rendered.get(playlist_id)
            if previous is None:
                diff.added.append(playlist_id)
            elif previous != card:
                diff.updated.append(playlist_id)

        self._rendered = new_cards
        self._order = diff.order
        self.last_diff = diff

        if diff.changed:
            logger.debug(
                f"Render: +{len(diff.added)} ~{len(diff.updated)} -{len(diff.removed)}"
            )
        return diff

    @property
    def cards(self) -> list[dict[str, Any]]:
        """Rendered cards in display order."""
        return [self._rendered[playlist_id] for playlist_id in self._order]

    def show_alert(self, message: str) -> None:
        logger.info(f"Alert: {message}")
        self._alerts.append(message)

    def drain_alerts(self) -> list[str]:
        alerts = list(self._alerts)
        self._alerts.clear()
        return alerts
