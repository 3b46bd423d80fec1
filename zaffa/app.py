"""Wiring of the booking components for a logged-in session."""

import logging
from dataclasses import dataclass

from .actions import PlaylistActions
from .cache import LocalCache
from .config import Config
from .presenter import Presenter
from .session import Session
from .sheet import SheetClient
from .sync import PollScheduler, SyncEngine
from .welcome import CelebrationTracker

logger = logging.getLogger(__name__)


@dataclass
class BookingApp:
    """Everything a front end needs to drive one session."""

    config: Config
    cache: LocalCache
    client: SheetClient
    session: Session
    presenter: Presenter
    celebration: CelebrationTracker
    engine: SyncEngine
    scheduler: PollScheduler
    actions: PlaylistActions

    async def close(self) -> None:
        await self.scheduler.stop()
        await self.client.close()


def build_session(config: Config, cache: LocalCache) -> Session | None:
    """Restore the cached identity as a session, or None when logged out."""
    return Session.from_cache(
        cache,
        grace_period=config.sync.grace_period_seconds,
        timezone_offset_hours=config.sync.timezone_offset_hours,
    )


def build_app(
    config: Config,
    cache: LocalCache,
    client: SheetClient,
    session: Session,
) -> BookingApp:
    """Connect presenter, celebration, sync and actions to ``session``.

    Listeners are attached in display order: the list renders before the
    welcome message is evaluated.
    """
    presenter = Presenter()
    presenter.attach(session)

    celebration = CelebrationTracker(cache, config.welcome)
    celebration.attach(session)

    engine = SyncEngine(
        session,
        client,
        min_sync_gap=config.sync.min_sync_gap_seconds,
        push_archive=config.sync.push_archive,
    )
    scheduler = PollScheduler(engine, interval_seconds=config.sync.interval_seconds)

    actions = PlaylistActions(
        session,
        client,
        config,
        presenter=presenter,
        scheduler=scheduler,
        engine=engine,
        celebration=celebration,
    )

    logger.debug(
        f"Built app for {session.username} "
        f"({'admin' if session.is_admin else 'user'})"
    )
    return BookingApp(
        config=config,
        cache=cache,
        client=client,
        session=session,
        presenter=presenter,
        celebration=celebration,
        engine=engine,
        scheduler=scheduler,
        actions=actions,
    )
