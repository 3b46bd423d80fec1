"""Fetch-and-reconcile passes against the booking sheet."""

import logging

from ..records import decode_records
from ..session import Session
from ..sheet import SheetClient, SheetError
from .reconcile import ReconcileResult, reconcile, reconcile_offline

logger = logging.getLogger(__name__)


class SyncEngine:
    """Runs reconciliation passes for a session.

    Background failures are logged and swallowed: the previous state
    stays on screen until a later pass succeeds.
    """

    def __init__(
        self,
        session: Session,
        client: SheetClient,
        min_sync_gap: float = 1.0,
        push_archive: bool = False,
    ):
        """Initialize the sync engine.

        Args:
            session: Session to reconcile into.
            client: Sheet client used to fetch rows.
            min_sync_gap: Minimum seconds between two passes.
            push_archive: Send newly archived ids upstream.
        """
        self.session = session
        self.client = client
        self.min_sync_gap = min_sync_gap
        self.push_archive = push_archive

    def initialize(self) -> bool:
        """Show something before the first fetch completes.

        Prefers rows prefetched at login, then the cached current list.

        Returns:
            True if data was displayed.
        """
        session = self.session

        if session.prefetched is not None:
            rows, session.prefetched = session.prefetched, None
            reconcile_offline(session, decode_records(rows))
            logger.info("Initialized with prefetched data")
            return True

        cached = session.cache.load_playlists(session.cache_scope)
        if cached:
            session.playlists = cached
            session.notify_synced()
            logger.info(f"Initialized with {len(cached)} cached bookings")
            return True

        return False

    async def sync_once(self, force: bool = False) -> ReconcileResult | None:
        """Fetch every row and reconcile.

        Args:
            force: Ignore the pause flag and the minimum gap.

        Returns:
            ReconcileResult, or None if the pass was skipped or failed.
        """
        session = self.session

        if session.sync_paused and not force:
            logger.debug("Sync is paused due to an ongoing user action")
            return None
        if not session.username:
            return None

        now = session.now()
        last = session.last_sync_started
        if not force and last is not None and now - last < self.min_sync_gap:
            return None
        session.last_sync_started = now

        try:
            rows = await self.client.fetch_playlists()
        except SheetError as e:
            logger.warning(f"Error syncing data: {e}")
            return None

        # A mutation may have paused sync while we were waiting on the network
        if session.sync_paused and not force:
            logger.debug("Sync paused during fetch, discarding result")
            return None

        result = reconcile(session, decode_records(rows))

        if self.push_archive and result.archived:
            ids = [p.id for p in result.archived]
            try:
                await self.client.archive(ids)
            except SheetError as e:
                logger.warning(f"Failed to push archive of {len(ids)} bookings: {e}")

        logger.info(
            f"Sync completed - role={'admin' if session.is_admin else 'user'}, "
            f"current={len(result.current)}, archived={len(result.archived)}, "
            f"pruned={len(result.pruned_ids)}"
        )
        return result
