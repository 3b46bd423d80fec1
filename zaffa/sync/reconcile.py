"""Merge a fresh fetch with local state.

Role scoping, grace-window protection of optimistic edits, the
current/archive split by event date, and archive maintenance.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

from ..records import Playlist, sort_by_date
from ..session import Session

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation pass."""

    current: list[Playlist]
    archived: list[Playlist] = field(default_factory=list)  # newly archived
    pruned_ids: list[str] = field(default_factory=list)
    fetched_count: int = 0


def scope_by_role(
    records: Iterable[Playlist], username: str, is_admin: bool
) -> list[Playlist]:
    """Admin sees every owned record; users see only their own."""
    if is_admin:
        return [r for r in records if r.username]
    return [r for r in records if r.username == username]


def apply_grace_window(
    records: list[Playlist], local: Playlist | None
) -> list[Playlist]:
    """Let a just-edited local record win over the server copy of it."""
    if local is None:
        return records
    return [local if r.id == local.id else r for r in records]


def split_by_date(
    records: Iterable[Playlist], today: date
) -> tuple[list[Playlist], list[Playlist]]:
    """Split into (current, past). Undated records land in neither."""
    current: list[Playlist] = []
    past: list[Playlist] = []
    for record in records:
        event_date = record.event_date
        if event_date is None:
            continue
        if event_date < today:
            past.append(record)
        else:
            current.append(record)
    return current, past


def dedupe_by_id(records: Iterable[Playlist]) -> list[Playlist]:
    """Keep one record per id; the last occurrence wins."""
    by_id: dict[str, Playlist] = {}
    for record in records:
        by_id.pop(record.id, None)
        by_id[record.id] = record
    return list(by_id.values())


def merge_archive(
    archive: list[Playlist],
    to_archive: list[Playlist],
    fetched_ids: set[str],
    current_ids: set[str],
) -> tuple[list[Playlist], list[Playlist], list[str]]:
    """Fold past records into the archive and prune vanished ones.

    Args:
        archive: Archive as stored.
        to_archive: Past records from this fetch.
        fetched_ids: Every id in the full fetch; others were deleted upstream.
        current_ids: Ids in the current set, which must not stay archived.

    Returns:
        Tuple of (new archive, newly added records, pruned ids).
    """
    kept: list[Playlist] = []
    pruned: list[str] = []
    seen: set[str] = set()
    for record in archive:
        if record.id in seen:
            continue
        if record.id not in fetched_ids or record.id in current_ids:
            pruned.append(record.id)
            continue
        seen.add(record.id)
        kept.append(record)

    added = []
    for record in to_archive:
        if record.id not in seen:
            seen.add(record.id)
            added.append(record)

    return kept + added, added, pruned


def reconcile(session: Session, records: list[Playlist]) -> ReconcileResult:
    """Apply a full fetch to the session.

    Updates ``sheet_data``, the current list, the cached list and (for
    non-admin identities) the archive, then notifies listeners.
    """
    today = session.today()
    session.sheet_data = list(records)
    fetched_ids = {r.id for r in records}

    scoped = scope_by_role(records, session.username, session.is_admin)

    recent_id = session.recent_optimistic_id()
    local = session.find(recent_id) if recent_id else None
    scoped = apply_grace_window(scoped, local)

    session.settle_pending(fetched_ids)
    scoped.extend(session.pending_playlists())

    current, past = split_by_date(dedupe_by_id(scoped), today)
    current = sort_by_date(current)
    result = ReconcileResult(current=current, fetched_count=len(records))

    # Admin never archives, past records simply drop out of view
    if not session.is_admin:
        archive = session.cache.load_archive()
        past = [r for r in past if r.id in fetched_ids]
        merged, added, pruned = merge_archive(
            archive, past, fetched_ids, {r.id for r in current}
        )
        if added or pruned:
            session.cache.save_archive(merged)
        result.archived = added
        result.pruned_ids = pruned

    session.update_local_playlists(current)
    return result


def reconcile_offline(session: Session, records: list[Playlist]) -> list[Playlist]:
    """Render already-fetched rows without touching the archive.

    Used for the first paint from data prefetched at login.
    """
    session.sheet_data = list(records)
    scoped = scope_by_role(records, session.username, session.is_admin)
    current, _ = split_by_date(dedupe_by_id(scoped), session.today())
    session.update_local_playlists(current)
    return session.playlists
