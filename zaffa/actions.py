"""User actions on bookings: add, edit, delete.

Every action is optimistic: the local list changes first, the request goes
out second, and a failure restores the previous list and raises an alert.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum

from .config import Config
from .presenter import Presenter
from .records import Playlist, changed_fields, parse_event_date
from .session import Session
from .sheet import SheetClient, SheetError
from .sync import PollScheduler, SyncEngine
from .welcome import CelebrationTracker

logger = logging.getLogger(__name__)

MSG_DATE_REQUIRED = "Please choose the event date."
MSG_PAST_DATE = "You cannot choose a date in the past. Please pick today or a future date."
MSG_ADMIN_CANNOT_ADD = "The administrator cannot create new bookings from this interface."
MSG_NOT_FOUND = "The booking could not be found. You may need to refresh."
MSG_ADD_FAILED = "An error occurred while adding the booking. The change has been reverted."
MSG_EDIT_FAILED = "An error occurred while editing the booking. The change has been reverted."
MSG_DELETE_FAILED = "An error occurred while deleting. The booking has been restored."


class ValidationError(Exception):
    """Input rejected before any change or request is made."""


class ActionStatus(Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"  # nothing to send, the edit form just closes
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class ActionResult:
    status: ActionStatus
    playlist_id: str | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in (ActionStatus.APPLIED, ActionStatus.UNCHANGED)


class DateAvailability(Enum):
    EMPTY = "empty"
    PAST = "past"
    BOOKED = "booked"
    AVAILABLE = "available"


def check_date_availability(
    session: Session, date_value: str, editing_id: str | None = None
) -> DateAvailability:
    """Tell whether another booking already takes the chosen day."""
    if not date_value or not date_value.strip():
        return DateAvailability.EMPTY

    chosen = parse_event_date(date_value)
    if chosen is None:
        return DateAvailability.EMPTY
    if chosen < session.today():
        return DateAvailability.PAST

    for playlist in session.sheet_data:
        if editing_id and playlist.id == editing_id:
            continue
        if playlist.event_date == chosen:
            return DateAvailability.BOOKED
    return DateAvailability.AVAILABLE


class PlaylistActions:
    """Optimistic add/edit/delete handlers for one session."""

    def __init__(
        self,
        session: Session,
        client: SheetClient,
        config: Config | None = None,
        presenter: Presenter | None = None,
        scheduler: PollScheduler | None = None,
        engine: SyncEngine | None = None,
        celebration: CelebrationTracker | None = None,
    ):
        """Initialize the action handlers.

        Args:
            session: Session whose list is mutated.
            client: Sheet client for the requests.
            config: Application config (booking and sync sections).
            presenter: Receives user-facing alerts.
            scheduler: Paused around edits when given.
            engine: Used for an immediate pass after edits when enabled.
            celebration: First-booking tracker.
        """
        self.session = session
        self.client = client
        self.config = config or Config()
        self.presenter = presenter
        self.scheduler = scheduler
        self.engine = engine
        self.celebration = celebration

    # ==================== Add ====================

    async def add_playlist(self, draft: Playlist) -> ActionResult:
        """Create a booking from form data (the draft id is ignored)."""
        session = self.session
        try:
            if session.is_admin:
                raise ValidationError(MSG_ADMIN_CANNOT_ADD)
            self._validate_date(draft.date)
        except ValidationError as e:
            return self._reject(e)

        is_first = not session.playlists
        playlist = draft.copy(id=self._new_temp_id(), username=session.username)
        temp_id = playlist.id

        version = session.begin_mutation()
        session.track_add(playlist)
        if is_first and self.celebration:
            self.celebration.on_first_booking(playlist)
        session.update_local_playlists(session.playlists + [playlist], touched=playlist)

        try:
            result = await self.client.add_playlist(
                playlist, notes_as_text=self.config.booking.notes_as_text
            )
        except SheetError as e:
            logger.error(f"Error adding playlist, reverting: {e}")
            session.discard_add(temp_id)
            session.update_local_playlists(
                [p for p in session.playlists if p.id != temp_id]
            )
            return self._fail(MSG_ADD_FAILED, temp_id)

        server_id = result.get("id")
        session.confirm_add(temp_id, str(server_id) if server_id else None)
        session.commit_mutation(version)
        logger.info("Add successful")

        if is_first and self.celebration:
            self.celebration.on_first_booking_confirmed()
            session.notify_synced()

        return ActionResult(ActionStatus.APPLIED, session.resolve_id(temp_id))

    # ==================== Edit ====================

    async def update_playlist(self, playlist_id: str, updated: Playlist) -> ActionResult:
        """Apply edited form data to an existing booking."""
        session = self.session
        playlist_id = session.resolve_id(playlist_id)

        try:
            original = session.find_in_sheet(playlist_id)
            if original is None:
                logger.error(f"Original playlist {playlist_id} not found for edit")
                raise ValidationError(MSG_NOT_FOUND)
            self._validate_date(updated.date)
        except ValidationError as e:
            return self._reject(e, playlist_id)

        updated = updated.copy(id=playlist_id, username=original.username)

        changes = {}
        if self.config.booking.send_only_changed_fields:
            changes = changed_fields(original, updated)
            if not changes:
                logger.info("No changes detected, skipping API call")
                return ActionResult(ActionStatus.UNCHANGED, playlist_id)

        snapshot = session.snapshot()
        version = session.begin_mutation()
        if self.scheduler:
            await self.scheduler.pause()

        try:
            session.update_local_playlists(
                [updated if p.id == playlist_id else p for p in session.playlists],
                touched=updated,
            )
            if self.celebration:
                self.celebration.on_booking_edited(session, updated)

            try:
                await self.client.edit_playlist(
                    updated, changes, notes_as_text=self.config.booking.notes_as_text
                )
            except SheetError as e:
                logger.error(f"Error updating playlist, reverting: {e}")
                self._rollback(snapshot, version)
                return self._fail(MSG_EDIT_FAILED, playlist_id)

            session.commit_mutation(version)
            session.replace_in_sheet(updated)
            logger.info("Edit successful")
        finally:
            if self.scheduler:
                self.scheduler.resume(self.config.sync.resume_delay_seconds)

        if self.config.sync.refresh_after_edit and self.engine:
            await self.engine.sync_once(force=True)

        return ActionResult(ActionStatus.APPLIED, playlist_id)

    # ==================== Delete ====================

    async def delete_playlist(self, playlist_id: str) -> ActionResult:
        session = self.session
        playlist_id = session.resolve_id(playlist_id)

        if session.find(playlist_id) is None:
            return self._reject(ValidationError(MSG_NOT_FOUND), playlist_id)

        snapshot = session.snapshot()
        version = session.begin_mutation()

        if self.celebration:
            self.celebration.on_booking_deleted(session, playlist_id)
        session.update_local_playlists(
            [p for p in session.playlists if p.id != playlist_id]
        )

        try:
            await self.client.delete_playlist(playlist_id)
        except SheetError as e:
            logger.error(f"Error deleting playlist, reverting: {e}")
            self._rollback(snapshot, version)
            return self._fail(MSG_DELETE_FAILED, playlist_id)

        session.commit_mutation(version)
        session.remove_from_sheet(playlist_id)
        session.discard_add(playlist_id)
        logger.info("Delete successful")
        return ActionResult(ActionStatus.APPLIED, playlist_id)

    # ==================== Helpers ====================

    def _validate_date(self, value: str) -> None:
        event_date = parse_event_date(value)
        if event_date is None:
            raise ValidationError(MSG_DATE_REQUIRED)
        if event_date < self.session.today():
            raise ValidationError(MSG_PAST_DATE)

    def _new_temp_id(self) -> str:
        """Millisecond timestamp, bumped until unused."""
        candidate = int(time.time() * 1000)
        taken = {p.id for p in self.session.playlists}
        while str(candidate) in taken:
            candidate += 1
        return str(candidate)

    def _rollback(self, snapshot: list[Playlist], version: int) -> None:
        """Restore the pre-mutation list unless a newer change already landed."""
        if self.session.superseded(version):
            logger.warning(
                "Skipping rollback: a newer change succeeded, next sync will correct"
            )
            return
        self.session.update_local_playlists(snapshot)

    def _alert(self, message: str) -> None:
        if self.presenter:
            self.presenter.show_alert(message)

    def _reject(self, error: ValidationError, playlist_id: str | None = None) -> ActionResult:
        message = str(error)
        self._alert(message)
        return ActionResult(ActionStatus.REJECTED, playlist_id, message)

    def _fail(self, message: str, playlist_id: str | None = None) -> ActionResult:
        self._alert(message)
        return ActionResult(ActionStatus.FAILED, playlist_id, message)
