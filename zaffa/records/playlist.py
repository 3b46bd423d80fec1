"""Playlist booking record and its wire format."""

import json
import logging
from dataclasses import dataclass, field, replace
import datetime
from typing import Any, Iterable

from .dates import parse_event_date

logger = logging.getLogger(__name__)

# Prefix that stops the spreadsheet from auto-formatting notes as dates/numbers
NOTES_SENTINEL = "'"

# Text fields compared when computing an edit diff (attribute -> wire key)
EDITABLE_FIELDS = {
    "date": "date",
    "location": "location",
    "phone_number": "phoneNumber",
    "bride_zaffa": "brideZaffa",
    "groom_zaffa": "groomZaffa",
    "notes": "notes",
}


def decode_songs(value: Any) -> list[str]:
    """Decode the songs column into a list of strings.

    The sheet stores songs as a JSON-encoded array. Anything that is not
    a JSON array decodes to an empty list instead of raising.
    """
    if isinstance(value, list):
        return [str(song) for song in value]
    if not isinstance(value, str) or not value.strip():
        return []

    try:
        parsed = json.loads(value)
    except ValueError:
        return []

    if not isinstance(parsed, list):
        return []
    return [str(song) for song in parsed]


def strip_notes_sentinel(notes: str) -> str:
    if notes.startswith(NOTES_SENTINEL):
        return notes[len(NOTES_SENTINEL):]
    return notes


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


@dataclass
class Playlist:
    """A single wedding event booking."""

    id: str
    date: str = ""
    location: str = ""
    phone_number: str = ""
    bride_zaffa: str = ""
    groom_zaffa: str = ""
    songs: list[str] = field(default_factory=list)
    notes: str = ""
    username: str = ""

    @property
    def event_date(self) -> datetime.date | None:
        """Calendar day of the event (UTC), or None if missing/invalid."""
        return parse_event_date(self.date)

    def copy(self, **changes: Any) -> "Playlist":
        """Return an independent copy, optionally with fields replaced."""
        if "songs" not in changes:
            changes["songs"] = list(self.songs)
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase shape used by the cache and the dashboard."""
        return {
            "id": self.id,
            "date": self.date,
            "location": self.location,
            "phoneNumber": self.phone_number,
            "brideZaffa": self.bride_zaffa,
            "groomZaffa": self.groom_zaffa,
            "songs": list(self.songs),
            "notes": self.notes,
            "username": self.username,
        }

    def to_wire(self, notes_as_text: bool = True) -> dict[str, Any]:
        """Convert to the payload fields sent to the sheet."""
        data = self.to_dict()
        data["songs"] = json.dumps(self.songs, ensure_ascii=False)
        if notes_as_text and self.notes:
            data["notes"] = NOTES_SENTINEL + self.notes
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Playlist":
        """Build a record from the cache or dashboard shape, as-is.

        Raises:
            ValueError: If the entry has no id.
        """
        raw_id = data.get("id")
        if raw_id is None or str(raw_id).strip() == "":
            raise ValueError("record has no id")

        return cls(
            id=str(raw_id),
            date=_text(data.get("date")),
            location=_text(data.get("location")),
            phone_number=_text(data.get("phoneNumber")),
            bride_zaffa=_text(data.get("brideZaffa")),
            groom_zaffa=_text(data.get("groomZaffa")),
            songs=decode_songs(data.get("songs")),
            notes=_text(data.get("notes")),
            username=_text(data.get("username")),
        )

    @classmethod
    def from_wire(cls, row: dict[str, Any]) -> "Playlist":
        """Decode a row fetched from the sheet, dropping the notes prefix."""
        playlist = cls.from_dict(row)
        playlist.notes = strip_notes_sentinel(playlist.notes)
        return playlist


def decode_records(rows: Iterable[Any], wire: bool = True) -> list[Playlist]:
    """Decode rows, dropping the ones that cannot be identified.

    Args:
        rows: Sheet rows, or cached entries when ``wire`` is False.
        wire: Rows came from the sheet and carry the notes prefix.
    """
    decode = Playlist.from_wire if wire else Playlist.from_dict
    records = []
    for row in rows:
        if not isinstance(row, dict):
            logger.warning(f"Skipping non-object row: {row!r}")
            continue
        try:
            records.append(decode(row))
        except ValueError as e:
            logger.warning(f"Skipping row: {e}")
    return records


def sort_by_date(records: Iterable[Playlist]) -> list[Playlist]:
    """Sort ascending by event date; undated records go last."""

    def key(record: Playlist) -> tuple[bool, datetime.date]:
        event_date = record.event_date
        return (event_date is None, event_date or datetime.date.max)

    return sorted(records, key=key)


def changed_fields(original: Playlist, updated: Playlist) -> dict[str, Any]:
    """Field-level diff between two versions of a record, keyed by wire name.

    Songs are compared as ordered lists, so reordering counts as a change.
    """
    changes: dict[str, Any] = {}
    for attr, wire_key in EDITABLE_FIELDS.items():
        new_value = getattr(updated, attr)
        if new_value != getattr(original, attr):
            changes[wire_key] = new_value
    if json.dumps(updated.songs) != json.dumps(original.songs):
        changes["songs"] = list(updated.songs)
    return changes
