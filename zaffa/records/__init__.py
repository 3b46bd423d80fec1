"""Booking records: the playlist model, wire decoding and event dates."""

from .dates import app_today, parse_event_date
from .playlist import (
    Playlist,
    changed_fields,
    decode_records,
    decode_songs,
    sort_by_date,
)

__all__ = [
    "Playlist",
    "app_today",
    "changed_fields",
    "decode_records",
    "decode_songs",
    "parse_event_date",
    "sort_by_date",
]
