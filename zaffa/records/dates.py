"""Event date parsing and the application's notion of "today"."""

from datetime import date, datetime, timedelta, timezone

APP_UTC_OFFSET_HOURS = 4


def app_today(
    offset_hours: int = APP_UTC_OFFSET_HOURS,
    now: datetime | None = None,
) -> date:
    """Return today's date in the fixed application timezone (UTC+4).

    The host's local timezone is ignored so every client agrees on when
    an event becomes past.
    """
    tz = timezone(timedelta(hours=offset_hours))
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz).date()


def parse_event_date(value: object) -> date | None:
    """Parse an event date into its UTC calendar day.

    Accepts plain ``YYYY-MM-DD`` strings as well as the full ISO
    timestamps the sheet returns (``2025-01-10T20:00:00.000Z``).

    Returns:
        The calendar date, or None for empty or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()
