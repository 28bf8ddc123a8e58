from __future__ import annotations

from datetime import date, datetime

from lightsmap.errors import InputError

CHRISTMAS = "christmas"
HALLOWEEN = "halloween"
SEASONS = (CHRISTMAS, HALLOWEEN)


def detect_season(today: date | None = None) -> str:
    month = (today or date.today()).month
    if month in (9, 10):
        return HALLOWEEN
    return CHRISTMAS


def normalize_season(value: str | None) -> str:
    if value is None:
        raise InputError("Season is required")
    cleaned = value.strip().casefold()
    if cleaned not in SEASONS:
        raise InputError(f"Unknown season: {value!r}")
    return cleaned


def _minutes(value: str) -> int:
    parts = value.strip().split(":")
    return int(parts[0]) * 60 + int(parts[1])


def is_lit_at(open_start: str | None, open_end: str | None, now: datetime) -> bool:
    if not open_start or not open_end:
        return False
    try:
        start = _minutes(open_start)
        end = _minutes(open_end)
    except (ValueError, IndexError):
        return False
    minutes_now = now.hour * 60 + now.minute
    return start <= minutes_now <= end
