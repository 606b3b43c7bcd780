"""Free-text parsing helpers used by sessions.

Pure functions: title / year / season / episode extraction from a request,
prompt reply matching and a few human-readable formatters.
"""
from __future__ import annotations

import re
import unicodedata
from datetime import datetime, timedelta
from typing import Optional

from swiper.errors import InputError
from swiper.models.commands import RESPONSE_VALUES, RESPONSES

_TITLE_RE = re.compile(
    r"^([\w '\"\-:,&.!?]+?)(?:\s+(?:s(?:eason)?\s?\d{1,2}.*|\d{4}\b.*))?$", re.I
)
_YEAR_RE = re.compile(r"\b(\d{4})\b")
_SEASON_EPISODE_RE = re.compile(
    r"\bs(?:eason)?\s?(\d{1,2})\s?(?:ep?(?:isode)?\s?(\d{1,2}))?\b", re.I
)
_SEASON_RE = re.compile(r"(?:[^a-z]|\b)s(?:eason)?\s?(\d{1,2})(?:\D|\b)", re.I)
_EPISODE_RE = re.compile(r"(?:[^a-z]|\b)ep?(?:isode)?\s?(\d{1,2})(?:\D|\b)", re.I)
_NUMBER_RE = re.compile(r"(\d+)")
_PICK_RE = re.compile(r"\bd(?:ownload)?\s*(\d+)", re.I)


def split_first(text: str) -> tuple[str, str]:
    """Split off the first word: ``"download foo bar"`` -> ``("download", "foo bar")``."""
    parts = text.strip().split(None, 1)
    if not parts:
        return "", ""
    return parts[0], parts[1] if len(parts) > 1 else ""


def parse_title(text: str) -> dict:
    """Break a content request into ``{title, year, season, episode}``.

    Missing parts are ``None``; an unparseable request yields ``{}``.
    """
    text = text.strip()
    m = _TITLE_RE.match(text)
    if not m or not m.group(1).strip():
        return {}
    title = m.group(1).strip()
    rest = text[m.end(1):]

    year = _YEAR_RE.search(rest)
    se = _SEASON_EPISODE_RE.search(rest)
    return {
        "title": title,
        "year": year.group(1) if year else None,
        "season": int(se.group(1)) if se else None,
        "episode": int(se.group(2)) if se and se.group(2) else None,
    }


def capture_season(text: str) -> Optional[int]:
    m = _SEASON_RE.search(text)
    return int(m.group(1)) if m else None


def capture_episode(text: str) -> Optional[int]:
    m = _EPISODE_RE.search(text)
    return int(m.group(1)) if m else None


def capture_number(text: str) -> Optional[int]:
    m = _NUMBER_RE.search(text)
    return int(m.group(1)) if m else None


def capture_pick(text: str) -> Optional[int]:
    """Number following "download" / "d" in a torrent pick reply."""
    m = _PICK_RE.search(text)
    return int(m.group(1)) if m else None


def match_response(text: str, possible: list[str]) -> str:
    """Return the single reply value *text* matches among *possible*.

    Raises InputError when nothing matches or the reply is ambiguous.
    """
    matched: Optional[str] = None
    for name in possible:
        if RESPONSES[name].search(text):
            value = RESPONSE_VALUES.get(name, name)
            if matched is not None and matched != value:
                raise InputError("Ambiguous reply.")
            matched = value
    if matched is None:
        raise InputError("Unrecognized reply.")
    return matched


def normalize_title(name: str) -> str:
    """Lower-case, accent-free, punctuation-free form of a title for fuzzy comparison."""
    n = unicodedata.normalize("NFD", name.strip().lower())
    n = "".join(c for c in n if unicodedata.category(c) != "Mn")
    n = n.replace("'", "").replace("&", " and ")
    n = re.sub(r"[^a-z0-9]+", " ", n)
    return re.sub(r"\s+", " ", n).strip()


def morning(now: datetime | None = None) -> datetime:
    now = now or datetime.now()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def _time_string(date: datetime) -> str:
    ampm = "am" if date.hour < 12 else "pm"
    return f"{date.hour % 12 or 12}:{date.minute:02d}{ampm}"


def aired_string(date: Optional[datetime], now: datetime | None = None) -> Optional[str]:
    """Relative air date such as "Airs tomorrow at 9:00pm" (None beyond six months)."""
    if date is None:
        return None
    diff = date - morning(now)
    one_day = timedelta(days=1)
    one_week = timedelta(days=7)
    if abs(diff) > timedelta(days=182):
        return None
    weekday = date.strftime("%A")
    if diff < -one_week:
        return f"Aired {weekday}, {date.strftime('%B')} {date.day}"
    if diff < -one_day:
        return f"Aired {weekday}"
    if diff < timedelta(0):
        return "Aired yesterday"
    if diff < one_day:
        return f"Airs today at {_time_string(date)}"
    if diff < 2 * one_day:
        return f"Airs tomorrow at {_time_string(date)}"
    if diff < one_week:
        return f"Airs {weekday} at {_time_string(date)}"
    return f"Airs {weekday}, {date.strftime('%B')} {date.day}"
