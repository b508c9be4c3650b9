"""
Normalisation of loosely formatted identifiers supplied by the model.

The model passes whatever the user typed: raw ids, full URLs, short links.
Handlers resolve them to canonical ids here before calling collaborators.
"""
from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Iterable, Optional
from urllib.parse import parse_qs, urlparse

_VIDEO_ID_RE = re.compile(r"^[\w-]{11}$")
_PATH_ID_RE = re.compile(r"^/(?:v|embed|shorts|live)/([\w-]{11})(?:[/?#]|$)")
_YOUTUBE_HOSTS = frozenset({"youtube.com", "m.youtube.com", "music.youtube.com", "youtu.be"})


def parse_video_id(value: str) -> Optional[str]:
    """Return the 11-character YouTube video id in *value*, or None.

    Accepts a raw id, ``youtube.com/watch?v=``, ``youtu.be/``, and the
    ``/v/``, ``/embed/``, ``/shorts/`` and ``/live/`` path forms, with or
    without a scheme.
    """
    text = (value or "").strip()
    if not text:
        return None
    if _VIDEO_ID_RE.match(text):
        return text

    if not text.startswith(("http://", "https://")):
        text = f"https://{text}"
    try:
        url = urlparse(text)
    except ValueError:
        return None

    host = (url.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    if host not in _YOUTUBE_HOSTS:
        return None

    if host == "youtu.be":
        candidate = url.path.lstrip("/").split("/")[0]
        return candidate if _VIDEO_ID_RE.match(candidate) else None

    if url.path == "/watch":
        candidate = (parse_qs(url.query).get("v") or [""])[0]
        return candidate if _VIDEO_ID_RE.match(candidate) else None

    match = _PATH_ID_RE.match(url.path)
    return match.group(1) if match else None


def parse_video_ids(values: Iterable[str]) -> list[str]:
    """Unique video ids in input order; unparseable entries are skipped."""
    seen: dict[str, None] = {}
    for value in values:
        vid = parse_video_id(value)
        if vid:
            seen.setdefault(vid, None)
    return list(seen)


def date_range_for_last_days(days: int, *, today: Optional[date] = None) -> tuple[str, str]:
    """(start, end) ISO dates covering the last *days* days, ending yesterday.

    Analytics data lags by a day, so the window ends yesterday.
    """
    end = (today or date.today()) - timedelta(days=1)
    start = end - timedelta(days=max(days, 1) - 1)
    return start.isoformat(), end.isoformat()
