"""YouTube URL checks used when accepting a promotion order."""
from __future__ import annotations

import re
from typing import Any, Optional


# \w must stay ASCII: video ids are [A-Za-z0-9_-]
_URL_PATTERNS = (
    re.compile(r"^(https?://)?(www\.)?youtube\.com/watch\?v=[\w-]+", re.ASCII),
    re.compile(r"^(https?://)?(www\.)?youtube\.com/embed/[\w-]+", re.ASCII),
    re.compile(r"^(https?://)?(www\.)?youtube\.com/v/[\w-]+", re.ASCII),
    re.compile(r"^(https?://)?youtu\.be/[\w-]+", re.ASCII),
    re.compile(r"^(https?://)?(www\.)?youtube\.com/shorts/[\w-]+", re.ASCII),
)

_VIDEO_ID = re.compile(
    r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/v/|youtube\.com/shorts/)([^&?/\s]+)"
)


def validate_youtube_url(url: Any) -> bool:
    if not url or not isinstance(url, str):
        return False
    return any(p.match(url) for p in _URL_PATTERNS)


def extract_youtube_video_id(url: Any) -> Optional[str]:
    if not url or not isinstance(url, str):
        return None
    m = _VIDEO_ID.search(url)
    return m.group(1) if m else None
