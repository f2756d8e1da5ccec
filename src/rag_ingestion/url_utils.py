"""URL parsing and normalization helpers for duplicate detection."""

import re
from typing import Literal
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

YOUTUBE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{11}$")

# Patterns to extract a video ID from the supported YouTube URL formats
VIDEO_URL_PATTERNS = [
    re.compile(
        r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/v/)"
        r"([a-zA-Z0-9_-]{11})"
    ),
    re.compile(r"youtube\.com/shorts/([a-zA-Z0-9_-]{11})"),
]

PLAYLIST_PATTERN = re.compile(r"[?&]list=([^&#]+)")

TRACKING_PARAMS = frozenset(
    {
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_term",
        "utm_content",
        "fbclid",
        "gclid",
    }
)


def extract_video_id(url: str) -> str | None:
    """Extract the 11-character video ID from a YouTube URL.

    Args:
        url: Watch, short-link, embed or shorts URL.

    Returns:
        The video ID, or None if the URL is not a recognizable video URL.

    Examples:
        >>> extract_video_id("https://youtu.be/dQw4w9WgXcQ?t=10")
        'dQw4w9WgXcQ'
        >>> extract_video_id("https://example.com") is None
        True
    """
    for pattern in VIDEO_URL_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)

    # Watch URLs where v= is not the first query parameter
    parts = urlsplit(url)
    if "youtube.com" in parts.netloc or "youtu.be" in parts.netloc:
        query = dict(parse_qsl(parts.query))
        candidate = query.get("v") or parts.path.rstrip("/").split("/")[-1]
        if candidate and YOUTUBE_ID_PATTERN.match(candidate):
            return candidate

    return None


def extract_playlist_id(url: str) -> str | None:
    """Extract the playlist ID from a URL carrying a ``list=`` parameter."""
    match = PLAYLIST_PATTERN.search(url)
    return match.group(1) if match else None


def video_url(video_id: str) -> str:
    """Canonical watch URL for a video ID."""
    return f"https://youtube.com/watch?v={video_id}"


def normalize_youtube_url(url: str) -> str | None:
    """Normalize any YouTube video URL to ``https://youtube.com/watch?v=ID``.

    Tracking parameters, timestamps and playlist context are dropped so the
    result can be used as the dedup key of a video.
    """
    video_id = extract_video_id(url)
    if not video_id:
        return None
    return video_url(video_id)


def normalize_web_url(url: str) -> str | None:
    """Normalize a general web URL for comparison.

    Lower-cases the host, strips ``www.``, the trailing slash and the fragment,
    sorts query parameters and removes common tracking parameters.
    """
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None

    host = parts.netloc.lower()
    if host.startswith("www."):
        host = host[4:]

    path = parts.path.rstrip("/") or "/"

    params = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in TRACKING_PARAMS
    ]
    params.sort(key=lambda item: item[0])

    return urlunsplit((parts.scheme, host, path, urlencode(params), ""))


def normalize_url(url: str) -> tuple[str | None, Literal["youtube", "web", "invalid"]]:
    """Pick the right normalization for a URL and report its kind."""
    if "youtube.com" in url or "youtu.be" in url:
        normalized = normalize_youtube_url(url)
        return normalized, "youtube" if normalized else "invalid"

    normalized = normalize_web_url(url)
    return normalized, "web" if normalized else "invalid"
