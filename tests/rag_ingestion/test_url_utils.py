"""Unit tests for URL parsing, normalization and content hashing."""

import pytest

from src.rag_ingestion.hashing import compute_content_hash
from src.rag_ingestion.url_utils import (
    extract_playlist_id,
    extract_video_id,
    normalize_url,
    normalize_web_url,
    normalize_youtube_url,
)


@pytest.mark.unit
class TestYouTubeUrls:
    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtube.com/watch?v=dQw4w9WgXcQ&t=42&utm_source=share",
            "https://youtu.be/dQw4w9WgXcQ?si=abc",
            "https://www.youtube.com/embed/dQw4w9WgXcQ",
            "https://www.youtube.com/shorts/dQw4w9WgXcQ",
            "https://www.youtube.com/watch?feature=share&v=dQw4w9WgXcQ",
        ],
    )
    def test_video_url_forms_normalize_to_one_key(self, url: str) -> None:
        assert extract_video_id(url) == "dQw4w9WgXcQ"
        assert normalize_youtube_url(url) == "https://youtube.com/watch?v=dQw4w9WgXcQ"

    def test_non_video_url(self) -> None:
        assert extract_video_id("https://example.com/watch") is None
        assert normalize_youtube_url("https://www.youtube.com/playlist?list=PL1") is None

    def test_playlist_id(self) -> None:
        assert extract_playlist_id("https://www.youtube.com/playlist?list=PLabc_123") == "PLabc_123"
        assert extract_playlist_id("https://youtube.com/watch?v=dQw4w9WgXcQ&list=PLx#t") == "PLx"
        assert extract_playlist_id("https://youtube.com/watch?v=dQw4w9WgXcQ") is None


@pytest.mark.unit
class TestWebUrls:
    def test_strips_tracking_and_sorts_params(self) -> None:
        url = "https://www.Example.com/guide/?utm_source=x&b=2&a=1&fbclid=y#section"
        assert normalize_web_url(url) == "https://example.com/guide?a=1&b=2"

    def test_rejects_non_http(self) -> None:
        assert normalize_web_url("ftp://example.com/file") is None
        assert normalize_web_url("not a url") is None

    def test_normalize_url_reports_kind(self) -> None:
        assert normalize_url("https://youtu.be/dQw4w9WgXcQ") == (
            "https://youtube.com/watch?v=dQw4w9WgXcQ",
            "youtube",
        )
        assert normalize_url("https://example.com/") == ("https://example.com/", "web")
        assert normalize_url("https://youtube.com/feed") == (None, "invalid")


@pytest.mark.unit
class TestContentHash:
    def test_sha256_hex_digest(self) -> None:
        assert compute_content_hash(b"hello") == (
            "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"
        )

    def test_text_and_utf8_bytes_match(self) -> None:
        text = "Café au lait"
        assert compute_content_hash(text) == compute_content_hash(text.encode("utf-8"))

    def test_different_content_differs(self) -> None:
        assert compute_content_hash(b"a") != compute_content_hash(b"b")
