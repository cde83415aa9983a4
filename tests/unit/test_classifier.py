"""
Unit tests for URL classification.

Pure functions, no network.
"""

import pytest

from linkcard import ContentType, classify_url, extract_youtube_video_id, is_image_url, platform_source
from linkcard.classifier import normalize_domain


class TestClassifyUrl:
    """Tests for classify_url()"""

    @pytest.mark.parametrize("url, expected", [
        ("https://youtube.com/watch?v=abc", ContentType.VIDEO),
        ("https://www.youtube.com/watch?v=dQw4w9WgXcQ", ContentType.VIDEO),
        ("https://youtu.be/dQw4w9WgXcQ", ContentType.VIDEO),
        ("https://m.youtube.com/watch?v=abc", ContentType.VIDEO),
        ("https://x.com/user/status/1", ContentType.SOCIAL),
        ("https://twitter.com/user/status/1234567890", ContentType.SOCIAL),
        ("https://cdn.example.com/img.jpg?fm=webp", ContentType.IMAGE),
        ("https://example.com/photos/cat.PNG", ContentType.IMAGE),
        ("https://images.ctfassets.net/space/asset?w=800", ContentType.IMAGE),
        ("https://news.example.com/article-1", ContentType.ARTICLE),
        ("https://medium.com/@user/article-title", ContentType.ARTICLE),
        ("https://example.com/report.pdf", ContentType.DOCUMENT),
        ("https://example.com/slides.pptx", ContentType.DOCUMENT),
    ])
    def test_content_types(self, url, expected):
        assert classify_url(url).content_type == expected

    def test_domain_strips_www_and_lowercases(self):
        assert classify_url("https://WWW.Example.COM/path").domain == "example.com"

    def test_lookalike_host_is_not_social(self):
        # dropbox.com contains "x.com" but is not X
        assert classify_url("https://dropbox.com/s/abc").content_type == ContentType.ARTICLE

    def test_video_precedes_image_extension(self):
        assert classify_url("https://youtube.com/thumb.jpg").content_type == ContentType.VIDEO

    def test_cdn_html_page_is_article(self):
        assert classify_url("https://cdn.example.com/index.html").content_type == ContentType.ARTICLE

    def test_cdn_root_is_article(self):
        assert classify_url("https://cdn.example.com/").content_type == ContentType.ARTICLE

    def test_stable_across_calls(self):
        url = "https://cdn.example.com/img.jpg?fm=webp"
        results = {classify_url(url) for _ in range(5)}
        assert len(results) == 1


class TestMalformedUrls:
    """classify_url() must never raise."""

    @pytest.mark.parametrize("url", ["", "not a url", "http://[::1", "://", None, 12345])
    def test_falls_back_to_unknown_domain(self, url):
        result = classify_url(url)
        assert result.domain == "unknown"
        assert result.content_type in ContentType

    def test_raw_heuristics_detect_video(self):
        assert classify_url("youtube.com/watch?v=abc").content_type == ContentType.VIDEO

    def test_raw_heuristics_detect_image(self):
        assert classify_url("example.com/pic.jpeg").content_type == ContentType.IMAGE

    def test_raw_heuristics_detect_document(self):
        assert classify_url("files.example.com/paper.pdf").content_type == ContentType.DOCUMENT

    def test_plain_text_is_article(self):
        assert classify_url("hello world").content_type == ContentType.ARTICLE


class TestIsImageUrl:
    """Tests for is_image_url()"""

    def test_extension(self):
        assert is_image_url("https://example.com/a/b.webp") is True

    def test_cdn_with_quality_param(self):
        assert is_image_url("https://img.example.com/x?q=70") is True

    def test_cdn_php_without_params(self):
        assert is_image_url("https://thumbs.example.com/view.php") is False

    def test_plain_article(self):
        assert is_image_url("https://example.com/post") is False

    def test_non_string(self):
        assert is_image_url(None) is False


class TestExtractYoutubeVideoId:
    """Tests for extract_youtube_video_id()"""

    @pytest.mark.parametrize("url, expected", [
        ("https://www.youtube.com/watch?v=dQw4w9WgXcQ", "dQw4w9WgXcQ"),
        ("https://youtu.be/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
        ("https://youtu.be/dQw4w9WgXcQ?t=42", "dQw4w9WgXcQ"),
        ("https://www.youtube.com/embed/abc123", "abc123"),
        ("https://www.youtube.com/v/abc123", "abc123"),
        ("https://www.youtube.com/shorts/xyz789", "xyz789"),
        ("https://www.youtube.com/watch", None),
        ("https://www.youtube.com/channel/UC123", None),
        ("https://vimeo.com/12345", None),
        ("not a url", None),
    ])
    def test_formats(self, url, expected):
        assert extract_youtube_video_id(url) == expected


class TestPlatformSource:
    """Tests for platform_source()"""

    def test_known_platform(self):
        source = platform_source("youtube.com")
        assert source.name == "YouTube"
        assert source.platform_color == "#FF0000"

    def test_known_platform_without_color(self):
        source = platform_source("medium.com")
        assert source.name == "Medium"
        assert source.platform_color is None

    def test_unknown_domain_uses_domain(self):
        source = platform_source("blog.example.com")
        assert source.name == "blog.example.com"
        assert source.domain == "blog.example.com"


def test_normalize_domain():
    assert normalize_domain("WWW.Example.com.") == "example.com"
    assert normalize_domain("") == ""
