"""
URL classification for link previews.

Pure functions only, no I/O. classify_url() never raises: unparsable input
gets the sentinel domain 'unknown' and is classified from the raw string.

The rules and their precedence are shared with any caller-side pre-filter
(e.g. skipping the unfurl request for direct image links), so tier gating
downstream sees exactly the same content type.

Rules, in priority order:
1. Video platform host (YouTube family)  -> video
2. Social platform host (Twitter/X)      -> social
3. Image URL (extension or image CDN)    -> image
4. Document extension                    -> document
5. Anything else                         -> article
"""

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import ParseResult, parse_qs, urlparse

from .record import ContentType, Source

UNKNOWN_DOMAIN = 'unknown'

VIDEO_DOMAINS = ('youtube.com', 'youtu.be')
SOCIAL_DOMAINS = ('twitter.com', 'x.com')

IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.gif', '.webp', '.svg')
DOCUMENT_EXTENSIONS = ('.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx', '.txt', '.zip')

# Hosts that usually serve images, matched as substrings of the hostname
IMAGE_CDN_PATTERNS = ('images.ctfassets.net', 'thumbs.', 'cdn.', 'img.', 'image.')
IMAGE_QUERY_PARAMS = ('fm', 'q', 'format')
NON_IMAGE_PATH_SUFFIXES = ('.html', '.php', '/')

PLATFORM_NAMES = {
    'youtube.com': 'YouTube',
    'youtu.be': 'YouTube',
    'twitter.com': 'Twitter',
    'x.com': 'X',
    'substack.com': 'Substack',
    'medium.com': 'Medium',
}

PLATFORM_COLORS = {
    'youtube.com': '#FF0000',
    'youtu.be': '#FF0000',
    'twitter.com': '#1DA1F2',
    'x.com': '#000000',
}

_SCHEME_RE = re.compile(r'^[a-z][a-z0-9+.-]*://')


@dataclass(frozen=True)
class Classification:
    domain: str
    content_type: ContentType
    parsed: Optional[ParseResult] = None


def normalize_domain(host: str) -> str:
    """Lowercase a hostname and drop a leading 'www.'."""
    host = (host or '').strip().lower().rstrip('.')
    if host.startswith('www.'):
        host = host[4:]
    return host


def _matches_host(host: str, domains) -> bool:
    return any(host == d or host.endswith('.' + d) for d in domains)


def is_video_domain(domain: str) -> bool:
    return _matches_host(normalize_domain(domain), VIDEO_DOMAINS)


def is_social_domain(domain: str) -> bool:
    return _matches_host(normalize_domain(domain), SOCIAL_DOMAINS)


def _parse(url: str) -> Optional[ParseResult]:
    """Parse an absolute URL, or return None if it isn't one."""
    try:
        parsed = urlparse(url.strip())
        host = parsed.hostname
    except ValueError:
        return None
    if not parsed.scheme or not host:
        return None
    return parsed


def _split_raw(url: str):
    """Best-effort (host, path, query) split of an unparsable URL string."""
    raw = (url or '').strip().lower()
    raw = _SCHEME_RE.sub('', raw)
    host_end = len(raw)
    for sep in '/?#':
        idx = raw.find(sep)
        if idx != -1:
            host_end = min(host_end, idx)
    host = raw[:host_end].rsplit('@', 1)[-1].split(':', 1)[0]
    rest = raw[host_end:].split('#', 1)[0]
    path, _, query = rest.partition('?')
    return host, path, query


def _is_image(host: str, path: str, query: str) -> bool:
    if path.endswith(IMAGE_EXTENSIONS):
        return True

    if any(pattern in host for pattern in IMAGE_CDN_PATTERNS):
        # A CDN may serve HTML too, so require an image hint
        params = parse_qs(query, keep_blank_values=True)
        if any(key in params for key in IMAGE_QUERY_PARAMS):
            return True
        if not (path or '/').endswith(NON_IMAGE_PATH_SUFFIXES):
            return True

    return False


def _content_type(host: str, path: str, query: str) -> ContentType:
    if _matches_host(host, VIDEO_DOMAINS):
        return ContentType.VIDEO
    if _matches_host(host, SOCIAL_DOMAINS):
        return ContentType.SOCIAL
    if _is_image(host, path, query):
        return ContentType.IMAGE
    if path.endswith(DOCUMENT_EXTENSIONS):
        return ContentType.DOCUMENT
    return ContentType.ARTICLE


def is_image_url(url: str) -> bool:
    """Shared image rule: direct image links never get a page fetch."""
    if not isinstance(url, str):
        return False
    parsed = _parse(url)
    if parsed is None:
        host, path, query = _split_raw(url)
    else:
        host, path, query = parsed.hostname.lower(), parsed.path.lower(), parsed.query
    return _is_image(host, path, query)


def classify_url(url: str) -> Classification:
    """Classify a URL into (domain, content type). Never raises."""
    if not isinstance(url, str):
        url = '' if url is None else str(url)

    parsed = _parse(url)
    if parsed is None:
        host, path, query = _split_raw(url)
        return Classification(UNKNOWN_DOMAIN, _content_type(normalize_domain(host), path, query))

    host = parsed.hostname.lower()
    content_type = _content_type(normalize_domain(host), parsed.path.lower(), parsed.query)
    return Classification(normalize_domain(host), content_type, parsed)


def platform_source(domain: str) -> Source:
    """Build the card source from the platform table."""
    return Source(
        name=PLATFORM_NAMES.get(domain, domain),
        domain=domain,
        platform_color=PLATFORM_COLORS.get(domain),
    )


def extract_youtube_video_id(url: str) -> Optional[str]:
    """Extract the video ID from youtube.com and youtu.be URLs."""
    parsed = _parse(url) if isinstance(url, str) else None
    if parsed is None:
        return None

    host = normalize_domain(parsed.hostname)
    path = parsed.path

    if _matches_host(host, ('youtu.be',)):
        video_id = path.lstrip('/').split('/', 1)[0]
        return video_id or None

    if _matches_host(host, ('youtube.com',)):
        if path.startswith('/watch'):
            values = parse_qs(parsed.query).get('v')
            return values[0] if values and values[0] else None
        match = re.match(r'^/(?:embed|v|shorts)/([^/?#]+)', path)
        if match:
            return match.group(1)

    return None
