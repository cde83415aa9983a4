"""
Document metadata extraction.

Pulls preview fields out of an HTML page: description, author, publish
date and lead image. Open Graph tags win over twitter: and plain meta tags.

The page title is deliberately not extracted.
"""

import re
from typing import Dict, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup


def _meta(soup: BeautifulSoup, **attrs) -> Optional[str]:
    tag = soup.find('meta', attrs=attrs)
    if tag:
        content = (tag.get('content') or '').strip()
        return content or None
    return None


def _text(tag) -> Optional[str]:
    if not tag:
        return None
    text = tag.get_text(strip=True)
    return text or None


def extract_description(soup: BeautifulSoup) -> Optional[str]:
    return (
        _meta(soup, property='og:description')
        or _meta(soup, name='twitter:description')
        or _meta(soup, name='description')
    )


def extract_author(soup: BeautifulSoup) -> Optional[str]:
    author = (
        _meta(soup, name='author')
        or _meta(soup, property='article:author')
        or _text(soup.find('a', rel='author'))
        or _text(soup.find(attrs={'class': re.compile(r'author|byline', re.I)}))
    )
    if not author:
        return None

    # "By Jane Doe" -> "Jane Doe"
    author = re.sub(r'^by\s+', '', author, flags=re.I).strip()
    # article:author is often a profile URL rather than a name
    if author.startswith(('http://', 'https://')):
        return None
    return author or None


def extract_published_at(soup: BeautifulSoup) -> Optional[str]:
    date_time = soup.find('time', attrs={'datetime': True})
    return (
        _meta(soup, property='article:published_time')
        or _meta(soup, name='date')
        or (date_time.get('datetime').strip() if date_time else None)
        or None
    )


def extract_image(soup: BeautifulSoup, page_url: str) -> Optional[str]:
    image = (
        _meta(soup, property='og:image')
        or _meta(soup, property='og:image:url')
        or _meta(soup, name='twitter:image')
    )
    if not image:
        return None

    image = urljoin(page_url, image)
    if not image.startswith(('http://', 'https://')):
        return None
    return image


def extract_metadata(url: str, soup: Optional[BeautifulSoup]) -> Dict[str, Optional[str]]:
    """Extract preview metadata from a parsed page."""
    metadata = {
        'description': None,
        'author': None,
        'published_at': None,
        'image': None,
    }

    if not soup:
        return metadata

    metadata['description'] = extract_description(soup)
    metadata['author'] = extract_author(soup)
    metadata['published_at'] = extract_published_at(soup)
    metadata['image'] = extract_image(soup, url)
    return metadata


def parse_html(html) -> BeautifulSoup:
    """Parse page bytes or text; bytes let BeautifulSoup sniff the encoding."""
    return BeautifulSoup(html, 'html.parser')
