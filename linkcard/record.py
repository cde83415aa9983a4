"""
Metadata record for link previews.

A Record is the unit the rendering and persistence layers consume. Records
are immutable: tiers describe their enrichment as a RecordUpdate and the
resolver folds each update into a new Record with merge_update().

TITLE POLICY (NON-NEGOTIABLE):
RecordUpdate has no title field. Titles are only ever set by an explicit
user action outside this package, so no tier can write one.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

# Default card image when the real dimensions are unknown (og:image 1200x630)
DEFAULT_IMAGE_WIDTH = 1200
DEFAULT_IMAGE_HEIGHT = 630
DEFAULT_ASPECT_RATIO = 1.91


class ContentType(str, Enum):
    ARTICLE = 'article'
    VIDEO = 'video'
    SOCIAL = 'social'
    IMAGE = 'image'
    DOCUMENT = 'document'


class Quality(str, Enum):
    FALLBACK = 'fallback'
    PARTIAL = 'partial'
    FULL = 'full'

    @property
    def rank(self) -> int:
        return _QUALITY_RANK[self]


_QUALITY_RANK = {Quality.FALLBACK: 0, Quality.PARTIAL: 1, Quality.FULL: 2}


def best_quality(a: Optional[Quality], b: Optional[Quality]) -> Quality:
    """Return the higher of two qualities (None counts as fallback)."""
    a = a or Quality.FALLBACK
    b = b or Quality.FALLBACK
    return a if a.rank >= b.rank else b


@dataclass(frozen=True)
class Media:
    src: str
    width: int
    height: int
    aspect_ratio: float
    render_mode: Optional[str] = None
    is_estimated: bool = False
    type: str = 'image'

    @classmethod
    def estimated(cls, src: str) -> 'Media':
        """Placeholder media pending a dimension probe."""
        return cls(
            src=src,
            width=DEFAULT_IMAGE_WIDTH,
            height=DEFAULT_IMAGE_HEIGHT,
            aspect_ratio=DEFAULT_ASPECT_RATIO,
            is_estimated=True,
        )

    @classmethod
    def sized(cls, src: str, width: int, height: int, render_mode: Optional[str] = None) -> 'Media':
        """Media with known dimensions."""
        width = int(round(width))
        height = int(round(height))
        return cls(
            src=src,
            width=width,
            height=height,
            aspect_ratio=width / height,
            render_mode=render_mode,
            is_estimated=False,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'type': self.type,
            'src': self.src,
            'width': self.width,
            'height': self.height,
            'aspectRatio': self.aspect_ratio,
            'isEstimated': self.is_estimated,
        }
        if self.render_mode:
            data['renderMode'] = self.render_mode
        return data


@dataclass(frozen=True)
class Source:
    name: str
    domain: str
    platform_color: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'name': self.name, 'domain': self.domain}
        if self.platform_color:
            data['platformColor'] = self.platform_color
        return data


@dataclass(frozen=True)
class Record:
    url: str
    domain: str
    content_type: ContentType
    source: Source
    title: Optional[str] = None
    description: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[str] = None
    media: Optional[Media] = None
    quality: Quality = Quality.FALLBACK

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys the card renderer expects."""
        data = {
            'url': self.url,
            'domain': self.domain,
            'contentType': self.content_type.value,
            'title': self.title,
            'source': self.source.to_dict(),
            'quality': self.quality.value,
        }
        if self.description:
            data['description'] = self.description
        if self.author:
            data['author'] = self.author
        if self.published_at:
            data['publishedAt'] = self.published_at
        if self.media:
            data['media'] = self.media.to_dict()
        return data


@dataclass(frozen=True)
class RecordUpdate:
    """Partial enrichment produced by one tier."""
    description: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[str] = None
    media: Optional[Media] = None
    quality: Optional[Quality] = None

    def is_empty(self) -> bool:
        return not any((
            _has_text(self.description),
            _has_text(self.author),
            _has_text(self.published_at),
            self.media is not None,
        ))


def _has_text(value: Optional[str]) -> bool:
    return bool(value and value.strip())


def merge_update(record: Record, update: Optional[RecordUpdate]) -> Record:
    """
    Fold a tier update into a record.

    Populated update fields overwrite the record; missing or blank fields
    never unset an existing value. Quality only moves upward.
    """
    if update is None:
        return record

    changes = {}
    for field_name in ('description', 'author', 'published_at'):
        value = getattr(update, field_name)
        if _has_text(value):
            changes[field_name] = value.strip()
    if update.media is not None:
        changes['media'] = update.media
    if update.quality is not None:
        changes['quality'] = best_quality(record.quality, update.quality)

    if not changes:
        return record
    return replace(record, **changes)


def finalize_record(record: Record) -> Record:
    """
    Apply end-of-pipeline defaults.

    Media still marked as estimated keeps the 1.91 card ratio and is
    rendered with cover.
    """
    changes = {}
    if record.quality is None:
        changes['quality'] = Quality.FALLBACK

    media = record.media
    if media is not None and media.is_estimated:
        if media.aspect_ratio != DEFAULT_ASPECT_RATIO or media.render_mode != 'cover':
            changes['media'] = replace(media, aspect_ratio=DEFAULT_ASPECT_RATIO, render_mode='cover')

    if not changes:
        return record
    return replace(record, **changes)
