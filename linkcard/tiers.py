"""
Enrichment tiers for link previews.

Tiers form a waterfall of increasingly expensive strategies. Tier 0 builds
the shell record locally and always succeeds; every later tier is a Tier
object the resolver iterates in order:

    Tier        Trigger                          Timeout   Effect
    0.5 social  Twitter/X domain                  800 ms   author
    0.6 video   YouTube domain                   1000 ms   author + thumbnail, short-circuits
    1   aggr.   aggregator enabled + authorised  1500 ms   description/author/date/media, short-circuits when full
    2   page    content type article            1500 ms   description/author/date + estimated image
    3   probe   record has estimated media       1000 ms   real image dimensions

Each tier runs under its own Deadline on a worker thread that is abandoned
when the deadline passes. Tier.run() catches every failure and reports it
as a TierFailure, so nothing propagates to the resolver.

No tier writes the title, even when the upstream service returns one.
"""

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from .classifier import (
    Classification,
    extract_youtube_video_id,
    is_social_domain,
    is_video_domain,
    platform_source,
)
from .config import Settings
from .deadline import Deadline
from .http import (
    ResponseTooLarge,
    UnexpectedContent,
    content_length,
    get_json,
    iter_body,
    read_body,
    send,
)
from .probe import probe_dimensions
from .record import ContentType, Media, Quality, Record, RecordUpdate
from .retry import call_with_retry, is_transient_error
from .scrape import extract_metadata, parse_html

logger = logging.getLogger(__name__)

# Timeouts (in milliseconds)
SOCIAL_OEMBED_TIMEOUT_MS = 800
VIDEO_OEMBED_TIMEOUT_MS = 1000
AGGREGATOR_TIMEOUT_MS = 1500
PAGE_METADATA_TIMEOUT_MS = 1500
IMAGE_PROBE_TIMEOUT_MS = 1000

# Retry backoff units (in seconds)
SOCIAL_OEMBED_RETRY_DELAY = 0.2
VIDEO_OEMBED_RETRY_DELAY = 0.25
AGGREGATOR_RETRY_DELAY = 0.3
PAGE_METADATA_RETRY_DELAY = 0.4
IMAGE_PROBE_RETRY_DELAY = 0.2

MAX_PAGE_BYTES = 2 * 1024 * 1024
MAX_IMAGE_BYTES = 5 * 1024 * 1024

TWITTER_OEMBED_URL = 'https://publish.twitter.com/oembed'
YOUTUBE_OEMBED_URL = 'https://www.youtube.com/oembed'
YOUTUBE_THUMBNAIL_URL = 'https://img.youtube.com/vi/{video_id}/maxresdefault.jpg'
MICROLINK_API_URL = 'https://api.microlink.io'

YOUTUBE_THUMBNAIL_WIDTH = 1280
YOUTUBE_THUMBNAIL_HEIGHT = 720
YOUTUBE_DESCRIPTION = 'Watch on YouTube →'


@dataclass(frozen=True)
class TierContext:
    url: str
    classification: Classification
    settings: Settings
    deadline: Deadline
    is_privileged: bool = False
    session: Any = None
    sleep: Callable[[float], None] = time.sleep


@dataclass(frozen=True)
class TierFailure:
    tier: str
    reason: str
    transient: bool = False


@dataclass(frozen=True)
class TierOutcome:
    tier: str
    update: Optional[RecordUpdate] = None
    failure: Optional[TierFailure] = None
    short_circuit: bool = False

    @property
    def ok(self) -> bool:
        return self.failure is None


def _never(update: RecordUpdate) -> bool:
    return False


def _always(update: RecordUpdate) -> bool:
    return True


@dataclass(frozen=True)
class Tier:
    name: str
    timeout_ms: int
    applies: Callable[[Record, TierContext], bool]
    fetch: Callable[[Record, TierContext], Optional[RecordUpdate]]
    short_circuits: Callable[[RecordUpdate], bool] = _never

    def run(self, record: Record, context: TierContext) -> TierOutcome:
        """
        Run the tier, converting any failure into a TierFailure.

        The fetch runs on a worker thread that is abandoned once the tier
        deadline passes. Abandoning cancels the deadline, which shuts down
        any socket the fetch still holds open.
        """
        box = {}

        def work():
            try:
                box['update'] = self.fetch(record, context)
            except Exception as e:
                box['error'] = e

        worker = threading.Thread(target=work, name=f'tier-{self.name}', daemon=True)
        worker.start()
        worker.join(context.deadline.remaining_seconds())

        if worker.is_alive():
            context.deadline.cancel()
            failure = TierFailure(
                self.name, f'FetchAborted: tier {self.name} exceeded {self.timeout_ms}ms', True)
            logger.debug('Tier %s abandoned for %s after %.0fms',
                         self.name, context.url, context.deadline.elapsed_ms())
            return TierOutcome(self.name, failure=failure)

        if 'error' in box:
            e = box['error']
            failure = TierFailure(self.name, f'{type(e).__name__}: {e}', is_transient_error(e))
            logger.debug('Tier %s failed for %s: %s', self.name, context.url, failure.reason)
            return TierOutcome(self.name, failure=failure)

        update = box.get('update')
        if update is None or update.is_empty():
            return TierOutcome(self.name)
        return TierOutcome(self.name, update=update, short_circuit=self.short_circuits(update))


def _string(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _positive_number(value) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if value > 0 else None


def _retrying(fn, context: TierContext, base_delay: float):
    return call_with_retry(fn, base_delay=base_delay, deadline=context.deadline, sleep=context.sleep)


# ============================================================================
# Tier 0: local shell record
# ============================================================================

def build_base_record(url: str, classification: Classification) -> Record:
    """Tier 0: shell record plus platform defaults. No network."""
    record = Record(
        url=url,
        domain=classification.domain,
        content_type=classification.content_type,
        source=platform_source(classification.domain),
        quality=Quality.FALLBACK,
    )
    return apply_platform_defaults(record)


def apply_platform_defaults(record: Record) -> Record:
    if record.content_type == ContentType.VIDEO and is_video_domain(record.domain):
        video_id = extract_youtube_video_id(record.url)
        if video_id:
            thumbnail = Media.sized(
                YOUTUBE_THUMBNAIL_URL.format(video_id=video_id),
                YOUTUBE_THUMBNAIL_WIDTH,
                YOUTUBE_THUMBNAIL_HEIGHT,
                render_mode='cover',
            )
            return replace(record, media=thumbnail, description=record.description or YOUTUBE_DESCRIPTION)

    if record.content_type == ContentType.IMAGE:
        return replace(record, media=Media.estimated(record.url))

    if record.content_type == ContentType.DOCUMENT:
        # Documents render as icon cards
        return replace(record, media=None)

    return record


# ============================================================================
# Tier 0.5: social oEmbed
# ============================================================================

def fetch_social_oembed(record: Record, context: TierContext) -> Optional[RecordUpdate]:
    data = _retrying(
        lambda: get_json(TWITTER_OEMBED_URL, context.deadline, session=context.session,
                         params={'url': context.url}),
        context, SOCIAL_OEMBED_RETRY_DELAY,
    )
    if not isinstance(data, dict):
        raise UnexpectedContent('oEmbed payload is not an object')

    author = _string(data.get('author_name'))
    if not author:
        return None
    return RecordUpdate(author=author, quality=Quality.PARTIAL)


# ============================================================================
# Tier 0.6: video oEmbed
# ============================================================================

def fetch_video_oembed(record: Record, context: TierContext) -> Optional[RecordUpdate]:
    data = _retrying(
        lambda: get_json(YOUTUBE_OEMBED_URL, context.deadline, session=context.session,
                         params={'url': context.url, 'format': 'json'}),
        context, VIDEO_OEMBED_RETRY_DELAY,
    )
    if not isinstance(data, dict):
        raise UnexpectedContent('oEmbed payload is not an object')

    author = _string(data.get('author_name'))
    thumbnail_url = _string(data.get('thumbnail_url'))
    media = None
    if thumbnail_url:
        media = Media.sized(thumbnail_url, YOUTUBE_THUMBNAIL_WIDTH, YOUTUBE_THUMBNAIL_HEIGHT, render_mode='cover')

    if not author and not media:
        return None
    return RecordUpdate(author=author, media=media, quality=Quality.PARTIAL)


# ============================================================================
# Tier 1: aggregator API (Microlink)
# ============================================================================

def fetch_aggregator(record: Record, context: TierContext) -> Optional[RecordUpdate]:
    payload = _retrying(
        lambda: get_json(MICROLINK_API_URL, context.deadline, session=context.session,
                         params={'url': context.url},
                         headers={'x-api-key': context.settings.aggregator_api_key}),
        context, AGGREGATOR_RETRY_DELAY,
    )
    if not isinstance(payload, dict):
        raise UnexpectedContent('aggregator payload is not an object')
    status = payload.get('status')
    if status not in (None, 'success'):
        raise UnexpectedContent(f'aggregator status {status!r}')

    data = payload.get('data')
    if not isinstance(data, dict):
        raise UnexpectedContent('aggregator payload has no data object')

    media = None
    image = data.get('image')
    if isinstance(image, dict) and _string(image.get('url')):
        width = _positive_number(image.get('width'))
        height = _positive_number(image.get('height'))
        if width and height:
            media = Media.sized(image['url'].strip(), width, height, render_mode='cover')
        else:
            media = replace(Media.estimated(image['url'].strip()), render_mode='cover')

    description = _string(data.get('description'))
    update = RecordUpdate(
        description=description,
        author=_string(data.get('author')),
        published_at=_string(data.get('date')),
        media=media,
    )
    if update.is_empty():
        return None

    quality = Quality.FULL if (description or media) else Quality.PARTIAL
    return replace(update, quality=quality)


def _aggregator_is_complete(update: RecordUpdate) -> bool:
    return update.quality == Quality.FULL


# ============================================================================
# Tier 2: page metadata
# ============================================================================

PAGE_ACCEPT = 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8'


def fetch_page_metadata(record: Record, context: TierContext) -> Optional[RecordUpdate]:
    headers = {
        'User-Agent': context.settings.user_agent,
        'Accept': PAGE_ACCEPT,
        'Accept-Language': 'en-US,en;q=0.5',
    }

    def load():
        with send('GET', context.url, context.deadline, session=context.session,
                  headers=headers, guard=True) as response:
            response.raise_for_status()
            content_type = response.headers.get('Content-Type', '')
            if content_type and 'html' not in content_type.lower():
                raise UnexpectedContent(f'not an HTML page: {content_type}')
            return response.url or context.url, read_body(response, context.deadline, MAX_PAGE_BYTES)

    page_url, body = _retrying(load, context, PAGE_METADATA_RETRY_DELAY)
    metadata = extract_metadata(page_url, parse_html(body))

    update = RecordUpdate(
        description=metadata['description'],
        author=metadata['author'],
        published_at=metadata['published_at'],
        media=Media.estimated(metadata['image']) if metadata['image'] else None,
    )
    if update.is_empty():
        return None
    return replace(update, quality=Quality.PARTIAL)


# ============================================================================
# Tier 3: image probe
# ============================================================================

def fetch_image_dimensions(record: Record, context: TierContext) -> Optional[RecordUpdate]:
    media = record.media
    headers = {'User-Agent': context.settings.user_agent}

    def head():
        with send('HEAD', media.src, context.deadline, session=context.session,
                  headers=headers, guard=True) as response:
            # Some hosts reject HEAD; the GET below re-checks the size
            return content_length(response) if response.ok else None

    size = _retrying(head, context, IMAGE_PROBE_RETRY_DELAY)
    if size is not None and size > MAX_IMAGE_BYTES:
        raise ResponseTooLarge(f'image is {size} bytes, limit {MAX_IMAGE_BYTES}')

    def load():
        with send('GET', media.src, context.deadline, session=context.session,
                  headers=headers, guard=True) as response:
            response.raise_for_status()
            declared = content_length(response)
            if declared is not None and declared > MAX_IMAGE_BYTES:
                raise ResponseTooLarge(f'image is {declared} bytes, limit {MAX_IMAGE_BYTES}')
            return probe_dimensions(iter_body(response, context.deadline, MAX_IMAGE_BYTES))

    dimensions = _retrying(load, context, IMAGE_PROBE_RETRY_DELAY)
    if not dimensions:
        raise UnexpectedContent('could not read image dimensions')

    width, height = dimensions
    probed = replace(media, width=width, height=height, aspect_ratio=width / height, is_estimated=False)
    return RecordUpdate(media=probed)


# ============================================================================
# Tier table
# ============================================================================

SOCIAL_OEMBED = Tier(
    name='social-oembed',
    timeout_ms=SOCIAL_OEMBED_TIMEOUT_MS,
    applies=lambda record, context: is_social_domain(record.domain),
    fetch=fetch_social_oembed,
)

VIDEO_OEMBED = Tier(
    name='video-oembed',
    timeout_ms=VIDEO_OEMBED_TIMEOUT_MS,
    applies=lambda record, context: is_video_domain(record.domain),
    fetch=fetch_video_oembed,
    short_circuits=_always,
)

AGGREGATOR = Tier(
    name='aggregator',
    timeout_ms=AGGREGATOR_TIMEOUT_MS,
    applies=lambda record, context: context.settings.aggregator_allowed(context.is_privileged),
    fetch=fetch_aggregator,
    short_circuits=_aggregator_is_complete,
)

PAGE_METADATA = Tier(
    name='page-metadata',
    timeout_ms=PAGE_METADATA_TIMEOUT_MS,
    applies=lambda record, context: record.content_type == ContentType.ARTICLE,
    fetch=fetch_page_metadata,
)

IMAGE_PROBE = Tier(
    name='image-probe',
    timeout_ms=IMAGE_PROBE_TIMEOUT_MS,
    applies=lambda record, context: record.media is not None and record.media.is_estimated,
    fetch=fetch_image_dimensions,
)

DEFAULT_TIERS = (SOCIAL_OEMBED, VIDEO_OEMBED, AGGREGATOR, PAGE_METADATA, IMAGE_PROBE)
