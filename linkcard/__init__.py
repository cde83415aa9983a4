"""Tiered link-preview resolution for Bookmark Knowledge Base."""

from .record import (
    ContentType,
    Quality,
    Media,
    Source,
    Record,
    RecordUpdate,
    merge_update,
    finalize_record,
)

from .classifier import (
    UNKNOWN_DOMAIN,
    Classification,
    classify_url,
    is_image_url,
    extract_youtube_video_id,
    platform_source,
)

from .cache import ResultCache
from .config import Settings
from .deadline import Deadline, TOTAL_TIMEOUT_MS
from .retry import call_with_retry, retry_transient, is_transient_error
from .safety import check_url_safe, is_url_safe_for_fetch

from .tiers import (
    Tier,
    TierContext,
    TierFailure,
    TierOutcome,
    DEFAULT_TIERS,
    build_base_record,
)

from .resolver import Resolver, fallback_record

__all__ = [
    # Record model
    'ContentType',
    'Quality',
    'Media',
    'Source',
    'Record',
    'RecordUpdate',
    'merge_update',
    'finalize_record',
    # Classification
    'UNKNOWN_DOMAIN',
    'Classification',
    'classify_url',
    'is_image_url',
    'extract_youtube_video_id',
    'platform_source',
    # Infrastructure
    'ResultCache',
    'Settings',
    'Deadline',
    'TOTAL_TIMEOUT_MS',
    'call_with_retry',
    'retry_transient',
    'is_transient_error',
    'check_url_safe',
    'is_url_safe_for_fetch',
    # Tiers
    'Tier',
    'TierContext',
    'TierFailure',
    'TierOutcome',
    'DEFAULT_TIERS',
    'build_base_record',
    # Resolution
    'Resolver',
    'fallback_record',
]
