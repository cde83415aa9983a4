"""
Tier orchestrator: resolves a URL into a preview Record.

resolve() NEVER raises and always returns a usable Record. Failures only
show up as a lower quality ('fallback' when nothing beyond Tier 0 worked).

Flow:
1. Cache lookup (unless bypassed)
2. Classify URL, build the Tier 0 shell record
3. Run tiers in order: stop when the global deadline has expired, skip
   tiers whose trigger doesn't apply, merge each update, stop on a
   short-circuit
4. Finalize defaults, write to the cache (always), return
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Callable, List, Optional, Sequence

from .cache import ResultCache
from .classifier import UNKNOWN_DOMAIN, classify_url
from .config import Settings
from .deadline import Deadline
from .record import ContentType, Quality, Record, Source, finalize_record, merge_update
from .tiers import DEFAULT_TIERS, Tier, TierContext, build_base_record

logger = logging.getLogger(__name__)


def _as_text(url) -> str:
    if isinstance(url, str):
        return url
    return '' if url is None else str(url)


def fallback_record(url) -> Record:
    """Minimal record used when resolution itself breaks."""
    return Record(
        url=_as_text(url),
        domain=UNKNOWN_DOMAIN,
        content_type=ContentType.ARTICLE,
        source=Source(name='Unknown', domain=UNKNOWN_DOMAIN),
        quality=Quality.FALLBACK,
    )


class Resolver:
    """
    Resolves URLs through the tier waterfall.

    Build one instance at process start and share it: the cache lives on
    the instance. Safe to call from several threads at once.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        cache: Optional[ResultCache] = None,
        session=None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        tiers: Sequence[Tier] = DEFAULT_TIERS,
    ):
        self.settings = settings or Settings()
        self.cache = cache if cache is not None else ResultCache(
            capacity=self.settings.cache_capacity,
            ttl_seconds=self.settings.cache_ttl_seconds,
        )
        self.session = session
        self.clock = clock
        self.sleep = sleep
        self.tiers = tuple(tiers)

    def resolve(self, url: str, is_privileged: bool = False, bypass_cache: bool = False) -> Record:
        """Resolve a URL into a Record. Never raises."""
        if isinstance(url, str):
            url = url.strip()

        try:
            if not bypass_cache:
                cached = self.cache.get(url)
                if cached is not None:
                    return cached
        except Exception:
            logger.exception('Cache lookup failed for %r', url)

        try:
            record = self._run_pipeline(url, is_privileged)
        except Exception:
            logger.exception('Resolution failed for %r, returning fallback', url)
            record = fallback_record(url)

        try:
            self.cache.set(url, record)
        except Exception:
            logger.exception('Cache write failed for %r', url)

        return record

    def resolve_many(
        self,
        urls: Sequence[str],
        is_privileged: bool = False,
        bypass_cache: bool = False,
        max_workers: int = 4,
    ) -> List[Record]:
        """Resolve distinct URLs concurrently, preserving input order."""
        if not urls:
            return []
        workers = max(1, min(max_workers, len(urls)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(
                lambda u: self.resolve(u, is_privileged=is_privileged, bypass_cache=bypass_cache),
                urls,
            ))

    def _run_pipeline(self, url: str, is_privileged: bool) -> Record:
        deadline = Deadline(self.settings.total_timeout_ms, clock=self.clock)
        classification = classify_url(url)
        record = build_base_record(_as_text(url), classification)

        base_context = TierContext(
            url=record.url,
            classification=classification,
            settings=self.settings,
            deadline=deadline,
            is_privileged=is_privileged,
            session=self.session,
            sleep=self.sleep,
        )

        applied = []
        for tier in self.tiers:
            if deadline.expired():
                logger.debug('Deadline reached after %.0fms, skipping remaining tiers for %s',
                             deadline.elapsed_ms(), url)
                break
            if not tier.applies(record, base_context):
                continue

            # A tier never outlives the global budget
            budget_ms = min(tier.timeout_ms, deadline.remaining_ms())
            context = replace(base_context, deadline=Deadline(budget_ms, clock=self.clock))
            outcome = tier.run(record, context)
            if outcome.update is not None:
                record = merge_update(record, outcome.update)
                applied.append(tier.name)
            if outcome.short_circuit:
                break

        record = finalize_record(record)
        logger.info('Resolved %s: type=%s quality=%s tiers=%s in %.0fms',
                    url, record.content_type.value, record.quality.value,
                    ','.join(applied) or '-', deadline.elapsed_ms())
        return record
