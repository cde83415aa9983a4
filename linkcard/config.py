"""
Environment-supplied configuration.

The engine treats these values as opaque inputs at construction time;
Settings.from_env() is the only place that reads the environment.
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .cache import DEFAULT_CAPACITY, DEFAULT_TTL_SECONDS
from .deadline import TOTAL_TIMEOUT_MS
from .http import USER_AGENT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    aggregator_enabled: bool = False
    aggregator_admin_only: bool = True
    aggregator_api_key: Optional[str] = None
    cache_capacity: int = DEFAULT_CAPACITY
    cache_ttl_seconds: int = DEFAULT_TTL_SECONDS
    total_timeout_ms: int = TOTAL_TIMEOUT_MS
    user_agent: str = USER_AGENT

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        env = os.environ if environ is None else environ
        return cls(
            # Opt-in: only the literal 'true' enables the aggregator
            aggregator_enabled=env.get('MICROLINK_ENABLED') == 'true',
            # Opt-out: admin-only unless explicitly 'false'
            aggregator_admin_only=env.get('MICROLINK_ADMIN_ONLY') != 'false',
            aggregator_api_key=env.get('MICROLINK_API_KEY') or None,
            cache_capacity=_positive_int(env, 'UNFURL_CACHE_SIZE', DEFAULT_CAPACITY),
            cache_ttl_seconds=_positive_int(env, 'UNFURL_CACHE_TTL', DEFAULT_TTL_SECONDS),
            total_timeout_ms=_positive_int(env, 'UNFURL_TOTAL_TIMEOUT_MS', TOTAL_TIMEOUT_MS),
            user_agent=env.get('UNFURL_USER_AGENT') or USER_AGENT,
        )

    def aggregator_allowed(self, is_privileged: bool) -> bool:
        """Whether the aggregator tier may run for this caller."""
        if not self.aggregator_enabled or not self.aggregator_api_key:
            return False
        return is_privileged or not self.aggregator_admin_only


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning('Ignoring %s=%r: not an integer, using %d', name, raw, default)
        return default
    if value < 1:
        logger.warning('Ignoring %s=%r: must be positive, using %d', name, raw, default)
        return default
    return value
