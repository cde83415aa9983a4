"""
Shared pytest fixtures for the link preview tests.
"""

import io
import sys
import importlib.util
from pathlib import Path

import pytest
from PIL import Image

from linkcard import Resolver, ResultCache, Settings
from linkcard.classifier import classify_url
from linkcard.deadline import Deadline
from linkcard.tiers import TierContext

# Project root for finding Cloud Function modules
PROJECT_ROOT = Path(__file__).parent.parent


def _load_module_from_path(module_name: str, file_path: Path):
    """Load a module from a specific file path."""
    spec = importlib.util.spec_from_file_location(module_name, file_path)
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


# Load the Cloud Function module with a unique name at module load time
_link_unfurler_module = _load_module_from_path(
    "link_unfurler_main",
    PROJECT_ROOT / "link-unfurler" / "main.py"
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingSleep:
    """Sleep replacement that records requested delays instead of waiting."""

    def __init__(self):
        self.delays = []

    def __call__(self, seconds: float):
        self.delays.append(seconds)


class FakeDns:
    """Hostname to address table standing in for the system resolver."""

    DEFAULT_ADDRESS = "93.184.215.14"

    def __init__(self):
        self.records = {}
        self.lookups = []

    def __call__(self, hostname: str):
        self.lookups.append(hostname)
        answer = self.records.get(hostname, [self.DEFAULT_ADDRESS])
        if isinstance(answer, Exception):
            raise answer
        return list(answer)


# ============================================================================
# Engine Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def dns(monkeypatch):
    """Keep SSRF hostname resolution off the network; every name is public unless mapped."""
    fake = FakeDns()
    monkeypatch.setattr("linkcard.safety.resolve_host", fake)
    return fake



@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def settings():
    """Default settings: aggregator disabled."""
    return Settings()


@pytest.fixture
def aggregator_settings():
    """Aggregator enabled, admin-only, with an API key."""
    return Settings(aggregator_enabled=True, aggregator_admin_only=True, aggregator_api_key="test-key")


@pytest.fixture
def make_resolver(clock, sleep, settings):
    """Factory for resolvers with an isolated cache and fake time."""
    def factory(**kwargs):
        kwargs.setdefault("settings", settings)
        kwargs.setdefault("cache", ResultCache(capacity=100, ttl_seconds=3600, clock=clock))
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("sleep", sleep)
        return Resolver(**kwargs)
    return factory


@pytest.fixture
def make_context(clock, sleep, settings):
    """Factory for a single tier's context."""
    def factory(url, timeout_ms=1000, is_privileged=False, **kwargs):
        return TierContext(
            url=url,
            classification=classify_url(url),
            settings=kwargs.pop("settings", settings),
            deadline=Deadline(timeout_ms, clock=clock),
            is_privileged=is_privileged,
            sleep=sleep,
            **kwargs
        )
    return factory


# ============================================================================
# Content Fixtures
# ============================================================================

@pytest.fixture
def sample_article_html():
    """A sample article page with Open Graph metadata."""
    return """
    <!DOCTYPE html>
    <html>
    <head>
        <title>10 Python Tips | Example Blog</title>
        <meta property="og:title" content="10 Python Tips You Should Know">
        <meta name="author" content="Jane Developer">
        <meta property="article:published_time" content="2024-12-15T10:00:00Z">
        <meta property="og:image" content="https://example.com/image.jpg">
        <meta property="og:description" content="Learn essential Python tips">
        <meta name="description" content="Fallback description">
    </head>
    <body>
        <article>
            <h1>10 Python Tips You Should Know</h1>
            <p>Here are some tips for Python development.</p>
        </article>
    </body>
    </html>
    """


@pytest.fixture
def make_png():
    """Factory for in-memory PNG images of a given size."""
    def factory(width=640, height=480):
        buffer = io.BytesIO()
        Image.new("RGB", (width, height), color=(200, 30, 30)).save(buffer, format="PNG")
        return buffer.getvalue()
    return factory


# ============================================================================
# HTTP Handler Fixtures
# ============================================================================

@pytest.fixture
def mock_flask_request():
    """Factory for creating mock Flask request objects."""
    class MockRequest:
        def __init__(self, json_data=None, method="POST", headers=None):
            self._json = json_data
            self.method = method
            self.headers = headers or {}
            self.data = b""

        def get_json(self, force=False, silent=False):
            return self._json

    return MockRequest


@pytest.fixture
def link_unfurler():
    """The link-unfurler Cloud Function module."""
    return _link_unfurler_module


@pytest.fixture
def unfurl():
    """Returns main entry point from link-unfurler."""
    return _link_unfurler_module.unfurl
