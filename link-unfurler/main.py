"""
Link Unfurler Cloud Function

Resolves a URL into a preview card for the Bookmark Knowledge Base.

Responsibilities:
- Validate the request URL (http/https only)
- Resolve it through the tiered waterfall (linkcard.Resolver)
- Return the normalized record as JSON

Does NOT:
- Authenticate end users or rate limit (API gateway's job)
- Persist bookmarks (n8n's job)
- Suggest or set titles (explicit user action only)

The function NEVER fails on enrichment problems: any URL that passes
validation gets a 200 with at least a fallback-quality record.
"""

import hmac
import json
import logging
import os
from typing import Optional
from urllib.parse import urlparse

import functions_framework

from linkcard import Resolver, Settings, fallback_record

logger = logging.getLogger(__name__)

# Configuration
ADMIN_TOKEN = os.environ.get('UNFURL_ADMIN_TOKEN')
ALLOWED_SCHEMES = ('http', 'https')

# One resolver per instance so the cache survives across requests
_resolver = None


def get_resolver() -> Resolver:
    """Return the process-wide resolver, building it on first use."""
    global _resolver
    if _resolver is None:
        _resolver = Resolver(Settings.from_env())
    return _resolver


def is_privileged_request(request) -> bool:
    """Check the admin token header (grants aggregator access)."""
    if not ADMIN_TOKEN:
        return False
    token = request.headers.get('X-Admin-Token') if hasattr(request, 'headers') else None
    if not token:
        return False
    return hmac.compare_digest(token.encode('utf-8'), ADMIN_TOKEN.encode('utf-8'))


def validate_url(url) -> Optional[str]:
    """Return an error message for an unusable URL, or None if it's fine."""
    if not url or not isinstance(url, str):
        return 'URL is required and must be a string'

    try:
        parsed = urlparse(url.strip())
        host = parsed.hostname
    except ValueError:
        return 'URL format is invalid'

    if not parsed.scheme or not host:
        return 'URL format is invalid'
    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return 'Only http and https URLs are allowed'
    return None


@functions_framework.http
def unfurl(request):
    """
    Main Cloud Function entry point.

    Expected JSON input:
    {
        "url": "https://example.com/article",
        "options": {
            "bypass_cache": false
        }
    }
    """
    # Handle CORS
    if request.method == 'OPTIONS':
        headers = {
            'Access-Control-Allow-Origin': '*',
            'Access-Control-Allow-Methods': 'POST',
            'Access-Control-Allow-Headers': 'Content-Type, X-Admin-Token',
            'Access-Control-Max-Age': '3600'
        }
        return ('', 204, headers)

    headers = {'Access-Control-Allow-Origin': '*', 'Content-Type': 'application/json'}

    request_json = request.get_json(silent=True) or {}
    url = request_json.get('url') if isinstance(request_json, dict) else None

    error = validate_url(url)
    if error:
        return (json.dumps({'error': 'Invalid request', 'message': error}), 400, headers)
    url = url.strip()

    try:
        options = request_json.get('options') or {}
        privileged = is_privileged_request(request)
        # Cache bypass re-runs every tier, so only trusted callers get it
        bypass_cache = privileged and bool(options.get('bypass_cache', False))

        record = get_resolver().resolve(url, is_privileged=privileged, bypass_cache=bypass_cache)
        return (json.dumps(record.to_dict()), 200, headers)

    except Exception:
        # resolve() never raises, so this is a bug elsewhere; still return a card
        logger.exception('Unexpected error unfurling %r', url)
        return (json.dumps(fallback_record(url).to_dict()), 200, headers)
