"""
Bounded HTTP helpers shared by the enrichment tiers.

Every request streams its body and is bounded by the calling tier's
Deadline: connect and read timeouts are the tier's remaining time, and
streamed reads re-check the deadline between small chunks. Per-read
timeouts alone cannot stop a server that trickles bytes, so every open
response registers with its Deadline; when the tier is abandoned the
deadline is cancelled and the response's socket is shut down, which
unblocks the reading thread.

HTTP status failures surface as requests.HTTPError via raise_for_status().
"""

import json
import logging
import socket
from typing import Any, Dict, Iterator, Optional, Tuple
from urllib.parse import urljoin

import requests

from .deadline import Deadline
from .safety import check_url_safe

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024
MAX_JSON_BYTES = 512 * 1024
MAX_REDIRECTS = 3

USER_AGENT = 'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'


class FetchError(Exception):
    """Base class for fetch failures raised by this module."""


class FetchAborted(FetchError):
    """The tier deadline ran out before the transfer finished."""


class ResponseTooLarge(FetchError):
    """The response exceeds the configured size ceiling."""


class UnsafeUrl(FetchError):
    """The URL points somewhere we refuse to fetch."""


class UnexpectedContent(FetchError):
    """The response has the wrong content type or a malformed body."""


def _timeout(deadline: Deadline) -> Tuple[float, float]:
    remaining = deadline.remaining_seconds()
    if remaining <= 0:
        raise FetchAborted('deadline exceeded before request')
    return remaining, remaining


def _socket_of(response: requests.Response):
    raw = getattr(response, 'raw', None)
    sock = getattr(getattr(raw, 'connection', None), 'sock', None)
    if sock is None:
        # http.client hands the socket to the response when the server closes the connection
        fp = getattr(getattr(raw, '_fp', None), 'fp', None)
        sock = getattr(getattr(fp, 'raw', None), '_sock', None)
    return sock


def abort_response(response: requests.Response) -> None:
    """Shut down the socket under a streamed response, waking any blocked read."""
    sock = _socket_of(response)
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as e:
        # Already closed by the reading side
        logger.debug('Socket shutdown failed: %s', e)


def _watch(response: requests.Response, deadline: Deadline) -> requests.Response:
    if deadline.expired():
        response.close()
        raise FetchAborted('deadline exceeded while waiting for response')
    deadline.on_cancel(lambda: abort_response(response))
    return response


def send(
    method: str,
    url: str,
    deadline: Deadline,
    session=None,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, str]] = None,
    guard: bool = False,
) -> requests.Response:
    """
    Send a streamed request bounded by the deadline.

    With guard=True the URL and every redirect hop must pass the SSRF
    check; redirects are then followed manually, at most MAX_REDIRECTS.
    The caller owns the returned response and must close it.
    """
    http = session or requests
    request_headers = {'User-Agent': USER_AGENT}
    request_headers.update(headers or {})

    if not guard:
        response = http.request(
            method, url,
            headers=request_headers,
            params=params,
            timeout=_timeout(deadline),
            stream=True,
            allow_redirects=True,
        )
        return _watch(response, deadline)

    current = url
    for _ in range(MAX_REDIRECTS + 1):
        verdict = check_url_safe(current)
        if not verdict.safe:
            raise UnsafeUrl(f'{verdict.reason}: {current}')

        response = http.request(
            method, current,
            headers=request_headers,
            params=params,
            timeout=_timeout(deadline),
            stream=True,
            allow_redirects=False,
        )
        _watch(response, deadline)
        if not response.is_redirect:
            return response

        location = response.headers.get('Location')
        response.close()
        if not location:
            raise UnexpectedContent('redirect without Location header')
        current = urljoin(current, location)
        params = None

    raise FetchError(f'too many redirects for {url}')


def iter_body(response: requests.Response, deadline: Deadline, max_bytes: int) -> Iterator[bytes]:
    """Yield body chunks, aborting on deadline expiry or size overflow."""
    received = 0
    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
        if deadline.expired():
            response.close()
            raise FetchAborted('deadline exceeded while reading body')
        if not chunk:
            continue
        received += len(chunk)
        if received > max_bytes:
            response.close()
            raise ResponseTooLarge(f'body exceeds {max_bytes} bytes')
        yield chunk


def read_body(response: requests.Response, deadline: Deadline, max_bytes: int) -> bytes:
    declared = content_length(response)
    if declared is not None and declared > max_bytes:
        raise ResponseTooLarge(f'content-length {declared} exceeds {max_bytes} bytes')
    return b''.join(iter_body(response, deadline, max_bytes))


def content_length(response: requests.Response) -> Optional[int]:
    value = response.headers.get('Content-Length')
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def get_json(
    url: str,
    deadline: Deadline,
    session=None,
    params: Optional[Dict[str, str]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> Any:
    """GET a JSON document from a fixed API endpoint."""
    request_headers = {'Accept': 'application/json'}
    request_headers.update(headers or {})

    with send('GET', url, deadline, session=session, headers=request_headers, params=params) as response:
        response.raise_for_status()
        body = read_body(response, deadline, MAX_JSON_BYTES)

    try:
        return json.loads(body)
    except ValueError as e:
        raise UnexpectedContent(f'invalid JSON from {url}: {e}') from e
