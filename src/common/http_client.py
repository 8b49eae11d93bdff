"""Shared HTTP helpers used by core plugins.

Encapsulates retry/timeout handling and an in-process response cache so
plugins avoid duplicating try/except blocks. Nothing here exits the process;
callers decide how a failed request maps onto the error taxonomy.
"""
from __future__ import annotations

import hashlib
import json
import logging
import os
import time
from typing import Any, Dict, Optional, Tuple

import requests

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

Response = Tuple[int, Dict[str, str], str]

# url/header key -> (response tuple, stored at)
_http_cache: Dict[str, Tuple[Response, float]] = {}


def _cache_key(url: str, headers: Optional[Dict[str, str]]) -> str:
    return f"GET:{url}:{sorted(headers.items()) if headers else ''}"


def _cached(key: str) -> Optional[Response]:
    entry = _http_cache.get(key)
    if entry is None:
        return None
    response, stored_at = entry
    if time.time() - stored_at >= Constants.HTTP_CACHE_TTL_SEC:
        _http_cache.pop(key, None)
        return None
    return response


def _trace(message: str, **fields: Any) -> None:
    if is_debug_enabled(logger):
        logger.debug(message, extra=extra_context(component="http_client", **fields))


def clear_cache() -> None:
    _http_cache.clear()


def robust_get(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    **kwargs: Any
) -> Response:
    """GET with retries on transport errors and 5xx, caching anything else.

    Returns:
        Tuple of (status_code, headers_dict, body_text). A status of 0 means
        every attempt failed; the body then carries the last error text.
    """
    key = _cache_key(url, headers)
    target = safe_url(url)
    hit = _cached(key)
    if hit is not None:
        _trace("HTTP cache hit", event="cache_hit", action="GET", target=target)
        return hit

    last_error = None
    for attempt in range(1, Constants.HTTP_RETRY_MAX + 1):
        if attempt > 1:
            time.sleep(Constants.HTTP_RETRY_BASE_DELAY_SEC * (2 ** (attempt - 2)))
        _trace("HTTP request", event="http_request", action="GET", target=target, attempt=attempt)
        with Timer() as t:
            try:
                res = requests.get(url, timeout=Constants.REQUEST_TIMEOUT, headers=headers, **kwargs)
            except requests.Timeout:
                last_error = "timeout"
                _trace("HTTP timeout", event="http_exception", outcome="timeout", attempt=attempt, target=target)
                continue
            except requests.RequestException as exc:
                last_error = str(exc)
                _trace("HTTP request exception", event="http_exception", outcome="request_exception",
                       attempt=attempt, target=target)
                continue
        if res.status_code >= 500:
            last_error = f"HTTP {res.status_code}"
            _trace("HTTP server error", event="http_response", outcome="retry",
                   status_code=res.status_code, attempt=attempt, target=target)
            continue
        response = (res.status_code, dict(res.headers), res.text)
        _http_cache[key] = (response, time.time())
        _trace("HTTP response", event="http_response", action="GET", outcome="success",
               status_code=res.status_code, duration_ms=t.duration_ms(), target=target)
        return response

    logger.warning("GET %s failed after %d attempts: %s", target, Constants.HTTP_RETRY_MAX, last_error)
    return 0, {}, f"Request failed after {Constants.HTTP_RETRY_MAX} attempts: {last_error}"


def get_json(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    **kwargs: Any
) -> Tuple[int, Dict[str, str], Optional[Any]]:
    """GET and decode JSON. The payload is None unless the status is 200 and the body parses."""
    status_code, response_headers, text = robust_get(url, headers=headers, **kwargs)
    if status_code != 200 or not text:
        return status_code, response_headers, None
    try:
        return status_code, response_headers, json.loads(text)
    except json.JSONDecodeError:
        _trace("JSON decode error", event="parse", action="get_json", outcome="json_decode_error",
               status_code=status_code, target=safe_url(url))
        return status_code, response_headers, None


def download_file(url: str, dest: str) -> str:
    """Stream ``url`` into ``dest`` and return the file's sha256 hex digest.

    The body is written to ``dest + '.part'`` and renamed on completion, so
    ``dest`` only ever holds a complete download.

    Raises:
        requests.RequestException: transport failure or non-2xx status.
    """
    part = dest + ".part"
    digest = hashlib.sha256()
    with Timer() as t:
        with requests.get(url, stream=True, timeout=Constants.REQUEST_TIMEOUT) as response:
            response.raise_for_status()
            with open(part, "wb") as fh:
                for chunk in response.iter_content(chunk_size=Constants.DOWNLOAD_CHUNK_SIZE):
                    if chunk:
                        fh.write(chunk)
                        digest.update(chunk)
        os.replace(part, dest)
    _trace("Downloaded file", event="download", outcome="success",
           duration_ms=t.duration_ms(), target=safe_url(url))
    return digest.hexdigest()
