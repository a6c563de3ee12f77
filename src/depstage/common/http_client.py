"""Shared HTTP helpers used by remote repositories.

Encapsulates retry, timeout and caching behavior so repository code avoids
duplicating try/except blocks.
"""
from __future__ import annotations

import logging
import os
import tempfile
import time
from typing import Any, Dict, Optional, Tuple

import requests

from ..constants import Constants
from ..errors import RepositoryError
from .logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

# Simple in-memory cache for metadata responses
_http_cache: Dict[str, Tuple[Any, float]] = {}


def _get_cache_key(method: str, url: str, headers: Optional[Dict[str, str]] = None) -> str:
    """Generate cache key from request parameters."""
    headers_str = str(sorted(headers.items())) if headers else ""
    return f"{method}:{url}:{headers_str}"


def _is_cache_valid(cache_entry: Tuple[Any, float]) -> bool:
    """Check if cache entry is still valid."""
    _, cached_time = cache_entry
    return time.time() - cached_time < Constants.HTTP_CACHE_TTL_SEC


def clear_cache() -> None:
    """Drop all cached responses."""
    _http_cache.clear()


def _default_headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    merged = {"User-Agent": Constants.USER_AGENT}
    if headers:
        merged.update(headers)
    return merged


def robust_get(
    url: str,
    *,
    session: Optional[requests.Session] = None,
    headers: Optional[Dict[str, str]] = None,
    **kwargs: Any
) -> Tuple[int, Dict[str, str], str]:
    """Perform GET request with timeout, retries, and caching.

    Returns:
        Tuple of (status_code, headers_dict, text). status_code is 0 when every
        attempt failed at the transport level.
    """
    cache_key = _get_cache_key("GET", url, headers)
    safe_target = safe_url(url)

    if cache_key in _http_cache and _is_cache_valid(_http_cache[cache_key]):
        cached_data, _ = _http_cache[cache_key]
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP cache hit",
                extra=extra_context(
                    event="cache_hit",
                    component="http_client",
                    action="GET",
                    target=safe_target
                )
            )
        return cached_data

    getter = session.get if session is not None else requests.get
    last_exception = None

    for attempt in range(Constants.HTTP_RETRY_MAX):
        if attempt:
            time.sleep(Constants.HTTP_RETRY_BASE_DELAY_SEC * (2 ** (attempt - 1)))
        with Timer() as t:
            try:
                response = getter(
                    url,
                    timeout=Constants.REQUEST_TIMEOUT,
                    headers=_default_headers(headers),
                    **kwargs
                )
            except requests.Timeout:
                last_exception = "timeout"
                logger.debug(
                    "HTTP timeout",
                    extra=extra_context(
                        event="http_exception",
                        component="http_client",
                        action="GET",
                        outcome="timeout",
                        attempt=attempt + 1,
                        target=safe_target
                    )
                )
                continue
            except requests.RequestException as exc:
                last_exception = str(exc)
                logger.debug(
                    "HTTP request exception",
                    extra=extra_context(
                        event="http_exception",
                        component="http_client",
                        action="GET",
                        outcome="request_exception",
                        attempt=attempt + 1,
                        target=safe_target
                    )
                )
                continue

        if response.status_code >= 500:
            last_exception = f"HTTP {response.status_code}"
            continue

        cache_data = (response.status_code, dict(response.headers), response.text)
        _http_cache[cache_key] = (cache_data, time.time())
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response ok",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    outcome="success",
                    status_code=response.status_code,
                    duration_ms=t.duration_ms(),
                    target=safe_target
                )
            )
        return cache_data

    return 0, {}, f"Request failed after {Constants.HTTP_RETRY_MAX} attempts: {last_exception}"


def download(url: str, dest: str, *, session: Optional[requests.Session] = None) -> Optional[str]:
    """Stream ``url`` into ``dest``; the file appears only once complete.

    Returns ``dest``, or None when the server answers 404.

    Raises:
        RepositoryError: on transport failures, non-200 responses or when the
            file cannot be stored locally.
    """
    getter = session.get if session is not None else requests.get
    safe_target = safe_url(url)
    target_dir = os.path.dirname(dest) or "."
    with Timer() as t:
        try:
            os.makedirs(target_dir, exist_ok=True)
            with getter(url, stream=True, timeout=Constants.REQUEST_TIMEOUT,
                        headers=_default_headers(None)) as response:
                if response.status_code == 404:
                    return None
                if response.status_code != 200:
                    raise RepositoryError(f"GET {safe_target} returned HTTP {response.status_code}")
                fd, tmp = tempfile.mkstemp(dir=target_dir, prefix=".download-")
                try:
                    with os.fdopen(fd, "wb") as fh:
                        for chunk in response.iter_content(chunk_size=65536):
                            if chunk:
                                fh.write(chunk)
                    os.replace(tmp, dest)
                except BaseException:
                    if os.path.exists(tmp):
                        os.unlink(tmp)
                    raise
        except requests.RequestException as exc:
            raise RepositoryError(f"GET {safe_target} failed: {exc}") from exc
        except OSError as exc:
            raise RepositoryError(f"Unable to store {safe_target} in {target_dir}: {exc}") from exc
    logger.debug(
        "Downloaded artifact",
        extra=extra_context(
            event="download",
            component="http_client",
            outcome="success",
            duration_ms=t.duration_ms(),
            target=safe_target
        )
    )
    return dest
