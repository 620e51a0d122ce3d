from __future__ import annotations

"""Lightweight HTTP client util with retry.

Uses stdlib urllib; rate providers only need GET-JSON and a HEAD liveness
probe. The timeout applies per attempt: a call with ``retries=n`` may block
for up to ``(n + 1) * timeout`` plus backoff, so the failover path runs with
no retries by default.
"""
import json
import time
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, Mapping, Optional


class HttpError(Exception):
    pass


def build_url(url: str, params: Optional[Mapping[str, str]] = None) -> str:
    if not params:
        return url
    return f"{url}?{urllib.parse.urlencode(params)}"


def get_json(
    url: str,
    *,
    params: Optional[Mapping[str, str]] = None,
    timeout: float = 15.0,
    retries: int = 1,
    backoff: float = 0.5,
) -> Dict[str, Any]:
    full_url = build_url(url, params)
    last_err: Optional[Exception] = None
    for attempt in range(retries + 1):
        try:
            with urllib.request.urlopen(full_url, timeout=timeout) as resp:  # nosec B310
                if resp.status >= 400:
                    raise HttpError(f"HTTP {resp.status} for {url}")
                data = json.loads(resp.read().decode("utf-8"))
                if not isinstance(data, dict):
                    raise ValueError("expected a JSON object")
                return data
        except (
            urllib.error.URLError,
            TimeoutError,
            OSError,
            HttpError,
            ValueError,
        ) as e:  # ValueError for JSON decode
            last_err = e
            if attempt == retries:
                break
            time.sleep(backoff * (2**attempt))
    raise HttpError(f"Failed to fetch JSON from {url}: {last_err}")


def probe(
    url: str, *, params: Optional[Mapping[str, str]] = None, timeout: float = 5.0
) -> bool:
    """HEAD request liveness check; returns False instead of raising."""
    req = urllib.request.Request(build_url(url, params), method="HEAD")
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:  # nosec B310
            return 200 <= resp.status < 300
    except (urllib.error.URLError, TimeoutError, OSError, ValueError):
        return False
