from __future__ import annotations

import asyncio
import http.client
import json
import math
import time
import urllib.error
import urllib.request
from typing import Any

from config import DEFAULT_TIMEOUT_MS

USER_AGENT = "MarketNowBot/1.0 (+https://github.com/)"


class FetchError(Exception):
    pass


class FetchTimeoutError(FetchError, TimeoutError):
    pass


class HttpError(FetchError):
    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class MalformedResponseError(FetchError):
    pass


class AllProvidersFailedError(FetchError):
    def __init__(self, message: str, attempts: list[str] | None = None) -> None:
        self.attempts = list(attempts or [])
        if self.attempts:
            message = f"{message}: {'; '.join(self.attempts)}"
        super().__init__(message)


def epoch_millis() -> int:
    return int(time.time() * 1000)


def finite_or_none(value: Any) -> float | None:
    """Coerce a payload field to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def fetch_url(url: str, timeout: float) -> str:
    """Blocking GET with caching disabled. Redirects are followed by urllib."""
    try:
        req = urllib.request.Request(
            url,
            headers={
                "User-Agent": USER_AGENT,
                "Cache-Control": "no-cache",
                "Pragma": "no-cache",
            },
        )
        with urllib.request.urlopen(req, timeout=timeout) as response:
            status = getattr(response, "status", 200)
            if status is None or not 200 <= status < 300:
                raise HttpError(f"HTTP {status}: {url}", status=status)
            return response.read().decode("utf-8", errors="ignore")
    except urllib.error.HTTPError as err:
        raise HttpError(f"HTTP {err.code}: {url}", status=err.code) from err
    except TimeoutError as err:
        raise FetchTimeoutError(f"Timeout {timeout:g}s: {url}") from err
    except urllib.error.URLError as err:
        if isinstance(err.reason, TimeoutError):
            raise FetchTimeoutError(f"Timeout {timeout:g}s: {url}") from err
        raise HttpError(f"HTTP None: {url}: {err.reason}") from err
    except (OSError, http.client.HTTPException) as err:
        raise HttpError(f"HTTP None: {url}: {err}") from err
    except ValueError as err:
        # unknown url type, e.g. a relative cache path
        raise HttpError(f"HTTP None: {url}: {err}") from err


async def fetch_text(url: str, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> str:
    """Race ``fetch_url`` on a worker thread against a wall-clock timer.

    On timeout the worker thread is abandoned, not stopped; the socket
    timeout passed to urllib bounds how long it lingers.
    """
    timeout = timeout_ms / 1000
    try:
        return await asyncio.wait_for(asyncio.to_thread(fetch_url, url, timeout), timeout=timeout)
    except FetchTimeoutError:
        raise
    except asyncio.TimeoutError as err:
        raise FetchTimeoutError(f"Timeout {timeout_ms}ms: {url}") from err


async def fetch_json(url: str, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> Any:
    text = await fetch_text(url, timeout_ms=timeout_ms)
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"Invalid JSON from {url}: {exc}") from exc
