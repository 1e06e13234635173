"""S&P 500 level: FMP (optional), then the local EOD cache, then text proxies.

The index is published once per trading day by most free sources, so a
pre-fetched cache document is preferred over scraping. The r.jina.ai proxy
list is the last resort; each body is sniffed by ordered parsers since the
wrapped sites answer in different shapes.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable
from urllib.parse import quote

from config import CACHE_TIMEOUT_MS, PROXY_TIMEOUT_MS, SPX_CACHE_URL
from .common import (
    AllProvidersFailedError,
    FetchError,
    MalformedResponseError,
    epoch_millis,
    fetch_json,
    fetch_text,
    finite_or_none,
)
from .types import CascadeOutcome, IndexReading

logger = logging.getLogger(__name__)

FMP_QUOTE_URL = "https://financialmodelingprep.com/api/v3/quote/%5EGSPC?apikey={key}"

# ^ is double-encoded (%255E) so it survives the proxy hop.
PROXY_URLS = (
    "https://r.jina.ai/https://stooq.com/q/d/l/?s=%255Espx&i=d",
    "https://r.jina.ai/http://stooq.com/q/d/l/?s=%255Espx&i=d",
    "https://r.jina.ai/http://stooq.pl/q/d/l/?s=%255Espx&i=d",
    "https://r.jina.ai/https://stooq.com/q/l/?s=%255Espx&i=",
    "https://r.jina.ai/http://stooq.com/q/l/?s=%255Espx&i=",
    "https://r.jina.ai/https://query1.finance.yahoo.com/v7/finance/quote?symbols=%255EGSPC",
)

LABEL_FMP = "Live-ish (FMP)"
LABEL_CACHE = "EOD (cache)"
LABEL_PROXY = "EOD (proxy)"

_ISO_DATE_ROW = re.compile(r"^\d{4}-\d{2}-\d{2},", re.MULTILINE)


@dataclass(frozen=True)
class ProxyBodyParser:
    name: str
    accepts: Callable[[str], bool]
    parse: Callable[[str], tuple[float | None, str | None]]


def _last_line_fields(text: str) -> list[str]:
    return text.split("\n")[-1].split(",")


def _parse_csv_daily(text: str) -> tuple[float | None, str | None]:
    fields = _last_line_fields(text)
    if len(fields) < 5:
        return None, None
    return finite_or_none(fields[4]), fields[0].strip()


def _parse_ticker_line(text: str) -> tuple[float | None, str | None]:
    fields = _last_line_fields(text)
    if len(fields) < 2:
        return None, None
    return finite_or_none(fields[1]), None


def _parse_market_price_json(text: str) -> tuple[float | None, str | None]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return None, None
    envelope = payload.get("quoteResponse") if isinstance(payload, dict) else None
    result = envelope.get("result") if isinstance(envelope, dict) else None
    if not isinstance(result, list) or not result or not isinstance(result[0], dict):
        return None, None
    return finite_or_none(result[0].get("regularMarketPrice")), None


PROXY_BODY_PARSERS = (
    ProxyBodyParser("csv_daily", lambda t: bool(_ISO_DATE_ROW.search(t)), _parse_csv_daily),
    ProxyBodyParser("ticker_line", lambda t: t.startswith("^"), _parse_ticker_line),
    ProxyBodyParser("market_price_json", lambda t: '"regularMarketPrice"' in t, _parse_market_price_json),
)


def parse_proxy_body(body: str) -> tuple[float, str | None]:
    """Return ``(value, date)`` from a proxied body or raise MalformedResponseError."""
    text = body.strip()
    for parser in PROXY_BODY_PARSERS:
        if not parser.accepts(text):
            continue
        value, date = parser.parse(text)
        if value is None:
            raise MalformedResponseError(f"{parser.name}: no finite value")
        return value, date
    raise MalformedResponseError("Unrecognized proxy body")


async def _from_fmp(api_key: str) -> IndexReading:
    payload = await fetch_json(FMP_QUOTE_URL.format(key=quote(api_key, safe="")), timeout_ms=PROXY_TIMEOUT_MS)
    first = payload[0] if isinstance(payload, list) and payload else None
    price = finite_or_none(first.get("price")) if isinstance(first, dict) else None
    if price is None:
        raise MalformedResponseError("FMP response missing price")
    return IndexReading(value=price, label=LABEL_FMP, source="fmp")


async def _from_cache(cache_url: str) -> IndexReading:
    separator = "&" if "?" in cache_url else "?"
    payload = await fetch_json(f"{cache_url}{separator}ts={epoch_millis()}", timeout_ms=CACHE_TIMEOUT_MS)
    value = finite_or_none(payload.get("value")) if isinstance(payload, dict) else None
    if value is None:
        raise MalformedResponseError("Cache document missing value")
    date = payload.get("date")
    return IndexReading(value=value, label=LABEL_CACHE, source="cache", date=date if isinstance(date, str) else None)


async def _from_proxy(url: str) -> IndexReading:
    value, date = parse_proxy_body(await fetch_text(url, timeout_ms=PROXY_TIMEOUT_MS))
    return IndexReading(value=value, label=LABEL_PROXY, source="proxy", date=date)


async def fetch_spx(api_key: str | None = None, cache_url: str = SPX_CACHE_URL) -> CascadeOutcome[IndexReading]:
    tiers: list[tuple[str, Callable[[], Awaitable[IndexReading]]]] = []
    if api_key:
        tiers.append(("FMP", lambda: _from_fmp(api_key)))
    tiers.append(("cache", lambda: _from_cache(cache_url)))
    for url in PROXY_URLS:
        tiers.append((f"proxy {url}", lambda url=url: _from_proxy(url)))

    attempts: list[str] = []
    for name, tier in tiers:
        try:
            reading = await tier()
            logger.info("[SPX] via %s", name)
            return CascadeOutcome.success(reading)
        except FetchError as err:
            logger.warning("[SPX] %s failed -> next: %s", name, err)
            attempts.append(f"{name}: {err}")
    return CascadeOutcome.failure(AllProvidersFailedError("All SPX sources failed", attempts))
