"""USD to JPY rate: Frankfurter with open.er-api fallback.

Both services are free, need no API key, and return ``rates.JPY``.
"""
from __future__ import annotations

import logging

from .common import AllProvidersFailedError, FetchError, MalformedResponseError, fetch_json, finite_or_none
from .types import CascadeOutcome, FxReading

logger = logging.getLogger(__name__)

FX_PROVIDERS = (
    ("Frankfurter", "https://api.frankfurter.dev/latest?from=USD&to=JPY"),
    ("open.er-api", "https://open.er-api.com/v6/latest/USD"),
)


def parse_jpy_rate(payload: object, provider: str) -> float:
    rates = payload.get("rates") if isinstance(payload, dict) else None
    rate = finite_or_none(rates.get("JPY")) if isinstance(rates, dict) else None
    if rate is None or rate <= 0:
        raise MalformedResponseError(f"{provider} no rate")
    return rate


async def fetch_usd_jpy() -> CascadeOutcome[FxReading]:
    attempts: list[str] = []
    for name, url in FX_PROVIDERS:
        try:
            rate = parse_jpy_rate(await fetch_json(url), name)
            logger.info("[FX] via %s", name)
            return CascadeOutcome.success(FxReading(rate=rate, source=name))
        except FetchError as err:
            logger.warning("[FX] %s failed -> fallback: %s", name, err)
            attempts.append(f"{name}: {err}")
    return CascadeOutcome.failure(AllProvidersFailedError("All FX sources failed", attempts))
