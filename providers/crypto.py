"""Coinbase spot prices for BTC and ETH in USD and JPY.

Uses the public Coinbase API (no authentication required):
  GET https://api.coinbase.com/v2/prices/{base}-{quote}/spot
"""
from __future__ import annotations

import asyncio
import logging

from .common import AllProvidersFailedError, FetchError, fetch_json, finite_or_none
from .types import CascadeOutcome, CryptoReading, PairReading

logger = logging.getLogger(__name__)

COINBASE_SPOT_URL = "https://api.coinbase.com/v2/prices/{product}/spot"
CRYPTO_SOURCE = "Coinbase"


async def _fetch_spot(product: str) -> float | None:
    try:
        payload = await fetch_json(COINBASE_SPOT_URL.format(product=product))
    except FetchError as err:
        logger.warning("[Crypto] %s failed: %s", product, err)
        return None
    data = payload.get("data") if isinstance(payload, dict) else None
    return finite_or_none(data.get("amount")) if isinstance(data, dict) else None


async def fetch_crypto() -> CascadeOutcome[CryptoReading]:
    btc_usd, btc_jpy, eth_usd, eth_jpy = await asyncio.gather(
        _fetch_spot("BTC-USD"),
        _fetch_spot("BTC-JPY"),
        _fetch_spot("ETH-USD"),
        _fetch_spot("ETH-JPY"),
    )
    reading = CryptoReading(
        btc=PairReading(usd=btc_usd, jpy=btc_jpy),
        eth=PairReading(usd=eth_usd, jpy=eth_jpy),
        source=CRYPTO_SOURCE,
    )
    if not reading.btc.complete and not reading.eth.complete:
        return CascadeOutcome.failure(AllProvidersFailedError("Crypto fetch failed"), partial=reading)
    logger.info("[Crypto] via %s (btc complete=%s, eth complete=%s)", CRYPTO_SOURCE, reading.btc.complete, reading.eth.complete)
    return CascadeOutcome.success(reading)
