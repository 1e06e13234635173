from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass

import config
from models import CryptoPairQuote, CryptoQuotes, FxQuote, IndexQuote, PersistedState, Snapshot, Sources
from providers import (
    CascadeOutcome,
    CryptoReading,
    FxReading,
    IndexReading,
    PairReading,
    fetch_crypto,
    fetch_spx,
    fetch_usd_jpy,
)
from providers.common import epoch_millis

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CycleOutcomes:
    fx: CascadeOutcome[FxReading]
    spx: CascadeOutcome[IndexReading]
    crypto: CascadeOutcome[CryptoReading]

    @property
    def all_ok(self) -> bool:
        return self.fx.ok and self.spx.ok and self.crypto.ok

    def failed_fields(self) -> list[str]:
        return [name for name in ("fx", "spx", "crypto") if not getattr(self, name).ok]


async def collect_all_quotes(index_api_key: str | None = None) -> CycleOutcomes:
    """Run the three cascades concurrently; returns once all have settled."""
    fx, spx, crypto = await asyncio.gather(
        fetch_usd_jpy(),
        fetch_spx(api_key=index_api_key, cache_url=config.SPX_CACHE_URL),
        fetch_crypto(),
    )
    return CycleOutcomes(fx=fx, spx=spx, crypto=crypto)


def _is_finite(value: float | None) -> bool:
    return value is not None and math.isfinite(value)


def _apply_pair(previous: CryptoPairQuote, reading: PairReading | None, stale: bool) -> CryptoPairQuote:
    update: dict = {"stale": stale}
    if reading is not None:
        if _is_finite(reading.usd):
            update["usd"] = reading.usd
        if _is_finite(reading.jpy):
            update["jpy"] = reading.jpy
    return previous.model_copy(update=update)


def merge_snapshot(
    previous: Snapshot | None,
    fx: CascadeOutcome[FxReading],
    spx: CascadeOutcome[IndexReading],
    crypto: CascadeOutcome[CryptoReading],
) -> Snapshot:
    """Build the next snapshot from the previous one and this cycle's outcomes.

    Failed fields keep their previous values and are flagged stale. A failed
    crypto cascade still contributes whichever legs it fetched individually.
    """
    base = previous or Snapshot()

    if fx.ok:
        new_fx = FxQuote(rate=fx.value.rate, source=fx.value.source, stale=False)
    else:
        new_fx = base.fx.model_copy(update={"stale": True})

    if spx.ok:
        reading = spx.value
        new_spx = IndexQuote(value=reading.value, label=reading.label, source=reading.source, stale=False, date=reading.date)
    else:
        new_spx = base.spx.model_copy(update={"stale": True})

    if crypto.ok:
        reading = crypto.value
        btc = _apply_pair(base.crypto.btc, reading.btc, stale=not reading.btc.complete)
        eth = _apply_pair(base.crypto.eth, reading.eth, stale=not reading.eth.complete)
    else:
        partial = crypto.partial
        btc = _apply_pair(base.crypto.btc, partial.btc if partial else None, stale=True)
        eth = _apply_pair(base.crypto.eth, partial.eth if partial else None, stale=True)

    return Snapshot(fx=new_fx, spx=new_spx, crypto=CryptoQuotes(btc=btc, eth=eth))


def merge_sources(
    previous: Sources,
    fx: CascadeOutcome[FxReading],
    spx: CascadeOutcome[IndexReading],
    crypto: CascadeOutcome[CryptoReading],
) -> Sources:
    update: dict = {}
    if fx.ok:
        update["fx"] = fx.value.source
    if spx.ok:
        update["spx"] = spx.value.source
    if crypto.ok:
        update["crypto"] = crypto.value.source
    return previous.model_copy(update=update)


def refresh_state(state: PersistedState, outcomes: CycleOutcomes, now_ms: int | None = None) -> PersistedState:
    if not outcomes.all_ok:
        logger.warning("Cycle degraded, keeping last-known values for: %s", ", ".join(outcomes.failed_fields()))
    snapshot = merge_snapshot(state.last_data, outcomes.fx, outcomes.spx, outcomes.crypto)
    sources = merge_sources(state.sources, outcomes.fx, outcomes.spx, outcomes.crypto)
    return state.model_copy(
        update={
            "last_data": snapshot,
            "last_updated": now_ms if now_ms is not None else epoch_millis(),
            "sources": sources,
        }
    )
