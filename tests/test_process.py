from __future__ import annotations

import asyncio
import math
import unittest
from unittest.mock import AsyncMock, patch

import config
from models import CryptoPairQuote, CryptoQuotes, FxQuote, IndexQuote, PersistedState, Snapshot, Sources
from process import CycleOutcomes, collect_all_quotes, merge_snapshot, merge_sources, refresh_state
from providers.common import AllProvidersFailedError
from providers.types import CascadeOutcome, CryptoReading, FxReading, IndexReading, PairReading


def _failed(partial=None) -> CascadeOutcome:
    return CascadeOutcome.failure(AllProvidersFailedError("down"), partial=partial)


def _previous() -> Snapshot:
    return Snapshot(
        fx=FxQuote(rate=150.0, source="Frankfurter", stale=False),
        spx=IndexQuote(value=4700.0, label="EOD (cache)", source="cache", stale=False, date="2024-01-01"),
        crypto=CryptoQuotes(
            btc=CryptoPairQuote(usd=49000.0, jpy=7400000.0, stale=False),
            eth=CryptoPairQuote(usd=2400.0, jpy=360000.0, stale=False),
        ),
    )


FX_OK = CascadeOutcome.success(FxReading(rate=151.5, source="open.er-api"))
SPX_OK = CascadeOutcome.success(IndexReading(value=4742.0, label="EOD (proxy)", source="proxy", date="2024-01-02"))
CRYPTO_OK = CascadeOutcome.success(
    CryptoReading(btc=PairReading(usd=50000.0, jpy=7500000.0), eth=PairReading(usd=2500.0, jpy=370000.0))
)


class MergeSnapshotTests(unittest.TestCase):
    def test_full_failure_only_flips_stale(self) -> None:
        prev = _previous()
        merged = merge_snapshot(prev, _failed(), _failed(), _failed())

        expected = Snapshot(
            fx=prev.fx.model_copy(update={"stale": True}),
            spx=prev.spx.model_copy(update={"stale": True}),
            crypto=CryptoQuotes(
                btc=prev.crypto.btc.model_copy(update={"stale": True}),
                eth=prev.crypto.eth.model_copy(update={"stale": True}),
            ),
        )
        self.assertEqual(expected, merged)
        self.assertFalse(prev.fx.stale)

    def test_fx_failure_leaves_other_fields_alone(self) -> None:
        merged = merge_snapshot(_previous(), _failed(), SPX_OK, CRYPTO_OK)

        self.assertEqual(150.0, merged.fx.rate)
        self.assertTrue(merged.fx.stale)
        self.assertEqual(IndexQuote(value=4742.0, label="EOD (proxy)", source="proxy", stale=False, date="2024-01-02"), merged.spx)
        self.assertEqual(CryptoPairQuote(usd=50000.0, jpy=7500000.0, stale=False), merged.crypto.btc)
        self.assertEqual(CryptoPairQuote(usd=2500.0, jpy=370000.0, stale=False), merged.crypto.eth)

    def test_index_tier_without_date_clears_previous_date(self) -> None:
        fmp = CascadeOutcome.success(IndexReading(value=4790.0, label="Live-ish (FMP)", source="fmp"))
        merged = merge_snapshot(_previous(), FX_OK, fmp, CRYPTO_OK)

        self.assertEqual(4790.0, merged.spx.value)
        self.assertIsNone(merged.spx.date)
        self.assertFalse(merged.spx.stale)

    def test_crypto_partial_recovery(self) -> None:
        partial = CryptoReading(btc=PairReading(usd=50000.0, jpy=None), eth=PairReading(usd=None, jpy=None))
        merged = merge_snapshot(_previous(), FX_OK, SPX_OK, _failed(partial=partial))

        self.assertEqual(50000.0, merged.crypto.btc.usd)
        self.assertEqual(7400000.0, merged.crypto.btc.jpy)
        self.assertTrue(merged.crypto.btc.stale)
        self.assertEqual(CryptoPairQuote(usd=2400.0, jpy=360000.0, stale=True), merged.crypto.eth)

    def test_crypto_success_with_incomplete_asset_is_stale(self) -> None:
        reading = CryptoReading(btc=PairReading(usd=51000.0, jpy=None), eth=PairReading(usd=2600.0, jpy=380000.0))
        merged = merge_snapshot(_previous(), FX_OK, SPX_OK, CascadeOutcome.success(reading))

        self.assertEqual(CryptoPairQuote(usd=51000.0, jpy=7400000.0, stale=True), merged.crypto.btc)
        self.assertEqual(CryptoPairQuote(usd=2600.0, jpy=380000.0, stale=False), merged.crypto.eth)

    def test_first_run_failures_are_no_data_placeholders(self) -> None:
        merged = merge_snapshot(None, _failed(), SPX_OK, _failed())

        self.assertTrue(math.isnan(merged.fx.rate))
        self.assertTrue(merged.fx.stale)
        self.assertIsNone(merged.fx.source)
        self.assertFalse(merged.spx.stale)
        self.assertTrue(math.isnan(merged.crypto.btc.usd))
        self.assertTrue(math.isnan(merged.crypto.eth.jpy))
        self.assertTrue(merged.crypto.eth.stale)

    def test_numeric_fields_are_finite_unless_stale(self) -> None:
        partial = CryptoReading(btc=PairReading(usd=1.0, jpy=None), eth=PairReading(usd=None, jpy=None))
        merged = merge_snapshot(None, FX_OK, _failed(), _failed(partial=partial))
        pairs = [
            (merged.fx.rate, merged.fx.stale),
            (merged.spx.value, merged.spx.stale),
            (merged.crypto.btc.usd, merged.crypto.btc.stale),
            (merged.crypto.btc.jpy, merged.crypto.btc.stale),
            (merged.crypto.eth.usd, merged.crypto.eth.stale),
        ]
        for value, stale in pairs:
            self.assertTrue(math.isfinite(value) or stale)


class MergeSourcesTests(unittest.TestCase):
    def test_only_successful_cascades_update_attribution(self) -> None:
        prev = Sources(fx="Frankfurter", crypto="Coinbase", spx="cache")
        merged = merge_sources(prev, FX_OK, _failed(), _failed())
        self.assertEqual(Sources(fx="open.er-api", crypto="Coinbase", spx="cache"), merged)


class RefreshStateTests(unittest.TestCase):
    def test_refresh_state_stamps_time_and_keeps_interval(self) -> None:
        state = PersistedState(last_data=_previous(), interval_sec=120)
        outcomes = CycleOutcomes(fx=FX_OK, spx=_failed(), crypto=CRYPTO_OK)

        new_state = refresh_state(state, outcomes, now_ms=1_700_000_000_000)

        self.assertFalse(outcomes.all_ok)
        self.assertEqual(["spx"], outcomes.failed_fields())
        self.assertEqual(1_700_000_000_000, new_state.last_updated)
        self.assertEqual(120, new_state.interval_sec)
        self.assertEqual("open.er-api", new_state.sources.fx)
        self.assertTrue(new_state.last_data.spx.stale)
        self.assertIsNone(state.last_updated)


class CollectAllQuotesTests(unittest.IsolatedAsyncioTestCase):
    async def test_cascades_start_together_and_settle_jointly(self) -> None:
        started: list[str] = []
        release = asyncio.Event()

        def gated(name: str, outcome: CascadeOutcome) -> AsyncMock:
            async def run(*args, **kwargs) -> CascadeOutcome:
                started.append(name)
                await release.wait()
                return outcome

            return AsyncMock(side_effect=run)

        fx, spx, crypto = gated("fx", FX_OK), gated("spx", SPX_OK), gated("crypto", CRYPTO_OK)
        with patch("process.fetch_usd_jpy", fx), patch("process.fetch_spx", spx), patch("process.fetch_crypto", crypto):
            task = asyncio.create_task(collect_all_quotes("premium"))
            for _ in range(5):
                await asyncio.sleep(0)

            self.assertEqual({"fx", "spx", "crypto"}, set(started))
            self.assertFalse(task.done())

            release.set()
            outcomes = await task

        self.assertTrue(outcomes.all_ok)
        self.assertIs(SPX_OK, outcomes.spx)
        spx.assert_awaited_once_with(api_key="premium", cache_url=config.SPX_CACHE_URL)


if __name__ == "__main__":
    unittest.main()
