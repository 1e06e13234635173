"""
Entry point: one refresh cycle (--once) or the adaptive scheduler loop.
"""
from __future__ import annotations

import argparse
import asyncio
import logging

import config
from scheduler import QuoteScheduler, build_scheduler

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=config.LOG_LEVEL,
    )


def print_summary(scheduler: QuoteScheduler, all_ok: bool) -> None:
    state = scheduler.current
    snap = state.last_data
    print(f"Run status: {'ok' if all_ok else 'degraded'}")
    print(
        "Summary: "
        f"usd_jpy={snap.fx.rate} stale={snap.fx.stale} | "
        f"spx={snap.spx.value} stale={snap.spx.stale} ({snap.spx.label}) | "
        f"btc={snap.crypto.btc.usd}/{snap.crypto.btc.jpy} stale={snap.crypto.btc.stale} | "
        f"eth={snap.crypto.eth.usd}/{snap.crypto.eth.jpy} stale={snap.crypto.eth.stale}"
    )
    print(f"Next delay: {scheduler.next_delay()}s (failure_count={scheduler.failure_count})")


async def run_once(scheduler: QuoteScheduler) -> int:
    outcomes = await scheduler.run_cycle()
    print_summary(scheduler, outcomes.all_ok)
    failed = outcomes.failed_fields()
    if failed:
        print("Failed cascades:")
        for name in failed:
            print(f"- {name}: {getattr(outcomes, name).error}")
        return 1
    return 0


async def run_forever(scheduler: QuoteScheduler) -> None:
    await scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.stop()


def main() -> int:
    parser = argparse.ArgumentParser(description="Collect USD/JPY, S&P 500 and crypto quotes with fallback and backoff.")
    parser.add_argument("--once", action="store_true", help="Run a single refresh cycle and exit.")
    parser.add_argument("--fmp", default=config.FMP_API_KEY, help="Optional FMP API key for the live-ish index tier.")
    parser.add_argument("--interval", type=int, default=None, help="Base poll interval in seconds.")
    args = parser.parse_args()

    if args.interval is not None and args.interval <= 0:
        raise SystemExit("--interval must be greater than 0")

    configure_logging()
    scheduler = build_scheduler(index_api_key=args.fmp)
    if args.interval is not None:
        scheduler.set_interval(args.interval)

    if args.once:
        return asyncio.run(run_once(scheduler))
    try:
        asyncio.run(run_forever(scheduler))
    except KeyboardInterrupt:
        logger.info("Stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
