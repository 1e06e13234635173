"""Read-only view of the published state for display clients.

Stale fields are always included and flagged. Values that were never
obtained come out as ``None`` with the ``"—"`` placeholder, never as zero.
"""
from __future__ import annotations

import math
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from models import CryptoPairQuote, PersistedState

NO_DATA_PLACEHOLDER = "—"
JST = ZoneInfo("Asia/Tokyo")


def finite_or_none(value: float | None) -> float | None:
    if value is None or not math.isfinite(value):
        return None
    return value


def display_number(value: float | None, places: int = 2) -> str:
    value = finite_or_none(value)
    if value is None:
        return NO_DATA_PLACEHOLDER
    return f"{value:,.{places}f}"


def to_jst_string(epoch_ms: int | None) -> str | None:
    if epoch_ms is None:
        return None
    stamp = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).astimezone(JST)
    return stamp.strftime("%Y-%m-%d %H:%M:%S JST")


def _pair_view(pair: CryptoPairQuote) -> dict:
    return {
        "usd": finite_or_none(pair.usd),
        "jpy": finite_or_none(pair.jpy),
        "usd_display": display_number(pair.usd),
        "jpy_display": display_number(pair.jpy),
        "stale": pair.stale,
    }


def snapshot_view(state: PersistedState) -> dict:
    snap = state.last_data
    view: dict = {
        "fx": None,
        "spx": None,
        "crypto": None,
        "last_updated": state.last_updated,
        "last_updated_jst": to_jst_string(state.last_updated),
        "interval_sec": state.interval_sec,
        "sources": state.sources.model_dump(),
        "premium_index": False,
    }
    if snap is None:
        return view

    view["fx"] = {
        "rate": finite_or_none(snap.fx.rate),
        "display": display_number(snap.fx.rate),
        "source": snap.fx.source,
        "stale": snap.fx.stale,
    }
    view["spx"] = {
        "value": finite_or_none(snap.spx.value),
        "display": display_number(snap.spx.value),
        "label": snap.spx.label,
        "date": snap.spx.date,
        "source": snap.spx.source,
        "stale": snap.spx.stale,
    }
    view["crypto"] = {
        "btc": _pair_view(snap.crypto.btc),
        "eth": _pair_view(snap.crypto.eth),
    }
    view["premium_index"] = snap.spx.source == "fmp" and not snap.spx.stale
    return view
