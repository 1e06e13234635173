from __future__ import annotations

import math
from typing import Annotated

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer

from config import INTERVAL_SEC

NO_DATA = math.nan


def _null_to_no_data(value: object) -> object:
    return NO_DATA if value is None else value


def _no_data_to_null(value: float) -> float | None:
    return value if math.isfinite(value) else None


# NaN in memory, null on disk
QuoteValue = Annotated[
    float,
    BeforeValidator(_null_to_no_data),
    PlainSerializer(_no_data_to_null, return_type=float | None),
]


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class FxQuote(FrozenModel):
    rate: QuoteValue = NO_DATA
    source: str | None = None
    stale: bool = True


class IndexQuote(FrozenModel):
    """S&P 500 level with the tier that produced it.

    ``date`` is the trading date reported by the tier. Tiers that report none
    (FMP, ticker-line and JSON proxies) leave it None on success, so a
    previous date is not carried over to a fresh value.
    """

    value: QuoteValue = NO_DATA
    label: str = "EOD (Stooq)"
    source: str | None = None
    stale: bool = True
    date: str | None = None


class CryptoPairQuote(FrozenModel):
    usd: QuoteValue = NO_DATA
    jpy: QuoteValue = NO_DATA
    stale: bool = True


class CryptoQuotes(FrozenModel):
    btc: CryptoPairQuote = Field(default_factory=CryptoPairQuote)
    eth: CryptoPairQuote = Field(default_factory=CryptoPairQuote)


class Snapshot(FrozenModel):
    fx: FxQuote = Field(default_factory=FxQuote)
    spx: IndexQuote = Field(default_factory=IndexQuote)
    crypto: CryptoQuotes = Field(default_factory=CryptoQuotes)


class Sources(FrozenModel):
    fx: str | None = None
    crypto: str | None = None
    spx: str | None = None


class PersistedState(FrozenModel):
    last_data: Snapshot | None = Field(default=None, alias="lastData")
    last_updated: int | None = Field(default=None, alias="lastUpdated")
    interval_sec: int = Field(default=INTERVAL_SEC, alias="intervalSec", gt=0)
    # "source" is the key older payloads were written with.
    sources: Sources = Field(
        default_factory=Sources,
        validation_alias=AliasChoices("sources", "source"),
    )
