from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from .common import AllProvidersFailedError

T = TypeVar("T")


@dataclass(frozen=True)
class FxReading:
    rate: float
    source: str


@dataclass(frozen=True)
class IndexReading:
    value: float
    label: str
    source: str
    date: str | None = None


@dataclass(frozen=True)
class PairReading:
    usd: float | None
    jpy: float | None

    @property
    def complete(self) -> bool:
        return self.usd is not None and self.jpy is not None


@dataclass(frozen=True)
class CryptoReading:
    btc: PairReading
    eth: PairReading
    source: str = "Coinbase"


@dataclass(frozen=True)
class CascadeOutcome(Generic[T]):
    """Settled result of one cascade.

    ``partial`` holds whatever values a failed cascade still obtained.
    """

    value: T | None = None
    error: AllProvidersFailedError | None = None
    partial: T | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None

    @classmethod
    def success(cls, value: T) -> "CascadeOutcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: AllProvidersFailedError, partial: T | None = None) -> "CascadeOutcome[T]":
        return cls(error=error, partial=partial)
