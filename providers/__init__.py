from .common import (
    AllProvidersFailedError,
    FetchError,
    FetchTimeoutError,
    HttpError,
    MalformedResponseError,
)
from .crypto import fetch_crypto
from .fx import fetch_usd_jpy
from .index import fetch_spx, parse_proxy_body
from .types import CascadeOutcome, CryptoReading, FxReading, IndexReading, PairReading

__all__ = [
    "AllProvidersFailedError",
    "CascadeOutcome",
    "CryptoReading",
    "FetchError",
    "FetchTimeoutError",
    "FxReading",
    "HttpError",
    "IndexReading",
    "MalformedResponseError",
    "PairReading",
    "fetch_crypto",
    "fetch_spx",
    "fetch_usd_jpy",
    "parse_proxy_body",
]
