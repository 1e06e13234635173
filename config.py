"""Configuration loaded from environment variables."""
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ── Storage ──────────────────────────────────────────────────────────────
DATA_DIR = Path(os.getenv("MARKET_NOW_DATA_DIR", "data"))
STORE_KEY = "market-now-state-v1"

# ── Scheduling ───────────────────────────────────────────────────────────
DEFAULT_INTERVAL_SEC = 60
INTERVAL_SEC = int(os.getenv("MARKET_NOW_INTERVAL_SEC", str(DEFAULT_INTERVAL_SEC)))
BACKOFF_FACTORS = (1, 2, 3)  # indexed by consecutive failure count
MAX_FAILURE_COUNT = len(BACKOFF_FACTORS) - 1

# ── Providers ────────────────────────────────────────────────────────────
FMP_API_KEY = os.getenv("FMP_API_KEY") or None
SPX_CACHE_URL = os.getenv("MARKET_NOW_SPX_CACHE_URL", "http://127.0.0.1:8000/data/spx.json")

# Timeouts in milliseconds
DEFAULT_TIMEOUT_MS = 9000
CACHE_TIMEOUT_MS = 6000
PROXY_TIMEOUT_MS = 10000

# ── Logging ──────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
