from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.staticfiles import StaticFiles

import config
from models import PersistedState
from presentation import snapshot_view
from scheduler import QuoteScheduler, build_scheduler

logger = logging.getLogger(__name__)


class LatestView:
    """Publisher that keeps the most recent rendered view."""

    def __init__(self) -> None:
        self.payload: dict | None = None

    def __call__(self, state: PersistedState) -> None:
        self.payload = snapshot_view(state)


@asynccontextmanager
async def lifespan(app: FastAPI):
    latest = LatestView()
    scheduler = build_scheduler(index_api_key=config.FMP_API_KEY, on_publish=latest)
    app.state.scheduler = scheduler
    app.state.latest = latest
    await scheduler.start()
    try:
        yield
    finally:
        scheduler.stop()


app = FastAPI(title="Market Now API", version="1.0.0", lifespan=lifespan)

# Local index cache document (data/spx.json) produced by scripts/refresh_spx_cache.py
app.mount("/data", StaticFiles(directory=str(config.DATA_DIR), check_dir=False), name="data")


def _scheduler(request: Request) -> QuoteScheduler:
    return request.app.state.scheduler


@app.get("/v1/quotes/latest")
def quotes_latest(request: Request) -> dict:
    payload = request.app.state.latest.payload
    if not payload or payload.get("fx") is None:
        raise HTTPException(status_code=404, detail="No snapshot available.")
    return payload


@app.post("/v1/quotes/refresh")
async def quotes_refresh(request: Request, fmp: str | None = Query(default=None)) -> dict:
    scheduler = _scheduler(request)
    if fmp is not None:
        scheduler.set_index_api_key(fmp)
    outcomes = await scheduler.refresh()
    return {
        "all_ok": outcomes.all_ok,
        "failed": outcomes.failed_fields(),
        "next_delay_sec": scheduler.next_delay(),
        "snapshot": snapshot_view(scheduler.current),
    }


@app.put("/v1/settings/interval")
async def settings_interval(request: Request, seconds: int = Query(gt=0)) -> dict:
    scheduler = _scheduler(request)
    scheduler.set_interval(seconds)
    logger.info("Poll interval set to %ss", seconds)
    return {"interval_sec": scheduler.interval_sec, "next_delay_sec": scheduler.next_delay()}


@app.get("/v1/sources")
def sources(request: Request) -> dict:
    state = _scheduler(request).current
    return {"sources": state.sources.model_dump(), "last_updated": state.last_updated}
