"""Entry point for the term spread tracker.

Wires all components together and serves the HTTP API with the daily
snapshot scheduler running in the same asyncio event loop, via uvicorn's
programmatic API and FastAPI's lifespan context manager.

Component wiring order (in _build_components):
1. SnapshotDatabase (SQLite connection manager)
2. SnapshotStore (typed upsert/read)
3. MarketFeedClient (upstream fan-out)
4. SnapshotPipeline (fetch -> normalize -> compute -> persist)
5. DailySnapshotScheduler (background daily trigger)

``termspread-snapshot`` runs a single snapshot and exits, for hosts that
schedule the job with an external cron instead.
"""

import asyncio
import sys
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from termspread.config import AppSettings
from termspread.data.database import SnapshotDatabase
from termspread.data.store import SnapshotStore
from termspread.exceptions import StoreError
from termspread.logging import get_logger, setup_logging
from termspread.markets.client import MarketFeedClient
from termspread.models import SnapshotStatus
from termspread.pipeline import SnapshotPipeline
from termspread.scheduler import DailySnapshotScheduler


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all components from settings.

    Note: Does NOT open the database -- that happens in the lifespan
    (server mode) or run_snapshot_once() (one-shot mode).
    """
    database = SnapshotDatabase(settings.store.db_path)
    store = SnapshotStore(database, max_days=settings.store.max_days)
    feed_client = MarketFeedClient(settings.market)
    pipeline = SnapshotPipeline(feed_client, store, settings.market)
    scheduler = DailySnapshotScheduler(pipeline, settings.scheduler)

    return {
        "database": database,
        "store": store,
        "feed_client": feed_client,
        "pipeline": pipeline,
        "scheduler": scheduler,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage component lifecycle within the FastAPI application.

    On startup: opens the database, exposes store and pipeline on app.state,
    starts the daily scheduler if enabled.

    On shutdown: stops the scheduler, closes the feed client and database.
    """
    logger = get_logger("termspread.main")
    settings: AppSettings = app.state.settings
    components = app.state.components

    await components["database"].connect()

    app.state.store = components["store"]
    app.state.pipeline = components["pipeline"]

    if settings.scheduler.enabled:
        await components["scheduler"].start()

    logger.info(
        "lifespan_started",
        asset=settings.market.asset_symbol,
        chains=[c.name for c in settings.market.chains],
        scheduler=settings.scheduler.enabled,
    )

    yield

    await components["scheduler"].stop()
    await components["feed_client"].close()
    await components["database"].close()

    logger.info("term_spread_tracker_stopped")


async def run() -> None:
    """Run the HTTP API with the embedded daily scheduler."""
    from termspread.api.app import create_app

    settings = AppSettings()
    setup_logging(settings.log_level, settings.market.asset_symbol)
    logger = get_logger("termspread.main")

    components = _build_components(settings)

    app = create_app(lifespan=lifespan, store_settings=settings.store)
    app.state.settings = settings
    app.state.components = components

    logger.info(
        "starting_server",
        host=settings.server.host,
        port=settings.server.port,
    )

    config = uvicorn.Config(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level="warning",  # Suppress uvicorn access logs
    )
    server = uvicorn.Server(config)
    await server.serve()


async def run_snapshot_once(settings: AppSettings | None = None) -> SnapshotStatus:
    """Run the snapshot pipeline a single time and return its status."""
    settings = settings or AppSettings()
    components = _build_components(settings)

    try:
        async with components["database"], components["feed_client"]:
            outcome = await components["pipeline"].run()
    except StoreError as e:
        get_logger("termspread.main").error("snapshot_db_unavailable", error=str(e))
        return SnapshotStatus.FAILED
    return outcome.status


def main() -> None:
    """Synchronous entry point for the server."""
    asyncio.run(run())


def snapshot_main() -> None:
    """Synchronous entry point for a one-shot snapshot; exits 1 on failure."""
    settings = AppSettings()
    setup_logging(settings.log_level, settings.market.asset_symbol)
    status = asyncio.run(run_snapshot_once(settings))
    sys.exit(1 if status is SnapshotStatus.FAILED else 0)


if __name__ == "__main__":
    main()
