"""FastAPI application factory for the term spread HTTP API."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from termspread.api import routes
from termspread.config import StoreSettings


def create_app(lifespan: Any = None, store_settings: StoreSettings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to inject startup/shutdown logic.
        store_settings: Read window defaults for ``GET /history``.

    Returns:
        Configured FastAPI application. Route handlers expect ``store`` and
        ``pipeline`` on ``app.state``; the lifespan (or a test) sets them.
    """
    app = FastAPI(
        title="Term Spread Tracker",
        lifespan=lifespan,
    )

    # Aggregate public market data; any origin may read it.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.state.store_settings = store_settings or StoreSettings()
    app.state.store = None
    app.state.pipeline = None

    app.include_router(routes.router)

    return app
