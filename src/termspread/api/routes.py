"""JSON endpoints: snapshot history, daily snapshot trigger, live term structure."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from termspread.exceptions import StoreError
from termspread.models import SnapshotStatus, SpreadReason

log = structlog.get_logger(__name__)

router = APIRouter()


def _parse_days(raw: str | None, default: int) -> int:
    """Parse the ``days`` query value; missing or non-integer falls back to default."""
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@router.get("/history")
async def get_history(request: Request, days: str | None = None) -> JSONResponse:
    """Stored snapshots, oldest first, for the most recent ``days`` days (max 365).

    Unlike a lenient ``parseInt`` reading, ``days=0`` (or negative) returns an
    empty series rather than the default window, and a value with trailing
    junk such as ``12abc`` is rejected and falls back to the default.
    """
    store = request.app.state.store
    settings = request.app.state.store_settings

    requested = _parse_days(days, settings.default_days)
    try:
        snapshots = await store.get(requested)
    except StoreError as e:
        log.error("history_read_failed", error=str(e))
        return JSONResponse(content={"success": False, "error": str(e)}, status_code=500)

    return JSONResponse(content={
        "success": True,
        "count": len(snapshots),
        "data": [s.to_dict() for s in snapshots],
    })


@router.post("/snapshot")
async def post_snapshot(request: Request) -> JSONResponse:
    """Run the fetch -> compute -> persist pipeline once.

    Fewer than two live maturities is informational (200, success false);
    only a pipeline failure returns 500.
    """
    pipeline = request.app.state.pipeline
    try:
        outcome = await pipeline.run()
    except Exception as e:
        log.error("snapshot_endpoint_error", error=str(e), exc_info=True)
        return JSONResponse(
            content={"success": False, "error": str(e) or type(e).__name__},
            status_code=500,
        )

    if outcome.status is SnapshotStatus.STORED and outcome.snapshot is not None:
        snapshot = outcome.snapshot
        return JSONResponse(content={
            "success": True,
            "date": snapshot.date,
            "term_spread": str(snapshot.term_spread),
            "front_apy": str(snapshot.front_month_apy),
            "back_apy": str(snapshot.back_month_apy),
            "markets": snapshot.markets_count,
        })

    if outcome.status is SnapshotStatus.INSUFFICIENT_MARKETS:
        content: dict = {
            "success": False,
            "message": "Not enough live markets to calculate spread",
            "markets_found": outcome.markets_found,
        }
        if outcome.chain_errors:
            content["chain_errors"] = outcome.chain_errors
        return JSONResponse(content=content)

    return JSONResponse(
        content={"success": False, "error": outcome.error or "snapshot failed"},
        status_code=500,
    )


@router.get("/term-structure")
async def get_term_structure(request: Request) -> JSONResponse:
    """Current implied-yield curve computed on demand; nothing is stored."""
    pipeline = request.app.state.pipeline
    try:
        live = await pipeline.term_structure()
    except Exception as e:
        log.error("term_structure_endpoint_error", error=str(e), exc_info=True)
        return JSONResponse(
            content={"success": False, "error": str(e) or type(e).__name__},
            status_code=500,
        )
    result = live.result

    content: dict = {
        "success": result.reason is not SpreadReason.INSUFFICIENT_MARKETS,
        "reason": result.reason.value,
        "term_spread": str(result.spread.term_spread) if result.spread else None,
        "underlying_apy": str(result.spread.underlying_apy) if result.spread else None,
        "structure": [p.to_dict() for p in result.structure],
    }
    if live.available_markets:
        content["available_markets"] = live.available_markets
    if live.chain_errors:
        content["chain_errors"] = live.chain_errors

    return JSONResponse(content=content)


@router.get("/health")
async def get_health(request: Request) -> JSONResponse:
    """Liveness plus stored snapshot count."""
    store = request.app.state.store
    try:
        count = await store.count()
    except StoreError as e:
        return JSONResponse(content={"status": "error", "error": str(e)}, status_code=503)
    return JSONResponse(content={"status": "ok", "snapshots": count})
