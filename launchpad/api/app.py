from __future__ import annotations

import asyncio
import logging
import os
import traceback
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

import pandas as pd
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from launchpad.domain.errors import LaunchpadError, ValidationError
from launchpad.domain.models import FeeOverrides
from launchpad.trading.orchestrator import TradeOrchestrator
from launchpad.utils import database as db

logger = logging.getLogger(__name__)

_orchestrator: TradeOrchestrator | None = None

# Ledger and database calls are blocking; keep them off the event loop.
_executor = ThreadPoolExecutor(max_workers=16, thread_name_prefix="engine")

# Fund-moving flows may wait for ledger confirmation, so they get a longer budget than reads.
_READ_TIMEOUT_SECONDS = 10.0
_WRITE_TIMEOUT_SECONDS = 60.0


def set_orchestrator(orchestrator: TradeOrchestrator | None) -> None:
    global _orchestrator
    _orchestrator = orchestrator


def _require_orchestrator() -> TradeOrchestrator:
    if _orchestrator is None:
        raise HTTPException(status_code=503, detail="Trading engine not ready")
    return _orchestrator


def build_orchestrator() -> TradeOrchestrator:
    """Wire the engine from config/config.yaml and the environment."""
    from launchpad.db.store import DatabaseStore
    from launchpad.ledger.authority import AuthorityGuard
    from launchpad.ledger.rpc import RpcLedger
    from launchpad.utils.config_loader import EngineConfig, load_config

    config = EngineConfig.from_dict(load_config())
    store = DatabaseStore()
    store.init()
    guard = AuthorityGuard.from_config(config.treasury)
    return TradeOrchestrator(config, RpcLedger(config.ledger), store, guard)


def _df_to_records(df: pd.DataFrame) -> list[dict[str, Any]]:
    if df is None or df.empty:
        return []
    return jsonable_encoder(df.to_dict(orient="records"))


app = FastAPI(
    title="Launchpad API",
    version="0.1.0",
)


@app.on_event("startup")
async def startup_event():
    if _orchestrator is not None:
        return
    if str(os.environ.get("LAUNCHPAD_DISABLE_ENGINE", "")).strip() in {"1", "true", "TRUE", "yes", "YES"}:
        logger.info("Trading engine startup skipped (LAUNCHPAD_DISABLE_ENGINE set).")
        return
    set_orchestrator(build_orchestrator())
    logger.info(f"Trading engine started (treasury={_orchestrator.treasury}, db={db.BACKEND})")


# Local dev defaults.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.exception_handler(LaunchpadError)
async def launchpad_exception_handler(request: Request, exc: LaunchpadError):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}")
    else:
        logger.info(f"{type(exc).__name__} on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc)[:500], "error": type(exc).__name__},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch unhandled errors and return a clean JSON response."""
    logger.error(f"Unhandled exception: {type(exc).__name__}: {exc}")
    logger.debug(traceback.format_exc())
    return JSONResponse(
        status_code=500,
        content={
            "detail": f"Internal server error: {type(exc).__name__}",
            "message": str(exc)[:200],
        },
    )


async def _run_strict(func: Callable[..., Any], *args, timeout_seconds: float = _READ_TIMEOUT_SECONDS, **kwargs):
    """
    Run a blocking engine call in the executor. Engine errors propagate to the exception handler.
    """
    loop = asyncio.get_running_loop()
    try:
        return await asyncio.wait_for(
            loop.run_in_executor(_executor, lambda: func(*args, **kwargs)),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError as e:
        raise HTTPException(status_code=503, detail=f"Engine call timed out: {func.__name__}") from e


def _field(payload: dict[str, Any], key: str) -> Any:
    value = payload.get(key) if isinstance(payload, dict) else None
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"'{key}' is required")
    return value


def _opt_int(payload: dict[str, Any], key: str) -> int | None:
    value = payload.get(key)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"'{key}' must be an integer") from None


@app.get("/api/health")
async def health() -> dict[str, Any]:
    db_ok = False
    db_error = None
    try:
        db_ok = db.ping()
    except Exception as e:
        db_error = f"{type(e).__name__}: {str(e)[:200]}"
    return {
        "status": "ok" if db_ok and _orchestrator is not None else "degraded",
        "db_backend": db.BACKEND,
        "db_ok": db_ok,
        "db_error": db_error,
        "engine_ready": _orchestrator is not None,
    }


@app.post("/api/assets")
async def create_asset(payload: dict[str, Any]) -> dict[str, Any]:
    engine = _require_orchestrator()
    overrides = FeeOverrides(
        total_bps=_opt_int(payload, "fee_total_bps"),
        creator_bps=_opt_int(payload, "fee_creator_bps"),
        protocol_bps=_opt_int(payload, "fee_protocol_bps"),
    )
    strength = _opt_int(payload, "strength")
    decimals = _opt_int(payload, "decimals")
    asset = await _run_strict(
        engine.create_asset,
        _field(payload, "creator"),
        str(payload.get("curve_type") or "linear"),
        2 if strength is None else strength,
        decimals=6 if decimals is None else decimals,
        name=payload.get("name"),
        symbol=payload.get("symbol"),
        asset_id=payload.get("id"),
        fee_overrides=overrides,
    )
    return jsonable_encoder(asset.to_dict())


@app.get("/api/assets/{asset_id}/quote/buy")
async def quote_buy(asset_id: str, base_amount: float = Query(...)) -> dict[str, Any]:
    engine = _require_orchestrator()
    amount = await _run_strict(engine.quote_buy, asset_id, base_amount)
    return {"asset_id": asset_id, "issuable_amount": amount}


@app.get("/api/assets/{asset_id}/quote/sell")
async def quote_sell(asset_id: str, base_amount: float = Query(...)) -> dict[str, Any]:
    engine = _require_orchestrator()
    amount = await _run_strict(engine.quote_sell, asset_id, base_amount)
    return {"asset_id": asset_id, "issuable_amount": amount}


@app.get("/api/assets/{asset_id}/preview")
async def preview_buy(asset_id: str, base_amount: float = Query(...)) -> dict[str, Any]:
    engine = _require_orchestrator()
    preview = await _run_strict(engine.preview_buy, asset_id, base_amount)
    return jsonable_encoder(preview.to_dict())


@app.post("/api/assets/{asset_id}/buy")
async def build_buy(asset_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    engine = _require_orchestrator()
    result = await _run_strict(
        engine.build_buy,
        asset_id,
        _field(payload, "payer"),
        _field(payload, "base_amount"),
        timeout_seconds=_WRITE_TIMEOUT_SECONDS,
    )
    return jsonable_encoder(result.to_dict())


@app.post("/api/assets/{asset_id}/buy/confirm")
async def confirm_buy(asset_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    engine = _require_orchestrator()
    result = await _run_strict(
        engine.confirm_buy,
        asset_id,
        _field(payload, "payer"),
        _field(payload, "base_amount"),
        _field(payload, "payment_reference"),
        timeout_seconds=_WRITE_TIMEOUT_SECONDS,
    )
    return jsonable_encoder(result.to_dict())


@app.post("/api/assets/{asset_id}/sell")
async def build_sell(asset_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    engine = _require_orchestrator()
    result = await _run_strict(
        engine.build_sell,
        asset_id,
        _field(payload, "seller"),
        _field(payload, "base_amount"),
        timeout_seconds=_WRITE_TIMEOUT_SECONDS,
    )
    return jsonable_encoder(result.to_dict())


@app.get("/api/assets/{asset_id}/stats")
async def asset_stats(asset_id: str) -> dict[str, Any]:
    engine = _require_orchestrator()
    stats = await _run_strict(engine.asset_stats, asset_id)
    return jsonable_encoder(stats)


@app.get("/api/assets/{asset_id}/trades")
async def trades(asset_id: str, limit: int = Query(default=100, ge=1, le=1000)) -> list[dict[str, Any]]:
    engine = _require_orchestrator()
    df = await _run_strict(engine.trade_history, asset_id, limit)
    return _df_to_records(df)
