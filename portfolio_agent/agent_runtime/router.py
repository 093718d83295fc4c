from __future__ import annotations

from fastapi import APIRouter, HTTPException

from . import get_runtime, register_builtin_strategies
from ..config import settings


router = APIRouter(prefix="/runtime", tags=["Runtime"])


@router.get("/status")
async def runtime_status():
    register_builtin_strategies()
    return get_runtime().status()


@router.get("/strategies")
async def list_strategies():
    register_builtin_strategies()
    return {"items": get_runtime().list_strategies()}


@router.post("/start")
async def start_runtime():
    register_builtin_strategies()
    if not settings.agent_runtime_enabled:
        raise HTTPException(status_code=400, detail="agent runtime disabled in configuration")
    runtime = get_runtime()
    await runtime.ensure_started()
    return runtime.status()


@router.post("/stop")
async def stop_runtime():
    await get_runtime().stop()
    return {"stopped": True}


@router.post("/strategies/{strategy_id}/tick")
async def tick_strategy(strategy_id: str):
    register_builtin_strategies()
    runtime = get_runtime()
    if not runtime.has_strategy(strategy_id):
        raise HTTPException(status_code=404, detail="strategy not found")
    task = await runtime.run_strategy_now(strategy_id)
    if task is None:
        raise HTTPException(status_code=409, detail="strategy already running")
    return {"queued": True}
