"""
/api/loop
=========
Read-only view and start/stop control of the runner owned by the app.

Routes:
    GET  /api/loop/state     — RunnerSnapshot
    GET  /api/loop/stats     — per-engine diagnostic statistics
    GET  /api/loop/patterns  — strongest learned patterns (?limit=5)
    POST /api/loop/start     — start the loop (first tick runs before reply)
    POST /api/loop/stop      — stop scheduling further ticks

The runner is composed in main.create_app() and stored on app.state.
"""
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from selfloop.agents.orchestrator import LoopRunner
from selfloop.models.learning_outcome import LearnedPattern
from selfloop.models.runner_snapshot import RunnerSnapshot

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/loop", tags=["Loop"])


def get_runner(request: Request) -> LoopRunner:
    runner = getattr(request.app.state, "runner", None)
    if runner is None:
        raise HTTPException(status_code=503, detail="Loop runner not configured")
    return runner


@router.get("/state", response_model=RunnerSnapshot)
async def get_state(runner: LoopRunner = Depends(get_runner)):
    return runner.snapshot()


@router.get("/stats")
async def get_stats(runner: LoopRunner = Depends(get_runner)) -> Dict[str, Any]:
    return runner.stats()


@router.get("/patterns", response_model=List[LearnedPattern])
async def get_patterns(
    limit: int = Query(default=5, ge=1, le=100),
    runner: LoopRunner = Depends(get_runner),
):
    return runner.learner.top_patterns(limit)


@router.post("/start", response_model=RunnerSnapshot)
async def start_loop(runner: LoopRunner = Depends(get_runner)):
    logger.info("Start requested via API")
    await runner.start()
    return runner.snapshot()


@router.post("/stop", response_model=RunnerSnapshot)
async def stop_loop(runner: LoopRunner = Depends(get_runner)):
    logger.info("Stop requested via API")
    runner.stop()
    return runner.snapshot()
