import uvicorn
import time
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from selfloop.agents.orchestrator import LoopRunner
from selfloop.agents.scaling_engine import ScalingEngine, ScalePolicy
from selfloop.agents.learning_core import LearningCore, LearningConfig
from selfloop.agents.artifact_generator import ArtifactGenerator
from selfloop.api.loop import router as loop_router
from selfloop.core.config import (
    API_HOST,
    API_PORT,
    GENERATOR_SEED,
    LEARNING_MEMORY_SIZE,
    SCALE_MAX,
    load_loop_config,
)
from selfloop.utils.logging_config import setup_logging

logger = logging.getLogger("main")


# ---------------------------------------------------------------------------
# Logging Middleware
# ---------------------------------------------------------------------------
class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        client_host = request.client.host if request.client else "unknown"
        logger.info(f"Incoming: {request.method} {request.url.path} from {client_host}")

        try:
            response = await call_next(request)
            process_time = (time.time() - start_time) * 1000
            logger.info(
                f"Outgoing: {request.method} {request.url.path} - "
                f"Status: {response.status_code} - "
                f"Time: {process_time:.2f}ms"
            )
            return response
        except Exception as e:
            process_time = (time.time() - start_time) * 1000
            logger.error(f"Request failed: {request.method} {request.url.path} - Error: {str(e)}")
            raise e


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------
def build_runner() -> LoopRunner:
    """Compose a runner from environment configuration."""
    config = load_loop_config()
    return LoopRunner(
        config,
        scaling=ScalingEngine(ScalePolicy(max_scale=SCALE_MAX)),
        learner=LearningCore(LearningConfig(memory_size=LEARNING_MEMORY_SIZE)),
        generator=ArtifactGenerator(seed=GENERATOR_SEED),
    )


def create_app(runner: Optional[LoopRunner] = None) -> FastAPI:
    """Build the API around an explicitly owned runner."""
    runner = runner if runner is not None else build_runner()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Shutdown: no further ticks; the in-flight one finishes
        runner.stop()
        await runner.join()

    app = FastAPI(title="Self-Loop Verification & Scaling API", lifespan=lifespan)
    app.state.runner = runner
    app.add_middleware(LoggingMiddleware)

    # Health endpoint
    @app.get("/health")
    async def health_check():
        return {"status": "ok", "running": runner.running}

    app.include_router(loop_router)
    return app


if __name__ == "__main__":
    loop_config = load_loop_config()
    setup_logging(level=logging.DEBUG if loop_config.debug_mode else logging.INFO)
    uvicorn.run("main:create_app", factory=True, host=API_HOST, port=API_PORT, log_config=None)
