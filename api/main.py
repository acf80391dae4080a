"""
FastAPI application factory.

This file:
1. Creates the FastAPI app
2. Runs startup logic (open + migrate the store, wire clients and handlers,
   reset orphaned running jobs, start the embedded scheduler ticker)
3. Registers all routers (health, webhooks, jobs)
4. Runs shutdown logic (stop the ticker, drain the worker pool, close clients)

The `lifespan` context manager is FastAPI's way of handling startup/shutdown.

With RUN_SCHEDULER_IN_API=true (default) this one process receives webhooks
AND executes jobs. Set it to false and run `python -m worker.main` instead
when the scheduler should live in its own process. Exactly one of the two
may poll a given database file.

To run:  uvicorn api.main:app --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from api.routers import health, jobs, webhooks
from config.settings import settings
from services.runtime import Runtime, build_runtime

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Runs on startup (before yield) and shutdown (after yield).

    A Runtime passed to create_app() (tests) is used as-is and left open;
    otherwise one is built from settings and closed on shutdown.
    """
    # ── Startup ─────────────────────────────────────────────────
    owned = app.state.runtime is None
    if owned:
        app.state.runtime = build_runtime(settings)
    runtime: Runtime = app.state.runtime

    if app.state.run_scheduler:
        runtime.start_scheduler(stale_running_after=settings.stale_running_after)
    logger.info(f"API ready — scheduler {'embedded' if app.state.run_scheduler else 'disabled'}")

    yield  # app is running and serving requests between startup and shutdown

    # ── Shutdown ────────────────────────────────────────────────
    if owned:
        runtime.close()
    else:
        runtime.ticker.stop()
    logger.info("API shut down")


def create_app(runtime: Optional[Runtime] = None, run_scheduler: Optional[bool] = None) -> FastAPI:
    """Factory function that builds and configures the FastAPI application."""
    app = FastAPI(
        title="Lifecycle Sync",
        description="HR → directory lifecycle sync: webhooks in, durable time-triggered jobs out",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.runtime = runtime
    app.state.run_scheduler = settings.RUN_SCHEDULER_IN_API if run_scheduler is None else run_scheduler

    # Register routers: each one adds its endpoints to the app
    app.include_router(health.router)
    app.include_router(webhooks.router)
    app.include_router(jobs.router)

    return app


# This is what uvicorn imports: `uvicorn api.main:app`
app = create_app()
