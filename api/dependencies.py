"""
FastAPI dependency injection.

How this works:
- create_app() puts a Runtime (store, trigger service, ticker, ...) on app.state
- An endpoint declares `store: JobStore = Depends(get_store)`
- FastAPI calls get_store() before the endpoint runs and passes the result in

Tests build their own Runtime (temp SQLite file, fake directory client) and
hand it to create_app(), so nothing here reaches for globals.
"""

from fastapi import Request

from services.runtime import Runtime
from services.triggers import TriggerService
from store.job_store import JobStore


def get_runtime(request: Request) -> Runtime:
    """Returns the Runtime stored on the app during startup."""
    return request.app.state.runtime


def get_store(request: Request) -> JobStore:
    return get_runtime(request).store


def get_triggers(request: Request) -> TriggerService:
    return get_runtime(request).triggers
