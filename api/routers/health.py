"""
Health check endpoint.

Checks that the SQLite store answers a trivial query and reports whether the
embedded scheduler ticker is running. Load balancers and container
orchestrators use it to decide if the service is ready for traffic.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.dependencies import get_runtime
from services.runtime import Runtime
from store.errors import StoreError

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check(runtime: Runtime = Depends(get_runtime)):
    try:
        runtime.store.ping()
    except StoreError as e:
        return JSONResponse(status_code=503, content={"status": "unhealthy", "store": str(e)})

    return {
        "status": "healthy",
        "store": "ok",
        "scheduler": "running" if runtime.ticker.running else "stopped",
        "in_flight": len(runtime.pool.in_flight_ids()),
    }
