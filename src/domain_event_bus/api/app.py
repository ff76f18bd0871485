"""
FastAPI application exposing debug information about the event buses.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse

from ..api.models import BusInfo, BusListResponse, EventListResponse, HealthResponse
from ..core.recorder import EventRecorder
from ..core.registry import EventBusRegistry

# Registry and recorder are initialized in the lifespan context
registry: Optional[EventBusRegistry] = None
recorder: Optional[EventRecorder] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    global registry, recorder
    registry = EventBusRegistry()
    recorder = EventRecorder()
    recorder.start(registry.default)
    registry.on_dispose(recorder.stop)
    logging.info("Event bus registry started")
    yield
    if registry is not None:
        await registry.dispose()


app = FastAPI(
    title="Domain Event Bus",
    description="Debug endpoints for in-process domain event buses",
    version="1.0.0",
    lifespan=lifespan,
)


def _bus_info(name: str) -> BusInfo:
    info = registry.debug_info(name)
    return BusInfo(
        name=info.name,
        subscription_count=info.subscription_count,
        is_disposed=info.is_disposed,
    )


@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Report whether the registry is running and the default bus is recorded.",
)
async def health_check() -> HealthResponse:
    if registry is None or registry.is_disposed:
        return HealthResponse(status="unhealthy")
    return HealthResponse(
        status="healthy",
        bus_count=len(registry.names()),
        recording=recorder is not None and recorder.is_recording,
    )


@app.get(
    "/buses",
    response_model=BusListResponse,
    summary="List buses",
    description="Debug information for every bus the registry has created.",
    responses={503: {"description": "Registry not initialized", "model": dict}},
)
async def list_buses() -> BusListResponse | JSONResponse:
    if registry is None:
        return JSONResponse(status_code=503, content={"error": "Registry not initialized yet."})
    return BusListResponse(buses=[_bus_info(name) for name in registry.names()])


@app.get(
    "/buses/{name}",
    response_model=BusInfo,
    summary="Get bus",
    description="Debug information for one bus.",
    responses={404: {"description": "Unknown bus", "model": dict}},
)
async def get_bus(name: str) -> BusInfo | JSONResponse:
    if registry is None:
        return JSONResponse(status_code=503, content={"error": "Registry not initialized yet."})
    if registry.get(name) is None:
        return JSONResponse(status_code=404, content={"error": f"Unknown bus: {name}"})
    return _bus_info(name)


@app.get(
    "/events",
    response_model=EventListResponse,
    summary="Recent events",
    description="Most recent events published on the default bus, oldest first.",
)
async def recent_events(limit: Optional[int] = Query(default=None, ge=0)) -> EventListResponse:
    events = recorder.records(limit) if recorder is not None else []
    return EventListResponse(count=len(events), events=events)
