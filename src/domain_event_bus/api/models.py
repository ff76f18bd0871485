"""
Response models for the event bus debug API.
"""

from typing import Any, Dict, List

from pydantic import BaseModel


class BusInfo(BaseModel):
    """Debug information for a single bus."""

    name: str
    subscription_count: int
    is_disposed: bool


class BusListResponse(BaseModel):
    """All buses created by the registry."""

    buses: List[BusInfo]


class HealthResponse(BaseModel):
    """Overall health response."""

    status: str  # "healthy", "unhealthy"
    bus_count: int = 0
    recording: bool = False


class EventListResponse(BaseModel):
    """Recently recorded events in their wire format."""

    count: int
    events: List[Dict[str, Any]]
