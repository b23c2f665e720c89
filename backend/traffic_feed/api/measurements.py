"""
Measurement read API endpoints
Recent aggregated traffic measurements, near a point or at a location
"""
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from traffic_feed.core.database import get_db
from traffic_feed.models.schemas import MeasurementView
from traffic_feed.services.query import SpatialQueryService

logger = logging.getLogger(__name__)

router = APIRouter()


def _optional_float(raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _optional_limit(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        limit = int(raw)
    except ValueError:
        return None
    return limit if limit >= 0 else None


# Query parameters are taken as strings so malformed values fall back to defaults
@router.get("/measurements", response_model=List[MeasurementView], response_model_by_alias=True)
async def find_measurements(
    lat: Optional[str] = Query(None, description="Latitude of the search point"),
    lon: Optional[str] = Query(None, description="Longitude of the search point"),
    radius: Optional[str] = Query(None, description="Search radius in degrees (default 1000)"),
    limit: Optional[str] = Query(None, description="Maximum number of measurements (default 20)"),
    db: Session = Depends(get_db)
):
    """
    Most recent measurements near a point

    Without **lat**/**lon** the most recent measurements across all
    locations are returned and **radius** is ignored.
    """
    service = SpatialQueryService(db)
    return service.find_near(
        lat=_optional_float(lat),
        lon=_optional_float(lon),
        radius=_optional_float(radius),
        limit=_optional_limit(limit)
    )


@router.get(
    "/locations/{location_id}/measurements",
    response_model=List[MeasurementView],
    response_model_by_alias=True
)
async def find_measurements_by_location(
    location_id: str,
    limit: Optional[str] = Query(None, description="Maximum number of measurements (default 20)"),
    db: Session = Depends(get_db)
):
    """
    Most recent measurements for one location

    Non-numeric ids are treated as location 0.
    """
    service = SpatialQueryService(db)
    return service.find_by_location(location_id, limit=_optional_limit(limit))
