"""
Read-side queries over the persisted measurements
"""
from typing import List, Optional
import logging
import re

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from traffic_feed.core.config import settings
from traffic_feed.core.errors import StoreError
from traffic_feed.models.database import Location, TrafficMeasurement, point_geometry
from traffic_feed.models.schemas import MeasurementView

logger = logging.getLogger(__name__)

# Plain ASCII digits with an optional sign, no whitespace or separators
_LOCATION_ID = re.compile(r"[+-]?[0-9]+")
INT32_MIN = -2**31
INT32_MAX = 2**31 - 1


def parse_location_id(raw: str) -> int:
    """
    Path ids that are not 32-bit integers resolve to 0 instead of failing
    """
    if not isinstance(raw, str) or not _LOCATION_ID.fullmatch(raw):
        return 0
    value = int(raw)
    if not INT32_MIN <= value <= INT32_MAX:
        return 0
    return value


def _limit_or_default(limit: Optional[int]) -> int:
    if limit is None or limit < 0:
        return settings.DEFAULT_LIMIT
    return limit


class SpatialQueryService:
    """
    Recent measurements joined with their location, newest first

    Radius is applied by ST_DWithin on SRID 4326 geometries, so it is
    expressed in degrees.
    """

    def __init__(self, db: Session):
        self.db = db

    def _base_query(self, limit: int):
        return (
            select(
                TrafficMeasurement.location_id,
                TrafficMeasurement.observation_time,
                TrafficMeasurement.occupancy_rate,
                TrafficMeasurement.availability_rate,
                TrafficMeasurement.total_vehicles_passed,
                TrafficMeasurement.average_speed,
                TrafficMeasurement.max_speed,
                Location.latitude,
                Location.longitude,
            )
            .join(Location, TrafficMeasurement.location_id == Location.location_id)
            .order_by(TrafficMeasurement.observation_time.desc())
            .limit(limit)
        )

    def _fetch(self, query) -> List[MeasurementView]:
        try:
            rows = self.db.execute(query).all()
        except SQLAlchemyError as e:
            logger.error(f"Measurement query failed: {e}", exc_info=True)
            raise StoreError(f"Measurement query failed: {e}") from e
        return [MeasurementView.model_validate(dict(row._mapping)) for row in rows]

    def find_near(
        self,
        lat: Optional[float] = None,
        lon: Optional[float] = None,
        radius: Optional[float] = None,
        limit: Optional[int] = None
    ) -> List[MeasurementView]:
        """
        Most recent measurements within radius of (lat, lon)

        Without lat or lon no spatial filter is applied and the globally
        most recent measurements are returned.
        """
        radius = settings.DEFAULT_RADIUS if radius is None else radius

        query = self._base_query(_limit_or_default(limit))
        if lat is not None and lon is not None:
            # Left operand is the ix_locations_point expression
            query = query.where(
                func.ST_DWithin(
                    point_geometry(Location.longitude, Location.latitude),
                    point_geometry(lon, lat),
                    radius
                )
            )
        return self._fetch(query)

    def find_by_location(self, location_id: str, limit: Optional[int] = None) -> List[MeasurementView]:
        """Most recent measurements for one location id (path form)"""
        query = self._base_query(_limit_or_default(limit)).where(
            TrafficMeasurement.location_id == parse_location_id(location_id)
        )
        return self._fetch(query)
