"""
Typed records decoded from the MIV XML feeds
Transient: rebuilt on every ingestion run and discarded after aggregation
"""
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from traffic_feed.models.database import VehicleClass


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError("timestamp has no UTC offset")
    return value.astimezone(timezone.utc)


class VehicleClassReading(BaseModel):
    """Counts and speeds for one vehicle class at a measuring point (meetdata)"""
    vehicle_class: VehicleClass
    traffic_intensity: int
    speed_arithmetic: int
    speed_harmonic: int

    @field_validator("vehicle_class", mode="before")
    @classmethod
    def map_class_code(cls, value):
        if isinstance(value, VehicleClass):
            return value
        return VehicleClass.from_code(value)


class MeasuringPointSnapshot(BaseModel):
    """One measuring point (meetpunt) at one observation time"""
    location_id: int
    observation_time: datetime
    readings: List[VehicleClassReading] = Field(default_factory=list)
    occupancy_rate: int
    availability_rate: int

    # Descriptive extras from the feed, not persisted
    descriptive_id: Optional[str] = None
    available: Optional[int] = None
    faulty: Optional[int] = None
    valid: Optional[int] = None
    instability: Optional[int] = None

    @field_validator("observation_time")
    @classmethod
    def normalize_observation_time(cls, value: datetime) -> datetime:
        return _to_utc(value)


class MeasurementFeed(BaseModel):
    """Live measurement snapshot (root element: miv)"""
    publication_time: Optional[datetime] = None
    measuring_points: List[MeasuringPointSnapshot] = Field(default_factory=list)

    @field_validator("publication_time")
    @classmethod
    def normalize_publication_time(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _to_utc(value) if value is not None else None


class LocationRecord(BaseModel):
    """Coordinates of one measuring point from the configuration feed"""
    unique_id: int
    latitude: float
    longitude: float


class LocationFeed(BaseModel):
    """Configuration snapshot (root element: mivconfig)"""
    config_change_time: Optional[datetime] = None
    locations: List[LocationRecord] = Field(default_factory=list)
