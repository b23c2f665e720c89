"""
API response schemas
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class MeasurementView(BaseModel):
    """Aggregated measurement joined with its location's coordinates"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        json_schema_extra={
            "example": {
                "locationId": 3640,
                "observationTime": "2024-01-20T10:30:00Z",
                "occupancyRate": 4,
                "availabilityRate": 100,
                "totalVehiclesPassed": 21,
                "averageSpeed": 97,
                "maxSpeed": 112,
                "latitude": 51.0812,
                "longitude": 4.3875
            }
        }
    )

    location_id: int
    observation_time: datetime
    occupancy_rate: int
    availability_rate: int
    total_vehicles_passed: int
    average_speed: Optional[int] = None
    max_speed: Optional[int] = None
    latitude: float
    longitude: float

    @field_validator("observation_time")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        # Stored as UTC; some drivers hand back naive datetimes
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class ErrorResponse(BaseModel):
    """Error payload returned for every AppError"""
    message: str
    status: int
    identifier: str
    code: str


class IngestionResult(BaseModel):
    """Outcome of one ingestion run"""
    success: bool
    points_received: int = 0
    points_skipped: int = 0
    locations_written: int = 0
    measurements_written: int = 0
    vehicle_rows_written: int = 0
    processing_time_ms: int = 0
    error: Optional[Dict[str, Any]] = None
