"""
Aggregation of per-vehicle-class readings into one measurement per point
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

from traffic_feed.models.feed import MeasuringPointSnapshot

# Feed error / "no data" codes reported in place of a speed
SENTINEL_SPEEDS = frozenset({251, 252, 254})


def round_half_away_from_zero(value: float) -> int:
    # Decimal(value) is the exact binary value of the float, so 2.5 -> 3 and -2.5 -> -3
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def aggregate_snapshot(snapshot: MeasuringPointSnapshot) -> Dict[str, Any]:
    """
    Collapse one measuring point into a traffic_measurements row

    Intensities of every class (UNKNOWN included) count towards the total.
    Speeds in SENTINEL_SPEEDS are ignored; when none remain, average and
    max speed are None.
    """
    total_vehicles = sum(r.traffic_intensity for r in snapshot.readings)
    valid_speeds = [
        r.speed_arithmetic for r in snapshot.readings
        if r.speed_arithmetic not in SENTINEL_SPEEDS
    ]

    average_speed: Optional[int] = None
    max_speed: Optional[int] = None
    if valid_speeds:
        average_speed = round_half_away_from_zero(sum(valid_speeds) / len(valid_speeds))
        max_speed = max(valid_speeds)

    return {
        "location_id": snapshot.location_id,
        "observation_time": snapshot.observation_time,
        "occupancy_rate": snapshot.occupancy_rate,
        "availability_rate": snapshot.availability_rate,
        "total_vehicles_passed": total_vehicles,
        "average_speed": average_speed,
        "max_speed": max_speed,
    }


def aggregate_snapshots(snapshots: Iterable[MeasuringPointSnapshot]) -> List[Dict[str, Any]]:
    return [aggregate_snapshot(s) for s in snapshots]


def vehicle_class_rows(snapshot: MeasuringPointSnapshot) -> List[Dict[str, Any]]:
    """Flatten a snapshot into rows for the legacy per-class table"""
    return [
        {
            "location_id": snapshot.location_id,
            "observation_time": snapshot.observation_time,
            "vehicle_class": reading.vehicle_class,
            "traffic_intensity": reading.traffic_intensity,
            "vehicle_speed_arithmetic": reading.speed_arithmetic,
            "vehicle_speed_harmonic": reading.speed_harmonic,
        }
        for reading in snapshot.readings
    ]
