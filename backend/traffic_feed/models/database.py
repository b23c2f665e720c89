"""
Database models using SQLAlchemy ORM
Locations, aggregated traffic measurements and the legacy per-class table
"""
from sqlalchemy import (
    Column, DateTime, Float, Integer,
    Enum as SQLEnum, UniqueConstraint, Index,
    func, literal_column
)
from sqlalchemy.ext.declarative import declarative_base
import enum

Base = declarative_base()

SRID_WGS84 = 4326


def point_geometry(lon, lat):
    """PostGIS point in SRID 4326; the SRID is inlined so queries match the index expression"""
    return func.ST_SetSRID(func.ST_MakePoint(lon, lat), literal_column(str(SRID_WGS84)))


class VehicleClass(str, enum.Enum):
    """Vehicle categories reported by the MIV feed (klasse_id 1-5)"""
    MOTOR_BIKES = "MOTOR_BIKES"
    CARS = "CARS"
    VANS = "VANS"
    RIGID_TRUCKS = "RIGID_TRUCKS"
    ARTICULATED_TRUCKS = "ARTICULATED_TRUCKS"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_code(cls, code) -> "VehicleClass":
        """Map a feed class code to a vehicle class; anything unexpected is UNKNOWN"""
        try:
            value = int(str(code).strip())
        except (TypeError, ValueError):
            return cls.UNKNOWN
        return _CLASS_CODES.get(value, cls.UNKNOWN)


_CLASS_CODES = {
    1: VehicleClass.MOTOR_BIKES,
    2: VehicleClass.CARS,
    3: VehicleClass.VANS,
    4: VehicleClass.RIGID_TRUCKS,
    5: VehicleClass.ARTICULATED_TRUCKS,
}


class Location(Base):
    """
    Measuring point location - insert-if-absent, never updated
    """
    __tablename__ = "locations"

    location_id = Column(Integer, primary_key=True, autoincrement=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)


# GiST index over the point expression used by spatial lookups (PostGIS only)
Index(
    "ix_locations_point",
    point_geometry(Location.longitude, Location.latitude),
    postgresql_using="gist",
).ddl_if(dialect="postgresql")


class TrafficMeasurement(Base):
    """
    One aggregated measurement per location and observation time
    No foreign key to locations; the read path joins at query time
    """
    __tablename__ = "traffic_measurements"
    __table_args__ = (
        UniqueConstraint("location_id", "observation_time", name="uq_traffic_measurements_location_time"),
        Index("ix_traffic_measurements_observation_time", "observation_time"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    location_id = Column(Integer, nullable=False)
    observation_time = Column(DateTime(timezone=True), nullable=False)
    occupancy_rate = Column(Integer, nullable=False)
    availability_rate = Column(Integer, nullable=False)
    total_vehicles_passed = Column(Integer, nullable=False)
    average_speed = Column(Integer)
    max_speed = Column(Integer)


class TrafficVehicleMeasurement(Base):
    """
    Legacy per-vehicle-class readings
    Only written when PERSIST_VEHICLE_CLASS_READINGS is enabled
    """
    __tablename__ = "traffic_vehicle_measurements"
    __table_args__ = (
        UniqueConstraint(
            "location_id", "observation_time", "vehicle_class",
            name="uq_traffic_vehicle_measurements_location_time_class"
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    location_id = Column(Integer, nullable=False)
    observation_time = Column(DateTime(timezone=True), nullable=False)
    vehicle_class = Column(SQLEnum(VehicleClass, name="vehicle_class"), nullable=False)
    traffic_intensity = Column(Integer, nullable=False)
    vehicle_speed_arithmetic = Column(Integer, nullable=False)
    vehicle_speed_harmonic = Column(Integer, nullable=False)
