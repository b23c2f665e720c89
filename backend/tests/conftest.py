"""
Shared fixtures: in-memory database and MIV feed documents
"""
import math
import os

# Point the application engine at SQLite before any traffic_feed import
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from traffic_feed.models.database import Base

TEST_DATABASE_URL = "sqlite://"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool
)
TestSessionLocal = sessionmaker(bind=engine)


def _make_point(x, y):
    return f"{x} {y}"


def _set_srid(geometry, srid):
    return geometry


def _dwithin(a, b, distance):
    ax, ay = (float(v) for v in a.split())
    bx, by = (float(v) for v in b.split())
    return 1 if math.hypot(ax - bx, ay - by) <= distance else 0


@event.listens_for(engine, "connect")
def register_spatial_functions(dbapi_connection, connection_record):
    # Planar stand-ins for the PostGIS functions used by the spatial query
    dbapi_connection.create_function("ST_MakePoint", 2, _make_point)
    dbapi_connection.create_function("ST_SetSRID", 2, _set_srid)
    dbapi_connection.create_function("ST_DWithin", 3, _dwithin)


@pytest.fixture
def db_engine():
    return engine


@pytest.fixture
def db_session():
    """Create a fresh database session for each test"""
    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


def _reading_xml(code, intensity, speed, harmonic):
    return (
        f'<meetdata klasse_id="{code}">'
        f"<verkeersintensiteit>{intensity}</verkeersintensiteit>"
        f"<voertuigsnelheid_rekenkundig>{speed}</voertuigsnelheid_rekenkundig>"
        f"<voertuigsnelheid_harmonisch>{harmonic}</voertuigsnelheid_harmonisch>"
        "</meetdata>"
    )


def build_measurement_xml(points):
    """
    points: dicts with id, time, readings [(code, intensity, speed, harmonic)],
    and optional occupancy / availability
    """
    body = []
    for point in points:
        readings = "".join(_reading_xml(*r) for r in point.get("readings", []))
        body.append(
            f'<meetpunt beschrijvende_id="H{point["id"]}L10" unieke_id="{point["id"]}">'
            "<lve_nr>55</lve_nr>"
            f'<tijd_waarneming>{point["time"]}</tijd_waarneming>'
            f'<tijd_laatst_gewijzigd>{point["time"]}</tijd_laatst_gewijzigd>'
            "<actueel_publicatie>1</actueel_publicatie>"
            "<beschikbaar>1</beschikbaar>"
            "<defect>0</defect>"
            "<geldig>0</geldig>"
            f"{readings}"
            "<rekendata>"
            f'<bezettingsgraad>{point.get("occupancy", 7)}</bezettingsgraad>'
            f'<beschikbaarheidsgraad>{point.get("availability", 100)}</beschikbaarheidsgraad>'
            "<onrustigheid>12</onrustigheid>"
            "</rekendata>"
            "</meetpunt>"
        )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        "<miv>"
        "<tijd_publicatie>2024-01-20T10:31:05+01:00</tijd_publicatie>"
        "<tijd_laatste_config_wijziging>2024-01-19T08:00:00+01:00</tijd_laatste_config_wijziging>"
        + "".join(body) +
        "</miv>"
    )


def build_location_xml(locations):
    """locations: (id, latitude, longitude) with values written as feed text"""
    body = "".join(
        f'<meetpunt unieke_id="{location_id}">'
        f"<beschrijvende_id>H{location_id}L10</beschrijvende_id>"
        f"<breedtegraad_EPSG_4326>{lat}</breedtegraad_EPSG_4326>"
        f"<lengtegraad_EPSG_4326>{lon}</lengtegraad_EPSG_4326>"
        "</meetpunt>"
        for location_id, lat, lon in locations
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        "<mivconfig>"
        "<tijd_laatste_config_wijziging>2024-01-19T08:00:00+01:00</tijd_laatste_config_wijziging>"
        + body +
        "</mivconfig>"
    )


@pytest.fixture
def measurement_xml():
    return build_measurement_xml


@pytest.fixture
def location_xml():
    return build_location_xml
