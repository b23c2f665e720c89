"""
MIV XML feed decoding
Turns the measurement and configuration documents into typed records
"""
from typing import Any, Dict, List, Optional
import logging
import xml.etree.ElementTree as ET

from pydantic import ValidationError

from traffic_feed.core.errors import DecodeError, ParseError
from traffic_feed.models.feed import (
    LocationFeed, LocationRecord, MeasurementFeed, MeasuringPointSnapshot
)

logger = logging.getLogger(__name__)

MEASUREMENT_ROOT = "miv"
LOCATION_ROOT = "mivconfig"


def parse_decimal_comma(raw: Optional[str]) -> float:
    """Convert a comma-decimal number such as '51,0812' to float"""
    if raw is None:
        raise ParseError("Missing numeric value")
    try:
        return float(raw.strip().replace(",", "."))
    except ValueError:
        raise ParseError(f"Not a number: {raw!r}")


def _load_root(xml_text: str, expected_root: str) -> ET.Element:
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise DecodeError(f"Malformed XML document: {e}")

    if root.tag != expected_root:
        raise DecodeError(f"Expected root element <{expected_root}>, got <{root.tag}>")
    return root


def _text(element: ET.Element, tag: str) -> str:
    child = element.find(tag)
    if child is None or child.text is None:
        raise DecodeError(f"<{element.tag}> is missing <{tag}>")
    return child.text.strip()


def _optional_text(element: ET.Element, tag: str) -> Optional[str]:
    child = element.find(tag)
    if child is None or child.text is None:
        return None
    return child.text.strip()


def _attribute(element: ET.Element, name: str) -> str:
    value = element.get(name)
    if value is None:
        raise DecodeError(f"<{element.tag}> is missing attribute '{name}'")
    return value


def _measuring_point(point: ET.Element) -> Dict[str, Any]:
    calculated = point.find("rekendata")
    if calculated is None:
        raise DecodeError(f"Measuring point {point.get('unieke_id')} has no <rekendata>")

    readings = [
        {
            "vehicle_class": reading.get("klasse_id"),
            "traffic_intensity": _text(reading, "verkeersintensiteit"),
            "speed_arithmetic": _text(reading, "voertuigsnelheid_rekenkundig"),
            "speed_harmonic": _text(reading, "voertuigsnelheid_harmonisch"),
        }
        for reading in point.findall("meetdata")
    ]

    return {
        "location_id": _attribute(point, "unieke_id"),
        "descriptive_id": point.get("beschrijvende_id"),
        "observation_time": _text(point, "tijd_waarneming"),
        "available": _optional_text(point, "beschikbaar"),
        "faulty": _optional_text(point, "defect"),
        "valid": _optional_text(point, "geldig"),
        "readings": readings,
        "occupancy_rate": _text(calculated, "bezettingsgraad"),
        "availability_rate": _text(calculated, "beschikbaarheidsgraad"),
        "instability": _optional_text(calculated, "onrustigheid"),
    }


def parse_measurement_feed(xml_text: str) -> MeasurementFeed:
    """
    Decode the live measurement snapshot

    Raises:
        DecodeError: document is malformed or a point lacks required data
    """
    root = _load_root(xml_text, MEASUREMENT_ROOT)
    points = [_measuring_point(point) for point in root.findall("meetpunt")]

    try:
        feed = MeasurementFeed(
            publication_time=_optional_text(root, "tijd_publicatie"),
            measuring_points=[MeasuringPointSnapshot.model_validate(p) for p in points],
        )
    except ValidationError as e:
        raise DecodeError(f"Invalid measurement feed: {e}")

    logger.info(f"Decoded {len(feed.measuring_points)} measuring points")
    return feed


def parse_location_feed(xml_text: str) -> LocationFeed:
    """
    Decode the configuration snapshot into location records

    Raises:
        DecodeError: document is malformed
        ParseError: a coordinate is not numeric
    """
    root = _load_root(xml_text, LOCATION_ROOT)

    records: List[Dict[str, Any]] = []
    for point in root.findall("meetpunt"):
        records.append({
            "unique_id": _attribute(point, "unieke_id"),
            "latitude": parse_decimal_comma(_text(point, "breedtegraad_EPSG_4326")),
            "longitude": parse_decimal_comma(_text(point, "lengtegraad_EPSG_4326")),
        })

    try:
        feed = LocationFeed(
            config_change_time=_optional_text(root, "tijd_laatste_config_wijziging"),
            locations=[LocationRecord.model_validate(r) for r in records],
        )
    except ValidationError as e:
        raise DecodeError(f"Invalid location feed: {e}")

    logger.info(f"Decoded {len(feed.locations)} locations")
    return feed
