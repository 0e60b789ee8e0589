"""Convert raw Overpass elements into Venue and Building records."""
from __future__ import annotations

import re
from dataclasses import dataclass, field

from geo_models import VENUE_TYPES, Building, Coordinates, Venue

_LEADING_NUMBER = re.compile(r"^\s*(\d+(?:[.,]\d+)?)")


@dataclass
class ParseReport:
    venues: list[Venue] = field(default_factory=list)
    buildings: list[Building] = field(default_factory=list)
    dropped: int = 0


def _element_id(element: dict) -> str | None:
    raw_id = element.get("id")
    if raw_id is None:
        return None
    return f"{element.get('type', 'node')}/{raw_id}"


def _element_coordinates(element: dict) -> Coordinates | None:
    # Nodes carry lat/lon directly; ways/relations only have 'center' with out center.
    lat = element.get("lat")
    lon = element.get("lon")
    if lat is None or lon is None:
        center = element.get("center") or {}
        lat = center.get("lat")
        lon = center.get("lon")
    return Coordinates.parse(lat, lon)


def _as_float(value) -> float | None:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_NUMBER.match(str(value))
    if not match:
        return None
    return float(match.group(1).replace(",", "."))


def parse_height(tags: dict) -> float | None:
    """Height in metres from ``height`` / ``building:height`` ("12", "12.5 m")."""
    height = _as_float(tags.get("height") or tags.get("building:height"))
    if height and height > 0:
        return height
    return None


def parse_levels(tags: dict) -> int | None:
    levels = _as_float(tags.get("building:levels") or tags.get("levels"))
    if levels and levels > 0:
        return int(levels)
    return None


def build_address(tags: dict) -> str | None:
    street = tags.get("addr:street")
    if not street:
        return None
    house_number = tags.get("addr:housenumber")
    return f"{street} {house_number}" if house_number else street


def _venue_from_element(element: dict) -> Venue | None:
    tags = element.get("tags") or {}
    name = tags.get("name")
    amenity = tags.get("amenity")
    if not name or amenity not in VENUE_TYPES:
        return None

    element_id = _element_id(element)
    coords = _element_coordinates(element)
    if element_id is None or coords is None:
        return None

    outdoor = tags.get("outdoor_seating")
    return Venue.create(
        id=element_id,
        name=name,
        type=amenity,
        coordinates=coords,
        address=build_address(tags),
        outdoor_seating=(outdoor == "yes") if outdoor is not None else None,
        opening_hours=tags.get("opening_hours"),
        website=tags.get("website") or tags.get("contact:website"),
        phone=tags.get("phone") or tags.get("contact:phone"),
        description=tags.get("description"),
    )


def _building_from_element(element: dict) -> Building | None:
    tags = element.get("tags") or {}
    element_id = _element_id(element)
    coords = _element_coordinates(element)
    if element_id is None or coords is None:
        return None
    return Building.create(
        id=element_id,
        coordinates=coords,
        height=parse_height(tags),
        levels=parse_levels(tags),
    )


def parse_venues(elements: list[dict]) -> list[Venue]:
    """Venues with a name, a supported amenity and usable coordinates."""
    venues = []
    for element in elements:
        if not isinstance(element, dict):
            continue
        venue = _venue_from_element(element)
        if venue is not None:
            venues.append(venue)
    return venues


def parse_buildings(elements: list[dict]) -> list[Building]:
    """Buildings with usable coordinates; height falls back to levels, then 10 m."""
    buildings = []
    for element in elements:
        if not isinstance(element, dict):
            continue
        building = _building_from_element(element)
        if building is not None:
            buildings.append(building)
    return buildings


def parse_elements(elements: list[dict]) -> ParseReport:
    """
    Split a combined response: amenity nodes become venues, ways tagged
    ``building`` become buildings. Everything unusable is counted in
    ``dropped``.
    """
    report = ParseReport()
    for element in elements:
        if not isinstance(element, dict):
            report.dropped += 1
            continue
        tags = element.get("tags") or {}
        kind = element.get("type")
        if kind == "node" and tags.get("amenity"):
            venue = _venue_from_element(element)
            if venue is None:
                report.dropped += 1
            else:
                report.venues.append(venue)
        elif kind == "way" and tags.get("building"):
            building = _building_from_element(element)
            if building is None:
                report.dropped += 1
            else:
                report.buildings.append(building)
        else:
            report.dropped += 1
    return report
