"""Immutable value types shared by the sunlight engine."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from engine_config import (
    DEFAULT_BUILDING_HEIGHT_M,
    DEFAULT_FLOOR_HEIGHT_M,
    MAX_BBOX_DEGREES,
)
from errors import ValidationError

EARTH_RADIUS_M = 6_371_000.0


def normalize_angle(angle_deg: float) -> float:
    """Wrap an angle in degrees into [0, 360)."""
    wrapped = angle_deg % 360.0
    return 0.0 if wrapped == 360.0 else wrapped


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def __post_init__(self):
        lat, lon = self.latitude, self.longitude
        if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
            raise ValidationError("Coordinates must be numeric")
        if math.isnan(lat) or lat < -90 or lat > 90:
            raise ValidationError("Latitude must be between -90 and 90")
        if math.isnan(lon) or lon < -180 or lon > 180:
            raise ValidationError("Longitude must be between -180 and 180")

    @classmethod
    def parse(cls, latitude, longitude) -> Coordinates | None:
        """Build coordinates from loosely typed input, or None if unusable."""
        if latitude is None or longitude is None:
            return None
        try:
            return cls(float(latitude), float(longitude))
        except (TypeError, ValueError):
            return None

    def distance_to(self, other: Coordinates) -> float:
        """Great-circle (haversine) distance in meters."""
        phi1 = math.radians(self.latitude)
        phi2 = math.radians(other.latitude)
        d_phi = math.radians(other.latitude - self.latitude)
        d_lambda = math.radians(other.longitude - self.longitude)

        a = (
            math.sin(d_phi / 2) ** 2
            + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
        )
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
        return EARTH_RADIUS_M * c

    def bearing_to(self, other: Coordinates) -> float:
        """
        Planar bearing towards another point in degrees, north = 0, clockwise.

        Uses raw degree deltas, which is accurate enough over the ~100 m
        distances the shadow heuristic works with.
        """
        d_lat = other.latitude - self.latitude
        d_lon = other.longitude - self.longitude
        return normalize_angle(math.degrees(math.atan2(d_lon, d_lat)))

    def to_lat_lng(self) -> dict[str, float]:
        return {"lat": self.latitude, "lng": self.longitude}


@dataclass(frozen=True)
class BoundingBox:
    south: float
    west: float
    north: float
    east: float

    def __post_init__(self):
        for name in ("south", "west", "north", "east"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or math.isnan(value):
                raise ValidationError(
                    "Invalid bounding box. Required params: south, west, north, east"
                )
        if not (-90 <= self.south <= 90 and -90 <= self.north <= 90):
            raise ValidationError("Latitude must be between -90 and 90")
        if not (-180 <= self.west <= 180 and -180 <= self.east <= 180):
            raise ValidationError("Longitude must be between -180 and 180")
        if self.south >= self.north or self.west >= self.east:
            raise ValidationError("Bounding box must satisfy south < north and west < east")

    @classmethod
    def create(
        cls,
        south: float,
        west: float,
        north: float,
        east: float,
        max_span: float | None = MAX_BBOX_DEGREES,
    ) -> BoundingBox:
        """Validate a caller-supplied box, including the size cap."""
        bbox = cls(south, west, north, east)
        if max_span is not None:
            if bbox.north - bbox.south > max_span or bbox.east - bbox.west > max_span:
                raise ValidationError(
                    f"Bounding box too large. Max {max_span} degrees (~5km)"
                )
        return bbox

    def center(self) -> Coordinates:
        return Coordinates((self.south + self.north) / 2.0, (self.west + self.east) / 2.0)

    def contains(self, point: Coordinates) -> bool:
        return (
            self.south <= point.latitude <= self.north
            and self.west <= point.longitude <= self.east
        )

    def to_overpass(self) -> str:
        return f"{self.south},{self.west},{self.north},{self.east}"


@dataclass(frozen=True)
class SunPosition:
    """
    Sun position at an instant.

    ``azimuth_radians`` follows the SunCalc convention: 0 = south, increasing
    clockwise (pi/2 = west). The degree accessors are north based.
    """

    azimuth_radians: float
    altitude_radians: float
    instant: datetime

    @property
    def azimuth_degrees(self) -> float:
        return normalize_angle(self.azimuth_radians * 180.0 / math.pi + 180.0)

    @property
    def altitude_degrees(self) -> float:
        return self.altitude_radians * 180.0 / math.pi

    @property
    def shadow_direction_degrees(self) -> float:
        return normalize_angle(self.azimuth_degrees + 180.0)

    @property
    def shadow_length_multiplier(self) -> float:
        if self.altitude_radians <= 0:
            return math.inf
        return 1.0 / math.tan(self.altitude_radians)

    def is_above_horizon(self) -> bool:
        return self.altitude_radians > 0

    def to_dict(self) -> dict:
        return {
            "azimuthDegrees": round(self.azimuth_degrees, 4),
            "altitudeDegrees": round(self.altitude_degrees, 4),
            "isDaytime": self.is_above_horizon(),
        }


@dataclass(frozen=True)
class Building:
    id: str
    coordinates: Coordinates
    height: float

    @classmethod
    def create(
        cls,
        id: str,
        coordinates: Coordinates,
        height: float | None = None,
        levels: int | None = None,
    ) -> Building:
        """Resolve height: explicit height, then levels x 3 m, then 10 m."""
        resolved = height if height and height > 0 else None
        if resolved is None and levels and levels > 0:
            resolved = levels * DEFAULT_FLOOR_HEIGHT_M
        if resolved is None:
            resolved = DEFAULT_BUILDING_HEIGHT_M
        return cls(id=id, coordinates=coordinates, height=float(resolved))

    def shadow_length(self, sun_altitude_radians: float) -> float:
        if sun_altitude_radians <= 0:
            return math.inf
        return self.height / math.tan(sun_altitude_radians)


class SunlightStatusType(str, Enum):
    SUNNY = "SUNNY"
    PARTIALLY_SUNNY = "PARTIALLY_SUNNY"
    SHADED = "SHADED"
    NIGHT = "NIGHT"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class SunlightStatus:
    kind: SunlightStatusType
    confidence: float
    reason: str | None = None

    def __post_init__(self):
        clamped = max(0.0, min(1.0, float(self.confidence)))
        object.__setattr__(self, "confidence", clamped)

    @classmethod
    def sunny(cls, confidence: float = 1.0, reason: str | None = None) -> SunlightStatus:
        return cls(SunlightStatusType.SUNNY, confidence, reason)

    @classmethod
    def partially_sunny(cls, confidence: float = 0.5, reason: str | None = None) -> SunlightStatus:
        return cls(SunlightStatusType.PARTIALLY_SUNNY, confidence, reason)

    @classmethod
    def shaded(cls, confidence: float = 1.0, reason: str | None = None) -> SunlightStatus:
        return cls(SunlightStatusType.SHADED, confidence, reason)

    @classmethod
    def night(cls) -> SunlightStatus:
        return cls(SunlightStatusType.NIGHT, 1.0, "Sun is below the horizon")

    @classmethod
    def unknown(cls, reason: str | None = None) -> SunlightStatus:
        return cls(
            SunlightStatusType.UNKNOWN,
            0.0,
            reason or "Unable to determine sunlight status",
        )

    def is_sunny(self) -> bool:
        return self.kind in (SunlightStatusType.SUNNY, SunlightStatusType.PARTIALLY_SUNNY)

    def is_shaded(self) -> bool:
        return self.kind == SunlightStatusType.SHADED

    def is_night(self) -> bool:
        return self.kind == SunlightStatusType.NIGHT

    def to_dict(self) -> dict:
        return {
            "status": self.kind.value,
            "confidence": round(self.confidence, 3),
            "reason": self.reason,
        }


class VenueType(str, Enum):
    BAR = "bar"
    RESTAURANT = "restaurant"
    CAFE = "cafe"
    PUB = "pub"
    BIERGARTEN = "biergarten"


VENUE_TYPES = frozenset(t.value for t in VenueType)


@dataclass(frozen=True)
class Venue:
    id: str
    name: str
    type: VenueType
    coordinates: Coordinates
    address: str | None = None
    outdoor_seating: bool | None = None
    opening_hours: str | None = None
    website: str | None = None
    phone: str | None = None
    description: str | None = None
    sunlight_status: SunlightStatus | None = None

    @classmethod
    def create(cls, id: str, name: str, type: VenueType | str, coordinates: Coordinates, **metadata) -> Venue:
        if not id:
            raise ValidationError("Venue must have an id")
        if not name:
            raise ValidationError("Venue must have a name")
        try:
            venue_type = VenueType(type)
        except ValueError as exc:
            raise ValidationError(f"Unsupported venue type: {type!r}") from exc
        return cls(id=id, name=name, type=venue_type, coordinates=coordinates, **metadata)

    def with_sunlight_status(self, status: SunlightStatus) -> Venue:
        return replace(self, sunlight_status=status)

    def is_sunny(self) -> bool:
        return self.sunlight_status is not None and self.sunlight_status.is_sunny()

    def has_outdoor_seating(self) -> bool:
        return self.outdoor_seating is True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "coordinates": self.coordinates.to_lat_lng(),
            "address": self.address,
            "openingHours": self.opening_hours,
            "outdoor_seating": self.outdoor_seating,
            "website": self.website,
            "phone": self.phone,
            "description": self.description,
            "sunlightStatus": self.sunlight_status.to_dict() if self.sunlight_status else None,
        }


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: object
    computed_at: float
    fresh_until: float
    stale_until: float

    def is_fresh(self, now: float) -> bool:
        return now < self.fresh_until

    def is_servable(self, now: float) -> bool:
        return now < self.stale_until

    def age(self, now: float) -> float:
        return max(0.0, now - self.computed_at)
