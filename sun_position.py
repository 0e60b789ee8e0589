"""Solar position and daily sun times backed by pysolar."""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from pysolar.solar import get_altitude, get_azimuth

from geo_models import Coordinates, SunPosition

# Apparent altitude of the sun's upper limb at sunrise/sunset (refraction + disc).
SUNRISE_ALTITUDE_DEG = -0.833
GOLDEN_HOUR_ALTITUDE_DEG = 6.0

_SEARCH_ITERATIONS = 40


@dataclass(frozen=True)
class SunTimes:
    sunrise: datetime | None
    sunset: datetime | None
    solar_noon: datetime
    golden_hour: datetime | None

    def to_dict(self) -> dict:
        return {
            "sunrise": _iso_or_none(self.sunrise),
            "sunset": _iso_or_none(self.sunset),
            "solarNoon": self.solar_noon.isoformat(),
            "goldenHour": _iso_or_none(self.golden_hour),
        }


def _iso_or_none(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def to_utc(dt: datetime) -> datetime:
    """Aware UTC datetime; naive input is taken to be UTC already."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _altitude_deg(coords: Coordinates, dt: datetime) -> float:
    return float(get_altitude(coords.latitude, coords.longitude, dt))


def position(coords: Coordinates, instant: datetime) -> SunPosition:
    """Return the sun position with a south-based, clockwise azimuth in radians."""
    dt_utc = to_utc(instant)
    altitude_deg = _altitude_deg(coords, dt_utc)
    azimuth_north_deg = (float(get_azimuth(coords.latitude, coords.longitude, dt_utc)) + 360.0) % 360.0
    return SunPosition(
        azimuth_radians=math.radians(azimuth_north_deg - 180.0),
        altitude_radians=math.radians(altitude_deg),
        instant=dt_utc,
    )


def is_daytime(coords: Coordinates, instant: datetime) -> bool:
    return position(coords, instant).is_above_horizon()


def _solar_noon(coords: Coordinates, day: date) -> datetime:
    # Mean solar noon, then refine on the altitude curve (unimodal near noon).
    estimate = datetime.combine(day, time(12, 0), tzinfo=timezone.utc) - timedelta(
        hours=coords.longitude / 15.0
    )
    lo = estimate - timedelta(hours=1)
    hi = estimate + timedelta(hours=1)
    for _ in range(_SEARCH_ITERATIONS):
        third = (hi - lo) / 3
        m1 = lo + third
        m2 = hi - third
        if _altitude_deg(coords, m1) < _altitude_deg(coords, m2):
            lo = m1
        else:
            hi = m2
    return lo + (hi - lo) / 2


def _crossing(
    coords: Coordinates,
    start: datetime,
    end: datetime,
    threshold_deg: float,
) -> datetime | None:
    """Bisect for the instant the altitude crosses ``threshold_deg`` in [start, end]."""
    start_above = _altitude_deg(coords, start) >= threshold_deg
    end_above = _altitude_deg(coords, end) >= threshold_deg
    if start_above == end_above:
        return None

    lo, hi = start, end
    for _ in range(_SEARCH_ITERATIONS):
        mid = lo + (hi - lo) / 2
        if (_altitude_deg(coords, mid) >= threshold_deg) == start_above:
            lo = mid
        else:
            hi = mid
    return (lo + (hi - lo) / 2).replace(microsecond=0)


def times(coords: Coordinates, day: date | datetime) -> SunTimes:
    """
    Sunrise, sunset, solar noon and evening golden hour for a calendar day (UTC).

    Fields are None when the crossing does not happen that day (polar day or
    night).
    """
    if isinstance(day, datetime):
        day = to_utc(day).date()

    noon = _solar_noon(coords, day)
    morning = noon - timedelta(hours=12)
    evening = noon + timedelta(hours=12)

    return SunTimes(
        sunrise=_crossing(coords, morning, noon, SUNRISE_ALTITUDE_DEG),
        sunset=_crossing(coords, noon, evening, SUNRISE_ALTITUDE_DEG),
        solar_noon=noon.replace(microsecond=0),
        golden_hour=_crossing(coords, noon, evening, GOLDEN_HOUR_ALTITUDE_DEG),
    )


def sun_info(coords: Coordinates, instant: datetime) -> dict:
    """Position, daily times and daytime flag for one place and instant."""
    sun = position(coords, instant)
    return {
        "position": {
            "azimuthDegrees": round(sun.azimuth_degrees, 4),
            "altitudeDegrees": round(sun.altitude_degrees, 4),
            "isAboveHorizon": sun.is_above_horizon(),
        },
        "times": times(coords, sun.instant).to_dict(),
        "isDaytime": sun.is_above_horizon(),
    }
