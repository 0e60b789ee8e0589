"""Point-occluder shadow heuristic and venue sunlight classification."""
from __future__ import annotations

import math
import os
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from typing import Any, Iterable

import numpy as np
import pyproj
from shapely.geometry import Point
from shapely.strtree import STRtree

from engine_config import (
    NEARBY_BUILDING_RADIUS_M,
    NO_BUILDINGS_CONFIDENCE,
    NO_SHADOW_CONFIDENCE,
    PARTIAL_CONFIDENCE_FACTOR,
    SHADED_MIN_BUILDINGS,
    SHADOW_BUFFER_M,
    SHADOW_CONE_HALF_ANGLE_DEG,
    EngineConfig,
)
from geo_models import Building, Coordinates, SunlightStatus, SunPosition, Venue

# Projected distances are only used to pick candidates; haversine decides.
_INDEX_SLACK_M = 5.0


@dataclass(frozen=True)
class ShadowParams:
    radius_m: float = NEARBY_BUILDING_RADIUS_M
    buffer_m: float = SHADOW_BUFFER_M
    cone_half_angle_deg: float = SHADOW_CONE_HALF_ANGLE_DEG
    shaded_min_buildings: int = SHADED_MIN_BUILDINGS

    @classmethod
    def from_config(cls, config: EngineConfig) -> "ShadowParams":
        return cls(
            radius_m=config.nearby_radius_m,
            buffer_m=config.shadow_buffer_m,
            cone_half_angle_deg=config.cone_half_angle_deg,
            shaded_min_buildings=config.shaded_min_buildings,
        )


DEFAULT_PARAMS = ShadowParams()


def angle_difference(a_deg: float, b_deg: float) -> float:
    """Smallest absolute difference between two bearings, in [0, 180]."""
    diff = abs(a_deg - b_deg) % 360.0
    return 360.0 - diff if diff > 180.0 else diff


def could_shade(
    building: Building,
    point: Coordinates,
    sun: SunPosition,
    params: ShadowParams = DEFAULT_PARAMS,
) -> bool:
    """
    True if ``building`` plausibly casts its shadow over ``point``.

    The building is a point occluder at its centroid casting a cone of
    ``cone_half_angle_deg`` half-angle away from the sun. Night is not a
    shadow and returns False.
    """
    if sun.altitude_radians <= 0:
        return False

    shadow_length = building.shadow_length(sun.altitude_radians)
    distance = building.coordinates.distance_to(point)
    if distance > shadow_length + params.buffer_m:
        return False

    bearing_to_point = building.coordinates.bearing_to(point)
    diff = angle_difference(bearing_to_point, sun.shadow_direction_degrees)
    return diff < params.cone_half_angle_deg and distance < shadow_length


def classify(
    venue: Venue,
    nearby_buildings: list[Building],
    sun: SunPosition,
    params: ShadowParams = DEFAULT_PARAMS,
) -> SunlightStatus:
    """Combine per-building shadow checks into one status for a venue."""
    if not sun.is_above_horizon():
        return SunlightStatus.night()

    if not nearby_buildings:
        return SunlightStatus.sunny(NO_BUILDINGS_CONFIDENCE, "No nearby buildings detected")

    shading_count = 0
    max_confidence = 0.0
    for building in nearby_buildings:
        distance = building.coordinates.distance_to(venue.coordinates)
        if distance >= params.radius_m:
            continue
        if could_shade(building, venue.coordinates, sun, params):
            shading_count += 1
            max_confidence = max(max_confidence, 1.0 - distance / params.radius_m)

    if shading_count == 0:
        return SunlightStatus.sunny(
            NO_SHADOW_CONFIDENCE, "No buildings casting shadows on this location"
        )

    if shading_count >= params.shaded_min_buildings:
        return SunlightStatus.shaded(
            max_confidence, f"{shading_count} buildings may cast shadows"
        )

    return SunlightStatus.partially_sunny(
        max_confidence * PARTIAL_CONFIDENCE_FACTOR,
        f"{shading_count} building(s) may partially shade this area",
    )


def _local_transformer(origin: Coordinates) -> pyproj.Transformer:
    """WGS84 -> azimuthal equidistant metres centred on ``origin``."""
    local_crs = pyproj.CRS.from_proj4(
        f"+proj=aeqd +lat_0={origin.latitude} +lon_0={origin.longitude} "
        "+datum=WGS84 +units=m +no_defs"
    )
    return pyproj.Transformer.from_crs("EPSG:4326", local_crs, always_xy=True)


def _centroid(points: Iterable[Coordinates]) -> Coordinates | None:
    lats: list[float] = []
    lons: list[float] = []
    for p in points:
        lats.append(p.latitude)
        lons.append(p.longitude)
    if not lats:
        return None
    return Coordinates(float(np.mean(lats)), float(np.mean(lons)))


def build_building_index(
    buildings: list[Building],
    origin: Coordinates | None = None,
) -> dict[str, Any]:
    """
    Build a spatial index bundle of building centroids in local metres.
    """
    records = list(buildings)
    origin = origin or _centroid(b.coordinates for b in records)
    if origin is None:
        return {"records": [], "index": None, "transformer": None, "id_map": {}}

    transformer = _local_transformer(origin)
    geometries = []
    for rec in records:
        x, y = transformer.transform(rec.coordinates.longitude, rec.coordinates.latitude)
        geometries.append(Point(x, y))

    index = STRtree(geometries) if geometries else None
    return {
        "records": records,
        "index": index,
        "transformer": transformer,
        "id_map": {id(g): idx for idx, g in enumerate(geometries)},
    }


def _query_candidate_indices(index_bundle: dict[str, Any], search_area) -> list[int]:
    tree = index_bundle.get("index")
    if tree is None:
        return []

    result = tree.query(search_area)
    if len(result) == 0:
        return []

    first = result[0]
    if isinstance(first, (int, np.integer)):
        return [int(i) for i in result]

    id_map = index_bundle.get("id_map", {})
    return [id_map[id(g)] for g in result if id(g) in id_map]


def nearby_buildings(
    index_bundle: dict[str, Any],
    point: Coordinates,
    radius_m: float = NEARBY_BUILDING_RADIUS_M,
) -> list[Building]:
    """Buildings strictly closer than ``radius_m`` to ``point``, in index order."""
    transformer = index_bundle.get("transformer")
    if transformer is None:
        return []

    x, y = transformer.transform(point.longitude, point.latitude)
    search_area = Point(x, y).buffer(radius_m + _INDEX_SLACK_M)
    records: list[Building] = index_bundle["records"]
    return [
        records[idx]
        for idx in sorted(_query_candidate_indices(index_bundle, search_area))
        if records[idx].coordinates.distance_to(point) < radius_m
    ]


def _classify_chunk(
    chunk: list[tuple[Venue, list[Building]]],
    sun: SunPosition,
    params: ShadowParams,
) -> list[tuple[str, SunlightStatus]]:
    return [(venue.id, classify(venue, nearby, sun, params)) for venue, nearby in chunk]


def classify_many(
    venues: list[Venue],
    buildings: list[Building],
    sun: SunPosition,
    params: ShadowParams = DEFAULT_PARAMS,
    parallel_threshold: int = 400,
    max_workers: int | None = None,
) -> dict[str, SunlightStatus]:
    """
    Classify every venue independently against buildings within the radius.

    Large batches are spread across worker processes; the result does not
    depend on whether the pool was used.
    """
    if not venues:
        return {}

    index_bundle = build_building_index(buildings)
    work = [
        (venue, nearby_buildings(index_bundle, venue.coordinates, params.radius_m))
        for venue in venues
    ]

    if len(work) < parallel_threshold:
        return dict(_classify_chunk(work, sun, params))

    workers = max_workers or os.cpu_count() or 1
    size = max(1, math.ceil(len(work) / (workers * 4)))
    chunks = [work[i:i + size] for i in range(0, len(work), size)]
    results: dict[str, SunlightStatus] = {}
    with ProcessPoolExecutor(max_workers=workers) as pool:
        for part in pool.map(_classify_chunk, chunks, [sun] * len(chunks), [params] * len(chunks)):
            results.update(part)
    return results
