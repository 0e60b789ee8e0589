"""Cached fetch -> parse -> sun -> classify pipeline for one bounding box."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

import sun_position
from engine_config import EngineConfig, get_engine_config
from geo_models import BoundingBox, Coordinates
from overpass_client import OverpassClient, build_combined_query
from overpass_parser import parse_elements
from response_cache import ResponseCache, cache_key
from shadow_engine import ShadowParams, classify_many

log = logging.getLogger(__name__)


class SunlightAnalyzer:
    """Serving-layer entry point: ``analyze``, ``invalidate`` and ``sun_info``."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        client: OverpassClient | None = None,
        cache: ResponseCache | None = None,
    ):
        self.config = config or get_engine_config()
        self.client = client or OverpassClient.from_config(self.config)
        if cache is None:
            cache = ResponseCache(self.config.fresh_ttl_s, self.config.stale_ttl_s)
        self.cache = cache
        self.params = ShadowParams.from_config(self.config)

    def analyze(
        self,
        bbox: BoundingBox,
        instant: datetime | None = None,
        cancel: threading.Event | None = None,
        only_sunny: bool = False,
        only_outdoor_seating: bool = False,
    ) -> dict:
        dt = sun_position.to_utc(instant) if instant is not None else datetime.now(timezone.utc)
        key = cache_key(bbox, dt)

        lookup = self.cache.fetch(
            key,
            lambda: self._compute(bbox, dt, cancel),
            # Revalidation outlives the request that triggered it.
            refresh=lambda: self._compute(bbox, dt, None),
        )

        payload = dict(lookup.payload)
        meta = dict(payload["meta"])
        meta["cacheKey"] = key
        meta["cacheStatus"] = lookup.status
        meta["cacheAgeSeconds"] = round(lookup.age_s, 1)

        venues = payload["venues"]
        if only_outdoor_seating:
            venues = [v for v in venues if v.get("outdoor_seating") is True]
        if only_sunny:
            venues = [v for v in venues if _is_sunny_row(v)]
        payload["venues"] = venues
        payload["meta"] = meta
        return payload

    def invalidate(self, key: str | None = None) -> str:
        if not key or key == "all":
            self.cache.clear()
            return "All cache cleared."
        self.cache.invalidate(key)
        return f"Cache invalidated for key: {key}"

    def sun_info(self, coords: Coordinates, instant: datetime | None = None) -> dict:
        dt = sun_position.to_utc(instant) if instant is not None else datetime.now(timezone.utc)
        return sun_position.sun_info(coords, dt)

    def _compute(self, bbox: BoundingBox, dt: datetime, cancel: threading.Event | None) -> dict:
        result = self.client.query(build_combined_query(bbox), cancel=cancel)
        report = parse_elements(result.elements)

        sun = sun_position.position(bbox.center(), dt)
        statuses = classify_many(
            report.venues,
            report.buildings,
            sun,
            self.params,
            parallel_threshold=self.config.parallel_threshold,
            max_workers=self.config.max_workers,
        )

        venues = []
        for venue in report.venues:
            status = statuses.get(venue.id)
            venues.append((venue.with_sunlight_status(status) if status else venue).to_dict())

        sunny_count = sum(1 for v in venues if _is_sunny_row(v))
        log.info(
            "Processed %d venues, %d buildings (%d elements dropped) for %s",
            len(venues), len(report.buildings), report.dropped, bbox.to_overpass(),
        )

        return {
            "venues": venues,
            "sunPosition": sun.to_dict(),
            "meta": {
                "timestamp": dt.isoformat(),
                "buildingsAnalyzed": len(report.buildings),
                "venueCount": len(venues),
                "droppedElements": report.dropped,
                "sunnyCount": sunny_count,
                "shadedCount": len(venues) - sunny_count,
                "dataSource": result.endpoint,
            },
        }


def _is_sunny_row(row: dict) -> bool:
    status = row.get("sunlightStatus") or {}
    return status.get("status") in ("SUNNY", "PARTIALLY_SUNNY")
