"""Tunables and environment-driven configuration for the sunlight engine."""

from __future__ import annotations

import os
from dataclasses import dataclass

# Shadow heuristic tunables (empirical).
NEARBY_BUILDING_RADIUS_M = 100.0
SHADOW_BUFFER_M = 50.0
SHADOW_CONE_HALF_ANGLE_DEG = 45.0
SHADED_MIN_BUILDINGS = 3
NO_BUILDINGS_CONFIDENCE = 0.8
NO_SHADOW_CONFIDENCE = 0.7
PARTIAL_CONFIDENCE_FACTOR = 0.6

DEFAULT_FLOOR_HEIGHT_M = 3.0
DEFAULT_BUILDING_HEIGHT_M = 10.0

MAX_BBOX_DEGREES = 0.05

OVERPASS_ENDPOINTS = (
    "https://overpass-api.de/api/interpreter",
    "https://overpass.kumi.systems/api/interpreter",
    "https://maps.mail.ru/osm/tools/overpass/api/interpreter",
)


@dataclass(frozen=True)
class EngineConfig:
    overpass_endpoints: tuple[str, ...] = OVERPASS_ENDPOINTS
    max_attempts: int = 3
    attempt_timeout_s: float = 25.0
    backoff_base_s: float = 1.0
    user_agent: str = "SunBar/1.0 (sunlight analysis)"

    fresh_ttl_s: float = 15 * 60.0
    stale_ttl_s: float = 5 * 60.0

    nearby_radius_m: float = NEARBY_BUILDING_RADIUS_M
    shadow_buffer_m: float = SHADOW_BUFFER_M
    cone_half_angle_deg: float = SHADOW_CONE_HALF_ANGLE_DEG
    shaded_min_buildings: int = SHADED_MIN_BUILDINGS
    # Below this venue count the pool start-up costs more than it saves.
    parallel_threshold: int = 400
    max_workers: int | None = None

    max_bbox_degrees: float = MAX_BBOX_DEGREES

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "EngineConfig":
        env = os.environ if environ is None else environ
        defaults = cls()

        endpoints_raw = env.get("SUNBAR_OVERPASS_ENDPOINTS", "")
        endpoints = tuple(e.strip() for e in endpoints_raw.split(",") if e.strip())
        max_workers_raw = env.get("SUNBAR_MAX_WORKERS", "").strip()

        return cls(
            overpass_endpoints=endpoints or defaults.overpass_endpoints,
            max_attempts=_env_int(env, "SUNBAR_MAX_ATTEMPTS", defaults.max_attempts),
            attempt_timeout_s=_env_float(env, "SUNBAR_ATTEMPT_TIMEOUT_S", defaults.attempt_timeout_s),
            backoff_base_s=_env_float(env, "SUNBAR_BACKOFF_BASE_S", defaults.backoff_base_s),
            user_agent=env.get("SUNBAR_USER_AGENT", defaults.user_agent),
            fresh_ttl_s=_env_float(env, "SUNBAR_FRESH_TTL_S", defaults.fresh_ttl_s),
            stale_ttl_s=_env_float(env, "SUNBAR_STALE_TTL_S", defaults.stale_ttl_s),
            parallel_threshold=_env_int(env, "SUNBAR_PARALLEL_THRESHOLD", defaults.parallel_threshold),
            max_workers=int(max_workers_raw) if max_workers_raw else None,
        )


def _env_float(env, name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(env, name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


_CONFIG: EngineConfig | None = None


def get_engine_config() -> EngineConfig:
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = EngineConfig.from_env()
    return _CONFIG
