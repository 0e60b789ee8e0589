"""Overpass API client with endpoint failover, per-attempt timeout and retry."""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Union

import requests

from engine_config import OVERPASS_ENDPOINTS, EngineConfig
from errors import (
    RequestCancelled,
    UpstreamError,
    UpstreamHTTPError,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from geo_models import VENUE_TYPES, BoundingBox

log = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({429, 502, 503, 504})
_CHUNK_SIZE = 64 * 1024

AMENITY_PATTERN = "^(" + "|".join(sorted(VENUE_TYPES)) + ")$"


@dataclass(frozen=True)
class Success:
    payload: dict


@dataclass(frozen=True)
class Retryable:
    reason: str
    error: Exception


@dataclass(frozen=True)
class Fatal:
    error: Exception


AttemptOutcome = Union[Success, Retryable, Fatal]


@dataclass(frozen=True)
class OverpassResult:
    elements: list[dict]
    endpoint: str
    attempts: int


def build_combined_query(bbox: BoundingBox, timeout_s: int = 15) -> str:
    """
    One request for venue nodes and tall buildings in ``bbox``.

    Buildings are limited to ways with an explicit height or 3+ levels, and
    ``out center`` returns centroids instead of full geometry.
    """
    b = bbox.to_overpass()
    return f"""
[out:json][timeout:{timeout_s}];
(
  node["amenity"~"{AMENITY_PATTERN}"]({b});
  way["building"]["height"]({b});
  way["building"]["building:levels"~"^([3-9]|[1-9][0-9]+)$"]({b});
);
out center;
"""


def build_venue_query(bbox: BoundingBox, timeout_s: int = 20) -> str:
    b = bbox.to_overpass()
    return f"""
[out:json][timeout:{timeout_s}];
node["amenity"~"{AMENITY_PATTERN}"]({b});
out;
"""


def build_building_query(bbox: BoundingBox, timeout_s: int = 20) -> str:
    b = bbox.to_overpass()
    return f"""
[out:json][timeout:{timeout_s}];
(
  way["building"]["height"]({b});
  way["building"]["building:levels"]({b});
);
out center;
"""


class OverpassClient:
    """
    POST queries to a fixed, ordered list of Overpass mirrors.

    Attempts are sequential; attempt ``n`` goes to ``endpoints[n % len]``.
    Transient failures (429/502/503/504, timeouts, dropped connections,
    unparseable bodies) are retried after a linear backoff. Other HTTP errors
    raise ``UpstreamHTTPError`` straight away.
    """

    def __init__(
        self,
        endpoints: tuple[str, ...] | list[str] = OVERPASS_ENDPOINTS,
        max_attempts: int = 3,
        timeout_s: float = 25.0,
        backoff_base_s: float = 1.0,
        session: requests.Session | None = None,
        user_agent: str = "SunBar/1.0 (sunlight analysis)",
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not endpoints:
            raise ValueError("At least one Overpass endpoint is required")
        self.endpoints = tuple(endpoints)
        self.max_attempts = max(1, int(max_attempts))
        self.timeout_s = timeout_s
        self.backoff_base_s = backoff_base_s
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": user_agent})
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: EngineConfig, **kwargs) -> "OverpassClient":
        return cls(
            endpoints=config.overpass_endpoints,
            max_attempts=config.max_attempts,
            timeout_s=config.attempt_timeout_s,
            backoff_base_s=config.backoff_base_s,
            user_agent=config.user_agent,
            **kwargs,
        )

    def close(self) -> None:
        self.session.close()

    def query(self, query_text: str, cancel: threading.Event | None = None) -> OverpassResult:
        last_error: Exception | None = None

        for attempt in range(self.max_attempts):
            _raise_if_cancelled(cancel)
            endpoint = self.endpoints[attempt % len(self.endpoints)]
            outcome = self._attempt(endpoint, query_text, cancel)

            if isinstance(outcome, Success):
                elements = outcome.payload["elements"]
                log.info(
                    "Overpass returned %d elements from %s (attempt %d/%d)",
                    len(elements), endpoint, attempt + 1, self.max_attempts,
                )
                return OverpassResult(elements=elements, endpoint=endpoint, attempts=attempt + 1)

            if isinstance(outcome, Fatal):
                raise outcome.error

            last_error = outcome.error
            log.warning(
                "Overpass attempt %d/%d against %s failed (%s): %s",
                attempt + 1, self.max_attempts, endpoint, outcome.reason, outcome.error,
            )
            if attempt + 1 < self.max_attempts:
                self._backoff(attempt, cancel)

        log.error("Overpass retries exhausted after %d attempts: %s", self.max_attempts, last_error)
        raise UpstreamUnavailable(self.max_attempts, last_error) from last_error

    def _backoff(self, attempt: int, cancel: threading.Event | None) -> None:
        delay = self.backoff_base_s * (attempt + 1)
        if delay <= 0:
            return
        if cancel is None:
            self._sleep(delay)
        elif cancel.wait(delay):
            raise RequestCancelled("Request cancelled during retry backoff")

    def _attempt(
        self,
        endpoint: str,
        query_text: str,
        cancel: threading.Event | None,
    ) -> AttemptOutcome:
        try:
            response = self.session.post(
                endpoint,
                data={"data": query_text},
                timeout=self.timeout_s,
                stream=True,
            )
        except requests.Timeout:
            return Retryable("timeout", UpstreamTimeout(endpoint, self.timeout_s))
        except requests.RequestException as exc:
            return Retryable("transport", UpstreamError(f"{endpoint}: {exc}"))

        with response:
            status = response.status_code
            if status in RETRYABLE_STATUSES:
                return Retryable(f"status {status}", UpstreamError(f"Server error: {status}"))
            if not response.ok:
                return Fatal(UpstreamHTTPError(status, endpoint, response.reason or ""))

            try:
                body = _read_body(response, cancel)
            except requests.Timeout:
                return Retryable("timeout", UpstreamTimeout(endpoint, self.timeout_s))
            except requests.RequestException as exc:
                return Retryable("transport", UpstreamError(f"{endpoint}: {exc}"))

        try:
            payload = json.loads(body)
        except ValueError as exc:
            return Retryable("malformed body", UpstreamError(f"{endpoint} returned invalid JSON: {exc}"))
        if not isinstance(payload, dict) or not isinstance(payload.get("elements"), list):
            return Retryable("malformed body", UpstreamError(f"{endpoint} response has no elements array"))
        return Success(payload)


def _read_body(response: requests.Response, cancel: threading.Event | None) -> bytes:
    chunks = []
    for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
        _raise_if_cancelled(cancel)
        if chunk:
            chunks.append(chunk)
    return b"".join(chunks)


def _raise_if_cancelled(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise RequestCancelled("Request cancelled by caller")
