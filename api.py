"""FastAPI server for SunBar."""
import asyncio
import logging
import threading
from datetime import datetime, timezone

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from pydantic import BaseModel, Field, model_validator

from analysis import SunlightAnalyzer
from engine_config import MAX_BBOX_DEGREES
from errors import (
    RequestCancelled,
    UpstreamHTTPError,
    UpstreamUnavailable,
    ValidationError,
)
from geo_models import BoundingBox, Coordinates

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(title="SunBar", version="0.1.0")
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

ANALYZER = SunlightAnalyzer()
DISCONNECT_POLL_S = 0.5


# ---------- Request models ----------

class BboxQuery(BaseModel):
    south: float = Field(ge=-90, le=90)
    west: float = Field(ge=-180, le=180)
    north: float = Field(ge=-90, le=90)
    east: float = Field(ge=-180, le=180)

    @model_validator(mode="after")
    def _check_size(self):
        if self.north - self.south > MAX_BBOX_DEGREES or self.east - self.west > MAX_BBOX_DEGREES:
            raise ValueError(f"Bounding box too large. Max {MAX_BBOX_DEGREES} degrees (~5km)")
        return self

    def to_bbox(self) -> BoundingBox:
        return BoundingBox(self.south, self.west, self.north, self.east)


class InvalidateResponse(BaseModel):
    success: bool
    message: str = Field(default="")


# ---------- Error mapping ----------

@app.exception_handler(ValidationError)
def _validation_error(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(UpstreamHTTPError)
def _upstream_http_error(request: Request, exc: UpstreamHTTPError):
    return JSONResponse(
        status_code=502,
        content={"error": str(exc), "upstream_status": exc.status_code},
    )


@app.exception_handler(UpstreamUnavailable)
def _upstream_unavailable(request: Request, exc: UpstreamUnavailable):
    return JSONResponse(
        status_code=503,
        content={"error": str(exc), "attempts": exc.attempts},
        headers={"Retry-After": "30"},
    )


@app.exception_handler(RequestCancelled)
def _request_cancelled(request: Request, exc: RequestCancelled):
    return JSONResponse(status_code=499, content={"error": str(exc)})


# ---------- Endpoints ----------

def _parse_iso_datetime(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError("Invalid datetime format. Expected ISO 8601 string.") from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _bbox_from_query(south: float, west: float, north: float, east: float) -> BoundingBox:
    try:
        query = BboxQuery(south=south, west=west, north=north, east=east)
    except ValueError as exc:
        # pydantic's ValidationError is a ValueError subclass
        raise ValidationError(str(exc)) from exc
    return query.to_bbox()


async def _watch_disconnect(request: Request, cancel: threading.Event) -> None:
    """Set ``cancel`` when the client goes away so outbound calls are aborted."""
    while not cancel.is_set():
        if await request.is_disconnected():
            cancel.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_S)


@app.get("/api/venues")
async def venues(
    request: Request,
    south: float = Query(..., description="Southern latitude"),
    west: float = Query(..., description="Western longitude"),
    north: float = Query(..., description="Northern latitude"),
    east: float = Query(..., description="Eastern longitude"),
    datetime_: str = Query(None, alias="datetime", description="ISO 8601, e.g. 2025-06-15T14:00:00Z"),
    only_sunny: bool = Query(False),
    outdoor_seating: bool = Query(False),
):
    """Venues in the box with sunlight status, sun position and metadata."""
    bbox = _bbox_from_query(south, west, north, east)
    dt = _parse_iso_datetime(datetime_)

    cancel = threading.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, cancel))
    try:
        return await run_in_threadpool(
            ANALYZER.analyze,
            bbox,
            dt,
            cancel=cancel,
            only_sunny=only_sunny,
            only_outdoor_seating=outdoor_seating,
        )
    finally:
        watcher.cancel()


@app.get("/api/sun")
def sun(
    lat: float = Query(...),
    lon: float = Query(...),
    datetime_: str = Query(None, alias="datetime"),
):
    """Sun position, daily times and daytime flag for a point."""
    coords = Coordinates(lat, lon)
    return ANALYZER.sun_info(coords, _parse_iso_datetime(datetime_))


@app.get("/api/invalidate-cache", response_model=InvalidateResponse)
def invalidate_cache(key: str | None = Query(None)):
    """Drop one cache key, or everything when key is empty or 'all'."""
    message = ANALYZER.invalidate(key)
    return InvalidateResponse(success=True, message=message)
