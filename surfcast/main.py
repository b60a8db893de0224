import logging
import uuid
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

from .config import load_settings
from .dataset import DayWindow, resolve_timezone
from .reconciler import Reconciler
from .scoring import classify, score
from .session import ForecastSession


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        return response


app = FastAPI(
    title="Surfcast API",
    description="Reconciled hourly surf conditions, tide extrema and surfability scores",
    version="1.0.0",
)

# Set up rate limiter
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add security headers middleware
app.add_middleware(SecurityHeadersMiddleware)

# Initialize services
settings = load_settings()
local_tz = resolve_timezone(settings.lat, settings.lon, settings.timezone)
app.state.settings = settings
app.state.tz = local_tz
app.state.reconciler = Reconciler.from_settings(settings)
app.state.session = ForecastSession(
    app.state.reconciler,
    local_tz,
    max_past_days=settings.max_past_days,
    max_future_days=settings.max_future_days,
)


def _internal_error(where: str) -> HTTPException:
    error_id = uuid.uuid4().hex[:8]
    logger.exception(f"Error {error_id} in {where}")
    return HTTPException(500, detail=f"Internal error (ref: {error_id})")


def _view_payload(session: ForecastSession) -> dict:
    return {
        "day_offset": session.day_offset,
        "can_go_back": session.can_go_back,
        "can_go_forward": session.can_go_forward,
        "sequence": session.latest_sequence,
        "dataset": session.current.to_dict() if session.current is not None else None,
    }


@app.get("/api/v1/conditions")
@limiter.limit("30/minute")
async def get_conditions(
    request: Request,
    day_offset: int = Query(
        0,
        ge=-settings.max_past_days,
        le=settings.max_future_days,
        description="Day relative to today in the spot's local timezone",
    ),
):
    """
    Get the reconciled conditions for one day.

    Returns 24 hourly samples for every metric, where each hour came from
    (provenance), sunrise/sunset, derived high/low tides, the authoritative
    tide event overlay when configured and already arrived (reported as
    pending otherwise), hourly surfability scores, and the
    `offline` flag (true when every primary provider failed and all weather
    and marine data is synthetic).
    """
    try:
        window = DayWindow.for_offset(day_offset, request.app.state.tz)
        dataset = await request.app.state.reconciler.assemble(window)
        return dataset.to_dict()
    except HTTPException:
        raise
    except Exception:
        raise _internal_error("get_conditions")


@app.get("/api/v1/score")
async def get_score(
    wave_height: Optional[float] = Query(None, description="Wave height in meters"),
    wind_speed: Optional[float] = Query(None, description="Wind speed in km/h"),
    rain: Optional[float] = Query(None, description="Rain rate in mm/h"),
    wind_direction: Optional[float] = Query(None, description="Wind direction in degrees"),
    wave_period: Optional[float] = Query(None, description="Wave period in seconds"),
    wave_direction: Optional[float] = Query(None, description="Wave direction in degrees"),
    air_temp: Optional[float] = Query(None, description="Air temperature in °C"),
    water_temp: Optional[float] = Query(None, description="Water temperature in °C"),
):
    """Score a single set of conditions on the 0-10 surfability scale."""
    value = score(
        wave_height, wind_speed, rain, wind_direction,
        wave_period, wave_direction, air_temp, water_temp,
    )
    return {"score": round(value, 2), "class": classify(value)}


@app.get("/api/v1/view")
async def get_view(request: Request):
    """Current view: selected day and the dataset on display (assembled on first use)."""
    session: ForecastSession = request.app.state.session
    try:
        if session.current is None:
            await session.refresh()
        return _view_payload(session)
    except Exception:
        raise _internal_error("get_view")


@app.post("/api/v1/view/navigate")
async def navigate_view(
    request: Request,
    delta: int = Query(..., description="Days to move, e.g. -1 for previous day, 1 for next"),
):
    """Move the selected day and refresh. Superseded refreshes are discarded."""
    session: ForecastSession = request.app.state.session
    try:
        session.navigate(delta)
        await session.refresh()
        return _view_payload(session)
    except ValueError as e:
        raise HTTPException(400, detail=str(e))
    except Exception:
        raise _internal_error("navigate_view")


@app.get("/health")
async def health():
    return {"status": "healthy", "timezone": str(app.state.tz)}
