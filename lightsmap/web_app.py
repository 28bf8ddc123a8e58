from __future__ import annotations

from dataclasses import asdict
from datetime import date, datetime
import logging
from typing import Any, Callable, Protocol

from fastapi import FastAPI, Header, HTTPException, Request
from pydantic import BaseModel

from lightsmap.config import Settings
from lightsmap.errors import DataStoreError, InputError, LightsMapError, NotFound, Unauthenticated
from lightsmap.filters import FilterMode, filter_style
from lightsmap.geocoder import MapboxGeocoder
from lightsmap.interaction import REGION_NAME, TEMPLATES
from lightsmap.models import Submission
from lightsmap.places import PlacesService
from lightsmap.seasons import detect_season, normalize_season
from lightsmap.store import SupabaseAuth, SupabaseClient
from lightsmap.votes import VoteSyncAdapter

logger = logging.getLogger(__name__)

RETRY_MESSAGE = "Something went wrong. Please try again."


class VisitorResolver(Protocol):
    def current_visitor(self, access_token: str | None) -> str | None: ...


class SubmitRequest(BaseModel):
    address: str | None = None
    description: str | None = None
    lat: float | None = None
    lng: float | None = None
    suburb: str | None = None
    open_start: str | None = None
    open_end: str | None = None
    hide_number: bool = False
    is_owner: bool = False
    contact_name: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None


def _http_error(error: LightsMapError) -> HTTPException:
    if isinstance(error, InputError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, Unauthenticated):
        return HTTPException(status_code=401, detail="Not logged in")
    if isinstance(error, NotFound):
        return HTTPException(status_code=404, detail=str(error) or "Not found")
    logger.error(f"Request failed: {error}")
    return HTTPException(status_code=500, detail=RETRY_MESSAGE)


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.casefold() != "bearer" or not token.strip():
        return None
    return token.strip()


def create_app(
    places: PlacesService,
    votes: VoteSyncAdapter,
    auth: VisitorResolver,
    geocoder: MapboxGeocoder | None = None,
    mapbox_token: str = "",
    today: Callable[[], date] = date.today,
    now: Callable[[], datetime] = datetime.now,
) -> FastAPI:
    app = FastAPI(title="Light Displays Map")
    app.state.places = places
    app.state.votes = votes
    app.state.auth = auth
    app.state.geocoder = geocoder

    def _season(value: str | None) -> str:
        return normalize_season(value) if value else detect_season(today())

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/places")
    def api_places(season: str | None = None, openNow: str | None = None) -> dict[str, Any]:
        try:
            return app.state.places.features(_season(season), open_now=openNow == "true", now=now())
        except LightsMapError as error:
            raise _http_error(error) from error

    @app.get("/api/leaderboard")
    def api_leaderboard(season: str | None = None) -> list[dict[str, Any]]:
        try:
            rows = app.state.places.leaderboard(_season(season))
        except LightsMapError as error:
            raise _http_error(error) from error
        return [row.to_dict() for row in rows]

    @app.get("/api/place/{place_id}")
    def api_place(place_id: str) -> dict[str, Any]:
        try:
            place = app.state.places.place(place_id)
        except LightsMapError as error:
            raise _http_error(error) from error
        return {
            "id": place.id,
            "address": place.title,
            "description": place.description,
            "suburb": place.suburb,
            "season": place.season,
            "open_start": place.open_start,
            "open_end": place.open_end,
            "hide_number": place.hide_number,
            "votes": place.votes,
        }

    @app.post("/api/vote/{place_id}")
    def api_vote(place_id: str, authorization: str | None = Header(default=None)) -> dict[str, Any]:
        try:
            visitor = app.state.auth.current_visitor(_bearer_token(authorization))
            result = app.state.votes.toggle_vote(place_id, visitor)
        except LightsMapError as error:
            raise _http_error(error) from error
        return result.to_dict()

    @app.get("/api/geocode")
    def api_geocode(q: str | None = None) -> dict[str, Any]:
        if not q or not q.strip():
            raise HTTPException(status_code=400, detail="Missing q")
        if app.state.geocoder is None:
            raise HTTPException(status_code=500, detail="Mapbox token not configured")

        result = app.state.geocoder.geocode_text(q.strip())
        if result is None:
            if app.state.geocoder.last_status in {"ZERO_RESULTS", "MISSING_GEOMETRY"}:
                raise HTTPException(status_code=404, detail="No results found")
            logger.warning(
                f"Geocoding failed for {q!r}: {app.state.geocoder.last_status} {app.state.geocoder.last_error_message}"
            )
            raise HTTPException(status_code=500, detail="Geocoding request failed")
        return result.to_dict()

    @app.post("/api/submit")
    def api_submit(body: SubmitRequest) -> dict[str, Any]:
        submission = Submission(
            address=body.address or "",
            contact_name=body.contact_name or "",
            contact_email=body.contact_email or "",
            description=body.description,
            lat=body.lat,
            lng=body.lng,
            suburb=body.suburb,
            open_start=body.open_start,
            open_end=body.open_end,
            hide_number=body.hide_number,
            is_owner=body.is_owner,
            contact_phone=body.contact_phone,
        )
        try:
            stored = app.state.places.submit(submission, today=today())
        except LightsMapError as error:
            raise _http_error(error) from error
        return {"ok": True, "place": stored}

    @app.get("/map")
    def map_page(request: Request, id: str | None = None):
        error = None
        if not mapbox_token or mapbox_token == "test":
            error = "Mapbox token not set yet. Add MAPBOX_TOKEN to your .env to see the map."
        context = {
            "title": "Light Displays Map",
            "error": error,
            "mapbox_token": mapbox_token,
            "season": detect_season(today()),
            "focus_id": id,
            "filter_mode": FilterMode.ALL.value,
            "filter_style": filter_style(FilterMode.ALL),
            "filter_modes": [mode.value for mode in FilterMode],
            "region": REGION_NAME,
            "filter_styles": {mode.value: asdict(filter_style(mode)) for mode in FilterMode},
        }
        return TEMPLATES.TemplateResponse(request=request, name="map.html", context=context)

    @app.get("/place/{place_id}")
    def place_page(request: Request, place_id: str):
        try:
            place = app.state.places.place(place_id)
        except LightsMapError as error:
            raise _http_error(error) from error
        return TEMPLATES.TemplateResponse(request=request, name="place.html", context={"place": place})

    @app.get("/add")
    def add_page(request: Request):
        return TEMPLATES.TemplateResponse(
            request=request,
            name="add.html",
            context={"season": detect_season(today()), "geocoder_configured": app.state.geocoder is not None},
        )

    @app.get("/leaderboard")
    def leaderboard_page(request: Request):
        season = detect_season(today())
        try:
            rows = app.state.places.leaderboard(season)
        except DataStoreError as error:
            raise _http_error(error) from error
        return TEMPLATES.TemplateResponse(
            request=request,
            name="leaderboard.html",
            context={"season": season, "rows": rows},
        )

    return app


def create_app_from_settings(settings: Settings) -> FastAPI:
    store = SupabaseClient(settings.supabase_url, settings.supabase_service_key)
    auth = SupabaseAuth(settings.supabase_url, settings.supabase_anon_key or settings.supabase_service_key)
    geocoder = MapboxGeocoder(settings.mapbox_token) if settings.mapbox_configured else None
    if not settings.supabase_configured:
        logger.warning("SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY not set; data routes will fail")
    return create_app(
        places=PlacesService(store, geocoder=geocoder),
        votes=VoteSyncAdapter(store),
        auth=auth,
        geocoder=geocoder,
        mapbox_token=settings.mapbox_token,
    )


app = create_app_from_settings(Settings.from_env())
