"""
Point-set query service: which approved displays the map and leaderboard show.
"""

from __future__ import annotations

from datetime import date, datetime
import logging
import re
from typing import Protocol

from bs4 import BeautifulSoup
import requests

from lightsmap.errors import DataStoreError, InputError, NotFound
from lightsmap.geocoder import MapboxGeocoder
from lightsmap.models import LeaderboardRow, Place, Submission
from lightsmap.ranking import rank_top_ten, sort_by_votes
from lightsmap.seasons import detect_season, is_lit_at

logger = logging.getLogger(__name__)

APPROVED = "approved"
PENDING = "pending"

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
_SPACE_PATTERN = re.compile(r"\s+")


class PlaceStore(Protocol):
    def select_places(self, season: str, status: str = APPROVED) -> list[dict[str, object]]: ...

    def get_place(self, place_id: str) -> dict[str, object] | None: ...

    def insert_place(self, row: dict[str, object]) -> dict[str, object]: ...

    def vote_counts(self, place_ids) -> dict[str, int]: ...


class PlacesService:
    def __init__(self, store: PlaceStore, geocoder: MapboxGeocoder | None = None) -> None:
        self.store = store
        self.geocoder = geocoder

    def places(self, season: str, open_now: bool = False, now: datetime | None = None) -> list[Place]:
        rows = self.store.select_places(season, status=APPROVED)
        if open_now:
            moment = now or datetime.now()
            rows = [row for row in rows if is_lit_at(row.get("open_start"), row.get("open_end"), moment)]

        rows = [row for row in rows if row.get("id") is not None]
        counts = self.store.vote_counts(str(row["id"]) for row in rows)
        return [Place.from_row(row, votes=counts.get(str(row["id"]), 0)) for row in rows]

    def features(self, season: str, open_now: bool = False, now: datetime | None = None) -> dict[str, object]:
        places = self.places(season, open_now=open_now, now=now)
        located = rank_top_ten(place for place in places if place.lat is not None and place.lng is not None)
        logger.info(f"Serving {len(located)} displays for {season} (open_now={open_now})")
        return {"type": "FeatureCollection", "features": [place.to_feature() for place in located]}

    def leaderboard(self, season: str) -> list[LeaderboardRow]:
        return [
            LeaderboardRow(
                id=place.id,
                address=place.title,
                description=place.description,
                suburb=place.suburb,
                hide_number=place.hide_number,
                open_start=place.open_start,
                open_end=place.open_end,
                votes=place.votes,
            )
            for place in sort_by_votes(self.places(season))
        ]

    def place(self, place_id: str) -> Place:
        cleaned = (place_id or "").strip()
        if not cleaned or cleaned == "undefined":
            raise NotFound("Place not found")
        row = self.store.get_place(cleaned)
        if not row or row.get("status") != APPROVED:
            raise NotFound("Place not found")
        votes = self.store.vote_counts([cleaned]).get(cleaned, 0)
        return Place.from_row(row, votes=votes)

    def submit(self, submission: Submission, today: date | None = None) -> dict[str, object]:
        row = submission_row(submission, season=detect_season(today))
        if row["lat"] is None or row["lng"] is None:
            self._locate(row)
        stored = self.store.insert_place(row)
        logger.info(f"New display submitted for moderation: {stored.get('id')}")
        return stored

    def _locate(self, row: dict[str, object]) -> None:
        """Fill in coordinates (and suburb) for a submission typed without a map pick."""
        if self.geocoder is None:
            logger.warning(f"No geocoder configured; storing {row['title']!r} without coordinates")
            return
        result = self.geocoder.geocode_text(str(row["title"]))
        if result is None:
            if self.geocoder.last_status in {"ZERO_RESULTS", "MISSING_GEOMETRY"}:
                raise InputError("Address not found. Try including suburb + QLD.")
            logger.warning(f"Geocoding {row['title']!r} failed: {self.geocoder.last_status}")
            raise DataStoreError("Address lookup failed")
        row["lat"] = round(result.lat, 6)
        row["lng"] = round(result.lng, 6)
        if not row["suburb"]:
            row["suburb"] = result.suburb


def clean_text(value: str | None) -> str | None:
    """Plain text from user input: markup stripped, whitespace collapsed."""
    if value is None:
        return None
    text = BeautifulSoup(str(value), "lxml").get_text(" ")
    collapsed = _SPACE_PATTERN.sub(" ", text).strip()
    return collapsed or None


def _clean_time(value: str | None, field: str) -> str | None:
    if not value:
        return None
    cleaned = value.strip()[:5]
    if not _TIME_PATTERN.match(cleaned):
        raise InputError(f"{field} must be a time like 18:30")
    return f"{cleaned}:00"


def submission_row(submission: Submission, season: str) -> dict[str, object]:
    address = clean_text(submission.address)
    if not address:
        raise InputError("Address is required")
    contact_name = clean_text(submission.contact_name)
    contact_email = (submission.contact_email or "").strip()
    if not contact_name or not contact_email:
        raise InputError("Contact name and email are required")
    if not _EMAIL_PATTERN.match(contact_email):
        raise InputError("Please enter a valid email address")

    return {
        "title": address,
        "description": clean_text(submission.description),
        "lat": submission.lat if isinstance(submission.lat, (int, float)) else None,
        "lng": submission.lng if isinstance(submission.lng, (int, float)) else None,
        "suburb": clean_text(submission.suburb),
        "open_start": _clean_time(submission.open_start, "Start time"),
        "open_end": _clean_time(submission.open_end, "End time"),
        "hide_number": bool(submission.hide_number),
        "season": season,
        "status": PENDING,
        "contact_name": contact_name,
        "contact_email": contact_email,
        "contact_phone": clean_text(submission.contact_phone),
        "is_owner": bool(submission.is_owner),
    }


class PlacesApiClient:
    """Fetches the map's point set from our own ``/api/places`` endpoint."""

    def __init__(self, base_url: str, session: requests.Session | None = None, timeout: float = 15) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch(self, signature: str) -> dict[str, object]:
        url = f"{self.base_url}/api/places?{signature}"
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            logger.warning(f"Failed to load places from {url}: {e}")
            raise DataStoreError("Failed to load places") from e
        except ValueError as e:
            raise DataStoreError("Failed to load places") from e
        if not isinstance(payload, dict) or not isinstance(payload.get("features"), list):
            raise DataStoreError("Failed to load places")
        return payload
