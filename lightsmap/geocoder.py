from dataclasses import dataclass
import json
import time
from typing import Callable
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
import urllib.request

SUBURB_CONTEXT_PREFIXES = ("locality.", "place.", "neighborhood.", "district.")


@dataclass(slots=True)
class GeocodeResult:
    lat: float
    lng: float
    place_name: str
    suburb: str | None
    canonical_address: str

    def to_dict(self) -> dict[str, object]:
        return {
            "lat": self.lat,
            "lng": self.lng,
            "place_name": self.place_name,
            "suburb": self.suburb,
            "canonical_address": self.canonical_address,
        }


class MapboxGeocoder:
    def __init__(
        self,
        access_token: str,
        country: str = "AU",
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        timeout_seconds: float = 30.0,
        sleeper: Callable[[float], None] = time.sleep,
    ) -> None:
        self.access_token = access_token
        self.country = country
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.timeout_seconds = timeout_seconds
        self.sleeper = sleeper
        self.last_status = ""
        self.last_error_message = ""

    def geocode_text(self, query: str) -> GeocodeResult | None:
        self.last_status = ""
        self.last_error_message = ""
        params = urlencode({"access_token": self.access_token, "limit": 1, "country": self.country})
        url = f"https://api.mapbox.com/geocoding/v5/mapbox.places/{quote(query, safe='')}.json?{params}"
        payload = self._request_json(url)
        if payload is None:
            return None
        return self._extract_result(payload, query)

    def _request_json(self, url: str) -> dict[str, object] | None:
        payload: dict[str, object] | None = None
        for attempt in range(self.max_retries):
            try:
                with urllib.request.urlopen(url, timeout=self.timeout_seconds) as response:
                    payload = json.loads(response.read().decode("utf-8"))
                break
            except HTTPError as error:
                # 4xx means a bad token or query; retrying will not help.
                self.last_status = f"HTTP_{error.code}"
                self.last_error_message = str(error.reason or error)
                if error.code < 500 or attempt == (self.max_retries - 1):
                    return None
                self.sleeper(self.retry_delay_seconds)
            except URLError as error:
                self.last_status = "NETWORK_ERROR"
                self.last_error_message = str(error.reason or error)
                if attempt == (self.max_retries - 1):
                    return None
                self.sleeper(self.retry_delay_seconds)
            except TimeoutError as error:
                self.last_status = "TIMEOUT"
                self.last_error_message = str(error)
                if attempt == (self.max_retries - 1):
                    return None
                self.sleeper(self.retry_delay_seconds)
            except json.JSONDecodeError as error:
                self.last_status = "INVALID_JSON"
                self.last_error_message = str(error)
                if attempt == (self.max_retries - 1):
                    return None
                self.sleeper(self.retry_delay_seconds)
        return payload

    def _extract_result(self, payload: dict[str, object], query: str) -> GeocodeResult | None:
        features = payload.get("features") or []
        if not features:
            self.last_status = "ZERO_RESULTS"
            return None

        feature = features[0]
        center = feature.get("center") or []
        if len(center) < 2:
            self.last_status = "MISSING_GEOMETRY"
            return None

        self.last_status = "OK"
        place_name = str(feature.get("place_name") or "")
        return GeocodeResult(
            lat=float(center[1]),
            lng=float(center[0]),
            place_name=place_name,
            suburb=_suburb(feature),
            canonical_address=_canonical_address(feature, place_name, query),
        )


def _suburb(feature: dict[str, object]) -> str | None:
    for context in feature.get("context") or []:
        context_id = str(context.get("id", ""))
        if context_id.startswith(SUBURB_CONTEXT_PREFIXES):
            return context.get("text")
    text = feature.get("text")
    return text if isinstance(text, str) else None


def _canonical_address(feature: dict[str, object], place_name: str, query: str) -> str:
    house_number = feature.get("address")
    street = feature.get("text")
    if house_number and street:
        return f"{house_number} {street}"
    if place_name:
        return place_name.split(",")[0]
    return query
