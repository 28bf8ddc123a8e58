from __future__ import annotations

from typing import Protocol, Sequence
from urllib.parse import quote

DIRECTIONS_URL = "https://www.google.com/maps/dir/?api=1"


class Stop(Protocol):
    lat: float
    lng: float


def _coordinate(stop: Stop) -> str:
    return f"{stop.lat},{stop.lng}"


def build_route_url(stops: Sequence[Stop]) -> str | None:
    """Driving directions through every stop, in the order given."""
    if not stops:
        return None

    coords = [_coordinate(stop) for stop in stops]
    if len(coords) == 1:
        return f"{DIRECTIONS_URL}&destination={coords[0]}"

    url = f"{DIRECTIONS_URL}&origin={coords[0]}&destination={coords[-1]}"
    waypoints = "|".join(coords[1:-1])
    if waypoints:
        url += f"&waypoints={quote(waypoints, safe='')}"
    return url


def place_page_path(place_id: str) -> str:
    return f"/place/{quote(str(place_id), safe='')}"
