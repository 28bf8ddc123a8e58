from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
import re

_HOUSE_NUMBER_PATTERN = re.compile(r"^\s*\d+\s+")


def strip_house_number(address: str) -> str:
    return _HOUSE_NUMBER_PATTERN.sub("", address)


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(slots=True, frozen=True)
class RunItem:
    id: str
    address: str
    suburb: str | None
    lat: float
    lng: float

    def to_dict(self) -> dict[str, object]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: object) -> RunItem:
        if not isinstance(payload, dict):
            raise ValueError("run item must be an object")
        if not payload.get("id"):
            raise ValueError("run item is missing an id")
        if not _is_number(payload.get("lat")) or not _is_number(payload.get("lng")):
            raise ValueError("run item coordinates must be numeric")
        suburb = payload.get("suburb")
        return cls(
            id=str(payload["id"]),
            address=str(payload.get("address") or ""),
            suburb=str(suburb) if suburb is not None else None,
            lat=float(payload["lat"]),
            lng=float(payload["lng"]),
        )


@dataclass(slots=True)
class Place:
    id: str
    title: str
    lat: float | None = None
    lng: float | None = None
    description: str | None = None
    suburb: str | None = None
    votes: int = 0
    hide_number: bool = False
    open_start: str | None = None
    open_end: str | None = None
    season: str | None = None
    status: str | None = None
    rank: int | None = None

    @property
    def display_title(self) -> str:
        return strip_house_number(self.title) if self.hide_number else self.title

    def to_feature(self) -> dict[str, object]:
        return {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [self.lng, self.lat]},
            "properties": {
                "id": self.id,
                "title": self.title,
                "description": self.description,
                "suburb": self.suburb,
                "votes": self.votes,
                "hide_number": self.hide_number,
                "rank": self.rank,
            },
        }

    @classmethod
    def from_feature(cls, feature: dict[str, object]) -> Place:
        props = feature.get("properties") or {}
        coords = (feature.get("geometry") or {}).get("coordinates") or ()
        # positions may carry a third (altitude) value
        lng, lat = (coords[0], coords[1]) if len(coords) >= 2 else (None, None)
        rank = props.get("rank")
        return cls(
            id=str(props.get("id") or ""),
            title=str(props.get("title") or "Untitled"),
            lat=lat,
            lng=lng,
            description=props.get("description"),
            suburb=props.get("suburb"),
            votes=int(props.get("votes") or 0),
            hide_number=props.get("hide_number") is True,
            rank=rank if isinstance(rank, int) and not isinstance(rank, bool) else None,
        )

    def to_run_item(self) -> RunItem:
        if self.lat is None or self.lng is None:
            raise ValueError(f"Place {self.id} has no coordinates")
        return RunItem(id=self.id, address=self.display_title, suburb=self.suburb, lat=float(self.lat), lng=float(self.lng))

    @classmethod
    def from_row(cls, row: dict[str, object], votes: int = 0) -> Place:
        return cls(
            id=str(row["id"]),
            title=str(row.get("title") or ""),
            lat=row.get("lat"),
            lng=row.get("lng"),
            description=row.get("description"),
            suburb=row.get("suburb"),
            votes=int(votes),
            hide_number=row.get("hide_number") is True,
            open_start=row.get("open_start"),
            open_end=row.get("open_end"),
            season=row.get("season"),
            status=row.get("status"),
        )


@dataclass(slots=True)
class LeaderboardRow:
    id: str
    address: str
    description: str | None
    suburb: str | None
    hide_number: bool
    open_start: str | None
    open_end: str | None
    votes: int

    @property
    def display_address(self) -> str:
        return strip_house_number(self.address) if self.hide_number else self.address

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


class VoteOutcome(str, Enum):
    VOTED = "voted"
    UNVOTED = "unvoted"
    # Insert lost a race with an identical vote; the count re-read reconciles it.
    ALREADY_VOTED = "already_voted"


@dataclass(slots=True, frozen=True)
class VoteResult:
    outcome: VoteOutcome
    has_voted: bool
    votes: int

    def to_dict(self) -> dict[str, object]:
        return {"outcome": self.outcome.value, "hasVoted": self.has_voted, "votes": self.votes}


@dataclass(slots=True)
class Submission:
    address: str
    contact_name: str
    contact_email: str
    description: str | None = None
    lat: float | None = None
    lng: float | None = None
    suburb: str | None = None
    open_start: str | None = None
    open_end: str | None = None
    hide_number: bool = False
    is_owner: bool = False
    contact_phone: str | None = None
