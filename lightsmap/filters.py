from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlencode

from lightsmap.ranking import ranked_features


class FilterMode(str, Enum):
    ALL = "all"
    OPEN_NOW = "open_now"
    TOP10 = "top10"

    def advance(self) -> FilterMode:
        return _NEXT_MODE[self]


_NEXT_MODE = {
    FilterMode.ALL: FilterMode.OPEN_NOW,
    FilterMode.OPEN_NOW: FilterMode.TOP10,
    FilterMode.TOP10: FilterMode.ALL,
}


@dataclass(slots=True, frozen=True)
class FilterStyle:
    label: str
    border: str
    background: str
    color: str


_STYLES = {
    FilterMode.ALL: FilterStyle(
        label="All displays",
        border="1px solid #cccccc",
        background="#ffffff",
        color="#333333",
    ),
    FilterMode.OPEN_NOW: FilterStyle(
        label="Lights on now",
        border="1px solid #d6c8a5",
        background="linear-gradient(135deg, #fff8e5, #ffe2b5)",
        color="#5a3a12",
    ),
    FilterMode.TOP10: FilterStyle(
        label="Top 10 only",
        border="1px solid #d6a5a5",
        background="linear-gradient(135deg, #fff0f0, #ffd4d4)",
        color="#5a1a1a",
    ),
}


def filter_style(mode: FilterMode) -> FilterStyle:
    return _STYLES[mode]


def query_signature(season: str, open_now: bool) -> str:
    params = {"season": season}
    if open_now:
        params["openNow"] = "true"
    return urlencode(params)


class DisplayFilter:
    """Which subset of the fetched displays the map shows.

    A single button cycles All -> Lights on now -> Top 10 -> All. Only
    "lights on now" changes the query; "top 10" is a local view of the
    full set already fetched for the season.
    """

    def __init__(self, mode: FilterMode = FilterMode.ALL) -> None:
        self.mode = mode

    @property
    def open_now(self) -> bool:
        return self.mode is FilterMode.OPEN_NOW

    @property
    def style(self) -> FilterStyle:
        return filter_style(self.mode)

    def advance(self) -> FilterMode:
        self.mode = self.mode.advance()
        return self.mode

    def signature(self, season: str) -> str:
        return query_signature(season, self.open_now)

    def apply(self, collection: dict[str, object]) -> dict[str, object]:
        if self.mode is not FilterMode.TOP10 or not isinstance(collection.get("features"), list):
            return collection
        return {**collection, "features": ranked_features(collection)}
