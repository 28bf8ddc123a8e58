"""
Map page state: filter, feature cache, "My Run" and the single open popup.

``MapSession`` is the explicit application state the map page drives. Popups
are disposable handles: once closed (or replaced by the next popup) their
handlers go inert, and a vote that completes after its popup closed no
longer touches the popup's view.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
import logging
from pathlib import Path
from typing import Callable

from fastapi.templating import Jinja2Templates

from lightsmap.errors import DataStoreError, Unauthenticated
from lightsmap.feature_cache import FeatureCache
from lightsmap.filters import DisplayFilter, FilterMode, FilterStyle
from lightsmap.itinerary import ItineraryChange, ItineraryStore
from lightsmap.models import Place, RunItem, VoteResult
from lightsmap.ranking import is_top_rank, ranked_features
from lightsmap.routes import build_route_url, place_page_path
from lightsmap.seasons import detect_season
from lightsmap.votes import VoteSyncAdapter

logger = logging.getLogger(__name__)

TEMPLATES = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))

REGION_NAME = "Gold Coast"
TOP10_NOT_LOADED = "Top 10 data isn't loaded yet. Try again in a moment."
LOAD_FAILED = "Failed to load places"


def vote_count_text(votes: int) -> str:
    return "1 vote" if votes == 1 else f"{votes} votes"


class PopupState(str, Enum):
    OPEN = "open"
    VOTING = "voting"
    CLOSED = "closed"


@dataclass(slots=True, frozen=True)
class PopupView:
    place_id: str
    title: str
    badge: str | None
    description: str
    place_url: str
    vote_label: str
    vote_count: str
    vote_disabled: bool
    run_label: str
    message: str | None


class Popup:
    def __init__(self, session: MapSession, place: Place) -> None:
        self.session = session
        self.place = place
        self.state = PopupState.OPEN
        self.votes = place.votes
        self.has_voted = False
        self.message: str | None = None

    @property
    def active(self) -> bool:
        return self.state is not PopupState.CLOSED and self.session.active_popup is self

    def __enter__(self) -> Popup:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self.state = PopupState.CLOSED
        if self.session.active_popup is self:
            self.session.active_popup = None

    def view(self) -> PopupView:
        badge = f"#{self.place.rank} in {REGION_NAME}" if is_top_rank(self.place.rank) else None
        in_run = self.session.itinerary.contains(self.place.id)
        return PopupView(
            place_id=self.place.id,
            title=self.place.display_title,
            badge=badge,
            description=self.place.description or "",
            place_url=place_page_path(self.place.id),
            vote_label="VOTED" if self.has_voted else "VOTE",
            vote_count=vote_count_text(self.votes),
            vote_disabled=self.state is PopupState.VOTING,
            run_label="Remove from run" if in_run else "Add to run",
            message=self.message,
        )

    def render_html(self) -> str:
        return TEMPLATES.get_template("popup.html").render(popup=self.view())

    def load_vote_state(self) -> None:
        visitor = self.session.current_visitor()
        try:
            has_voted = self.session.votes.has_voted(self.place.id, visitor)
        except DataStoreError as error:
            logger.warning(f"Could not read vote state for place {self.place.id}: {error}")
            return
        if self.active:
            self.has_voted = has_voted

    def vote(self) -> VoteResult | None:
        if self.state is not PopupState.OPEN or not self.active:
            return None

        self.state = PopupState.VOTING
        self.message = None
        was_voted = self.has_voted
        result: VoteResult | None = None
        try:
            result = self.session.votes.toggle_vote(self.place.id, self.session.current_visitor())
        except Unauthenticated as error:
            self._apply_message(str(error))
        except DataStoreError as error:
            logger.error(f"Vote toggle failed for place {self.place.id}: {error}")
            verb = "remove" if was_voted else "save"
            self._apply_message(f"Could not {verb} your vote. Please try again.")
        finally:
            if self.state is PopupState.VOTING:
                self.state = PopupState.OPEN

        if result is None or not self.active:
            return None
        self.has_voted = result.has_voted
        self.votes = result.votes
        return result

    def toggle_run(self) -> ItineraryChange | None:
        if not self.active:
            return None
        change = self.session.itinerary.toggle(self.place.to_run_item())
        self.session.itinerary.open_panel()
        return change

    def _apply_message(self, message: str) -> None:
        if self.active:
            self.message = message


class MapSession:
    def __init__(
        self,
        itinerary: ItineraryStore,
        fetch_features: Callable[[str], dict[str, object]],
        votes: VoteSyncAdapter,
        current_visitor: Callable[[], str | None] = lambda: None,
        cache: FeatureCache | None = None,
        today: Callable[[], date] = date.today,
        on_filter_style: Callable[[FilterStyle], None] | None = None,
    ) -> None:
        self.itinerary = itinerary
        self.fetch_features = fetch_features
        self.votes = votes
        self.current_visitor = current_visitor
        self.cache = cache if cache is not None else FeatureCache()
        self.today = today
        self.on_filter_style = on_filter_style
        self.filter = DisplayFilter()
        self.collection: dict[str, object] | None = None
        self.visible: dict[str, object] | None = None
        self.top10: list[dict[str, object]] = []
        self.active_popup: Popup | None = None
        self.focus_place_id: str | None = None
        self.error: str | None = None
        self.notice: str | None = None

    @property
    def season(self) -> str:
        return detect_season(self.today())

    @property
    def filter_mode(self) -> FilterMode:
        return self.filter.mode

    def refresh(self) -> dict[str, object] | None:
        signature = self.filter.signature(self.season)
        try:
            data = self.cache.get_or_fetch(signature, lambda: self.fetch_features(signature))
        except DataStoreError as error:
            logger.error(f"Could not load displays for {signature!r}: {error}")
            self.error = str(error) or LOAD_FAILED
            return None

        self.error = None
        self.collection = data
        self.top10 = ranked_features(data)
        self.visible = self.filter.apply(data)

        if self.focus_place_id:
            focus_id, self.focus_place_id = self.focus_place_id, None
            self.focus(focus_id)
        return self.visible

    def cycle_filter(self) -> FilterStyle:
        self.filter.advance()
        style = self.filter.style
        if self.on_filter_style is not None:
            self.on_filter_style(style)
        self.refresh()
        return style

    def open_popup(self, feature: dict[str, object]) -> Popup:
        if self.active_popup is not None:
            self.active_popup.close()
        popup = Popup(self, Place.from_feature(feature))
        self.active_popup = popup
        popup.load_vote_state()
        return popup

    def focus(self, place_id: str) -> Popup | None:
        for feature in (self.collection or {}).get("features") or []:
            if str((feature.get("properties") or {}).get("id")) == str(place_id):
                return self.open_popup(feature)
        return None

    def add_to_run(self, entry: RunItem) -> ItineraryChange:
        change = self.itinerary.add(entry)
        self.notice = change.warning
        return change

    def load_top10_route(self) -> ItineraryChange | None:
        if not self.top10:
            self.notice = TOP10_NOT_LOADED
            return None
        items = [Place.from_feature(feature).to_run_item() for feature in self.top10]
        change = self.itinerary.replace(items)
        self.itinerary.open_panel()
        self.notice = None
        return change

    def route_url(self) -> str | None:
        return build_route_url(self.itinerary.entries)
