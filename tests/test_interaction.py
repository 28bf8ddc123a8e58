from lightsmap.errors import DataStoreError
from lightsmap.feature_cache import FeatureCache
from lightsmap.filters import FilterMode
from lightsmap.interaction import TOP10_NOT_LOADED, MapSession, PopupState
from lightsmap.itinerary import ItineraryStore
from lightsmap.votes import VoteSyncAdapter
from tests.conftest import CHRISTMAS_DAY, FakeStore, collection, feature, place_row


class FakeFetcher:
    def __init__(self, responses):
        self.responses = responses
        self.calls: list[str] = []

    def __call__(self, signature):
        self.calls.append(signature)
        response = self.responses[signature]
        if isinstance(response, Exception):
            raise response
        return response


FULL_SET = collection(
    feature("1", title="12 Holly Lane", votes=9, rank=1, lat=-27.9, lng=153.3),
    feature("2", title="8 Tinsel Court", votes=4, rank=2, lat=-27.95, lng=153.35, hide_number=True),
    feature("3", title="3 Quiet Street", votes=0, rank=None, lat=-28.0, lng=153.4),
)
LIT_SET = collection(feature("1", title="12 Holly Lane", votes=9, rank=1))
RESPONSES = {"season=christmas": FULL_SET, "season=christmas&openNow=true": LIT_SET}


def _session(itinerary: ItineraryStore, visitor=None, store=None, responses=None, **kwargs):
    store = store or FakeStore(places=[place_row("1", "12 Holly Lane", votes=9)])
    fetcher = FakeFetcher(responses or RESPONSES)
    session = MapSession(
        itinerary=itinerary,
        fetch_features=fetcher,
        votes=VoteSyncAdapter(store),
        current_visitor=lambda: visitor,
        today=lambda: CHRISTMAS_DAY,
        **kwargs,
    )
    return session, fetcher, store


class TestFilterCycle:
    def test_cycle_refetches_only_new_signatures(self, itinerary) -> None:
        session, fetcher, _store = _session(itinerary)

        session.refresh()
        session.cycle_filter()
        session.cycle_filter()
        session.cycle_filter()

        assert session.filter_mode is FilterMode.ALL
        assert fetcher.calls == ["season=christmas", "season=christmas&openNow=true"]

    def test_top10_is_derived_from_the_cached_full_set(self, itinerary) -> None:
        session, fetcher, _store = _session(itinerary)
        session.refresh()
        session.cycle_filter()

        session.cycle_filter()

        assert session.filter_mode is FilterMode.TOP10
        assert [f["properties"]["id"] for f in session.visible["features"]] == ["1", "2"]
        assert fetcher.calls.count("season=christmas") == 1

    def test_style_is_published_before_the_fetch(self, itinerary) -> None:
        events: list[str] = []
        fetcher = FakeFetcher(RESPONSES)

        def record_fetch(signature):
            events.append(f"fetch:{signature}")
            return fetcher(signature)

        session = MapSession(
            itinerary=itinerary,
            fetch_features=record_fetch,
            votes=VoteSyncAdapter(FakeStore()),
            today=lambda: CHRISTMAS_DAY,
            on_filter_style=lambda style: events.append(f"style:{style.label}"),
        )

        session.cycle_filter()

        assert events == ["style:Lights on now", "fetch:season=christmas&openNow=true"]

    def test_fetch_failure_keeps_previous_view(self, itinerary) -> None:
        responses = dict(RESPONSES)
        responses["season=christmas&openNow=true"] = DataStoreError("Failed to load places")
        session, _fetcher, _store = _session(itinerary, responses=responses)
        session.refresh()

        session.cycle_filter()

        assert session.error == "Failed to load places"
        assert session.visible is FULL_SET

    def test_injected_cache_is_used(self, itinerary) -> None:
        cache = FeatureCache()
        cache.put("season=christmas", LIT_SET)
        session, fetcher, _store = _session(itinerary, cache=cache)

        assert session.refresh() is LIT_SET
        assert fetcher.calls == []


class TestPopup:
    def test_popup_view_reflects_place_and_run(self, itinerary) -> None:
        session, _fetcher, _store = _session(itinerary)
        session.refresh()

        popup = session.open_popup(FULL_SET["features"][1])
        view = popup.view()

        assert view.title == "Tinsel Court"
        assert view.badge == "#2 in Gold Coast"
        assert view.vote_count == "4 votes"
        assert view.vote_label == "VOTE"
        assert view.run_label == "Add to run"
        assert view.place_url == "/place/2"

    def test_open_reads_existing_vote(self, itinerary) -> None:
        store = FakeStore(votes={("visitor-1", "1")})
        session, _fetcher, _store = _session(itinerary, visitor="visitor-1", store=store)

        popup = session.open_popup(FULL_SET["features"][0])

        assert popup.view().vote_label == "VOTED"

    def test_vote_shows_reread_count(self, itinerary) -> None:
        session, _fetcher, store = _session(itinerary, visitor="visitor-1")
        popup = session.open_popup(FULL_SET["features"][0])

        result = popup.vote()

        assert result is not None
        assert popup.view().vote_count == "10 votes"
        assert popup.view().vote_label == "VOTED"
        assert popup.state is PopupState.OPEN

        popup.vote()
        assert popup.view().vote_count == "9 votes"
        assert popup.view().vote_label == "VOTE"

    def test_vote_without_visitor_asks_to_sign_in(self, itinerary) -> None:
        session, _fetcher, store = _session(itinerary)
        popup = session.open_popup(FULL_SET["features"][0])

        assert popup.vote() is None
        assert popup.view().message == "Please log in on the Login page before voting."
        assert "insert_vote" not in store.call_names()
        assert popup.view().vote_disabled is False

    def test_vote_store_error_shows_retry_and_reenables(self, itinerary) -> None:
        store = FakeStore()
        store.fail_on.add("insert_vote")
        session, _fetcher, _store = _session(itinerary, visitor="visitor-1", store=store)
        popup = session.open_popup(FULL_SET["features"][0])

        assert popup.vote() is None
        assert popup.view().message == "Could not save your vote. Please try again."
        assert popup.view().vote_count == "9 votes"
        assert popup.state is PopupState.OPEN

    def test_second_vote_while_in_flight_is_refused(self, itinerary) -> None:
        store = FakeStore()
        session, _fetcher, _store = _session(itinerary, visitor="visitor-1", store=store)
        popup = session.open_popup(FULL_SET["features"][0])
        reentrant: list[object] = []
        original_insert = store.insert_vote

        def insert_and_click_again(visitor_id, place_id):
            reentrant.append(popup.vote())
            reentrant.append(popup.view().vote_disabled)
            original_insert(visitor_id, place_id)

        store.insert_vote = insert_and_click_again

        popup.vote()

        assert reentrant == [None, True]
        assert store.call_names().count("vote_count") == 1

    def test_closing_mid_vote_leaves_the_popup_untouched(self, itinerary) -> None:
        store = FakeStore()
        session, _fetcher, _store = _session(itinerary, visitor="visitor-1", store=store)
        popup = session.open_popup(FULL_SET["features"][0])
        original_insert = store.insert_vote

        def insert_then_close(visitor_id, place_id):
            original_insert(visitor_id, place_id)
            session.open_popup(FULL_SET["features"][2])

        store.insert_vote = insert_then_close

        assert popup.vote() is None
        assert popup.state is PopupState.CLOSED
        assert popup.votes == 9
        assert ("visitor-1", "1") in store.votes

    def test_only_one_popup_is_live(self, itinerary) -> None:
        session, _fetcher, _store = _session(itinerary)
        first = session.open_popup(FULL_SET["features"][0])

        second = session.open_popup(FULL_SET["features"][1])

        assert first.active is False
        assert second.active is True
        assert first.toggle_run() is None
        assert itinerary.entries == ()

    def test_context_manager_disposes_handlers(self, itinerary) -> None:
        session, _fetcher, _store = _session(itinerary, visitor="visitor-1")

        with session.open_popup(FULL_SET["features"][0]) as popup:
            assert popup.active

        assert session.active_popup is None
        assert popup.vote() is None

    def test_toggle_run_adds_display_title_and_opens_panel(self, itinerary) -> None:
        session, _fetcher, _store = _session(itinerary)
        popup = session.open_popup(FULL_SET["features"][1])

        change = popup.toggle_run()

        assert change.pulsed is True
        assert itinerary.entries[0].address == "Tinsel Court"
        assert itinerary.panel_open is True
        assert popup.view().run_label == "Remove from run"

        popup.toggle_run()
        assert itinerary.entries == ()

    def test_render_html_escapes_description(self, itinerary) -> None:
        session, _fetcher, _store = _session(itinerary)
        popup = session.open_popup(feature("9", description="<script>alert(1)</script>", rank=3))

        html = popup.render_html()

        assert "#3 in Gold Coast" in html
        assert "<script>" not in html
        assert 'id="vote-btn"' in html


class TestRunActions:
    def test_focus_opens_popup_after_refresh(self, itinerary) -> None:
        session, _fetcher, _store = _session(itinerary)
        session.focus_place_id = "3"

        session.refresh()

        assert session.active_popup is not None
        assert session.active_popup.place.id == "3"

    def test_load_top10_route_replaces_run_in_rank_order(self, itinerary) -> None:
        session, _fetcher, _store = _session(itinerary)
        session.refresh()

        session.load_top10_route()

        assert [entry.id for entry in itinerary.entries] == ["1", "2"]
        assert itinerary.entries[1].address == "Tinsel Court"
        assert session.route_url() == (
            "https://www.google.com/maps/dir/?api=1&origin=-27.9,153.3&destination=-27.95,153.35"
        )

    def test_load_top10_route_before_data_warns(self, itinerary) -> None:
        session, _fetcher, _store = _session(itinerary)

        assert session.load_top10_route() is None
        assert session.notice == TOP10_NOT_LOADED

    def test_add_to_run_surfaces_duplicate_warning(self, itinerary) -> None:
        session, _fetcher, _store = _session(itinerary)
        session.refresh()
        popup = session.open_popup(FULL_SET["features"][0])
        popup.toggle_run()

        session.add_to_run(popup.place.to_run_item())

        assert session.notice == "12 Holly Lane is already in your run."
        assert len(itinerary) == 1
