"""Shared fakes for the data store, auth provider and map session."""

from datetime import date

import pytest

from lightsmap.errors import DataStoreError, DuplicateVoteError
from lightsmap.itinerary import ItineraryStore
from lightsmap.state import MemoryStorage


class FakeStore:
    """In-memory stand-in for the Supabase tables, recording every call."""

    def __init__(self, places=None, votes=None):
        self.places = list(places or [])
        self.votes = set(votes or [])
        self.calls: list[tuple] = []
        self.inserted_places: list[dict] = []
        self.fail_on: set[str] = set()
        self.duplicate_on_insert = False

    def _record(self, name, *args):
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise DataStoreError(f"{name} failed")

    def call_names(self):
        return [call[0] for call in self.calls]

    # places

    def select_places(self, season, status="approved"):
        self._record("select_places", season, status)
        return [dict(row) for row in self.places if row.get("season") == season and row.get("status") == status]

    def get_place(self, place_id):
        self._record("get_place", place_id)
        for row in self.places:
            if str(row["id"]) == str(place_id):
                return dict(row)
        return None

    def insert_place(self, row):
        self._record("insert_place", row)
        stored = {"id": f"new-{len(self.inserted_places) + 1}", **row}
        self.inserted_places.append(stored)
        return stored

    # votes

    def vote_counts(self, place_ids):
        ids = [str(place_id) for place_id in place_ids]
        self._record("vote_counts", tuple(ids))
        counts: dict[str, int] = {}
        for row in self.places:
            if str(row["id"]) in ids and row.get("votes"):
                counts[str(row["id"])] = int(row["votes"])
        for _visitor, place_id in self.votes:
            if place_id in ids:
                counts[place_id] = counts.get(place_id, 0) + 1
        return counts

    def vote_count(self, place_id):
        self._record("vote_count", place_id)
        base = next((int(row.get("votes") or 0) for row in self.places if str(row["id"]) == place_id), 0)
        return base + sum(1 for _visitor, voted in self.votes if voted == place_id)

    def vote_exists(self, visitor_id, place_id):
        self._record("vote_exists", visitor_id, place_id)
        return (visitor_id, place_id) in self.votes

    def insert_vote(self, visitor_id, place_id):
        self._record("insert_vote", visitor_id, place_id)
        if self.duplicate_on_insert:
            self.votes.add((visitor_id, place_id))
            raise DuplicateVoteError("duplicate key value violates unique constraint", status_code=409, code="23505")
        self.votes.add((visitor_id, place_id))

    def delete_vote(self, visitor_id, place_id):
        self._record("delete_vote", visitor_id, place_id)
        self.votes.discard((visitor_id, place_id))


class FakeAuth:
    def __init__(self, tokens=None):
        self.tokens = dict(tokens or {})

    def current_visitor(self, access_token):
        if not access_token:
            return None
        return self.tokens.get(access_token)


def place_row(place_id, title, votes=0, lat=-28.0, lng=153.4, **extra):
    row = {
        "id": place_id,
        "title": title,
        "description": f"Lights at {title}",
        "suburb": "Southport",
        "lat": lat,
        "lng": lng,
        "open_start": "18:00:00",
        "open_end": "22:00:00",
        "season": "christmas",
        "status": "approved",
        "hide_number": False,
        "votes": votes,
    }
    row.update(extra)
    return row


def feature(place_id, title="12 Holly Lane", votes=0, rank=None, lat=-27.9, lng=153.3, **props):
    properties = {
        "id": place_id,
        "title": title,
        "description": "Twinkling lights",
        "suburb": "Burleigh",
        "votes": votes,
        "hide_number": False,
        "rank": rank,
    }
    properties.update(props)
    return {"type": "Feature", "geometry": {"type": "Point", "coordinates": [lng, lat]}, "properties": properties}


def collection(*features):
    return {"type": "FeatureCollection", "features": list(features)}


CHRISTMAS_DAY = date(2026, 12, 1)
HALLOWEEN_DAY = date(2026, 10, 15)


class ManualClock:
    def __init__(self, start=100.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def itinerary(storage, clock):
    return ItineraryStore(storage, clock=clock)
