from __future__ import annotations

from typing import Iterable

from lightsmap.models import Place

TOP_N = 10


def _vote_order(place: Place) -> tuple[int, str, str]:
    return (-int(place.votes), place.display_title.strip().casefold(), place.id)


def rank_top_ten(places: Iterable[Place]) -> list[Place]:
    """Attach rank 1..10 to the most-voted places and clear it on the rest.

    Ties on votes fall back to the display title, then the id, so the same
    input always ranks the same way. The returned list keeps input order.
    """
    ordered_input = list(places)
    for place in ordered_input:
        place.rank = None
    for index, place in enumerate(sorted(ordered_input, key=_vote_order)[:TOP_N], start=1):
        place.rank = index
    return ordered_input


def sort_by_votes(places: Iterable[Place]) -> list[Place]:
    return sorted(places, key=_vote_order)


def is_top_rank(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= TOP_N


def ranked_features(collection: dict[str, object]) -> list[dict[str, object]]:
    features = collection.get("features")
    if not isinstance(features, list):
        return []
    ranked = [feature for feature in features if is_top_rank((feature.get("properties") or {}).get("rank"))]
    return sorted(ranked, key=lambda feature: feature["properties"]["rank"])
