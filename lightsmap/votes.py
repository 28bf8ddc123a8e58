from __future__ import annotations

import logging
from typing import Protocol

from lightsmap.errors import DuplicateVoteError, Unauthenticated
from lightsmap.models import VoteOutcome, VoteResult

logger = logging.getLogger(__name__)


class VoteStore(Protocol):
    def vote_exists(self, visitor_id: str, place_id: str) -> bool: ...

    def insert_vote(self, visitor_id: str, place_id: str) -> None: ...

    def delete_vote(self, visitor_id: str, place_id: str) -> None: ...

    def vote_count(self, place_id: str) -> int: ...


class VoteSyncAdapter:
    """Toggles one visitor's vote on one place against the vote store.

    The displayed count always comes from a fresh read after the write;
    nothing is incremented locally.
    """

    def __init__(self, store: VoteStore) -> None:
        self.store = store

    def has_voted(self, place_id: str, visitor_id: str | None) -> bool:
        if not visitor_id:
            return False
        return self.store.vote_exists(visitor_id, place_id)

    def toggle_vote(self, place_id: str, visitor_id: str | None) -> VoteResult:
        if not visitor_id:
            raise Unauthenticated()

        if self.store.vote_exists(visitor_id, place_id):
            self.store.delete_vote(visitor_id, place_id)
            outcome = VoteOutcome.UNVOTED
        else:
            try:
                self.store.insert_vote(visitor_id, place_id)
                outcome = VoteOutcome.VOTED
            except DuplicateVoteError:
                logger.info(f"Vote for place {place_id} already recorded; re-reading count")
                outcome = VoteOutcome.ALREADY_VOTED

        votes = self.store.vote_count(place_id)
        return VoteResult(outcome=outcome, has_voted=outcome is not VoteOutcome.UNVOTED, votes=votes)
