"""
Client for the hosted Supabase project (PostgREST tables + auth).

Tables used: ``places`` (submitted displays with a moderation ``status``),
``votes`` (one row per visitor and place) and the ``vote_counts`` view
(aggregate votes per place).
"""

from __future__ import annotations

import logging
from typing import Iterable

import requests

from lightsmap.errors import DataStoreError, DuplicateVoteError

logger = logging.getLogger(__name__)

PLACE_COLUMNS = "id,title,description,suburb,lat,lng,open_start,open_end,season,status,hide_number"
UNIQUE_VIOLATION = "23505"
REQUEST_TIMEOUT = 15


class SupabaseClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        session: requests.Session | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(
        self,
        method: str,
        table: str,
        params: dict[str, str] | None = None,
        json_body: object = None,
        prefer: str | None = None,
    ) -> object:
        url = f"{self.base_url}/rest/v1/{table}"
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self._headers(prefer),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"{method} {table} failed: {e}")
            raise DataStoreError(f"Could not reach the data store: {e}") from e

        if response.status_code >= 400:
            code, message = _error_details(response)
            logger.error(f"{method} {table} returned {response.status_code}: {message}")
            raise DataStoreError(message, status_code=response.status_code, code=code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise DataStoreError(f"Invalid JSON from data store: {e}") from e

    # places

    def select_places(self, season: str, status: str = "approved") -> list[dict[str, object]]:
        rows = self._request(
            "GET",
            "places",
            params={"select": PLACE_COLUMNS, "status": f"eq.{status}", "season": f"eq.{season}"},
        )
        return list(rows or [])

    def get_place(self, place_id: str) -> dict[str, object] | None:
        rows = self._request(
            "GET",
            "places",
            params={"select": PLACE_COLUMNS, "id": f"eq.{place_id}", "limit": "1"},
        )
        return rows[0] if rows else None

    def insert_place(self, row: dict[str, object]) -> dict[str, object]:
        rows = self._request("POST", "places", json_body=row, prefer="return=representation")
        if not rows:
            raise DataStoreError("Insert returned no row")
        return rows[0]

    # votes

    def vote_counts(self, place_ids: Iterable[str]) -> dict[str, int]:
        ids = [str(place_id) for place_id in place_ids]
        if not ids:
            return {}
        rows = self._request(
            "GET",
            "vote_counts",
            params={"select": "place_id,votes", "place_id": f"in.({','.join(ids)})"},
        )
        return {str(row["place_id"]): int(row.get("votes") or 0) for row in rows or []}

    def vote_count(self, place_id: str) -> int:
        return self.vote_counts([place_id]).get(str(place_id), 0)

    def vote_exists(self, visitor_id: str, place_id: str) -> bool:
        rows = self._request(
            "GET",
            "votes",
            params={
                "select": "id",
                "user_id": f"eq.{visitor_id}",
                "place_id": f"eq.{place_id}",
                "limit": "1",
            },
        )
        return bool(rows)

    def insert_vote(self, visitor_id: str, place_id: str) -> None:
        try:
            self._request(
                "POST",
                "votes",
                json_body={"user_id": visitor_id, "place_id": place_id},
                prefer="return=minimal",
            )
        except DataStoreError as e:
            if e.status_code == 409 or e.code == UNIQUE_VIOLATION:
                raise DuplicateVoteError(str(e), status_code=e.status_code, code=e.code) from e
            raise

    def delete_vote(self, visitor_id: str, place_id: str) -> None:
        self._request(
            "DELETE",
            "votes",
            params={"user_id": f"eq.{visitor_id}", "place_id": f"eq.{place_id}"},
            prefer="return=minimal",
        )


class SupabaseAuth:
    """Resolves a visitor's access token to their user id."""

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        session: requests.Session | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def current_visitor(self, access_token: str | None) -> str | None:
        if not access_token:
            return None
        try:
            response = self.session.get(
                f"{self.base_url}/auth/v1/user",
                headers={"apikey": self.anon_key, "Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Auth lookup failed: {e}")
            raise DataStoreError(f"Could not reach the auth provider: {e}") from e

        if response.status_code in (401, 403):
            return None
        if response.status_code >= 400:
            raise DataStoreError(f"Auth provider returned {response.status_code}", status_code=response.status_code)
        user_id = (response.json() or {}).get("id")
        return str(user_id) if user_id else None


def _error_details(response: requests.Response) -> tuple[str | None, str]:
    try:
        payload = response.json()
    except ValueError:
        return None, response.text or f"HTTP {response.status_code}"
    if not isinstance(payload, dict):
        return None, str(payload)
    code = payload.get("code")
    message = payload.get("message") or payload.get("error") or f"HTTP {response.status_code}"
    return (str(code) if code is not None else None), str(message)
