from __future__ import annotations

from concurrent.futures import Future
import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)

Payload = dict[str, object]


class FeatureCache:
    """Session-lifetime cache of fetched point sets, keyed by query signature.

    Entries never expire. At most one fetch per signature is in flight:
    callers that miss while a fetch is pending wait on the same future.
    """

    def __init__(self) -> None:
        self._entries: dict[str, Payload] = {}
        self._pending: dict[str, Future[Payload]] = {}
        self._lock = threading.Lock()
        self.fetch_count = 0

    def get(self, signature: str) -> Payload | None:
        with self._lock:
            return self._entries.get(signature)

    def put(self, signature: str, payload: Payload) -> None:
        with self._lock:
            self._entries[signature] = payload

    def invalidate(self, signature: str | None = None) -> None:
        with self._lock:
            if signature is None:
                self._entries.clear()
            else:
                self._entries.pop(signature, None)

    def __contains__(self, signature: str) -> bool:
        with self._lock:
            return signature in self._entries

    def get_or_fetch(self, signature: str, fetch: Callable[[], Payload]) -> Payload:
        with self._lock:
            cached = self._entries.get(signature)
            if cached is not None:
                return cached
            pending = self._pending.get(signature)
            owner = pending is None
            if owner:
                pending = Future()
                self._pending[signature] = pending
                self.fetch_count += 1

        if not owner:
            logger.debug(f"Waiting on in-flight fetch for {signature!r}")
            return pending.result()

        try:
            payload = fetch()
        except BaseException as error:
            with self._lock:
                self._pending.pop(signature, None)
            pending.set_exception(error)
            raise

        with self._lock:
            self._entries[signature] = payload
            self._pending.pop(signature, None)
        pending.set_result(payload)
        return payload
