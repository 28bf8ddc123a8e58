"""
"My Run": the visitor's ordered list of displays to drive past.

The run is keyed by place id (set semantics) but kept in insertion order,
which is both the panel order and the stop order of the directions link.
Each mutation writes the full list back to storage before returning.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import time
from typing import Callable, Iterable, Protocol

from lightsmap.models import RunItem

logger = logging.getLogger(__name__)

RUN_KEY = "my_run_v1"
PULSE_SECONDS = 0.28


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...


@dataclass(slots=True, frozen=True)
class ItineraryChange:
    entries: tuple[RunItem, ...]
    changed: bool
    warning: str | None = None
    pulsed: bool = False


class PulseCue:
    """One-shot cosmetic cue that clears itself after a short delay."""

    def __init__(self, duration: float = PULSE_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self.duration = duration
        self.clock = clock
        self._fired_at: float | None = None

    def fire(self) -> None:
        self._fired_at = self.clock()

    @property
    def active(self) -> bool:
        if self._fired_at is None:
            return False
        if self.clock() - self._fired_at >= self.duration:
            self._fired_at = None
            return False
        return True


class ItineraryStore:
    def __init__(
        self,
        storage: KeyValueStorage,
        key: str = RUN_KEY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.storage = storage
        self.key = key
        self.pulse = PulseCue(clock=clock)
        self.panel_open = False
        self._entries: tuple[RunItem, ...] = ()

    @property
    def entries(self) -> tuple[RunItem, ...]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def contains(self, place_id: str) -> bool:
        return any(entry.id == place_id for entry in self._entries)

    def load(self) -> tuple[RunItem, ...]:
        self._entries = tuple(_parse_entries(self.storage.get_item(self.key)))
        return self._entries

    def add(self, entry: RunItem) -> ItineraryChange:
        if self.contains(entry.id):
            label = entry.address or "This display"
            return ItineraryChange(self._entries, changed=False, warning=f"{label} is already in your run.")
        return self._commit((*self._entries, entry))

    def remove(self, place_id: str) -> ItineraryChange:
        if not self.contains(place_id):
            return ItineraryChange(self._entries, changed=False)
        return self._commit(tuple(entry for entry in self._entries if entry.id != place_id))

    def toggle(self, entry: RunItem) -> ItineraryChange:
        if self.contains(entry.id):
            return self.remove(entry.id)
        return self.add(entry)

    def replace(self, entries: Iterable[RunItem]) -> ItineraryChange:
        unique: dict[str, RunItem] = {}
        for entry in entries:
            unique.setdefault(entry.id, entry)
        return self._commit(tuple(unique.values()))

    def clear(self) -> ItineraryChange:
        return self._commit(())

    def open_panel(self) -> None:
        self.panel_open = True

    def close_panel(self) -> None:
        self.panel_open = False

    def _commit(self, entries: tuple[RunItem, ...]) -> ItineraryChange:
        previous_length = len(self._entries)
        self.storage.set_item(self.key, json.dumps([entry.to_dict() for entry in entries], ensure_ascii=False))
        self._entries = entries

        pulsed = False
        if len(entries) > previous_length and not self.panel_open:
            self.pulse.fire()
            pulsed = True
        return ItineraryChange(entries, changed=True, pulsed=pulsed)


def _parse_entries(raw: str | None) -> list[RunItem]:
    if not raw:
        return []
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Stored run is not valid JSON; starting with an empty run")
        return []
    if not isinstance(payload, list):
        return []

    entries: list[RunItem] = []
    seen: set[str] = set()
    for item in payload:
        try:
            entry = RunItem.from_dict(item)
        except ValueError as error:
            logger.warning(f"Dropping malformed run entry: {error}")
            continue
        if entry.id in seen:
            continue
        seen.add(entry.id)
        entries.append(entry)
    return entries
