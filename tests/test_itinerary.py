import json
from pathlib import Path

from lightsmap.itinerary import RUN_KEY, ItineraryStore
from lightsmap.models import RunItem
from lightsmap.state import JsonFileStorage, MemoryStorage

STOP_A = RunItem(id="1", address="12 Holly Lane", suburb="Burleigh", lat=-27.9, lng=153.3)
STOP_B = RunItem(id="2", address="Tinsel Court", suburb=None, lat=-27.95, lng=153.35)
STOP_C = RunItem(id="3", address="40 Star Street", suburb="Southport", lat=-28.0, lng=153.4)


def _stored(storage: MemoryStorage) -> list[dict[str, object]]:
    return json.loads(storage.get_item(RUN_KEY))


def test_add_twice_keeps_one_entry_and_warns(itinerary: ItineraryStore) -> None:
    first = itinerary.add(STOP_A)
    second = itinerary.add(STOP_A)

    assert first.changed is True
    assert first.warning is None
    assert second.changed is False
    assert second.warning == "12 Holly Lane is already in your run."
    assert itinerary.entries == (STOP_A,)


def test_every_mutation_is_written_before_returning(itinerary: ItineraryStore, storage: MemoryStorage) -> None:
    itinerary.add(STOP_A)
    assert [item["id"] for item in _stored(storage)] == ["1"]

    itinerary.add(STOP_B)
    assert [item["id"] for item in _stored(storage)] == ["1", "2"]

    itinerary.remove("1")
    assert [item["id"] for item in _stored(storage)] == ["2"]

    itinerary.clear()
    assert _stored(storage) == []


def test_remove_missing_id_is_a_no_op(itinerary: ItineraryStore, storage: MemoryStorage) -> None:
    itinerary.add(STOP_A)

    change = itinerary.remove("does-not-exist")

    assert change.changed is False
    assert itinerary.entries == (STOP_A,)


def test_toggle_adds_then_removes(itinerary: ItineraryStore) -> None:
    itinerary.toggle(STOP_B)
    assert itinerary.contains("2")

    itinerary.toggle(STOP_B)
    assert not itinerary.contains("2")


def test_replace_dedupes_by_id_keeping_first(itinerary: ItineraryStore) -> None:
    duplicate = RunItem(id="1", address="Other", suburb=None, lat=0.0, lng=0.0)

    itinerary.replace([STOP_A, STOP_B, duplicate, STOP_C])

    assert itinerary.entries == (STOP_A, STOP_B, STOP_C)


def test_save_then_load_round_trips(storage: MemoryStorage) -> None:
    writer = ItineraryStore(storage)
    writer.add(STOP_A)
    writer.add(STOP_B)
    writer.add(STOP_C)

    reader = ItineraryStore(storage)

    assert reader.load() == (STOP_A, STOP_B, STOP_C)


def test_load_drops_only_malformed_entries() -> None:
    payload = [
        STOP_A.to_dict(),
        {"address": "no id here", "lat": -27.0, "lng": 153.0},
        STOP_B.to_dict(),
        {"id": "9", "address": "bad coords", "lat": "north", "lng": 153.0},
        {"id": "10", "address": "bool coords", "lat": True, "lng": 153.0},
        "not even an object",
        STOP_C.to_dict(),
    ]
    storage = MemoryStorage({RUN_KEY: json.dumps(payload)})

    loaded = ItineraryStore(storage).load()

    assert loaded == (STOP_A, STOP_B, STOP_C)


def test_load_tolerates_garbage_and_non_list_payloads() -> None:
    assert ItineraryStore(MemoryStorage({RUN_KEY: "{not json"})).load() == ()
    assert ItineraryStore(MemoryStorage({RUN_KEY: json.dumps({"id": "1"})})).load() == ()
    assert ItineraryStore(MemoryStorage()).load() == ()


def test_pulse_fires_when_growing_with_panel_closed_and_clears(itinerary: ItineraryStore, clock) -> None:
    change = itinerary.add(STOP_A)

    assert change.pulsed is True
    assert itinerary.pulse.active is True

    clock.advance(0.3)

    assert itinerary.pulse.active is False


def test_pulse_does_not_fire_when_panel_open_or_shrinking(itinerary: ItineraryStore) -> None:
    itinerary.open_panel()
    assert itinerary.add(STOP_A).pulsed is False

    itinerary.close_panel()
    assert itinerary.remove("1").pulsed is False
    assert itinerary.pulse.active is False


def test_json_file_storage_survives_a_new_store(tmp_path: Path) -> None:
    run_file = tmp_path / "data" / "my_run.json"
    ItineraryStore(JsonFileStorage(run_file)).add(STOP_C)

    reloaded = ItineraryStore(JsonFileStorage(run_file))

    assert reloaded.load() == (STOP_C,)
    assert list(run_file.parent.glob("*.tmp")) == []


def test_json_file_storage_ignores_corrupt_file(tmp_path: Path) -> None:
    run_file = tmp_path / "my_run.json"
    run_file.write_text("[[[", encoding="utf-8")
    storage = JsonFileStorage(run_file)

    assert storage.get_item(RUN_KEY) is None

    storage.set_item(RUN_KEY, "[]")
    assert storage.get_item(RUN_KEY) == "[]"
