from argparse import ArgumentParser
import logging

from lightsmap.config import Settings
from lightsmap.errors import DataStoreError, InputError
from lightsmap.filters import FilterMode
from lightsmap.interaction import MapSession, vote_count_text
from lightsmap.itinerary import ItineraryStore
from lightsmap.models import RunItem
from lightsmap.places import PlacesApiClient, PlacesService
from lightsmap.seasons import detect_season, normalize_season
from lightsmap.state import JsonFileStorage
from lightsmap.store import SupabaseClient
from lightsmap.votes import VoteSyncAdapter

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)


def build_session(settings: Settings) -> MapSession:
    itinerary = ItineraryStore(JsonFileStorage(settings.run_file))
    itinerary.load()
    client = PlacesApiClient(settings.api_url)
    store = SupabaseClient(settings.supabase_url, settings.supabase_service_key)
    return MapSession(itinerary=itinerary, fetch_features=client.fetch, votes=VoteSyncAdapter(store))


def _print_run(session: MapSession) -> None:
    entries = session.itinerary.entries
    if not entries:
        print("Your run is empty.")
        return
    for index, entry in enumerate(entries, start=1):
        suburb = f" ({entry.suburb})" if entry.suburb else ""
        print(f"{index}. {entry.address}{suburb}")
    print(f"Directions: {session.route_url()}")


def show_places(session: MapSession, mode: FilterMode) -> int:
    while session.filter_mode is not mode:
        session.filter.advance()
    visible = session.refresh()
    if visible is None:
        print(f"Error: {session.error}")
        return 1
    print(f"[{session.filter.style.label}]")
    for feature in visible.get("features", []):
        props = feature.get("properties") or {}
        rank = f"#{props['rank']} " if props.get("rank") else ""
        print(f"{rank}{props.get('title')} - {vote_count_text(int(props.get('votes') or 0))}")
    return 0


def show_leaderboard(settings: Settings, season: str | None) -> int:
    service = PlacesService(SupabaseClient(settings.supabase_url, settings.supabase_service_key))
    try:
        season = normalize_season(season) if season else detect_season()
        rows = service.leaderboard(season)
    except (InputError, DataStoreError) as e:
        print(f"Error: {e}")
        return 1
    if not rows:
        print(f"No {season} displays yet.")
        return 0
    for index, row in enumerate(rows, start=1):
        suburb = f" ({row.suburb})" if row.suburb else ""
        print(f"{index}. {row.display_address}{suburb} - {vote_count_text(row.votes)}")
    return 0


def run_command(session: MapSession, args) -> int:
    try:
        return _run_command(session, args)
    except OSError as e:
        print(f"Error: could not save your run: {e}")
        return 1


def _run_command(session: MapSession, args) -> int:
    if args.run_command == "list" or args.run_command == "route":
        _print_run(session)
        return 0
    if args.run_command == "add":
        change = session.add_to_run(
            RunItem(id=args.id, address=args.address, suburb=args.suburb, lat=args.lat, lng=args.lng)
        )
        if change.warning:
            print(change.warning)
        _print_run(session)
        return 0
    if args.run_command == "remove":
        session.itinerary.remove(args.id)
        _print_run(session)
        return 0
    if args.run_command == "clear":
        session.itinerary.clear()
        print("Run cleared.")
        return 0
    if args.run_command == "top10":
        if session.refresh() is None:
            print(f"Error: {session.error}")
            return 1
        if session.load_top10_route() is None:
            print(session.notice)
            return 1
        _print_run(session)
        return 0
    return 1


def main() -> int:
    parser = ArgumentParser(description="Light displays map utility CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the web app")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    places = sub.add_parser("places", help="List displays shown on the map")
    places.add_argument(
        "--mode",
        choices=[mode.value for mode in FilterMode],
        default=FilterMode.ALL.value,
        help="Display filter (default: all)",
    )

    board = sub.add_parser("leaderboard", help="Show displays ranked by votes")
    board.add_argument("--season", default=None, help="christmas or halloween (default: current)")

    run = sub.add_parser("run", help="Manage your saved run")
    run_sub = run.add_subparsers(dest="run_command", required=True)
    run_sub.add_parser("list", help="Show the stops in your run")
    run_sub.add_parser("route", help="Print the Google Maps directions link")
    run_sub.add_parser("clear", help="Remove every stop")
    run_sub.add_parser("top10", help="Replace your run with this season's Top 10")
    add = run_sub.add_parser("add", help="Add a stop")
    add.add_argument("--id", required=True)
    add.add_argument("--address", required=True)
    add.add_argument("--suburb", default=None)
    add.add_argument("--lat", type=float, required=True)
    add.add_argument("--lng", type=float, required=True)
    remove = run_sub.add_parser("remove", help="Remove a stop")
    remove.add_argument("id")

    args = parser.parse_args()
    settings = Settings.from_env()

    if args.command == "serve":
        import uvicorn

        uvicorn.run("lightsmap.web_app:app", host=args.host, port=args.port)
        return 0
    if args.command == "places":
        return show_places(build_session(settings), FilterMode(args.mode))
    if args.command == "leaderboard":
        return show_leaderboard(settings, args.season)
    if args.command == "run":
        return run_command(build_session(settings), args)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
