from __future__ import annotations

import argparse
import datetime as dt
import json
import logging
import sys
from typing import Optional

from dotenv import load_dotenv

from . import db
from .config import load_settings
from .errors import LotteryEventError
from .models import Base
from .services.events import EventRepository
from .services.pool import PoolGenerator


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )


def _parse_time(value: str) -> dt.datetime:
    try:
        parsed = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid ISO-8601 timestamp: {value}") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return parsed


def _print(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def cmd_serve(args: argparse.Namespace) -> None:
    from .app import create_app

    app = create_app()
    app.run(host=args.host, port=args.port, debug=load_settings().flask.debug)


def cmd_create_event(args: argparse.Namespace) -> None:
    repo = EventRepository()
    event = repo.create_event(
        name=args.name,
        start_at=args.start,
        end_at=args.end,
        announce_start_at=args.announce_start,
        announce_end_at=args.announce_end,
    )
    _print(repo.describe(event))


def cmd_generate_pool(args: argparse.Namespace) -> None:
    settings = load_settings().pool
    generator = PoolGenerator(settings=settings)
    low = settings.number_low if args.low is None else args.low
    high = settings.number_high if args.high is None else args.high
    summary = generator.generate_pool(args.event_id, args.size, args.winners, number_domain=(low, high))
    _print(summary.to_dict())


def cmd_stats(args: argparse.Namespace) -> None:
    _print(EventRepository().pool_stats(args.event_id))


def cmd_list_events(args: argparse.Namespace) -> None:
    _print(EventRepository().list_events(page=args.page, size=args.size))


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Lottery event administration")
    parser.add_argument("--env-file", type=str, default=None, help="Path to .env file with settings")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging (default INFO).")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=5000)
    serve.set_defaults(func=cmd_serve)

    create = sub.add_parser("create-event", help="Create an event")
    create.add_argument("name")
    create.add_argument("--start", type=_parse_time, required=True)
    create.add_argument("--end", type=_parse_time, required=True)
    create.add_argument("--announce-start", type=_parse_time, required=True)
    create.add_argument("--announce-end", type=_parse_time, required=True)
    create.set_defaults(func=cmd_create_event)

    pool = sub.add_parser("generate-pool", help="Generate the slot pool of a READY event")
    pool.add_argument("event_id", type=int)
    pool.add_argument("--size", type=int, required=True)
    pool.add_argument("--winners", type=int, required=True)
    pool.add_argument("--low", type=int, default=None)
    pool.add_argument("--high", type=int, default=None)
    pool.set_defaults(func=cmd_generate_pool)

    stats = sub.add_parser("stats", help="Show pool statistics for an event")
    stats.add_argument("event_id", type=int)
    stats.set_defaults(func=cmd_stats)

    listing = sub.add_parser("list-events", help="List events with their phases")
    listing.add_argument("--page", type=int, default=1)
    listing.add_argument("--size", type=int, default=20)
    listing.set_defaults(func=cmd_list_events)

    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)
    if args.env_file:
        load_dotenv(args.env_file, override=True)
        load_settings.cache_clear()
    settings = load_settings()
    Base.metadata.create_all(db.configure_engine(settings.database_url))
    try:
        args.func(args)
    except LotteryEventError as exc:
        logging.getLogger("lottoevent.cli").error("%s: %s", type(exc).__name__, exc.message)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
