import argparse
from dataclasses import asdict
import json
import logging

from sqlalchemy.orm import Session, sessionmaker

from crimeintel.config import Settings, get_settings
from crimeintel.database import build_session_factory
from crimeintel.errors import NotFoundError
from crimeintel.fetcher import ArchiveFetcher, is_month_key
from crimeintel.orchestrator import ScrapeOrchestrator, dispatch_trigger
from crimeintel.query import CrimeQueryEngine
from crimeintel.resolver import AddressResolver
from crimeintel.router import OutputRouter
from crimeintel.run_store import list_recent_runs
from crimeintel.scheduler import start_scheduler
from crimeintel.schemas import RUN_FAILED, ScrapeRun


logger = logging.getLogger(__name__)


def month_key_arg(value: str) -> str:
    if not is_month_key(value):
        raise argparse.ArgumentTypeError("month must be YYYY-MM")
    return value


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest and query Northern Ireland street crime data")
    subparsers = parser.add_subparsers(dest="command", required=True)

    backfill_parser = subparsers.add_parser("backfill", help="ingest the most recent N months of the archive")
    backfill_parser.add_argument("--months", type=int, default=None, help="months to ingest (default BACKFILL_MONTHS)")

    subparsers.add_parser("latest", help="ingest the latest month of the archive")

    month_parser = subparsers.add_parser("month", help="ingest one month of the archive")
    month_parser.add_argument("month_key", type=month_key_arg, help="month in YYYY-MM format")

    area_parser = subparsers.add_parser("area", help="ingest one month of live API crimes around a point")
    area_parser.add_argument("--lat", type=float, required=True)
    area_parser.add_argument("--lng", type=float, required=True)
    area_parser.add_argument("--month", dest="month_key", type=month_key_arg, required=True)

    schedule_parser = subparsers.add_parser("schedule", help="start the monthly scheduler")
    schedule_parser.add_argument("--run-now", action="store_true", help="also scrape the latest month immediately")

    summary_parser = subparsers.add_parser("summary", help="crime summary around an address")
    summary_parser.add_argument("--address", required=True)
    summary_parser.add_argument("--radius", type=float, default=500, help="radius in metres")
    summary_parser.add_argument("--months", type=int, default=12, help="lookback in months")

    hotspots_parser = subparsers.add_parser("hotspots", help="street-level hotspots around an address")
    hotspots_parser.add_argument("--address", required=True)
    hotspots_parser.add_argument("--radius", type=float, default=500, help="radius in metres")

    runs_parser = subparsers.add_parser("runs", help="list recent scrape runs")
    runs_parser.add_argument("--limit", type=int, default=20)
    runs_parser.add_argument("--month", dest="month_key", type=month_key_arg, default=None)

    return parser.parse_args(argv)


def build_orchestrator(settings: Settings, session_factory: sessionmaker[Session]) -> ScrapeOrchestrator:
    return ScrapeOrchestrator(
        settings,
        fetcher=ArchiveFetcher(settings),
        router=OutputRouter.from_settings(settings, session_factory),
    )


def _print_runs(runs: list[ScrapeRun]) -> None:
    if not runs:
        print("no scrape runs recorded")
        return
    for run in runs:
        print(
            "run_id={run_id} month={month} status={status} found={found} written={written} malformed={malformed} error={error}".format(
                run_id=run.run_id,
                month=run.target_month,
                status=run.status,
                found=run.records_found,
                written=run.records_written,
                malformed=run.records_malformed,
                error=run.error_message,
            )
        )


def _run_query(args: argparse.Namespace, settings: Settings, session_factory: sessionmaker[Session]) -> int:
    engine = CrimeQueryEngine(session_factory, AddressResolver(settings))
    try:
        if args.command == "summary":
            result: object = asdict(engine.summarize(args.address, args.radius, args.months))
        else:
            result = [asdict(hotspot) for hotspot in engine.hotspots(args.address, args.radius)]
    except NotFoundError as exc:
        print(f"error={exc}")
        return 2
    except Exception as exc:
        logger.exception("query failed", extra={"address": args.address})
        print(f"error={exc}")
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    session_factory = build_session_factory(settings.database_url)

    if args.command == "runs":
        with session_factory() as db:
            _print_runs(list_recent_runs(db, limit=args.limit, target_month=args.month_key))
        return

    if args.command in {"summary", "hotspots"}:
        raise SystemExit(_run_query(args, settings, session_factory))

    orchestrator = build_orchestrator(settings, session_factory)
    if args.command == "schedule":
        start_scheduler(settings, orchestrator, run_now=args.run_now)
        return

    params: dict[str, object] = {}
    if args.command == "backfill":
        params["months"] = args.months if args.months is not None else settings.backfill_months
    elif args.command == "month":
        params["month_key"] = args.month_key
    elif args.command == "area":
        params.update(latitude=args.lat, longitude=args.lng, month_key=args.month_key)

    runs = dispatch_trigger(orchestrator, args.command, params)
    _print_runs(runs)
    if any(run.status == RUN_FAILED for run in runs):
        raise SystemExit(1)


if __name__ == "__main__":
    main()
