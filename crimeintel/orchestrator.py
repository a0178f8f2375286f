from collections.abc import Callable
import logging
import uuid

from crimeintel.config import Settings
from crimeintel.db_models import utc_now
from crimeintel.fetcher import ArchiveFetcher
from crimeintel.parser import parse_month_lines
from crimeintel.police_api import PoliceApiClient, map_api_crime
from crimeintel.router import OutputRouter
from crimeintel.schemas import RUN_FAILED, RUN_RUNNING, RUN_SUCCESS, MonthData, ParseResult, ScrapeRun


logger = logging.getLogger(__name__)


class ScrapeOrchestrator:
    """
    Drives fetch -> parse -> route for one invocation.

    Every month processed gets its own ScrapeRun and its own failure boundary;
    fetch failures propagate before any run exists.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        fetcher: ArchiveFetcher,
        router: OutputRouter,
        api_client: PoliceApiClient | None = None,
    ) -> None:
        self.settings = settings
        self.fetcher = fetcher
        self.router = router
        self.api_client = api_client or PoliceApiClient(settings, session=fetcher.session)

    def backfill_all(self, limit: int) -> list[ScrapeRun]:
        logger.info("starting backfill", extra={"limit": limit})
        months = self.fetcher.fetch_all_months()
        to_process = months[-limit:] if limit > 0 else []
        logger.info("processing months", extra={"months": len(to_process), "available": len(months)})

        runs = [self._process_archive_month(month) for month in to_process]
        logger.info("backfill complete", extra={"runs": len(runs), "failed": _count_failed(runs)})
        return runs

    def scrape_latest(self) -> list[ScrapeRun]:
        logger.info("scraping latest month")
        months = self.fetcher.fetch_all_months()
        if not months:
            logger.warning("no months found in archive")
            return []
        return [self._process_archive_month(months[-1])]

    def scrape_specific(self, month_key: str) -> list[ScrapeRun]:
        logger.info("scraping specific month", extra={"month_key": month_key})
        latest = self.fetcher.latest_available_month()
        if month_key > latest:
            logger.warning(
                "month not published yet, skipping download",
                extra={"month_key": month_key, "latest_month": latest},
            )
            return []

        for month in self.fetcher.fetch_all_months():
            if month.month_key == month_key:
                return [self._process_archive_month(month)]

        logger.warning("month not found in archive", extra={"month_key": month_key})
        return []

    def scrape_area(self, latitude: float, longitude: float, month_key: str) -> list[ScrapeRun]:
        url = self.api_client.crimes_near_point_url(latitude, longitude, month_key)

        def parse() -> ParseResult:
            raw_crimes = self.api_client.fetch_crimes_near_point(latitude, longitude, month_key)
            scraped_at = utc_now()
            records = []
            for raw in raw_crimes:
                record = map_api_crime(raw, self.settings.partition_key, url, scraped_at=scraped_at)
                if record is not None:
                    records.append(record)
            return ParseResult(month_key=month_key, records=records, malformed=len(raw_crimes) - len(records))

        return [self._process(month_key, parse)]

    def _process_archive_month(self, month: MonthData) -> ScrapeRun:
        return self._process(
            month.month_key,
            lambda: parse_month_lines(month.lines, month.month_key, self.settings.partition_key),
        )

    def _process(self, month_key: str, parse: Callable[[], ParseResult]) -> ScrapeRun:
        partition_key = self.settings.partition_key
        run = ScrapeRun(
            run_id=str(uuid.uuid4()),
            target_month=month_key,
            postcode_district=partition_key,
            started_at=utc_now(),
            status=RUN_RUNNING,
        )

        try:
            result = parse()
            run.records_found = result.produced
            run.records_malformed = result.malformed
            if result.records:
                run.records_written = self.router.route(result.records, month_key, partition_key)
            run.status = RUN_SUCCESS
            logger.info(
                "month processed",
                extra={"month_key": month_key, "records": result.produced, "malformed": result.malformed},
            )
        except Exception as exc:
            run.status = RUN_FAILED
            run.error_message = str(exc) or exc.__class__.__name__
            logger.exception("failed processing month", extra={"month_key": month_key, "run_id": run.run_id})
        finally:
            run.completed_at = utc_now()
            self.router.write_run(run)

        return run


def _count_failed(runs: list[ScrapeRun]) -> int:
    return sum(1 for run in runs if run.status == RUN_FAILED)


TRIGGER_KINDS: dict[str, Callable[[ScrapeOrchestrator, dict], list[ScrapeRun]]] = {
    "backfill": lambda orchestrator, params: orchestrator.backfill_all(int(params["months"])),
    "latest": lambda orchestrator, params: orchestrator.scrape_latest(),
    "month": lambda orchestrator, params: orchestrator.scrape_specific(str(params["month_key"])),
    "area": lambda orchestrator, params: orchestrator.scrape_area(
        float(params["latitude"]), float(params["longitude"]), str(params["month_key"])
    ),
}


def dispatch_trigger(orchestrator: ScrapeOrchestrator, kind: str, params: dict | None = None) -> list[ScrapeRun]:
    try:
        handler = TRIGGER_KINDS[kind]
    except KeyError:
        raise ValueError(f"unknown trigger kind '{kind}', expected one of {sorted(TRIGGER_KINDS)}") from None
    return handler(orchestrator, params or {})
