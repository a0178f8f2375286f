import logging

from sqlalchemy.orm import Session, sessionmaker

from crimeintel.config import Settings
from crimeintel.run_store import save_scrape_run
from crimeintel.schemas import CrimeRecord, ScrapeRun
from crimeintel.sinks import CsvSink, StoreSink


logger = logging.getLogger(__name__)

SINK_MODES: dict[str, tuple[str, ...]] = {
    "store": ("store",),
    "csv": ("csv",),
    "both": ("store", "csv"),
}


class OutputRouter:
    def __init__(
        self,
        mode: str,
        *,
        store_sink: StoreSink,
        csv_sink: CsvSink,
        session_factory: sessionmaker[Session],
    ) -> None:
        if mode not in SINK_MODES:
            raise ValueError(f"unknown output mode '{mode}', expected one of {sorted(SINK_MODES)}")
        self.mode = mode
        self.session_factory = session_factory
        writers = {
            "store": lambda records, month_key, partition_key: store_sink.write(records),
            "csv": csv_sink.write,
        }
        self._writers = [writers[name] for name in SINK_MODES[mode]]

    @classmethod
    def from_settings(cls, settings: Settings, session_factory: sessionmaker[Session]) -> "OutputRouter":
        return cls(
            settings.output_mode,
            store_sink=StoreSink(session_factory, batch_size=settings.batch_size),
            csv_sink=CsvSink(settings.csv_output_dir, include_header=settings.csv_include_header),
            session_factory=session_factory,
        )

    def route(self, records: list[CrimeRecord], month_key: str, partition_key: str) -> int:
        """Write to every sink of the mode; returns the count reported by the first one."""
        counts = [write(records, month_key, partition_key) for write in self._writers]
        return counts[0]

    def write_run(self, run: ScrapeRun) -> None:
        # Losing an audit row must never fail the ingestion it describes.
        try:
            with self.session_factory() as db:
                save_scrape_run(db, run)
        except Exception:
            logger.warning(
                "failed to write scrape run",
                exc_info=True,
                extra={"run_id": run.run_id, "target_month": run.target_month, "status": run.status},
            )
