"""
Persistence sinks for normalized crime records.

StoreSink upserts into the `crimes` table, one multi-row INSERT per batch,
collapsing rows that share a natural key. CsvSink writes one file per
(partition, month) that can be bulk-loaded elsewhere, e.g.

    crimes_NI_2024-01.csv
"""

from dataclasses import asdict
import csv
import hashlib
import logging
from pathlib import Path

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from crimeintel.db_models import CrimeRow
from crimeintel.errors import BatchWriteError
from crimeintel.schemas import CrimeRecord


logger = logging.getLogger(__name__)

CSV_COLUMNS = (
    "persistent_id",
    "api_id",
    "category",
    "category_name",
    "crime_month",
    "crime_date",
    "postcode_district",
    "street_name",
    "street_id",
    "latitude",
    "longitude",
    "location_type",
    "outcome_category",
    "outcome_date",
    "scraped_at",
    "source_endpoint",
)

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def natural_key(record: CrimeRecord) -> str:
    parts = (
        record.postcode_district,
        record.crime_date.isoformat(),
        record.category,
        record.street_name or "",
        repr(record.latitude),
        repr(record.longitude),
    )
    return hashlib.sha256("\x1f".join(parts).encode("utf-8")).hexdigest()


def _row_values(record: CrimeRecord) -> dict[str, object]:
    values = asdict(record)
    values["natural_key"] = natural_key(record)
    return values


class StoreSink:
    def __init__(self, session_factory: sessionmaker[Session], batch_size: int = 1000) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.session_factory = session_factory
        self.batch_size = batch_size

    def write(self, records: list[CrimeRecord]) -> int:
        if not records:
            return 0

        rows: dict[str, dict[str, object]] = {}
        for record in records:
            if record.latitude is None or record.longitude is None:
                continue
            values = _row_values(record)
            # Later rows replace earlier ones with the same key.
            rows.pop(values["natural_key"], None)
            rows[values["natural_key"]] = values

        pending = list(rows.values())
        total = len(pending)
        logger.info("writing records to store", extra={"records": total, "batch_size": self.batch_size})

        with self.session_factory() as db:
            insert = self._insert_for(db)
            for offset in range(0, total, self.batch_size):
                batch = pending[offset : offset + self.batch_size]
                stmt = insert(CrimeRow).values(batch)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[CrimeRow.natural_key],
                    set_={
                        column: stmt.excluded[column]
                        for column in batch[0]
                        if column != "natural_key"
                    },
                )
                try:
                    db.execute(stmt)
                    db.commit()
                except SQLAlchemyError as exc:
                    db.rollback()
                    logger.error("batch write failed", extra={"offset": offset, "error": str(exc)})
                    raise BatchWriteError(f"batch at offset {offset} failed: {exc}") from exc
                logger.debug("wrote batch", extra={"written": min(offset + self.batch_size, total), "total": total})

        logger.info("store write complete", extra={"records": total})
        return total

    def _insert_for(self, db: Session):
        dialect = db.get_bind().dialect.name
        try:
            return _UPSERT_DIALECTS[dialect]
        except KeyError:
            raise BatchWriteError(f"no upsert support for dialect '{dialect}'") from None


class CsvSink:
    def __init__(self, output_dir: str, include_header: bool = True) -> None:
        self.output_dir = Path(output_dir)
        self.include_header = include_header

    def path_for(self, month_key: str, partition_key: str) -> Path:
        return self.output_dir / f"crimes_{partition_key}_{month_key}.csv"

    def write(self, records: list[CrimeRecord], month_key: str, partition_key: str) -> int:
        if not records:
            return 0

        path = self.path_for(month_key, partition_key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("w", encoding="utf-8", newline="") as outfile:
                writer = csv.writer(outfile)
                if self.include_header:
                    writer.writerow(CSV_COLUMNS)
                for record in records:
                    values = asdict(record)
                    writer.writerow(["" if values[column] is None else values[column] for column in CSV_COLUMNS])
        except OSError as exc:
            logger.error("csv write failed", extra={"path": str(path), "error": str(exc)})
            raise BatchWriteError(f"csv write failed for {path}: {exc}") from exc

        logger.info("wrote csv", extra={"path": str(path), "records": len(records)})
        return len(records)
