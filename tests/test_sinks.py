from dataclasses import replace
import csv
from datetime import date, datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select

from crimeintel.db_models import CrimeRow, ScrapeRunRow
from crimeintel.errors import BatchWriteError
from crimeintel.router import OutputRouter
from crimeintel.schemas import RUN_SUCCESS, CrimeRecord, ScrapeRun
from crimeintel.sinks import CSV_COLUMNS, CsvSink, StoreSink, natural_key


def make_record(**overrides) -> CrimeRecord:
    values = {
        "category": "burglary",
        "category_name": "Burglary",
        "crime_month": "2024-01",
        "crime_date": date(2024, 1, 1),
        "postcode_district": "NI",
        "latitude": 54.597,
        "longitude": -5.93,
        "street_name": "On or near High Street",
        "location_type": "Force",
        "scraped_at": datetime(2024, 3, 1, 2, 0, 0),
        "source_endpoint": "bulk-csv-archive/2024-01",
    }
    values.update(overrides)
    return CrimeRecord(**values)


def _count(session_factory) -> int:
    with session_factory() as db:
        return db.execute(select(func.count()).select_from(CrimeRow)).scalar_one()


def test_store_sink_writes_in_batches(session_factory) -> None:
    records = [make_record(street_name=f"On or near Street {index}") for index in range(5)]

    written = StoreSink(session_factory, batch_size=2).write(records)

    assert written == 5
    assert _count(session_factory) == 5


def test_store_sink_reingest_is_idempotent(session_factory) -> None:
    sink = StoreSink(session_factory, batch_size=2)
    records = [make_record(), make_record(category="drugs", category_name="Drugs"), make_record(street_name=None)]

    sink.write(records)
    sink.write([replace(record, scraped_at=datetime(2024, 4, 1)) for record in records])

    assert _count(session_factory) == 3
    with session_factory() as db:
        scraped = db.execute(select(CrimeRow.scraped_at)).scalars().all()
    assert set(scraped) == {datetime(2024, 4, 1)}


def test_store_sink_collapses_duplicates_within_one_call(session_factory) -> None:
    first = make_record(outcome_category=None)
    last = make_record(outcome_category="Investigation complete")

    StoreSink(session_factory, batch_size=10).write([first, last])

    with session_factory() as db:
        rows = db.execute(select(CrimeRow)).scalars().all()
    assert len(rows) == 1
    assert rows[0].outcome_category == "Investigation complete"


def test_store_sink_batch_failure_keeps_earlier_batches(session_factory) -> None:
    records = [make_record(street_name=f"On or near Street {index}") for index in range(4)]
    # A NULL category_name violates NOT NULL in the second batch.
    records[3] = replace(records[3], category_name=None)

    with pytest.raises(BatchWriteError):
        StoreSink(session_factory, batch_size=2).write(records)

    assert _count(session_factory) == 2


def test_natural_key_ignores_non_key_fields() -> None:
    assert natural_key(make_record()) == natural_key(make_record(category_name="BURGLARY", api_id=7))
    assert natural_key(make_record()) != natural_key(make_record(latitude=54.598))


def test_csv_sink_overwrites_file_with_header(tmp_path: Path) -> None:
    sink = CsvSink(str(tmp_path / "out"), include_header=True)

    sink.write([make_record(), make_record(category="drugs")], "2024-01", "NI")
    sink.write([make_record(street_name=None)], "2024-01", "NI")
    path = sink.path_for("2024-01", "NI")

    with path.open(encoding="utf-8", newline="") as infile:
        rows = list(csv.reader(infile))
    assert path.name == "crimes_NI_2024-01.csv"
    assert rows[0] == list(CSV_COLUMNS)
    assert len(rows) == 2
    assert rows[1][CSV_COLUMNS.index("street_name")] == ""
    assert rows[1][CSV_COLUMNS.index("crime_date")] == "2024-01-01"


def test_csv_sink_without_header(tmp_path: Path) -> None:
    sink = CsvSink(str(tmp_path), include_header=False)

    sink.write([make_record()], "2024-02", "NI")

    with sink.path_for("2024-02", "NI").open(encoding="utf-8", newline="") as infile:
        rows = list(csv.reader(infile))
    assert len(rows) == 1
    assert rows[0][CSV_COLUMNS.index("category")] == "burglary"


@pytest.mark.parametrize(
    ("mode", "store_calls", "csv_calls"),
    [("store", 1, 0), ("csv", 0, 1), ("both", 1, 1)],
)
def test_router_dispatches_by_mode(session_factory, mode: str, store_calls: int, csv_calls: int) -> None:
    store_sink = MagicMock(spec=StoreSink)
    csv_sink = MagicMock(spec=CsvSink)
    router = OutputRouter(mode, store_sink=store_sink, csv_sink=csv_sink, session_factory=session_factory)

    router.route([make_record()], "2024-01", "NI")

    assert store_sink.write.call_count == store_calls
    assert csv_sink.write.call_count == csv_calls


def test_router_rejects_unknown_mode(session_factory) -> None:
    with pytest.raises(ValueError):
        OutputRouter("clickhouse", store_sink=MagicMock(), csv_sink=MagicMock(), session_factory=session_factory)


def test_router_propagates_sink_failure(session_factory) -> None:
    store_sink = MagicMock(spec=StoreSink)
    store_sink.write.side_effect = BatchWriteError("boom")
    router = OutputRouter("store", store_sink=store_sink, csv_sink=MagicMock(), session_factory=session_factory)

    with pytest.raises(BatchWriteError):
        router.route([make_record()], "2024-01", "NI")


def _run(run_id: str = "run-1") -> ScrapeRun:
    return ScrapeRun(
        run_id=run_id,
        target_month="2024-01",
        postcode_district="NI",
        started_at=datetime(2024, 3, 1, 2, 0, 0),
        completed_at=datetime(2024, 3, 1, 2, 5, 0),
        status=RUN_SUCCESS,
        records_found=3,
        records_written=3,
    )


def test_write_run_persists_audit_row(session_factory) -> None:
    router = OutputRouter("csv", store_sink=MagicMock(), csv_sink=MagicMock(), session_factory=session_factory)

    router.write_run(_run())

    with session_factory() as db:
        row = db.get(ScrapeRunRow, "run-1")
    assert row is not None
    assert row.status == RUN_SUCCESS
    assert row.error_message is None


def test_write_run_swallows_failures(session_factory) -> None:
    router = OutputRouter("store", store_sink=MagicMock(), csv_sink=MagicMock(), session_factory=session_factory)
    router.write_run(_run())

    # Same primary key again: the insert fails, and the failure is only logged.
    router.write_run(_run())

    broken_factory = MagicMock(side_effect=RuntimeError("database is gone"))
    OutputRouter("store", store_sink=MagicMock(), csv_sink=MagicMock(), session_factory=broken_factory).write_run(_run("run-2"))


def test_router_reports_count_from_first_sink(session_factory) -> None:
    store_sink = MagicMock(spec=StoreSink)
    store_sink.write.return_value = 1
    csv_sink = MagicMock(spec=CsvSink)
    csv_sink.write.return_value = 2
    router = OutputRouter("both", store_sink=store_sink, csv_sink=csv_sink, session_factory=session_factory)

    written = router.route([make_record(), make_record()], "2024-01", "NI")

    assert written == 1
