from sqlalchemy import select
from sqlalchemy.orm import Session

from crimeintel.db_models import ScrapeRunRow
from crimeintel.schemas import ScrapeRun


def _to_row(run: ScrapeRun) -> ScrapeRunRow:
    return ScrapeRunRow(
        run_id=run.run_id,
        target_month=run.target_month,
        postcode_district=run.postcode_district,
        started_at=run.started_at,
        completed_at=run.completed_at,
        status=run.status,
        records_found=run.records_found,
        records_written=run.records_written,
        records_malformed=run.records_malformed,
        error_message=run.error_message,
    )


def _from_row(row: ScrapeRunRow) -> ScrapeRun:
    return ScrapeRun(
        run_id=row.run_id,
        target_month=row.target_month,
        postcode_district=row.postcode_district,
        started_at=row.started_at,
        completed_at=row.completed_at,
        status=row.status,
        records_found=row.records_found,
        records_written=row.records_written,
        records_malformed=row.records_malformed,
        error_message=row.error_message,
    )


def save_scrape_run(db: Session, run: ScrapeRun) -> None:
    db.add(_to_row(run))
    db.commit()


def list_recent_runs(db: Session, *, limit: int = 20, target_month: str | None = None) -> list[ScrapeRun]:
    stmt = select(ScrapeRunRow).order_by(ScrapeRunRow.started_at.desc()).limit(limit)
    if target_month is not None:
        stmt = stmt.where(ScrapeRunRow.target_month == target_month)
    return [_from_row(row) for row in db.execute(stmt).scalars().all()]
