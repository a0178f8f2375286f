from datetime import UTC, date, datetime

from sqlalchemy import Date, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def utc_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class CrimeRow(Base):
    __tablename__ = "crimes"
    __table_args__ = (Index("ix_crimes_partition_date", "postcode_district", "crime_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Digest of (postcode_district, crime_date, category, street_name, latitude, longitude).
    natural_key: Mapped[str] = mapped_column(String(64), unique=True)
    persistent_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    api_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    category: Mapped[str] = mapped_column(String(64), index=True)
    category_name: Mapped[str] = mapped_column(String(128))
    crime_month: Mapped[str] = mapped_column(String(7), index=True)
    crime_date: Mapped[date] = mapped_column(Date)
    postcode_district: Mapped[str] = mapped_column(String(16))
    street_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    street_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    outcome_category: Mapped[str | None] = mapped_column(String(128), nullable=True)
    outcome_date: Mapped[str | None] = mapped_column(String(16), nullable=True)
    scraped_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    source_endpoint: Mapped[str | None] = mapped_column(String(255), nullable=True)


class ScrapeRunRow(Base):
    __tablename__ = "scrape_runs"

    run_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    target_month: Mapped[str] = mapped_column(String(7), index=True)
    postcode_district: Mapped[str] = mapped_column(String(16))
    started_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String(16))
    records_found: Mapped[int] = mapped_column(Integer, default=0)
    records_written: Mapped[int] = mapped_column(Integer, default=0)
    records_malformed: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
