from dataclasses import dataclass, field
from datetime import date, datetime


RUN_RUNNING = "RUNNING"
RUN_SUCCESS = "SUCCESS"
RUN_FAILED = "FAILED"
RUN_SKIPPED = "SKIPPED"


@dataclass(frozen=True)
class CrimeRecord:
    category: str
    category_name: str
    crime_month: str
    crime_date: date
    postcode_district: str
    latitude: float | None
    longitude: float | None
    scraped_at: datetime
    persistent_id: str | None = None
    api_id: int | None = None
    street_name: str | None = None
    street_id: int | None = None
    location_type: str | None = None
    outcome_category: str | None = None
    outcome_date: str | None = None
    source_endpoint: str | None = None


@dataclass(frozen=True)
class MonthData:
    month_key: str
    lines: list[str]


@dataclass(frozen=True)
class ParseResult:
    month_key: str
    records: list[CrimeRecord]
    malformed: int

    @property
    def produced(self) -> int:
        return len(self.records)


@dataclass
class ScrapeRun:
    run_id: str
    target_month: str
    postcode_district: str
    started_at: datetime
    status: str = RUN_RUNNING
    completed_at: datetime | None = None
    records_found: int = 0
    records_written: int = 0
    records_malformed: int = 0
    error_message: str | None = None


@dataclass(frozen=True)
class ResolvedAddress:
    address: str
    latitude: float
    longitude: float


@dataclass(frozen=True)
class CategoryCount:
    category: str
    category_name: str
    total: int
    recent: int


@dataclass(frozen=True)
class MonthlyCount:
    crime_month: str
    total: int


@dataclass(frozen=True)
class CrimeSummary:
    address: str
    latitude: float
    longitude: float
    radius_m: float
    lookback_months: int
    total_crimes: int
    by_category: list[CategoryCount] = field(default_factory=list)
    monthly_trend: list[MonthlyCount] = field(default_factory=list)


@dataclass(frozen=True)
class Hotspot:
    street_name: str
    latitude: float
    longitude: float
    total_crimes: int
    crime_types: list[str]
    last_seen: date | None
