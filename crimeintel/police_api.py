"""
Thin client over the data.police.uk street-level crime API, plus the mapping
from its raw JSON shape to CrimeRecord.

The API documents no rate limit; as a public service it gets a fixed delay
before each call, and 429/503 answers are retried with backoff.
"""

from dataclasses import dataclass
from datetime import datetime
import logging
from urllib.parse import urlencode

import requests

from crimeintel.config import Settings
from crimeintel.db_models import utc_now
from crimeintel.errors import TransferError
from crimeintel.parser import first_of_month, humanize, slugify
from crimeintel.retry import RetryExhaustedError, rate_limited_get
from crimeintel.schemas import CrimeRecord


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PoliceApiCrime:
    category: str | None
    persistent_id: str | None
    id: int | None
    month: str | None
    location_type: str | None
    latitude: str | None
    longitude: str | None
    street_id: int | None
    street_name: str | None
    outcome_category: str | None
    outcome_date: str | None

    @classmethod
    def from_json(cls, payload: dict) -> "PoliceApiCrime":
        location = payload.get("location") or {}
        street = location.get("street") or {}
        outcome = payload.get("outcome_status") or {}
        return cls(
            category=payload.get("category"),
            persistent_id=payload.get("persistent_id"),
            id=payload.get("id"),
            month=payload.get("month"),
            location_type=payload.get("location_type"),
            latitude=location.get("latitude"),
            longitude=location.get("longitude"),
            street_id=street.get("id"),
            street_name=street.get("name"),
            outcome_category=outcome.get("category"),
            outcome_date=outcome.get("date"),
        )


def _to_float(value: str | None) -> float | None:
    if value is None or not str(value).strip():
        return None
    try:
        return float(value)
    except ValueError:
        return None


def map_api_crime(
    raw: PoliceApiCrime,
    partition_key: str,
    source_endpoint: str,
    scraped_at: datetime | None = None,
) -> CrimeRecord | None:
    """Map one API crime to a CrimeRecord, or None when it cannot be stored."""
    crime_date = first_of_month(raw.month or "")
    latitude = _to_float(raw.latitude)
    longitude = _to_float(raw.longitude)
    if crime_date is None or latitude is None or longitude is None:
        return None

    category = slugify(raw.category)
    return CrimeRecord(
        persistent_id=raw.persistent_id or None,
        api_id=raw.id,
        category=category,
        category_name=humanize(category),
        crime_month=raw.month,
        crime_date=crime_date,
        postcode_district=partition_key,
        street_name=raw.street_name or None,
        street_id=raw.street_id,
        latitude=latitude,
        longitude=longitude,
        location_type=raw.location_type,
        outcome_category=raw.outcome_category,
        outcome_date=raw.outcome_date,
        scraped_at=scraped_at or utc_now(),
        source_endpoint=source_endpoint,
    )


class PoliceApiClient:
    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        self.settings = settings
        self.session = session or requests.Session()

    def crimes_near_point_url(self, latitude: float, longitude: float, month_key: str) -> str:
        query = urlencode({"lat": latitude, "lng": longitude, "date": month_key})
        return f"{self.settings.police_api_url.rstrip('/')}/crimes-street/all-crime?{query}"

    def fetch_crimes_near_point(self, latitude: float, longitude: float, month_key: str) -> list[PoliceApiCrime]:
        """Crimes within one mile of a point for one month."""
        return self._fetch(self.crimes_near_point_url(latitude, longitude, month_key))

    def fetch_crimes_in_polygon(self, points: list[tuple[float, float]], month_key: str) -> list[PoliceApiCrime]:
        poly = ":".join(f"{lat},{lng}" for lat, lng in points)
        query = urlencode({"poly": poly, "date": month_key})
        return self._fetch(f"{self.settings.police_api_url.rstrip('/')}/crimes-street/all-crime?{query}")

    def _fetch(self, url: str) -> list[PoliceApiCrime]:
        logger.debug("calling police api", extra={"url": url})
        try:
            response = rate_limited_get(
                self.session,
                url,
                timeout=(self.settings.http_connect_timeout_seconds, self.settings.http_read_timeout_seconds),
                delay_seconds=self.settings.rate_limit_delay_seconds,
                max_retries=self.settings.max_http_retries,
                backoff_seconds=self.settings.retry_backoff_seconds,
                on_attempt_failure=lambda attempt, exc: logger.warning(
                    "police api attempt failed", extra={"attempt": attempt, "error": str(exc)}
                ),
            )
        except RetryExhaustedError as exc:
            raise TransferError(f"police api call failed: {exc}") from exc

        # 404 means no data for that month and place.
        if response.status_code == 404:
            return []
        if response.status_code != 200:
            raise TransferError(f"police api returned HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise TransferError(f"police api returned invalid JSON: {exc}") from exc

        crimes = [PoliceApiCrime.from_json(item) for item in payload or [] if isinstance(item, dict)]
        logger.debug("police api returned crimes", extra={"url": url, "crimes": len(crimes)})
        return crimes
