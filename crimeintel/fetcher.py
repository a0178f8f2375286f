"""
Archive fetcher for the data.police.uk bulk download.

The latest archive holds every published month in its own folder:

    2023-01/2023-01-northern-ireland-street.csv
    2023-02/2023-02-northern-ireland-street.csv
    ...

The response body is unzipped as it arrives. Only entries ending in the
configured region suffix are decoded; every other entry is drained unread, so
at most one entry's lines are held in memory while the stream is consumed.
"""

from datetime import UTC, datetime
import logging
import re
import zlib

import requests
from stream_unzip import UnzipError, stream_unzip

from crimeintel.config import Settings
from crimeintel.errors import ExtractionError, TransferError
from crimeintel.geo import month_key, months_before, trailing_month_keys
from crimeintel.retry import RetryExhaustedError, rate_limited_get
from crimeintel.schemas import MonthData


logger = logging.getLogger(__name__)

MONTH_KEY_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
STREAM_CHUNK_BYTES = 65536
# Months the source is assumed not to have published yet when metadata is unavailable.
PUBLICATION_LAG_MONTHS = 2


def is_month_key(value: str) -> bool:
    return bool(MONTH_KEY_PATTERN.match(value))


class ArchiveFetcher:
    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        self.settings = settings
        self.session = session or requests.Session()

    def fetch_all_months(self) -> list[MonthData]:
        url = self.settings.archive_url
        logger.info("downloading archive", extra={"url": url})

        try:
            response = self.session.get(
                url,
                stream=True,
                timeout=(self.settings.http_connect_timeout_seconds, self.settings.archive_read_timeout_seconds),
            )
        except requests.RequestException as exc:
            raise TransferError(f"archive download failed: {exc}") from exc

        try:
            if response.status_code != 200:
                raise TransferError(f"archive download failed: HTTP {response.status_code}")
            months = self._extract_months(response.iter_content(chunk_size=STREAM_CHUNK_BYTES))
        finally:
            response.close()

        months.sort(key=lambda month: month.month_key)
        logger.info(
            "archive extraction complete",
            extra={
                "months": len(months),
                "first_month": months[0].month_key if months else None,
                "last_month": months[-1].month_key if months else None,
            },
        )
        return months

    def _extract_months(self, chunks) -> list[MonthData]:
        suffix = self.settings.archive_file_suffix
        months: list[MonthData] = []
        matched_entries = 0

        try:
            for raw_name, _size, entry_chunks in stream_unzip(chunks):
                name = raw_name.decode("utf-8", errors="replace")
                if name.endswith("/") or not name.endswith(suffix):
                    # stream-unzip requires each entry to be consumed before the next one.
                    for _ in entry_chunks:
                        pass
                    continue

                matched_entries += 1
                payload = b"".join(entry_chunks)
                key = name.rsplit("/", 1)[-1][: -len(suffix)]
                if not is_month_key(key):
                    logger.warning("skipping entry with unexpected month folder", extra={"entry": name})
                    continue

                lines = [line for line in payload.decode("utf-8-sig", errors="replace").splitlines() if line.strip()]
                if not lines:
                    logger.info("entry has no lines", extra={"entry": name})
                    continue

                logger.info("extracted entry", extra={"entry": name, "month_key": key, "lines": len(lines)})
                months.append(MonthData(month_key=key, lines=lines))
        except (UnzipError, zlib.error) as exc:
            raise ExtractionError(f"archive is corrupt: {exc}") from exc
        except requests.RequestException as exc:
            raise TransferError(f"archive stream interrupted: {exc}") from exc

        if matched_entries == 0:
            raise ExtractionError(f"archive holds no entries ending in '{suffix}'")
        return months

    def fetch_available_months(self) -> list[str]:
        """
        Months the live API currently publishes, ascending.

        This is advisory: any failure falls back to a window that stops
        PUBLICATION_LAG_MONTHS before the current month.
        """
        url = f"{self.settings.police_api_url.rstrip('/')}/crimes-street-dates"
        try:
            response = rate_limited_get(
                self.session,
                url,
                timeout=(self.settings.http_connect_timeout_seconds, self.settings.http_read_timeout_seconds),
                delay_seconds=self.settings.rate_limit_delay_seconds,
                max_retries=self.settings.max_http_retries,
                backoff_seconds=self.settings.retry_backoff_seconds,
            )
            if response.status_code != 200:
                raise TransferError(f"available months lookup failed: HTTP {response.status_code}")
            payload = response.json()
            if not isinstance(payload, list):
                raise ValueError(f"unexpected months payload: {type(payload).__name__}")
            months = sorted(
                entry["date"]
                for entry in payload
                if isinstance(entry, dict) and is_month_key(str(entry.get("date", "")))
            )
            if not months:
                raise ValueError("no months listed")
        except (RetryExhaustedError, TransferError, requests.RequestException, ValueError) as exc:
            months = self._fallback_months()
            logger.warning(
                "could not read available months, using fallback window",
                extra={"error": str(exc), "latest_month": months[-1]},
            )
            return months

        logger.info("available months", extra={"first_month": months[0], "last_month": months[-1]})
        return months

    def latest_available_month(self) -> str:
        return self.fetch_available_months()[-1]

    def _fallback_months(self) -> list[str]:
        today = datetime.now(UTC).date()
        latest = month_key(months_before(today.replace(day=1), PUBLICATION_LAG_MONTHS))
        return trailing_month_keys(latest, max(1, self.settings.backfill_months))
