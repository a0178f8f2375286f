"""
Parses raw PSNI street-crime CSV lines into CrimeRecord objects.

Northern Ireland rows carry no Crime ID column:

    Month, Reported by, Falls within, Longitude, Latitude, Location,
    LSOA code, LSOA name, Crime type, Last outcome category, Context

All rows with usable coordinates are kept; radius filtering happens at
query time.
"""

from datetime import date
import csv
import logging
import math
import re

from crimeintel.db_models import utc_now
from crimeintel.schemas import CrimeRecord, ParseResult


logger = logging.getLogger(__name__)

COL_MONTH = 0
COL_LONGITUDE = 3
COL_LATITUDE = 4
COL_LOCATION = 5
COL_CRIME_TYPE = 8
COL_OUTCOME = 9
MIN_COLUMNS = COL_CRIME_TYPE + 1

FALLBACK_CATEGORY = "other-crime"
ARCHIVE_LOCATION_TYPE = "Force"

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_MONTH = re.compile(r"^(\d{4})-(\d{2})$")


def slugify(name: str | None) -> str:
    if not name:
        return FALLBACK_CATEGORY
    slug = _NON_ALNUM.sub("-", name.lower()).strip("-")
    return slug or FALLBACK_CATEGORY


def humanize(slug: str) -> str:
    """anti-social-behaviour -> Anti Social Behaviour"""
    return " ".join(word[:1].upper() + word[1:] for word in slug.split("-") if word)


def first_of_month(value: str) -> date | None:
    match = _MONTH.match(value)
    if not match:
        return None
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        return None
    return date(year, month, 1)


def _empty_to_none(value: str) -> str | None:
    return value or None


def _parse_coordinate(value: str) -> float | None:
    if not value:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def split_line(line: str) -> list[str]:
    return [field.strip() for field in next(csv.reader([line]))]


def parse_month_lines(lines: list[str], month_key: str, partition_key: str = "NI") -> ParseResult:
    records: list[CrimeRecord] = []
    malformed = 0
    scraped_at = utc_now()
    fallback_date = first_of_month(month_key)

    # Line 0 is the header.
    for line in lines[1:]:
        if not line.strip():
            continue

        try:
            cols = split_line(line)
        except csv.Error:
            malformed += 1
            continue

        if len(cols) < MIN_COLUMNS:
            malformed += 1
            continue

        latitude = _parse_coordinate(cols[COL_LATITUDE])
        longitude = _parse_coordinate(cols[COL_LONGITUDE])
        if latitude is None or longitude is None:
            malformed += 1
            continue

        crime_month = cols[COL_MONTH]
        crime_date = first_of_month(crime_month)
        if crime_date is None:
            crime_month, crime_date = month_key, fallback_date
        if crime_date is None:
            malformed += 1
            continue

        crime_type = cols[COL_CRIME_TYPE]
        category = slugify(crime_type)
        outcome = cols[COL_OUTCOME] if len(cols) > COL_OUTCOME else ""

        records.append(
            CrimeRecord(
                category=category,
                category_name=crime_type or humanize(category),
                crime_month=crime_month,
                crime_date=crime_date,
                postcode_district=partition_key,
                street_name=_empty_to_none(cols[COL_LOCATION]),
                latitude=latitude,
                longitude=longitude,
                location_type=ARCHIVE_LOCATION_TYPE,
                outcome_category=_empty_to_none(outcome),
                scraped_at=scraped_at,
                source_endpoint=f"bulk-csv-archive/{month_key}",
            )
        )

    logger.info(
        "parsed month",
        extra={"month_key": month_key, "records": len(records), "malformed": malformed},
    )
    return ParseResult(month_key=month_key, records=records, malformed=malformed)
