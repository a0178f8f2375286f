"""
Great-circle distance and calendar helpers shared by the SQL function and the query layer.
"""

from datetime import date
import calendar
import math


EARTH_RADIUS_M = 6371008.8


def great_circle_m(lat1: float | None, lon1: float | None, lat2: float | None, lon2: float | None) -> float | None:
    """
    Haversine distance between two points in metres.

    Returns None when any coordinate is missing so SQL comparisons on the
    result evaluate to NULL instead of raising inside the database driver.
    """
    if lat1 is None or lon1 is None or lat2 is None or lon2 is None:
        return None

    lat1_r = math.radians(lat1)
    lat2_r = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def months_before(day: date, months: int) -> date:
    """Same calendar day `months` earlier, clamped to the end of shorter months."""
    index = day.year * 12 + (day.month - 1) - months
    year, month_zero = divmod(index, 12)
    month = month_zero + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def trailing_month_keys(end_key: str, count: int) -> list[str]:
    """`count` month keys ending at (and including) `end_key`, ascending."""
    year, month = (int(part) for part in end_key.split("-"))
    end = date(year, month, 1)
    return [month_key(months_before(end, offset)) for offset in range(count - 1, -1, -1)]
