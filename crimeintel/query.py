"""
Radius queries over stored crimes.

An address is resolved to a point, then every stored record with coordinates
is compared against it with the database's great_circle_distance() function.
There is no spatial index; a scan of a few hundred thousand rows is fast
enough for this data set.
"""

from datetime import UTC, date, datetime
import logging

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session, sessionmaker

from crimeintel.database import GREAT_CIRCLE_FUNCTION
from crimeintel.db_models import CrimeRow
from crimeintel.geo import months_before
from crimeintel.resolver import AddressResolver
from crimeintel.schemas import CategoryCount, CrimeSummary, Hotspot, MonthlyCount, ResolvedAddress


logger = logging.getLogger(__name__)

HOTSPOT_LIMIT = 20
HOTSPOT_LOOKBACK_MONTHS = 12


class CrimeQueryEngine:
    def __init__(self, session_factory: sessionmaker[Session], resolver: AddressResolver) -> None:
        self.session_factory = session_factory
        self.resolver = resolver

    def summarize(
        self,
        address: str,
        radius_m: float,
        lookback_months: int,
        *,
        today: date | None = None,
    ) -> CrimeSummary:
        point = self.resolver.resolve(address)
        cutoff = months_before(today or _today(), lookback_months)
        logger.info(
            "crime summary",
            extra={
                "address": point.address,
                "latitude": point.latitude,
                "longitude": point.longitude,
                "radius_m": radius_m,
                "lookback_months": lookback_months,
            },
        )

        filters = _radius_filters(point, radius_m, cutoff)
        # "recent" currently shares the lookback window with "total".
        recent = func.sum(case((CrimeRow.crime_date >= cutoff, 1), else_=0))
        total = func.count()
        category_stmt = (
            select(CrimeRow.category, CrimeRow.category_name, total.label("total"), recent.label("recent"))
            .where(*filters)
            .group_by(CrimeRow.category, CrimeRow.category_name)
            .order_by(total.desc(), CrimeRow.category)
        )
        trend_stmt = (
            select(CrimeRow.crime_month, func.count().label("total"))
            .where(*filters)
            .group_by(CrimeRow.crime_month)
            .order_by(CrimeRow.crime_month.asc())
        )

        with self.session_factory() as db:
            by_category = [
                CategoryCount(
                    category=row.category,
                    category_name=row.category_name,
                    total=int(row.total),
                    recent=int(row.recent or 0),
                )
                for row in db.execute(category_stmt)
            ]
            trend = [MonthlyCount(crime_month=row.crime_month, total=int(row.total)) for row in db.execute(trend_stmt)]

        return CrimeSummary(
            address=point.address,
            latitude=point.latitude,
            longitude=point.longitude,
            radius_m=radius_m,
            lookback_months=lookback_months,
            total_crimes=sum(item.total for item in by_category),
            by_category=by_category,
            monthly_trend=trend,
        )

    def hotspots(self, address: str, radius_m: float, *, today: date | None = None) -> list[Hotspot]:
        point = self.resolver.resolve(address)
        cutoff = months_before(today or _today(), HOTSPOT_LOOKBACK_MONTHS)

        stmt = (
            select(
                CrimeRow.street_name,
                CrimeRow.latitude,
                CrimeRow.longitude,
                CrimeRow.category_name,
                func.count().label("total"),
                func.max(CrimeRow.crime_date).label("last_seen"),
            )
            .where(CrimeRow.street_name.is_not(None), *_radius_filters(point, radius_m, cutoff))
            .group_by(CrimeRow.street_name, CrimeRow.latitude, CrimeRow.longitude, CrimeRow.category_name)
        )

        groups: dict[tuple[str, float, float], dict] = {}
        with self.session_factory() as db:
            for row in db.execute(stmt):
                key = (row.street_name, row.latitude, row.longitude)
                group = groups.setdefault(key, {"total": 0, "types": set(), "last_seen": None})
                group["total"] += int(row.total)
                group["types"].add(row.category_name)
                if row.last_seen is not None and (group["last_seen"] is None or row.last_seen > group["last_seen"]):
                    group["last_seen"] = row.last_seen

        ranked = sorted(groups.items(), key=lambda item: (-item[1]["total"], item[0][0]))
        return [
            Hotspot(
                street_name=street,
                latitude=latitude,
                longitude=longitude,
                total_crimes=group["total"],
                crime_types=sorted(group["types"]),
                last_seen=group["last_seen"],
            )
            for (street, latitude, longitude), group in ranked[:HOTSPOT_LIMIT]
        ]


def _today() -> date:
    return datetime.now(UTC).date()


def _radius_filters(point: ResolvedAddress, radius_m: float, cutoff: date) -> list:
    distance = getattr(func, GREAT_CIRCLE_FUNCTION)(
        CrimeRow.latitude, CrimeRow.longitude, point.latitude, point.longitude
    )
    return [
        CrimeRow.latitude.is_not(None),
        CrimeRow.longitude.is_not(None),
        CrimeRow.crime_date >= cutoff,
        distance <= radius_m,
    ]
