"""
Selectors: database *read* functions.

Following the HackSoft Django Styleguide: selectors never mutate data,
they only query and return typed records or model instances.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Iterable, TypedDict

from django.db.models import (
    Avg,
    Count,
    ExpressionWrapper,
    F,
    FloatField,
    Max,
    Min,
    Q,
    QuerySet,
    Value,
)
from django.db.models.functions import ASin, Cos, Least, Power, Radians, Sin, Sqrt

from prices.constants import (
    CROWD_REPORT_SAMPLE_CAP,
    EARTH_RADIUS_KM,
    PRICE_HISTORY_ROW_CAP,
    REGIONAL_SUMMARY_ROW_CAP,
)
from prices.logic import CrowdAggregate, OfficialPrice
from prices.models import CrowdReport, Price, PriceHistory, PriceSource, Station


class HistoryEntry(TypedDict):
    fuel_type: str
    schedule: str
    price: float
    valid_from: datetime
    source: str
    is_validated: bool


class CrowdReportEntry(TypedDict):
    id: int
    fuel_type: str
    schedule: str
    price: float
    notes: str
    created_at: datetime
    user_id: int | None


class RegionalSummaryRow(TypedDict):
    province: str
    locality: str
    company: str
    fuel_type: str
    station_count: int
    average_price: float


# ---------------------------------------------------------------------------
# Distance
# ---------------------------------------------------------------------------


def haversine_km(
    *,
    lat: float,
    lon: float,
    lat_field: str = "latitude",
    lon_field: str = "longitude",
) -> ExpressionWrapper:
    """
    Great-circle distance in km from ``(lat, lon)`` to the row's coordinates.

    This is the only distance expression in the codebase: callers annotate it
    once and both filter and order on the annotation.
    """
    lat0 = math.radians(lat)
    lon0 = math.radians(lon)
    row_lat = Radians(F(lat_field))
    row_lon = Radians(F(lon_field))

    half_dlat = Sin((row_lat - Value(lat0)) / Value(2.0))
    half_dlon = Sin((row_lon - Value(lon0)) / Value(2.0))
    a = Power(half_dlat, Value(2.0)) + (
        Value(math.cos(lat0)) * Cos(row_lat) * Power(half_dlon, Value(2.0))
    )
    # Rounding can push ``a`` a hair above 1.0, outside asin's domain.
    return ExpressionWrapper(
        Value(2.0 * EARTH_RADIUS_KM) * ASin(Sqrt(Least(a, Value(1.0)))),
        output_field=FloatField(),
    )


# ---------------------------------------------------------------------------
# Stations
# ---------------------------------------------------------------------------


def _company_filter(company: str) -> Q:
    """Comma-separated OR list, case-insensitive substring per name."""
    query = Q()
    for name in (c.strip() for c in company.split(",")):
        if name:
            query |= Q(company__icontains=name)
    return query


def station_list(
    *,
    center: tuple[float, float] | None = None,
    radius_km: float | None = None,
    company: str | None = None,
    province: str | None = None,
    locality: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Station]:
    """
    Stations matching the filters, one page of them.

    With a ``center`` the rows carry ``distance_km``, are limited to
    ``radius_km`` and come nearest first; without one they come by name.
    """
    qs: QuerySet[Station] = Station.objects.all()

    if company:
        qs = qs.filter(_company_filter(company))
    if province:
        qs = qs.filter(province=province)
    if locality:
        qs = qs.filter(locality=locality)

    if center is not None:
        qs = qs.annotate(distance_km=haversine_km(lat=center[0], lon=center[1]))
        if radius_km is not None:
            qs = qs.filter(distance_km__lte=radius_km)
        qs = qs.order_by("distance_km", "name", "id")
    else:
        qs = qs.order_by("name", "id")

    return list(qs[offset : offset + limit])


def station_get(*, station_id: int) -> Station | None:
    return Station.objects.filter(pk=station_id).first()


# ---------------------------------------------------------------------------
# Prices
# ---------------------------------------------------------------------------


def official_price_list(
    *,
    station_ids: Iterable[int],
    schedule: str | None = None,
    fuel_type: str | None = None,
    price_min: float | None = None,
    price_max: float | None = None,
    cap: int,
) -> list[OfficialPrice]:
    """Current official prices of ``station_ids``, newest validity first."""
    qs = Price.objects.filter(station_id__in=list(station_ids), source=PriceSource.OFFICIAL)
    if schedule:
        qs = qs.filter(schedule=schedule)
    if fuel_type:
        qs = qs.filter(fuel_type=fuel_type)
    if price_min is not None:
        qs = qs.filter(price__gte=price_min)
    if price_max is not None:
        qs = qs.filter(price__lte=price_max)

    rows = qs.order_by("-valid_from", "id").values(
        "station_id",
        "fuel_type",
        "schedule",
        "price",
        "valid_from",
        "reported_at",
        "is_validated",
    )[:cap]
    return [
        OfficialPrice(
            station_id=r["station_id"],
            fuel_type=r["fuel_type"],
            schedule=r["schedule"],
            price=float(r["price"]),
            valid_from=r["valid_from"],
            reported_at=r["reported_at"],
            is_validated=r["is_validated"],
        )
        for r in rows
    ]


def crowd_aggregate_list(
    *,
    station_ids: Iterable[int],
    since: datetime,
    schedule: str | None = None,
    fuel_type: str | None = None,
) -> list[CrowdAggregate]:
    """Crowd reports since ``since`` grouped by (station, fuel type, schedule)."""
    qs = CrowdReport.objects.filter(
        station_id__in=list(station_ids), created_at__gte=since
    )
    if schedule:
        qs = qs.filter(schedule=schedule)
    if fuel_type:
        qs = qs.filter(fuel_type=fuel_type)

    rows = (
        qs.values("station_id", "fuel_type", "schedule")
        .annotate(
            average=Avg("price"),
            report_count=Count("id"),
            min_price=Min("price"),
            max_price=Max("price"),
            last_report_at=Max("created_at"),
        )
        .order_by()
    )
    return [
        CrowdAggregate(
            station_id=r["station_id"],
            fuel_type=r["fuel_type"],
            schedule=r["schedule"],
            average=float(r["average"]),
            count=r["report_count"],
            min_price=float(r["min_price"]),
            max_price=float(r["max_price"]),
            last_report_at=r["last_report_at"],
        )
        for r in rows
    ]


def crowd_report_list(
    *, station_id: int, since: datetime, cap: int = CROWD_REPORT_SAMPLE_CAP
) -> list[CrowdReportEntry]:
    rows = (
        CrowdReport.objects.filter(station_id=station_id, created_at__gte=since)
        .order_by("-created_at", "-id")
        .values("id", "fuel_type", "schedule", "price", "notes", "created_at", "user_id")[:cap]
    )
    return [CrowdReportEntry(**{**r, "price": float(r["price"])}) for r in rows]


def price_history_list(
    *,
    station_id: int,
    fuel_type: str | None = None,
    schedule: str | None = None,
    since: datetime | None = None,
    cap: int = PRICE_HISTORY_ROW_CAP,
) -> list[HistoryEntry]:
    """Append-only price snapshots of one station, newest first."""
    qs = PriceHistory.objects.filter(station_id=station_id)
    if fuel_type:
        qs = qs.filter(fuel_type=fuel_type)
    if schedule:
        qs = qs.filter(schedule=schedule)
    if since is not None:
        qs = qs.filter(valid_from__gte=since)

    rows = qs.order_by("-valid_from", "-id").values(
        "fuel_type", "schedule", "price", "valid_from", "source", "is_validated"
    )[:cap]
    return [HistoryEntry(**{**r, "price": float(r["price"])}) for r in rows]


def cheapest_price_list(
    *,
    fuel_type: str,
    schedule: str | None = None,
    center: tuple[float, float] | None = None,
    radius_km: float | None = None,
    limit: int = 10,
) -> list[Price]:
    """Current prices of one fuel type, cheapest first (then nearest)."""
    qs = Price.objects.select_related("station").filter(fuel_type=fuel_type)
    if schedule:
        qs = qs.filter(schedule=schedule)

    if center is not None:
        qs = qs.annotate(
            distance_km=haversine_km(
                lat=center[0],
                lon=center[1],
                lat_field="station__latitude",
                lon_field="station__longitude",
            )
        )
        if radius_km is not None:
            qs = qs.filter(distance_km__lte=radius_km)
        qs = qs.order_by("price", "distance_km", "id")
    else:
        qs = qs.order_by("price", "station__name", "id")

    return list(qs[:limit])


def regional_summary_list(
    *, province: str | None = None, cap: int = REGIONAL_SUMMARY_ROW_CAP
) -> list[RegionalSummaryRow]:
    """Station count and average price per province, locality, company and fuel type."""
    qs = Price.objects.all()
    if province:
        qs = qs.filter(station__province=province)

    rows = (
        qs.values("station__province", "station__locality", "station__company", "fuel_type")
        .annotate(station_count=Count("station", distinct=True), average_price=Avg("price"))
        .order_by("station__province", "station__locality", "station__company", "fuel_type")
    )[:cap]
    return [
        RegionalSummaryRow(
            province=r["station__province"],
            locality=r["station__locality"],
            company=r["station__company"],
            fuel_type=r["fuel_type"],
            station_count=r["station_count"],
            average_price=float(r["average_price"]),
        )
        for r in rows
    ]
