"""
Price consolidation rules: pure functions, no ORM access.

Keys: every composite price key is built by ``price_key`` so the insert path,
the lookup path and the crowd-aggregate join can never drift apart.
Consolidation: official prices older than the staleness threshold are shown
at the crowd average when recent crowd reports corroborate them; crowd-only
(station, fuel type) pairs surface as synthesized, unvalidated entries.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import (
    Any,
    Callable,
    Hashable,
    Iterable,
    Iterator,
    Sequence,
    TypedDict,
    TypeVar,
)

from prices.constants import COORD_EPSILON, CROWD_MERGE_EPSILON, PRICE_EPSILON
from prices.models import PriceSource, Schedule

T = TypeVar("T")

PriceKey = tuple[Hashable, str, str, str]

SECONDS_PER_DAY = 86400.0


class OfficialPrice(TypedDict):
    """A current official price row as read from the store."""

    station_id: int
    fuel_type: str
    schedule: str
    price: float
    valid_from: datetime
    reported_at: datetime | None
    is_validated: bool


class CrowdAggregate(TypedDict):
    """Crowd reports for one (station, fuel type, schedule) inside the window."""

    station_id: int
    fuel_type: str
    schedule: str
    average: float
    count: int
    min_price: float
    max_price: float
    last_report_at: datetime


class PriceEntry(TypedDict):
    """One consolidated price line returned to callers."""

    fuel_type: str
    schedule: str
    price: float
    source: str
    is_validated: bool
    valid_from: datetime | None
    reported_at: datetime | None
    age_days: float | None
    adjusted_price: float
    adjusted_source: str
    using_crowd_price: bool
    crowd: CrowdAggregate | None


class CrowdSummaryEntry(TypedDict):
    """Crowd summary line for the detail view (one per fuel type and schedule)."""

    fuel_type: str
    schedule: str | None
    merged: bool
    average: float
    count: int
    min_price: float
    max_price: float
    last_report_at: datetime


# ---------------------------------------------------------------------------
# Keys and tolerances
# ---------------------------------------------------------------------------


def price_key(station: Hashable, fuel_type: str, schedule: str, source: str) -> PriceKey:
    """Composite key of a current price row: (station, fuel type, schedule, source)."""
    return (station, str(fuel_type), str(schedule), str(source))


def floats_differ(a, b, epsilon: float = PRICE_EPSILON) -> bool:
    """True when ``a`` and ``b`` are further apart than ``epsilon``."""
    if a is None or b is None:
        return a is not b
    return abs(float(a) - float(b)) > epsilon


def latest_by_key(
    items: Iterable[T],
    *,
    key: Callable[[T], Hashable],
    timestamp: Callable[[T], datetime],
) -> dict[Hashable, T]:
    """
    Collapse ``items`` sharing a key into the one with the latest timestamp.

    Ties go to the item seen last, so feed order breaks them deterministically.
    """
    winners: dict[Hashable, T] = {}
    for item in items:
        k = key(item)
        current = winners.get(k)
        if current is None or timestamp(item) >= timestamp(current):
            winners[k] = item
    return winners


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    size = max(1, size)
    for start in range(0, len(items), size):
        yield items[start : start + size]


def changed_fields(
    current: Any,
    candidate: Any,
    fields: Iterable[str],
    *,
    float_fields: Iterable[str] = (),
    epsilon: float = COORD_EPSILON,
) -> list[str]:
    """
    Names of ``fields`` whose value differs between two objects.

    ``float_fields`` are compared with ``epsilon``; everything else by equality.
    """
    tolerant = set(float_fields)
    changed = []
    for name in fields:
        old, new = getattr(current, name), getattr(candidate, name)
        if name in tolerant:
            if floats_differ(old, new, epsilon):
                changed.append(name)
        elif old != new:
            changed.append(name)
    return changed


def age_in_days(valid_from: datetime | None, now: datetime) -> float | None:
    if valid_from is None:
        return None
    return (now - valid_from).total_seconds() / SECONDS_PER_DAY


def in_price_range(
    value: float, price_min: float | None = None, price_max: float | None = None
) -> bool:
    if price_min is not None and value < price_min:
        return False
    if price_max is not None and value > price_max:
        return False
    return True


# ---------------------------------------------------------------------------
# Consolidation
# ---------------------------------------------------------------------------


def _crowd_index(aggregates: Iterable[CrowdAggregate]) -> dict[PriceKey, CrowdAggregate]:
    return {
        price_key(a["station_id"], a["fuel_type"], a["schedule"], PriceSource.CROWD): a
        for a in aggregates
    }


def official_entry(
    official: OfficialPrice,
    crowd: CrowdAggregate | None,
    *,
    now: datetime,
    stale_after_days: int,
) -> PriceEntry:
    """
    Build the price line for one official price.

    The crowd average replaces the official value only when the official price
    is older than ``stale_after_days`` and a crowd aggregate exists for the
    same (station, fuel type, schedule).
    """
    age = age_in_days(official["valid_from"], now)
    is_stale = age is not None and age > stale_after_days
    using_crowd = bool(is_stale and crowd is not None)

    return PriceEntry(
        fuel_type=official["fuel_type"],
        schedule=official["schedule"],
        price=official["price"],
        source=PriceSource.OFFICIAL.value,
        is_validated=official["is_validated"],
        valid_from=official["valid_from"],
        reported_at=official["reported_at"],
        age_days=age,
        adjusted_price=crowd["average"] if using_crowd else official["price"],
        adjusted_source=(
            PriceSource.CROWD.value if using_crowd else PriceSource.OFFICIAL.value
        ),
        using_crowd_price=using_crowd,
        crowd=crowd,
    )


def crowd_only_entry(crowd: CrowdAggregate) -> PriceEntry:
    """Synthesize an unvalidated entry for a fuel type with no official price."""
    return PriceEntry(
        fuel_type=crowd["fuel_type"],
        schedule=crowd["schedule"],
        price=crowd["average"],
        source=PriceSource.CROWD.value,
        is_validated=False,
        valid_from=crowd["last_report_at"],
        reported_at=crowd["last_report_at"],
        age_days=None,
        adjusted_price=crowd["average"],
        adjusted_source=PriceSource.CROWD.value,
        using_crowd_price=True,
        crowd=crowd,
    )


def consolidate_prices(
    *,
    official_prices: Iterable[OfficialPrice],
    crowd_aggregates: Iterable[CrowdAggregate],
    now: datetime,
    stale_after_days: int,
    price_min: float | None = None,
    price_max: float | None = None,
) -> dict[int, list[PriceEntry]]:
    """
    Merge official prices with crowd aggregates, grouped by station id.

    ``official_prices`` must be ordered newest first; only the first row per
    (station, fuel type, schedule) is kept. Crowd aggregates whose
    (station, fuel type) has no official row become crowd-only entries, subject
    to the same price range as the official rows.
    """
    crowd_by_key = _crowd_index(crowd_aggregates)
    by_station: dict[int, list[PriceEntry]] = defaultdict(list)

    seen: set[PriceKey] = set()
    official_pairs: set[tuple[int, str]] = set()
    for official in official_prices:
        key = price_key(
            official["station_id"],
            official["fuel_type"],
            official["schedule"],
            PriceSource.OFFICIAL,
        )
        if key in seen:
            continue
        seen.add(key)
        official_pairs.add((official["station_id"], official["fuel_type"]))

        crowd_key = price_key(
            official["station_id"],
            official["fuel_type"],
            official["schedule"],
            PriceSource.CROWD,
        )
        by_station[official["station_id"]].append(
            official_entry(
                official,
                crowd_by_key.get(crowd_key),
                now=now,
                stale_after_days=stale_after_days,
            )
        )

    for crowd in crowd_by_key.values():
        if (crowd["station_id"], crowd["fuel_type"]) in official_pairs:
            continue
        if not in_price_range(crowd["average"], price_min, price_max):
            continue
        by_station[crowd["station_id"]].append(crowd_only_entry(crowd))

    for entries in by_station.values():
        entries.sort(key=lambda e: (e["fuel_type"], e["schedule"]))

    return dict(by_station)


# ---------------------------------------------------------------------------
# Same-price merge (detail view)
# ---------------------------------------------------------------------------


def _summary_entry(aggregate: CrowdAggregate) -> CrowdSummaryEntry:
    return CrowdSummaryEntry(
        fuel_type=aggregate["fuel_type"],
        schedule=aggregate["schedule"],
        merged=False,
        average=aggregate["average"],
        count=aggregate["count"],
        min_price=aggregate["min_price"],
        max_price=aggregate["max_price"],
        last_report_at=aggregate["last_report_at"],
    )


def merge_schedules(
    day: CrowdAggregate | None,
    night: CrowdAggregate | None,
    epsilon: float = CROWD_MERGE_EPSILON,
) -> list[CrowdSummaryEntry]:
    """
    Collapse day and night aggregates of one fuel type when their averages match.

    The merged average is weighted by report count. When the averages differ
    (or only one schedule has reports) each schedule is returned on its own.
    """
    present = [a for a in (day, night) if a is not None]
    if len(present) < 2 or floats_differ(day["average"], night["average"], epsilon):
        return [_summary_entry(a) for a in present]

    total = day["count"] + night["count"]
    weighted = (day["average"] * day["count"] + night["average"] * night["count"]) / total
    return [
        CrowdSummaryEntry(
            fuel_type=day["fuel_type"],
            schedule=None,
            merged=True,
            average=weighted,
            count=total,
            min_price=min(day["min_price"], night["min_price"]),
            max_price=max(day["max_price"], night["max_price"]),
            last_report_at=max(day["last_report_at"], night["last_report_at"]),
        )
    ]


def crowd_summary(aggregates: Iterable[CrowdAggregate]) -> list[CrowdSummaryEntry]:
    """Per-fuel-type crowd summary for one station, merging equal schedules."""
    by_fuel: dict[str, dict[str, CrowdAggregate]] = defaultdict(dict)
    for aggregate in aggregates:
        by_fuel[aggregate["fuel_type"]][aggregate["schedule"]] = aggregate

    summary: list[CrowdSummaryEntry] = []
    for fuel_type in sorted(by_fuel):
        schedules = by_fuel[fuel_type]
        summary.extend(
            merge_schedules(schedules.get(Schedule.DAY), schedules.get(Schedule.NIGHT))
        )
    return summary
