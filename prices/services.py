"""
Services: business logic and orchestration.

Following the HackSoft Django Styleguide:
  - Services encapsulate write / business logic
  - Keyword-only args for the public interface
  - Type hints everywhere
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Iterable

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import Q
from django.utils import timezone

from prices.cache import TaggedCache, get_consolidation_cache, invalidate_stations, station_tag
from prices.constants import DETAIL_HISTORY_ROW_CAP, PRICE_EPSILON
from prices.ingestion import PriceCandidate, StationCandidate, parse_feed
from prices.logic import (
    PriceEntry,
    PriceKey,
    changed_fields,
    chunked,
    consolidate_prices,
    crowd_summary,
    floats_differ,
    latest_by_key,
    price_key,
)
from prices.models import Price, PriceHistory, PriceSource, Schedule, Station
from prices.selectors import (
    HistoryEntry,
    cheapest_price_list,
    crowd_aggregate_list,
    crowd_report_list,
    official_price_list,
    price_history_list,
    station_get,
    station_list,
)

logger = logging.getLogger(__name__)

STATION_FIELDS = (
    "name",
    "company",
    "tax_id",
    "address",
    "locality",
    "province",
    "region",
    "latitude",
    "longitude",
    "source",
)
COORDINATE_FIELDS = ("latitude", "longitude")


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass
class UpsertResult:
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    history_written: int = 0
    changed_station_ids: set[int] = field(default_factory=set)

    @property
    def written(self) -> int:
        return self.inserted + self.updated


@dataclass
class SyncReport:
    """Outcome of one feed sync run."""

    rows_read: int = 0
    skipped: dict[str, int] = field(default_factory=dict)
    stations: UpsertResult = field(default_factory=UpsertResult)
    prices: UpsertResult = field(default_factory=UpsertResult)
    price_candidates: int = 0
    replaced: int = 0
    dry_run: bool = False
    station_samples: list[StationCandidate] = field(default_factory=list)
    price_samples: list[PriceCandidate] = field(default_factory=list)

    @property
    def skipped_total(self) -> int:
        return sum(self.skipped.values())


# ---------------------------------------------------------------------------
# Station upsert
# ---------------------------------------------------------------------------


def station_upsert(
    *,
    candidates: Iterable[StationCandidate],
    chunk_size: int,
    dry_run: bool = False,
) -> tuple[UpsertResult, dict[str, int]]:
    """
    Converge station candidates into ``Station`` rows.

    Returns the counters and an ``external_id -> pk`` map of every candidate
    station that exists after the run (new stations are missing from the map
    in dry-run mode).
    """
    candidates = list(candidates)
    result = UpsertResult()

    existing = {
        s.external_id: s
        for s in Station.objects.filter(external_id__in=[c.external_id for c in candidates])
    }

    now = timezone.now()
    to_insert: list[Station] = []
    to_update: list[Station] = []
    for candidate in candidates:
        station = existing.get(candidate.external_id)
        if station is None:
            to_insert.append(
                Station(
                    external_id=candidate.external_id,
                    **{name: getattr(candidate, name) for name in STATION_FIELDS},
                )
            )
            continue

        changed = changed_fields(
            station, candidate, STATION_FIELDS, float_fields=COORDINATE_FIELDS
        )
        if not changed:
            result.unchanged += 1
            continue
        for name in changed:
            setattr(station, name, getattr(candidate, name))
        station.updated_at = now
        to_update.append(station)

    station_ids = {external_id: s.pk for external_id, s in existing.items()}

    if dry_run:
        result.inserted = len(to_insert)
        result.updated = len(to_update)
        return result, station_ids

    for chunk in chunked(to_insert, chunk_size):
        try:
            with transaction.atomic():
                Station.objects.bulk_create(chunk)
        except DatabaseError:
            logger.exception("[SYNC] station insert chunk of %d rows failed", len(chunk))
            result.failed += len(chunk)
        else:
            result.inserted += len(chunk)

    for chunk in chunked(to_update, chunk_size):
        try:
            with transaction.atomic():
                Station.objects.bulk_update(chunk, [*STATION_FIELDS, "updated_at"])
        except DatabaseError:
            logger.exception("[SYNC] station update chunk of %d rows failed", len(chunk))
            result.failed += len(chunk)
        else:
            result.updated += len(chunk)

    if to_insert:
        station_ids.update(
            Station.objects.filter(
                external_id__in=[s.external_id for s in to_insert]
            ).values_list("external_id", "id")
        )

    logger.info(
        "[SYNC] stations: %d inserted, %d updated, %d unchanged, %d failed",
        result.inserted,
        result.updated,
        result.unchanged,
        result.failed,
    )
    return result, station_ids


# ---------------------------------------------------------------------------
# Price upsert
# ---------------------------------------------------------------------------


def _current_price_map(
    station_ids: Iterable[int], sources: Iterable[str]
) -> dict[PriceKey, Price]:
    rows = Price.objects.filter(
        station_id__in=list(station_ids), source__in=list(sources)
    ).only("id", "station_id", "fuel_type", "schedule", "source", "price")
    return {price_key(p.station_id, p.fuel_type, p.schedule, p.source): p for p in rows}


def _conditional_price_update(pk: int, candidate: PriceCandidate, now: datetime) -> bool:
    """Write ``candidate`` over row ``pk`` only if its stored price is outside the epsilon band."""
    band = Decimal(str(PRICE_EPSILON))
    touched = (
        Price.objects.filter(pk=pk)
        .filter(Q(price__lt=candidate.price - band) | Q(price__gt=candidate.price + band))
        .update(
            price=candidate.price,
            valid_from=candidate.valid_from,
            is_validated=candidate.is_validated,
            reported_at=now,
            updated_at=now,
        )
    )
    return touched > 0


def price_upsert(
    *,
    candidates: Iterable[PriceCandidate],
    station_ids: dict[str, int],
    chunk_size: int,
    dry_run: bool = False,
    replace: bool = False,
) -> UpsertResult:
    """
    Converge price candidates into current ``Price`` rows.

    Candidates sharing a (station, fuel type, schedule, source) key collapse
    to the one with the latest validity before anything is written. Changed
    rows get a ``PriceHistory`` snapshot of their new state. With ``replace``
    the existing rows are assumed gone and every candidate is an insert.
    """
    candidates = list(candidates)
    result = UpsertResult()

    def station_ref(candidate: PriceCandidate):
        return station_ids.get(candidate.station_external_id, candidate.station_external_id)

    winners = latest_by_key(
        candidates,
        key=lambda c: price_key(station_ref(c), c.fuel_type, c.schedule, c.source),
        timestamp=lambda c: c.valid_from,
    )
    if len(winners) < len(candidates):
        logger.debug(
            "[SYNC] collapsed %d duplicate price candidates", len(candidates) - len(winners)
        )

    existing: dict[PriceKey, Price] = {}
    if not replace:
        known = {station_ids.get(c.station_external_id) for c in winners.values()}
        known.discard(None)
        existing = _current_price_map(known, {c.source for c in winners.values()})

    to_insert: list[tuple[int | None, PriceCandidate]] = []
    to_update: list[tuple[Price, PriceCandidate]] = []
    orphaned = 0
    for key, candidate in winners.items():
        current = existing.get(key)
        if current is None:
            station_id = station_ids.get(candidate.station_external_id)
            if station_id is None and not dry_run:
                orphaned += 1
                continue
            to_insert.append((station_id, candidate))
        elif floats_differ(current.price, candidate.price):
            to_update.append((current, candidate))
        else:
            result.unchanged += 1

    if orphaned:
        logger.warning("[SYNC] %d prices skipped: their station was not written", orphaned)
        result.failed += orphaned

    if dry_run:
        result.inserted = len(to_insert)
        result.updated = len(to_update)
        return result

    now = timezone.now()

    for chunk in chunked(to_insert, chunk_size):
        rows = [
            Price(
                station_id=station_id,
                fuel_type=c.fuel_type,
                schedule=c.schedule,
                price=c.price,
                valid_from=c.valid_from,
                source=c.source,
                is_validated=c.is_validated,
                reported_at=now,
            )
            for station_id, c in chunk
        ]
        try:
            with transaction.atomic():
                Price.objects.bulk_create(rows)
        except DatabaseError:
            logger.exception("[SYNC] price insert chunk of %d rows failed", len(rows))
            result.failed += len(rows)
        else:
            result.inserted += len(rows)
            result.changed_station_ids.update(r.station_id for r in rows)

    for chunk in chunked(to_update, chunk_size):
        history: list[PriceHistory] = []
        try:
            with transaction.atomic():
                for current, c in chunk:
                    if _conditional_price_update(current.pk, c, now):
                        history.append(
                            PriceHistory(
                                station_id=current.station_id,
                                fuel_type=c.fuel_type,
                                schedule=c.schedule,
                                price=c.price,
                                valid_from=c.valid_from,
                                source=c.source,
                                is_validated=c.is_validated,
                                created_at=now,
                            )
                        )
                PriceHistory.objects.bulk_create(history)
        except DatabaseError:
            logger.exception("[SYNC] price update chunk of %d rows failed", len(chunk))
            result.failed += len(chunk)
        else:
            result.updated += len(history)
            result.unchanged += len(chunk) - len(history)
            result.history_written += len(history)
            result.changed_station_ids.update(h.station_id for h in history)

    logger.info(
        "[SYNC] prices: %d inserted, %d updated, %d unchanged, %d failed, %d history rows",
        result.inserted,
        result.updated,
        result.unchanged,
        result.failed,
        result.history_written,
    )
    return result


def official_prices_clear(*, dry_run: bool = False) -> tuple[int, set[int]]:
    """Delete every official price. Returns (rows, affected station ids)."""
    qs = Price.objects.filter(source=PriceSource.OFFICIAL)
    station_ids = set(qs.values_list("station_id", flat=True).distinct())
    if dry_run:
        return qs.count(), station_ids
    with transaction.atomic():
        deleted, _ = qs.delete()
    logger.warning("[SYNC] replace mode: deleted %d official prices", deleted)
    return deleted, station_ids


# ---------------------------------------------------------------------------
# Main sync service
# ---------------------------------------------------------------------------


def feed_sync(
    *,
    text: str,
    limit: int | None = None,
    replace: bool = False,
    dry_run: bool = False,
    chunk_size: int | None = None,
) -> SyncReport:
    """
    Orchestrate: parse -> station upsert -> price upsert -> cache invalidation.

    Raises ``FeedParseError`` if the feed cannot be read at all; row and chunk
    failures are counted in the report instead.
    """
    chunk_size = chunk_size or settings.SYNC_CHUNK_SIZE
    feed = parse_feed(text, limit=limit)

    report = SyncReport(
        rows_read=feed.rows_read,
        skipped=dict(feed.skipped),
        price_candidates=len(feed.prices),
        dry_run=dry_run,
        station_samples=list(feed.stations.values())[:3],
        price_samples=feed.prices[:5],
    )

    report.stations, station_ids = station_upsert(
        candidates=feed.stations.values(), chunk_size=chunk_size, dry_run=dry_run
    )

    cleared_station_ids: set[int] = set()
    if replace:
        report.replaced, cleared_station_ids = official_prices_clear(dry_run=dry_run)

    report.prices = price_upsert(
        candidates=feed.prices,
        station_ids=station_ids,
        chunk_size=chunk_size,
        dry_run=dry_run,
        replace=replace,
    )

    if not dry_run:
        touched = report.prices.changed_station_ids | cleared_station_ids
        if touched:
            invalidate_stations(touched)

    logger.info(
        "[SYNC] done%s: %d rows read, %d skipped, %d stations written, %d prices written",
        " (dry run)" if dry_run else "",
        report.rows_read,
        report.skipped_total,
        report.stations.written,
        report.prices.written,
    )
    return report


# ---------------------------------------------------------------------------
# Consolidation
# ---------------------------------------------------------------------------


def price_consolidation(
    *,
    station_ids: Iterable[int],
    schedule: str | None = Schedule.DAY,
    fuel_type: str | None = None,
    price_min: float | None = None,
    price_max: float | None = None,
    now: datetime | None = None,
    cache: TaggedCache | None = None,
) -> dict[int, list[PriceEntry]]:
    """
    Consolidated price lines per station id.

    Results are cached per (schedule, fuel type, price range, station set) and
    tagged with every station id. When crowd aggregation fails, official prices
    are returned alone and nothing is cached.
    """
    ids = sorted(set(station_ids))
    if not ids:
        return {}

    cache = cache or get_consolidation_cache()
    cache_key = cache.make_key(
        "prices",
        str(schedule) if schedule else None,
        str(fuel_type) if fuel_type else None,
        price_min,
        price_max,
        tuple(ids),
    )
    cached = cache.get(cache_key)
    if cached is not None:
        logger.debug("[SEARCH] consolidation cache hit for %d stations", len(ids))
        return cached

    now = now or timezone.now()
    official = official_price_list(
        station_ids=ids,
        schedule=schedule,
        fuel_type=fuel_type,
        price_min=price_min,
        price_max=price_max,
        cap=settings.OFFICIAL_PRICE_ROW_CAP,
    )

    degraded = False
    try:
        crowd = crowd_aggregate_list(
            station_ids=ids,
            since=now - timedelta(days=settings.CROWD_WINDOW_DAYS),
            schedule=schedule,
            fuel_type=fuel_type,
        )
    except DatabaseError:
        logger.warning(
            "[SEARCH] crowd aggregation failed, serving official prices only", exc_info=True
        )
        crowd = []
        degraded = True

    result = consolidate_prices(
        official_prices=official,
        crowd_aggregates=crowd,
        now=now,
        stale_after_days=settings.STALE_AFTER_DAYS,
        price_min=price_min,
        price_max=price_max,
    )
    if not degraded:
        cache.set(cache_key, result, tags=[station_tag(i) for i in ids])
    return result


# ---------------------------------------------------------------------------
# Query services
# ---------------------------------------------------------------------------


def resolve_radius(radius_km: float | None, default: float) -> float:
    """Caller radius, or ``default`` when omitted, clamped to the configured maximum."""
    if radius_km is None:
        radius_km = default
    return min(float(radius_km), float(settings.SEARCH_MAX_RADIUS_KM))


def _station_payload(station: Station, prices: list[PriceEntry]) -> dict[str, Any]:
    distance = getattr(station, "distance_km", None)
    return {
        "id": station.id,
        "external_id": station.external_id,
        "name": station.name,
        "company": station.company,
        "address": station.address,
        "locality": station.locality,
        "province": station.province,
        "region": station.region,
        "latitude": station.latitude,
        "longitude": station.longitude,
        "source": station.source,
        "distance_km": round(distance, 3) if distance is not None else None,
        "updated_at": station.updated_at,
        "prices": prices,
    }


def station_search(
    *,
    lat: float | None = None,
    lon: float | None = None,
    radius_km: float | None = None,
    company: str | None = None,
    province: str | None = None,
    locality: str | None = None,
    fuel_type: str | None = None,
    schedule: str | None = Schedule.DAY,
    price_min: float | None = None,
    price_max: float | None = None,
    limit: int = 50,
    offset: int = 0,
    cache: TaggedCache | None = None,
) -> dict[str, Any]:
    """
    Orchestrate: geospatial station page -> consolidated prices per station.

    ``total`` is the size of the returned page and ``hasMore`` is true when
    the page is full; no separate count query is issued.
    """
    center = (lat, lon) if lat is not None and lon is not None else None
    radius = resolve_radius(radius_km, settings.SEARCH_DEFAULT_RADIUS_KM) if center else None

    stations = station_list(
        center=center,
        radius_km=radius,
        company=company,
        province=province,
        locality=locality,
        limit=limit,
        offset=offset,
    )
    prices_by_station = price_consolidation(
        station_ids=[s.id for s in stations],
        schedule=schedule,
        fuel_type=fuel_type,
        price_min=price_min,
        price_max=price_max,
        cache=cache,
    )
    results = [_station_payload(s, prices_by_station.get(s.id, [])) for s in stations]

    logger.info(
        "[SEARCH] %d stations (center=%s radius=%s offset=%d)",
        len(results),
        center,
        radius,
        offset,
    )
    return {
        "stations": results,
        "pagination": {
            "limit": limit,
            "offset": offset,
            "total": len(results),
            "hasMore": len(results) == limit,
        },
    }


def station_detail(
    *,
    station_id: int,
    now: datetime | None = None,
    cache: TaggedCache | None = None,
) -> dict[str, Any]:
    """
    Full price view of one station: both schedules, crowd summary, history.

    Raises ``Station.DoesNotExist`` for an unknown id.
    """
    station = station_get(station_id=station_id)
    if station is None:
        raise Station.DoesNotExist(f"Station {station_id} not found.")

    now = now or timezone.now()
    since = now - timedelta(days=settings.CROWD_WINDOW_DAYS)

    prices = price_consolidation(
        station_ids=[station.id], schedule=None, now=now, cache=cache
    ).get(station.id, [])

    try:
        aggregates = crowd_aggregate_list(station_ids=[station.id], since=since)
        reports = crowd_report_list(station_id=station.id, since=since)
    except DatabaseError:
        logger.warning("[SEARCH] crowd summary failed for station %s", station.id, exc_info=True)
        aggregates, reports = [], []

    payload = _station_payload(station, prices)
    payload.update(
        {
            "tax_id": station.tax_id,
            "crowd_summary": crowd_summary(aggregates),
            "crowd_reports": reports,
            "history": price_history_list(station_id=station.id, cap=DETAIL_HISTORY_ROW_CAP),
        }
    )
    return payload


def price_history(
    *,
    station_id: int,
    fuel_type: str | None = None,
    schedule: str | None = None,
    days: int = 30,
    now: datetime | None = None,
) -> list[HistoryEntry]:
    """Snapshots of the last ``days`` days. Raises ``Station.DoesNotExist`` for an unknown id."""
    if station_get(station_id=station_id) is None:
        raise Station.DoesNotExist(f"Station {station_id} not found.")
    now = now or timezone.now()
    return price_history_list(
        station_id=station_id,
        fuel_type=fuel_type,
        schedule=schedule,
        since=now - timedelta(days=days),
    )


def cheapest_fuel_list(
    *,
    fuel_type: str,
    lat: float | None = None,
    lon: float | None = None,
    radius_km: float | None = None,
    schedule: str | None = Schedule.DAY,
    limit: int = 10,
) -> list[dict[str, Any]]:
    """Cheapest current prices of one fuel type, optionally around a point."""
    center = (lat, lon) if lat is not None and lon is not None else None
    radius = resolve_radius(radius_km, settings.CHEAPEST_DEFAULT_RADIUS_KM) if center else None

    rows = cheapest_price_list(
        fuel_type=fuel_type, schedule=schedule, center=center, radius_km=radius, limit=limit
    )
    results = []
    for price in rows:
        distance = getattr(price, "distance_km", None)
        results.append(
            {
                "station_id": price.station_id,
                "station_name": price.station.name,
                "company": price.station.company,
                "address": price.station.address,
                "locality": price.station.locality,
                "province": price.station.province,
                "latitude": price.station.latitude,
                "longitude": price.station.longitude,
                "fuel_type": price.fuel_type,
                "schedule": price.schedule,
                "price": float(price.price),
                "source": price.source,
                "valid_from": price.valid_from,
                "distance_km": round(distance, 3) if distance is not None else None,
            }
        )
    return results
