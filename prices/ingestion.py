"""
Feed normalizer: raw CSV text -> typed station and price candidates.

The feed is read with pandas (RFC4180 quoting, so commas and doubled quotes
inside quoted fields survive). Every column is read as text and coerced
per-column; rows failing a rule are skipped and counted, never fatal.
"""

from __future__ import annotations

import io
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

import pandas as pd

from prices.constants import (
    FEED_COLUMNS,
    NIGHT_MARKER,
    PRODUCT_TO_FUEL_TYPE,
    PROVINCE_TO_REGION,
    REGION_FALLBACK,
    STATION_NAME_FALLBACK,
)
from prices.exceptions import FeedParseError
from prices.models import PriceSource, Schedule

logger = logging.getLogger(__name__)

PRICE_QUANTUM = Decimal("0.001")

# Skip reasons
SKIP_COORDINATES = "invalid_coordinates"
SKIP_DATE = "invalid_date"
SKIP_PRICE = "invalid_price"
SKIP_PRODUCT = "unmapped_product"
SKIP_IDENTITY = "missing_identity"


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass
class StationCandidate:
    """Station attributes as first seen in the feed."""
    external_id: str
    name: str
    company: str
    tax_id: str
    address: str
    locality: str
    province: str
    region: str
    latitude: float
    longitude: float
    source: str = PriceSource.OFFICIAL.value


@dataclass
class PriceCandidate:
    """One normalized official price observation."""
    station_external_id: str
    fuel_type: str
    schedule: str
    price: Decimal
    valid_from: datetime
    source: str = PriceSource.OFFICIAL.value
    is_validated: bool = True


@dataclass
class NormalizedFeed:
    stations: dict[str, StationCandidate] = field(default_factory=dict)
    prices: list[PriceCandidate] = field(default_factory=list)
    rows_read: int = 0
    skipped: Counter = field(default_factory=Counter)

    @property
    def skipped_total(self) -> int:
        return sum(self.skipped.values())


# ---------------------------------------------------------------------------
# Pure functions
# ---------------------------------------------------------------------------

def station_identity(tax_id: str, company_id: str) -> str:
    """Stable identity key of a station: ``"<tax id>-<company id>"``."""
    if not tax_id and not company_id:
        return ""
    return f"{tax_id}-{company_id}"


def map_fuel_type(product: str) -> str | None:
    """Map a feed product name to a canonical fuel type, or ``None``."""
    if not product:
        return None
    return PRODUCT_TO_FUEL_TYPE.get(product.strip().casefold())


def map_schedule(label: str) -> str:
    """Night when the label mentions the night marker, day otherwise."""
    if label and NIGHT_MARKER in label.casefold():
        return Schedule.NIGHT.value
    return Schedule.DAY.value


def map_region(region: str, province: str) -> str:
    if region:
        return region
    return PROVINCE_TO_REGION.get(province, REGION_FALLBACK)


def read_feed(text: str) -> pd.DataFrame:
    """
    Parse CSV text into a string-typed DataFrame.

    Extra columns are kept; missing feed columns are added empty so the rows
    that depend on them get skipped instead of aborting the run. Rows with more
    fields than the header keep their first header-width fields.
    Raises ``FeedParseError`` when the text is not readable as CSV or shares
    no column with the feed schema.
    """
    if not text or not text.strip():
        raise FeedParseError("Feed is empty")
    trimmed = 0

    def trim_long_row(fields: list[str]) -> list[str]:
        nonlocal trimmed
        trimmed += 1
        return fields[:width]

    try:
        width = len(pd.read_csv(io.StringIO(text), nrows=0).columns)
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
            index_col=False,
            engine="python",
            on_bad_lines=trim_long_row,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise FeedParseError(f"Could not parse feed: {exc}") from exc
    if trimmed:
        logger.warning("[FEED] %d rows had more fields than the header, extras dropped", trimmed)

    df.columns = [str(c).strip().strip('"') for c in df.columns]
    missing = [c for c in FEED_COLUMNS if c not in df.columns]
    if len(missing) == len(FEED_COLUMNS):
        raise FeedParseError("Feed header does not match the expected schema")
    if missing:
        logger.warning("[FEED] missing columns, affected rows will be skipped: %s", missing)
        for column in missing:
            df[column] = ""
    return df


def _coerce(df: pd.DataFrame) -> pd.DataFrame:
    """Add typed ``parsed_*`` columns for coordinates, price and validity date."""
    df = df.copy()
    for column in FEED_COLUMNS:
        df[column] = df[column].astype(str).str.strip()
    df["parsed_lat"] = pd.to_numeric(df["latitud"], errors="coerce")
    df["parsed_lon"] = pd.to_numeric(df["longitud"], errors="coerce")
    df["parsed_price"] = pd.to_numeric(df["precio"], errors="coerce")
    df["parsed_valid_from"] = pd.to_datetime(
        df["fecha_vigencia"], errors="coerce", utc=True, format="mixed"
    )
    return df


def _valid_coordinates(lat: float, lon: float) -> bool:
    if pd.isna(lat) or pd.isna(lon):
        return False
    if lat == 0 or lon == 0:
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


def normalize_feed(df: pd.DataFrame, limit: int | None = None) -> NormalizedFeed:
    """
    Turn feed rows into station and price candidates.

    Station attributes come from the first valid row of each station; later
    rows of the same station still contribute price candidates.
    """
    if limit is not None:
        df = df.head(limit)
    df = _coerce(df)

    feed = NormalizedFeed(rows_read=len(df))

    for row in df.itertuples(index=False):
        external_id = station_identity(row.cuit, row.idempresa)
        if not external_id:
            feed.skipped[SKIP_IDENTITY] += 1
            continue

        if not _valid_coordinates(row.parsed_lat, row.parsed_lon):
            feed.skipped[SKIP_COORDINATES] += 1
            logger.debug("[FEED] invalid coordinates for %s", external_id)
            continue

        fuel_type = map_fuel_type(row.producto)
        if fuel_type is None:
            feed.skipped[SKIP_PRODUCT] += 1
            logger.warning("[FEED] unknown product %r, row skipped", row.producto)
            continue

        if pd.isna(row.parsed_valid_from):
            feed.skipped[SKIP_DATE] += 1
            logger.warning("[FEED] invalid date %r, row skipped", row.fecha_vigencia)
            continue

        if pd.isna(row.parsed_price) or row.parsed_price <= 0:
            feed.skipped[SKIP_PRICE] += 1
            logger.warning("[FEED] invalid price %r, row skipped", row.precio)
            continue

        if external_id not in feed.stations:
            company = row.empresabandera or row.empresa
            feed.stations[external_id] = StationCandidate(
                external_id=external_id,
                name=company or STATION_NAME_FALLBACK,
                company=company,
                tax_id=row.cuit,
                address=row.direccion,
                locality=row.localidad,
                province=row.provincia,
                region=map_region(row.region, row.provincia),
                latitude=float(row.parsed_lat),
                longitude=float(row.parsed_lon),
            )

        feed.prices.append(
            PriceCandidate(
                station_external_id=external_id,
                fuel_type=fuel_type,
                schedule=map_schedule(row.tipohorario),
                price=Decimal(str(row.parsed_price)).quantize(PRICE_QUANTUM),
                valid_from=row.parsed_valid_from.to_pydatetime(),
            )
        )

    logger.info(
        "[FEED] normalized %d rows -> %d stations, %d prices (%d skipped: %s)",
        feed.rows_read,
        len(feed.stations),
        len(feed.prices),
        feed.skipped_total,
        dict(feed.skipped),
    )
    return feed


def parse_feed(text: str, limit: int | None = None) -> NormalizedFeed:
    """Read and normalize feed text in one step."""
    return normalize_feed(read_feed(text), limit=limit)
