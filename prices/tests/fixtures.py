"""Builders shared by the test modules."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from prices.models import CrowdReport, Price, PriceSource, Station

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

FEED_HEADER = (
    "indice_tiempo,idempresa,cuit,empresa,direccion,localidad,provincia,region,"
    "idproducto,producto,idtipohorario,tipohorario,precio,fecha_vigencia,"
    "idempresabandera,empresabandera,latitud,longitud,geojson"
)


def feed_row(
    *,
    company_id="1001",
    tax_id="30-11111111-1",
    company="YPF S.A.",
    address="Av. Corrientes 1234",
    locality="CABA",
    province="CAPITAL FEDERAL",
    region="CAPITAL FEDERAL",
    product="Nafta (súper) entre 92 y 95 Ron",
    schedule="Diurno",
    price="850.5",
    valid_from="2024-05-20 10:00:00",
    brand="YPF",
    lat="-34.6037",
    lon="-58.3816",
):
    return (
        f"2024-05,{company_id},{tax_id},\"{company}\",\"{address}\",{locality},{province},"
        f"{region},2,\"{product}\",1,{schedule},{price},{valid_from},1,{brand},{lat},{lon},"
    )


def feed_text(*rows):
    return "\n".join([FEED_HEADER, *rows]) + "\n"


def make_station(external_id="30-1-1", *, name="YPF Centro", lat=-34.6037, lon=-58.3816, **extra):
    defaults = {
        "company": "YPF",
        "tax_id": "30-1",
        "address": "Av. Corrientes 1234",
        "locality": "CABA",
        "province": "CAPITAL FEDERAL",
        "region": "Metropolitana",
    }
    defaults.update(extra)
    return Station.objects.create(
        external_id=external_id, name=name, latitude=lat, longitude=lon, **defaults
    )


def make_price(
    station,
    *,
    fuel_type="regular",
    schedule="day",
    price="800.000",
    age_days=1,
    source=PriceSource.OFFICIAL,
    now=NOW,
):
    return Price.objects.create(
        station=station,
        fuel_type=fuel_type,
        schedule=schedule,
        price=Decimal(price),
        valid_from=now - timedelta(days=age_days),
        source=source,
        is_validated=source == PriceSource.OFFICIAL,
    )


def make_report(station, *, fuel_type="regular", schedule="day", price="900.000", age_days=1, now=NOW):
    return CrowdReport.objects.create(
        station=station,
        fuel_type=fuel_type,
        schedule=schedule,
        price=Decimal(price),
        created_at=now - timedelta(days=age_days),
    )
