from datetime import datetime, timezone
from decimal import Decimal

from django.test import SimpleTestCase

from prices.exceptions import FeedParseError
from prices.ingestion import (
    SKIP_COORDINATES,
    SKIP_DATE,
    SKIP_IDENTITY,
    SKIP_PRICE,
    SKIP_PRODUCT,
    map_fuel_type,
    map_region,
    map_schedule,
    parse_feed,
    read_feed,
    station_identity,
)
from prices.tests.fixtures import feed_row, feed_text


class MappingTestCase(SimpleTestCase):
    def test_product_mapping_is_case_insensitive(self):
        self.assertEqual(map_fuel_type("GNC"), "cng")
        self.assertEqual(map_fuel_type("gas oil grado 3"), "premium_diesel")
        self.assertEqual(map_fuel_type("  Nafta (premium) de más de 95 Ron "), "premium")

    def test_unknown_product(self):
        self.assertIsNone(map_fuel_type("Kerosene"))
        self.assertIsNone(map_fuel_type(""))

    def test_schedule_night_marker(self):
        self.assertEqual(map_schedule("Nocturno"), "night")
        self.assertEqual(map_schedule("HORARIO NOCTURNO"), "night")
        self.assertEqual(map_schedule("Diurno"), "day")
        self.assertEqual(map_schedule(""), "day")

    def test_region_fallbacks(self):
        self.assertEqual(map_region("NOA", "Salta"), "NOA")
        self.assertEqual(map_region("", "Mendoza"), "Cuyo")
        self.assertEqual(map_region("", "Atlantis"), "Otra")

    def test_station_identity(self):
        self.assertEqual(station_identity("30-1", "99"), "30-1-99")
        self.assertEqual(station_identity("", ""), "")


class ReadFeedTestCase(SimpleTestCase):
    def test_empty_text_raises(self):
        with self.assertRaises(FeedParseError):
            read_feed("   ")

    def test_unrelated_csv_raises(self):
        with self.assertRaises(FeedParseError):
            read_feed("foo,bar\n1,2\n")

    def test_missing_columns_are_added_empty(self):
        df = read_feed("cuit,idempresa,precio\n30-1,99,100\n")
        self.assertIn("latitud", df.columns)
        self.assertEqual(df.loc[0, "latitud"], "")

    def test_row_longer_than_the_header_keeps_its_leading_fields(self):
        df = read_feed(
            feed_text(
                feed_row(),
                feed_row(company_id="2002") + "EXTRA,oops",
                feed_row(company_id="3003"),
            )
        )

        self.assertEqual(len(df), 3)
        self.assertEqual(list(df["idempresa"]), ["1001", "2002", "3003"])
        self.assertEqual(df["longitud"].iloc[1], "-58.3816")
        self.assertEqual(df["geojson"].iloc[1], "EXTRA")


class ParseFeedTestCase(SimpleTestCase):
    def test_valid_row_becomes_station_and_price(self):
        feed = parse_feed(feed_text(feed_row()))

        self.assertEqual(feed.rows_read, 1)
        self.assertEqual(feed.skipped_total, 0)
        station = feed.stations["30-11111111-1-1001"]
        self.assertEqual(station.company, "YPF")
        self.assertEqual(station.name, "YPF")
        self.assertAlmostEqual(station.latitude, -34.6037)
        price = feed.prices[0]
        self.assertEqual(price.fuel_type, "regular")
        self.assertEqual(price.schedule, "day")
        self.assertEqual(price.price, Decimal("850.500"))
        self.assertEqual(price.valid_from, datetime(2024, 5, 20, 10, 0, tzinfo=timezone.utc))
        self.assertEqual(price.source, "official")
        self.assertTrue(price.is_validated)

    def test_quoted_fields_keep_commas_and_quotes(self):
        feed = parse_feed(
            feed_text(feed_row(address='Ruta 3, km 45 ""El Cruce""', company="Shell, C.A.P.S.A."))
        )
        station = feed.stations["30-11111111-1-1001"]
        self.assertEqual(station.address, 'Ruta 3, km 45 "El Cruce"')

    def test_unknown_product_skips_only_that_row(self):
        feed = parse_feed(
            feed_text(
                feed_row(product="Kerosene"),
                feed_row(product="Gas Oil Grado 2"),
                feed_row(product="GNC", schedule="Nocturno"),
            )
        )
        self.assertEqual(feed.skipped[SKIP_PRODUCT], 1)
        self.assertEqual(len(feed.prices), 2)
        self.assertEqual(
            {(p.fuel_type, p.schedule) for p in feed.prices},
            {("diesel", "day"), ("cng", "night")},
        )

    def test_row_skip_rules_are_counted(self):
        feed = parse_feed(
            feed_text(
                feed_row(lat="0", lon="0"),
                feed_row(lat="abc"),
                feed_row(valid_from="not a date"),
                feed_row(price="-5"),
                feed_row(price="n/a"),
                feed_row(tax_id="", company_id=""),
                feed_row(),
            )
        )
        self.assertEqual(feed.rows_read, 7)
        self.assertEqual(feed.skipped[SKIP_COORDINATES], 2)
        self.assertEqual(feed.skipped[SKIP_DATE], 1)
        self.assertEqual(feed.skipped[SKIP_PRICE], 2)
        self.assertEqual(feed.skipped[SKIP_IDENTITY], 1)
        self.assertEqual(len(feed.prices), 1)

    def test_first_seen_station_attributes_win(self):
        feed = parse_feed(
            feed_text(
                feed_row(address="First address"),
                feed_row(address="Second address", product="GNC"),
            )
        )
        self.assertEqual(len(feed.stations), 1)
        self.assertEqual(feed.stations["30-11111111-1-1001"].address, "First address")
        self.assertEqual(len(feed.prices), 2)

    def test_region_from_province_when_blank(self):
        feed = parse_feed(feed_text(feed_row(region="", province="Mendoza")))
        self.assertEqual(feed.stations["30-11111111-1-1001"].region, "Cuyo")

    def test_limit_reads_first_rows_only(self):
        feed = parse_feed(feed_text(feed_row(), feed_row(company_id="2"), feed_row(company_id="3")), limit=2)
        self.assertEqual(feed.rows_read, 2)
        self.assertEqual(len(feed.stations), 2)
