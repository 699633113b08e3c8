import tempfile
from io import StringIO
from pathlib import Path
from unittest.mock import MagicMock, patch

from django.core.cache import cache
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase

from prices.exceptions import FeedDownloadError
from prices.models import Price, Station
from prices.tests.fixtures import feed_row, feed_text

FEED = feed_text(
    feed_row(),
    feed_row(product="GNC", price="450"),
    feed_row(product="Kerosene"),
    feed_row(company_id="2002"),
)


class SyncPricesCommandTestCase(TestCase):
    def setUp(self):
        cache.clear()
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.path = Path(self.tmp.name) / "precios.csv"
        self.path.write_text(FEED, encoding="utf-8")

    def _call(self, *args, **options):
        out = StringIO()
        call_command("sync_prices", *args, stdout=out, **options)
        return out.getvalue()

    def test_sync_from_file(self):
        output = self._call(file=str(self.path))

        self.assertEqual(Station.objects.count(), 2)
        self.assertEqual(Price.objects.count(), 3)
        self.assertIn("--- Summary ---", output)
        self.assertIn("unmapped_product=1", output)
        self.assertIn("inserted=3", output)

    def test_per_process_cache_is_flagged(self):
        output = self._call(file=str(self.path))
        self.assertIn("CACHE_BACKEND=database", output)

        output = self._call("--dry-run", file=str(self.path))
        self.assertNotIn("CACHE_BACKEND=database", output)

    def test_second_run_reports_no_writes(self):
        self._call(file=str(self.path))
        output = self._call(file=str(self.path))

        self.assertIn("Prices: inserted=0  updated=0  unchanged=3", output)

    def test_dry_run_prints_samples_and_writes_nothing(self):
        output = self._call("--dry-run", file=str(self.path))

        self.assertEqual(Station.objects.count(), 0)
        self.assertIn("Dry run", output)
        self.assertIn("Sample stations:", output)
        self.assertIn("Sample prices:", output)
        self.assertIn("30-11111111-1-1001", output)

    def test_limit(self):
        self._call(file=str(self.path), limit=1)
        self.assertEqual(Price.objects.count(), 1)

    def test_replace(self):
        self._call(file=str(self.path))
        output = self._call("--replace", file=str(self.path))

        self.assertIn("Deleted 3 official prices", output)
        self.assertEqual(Price.objects.count(), 3)

    def test_missing_file_is_fatal(self):
        with self.assertRaises(CommandError):
            self._call(file=str(Path(self.tmp.name) / "missing.csv"))

    def test_unparseable_feed_is_fatal(self):
        self.path.write_text("", encoding="utf-8")
        with self.assertRaises(CommandError):
            self._call(file=str(self.path))

    def test_invalid_limit(self):
        with self.assertRaises(CommandError):
            self._call(file=str(self.path), limit=0)

    @patch("prices.management.commands.sync_prices.FeedClient")
    def test_download(self, mock_client_cls):
        client = MagicMock()
        client.url = "https://example.test/precios.csv"
        client.download.return_value = FEED
        mock_client_cls.return_value.__enter__.return_value = client

        output = self._call(url="https://example.test/precios.csv")

        mock_client_cls.assert_called_once_with("https://example.test/precios.csv")
        self.assertIn("Downloading feed from https://example.test/precios.csv", output)
        self.assertEqual(Price.objects.count(), 3)

    @patch("prices.management.commands.sync_prices.FeedClient")
    def test_download_failure_is_fatal(self, mock_client_cls):
        client = MagicMock()
        client.download.side_effect = FeedDownloadError("Feed returned HTTP 503")
        mock_client_cls.return_value.__enter__.return_value = client

        with self.assertRaisesMessage(CommandError, "HTTP 503"):
            self._call()
        self.assertEqual(Station.objects.count(), 0)
