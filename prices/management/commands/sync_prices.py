"""
sync_prices: Converge the official fuel price feed into the store.

Flow:
  1. Download the feed (or read a local copy with --file)
  2. Parse + normalize rows (bad rows are skipped and counted)
  3. Diff-upsert stations, then prices (+ history for changed prices)
  4. Invalidate cached consolidations of the stations that changed
"""

from django.conf import settings
from django.core.cache import caches
from django.core.cache.backends.locmem import LocMemCache
from django.core.management.base import BaseCommand, CommandError

from prices.exceptions import FeedError
from prices.feed import FeedClient, read_feed_file
from prices.services import SyncReport, UpsertResult, feed_sync


class Command(BaseCommand):
    help = "Sync official fuel prices: download -> normalize -> diff-upsert"

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit", type=int, default=None, metavar="N",
            help="Process only the first N feed rows.",
        )
        parser.add_argument(
            "--replace", action="store_true",
            help="Delete existing official prices instead of diffing against them.",
        )
        parser.add_argument(
            "--dry-run", action="store_true",
            help="Compute and report the changes without writing.",
        )
        source = parser.add_mutually_exclusive_group()
        source.add_argument(
            "--url", default=None,
            help="Feed URL (default: settings.FEED_URL).",
        )
        source.add_argument(
            "--file", default=None, metavar="PATH",
            help="Read the feed from a local CSV file instead of downloading it.",
        )
        parser.add_argument(
            "--chunk-size", type=int, default=None, metavar="N",
            help=f"Rows per write statement (default: {settings.SYNC_CHUNK_SIZE}).",
        )

    # ------------------------------------------------------------------
    # handle
    # ------------------------------------------------------------------
    def handle(self, *args, **options):
        limit = options["limit"]
        if limit is not None and limit < 1:
            raise CommandError("--limit must be a positive integer.")
        chunk_size = max(1, options["chunk_size"] or settings.SYNC_CHUNK_SIZE)
        dry_run = options["dry_run"]

        if dry_run:
            self.stdout.write(self.style.WARNING("Dry run: nothing will be written."))
        if options["replace"]:
            self.stdout.write(self.style.WARNING("Replace mode: official prices will be rebuilt."))
        if not dry_run and isinstance(caches[settings.CONSOLIDATION_CACHE_ALIAS], LocMemCache):
            self.stdout.write(
                self.style.WARNING(
                    "Consolidation cache is per process (LocMem): web workers keep their"
                    " cached prices until they expire. Set CACHE_BACKEND=database to share it."
                )
            )

        # --- Fetch ---
        try:
            text = self._fetch(options["url"], options["file"])
            report = feed_sync(
                text=text,
                limit=limit,
                replace=options["replace"],
                dry_run=dry_run,
                chunk_size=chunk_size,
            )
        except FeedError as exc:
            raise CommandError(str(exc)) from exc

        self._write_summary(report)
        if dry_run:
            self._write_samples(report)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _fetch(self, url: str | None, path: str | None) -> str:
        if path:
            self.stdout.write(f"Reading feed from {path}")
            return read_feed_file(path)

        with FeedClient(url) as client:
            self.stdout.write(f"Downloading feed from {client.url}")
            text = client.download()
        self.stdout.write(self.style.SUCCESS(f"Downloaded {len(text)} characters."))
        return text

    def _write_counts(self, label: str, result: UpsertResult):
        line = (
            f"  {label}: inserted={result.inserted}  updated={result.updated}"
            f"  unchanged={result.unchanged}  failed={result.failed}"
        )
        self.stdout.write(self.style.ERROR(line) if result.failed else line)

    def _write_summary(self, report: SyncReport):
        self.stdout.write("")
        self.stdout.write(self.style.SUCCESS("--- Summary ---"))
        self.stdout.write(
            f"  Rows read: {report.rows_read}  price candidates: {report.price_candidates}"
        )
        if report.skipped_total:
            reasons = "  ".join(f"{k}={v}" for k, v in sorted(report.skipped.items()))
            self.stdout.write(self.style.WARNING(f"  Skipped: {report.skipped_total}  ({reasons})"))
        if report.replaced:
            verb = "Would delete" if report.dry_run else "Deleted"
            self.stdout.write(self.style.WARNING(f"  {verb} {report.replaced} official prices"))
        self._write_counts("Stations", report.stations)
        self._write_counts("Prices", report.prices)
        if not report.dry_run:
            self.stdout.write(
                self.style.SUCCESS(f"  History rows written: {report.prices.history_written}")
            )

    def _write_samples(self, report: SyncReport):
        self.stdout.write("")
        self.stdout.write(self.style.MIGRATE_HEADING("Sample stations:"))
        for s in report.station_samples:
            self.stdout.write(
                f"  {s.external_id}  {s.name}  ({s.locality}, {s.province})"
                f"  [{s.latitude:.5f}, {s.longitude:.5f}]"
            )
        self.stdout.write(self.style.MIGRATE_HEADING("Sample prices:"))
        for p in report.price_samples:
            self.stdout.write(
                f"  {p.station_external_id}  {p.fuel_type}/{p.schedule}"
                f"  ${p.price}  valid from {p.valid_from:%Y-%m-%d}"
            )
