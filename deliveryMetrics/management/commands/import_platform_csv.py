"""Management command to ingest a delivery platform CSV export."""

from __future__ import annotations

from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from deliveryMetrics.models import PLATFORMS, Client
from importers import IMPORTERS
from importers._columns import read_crossref_csv
from importers.errors import IngestionAborted, ParseFailure


class Command(BaseCommand):
    help = (
        "Import an Uber Eats, DoorDash or Grubhub transaction export for one client. "
        "Re-running the same file updates rows in place."
    )

    def add_arguments(self, parser):
        parser.add_argument("--platform", required=True, choices=PLATFORMS, help="Source platform of the export.")
        parser.add_argument("--owner", required=True, help="Client name the transactions belong to.")
        parser.add_argument("--file", required=True, type=Path, help="Path to the CSV export.")
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Parse and resolve locations without writing anything.",
        )
        parser.add_argument(
            "--crossref",
            type=Path,
            help="Optional CSV of the platform's own store list (Store ID, Store Name, City).",
        )
        parser.add_argument("--chunk-size", type=int, help="Rows per upsert transaction.")

    def handle(self, *args, **options):
        file_path = Path(options["file"])
        if not file_path.exists():
            raise CommandError(f"File not found: {file_path}")

        try:
            owner = Client.objects.get(name=options["owner"])
        except Client.DoesNotExist:
            raise CommandError(f"Unknown client: {options['owner']}")

        crossref = ()
        if options.get("crossref"):
            crossref_path = Path(options["crossref"])
            if not crossref_path.exists():
                raise CommandError(f"Cross-reference file not found: {crossref_path}")
            try:
                crossref = read_crossref_csv(crossref_path)
            except ParseFailure as exc:
                raise CommandError(str(exc))
            self.stdout.write(self.style.NOTICE(f"🗂️ Loaded {len(crossref)} cross-reference entries"))

        chunk_size = options.get("chunk_size")
        if chunk_size is not None and chunk_size < 1:
            raise CommandError("--chunk-size must be a positive integer")

        importer = IMPORTERS[options["platform"]](
            owner,
            dry_run=options["dry_run"],
            log_to_console=options["verbosity"] > 1,
            chunk_size=chunk_size,
            crossref=crossref,
        )

        self.stdout.write(
            self.style.NOTICE(f"📥 Importing {file_path.name} for {owner} ({options['platform']})")
        )
        try:
            importer.run_from_file(file_path)
        except IngestionAborted as exc:
            importer.save_import_log(filename=file_path.name)
            raise CommandError(f"Import aborted after {importer.stats['upserted']} rows: {exc}")

        import_log = importer.save_import_log(filename=file_path.name)
        self.stdout.write(import_log.summary)

        stats = importer.stats
        if stats["failed"]:
            self.stdout.write(
                self.style.WARNING(f"⚠️ {stats['failed']} row(s) failed; see ImportLog #{import_log.pk}")
            )
        if stats["unmapped"]:
            self.stdout.write(
                self.style.WARNING(f"⚠️ {stats['unmapped']} row(s) landed in the unmapped bucket")
            )
        label = "Dry run complete" if options["dry_run"] else "Import complete"
        self.stdout.write(self.style.SUCCESS(f"✅ {label}: {stats['upserted']} transaction(s)"))
