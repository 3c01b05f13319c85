"""Purge imported platform transactions, keeping a loaddata-ready snapshot first."""

from __future__ import annotations

import json
from pathlib import Path

from django.core.management import BaseCommand, CommandError, call_command
from django.db import transaction
from django.utils import timezone

from deliveryMetrics.models import (
    PLATFORMS,
    TRANSACTION_MODELS,
    Client,
    ImportLog,
    UnmappedLocation,
)
from deliveryMetrics.utils.dates import normalize_platform_date


ARCHIVE_DIR = Path("archive")
SNAPSHOT_PREFIX = "purgeTransactions"


class Command(BaseCommand):
    help = (
        "Snapshot imported platform transactions with dumpdata, then delete them "
        "so the same exports can be re-imported from scratch."
    )

    def add_arguments(self, parser):
        parser.add_argument("--owner", help="Only purge this client's data.")
        parser.add_argument("--platform", choices=PLATFORMS, help="Only purge one platform.")
        parser.add_argument(
            "--before",
            help="Only purge transactions whose business date is before this date (YYYY-MM-DD).",
        )
        parser.add_argument(
            "--include-logs",
            action="store_true",
            help="Also purge ImportLog and UnmappedLocation records for the same scope.",
        )
        parser.add_argument(
            "--no-snapshot",
            action="store_true",
            help="Skip creating the JSON snapshot (NOT recommended).",
        )
        parser.add_argument("--archive-dir", default=str(ARCHIVE_DIR), help="Snapshot directory.")

    def handle(self, *args, **options):
        owner = None
        if options.get("owner"):
            owner = Client.objects.filter(name=options["owner"]).first()
            if owner is None:
                raise CommandError(f"Unknown client: {options['owner']}")

        before = None
        if options.get("before"):
            before = normalize_platform_date(options["before"])
            if before is None:
                raise CommandError(f"Unreadable --before date: {options['before']}")

        platforms = [options["platform"]] if options.get("platform") else list(PLATFORMS)
        include_logs = options["include_logs"]

        if options["no_snapshot"]:
            self.stdout.write(self.style.WARNING("⚠️ Skipping snapshot creation."))
        else:
            snapshot_path = self._write_snapshot(
                Path(options["archive_dir"]), platforms, include_logs=include_logs
            )
            self.stdout.write(
                self.style.SUCCESS(
                    f"📦 Snapshot written to {snapshot_path}. "
                    f"Restore with: python manage.py loaddata {snapshot_path}"
                )
            )

        deleted = self._purge(owner, platforms, before, include_logs=include_logs)
        removed = ", ".join(f"{label}: {count}" for label, count in deleted.items() if count)
        self.stdout.write(self.style.SUCCESS(f"🧹 Purged records: {removed or 'nothing removed.'}"))

    # ------------------------------------------------------------------ #
    # Snapshot
    # ------------------------------------------------------------------ #
    def _write_snapshot(self, archive_dir: Path, platforms, *, include_logs: bool) -> Path:
        archive_dir.mkdir(parents=True, exist_ok=True)
        sequence = len(list(archive_dir.glob(f"{SNAPSHOT_PREFIX}*.json"))) + 1
        stamp = timezone.now().strftime("%Y%m%d-%H%M%S")
        snapshot_path = archive_dir / f"{SNAPSHOT_PREFIX}{sequence:03d}-{stamp}.json"

        labels = [f"deliveryMetrics.{TRANSACTION_MODELS[p].__name__}" for p in platforms]
        if include_logs:
            labels += ["deliveryMetrics.ImportLog", "deliveryMetrics.UnmappedLocation"]

        with snapshot_path.open("w", encoding="utf-8") as handle:
            call_command("dumpdata", *labels, indent=2, stdout=handle)
        # snapshot must parse before anything is deleted
        with snapshot_path.open("r", encoding="utf-8") as handle:
            json.load(handle)
        return snapshot_path

    # ------------------------------------------------------------------ #
    # Purge
    # ------------------------------------------------------------------ #
    def _purge(self, owner, platforms, before, *, include_logs: bool) -> dict[str, int]:
        def for_owner(qs):
            return qs.filter(owner=owner) if owner is not None else qs

        counts: dict[str, int] = {}
        with transaction.atomic():
            for platform in platforms:
                model = TRANSACTION_MODELS[platform]
                rows = for_owner(model.objects.all())
                if before is not None:
                    rows = rows.filter(business_date__lt=before)
                counts[model.__name__] = rows.delete()[0]

            if include_logs:
                logs = for_owner(ImportLog.objects.filter(source__in=platforms))
                unmapped = for_owner(UnmappedLocation.objects.filter(platform__in=platforms))
                if before is not None:
                    logs = logs.filter(created_at__date__lt=before)
                    unmapped = unmapped.filter(last_seen__date__lt=before)
                counts["ImportLog"] = logs.delete()[0]
                counts["UnmappedLocation"] = unmapped.delete()[0]
        return counts
