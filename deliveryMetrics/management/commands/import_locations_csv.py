"""Load or refresh a client's master location list from CSV."""

from __future__ import annotations

import csv
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from deliveryMetrics.models import CanonicalLocation, Client
from importers._columns import canonicalize_row

LOCATION_COLUMNS = {
    "store_code": ("Store Code", "Store_Code", "store_code", "Shop ID", "Store Number"),
    "canonical_name": ("Canonical Name", "Location Name", "Store Name", "Name", "canonical_name"),
    "address": ("Address", "Street Address", "address"),
    "city": ("City", "city"),
    "state": ("State", "state"),
    "zip_code": ("Zip", "Zip Code", "ZIP", "zip_code"),
    "ubereats_store_id": ("Uber Eats Store ID", "ubereats_store_id"),
    "doordash_store_id": ("DoorDash Store ID", "doordash_store_id"),
    "grubhub_store_id": ("Grubhub Store ID", "grubhub_store_id"),
    "tag": ("Tag", "tag"),
}

OPTIONAL_ID_FIELDS = ("store_code", "ubereats_store_id", "doordash_store_id", "grubhub_store_id")


class Command(BaseCommand):
    help = (
        "Create or update canonical locations for a client from a CSV. Rows are "
        "matched on store code first, then on canonical name."
    )

    def add_arguments(self, parser):
        parser.add_argument("csv_path", type=Path, help="Path to the master location CSV.")
        parser.add_argument("--owner", required=True, help="Client name; created if missing.")
        parser.add_argument("--dry-run", action="store_true", help="Report changes without saving.")

    def handle(self, *args, **options):
        csv_path = Path(options["csv_path"])
        if not csv_path.exists():
            raise CommandError(f"CSV file not found: {csv_path}")

        with csv_path.open(newline="", encoding="utf-8-sig") as handle:
            rows = [canonicalize_row(row, LOCATION_COLUMNS) for row in csv.DictReader(handle)]

        created = updated = skipped = 0
        with transaction.atomic():
            owner, _ = Client.objects.get_or_create(name=options["owner"])
            for row in rows:
                if not row["canonical_name"]:
                    skipped += 1
                    continue
                for field in OPTIONAL_ID_FIELDS:
                    row[field] = row[field] or None
                row["tag"] = "corporate" if row["tag"].lower() == "corporate" else ""

                location = self._find_existing(owner, row)
                if location is None:
                    CanonicalLocation.objects.create(owner=owner, **row)
                    created += 1
                    continue

                changed = False
                for field, value in row.items():
                    if value and getattr(location, field) != value:
                        setattr(location, field, value)
                        changed = True
                if changed:
                    location.save()
                    updated += 1

            CanonicalLocation.objects.unmapped_bucket_for(owner)
            if options["dry_run"]:
                transaction.set_rollback(True)

        prefix = "[Dry Run] " if options["dry_run"] else ""
        self.stdout.write(
            self.style.SUCCESS(
                f"✅ {prefix}{owner}: {created} created, {updated} updated, {skipped} skipped"
            )
        )

    @staticmethod
    def _find_existing(owner, row):
        locations = CanonicalLocation.objects.filter(owner=owner)
        if row["store_code"]:
            match = locations.filter(store_code__iexact=row["store_code"]).first()
            if match is not None:
                return match
        return locations.filter(canonical_name__iexact=row["canonical_name"]).first()
