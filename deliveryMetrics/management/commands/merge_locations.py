"""Collapse duplicate canonical locations, or list the candidates for it."""

from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from deliveryMetrics.models import CanonicalLocation, Client
from deliveryMetrics.utils.locations import get_duplicate_locations, merge_locations


class Command(BaseCommand):
    help = "Merge source locations into a target location, moving all of their transactions."

    def add_arguments(self, parser):
        parser.add_argument("--target", type=int, help="Primary key of the location to keep.")
        parser.add_argument(
            "--source",
            type=int,
            action="append",
            default=[],
            help="Primary key of a location to fold into the target (repeatable).",
        )
        parser.add_argument("--note", default="", help="Free-text note stored on the merge log.")
        parser.add_argument(
            "--list-duplicates",
            action="store_true",
            help="Only list locations sharing a canonical name within one client.",
        )
        parser.add_argument("--owner", help="Restrict --list-duplicates to one client name.")

    def handle(self, *args, **options):
        if options["list_duplicates"]:
            self._list_duplicates(options.get("owner"))
            return

        if not options["target"] or not options["source"]:
            raise CommandError("--target and at least one --source are required")

        try:
            target = CanonicalLocation.objects.get(pk=options["target"])
        except CanonicalLocation.DoesNotExist:
            raise CommandError(f"Target location #{options['target']} does not exist")

        sources = list(CanonicalLocation.objects.filter(pk__in=options["source"]))
        missing = set(options["source"]) - {loc.pk for loc in sources}
        if missing:
            raise CommandError(f"Source location(s) not found: {sorted(missing)}")

        try:
            merge_log = merge_locations(target, sources, note=options["note"])
        except ValueError as exc:
            raise CommandError(str(exc))

        moved = ", ".join(f"{platform}: {count}" for platform, count in merge_log.transactions_moved.items())
        self.stdout.write(
            self.style.SUCCESS(
                f"🔗 Merged {len(sources)} location(s) into {target} ({moved})"
            )
        )

    def _list_duplicates(self, owner_name):
        owner = None
        if owner_name:
            try:
                owner = Client.objects.get(name=owner_name)
            except Client.DoesNotExist:
                raise CommandError(f"Unknown client: {owner_name}")

        groups = get_duplicate_locations(owner)
        if not groups:
            self.stdout.write(self.style.SUCCESS("✅ No duplicate locations found"))
            return

        for group in groups:
            self.stdout.write(
                self.style.WARNING(f"⚠️ {group['canonical_name']} (client #{group['owner_id']}): {group['count']} rows")
            )
            for location in group["locations"]:
                self.stdout.write(f"   #{location.pk} {location} {location.city}".rstrip())
