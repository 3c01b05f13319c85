# deliveryMetrics/management/commands/export_reports.py
from __future__ import annotations
import csv
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from deliveryMetrics.models import PLATFORMS, Client
from ...utils.aggregation import (
    MetricsFilters,
    consolidated_location_metrics,
    dashboard_overview,
    location_metrics,
)
from ...utils.dashboard_metrics import (
    get_platform_coverage,
    get_recent_imports,
    get_stat_counts,
    get_warning_items,
)
from ...utils.dates import current_week_range
from ...utils.platform_metrics import METRIC_FIELDS


def _fmt(value) -> str:
    if isinstance(value, int):
        return str(value)
    return f"{value:.2f}"


class Command(BaseCommand):
    help = "Export dashboard, per-location and consolidated metrics CSVs for one client and date range."

    def add_arguments(self, parser):
        parser.add_argument("--owner", required=True, type=str, help="Client name")
        parser.add_argument("--start", type=str, help="Start date (YYYY-MM-DD); defaults to this week")
        parser.add_argument("--end", type=str, help="End date (YYYY-MM-DD, inclusive)")
        parser.add_argument("--platform", choices=PLATFORMS, help="Limit to one platform")
        parser.add_argument("--tag", type=str, help="Only locations carrying this tag")
        parser.add_argument("--outdir", type=str, default="archive/reports",
                            help="Output directory (default: ./archive/reports)")

    def handle(self, *args, **opts):
        try:
            owner = Client.objects.get(name=opts["owner"])
        except Client.DoesNotExist:
            raise CommandError(f"Unknown client: {opts['owner']}")

        start, end = opts.get("start"), opts.get("end")
        if not start and not end:
            start, end = current_week_range()

        try:
            filters = MetricsFilters(
                owner=owner,
                platform=opts.get("platform"),
                start=start,
                end=end,
                location_tag=opts.get("tag"),
            )
        except ValueError as exc:
            raise CommandError(str(exc))

        if filters.start and filters.end and filters.end < filters.start:
            raise CommandError("--end must be >= --start")

        outdir = Path(opts["outdir"])
        outdir.mkdir(parents=True, exist_ok=True)
        suffix = f"{filters.start or 'all'}_{filters.end or 'all'}"

        # 1) Dashboard totals plus one row per platform
        overview = dashboard_overview(filters)
        dashboard_path = outdir / f"dashboard_{suffix}.csv"
        with dashboard_path.open("w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(["platform", *METRIC_FIELDS])
            for row in overview["platform_breakdown"]:
                writer.writerow([row["platform"], *(_fmt(row[field]) for field in METRIC_FIELDS)])
            writer.writerow(["all", *(_fmt(overview["totals"][field]) for field in METRIC_FIELDS)])

        # 2) One row per (location, platform)
        location_rows = location_metrics(filters)
        location_path = outdir / f"locations_{suffix}.csv"
        with location_path.open("w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(["location_id", "canonical_name", "store_code", "platform", *METRIC_FIELDS])
            for row in location_rows:
                writer.writerow([
                    row["location_id"],
                    row["canonical_name"],
                    row["store_code"] or "",
                    row["platform"],
                    *(_fmt(row[field]) for field in METRIC_FIELDS),
                ])

        # 3) Consolidated by canonical name
        consolidated_rows = consolidated_location_metrics(filters)
        consolidated_path = outdir / f"consolidated_{suffix}.csv"
        with consolidated_path.open("w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(["canonical_name", "location_ids", "platforms", *METRIC_FIELDS])
            for row in consolidated_rows:
                writer.writerow([
                    row["canonical_name"],
                    " ".join(str(pk) for pk in row["location_ids"]),
                    " ".join(p["platform"] for p in row["platforms"]),
                    *(_fmt(row[field]) for field in METRIC_FIELDS),
                ])

        self.stdout.write(self.style.SUCCESS(f"Wrote {dashboard_path}"))
        self.stdout.write(self.style.SUCCESS(f"Wrote {location_path} ({len(location_rows)} rows)"))
        self.stdout.write(self.style.SUCCESS(f"Wrote {consolidated_path} ({len(consolidated_rows)} rows)"))

        stat_counts = get_stat_counts(owner)
        warnings = get_warning_items(
            stat_counts,
            get_recent_imports(owner=owner),
            get_platform_coverage(owner),
        )
        for warning in warnings:
            self.stdout.write(self.style.WARNING(f"⚠️ {warning['title']}: {warning['detail']}"))
