"""Dashboard, per-location and consolidated metric views across platforms."""
from __future__ import annotations

import datetime
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..models import PLATFORM_CHOICES, PLATFORMS, TRANSACTION_MODELS, CanonicalLocation, Client
from .dates import available_weeks as _available_weeks
from .dates import normalize_platform_date
from .platform_metrics import PlatformMetrics, calculate_platform_metrics

PLATFORM_LABELS = dict(PLATFORM_CHOICES)


@dataclass
class MetricsFilters:
    owner: Client
    platform: Optional[str] = None
    start: Any = None
    end: Any = None
    location_tag: Optional[str] = None
    location_ids: Optional[Sequence[int]] = None

    def __post_init__(self):
        if self.platform and self.platform not in PLATFORMS:
            raise ValueError(f"Unknown platform: {self.platform!r}")
        self.start = self._coerce_date(self.start, "start")
        self.end = self._coerce_date(self.end, "end")

    @staticmethod
    def _coerce_date(value, label: str) -> Optional[datetime.date]:
        if value in (None, ""):
            return None
        parsed = normalize_platform_date(value)
        if parsed is None:
            raise ValueError(f"Unreadable {label} date: {value!r}")
        return parsed

    @property
    def platforms(self) -> Tuple[str, ...]:
        return (self.platform,) if self.platform else PLATFORMS


def _scoped_location_ids(filters: MetricsFilters) -> Optional[List[int]]:
    """None means no location restriction; an empty list means nothing matches."""
    if filters.location_tag is None and filters.location_ids is None:
        return None
    qs = CanonicalLocation.objects.filter(owner=filters.owner)
    if filters.location_tag is not None:
        qs = qs.filter(tag=filters.location_tag)
    if filters.location_ids is not None:
        qs = qs.filter(pk__in=list(filters.location_ids))
    return list(qs.values_list("pk", flat=True))


def _transactions(platform: str, filters: MetricsFilters, location_ids: Optional[List[int]]):
    qs = TRANSACTION_MODELS[platform].objects.filter(owner=filters.owner)
    if location_ids is not None:
        qs = qs.filter(location_id__in=location_ids)
    if filters.start:
        qs = qs.filter(business_date__gte=filters.start)
    if filters.end:
        qs = qs.filter(business_date__lte=filters.end)
    return qs


def _metrics_row(metrics: PlatformMetrics, **extra) -> Dict[str, Any]:
    row = dict(extra)
    row.update(metrics.as_dict())
    return row


def dashboard_overview(filters: MetricsFilters) -> Dict[str, Any]:
    """
    Totals across platforms plus one breakdown row per platform.

    Raw fields are summed first and the ratios recomputed over the sums, so
    ``blended_roas`` is total marketing-driven sales over total investment,
    not an average of per-platform ROAS.
    """
    location_ids = _scoped_location_ids(filters)

    per_platform: Dict[str, PlatformMetrics] = {}
    for platform in filters.platforms:
        if location_ids == []:
            per_platform[platform] = PlatformMetrics()
            continue
        rows = _transactions(platform, filters, location_ids)
        per_platform[platform] = calculate_platform_metrics(platform, rows.iterator())

    totals = PlatformMetrics.combine(per_platform.values())
    return {
        "totals": totals.as_dict(),
        "blended_roas": totals.marketing_roas,
        "platform_breakdown": [
            _metrics_row(metrics, platform=platform, platform_label=PLATFORM_LABELS[platform])
            for platform, metrics in per_platform.items()
        ],
        "location_count": (
            len(location_ids)
            if location_ids is not None
            else CanonicalLocation.objects.filter(owner=filters.owner).count()
        ),
    }


def _metrics_by_location(filters: MetricsFilters) -> Dict[Tuple[int, str], PlatformMetrics]:
    location_ids = _scoped_location_ids(filters)
    results: Dict[Tuple[int, str], PlatformMetrics] = {}
    if location_ids == []:
        return results

    for platform in filters.platforms:
        buckets: Dict[Optional[int], list] = defaultdict(list)
        for row in _transactions(platform, filters, location_ids).iterator():
            buckets[row.location_id].append(row)
        for location_id, rows in buckets.items():
            if location_id is None:
                continue
            results[(location_id, platform)] = calculate_platform_metrics(platform, rows)
    return results


def location_metrics(filters: MetricsFilters) -> List[Dict[str, Any]]:
    """One row per (location, platform) with that pair's metrics."""
    metrics_by_key = _metrics_by_location(filters)
    locations = CanonicalLocation.objects.in_bulk({location_id for location_id, _ in metrics_by_key})

    rows = []
    for (location_id, platform), metrics in metrics_by_key.items():
        location = locations[location_id]
        rows.append(
            _metrics_row(
                metrics,
                location_id=location_id,
                owner_id=location.owner_id,
                canonical_name=location.canonical_name,
                store_code=location.store_code,
                location_tag=location.tag,
                platform=platform,
                platform_label=PLATFORM_LABELS[platform],
            )
        )
    rows.sort(key=lambda r: (r["canonical_name"].lower(), r["location_id"], PLATFORMS.index(r["platform"])))
    return rows


def consolidated_location_metrics(filters: MetricsFilters) -> List[Dict[str, Any]]:
    """
    Per-location rows merged across platforms.

    Rows are grouped by (owner, canonical name): different owners may each have
    a location with the same name (every owner has an "Unmapped Locations"),
    and those must never be combined.
    """
    metrics_by_key = _metrics_by_location(filters)
    locations = CanonicalLocation.objects.in_bulk({location_id for location_id, _ in metrics_by_key})

    grouped: Dict[Tuple[int, str], Dict[str, Any]] = {}
    for (location_id, platform), metrics in metrics_by_key.items():
        location = locations[location_id]
        key = (location.owner_id, location.canonical_name)
        group = grouped.setdefault(
            key,
            {
                "owner_id": location.owner_id,
                "canonical_name": location.canonical_name,
                "location_ids": [],
                "per_platform": defaultdict(list),
            },
        )
        if location_id not in group["location_ids"]:
            group["location_ids"].append(location_id)
        group["per_platform"][platform].append(metrics)

    results = []
    for group in grouped.values():
        platform_rows = []
        platform_totals = []
        for platform in PLATFORMS:
            if platform not in group["per_platform"]:
                continue
            combined = PlatformMetrics.combine(group["per_platform"][platform])
            platform_totals.append(combined)
            platform_rows.append(
                _metrics_row(combined, platform=platform, platform_label=PLATFORM_LABELS[platform])
            )
        totals = PlatformMetrics.combine(platform_totals)
        results.append(
            _metrics_row(
                totals,
                owner_id=group["owner_id"],
                canonical_name=group["canonical_name"],
                location_ids=sorted(group["location_ids"]),
                platforms=platform_rows,
            )
        )
    results.sort(key=lambda r: (-r["total_sales"], r["canonical_name"].lower(), r["owner_id"]))
    return results


def available_weeks(owner: Client, platform: Optional[str] = None) -> List[Dict[str, Any]]:
    """Weeks (Monday-Sunday) that have at least one transaction for ``owner``."""
    platforms: Iterable[str] = (platform,) if platform else PLATFORMS
    dates = set()
    for name in platforms:
        dates.update(
            TRANSACTION_MODELS[name]
            .objects.filter(owner=owner, business_date__isnull=False)
            .values_list("business_date", flat=True)
            .distinct()
        )
    return _available_weeks(dates)
