from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from django.core.cache import cache
from django.db.models import Max

from deliveryMetrics.models import (
    PLATFORM_CHOICES,
    TRANSACTION_MODELS,
    CanonicalLocation,
    Client,
    ImportLog,
    UnmappedLocation,
)

STAT_COUNT_CACHE_KEY = "dashboard:stat_counts"
CACHE_TIMEOUT = 300  # 5 minutes
RECENT_IMPORT_LIMIT = 4
WARNING_LIMIT = 5
STALE_PLATFORM_DAYS = 7


@dataclass
class ImportStatus:
    label: str
    needs_attention: bool = False


def _scoped(qs, owner: Optional[Client]):
    return qs.filter(owner=owner) if owner else qs


def get_stat_counts(owner: Optional[Client] = None) -> Dict[str, int]:
    """Location, unmapped and per-platform transaction counts, cached per owner."""
    cache_key = f"{STAT_COUNT_CACHE_KEY}:{owner.pk if owner else 'all'}"
    cached = cache.get(cache_key)
    if cached:
        return cached

    locations = _scoped(CanonicalLocation.objects.exclude(tag="unmapped_bucket"), owner)
    counts = {
        "locations": locations.count(),
        "verified_locations": locations.filter(is_verified=True).count(),
        "unmapped": _scoped(UnmappedLocation.objects.filter(resolved=False, ignored=False), owner).count(),
    }
    for platform, model in TRANSACTION_MODELS.items():
        counts[f"{platform}_transactions"] = _scoped(model.objects.all(), owner).count()
    cache.set(cache_key, counts, CACHE_TIMEOUT)
    return counts


def determine_import_status(log: ImportLog) -> ImportStatus:
    if not log.finished_at:
        return ImportStatus("Running")
    if log.error_count or log.state == "partial_failure":
        return ImportStatus("Failed", needs_attention=True)
    if log.unmatched_count:
        return ImportStatus("Partial", needs_attention=True)
    if log.run_type == "dry-run":
        return ImportStatus("Dry run")
    return ImportStatus("Success")


def get_recent_imports(limit: int = RECENT_IMPORT_LIMIT, owner: Optional[Client] = None) -> List[Dict[str, Any]]:
    logs = _scoped(ImportLog.objects.select_related("uploaded_by", "owner"), owner).order_by("-created_at")

    results: List[Dict[str, Any]] = []
    for log in logs[:limit]:
        status = determine_import_status(log)
        results.append(
            {
                "source": log.get_source_display(),
                "owner": log.owner.name if log.owner else "",
                "filename": log.filename,
                "created_at": log.created_at,
                "rows_processed": log.rows_processed,
                "unmatched": log.unmatched_count,
                "errors": log.error_count,
                "status": status.label,
                "needs_attention": status.needs_attention,
            }
        )
    return results


def get_platform_coverage(owner: Optional[Client] = None) -> List[Dict[str, Any]]:
    """Latest business date and last live import per platform."""
    coverage = []
    for platform, label in PLATFORM_CHOICES:
        transactions = _scoped(TRANSACTION_MODELS[platform].objects.all(), owner)
        last_import = (
            _scoped(ImportLog.objects.filter(source=platform, run_type="live"), owner)
            .order_by("-created_at")
            .values_list("created_at", flat=True)
            .first()
        )
        coverage.append(
            {
                "platform": platform,
                "label": label,
                "latest_business_date": transactions.aggregate(latest=Max("business_date"))["latest"],
                "last_import": last_import,
            }
        )
    return coverage


def get_warning_items(
    stat_counts: Dict[str, int],
    recent_imports: List[Dict[str, Any]],
    coverage: Optional[List[Dict[str, Any]]] = None,
) -> List[Dict[str, Any]]:
    warnings: List[Dict[str, Any]] = []

    if stat_counts["unmapped"]:
        warnings.append(
            {
                "title": "Unmapped platform locations",
                "detail": f"{stat_counts['unmapped']} store names are landing in the unmapped bucket",
            }
        )

    for entry in recent_imports:
        if entry["needs_attention"]:
            warnings.append(
                {
                    "title": f"Import {entry['status'].lower()}",
                    "detail": (
                        f"{entry['source']} import of {entry['filename'] or 'upload'}: "
                        f"{entry['errors']} failed, {entry['unmatched']} unmapped "
                        f"of {entry['rows_processed']} rows"
                    ),
                }
            )

    dated = [c for c in coverage or [] if c["latest_business_date"]]
    if dated:
        newest = max(c["latest_business_date"] for c in dated)
        for entry in dated:
            lag = (newest - entry["latest_business_date"]).days
            if lag > STALE_PLATFORM_DAYS:
                warnings.append(
                    {
                        "title": f"{entry['label']} data is behind",
                        "detail": f"Latest {entry['label']} business date is {lag} days older than other platforms",
                    }
                )

    return warnings[:WARNING_LIMIT]
