"""Canonical location maintenance: audited merges, duplicate review, match suggestions."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from django.db import transaction
from django.db.models import Count
from django.db.models.functions import Lower

from ..models import (
    PLATFORMS,
    TRANSACTION_MODELS,
    CanonicalLocation,
    Client,
    LocationMergeLog,
    UnmappedLocation,
)
from importers._match_location import LocationResolver, build_location_snapshot

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

def merge_locations(
    target: CanonicalLocation,
    sources: Iterable[CanonicalLocation],
    *,
    user=None,
    note: str = "",
) -> LocationMergeLog:
    """
    Fold duplicate locations into ``target``.

    Every transaction and unmapped-review link pointing at a source is moved
    to the target, empty platform identifiers and display names on the target
    are filled from the sources, then the sources are deleted. The whole
    operation is atomic and leaves a ``LocationMergeLog`` behind.
    """
    sources = list(sources)
    if not sources:
        raise ValueError("At least one source location is required.")
    for source in sources:
        if source.pk == target.pk:
            raise ValueError("A location cannot be merged into itself.")
        if source.owner_id != target.owner_id:
            raise ValueError(
                f"{source} belongs to a different owner than {target}; cross-owner merges are not allowed."
            )
        if source.is_unmapped_bucket:
            raise ValueError("The unmapped bucket cannot be merged away.")

    source_ids = [source.pk for source in sources]
    moved: Dict[str, int] = {}

    with transaction.atomic():
        for platform, model in TRANSACTION_MODELS.items():
            moved[platform] = model.objects.filter(location_id__in=source_ids).update(location=target)

        UnmappedLocation.objects.filter(linked_location_id__in=source_ids).update(linked_location=target)

        update_fields = []
        for platform in PLATFORMS:
            for attr in (f"{platform}_store_id", f"{platform}_name"):
                if getattr(target, attr):
                    continue
                value = next((getattr(s, attr) for s in sources if getattr(s, attr)), None)
                if value:
                    setattr(target, attr, value)
                    update_fields.append(attr)
        if any(source.is_verified for source in sources) and not target.is_verified:
            target.is_verified = True
            update_fields.append("is_verified")
        if update_fields:
            target.save(update_fields=update_fields)

        merge_log = LocationMergeLog.objects.create(
            owner_id=target.owner_id,
            target=target,
            target_name=target.canonical_name,
            source_ids=source_ids,
            source_names=[source.canonical_name for source in sources],
            transactions_moved=moved,
            merged_by=user,
            note=note,
        )
        CanonicalLocation.objects.filter(pk__in=source_ids).delete()

    logger.info(
        "Merged locations %s into %s (%s transactions moved)",
        source_ids,
        target.pk,
        merge_log.total_moved,
    )
    return merge_log


# ---------------------------------------------------------------------------
# Review helpers
# ---------------------------------------------------------------------------

def get_duplicate_locations(owner: Optional[Client] = None) -> List[Dict[str, Any]]:
    """Locations sharing a canonical name within the same owner."""
    qs = CanonicalLocation.objects.all()
    if owner is not None:
        qs = qs.filter(owner=owner)

    groups = (
        qs.annotate(name_key=Lower("canonical_name"))
        .values("owner_id", "name_key")
        .annotate(count=Count("id"))
        .filter(count__gt=1)
        .order_by("owner_id", "name_key")
    )

    results: List[Dict[str, Any]] = []
    for group in groups:
        locations = list(
            qs.annotate(name_key=Lower("canonical_name"))
            .filter(owner_id=group["owner_id"], name_key=group["name_key"])
            .order_by("id")
        )
        results.append(
            {
                "owner_id": group["owner_id"],
                "canonical_name": locations[0].canonical_name,
                "count": group["count"],
                "locations": locations,
            }
        )
    return results


def location_match_suggestions(
    owner: Client,
    *,
    limit: int = 3,
    resolver: Optional[LocationResolver] = None,
) -> List[Dict[str, Any]]:
    """Ranked candidate locations for each open unmapped entry."""
    resolver = resolver or LocationResolver()
    snapshot = build_location_snapshot(owner)
    by_id = {loc.pk: loc for loc in CanonicalLocation.objects.filter(owner=owner)}

    suggestions: List[Dict[str, Any]] = []
    open_entries = UnmappedLocation.objects.filter(owner=owner, resolved=False, ignored=False)
    for entry in open_entries.order_by("platform", "location_name"):
        ranked = resolver.rank_candidates(entry.location_name, snapshot, limit=limit)
        suggestions.append(
            {
                "unmapped": entry,
                "candidates": [
                    {"location": by_id[record.id], "score": round(score, 4)}
                    for record, score in ranked
                ],
            }
        )
    return suggestions
