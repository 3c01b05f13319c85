import datetime

import pytest
from django.core.cache import cache

from deliveryMetrics.models import CanonicalLocation
from deliveryMetrics.utils.dashboard_metrics import (
    determine_import_status,
    get_platform_coverage,
    get_recent_imports,
    get_stat_counts,
    get_warning_items,
)

from tests.factories import (
    CanonicalLocationFactory,
    DoordashTransactionFactory,
    ImportLogFactory,
    UberEatsTransactionFactory,
    UnmappedLocationFactory,
)


@pytest.mark.django_db
def test_stat_counts_exclude_bucket_and_cache_per_owner(client_owner):
    CanonicalLocationFactory(owner=client_owner, is_verified=True)
    CanonicalLocationFactory(owner=client_owner)
    CanonicalLocation.objects.unmapped_bucket_for(client_owner)
    UnmappedLocationFactory(owner=client_owner)
    UberEatsTransactionFactory(owner=client_owner)

    counts = get_stat_counts(client_owner)

    assert counts["locations"] == 2
    assert counts["verified_locations"] == 1
    assert counts["unmapped"] == 1
    assert counts["ubereats_transactions"] == 1
    assert counts["doordash_transactions"] == 0

    UberEatsTransactionFactory(owner=client_owner)
    assert get_stat_counts(client_owner)["ubereats_transactions"] == 1
    cache.clear()
    assert get_stat_counts(client_owner)["ubereats_transactions"] == 2


@pytest.mark.django_db
def test_determine_import_status():
    assert determine_import_status(ImportLogFactory(finished_at=None)).label == "Running"
    assert determine_import_status(ImportLogFactory(error_count=2)).label == "Failed"
    assert determine_import_status(ImportLogFactory(state="partial_failure")).label == "Failed"
    assert determine_import_status(ImportLogFactory(unmatched_count=1)).needs_attention
    assert determine_import_status(ImportLogFactory(run_type="dry-run")).label == "Dry run"
    assert determine_import_status(ImportLogFactory()).label == "Success"


@pytest.mark.django_db
def test_recent_imports_and_warnings(client_owner):
    ImportLogFactory(owner=client_owner, source="doordash", unmatched_count=3)
    ImportLogFactory(owner=client_owner, source="grubhub")
    ImportLogFactory(source="grubhub", error_count=1)

    recent = get_recent_imports(owner=client_owner)
    assert {entry["source"] for entry in recent} == {"DoorDash", "Grubhub"}

    warnings = get_warning_items({"unmapped": 4}, recent)
    titles = [w["title"] for w in warnings]
    assert titles == ["Unmapped platform locations", "Import partial"]


@pytest.mark.django_db
def test_platform_coverage_flags_lagging_platform(client_owner):
    UberEatsTransactionFactory(owner=client_owner, business_date=datetime.date(2025, 10, 20))
    DoordashTransactionFactory(owner=client_owner, business_date=datetime.date(2025, 10, 6))
    ImportLogFactory(owner=client_owner, source="ubereats")

    coverage = {c["platform"]: c for c in get_platform_coverage(client_owner)}

    assert coverage["ubereats"]["latest_business_date"] == datetime.date(2025, 10, 20)
    assert coverage["ubereats"]["last_import"] is not None
    assert coverage["grubhub"]["latest_business_date"] is None
    assert coverage["doordash"]["last_import"] is None

    warnings = get_warning_items({"unmapped": 0}, [], list(coverage.values()))
    assert [w["title"] for w in warnings] == ["DoorDash data is behind"]
    assert "14 days" in warnings[0]["detail"]
