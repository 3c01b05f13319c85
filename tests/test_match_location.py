import re

import pytest

from deliveryMetrics.models import CanonicalLocation, UnmappedLocation
from importers._match_location import (
    METHOD_ADDRESS_CITY,
    METHOD_CROSSREF,
    METHOD_KNOWN_NAME,
    METHOD_STORE_ID,
    METHOD_UNMATCHED,
    CrossReferenceEntry,
    LocationResolver,
    ResolveContext,
    ResolverConfig,
    build_location_snapshot,
    extract_cities,
    extract_store_code,
    extract_street_keywords,
    resolve,
)

BRAND_RE = re.compile(ResolverConfig().brand_pattern, re.IGNORECASE)


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def test_extract_store_code_reads_parenthesized_code():
    assert extract_store_code("Capriotti's Main St (nv067)") == "NV067"
    assert extract_store_code("Capriotti's Main St") is None
    assert extract_store_code(None) is None


def test_extract_cities_prefers_text_after_dash():
    assert extract_cities("Capriotti's Sandwich Shop - Henderson", BRAND_RE) == ["henderson"]


def test_extract_cities_ignores_brand_shop_suffix():
    assert extract_cities("Capriotti's Sandwich Shop", BRAND_RE) == []


def test_extract_street_keywords_keeps_street_and_preceding_word():
    keywords = extract_street_keywords("Capriotti's Sunset Road (NV101)", BRAND_RE)
    assert "road" in keywords
    assert "sunset" in keywords


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

@pytest.mark.django_db
def test_embedded_code_wins_over_better_text_match(master_locations, client_owner):
    snapshot = build_location_snapshot(client_owner)

    # Name reads like Henderson but carries the Main St code.
    candidate = resolve("Capriotti's Henderson (NV067)", "ubereats", snapshot)

    assert candidate.match_method == METHOD_STORE_ID
    assert candidate.confidence == 1.0
    assert candidate.matched_location_id == master_locations["nv067"].pk
    assert candidate.extracted_code == "NV067"


@pytest.mark.django_db
def test_main_street_code_resolves_exactly(master_locations, client_owner):
    snapshot = build_location_snapshot(client_owner)

    candidate = resolve("Capriotti's Main St (NV067)", "ubereats", snapshot)

    assert candidate.match_method == METHOD_STORE_ID
    assert candidate.matched_location_id == master_locations["nv067"].pk


@pytest.mark.django_db
def test_platform_identifier_matches_before_master_code(master_locations, client_owner):
    snapshot = build_location_snapshot(client_owner)

    candidate = resolve("Anything", "doordash", snapshot, ResolveContext(store_code="dd-555"))

    assert candidate.match_method == METHOD_STORE_ID
    assert candidate.matched_location_id == master_locations["reno"].pk


@pytest.mark.django_db
def test_recorded_display_name_resolves_as_known_name(master_locations, client_owner):
    reno = master_locations["reno"]
    reno.ubereats_name = "Weird Kiosk 9"
    reno.save()
    snapshot = build_location_snapshot(client_owner)

    candidate = resolve("weird  kiosk-9", "ubereats", snapshot)

    assert candidate.match_method == METHOD_KNOWN_NAME
    assert candidate.confidence == 1.0
    assert candidate.matched_location_id == reno.pk
    # display names are per platform
    assert resolve("Weird Kiosk 9", "grubhub", snapshot).match_method == METHOD_UNMATCHED


@pytest.mark.django_db
def test_linked_unmapped_names_become_aliases(master_locations, client_owner):
    henderson = master_locations["henderson"]
    henderson.grubhub_name = "Capriotti's Sandwich Shop - Henderson"
    henderson.save()
    UnmappedLocation.objects.create(
        owner=client_owner,
        platform="grubhub",
        location_name="Henderson Ghost Kitchen",
        resolved=True,
        linked_location=henderson,
    )
    UnmappedLocation.objects.create(owner=client_owner, platform="grubhub", location_name="Open Entry")

    snapshot = build_location_snapshot(client_owner)
    record = next(r for r in snapshot if r.id == henderson.pk)

    assert record.aliases == (("grubhub", "henderson ghost kitchen"),)
    candidate = resolve("Henderson Ghost Kitchen", "grubhub", snapshot)
    assert candidate.match_method == METHOD_KNOWN_NAME
    assert candidate.matched_location_id == henderson.pk
    assert resolve("Open Entry", "grubhub", snapshot).match_method == METHOD_UNMATCHED


@pytest.mark.django_db
def test_store_code_still_beats_known_name(master_locations, client_owner):
    reno = master_locations["reno"]
    reno.ubereats_name = "Capriotti's Main St (NV067)"
    reno.save()
    snapshot = build_location_snapshot(client_owner)

    candidate = resolve("Capriotti's Main St (NV067)", "ubereats", snapshot)

    assert candidate.match_method == METHOD_STORE_ID
    assert candidate.matched_location_id == master_locations["nv067"].pk


@pytest.mark.django_db
def test_city_and_name_score_accepts_dash_city(master_locations, client_owner):
    snapshot = build_location_snapshot(client_owner)

    candidate = resolve("Capriotti's Sandwich Shop - Henderson", "grubhub", snapshot)

    assert candidate.match_method == METHOD_ADDRESS_CITY
    assert candidate.matched_location_id == master_locations["henderson"].pk
    # city 0.5 + identical cleaned name 1.0 * 0.3
    assert candidate.confidence == pytest.approx(0.8)


@pytest.mark.django_db
def test_unrecognized_name_is_unmatched(master_locations, client_owner):
    snapshot = build_location_snapshot(client_owner)

    candidate = resolve("Totally Different Place", "ubereats", snapshot)

    assert candidate.match_method == METHOD_UNMATCHED
    assert candidate.matched_location_id is None
    assert candidate.confidence == 0.0
    assert not candidate.is_match


@pytest.mark.django_db
def test_empty_name_is_unmatched(master_locations, client_owner):
    snapshot = build_location_snapshot(client_owner)

    assert resolve("", "ubereats", snapshot).match_method == METHOD_UNMATCHED
    assert resolve(None, "ubereats", snapshot).match_method == METHOD_UNMATCHED


@pytest.mark.django_db
def test_unmapped_bucket_is_never_a_candidate(master_locations, client_owner):
    CanonicalLocation.objects.unmapped_bucket_for(client_owner)
    snapshot = build_location_snapshot(client_owner)

    candidate = resolve("Unmapped Locations", "ubereats", snapshot)

    assert candidate.match_method == METHOD_UNMATCHED


@pytest.mark.django_db
def test_crossref_resolves_name_without_code(master_locations, client_owner):
    snapshot = build_location_snapshot(client_owner)
    context = ResolveContext(
        crossref=(CrossReferenceEntry(external_code="DD-555", name="Capriotti's Downtown Reno"),)
    )

    candidate = resolve("Capriotti's Downtown", "doordash", snapshot, context)

    assert candidate.match_method == METHOD_CROSSREF
    assert candidate.confidence == pytest.approx(0.85)
    assert candidate.matched_location_id == master_locations["reno"].pk


@pytest.mark.django_db
def test_resolution_is_deterministic(master_locations, client_owner):
    snapshot = build_location_snapshot(client_owner)
    resolver = LocationResolver()

    first = resolver.resolve("Capriotti's Sandwich Shop - Henderson", "grubhub", snapshot)
    second = resolver.resolve("Capriotti's Sandwich Shop - Henderson", "grubhub", snapshot)

    assert first == second


@pytest.mark.django_db
def test_threshold_comes_from_settings(settings, master_locations, client_owner):
    settings.LOCATION_RESOLVER = {**settings.LOCATION_RESOLVER, "accept_threshold": 0.95}
    snapshot = build_location_snapshot(client_owner)

    candidate = LocationResolver().resolve("Capriotti's Sandwich Shop - Henderson", "grubhub", snapshot)

    assert candidate.match_method == METHOD_UNMATCHED


@pytest.mark.django_db
def test_similarity_strategy_is_injectable(master_locations, client_owner):
    snapshot = build_location_snapshot(client_owner)
    resolver = LocationResolver(similarity=lambda a, b: 0.0)

    # Without the name component the city alone still clears the threshold.
    candidate = resolver.resolve("Capriotti's Sandwich Shop - Henderson", "grubhub", snapshot)

    assert candidate.matched_location_id == master_locations["henderson"].pk
    assert candidate.confidence == pytest.approx(0.5)


@pytest.mark.django_db
def test_rank_candidates_orders_by_score(master_locations, client_owner):
    snapshot = build_location_snapshot(client_owner)

    ranked = LocationResolver().rank_candidates("Capriotti's - Henderson", snapshot, limit=2)

    assert ranked[0][0].id == master_locations["henderson"].pk
    assert len(ranked) <= 2
