import pytest

from deliveryMetrics.models import (
    CanonicalLocation,
    DoordashTransaction,
    LocationMergeLog,
    UberEatsTransaction,
)
from deliveryMetrics.utils.locations import (
    get_duplicate_locations,
    location_match_suggestions,
    merge_locations,
)

from tests.factories import (
    CanonicalLocationFactory,
    ClientFactory,
    DoordashTransactionFactory,
    UberEatsTransactionFactory,
    UnmappedLocationFactory,
)


@pytest.mark.django_db
def test_merge_moves_transactions_and_deletes_sources(client_owner, django_user_model):
    user = django_user_model.objects.create_user(username="merger", password="x")
    target = CanonicalLocationFactory(owner=client_owner, canonical_name="Capriotti's Reno")
    source = CanonicalLocationFactory(
        owner=client_owner,
        canonical_name="Capriotti's Reno",
        doordash_store_id="DD-555",
        doordash_name="Capriotti's (Reno)",
        is_verified=True,
    )
    UberEatsTransactionFactory.create_batch(2, owner=client_owner, location=source)
    DoordashTransactionFactory(owner=client_owner, location=source)
    UberEatsTransactionFactory(owner=client_owner, location=target)

    merge_log = merge_locations(target, [source], user=user, note="duplicate from onboarding")

    assert not CanonicalLocation.objects.filter(pk=source.pk).exists()
    assert UberEatsTransaction.objects.filter(location=target).count() == 3
    assert DoordashTransaction.objects.filter(location=target).count() == 1
    target.refresh_from_db()
    assert target.doordash_store_id == "DD-555"
    assert target.doordash_name == "Capriotti's (Reno)"
    assert target.is_verified is True

    assert LocationMergeLog.objects.count() == 1
    assert merge_log.source_ids == [source.pk]
    assert merge_log.transactions_moved == {"ubereats": 2, "doordash": 1, "grubhub": 0}
    assert merge_log.total_moved == 3
    assert merge_log.merged_by == user


@pytest.mark.django_db
def test_merge_keeps_existing_target_identifiers(client_owner):
    target = CanonicalLocationFactory(owner=client_owner, ubereats_store_id="UE-1")
    source = CanonicalLocationFactory(owner=client_owner, ubereats_store_id="UE-2")

    merge_locations(target, [source])

    target.refresh_from_db()
    assert target.ubereats_store_id == "UE-1"


@pytest.mark.django_db
def test_merge_relinks_unmapped_entries(client_owner):
    target = CanonicalLocationFactory(owner=client_owner)
    source = CanonicalLocationFactory(owner=client_owner)
    entry = UnmappedLocationFactory(owner=client_owner, linked_location=source)

    merge_locations(target, [source])

    entry.refresh_from_db()
    assert entry.linked_location == target


@pytest.mark.django_db
def test_merge_rejects_invalid_requests(client_owner):
    target = CanonicalLocationFactory(owner=client_owner)
    foreign = CanonicalLocationFactory(owner=ClientFactory(name="Someone Else"))
    bucket = CanonicalLocation.objects.unmapped_bucket_for(client_owner)

    with pytest.raises(ValueError):
        merge_locations(target, [])
    with pytest.raises(ValueError):
        merge_locations(target, [target])
    with pytest.raises(ValueError):
        merge_locations(target, [foreign])
    with pytest.raises(ValueError):
        merge_locations(target, [bucket])

    assert CanonicalLocation.objects.filter(pk=foreign.pk).exists()
    assert LocationMergeLog.objects.count() == 0


@pytest.mark.django_db
def test_get_duplicate_locations_groups_by_owner_and_name(client_owner):
    first = CanonicalLocationFactory(owner=client_owner, canonical_name="Capriotti's Reno")
    second = CanonicalLocationFactory(owner=client_owner, canonical_name="capriotti's reno")
    CanonicalLocationFactory(owner=client_owner, canonical_name="Capriotti's Henderson")
    CanonicalLocationFactory(owner=ClientFactory(name="Other"), canonical_name="Capriotti's Reno")

    groups = get_duplicate_locations(client_owner)

    assert len(groups) == 1
    assert groups[0]["count"] == 2
    assert [loc.pk for loc in groups[0]["locations"]] == [first.pk, second.pk]
    assert len(get_duplicate_locations()) == 1


@pytest.mark.django_db
def test_location_match_suggestions_rank_open_entries(master_locations, client_owner):
    UnmappedLocationFactory(owner=client_owner, platform="grubhub", location_name="Capriotti's - Henderson")
    UnmappedLocationFactory(owner=client_owner, location_name="Closed Entry", resolved=True)

    suggestions = location_match_suggestions(client_owner)

    assert len(suggestions) == 1
    assert suggestions[0]["unmapped"].location_name == "Capriotti's - Henderson"
    assert suggestions[0]["candidates"][0]["location"] == master_locations["henderson"]
    assert suggestions[0]["candidates"][0]["score"] == pytest.approx(0.8)
