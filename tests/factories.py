import datetime
from decimal import Decimal

import factory
from django.utils import timezone

from deliveryMetrics.models import (
    CanonicalLocation,
    Client,
    DoordashTransaction,
    GrubhubTransaction,
    ImportLog,
    UberEatsTransaction,
    UnmappedLocation,
)


class ClientFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Client
        django_get_or_create = ("name",)

    name = factory.Sequence(lambda n: f"Client {n}")


class CanonicalLocationFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = CanonicalLocation

    owner = factory.SubFactory(ClientFactory)
    store_code = factory.Sequence(lambda n: f"ST{n:03d}")
    canonical_name = factory.Sequence(lambda n: f"Store {n}")
    city = "Las Vegas"
    state = "NV"


class UberEatsTransactionFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = UberEatsTransaction

    owner = factory.SubFactory(ClientFactory)
    location = None
    location_name = "Capriotti's Main St (NV067)"
    order_id = factory.Sequence(lambda n: f"UE-{n:05d}")
    date = "10/6/25"
    business_date = datetime.date(2025, 10, 6)
    order_status = "Completed"
    sales_excl_tax = Decimal("20.00")
    net_payout = Decimal("15.00")


class DoordashTransactionFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = DoordashTransaction

    owner = factory.SubFactory(ClientFactory)
    location = None
    location_name = "Capriotti's Reno"
    transaction_id = factory.Sequence(lambda n: f"DD-{n:05d}")
    transaction_date = "2025-10-06"
    business_date = datetime.date(2025, 10, 6)
    channel = "Marketplace"
    order_status = "Delivered"
    sales_excl_tax = Decimal("20.00")
    net_total = Decimal("15.00")


class GrubhubTransactionFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = GrubhubTransaction

    owner = factory.SubFactory(ClientFactory)
    location = None
    location_name = "Capriotti's Henderson"
    transaction_id = factory.Sequence(lambda n: f"GH-{n:05d}")
    transaction_date = "10/6/2025"
    business_date = datetime.date(2025, 10, 6)
    transaction_type = "Prepaid Order"
    subtotal = Decimal("20.00")
    merchant_net_total = Decimal("15.00")


class ImportLogFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = ImportLog

    source = "ubereats"
    run_type = "live"
    owner = factory.SubFactory(ClientFactory)
    filename = factory.Sequence(lambda n: f"export_{n}.csv")
    state = "done"
    started_at = factory.LazyFunction(timezone.now)
    finished_at = factory.LazyFunction(timezone.now)
    rows_processed = 10
    matched_count = 10


class UnmappedLocationFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = UnmappedLocation

    owner = factory.SubFactory(ClientFactory)
    platform = "ubereats"
    location_name = factory.Sequence(lambda n: f"Mystery Store {n}")
    last_reason = "unmatched"
