import os
import django

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "core.settings")

# Only initialize once
if not django.apps.apps.ready:
    django.setup()

import pytest
from django.core.cache import cache

from deliveryMetrics.utils.platform_metrics import reset_doordash_status_warnings

from tests.factories import CanonicalLocationFactory, ClientFactory


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture(autouse=True)
def _reset_status_warnings():
    reset_doordash_status_warnings()
    yield
    reset_doordash_status_warnings()


@pytest.fixture
def client_owner(db):
    return ClientFactory(name="Capriotti's Franchise Group")


@pytest.fixture
def master_locations(client_owner):
    """A small Nevada master list: one coded store, one city-only, one street-named."""
    return {
        "nv067": CanonicalLocationFactory(
            owner=client_owner,
            store_code="NV067",
            canonical_name="Capriotti's Main St",
            address="1200 Main St",
            city="Las Vegas",
            state="NV",
        ),
        "henderson": CanonicalLocationFactory(
            owner=client_owner,
            store_code="NV101",
            canonical_name="Capriotti's Henderson",
            address="55 Sunset Rd",
            city="Henderson",
            state="NV",
        ),
        "reno": CanonicalLocationFactory(
            owner=client_owner,
            store_code="NV200",
            canonical_name="Capriotti's Reno Virginia",
            address="900 Virginia St",
            city="Reno",
            state="NV",
            doordash_store_id="DD-555",
        ),
    }


@pytest.fixture
def write_csv(tmp_path):
    """Write ``rows`` (first row is the header) to a CSV under tmp_path."""
    import csv

    def _write(name, rows, preamble=None):
        path = tmp_path / name
        with path.open("w", newline="", encoding="utf-8") as handle:
            writer = csv.writer(handle)
            if preamble:
                writer.writerow(preamble)
            writer.writerows(rows)
        return path

    return _write
