# deliveryMetrics/models.py

import re
from typing import Optional

from django.conf import settings
from django.db import models, transaction
from django.db.models import Q
from django.utils import timezone


# Helpers
PLATFORM_CHOICES = (
    ("ubereats", "Uber Eats"),
    ("doordash", "DoorDash"),
    ("grubhub", "Grubhub"),
)
PLATFORMS = tuple(code for code, _ in PLATFORM_CHOICES)

UNMAPPED_BUCKET_TAG = "unmapped_bucket"
UNMAPPED_BUCKET_NAME = "Unmapped Locations"

LOCATION_TAG_CHOICES = (
    ("corporate", "Corporate"),
    (UNMAPPED_BUCKET_TAG, "Unmapped bucket"),
)


def normalize_location_label(value) -> str:
    """Lowercase and collapse punctuation so near-identical strings group together."""
    raw = (value or "").strip().lower()
    cleaned = re.sub(r"[^a-z0-9\s]", " ", raw)
    return re.sub(r"\s+", " ", cleaned).strip()


class Client(models.Model):
    """Brand owner whose locations and transactions are tracked."""

    name = models.CharField(max_length=255, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("name",)

    def __str__(self):
        return self.name


class CanonicalLocationManager(models.Manager):
    def unmapped_bucket_for(self, owner: Client) -> "CanonicalLocation":
        """Return the owner's sentinel location, creating it on first use."""
        bucket, _ = self.get_or_create(
            owner=owner,
            tag=UNMAPPED_BUCKET_TAG,
            defaults={"canonical_name": UNMAPPED_BUCKET_NAME},
        )
        return bucket

    def for_owner(self, owner: Client):
        return self.filter(owner=owner).order_by("id")


class CanonicalLocation(models.Model):
    """Single source-of-truth record for a physical store."""

    owner = models.ForeignKey(Client, on_delete=models.CASCADE, related_name="locations")
    store_code = models.CharField(max_length=64, blank=True, null=True)
    canonical_name = models.CharField(max_length=255)
    address = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=128, blank=True)
    state = models.CharField(max_length=32, blank=True)
    zip_code = models.CharField(max_length=16, blank=True)

    ubereats_store_id = models.CharField(max_length=64, blank=True, null=True)
    doordash_store_id = models.CharField(max_length=64, blank=True, null=True)
    grubhub_store_id = models.CharField(max_length=64, blank=True, null=True)
    ubereats_name = models.CharField(max_length=255, blank=True, null=True)
    doordash_name = models.CharField(max_length=255, blank=True, null=True)
    grubhub_name = models.CharField(max_length=255, blank=True, null=True)

    is_verified = models.BooleanField(default=False)
    tag = models.CharField(max_length=32, choices=LOCATION_TAG_CHOICES, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    objects = CanonicalLocationManager()

    class Meta:
        ordering = ("owner__name", "canonical_name")
        constraints = [
            models.UniqueConstraint(
                fields=["owner"],
                condition=Q(tag=UNMAPPED_BUCKET_TAG),
                name="one_unmapped_bucket_per_owner",
            ),
        ]

    def __str__(self):
        if self.store_code:
            return f"{self.canonical_name} ({self.store_code})"
        return self.canonical_name

    @property
    def is_unmapped_bucket(self) -> bool:
        return self.tag == UNMAPPED_BUCKET_TAG

    def platform_identifier(self, platform: str) -> Optional[str]:
        return getattr(self, f"{platform}_store_id")

    def platform_display_name(self, platform: str) -> Optional[str]:
        return getattr(self, f"{platform}_name")


# ---------------------------------------------------------------------------
# Platform transactions
# ---------------------------------------------------------------------------

def _money_field():
    return models.DecimalField(max_digits=12, decimal_places=2, default=0)


class PlatformTransaction(models.Model):
    """Columns shared by every platform's transaction table."""

    owner = models.ForeignKey(Client, on_delete=models.CASCADE, related_name="+")
    location = models.ForeignKey(
        CanonicalLocation,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="+",
    )
    location_name = models.CharField(max_length=255, blank=True)
    business_date = models.DateField(null=True, blank=True, db_index=True)
    uploaded_at = models.DateTimeField(auto_now=True)

    platform = ""
    natural_key_fields: tuple[str, ...] = ()

    class Meta:
        abstract = True

    @classmethod
    def mutable_fields(cls) -> list[str]:
        """Every concrete column an upsert replaces on conflict."""
        skip = {"id", *cls.natural_key_fields}
        return [
            field.name
            for field in cls._meta.concrete_fields
            if field.name not in skip
        ]


class UberEatsTransaction(PlatformTransaction):
    order_id = models.CharField(max_length=128)
    workflow_id = models.CharField(max_length=128, blank=True)
    date = models.CharField(max_length=32, help_text="Native M/D/YY order date.")
    time = models.CharField(max_length=32, blank=True)
    order_status = models.CharField(max_length=64, blank=True, null=True)
    sales_excl_tax = _money_field()
    tax = _money_field()
    delivery_fee = _money_field()
    service_fee = _money_field()
    platform_fee = _money_field()
    offers_on_items = _money_field()
    delivery_offer_redemptions = _money_field()
    marketing_promo = models.CharField(max_length=255, blank=True, null=True)
    marketing_amount = _money_field()
    other_payments = _money_field()
    other_payments_description = models.CharField(max_length=255, blank=True, null=True)
    net_payout = _money_field()

    platform = "ubereats"
    natural_key_fields = ("owner", "order_id", "date")

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["owner", "order_id", "date"],
                name="ubereats_txn_natural_key",
            ),
        ]

    def __str__(self):
        return f"Uber Eats #{self.order_id} ({self.date})"


class DoordashTransaction(PlatformTransaction):
    transaction_id = models.CharField(max_length=128)
    order_number = models.CharField(max_length=128, blank=True)
    transaction_date = models.CharField(max_length=32)
    store_id = models.CharField(max_length=64, blank=True)
    channel = models.CharField(max_length=64, blank=True, null=True)
    transaction_type = models.CharField(max_length=64, blank=True, null=True)
    order_status = models.CharField(max_length=64, blank=True, null=True)
    sales_excl_tax = _money_field()
    taxes = _money_field()
    delivery_fees = _money_field()
    commission = _money_field()
    error_charges = _money_field()
    offers_on_items = _money_field()
    delivery_offer_redemptions = _money_field()
    marketing_credits = _money_field()
    third_party_contribution = _money_field()
    other_payments = _money_field()
    other_payments_description = models.CharField(max_length=255, blank=True, null=True)
    marketing_fees = _money_field()
    net_total = _money_field()

    platform = "doordash"
    natural_key_fields = ("owner", "transaction_id")

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["owner", "transaction_id"],
                name="doordash_txn_natural_key",
            ),
        ]

    def __str__(self):
        return f"DoorDash {self.transaction_id} ({self.transaction_date})"


class GrubhubTransaction(PlatformTransaction):
    transaction_id = models.CharField(max_length=128)
    order_number = models.CharField(max_length=128, blank=True)
    transaction_date = models.CharField(max_length=32)
    store_number = models.CharField(max_length=64, blank=True)
    street_address = models.CharField(max_length=255, blank=True)
    transaction_type = models.CharField(max_length=64, blank=True)
    order_channel = models.CharField(max_length=64, blank=True)
    fulfillment_type = models.CharField(max_length=64, blank=True)
    subtotal = _money_field()
    subtotal_sales_tax = _money_field()
    delivery_charge = _money_field()
    merchant_service_fee = _money_field()
    commission = _money_field()
    delivery_commission = _money_field()
    processing_fee = _money_field()
    merchant_funded_promotion = _money_field()
    merchant_net_total = _money_field()
    transaction_note = models.CharField(max_length=255, blank=True)
    customer_type = models.CharField(max_length=64, blank=True)

    platform = "grubhub"
    natural_key_fields = ("owner", "transaction_id")

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["owner", "transaction_id"],
                name="grubhub_txn_natural_key",
            ),
        ]

    def __str__(self):
        return f"Grubhub {self.transaction_id} ({self.transaction_date})"


TRANSACTION_MODELS = {
    "ubereats": UberEatsTransaction,
    "doordash": DoordashTransaction,
    "grubhub": GrubhubTransaction,
}


# ---------------------------------------------------------------------------
# Import bookkeeping
# ---------------------------------------------------------------------------

class ImportLog(models.Model):
    RUN_TYPE_CHOICES = [
        ("dry-run", "Dry Run"),
        ("live", "Live"),
    ]
    STATE_CHOICES = [
        ("pending", "Pending"),
        ("parsed", "Parsed"),
        ("locations_resolved", "Locations resolved"),
        ("upserted", "Upserted"),
        ("done", "Done"),
        ("partial_failure", "Partial failure"),
    ]

    source = models.CharField(max_length=50, choices=PLATFORM_CHOICES)
    run_type = models.CharField(max_length=20, choices=RUN_TYPE_CHOICES, default="dry-run")
    owner = models.ForeignKey(
        Client,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="import_logs",
    )
    filename = models.CharField(max_length=255, blank=True)
    state = models.CharField(max_length=32, choices=STATE_CHOICES, default="pending")
    created_at = models.DateTimeField(auto_now_add=True)
    started_at = models.DateTimeField(null=True, blank=True)
    finished_at = models.DateTimeField(null=True, blank=True)
    duration_seconds = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    rows_processed = models.PositiveIntegerField(default=0)
    matched_count = models.PositiveIntegerField(default=0)
    unmatched_count = models.PositiveIntegerField(default=0)
    skipped_count = models.PositiveIntegerField(default=0)
    error_count = models.PositiveIntegerField(default=0)
    summary = models.TextField(blank=True)
    log_output = models.TextField(blank=True, null=True)
    uploaded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="import_logs",
    )

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        timestamp = self.created_at.astimezone(timezone.get_current_timezone()) if self.created_at else None
        ts_display = timestamp.strftime("%Y-%m-%d %H:%M") if timestamp else "pending"
        return f"{self.get_source_display()} {self.get_run_type_display()} @ {ts_display}"


class UnmappedLocation(models.Model):
    """Platform location strings that fell through to the unmapped bucket."""

    owner = models.ForeignKey(Client, on_delete=models.CASCADE, related_name="unmapped_locations")
    platform = models.CharField(max_length=32, choices=PLATFORM_CHOICES)
    location_name = models.CharField(max_length=255)
    store_code = models.CharField(max_length=64, blank=True)
    normalized_name = models.CharField(max_length=255, editable=False)
    last_reason = models.CharField(max_length=64, blank=True)
    last_confidence = models.FloatField(default=0)
    seen_count = models.PositiveIntegerField(default=1)
    first_seen = models.DateTimeField(auto_now_add=True)
    last_seen = models.DateTimeField(auto_now=True)
    resolved = models.BooleanField(default=False)
    ignored = models.BooleanField(default=False)
    resolved_at = models.DateTimeField(null=True, blank=True)
    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="resolved_unmapped_locations",
    )
    linked_location = models.ForeignKey(
        CanonicalLocation,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="unmapped_links",
    )
    note = models.CharField(max_length=255, blank=True)

    class Meta:
        unique_together = ("owner", "platform", "normalized_name")
        ordering = ("-last_seen", "location_name")

    def __str__(self):
        return f"{self.get_platform_display()}: {self.location_name}"

    @property
    def is_resolved(self) -> bool:
        return self.resolved or self.ignored

    def mark_resolved(
        self,
        *,
        user=None,
        ignored: bool = False,
        location: Optional[CanonicalLocation] = None,
        note: str | None = None,
    ) -> int:
        """
        Close the entry and optionally link the location it belongs to.

        Linking makes the platform name resolve to that location on later
        imports and moves this name's rows out of the unmapped bucket.
        Returns the number of transactions moved.
        """
        location = None if ignored else location
        if location is not None and location.owner_id != self.owner_id:
            raise ValueError("Cannot link a location that belongs to a different owner.")
        if location is not None and location.is_unmapped_bucket:
            raise ValueError("Link the entry to a real location, not the unmapped bucket.")

        with transaction.atomic():
            self.resolved = not ignored
            self.ignored = ignored
            self.resolved_at = timezone.now()
            self.resolved_by = user
            self.linked_location = location
            update_fields = ["resolved", "ignored", "resolved_at", "resolved_by", "linked_location"]
            if note is not None:
                self.note = note
                update_fields.append("note")
            self.save(update_fields=update_fields)

            if location is None:
                return 0
            return self._apply_link(location)

    def _apply_link(self, location: CanonicalLocation) -> int:
        name_field = f"{self.platform}_name"
        if not getattr(location, name_field):
            setattr(location, name_field, self.location_name)
            location.save(update_fields=[name_field])

        bucket_rows = TRANSACTION_MODELS[self.platform].objects.filter(
            owner_id=self.owner_id,
            location__tag=UNMAPPED_BUCKET_TAG,
        )
        raw_names = bucket_rows.order_by().values_list("location_name", flat=True).distinct()
        same_name = [name for name in raw_names if normalize_location_label(name) == self.normalized_name]
        if not same_name:
            return 0
        return bucket_rows.filter(location_name__in=same_name).update(location=location)

    def reopen(self) -> None:
        self.resolved = False
        self.ignored = False
        self.resolved_at = None
        self.resolved_by = None
        self.linked_location = None
        self.save(
            update_fields=[
                "resolved",
                "ignored",
                "resolved_at",
                "resolved_by",
                "linked_location",
            ]
        )

    def save(self, *args, **kwargs):
        self.normalized_name = normalize_location_label(self.location_name)
        super().save(*args, **kwargs)


class LocationMergeLog(models.Model):
    """Audit trail for collapsing duplicate canonical locations."""

    owner = models.ForeignKey(Client, on_delete=models.CASCADE, related_name="merge_logs")
    target = models.ForeignKey(
        CanonicalLocation,
        null=True,
        on_delete=models.SET_NULL,
        related_name="merge_logs",
    )
    target_name = models.CharField(max_length=255)
    source_ids = models.JSONField(default=list)
    source_names = models.JSONField(default=list)
    transactions_moved = models.JSONField(default=dict)
    merged_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="location_merges",
    )
    note = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return f"Merged {len(self.source_ids)} into {self.target_name}"

    @property
    def total_moved(self) -> int:
        return sum(self.transactions_moved.values())
