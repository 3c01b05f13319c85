from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


def money():
    return models.DecimalField(decimal_places=2, default=0, max_digits=12)


def shared_transaction_fields():
    return [
        ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
        ("location_name", models.CharField(blank=True, max_length=255)),
        ("business_date", models.DateField(blank=True, db_index=True, null=True)),
        ("uploaded_at", models.DateTimeField(auto_now=True)),
        (
            "owner",
            models.ForeignKey(
                on_delete=django.db.models.deletion.CASCADE,
                related_name="+",
                to="deliveryMetrics.client",
            ),
        ),
        (
            "location",
            models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.PROTECT,
                related_name="+",
                to="deliveryMetrics.canonicallocation",
            ),
        ),
    ]


PLATFORM_CHOICES = [("ubereats", "Uber Eats"), ("doordash", "DoorDash"), ("grubhub", "Grubhub")]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Client",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255, unique=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"ordering": ("name",)},
        ),
        migrations.CreateModel(
            name="CanonicalLocation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("store_code", models.CharField(blank=True, max_length=64, null=True)),
                ("canonical_name", models.CharField(max_length=255)),
                ("address", models.CharField(blank=True, max_length=255)),
                ("city", models.CharField(blank=True, max_length=128)),
                ("state", models.CharField(blank=True, max_length=32)),
                ("zip_code", models.CharField(blank=True, max_length=16)),
                ("ubereats_store_id", models.CharField(blank=True, max_length=64, null=True)),
                ("doordash_store_id", models.CharField(blank=True, max_length=64, null=True)),
                ("grubhub_store_id", models.CharField(blank=True, max_length=64, null=True)),
                ("ubereats_name", models.CharField(blank=True, max_length=255, null=True)),
                ("doordash_name", models.CharField(blank=True, max_length=255, null=True)),
                ("grubhub_name", models.CharField(blank=True, max_length=255, null=True)),
                ("is_verified", models.BooleanField(default=False)),
                (
                    "tag",
                    models.CharField(
                        blank=True,
                        choices=[("corporate", "Corporate"), ("unmapped_bucket", "Unmapped bucket")],
                        default="",
                        max_length=32,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "owner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="locations",
                        to="deliveryMetrics.client",
                    ),
                ),
            ],
            options={"ordering": ("owner__name", "canonical_name")},
        ),
        migrations.AddConstraint(
            model_name="canonicallocation",
            constraint=models.UniqueConstraint(
                condition=models.Q(("tag", "unmapped_bucket")),
                fields=("owner",),
                name="one_unmapped_bucket_per_owner",
            ),
        ),
        migrations.CreateModel(
            name="UberEatsTransaction",
            fields=shared_transaction_fields()
            + [
                ("order_id", models.CharField(max_length=128)),
                ("workflow_id", models.CharField(blank=True, max_length=128)),
                ("date", models.CharField(help_text="Native M/D/YY order date.", max_length=32)),
                ("time", models.CharField(blank=True, max_length=32)),
                ("order_status", models.CharField(blank=True, max_length=64, null=True)),
                ("sales_excl_tax", money()),
                ("tax", money()),
                ("delivery_fee", money()),
                ("service_fee", money()),
                ("platform_fee", money()),
                ("offers_on_items", money()),
                ("delivery_offer_redemptions", money()),
                ("marketing_promo", models.CharField(blank=True, max_length=255, null=True)),
                ("marketing_amount", money()),
                ("other_payments", money()),
                ("other_payments_description", models.CharField(blank=True, max_length=255, null=True)),
                ("net_payout", money()),
            ],
        ),
        migrations.AddConstraint(
            model_name="ubereatstransaction",
            constraint=models.UniqueConstraint(
                fields=("owner", "order_id", "date"),
                name="ubereats_txn_natural_key",
            ),
        ),
        migrations.CreateModel(
            name="DoordashTransaction",
            fields=shared_transaction_fields()
            + [
                ("transaction_id", models.CharField(max_length=128)),
                ("order_number", models.CharField(blank=True, max_length=128)),
                ("transaction_date", models.CharField(max_length=32)),
                ("store_id", models.CharField(blank=True, max_length=64)),
                ("channel", models.CharField(blank=True, max_length=64, null=True)),
                ("transaction_type", models.CharField(blank=True, max_length=64, null=True)),
                ("order_status", models.CharField(blank=True, max_length=64, null=True)),
                ("sales_excl_tax", money()),
                ("taxes", money()),
                ("delivery_fees", money()),
                ("commission", money()),
                ("error_charges", money()),
                ("offers_on_items", money()),
                ("delivery_offer_redemptions", money()),
                ("marketing_credits", money()),
                ("third_party_contribution", money()),
                ("other_payments", money()),
                ("other_payments_description", models.CharField(blank=True, max_length=255, null=True)),
                ("marketing_fees", money()),
                ("net_total", money()),
            ],
        ),
        migrations.AddConstraint(
            model_name="doordashtransaction",
            constraint=models.UniqueConstraint(
                fields=("owner", "transaction_id"),
                name="doordash_txn_natural_key",
            ),
        ),
        migrations.CreateModel(
            name="GrubhubTransaction",
            fields=shared_transaction_fields()
            + [
                ("transaction_id", models.CharField(max_length=128)),
                ("order_number", models.CharField(blank=True, max_length=128)),
                ("transaction_date", models.CharField(max_length=32)),
                ("store_number", models.CharField(blank=True, max_length=64)),
                ("street_address", models.CharField(blank=True, max_length=255)),
                ("transaction_type", models.CharField(blank=True, max_length=64)),
                ("order_channel", models.CharField(blank=True, max_length=64)),
                ("fulfillment_type", models.CharField(blank=True, max_length=64)),
                ("subtotal", money()),
                ("subtotal_sales_tax", money()),
                ("delivery_charge", money()),
                ("merchant_service_fee", money()),
                ("commission", money()),
                ("delivery_commission", money()),
                ("processing_fee", money()),
                ("merchant_funded_promotion", money()),
                ("merchant_net_total", money()),
                ("transaction_note", models.CharField(blank=True, max_length=255)),
                ("customer_type", models.CharField(blank=True, max_length=64)),
            ],
        ),
        migrations.AddConstraint(
            model_name="grubhubtransaction",
            constraint=models.UniqueConstraint(
                fields=("owner", "transaction_id"),
                name="grubhub_txn_natural_key",
            ),
        ),
        migrations.CreateModel(
            name="ImportLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("source", models.CharField(choices=PLATFORM_CHOICES, max_length=50)),
                (
                    "run_type",
                    models.CharField(
                        choices=[("dry-run", "Dry Run"), ("live", "Live")],
                        default="dry-run",
                        max_length=20,
                    ),
                ),
                ("filename", models.CharField(blank=True, max_length=255)),
                (
                    "state",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("parsed", "Parsed"),
                            ("locations_resolved", "Locations resolved"),
                            ("upserted", "Upserted"),
                            ("done", "Done"),
                            ("partial_failure", "Partial failure"),
                        ],
                        default="pending",
                        max_length=32,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("finished_at", models.DateTimeField(blank=True, null=True)),
                ("duration_seconds", models.DecimalField(blank=True, decimal_places=2, max_digits=8, null=True)),
                ("rows_processed", models.PositiveIntegerField(default=0)),
                ("matched_count", models.PositiveIntegerField(default=0)),
                ("unmatched_count", models.PositiveIntegerField(default=0)),
                ("skipped_count", models.PositiveIntegerField(default=0)),
                ("error_count", models.PositiveIntegerField(default=0)),
                ("summary", models.TextField(blank=True)),
                ("log_output", models.TextField(blank=True, null=True)),
                (
                    "owner",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="import_logs",
                        to="deliveryMetrics.client",
                    ),
                ),
                (
                    "uploaded_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="import_logs",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"ordering": ("-created_at",)},
        ),
        migrations.CreateModel(
            name="UnmappedLocation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("platform", models.CharField(choices=PLATFORM_CHOICES, max_length=32)),
                ("location_name", models.CharField(max_length=255)),
                ("store_code", models.CharField(blank=True, max_length=64)),
                ("normalized_name", models.CharField(editable=False, max_length=255)),
                ("last_reason", models.CharField(blank=True, max_length=64)),
                ("last_confidence", models.FloatField(default=0)),
                ("seen_count", models.PositiveIntegerField(default=1)),
                ("first_seen", models.DateTimeField(auto_now_add=True)),
                ("last_seen", models.DateTimeField(auto_now=True)),
                ("resolved", models.BooleanField(default=False)),
                ("ignored", models.BooleanField(default=False)),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                ("note", models.CharField(blank=True, max_length=255)),
                (
                    "owner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="unmapped_locations",
                        to="deliveryMetrics.client",
                    ),
                ),
                (
                    "resolved_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="resolved_unmapped_locations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "linked_location",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="unmapped_links",
                        to="deliveryMetrics.canonicallocation",
                    ),
                ),
            ],
            options={
                "ordering": ("-last_seen", "location_name"),
                "unique_together": {("owner", "platform", "normalized_name")},
            },
        ),
        migrations.CreateModel(
            name="LocationMergeLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("target_name", models.CharField(max_length=255)),
                ("source_ids", models.JSONField(default=list)),
                ("source_names", models.JSONField(default=list)),
                ("transactions_moved", models.JSONField(default=dict)),
                ("note", models.CharField(blank=True, max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "owner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="merge_logs",
                        to="deliveryMetrics.client",
                    ),
                ),
                (
                    "target",
                    models.ForeignKey(
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="merge_logs",
                        to="deliveryMetrics.canonicallocation",
                    ),
                ),
                (
                    "merged_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="location_merges",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"ordering": ("-created_at",)},
        ),
    ]
