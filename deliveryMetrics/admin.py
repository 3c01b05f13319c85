"""Admin customizations for locations, platform transactions, and imports."""
from django.contrib import admin, messages

from .models import (
    CanonicalLocation,
    Client,
    DoordashTransaction,
    GrubhubTransaction,
    ImportLog,
    LocationMergeLog,
    UberEatsTransaction,
    UnmappedLocation,
)
from .utils.dashboard_metrics import determine_import_status
from .utils.locations import merge_locations


@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ("name", "created_at")
    search_fields = ("name",)


class PlatformMappingFilter(admin.SimpleListFilter):
    """Filter locations by whether they carry a given platform's store id."""
    title = "Platform mapping"
    parameter_name = "mapped_on"

    def lookups(self, request, model_admin):
        return (
            ("ubereats", "Has Uber Eats id"),
            ("doordash", "Has DoorDash id"),
            ("grubhub", "Has Grubhub id"),
            ("none", "No platform ids"),
        )

    def queryset(self, request, queryset):
        value = self.value()
        if value in {"ubereats", "doordash", "grubhub"}:
            field = f"{value}_store_id"
            return queryset.exclude(**{f"{field}__isnull": True}).exclude(**{field: ""})
        if value == "none":
            return queryset.filter(
                ubereats_store_id__isnull=True,
                doordash_store_id__isnull=True,
                grubhub_store_id__isnull=True,
            )
        return queryset


@admin.register(CanonicalLocation)
class CanonicalLocationAdmin(admin.ModelAdmin):
    list_display = (
        "canonical_name",
        "owner",
        "store_code",
        "city",
        "state",
        "ubereats_store_id",
        "doordash_store_id",
        "grubhub_store_id",
        "is_verified",
        "tag",
    )
    list_filter = ("owner", "is_verified", "tag", PlatformMappingFilter)
    search_fields = ("canonical_name", "store_code", "address", "city")
    actions = ["merge_into_first_selected"]
    fieldsets = (
        (None, {"fields": ("owner", "canonical_name", "store_code", "tag", "is_verified")}),
        ("Address", {"fields": ("address", ("city", "state", "zip_code"))}),
        (
            "Platform identifiers",
            {
                "fields": (
                    ("ubereats_store_id", "ubereats_name"),
                    ("doordash_store_id", "doordash_name"),
                    ("grubhub_store_id", "grubhub_name"),
                )
            },
        ),
    )

    @admin.action(description="Merge selected into the oldest location")
    def merge_into_first_selected(self, request, queryset):
        locations = list(queryset.order_by("created_at", "pk"))
        if len(locations) < 2:
            self.message_user(request, "Select at least two locations to merge.", messages.WARNING)
            return
        target, sources = locations[0], locations[1:]
        try:
            merge_log = merge_locations(target, sources, user=request.user, note="admin action")
        except ValueError as exc:
            self.message_user(request, str(exc), messages.ERROR)
            return
        self.message_user(
            request,
            f"Merged {len(sources)} location(s) into {target} ({merge_log.total_moved} transactions moved).",
            messages.SUCCESS,
        )


class TransactionAdmin(admin.ModelAdmin):
    list_filter = ("owner", "business_date")
    list_select_related = ("owner", "location")
    date_hierarchy = "business_date"
    raw_id_fields = ("location",)


@admin.register(UberEatsTransaction)
class UberEatsTransactionAdmin(TransactionAdmin):
    list_display = ("order_id", "date", "location_name", "location", "order_status", "sales_excl_tax", "net_payout")
    search_fields = ("order_id", "location_name")


@admin.register(DoordashTransaction)
class DoordashTransactionAdmin(TransactionAdmin):
    list_display = (
        "transaction_id",
        "transaction_date",
        "location_name",
        "location",
        "channel",
        "order_status",
        "sales_excl_tax",
        "net_total",
    )
    search_fields = ("transaction_id", "order_number", "location_name")


@admin.register(GrubhubTransaction)
class GrubhubTransactionAdmin(TransactionAdmin):
    list_display = (
        "transaction_id",
        "transaction_date",
        "location_name",
        "location",
        "transaction_type",
        "subtotal",
        "merchant_net_total",
    )
    search_fields = ("transaction_id", "order_number", "location_name")


@admin.register(ImportLog)
class ImportLogAdmin(admin.ModelAdmin):
    list_display = (
        "created_at",
        "source",
        "owner",
        "run_type",
        "filename",
        "rows_processed",
        "matched_count",
        "unmatched_count",
        "error_count",
        "status_label",
    )
    list_filter = ("source", "run_type", "state")
    readonly_fields = [field.name for field in ImportLog._meta.fields]

    @admin.display(description="Status")
    def status_label(self, obj):
        return determine_import_status(obj).label


@admin.register(UnmappedLocation)
class UnmappedLocationAdmin(admin.ModelAdmin):
    list_display = ("location_name", "platform", "owner", "seen_count", "last_reason", "resolved", "ignored", "last_seen")
    list_filter = ("platform", "resolved", "ignored", "owner")
    search_fields = ("location_name", "store_code")
    raw_id_fields = ("linked_location",)

    def save_model(self, request, obj, form, change):
        location = obj.linked_location
        if "linked_location" not in form.changed_data or location is None:
            super().save_model(request, obj, form, change)
            return

        obj.linked_location = None
        super().save_model(request, obj, form, change)
        try:
            moved = obj.mark_resolved(user=request.user, location=location)
        except ValueError as exc:
            self.message_user(request, str(exc), level=messages.ERROR)
            return
        self.message_user(
            request,
            f"Linked {obj.location_name!r} to {location}; {moved} transaction(s) moved out of the unmapped bucket.",
            level=messages.SUCCESS,
        )


@admin.register(LocationMergeLog)
class LocationMergeLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "owner", "target_name", "source_names", "merged_by")
    readonly_fields = [field.name for field in LocationMergeLog._meta.fields]
