"""
grubhub_importer.py
-------------------
Grubhub transaction importer.

Grubhub rarely embeds a store code in the display name; ``store_number`` is
passed to the resolver as the exact-match fallback key instead.
"""

from deliveryMetrics.models import GrubhubTransaction
from importers._base_Importer import BaseImporter, parse_money

MONEY_FIELDS = (
    "subtotal",
    "subtotal_sales_tax",
    "delivery_charge",
    "merchant_service_fee",
    "commission",
    "delivery_commission",
    "processing_fee",
    "merchant_funded_promotion",
    "merchant_net_total",
)


class GrubhubImporter(BaseImporter):
    platform = "grubhub"
    model = GrubhubTransaction

    def parse_row(self, row: dict):
        location_name = row.get("location_name", "")
        transaction_id = row.get("transaction_id", "")
        if not location_name or not transaction_id:
            return None

        native_date = row.get("transaction_date", "")
        store_number = row.get("store_code", "")
        record = {
            "location_name": location_name,
            "_store_code": store_number,
            "store_number": store_number,
            "street_address": row.get("street_address", ""),
            "transaction_id": transaction_id,
            "order_number": row.get("order_number", ""),
            "transaction_date": native_date,
            "business_date": self._business_date(native_date),
            "transaction_type": row.get("transaction_type", ""),
            "order_channel": row.get("order_channel", ""),
            "fulfillment_type": row.get("fulfillment_type", ""),
            "transaction_note": row.get("transaction_note", ""),
            "customer_type": row.get("customer_type", ""),
        }
        for field in MONEY_FIELDS:
            record[field] = parse_money(row.get(field))
        return record
