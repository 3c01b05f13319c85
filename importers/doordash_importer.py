"""
doordash_importer.py
--------------------
DoorDash transaction-report importer.

One order can produce several transaction rows (refunds, adjustments), each
with its own DoorDash transaction id, so the natural key is
(owner, transaction id). The "Store ID" column doubles as an exact-match key
for the resolver.
"""

from deliveryMetrics.models import DoordashTransaction
from importers._base_Importer import BaseImporter, parse_money

MONEY_FIELDS = (
    "sales_excl_tax",
    "taxes",
    "delivery_fees",
    "commission",
    "error_charges",
    "offers_on_items",
    "delivery_offer_redemptions",
    "marketing_credits",
    "third_party_contribution",
    "other_payments",
    "marketing_fees",
    "net_total",
)


class DoordashImporter(BaseImporter):
    platform = "doordash"
    model = DoordashTransaction

    def parse_row(self, row: dict):
        location_name = row.get("location_name", "")
        transaction_id = row.get("transaction_id", "")
        if not location_name or not transaction_id:
            return None

        native_date = row.get("transaction_date", "")
        store_id = row.get("store_code", "")
        record = {
            "location_name": location_name,
            "_store_code": store_id,
            "store_id": store_id,
            "transaction_id": transaction_id,
            "order_number": row.get("order_number", ""),
            "transaction_date": native_date,
            "business_date": self._business_date(native_date),
            "channel": row.get("channel") or None,
            "transaction_type": row.get("transaction_type") or None,
            "order_status": row.get("order_status") or None,
            "other_payments_description": row.get("other_payments_description") or None,
        }
        for field in MONEY_FIELDS:
            record[field] = parse_money(row.get(field))
        return record
