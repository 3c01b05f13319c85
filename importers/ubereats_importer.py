"""
ubereats_importer.py
--------------------
Uber Eats payment-report importer.

Orders are keyed by (owner, order id, order date). Older exports only carry a
workflow id, which then stands in for the order id. Dates stay in the native
``M/D/YY`` form; ``business_date`` holds the normalized calendar day.
"""

from deliveryMetrics.models import UberEatsTransaction
from importers._base_Importer import BaseImporter, parse_money

MONEY_FIELDS = (
    "sales_excl_tax",
    "tax",
    "delivery_fee",
    "service_fee",
    "platform_fee",
    "offers_on_items",
    "delivery_offer_redemptions",
    "marketing_amount",
    "other_payments",
    "net_payout",
)


class UberEatsImporter(BaseImporter):
    platform = "ubereats"
    model = UberEatsTransaction

    def parse_row(self, row: dict):
        location_name = row.get("location_name", "")
        order_id = row.get("order_id") or row.get("workflow_id", "")
        if not location_name or not order_id:
            return None

        native_date = row.get("date", "")
        record = {
            "location_name": location_name,
            "_store_code": row.get("store_code", ""),
            "order_id": order_id,
            "workflow_id": row.get("workflow_id", ""),
            "date": native_date,
            "time": row.get("time", ""),
            "business_date": self._business_date(native_date),
            "order_status": row.get("order_status") or None,
            "marketing_promo": row.get("marketing_promo") or None,
            "other_payments_description": row.get("other_payments_description") or None,
        }
        for field in MONEY_FIELDS:
            record[field] = parse_money(row.get(field))
        return record
