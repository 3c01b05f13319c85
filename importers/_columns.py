"""
_columns.py
-----------
CSV reading and header normalization for platform exports.

Each platform lists, per logical field, the header spellings seen across
export versions. Rows are mapped to that canonical shape once, at read time,
so importers never look at raw header strings.
"""

import csv
import re
from pathlib import Path
from typing import Iterator

from importers._match_location import CrossReferenceEntry
from importers.errors import ParseFailure

DESCRIPTION_ROW_RE = re.compile(
    r"\b(as per|whether it|either|mode of|platform from which)\b",
    re.IGNORECASE,
)

UBEREATS_COLUMNS: dict[str, tuple[str, ...]] = {
    "location_name": ("Store Name", "Location", "Store_Name", "store_name"),
    "store_code": ("Store ID", "Store_ID", "store_id"),
    "order_id": ("Order ID", "Order_ID", "order_id"),
    "workflow_id": ("Workflow ID", "Workflow_ID", "workflow_id"),
    "date": ("Order Date", "Date", "Order_Date", "order_date"),
    "time": ("Order Accept Time", "Time", "Order_Accept_Time", "order_accept_time"),
    "order_status": ("Order Status", "Order_Status", "order_status"),
    "sales_excl_tax": ("Sales (excl. tax)", "Sales_excl_tax", "sales_excl_tax"),
    "tax": ("Tax on Sales", "Tax", "Tax_on_Sales", "tax_on_sales"),
    "delivery_fee": ("Delivery Fee", "Delivery_Fee", "delivery_fee"),
    "service_fee": ("Service Fee", "Service_Fee", "service_fee"),
    "platform_fee": ("Marketplace Fee", "Platform_Fee", "Platform Fee", "marketplace_fee"),
    "offers_on_items": ("Offers on items (incl. tax)", "Offers_on_items", "offers_on_items"),
    "delivery_offer_redemptions": (
        "Delivery Offer Redemptions (incl. tax)",
        "Delivery_Offer_Redemptions",
        "delivery_offer_redemptions",
    ),
    "marketing_promo": ("Marketing Promotion", "Marketing_Promo", "marketing_promotion"),
    "marketing_amount": ("Marketing Adjustment", "Marketing_Amount", "marketing_adjustment"),
    "other_payments": ("Other payments", "Other_payments", "other_payments"),
    "other_payments_description": (
        "Other payments description",
        "Other_payments_description",
        "other_payments_description",
    ),
    "net_payout": ("Total payout ", "Total payout", "Net_Payout", "net_payout"),
}

DOORDASH_COLUMNS: dict[str, tuple[str, ...]] = {
    "location_name": ("Store name", "Store_name", "location"),
    "store_code": ("Store ID", "Store_ID", "store_id", "Merchant Store ID"),
    "transaction_id": ("DoorDash transaction ID", "Transaction_ID", "transaction_id"),
    "order_number": ("DoorDash order ID", "Order_ID", "order_id"),
    "transaction_date": ("Timestamp local time", "Timestamp", "timestamp"),
    "channel": ("Channel",),
    "transaction_type": ("Transaction type", "Transaction_type", "transaction_type"),
    "order_status": ("Final order status", "Order status", "Order_Status", "order_status"),
    "sales_excl_tax": ("Subtotal",),
    "taxes": ("Tax (subtotal)", "Tax"),
    "delivery_fees": ("Customer fees",),
    "commission": ("Commission",),
    "error_charges": ("Error charges",),
    "offers_on_items": ("Offers", "offers"),
    "delivery_offer_redemptions": ("Delivery redemptions", "Delivery Redemptions"),
    "marketing_credits": ("Credits", "DoorDash marketing credit", "DoorDash Marketing Credit"),
    "third_party_contribution": (
        "Third-party contribution",
        "Third-party contributions",
        "Third Party Contributions",
        "Third-Party Contribution",
    ),
    "other_payments": ("Other payments", "Other Payments"),
    "other_payments_description": ("Other payments description",),
    "marketing_fees": ("Marketing fees",),
    "net_total": ("Net total",),
}

GRUBHUB_COLUMNS: dict[str, tuple[str, ...]] = {
    "location_name": ("store_name",),
    "store_code": ("store_number",),
    "street_address": ("street_address",),
    "transaction_id": ("transaction_id",),
    "order_number": ("order_number",),
    "transaction_date": ("transaction_date",),
    "transaction_type": ("transaction_type",),
    "order_channel": ("order_channel",),
    "fulfillment_type": ("fulfillment_type",),
    "subtotal": ("subtotal",),
    "subtotal_sales_tax": ("subtotal_sales_tax",),
    "delivery_charge": ("delivery_charge",),
    "merchant_service_fee": ("merchant_service_fee",),
    "commission": ("commission",),
    "delivery_commission": ("delivery_commission",),
    "processing_fee": ("processing_fee",),
    "merchant_funded_promotion": ("merchant_funded_promotion",),
    "merchant_net_total": ("merchant_net_total",),
    "transaction_note": ("transaction_note",),
    "customer_type": ("gh_plus_customer",),
}

PLATFORM_COLUMNS = {
    "ubereats": UBEREATS_COLUMNS,
    "doordash": DOORDASH_COLUMNS,
    "grubhub": GRUBHUB_COLUMNS,
}


def normalize_column_name(name: str) -> str:
    """'Sales (excl. tax)' -> 'salesexcl.tax'; case, spacing and separators dropped."""
    return re.sub(r"[\s\-_|()]", "", (name or "").lower())


def get_column_value(row: dict, *names: str) -> str:
    """First exact header hit, then first normalized hit, else ''."""
    for name in names:
        value = row.get(name)
        if value is not None:
            return value

    normalized = {normalize_column_name(key): value for key, value in row.items() if key is not None}
    for name in names:
        value = normalized.get(normalize_column_name(name))
        if value is not None:
            return value
    return ""


def canonicalize_row(row: dict, columns: dict[str, tuple[str, ...]]) -> dict[str, str]:
    return {
        field: (get_column_value(row, *synonyms) or "").strip()
        for field, synonyms in columns.items()
    }


def _is_description_row(first_line: list[str]) -> bool:
    return bool(first_line) and bool(DESCRIPTION_ROW_RE.search(first_line[0] or ""))


def _not_utf8(file_path: Path, exc: UnicodeDecodeError) -> ParseFailure:
    return ParseFailure(f"{Path(file_path).name} is not UTF-8 text (byte {exc.start}: {exc.reason})")


def read_platform_csv(file_path: Path, platform: str) -> Iterator[dict[str, str]]:
    """Yield canonical rows from a platform export (BOM tolerant)."""
    columns = PLATFORM_COLUMNS[platform]
    with open(file_path, newline="", encoding="utf-8-sig") as csvfile:
        try:
            if platform == "ubereats":
                # Some Uber Eats exports start with a row describing each column.
                first_line = next(csv.reader([csvfile.readline()]), [])
                if not _is_description_row(first_line):
                    csvfile.seek(0)
            for row in csv.DictReader(csvfile):
                if not any((value or "").strip() for value in row.values() if isinstance(value, str)):
                    continue
                yield canonicalize_row(row, columns)
        except UnicodeDecodeError as exc:
            raise _not_utf8(file_path, exc) from exc


CROSSREF_COLUMNS: dict[str, tuple[str, ...]] = {
    "external_code": ("Store ID", "Store_ID", "store_id", "Merchant Store ID", "Store Number", "store_code"),
    "name": ("Store Name", "Store_Name", "store_name", "Name", "Location"),
    "city": ("City", "city"),
}


def read_crossref_csv(file_path: Path) -> list[CrossReferenceEntry]:
    """Load a platform's own store list; rows without a code are dropped."""
    with open(file_path, newline="", encoding="utf-8-sig") as csvfile:
        try:
            rows = [canonicalize_row(row, CROSSREF_COLUMNS) for row in csv.DictReader(csvfile)]
        except UnicodeDecodeError as exc:
            raise _not_utf8(file_path, exc) from exc
    return [CrossReferenceEntry(**row) for row in rows if row["external_code"]]
